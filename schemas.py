import uuid
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from security import BCRYPT_MAX_BYTES


def check_password_bytes(v: Optional[str]) -> Optional[str]:
    if v is not None and len(v.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"password must be at most {BCRYPT_MAX_BYTES} bytes in UTF-8")
    return v


# Rooms
class RoomCreate(BaseModel):
    name: str = Field(min_length=1)
    capacity: int = Field(default=0, ge=0)
    location: Optional[str] = None
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be blank")
        return v.strip()


class RoomRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    capacity: int
    location: Optional[str]
    description: Optional[str]


# Users / auth
class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    login: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v):
        return check_password_bytes(v)


class LoginRequest(BaseModel):
    login: str
    password: str


class UserUpdate(BaseModel):
    name: str = Field(min_length=1)
    login: str = Field(min_length=1)
    password: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v):
        return check_password_bytes(v)


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    login: str


class LoginResponse(BaseModel):
    token: str
    user_id: uuid.UUID
    user: UserRead


# Reservations
class ReservationCreate(BaseModel):
    room_id: uuid.UUID
    date: date
    start_time: time
    end_time: time

    @field_validator("date", mode="before")
    @classmethod
    def drop_time_of_day(cls, v):
        # Clients may send a full ISO datetime; only the calendar day is kept
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and len(v) > 10:
            return datetime.fromisoformat(v.replace("Z", "+00:00")).date()
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def naive_time(cls, v: time) -> time:
        # Times are wall-clock offsets within the reservation day
        return v.replace(tzinfo=None)


class ReservationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    room_id: uuid.UUID
    date: date
    start_time: time
    end_time: time
    user_id: uuid.UUID
    created_at: datetime


class MessageResponse(BaseModel):
    message: str
