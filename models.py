import uuid
from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, Index, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Room(SQLModel, table=True):
    __tablename__ = "rooms"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    capacity: int = 0
    location: Optional[str] = None
    description: Optional[str] = None


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    login: str = Field(index=True, unique=True)
    password_hash: str


class Reservation(SQLModel, table=True):
    __tablename__ = "reservations"
    __table_args__ = (
        # Admission looks up every reservation of one room on one day
        Index("ix_reservations_room_day", "room_id", "date"),
        # Two bookings starting together always overlap; the store rejects the second one
        UniqueConstraint("room_id", "date", "start_time", name="uq_reservations_room_day_start"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    room_id: uuid.UUID = Field(foreign_key="rooms.id")
    date: date
    start_time: time
    end_time: time
    user_id: uuid.UUID
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
