import uuid
from datetime import date, datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from booking import BookingService, ReservationRepository
from config import Settings, load_settings
from database import get_session, init_db, make_engine, make_session_factory
from exceptions import ForbiddenError, InvalidCredentialsError, NotFoundError, register_exception_handlers
from logger_config import configure_logging
from models import Room, User
from schemas import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    ReservationCreate,
    ReservationRead,
    RoomCreate,
    RoomRead,
    UserRead,
    UserUpdate,
)
from security import (
    ACCESS_TOKEN_COOKIE,
    create_access_token,
    get_current_user,
    get_current_user_id,
    get_settings,
)
from users import UserService

router = APIRouter(prefix="/api")


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def _set_auth_cookie(response: Response, token: str, settings: Settings, max_age: int) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        token,
        max_age=max_age,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        # Browsers drop SameSite=None cookies that are not Secure
        samesite="none" if settings.COOKIE_SECURE else "lax",
    )


# --- Auth ---
@router.post("/auth/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, users: UserService = Depends(get_user_service)):
    return await users.register(payload.name, payload.login, payload.password)


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    users: UserService = Depends(get_user_service),
    settings: Settings = Depends(get_settings),
):
    user = await users.authenticate(payload.login, payload.password)
    if user is None:
        logger.info(f"Login failed for {payload.login}")
        raise InvalidCredentialsError("Invalid credentials.")

    token = create_access_token(user, settings)
    _set_auth_cookie(response, token, settings, max_age=settings.ACCESS_TOKEN_EXPIRE_DAYS * 24 * 3600)
    logger.info(f"Login success for {payload.login}")
    return LoginResponse(token=token, user_id=user.id, user=UserRead.model_validate(user))


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    user_id: uuid.UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    # Expire the cookie; calling this without a cookie is harmless
    _set_auth_cookie(response, "", settings, max_age=0)
    logger.info(f"User {user_id} logged out")
    return response


@router.get("/auth/me", response_model=UserRead)
async def me(user: User = Depends(get_current_user)):
    return user


# --- Rooms ---
@router.get("/rooms", response_model=List[RoomRead])
async def list_rooms(session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(Room).order_by(Room.name))
    return result.scalars().all()


@router.get("/rooms/{room_id}", response_model=RoomRead)
async def get_room(room_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    room = await session.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found.")
    return room


@router.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
async def create_room(payload: RoomCreate, session: AsyncSession = Depends(get_session)):
    room = Room(**payload.model_dump())
    session.add(room)
    await session.commit()
    await session.refresh(room)
    logger.info(f"Room {room.id} created: {room.name}")
    return room


@router.put("/rooms/{room_id}", response_model=RoomRead)
async def update_room(
    room_id: uuid.UUID,
    payload: RoomCreate,
    session: AsyncSession = Depends(get_session),
):
    room = await session.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found.")

    for field, value in payload.model_dump().items():
        setattr(room, field, value)
    await session.commit()
    await session.refresh(room)
    return room


@router.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_room(room_id: uuid.UUID, session: AsyncSession = Depends(get_session)):
    room = await session.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found.")

    # A room takes its reservations with it
    await ReservationRepository(session).delete_for_room(room_id)
    await session.delete(room)
    await session.commit()
    logger.info(f"Room {room_id} deleted")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Users ---
def _ensure_self(current: User, user_id: uuid.UUID) -> None:
    # Accounts are only changed by their owner
    if current.id != user_id:
        raise ForbiddenError("You can only modify your own account.")


@router.get("/users", response_model=List[UserRead])
async def list_users(
    _: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    return await users.list_users()


@router.get("/users/{user_id}", response_model=UserRead)
async def get_user(
    user_id: uuid.UUID,
    _: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    user = await users.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


@router.put("/users/{user_id}", response_model=UserRead)
async def update_user(
    user_id: uuid.UUID,
    payload: UserUpdate,
    current: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    _ensure_self(current, user_id)
    return await users.update_user(user_id, payload.name, payload.login, payload.password)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: uuid.UUID,
    current: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    _ensure_self(current, user_id)
    await users.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Reservations ---
@router.get("/reservations", response_model=List[ReservationRead])
async def list_reservations(
    room_id: uuid.UUID,
    # A full datetime is accepted; only its day is used
    date: Optional[Union[datetime, date]] = None,
    booking: BookingService = Depends(get_booking_service),
):
    return await booking.list_reservations(room_id, date)


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    user: User = Depends(get_current_user),
    booking: BookingService = Depends(get_booking_service),
):
    return await booking.create_reservation(
        room_id=payload.room_id,
        date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        user_id=user.id,
    )


@router.delete("/reservations/{reservation_id}", response_model=MessageResponse)
async def delete_reservation(
    reservation_id: uuid.UUID,
    _: User = Depends(get_current_user),
    booking: BookingService = Depends(get_booking_service),
):
    await booking.delete_reservation(reservation_id)
    return MessageResponse(message="Deleted")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = load_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Meeting Room Booking System")

    engine = make_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    session_factory = make_session_factory(engine)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.booking_service = BookingService(session_factory)
    app.state.user_service = UserService(session_factory)

    @app.on_event("startup")
    async def on_startup():
        await init_db(engine)

    @app.on_event("shutdown")
    async def on_shutdown():
        await engine.dispose()

    app.include_router(router)
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
