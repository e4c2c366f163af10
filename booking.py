"""Reservation admission.

A reservation is admitted only if no other reservation of the same room on
the same day overlaps it. Intervals are half-open, so ``[09:00, 10:00)`` and
``[10:00, 11:00)`` can both be booked.

Check and insert for a given ``(room_id, day)`` run under a per-key
``asyncio.Lock`` and inside one transaction, so concurrent requests for the
same slot are applied one at a time. Requests for other rooms or days never
wait on each other. The lock registry lives in the process: run a single API
worker per database.
"""

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timezone
from typing import AsyncIterator, Callable, Dict, Hashable, List, Optional

from loguru import logger
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from exceptions import (
    InvalidIntervalError,
    NotFoundError,
    PastDateError,
    SlotUnavailableError,
)
from models import Reservation, Room


def overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open interval overlap: touching endpoints do not overlap."""
    return start_a < end_b and start_b < end_a


def normalize_day(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"expected a date or datetime, got {type(value).__name__}")


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    # asyncpg reports SQLSTATE 23503; SQLite only has the message
    if getattr(exc.orig, "sqlstate", None) == "23503":
        return True
    return "foreign key" in str(exc.orig).lower()


class KeyedLock:
    """Registry of asyncio locks, one per key, dropped once nobody uses them."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ReservationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_reservations(self, room_id: uuid.UUID, day: Optional[date] = None) -> List[Reservation]:
        statement = select(Reservation).where(Reservation.room_id == room_id)
        if day is not None:
            statement = statement.where(Reservation.date == day)
        statement = statement.order_by(Reservation.start_time, Reservation.date)
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def insert_reservation(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def delete_reservation(self, reservation_id: uuid.UUID) -> bool:
        reservation = await self.session.get(Reservation, reservation_id)
        if reservation is None:
            return False
        await self.session.delete(reservation)
        await self.session.flush()
        return True

    async def delete_for_room(self, room_id: uuid.UUID) -> None:
        await self.session.execute(delete(Reservation).where(Reservation.room_id == room_id))


class BookingService:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        today: Callable[[], date] = utc_today,
        locks: Optional[KeyedLock] = None,
    ):
        self.session_factory = session_factory
        self.today = today
        self.locks = locks if locks is not None else KeyedLock()

    async def create_reservation(
        self,
        room_id: uuid.UUID,
        date,
        start_time: time,
        end_time: time,
        user_id: uuid.UUID,
    ) -> Reservation:
        if end_time <= start_time:
            raise InvalidIntervalError("End time must be after start time.")

        day = normalize_day(date)
        if day < self.today():
            raise PastDateError("Reservations cannot be created for past dates.")

        async with self.locks.hold((room_id, day)):
            async with self.session_factory() as session:
                try:
                    async with session.begin():
                        if await session.get(Room, room_id) is None:
                            raise NotFoundError("Room not found.")

                        repo = ReservationRepository(session)
                        existing = await repo.find_reservations(room_id, day)
                        conflicts = [
                            r for r in existing if overlaps(r.start_time, r.end_time, start_time, end_time)
                        ]
                        if conflicts:
                            logger.info(
                                f"Slot unavailable: room={room_id} day={day} "
                                f"[{start_time}, {end_time}) overlaps reservation {conflicts[0].id}"
                            )
                            raise SlotUnavailableError("Time slot unavailable for this room.")

                        reservation = await repo.insert_reservation(
                            Reservation(
                                room_id=room_id,
                                date=day,
                                start_time=start_time,
                                end_time=end_time,
                                user_id=user_id,
                            )
                        )
                except IntegrityError as exc:
                    # The transaction is already rolled back by session.begin()
                    logger.warning(f"Constraint violation while booking room={room_id} day={day}: {exc.orig}")
                    if is_foreign_key_violation(exc):
                        # The room was deleted after the existence check
                        raise NotFoundError("Room not found.") from exc
                    raise SlotUnavailableError("Time slot unavailable for this room.") from exc

        logger.info(
            f"Reservation {reservation.id} created: room={room_id} day={day} "
            f"[{start_time}, {end_time}) user={user_id}"
        )
        return reservation

    async def delete_reservation(self, reservation_id: uuid.UUID) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                deleted = await ReservationRepository(session).delete_reservation(reservation_id)
        if not deleted:
            raise NotFoundError("Reservation not found.")
        logger.info(f"Reservation {reservation_id} deleted")

    async def list_reservations(self, room_id: uuid.UUID, date=None) -> List[Reservation]:
        day = normalize_day(date) if date is not None else None
        async with self.session_factory() as session:
            return await ReservationRepository(session).find_reservations(room_id, day)
