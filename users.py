import asyncio
import uuid
from typing import Callable, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from exceptions import LoginTakenError, NotFoundError
from models import User
from security import hash_password, verify_password


class UserService:
    """User accounts. Implements the ``UserLookup`` capability used by authentication."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def _find_by_login(self, session: AsyncSession, login: str) -> Optional[User]:
        result = await session.execute(select(User).where(User.login == login))
        return result.scalars().first()

    async def register(self, name: str, login: str, password: str) -> User:
        async with self.session_factory() as session:
            if await self._find_by_login(session, login) is not None:
                raise LoginTakenError("Login already exists.")

            # bcrypt is slow on purpose; keep it off the event loop
            password_hash = await asyncio.to_thread(hash_password, password)
            user = User(name=name, login=login, password_hash=password_hash)
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                # Lost a race against another registration of the same login
                await session.rollback()
                raise LoginTakenError("Login already exists.") from exc

        logger.info(f"Registered user {user.id} login={login}")
        return user

    async def authenticate(self, login: str, password: str) -> Optional[User]:
        async with self.session_factory() as session:
            user = await self._find_by_login(session, login)
        if user is None:
            return None
        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            return None
        return user

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        async with self.session_factory() as session:
            return await session.get(User, user_id)

    async def list_users(self) -> List[User]:
        async with self.session_factory() as session:
            result = await session.execute(select(User).order_by(User.name))
            return list(result.scalars().all())

    async def update_user(
        self,
        user_id: uuid.UUID,
        name: str,
        login: str,
        password: Optional[str] = None,
    ) -> User:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found.")

            if login != user.login:
                if await self._find_by_login(session, login) is not None:
                    raise LoginTakenError("Login already exists.")
                user.login = login
            user.name = name
            if password:
                user.password_hash = await asyncio.to_thread(hash_password, password)

            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise LoginTakenError("Login already exists.") from exc
        return user

    async def delete_user(self, user_id: uuid.UUID) -> None:
        async with self.session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found.")
            await session.delete(user)
            await session.commit()
        logger.info(f"Deleted user {user_id}")
