from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import translate_store_errors

from .models import User


class UserRepository:

    @staticmethod
    @translate_store_errors
    async def create(db: AsyncSession, user: User) -> User:
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    @translate_store_errors
    async def save(db: AsyncSession, user: User) -> User:
        db.add(user)
        await db.commit()
        return user

    @staticmethod
    @translate_store_errors
    async def get_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalars().first()

    @staticmethod
    @translate_store_errors
    async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalars().first()
