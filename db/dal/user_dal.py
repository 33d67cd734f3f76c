from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from db.models import User


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    return await session.get(User, user_id)


async def lock_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    """
    Load the user row with FOR UPDATE.

    Every subscription mutation for a driver takes this lock first, so concurrent
    deductions and package switches for the same driver serialize.
    """
    stmt = select(User).where(User.id == user_id).with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_user(session: AsyncSession, user_data: dict) -> User:
    new_user = User(**user_data)
    session.add(new_user)
    await session.flush()
    return new_user
