from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from db.models import Payment


async def create_payment_record(session: AsyncSession, payment_data: dict) -> Payment:
    new_payment = Payment(**payment_data)
    session.add(new_payment)
    await session.flush()
    return new_payment


async def get_payment_by_order_id(session: AsyncSession, order_id: str) -> Optional[Payment]:
    stmt = select(Payment).where(Payment.order_id == order_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_payments_for_subscription(session: AsyncSession, subscription_id: int) -> List[Payment]:
    stmt = select(Payment).where(Payment.subscription_id == subscription_id).order_by(Payment.payment_date)
    result = await session.execute(stmt)
    return result.scalars().all()
