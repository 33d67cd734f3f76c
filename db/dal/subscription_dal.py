import logging
from datetime import date
from typing import Optional, List, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from db.models import DriverSubscription, SubscriptionStatus


async def get_active_subscription_by_driver_id(
        session: AsyncSession,
        driver_id: int,
        today: date,
        for_update: bool = False) -> Optional[DriverSubscription]:
    """The driver's ACTIVE subscription whose end_date has not passed."""
    stmt = select(DriverSubscription).where(
        DriverSubscription.driver_id == driver_id,
        DriverSubscription.status == SubscriptionStatus.ACTIVE,
        DriverSubscription.end_date >= today,
    ).order_by(DriverSubscription.end_date.desc()).limit(1)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalars().first()


async def get_lapsed_active_subscriptions(
        session: AsyncSession,
        driver_id: int,
        today: date) -> List[DriverSubscription]:
    """ACTIVE rows left behind after their end_date passed."""
    stmt = select(DriverSubscription).where(
        DriverSubscription.driver_id == driver_id,
        DriverSubscription.status == SubscriptionStatus.ACTIVE,
        DriverSubscription.end_date < today,
    ).with_for_update()
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_subscription_by_id(
        session: AsyncSession, subscription_id: int) -> Optional[DriverSubscription]:
    return await session.get(DriverSubscription, subscription_id)


async def get_subscriptions_by_driver_id(
        session: AsyncSession, driver_id: int) -> List[DriverSubscription]:
    stmt = select(DriverSubscription).where(
        DriverSubscription.driver_id == driver_id
    ).order_by(DriverSubscription.start_date.desc(), DriverSubscription.id.desc())
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_all_subscriptions(session: AsyncSession) -> List[DriverSubscription]:
    stmt = select(DriverSubscription).order_by(DriverSubscription.id)
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_subscription(
        session: AsyncSession,
        sub_payload: Dict[str, Any]) -> DriverSubscription:
    new_sub = DriverSubscription(**sub_payload)
    session.add(new_sub)
    await session.flush()
    logging.info(
        f"Created subscription {new_sub.id} for driver {new_sub.driver_id} "
        f"(package {new_sub.service_package_id}, {new_sub.remaining_swaps} swaps, ends {new_sub.end_date})"
    )
    return new_sub

