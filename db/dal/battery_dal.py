from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from db.models import Battery, BatteryStatus


async def get_battery_by_id(session: AsyncSession, battery_id: int) -> Optional[Battery]:
    return await session.get(Battery, battery_id)


async def get_expired_pending_battery_ids(session: AsyncSession, now: datetime) -> List[int]:
    """Ids of PENDING batteries whose reservation expired strictly before `now`."""
    stmt = select(Battery.id).where(
        Battery.status == BatteryStatus.PENDING,
        Battery.reservation_expiry.is_not(None),
        Battery.reservation_expiry < now,
    ).order_by(Battery.reservation_expiry, Battery.id)
    result = await session.execute(stmt)
    return result.scalars().all()


async def lock_expired_pending_battery(
        session: AsyncSession, battery_id: int, now: datetime) -> Optional[Battery]:
    """
    Re-read a battery under FOR UPDATE, only if it is still PENDING and expired.

    Returns None when another sweep already handled it.
    """
    stmt = select(Battery).where(
        Battery.id == battery_id,
        Battery.status == BatteryStatus.PENDING,
        Battery.reservation_expiry.is_not(None),
        Battery.reservation_expiry < now,
    ).with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def release_battery(session: AsyncSession, battery: Battery) -> Battery:
    battery.status = BatteryStatus.AVAILABLE
    battery.reserved_for_booking_id = None
    battery.reservation_expiry = None
    await session.flush()
    return battery
