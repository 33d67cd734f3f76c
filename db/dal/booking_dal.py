from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from db.models import Booking, Station


async def get_booking_by_id(session: AsyncSession, booking_id: int) -> Optional[Booking]:
    return await session.get(Booking, booking_id)


async def lock_booking_by_id(
        session: AsyncSession,
        booking_id: int,
        with_details: bool = False) -> Optional[Booking]:
    """
    Booking under FOR UPDATE.

    `with_details` also loads driver, vehicle and station (with battery type),
    which the cancellation notice needs.
    """
    stmt = select(Booking).where(Booking.id == booking_id).with_for_update()
    if with_details:
        stmt = stmt.options(
            selectinload(Booking.driver),
            selectinload(Booking.vehicle),
            selectinload(Booking.station).selectinload(Station.battery_type),
        )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_booking(session: AsyncSession, booking_data: dict) -> Booking:
    booking = Booking(**booking_data)
    session.add(booking)
    await session.flush()
    return booking
