"""Row builders for tests. All of them flush so ids are available."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from itertools import count
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.dal import booking_dal, package_dal, user_dal
from db.models import (
    Battery,
    BatteryStatus,
    BatteryType,
    Booking,
    BookingStatus,
    DriverSubscription,
    ServicePackage,
    Station,
    SubscriptionStatus,
    User,
    UserRole,
    Vehicle,
)

_seq = count(1)


async def add_driver(session: AsyncSession, full_name: str = "Nguyen Van A") -> User:
    n = next(_seq)
    return await user_dal.create_user(
        session, {"email": f"driver{n}@example.com", "full_name": full_name, "role": UserRole.DRIVER}
    )


async def add_package(
    session: AsyncSession,
    name: str,
    price: str,
    max_swaps: int,
    duration: int = 30,
) -> ServicePackage:
    return await package_dal.create_package(
        session, {"name": name, "price": Decimal(price), "max_swaps": max_swaps, "duration": duration}
    )


async def add_subscription(
    session: AsyncSession,
    driver: User,
    package: ServicePackage,
    remaining_swaps: int,
    start_date: date,
    end_date: Optional[date] = None,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
) -> DriverSubscription:
    subscription = DriverSubscription(
        driver_id=driver.id,
        service_package_id=package.id,
        start_date=start_date,
        end_date=end_date or start_date + timedelta(days=package.duration),
        status=status,
        remaining_swaps=remaining_swaps,
    )
    session.add(subscription)
    await session.flush()
    return subscription


async def add_station(
    session: AsyncSession,
    location: Optional[str] = "12 Le Loi, District 1",
    contact_info: Optional[str] = "028 1234 5678",
) -> Station:
    battery_type = BatteryType(name="LFP-48V", capacity=Decimal("2.50"))
    session.add(battery_type)
    await session.flush()
    station = Station(
        name="EVS Ben Thanh",
        location=location,
        district="District 1",
        city="Ho Chi Minh City",
        contact_info=contact_info,
        battery_type_id=battery_type.id,
    )
    session.add(station)
    await session.flush()
    return station


async def add_reserved_battery(
    session: AsyncSession,
    station: Station,
    expiry: datetime,
    booking: Optional[Booking] = None,
) -> Battery:
    battery = Battery(
        model="LFP-48V",
        status=BatteryStatus.PENDING,
        current_station_id=station.id,
        reservation_expiry=expiry,
    )
    session.add(battery)
    await session.flush()
    if booking:
        battery.reserved_for_booking_id = booking.id
        booking.reserved_battery_id = battery.id
        booking.reservation_expiry = expiry
        await session.flush()
    return battery


async def add_booking(
    session: AsyncSession,
    driver: User,
    station: Station,
    booking_time: datetime,
    status: BookingStatus = BookingStatus.CONFIRMED,
    vehicle_model: Optional[str] = "VinFast Klara S",
) -> Booking:
    n = next(_seq)
    vehicle = Vehicle(driver_id=driver.id, model=vehicle_model, plate_number=f"59-X1 {n:05d}")
    session.add(vehicle)
    await session.flush()
    return await booking_dal.create_booking(session, {
        "driver_id": driver.id,
        "station_id": station.id,
        "vehicle_id": vehicle.id,
        "booking_time": booking_time,
        "confirmation_code": f"BK{n:06d}",
        "status": status,
    })
