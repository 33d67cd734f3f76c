from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from db.dal import battery_dal, booking_dal, subscription_dal
from db.models import BatteryStatus, BookingStatus, SubscriptionStatus
from evswap.services.notification_service import NotificationService
from evswap.services.reservation_expiry_service import ReservationExpiryService
from evswap.services.subscription import SubscriptionCoreService
from tests.conftest import FROZEN_NOW, FROZEN_TODAY
from tests.helpers import (
    add_booking,
    add_driver,
    add_package,
    add_reserved_battery,
    add_station,
    add_subscription,
)

EXPIRED = FROZEN_NOW - timedelta(minutes=5)
BOOKED_AT = FROZEN_NOW - timedelta(hours=3, minutes=5)


@pytest.fixture
def sender():
    return AsyncMock()


@pytest.fixture
def subscription_service(clock):
    return SubscriptionCoreService(clock)


@pytest.fixture
def reconciler(session_factory, subscription_service, sender, clock):
    return ReservationExpiryService(
        session_factory,
        subscription_service,
        NotificationService(sender),
        clock,
    )


async def seed_no_show(session, remaining_swaps=5, with_subscription=True):
    driver = await add_driver(session, full_name="Tran Thi B")
    station = await add_station(session)
    if with_subscription:
        package = await add_package(session, "Basic", "400000", 20)
        await add_subscription(session, driver, package, remaining_swaps=remaining_swaps, start_date=FROZEN_TODAY)
    booking = await add_booking(session, driver, station, BOOKED_AT)
    battery = await add_reserved_battery(session, station, EXPIRED, booking=booking)
    return driver, booking, battery


@pytest.mark.asyncio
class TestReservationSweep:

    async def test_no_show_is_cancelled_and_penalized(self, session, session_factory, reconciler, sender):
        driver, booking, battery = await seed_no_show(session)
        await session.commit()

        stats = await reconciler.run_once()

        assert stats["scanned"] == 1
        assert stats["cancelled"] == 1
        assert stats["released"] == 1
        assert stats["failed"] == 0

        async with session_factory() as check:
            stored_battery = await battery_dal.get_battery_by_id(check, battery.id)
            stored_booking = await booking_dal.get_booking_by_id(check, booking.id)
            subs = await subscription_dal.get_subscriptions_by_driver_id(check, driver.id)

        assert stored_battery.status == BatteryStatus.AVAILABLE
        assert stored_battery.reserved_for_booking_id is None
        assert stored_battery.reservation_expiry is None
        assert stored_booking.status == BookingStatus.CANCELLED
        assert stored_booking.reserved_battery_id is None
        assert stored_booking.reservation_expiry is None
        assert subs[0].remaining_swaps == 4

        sender.assert_awaited_once()
        notice = sender.await_args.args[0]
        assert notice.recipient == driver.email
        assert notice.subject == f"AUTO-CANCELLED BOOKING - {booking.confirmation_code}"
        assert notice.full_name == "Tran Thi B"
        assert notice.station_location == "12 Le Loi, District 1"
        assert notice.booking_time == "06:55 - 18/10/2026"
        assert notice.vehicle_model == "VinFast Klara S"
        assert notice.battery_type == "LFP-48V - 2.50kWh"
        assert notice.status == "CANCELLED"

    async def test_last_swap_expires_subscription(self, session, session_factory, reconciler):
        driver, _, _ = await seed_no_show(session, remaining_swaps=1)
        await session.commit()

        await reconciler.run_once()

        async with session_factory() as check:
            subs = await subscription_dal.get_subscriptions_by_driver_id(check, driver.id)
        assert subs[0].remaining_swaps == 0
        assert subs[0].status == SubscriptionStatus.EXPIRED

    async def test_no_subscription_still_cancels(self, session, session_factory, reconciler, sender):
        _, booking, _ = await seed_no_show(session, with_subscription=False)
        await session.commit()

        stats = await reconciler.run_once()

        assert stats["cancelled"] == 1
        async with session_factory() as check:
            stored_booking = await booking_dal.get_booking_by_id(check, booking.id)
        assert stored_booking.status == BookingStatus.CANCELLED
        sender.assert_awaited_once()

    async def test_orphan_and_non_confirmed_bookings_only_release(self, session, session_factory, reconciler, sender):
        driver = await add_driver(session)
        station = await add_station(session, location=None, contact_info=None)
        orphan = await add_reserved_battery(session, station, EXPIRED)
        completed = await add_booking(session, driver, station, BOOKED_AT, status=BookingStatus.COMPLETED)
        held = await add_reserved_battery(session, station, EXPIRED, booking=completed)
        await session.commit()

        stats = await reconciler.run_once()

        assert stats["scanned"] == 2
        assert stats["orphaned"] == 1
        assert stats["cancelled"] == 0
        assert stats["released"] == 2
        sender.assert_not_awaited()

        async with session_factory() as check:
            for battery_id in (orphan.id, held.id):
                stored = await battery_dal.get_battery_by_id(check, battery_id)
                assert stored.status == BatteryStatus.AVAILABLE
            stored_booking = await booking_dal.get_booking_by_id(check, completed.id)
        assert stored_booking.status == BookingStatus.COMPLETED

    async def test_unexpired_reservation_is_untouched(self, session, session_factory, reconciler):
        driver = await add_driver(session)
        station = await add_station(session)
        booking = await add_booking(session, driver, station, FROZEN_NOW)
        battery = await add_reserved_battery(session, station, FROZEN_NOW + timedelta(hours=2), booking=booking)
        await session.commit()

        stats = await reconciler.run_once()

        assert stats["scanned"] == 0
        async with session_factory() as check:
            stored = await battery_dal.get_battery_by_id(check, battery.id)
        assert stored.status == BatteryStatus.PENDING

    async def test_second_run_is_a_no_op(self, session, session_factory, reconciler, sender):
        driver, _, _ = await seed_no_show(session)
        await session.commit()

        await reconciler.run_once()
        stats = await reconciler.run_once()

        assert stats["scanned"] == 0
        assert stats["cancelled"] == 0
        sender.assert_awaited_once()
        async with session_factory() as check:
            subs = await subscription_dal.get_subscriptions_by_driver_id(check, driver.id)
        assert subs[0].remaining_swaps == 4

    async def test_failure_is_isolated_per_battery(
        self, session, session_factory, reconciler, subscription_service, monkeypatch
    ):
        bad_driver, bad_booking, bad_battery = await seed_no_show(session)
        good_driver, good_booking, _ = await seed_no_show(session)
        await session.commit()

        original = subscription_service.deduct_swap

        async def flaky_deduct(s, driver_id):
            if driver_id == bad_driver.id:
                raise RuntimeError("database hiccup")
            return await original(s, driver_id)

        monkeypatch.setattr(subscription_service, "deduct_swap", flaky_deduct)

        stats = await reconciler.run_once()

        assert stats["failed"] == 1
        assert stats["cancelled"] == 1
        async with session_factory() as check:
            assert (await battery_dal.get_battery_by_id(check, bad_battery.id)).status == BatteryStatus.PENDING
            assert (await booking_dal.get_booking_by_id(check, bad_booking.id)).status == BookingStatus.CONFIRMED
            assert (await booking_dal.get_booking_by_id(check, good_booking.id)).status == BookingStatus.CANCELLED

    async def test_notification_failure_does_not_undo_cancellation(
        self, session, session_factory, reconciler, sender
    ):
        _, booking, _ = await seed_no_show(session)
        await session.commit()
        sender.side_effect = ConnectionError("smtp down")

        stats = await reconciler.run_once()

        assert stats["cancelled"] == 1
        assert stats["failed"] == 0
        async with session_factory() as check:
            stored_booking = await booking_dal.get_booking_by_id(check, booking.id)
        assert stored_booking.status == BookingStatus.CANCELLED
