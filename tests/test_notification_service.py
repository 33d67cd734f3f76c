from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest

from evswap.services.notification_service import (
    AUTO_CANCELLATION_POLICY,
    CONTACT_NOT_SET,
    NotificationService,
    build_auto_cancellation_notice,
    format_booking_time,
)


def booking(location=None, contact=None, model=None, capacity=None):
    return SimpleNamespace(
        id=42,
        confirmation_code="BK000042",
        booking_time=datetime(2026, 10, 18, 7, 5),
        driver=SimpleNamespace(email="driver@example.com", full_name="Le Van C"),
        vehicle=SimpleNamespace(model=model, plate_number="51F-123.45"),
        station=SimpleNamespace(
            name="EVS Thu Duc",
            location=location,
            district="Thu Duc",
            city="Ho Chi Minh City",
            contact_info=contact,
            battery_type=SimpleNamespace(name="NMC-60V", capacity=capacity),
        ),
    )


def test_notice_fallbacks():
    notice = build_auto_cancellation_notice(booking())

    assert notice.subject == "AUTO-CANCELLED BOOKING - BK000042"
    assert notice.station_location == "Thu Duc, Ho Chi Minh City"
    assert notice.station_contact == CONTACT_NOT_SET
    assert notice.vehicle_model == "51F-123.45"
    assert notice.battery_type == "NMC-60V"
    assert notice.booking_time == "07:05 - 18/10/2026"
    assert notice.cancellation_policy == AUTO_CANCELLATION_POLICY


def test_booking_time_rendered_in_business_timezone():
    tz = ZoneInfo("Asia/Ho_Chi_Minh")
    late = booking()
    late.booking_time = datetime(2026, 10, 17, 23, 55, tzinfo=timezone.utc)

    assert build_auto_cancellation_notice(late, tz).booking_time == "06:55 - 18/10/2026"
    assert format_booking_time(datetime(2026, 10, 17, 23, 55), tz) == "06:55 - 18/10/2026"
    assert format_booking_time(datetime(2026, 10, 17, 23, 55)) == "23:55 - 17/10/2026"


def test_notice_with_full_details():
    notice = build_auto_cancellation_notice(
        booking(location="1 Vo Van Ngan", contact="0909 000 111", model="Feliz S", capacity=Decimal("3.20"))
    )

    assert notice.station_location == "1 Vo Van Ngan"
    assert notice.station_contact == "0909 000 111"
    assert notice.vehicle_model == "Feliz S"
    assert notice.battery_type == "NMC-60V - 3.20kWh"
    assert notice.to_dict()["booking_id"] == 42


@pytest.mark.asyncio
async def test_sender_failure_is_swallowed():
    sender = AsyncMock(side_effect=ConnectionError("smtp down"))
    service = NotificationService(sender)

    assert await service.send_booking_auto_cancelled(build_auto_cancellation_notice(booking())) is False
    sender.assert_awaited_once()


@pytest.mark.asyncio
async def test_without_sender_only_logs():
    service = NotificationService()

    assert await service.send_booking_auto_cancelled(build_auto_cancellation_notice(booking())) is False
