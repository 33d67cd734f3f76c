"""
Notification Service

Builds the payload for the "booking auto-cancelled" message and hands it to
an injected async sender (email gateway, queue publisher, ...). Delivery is
best effort: failures are logged and never reach the caller.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Awaitable, Callable, Dict, Optional

from db.models import Booking

BOOKING_TIME_FORMAT = "%H:%M - %d/%m/%Y"
CONTACT_NOT_SET = "Not updated yet"
AUTO_CANCELLATION_POLICY = (
    "Your booking was cancelled automatically because the reservation window (3 hours) expired. "
    "One swap has been deducted from your service package because the swap was not carried out."
)


@dataclass
class BookingCancellationNotice:
    recipient: str
    subject: str
    full_name: str
    booking_id: int
    station_name: str
    station_location: str
    station_contact: str
    booking_time: str
    vehicle_model: str
    battery_type: str
    status: str
    confirmation_code: Optional[str]
    cancellation_policy: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


NoticeSender = Callable[[BookingCancellationNotice], Awaitable[None]]


def format_booking_time(value: datetime, tz: tzinfo = timezone.utc) -> str:
    """Wall-clock time in `tz`. Naive values are stored UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).strftime(BOOKING_TIME_FORMAT)


def build_auto_cancellation_notice(booking: Booking, tz: tzinfo = timezone.utc) -> BookingCancellationNotice:
    """
    Payload for a booking cancelled by the reservation sweep.

    Expects driver, vehicle and station (with battery_type) loaded on the booking.
    The booking time is rendered in `tz`, the business timezone.
    """
    driver = booking.driver
    station = booking.station
    vehicle = booking.vehicle

    location = station.location if station.location else f"{station.district}, {station.city}"
    battery_type = station.battery_type
    battery_desc = battery_type.name if battery_type else "N/A"
    if battery_type and battery_type.capacity is not None:
        battery_desc += f" - {battery_type.capacity}kWh"

    return BookingCancellationNotice(
        recipient=driver.email,
        subject=f"AUTO-CANCELLED BOOKING - {booking.confirmation_code}",
        full_name=driver.full_name,
        booking_id=booking.id,
        station_name=station.name,
        station_location=location,
        station_contact=station.contact_info or CONTACT_NOT_SET,
        booking_time=format_booking_time(booking.booking_time, tz),
        vehicle_model=vehicle.model or vehicle.plate_number,
        battery_type=battery_desc,
        status="CANCELLED",
        confirmation_code=booking.confirmation_code,
        cancellation_policy=AUTO_CANCELLATION_POLICY,
    )


class NotificationService:
    """
    Best-effort delivery of driver notifications.

    Without a sender the notice is only logged.
    """

    def __init__(self, sender: Optional[NoticeSender] = None):
        self.sender = sender
        if not sender:
            logging.warning("NotificationService: no sender configured, notices will only be logged")

    async def send_booking_auto_cancelled(self, notice: BookingCancellationNotice) -> bool:
        if not self.sender:
            logging.info(
                f"Auto-cancellation notice for booking {notice.booking_id} to {notice.recipient} "
                f"not sent (no sender): {notice.subject}"
            )
            return False
        try:
            await self.sender(notice)
        except Exception as e:
            logging.error(
                f"Failed to send auto-cancellation notice for booking {notice.booking_id} "
                f"to {notice.recipient}: {e}",
                exc_info=True,
            )
            return False
        logging.info(f"Auto-cancellation notice sent for booking {notice.booking_id} to {notice.recipient}")
        return True
