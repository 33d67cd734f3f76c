"""
Reservation Expiry Service

Periodic sweep over batteries held for bookings (status PENDING) whose
reservation window has passed.

For every expired battery, in its own transaction:
- no linked booking: release the battery (data inconsistency, self-healed);
- linked booking still CONFIRMED (driver never showed up): forfeit one swap,
  cancel the booking, release the battery, notify the driver after commit;
- linked booking in any other state: release the battery only.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.dal import battery_dal, booking_dal
from db.models import Battery, BookingStatus
from evswap.services.notification_service import (
    BookingCancellationNotice,
    NotificationService,
    build_auto_cancellation_notice,
)
from evswap.services.subscription import SubscriptionCoreService
from evswap.utils.clock import Clock
from evswap.utils.transaction_context import TransactionContext

OUTCOME_CANCELLED = "cancelled"
OUTCOME_RELEASED = "released"
OUTCOME_ORPHANED = "orphaned"
OUTCOME_SKIPPED = "skipped"


class ReservationExpiryService:
    """
    Expires stale battery reservations and penalizes no-shows.

    `run_once()` is the job handed to PeriodicTask. Overlapping runs are safe:
    every battery is re-checked under a row lock, so a battery already handled
    by another run is skipped.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        subscription_service: SubscriptionCoreService,
        notification_service: NotificationService,
        clock: Optional[Clock] = None,
    ):
        self.session_factory = session_factory
        self.subscription_service = subscription_service
        self.notification_service = notification_service
        self.clock = clock or Clock()
        logging.info("ReservationExpiryService initialized")

    async def run_once(self) -> Dict[str, Any]:
        started = time.monotonic()
        now = self.clock.now()
        stats = {
            "scanned": 0,
            OUTCOME_CANCELLED: 0,
            OUTCOME_RELEASED: 0,
            OUTCOME_ORPHANED: 0,
            OUTCOME_SKIPPED: 0,
            "failed": 0,
            "execution_time_seconds": 0.0,
        }

        async with self.session_factory() as session:
            battery_ids = await battery_dal.get_expired_pending_battery_ids(session, now)
        stats["scanned"] = len(battery_ids)

        if battery_ids:
            logging.info(f"Reservation sweep: {len(battery_ids)} expired reservations found at {now.isoformat()}")

        for battery_id in battery_ids:
            try:
                outcome = await self._process_battery(battery_id, now)
            except Exception as e:
                stats["failed"] += 1
                logging.error(f"Reservation sweep: failed to process battery {battery_id}: {e}", exc_info=True)
                continue
            stats[outcome] += 1
            if outcome in (OUTCOME_CANCELLED, OUTCOME_ORPHANED):
                stats[OUTCOME_RELEASED] += 1

        stats["execution_time_seconds"] = round(time.monotonic() - started, 3)
        logging.info(
            f"Reservation sweep finished: cancelled {stats[OUTCOME_CANCELLED]}/{stats['scanned']} bookings, "
            f"released {stats[OUTCOME_RELEASED]}, orphaned {stats[OUTCOME_ORPHANED]}, "
            f"skipped {stats[OUTCOME_SKIPPED]}, failed {stats['failed']} "
            f"in {stats['execution_time_seconds']}s"
        )
        return stats

    async def _process_battery(self, battery_id: int, now: datetime) -> str:
        async with self.session_factory() as session:
            async with TransactionContext(session, label=f"reservation-expiry:{battery_id}") as tx:
                battery = await battery_dal.lock_expired_pending_battery(session, battery_id, now)
                if not battery:
                    logging.debug(f"Battery {battery_id} no longer an expired reservation, skipping")
                    return OUTCOME_SKIPPED

                outcome, notice = await self._expire_reservation(session, battery)
                if notice:
                    tx.after_commit(self._notifier(notice))
        return outcome

    def _notifier(self, notice: BookingCancellationNotice):
        async def send_notice():
            await self.notification_service.send_booking_auto_cancelled(notice)
        return send_notice

    async def _expire_reservation(self, session: AsyncSession, battery: Battery):
        booking_id = battery.reserved_for_booking_id
        if booking_id is None:
            logging.warning(
                f"Battery {battery.id} is PENDING without a booking (expired {battery.reservation_expiry}). "
                "Releasing it"
            )
            await battery_dal.release_battery(session, battery)
            return OUTCOME_ORPHANED, None

        booking = await booking_dal.lock_booking_by_id(session, booking_id, with_details=True)
        if not booking:
            logging.warning(f"Battery {battery.id} points at missing booking {booking_id}. Releasing it")
            await battery_dal.release_battery(session, battery)
            return OUTCOME_ORPHANED, None

        if booking.status != BookingStatus.CONFIRMED:
            logging.info(
                f"Battery {battery.id} reservation expired, booking {booking.id} is {booking.status.value}. "
                "Releasing battery only"
            )
            await battery_dal.release_battery(session, battery)
            return OUTCOME_RELEASED, None

        subscription = await self.subscription_service.deduct_swap(session, booking.driver_id)
        if subscription is None:
            logging.warning(
                f"No-show on booking {booking.id}: driver {booking.driver_id} has no active subscription, "
                "no swap forfeited"
            )

        booking.status = BookingStatus.CANCELLED
        booking.reserved_battery_id = None
        booking.reservation_expiry = None
        await battery_dal.release_battery(session, battery)

        logging.info(
            f"Booking {booking.id} ({booking.confirmation_code}) auto-cancelled: reservation expired, "
            f"battery {battery.id} released"
        )
        return OUTCOME_CANCELLED, build_auto_cancellation_notice(booking, self.clock.tz)
