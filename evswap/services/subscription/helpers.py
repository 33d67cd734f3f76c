"""
Subscription helper classes used by SubscriptionCoreService.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional

from db.models import DriverSubscription, ServicePackage, SubscriptionStatus


class SubscriptionActivationHelper:
    """
    Builders for new subscription rows and for the terminal transitions of old ones.
    """

    @staticmethod
    def calculate_end_date(start_date: date, duration_days: int) -> date:
        return start_date + timedelta(days=duration_days)

    @staticmethod
    def build_subscription_payload(
        driver_id: int,
        package: ServicePackage,
        today: date,
        *,
        remaining_swaps: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Payload for a new ACTIVE subscription.

        Defaults to the package terms (full swaps, today + duration); a downgrade
        overrides swaps and dates with the prorated values.
        """
        start = start_date or today
        swaps = package.max_swaps if remaining_swaps is None else remaining_swaps
        if swaps < 0 or swaps > package.max_swaps:
            raise ValueError(
                f"remaining_swaps {swaps} outside 0..{package.max_swaps} for package {package.id}"
            )
        return {
            "driver_id": driver_id,
            "service_package_id": package.id,
            "start_date": start,
            "end_date": end_date or SubscriptionActivationHelper.calculate_end_date(start, package.duration),
            "status": SubscriptionStatus.ACTIVE,
            "remaining_swaps": swaps,
        }

    @staticmethod
    def expire(subscription: DriverSubscription, end_date: Optional[date] = None, reason: str = "") -> None:
        """ACTIVE -> EXPIRED. Optionally closes the term at `end_date`."""
        if subscription.status != SubscriptionStatus.ACTIVE:
            logging.warning(
                f"Subscription {subscription.id} is {subscription.status.value}, not expiring again ({reason})"
            )
            return
        subscription.status = SubscriptionStatus.EXPIRED
        if end_date is not None:
            subscription.end_date = end_date
        logging.info(
            f"Subscription {subscription.id} of driver {subscription.driver_id} expired"
            f"{f' ({reason})' if reason else ''}; {subscription.remaining_swaps} swaps left unused"
        )
