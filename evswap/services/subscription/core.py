"""
Subscription Core Service

Lifecycle of driver subscriptions: purchase after payment, swap deduction,
upgrade, downgrade, administrative cancellation.

This service is the only writer of DriverSubscription rows. Money and term
arithmetic always goes through proration_service.

Every mutating method:
- locks the driver row first (serializes concurrent changes for one driver),
- reads the active subscription under FOR UPDATE,
- flushes, leaving commit/rollback to the caller's TransactionContext.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from db.dal import package_dal, subscription_dal, user_dal
from db.models import DriverSubscription, ServicePackage, SubscriptionStatus, User
from evswap.exceptions import (
    AccessDeniedError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
)
from evswap.services import proration_service
from evswap.services.proration_service import DowngradeCalculation, UpgradeCalculation
from evswap.services.subscription.helpers import SubscriptionActivationHelper
from evswap.utils.clock import Clock


class SubscriptionCoreService:
    """
    Core service for subscription lifecycle management.

    Handles:
    - Subscription creation after a confirmed payment
    - Swap deduction (also used as the no-show penalty)
    - Upgrade / downgrade cost evaluation and execution
    - Administrative cancellation and listings
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or Clock()
        self.activation_helper = SubscriptionActivationHelper()
        logging.info("SubscriptionCoreService initialized")

    # ==================== Lookups ====================

    async def _require_driver(self, session: AsyncSession, driver_id: int, lock: bool = False) -> User:
        if lock:
            driver = await user_dal.lock_user_by_id(session, driver_id)
        else:
            driver = await user_dal.get_user_by_id(session, driver_id)
        if not driver:
            raise NotFoundError(f"Driver not found with id: {driver_id}")
        return driver

    async def _require_package(self, session: AsyncSession, package_id: int) -> ServicePackage:
        package = await package_dal.get_package_by_id(session, package_id)
        if not package:
            raise NotFoundError(f"Service package not found with id: {package_id}")
        return package

    async def _require_active_subscription(
        self, session: AsyncSession, driver_id: int, for_update: bool = False
    ) -> DriverSubscription:
        subscription = await subscription_dal.get_active_subscription_by_driver_id(
            session, driver_id, self.clock.today(), for_update=for_update
        )
        if not subscription:
            raise NotFoundError(f"No active subscription found for driver {driver_id}")
        return subscription

    async def get_active_subscription(
        self, session: AsyncSession, driver_id: int
    ) -> Optional[DriverSubscription]:
        return await subscription_dal.get_active_subscription_by_driver_id(
            session, driver_id, self.clock.today()
        )

    async def has_active_subscription(self, session: AsyncSession, driver_id: int) -> bool:
        return await self.get_active_subscription(session, driver_id) is not None

    async def get_driver_subscriptions(
        self, session: AsyncSession, driver_id: int
    ) -> List[DriverSubscription]:
        await self._require_driver(session, driver_id)
        return await subscription_dal.get_subscriptions_by_driver_id(session, driver_id)

    async def get_all_subscriptions(
        self, session: AsyncSession, is_admin: bool
    ) -> List[DriverSubscription]:
        if not is_admin:
            raise AccessDeniedError("Access denied. Admin role required.")
        return await subscription_dal.get_all_subscriptions(session)

    # ==================== Purchase ====================

    async def _expire_lapsed(self, session: AsyncSession, driver_id: int) -> int:
        """Expire ACTIVE rows whose end_date already passed, so the new row is the only ACTIVE one."""
        lapsed = await subscription_dal.get_lapsed_active_subscriptions(
            session, driver_id, self.clock.today()
        )
        for subscription in lapsed:
            self.activation_helper.expire(subscription, reason="term ended")
        if lapsed:
            await session.flush()
        return len(lapsed)

    async def _insert_active(
        self, session: AsyncSession, driver_id: int, payload: dict
    ) -> DriverSubscription:
        await self._expire_lapsed(session, driver_id)
        existing = await subscription_dal.get_active_subscription_by_driver_id(
            session, driver_id, self.clock.today(), for_update=True
        )
        if existing:
            raise ConflictError(
                f"Driver {driver_id} already has active subscription {existing.id}"
            )
        return await subscription_dal.create_subscription(session, payload)

    async def create_subscription_after_payment(
        self,
        session: AsyncSession,
        package_id: int,
        driver_id: int,
    ) -> DriverSubscription:
        """
        Activate a purchased package for a driver.

        An active subscription with swaps left blocks the purchase. One with zero
        swaps is expired and replaced.

        Raises:
            NotFoundError: unknown driver or package
            ConflictError: active subscription with remaining swaps
        """
        driver = await self._require_driver(session, driver_id, lock=True)
        package = await self._require_package(session, package_id)
        today = self.clock.today()

        existing = await subscription_dal.get_active_subscription_by_driver_id(
            session, driver_id, today, for_update=True
        )
        if existing:
            if existing.remaining_swaps > 0:
                existing_package = await package_dal.get_package_by_id(session, existing.service_package_id)
                raise ConflictError(
                    "Driver already has an ACTIVE subscription with remaining swaps! "
                    f"Current package: {existing_package.name if existing_package else existing.service_package_id} "
                    f"(remaining {existing.remaining_swaps} swaps, expires: {existing.end_date}). "
                    "Use the remaining swaps before buying a new package."
                )
            logging.info(
                f"Driver {driver.email} has an active subscription with 0 swaps remaining. "
                f"Expiring subscription {existing.id} before purchase"
            )
            self.activation_helper.expire(existing, reason="replaced by new purchase")
            await session.flush()

        payload = self.activation_helper.build_subscription_payload(driver_id, package, today)
        subscription = await self._insert_active(session, driver_id, payload)

        logging.info(
            f"Subscription created after payment: driver {driver.email} -> package {package.name} "
            f"({package.max_swaps} swaps, {package.price} VND)"
        )
        return subscription

    # ==================== Swap deduction ====================

    async def deduct_swap(
        self, session: AsyncSession, driver_id: int
    ) -> Optional[DriverSubscription]:
        """
        Consume one swap from the driver's active subscription.

        Reaching zero expires the subscription in the same write. Returns None
        when there is no active subscription; returns the unchanged subscription
        when it was already exhausted.
        """
        await self._require_driver(session, driver_id, lock=True)
        subscription = await subscription_dal.get_active_subscription_by_driver_id(
            session, driver_id, self.clock.today(), for_update=True
        )
        if not subscription:
            logging.warning(f"No ACTIVE subscription for driver {driver_id}, swap not deducted")
            return None

        remaining_before = subscription.remaining_swaps
        if remaining_before <= 0:
            logging.warning(
                f"Subscription {subscription.id} of driver {driver_id} has no swaps left, nothing deducted"
            )
            return subscription

        subscription.remaining_swaps = remaining_before - 1
        if subscription.remaining_swaps == 0:
            subscription.status = SubscriptionStatus.EXPIRED
            logging.info(f"Subscription {subscription.id} ran out of swaps and expired (driver {driver_id})")
        await session.flush()

        logging.info(
            f"Swap deducted for driver {driver_id}: remaining swaps {remaining_before} -> {subscription.remaining_swaps}"
        )
        return subscription

    # ==================== Upgrade ====================

    async def calculate_upgrade_cost(
        self, session: AsyncSession, driver_id: int, new_package_id: int
    ) -> UpgradeCalculation:
        """
        Raises:
            NotFoundError: no active subscription or unknown package
            InvalidPackageChangeError: target is not an upgrade
        """
        subscription = await self._require_active_subscription(session, driver_id)
        current_package = await self._require_package(session, subscription.service_package_id)
        new_package = await self._require_package(session, new_package_id)
        return proration_service.evaluate_upgrade(
            subscription, current_package, new_package, self.clock.today()
        )

    async def upgrade_subscription_after_payment(
        self,
        session: AsyncSession,
        new_package_id: int,
        driver_id: int,
    ) -> DriverSubscription:
        """
        Replace the active subscription with a full new one.

        Remaining swaps of the old subscription are forfeited; compensation only
        exists in the upgrade price (refund_value). The billing figures are logged,
        not enforced here.
        """
        driver = await self._require_driver(session, driver_id, lock=True)
        new_package = await self._require_package(session, new_package_id)
        old_subscription = await self._require_active_subscription(session, driver_id, for_update=True)
        old_package = await self._require_package(session, old_subscription.service_package_id)
        today = self.clock.today()

        if proration_service.is_genuine_upgrade(old_package, new_package):
            pricing = proration_service.evaluate_upgrade(old_subscription, old_package, new_package, today)
            logging.info(
                f"Upgrade pricing for driver {driver_id}: refund {pricing.refund_value}, "
                f"fee {pricing.upgrade_fee}, total {pricing.total_payment_required} VND"
            )
        else:
            logging.warning(
                f"Package {new_package.id} is not an upgrade of {old_package.id} for driver {driver_id}; "
                "switching anyway after payment"
            )

        logging.info(
            f"UPGRADE PACKAGE - driver: {driver.email} | old: {old_package.name} "
            f"({old_package.max_swaps} swaps, {old_subscription.remaining_swaps} remaining) | "
            f"new: {new_package.name} ({new_package.max_swaps} swaps, {new_package.price} VND)"
        )

        self.activation_helper.expire(old_subscription, end_date=today, reason="upgraded")
        await session.flush()

        payload = self.activation_helper.build_subscription_payload(driver_id, new_package, today)
        new_subscription = await self._insert_active(session, driver_id, payload)

        logging.info(
            f"UPGRADE SUCCESS - new subscription {new_subscription.id}: "
            f"{new_subscription.remaining_swaps} swaps, expires {new_subscription.end_date}"
        )
        return new_subscription

    # ==================== Downgrade ====================

    async def calculate_downgrade_cost(
        self, session: AsyncSession, driver_id: int, new_package_id: int
    ) -> DowngradeCalculation:
        subscription = await self._require_active_subscription(session, driver_id)
        current_package = await self._require_package(session, subscription.service_package_id)
        new_package = await self._require_package(session, new_package_id)
        return proration_service.evaluate_downgrade(
            subscription, current_package, new_package, self.clock.today()
        )

    async def downgrade_subscription(
        self,
        session: AsyncSession,
        driver_id: int,
        new_package_id: int,
    ) -> DriverSubscription:
        """
        Switch to a cheaper/smaller package. No payment and no refund.

        The new subscription keeps the prorated swaps (after the 10% penalty) and
        a term extended in proportion to them.

        Raises:
            NotFoundError: unknown driver/package or no active subscription
            InvalidStateError: the downgrade evaluation refused the switch
        """
        driver = await self._require_driver(session, driver_id, lock=True)
        new_package = await self._require_package(session, new_package_id)
        old_subscription = await self._require_active_subscription(session, driver_id, for_update=True)
        old_package = await self._require_package(session, old_subscription.service_package_id)
        today = self.clock.today()

        calculation = proration_service.evaluate_downgrade(old_subscription, old_package, new_package, today)
        if not calculation.can_downgrade:
            raise InvalidStateError(f"Cannot downgrade package: {calculation.reason}")

        logging.info(
            f"DOWNGRADE PACKAGE - driver: {driver.email} | old: {old_package.name} "
            f"({old_package.max_swaps} swaps, {old_subscription.remaining_swaps} remaining) | "
            f"new: {new_package.name} (penalty: {calculation.penalty_swaps} swaps, "
            f"final: {calculation.final_remaining_swaps} swaps, {calculation.extension_days} days)"
        )

        self.activation_helper.expire(old_subscription, end_date=today, reason="downgraded")
        await session.flush()

        payload = self.activation_helper.build_subscription_payload(
            driver_id,
            new_package,
            today,
            remaining_swaps=calculation.final_remaining_swaps,
            start_date=calculation.new_start_date,
            end_date=calculation.new_end_date,
        )
        new_subscription = await self._insert_active(session, driver_id, payload)

        logging.info(
            f"DOWNGRADE SUCCESS - new subscription {new_subscription.id}: "
            f"{new_subscription.remaining_swaps} swaps, expires {new_subscription.end_date} "
            f"(extended {calculation.extension_days} days)"
        )
        return new_subscription

    # ==================== Administration ====================

    async def cancel_subscription(
        self, session: AsyncSession, subscription_id: int, is_admin: bool
    ) -> DriverSubscription:
        if not is_admin:
            raise AccessDeniedError("Access denied. Admin role required.")

        subscription = await subscription_dal.get_subscription_by_id(session, subscription_id)
        if not subscription:
            raise NotFoundError(f"Driver subscription not found with id: {subscription_id}")

        await self._require_driver(session, subscription.driver_id, lock=True)
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidStateError(
                f"Subscription {subscription_id} is already {subscription.status.value}"
            )

        subscription.status = SubscriptionStatus.CANCELLED
        await session.flush()
        logging.info(f"Subscription {subscription_id} cancelled by administrator")
        return subscription
