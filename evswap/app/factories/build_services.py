import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from config.settings import Settings
from evswap.services.momo_service import MoMoService
from evswap.services.notification_service import NoticeSender, NotificationService
from evswap.services.reservation_expiry_service import ReservationExpiryService
from evswap.services.subscription import SubscriptionCoreService
from evswap.utils.clock import Clock


def build_core_services(
    settings: Settings,
    async_session_factory: async_sessionmaker,
    clock: Optional[Clock] = None,
    notice_sender: Optional[NoticeSender] = None,
) -> Dict[str, Any]:
    """
    Build and wire all core services with explicit dependency injection.

    Args:
        settings: Application settings
        async_session_factory: SQLAlchemy async session factory
        clock: Time source shared by all services (business timezone by default)
        notice_sender: Async callable delivering driver notifications

    Returns:
        Dictionary of initialized services
    """
    clock = clock or Clock(settings.TIMEZONE)
    subscription_service = SubscriptionCoreService(clock)
    notification_service = NotificationService(notice_sender)
    reservation_expiry_service = ReservationExpiryService(
        async_session_factory,
        subscription_service,
        notification_service,
        clock,
    )
    momo_service = MoMoService(settings, subscription_service)

    logging.info(f"Core services built (timezone {settings.TIMEZONE})")
    return {
        "clock": clock,
        "subscription_service": subscription_service,
        "notification_service": notification_service,
        "reservation_expiry_service": reservation_expiry_service,
        "momo_service": momo_service,
    }
