"""
Subscription Services Module

Lifecycle of driver subscriptions split into the core service (state changes)
and helpers (payload building, term transitions).
"""

from evswap.services.subscription.helpers import SubscriptionActivationHelper
from evswap.services.subscription.core import SubscriptionCoreService

__all__ = [
    "SubscriptionActivationHelper",
    "SubscriptionCoreService",
]
