from . import user_dal
from . import package_dal
from . import subscription_dal
from . import payment_dal
from . import battery_dal
from . import booking_dal

__all__ = (
    "user_dal",
    "package_dal",
    "subscription_dal",
    "payment_dal",
    "battery_dal",
    "booking_dal",
)
