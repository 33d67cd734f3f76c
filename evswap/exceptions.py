"""Error taxonomy shared by the subscription, payment and reservation services."""


class EVSwapError(Exception):
    """Base class for business errors surfaced to API callers."""
    pass


class NotFoundError(EVSwapError):
    """Unknown driver, package, subscription or booking id."""
    pass


class ConflictError(EVSwapError):
    """Business rule violation, e.g. an active subscription blocks a new purchase."""
    pass


class InvalidPackageChangeError(ConflictError):
    """Target package is not a genuine upgrade (or downgrade) of the current one."""
    pass


class InvalidStateError(EVSwapError):
    """Operation preconditions are not met by the current entity state."""
    pass


class AccessDeniedError(EVSwapError):
    """Caller's role does not allow the operation."""
    pass


class SecurityViolationError(EVSwapError):
    """Signature mismatch on an inbound payment callback."""
    pass


class PaymentGatewayError(EVSwapError):
    """Payment provider unreachable, returned a malformed body or a non-success code."""
    pass


class PaymentCallbackError(EVSwapError):
    """Payment callback carries unusable data (e.g. malformed extraData)."""
    pass
