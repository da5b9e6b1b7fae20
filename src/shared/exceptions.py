"""Error taxonomy shared by every ShopStream bounded context.

Every domain error is a protean exception carrying a ``messages`` dict of the
form ``{"field": ["message", ...]}`` so that callers (and the HTTP layer) can
point at the offending input or identifier without parsing strings. ``code``
is a stable machine-readable kind.

Errors with a protean counterpart subclass it as well, so code written
against ``protean.exceptions`` catches them unchanged.
"""

from protean import exceptions as protean_exceptions
from protean.exceptions import ProteanExceptionWithMessage


class ShopStreamError(ProteanExceptionWithMessage):
    code = "error"

    def __init__(self, messages=None, **kwargs):
        if messages is None:
            messages = {}
        elif isinstance(messages, str):
            messages = {"_entity": [messages]}
        super().__init__(messages, **kwargs)


class ValidationError(ShopStreamError, protean_exceptions.ValidationError):
    """Malformed request; raised before persistence is touched."""

    code = "validation_error"


class ObjectNotFoundError(ShopStreamError, protean_exceptions.ObjectNotFoundError):
    """A referenced cart, cart item, product or order does not exist."""

    code = "not_found"


class ProductUnavailableError(ShopStreamError):
    code = "product_unavailable"

    def __init__(self, product_id, name=None):
        self.product_id = product_id
        label = f"'{name}'" if name else str(product_id)
        super().__init__({"product_id": [f"Product {label} is not available"]})


class CartEmptyError(ShopStreamError):
    code = "cart_empty"

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__({"cart": ["Cannot create order with empty cart"]})


class InsufficientStockError(ShopStreamError):
    code = "insufficient_stock"

    def __init__(self, product_id, available, requested):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            {
                "product_id": [
                    f"Insufficient stock for product {product_id}. Available: {available}, Requested: {requested}"
                ]
            }
        )


class UnauthorizedError(ShopStreamError):
    """Caller is neither the owner of the resource nor privileged."""

    code = "unauthorized"


class InvalidStateTransitionError(ShopStreamError, protean_exceptions.InvalidStateError):
    code = "invalid_state_transition"

    def __init__(self, from_status, attempted):
        self.from_status = from_status
        self.attempted = attempted
        super().__init__({"status": [f"Cannot transition from {from_status} to {attempted}"]})


class ExpectedVersionError(ShopStreamError, protean_exceptions.ExpectedVersionError):
    """The aggregate changed between being read and being written."""

    code = "concurrent_modification"


class CheckoutTimeoutError(ShopStreamError):
    code = "checkout_timeout"


class PersistenceError(ShopStreamError):
    """Store failure. Nothing from the attempted operation survived; retry is safe."""

    code = "persistence_error"


class TransientInfraError(ShopStreamError):
    """Best-effort infrastructure (notification dispatch) failed."""

    code = "transient_infra_error"


class ConfigurationError(ShopStreamError, protean_exceptions.ConfigurationError):
    code = "configuration_error"
