"""
errors.py — Exception taxonomy for the order service

Every failure the order core can report derives from `OrderServiceError`.
Each exception carries a short machine-readable `code` that is returned to API
clients next to the human-readable message.
"""


class OrderServiceError(Exception):
    """Base exception for all order service errors."""

    code = "OrderServiceError"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(OrderServiceError):
    """Malformed or missing input, rejected before any I/O."""

    code = "ValidationError"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(OrderServiceError):
    code = "NotFound"


class ProductNotFoundError(NotFoundError):
    """Raised when a cart line references a missing or inactive product."""

    code = "ProductNotFound"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found or inactive")


class OrderNotFoundError(NotFoundError):
    """Raised when an order doesn't exist or is not visible to the caller."""

    code = "OrderNotFound"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__("Order not found")


class StockError(OrderServiceError):
    """Raised when a product cannot cover the requested quantity."""

    code = "InsufficientStock"

    def __init__(self, product_id: int, requested: int, available: int | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        msg = f"Insufficient stock for product {product_id}: requested {requested}"
        if available is not None:
            msg = f"{msg}, available {available}"
        super().__init__(msg)


class PricingMismatchError(OrderServiceError):
    """Raised when client-submitted figures disagree with the server's."""

    code = "PricingMismatch"

    def __init__(self, code: str, message: str, expected=None, received=None):
        self.expected = expected
        self.received = received
        super().__init__(message, code=code)


class AuthenticationError(OrderServiceError):
    """Missing (401) or invalid (403) bearer token."""

    code = "AuthenticationError"

    def __init__(self, message: str, status_code: int = 401):
        self.status_code = status_code
        super().__init__(message)


class ForbiddenError(OrderServiceError):
    code = "Forbidden"


class PaymentError(OrderServiceError):
    """Raised when the payment gateway rejects or cannot be reached."""

    code = "PaymentError"

    def __init__(self, message: str, order_id: int | None = None, gateway_response=None):
        self.order_id = order_id
        self.gateway_response = gateway_response
        super().__init__(message)


class PersistenceError(OrderServiceError):
    """Raised when a database statement or commit fails."""

    code = "PersistenceError"
