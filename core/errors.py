"""
Error taxonomy for the order core.

Every error carries a ``kind`` so callers (the HTTP layer, bulk reports) can
branch on it without string matching. ``status_code`` is only a hint for the
API layer.
"""
import enum


class ErrorKind(str, enum.Enum):
    INVALID_TRANSITION = "invalid_transition"
    MISSING_TRACKING = "missing_tracking"
    REFUND_INELIGIBLE = "refund_ineligible"
    NEGATIVE_STOCK = "negative_stock"
    PARTIAL_BATCH_FAILURE = "partial_batch_failure"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"


class OrderflowError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderflowError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class InvalidTransition(OrderflowError):
    kind = ErrorKind.INVALID_TRANSITION
    status_code = 409

    def __init__(self, from_status, to_status, message: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message or f"Cannot transition order from {_label(from_status)} to {_label(to_status)}")


class MissingTrackingInfo(InvalidTransition):
    kind = ErrorKind.MISSING_TRACKING
    status_code = 422

    def __init__(self, from_status, to_status):
        super().__init__(from_status, to_status, "Tracking number and carrier are required to ship an order")


class RefundIneligible(OrderflowError):
    kind = ErrorKind.REFUND_INELIGIBLE
    status_code = 409


class NegativeStockError(OrderflowError):
    kind = ErrorKind.NEGATIVE_STOCK
    status_code = 409

    def __init__(self, current_stock: int, change_amount: int):
        self.current_stock = current_stock
        self.change_amount = change_amount
        super().__init__(
            f"Insufficient stock: {current_stock} on hand, change of {change_amount} would leave "
            f"{current_stock + change_amount}"
        )


class NotFoundError(OrderflowError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class OrderNotFound(NotFoundError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class ProductNotFound(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product {product_id} not found")


class VariantNotFound(NotFoundError):
    def __init__(self, variant_id):
        super().__init__(f"Variant {variant_id} not found")


class ConcurrentModification(OrderflowError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class VariantInUse(OrderflowError):
    kind = ErrorKind.CONFLICT
    status_code = 409

    def __init__(self, variant_id, order_item_count: int):
        self.order_item_count = order_item_count
        super().__init__(
            f"Variant {variant_id} is referenced by {order_item_count} order item(s); deactivate it instead"
        )


def _label(status) -> str:
    return getattr(status, "value", str(status))
