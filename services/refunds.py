"""
Refund eligibility.

An order may be refunded while it is DELIVERED, PAID, and still inside the
refund window counted from delivery. The policy is a pure function of the
order snapshot and an explicit ``now``; it never reads the clock itself.
"""
import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from core.config import settings
from models.order import Order, OrderStatus, PaymentStatus


class DeliveryFallback(str, enum.Enum):
    # Legacy rows delivered before delivered_at existed: treat updated_at as the delivery time
    UPDATED_AT = "updated_at"
    # Without a delivery timestamp the order is never eligible
    NONE = "none"


@dataclass(frozen=True)
class RefundEligibilityPolicy:
    window_days: int = 30
    delivery_fallback: DeliveryFallback = DeliveryFallback.UPDATED_AT

    @classmethod
    def from_settings(cls) -> "RefundEligibilityPolicy":
        return cls(
            window_days=settings.REFUND_WINDOW_DAYS,
            delivery_fallback=DeliveryFallback(settings.REFUND_DELIVERY_FALLBACK),
        )

    @property
    def window(self) -> timedelta:
        return timedelta(days=self.window_days)

    def delivery_reference(self, order: Order) -> Optional[datetime]:
        """Timestamp the window is counted from, or None if there is none under this policy."""
        if order.delivered_at is not None:
            return order.delivered_at
        if self.delivery_fallback == DeliveryFallback.UPDATED_AT:
            return order.updated_at
        return None

    def ineligibility_reason(self, order: Order, now: datetime) -> Optional[str]:
        """Return why the order cannot be refunded, or None when it can."""
        if order.status != OrderStatus.DELIVERED:
            return f"Order status is {_value(order.status)}, only DELIVERED orders can be refunded"
        if order.payment_status != PaymentStatus.PAID:
            return f"Payment status is {_value(order.payment_status)}, only PAID orders can be refunded"
        delivered = self.delivery_reference(order)
        if delivered is None:
            return "Order has no delivery date"
        if now - delivered > self.window:
            return f"Refund window of {self.window_days} days has expired"
        return None

    def is_eligible(self, order: Order, now: datetime) -> bool:
        return self.ineligibility_reason(order, now) is None

    def days_since_delivery(self, order: Order, now: datetime) -> Optional[int]:
        delivered = self.delivery_reference(order)
        if delivered is None:
            return None
        return max(0, math.floor((now - delivered) / timedelta(days=1)))

    def days_remaining(self, order: Order, now: datetime) -> int:
        """Whole days left in the window; 0 once it has closed or cannot be computed."""
        delivered = self.delivery_reference(order)
        if delivered is None:
            return 0
        left = (delivered + self.window) - now
        if left <= timedelta(0):
            return 0
        return math.ceil(left / timedelta(days=1))


def _value(status) -> str:
    return getattr(status, "value", str(status))
