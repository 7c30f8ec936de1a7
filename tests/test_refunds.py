from datetime import datetime, timedelta

import pytest

from models.order import Order, OrderStatus, PaymentStatus
from services.refunds import DeliveryFallback, RefundEligibilityPolicy

NOW = datetime(2026, 3, 2, 12, 0, 0)


def _order(status=OrderStatus.DELIVERED, payment=PaymentStatus.PAID, delivered_at=None, updated_at=None):
    return Order(
        order_number="ORD-1",
        email="buyer@example.com",
        status=status,
        payment_status=payment,
        delivered_at=delivered_at,
        updated_at=updated_at or NOW,
    )


class TestRefundEligibilityPolicy:
    """Test cases for the refund window"""

    def test_eligible_at_29_days(self):
        order = _order(delivered_at=NOW - timedelta(days=29))
        assert RefundEligibilityPolicy().is_eligible(order, NOW) is True

    def test_ineligible_at_31_days(self):
        order = _order(delivered_at=NOW - timedelta(days=31))
        policy = RefundEligibilityPolicy()
        assert policy.is_eligible(order, NOW) is False
        assert "expired" in policy.ineligibility_reason(order, NOW)

    def test_exactly_30_days_is_still_eligible(self):
        order = _order(delivered_at=NOW - timedelta(days=30))
        assert RefundEligibilityPolicy().is_eligible(order, NOW) is True

    @pytest.mark.parametrize("delivered_days_ago", [0, 5, 29, 45])
    def test_shipped_is_never_eligible(self, delivered_days_ago):
        order = _order(status=OrderStatus.SHIPPED, delivered_at=NOW - timedelta(days=delivered_days_ago))
        assert RefundEligibilityPolicy().is_eligible(order, NOW) is False

    @pytest.mark.parametrize("payment", [PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.REFUNDED])
    def test_requires_paid(self, payment):
        order = _order(payment=payment, delivered_at=NOW - timedelta(days=1))
        assert RefundEligibilityPolicy().is_eligible(order, NOW) is False

    def test_updated_at_fallback_for_legacy_rows(self):
        order = _order(delivered_at=None, updated_at=NOW - timedelta(days=3))
        policy = RefundEligibilityPolicy(delivery_fallback=DeliveryFallback.UPDATED_AT)
        assert policy.delivery_reference(order) == NOW - timedelta(days=3)
        assert policy.is_eligible(order, NOW) is True

    def test_no_fallback_refuses_missing_delivery_date(self):
        order = _order(delivered_at=None, updated_at=NOW - timedelta(days=3))
        policy = RefundEligibilityPolicy(delivery_fallback=DeliveryFallback.NONE)
        assert policy.is_eligible(order, NOW) is False
        assert policy.ineligibility_reason(order, NOW) == "Order has no delivery date"

    def test_custom_window(self):
        order = _order(delivered_at=NOW - timedelta(days=8))
        assert RefundEligibilityPolicy(window_days=7).is_eligible(order, NOW) is False
        assert RefundEligibilityPolicy(window_days=14).is_eligible(order, NOW) is True

    def test_days_since_delivery_and_remaining(self):
        order = _order(delivered_at=NOW - timedelta(days=10, hours=6))
        policy = RefundEligibilityPolicy()
        assert policy.days_since_delivery(order, NOW) == 10
        assert policy.days_remaining(order, NOW) == 20

    def test_days_remaining_is_zero_after_window(self):
        order = _order(delivered_at=NOW - timedelta(days=40))
        assert RefundEligibilityPolicy().days_remaining(order, NOW) == 0

    def test_from_settings(self, monkeypatch):
        from core.config import settings

        monkeypatch.setattr(settings, "REFUND_WINDOW_DAYS", 14)
        monkeypatch.setattr(settings, "REFUND_DELIVERY_FALLBACK", "none")
        policy = RefundEligibilityPolicy.from_settings()
        assert policy.window_days == 14
        assert policy.delivery_fallback == DeliveryFallback.NONE
