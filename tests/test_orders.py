from datetime import timedelta
from decimal import Decimal

import pytest

from core.errors import NegativeStockError, ProductNotFound, ValidationError, VariantNotFound
from models.inventory_log import InventoryLog, InventoryReason
from models.order import Order, OrderPriority, OrderStatus, PaymentStatus
from schemas.order import OrderCreate, OrderItemIn, OrderUpdate
from services import orders as order_service
from services.order_filters import OrderFilter
from services.refunds import DeliveryFallback, RefundEligibilityPolicy


def _create(db, now, items, **fields):
    return order_service.create_order(
        db, OrderCreate(email="buyer@example.com", items=items, **fields), actor="shop", now=now
    )


class TestCreateOrder:
    """Test cases for order creation"""

    def test_totals_and_price_snapshot(self, db, make_product, now):
        product = make_product(price="19.99", stock=10)
        order = _create(db, now, [OrderItemIn(product_id=product.id, quantity=2)], tax=3.2, shipping=5, discount=1)

        assert order.status == OrderStatus.PENDING
        assert order.order_number.startswith("ORD-20260302-")
        assert order.subtotal == Decimal("39.98")
        assert order.total == Decimal("47.18")
        assert order.items[0].unit_price == Decimal("19.99")

        product.price = Decimal("99.00")
        db.commit()
        assert order_service.load_order(db, order.id).items[0].unit_price == Decimal("19.99")

    def test_variant_price_overrides_product_price(self, db, make_product, make_variant, now):
        product = make_product(price="20.00", stock=10)
        priced = make_variant(product, price="24.50", stock=5)
        inherits = make_variant(product, stock=5)
        order = _create(
            db, now,
            [OrderItemIn(product_id=product.id, variant_id=priced.id, quantity=1),
             OrderItemIn(product_id=product.id, variant_id=inherits.id, quantity=1)],
        )
        assert [i.unit_price for i in order.items] == [Decimal("24.50"), Decimal("20.00")]
        assert priced.stock == 4
        assert inherits.stock == 4
        assert product.stock == 10

    def test_stock_reserved_with_sale_entries(self, db, make_product, now):
        product = make_product(stock=5)
        order = _create(db, now, [OrderItemIn(product_id=product.id, quantity=3)])

        entry = db.query(InventoryLog).filter(InventoryLog.reason == InventoryReason.SALE).one()
        assert entry.change_amount == -3
        assert entry.reference_id == order.order_number
        assert entry.changed_by == "shop"
        assert product.stock == 2

    def test_insufficient_stock_creates_nothing(self, db, make_product, now):
        product = make_product(stock=1)
        with pytest.raises(NegativeStockError):
            _create(db, now, [OrderItemIn(product_id=product.id, quantity=2)])
        assert db.query(Order).count() == 0
        assert product.stock == 1

    def test_mismatched_total_rejected(self, db, make_product, now):
        product = make_product(price="10.00")
        with pytest.raises(ValidationError):
            _create(db, now, [OrderItemIn(product_id=product.id, quantity=1)], shipping=2, total=15)
        assert db.query(Order).count() == 0

    def test_matching_total_accepted(self, db, make_product, now):
        product = make_product(price="10.00")
        order = _create(db, now, [OrderItemIn(product_id=product.id, quantity=1)], shipping=2, total=12)
        assert order.total == Decimal("12.00")

    def test_discount_larger_than_order_rejected(self, db, make_product, now):
        product = make_product(price="10.00")
        with pytest.raises(ValidationError):
            _create(db, now, [OrderItemIn(product_id=product.id, quantity=1)], discount=50)

    def test_unknown_product(self, db, now):
        with pytest.raises(ProductNotFound):
            _create(db, now, [OrderItemIn(product_id=404, quantity=1)])

    def test_unknown_variant(self, db, make_product, now):
        product = make_product()
        with pytest.raises(VariantNotFound):
            _create(db, now, [OrderItemIn(product_id=product.id, variant_id=404, quantity=1)])

    def test_inactive_product_rejected(self, db, make_product, now):
        product = make_product(is_active=False)
        with pytest.raises(ValidationError):
            _create(db, now, [OrderItemIn(product_id=product.id, quantity=1)])

    def test_empty_order_rejected(self, db, now):
        with pytest.raises(ValidationError):
            _create(db, now, [])


class TestOrderUpdatesAndNotes:
    """Test cases for non-workflow order edits"""

    def test_update_fields(self, db, make_order, now):
        order = make_order()
        updated = order_service.update_order(
            db, order.id,
            OrderUpdate(priority=OrderPriority.HIGH, payment_status=PaymentStatus.PAID, customer_rating=4),
            now=now,
        )
        assert updated.priority == OrderPriority.HIGH
        assert updated.payment_status == PaymentStatus.PAID
        assert updated.customer_rating == 4
        assert updated.status == OrderStatus.PENDING

    def test_refunded_payment_status_only_through_refund(self, db, make_order, now):
        order = make_order(status=OrderStatus.DELIVERED, payment_status=PaymentStatus.PAID, delivered_at=now)
        with pytest.raises(ValidationError):
            order_service.update_order(db, order.id, OrderUpdate(payment_status=PaymentStatus.REFUNDED), now=now)
        assert db.get(Order, order.id).payment_status == PaymentStatus.PAID

    def test_refunded_order_payment_status_is_frozen(self, db, make_order, now):
        order = make_order(
            status=OrderStatus.DELIVERED, payment_status=PaymentStatus.PAID, delivered_at=now - timedelta(days=2)
        )
        order_service.refund_order(db, order.id, now=now)

        with pytest.raises(ValidationError):
            order_service.update_order(db, order.id, OrderUpdate(payment_status=PaymentStatus.PAID), now=now)

        refunded = db.get(Order, order.id)
        assert refunded.status == OrderStatus.REFUNDED
        assert refunded.payment_status == PaymentStatus.REFUNDED

    def test_edit_does_not_reopen_legacy_refund_window(self, db, make_order, now):
        last_touched = now - timedelta(days=40)
        order = make_order(
            status=OrderStatus.DELIVERED, payment_status=PaymentStatus.PAID, created_at=last_touched - timedelta(days=3),
            updated_at=last_touched,
        )
        policy = RefundEligibilityPolicy(delivery_fallback=DeliveryFallback.UPDATED_AT)
        assert policy.is_eligible(order, now) is False

        updated = order_service.update_order(db, order.id, OrderUpdate(customer_rating=5), now=now, policy=policy)

        assert updated.delivered_at == last_touched
        assert updated.updated_at == now
        assert policy.is_eligible(updated, now) is False

    def test_edit_leaves_delivery_date_unset_without_fallback(self, db, make_order, now):
        order = make_order(status=OrderStatus.DELIVERED, payment_status=PaymentStatus.PAID)
        policy = RefundEligibilityPolicy(delivery_fallback=DeliveryFallback.NONE)
        updated = order_service.update_order(db, order.id, OrderUpdate(priority=OrderPriority.LOW), now=now, policy=policy)
        assert updated.delivered_at is None

    def test_notes_are_appended(self, db, make_order, now):
        order = make_order()
        order_service.add_note(db, order.id, "Customer called", author="ops", now=now)
        order_service.add_note(db, order.id, "Gift wrap", is_internal=True, now=now)

        notes = order_service.load_order(db, order.id).notes
        assert [n.content for n in notes] == ["Customer called", "Gift wrap"]
        assert notes[1].is_internal is True

    def test_blank_note_rejected(self, db, make_order, now):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.add_note(db, order.id, "   ", now=now)

    def test_list_orders_by_status_and_filter(self, db, make_order, now):
        make_order(status=OrderStatus.SHIPPED, carrier="UPS")
        make_order(status=OrderStatus.SHIPPED, carrier="DHL")
        make_order(status=OrderStatus.PENDING)

        shipped = order_service.list_orders(db, OrderFilter(), now, status=OrderStatus.SHIPPED)
        assert len(shipped) == 2
        ups = order_service.list_orders(db, OrderFilter(carrier="UPS"), now, status=OrderStatus.SHIPPED)
        assert [o.carrier for o in ups] == ["UPS"]
