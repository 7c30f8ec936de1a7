import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from models.inventory_log import InventoryLog, InventoryReason
from models.order import Order, OrderPriority, OrderSource, OrderStatus, PaymentStatus
from models.order_item import OrderItem
from models.product import Product
from models.product_variant import ProductVariant


class TestProduct:
    """Test cases for Product and ProductVariant models"""

    def test_product_defaults(self, db):
        product = Product(name="Mug", slug="mug", price=Decimal("9.50"))
        db.add(product)
        db.commit()
        db.refresh(product)

        assert product.id is not None
        assert product.stock == 0
        assert product.is_active is True
        assert isinstance(product.created_at, datetime)

    def test_slug_uniqueness(self, db):
        db.add(Product(name="Mug", slug="mug", price=Decimal("9.50")))
        db.commit()
        db.add(Product(name="Other Mug", slug="mug", price=Decimal("8.00")))
        with pytest.raises(IntegrityError):
            db.commit()

    def test_variant_stock_cannot_be_negative(self, db, make_product):
        product = make_product()
        db.add(ProductVariant(product_id=product.id, sku="NEG", name="Broken", stock=-1))
        with pytest.raises(IntegrityError):
            db.commit()

    def test_variant_sku_uniqueness(self, db, make_product):
        product = make_product()
        db.add(ProductVariant(product_id=product.id, sku="SAME", name="One"))
        db.commit()
        db.add(ProductVariant(product_id=product.id, sku="SAME", name="Two"))
        with pytest.raises(IntegrityError):
            db.commit()


class TestOrder:
    """Test cases for Order model"""

    def test_order_defaults(self, db):
        order = Order(order_number="ORD-1", email="buyer@example.com")
        db.add(order)
        db.commit()
        db.refresh(order)

        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.priority == OrderPriority.NORMAL
        assert order.source == OrderSource.WEBSITE
        assert order.currency == "USD"
        assert order.version == 1
        assert order.shipped_at is None
        assert order.delivered_at is None

    def test_order_number_uniqueness(self, db):
        db.add(Order(order_number="ORD-1", email="a@example.com"))
        db.commit()
        db.add(Order(order_number="ORD-1", email="b@example.com"))
        with pytest.raises(IntegrityError):
            db.commit()

    def test_items_cascade_with_order(self, db, make_product, make_order):
        product = make_product()
        order = make_order(items=[(product, 2)])
        assert db.query(OrderItem).count() == 1

        db.delete(order)
        db.commit()
        assert db.query(OrderItem).count() == 0

    def test_ordered_variant_cannot_be_removed_at_database_level(self, db, make_product, make_variant, make_order):
        product = make_product()
        variant = make_variant(product)
        order = make_order()
        order.items.append(
            OrderItem(product_id=product.id, variant_id=variant.id, quantity=1, unit_price=1, total=1)
        )
        db.commit()

        with pytest.raises(IntegrityError):
            db.query(ProductVariant).filter(ProductVariant.id == variant.id).delete()
            db.commit()


class TestInventoryLog:
    """Test cases for InventoryLog model"""

    def test_log_fields(self, db, make_product):
        product = make_product(stock=0)
        entry = InventoryLog(
            product_id=product.id,
            reason=InventoryReason.RECEIVING,
            change_amount=5,
            new_stock=5,
            reference_id="PO-17",
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)

        assert entry.variant_id is None
        assert entry.reason == InventoryReason.RECEIVING
        assert isinstance(entry.created_at, datetime)
