from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from core.db import Base, build_engine, get_db
from core.deps import get_now
from models.inventory_log import InventoryReason
from models.order import Order, OrderStatus, PaymentStatus
from models.order_item import OrderItem
from models.product import Product
from models.product_variant import ProductVariant
from services import notifications
from services.inventory import InventoryLedger

# Fixed request clock used by every test
NOW = datetime(2026, 3, 2, 12, 0, 0)


@pytest.fixture()
def engine():
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    """Fresh session on a fresh in-memory database for each test."""
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def client(db):
    """Test client sharing the test session and the fixed clock."""

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def sent_notifications(monkeypatch):
    """Capture notifications instead of queueing Celery tasks."""
    sent = []

    def _fake_notify(order_id, event):
        sent.append((order_id, event))
        return True

    monkeypatch.setattr(notifications, "notify", _fake_notify)
    return sent


@pytest.fixture()
def make_product(db):
    counter = {"n": 0}

    def _make(name=None, price="25.00", stock=10, is_active=True):
        counter["n"] += 1
        n = counter["n"]
        product = Product(
            name=name or f"Product {n}",
            slug=f"product-{n}",
            sku=f"SKU-{n}",
            price=Decimal(price),
            stock=0,
            is_active=is_active,
        )
        db.add(product)
        db.flush()
        if stock:
            InventoryLedger(db).record(product.id, None, InventoryReason.RECEIVING, stock, notes="Initial stock")
        db.commit()
        return product

    return _make


@pytest.fixture()
def make_variant(db):
    counter = {"n": 0}

    def _make(product, price=None, stock=5, is_active=True):
        counter["n"] += 1
        variant = ProductVariant(
            product_id=product.id,
            sku=f"VAR-{product.id}-{counter['n']}",
            name=f"Variant {counter['n']}",
            price=Decimal(price) if price is not None else None,
            stock=0,
            is_active=is_active,
        )
        db.add(variant)
        db.flush()
        if stock:
            InventoryLedger(db).record(product.id, variant.id, InventoryReason.RECEIVING, stock)
        db.commit()
        return variant

    return _make


@pytest.fixture()
def make_order(db):
    """Insert an order directly in any state, bypassing the workflow."""
    counter = {"n": 0}

    def _make(
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        created_at=None,
        delivered_at=None,
        items=(),
        **fields,
    ):
        counter["n"] += 1
        created_at = created_at or NOW - timedelta(hours=2)
        order = Order(
            order_number=f"ORD-TEST-{counter['n']:04d}",
            customer_name=fields.pop("customer_name", f"Customer {counter['n']}"),
            email=fields.pop("email", f"customer{counter['n']}@example.com"),
            status=status,
            payment_status=payment_status,
            created_at=created_at,
            updated_at=fields.pop("updated_at", created_at),
            delivered_at=delivered_at,
            **fields,
        )
        for product, quantity in items:
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=quantity,
                    unit_price=product.price,
                    total=product.price * quantity,
                )
            )
        db.add(order)
        db.commit()
        return order

    return _make
