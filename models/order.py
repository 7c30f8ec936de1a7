import enum
from datetime import datetime
from sqlalchemy import String, DateTime, Integer, Numeric, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class OrderPriority(str, enum.Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class OrderSource(str, enum.Enum):
    WEBSITE = "WEBSITE"
    MOBILE = "MOBILE"
    ADMIN = "ADMIN"
    API = "API"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str] = mapped_column(String(255), index=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[OrderStatus] = mapped_column(Enum(OrderStatus), default=OrderStatus.PENDING, index=True)
    payment_status: Mapped[PaymentStatus] = mapped_column(Enum(PaymentStatus), default=PaymentStatus.PENDING)
    priority: Mapped[OrderPriority] = mapped_column(Enum(OrderPriority), default=OrderPriority.NORMAL)
    source: Mapped[OrderSource] = mapped_column(Enum(OrderSource), default=OrderSource.WEBSITE)
    coupon_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # total = subtotal + tax + shipping - discount, see services.orders.compute_total
    subtotal: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    tax: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    shipping: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    discount: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    total: Mapped[float] = mapped_column(Numeric(12, 2), default=0)

    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    carrier: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Optimistic lock: a second writer from the same prior version fails on flush
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items = relationship("OrderItem", cascade="all, delete-orphan", back_populates="order")
    notes = relationship(
        "OrderNote", cascade="all, delete-orphan", back_populates="order", order_by="OrderNote.id"
    )
    status_history = relationship(
        "OrderStatusHistory", cascade="all, delete-orphan", back_populates="order", order_by="OrderStatusHistory.id"
    )

    __mapper_args__ = {"version_id_col": version}
