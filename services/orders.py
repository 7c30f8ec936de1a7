import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from core.db import unit_of_work
from core.errors import OrderNotFound, ProductNotFound, ValidationError, VariantNotFound
from models.order import Order, OrderStatus, PaymentStatus
from models.order_item import OrderItem
from models.order_note import OrderNote
from models.product import Product
from models.product_variant import ProductVariant
from schemas.order import OrderCreate, OrderUpdate
from services import notifications
from services.inventory import InventoryLedger, reserve_items
from services.order_filters import OrderFilter, filter_orders
from services.order_state import OrderStateMachine, TransitionContext, TransitionResult
from services.refunds import RefundEligibilityPolicy
from services.variants import effective_price

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _to_decimal(value: float | int | Decimal | None) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def compute_total(subtotal, tax, shipping, discount) -> Decimal:
    total = _to_decimal(subtotal) + _to_decimal(tax) + _to_decimal(shipping) - _to_decimal(discount)
    return total.quantize(CENT)


def generate_order_number(now: datetime) -> str:
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def load_order(db: Session, order_id: int, for_update: bool = False) -> Order:
    query = db.query(Order).filter(Order.id == order_id)
    if for_update:
        # Row lock for the rest of the transaction; the version column covers databases without FOR UPDATE
        query = query.with_for_update().populate_existing()
    order = query.one_or_none()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def create_order(db: Session, data: OrderCreate, actor: Optional[str] = None, now: Optional[datetime] = None) -> Order:
    """Place an order: snapshot prices, check subtotal + tax + shipping - discount and reserve stock."""
    now = now or datetime.utcnow()
    if not data.items:
        raise ValidationError("Order must contain items")

    product_ids = {item.product_id for item in data.items}
    products_map = {p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()}
    for product_id in product_ids:
        if product_id not in products_map:
            raise ProductNotFound(product_id)

    variant_ids = {item.variant_id for item in data.items if item.variant_id is not None}
    variants_map = {}
    if variant_ids:
        variants_map = {v.id: v for v in db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()}

    with unit_of_work(db):
        order = Order(
            order_number=generate_order_number(now),
            customer_name=data.customer_name,
            email=data.email,
            currency=data.currency,
            status=OrderStatus.PENDING,
            priority=data.priority,
            source=data.source,
            coupon_code=data.coupon_code,
            created_at=now,
            updated_at=now,
        )

        subtotal = Decimal("0.00")
        for item in data.items:
            product = products_map[item.product_id]
            if not product.is_active:
                raise ValidationError(f"Product {product.id} is not available")
            variant = None
            if item.variant_id is not None:
                variant = variants_map.get(item.variant_id)
                if variant is None:
                    raise VariantNotFound(item.variant_id)
                if variant.product_id != product.id or not variant.is_active:
                    raise ValidationError(f"Variant {variant.id} is not available for product {product.id}")
            unit_price = _to_decimal(effective_price(product, variant))
            line_total = (unit_price * item.quantity).quantize(CENT)
            subtotal += line_total
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    total=line_total,
                )
            )

        order.subtotal = subtotal.quantize(CENT)
        order.tax = _to_decimal(data.tax).quantize(CENT)
        order.shipping = _to_decimal(data.shipping).quantize(CENT)
        order.discount = _to_decimal(data.discount).quantize(CENT)
        order.total = compute_total(order.subtotal, order.tax, order.shipping, order.discount)
        if order.total < 0:
            raise ValidationError("Discount exceeds the order amount")
        if data.total is not None and _to_decimal(data.total).quantize(CENT) != order.total:
            raise ValidationError(
                f"Order total {data.total} does not equal subtotal + tax + shipping - discount ({order.total})"
            )

        db.add(order)
        db.flush()
        reserve_items(InventoryLedger(db), order.items, order.order_number, actor=actor, now=now)

    logger.info("Order %s created with %s item(s), total %s", order.order_number, len(order.items), order.total)
    return order


def update_order(
    db: Session,
    order_id: int,
    data: OrderUpdate,
    now: Optional[datetime] = None,
    policy: Optional[RefundEligibilityPolicy] = None,
) -> Order:
    """Edit fields that do not take part in the status workflow."""
    now = now or datetime.utcnow()
    policy = policy or RefundEligibilityPolicy.from_settings()
    with unit_of_work(db):
        order = load_order(db, order_id, for_update=True)
        # Legacy delivered rows count the refund window from updated_at; pin it before this edit moves it
        if order.delivered_at is None and order.status in (OrderStatus.DELIVERED, OrderStatus.REFUNDED):
            order.delivered_at = policy.delivery_reference(order)
        if data.priority is not None:
            order.priority = data.priority
        if data.payment_status is not None:
            if data.payment_status == PaymentStatus.REFUNDED and order.status != OrderStatus.REFUNDED:
                raise ValidationError("Payment status REFUNDED is set by refunding the order")
            if order.status == OrderStatus.REFUNDED and data.payment_status != PaymentStatus.REFUNDED:
                raise ValidationError("Payment status of a refunded order cannot change")
            order.payment_status = data.payment_status
        if data.tracking_number is not None:
            order.tracking_number = data.tracking_number
        if data.carrier is not None:
            order.carrier = data.carrier
        if data.customer_rating is not None:
            order.customer_rating = data.customer_rating
        order.updated_at = now
    return order


def transition_order(
    db: Session,
    order_id: int,
    target,
    context: Optional[TransitionContext] = None,
    now: Optional[datetime] = None,
    machine: Optional[OrderStateMachine] = None,
) -> TransitionResult:
    """Apply one status transition as a single unit of work, then notify."""
    now = now or datetime.utcnow()
    with unit_of_work(db):
        order = load_order(db, order_id, for_update=True)
        result = (machine or OrderStateMachine(db)).transition(order, target, now, context)

    if result.notify_event:
        notifications.notify(order.id, result.notify_event)
    return result


def refund_order(
    db: Session,
    order_id: int,
    context: Optional[TransitionContext] = None,
    now: Optional[datetime] = None,
    machine: Optional[OrderStateMachine] = None,
) -> TransitionResult:
    return transition_order(db, order_id, OrderStatus.REFUNDED, context=context, now=now, machine=machine)


def add_note(
    db: Session,
    order_id: int,
    content: str,
    author: Optional[str] = None,
    is_internal: bool = False,
    now: Optional[datetime] = None,
) -> OrderNote:
    if not content or not content.strip():
        raise ValidationError("Note content is required")
    with unit_of_work(db):
        order = load_order(db, order_id)
        note = OrderNote(
            content=content.strip(),
            author=author,
            is_internal=is_internal,
            created_at=now or datetime.utcnow(),
        )
        order.notes.append(note)
    return note


def list_orders(
    db: Session,
    filters: OrderFilter,
    now: datetime,
    status: Optional[OrderStatus] = None,
    policy: Optional[RefundEligibilityPolicy] = None,
) -> List[Order]:
    query = db.query(Order)
    if status is not None:
        query = query.filter(Order.status == status)
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return filter_orders(orders, filters, now, policy)
