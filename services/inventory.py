"""
Inventory ledger.

Stock for a product (or one of its variants) is kept as a running total on the
product/variant row and every change is appended to ``inventory_logs`` in the
same session. Both writes are flushed together, and the caller's unit of work
commits or discards them together, so replaying the ledger always reproduces
the maintained total.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from core.config import settings
from core.errors import NegativeStockError, ProductNotFound, ValidationError, VariantNotFound
from models.inventory_log import InventoryLog, InventoryReason
from models.product import Product
from models.product_variant import ProductVariant

logger = logging.getLogger(__name__)


@dataclass
class LedgerPage:
    entries: List[InventoryLog]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class LedgerCheck:
    product_id: int
    variant_id: Optional[int]
    maintained_stock: int
    replayed_stock: int
    broken_entry_ids: List[int] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.broken_entry_ids and self.maintained_stock == self.replayed_stock


class InventoryLedger:
    def __init__(self, db: Session, negative_reasons: Optional[Iterable[str]] = None):
        self.db = db
        if negative_reasons is None:
            negative_reasons = settings.NEGATIVE_STOCK_REASONS
        self.negative_reasons = {InventoryReason(r) for r in negative_reasons}

    def _holder(self, product_id: int, variant_id: Optional[int], lock: bool = False):
        if variant_id is None:
            query = self.db.query(Product).filter(Product.id == product_id)
        else:
            query = self.db.query(ProductVariant).filter(ProductVariant.id == variant_id)
        if lock:
            query = query.with_for_update().populate_existing()
        holder = query.one_or_none()
        if holder is None:
            if variant_id is None:
                raise ProductNotFound(product_id)
            raise VariantNotFound(variant_id)
        if variant_id is not None and holder.product_id != product_id:
            raise ValidationError(f"Variant {variant_id} does not belong to product {product_id}")
        return holder

    def record(
        self,
        product_id: int,
        variant_id: Optional[int],
        reason: InventoryReason,
        change_amount: int,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
        *,
        reference_id: Optional[str] = None,
        override_reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> InventoryLog:
        """Append a stock change and update the running total.

        Raises NegativeStockError when the result would drop below zero. Product
        level stock may go negative only for reasons listed in
        NEGATIVE_STOCK_REASONS and only with an explicit override_reason;
        variant stock never goes negative.
        """
        reason = InventoryReason(reason)
        if change_amount == 0:
            raise ValidationError("Change amount must be non-zero")

        # Pending changes must reach the row before it is re-read under lock
        self.db.flush()
        holder = self._holder(product_id, variant_id, lock=True)
        current = holder.stock or 0
        new_stock = current + change_amount

        if new_stock < 0 and not self._may_go_negative(variant_id, reason, override_reason):
            logger.warning(
                "Rejected stock change of %s for product %s variant %s (%s on hand)",
                change_amount, product_id, variant_id, current,
            )
            raise NegativeStockError(current, change_amount)

        if override_reason and new_stock < 0:
            notes = f"{notes}; override: {override_reason}" if notes else f"override: {override_reason}"

        holder.stock = new_stock
        entry = InventoryLog(
            product_id=product_id,
            variant_id=variant_id,
            reason=reason,
            change_amount=change_amount,
            new_stock=new_stock,
            notes=notes,
            reference_id=reference_id,
            changed_by=actor,
        )
        if now is not None:
            entry.created_at = now
        self.db.add(entry)
        self.db.flush()
        return entry

    def _may_go_negative(self, variant_id: Optional[int], reason: InventoryReason, override_reason: Optional[str]) -> bool:
        return variant_id is None and bool(override_reason) and reason in self.negative_reasons

    def current_stock(self, product_id: int, variant_id: Optional[int] = None) -> int:
        return self._holder(product_id, variant_id).stock or 0

    def _stream(self, product_id: int, variant_id: Optional[int]):
        query = self.db.query(InventoryLog).filter(InventoryLog.product_id == product_id)
        if variant_id is None:
            return query.filter(InventoryLog.variant_id.is_(None))
        return query.filter(InventoryLog.variant_id == variant_id)

    def replay_stock(self, product_id: int, variant_id: Optional[int] = None) -> int:
        """Stock obtained by summing every ledger delta from zero."""
        return sum(entry.change_amount for entry in self._stream(product_id, variant_id).all())

    def verify(self, product_id: int, variant_id: Optional[int] = None) -> LedgerCheck:
        entries = self._stream(product_id, variant_id).order_by(InventoryLog.id).all()
        broken: List[int] = []
        running = 0
        for entry in entries:
            running += entry.change_amount
            if entry.new_stock != running:
                broken.append(entry.id)
                running = entry.new_stock
        return LedgerCheck(
            product_id=product_id,
            variant_id=variant_id,
            maintained_stock=self.current_stock(product_id, variant_id),
            replayed_stock=sum(e.change_amount for e in entries),
            broken_entry_ids=broken,
        )

    def timeline(
        self,
        product_id: int,
        variant_id: Optional[int] = None,
        page: int = 1,
        limit: int = 50,
        include_variants: bool = False,
    ) -> LedgerPage:
        """Newest-first ledger entries for one product or variant."""
        if include_variants and variant_id is None:
            query = self.db.query(InventoryLog).filter(InventoryLog.product_id == product_id)
        else:
            query = self._stream(product_id, variant_id)
        return _paginate(query, page, limit)

    def list_logs(
        self,
        reason: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        limit: int = 50,
    ) -> LedgerPage:
        query = self.db.query(InventoryLog)
        if reason and reason != "all":
            query = query.filter(InventoryLog.reason == InventoryReason(reason))
        if search:
            query = query.join(Product, Product.id == InventoryLog.product_id).filter(
                Product.name.ilike(f"%{search}%")
            )
        if date_from:
            query = query.filter(InventoryLog.created_at >= _day_start(date_from))
        if date_to:
            query = query.filter(InventoryLog.created_at <= _day_end(date_to))
        return _paginate(query, page, limit)


def _paginate(query, page: int, limit: int) -> LedgerPage:
    page = max(page, 1)
    limit = max(limit, 1)
    total = query.count()
    entries = (
        query.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return LedgerPage(entries=entries, page=page, limit=limit, total=total)


def _day_start(value: date) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _day_end(value: date) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max)


def reserve_items(ledger: InventoryLedger, items, order_id, actor: Optional[str] = None, now: Optional[datetime] = None) -> List[InventoryLog]:
    """Take stock for each order line (SALE)."""
    return [
        ledger.record(
            item.product_id,
            item.variant_id,
            InventoryReason.SALE,
            -item.quantity,
            notes=f"Reserved for order {order_id}",
            actor=actor,
            reference_id=str(order_id),
            now=now,
        )
        for item in items
    ]


def return_items(
    ledger: InventoryLedger,
    items,
    order_id,
    actor: Optional[str] = None,
    reason: InventoryReason = InventoryReason.RETURN,
    now: Optional[datetime] = None,
) -> List[InventoryLog]:
    """Put each order line back on the shelf (CANCELLATION or RETURN)."""
    return [
        ledger.record(
            item.product_id,
            item.variant_id,
            reason,
            item.quantity,
            notes=f"Returned from order {order_id}",
            actor=actor,
            reference_id=str(order_id),
            now=now,
        )
        for item in items
    ]


def low_stock_items(db: Session, threshold: Optional[int] = None):
    threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold
    products = (
        db.query(Product)
        .filter(Product.is_active.is_(True), Product.stock > 0, Product.stock <= threshold)
        .order_by(Product.stock)
        .all()
    )
    variants = (
        db.query(ProductVariant)
        .filter(ProductVariant.is_active.is_(True), ProductVariant.stock > 0, ProductVariant.stock <= threshold)
        .order_by(ProductVariant.stock)
        .all()
    )
    return products, variants


def out_of_stock_items(db: Session):
    products = db.query(Product).filter(Product.is_active.is_(True), Product.stock <= 0).all()
    variants = db.query(ProductVariant).filter(ProductVariant.is_active.is_(True), ProductVariant.stock == 0).all()
    return products, variants
