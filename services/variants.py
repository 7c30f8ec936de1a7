from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.db import unit_of_work
from core.errors import ProductNotFound, ValidationError, VariantInUse, VariantNotFound
from models.inventory_log import InventoryReason
from models.order_item import OrderItem
from models.product import Product
from models.product_variant import ProductVariant
from schemas.product import VariantCreate, VariantUpdate
from services.inventory import InventoryLedger


def effective_price(product: Product, variant: Optional[ProductVariant] = None):
    """Variant price override, or the product price when the variant has none."""
    if variant is not None and variant.price is not None:
        return variant.price
    return product.price


def get_variant(db: Session, product_id: int, variant_id: int) -> ProductVariant:
    variant = (
        db.query(ProductVariant)
        .filter(ProductVariant.id == variant_id, ProductVariant.product_id == product_id)
        .one_or_none()
    )
    if variant is None:
        raise VariantNotFound(variant_id)
    return variant


def _ensure_sku_free(db: Session, sku: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(ProductVariant).filter(ProductVariant.sku == sku)
    if exclude_id is not None:
        query = query.filter(ProductVariant.id != exclude_id)
    if query.first() is not None:
        raise ValidationError(f"SKU {sku} already exists")


def create_variant(
    db: Session, product_id: int, data: VariantCreate, actor: Optional[str] = None, now: Optional[datetime] = None
) -> ProductVariant:
    product = db.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    _ensure_sku_free(db, data.sku)

    with unit_of_work(db):
        variant = ProductVariant(
            product_id=product.id,
            sku=data.sku,
            name=data.name,
            price=data.price,
            stock=0,
            attributes=data.attributes,
            images=data.images,
            is_active=data.is_active,
        )
        db.add(variant)
        db.flush()
        # Opening stock goes through the ledger so replay starts from zero
        if data.stock:
            InventoryLedger(db).record(
                product.id, variant.id, InventoryReason.RECEIVING, data.stock,
                notes="Initial stock", actor=actor, now=now,
            )
    return variant


def update_variant(
    db: Session,
    product_id: int,
    variant_id: int,
    data: VariantUpdate,
    actor: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ProductVariant:
    variant = get_variant(db, product_id, variant_id)
    with unit_of_work(db):
        if data.sku is not None and data.sku != variant.sku:
            _ensure_sku_free(db, data.sku, exclude_id=variant.id)
            variant.sku = data.sku
        if data.name is not None:
            variant.name = data.name
        if "price" in data.model_fields_set:
            variant.price = data.price
        if data.attributes is not None:
            variant.attributes = data.attributes
        if data.images is not None:
            variant.images = data.images
        if data.is_active is not None:
            variant.is_active = data.is_active
        if data.stock is not None and data.stock != variant.stock:
            InventoryLedger(db).record(
                product_id, variant.id, InventoryReason.ADJUSTMENT_MANUAL, data.stock - variant.stock,
                notes="Stock edited on variant", actor=actor, now=now,
            )
    return variant


def deactivate_variant(db: Session, product_id: int, variant_id: int) -> ProductVariant:
    variant = get_variant(db, product_id, variant_id)
    with unit_of_work(db):
        variant.is_active = False
    return variant


def delete_variant(db: Session, product_id: int, variant_id: int) -> None:
    """Hard delete, refused while any order line still points at the variant."""
    variant = get_variant(db, product_id, variant_id)
    referenced = db.query(func.count(OrderItem.id)).filter(OrderItem.variant_id == variant.id).scalar()
    if referenced:
        raise VariantInUse(variant.id, referenced)
    with unit_of_work(db):
        db.delete(variant)
