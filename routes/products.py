from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List, Optional

from core.db import get_db, unit_of_work
from core.deps import get_actor, get_now
from models.inventory_log import InventoryReason
from models.order_item import OrderItem
from models.product import Product
from schemas.product import ProductCreate, ProductUpdate, ProductOut
from services.inventory import InventoryLedger

router = APIRouter(prefix="/products", tags=["products"])


def _get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("/", response_model=List[ProductOut])
def list_products(include_inactive: bool = False, db: Session = Depends(get_db)):
    qs = db.query(Product)
    if not include_inactive:
        qs = qs.filter(Product.is_active.is_(True))
    return qs.order_by(Product.name).all()


@router.post("/", response_model=ProductOut, status_code=201)
def create_product(
    data: ProductCreate,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    existing = db.query(Product).filter(Product.slug == data.slug).one_or_none()
    if existing:
        raise HTTPException(status_code=400, detail="Slug already exists")

    with unit_of_work(db):
        product = Product(
            name=data.name,
            slug=data.slug,
            sku=data.sku,
            description=data.description,
            price=data.price,
            stock=0,
            is_active=True,
        )
        db.add(product)
        db.flush()
        if data.stock:
            InventoryLedger(db).record(
                product.id, None, InventoryReason.RECEIVING, data.stock, notes="Initial stock", actor=actor, now=now
            )
    return product


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return _get_product(db, product_id)


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int,
    data: ProductUpdate,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    product = _get_product(db, product_id)

    with unit_of_work(db):
        if data.name is not None:
            product.name = data.name
        if data.price is not None:
            product.price = data.price
        if data.description is not None:
            product.description = data.description
        if data.is_active is not None:
            product.is_active = data.is_active
        if data.stock is not None and data.stock != product.stock:
            InventoryLedger(db).record(
                product.id, None, InventoryReason.ADJUSTMENT_MANUAL, data.stock - product.stock,
                notes="Stock edited on product", actor=actor, now=now,
            )
    return product


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: int, db: Session = Depends(get_db)):
    product = _get_product(db, product_id)
    ordered = db.query(func.count(OrderItem.id)).filter(OrderItem.product_id == product.id).scalar()
    if ordered:
        raise HTTPException(status_code=409, detail="Product has orders; deactivate it instead")
    with unit_of_work(db):
        db.delete(product)
    return None
