from datetime import datetime
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from core.db import get_db
from core.deps import get_actor, get_now
from core.errors import ProductNotFound
from models.product import Product
from models.product_variant import ProductVariant
from schemas.product import VariantCreate, VariantUpdate, VariantOut
from services import variants as variant_service

router = APIRouter(prefix="/products/{product_id}/variants", tags=["variants"])


def _out(variant: ProductVariant) -> dict:
    return {
        "id": variant.id,
        "product_id": variant.product_id,
        "sku": variant.sku,
        "name": variant.name,
        "price": variant.price,
        "effective_price": variant_service.effective_price(variant.product, variant),
        "stock": variant.stock,
        "attributes": variant.attributes,
        "images": variant.images,
        "is_active": variant.is_active,
    }


@router.get("/", response_model=List[VariantOut])
def list_variants(product_id: int, db: Session = Depends(get_db)):
    product = db.get(Product, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return [_out(v) for v in product.variants]


@router.post("/", response_model=VariantOut, status_code=201)
def create_variant(
    product_id: int,
    data: VariantCreate,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    return _out(variant_service.create_variant(db, product_id, data, actor=actor, now=now))


@router.patch("/{variant_id}", response_model=VariantOut)
def update_variant(
    product_id: int,
    variant_id: int,
    data: VariantUpdate,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    return _out(variant_service.update_variant(db, product_id, variant_id, data, actor=actor, now=now))


@router.post("/{variant_id}/deactivate", response_model=VariantOut)
def deactivate_variant(product_id: int, variant_id: int, db: Session = Depends(get_db)):
    return _out(variant_service.deactivate_variant(db, product_id, variant_id))


@router.delete("/{variant_id}", status_code=204)
def delete_variant(product_id: int, variant_id: int, db: Session = Depends(get_db)):
    variant_service.delete_variant(db, product_id, variant_id)
    return None
