from datetime import date, datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from core.db import get_db, unit_of_work
from core.deps import get_actor, get_now
from core.config import settings
from schemas.inventory import InventoryLogOut, InventoryLogPage, LedgerCheckOut, StockAdjustment, StockReportOut
from services.inventory import InventoryLedger, LedgerPage, low_stock_items

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _page(result: LedgerPage) -> dict:
    return {
        "logs": result.entries,
        "pagination": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "total_pages": result.total_pages,
        },
    }


@router.post("/adjustments", response_model=InventoryLogOut, status_code=201)
def adjust_stock(
    data: StockAdjustment,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    with unit_of_work(db):
        entry = InventoryLedger(db).record(
            data.product_id,
            data.variant_id,
            data.reason,
            data.change_amount,
            notes=data.notes,
            actor=actor,
            reference_id=data.reference_id,
            override_reason=data.override_reason,
            now=now,
        )
    return entry


@router.get("/logs", response_model=InventoryLogPage)
def list_logs(
    reason: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return _page(InventoryLedger(db).list_logs(reason, search, date_from, date_to, page=page, limit=limit))


@router.get("/products/{product_id}/timeline", response_model=InventoryLogPage)
def product_timeline(
    product_id: int,
    variant_id: Optional[int] = None,
    include_variants: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    ledger = InventoryLedger(db)
    ledger.current_stock(product_id, variant_id)  # 404 for unknown product/variant
    return _page(ledger.timeline(product_id, variant_id, page=page, limit=limit, include_variants=include_variants))


@router.get("/products/{product_id}/verify", response_model=LedgerCheckOut)
def verify_ledger(product_id: int, variant_id: Optional[int] = None, db: Session = Depends(get_db)):
    check = InventoryLedger(db).verify(product_id, variant_id)
    return {
        "product_id": check.product_id,
        "variant_id": check.variant_id,
        "maintained_stock": check.maintained_stock,
        "replayed_stock": check.replayed_stock,
        "broken_entry_ids": check.broken_entry_ids,
        "consistent": check.consistent,
    }


@router.get("/low-stock", response_model=StockReportOut)
def low_stock(threshold: Optional[int] = Query(None, ge=0), db: Session = Depends(get_db)):
    threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold
    products, variants = low_stock_items(db, threshold)
    return {
        "threshold": threshold,
        "products": [{"id": p.id, "name": p.name, "sku": p.sku, "stock": p.stock} for p in products],
        "variants": [
            {"id": v.id, "product_id": v.product_id, "name": v.name, "sku": v.sku, "stock": v.stock}
            for v in variants
        ],
    }
