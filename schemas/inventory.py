from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional

from models.inventory_log import InventoryReason


class StockAdjustment(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    change_amount: int
    reason: InventoryReason = InventoryReason.ADJUSTMENT_MANUAL
    notes: Optional[str] = None
    reference_id: Optional[str] = None
    # Explicit justification required to take product stock below zero
    override_reason: Optional[str] = None


class InventoryLogOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    reason: InventoryReason
    change_amount: int
    new_stock: int
    notes: Optional[str] = None
    reference_id: Optional[str] = None
    changed_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class InventoryLogPage(BaseModel):
    logs: List[InventoryLogOut]
    pagination: Pagination


class LedgerCheckOut(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    maintained_stock: int
    replayed_stock: int
    broken_entry_ids: List[int]
    consistent: bool


class StockItemOut(BaseModel):
    id: int
    product_id: Optional[int] = None
    name: str
    sku: Optional[str] = None
    stock: int


class StockReportOut(BaseModel):
    threshold: int
    products: List[StockItemOut]
    variants: List[StockItemOut]
