import enum
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class InventoryReason(str, enum.Enum):
    SALE = "SALE"
    RETURN = "RETURN"
    ADJUSTMENT_MANUAL = "ADJUSTMENT_MANUAL"
    RECEIVING = "RECEIVING"
    CANCELLATION = "CANCELLATION"
    OTHER = "OTHER"


class InventoryLog(Base):
    """Immutable ledger entry. new_stock is the stock level right after this change."""

    __tablename__ = "inventory_logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    variant_id: Mapped[int | None] = mapped_column(
        ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True, index=True
    )
    reason: Mapped[InventoryReason] = mapped_column(Enum(InventoryReason), index=True)
    change_amount: Mapped[int] = mapped_column(Integer)
    new_stock: Mapped[int] = mapped_column(Integer)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    changed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    product = relationship("Product")
    variant = relationship("ProductVariant")
