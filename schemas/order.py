from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, List, Optional

from models.order import OrderPriority, OrderSource, OrderStatus, PaymentStatus


class OrderItemIn(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int = Field(gt=0)


class OrderCreate(BaseModel):
    email: EmailStr
    customer_name: Optional[str] = None
    currency: str = "USD"
    priority: OrderPriority = OrderPriority.NORMAL
    source: OrderSource = OrderSource.WEBSITE
    coupon_code: Optional[str] = None
    tax: float = Field(default=0, ge=0)
    shipping: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    # Optional client-side total, rejected unless it matches subtotal + tax + shipping - discount
    total: Optional[float] = None
    items: List[OrderItemIn]


class OrderUpdate(BaseModel):
    priority: Optional[OrderPriority] = None
    # Outcome reported by the payment provider; REFUNDED is only reachable through a refund
    payment_status: Optional[PaymentStatus] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    customer_rating: Optional[int] = Field(default=None, ge=1, le=5)


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    variant_id: Optional[int] = None
    quantity: int
    unit_price: float
    total: float

    class Config:
        from_attributes = True


class OrderNoteIn(BaseModel):
    content: str = Field(min_length=1)
    is_internal: bool = False


class OrderNoteOut(BaseModel):
    id: int
    content: str
    author: Optional[str] = None
    is_internal: bool
    created_at: datetime

    class Config:
        from_attributes = True


class StatusHistoryOut(BaseModel):
    id: int
    from_status: OrderStatus
    to_status: OrderStatus
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    customer_name: Optional[str] = None
    email: EmailStr
    currency: str
    status: OrderStatus
    payment_status: PaymentStatus
    priority: OrderPriority
    source: OrderSource
    coupon_code: Optional[str] = None
    customer_rating: Optional[int] = None
    subtotal: float
    tax: float
    shipping: float
    discount: float
    total: float
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    items: List[OrderItemOut]

    class Config:
        from_attributes = True


class OrderDetailOut(OrderOut):
    notes: List[OrderNoteOut] = []
    status_history: List[StatusHistoryOut] = []


class TransitionRequest(BaseModel):
    status: OrderStatus
    reason: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None


class RefundRequest(BaseModel):
    reason: Optional[str] = None
    restock: bool = False


class TransitionOut(BaseModel):
    order: OrderOut
    from_status: OrderStatus
    to_status: OrderStatus
    warnings: List[str] = []


class RefundEligibilityOut(BaseModel):
    order_id: int
    eligible: bool
    reason: Optional[str] = None
    days_since_delivery: Optional[int] = None
    days_remaining: int


class BulkRequest(BaseModel):
    order_ids: List[int] = Field(min_length=1)
    action: str
    reason: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None


class BulkFailureOut(BaseModel):
    id: int
    kind: str
    reason: str


class BulkResultOut(BaseModel):
    action: str
    succeeded: List[int]
    failed: List[BulkFailureOut]
    kind: Optional[str] = None
