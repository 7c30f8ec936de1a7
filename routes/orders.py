from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from core.db import get_db
from core.deps import get_actor, get_now
from models.order import OrderStatus
from schemas.order import (
    BulkRequest,
    BulkResultOut,
    OrderCreate,
    OrderDetailOut,
    OrderNoteIn,
    OrderNoteOut,
    OrderOut,
    OrderUpdate,
    RefundEligibilityOut,
    RefundRequest,
    TransitionOut,
    TransitionRequest,
)
from services import orders as order_service
from services.bulk import BulkAction, BulkOperationCoordinator
from services.order_filters import OrderFilter
from services.order_state import TransitionContext
from services.refunds import RefundEligibilityPolicy

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/", response_model=List[OrderOut])
def list_orders(
    status: Optional[OrderStatus] = None,
    search: str = "",
    priority: str = "all",
    source: str = "all",
    age: str = "all",
    rating: str = "all",
    refund: str = "all",
    payment: str = "all",
    carrier: str = "all",
    transit: str = "all",
    delivered: str = "all",
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    try:
        filters = OrderFilter(
            search=search, priority=priority, source=source, age=age,
            rating=rating, refund=refund, payment=payment, carrier=carrier,
            transit=transit, delivered=delivered,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return order_service.list_orders(db, filters, now, status=status)


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    data: OrderCreate,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    return order_service.create_order(db, data, actor=actor, now=now)


@router.post("/bulk", response_model=BulkResultOut)
def bulk_action(
    data: BulkRequest,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    try:
        action = BulkAction(data.action)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown bulk action: {data.action}")
    context = TransitionContext(
        actor=actor,
        reason=data.reason or f"Bulk {action.value}",
        tracking_number=data.tracking_number,
        carrier=data.carrier,
    )
    result = BulkOperationCoordinator(db).apply_bulk(data.order_ids, action, context=context, now=now)
    return {
        "action": result.action.value,
        "succeeded": result.succeeded,
        "failed": [{"id": f.id, "kind": f.kind.value, "reason": f.reason} for f in result.failed],
        "kind": result.kind.value if result.kind else None,
    }


@router.get("/{order_id}", response_model=OrderDetailOut)
def get_order(order_id: int, db: Session = Depends(get_db)):
    return order_service.load_order(db, order_id)


@router.patch("/{order_id}", response_model=OrderOut)
def update_order(
    order_id: int,
    data: OrderUpdate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    return order_service.update_order(db, order_id, data, now=now)


@router.post("/{order_id}/transition", response_model=TransitionOut)
def transition_order(
    order_id: int,
    data: TransitionRequest,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    context = TransitionContext(
        actor=actor, reason=data.reason, tracking_number=data.tracking_number, carrier=data.carrier
    )
    result = order_service.transition_order(db, order_id, data.status, context=context, now=now)
    return {
        "order": result.order,
        "from_status": result.from_status,
        "to_status": result.to_status,
        "warnings": result.warnings,
    }


@router.post("/{order_id}/refund", response_model=TransitionOut)
def refund_order(
    order_id: int,
    data: RefundRequest,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    context = TransitionContext(actor=actor, reason=data.reason, restock=data.restock)
    result = order_service.refund_order(db, order_id, context=context, now=now)
    return {
        "order": result.order,
        "from_status": result.from_status,
        "to_status": result.to_status,
        "warnings": result.warnings,
    }


@router.get("/{order_id}/refund-eligibility", response_model=RefundEligibilityOut)
def refund_eligibility(order_id: int, db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    order = order_service.load_order(db, order_id)
    policy = RefundEligibilityPolicy.from_settings()
    reason = policy.ineligibility_reason(order, now)
    return {
        "order_id": order.id,
        "eligible": reason is None,
        "reason": reason,
        "days_since_delivery": policy.days_since_delivery(order, now),
        "days_remaining": policy.days_remaining(order, now),
    }


@router.post("/{order_id}/notes", response_model=OrderNoteOut, status_code=201)
def add_note(
    order_id: int,
    data: OrderNoteIn,
    db: Session = Depends(get_db),
    actor: Optional[str] = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    return order_service.add_note(db, order_id, data.content, author=actor, is_internal=data.is_internal, now=now)
