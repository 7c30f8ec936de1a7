"""
Order status workflow.

PENDING -> CONFIRMED -> PROCESSING -> SHIPPED -> DELIVERED -> REFUNDED, with
CANCELLED reachable from every state before SHIPPED. The table below is the
only source of truth for which moves are legal; it is checked at import time
so a missing or mistyped state fails loudly instead of silently allowing
nothing.

``OrderStateMachine.transition`` mutates the order and appends ledger entries
and a history row on the given session but never commits. The caller wraps it
in a unit of work (see services.orders.transition_order) so that the status
change and its stock movements land together or not at all.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from core.config import settings
from core.errors import InvalidTransition, MissingTrackingInfo, RefundIneligible
from models.inventory_log import InventoryLog, InventoryReason
from models.order import Order, OrderStatus, PaymentStatus
from models.order_status_history import OrderStatusHistory
from services.inventory import InventoryLedger, return_items
from services.refunds import RefundEligibilityPolicy

logger = logging.getLogger(__name__)


TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Event name handed to the notification service after a committed transition
NOTIFY_EVENTS: Dict[OrderStatus, str] = {
    OrderStatus.CONFIRMED: "confirmed",
    OrderStatus.SHIPPED: "shipped",
    OrderStatus.DELIVERED: "delivered",
    OrderStatus.CANCELLED: "cancelled",
    OrderStatus.REFUNDED: "refunded",
}


def _validate_table(table: Dict[OrderStatus, FrozenSet[OrderStatus]]) -> None:
    missing = set(OrderStatus) - set(table)
    if missing:
        raise RuntimeError(f"Transition table has no entry for: {sorted(s.value for s in missing)}")
    for source, targets in table.items():
        for target in targets:
            if not isinstance(target, OrderStatus):
                raise RuntimeError(f"Invalid transition target {target!r} from {source.value}")
            if target == source:
                raise RuntimeError(f"Self transition on {source.value} is not allowed")


_validate_table(TRANSITIONS)

TERMINAL_STATES: FrozenSet[OrderStatus] = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


def allowed_next(status: OrderStatus) -> FrozenSet[OrderStatus]:
    return TRANSITIONS[OrderStatus(status)]


def can_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    return OrderStatus(to_status) in allowed_next(from_status)


@dataclass
class TransitionContext:
    actor: Optional[str] = None
    reason: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    # Refunds only: put the refunded items back into stock as RETURN entries
    restock: bool = False
    bulk: bool = False


@dataclass
class TransitionResult:
    order: Order
    from_status: OrderStatus
    to_status: OrderStatus
    warnings: List[str] = field(default_factory=list)
    ledger_entries: List[InventoryLog] = field(default_factory=list)

    @property
    def notify_event(self) -> Optional[str]:
        return NOTIFY_EVENTS.get(self.to_status)


class OrderStateMachine:
    def __init__(
        self,
        db: Session,
        ledger: Optional[InventoryLedger] = None,
        refund_policy: Optional[RefundEligibilityPolicy] = None,
        require_tracking: Optional[bool] = None,
    ):
        self.db = db
        self.ledger = ledger or InventoryLedger(db)
        self.refund_policy = refund_policy or RefundEligibilityPolicy.from_settings()
        self.require_tracking = settings.REQUIRE_TRACKING_FOR_SHIPMENT if require_tracking is None else require_tracking

    def transition(
        self,
        order: Order,
        target,
        now: datetime,
        context: Optional[TransitionContext] = None,
    ) -> TransitionResult:
        context = context or TransitionContext()
        current = OrderStatus(order.status)
        try:
            target = OrderStatus(target)
        except ValueError:
            raise InvalidTransition(current, target, f"Unknown order status: {target}")

        if target not in TRANSITIONS[current]:
            raise InvalidTransition(current, target)

        # Policy checks run before anything is touched
        if target == OrderStatus.REFUNDED:
            problem = self.refund_policy.ineligibility_reason(order, now)
            if problem:
                raise RefundIneligible(problem)

        result = TransitionResult(order=order, from_status=current, to_status=target)

        if target == OrderStatus.SHIPPED:
            self._apply_shipping(order, context, result, now)
        elif target == OrderStatus.DELIVERED:
            if order.delivered_at is None:
                order.delivered_at = now
        elif target == OrderStatus.CANCELLED:
            result.ledger_entries = return_items(
                self.ledger, order.items, order.order_number, actor=context.actor,
                reason=InventoryReason.CANCELLATION, now=now,
            )
        elif target == OrderStatus.REFUNDED:
            order.payment_status = PaymentStatus.REFUNDED
            if context.restock:
                result.ledger_entries = return_items(
                    self.ledger, order.items, order.order_number, actor=context.actor,
                    reason=InventoryReason.RETURN, now=now,
                )

        order.status = target
        order.updated_at = now
        self._append_history(order, result, context, now)
        self.db.flush()

        logger.info(
            "Order %s moved %s -> %s by %s", order.order_number, current.value, target.value, context.actor or "system"
        )
        return result

    def _apply_shipping(self, order: Order, context: TransitionContext, result: TransitionResult, now: datetime) -> None:
        tracking_number = context.tracking_number or order.tracking_number
        carrier = context.carrier or order.carrier
        if not tracking_number or not carrier:
            if self.require_tracking:
                raise MissingTrackingInfo(result.from_status, result.to_status)
            result.warnings.append("Order shipped without tracking number or carrier")
            logger.warning("Order %s shipped without complete tracking information", order.order_number)
        order.tracking_number = tracking_number
        order.carrier = carrier
        if order.shipped_at is None:
            order.shipped_at = now

    def _append_history(self, order: Order, result: TransitionResult, context: TransitionContext, now: datetime) -> None:
        details = {}
        if result.warnings:
            details["warnings"] = list(result.warnings)
        if context.bulk:
            details["bulk_operation"] = True
        if result.to_status == OrderStatus.SHIPPED and order.tracking_number:
            details["tracking_number"] = order.tracking_number
        order.status_history.append(
            OrderStatusHistory(
                from_status=result.from_status,
                to_status=result.to_status,
                changed_by=context.actor,
                reason=context.reason,
                details=details or None,
                created_at=now,
            )
        )
