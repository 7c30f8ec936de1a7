"""
Bulk order actions.

Each order is handled in its own unit of work. One order failing never rolls
back or blocks another; the outcome is a partitioned report instead of an
all-or-nothing batch.
"""
import enum
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import ErrorKind, OrderNotFound, OrderflowError, RefundIneligible
from models.order import Order, OrderStatus
from services.order_state import OrderStateMachine, TransitionContext
from services.orders import transition_order
from services.refunds import RefundEligibilityPolicy

logger = logging.getLogger(__name__)


class BulkAction(str, enum.Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    SHIP = "ship"
    MARK_DELIVERED = "mark_delivered"
    REFUND = "refund"


ACTION_TARGETS = {
    BulkAction.CONFIRM: OrderStatus.CONFIRMED,
    BulkAction.CANCEL: OrderStatus.CANCELLED,
    BulkAction.SHIP: OrderStatus.SHIPPED,
    BulkAction.MARK_DELIVERED: OrderStatus.DELIVERED,
    BulkAction.REFUND: OrderStatus.REFUNDED,
}


@dataclass
class BulkFailure:
    id: int
    kind: ErrorKind
    reason: str


@dataclass
class BulkResult:
    action: BulkAction
    succeeded: List[int] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)

    @property
    def kind(self) -> Optional[ErrorKind]:
        """PARTIAL_BATCH_FAILURE when some but not all orders failed."""
        if self.failed and self.succeeded:
            return ErrorKind.PARTIAL_BATCH_FAILURE
        return None

    @property
    def partial_failure(self) -> bool:
        return self.kind == ErrorKind.PARTIAL_BATCH_FAILURE


class BulkOperationCoordinator:
    def __init__(
        self,
        db: Session,
        refund_policy: Optional[RefundEligibilityPolicy] = None,
        transition: Callable = transition_order,
    ):
        self.db = db
        self.refund_policy = refund_policy or RefundEligibilityPolicy.from_settings()
        self.transition = transition
        self.machine = OrderStateMachine(db, refund_policy=self.refund_policy)

    def apply_bulk(
        self,
        order_ids: Iterable[int],
        action: BulkAction,
        context: Optional[TransitionContext] = None,
        now: Optional[datetime] = None,
    ) -> BulkResult:
        action = BulkAction(action)
        now = now or datetime.utcnow()
        context = replace(context or TransitionContext(), bulk=True)
        result = BulkResult(action=action)

        ids = list(dict.fromkeys(order_ids))
        if action == BulkAction.REFUND:
            ids = self._eligible_for_refund(ids, now, result)

        target = ACTION_TARGETS[action]
        for order_id in ids:
            try:
                self.transition(self.db, order_id, target, context=context, now=now, machine=self.machine)
            except OrderflowError as exc:
                logger.warning("Bulk %s skipped order %s: %s", action.value, order_id, exc.message)
                result.failed.append(BulkFailure(id=order_id, kind=exc.kind, reason=exc.message))
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception("Bulk %s failed on order %s", action.value, order_id)
                result.failed.append(BulkFailure(id=order_id, kind=ErrorKind.CONFLICT, reason=str(exc)))
            else:
                result.succeeded.append(order_id)

        logger.info(
            "Bulk %s finished: %s succeeded, %s failed", action.value, len(result.succeeded), len(result.failed)
        )
        return result

    def _eligible_for_refund(self, ids: List[int], now: datetime, result: BulkResult) -> List[int]:
        orders = {o.id: o for o in self.db.query(Order).filter(Order.id.in_(ids)).all()} if ids else {}
        eligible = []
        for order_id in ids:
            order = orders.get(order_id)
            if order is None:
                error = OrderNotFound(order_id)
                result.failed.append(BulkFailure(id=order_id, kind=error.kind, reason=error.message))
                continue
            problem = self.refund_policy.ineligibility_reason(order, now)
            if problem:
                result.failed.append(BulkFailure(id=order_id, kind=RefundIneligible.kind, reason=problem))
                continue
            eligible.append(order_id)
        return eligible
