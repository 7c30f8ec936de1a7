"""
In-memory order filters for the dashboard lists.

Each filter field defaults to "all", which matches everything. All active
filters are AND-combined. ``now`` is always passed in, so the same inputs give
the same output.
"""
import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from models.order import Order
from services.refunds import RefundEligibilityPolicy

ALL = "all"

AGE_BUCKETS = ("new", "recent", "old", "critical")
RATING_BUCKETS = ("rated", "unrated", "high", "low")
REFUND_BUCKETS = ("eligible", "expired")
TRANSIT_BUCKETS = ("0-3", "4-7", "8+")
DELIVERED_BUCKETS = ("today", "week", "month", "3months")


@dataclass(frozen=True)
class OrderFilter:
    search: str = ""
    priority: str = ALL
    source: str = ALL
    age: str = ALL
    rating: str = ALL
    refund: str = ALL
    payment: str = ALL
    carrier: str = ALL
    transit: str = ALL
    delivered: str = ALL

    def __post_init__(self):
        _check_bucket("age", self.age, AGE_BUCKETS)
        _check_bucket("rating", self.rating, RATING_BUCKETS)
        _check_bucket("refund", self.refund, REFUND_BUCKETS)
        _check_bucket("transit", self.transit, TRANSIT_BUCKETS)
        _check_bucket("delivered", self.delivered, DELIVERED_BUCKETS)


def _check_bucket(name: str, value: str, allowed: tuple) -> None:
    if value != ALL and value not in allowed:
        raise ValueError(f"Unknown {name} filter {value!r}, expected one of: {', '.join((ALL,) + allowed)}")


def _value(v) -> Optional[str]:
    if v is None:
        return None
    return getattr(v, "value", v)


def order_age_hours(order: Order, now: datetime) -> int:
    """Whole hours since the order was placed."""
    return int((now - order.created_at) // timedelta(hours=1))


def matches_search(order: Order, term: str) -> bool:
    if not term:
        return True
    term = term.lower()
    fields = (order.order_number, order.customer_name, order.email, order.coupon_code, order.tracking_number)
    return any(f and term in f.lower() for f in fields)


def matches_age(order: Order, bucket: str, now: datetime) -> bool:
    if bucket == ALL:
        return True
    hours = order_age_hours(order, now)
    if bucket == "new":
        return hours < 1
    if bucket == "recent":
        return 1 <= hours < 24
    if bucket == "old":
        return 24 <= hours < 48
    return hours >= 48


def matches_rating(order: Order, bucket: str) -> bool:
    rating = order.customer_rating
    if bucket == ALL:
        return True
    if bucket == "rated":
        return bool(rating)
    if bucket == "unrated":
        return not rating
    if not rating:
        return False
    return rating >= 4 if bucket == "high" else rating < 4


def days_in_transit(order: Order, now: datetime) -> int:
    """Whole days since the order shipped, or since it was placed when there is no ship date."""
    return int((now - (order.shipped_at or order.created_at)) // timedelta(days=1))


def matches_transit(order: Order, bucket: str, now: datetime) -> bool:
    if bucket == ALL:
        return True
    days = days_in_transit(order, now)
    if bucket == "0-3":
        return days <= 3
    if bucket == "4-7":
        return 4 <= days <= 7
    return days >= 8


def _months_before(now: datetime, months: int) -> datetime:
    # Same day of month, clamped to the length of the target month
    year, month = divmod(now.year * 12 + now.month - 1 - months, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def delivered_since(bucket: str, now: datetime) -> datetime:
    """Earliest delivery time that falls in ``bucket``."""
    if bucket == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if bucket == "week":
        return now - timedelta(days=7)
    if bucket == "month":
        return _months_before(now, 1)
    return _months_before(now, 3)


def matches_delivered(order: Order, bucket: str, now: datetime) -> bool:
    if bucket == ALL:
        return True
    delivered = order.delivered_at or order.updated_at
    return delivered is not None and delivered >= delivered_since(bucket, now)


def _equals(field: str, wanted: str) -> Callable[[Order], bool]:
    if wanted == ALL:
        return lambda order: True
    return lambda order: _value(getattr(order, field)) == wanted


def build_predicate(filters: OrderFilter, now: datetime, policy: RefundEligibilityPolicy) -> Callable[[Order], bool]:
    checks = [
        lambda o: matches_search(o, filters.search),
        _equals("priority", filters.priority),
        _equals("source", filters.source),
        _equals("payment_status", filters.payment),
        _equals("carrier", filters.carrier),
        lambda o: matches_age(o, filters.age, now),
        lambda o: matches_rating(o, filters.rating),
        lambda o: matches_transit(o, filters.transit, now),
        lambda o: matches_delivered(o, filters.delivered, now),
    ]
    if filters.refund != ALL:
        wanted = filters.refund == "eligible"
        checks.append(lambda o: policy.is_eligible(o, now) == wanted)
    return lambda order: all(check(order) for check in checks)


def filter_orders(
    orders: Iterable[Order],
    filters: OrderFilter,
    now: datetime,
    policy: Optional[RefundEligibilityPolicy] = None,
) -> List[Order]:
    """Return the orders matching every filter, preserving input order."""
    predicate = build_predicate(filters, now, policy or RefundEligibilityPolicy.from_settings())
    return [order for order in orders if predicate(order)]
