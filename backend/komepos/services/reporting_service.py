# Overview: Read-side sales reporting for a location over business-date ranges.

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from ..extensions import db
from ..models import Location, Order, User
from ..models.orders import ORDER_STATUS_CANCELLED, PAYMENT_STATUS_PENDING
from ..money import ZERO, round_money, sum_money
from ..time_utils import local_day_start_utc, to_utc_z, today_in_timezone
from ..validation import NotFoundError, ValidationError

RANGE_TODAY = "today"
RANGE_WEEK = "week"
RANGE_MONTH = "month"
RANGE_ALL = "all"

RANGE_DAYS = {RANGE_TODAY: 0, RANGE_WEEK: 7, RANGE_MONTH: 30}
RANGES = set(RANGE_DAYS) | {RANGE_ALL}


def range_start(range_key: str, tz_name: str | None, now: datetime | None = None) -> datetime | None:
    """
    UTC instant where the range begins, or None for all time.

    Ranges start at local midnight, `today` of today, `week` seven days
    back, `month` thirty days back.
    """
    if range_key not in RANGES:
        raise ValidationError(f"range must be one of {sorted(RANGES)}", details={"range": range_key})
    if range_key == RANGE_ALL:
        return None
    today = today_in_timezone(tz_name, now)
    return local_day_start_utc(today - timedelta(days=RANGE_DAYS[range_key]), tz_name)


def _is_sale(order: Order) -> bool:
    return (
        not order.is_refund
        and order.status != ORDER_STATUS_CANCELLED
        and order.payment_status != PAYMENT_STATUS_PENDING
    )


def sales_report(location_id: int, range_key: str = RANGE_TODAY, now: datetime | None = None) -> dict:
    location = db.session.get(Location, location_id)
    if not location:
        raise NotFoundError(f"Location {location_id} not found", details={"location_id": location_id})

    tz_name = location.effective_timezone
    start = range_start(range_key, tz_name, now)

    query = db.session.query(Order).filter(Order.location_id == location_id)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    orders = query.order_by(Order.id).all()

    sales = [o for o in orders if _is_sale(o)]
    refunds = [o for o in orders if o.is_refund]

    revenue = sum_money(o.total for o in sales)
    discounts = sum_money(o.discount_amount for o in sales)
    refund_total = sum_money(abs(o.total) for o in refunds)
    avg = round_money(revenue / len(sales)) if sales else ZERO

    per_user: dict[int, dict] = {}

    def _bucket(user_id: int) -> dict:
        if user_id not in per_user:
            per_user[user_id] = {"orders": 0, "sales": ZERO, "discounts": ZERO, "refunds": ZERO}
        return per_user[user_id]

    for order in sales:
        if order.user_id is None:
            continue
        bucket = _bucket(order.user_id)
        bucket["orders"] += 1
        bucket["sales"] += order.total
        bucket["discounts"] += order.discount_amount
    for order in refunds:
        if order.user_id is None:
            continue
        _bucket(order.user_id)["refunds"] += abs(order.total)

    names: dict[int, str | None] = {}
    if per_user:
        for user in db.session.query(User).filter(User.id.in_(per_user.keys())).all():
            names[user.id] = user.full_name or user.username

    users = [
        {
            "user_id": user_id,
            "full_name": names.get(user_id),
            "total_orders": stats["orders"],
            "total_sales": _money(stats["sales"]),
            "total_discounts": _money(stats["discounts"]),
            "total_refunds": _money(stats["refunds"]),
        }
        for user_id, stats in sorted(per_user.items())
    ]

    return {
        "location_id": location_id,
        "range": range_key,
        "timezone": tz_name,
        "start": to_utc_z(start) if start else None,
        "total_orders": len(sales),
        "total_revenue": _money(revenue),
        "average_order_value": _money(avg),
        "total_discounts": _money(discounts),
        "total_refunds": _money(refund_total),
        "refund_count": len(refunds),
        "net_revenue": _money(revenue - refund_total),
        "users": users,
    }


def _money(value: Decimal) -> str:
    return str(round_money(value))
