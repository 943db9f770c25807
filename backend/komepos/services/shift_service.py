"""
Shift and Cash-Drawer Ledger Service

WHY: A cashier is accountable for the cash drawer from the moment they
count it in until they count it out. The ledger records every movement so
the close can compare what should be there with what is there.

DESIGN PRINCIPLES:
- One OPEN shift per user, enforced by a partial unique index and a locked
  check before insert
- Shifts are immutable once closed
- Drawer entries are append-only; amounts are magnitudes, the kind gives
  the direction
- expected_cash = starting_cash + cash SALE entries - REFUND entries
- SALE/REFUND entries are written inside the caller's order transaction
"""

from __future__ import annotations

import logging
from decimal import Decimal

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from ..extensions import db
from ..models import CashDrawerTransaction, Location, Order, Shift, User
from ..models.orders import ORDER_STATUS_CANCELLED, PAYMENT_STATUS_PENDING
from ..models.shifts import (
    DRAWER_CASH_IN,
    DRAWER_KINDS,
    DRAWER_REFUND,
    DRAWER_SALE,
    MANUAL_DRAWER_KINDS,
    SHIFT_STATUS_CLOSED,
    SHIFT_STATUS_OPEN,
)
from ..money import ZERO, round_money, sum_money
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, parse_amount
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

STARTING_CASH_REASON = "Starting cash"


def is_cash_method(method: str | None) -> bool:
    """True for payment methods that move physical cash through the drawer."""
    if not method:
        return False
    cash_methods = current_app.config.get("CASH_PAYMENT_METHODS", ("cash",))
    return method.strip().lower() in {m.lower() for m in cash_methods}


# =============================================================================
# LOOKUPS
# =============================================================================

def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if not shift:
        raise NotFoundError(f"Shift {shift_id} not found", details={"shift_id": shift_id})
    return shift


def get_open_shift(user_id: int) -> Shift | None:
    """The user's open shift, if any."""
    return (
        db.session.query(Shift)
        .filter_by(user_id=user_id, status=SHIFT_STATUS_OPEN)
        .first()
    )


def list_shifts(location_id: int, limit: int = 20) -> list[Shift]:
    """Most recent shifts at a location, newest first."""
    return (
        db.session.query(Shift)
        .filter_by(location_id=location_id)
        .order_by(Shift.started_at.desc(), Shift.id.desc())
        .limit(limit)
        .all()
    )


def list_drawer_transactions(shift_id: int) -> list[CashDrawerTransaction]:
    get_shift(shift_id)
    return (
        db.session.query(CashDrawerTransaction)
        .filter_by(shift_id=shift_id)
        .order_by(CashDrawerTransaction.created_at, CashDrawerTransaction.id)
        .all()
    )


# =============================================================================
# OPEN / CLOSE
# =============================================================================

def open_shift(user_id: int, location_id: int, starting_cash) -> Shift:
    """
    Open a shift for a cashier and count the drawer in.

    Raises:
        ValidationError: starting cash missing or negative, or the user
            already has an open shift
        NotFoundError: unknown user or location
    """
    amount = parse_amount(starting_cash, "starting_cash")

    if not db.session.get(User, user_id):
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
    if not db.session.get(Location, location_id):
        raise NotFoundError(f"Location {location_id} not found", details={"location_id": location_id})

    def _op():
        existing = lock_for_update(
            db.session.query(Shift).filter_by(user_id=user_id, status=SHIFT_STATUS_OPEN)
        ).first()
        if existing:
            raise ValidationError(
                f"User already has an open shift (shift {existing.id})",
                details={"shift_id": existing.id},
            )

        shift = Shift(
            location_id=location_id,
            user_id=user_id,
            status=SHIFT_STATUS_OPEN,
            starting_cash=amount,
            started_at=utcnow(),
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except DBIntegrityError:
            # Lost the race against another terminal opening a shift for this user
            db.session.rollback()
            raise ValidationError("User already has an open shift", details={"user_id": user_id})

        _append_entry(shift, DRAWER_CASH_IN, amount, user_id, reason=STARTING_CASH_REASON)
        db.session.commit()
        return shift

    return run_with_retry(_op)


def close_shift(
    shift_id: int,
    ending_cash,
    user_id: int,
    notes: str | None = None,
    manager_override: bool = False,
) -> Shift:
    """
    Close a shift and calculate cash variance.

    IMMUTABLE: Once closed, a shift cannot be reopened or modified.

    Only the owner closes their own shift, unless the acting user is a
    manager or the caller passes `manager_override`.
    """
    counted = parse_amount(ending_cash, "ending_cash")

    def _op():
        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if not shift:
            raise NotFoundError(f"Shift {shift_id} not found", details={"shift_id": shift_id})
        if shift.status != SHIFT_STATUS_OPEN:
            raise ConflictError(f"Shift {shift_id} is already closed", details={"shift_id": shift_id})

        if shift.user_id != user_id and not manager_override:
            actor = db.session.get(User, user_id)
            if not actor or not actor.is_manager:
                raise ConflictError(
                    "Only the shift owner can close this shift without manager approval",
                    details={"shift_id": shift_id, "owner_user_id": shift.user_id},
                )

        expected = compute_expected_cash(shift)
        variance = counted - expected

        shift.status = SHIFT_STATUS_CLOSED
        shift.ended_at = utcnow()
        shift.ending_cash = counted
        shift.expected_cash = expected
        shift.cash_variance = variance
        shift.notes = (notes or "").strip() or None
        shift.closed_by_user_id = user_id

        db.session.commit()

        if variance:
            logger.warning("Shift %s closed with variance %s (expected %s, counted %s)",
                           shift.id, variance, expected, counted)
        else:
            logger.info("Shift %s closed balanced at %s", shift.id, counted)
        return shift

    return run_with_retry(_op)


# =============================================================================
# DRAWER LEDGER
# =============================================================================

def claim_open_shift(shift: Shift) -> None:
    """
    Bump the shift's version while it is still OPEN, inside the caller's
    transaction.

    The check and the bump are one conditional UPDATE. A close that read
    the shift before this point fails its versioned UPDATE and is retried
    with the new entry counted; a close that got there first leaves no row
    to update.

    Raises:
        ConflictError: the shift is no longer OPEN
    """
    result = db.session.execute(
        update(Shift)
        .where(Shift.id == shift.id, Shift.status == SHIFT_STATUS_OPEN)
        .values(version_id=Shift.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise ConflictError(f"Shift {shift.id} is closed", details={"shift_id": shift.id})
    db.session.expire(shift, ["version_id"])


def _append_entry(
    shift: Shift,
    kind: str,
    amount: Decimal,
    user_id: int,
    *,
    reason: str | None = None,
    order_id: int | None = None,
) -> CashDrawerTransaction:
    """Add a ledger row to the current session; the caller commits."""
    if kind not in DRAWER_KINDS:
        raise ValidationError(f"Unknown drawer entry kind {kind}", details={"kind": kind})
    claim_open_shift(shift)

    entry = CashDrawerTransaction(
        shift_id=shift.id,
        kind=kind,
        amount=round_money(abs(amount)),
        reason=reason,
        order_id=order_id,
        performed_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def record_cash_movement(shift_id: int, kind: str, amount, user_id: int, reason: str | None = None) -> CashDrawerTransaction:
    """
    Manual CASH_IN, CASH_OUT or ADJUSTMENT entry (till top-up, bank drop).

    Manual movements are listed in the summary but do not enter
    expected_cash.
    """
    kind = (kind or "").strip().upper()
    if kind not in MANUAL_DRAWER_KINDS:
        raise ValidationError(
            f"kind must be one of {sorted(MANUAL_DRAWER_KINDS)}",
            details={"kind": kind},
        )
    value = parse_amount(amount, "amount", allow_zero=False)

    def _op():
        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if not shift:
            raise NotFoundError(f"Shift {shift_id} not found", details={"shift_id": shift_id})
        entry = _append_entry(shift, kind, value, user_id, reason=(reason or "").strip() or None)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def record_sale(shift: Shift, order: Order, user_id: int) -> CashDrawerTransaction:
    """SALE entry for a paid cash order. Runs inside the caller's transaction."""
    return _append_entry(
        shift, DRAWER_SALE, order.total, user_id,
        reason=f"Sale {order.order_number}", order_id=order.id,
    )


def record_refund(shift: Shift, refund: Order, user_id: int) -> CashDrawerTransaction:
    """REFUND entry for |refund.total|. Runs inside the caller's transaction."""
    return _append_entry(
        shift, DRAWER_REFUND, abs(refund.total), user_id,
        reason=f"Refund {refund.order_number}", order_id=refund.id,
    )


def _entries(shift: Shift) -> list[CashDrawerTransaction]:
    db.session.flush()
    return db.session.query(CashDrawerTransaction).filter_by(shift_id=shift.id).all()


def compute_expected_cash(shift: Shift) -> Decimal:
    """starting_cash + sum(SALE) - sum(REFUND)."""
    entries = _entries(shift)
    sales = sum_money(e.amount for e in entries if e.kind == DRAWER_SALE)
    refunds = sum_money(e.amount for e in entries if e.kind == DRAWER_REFUND)
    return round_money(shift.starting_cash + sales - refunds)


# =============================================================================
# REPORTING
# =============================================================================

def get_shift_summary(shift_id: int) -> dict:
    """
    Read-side aggregation over the orders attached to a shift.

    Sales exclude refund mirrors and cancelled orders; a sale that was later
    refunded still counts as a sale, its refund shows under refunds of the
    shift that processed it.
    """
    shift = get_shift(shift_id)

    orders = db.session.query(Order).filter_by(shift_id=shift_id).order_by(Order.id).all()
    sales = [
        o for o in orders
        if not o.is_refund
        and o.status != ORDER_STATUS_CANCELLED
        and o.payment_status != PAYMENT_STATUS_PENDING
    ]
    refunds = [o for o in orders if o.is_refund]

    sales_by_method: dict[str, Decimal] = {}
    for order in sales:
        method = order.payment_method or "unknown"
        sales_by_method[method] = sales_by_method.get(method, ZERO) + order.total

    gross_sales = sum_money(o.total for o in sales)
    refund_total = sum_money(abs(o.total) for o in refunds)

    entries = _entries(shift)
    drawer_totals = {kind: ZERO for kind in sorted(DRAWER_KINDS)}
    for entry in entries:
        drawer_totals[entry.kind] += entry.amount

    expected = shift.expected_cash if not shift.is_open else compute_expected_cash(shift)

    return {
        "shift": shift.to_dict(),
        "order_count": len(sales),
        "refund_count": len(refunds),
        "gross_sales": str(round_money(gross_sales)),
        "sales_by_payment_method": {k: str(round_money(v)) for k, v in sorted(sales_by_method.items())},
        "discount_total": str(round_money(sum_money(o.discount_amount for o in sales))),
        "tax_total": str(round_money(sum_money(o.tax_amount for o in sales))),
        "refund_total": str(round_money(refund_total)),
        "net_sales": str(round_money(gross_sales - refund_total)),
        "drawer_totals": {k: str(round_money(v)) for k, v in drawer_totals.items()},
        "drawer_entry_count": len(entries),
        "expected_cash": str(round_money(expected)),
        "is_closed": shift.status == SHIFT_STATUS_CLOSED,
    }
