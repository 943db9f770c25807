"""
Order Lifecycle Service

================================================================================
PURPOSE: Enforce the kitchen/fulfilment state machine for committed orders
================================================================================

STATE MACHINE:
    PENDING -> PREPARING -> READY -> COMPLETED                 (non-delivery)
    PENDING -> PREPARING -> READY -> OUT_FOR_DELIVERY -> DELIVERED  (delivery)
    PENDING -> CANCELLED

    COMPLETED, DELIVERED, CANCELLED are terminal.
    CONFIRMED is a recognized status with no outbound or inbound edges.

PAYMENT STATUS:
    PENDING -> PAID       (mark_order_paid)
    PAID    -> REFUNDED   (refund_service only)

RULES:
1. Cannot skip states (PENDING -> READY is forbidden)
2. Cannot move backwards
3. A same-status request is rejected like any other illegal edge
================================================================================
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Order
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_OUT_FOR_DELIVERY,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PREPARING,
    ORDER_STATUS_READY,
    ORDER_STATUSES,
    ORDER_TYPE_DELIVERY,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
)
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, parse_amount
from . import shift_service
from .concurrency import lock_for_update, run_with_retry
from .pricing_service import compute_change

logger = logging.getLogger(__name__)

_BASE_TRANSITIONS = {
    ORDER_STATUS_PENDING: frozenset({ORDER_STATUS_PREPARING, ORDER_STATUS_CANCELLED}),
    ORDER_STATUS_PREPARING: frozenset({ORDER_STATUS_READY}),
    ORDER_STATUS_OUT_FOR_DELIVERY: frozenset({ORDER_STATUS_DELIVERED}),
}

TERMINAL_STATUSES = frozenset({ORDER_STATUS_COMPLETED, ORDER_STATUS_DELIVERED, ORDER_STATUS_CANCELLED})


def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(ORDER_STATUSES))}",
            details={"status": status},
        )


def allowed_transitions(order_type: str, status: str) -> frozenset[str]:
    """Statuses reachable in one step from `status` for an order of `order_type`."""
    if status == ORDER_STATUS_READY:
        if order_type == ORDER_TYPE_DELIVERY:
            return frozenset({ORDER_STATUS_OUT_FOR_DELIVERY})
        return frozenset({ORDER_STATUS_COMPLETED})
    return _BASE_TRANSITIONS.get(status, frozenset())


def can_transition(order_type: str, from_status: str, to_status: str) -> bool:
    return to_status in allowed_transitions(order_type, from_status)


def assert_transition(order_type: str, from_status: str, to_status: str) -> None:
    validate_status(to_status)
    if not can_transition(order_type, from_status, to_status):
        raise ConflictError(
            f"Cannot move order from {from_status} to {to_status}",
            details={
                "from_status": from_status,
                "to_status": to_status,
                "allowed": sorted(allowed_transitions(order_type, from_status)),
            },
        )


def _locked_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def transition_order_status(order_id: int, new_status: str, user_id: int | None = None) -> Order:
    """Move an order one step along its state machine."""
    new_status = (new_status or "").strip().upper()
    validate_status(new_status)

    def _op():
        order = _locked_order(order_id)
        if order.is_refund:
            raise ConflictError(
                f"Refund {order.order_number} has no fulfilment status",
                details={"order_id": order.id},
            )
        assert_transition(order.order_type, order.status, new_status)

        previous = order.status
        order.status = new_status
        order.updated_at = utcnow()
        db.session.commit()

        logger.info("Order %s moved %s -> %s by user %s", order.order_number, previous, new_status, user_id)
        return order

    return run_with_retry(_op)


def mark_order_paid(order_id: int, user_id: int, amount_tendered=None) -> Order:
    """
    Confirm payment of a PENDING order (online and phone orders paid on
    delivery or pickup).

    Cash payments with a tender must cover the total. When the acting user
    has an open shift, a cash payment lands in their drawer as a SALE entry.
    """
    tendered = parse_amount(amount_tendered, "amount_tendered", required=False)

    def _op():
        order = _locked_order(order_id)
        if order.is_refund or order.payment_status != PAYMENT_STATUS_PENDING:
            raise ConflictError(
                f"Order #{order.order_number} payment is already {order.payment_status}",
                details={"order_id": order.id, "payment_status": order.payment_status},
            )
        if order.status == ORDER_STATUS_CANCELLED:
            raise ConflictError(
                f"Order #{order.order_number} is cancelled",
                details={"order_id": order.id},
            )

        cash = shift_service.is_cash_method(order.payment_method)
        if cash and tendered is not None:
            change = compute_change(tendered, order.total)
            if change < 0:
                raise ValidationError(
                    "Amount tendered is less than the order total",
                    details={"order_id": order.id, "total": str(order.total), "amount_tendered": str(tendered)},
                )
            order.amount_tendered = tendered
            order.change_due = change

        order.payment_status = PAYMENT_STATUS_PAID
        order.paid_at = utcnow()

        if cash:
            shift = shift_service.get_open_shift(user_id)
            if shift:
                if order.shift_id is None:
                    order.shift_id = shift.id
                shift_service.record_sale(shift, order, user_id)

        db.session.commit()
        return order

    return run_with_retry(_op)
