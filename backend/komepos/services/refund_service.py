"""
Refund Service

WHY: A refund must reconcile exactly against the sale it reverses, no
matter how tax rates or promotions changed since. It is therefore a
sign-inverted mirror of the committed order, never a re-priced cart.

DESIGN PRINCIPLES:
- Mirror, don't recompute: subtotal, delivery_fee, tax_amount and total
  are negated; discount_amount is copied as history
- The ledger mirror and the disbursement method are separate fields; the
  customer may be paid back with a different method than they paid with
- One transaction: mirror order, mirror items, original's payment status
  flip and drawer REFUND entry
- A second refund is impossible: refund_of_order_id is unique and the
  original's version_id catches concurrent flips
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from ..extensions import db
from ..models import Order, OrderItem
from ..models.orders import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_DELIVERED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_REFUNDED,
)
from ..money import round_money
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError
from . import shift_service
from .concurrency import default_attempts, lock_for_update, run_with_retry
from .document_service import DOCUMENT_TYPE_REFUND, next_document_number
from .order_service import find_by_client_request_id, normalize_payment_method, verify_order_integrity

logger = logging.getLogger(__name__)

REFUNDABLE_STATUSES = {ORDER_STATUS_COMPLETED, ORDER_STATUS_DELIVERED}


def _assert_refundable(original: Order) -> None:
    if original.is_refund:
        raise ConflictError(
            f"Order #{original.order_number} is itself a refund",
            details={"order_id": original.id, "order_number": original.order_number},
        )
    if original.payment_status == PAYMENT_STATUS_REFUNDED or original.refund is not None:
        raise ConflictError(
            f"Order #{original.order_number} already refunded",
            details={"order_id": original.id, "order_number": original.order_number},
        )
    if original.status not in REFUNDABLE_STATUSES:
        raise ConflictError(
            f"Order #{original.order_number} is {original.status} and cannot be refunded",
            details={"order_id": original.id, "status": original.status},
        )
    if original.payment_status != PAYMENT_STATUS_PAID:
        raise ConflictError(
            f"Order #{original.order_number} has not been paid",
            details={"order_id": original.id, "payment_status": original.payment_status},
        )


def _replayed_refund(client_request_id: str | None, order_id: int) -> Order | None:
    """The refund already made for `order_id` under this key, or None."""
    existing = find_by_client_request_id(client_request_id)
    if existing is not None and existing.refund_of_order_id != order_id:
        raise ConflictError(
            f"client_request_id {client_request_id} was already used by order {existing.order_number}",
            details={"client_request_id": client_request_id, "order_id": existing.id},
        )
    return existing


def _refund_notes(original: Order, reason: str | None) -> str:
    note = f"Refund of order #{original.order_number}"
    if reason:
        note = f"{note} | {reason}"
    return note


def refund_order(
    order_id: int,
    user_id: int,
    disbursement_method: str | None = None,
    reason: str | None = None,
    client_request_id: str | None = None,
) -> Order:
    """
    Refund a completed, paid order in full.

    Returns the mirror order. Raises ConflictError when the order was
    already refunded or is not in a refundable state.
    """
    client_request_id = (client_request_id or "").strip() or None
    reason = (reason or "").strip() or None

    existing = _replayed_refund(client_request_id, order_id)
    if existing:
        logger.info("Replaying refund %s for request %s", existing.order_number, client_request_id)
        return existing

    original = db.session.get(Order, order_id)
    if not original:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    _assert_refundable(original)

    location_id = original.location_id
    method = normalize_payment_method(disbursement_method or original.payment_method)
    prefix = current_app.config.get("REFUND_NUMBER_PREFIX", "REF")

    def _op():
        refund_number = next_document_number(
            location_id=location_id,
            document_type=DOCUMENT_TYPE_REFUND,
            prefix=prefix,
        )

        locked = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        _assert_refundable(locked)

        shift = shift_service.get_open_shift(user_id) if user_id is not None else None
        if shift is not None:
            shift_service.claim_open_shift(shift)

        now = utcnow()

        mirror = Order(
            order_number=refund_number,
            client_request_id=client_request_id,
            status=ORDER_STATUS_COMPLETED,
            order_type=locked.order_type,
            channel=locked.channel,
            payment_method=locked.payment_method,
            payment_status=PAYMENT_STATUS_REFUNDED,
            disbursement_method=method,
            subtotal=-locked.subtotal,
            discount_amount=locked.discount_amount,
            delivery_fee=-locked.delivery_fee,
            tax_amount=-locked.tax_amount,
            total=-locked.total,
            tax_rate=locked.tax_rate,
            customer_id=locked.customer_id,
            location_id=locked.location_id,
            user_id=user_id,
            shift_id=shift.id if shift else None,
            delivery_zone_id=locked.delivery_zone_id,
            notes=_refund_notes(locked, reason),
            refund_of_order_id=locked.id,
            refund_reason=reason,
            created_at=now,
            updated_at=now,
            paid_at=now,
        )
        db.session.add(mirror)
        db.session.flush()

        originals = db.session.query(OrderItem).filter_by(order_id=locked.id).order_by(OrderItem.id).all()
        for item in originals:
            unit_price = -abs(item.unit_price)
            db.session.add(OrderItem(
                order_id=mirror.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=unit_price,
                line_total=round_money(unit_price * item.quantity),
                promo_discount_per_unit=item.promo_discount_per_unit,
                promotion_id=item.promotion_id,
                is_taxable=item.is_taxable,
                snapshot=dict(item.snapshot or {}),
                item_notes=item.item_notes,
                created_at=now,
            ))
        db.session.flush()
        verify_order_integrity(mirror, expected_items=len(originals))

        locked.payment_status = PAYMENT_STATUS_REFUNDED
        locked.updated_at = now

        if shift and shift_service.is_cash_method(method):
            shift_service.record_refund(shift, mirror, user_id)

        db.session.commit()
        logger.info("Order %s refunded as %s by user %s", locked.order_number, mirror.order_number, user_id)
        return mirror

    attempts = default_attempts()
    for attempt in range(attempts):
        try:
            return run_with_retry(_op)
        except DBIntegrityError as exc:
            db.session.rollback()
            replay = _replayed_refund(client_request_id, order_id)
            if replay:
                return replay
            current = db.session.get(Order, order_id)
            _assert_refundable(current)
            if attempt >= attempts - 1:
                raise ConflictError(
                    "Could not allocate a unique refund number",
                    details={"order_id": order_id},
                ) from exc
            logger.warning("Refund commit collided (attempt %d of %d), retrying", attempt + 1, attempts)
