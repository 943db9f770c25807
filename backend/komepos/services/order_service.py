"""
Order Commit Service

WHY: Turns a priced cart into a committed Order. Everything the register
shows at checkout is recomputed here from catalog and promotion rows, so a
stale or tampered client can never set its own prices.

DESIGN PRINCIPLES:
- One transaction per commit: order row, item rows and the drawer SALE
  entry land together or not at all
- Idempotent: a repeated client_request_id returns the order already
  committed instead of charging twice
- Monetary fields are copied from the PricingBreakdown and never
  re-derived afterwards
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Sequence

from flask import current_app
from sqlalchemy.exc import IntegrityError as DBIntegrityError

from ..extensions import db
from ..models import DeliveryZone, Location, Order, OrderItem
from ..models.orders import (
    CHANNEL_ONLINE,
    CHANNEL_REGISTER,
    CHANNELS,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PENDING,
    ORDER_TYPE_DELIVERY,
    ORDER_TYPES,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
)
from ..money import ZERO, round_money, to_decimal
from ..snapshots import ItemSnapshot
from ..time_utils import utcnow
from ..validation import ConflictError, IntegrityError, NotFoundError, ValidationError, parse_amount
from . import shift_service
from .cart_service import build_cart
from .concurrency import default_attempts, run_with_retry
from .document_service import DOCUMENT_TYPE_ORDER, next_document_number
from .pricing_service import (
    MANUAL_DISCOUNT_KINDS,
    CartLine,
    ManualDiscount,
    PricingBreakdown,
    calculate_totals,
    compute_change,
)
from .promotion_service import get_active_promotions

logger = logging.getLogger(__name__)

WALK_IN_NOTE = "Walk-in customer"
NOTE_SEPARATOR = " | "


# =============================================================================
# INPUT NORMALIZATION
# =============================================================================

def normalize_payment_method(method: str | None) -> str:
    value = (method or "").strip().lower()
    allowed = {m.lower() for m in current_app.config.get("PAYMENT_METHODS", ())}
    if not value or (allowed and value not in allowed):
        raise ValidationError(
            f"payment_method must be one of {sorted(allowed)}",
            details={"payment_method": method},
        )
    return value


def normalize_order_type(order_type: str | None) -> str:
    value = (order_type or "").strip().upper()
    if value not in ORDER_TYPES:
        raise ValidationError(
            f"order_type must be one of {sorted(ORDER_TYPES)}",
            details={"order_type": order_type},
        )
    return value


def parse_manual_discount(payload: dict | None) -> ManualDiscount | None:
    """{"kind": "PERCENT"|"FIXED", "value": "10", "description": "..."} or None."""
    if not payload:
        return None
    kind = str(payload.get("kind") or "").strip().upper()
    if kind not in MANUAL_DISCOUNT_KINDS:
        raise ValidationError(
            f"discount kind must be one of {sorted(MANUAL_DISCOUNT_KINDS)}",
            details={"kind": payload.get("kind")},
        )
    value = parse_amount(payload.get("value"), "discount value")
    if value == 0:
        return None
    return ManualDiscount(kind=kind, value=value, description=(payload.get("description") or None))


def _load_location(location_id: int) -> Location:
    location = db.session.get(Location, location_id)
    if not location or not location.is_active:
        raise NotFoundError(f"Location {location_id} not found", details={"location_id": location_id})
    return location


def _tax_rate_for(location: Location) -> Decimal:
    if location.company is not None and location.company.tax_rate is not None:
        return to_decimal(location.company.tax_rate)
    return to_decimal(current_app.config.get("DEFAULT_TAX_RATE"))


def _load_delivery_zone(location: Location, zone_id) -> DeliveryZone:
    zone = db.session.get(DeliveryZone, zone_id) if zone_id else None
    if not zone or not zone.is_active or zone.company_id != location.company_id:
        raise ValidationError("A valid delivery zone is required", details={"delivery_zone_id": zone_id})
    if zone.locations and location not in zone.locations:
        raise ValidationError(
            f"{zone.name} is not served from {location.name}",
            details={"delivery_zone_id": zone.id, "location_id": location.id},
        )
    return zone


def build_order_notes(
    *,
    channel: str,
    customer_id: int | None,
    manual_discount: ManualDiscount | None,
    breakdown: PricingBreakdown,
    zone: DeliveryZone | None,
    notes: str | None,
) -> str | None:
    parts = []
    if channel == CHANNEL_REGISTER and customer_id is None:
        parts.append(WALK_IN_NOTE)
    if manual_discount and breakdown.manual_discount_amount > 0:
        parts.append(manual_discount.label())
    if zone is not None:
        parts.append(f"Delivery Zone: {zone.name}")
    if notes and notes.strip():
        parts.append(notes.strip())
    return NOTE_SEPARATOR.join(parts) or None


# =============================================================================
# QUOTE
# =============================================================================

def price_cart(
    *,
    location_id: int,
    items: Sequence[dict],
    order_type: str,
    manual_discount: ManualDiscount | None = None,
    delivery_zone_id: int | None = None,
    on_date: date | None = None,
) -> tuple[list[CartLine], PricingBreakdown, DeliveryZone | None]:
    """Build and price a cart against today's promotions at the location."""
    location = _load_location(location_id)
    if not items:
        raise ValidationError("Cart is empty")

    promotions = get_active_promotions(location.id, on_date)
    lines = build_cart(list(items), promotions)

    zone = None
    delivery_charge = ZERO
    if order_type == ORDER_TYPE_DELIVERY:
        zone = _load_delivery_zone(location, delivery_zone_id)
        delivery_charge = round_money(zone.price)

    breakdown = calculate_totals(
        lines,
        manual_discount=manual_discount,
        order_type=order_type,
        delivery_charge=delivery_charge,
        tax_rate=_tax_rate_for(location),
        order_promotions=promotions,
    )
    return lines, breakdown, zone


def quote_order(
    *,
    location_id: int,
    items: Sequence[dict],
    order_type: str,
    manual_discount: ManualDiscount | None = None,
    delivery_zone_id: int | None = None,
    amount_tendered=None,
) -> dict:
    order_type = normalize_order_type(order_type)
    lines, breakdown, zone = price_cart(
        location_id=location_id,
        items=items,
        order_type=order_type,
        manual_discount=manual_discount,
        delivery_zone_id=delivery_zone_id,
    )
    result = breakdown.to_dict()
    result["lines"] = [_line_to_dict(line) for line in lines]
    result["delivery_zone"] = zone.to_dict() if zone else None
    tendered = parse_amount(amount_tendered, "amount_tendered", required=False)
    if tendered is not None:
        result["change_due"] = str(compute_change(tendered, breakdown.total))
    return result


def _line_to_dict(line: CartLine) -> dict:
    return {
        "product_id": line.product_id,
        "product_name": line.product_name,
        "quantity": line.quantity,
        "unit_price": str(line.unit_price),
        "line_total": str(line.line_total),
        "promo_discount_per_unit": str(round_money(line.promo_discount_per_unit)),
        "promotion_id": line.promotion_id,
        "promotion_name": line.promotion_name,
        "is_taxable": line.is_taxable,
        "options": [o.to_dict() for o in line.selected_options],
        "addons": [a.to_dict() for a in line.selected_addons],
        "notes": line.notes,
    }


# =============================================================================
# COMMIT
# =============================================================================

def find_by_client_request_id(client_request_id: str | None) -> Order | None:
    if not client_request_id:
        return None
    return db.session.query(Order).filter_by(client_request_id=client_request_id).first()


def find_replayed_order(client_request_id: str | None) -> Order | None:
    """
    The sale already committed under `client_request_id`, or None.

    A key held by a refund mirror belongs to a different operation and is
    rejected instead of replayed.
    """
    existing = find_by_client_request_id(client_request_id)
    if existing is not None and existing.is_refund:
        raise ConflictError(
            f"client_request_id {client_request_id} was already used by refund {existing.order_number}",
            details={"client_request_id": client_request_id, "order_id": existing.id},
        )
    return existing


def _initial_statuses(channel: str, order_type: str) -> tuple[str, str]:
    if channel == CHANNEL_ONLINE:
        return ORDER_STATUS_PENDING, PAYMENT_STATUS_PENDING
    if order_type == ORDER_TYPE_DELIVERY:
        return ORDER_STATUS_PENDING, PAYMENT_STATUS_PAID
    return ORDER_STATUS_COMPLETED, PAYMENT_STATUS_PAID


def commit_order(
    *,
    location_id: int,
    user_id: int | None,
    items: Sequence[dict],
    order_type: str,
    payment_method: str,
    channel: str = CHANNEL_REGISTER,
    manual_discount: ManualDiscount | None = None,
    delivery_zone_id: int | None = None,
    customer_id: int | None = None,
    amount_tendered=None,
    notes: str | None = None,
    client_request_id: str | None = None,
    on_date: date | None = None,
) -> Order:
    """
    Price and persist an order in a single transaction.

    Raises:
        ValidationError: empty cart, bad selections, missing delivery zone,
            cash tendered below total
        ConflictError: no unique order number after the retry budget
        IntegrityError: the flushed order does not hold every cart line
    """
    order_type = normalize_order_type(order_type)
    payment_method = normalize_payment_method(payment_method)
    channel = (channel or CHANNEL_REGISTER).strip().upper()
    if channel not in CHANNELS:
        raise ValidationError(f"channel must be one of {sorted(CHANNELS)}", details={"channel": channel})
    tendered = parse_amount(amount_tendered, "amount_tendered", required=False)
    client_request_id = (client_request_id or "").strip() or None

    existing = find_replayed_order(client_request_id)
    if existing:
        logger.info("Replaying order %s for request %s", existing.order_number, client_request_id)
        return existing

    prefix = current_app.config.get("ORDER_NUMBER_PREFIX", "ORD")

    def _op():
        lines, breakdown, zone = price_cart(
            location_id=location_id,
            items=items,
            order_type=order_type,
            manual_discount=manual_discount,
            delivery_zone_id=delivery_zone_id,
            on_date=on_date,
        )

        status, payment_status = _initial_statuses(channel, order_type)
        cash = shift_service.is_cash_method(payment_method)

        change_due = None
        if payment_status == PAYMENT_STATUS_PAID and cash and tendered is not None:
            change_due = compute_change(tendered, breakdown.total)
            if change_due < 0:
                raise ValidationError(
                    "Amount tendered is less than the order total",
                    details={"total": str(breakdown.total), "amount_tendered": str(tendered)},
                )

        order_number = next_document_number(
            location_id=location_id,
            document_type=DOCUMENT_TYPE_ORDER,
            prefix=prefix,
        )

        shift = None
        if channel == CHANNEL_REGISTER and user_id is not None:
            shift = shift_service.get_open_shift(user_id)
        if shift is not None:
            shift_service.claim_open_shift(shift)

        now = utcnow()
        order = Order(
            order_number=order_number,
            client_request_id=client_request_id,
            status=status,
            order_type=order_type,
            channel=channel,
            payment_method=payment_method,
            payment_status=payment_status,
            subtotal=breakdown.subtotal,
            discount_amount=breakdown.discount_amount,
            delivery_fee=breakdown.delivery_charge,
            tax_amount=breakdown.tax,
            total=breakdown.total,
            tax_rate=breakdown.tax_rate,
            amount_tendered=tendered if change_due is not None else None,
            change_due=change_due,
            customer_id=customer_id,
            location_id=location_id,
            user_id=user_id,
            shift_id=shift.id if shift else None,
            delivery_zone_id=zone.id if zone else None,
            notes=build_order_notes(
                channel=channel,
                customer_id=customer_id,
                manual_discount=manual_discount,
                breakdown=breakdown,
                zone=zone,
                notes=notes,
            ),
            created_at=now,
            updated_at=now,
            paid_at=now if payment_status == PAYMENT_STATUS_PAID else None,
        )
        db.session.add(order)
        db.session.flush()

        for line in lines:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
                promo_discount_per_unit=round_money(line.promo_discount_per_unit),
                promotion_id=line.promotion_id,
                is_taxable=line.is_taxable,
                snapshot=ItemSnapshot(options=line.selected_options, addons=line.selected_addons).to_json(),
                item_notes=line.notes,
                created_at=now,
            ))
        db.session.flush()
        verify_order_integrity(order, expected_items=len(lines))

        if shift and payment_status == PAYMENT_STATUS_PAID and cash:
            shift_service.record_sale(shift, order, user_id)

        db.session.commit()
        return order

    attempts = default_attempts()
    for attempt in range(attempts):
        try:
            return run_with_retry(_op)
        except DBIntegrityError as exc:
            db.session.rollback()
            replay = find_replayed_order(client_request_id)
            if replay:
                logger.info("Replaying order %s for request %s after concurrent commit",
                            replay.order_number, client_request_id)
                return replay
            if attempt >= attempts - 1:
                raise ConflictError(
                    "Could not allocate a unique order number",
                    details={"location_id": location_id},
                ) from exc
            logger.warning("Order commit collided (attempt %d of %d), retrying", attempt + 1, attempts)


def verify_order_integrity(order: Order, expected_items: int | None = None) -> None:
    """Raise IntegrityError when an order is missing items or its totals disagree."""
    count = db.session.query(OrderItem).filter_by(order_id=order.id).count()
    if count == 0 or (expected_items is not None and count != expected_items):
        raise IntegrityError(
            f"Order {order.order_number} has {count} item(s), expected {expected_items}",
            details={"order_id": order.id, "item_count": count, "expected": expected_items},
        )
    if round_money(order.subtotal + order.tax_amount) != round_money(order.total):
        raise IntegrityError(
            f"Order {order.order_number} total does not match subtotal plus tax",
            details={"order_id": order.id},
        )


# =============================================================================
# READ
# =============================================================================

def get_order(order_id: int, company_id: int | None = None) -> Order:
    """Load an order. With `company_id`, another company's order reads as missing."""
    order = db.session.get(Order, order_id)
    if not order or (company_id is not None and order.location.company_id != company_id):
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def get_order_by_number(order_number: str) -> Order:
    order = db.session.query(Order).filter_by(order_number=order_number).first()
    if not order:
        raise NotFoundError(f"Order {order_number} not found", details={"order_number": order_number})
    return order
