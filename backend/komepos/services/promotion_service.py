"""
Promotion Resolver

WHY: Decide which promotion discounts a product or an order, without
knowing anything about carts, quantities or persistence.

DESIGN PRINCIPLES:
- Pure functions over an already-loaded promotion list
- Deterministic overlap rule: the largest discount wins, equal discounts
  go to the lowest promotion id. Caller ordering never matters.
- Never raises for bad business data: negative values clamp to zero,
  fixed discounts are capped at the price they discount
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from ..extensions import db
from ..models import Location, Promotion
from ..models.promotions import (
    ITEM_KINDS,
    KIND_FREE_DELIVERY,
    KIND_ITEM_FIXED,
    KIND_ITEM_PERCENTAGE,
    KIND_ORDER_FIXED,
    KIND_ORDER_PERCENTAGE,
    ORDER_KINDS,
)
from ..money import ZERO, clamp, clamp_non_negative, percent_of, round_money, to_decimal
from ..time_utils import today_in_timezone

STATUS_INACTIVE = "INACTIVE"
STATUS_SCHEDULED = "SCHEDULED"
STATUS_EXPIRED = "EXPIRED"
STATUS_ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class ItemDiscount:
    promotion_id: int | None
    promotion_name: str
    discount_per_unit: Decimal


@dataclass(frozen=True)
class OrderDiscount:
    promotion_id: int | None
    promotion_name: str
    amount: Decimal


# =============================================================================
# WINDOW / ELIGIBILITY
# =============================================================================

def is_promotion_active(promotion, on_date: date) -> bool:
    """Inclusive date window: start_date <= on_date <= end_date (open-ended if no end)."""
    if not promotion.is_active:
        return False
    if promotion.start_date and on_date < promotion.start_date:
        return False
    if promotion.end_date and on_date > promotion.end_date:
        return False
    return True


def promotion_status(promotion, on_date: date) -> str:
    if not promotion.is_active:
        return STATUS_INACTIVE
    if promotion.start_date and on_date < promotion.start_date:
        return STATUS_SCHEDULED
    if promotion.end_date and on_date > promotion.end_date:
        return STATUS_EXPIRED
    return STATUS_ACTIVE


def applies_to_location(promotion, location_id: int | None) -> bool:
    eligible = promotion.eligible_location_ids or []
    if not eligible:
        return True
    return location_id in eligible


def get_active_promotions(location_id: int, on_date: date | None = None) -> list[Promotion]:
    """
    Load promotions active at a location on a business date.

    `on_date` defaults to today in the location's own time zone, so a
    promotion ending "today" is still honored at 11pm local time even though
    the UTC date has already rolled over.
    """
    location = db.session.get(Location, location_id)
    if not location:
        return []

    if on_date is None:
        on_date = today_in_timezone(location.effective_timezone)

    candidates = (
        db.session.query(Promotion)
        .filter(
            Promotion.company_id == location.company_id,
            Promotion.is_active.is_(True),
            Promotion.start_date <= on_date,
            db.or_(Promotion.end_date.is_(None), Promotion.end_date >= on_date),
        )
        .order_by(Promotion.id)
        .all()
    )
    return [p for p in candidates if applies_to_location(p, location_id)]


# =============================================================================
# ITEM-LEVEL RESOLUTION
# =============================================================================

def item_discount_amount(promotion, base_price: Decimal) -> Decimal:
    """Per-unit discount a single item promotion gives on `base_price`."""
    base_price = clamp_non_negative(to_decimal(base_price))
    value = clamp_non_negative(to_decimal(promotion.discount_value))

    if promotion.discount_kind == KIND_ITEM_PERCENTAGE:
        amount = round_money(percent_of(base_price, value))
    elif promotion.discount_kind == KIND_ITEM_FIXED:
        amount = round_money(value)
    else:
        return ZERO
    return clamp(amount, ZERO, base_price)


def _matches_product(promotion, product_id: int) -> bool:
    return (
        promotion.discount_kind in ITEM_KINDS
        and product_id in (promotion.eligible_product_ids or [])
    )


def resolve_item_discount(
    promotions: Iterable,
    product_id: int,
    base_price: Decimal,
) -> ItemDiscount | None:
    """
    Best per-unit discount for one product, or None.

    Item promotions match when the product id is listed in
    `eligible_product_ids`. With several matches the largest discount wins,
    ties going to the lowest promotion id.
    """
    best: tuple[Decimal, int, object] | None = None
    for promo in promotions:
        if not _matches_product(promo, product_id):
            continue
        amount = item_discount_amount(promo, base_price)
        key = (amount, -(promo.id or 0))
        if best is None or key > (best[0], -(best[1] or 0)):
            best = (amount, promo.id, promo)

    if best is None or best[0] <= 0:
        return None
    return ItemDiscount(
        promotion_id=best[1],
        promotion_name=best[2].name,
        discount_per_unit=best[0],
    )


# =============================================================================
# ORDER-LEVEL RESOLUTION
# =============================================================================

def _meets_minimum(promotion, items_subtotal: Decimal) -> bool:
    minimum = promotion.min_order_amount
    if minimum is None:
        return True
    return items_subtotal >= to_decimal(minimum)


def order_discount_amount(promotion, items_subtotal: Decimal) -> Decimal:
    items_subtotal = clamp_non_negative(to_decimal(items_subtotal))
    value = clamp_non_negative(to_decimal(promotion.discount_value))

    if promotion.discount_kind == KIND_ORDER_PERCENTAGE:
        amount = round_money(percent_of(items_subtotal, value))
    elif promotion.discount_kind == KIND_ORDER_FIXED:
        amount = round_money(value)
    else:
        return ZERO
    return clamp(amount, ZERO, items_subtotal)


def resolve_order_discount(promotions: Iterable, items_subtotal: Decimal) -> OrderDiscount | None:
    """Best single order-level promotion for the post-item-promo subtotal."""
    best = None
    for promo in promotions:
        if promo.discount_kind not in ORDER_KINDS:
            continue
        if not _meets_minimum(promo, items_subtotal):
            continue
        amount = order_discount_amount(promo, items_subtotal)
        if amount <= 0:
            continue
        if best is None or (amount, -(promo.id or 0)) > (best.amount, -(best.promotion_id or 0)):
            best = OrderDiscount(promotion_id=promo.id, promotion_name=promo.name, amount=amount)
    return best


def find_free_delivery(promotions: Sequence, items_subtotal: Decimal):
    """First applicable FREE_DELIVERY promotion by id, or None."""
    matches = [
        p for p in promotions
        if p.discount_kind == KIND_FREE_DELIVERY and _meets_minimum(p, items_subtotal)
    ]
    if not matches:
        return None
    return min(matches, key=lambda p: p.id or 0)


def has_free_delivery(promotions: Sequence, items_subtotal: Decimal) -> bool:
    return find_free_delivery(promotions, items_subtotal) is not None
