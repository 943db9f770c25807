"""
Pricing Calculator

WHY: One place turns a cart into money. Quotes shown to the cashier and the
numbers persisted at commit come from the same function, so the receipt
can never disagree with the screen.

DESIGN PRINCIPLES:
- Pure: no database, no clock, no config lookups. Tax rate and delivery
  charge are passed in.
- Decimal end to end. Subtotals, discounts and tax are rounded half-up to
  cents when finalized; the discount ratio keeps full precision.
- Business input is clamped, never rejected. A negative quantity or an
  oversized manual discount must not block a cashier mid-sale.

ORDER OF OPERATIONS:
1. items_subtotal_full      = sum(unit_price * quantity)
2. promo_discount_total     = sum(promo_discount_per_unit * quantity)
3. order promotion + manual discount on the post-promo subtotal
4. discount_amount          = item promos + order promo + manual
5. delivery charge (DELIVERY orders only, zeroed by FREE_DELIVERY)
6. proportional tax: the discount is spread over taxable and non-taxable
   value by their share of items_subtotal_full
7. total                    = subtotal + tax
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Sequence

from ..models.orders import ORDER_TYPE_DELIVERY
from ..money import ZERO, clamp, clamp_non_negative, percent_of, round_money, sum_money, to_decimal
from ..snapshots import AddOnSelection, OptionSelection
from . import promotion_service

MANUAL_DISCOUNT_PERCENT = "PERCENT"
MANUAL_DISCOUNT_FIXED = "FIXED"
MANUAL_DISCOUNT_KINDS = {MANUAL_DISCOUNT_PERCENT, MANUAL_DISCOUNT_FIXED}

ONE = Decimal("1")


@dataclass(frozen=True)
class CartLine:
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int
    is_taxable: bool = True
    promo_discount_per_unit: Decimal = ZERO
    promotion_id: int | None = None
    promotion_name: str | None = None
    selected_options: tuple[OptionSelection, ...] = field(default_factory=tuple)
    selected_addons: tuple[AddOnSelection, ...] = field(default_factory=tuple)
    notes: str | None = None

    @property
    def safe_quantity(self) -> int:
        return self.quantity if self.quantity > 0 else 0

    @property
    def safe_unit_price(self) -> Decimal:
        return clamp_non_negative(to_decimal(self.unit_price))

    @property
    def line_total(self) -> Decimal:
        return round_money(self.safe_unit_price * self.safe_quantity)

    @property
    def line_discount(self) -> Decimal:
        """Promo discount for the whole line, never above the line total."""
        per_unit = clamp(to_decimal(self.promo_discount_per_unit), ZERO, self.safe_unit_price)
        return round_money(per_unit * self.safe_quantity)


@dataclass(frozen=True)
class ManualDiscount:
    kind: str
    value: Decimal
    description: str | None = None

    def amount_for(self, base: Decimal) -> Decimal:
        value = clamp_non_negative(to_decimal(self.value))
        if self.kind == MANUAL_DISCOUNT_PERCENT:
            return round_money(percent_of(base, value))
        if self.kind == MANUAL_DISCOUNT_FIXED:
            return round_money(value)
        return ZERO

    def label(self) -> str:
        value = to_decimal(self.value)
        if self.kind == MANUAL_DISCOUNT_PERCENT:
            text = f"Discount: {value.normalize():f}%"
        else:
            text = f"Discount: ${round_money(value)}"
        if self.description:
            text = f"{text} ({self.description})"
        return text


@dataclass(frozen=True)
class AppliedPromotion:
    promotion_id: int | None
    name: str
    amount: Decimal
    scope: str  # ITEM, ORDER or DELIVERY

    def to_dict(self) -> dict:
        return {
            "promotion_id": self.promotion_id,
            "name": self.name,
            "amount": str(round_money(self.amount)),
            "scope": self.scope,
        }


@dataclass(frozen=True)
class PricingBreakdown:
    items_subtotal_full: Decimal
    promo_discount_total: Decimal
    items_subtotal_after_promo: Decimal
    order_promo_discount: Decimal
    manual_discount_amount: Decimal
    discount_amount: Decimal
    subtotal_after_discount: Decimal
    delivery_charge: Decimal
    subtotal: Decimal
    taxable_items_full: Decimal
    discount_ratio: Decimal
    taxable_after_discount: Decimal
    taxable_base: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    free_delivery: bool = False
    applied_promotions: tuple[AppliedPromotion, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "items_subtotal_full": str(self.items_subtotal_full),
            "promo_discount_total": str(self.promo_discount_total),
            "items_subtotal_after_promo": str(self.items_subtotal_after_promo),
            "order_promo_discount": str(self.order_promo_discount),
            "manual_discount_amount": str(self.manual_discount_amount),
            "discount_amount": str(self.discount_amount),
            "subtotal_after_discount": str(self.subtotal_after_discount),
            "delivery_charge": str(self.delivery_charge),
            "subtotal": str(self.subtotal),
            "taxable_base": str(round_money(self.taxable_base)),
            "tax_rate": str(self.tax_rate),
            "tax": str(self.tax),
            "total": str(self.total),
            "free_delivery": self.free_delivery,
            "applied_promotions": [p.to_dict() for p in self.applied_promotions],
        }


def _item_promotions_applied(lines: Sequence[CartLine]) -> list[AppliedPromotion]:
    totals: dict[int | None, list] = {}
    for line in lines:
        if line.promotion_id is None:
            continue
        discount = line.line_discount
        if discount <= 0:
            continue
        entry = totals.setdefault(line.promotion_id, [line.promotion_name or "", ZERO])
        entry[1] += discount
    return [
        AppliedPromotion(promotion_id=pid, name=name, amount=amount, scope="ITEM")
        for pid, (name, amount) in sorted(totals.items(), key=lambda kv: kv[0] or 0)
    ]


def calculate_totals(
    lines: Iterable[CartLine],
    manual_discount: ManualDiscount | None = None,
    order_type: str | None = None,
    delivery_charge: Decimal | None = None,
    tax_rate: Decimal | None = None,
    order_promotions: Sequence = (),
) -> PricingBreakdown:
    """
    Price a cart.

    `tax_rate` is a fraction (0.07 for 7%). `order_promotions` may hold any
    already-active promotions; only order-level and free-delivery kinds are
    considered here, item promotions arrive pre-applied on the lines.
    """
    lines = list(lines)
    rate = clamp_non_negative(to_decimal(tax_rate))

    items_subtotal_full = sum_money(line.line_total for line in lines)
    promo_discount_total = sum_money(line.line_discount for line in lines)
    items_subtotal_after_promo = clamp_non_negative(items_subtotal_full - promo_discount_total)

    applied = _item_promotions_applied(lines)

    # Order-level promotion
    order_promo_discount = ZERO
    order_promo = promotion_service.resolve_order_discount(order_promotions, items_subtotal_after_promo)
    if order_promo:
        order_promo_discount = order_promo.amount
        applied.append(AppliedPromotion(
            promotion_id=order_promo.promotion_id,
            name=order_promo.promotion_name,
            amount=order_promo.amount,
            scope="ORDER",
        ))

    # Manual discount
    manual_discount_amount = ZERO
    if manual_discount:
        room = clamp_non_negative(items_subtotal_after_promo - order_promo_discount)
        manual_discount_amount = clamp(manual_discount.amount_for(items_subtotal_after_promo), ZERO, room)

    discount_amount = promo_discount_total + order_promo_discount + manual_discount_amount
    subtotal_after_discount = clamp_non_negative(items_subtotal_full - discount_amount)

    # Delivery
    charge = ZERO
    free_delivery = False
    if order_type == ORDER_TYPE_DELIVERY:
        charge = round_money(clamp_non_negative(to_decimal(delivery_charge)))
        promo = promotion_service.find_free_delivery(order_promotions, items_subtotal_after_promo)
        if promo is not None and charge > 0:
            applied.append(AppliedPromotion(
                promotion_id=promo.id, name=promo.name, amount=charge, scope="DELIVERY",
            ))
            charge = ZERO
            free_delivery = True

    subtotal = subtotal_after_discount + charge

    # Proportional tax
    taxable_items_full = sum_money(line.line_total for line in lines if line.is_taxable)
    if items_subtotal_full > 0:
        discount_ratio = clamp(discount_amount / items_subtotal_full, ZERO, ONE)
    else:
        discount_ratio = ZERO
    taxable_after_discount = taxable_items_full * (ONE - discount_ratio)
    taxable_base = taxable_after_discount + charge
    tax = round_money(taxable_base * rate)

    total = subtotal + tax

    return PricingBreakdown(
        items_subtotal_full=items_subtotal_full,
        promo_discount_total=promo_discount_total,
        items_subtotal_after_promo=items_subtotal_after_promo,
        order_promo_discount=order_promo_discount,
        manual_discount_amount=manual_discount_amount,
        discount_amount=discount_amount,
        subtotal_after_discount=subtotal_after_discount,
        delivery_charge=charge,
        subtotal=subtotal,
        taxable_items_full=taxable_items_full,
        discount_ratio=discount_ratio,
        taxable_after_discount=taxable_after_discount,
        taxable_base=taxable_base,
        tax_rate=rate,
        tax=tax,
        total=total,
        free_delivery=free_delivery,
        applied_promotions=tuple(applied),
    )


def compute_change(amount_tendered: Decimal, total: Decimal) -> Decimal:
    """Change owed to the customer. Negative means the tender is short."""
    return round_money(to_decimal(amount_tendered) - to_decimal(total))
