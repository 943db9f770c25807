# Overview: Pytest coverage for the pure pricing calculator.

from decimal import Decimal
from types import SimpleNamespace

from komepos.models.orders import ORDER_TYPE_DELIVERY, ORDER_TYPE_DINE_IN, ORDER_TYPE_TAKEOUT
from komepos.models.promotions import KIND_FREE_DELIVERY, KIND_ITEM_FIXED, KIND_ORDER_FIXED
from komepos.services.pricing_service import (
    MANUAL_DISCOUNT_FIXED,
    MANUAL_DISCOUNT_PERCENT,
    CartLine,
    ManualDiscount,
    calculate_totals,
    compute_change,
)
from komepos.services.promotion_service import resolve_item_discount

D = Decimal
RATE = D("0.07")


def line(price, qty=1, taxable=True, promo=D("0"), product_id=1):
    return CartLine(
        product_id=product_id,
        product_name=f"Item {product_id}",
        unit_price=D(price),
        quantity=qty,
        is_taxable=taxable,
        promo_discount_per_unit=D(promo),
        promotion_id=1 if D(promo) else None,
        promotion_name="Promo" if D(promo) else None,
    )


class TestCalculateTotals:
    """End to end pricing scenarios."""

    def test_mixed_taxability_with_percent_discount(self):
        """Two taxable $8 items, one non-taxable $5 item, 10% off, 7% tax."""
        lines = [line("8.00", 2), line("5.00", 1, taxable=False, product_id=2)]

        result = calculate_totals(
            lines,
            manual_discount=ManualDiscount(MANUAL_DISCOUNT_PERCENT, D("10")),
            order_type=ORDER_TYPE_DINE_IN,
            tax_rate=RATE,
        )

        assert result.items_subtotal_full == D("21.00")
        assert result.manual_discount_amount == D("2.10")
        assert result.discount_amount == D("2.10")
        assert result.subtotal == D("18.90")
        assert result.taxable_after_discount == D("14.40")
        assert result.tax == D("1.01")
        assert result.total == D("19.91")

    def test_discount_spread_proportionally_over_taxable_value(self):
        lines = [line("10.00"), line("10.00", taxable=False, product_id=2)]

        result = calculate_totals(
            lines,
            manual_discount=ManualDiscount(MANUAL_DISCOUNT_FIXED, D("10.00")),
            tax_rate=RATE,
        )

        assert result.subtotal == D("10.00")
        assert result.taxable_base == D("5.00")
        assert result.tax == D("0.35")
        assert result.total == D("10.35")

    def test_item_fixed_promotion_per_unit(self):
        promos = [SimpleNamespace(
            id=1, name="$2 off gyoza", discount_kind=KIND_ITEM_FIXED, discount_value=D("2.00"),
            eligible_product_ids=[7],
        )]
        discount = resolve_item_discount(promos, 7, D("6.00"))
        gyoza = line("6.00", 3, promo=discount.discount_per_unit, product_id=7)

        result = calculate_totals([gyoza], tax_rate=D("0"))

        assert gyoza.line_discount == D("6.00")
        assert result.promo_discount_total == D("6.00")
        assert result.items_subtotal_after_promo == D("12.00")
        assert result.total == D("12.00")
        assert [p.scope for p in result.applied_promotions] == ["ITEM"]

    def test_delivery_charge_is_taxed(self):
        result = calculate_totals(
            [line("47.00")], order_type=ORDER_TYPE_DELIVERY, delivery_charge=D("3.00"), tax_rate=RATE)

        assert result.delivery_charge == D("3.00")
        assert result.subtotal == D("50.00")
        assert result.tax == D("3.50")
        assert result.total == D("53.50")

    def test_delivery_charge_ignored_for_other_types(self):
        result = calculate_totals(
            [line("10.00")], order_type=ORDER_TYPE_TAKEOUT, delivery_charge=D("3.00"), tax_rate=RATE)
        assert result.delivery_charge == D("0")
        assert result.total == D("10.70")

    def test_free_delivery_promotion_zeroes_charge(self):
        free = SimpleNamespace(id=4, name="Free delivery", discount_kind=KIND_FREE_DELIVERY,
                               discount_value=D("0"), min_order_amount=None)

        result = calculate_totals(
            [line("20.00")], order_type=ORDER_TYPE_DELIVERY, delivery_charge=D("3.00"),
            tax_rate=RATE, order_promotions=[free])

        assert result.free_delivery is True
        assert result.delivery_charge == D("0")
        assert result.total == D("21.40")
        assert [(p.scope, p.amount) for p in result.applied_promotions] == [("DELIVERY", D("3.00"))]

    def test_order_promotion_then_manual_discount(self):
        order_promo = SimpleNamespace(id=2, name="$5 off", discount_kind=KIND_ORDER_FIXED,
                                      discount_value=D("5.00"), min_order_amount=None)

        result = calculate_totals(
            [line("20.00")],
            manual_discount=ManualDiscount(MANUAL_DISCOUNT_PERCENT, D("10")),
            tax_rate=D("0"),
            order_promotions=[order_promo],
        )

        assert result.order_promo_discount == D("5.00")
        # Percent discounts are taken on the post-item-promo subtotal
        assert result.manual_discount_amount == D("2.00")
        assert result.total == D("13.00")


class TestClamping:
    """Bad business input never produces negative money."""

    def test_oversized_manual_discount_clamped(self):
        result = calculate_totals(
            [line("10.00")], manual_discount=ManualDiscount(MANUAL_DISCOUNT_FIXED, D("25.00")), tax_rate=RATE)

        assert result.manual_discount_amount == D("10.00")
        assert result.subtotal == D("0.00")
        assert result.tax == D("0.00")
        assert result.total == D("0.00")

    def test_percent_over_hundred_clamped(self):
        result = calculate_totals(
            [line("10.00")], manual_discount=ManualDiscount(MANUAL_DISCOUNT_PERCENT, D("150")), tax_rate=RATE)
        assert result.total == D("0.00")

    def test_negative_quantity_and_price_count_as_zero(self):
        result = calculate_totals([line("-5.00", 2), line("4.00", -3, product_id=2)], tax_rate=RATE)
        assert result.items_subtotal_full == D("0")
        assert result.total == D("0")

    def test_negative_manual_discount_ignored(self):
        result = calculate_totals(
            [line("10.00")], manual_discount=ManualDiscount(MANUAL_DISCOUNT_FIXED, D("-3")), tax_rate=D("0"))
        assert result.discount_amount == D("0")
        assert result.total == D("10.00")

    def test_empty_cart(self):
        result = calculate_totals([], tax_rate=RATE)
        assert result.discount_ratio == D("0")
        assert result.total == D("0")

    def test_same_input_same_output(self):
        lines = [line("8.00", 2), line("5.00", 1, taxable=False, product_id=2)]
        discount = ManualDiscount(MANUAL_DISCOUNT_PERCENT, D("10"))
        assert calculate_totals(lines, discount, tax_rate=RATE) == calculate_totals(lines, discount, tax_rate=RATE)


class TestManualDiscountLabel:
    def test_percent_label(self):
        assert ManualDiscount(MANUAL_DISCOUNT_PERCENT, D("10")).label() == "Discount: 10%"

    def test_fixed_label_with_description(self):
        label = ManualDiscount(MANUAL_DISCOUNT_FIXED, D("5"), "Regular customer").label()
        assert label == "Discount: $5.00 (Regular customer)"


class TestChange:
    def test_change_due(self):
        assert compute_change(D("20.00"), D("19.91")) == D("0.09")

    def test_short_tender_is_negative(self):
        assert compute_change(D("10.00"), D("19.91")) == D("-9.91")
