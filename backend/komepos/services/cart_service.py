# Overview: Builds priced cart lines from catalog rows and the cashier's selections.

from __future__ import annotations

from typing import Iterable, Sequence

from ..extensions import db
from ..models import AddOn, Product
from ..money import ZERO, round_money, sum_money
from ..snapshots import AddOnSelection, OptionSelection
from ..validation import ValidationError, parse_positive_int
from .pricing_service import CartLine
from .promotion_service import resolve_item_discount


def _load_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise ValidationError(
            f"Product {product_id} is not available",
            details={"product_id": product_id},
        )
    return product


def _resolve_options(product: Product, selected_option_ids: Iterable[int]) -> tuple[OptionSelection, ...]:
    """
    Validate option choices against the product's groups.

    Returned selections follow group sort order, then option sort order, so
    the same choices always produce the same snapshot.
    """
    selected_ids = {parse_positive_int(i, "option_id") for i in selected_option_ids or []}
    groups = sorted(product.option_groups, key=lambda g: (g.sort_order, g.id))
    known_ids = {o.id for g in groups for o in g.options}

    unknown = selected_ids - known_ids
    if unknown:
        raise ValidationError(
            f"Options {sorted(unknown)} do not belong to {product.name}",
            details={"product_id": product.id, "option_ids": sorted(unknown)},
        )

    selections: list[OptionSelection] = []
    for group in groups:
        chosen = [
            o for o in sorted(group.options, key=lambda o: (o.sort_order, o.id))
            if o.id in selected_ids
        ]
        for option in chosen:
            if not option.is_available:
                raise ValidationError(
                    f"{option.name} is not available",
                    details={"product_id": product.id, "option_id": option.id},
                )

        minimum = group.min_selections or 0
        if group.is_required:
            minimum = max(minimum, 1)
        if len(chosen) < minimum:
            raise ValidationError(
                f"{group.name} requires at least {minimum} selection(s)",
                details={"product_id": product.id, "group_id": group.id},
            )

        maximum = group.max_selections
        if group.selection_type == group.SELECTION_SINGLE:
            maximum = 1
        if maximum and len(chosen) > maximum:
            raise ValidationError(
                f"{group.name} allows at most {maximum} selection(s)",
                details={"product_id": product.id, "group_id": group.id},
            )

        selections.extend(OptionSelection(group_name=group.name, option_name=o.name) for o in chosen)
    return tuple(selections)


def _resolve_addons(product: Product, selected_addons: Sequence[dict]) -> tuple[AddOnSelection, ...]:
    """`selected_addons` is a list of {"addon_id": int, "quantity": int}."""
    result: list[AddOnSelection] = []
    for entry in selected_addons or []:
        addon_id = parse_positive_int(entry.get("addon_id"), "addon_id")
        quantity = parse_positive_int(entry.get("quantity", 1), "addon quantity")

        addon = db.session.get(AddOn, addon_id)
        if not addon or addon.product_id != product.id:
            raise ValidationError(
                f"Add-on {addon_id} does not belong to {product.name}",
                details={"product_id": product.id, "addon_id": addon_id},
            )
        if not addon.is_available:
            raise ValidationError(
                f"{addon.name} is not available",
                details={"product_id": product.id, "addon_id": addon_id},
            )
        result.append(AddOnSelection(
            name=addon.name,
            unit_price=round_money(addon.price),
            quantity=quantity,
            addon_id=addon.id,
        ))
    return tuple(result)


def build_cart_line(
    product_id,
    quantity,
    selected_option_ids: Iterable[int] = (),
    selected_addons: Sequence[dict] = (),
    promotions: Sequence = (),
    notes: str | None = None,
) -> CartLine:
    """
    Resolve one cart entry into a priced CartLine.

    unit_price = base_price + sum(add-on price * add-on quantity).
    Item promotions are resolved on the base price only; add-ons are never
    discounted.
    """
    product_id = parse_positive_int(product_id, "product_id")
    quantity = parse_positive_int(quantity, "quantity")
    product = _load_product(product_id)

    options = _resolve_options(product, selected_option_ids)
    addons = _resolve_addons(product, selected_addons)

    base_price = round_money(product.base_price)
    unit_price = round_money(base_price + sum_money(a.total for a in addons))

    discount = resolve_item_discount(promotions, product.id, base_price)

    return CartLine(
        product_id=product.id,
        product_name=product.name,
        unit_price=unit_price,
        quantity=quantity,
        is_taxable=bool(product.is_taxable),
        promo_discount_per_unit=discount.discount_per_unit if discount else ZERO,
        promotion_id=discount.promotion_id if discount else None,
        promotion_name=discount.promotion_name if discount else None,
        selected_options=options,
        selected_addons=addons,
        notes=(notes or "").strip() or None,
    )


def build_cart(items: Sequence[dict], promotions: Sequence = ()) -> list[CartLine]:
    """Build every line of a JSON cart payload."""
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"index": index})
        lines.append(build_cart_line(
            item.get("product_id"),
            item.get("quantity", 1),
            selected_option_ids=item.get("option_ids") or [],
            selected_addons=item.get("addons") or [],
            promotions=promotions,
            notes=item.get("notes"),
        ))
    return lines
