"""
Typed snapshots of what was chosen on an order line.

Order items keep the option and add-on choices as they were at sale time,
not as a live reference into the catalog. The payload carries a version so
rows written today stay readable if the structure grows later.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from .money import round_money

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class OptionSelection:
    group_name: str
    option_name: str

    def to_dict(self) -> dict:
        return {"group_name": self.group_name, "option_name": self.option_name}


@dataclass(frozen=True)
class AddOnSelection:
    name: str
    unit_price: Decimal
    quantity: int = 1
    addon_id: int | None = None

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "addon_id": self.addon_id,
            "name": self.name,
            "unit_price": str(round_money(self.unit_price)),
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class ItemSnapshot:
    options: tuple[OptionSelection, ...] = field(default_factory=tuple)
    addons: tuple[AddOnSelection, ...] = field(default_factory=tuple)
    version: int = SNAPSHOT_VERSION

    def to_json(self) -> dict:
        return {
            "version": self.version,
            "options": [o.to_dict() for o in self.options],
            "addons": [a.to_dict() for a in self.addons],
        }

    @classmethod
    def from_json(cls, payload: dict | None) -> "ItemSnapshot":
        if not payload:
            return cls()

        version = int(payload.get("version", SNAPSHOT_VERSION))
        if version > SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported item snapshot version {version}")

        options = tuple(
            OptionSelection(group_name=o.get("group_name", ""), option_name=o.get("option_name", ""))
            for o in payload.get("options") or []
        )
        addons = tuple(
            AddOnSelection(
                name=a.get("name", ""),
                unit_price=round_money(a.get("unit_price")),
                quantity=int(a.get("quantity", 1)),
                addon_id=a.get("addon_id"),
            )
            for a in payload.get("addons") or []
        )
        return cls(options=options, addons=addons, version=version)
