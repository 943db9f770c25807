from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

KIND_ITEM_PERCENTAGE = "ITEM_PERCENTAGE"
KIND_ITEM_FIXED = "ITEM_FIXED"
KIND_ORDER_PERCENTAGE = "ORDER_PERCENTAGE"
KIND_ORDER_FIXED = "ORDER_FIXED"
KIND_FREE_DELIVERY = "FREE_DELIVERY"

ITEM_KINDS = {KIND_ITEM_PERCENTAGE, KIND_ITEM_FIXED}
ORDER_KINDS = {KIND_ORDER_PERCENTAGE, KIND_ORDER_FIXED}
PROMOTION_KINDS = ITEM_KINDS | ORDER_KINDS | {KIND_FREE_DELIVERY}


class Promotion(db.Model):
    """
    Promotions and discounts.

    Item kinds target `eligible_product_ids`; order kinds and free delivery
    apply to the whole order. `eligible_location_ids` empty means every
    location. The date window is inclusive on both ends and compared against
    the location's local date.

    Read-only to the order engine; lifecycle is owned by administration.
    """
    __tablename__ = "promotions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_kind = db.Column(db.String(32), nullable=False)
    # Percent (10 = 10%) for percentage kinds, currency amount for fixed kinds
    discount_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    eligible_product_ids = db.Column(db.JSON, nullable=False, default=list)
    eligible_location_ids = db.Column(db.JSON, nullable=False, default=list)

    min_order_amount = db.Column(db.Numeric(12, 2), nullable=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "description": self.description,
            "discount_kind": self.discount_kind,
            "discount_value": money_str(self.discount_value),
            "eligible_product_ids": list(self.eligible_product_ids or []),
            "eligible_location_ids": list(self.eligible_location_ids or []),
            "min_order_amount": money_str(self.min_order_amount),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
