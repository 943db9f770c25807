from __future__ import annotations

from ..extensions import db
from ..money import money_str


class Product(db.Model):
    """
    Menu item as the order engine sees it.

    Only the fields pricing needs: base price, taxability, availability.
    Category, image and description data belong to menu administration.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    base_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_taxable = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "base_price": money_str(self.base_price),
            "is_taxable": self.is_taxable,
            "is_active": self.is_active,
            "option_groups": [g.to_dict() for g in sorted(self.option_groups, key=lambda g: g.sort_order)],
            "addons": [a.to_dict() for a in sorted(self.addons, key=lambda a: a.sort_order)],
        }


class OptionGroup(db.Model):
    """
    Choice group on a product ("Size", "Cooking point").

    Options are informational: they are recorded on the order line but never
    priced. Required groups must have at least `min_selections` choices.
    """
    __tablename__ = "option_groups"
    __table_args__ = {"sqlite_autoincrement": True}

    SELECTION_SINGLE = "single"
    SELECTION_MULTIPLE = "multiple"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    selection_type = db.Column(db.String(16), nullable=False, default=SELECTION_SINGLE)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    min_selections = db.Column(db.Integer, nullable=False, default=0)
    max_selections = db.Column(db.Integer, nullable=False, default=1)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", backref=db.backref("option_groups", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "selection_type": self.selection_type,
            "is_required": self.is_required,
            "min_selections": self.min_selections,
            "max_selections": self.max_selections,
            "options": [o.to_dict() for o in sorted(self.options, key=lambda o: o.sort_order)],
        }


class Option(db.Model):
    __tablename__ = "options"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey("option_groups.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    group = db.relationship("OptionGroup", backref=db.backref("options", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_available": self.is_available,
        }


class AddOn(db.Model):
    """Priced extra for a product (extra cheese, side). Adds to the unit price."""
    __tablename__ = "addons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", backref=db.backref("addons", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": money_str(self.price),
            "is_available": self.is_available,
        }
