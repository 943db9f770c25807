from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class Company(db.Model):
    """
    Restaurant company: root of locations and users.

    Carries the settings the pricing and shift code read per call: the
    business time zone (promotion windows, report days) and the sales tax
    rate applied to taxable value.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    timezone = db.Column(db.String(64), nullable=False, default="America/Panama")
    # Fraction, e.g. 0.0700 for 7%
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "timezone": self.timezone,
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Location(db.Model):
    """
    Restaurant location within a company.

    A location may override the company time zone (multi-zone chains);
    `effective_timezone` resolves that.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_locations_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    timezone = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("locations", lazy=True))

    @property
    def effective_timezone(self) -> str | None:
        if self.timezone:
            return self.timezone
        return self.company.timezone if self.company else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "timezone": self.effective_timezone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class DeliveryZone(db.Model):
    """Delivery area with a flat charge. Configured by administration; read here."""
    __tablename__ = "delivery_zones"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    locations = db.relationship(
        "Location",
        secondary="delivery_zone_locations",
        backref=db.backref("delivery_zones", lazy=True),
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "price": money_str(self.price),
            "is_active": self.is_active,
            "location_ids": [loc.id for loc in self.locations],
        }


delivery_zone_locations = db.Table(
    "delivery_zone_locations",
    db.Column("zone_id", db.Integer, db.ForeignKey("delivery_zones.id"), primary_key=True),
    db.Column("location_id", db.Integer, db.ForeignKey("locations.id"), primary_key=True),
)
