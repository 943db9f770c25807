from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"

MANAGER_ROLES = {ROLE_ADMIN, ROLE_MANAGER}


class User(db.Model):
    """
    Staff member acting on orders and shifts.

    WHY: Every commit and every drawer entry is attributed to a user.
    Credentials live with the identity provider; this row is what the
    order engine needs to know about the actor.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("company_id", "username", name="uq_users_company_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    username = db.Column(db.String(64), nullable=False, index=True)
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(32), nullable=False, default=ROLE_CASHIER)

    # Assigned location (nullable for company-level admins)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("users", lazy=True))
    location = db.relationship("Location", backref=db.backref("users", lazy=True))

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "location_id": self.location_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
