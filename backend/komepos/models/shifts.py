from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z

SHIFT_STATUS_OPEN = "OPEN"
SHIFT_STATUS_CLOSED = "CLOSED"

DRAWER_CASH_IN = "CASH_IN"
DRAWER_CASH_OUT = "CASH_OUT"
DRAWER_SALE = "SALE"
DRAWER_REFUND = "REFUND"
DRAWER_ADJUSTMENT = "ADJUSTMENT"

DRAWER_KINDS = {DRAWER_CASH_IN, DRAWER_CASH_OUT, DRAWER_SALE, DRAWER_REFUND, DRAWER_ADJUSTMENT}
MANUAL_DRAWER_KINDS = {DRAWER_CASH_IN, DRAWER_CASH_OUT, DRAWER_ADJUSTMENT}


class Shift(db.Model):
    """
    Cashier shift and cash accountability.

    LIFECYCLE:
    - OPEN: Shift is active, drawer entries may be appended
    - CLOSED: Cash counted, variance calculated

    IMMUTABLE: Once closed, a shift cannot be reopened or modified.
    A user has at most one OPEN shift; the partial unique index below makes
    the database reject a second one even if two terminals race.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_one_open_per_user",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_STATUS_OPEN, index=True)

    starting_cash = db.Column(db.Numeric(12, 2), nullable=False)
    ending_cash = db.Column(db.Numeric(12, 2), nullable=True)  # Counted at close

    # Calculated when closing
    expected_cash = db.Column(db.Numeric(12, 2), nullable=True)  # starting + cash sales - refunds
    cash_variance = db.Column(db.Numeric(12, 2), nullable=True)  # ending - expected

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location", backref=db.backref("shifts", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SHIFT_STATUS_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "user_name": self.user.full_name if self.user else None,
            "status": self.status,
            "starting_cash": money_str(self.starting_cash),
            "ending_cash": money_str(self.ending_cash),
            "expected_cash": money_str(self.expected_cash),
            "cash_variance": money_str(self.cash_variance),
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at) if self.ended_at else None,
            "notes": self.notes,
            "closed_by_user_id": self.closed_by_user_id,
            "version_id": self.version_id,
        }


class CashDrawerTransaction(db.Model):
    """
    Append-only ledger of cash drawer movements.

    `amount` is always a non-negative magnitude; the direction comes from
    `kind` (CASH_IN and SALE add, CASH_OUT and REFUND remove). SALE and
    REFUND rows carry the order they came from.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "cash_drawer_transactions"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_drawer_tx_amount_non_negative"),
        db.Index("ix_drawer_tx_shift_created", "shift_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    shift = db.relationship("Shift", backref=db.backref("drawer_transactions", lazy=True))
    performed_by = db.relationship("User", foreign_keys=[performed_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "kind": self.kind,
            "amount": money_str(self.amount),
            "reason": self.reason,
            "order_id": self.order_id,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_by_name": self.performed_by.full_name if self.performed_by else None,
            "created_at": to_utc_z(self.created_at),
        }
