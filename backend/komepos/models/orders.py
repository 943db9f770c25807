from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..snapshots import ItemSnapshot
from ..time_utils import to_utc_z

# Order status
ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_CONFIRMED = "CONFIRMED"
ORDER_STATUS_PREPARING = "PREPARING"
ORDER_STATUS_READY = "READY"
ORDER_STATUS_OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
ORDER_STATUS_DELIVERED = "DELIVERED"
ORDER_STATUS_COMPLETED = "COMPLETED"
ORDER_STATUS_CANCELLED = "CANCELLED"

ORDER_STATUSES = {
    ORDER_STATUS_PENDING,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_PREPARING,
    ORDER_STATUS_READY,
    ORDER_STATUS_OUT_FOR_DELIVERY,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
}

# Order type
ORDER_TYPE_DINE_IN = "DINE_IN"
ORDER_TYPE_TAKEOUT = "TAKEOUT"
ORDER_TYPE_PHONE = "PHONE"
ORDER_TYPE_DELIVERY = "DELIVERY"

ORDER_TYPES = {ORDER_TYPE_DINE_IN, ORDER_TYPE_TAKEOUT, ORDER_TYPE_PHONE, ORDER_TYPE_DELIVERY}

# Where the order was placed
CHANNEL_REGISTER = "REGISTER"
CHANNEL_ONLINE = "ONLINE"

CHANNELS = {CHANNEL_REGISTER, CHANNEL_ONLINE}

# Payment status
PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_REFUNDED = "REFUNDED"


class Order(db.Model):
    """
    Committed order.

    Monetary fields are copied from the pricing breakdown at commit time and
    never re-derived. `total == subtotal + tax_amount`, where `subtotal`
    already nets out `discount_amount` and includes `delivery_fee`.

    REFUNDS: a refund is another Order row whose money fields are the exact
    negation of the original (discount_amount stays positive, as history).
    `refund_of_order_id` is unique, so an order can be mirrored once.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_location_created", "location_id", "created_at"),
        db.Index("ix_orders_shift_payment", "shift_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "ORD-001-000123")
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    # Client-generated key; replaying a commit returns the stored order
    client_request_id = db.Column(db.String(64), nullable=True, unique=True)

    status = db.Column(db.String(24), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    order_type = db.Column(db.String(16), nullable=False)
    channel = db.Column(db.String(16), nullable=False, default=CHANNEL_REGISTER)

    payment_method = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)
    # Refunds only: how the money went back to the customer
    disbursement_method = db.Column(db.String(32), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    delivery_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)

    # Cash tender
    amount_tendered = db.Column(db.Numeric(12, 2), nullable=True)
    change_due = db.Column(db.Numeric(12, 2), nullable=True)

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    delivery_zone_id = db.Column(db.Integer, db.ForeignKey("delivery_zones.id"), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    refund_of_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, unique=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location")
    user = db.relationship("User", foreign_keys=[user_id])
    shift = db.relationship("Shift", backref=db.backref("orders", lazy=True))
    refund_of = db.relationship(
        "Order",
        remote_side=[id],
        backref=db.backref("refund", uselist=False),
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_refund(self) -> bool:
        return self.refund_of_order_id is not None

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "client_request_id": self.client_request_id,
            "status": self.status,
            "order_type": self.order_type,
            "channel": self.channel,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "disbursement_method": self.disbursement_method,
            "subtotal": money_str(self.subtotal),
            "discount_amount": money_str(self.discount_amount),
            "delivery_fee": money_str(self.delivery_fee),
            "tax_amount": money_str(self.tax_amount),
            "total": money_str(self.total),
            "tax_rate": str(self.tax_rate) if self.tax_rate is not None else None,
            "amount_tendered": money_str(self.amount_tendered),
            "change_due": money_str(self.change_due),
            "customer_id": self.customer_id,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "shift_id": self.shift_id,
            "delivery_zone_id": self.delivery_zone_id,
            "notes": self.notes,
            "refund_of_order_id": self.refund_of_order_id,
            "refund_reason": self.refund_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Line of a committed order. Immutable once written.

    `product_name` and `snapshot` are copies taken at sale time so that
    historical orders stay readable after menu changes.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)
    promo_discount_per_unit = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    promotion_id = db.Column(db.Integer, nullable=True)
    is_taxable = db.Column(db.Boolean, nullable=False, default=True)

    snapshot = db.Column(db.JSON, nullable=False, default=dict)
    item_notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.id"))

    @property
    def item_snapshot(self) -> ItemSnapshot:
        return ItemSnapshot.from_json(self.snapshot)

    def to_dict(self) -> dict:
        snap = self.item_snapshot
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
            "promo_discount_per_unit": money_str(self.promo_discount_per_unit),
            "promotion_id": self.promotion_id,
            "is_taxable": self.is_taxable,
            "options": [o.to_dict() for o in snap.options],
            "addons": [a.to_dict() for a in snap.addons],
            "snapshot_version": snap.version,
            "item_notes": self.item_notes,
            "created_at": to_utc_z(self.created_at),
        }
