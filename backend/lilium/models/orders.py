from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ORDER_STATUSES = ("PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED")
TERMINAL_STATUSES = ("DELIVERED", "CANCELLED")
PAYOUT_STATUSES = ("UNPAID", "PENDING", "PAID")


class Order(db.Model):
    """
    Order document.

    MONEY (all integer minor units):
        total == subtotal - discount + delivery_fee
        subtotal == SUM(lines.line_total)
        discount == SUM(lines.discount_per_unit * lines.quantity)

    STATUS: driven only by the order lifecycle service. Every change appends an
    OrderStatusHistory row in the same transaction; the last history row always
    matches `status`.

    PAYOUT: payout_status rolls up the vendors' payout claims on this order:
    UNPAID until any vendor claims it, PAID once every vendor on it has been
    paid, PENDING in between. Eligibility is decided per vendor from
    PayoutOrder, never from this column.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total = subtotal - discount + delivery_fee", name="ck_orders_total_reconciles"),
        db.CheckConstraint("discount >= 0 AND discount <= subtotal", name="ck_orders_discount_range"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_zone_status", "zone", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "ORD-000042"), allocated from DocumentSequence
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=False)
    zone = db.Column(db.String(16), nullable=False)

    # Set when every line belongs to one vendor (always true for checkout orders)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    subtotal = db.Column(db.Integer, nullable=False)
    discount = db.Column(db.Integer, nullable=False, default=0)
    delivery_fee = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, default="CASH_ON_DELIVERY")
    payout_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    delivered_at = db.Column(db.DateTime, nullable=True, index=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id])
    address = db.relationship("Address")
    company = db.relationship("Company")
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    history = db.relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self, *, include_lines: bool = True, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "address_id": self.address_id,
            "zone": self.zone,
            "company_id": self.company_id,
            "status": self.status,
            "subtotal": self.subtotal,
            "discount": self.discount,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
            "payment_method": self.payment_method,
            "payout_status": self.payout_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        if include_history:
            data["history"] = [entry.to_dict() for entry in self.history]
        return data


class OrderLine(db.Model):
    """
    Order line, immutable after creation.

    unit_price is frozen at order time. line_total is the gross amount
    (unit_price * quantity); the promotion discount is kept per unit so the
    order-level discount is SUM(discount_per_unit * quantity).
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        db.CheckConstraint("line_total = unit_price * quantity", name="ck_order_lines_total"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    discount_per_unit = db.Column(db.Integer, nullable=False, default=0)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=True)
    line_total = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="lines")
    product = db.relationship("Product")

    @property
    def discount_total(self) -> int:
        return self.discount_per_unit * self.quantity

    @property
    def net_total(self) -> int:
        return self.line_total - self.discount_total

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "company_id": self.company_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "discount_per_unit": self.discount_per_unit,
            "promotion_id": self.promotion_id,
            "line_total": self.line_total,
            "net_total": self.net_total,
            "notes": self.notes,
        }


class OrderStatusHistory(db.Model):
    """Append-only status trail. Insertion id is the total order of entries."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    changed_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    order = db.relationship("Order", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "note": self.note,
            "changed_by": self.changed_by,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Per-document-type counters (e.g., "ORDER").

    next_number is advanced with a single UPDATE inside the writer's transaction.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
