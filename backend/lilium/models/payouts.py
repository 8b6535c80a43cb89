from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


PAYOUT_METHODS = ("BANK_TRANSFER", "CASH", "WALLET", "CHECK")
PAYOUT_REQUEST_STATUSES = ("PENDING", "PROCESSING", "COMPLETED", "FAILED", "CANCELLED")
# Payouts in these states no longer claim their orders
RELEASED_PAYOUT_STATUSES = ("FAILED", "CANCELLED")


class Payout(db.Model):
    """
    Vendor payout request.

    STATE MACHINE:
        PENDING -> PROCESSING -> COMPLETED
        PENDING | PROCESSING -> FAILED | CANCELLED

    Included orders are linked through PayoutOrder. A link claims the
    company's share of that order until the payout fails or is cancelled, so
    vendors sharing one order are paid out independently. Order.payout_status
    is a rollup of those claims, refreshed in the same transaction.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payouts_amount_positive"),
        db.Index("ix_payouts_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(32), nullable=False)  # BANK_TRANSFER, CASH, WALLET, CHECK
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    # Snapshot at request time; later edits to the company's bank info do not apply
    bank_details = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    requested_by = db.Column(db.Integer, nullable=True)
    requested_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    processed_by = db.Column(db.Integer, nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    company = db.relationship("Company")
    included_orders = db.relationship(
        "PayoutOrder",
        back_populates="payout",
        order_by="PayoutOrder.order_id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def order_ids(self) -> list[int]:
        return [link.order_id for link in self.included_orders]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "amount": self.amount,
            "method": self.method,
            "status": self.status,
            "bank_details": self.bank_details,
            "notes": self.notes,
            "order_ids": self.order_ids,
            "requested_by": self.requested_by,
            "requested_at": to_utc_z(self.requested_at),
            "processed_by": self.processed_by,
            "processed_at": to_utc_z(self.processed_at),
        }


class PayoutOrder(db.Model):
    """Order included in a payout."""
    __tablename__ = "payout_orders"
    __table_args__ = (
        db.UniqueConstraint("payout_id", "order_id", name="uq_payout_orders_payout_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payout_id = db.Column(db.Integer, db.ForeignKey("payouts.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    payout = db.relationship("Payout", back_populates="included_orders")
