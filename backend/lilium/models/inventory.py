from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class StockChangeRecord(db.Model):
    """
    Append-only stock history.

    One row per stock mutation, whatever caused it (sale, cancellation,
    manual adjustment, return). Rows are never updated or deleted.

    INVARIANTS (also enforced by check constraints):
    - new_quantity == previous_quantity + delta
    - new_quantity >= 0
    """
    __tablename__ = "stock_change_records"
    __table_args__ = (
        db.CheckConstraint("new_quantity >= 0", name="ck_stock_records_non_negative"),
        db.CheckConstraint(
            "new_quantity = previous_quantity + delta",
            name="ck_stock_records_delta_matches",
        ),
        db.CheckConstraint("delta <> 0", name="ck_stock_records_non_zero"),
        db.Index("ix_stock_records_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    delta = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    # SALE, CANCELLATION, ADJUSTMENT, RETURN
    reason = db.Column(db.String(16), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "delta": self.delta,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "order_id": self.order_id,
            "note": self.note,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }
