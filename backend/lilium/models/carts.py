from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class SavedCart(db.Model):
    """Saved cart, one per user. Items are [{"product_id", "quantity"}, ...]."""
    __tablename__ = "saved_carts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)
    items = db.Column(db.JSON, nullable=False, default=list)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "items": list(self.items or []),
            "updated_at": to_utc_z(self.updated_at),
        }
