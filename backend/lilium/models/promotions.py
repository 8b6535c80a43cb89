from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Promotion(db.Model):
    """
    Promotions and discounts.

    Applicability lists (product_ids, category_ids, zones) are JSON arrays;
    an empty list means "applies to all".

    Types:
    - PERCENTAGE: value is a percent of the line total, optionally capped by max_discount
    - FIXED: value is a flat amount per qualifying line
    - BUY_X_GET_Y: buy_quantity paid + get_quantity free, repeated per full group
    - BUNDLE: value is the price of the full product_ids set when bought together
    """
    __tablename__ = "promotions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    promo_type = db.Column(db.String(32), nullable=False)
    value = db.Column(db.Integer, nullable=False, default=0)

    product_ids = db.Column(db.JSON, nullable=False, default=list)
    category_ids = db.Column(db.JSON, nullable=False, default=list)
    zones = db.Column(db.JSON, nullable=False, default=list)

    min_purchase = db.Column(db.Integer, nullable=True)
    max_discount = db.Column(db.Integer, nullable=True)
    buy_quantity = db.Column(db.Integer, nullable=True)
    get_quantity = db.Column(db.Integer, nullable=True)

    starts_at = db.Column(db.DateTime, nullable=True)
    ends_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "promo_type": self.promo_type,
            "value": self.value,
            "product_ids": list(self.product_ids or []),
            "category_ids": list(self.category_ids or []),
            "zones": list(self.zones or []),
            "min_purchase": self.min_purchase,
            "max_discount": self.max_discount,
            "buy_quantity": self.buy_quantity,
            "get_quantity": self.get_quantity,
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
            "is_active": self.is_active,
        }
