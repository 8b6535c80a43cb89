from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


# Delivery coverage regions. Addresses, companies and products are tagged with these.
ZONES = ("KARKH", "RUSAFA")


class User(db.Model):
    """
    Platform user as seen by the engine.

    Credentials live with the auth layer; the engine only needs the role,
    the zones a location admin covers and, for company admins, their company.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    business_name = db.Column(db.String(255), nullable=True)

    # SUPER_ADMIN, LOCATION_ADMIN, COMPANY_ADMIN, SHOP_OWNER
    role = db.Column(db.String(32), nullable=False, default="SHOP_OWNER", index=True)
    zones = db.Column(db.JSON, nullable=False, default=list)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    company = db.relationship("Company", foreign_keys=[company_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "business_name": self.business_name,
            "role": self.role,
            "zones": list(self.zones or []),
            "company_id": self.company_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Address(db.Model):
    """Delivery address owned by a buyer. The zone drives product availability and fees."""
    __tablename__ = "addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    label = db.Column(db.String(120), nullable=False, default="Shop")
    street = db.Column(db.String(255), nullable=True)
    area = db.Column(db.String(255), nullable=True)
    zone = db.Column(db.String(16), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("addresses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "label": self.label,
            "street": self.street,
            "area": self.area,
            "zone": self.zone,
            "phone": self.phone,
            "is_default": self.is_default,
        }


class Company(db.Model):
    """
    Vendor owning a product catalog and receiving payouts.

    commission_rate_bps is the platform's cut in basis points; NULL means the
    platform default (DEFAULT_COMMISSION_RATE_BPS) applies.
    """
    __tablename__ = "companies"
    __table_args__ = (
        db.CheckConstraint(
            "commission_rate_bps IS NULL OR (commission_rate_bps >= 0 AND commission_rate_bps <= 10000)",
            name="ck_companies_commission_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    zones = db.Column(db.JSON, nullable=False, default=list)
    commission_rate_bps = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "zones": list(self.zones or []),
            "commission_rate_bps": self.commission_rate_bps,
            "is_active": self.is_active,
        }


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Vendor product.

    STOCK: `stock` is the live on-hand quantity. It is written ONLY by the
    stock ledger (conditional UPDATE + StockChangeRecord in the same
    transaction). The check constraint is the last line of defence against a
    negative quantity.

    PRICE: integer minor units. Order lines freeze the price at order time;
    later price edits never touch existing orders.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("min_order_qty >= 1", name="ck_products_min_order_qty"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_company_active", "company_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    price = db.Column(db.Integer, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    min_order_qty = db.Column(db.Integer, nullable=False, default=1)
    zones = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    company = db.relationship("Company", backref=db.backref("products", lazy=True))
    category = db.relationship("Category")

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "company_id": self.company_id,
            "category_id": self.category_id,
            "price": self.price,
            "stock": self.stock,
            "min_order_qty": self.min_order_qty,
            "zones": list(self.zones or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
