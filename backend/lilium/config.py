# backend/lilium/config.py
from __future__ import annotations
import os
from dataclasses import dataclass


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/lilium.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///lilium.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Delivery fees in minor units (IQD). Same-zone applies when the vendor
    # serves the buyer's zone; the flat fee is used by direct order creation.
    DELIVERY_FEE_CROSS_ZONE = int(os.environ.get("DELIVERY_FEE_CROSS_ZONE", "5000"))
    DELIVERY_FEE_SAME_ZONE = int(os.environ.get("DELIVERY_FEE_SAME_ZONE", "2500"))
    DELIVERY_FEE_FLAT = int(os.environ.get("DELIVERY_FEE_FLAT", "5000"))

    # Platform commission when a company has no rate of its own (1000 bps = 10%)
    DEFAULT_COMMISSION_RATE_BPS = int(os.environ.get("DEFAULT_COMMISSION_RATE_BPS", "1000"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    # Transient DB failures (deadlock, lock timeout, stale version) are retried
    # once before surfacing as an internal error.
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "2"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    DEFAULT_PAYMENT_METHOD = "CASH_ON_DELIVERY"
    ORDER_NUMBER_PREFIX = os.environ.get("ORDER_NUMBER_PREFIX", "ORD")

    # Optional HTTP endpoint receiving order/stock/payout events
    NOTIFICATION_WEBHOOK_URL = os.environ.get("NOTIFICATION_WEBHOOK_URL")
    NOTIFICATION_TIMEOUT = float(os.environ.get("NOTIFICATION_TIMEOUT", "3.0"))

    # Browser origins allowed to call the API (comma-separated)
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip() for o in os.environ.get("CORS_ALLOWED_ORIGINS", "").split(",") if o.strip()
    )


@dataclass(frozen=True)
class EngineSettings:
    """Engine-facing slice of the Flask config, read once at bootstrap."""

    delivery_fee_cross_zone: int = 5000
    delivery_fee_same_zone: int = 2500
    delivery_fee_flat: int = 5000
    default_commission_rate_bps: int = 1000
    low_stock_threshold: int = 10
    retry_attempts: int = 2
    retry_backoff: float = 0.1
    default_payment_method: str = "CASH_ON_DELIVERY"
    order_number_prefix: str = "ORD"

    @classmethod
    def from_mapping(cls, config) -> "EngineSettings":
        return cls(
            delivery_fee_cross_zone=int(config.get("DELIVERY_FEE_CROSS_ZONE", 5000)),
            delivery_fee_same_zone=int(config.get("DELIVERY_FEE_SAME_ZONE", 2500)),
            delivery_fee_flat=int(config.get("DELIVERY_FEE_FLAT", 5000)),
            default_commission_rate_bps=int(config.get("DEFAULT_COMMISSION_RATE_BPS", 1000)),
            low_stock_threshold=int(config.get("LOW_STOCK_THRESHOLD", 10)),
            retry_attempts=int(config.get("DB_RETRY_ATTEMPTS", 2)),
            retry_backoff=float(config.get("DB_RETRY_BACKOFF", 0.1)),
            default_payment_method=config.get("DEFAULT_PAYMENT_METHOD", "CASH_ON_DELIVERY"),
            order_number_prefix=config.get("ORDER_NUMBER_PREFIX", "ORD"),
        )
