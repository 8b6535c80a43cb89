"""
Engine assembly (composition root).

The only place that knows the concrete repositories, dispatchers and
settings. Each component receives exactly the narrow collaborators it needs;
tests can build an engine around any session and swap the notifier.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..config import EngineSettings
from ..extensions import db
from ..repositories import (
    AddressRepository,
    CompanyRepository,
    OrderRepository,
    PayoutRepository,
    ProductRepository,
    PromotionRepository,
    SavedCartRepository,
    StockRecordRepository,
)
from .cart_splitter import CartSplitter
from .cart_store import CartStore
from .notifications import LogNotifier, WebhookNotifier
from .order_lifecycle import OrderLifecycle
from .payout_service import PayoutService
from .settlement_service import SettlementCalculator
from .stock_ledger import StockLedger

EXTENSION_KEY = "lilium_engine"


@dataclass
class Engine:
    settings: EngineSettings
    stock: StockLedger
    splitter: CartSplitter
    orders: OrderLifecycle
    settlements: SettlementCalculator
    payouts: PayoutService
    carts: CartStore
    notifier: object


def build_notifier(config, logger):
    url = config.get("NOTIFICATION_WEBHOOK_URL")
    if url:
        return WebhookNotifier(url, logger, timeout=float(config.get("NOTIFICATION_TIMEOUT", 3.0)))
    return LogNotifier(logger)


def build_engine(app, *, session=None, notifier=None) -> Engine:
    """
    Wire every component around one session.

    Defaults: Flask-SQLAlchemy's scoped session and a notifier chosen from
    NOTIFICATION_WEBHOOK_URL.
    """
    session = session if session is not None else db.session
    settings = EngineSettings.from_mapping(app.config)
    logger = app.logger
    if notifier is None:
        notifier = build_notifier(app.config, logger)

    products = ProductRepository(session)
    records = StockRecordRepository(session)
    orders_repo = OrderRepository(session)

    stock = StockLedger(
        session=session,
        products=products,
        records=records,
        settings=settings,
        notifier=notifier,
        logger=logger,
    )
    splitter = CartSplitter(settings=settings, logger=logger)
    orders = OrderLifecycle(
        session=session,
        orders=orders_repo,
        products=products,
        addresses=AddressRepository(session),
        promotions=PromotionRepository(session),
        stock=stock,
        splitter=splitter,
        settings=settings,
        notifier=notifier,
        logger=logger,
    )
    payouts_repo = PayoutRepository(session)
    settlements = SettlementCalculator(
        orders=orders_repo,
        companies=CompanyRepository(session),
        payouts=payouts_repo,
        settings=settings,
    )
    payouts = PayoutService(
        session=session,
        payouts=payouts_repo,
        orders=orders_repo,
        settlements=settlements,
        settings=settings,
        notifier=notifier,
        logger=logger,
    )
    carts = CartStore(session=session, carts=SavedCartRepository(session), settings=settings)

    return Engine(
        settings=settings,
        stock=stock,
        splitter=splitter,
        orders=orders,
        settlements=settlements,
        payouts=payouts,
        carts=carts,
        notifier=notifier,
    )


def init_engine(app) -> Engine:
    engine = build_engine(app)
    app.extensions[EXTENSION_KEY] = engine
    return engine


def get_engine() -> Engine:
    return current_app.extensions[EXTENSION_KEY]
