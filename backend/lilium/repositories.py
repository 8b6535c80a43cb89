# Overview: Narrow repositories over an injected SQLAlchemy session; the only place engine components query the database.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .models import (
    Address,
    Company,
    DocumentSequence,
    Order,
    OrderLine,
    Payout,
    PayoutOrder,
    Product,
    Promotion,
    RELEASED_PAYOUT_STATUSES,
    SavedCart,
    StockChangeRecord,
)
from .time_utils import utcnow


class SqlRepository:
    """Base for session-backed repositories. Repositories never commit."""

    def __init__(self, session: Session):
        self.session = session


# =============================================================================
# CATALOG
# =============================================================================

class ProductRepository(SqlRepository):

    def get(self, product_id: int) -> Product | None:
        return self.session.get(Product, product_id)

    def get_many(self, product_ids) -> list[Product]:
        ids = sorted(set(product_ids))
        if not ids:
            return []
        return self.session.query(Product).filter(Product.id.in_(ids)).all()

    def exists(self, product_id: int) -> bool:
        return (
            self.session.query(Product.id).filter(Product.id == product_id).first()
            is not None
        )

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        Conditional decrement: succeeds only when stock covers the quantity.

        The check and the write are one statement, so concurrent decrements of
        the same row serialize in the database instead of racing in Python.
        """
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    def increment_stock(self, product_id: int, quantity: int) -> bool:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + quantity, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1

    def reload(self, product_id: int) -> Product | None:
        """Fetch the row again, overwriting any stale in-session state."""
        return self.session.get(Product, product_id, populate_existing=True)

    def low_stock(self, threshold: int, *, company_id: int | None = None) -> list[Product]:
        q = self.session.query(Product).filter(
            Product.is_active.is_(True),
            Product.stock <= threshold,
        )
        if company_id is not None:
            q = q.filter(Product.company_id == company_id)
        return q.order_by(Product.stock.asc(), Product.id.asc()).all()


class StockRecordRepository(SqlRepository):

    def add(self, record: StockChangeRecord) -> StockChangeRecord:
        self.session.add(record)
        self.session.flush()
        return record

    def for_product(self, product_id: int, *, limit: int = 100) -> list[StockChangeRecord]:
        return (
            self.session.query(StockChangeRecord)
            .filter(StockChangeRecord.product_id == product_id)
            .order_by(StockChangeRecord.id.desc())
            .limit(limit)
            .all()
        )

    def for_order(self, order_id: int, *, reason: str | None = None) -> list[StockChangeRecord]:
        q = self.session.query(StockChangeRecord).filter(StockChangeRecord.order_id == order_id)
        if reason is not None:
            q = q.filter(StockChangeRecord.reason == reason)
        return q.order_by(StockChangeRecord.id.asc()).all()


class AddressRepository(SqlRepository):

    def get_for_user(self, address_id: int, user_id: int) -> Address | None:
        return (
            self.session.query(Address)
            .filter(Address.id == address_id, Address.user_id == user_id)
            .first()
        )


class CompanyRepository(SqlRepository):

    def get(self, company_id: int) -> Company | None:
        return self.session.get(Company, company_id)


class PromotionRepository(SqlRepository):

    def active(self, now: datetime) -> list[Promotion]:
        """Active-flagged promotions whose window contains `now` (open ends allowed)."""
        return (
            self.session.query(Promotion)
            .filter(
                Promotion.is_active.is_(True),
                (Promotion.starts_at.is_(None)) | (Promotion.starts_at <= now),
                (Promotion.ends_at.is_(None)) | (Promotion.ends_at >= now),
            )
            .order_by(Promotion.id.asc())
            .all()
        )


# =============================================================================
# ORDERS
# =============================================================================

class OrderRepository(SqlRepository):

    def add(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def get(self, order_id: int, *, lock: bool = False) -> Order | None:
        q = self.session.query(Order).filter(Order.id == order_id)
        if lock:
            q = q.with_for_update()
        return q.first()

    def get_many(self, order_ids, *, lock: bool = False) -> list[Order]:
        ids = sorted(set(order_ids))
        if not ids:
            return []
        q = self.session.query(Order).filter(Order.id.in_(ids))
        if lock:
            q = q.with_for_update()
        return q.order_by(Order.id.asc()).all()

    def vendor_ids_by_order(self, order_ids) -> dict[int, set[int]]:
        ids = sorted(set(order_ids))
        if not ids:
            return {}
        rows = (
            self.session.query(OrderLine.order_id, OrderLine.company_id)
            .filter(OrderLine.order_id.in_(ids), OrderLine.company_id.isnot(None))
            .distinct()
            .all()
        )
        vendors: dict[int, set[int]] = {order_id: set() for order_id in ids}
        for order_id, company_id in rows:
            vendors[order_id].add(company_id)
        return vendors

    def next_order_number(self, prefix: str, *, pad: int = 6) -> str:
        """
        Atomically allocate the next order number ("ORD-000001").

        The sequence row is bumped with a single UPDATE, so two writers can
        never be handed the same number.
        """
        stmt = (
            update(DocumentSequence)
            .where(DocumentSequence.document_type == "ORDER")
            .values(next_number=DocumentSequence.next_number + 1)
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount:
            current = (
                self.session.query(DocumentSequence.next_number)
                .filter_by(document_type="ORDER")
                .scalar()
            )
            number = current - 1
        else:
            # First order ever. On SQLite the writer holds the database lock here;
            # init-db seeds the row for other backends.
            self.session.add(DocumentSequence(document_type="ORDER", next_number=2))
            self.session.flush()
            number = 1
        return f"{prefix}-{number:0{pad}d}"

    def _filtered(
        self,
        *,
        status: str | None = None,
        zone: str | None = None,
        zones=None,
        buyer_id: int | None = None,
        company_id: int | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ):
        q = self.session.query(Order)
        if status:
            q = q.filter(Order.status == status)
        if zone:
            q = q.filter(Order.zone == zone)
        if zones is not None:
            q = q.filter(Order.zone.in_(list(zones)))
        if buyer_id is not None:
            q = q.filter(Order.user_id == buyer_id)
        if company_id is not None:
            vendor_orders = select(OrderLine.order_id).where(OrderLine.company_id == company_id)
            q = q.filter(Order.id.in_(vendor_orders))
        if start is not None:
            q = q.filter(Order.created_at >= start)
        if end is not None:
            q = q.filter(Order.created_at <= end)
        return q

    def paginate(self, *, page: int, limit: int, **filters) -> tuple[list[Order], int]:
        q = self._filtered(**filters)
        total = q.count()
        items = (
            q.order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def counts_by_status(self, *, zone: str | None = None) -> dict[str, int]:
        q = self.session.query(Order.status, func.count(Order.id))
        if zone:
            q = q.filter(Order.zone == zone)
        return {status: int(count) for status, count in q.group_by(Order.status).all()}

    def delivered_revenue(self, *, zone: str | None = None) -> int:
        q = self.session.query(func.coalesce(func.sum(Order.total), 0)).filter(
            Order.status == "DELIVERED"
        )
        if zone:
            q = q.filter(Order.zone == zone)
        return int(q.scalar() or 0)

    def vendor_revenue_by_order(
        self,
        company_id: int,
        *,
        statuses=("DELIVERED",),
        unclaimed: bool = False,
        delivered_from: datetime | None = None,
        delivered_to: datetime | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        order_ids=None,
    ) -> list[tuple[Order, int]]:
        """
        Per-order vendor revenue: SUM(unit_price * quantity) over the vendor's lines.

        With unclaimed=True, orders this company already claimed in a live
        (not failed or cancelled) payout are left out.

        Returns (order, revenue) pairs ordered by delivery time, then id.
        """
        revenue = func.sum(OrderLine.unit_price * OrderLine.quantity)
        q = (
            self.session.query(Order, revenue)
            .join(OrderLine, OrderLine.order_id == Order.id)
            .filter(OrderLine.company_id == company_id)
        )
        if statuses is not None:
            q = q.filter(Order.status.in_(list(statuses)))
        if unclaimed:
            q = q.filter(~PayoutRepository.claim_exists(company_id))
        if delivered_from is not None:
            q = q.filter(Order.delivered_at >= delivered_from)
        if delivered_to is not None:
            q = q.filter(Order.delivered_at <= delivered_to)
        if created_from is not None:
            q = q.filter(Order.created_at >= created_from)
        if created_to is not None:
            q = q.filter(Order.created_at <= created_to)
        if order_ids is not None:
            q = q.filter(Order.id.in_(list(order_ids)))
        rows = (
            q.group_by(Order.id)
            .order_by(Order.delivered_at.asc(), Order.id.asc())
            .all()
        )
        return [(order, int(amount or 0)) for order, amount in rows]


# =============================================================================
# PAYOUTS
# =============================================================================

class PayoutRepository(SqlRepository):

    @staticmethod
    def claim_exists(company_id: int):
        """Correlated EXISTS: the order is included in a live payout of this company."""
        return (
            select(PayoutOrder.id)
            .join(Payout, Payout.id == PayoutOrder.payout_id)
            .where(
                PayoutOrder.order_id == Order.id,
                Payout.company_id == company_id,
                Payout.status.not_in(RELEASED_PAYOUT_STATUSES),
            )
            .exists()
        )

    def claims_by_order(self, order_ids) -> dict[int, dict[int, str]]:
        """order_id -> {company_id: payout status} for live payouts including the order."""
        ids = sorted(set(order_ids))
        if not ids:
            return {}
        rows = (
            self.session.query(PayoutOrder.order_id, Payout.company_id, Payout.status)
            .join(Payout, Payout.id == PayoutOrder.payout_id)
            .filter(
                PayoutOrder.order_id.in_(ids),
                Payout.status.not_in(RELEASED_PAYOUT_STATUSES),
            )
            .all()
        )
        claims: dict[int, dict[int, str]] = {}
        for order_id, company_id, status in rows:
            claims.setdefault(order_id, {})[company_id] = status
        return claims

    def add(self, payout: Payout) -> Payout:
        self.session.add(payout)
        self.session.flush()
        return payout

    def get(self, payout_id: int, *, lock: bool = False) -> Payout | None:
        q = self.session.query(Payout).filter(Payout.id == payout_id)
        if lock:
            q = q.with_for_update()
        return q.first()

    def get_many(self, payout_ids, *, lock: bool = False) -> list[Payout]:
        ids = sorted(set(payout_ids))
        if not ids:
            return []
        q = self.session.query(Payout).filter(Payout.id.in_(ids))
        if lock:
            q = q.with_for_update()
        return q.order_by(Payout.id.asc()).all()

    def order_ids_for(self, payout_id: int) -> list[int]:
        rows = (
            self.session.query(PayoutOrder.order_id)
            .filter(PayoutOrder.payout_id == payout_id)
            .order_by(PayoutOrder.order_id.asc())
            .all()
        )
        return [order_id for (order_id,) in rows]

    def paginate(
        self,
        *,
        page: int,
        limit: int,
        company_id: int | None = None,
        status: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> tuple[list[Payout], int]:
        q = self.session.query(Payout)
        if company_id is not None:
            q = q.filter(Payout.company_id == company_id)
        if status:
            q = q.filter(Payout.status == status)
        if start is not None:
            q = q.filter(Payout.requested_at >= start)
        if end is not None:
            q = q.filter(Payout.requested_at <= end)
        total = q.count()
        items = (
            q.order_by(Payout.requested_at.desc(), Payout.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def totals_by_status(self, company_id: int) -> dict[str, tuple[int, int]]:
        """status -> (count, amount)"""
        rows = (
            self.session.query(
                Payout.status,
                func.count(Payout.id),
                func.coalesce(func.sum(Payout.amount), 0),
            )
            .filter(Payout.company_id == company_id)
            .group_by(Payout.status)
            .all()
        )
        return {status: (int(count), int(amount)) for status, count, amount in rows}

    def last_completed_at(self, company_id: int) -> datetime | None:
        return (
            self.session.query(func.max(Payout.processed_at))
            .filter(Payout.company_id == company_id, Payout.status == "COMPLETED")
            .scalar()
        )


# =============================================================================
# SAVED CARTS
# =============================================================================

class SavedCartRepository(SqlRepository):

    def get(self, user_id: int) -> SavedCart | None:
        return self.session.query(SavedCart).filter(SavedCart.user_id == user_id).first()

    def upsert(self, user_id: int, items: list[dict]) -> SavedCart:
        cart = self.get(user_id)
        if cart is None:
            cart = SavedCart(user_id=user_id, items=items)
            self.session.add(cart)
        else:
            cart.items = items
            cart.updated_at = utcnow()
        self.session.flush()
        return cart

    def delete(self, user_id: int) -> bool:
        return (
            self.session.query(SavedCart)
            .filter(SavedCart.user_id == user_id)
            .delete(synchronize_session=False)
            > 0
        )
