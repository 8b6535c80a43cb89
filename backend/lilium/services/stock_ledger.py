# Overview: Stock ledger; the only writer of product quantities, with one history record per change.

from __future__ import annotations

from ..errors import InsufficientStock, ProductsNotFound, ValidationFailure
from ..models import StockChangeRecord
from .concurrency import begin_write, run_with_retry
from .notifications import STOCK_ALERT, dispatch

"""
Stock Ledger Invariants (authoritative)

- Product.stock is never negative. Decrements are a single conditional UPDATE
  (stock >= qty), so the check and the write cannot be separated by another writer.
- Every successful mutation appends exactly one StockChangeRecord with
  new_quantity == previous_quantity + delta.
- decrement() / increment() join the caller's unit of work and never commit.
  adjust() / record_return() are their own unit of work.
- Stock alerts are computed from the records and dispatched after commit.
"""

SALE = "SALE"
CANCELLATION = "CANCELLATION"
ADJUSTMENT = "ADJUSTMENT"
RETURN = "RETURN"
STOCK_REASONS = (SALE, CANCELLATION, ADJUSTMENT, RETURN)

OUT_OF_STOCK = "OUT_OF_STOCK"
LOW_STOCK = "LOW_STOCK"
BACK_IN_STOCK = "BACK_IN_STOCK"


def stock_alert_for(previous: int, new: int, threshold: int) -> str | None:
    """Alert raised when a change crosses a threshold, else None."""
    if new <= 0 < previous:
        return OUT_OF_STOCK
    if previous <= 0 < new:
        return BACK_IN_STOCK
    if 0 < new <= threshold < previous:
        return LOW_STOCK
    return None


def _require_positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationFailure(
            "Quantity must be a positive integer",
            {"quantity": quantity},
        )
    return quantity


def _require_reason(reason) -> None:
    if reason not in STOCK_REASONS:
        raise ValidationFailure(f"Unknown stock change reason: {reason}", {"reason": reason})


class StockLedger:

    def __init__(self, *, session, products, records, settings, notifier=None, logger=None):
        self.session = session
        self.products = products
        self.records = records
        self.settings = settings
        self.notifier = notifier
        self.logger = logger

    # -------------------------------------------------------------------------
    # Mutations joining the caller's unit of work
    # -------------------------------------------------------------------------

    def decrement(
        self,
        product_id: int,
        quantity: int,
        reason: str = SALE,
        order_ref: int | None = None,
        *,
        note: str | None = None,
        actor_id: int | None = None,
    ) -> int:
        """Remove stock. Raises InsufficientStock when quantity > current stock."""
        return self._decrement(product_id, quantity, reason, order_ref, note, actor_id).new_quantity

    def _decrement(self, product_id, quantity, reason, order_ref, note, actor_id) -> StockChangeRecord:
        quantity = _require_positive_quantity(quantity)
        _require_reason(reason)
        if not self.products.decrement_stock(product_id, quantity):
            product = self.products.reload(product_id)
            if product is None:
                raise ProductsNotFound(
                    "Product not found",
                    {"product_ids": [product_id]},
                )
            raise InsufficientStock(
                f"Insufficient stock for {product.name}: requested {quantity}, available {product.stock}",
                {"product_id": product_id, "requested": quantity, "available": product.stock},
            )
        return self._record(product_id, -quantity, reason, order_ref, note, actor_id)

    def increment(
        self,
        product_id: int,
        quantity: int,
        reason: str = CANCELLATION,
        order_ref: int | None = None,
        *,
        note: str | None = None,
        actor_id: int | None = None,
    ) -> int:
        """Add stock back. No upper bound."""
        return self._increment(product_id, quantity, reason, order_ref, note, actor_id).new_quantity

    def _increment(self, product_id, quantity, reason, order_ref, note, actor_id) -> StockChangeRecord:
        quantity = _require_positive_quantity(quantity)
        _require_reason(reason)
        if not self.products.increment_stock(product_id, quantity):
            raise ProductsNotFound("Product not found", {"product_ids": [product_id]})
        return self._record(product_id, quantity, reason, order_ref, note, actor_id)

    def _record(self, product_id, delta, reason, order_ref, note, actor_id) -> StockChangeRecord:
        product = self.products.reload(product_id)
        record = StockChangeRecord(
            product_id=product_id,
            delta=delta,
            previous_quantity=product.stock - delta,
            new_quantity=product.stock,
            reason=reason,
            order_id=order_ref,
            note=note,
            actor_id=actor_id,
        )
        return self.records.add(record)

    # -------------------------------------------------------------------------
    # Standalone units of work
    # -------------------------------------------------------------------------

    def adjust(
        self,
        product_id: int,
        delta: int,
        note: str | None = None,
        actor_id: int | None = None,
    ) -> StockChangeRecord:
        """Manual correction (reason ADJUSTMENT). Negative deltas may not overdraw stock."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationFailure("Adjustment delta must be a non-zero integer", {"delta": delta})

        def _op():
            begin_write(self.session)
            if delta > 0:
                record = self._increment(product_id, delta, ADJUSTMENT, None, note, actor_id)
            else:
                record = self._decrement(product_id, -delta, ADJUSTMENT, None, note, actor_id)
            self.session.commit()
            return record

        record = run_with_retry(
            self.session,
            _op,
            attempts=self.settings.retry_attempts,
            backoff_base=self.settings.retry_backoff,
        )
        self.dispatch_alerts([record])
        return record

    def record_return(
        self,
        product_id: int,
        quantity: int,
        order_ref: int | None = None,
        note: str | None = None,
        actor_id: int | None = None,
    ) -> StockChangeRecord:
        """Goods returned by a buyer go back on the shelf (reason RETURN)."""
        quantity = _require_positive_quantity(quantity)

        def _op():
            begin_write(self.session)
            record = self._increment(product_id, quantity, RETURN, order_ref, note, actor_id)
            self.session.commit()
            return record

        record = run_with_retry(
            self.session,
            _op,
            attempts=self.settings.retry_attempts,
            backoff_base=self.settings.retry_backoff,
        )
        self.dispatch_alerts([record])
        return record

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def history(
        self,
        *,
        product_id: int | None = None,
        order_ref: int | None = None,
        limit: int = 100,
    ) -> list[StockChangeRecord]:
        if product_id is None and order_ref is None:
            raise ValidationFailure("product_id or order_id is required")
        if order_ref is not None:
            records = self.records.for_order(order_ref)
            if product_id is not None:
                records = [r for r in records if r.product_id == product_id]
            return records
        return self.records.for_product(product_id, limit=limit)

    def low_stock(self, *, threshold: int | None = None, company_id: int | None = None) -> dict:
        threshold = self.settings.low_stock_threshold if threshold is None else threshold
        products = self.products.low_stock(threshold, company_id=company_id)
        return {
            "threshold": threshold,
            "out_of_stock": [p.to_dict() for p in products if p.stock == 0],
            "low_stock": [p.to_dict() for p in products if p.stock > 0],
        }

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    def alerts_for(self, records) -> list[dict]:
        threshold = self.settings.low_stock_threshold
        alerts = []
        for record in records:
            kind = stock_alert_for(record.previous_quantity, record.new_quantity, threshold)
            if kind is None:
                continue
            alerts.append({
                "alert": kind,
                "product_id": record.product_id,
                "previous_quantity": record.previous_quantity,
                "new_quantity": record.new_quantity,
                "threshold": threshold,
            })
        return alerts

    def dispatch_alerts(self, records) -> None:
        for alert in self.alerts_for(records):
            dispatch(self.notifier, self.logger, STOCK_ALERT, alert)
