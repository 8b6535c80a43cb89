# Overview: Saved carts; a per-user keyed store of {product_id, quantity, notes} items.

from __future__ import annotations

from .concurrency import begin_write, run_with_retry


def _serialize(items) -> list[dict]:
    """Collapse repeated products into one entry, keeping first-seen order."""
    merged: dict[int, dict] = {}
    for item in items:
        entry = merged.get(item.product_id)
        if entry is None:
            entry = {"product_id": item.product_id, "quantity": 0}
            merged[item.product_id] = entry
        entry["quantity"] += item.quantity
        if item.notes:
            entry["notes"] = item.notes
    return list(merged.values())


class CartStore:

    def __init__(self, *, session, carts, settings):
        self.session = session
        self.carts = carts
        self.settings = settings

    def _run(self, op):
        return run_with_retry(
            self.session,
            op,
            attempts=self.settings.retry_attempts,
            backoff_base=self.settings.retry_backoff,
        )

    def get(self, user_id: int) -> list[dict]:
        cart = self.carts.get(user_id)
        return list(cart.items or []) if cart is not None else []

    def save(self, user_id: int, items) -> list[dict]:
        """Replace the saved cart with `items` (OrderItemInput sequence)."""
        def _op():
            begin_write(self.session)
            cart = self.carts.upsert(user_id, _serialize(items))
            self.session.commit()
            return list(cart.items)

        return self._run(_op)

    def merge(self, user_id: int, items) -> list[dict]:
        """Add `items` to the saved cart; quantities of products already saved are summed."""
        def _op():
            begin_write(self.session)
            current = self.carts.get(user_id)
            merged = {entry["product_id"]: dict(entry) for entry in (current.items if current else [])}
            for entry in _serialize(items):
                existing = merged.get(entry["product_id"])
                if existing is None:
                    merged[entry["product_id"]] = entry
                else:
                    existing["quantity"] += entry["quantity"]
                    if entry.get("notes"):
                        existing["notes"] = entry["notes"]
            cart = self.carts.upsert(user_id, list(merged.values()))
            self.session.commit()
            return list(cart.items)

        return self._run(_op)

    def clear(self, user_id: int) -> bool:
        def _op():
            begin_write(self.session)
            removed = self.carts.delete(user_id)
            self.session.commit()
            return removed

        return self._run(_op)
