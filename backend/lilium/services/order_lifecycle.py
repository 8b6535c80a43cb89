# Overview: Order lifecycle; creates orders (direct and cart checkout), drives the status machine and restores stock on cancellation.

from __future__ import annotations

from ..errors import (
    AddressNotFound,
    BelowMinimumOrderQuantity,
    InsufficientStock,
    InvalidTransition,
    OrderNotFound,
    ProductsNotFound,
    ValidationFailure,
    ZoneUnavailable,
)
from ..models import ORDER_STATUSES, Order, OrderLine, OrderStatusHistory
from ..policies import ensure_can_transition, ensure_can_view_order, scope_order_filters
from ..time_utils import utcnow
from .cart_splitter import CartLine
from .concurrency import begin_write, run_with_retry
from .notifications import ORDER_CREATED, ORDER_STATUS_CHANGED, dispatch
from .promotion_resolver import resolve
from .stock_ledger import CANCELLATION, SALE

"""
Order Lifecycle Invariants (authoritative)

Money (integer minor units):
- line_total = unit_price * quantity (gross, unit price frozen at order time)
- subtotal = SUM(line_total), discount = SUM(discount_per_unit * quantity)
- total = subtotal - discount + delivery_fee

Status machine:
    PENDING    -> CONFIRMED | CANCELLED
    CONFIRMED  -> PROCESSING | CANCELLED
    PROCESSING -> SHIPPED | CANCELLED
    SHIPPED    -> DELIVERED | CANCELLED
    DELIVERED, CANCELLED are terminal

Atomicity:
- Order + lines + initial history + one SALE decrement per line commit together.
- A status change and its history entry commit together; cancellation also
  writes one CANCELLATION increment per line in the same unit.
- Notifications are dispatched only after commit.
"""

ALLOWED_TRANSITIONS = {
    "PENDING": ("CONFIRMED", "CANCELLED"),
    "CONFIRMED": ("PROCESSING", "CANCELLED"),
    "PROCESSING": ("SHIPPED", "CANCELLED"),
    "SHIPPED": ("DELIVERED", "CANCELLED"),
    "DELIVERED": (),
    "CANCELLED": (),
}


def is_allowed_transition(current: str, new_status: str) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current, ())


class OrderLifecycle:

    def __init__(
        self,
        *,
        session,
        orders,
        products,
        addresses,
        promotions,
        stock,
        splitter,
        settings,
        notifier=None,
        logger=None,
    ):
        self.session = session
        self.orders = orders
        self.products = products
        self.addresses = addresses
        self.promotions = promotions
        self.stock = stock
        self.splitter = splitter
        self.settings = settings
        self.notifier = notifier
        self.logger = logger

    def _run(self, op):
        return run_with_retry(
            self.session,
            op,
            attempts=self.settings.retry_attempts,
            backoff_base=self.settings.retry_backoff,
        )

    # =========================================================================
    # VALIDATION & PRICING
    # =========================================================================

    def _load_address(self, buyer_id: int, address_id: int):
        address = self.addresses.get_for_user(address_id, buyer_id)
        if address is None:
            raise AddressNotFound(
                "Delivery address not found",
                {"address_id": address_id, "buyer_id": buyer_id},
            )
        return address

    def _validate_lines(self, items, address) -> list[CartLine]:
        """
        Resolve products and check every line against stock, minimum order
        quantity and the delivery zone. Returns unpriced-discount CartLines.
        """
        if not items:
            raise ValidationFailure("Order must contain at least one item")
        for item in items:
            if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
                raise ValidationFailure(
                    "Quantity must be a positive integer",
                    {"product_id": item.product_id, "quantity": item.quantity},
                )

        requested_ids = {item.product_id for item in items}
        products = {p.id: p for p in self.products.get_many(requested_ids)}
        missing = sorted(requested_ids - set(products))
        inactive = sorted(pid for pid, p in products.items() if not p.is_active)
        if missing or inactive:
            raise ProductsNotFound(
                "Some products were not found or are no longer available",
                {"missing": missing, "inactive": inactive},
            )

        lines = []
        for item in items:
            product = products[item.product_id]
            if item.quantity > product.stock:
                raise InsufficientStock(
                    f"Insufficient stock for {product.name}: requested {item.quantity}, available {product.stock}",
                    {"product_id": product.id, "requested": item.quantity, "available": product.stock},
                )
            if item.quantity < product.min_order_qty:
                raise BelowMinimumOrderQuantity(
                    f"Minimum order quantity for {product.name} is {product.min_order_qty}",
                    {"product_id": product.id, "min_order_qty": product.min_order_qty, "requested": item.quantity},
                )
            if address.zone not in (product.zones or []):
                raise ZoneUnavailable(
                    f"{product.name} is not available for delivery in {address.zone}",
                    {"product_id": product.id, "zone": address.zone, "product_zones": list(product.zones or [])},
                )
            lines.append(CartLine(
                product_id=product.id,
                quantity=item.quantity,
                unit_price=item.unit_price if item.unit_price is not None else product.price,
                notes=item.notes,
                product=product,
            ))
        return lines

    def _apply_promotions(self, lines: list[CartLine], zone: str) -> None:
        now = utcnow()
        promotions = self.promotions.active(now)
        if not promotions:
            return
        cart_prices = {}
        for line in lines:
            cart_prices.setdefault(line.product_id, line.unit_price)
        for line in lines:
            per_unit, promotion = resolve(line, promotions, zone, now, cart_prices)
            line.discount_per_unit = per_unit
            line.promotion_id = promotion.id if promotion is not None else None

    # =========================================================================
    # PLACEMENT
    # =========================================================================

    def _append_history(self, order: Order, from_status, to_status: str, *, note=None, actor_id=None):
        # Entries never go back in time, even if the clock does
        created_at = utcnow()
        if order.history and order.history[-1].created_at > created_at:
            created_at = order.history[-1].created_at
        order.history.append(OrderStatusHistory(
            from_status=from_status,
            to_status=to_status,
            note=note,
            changed_by=actor_id,
            created_at=created_at,
        ))

    def _place(self, *, buyer_id, address, lines, delivery_fee, payment_method, notes) -> Order:
        """Build and persist one order from priced lines, decrementing stock per line."""
        company_ids = {line.product.company_id for line in lines}
        subtotal = sum(line.line_total for line in lines)
        discount = sum(line.discount_total for line in lines)

        order = Order(
            order_number=self.orders.next_order_number(self.settings.order_number_prefix),
            user_id=buyer_id,
            address_id=address.id,
            zone=address.zone,
            company_id=next(iter(company_ids)) if len(company_ids) == 1 else None,
            status="PENDING",
            subtotal=subtotal,
            discount=discount,
            delivery_fee=delivery_fee,
            total=subtotal - discount + delivery_fee,
            payment_method=payment_method or self.settings.default_payment_method,
            payout_status="UNPAID",
            notes=notes,
        )
        for line in lines:
            order.lines.append(OrderLine(
                product_id=line.product_id,
                company_id=line.product.company_id,
                product_name=line.product.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_per_unit=line.discount_per_unit,
                promotion_id=line.promotion_id,
                line_total=line.line_total,
                notes=line.notes,
            ))
        self._append_history(order, None, "PENDING", note="Order placed", actor_id=buyer_id)
        self.orders.add(order)

        for line in lines:
            self.stock.decrement(line.product_id, line.quantity, SALE, order.id, actor_id=buyer_id)
        return order

    def create_order(self, data) -> Order:
        """
        Direct order: flat delivery fee, no promotions, one atomic unit.

        `data` is a CreateOrderInput.
        """
        def _op():
            begin_write(self.session)
            address = self._load_address(data.buyer_id, data.address_id)
            lines = self._validate_lines(data.items, address)
            order = self._place(
                buyer_id=data.buyer_id,
                address=address,
                lines=lines,
                delivery_fee=self.settings.delivery_fee_flat,
                payment_method=None,
                notes=data.notes,
            )
            self.session.commit()
            return order

        order = self._run(_op)
        self._after_create([order])
        return order

    def checkout(self, data) -> list[Order]:
        """
        Cart checkout: promotions resolved, one order per vendor, all or nothing.

        `data` is a CheckoutInput.
        """
        def _op():
            begin_write(self.session)
            address = self._load_address(data.buyer_id, data.address_id)
            lines = self._validate_lines(data.items, address)
            self._apply_promotions(lines, address.zone)
            groups = self.splitter.split(lines, address.zone)
            if not groups:
                raise ValidationFailure("No orderable items left after vendor resolution")
            orders = [
                self._place(
                    buyer_id=data.buyer_id,
                    address=address,
                    lines=group.lines,
                    delivery_fee=group.delivery_fee,
                    payment_method=data.payment_method,
                    notes=data.notes,
                )
                for group in groups
            ]
            self.session.commit()
            return orders

        orders = self._run(_op)
        self._after_create(orders)
        return orders

    def cart_summary(self, buyer_id: int, address_id: int, items) -> dict:
        """Price a cart exactly as checkout would, without writing anything."""
        address = self._load_address(buyer_id, address_id)
        lines = self._validate_lines(items, address)
        self._apply_promotions(lines, address.zone)
        summary = self.splitter.summary(lines, address.zone)
        summary["address_id"] = address.id
        return summary

    def _after_create(self, orders) -> None:
        for order in orders:
            if self.logger is not None:
                self.logger.info(
                    "Order %s created: buyer=%s total=%s lines=%s",
                    order.order_number, order.user_id, order.total, len(order.lines),
                )
            dispatch(self.notifier, self.logger, ORDER_CREATED, {
                "order_id": order.id,
                "order_number": order.order_number,
                "buyer_id": order.user_id,
                "company_id": order.company_id,
                "zone": order.zone,
                "total": order.total,
            })
            self.stock.dispatch_alerts(self.stock.records.for_order(order.id, reason=SALE))

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def transition(self, order_id: int, new_status: str, note: str | None = None, actor=None, *, cancel_reason=None) -> Order:
        """
        Move an order to `new_status`.

        Row-locked; the table is checked first so terminal orders always fail
        with InvalidTransition. When an actor is given, the role policy applies.
        """
        if new_status not in ORDER_STATUSES:
            raise ValidationFailure(f"Unknown order status: {new_status}", {"status": new_status})
        actor_id = actor.id if actor is not None else None

        def _op():
            begin_write(self.session)
            order = self.orders.get(order_id, lock=True)
            if order is None:
                raise OrderNotFound("Order not found", {"order_id": order_id})
            if not is_allowed_transition(order.status, new_status):
                raise InvalidTransition(
                    f"Cannot transition order from {order.status} to {new_status}",
                    {"order_id": order.id, "from": order.status, "to": new_status},
                )
            if actor is not None:
                ensure_can_transition(actor, order, new_status)

            previous = order.status
            now = utcnow()
            order.status = new_status
            order.updated_at = now
            if new_status == "DELIVERED":
                order.delivered_at = now
            elif new_status == "CANCELLED":
                order.cancelled_at = now
                order.cancel_reason = cancel_reason or note
                for line in order.lines:
                    self.stock.increment(
                        line.product_id, line.quantity, CANCELLATION, order.id, actor_id=actor_id
                    )
            self._append_history(order, previous, new_status, note=note, actor_id=actor_id)
            self.session.commit()
            return order, previous

        order, previous = self._run(_op)

        if self.logger is not None:
            self.logger.info(
                "Order %s moved %s -> %s by %s", order.order_number, previous, new_status, actor_id
            )
        dispatch(self.notifier, self.logger, ORDER_STATUS_CHANGED, {
            "order_id": order.id,
            "order_number": order.order_number,
            "from": previous,
            "to": new_status,
            "changed_by": actor_id,
        })
        if new_status == "CANCELLED":
            self.stock.dispatch_alerts(self.stock.records.for_order(order.id, reason=CANCELLATION))
        return order

    def cancel(self, order_id: int, actor, reason: str | None = None) -> Order:
        """Cancel with the role policy enforced and stock restored."""
        return self.transition(order_id, "CANCELLED", reason, actor, cancel_reason=reason)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_order(self, order_id: int, actor=None) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound("Order not found", {"order_id": order_id})
        if actor is not None:
            ensure_can_view_order(actor, order)
        return order

    def list_orders(self, filters, actor=None) -> tuple[list[Order], dict]:
        if actor is not None:
            filters = scope_order_filters(actor, filters)
        items, total = self.orders.paginate(
            page=filters.page,
            limit=filters.limit,
            status=filters.status,
            zone=filters.zone,
            zones=filters.zones,
            buyer_id=filters.buyer_id,
            company_id=filters.company_id,
            start=filters.start,
            end=filters.end,
        )
        pagination = {
            "page": filters.page,
            "limit": filters.limit,
            "total": total,
            "pages": (total + filters.limit - 1) // filters.limit,
        }
        return items, pagination

    def stats(self, zone: str | None = None) -> dict:
        counts = self.orders.counts_by_status(zone=zone)
        by_status = {status: counts.get(status, 0) for status in ORDER_STATUSES}
        return {
            "zone": zone,
            "total_orders": sum(by_status.values()),
            "by_status": by_status,
            "total_revenue": self.orders.delivered_revenue(zone=zone),
        }
