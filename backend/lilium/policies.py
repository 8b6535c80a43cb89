# Overview: Role-based authorization rules for orders, vendors and inventory.

from __future__ import annotations

from dataclasses import dataclass, replace

from .errors import Forbidden
from .models import TERMINAL_STATUSES


SUPER_ADMIN = "SUPER_ADMIN"
LOCATION_ADMIN = "LOCATION_ADMIN"
COMPANY_ADMIN = "COMPANY_ADMIN"
SHOP_OWNER = "SHOP_OWNER"
ROLES = (SUPER_ADMIN, LOCATION_ADMIN, COMPANY_ADMIN, SHOP_OWNER)


@dataclass(frozen=True)
class Actor:
    """
    Caller identity as supplied by the auth layer.

    zones only matter for LOCATION_ADMIN, company_id only for COMPANY_ADMIN.
    """
    id: int
    role: str
    zones: tuple[str, ...] = ()
    company_id: int | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "zones": list(self.zones),
            "company_id": self.company_id,
        }


def order_company_ids(order) -> set[int]:
    ids = {line.company_id for line in order.lines if line.company_id is not None}
    if order.company_id is not None:
        ids.add(order.company_id)
    return ids


# =============================================================================
# ORDERS
# =============================================================================

def can_view_order(actor: Actor, order) -> bool:
    if actor.role == SUPER_ADMIN:
        return True
    if actor.role == LOCATION_ADMIN:
        return order.zone in actor.zones
    if actor.role == COMPANY_ADMIN:
        return actor.company_id is not None and actor.company_id in order_company_ids(order)
    if actor.role == SHOP_OWNER:
        return order.user_id == actor.id
    return False


def can_transition(actor: Actor, order, new_status: str) -> bool:
    """
    Who may move an order:
    - nobody, once the order is DELIVERED or CANCELLED
    - SUPER_ADMIN: any order
    - LOCATION_ADMIN: orders delivered into one of their zones
    - COMPANY_ADMIN: orders made up only of their company's products
    - SHOP_OWNER: cancel their own order while it is still PENDING
    """
    if order.status in TERMINAL_STATUSES:
        return False
    if actor.role == SUPER_ADMIN:
        return True
    if actor.role == LOCATION_ADMIN:
        return order.zone in actor.zones
    if actor.role == COMPANY_ADMIN:
        return actor.company_id is not None and order_company_ids(order) == {actor.company_id}
    if actor.role == SHOP_OWNER:
        return (
            new_status == "CANCELLED"
            and order.status == "PENDING"
            and order.user_id == actor.id
        )
    return False


def ensure_can_view_order(actor: Actor, order) -> None:
    if not can_view_order(actor, order):
        raise Forbidden(
            "You do not have access to this order",
            {"order_id": order.id, "role": actor.role},
        )


def ensure_can_transition(actor: Actor, order, new_status: str) -> None:
    if not can_transition(actor, order, new_status):
        raise Forbidden(
            f"Role {actor.role} may not move order {order.order_number} from {order.status} to {new_status}",
            {"order_id": order.id, "from": order.status, "to": new_status, "role": actor.role},
        )


def scope_order_filters(actor: Actor, filters):
    """Narrow list filters to what the actor is allowed to see."""
    if actor.role == SUPER_ADMIN:
        return filters
    if actor.role == LOCATION_ADMIN:
        return replace(filters, zones=tuple(actor.zones))
    if actor.role == COMPANY_ADMIN:
        return replace(filters, company_id=actor.company_id if actor.company_id is not None else -1)
    return replace(filters, buyer_id=actor.id)


# =============================================================================
# VENDORS / INVENTORY
# =============================================================================

def can_read_company(actor: Actor, company_id: int) -> bool:
    if actor.role in (SUPER_ADMIN, LOCATION_ADMIN):
        return True
    return actor.role == COMPANY_ADMIN and actor.company_id == company_id


def ensure_can_read_company(actor: Actor, company_id: int) -> None:
    if not can_read_company(actor, company_id):
        raise Forbidden("You do not have access to this company", {"company_id": company_id})


def can_request_payout(actor: Actor, company_id: int) -> bool:
    if actor.role == SUPER_ADMIN:
        return True
    return actor.role == COMPANY_ADMIN and actor.company_id == company_id


def ensure_can_request_payout(actor: Actor, company_id: int) -> None:
    if not can_request_payout(actor, company_id):
        raise Forbidden("You may not request payouts for this company", {"company_id": company_id})


def can_manage_stock(actor: Actor, product) -> bool:
    if actor.role in (SUPER_ADMIN, LOCATION_ADMIN):
        return True
    return actor.role == COMPANY_ADMIN and product.company_id == actor.company_id


def ensure_can_manage_stock(actor: Actor, product) -> None:
    if not can_manage_stock(actor, product):
        raise Forbidden("You may not change stock for this product", {"product_id": product.id})
