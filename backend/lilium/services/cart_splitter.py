# Overview: Groups validated cart lines by vendor and prices each group (subtotal, discount, delivery fee, total).

from __future__ import annotations

from dataclasses import dataclass, field


SINGLE_VENDOR_DELIVERY_DAYS = (2, 5)
MULTI_VENDOR_DELIVERY_DAYS = (3, 7)


@dataclass
class CartLine:
    """One requested product, enriched during validation and pricing."""

    product_id: int
    quantity: int
    unit_price: int | None = None
    notes: str | None = None
    product: object | None = None
    discount_per_unit: int = 0
    promotion_id: int | None = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    @property
    def discount_total(self) -> int:
        return self.discount_per_unit * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": getattr(self.product, "name", None),
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "discount_per_unit": self.discount_per_unit,
            "promotion_id": self.promotion_id,
            "line_total": self.line_total,
            "net_total": self.line_total - self.discount_total,
            "notes": self.notes,
        }


@dataclass
class VendorGroup:
    vendor_id: int
    vendor_name: str
    lines: list[CartLine] = field(default_factory=list)
    subtotal: int = 0
    discount: int = 0
    delivery_fee: int = 0
    total: int = 0

    def to_dict(self) -> dict:
        return {
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "lines": [line.to_dict() for line in self.lines],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "delivery_fee": self.delivery_fee,
            "total": self.total,
        }


class CartSplitter:

    def __init__(self, *, settings, logger=None):
        self.settings = settings
        self.logger = logger

    def delivery_fee_for(self, vendor, buyer_zone: str | None) -> int:
        zones = getattr(vendor, "zones", None) or []
        if buyer_zone and buyer_zone in zones:
            return self.settings.delivery_fee_same_zone
        return self.settings.delivery_fee_cross_zone

    def split(self, lines, buyer_zone: str | None) -> list[VendorGroup]:
        """
        One group per vendor, in first-seen order; lines keep their input order.

        Lines whose product has no resolvable vendor are dropped and logged.
        """
        groups: dict[int, VendorGroup] = {}
        for line in lines:
            product = line.product
            vendor = getattr(product, "company", None)
            if product is None or product.company_id is None or vendor is None:
                if self.logger is not None:
                    self.logger.warning(
                        "Dropping cart line for product %s: vendor cannot be resolved",
                        line.product_id,
                    )
                continue
            group = groups.get(vendor.id)
            if group is None:
                group = VendorGroup(
                    vendor_id=vendor.id,
                    vendor_name=vendor.name,
                    delivery_fee=self.delivery_fee_for(vendor, buyer_zone),
                )
                groups[vendor.id] = group
            group.lines.append(line)

        for group in groups.values():
            group.subtotal = sum(line.line_total for line in group.lines)
            group.discount = sum(line.discount_total for line in group.lines)
            group.total = group.subtotal - group.discount + group.delivery_fee
        return list(groups.values())

    def summary(self, lines, buyer_zone: str | None) -> dict:
        groups = self.split(lines, buyer_zone)
        if len(groups) > 1:
            min_days, max_days = MULTI_VENDOR_DELIVERY_DAYS
        else:
            min_days, max_days = SINGLE_VENDOR_DELIVERY_DAYS
        return {
            "zone": buyer_zone,
            "groups": [group.to_dict() for group in groups],
            "vendor_count": len(groups),
            "item_count": sum(line.quantity for group in groups for line in group.lines),
            "subtotal": sum(group.subtotal for group in groups),
            "discount": sum(group.discount for group in groups),
            "delivery_fee": sum(group.delivery_fee for group in groups),
            "total": sum(group.total for group in groups),
            "estimated_delivery": {"min_days": min_days, "max_days": max_days},
        }
