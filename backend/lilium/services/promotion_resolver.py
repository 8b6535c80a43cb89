# Overview: Picks the single best promotion for a cart line; pure functions over loaded rows.

from __future__ import annotations

from datetime import datetime

from ..errors import UnsupportedPromotionType

"""
Promotion rules

Applicability (all must hold):
- is_active, and starts_at <= now <= ends_at (open ends allowed)
- product_ids empty or contains the product
- category_ids empty or contains the product's category
- zones empty or contains the buyer's zone
- min_purchase unset or <= the line's pre-discount total

Candidate discount for the whole line, clamped to [0, line_total]:
- PERCENTAGE:  line_total * value / 100 (half-up), capped by max_discount
- FIXED:       value
- BUY_X_GET_Y: floor(qty / (buy + get)) * get * unit_price, capped by max_discount
- BUNDLE:      (sum of bundle prices - value) shared by unit price, only when
               every bundle product is in the cart

Largest candidate wins, ties go to the lowest promotion id. The result is
returned per unit (floor), so per_unit * qty never exceeds the candidate.
"""

PERCENTAGE = "PERCENTAGE"
FIXED = "FIXED"
BUY_X_GET_Y = "BUY_X_GET_Y"
BUNDLE = "BUNDLE"
PROMOTION_TYPES = (PERCENTAGE, FIXED, BUY_X_GET_Y, BUNDLE)


def is_applicable(promotion, *, product, zone: str | None, now: datetime, line_total: int) -> bool:
    if not promotion.is_active:
        return False
    if promotion.starts_at is not None and now < promotion.starts_at:
        return False
    if promotion.ends_at is not None and now > promotion.ends_at:
        return False

    product_ids = promotion.product_ids or []
    if product_ids and product.id not in product_ids:
        return False

    category_ids = promotion.category_ids or []
    if category_ids and product.category_id not in category_ids:
        return False

    zones = promotion.zones or []
    if zones and zone not in zones:
        return False

    if promotion.min_purchase is not None and line_total < promotion.min_purchase:
        return False
    return True


def _cap(amount: int, max_discount: int | None) -> int:
    if max_discount is not None:
        return min(amount, max_discount)
    return amount


def candidate_discount(
    promotion,
    *,
    unit_price: int,
    quantity: int,
    cart_prices: dict[int, int] | None = None,
) -> int:
    """Whole-line discount a promotion would give, clamped to [0, line_total]."""
    line_total = unit_price * quantity
    promo_type = promotion.promo_type

    if promo_type == PERCENTAGE:
        amount = _cap((line_total * promotion.value + 50) // 100, promotion.max_discount)

    elif promo_type == FIXED:
        amount = promotion.value

    elif promo_type == BUY_X_GET_Y:
        buy = promotion.buy_quantity or 0
        get = promotion.get_quantity or 0
        if buy <= 0 or get <= 0:
            raise UnsupportedPromotionType(
                f"Promotion {promotion.id} is BUY_X_GET_Y without buy/get quantities",
                {"promotion_id": promotion.id},
            )
        free_units = (quantity // (buy + get)) * get
        amount = _cap(free_units * unit_price, promotion.max_discount)

    elif promo_type == BUNDLE:
        bundle_ids = promotion.product_ids or []
        cart_prices = cart_prices or {}
        if not bundle_ids or any(pid not in cart_prices for pid in bundle_ids):
            return 0
        bundle_total = sum(cart_prices[pid] for pid in bundle_ids)
        saving = max(0, bundle_total - promotion.value)
        if bundle_total <= 0:
            return 0
        amount = saving * unit_price // bundle_total

    else:
        raise UnsupportedPromotionType(
            f"Unsupported promotion type: {promo_type}",
            {"promotion_id": promotion.id, "promo_type": promo_type},
        )

    return max(0, min(amount, line_total))


def resolve(
    line,
    promotions,
    zone: str | None,
    now: datetime,
    cart_prices: dict[int, int] | None = None,
):
    """
    Best promotion for one cart line.

    Returns (per_unit_discount, promotion or None).
    """
    line_total = line.unit_price * line.quantity
    best_amount = 0
    best = None
    for promotion in sorted(promotions, key=lambda p: p.id):
        if not is_applicable(promotion, product=line.product, zone=zone, now=now, line_total=line_total):
            continue
        amount = candidate_discount(
            promotion,
            unit_price=line.unit_price,
            quantity=line.quantity,
            cart_prices=cart_prices,
        )
        if amount > best_amount:
            best_amount = amount
            best = promotion

    if best is None:
        return 0, None
    per_unit = best_amount // line.quantity
    if per_unit == 0:
        return 0, None
    return per_unit, best
