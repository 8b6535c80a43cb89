"""
Typed inputs for every engine operation.

Request payloads are parsed and validated here, at the HTTP/CLI boundary,
into frozen dataclasses. The engine only ever sees these types, never raw
JSON. Any problem raises ValidationFailure (400).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from .errors import ValidationFailure
from .models import ORDER_STATUSES, PAYOUT_METHODS, PAYOUT_REQUEST_STATUSES, ZONES
from .policies import LOCATION_ADMIN, SUPER_ADMIN
from .time_utils import parse_iso_datetime, utcnow


# Maximum unit price / amount in minor units; guards against overflow and typos
MAX_AMOUNT = 999_999_999_999
MAX_PAGE_LIMIT = 100
DEFAULT_PAGE_LIMIT = 20

PAYMENT_METHODS = ("CASH_ON_DELIVERY",)
BANK_DETAIL_FIELDS = ("account_name", "account_number", "bank_name")


# =============================================================================
# INPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class OrderItemInput:
    product_id: int
    quantity: int
    unit_price: int | None = None
    notes: str | None = None

    def to_dict(self) -> dict:
        data = {"product_id": self.product_id, "quantity": self.quantity}
        if self.unit_price is not None:
            data["unit_price"] = self.unit_price
        if self.notes:
            data["notes"] = self.notes
        return data


@dataclass(frozen=True)
class CreateOrderInput:
    buyer_id: int
    address_id: int
    items: tuple[OrderItemInput, ...]
    notes: str | None = None


@dataclass(frozen=True)
class CheckoutInput:
    buyer_id: int
    address_id: int
    items: tuple[OrderItemInput, ...]
    payment_method: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class OrderFilters:
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    status: str | None = None
    zone: str | None = None
    zones: tuple[str, ...] | None = None
    buyer_id: int | None = None
    company_id: int | None = None
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class TransitionInput:
    status: str
    note: str | None = None


@dataclass(frozen=True)
class CreatePayoutInput:
    company_id: int
    method: str
    amount: int | None = None
    order_ids: tuple[int, ...] | None = None
    bank_details: dict | None = None
    notes: str | None = None
    requested_by: int | None = None


@dataclass(frozen=True)
class PayoutFilters:
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    company_id: int | None = None
    status: str | None = None
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class StockAdjustInput:
    product_id: int
    delta: int
    note: str | None = None


@dataclass(frozen=True)
class StockReturnInput:
    product_id: int
    quantity: int
    order_id: int | None = None
    note: str | None = None


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime


# =============================================================================
# SCALARS
# =============================================================================

def parse_int(
    value: Any,
    field: str,
    *,
    required: bool = True,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    """
    Strict integer parsing: rejects bools, floats, decimals and scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationFailure(f"{field} is required", {"field": field})
        return None

    if isinstance(value, bool):
        raise ValidationFailure(f"{field} must be an integer", {"field": field})
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        raise ValidationFailure(f"{field} must be an integer, not a decimal", {"field": field})
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationFailure(
                f"{field} must be a plain integer (scientific notation not allowed)",
                {"field": field},
            )
        if "." in stripped:
            raise ValidationFailure(f"{field} must be an integer (no decimals)", {"field": field})
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationFailure(f"{field} must be an integer", {"field": field})
    else:
        raise ValidationFailure(f"{field} must be an integer", {"field": field})

    if minimum is not None and result < minimum:
        raise ValidationFailure(f"{field} must be >= {minimum}", {"field": field, "minimum": minimum})
    if maximum is not None and result > maximum:
        raise ValidationFailure(f"{field} must be <= {maximum}", {"field": field, "maximum": maximum})
    return result


def parse_text(value: Any, field: str, *, max_length: int = 1000) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationFailure(f"{field} must be at most {max_length} characters", {"field": field})
    return text


def parse_choice(value: Any, field: str, choices, *, required: bool = True) -> str | None:
    if value is None or value == "":
        if required:
            raise ValidationFailure(f"{field} is required", {"field": field})
        return None
    normalized = str(value).strip().upper()
    if normalized not in choices:
        raise ValidationFailure(
            f"{field} must be one of: {', '.join(choices)}",
            {"field": field, "value": value},
        )
    return normalized


def parse_datetime(value: Any, field: str, *, end_of_day: bool = False) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        dt = parse_iso_datetime(str(value), end_of_day=end_of_day)
    except ValueError:
        raise ValidationFailure(f"{field} must be an ISO-8601 date or datetime", {"field": field})
    return dt


def parse_id_list(value: Any, field: str) -> tuple[int, ...]:
    if not isinstance(value, (list, tuple)):
        raise ValidationFailure(f"{field} must be a list of ids", {"field": field})
    ids = tuple(parse_int(v, field, minimum=1) for v in value)
    if len(set(ids)) != len(ids):
        raise ValidationFailure(f"{field} contains duplicates", {"field": field})
    return ids


def parse_pagination(args) -> tuple[int, int]:
    page = parse_int(args.get("page"), "page", required=False, minimum=1) or 1
    limit = parse_int(
        args.get("limit"), "limit", required=False, minimum=1, maximum=MAX_PAGE_LIMIT
    ) or DEFAULT_PAGE_LIMIT
    return page, limit


def parse_date_range(args, *, default_days: int | None = None) -> DateRange:
    """
    start/end query args. Date-only values cover whole days. With default_days,
    missing bounds default to the last `default_days` days ending now.
    """
    start = parse_datetime(args.get("start"), "start")
    end = parse_datetime(args.get("end"), "end", end_of_day=True)
    if default_days is not None:
        end = end or utcnow()
        start = start or (end - timedelta(days=default_days))
    if start is None or end is None:
        raise ValidationFailure("start and end are required", {"fields": ["start", "end"]})
    if start > end:
        raise ValidationFailure("start must be before end", {"start": str(start), "end": str(end)})
    return DateRange(start=start, end=end)


# =============================================================================
# ORDERS / CART
# =============================================================================

def parse_items(raw_items: Any, *, allow_price: bool = False, field: str = "items") -> tuple[OrderItemInput, ...]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationFailure(f"{field} must be a non-empty list", {"field": field})

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationFailure(f"{field}[{index}] must be an object", {"index": index})
        unit_price = None
        if allow_price:
            unit_price = parse_int(
                raw.get("unit_price", raw.get("price")),
                f"{field}[{index}].unit_price",
                required=False,
                minimum=0,
                maximum=MAX_AMOUNT,
            )
        items.append(OrderItemInput(
            product_id=parse_int(raw.get("product_id"), f"{field}[{index}].product_id", minimum=1),
            quantity=parse_int(raw.get("quantity"), f"{field}[{index}].quantity", minimum=1),
            unit_price=unit_price,
            notes=parse_text(raw.get("notes"), f"{field}[{index}].notes", max_length=255),
        ))
    return tuple(items)


def _buyer_for(payload: dict, actor) -> int:
    """Admins may place orders on behalf of a shop; everyone else buys for themselves."""
    if actor.role in (SUPER_ADMIN, LOCATION_ADMIN) and payload.get("buyer_id") is not None:
        return parse_int(payload.get("buyer_id"), "buyer_id", minimum=1)
    return actor.id


def parse_create_order(payload: dict, actor) -> CreateOrderInput:
    return CreateOrderInput(
        buyer_id=_buyer_for(payload, actor),
        address_id=parse_int(payload.get("address_id"), "address_id", minimum=1),
        items=parse_items(payload.get("items")),
        notes=parse_text(payload.get("notes"), "notes"),
    )


def parse_checkout(payload: dict, actor) -> CheckoutInput:
    # Negotiated price overrides are an admin tool; shop owners always pay list price
    allow_price = actor.role in (SUPER_ADMIN, LOCATION_ADMIN)
    return CheckoutInput(
        buyer_id=_buyer_for(payload, actor),
        address_id=parse_int(payload.get("address_id"), "address_id", minimum=1),
        items=parse_items(payload.get("items"), allow_price=allow_price),
        payment_method=parse_choice(
            payload.get("payment_method"), "payment_method", PAYMENT_METHODS, required=False
        ),
        notes=parse_text(payload.get("notes"), "notes"),
    )


def parse_order_filters(args) -> OrderFilters:
    page, limit = parse_pagination(args)
    return OrderFilters(
        page=page,
        limit=limit,
        status=parse_choice(args.get("status"), "status", ORDER_STATUSES, required=False),
        zone=parse_choice(args.get("zone"), "zone", ZONES, required=False),
        buyer_id=parse_int(args.get("buyer_id"), "buyer_id", required=False, minimum=1),
        company_id=parse_int(args.get("company_id"), "company_id", required=False, minimum=1),
        start=parse_datetime(args.get("start"), "start"),
        end=parse_datetime(args.get("end"), "end", end_of_day=True),
    )


def parse_transition(payload: dict) -> TransitionInput:
    return TransitionInput(
        status=parse_choice(payload.get("status"), "status", ORDER_STATUSES),
        note=parse_text(payload.get("note"), "note", max_length=255),
    )


# =============================================================================
# PAYOUTS
# =============================================================================

def validate_bank_details(bank_details: Any) -> dict:
    if not isinstance(bank_details, dict):
        raise ValidationFailure(
            "Bank details are required for bank transfers",
            {"required": list(BANK_DETAIL_FIELDS)},
        )
    cleaned = {}
    missing = []
    for key in BANK_DETAIL_FIELDS:
        value = parse_text(bank_details.get(key), f"bank_details.{key}", max_length=255)
        if value is None:
            missing.append(key)
        else:
            cleaned[key] = value
    if missing:
        raise ValidationFailure(
            f"Bank details missing: {', '.join(missing)}",
            {"missing": missing},
        )
    iban = parse_text(bank_details.get("iban"), "bank_details.iban", max_length=64)
    if iban:
        cleaned["iban"] = iban
    return cleaned


def parse_create_payout(payload: dict, actor) -> CreatePayoutInput:
    method = parse_choice(payload.get("method"), "method", PAYOUT_METHODS)
    bank_details = None
    if method == "BANK_TRANSFER":
        bank_details = validate_bank_details(payload.get("bank_details"))

    order_ids = None
    if payload.get("order_ids") is not None:
        order_ids = parse_id_list(payload.get("order_ids"), "order_ids")
        if not order_ids:
            raise ValidationFailure("order_ids must not be empty", {"field": "order_ids"})

    company_id = payload.get("company_id")
    if company_id is None and actor.company_id is not None:
        company_id = actor.company_id

    return CreatePayoutInput(
        company_id=parse_int(company_id, "company_id", minimum=1),
        method=method,
        amount=parse_int(payload.get("amount"), "amount", required=False, minimum=1, maximum=MAX_AMOUNT),
        order_ids=order_ids,
        bank_details=bank_details,
        notes=parse_text(payload.get("notes"), "notes"),
        requested_by=actor.id,
    )


def parse_payout_filters(args) -> PayoutFilters:
    page, limit = parse_pagination(args)
    return PayoutFilters(
        page=page,
        limit=limit,
        company_id=parse_int(args.get("company_id"), "company_id", required=False, minimum=1),
        status=parse_choice(args.get("status"), "status", PAYOUT_REQUEST_STATUSES, required=False),
        start=parse_datetime(args.get("start"), "start"),
        end=parse_datetime(args.get("end"), "end", end_of_day=True),
    )


def parse_payout_status(payload: dict) -> tuple[str, str | None]:
    return (
        parse_choice(payload.get("status"), "status", PAYOUT_REQUEST_STATUSES),
        parse_text(payload.get("notes"), "notes"),
    )


# =============================================================================
# INVENTORY
# =============================================================================

def parse_stock_adjust(payload: dict) -> StockAdjustInput:
    delta = parse_int(payload.get("delta"), "delta", minimum=-MAX_AMOUNT, maximum=MAX_AMOUNT)
    if delta == 0:
        raise ValidationFailure("delta must not be zero", {"field": "delta"})
    return StockAdjustInput(
        product_id=parse_int(payload.get("product_id"), "product_id", minimum=1),
        delta=delta,
        note=parse_text(payload.get("note"), "note", max_length=255),
    )


def parse_stock_return(payload: dict) -> StockReturnInput:
    return StockReturnInput(
        product_id=parse_int(payload.get("product_id"), "product_id", minimum=1),
        quantity=parse_int(payload.get("quantity"), "quantity", minimum=1),
        order_id=parse_int(payload.get("order_id"), "order_id", required=False, minimum=1),
        note=parse_text(payload.get("note"), "note", max_length=255),
    )

