"""
Request payload parsing for the API layer.

Turns JSON bodies into the dataclasses the services take. Every problem is
raised as errors.ValidationError so routes answer it like any other
business failure (400 with a code and details).
"""

from __future__ import annotations

from typing import Any

from .errors import ValidationError
from .services.cart_service import CartItem
from .services.day_end_service import ReconciliationEntry
from .services.payment_service import PaymentRequest
from .time_utils import parse_iso_date, parse_iso_datetime

# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


def get_json_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings; rejects booleans, floats,
    decimals and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def get_int(data: dict, field: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} required")
        return None
    result = coerce_int(value, field)
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", details={field: result})
    return result


def is_cleared(data: dict, field: str) -> bool:
    """True when the payload sends an explicit null for ``field``."""
    return field in data and data[field] is None


def get_amount(data: dict, field: str, *, required: bool = True, minimum: int = 0) -> int | None:
    amount = get_int(data, field, required=required, minimum=minimum)
    if amount is not None and amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum amount", details={field: amount})
    return amount


def get_str(data: dict, field: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} required")
        return None
    value = str(value).strip()
    if required and not value:
        raise ValidationError(f"{field} required")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None


def get_datetime(data: dict, field: str):
    value = data.get(field)
    if value is None:
        return None
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def get_date(value: str | None, field: str):
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")


def parse_cart_items(data: dict, *, required: bool = True) -> list[CartItem] | None:
    raw = data.get("items")
    if raw is None:
        if required:
            raise ValidationError("items required")
        return None
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        items.append(CartItem(
            product_id=get_int(entry, "product_id"),
            quantity=get_int(entry, "quantity", minimum=1),
            discount_id=get_int(entry, "discount_id", required=False),
        ))
    return items


def parse_payment_request(data: dict) -> PaymentRequest:
    return PaymentRequest(
        amount_cents=get_amount(data, "amount_cents", minimum=1),
        currency_id=get_int(data, "currency_id"),
        payment_method_id=get_int(data, "payment_method_id"),
        shift_id=get_int(data, "shift_id", required=False),
        reference_number=get_str(data, "reference_number", max_length=128),
        notes=get_str(data, "notes"),
        payment_date=get_datetime(data, "payment_date"),
    )


def parse_payment_requests(data: dict) -> list[PaymentRequest]:
    raw = data.get("payments")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("payments must be a non-empty list")
    requests = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"payments[{index}] must be an object")
        requests.append(parse_payment_request(entry))
    return requests


def parse_reconciliation(data: dict) -> list[ReconciliationEntry]:
    raw = data.get("payments")
    if not isinstance(raw, list):
        raise ValidationError("payments must be a list")
    entries = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"payments[{index}] must be an object")
        entries.append(ReconciliationEntry(
            payment_method_id=get_int(entry, "payment_method_id"),
            currency_id=get_int(entry, "currency_id"),
            actual_amount_cents=get_amount(entry, "actual_amount_cents"),
        ))
    return entries
