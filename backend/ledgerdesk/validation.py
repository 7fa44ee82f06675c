from __future__ import annotations
from datetime import datetime
from ledgerdesk.time_utils import business_time, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidAmount, ValidationError


# Maximum single amount: 9,999,999.99 in major units.
# Keeps sums comfortably inside a 64-bit column.
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects floats, bools, decimals and exponents."""
    if isinstance(value, int) and not isinstance(value, bool):
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
        raise ValidationError(f"{field} must be an integer number of cents, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_amount_cents(value: Any, field: str = "amount_cents", *, signed: bool = False) -> int:
    """
    Validate a money amount in cents.

    signed=False: must be > 0 (invoices, payments, treasury movements).
    signed=True: must be non-zero (opening balances carry their sign).
    """
    if value is None:
        raise InvalidAmount(f"{field} is required")
    try:
        amount = coerce_int(value, field)
    except ValidationError as exc:
        raise InvalidAmount(str(exc))

    if signed:
        if amount == 0:
            raise InvalidAmount(f"{field} must be non-zero")
    elif amount <= 0:
        raise InvalidAmount(f"{field} must be positive")

    if abs(amount) > MAX_AMOUNT_CENTS:
        raise InvalidAmount(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return amount


def parse_count_cents(value: Any, field: str) -> int:
    """Drawer counts: zero is a legitimate count, negatives are not."""
    if value is None:
        raise InvalidAmount(f"{field} is required")
    try:
        amount = coerce_int(value, field)
    except ValidationError as exc:
        raise InvalidAmount(str(exc))
    if amount < 0:
        raise InvalidAmount(f"{field} cannot be negative")
    return amount


def parse_datetime_field(value: Any, field: str, *, default_now: bool = False) -> datetime | None:
    """ISO-8601 string or datetime -> UTC-naive datetime; None stays None unless default_now."""
    try:
        return business_time(value) if default_now else parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return parse_iso_datetime(value)
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Keys in the allowlist that are not columns (e.g. "line_items") are
    passed through untouched for the caller to handle.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols.get(k)
        if col is None:
            patch[k] = raw
            continue

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch
