from __future__ import annotations
import math
from datetime import datetime
from .time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Counters beyond this are a typo, not a real meter
MAX_COUNTER_VALUE = 2_000_000_000

MAX_AMOUNT = 9_999_999.99


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate serial number)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """Strict integer parsing: rejects floats, booleans and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", "."))
        except ValueError:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    # float() accepts "nan" and "inf"
    if not math.isfinite(number):
        raise ValidationError(f"{key} must be a finite number")
    return number


def coerce_datetime(key: str, value: Any, *, end_of_day: bool = False) -> datetime:
    """Accept datetimes or ISO-8601 strings; normalize to UTC-naive."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value, end_of_day=end_of_day)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Float):
        return coerce_float(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    if isinstance(coltype, DateTime):
        return coerce_datetime(col.key, value)

    if isinstance(coltype, JSON):
        if not isinstance(value, dict):
            raise ValidationError(f"{col.key} must be an object")
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
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

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
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

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def validate_counter(key: str, value: Any) -> int:
    """Counter readings: integers in [0, MAX_COUNTER_VALUE]."""
    if value is None:
        raise ValidationError(f"{key} is required")
    counter = coerce_int(key, value)
    if counter < 0:
        raise ValidationError(f"{key} must be >= 0")
    if counter > MAX_COUNTER_VALUE:
        raise ValidationError(f"{key} cannot exceed {MAX_COUNTER_VALUE}")
    return counter


def validate_percentage(key: str, value: Any) -> float:
    """Split/distribution percentages: finite numbers in [0, 100]."""
    pct = coerce_float(key, value)
    if not 0 <= pct <= 100:
        raise ValidationError(f"{key} must be between 0 and 100")
    return pct


def enforce_rules_machine(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("initial_counter") is not None:
        patch["initial_counter"] = validate_counter("initial_counter", patch["initial_counter"])
    if patch.get("split_percentage") is not None:
        patch["split_percentage"] = validate_percentage("split_percentage", patch["split_percentage"])
    if patch.get("cost") is not None and patch["cost"] < 0:
        raise ValidationError("cost must be >= 0")
    if patch.get("warranty_months") is not None and patch["warranty_months"] < 0:
        raise ValidationError("warranty_months must be >= 0")
    for dim in ("width", "height", "depth"):
        if patch.get(dim) is not None and patch[dim] <= 0:
            raise ValidationError(f"{dim} must be > 0")


def enforce_rules_expense(patch: dict) -> None:
    if "amount" in patch:
        amount = patch["amount"]
        if amount is None or amount < 0:
            raise ValidationError("amount must be >= 0")
        if amount > MAX_AMOUNT:
            raise ValidationError(f"amount cannot exceed {MAX_AMOUNT:,.2f}")


def enforce_rules_company(patch: dict) -> None:
    if patch.get("vat_percentage") is not None:
        patch["vat_percentage"] = validate_percentage("vat_percentage", patch["vat_percentage"])
