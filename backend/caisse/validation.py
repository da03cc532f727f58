# backend/caisse/validation.py
"""
Payload validation shared by every entity service.

WHY: Callers hand us loose dicts (form values, JSON). Before anything reaches
a model we:
- keep only the fields a policy allows (SECURITY: etablissement_id, balances,
  statuses and credentials are never writable through a generic patch)
- coerce each value to its column type ("2500" -> Decimal, "12" -> int)
- honour column metadata (NOT NULL, String length)

Business rules that need the database (duplicate barcode, open cash session)
live in the services and raise ConflictError.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

from sqlalchemy import Boolean, Date, DateTime, Integer, JSON, Numeric, String, Text

from caisse.time_utils import parse_iso_datetime

# Numeric(14, 2) upper bound
MAX_NUMERIC = Decimal("999999999999.99")


class ValidationError(ValueError):
    """Malformed caller input (missing tenant, negative quantity, bad type)."""


class ConflictError(ValueError):
    """Business rule conflict (e.g., duplicate barcode, second open cash session)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()
    non_negative: frozenset[str] = frozenset()


def policy(
    writable: Iterable[str],
    required: Iterable[str] = (),
    non_negative: Iterable[str] = (),
) -> ModelValidationPolicy:
    """Build a policy; `required` and `non_negative` are subsets of `writable`."""
    return ModelValidationPolicy(
        writable_fields=frozenset(writable),
        required_on_create=frozenset(required),
        non_negative=frozenset(non_negative),
    )


# =============================================================================
# COERCION (one function per column type)
# =============================================================================

def _to_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    if abs(number) > MAX_NUMERIC:
        raise ValidationError(f"{key} is out of range")
    return number


def _to_int(key: str, value: Any) -> int:
    # bool is an int subclass; 1.0, "1.5" and "1e3" are refused
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an integer")

    text = value.strip()
    digits = text[1:] if text[:1] in "+-" else text
    if not digits.isdigit():
        raise ValidationError(f"{key} must be a plain integer")
    return int(text)


def _to_bool(key: str, value: Any) -> bool:
    return value if isinstance(value, bool) else bool(value)


def _to_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _to_date(key: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise ValidationError(f"{key} must be an ISO-8601 date")


def _to_text(key: str, value: Any) -> str:
    return str(value).strip()


def _passthrough(key: str, value: Any) -> Any:
    return value


# Checked in order; DateTime before Date
_COERCERS: list[tuple[type, Callable[[str, Any], Any]]] = [
    (Numeric, _to_decimal),
    (Integer, _to_int),
    (Boolean, _to_bool),
    (DateTime, _to_datetime),
    (Date, _to_date),
    (JSON, _passthrough),
    (String, _to_text),
    (Text, _to_text),
]


def _coercer_for(column) -> Callable[[str, Any], Any]:
    for sa_type, coerce in _COERCERS:
        if isinstance(column.type, sa_type):
            return coerce
    return _passthrough


def _check_column(column, value: Any) -> None:
    if not isinstance(column.type, (String, Text)) or not isinstance(value, str):
        return
    if value == "" and not column.nullable:
        raise ValidationError(f"{column.key} cannot be blank")
    length = getattr(column.type, "length", None)
    if length and len(value) > length:
        raise ValidationError(f"{column.key} exceeds max length {length}")


# =============================================================================
# ENTRY POINTS
# =============================================================================

def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Clean `payload` for `model` and return the patch to apply.

    partial=False: insert semantics, every required_on_create field must be
    present and non-blank.
    partial=True: update semantics, only the keys provided are checked.

    Raises:
        ValidationError: unknown or non-writable field, NULL into NOT NULL,
                         wrong type, blank/too long string, negative amount
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    for key in payload:
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in columns:
            raise ValidationError(f"Unknown field: {key}")

    patch: dict = {}
    for key, raw in payload.items():
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coercer_for(column)(key, raw)
        _check_column(column, value)
        if key in policy.non_negative and value < 0:
            raise ValidationError(f"{key} must be >= 0")
        patch[key] = value

    return patch


def require_choice(field: str, value: Any, choices: Iterable[str]) -> str:
    """Enumerated string columns: reject anything outside the allowed set."""
    choices = tuple(choices)
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value
