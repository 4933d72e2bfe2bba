from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from mizan.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .ledger.records import (
    ACCOUNT_TYPES,
    DocumentKind,
    PAYMENT_METHODS,
    TRANSACTION_TYPES,
    TX_JOURNAL,
    to_quantity,
)


# Maximum price: 999,999,999,999.99 fits Numeric(14, 2)
MAX_AMOUNT = Decimal("999999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate product code)."""


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


def parse_decimal(key: str, value: Any) -> Decimal:
    """Strict decimal parsing: numbers or numeric strings, never bools or NaN."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        text = str(value).strip()
        if not text:
            raise ValidationError(f"{key} must be a number")
        try:
            result = Decimal(text)
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return result


def parse_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit() or (stripped.startswith("-") and stripped[1:].isdigit()):
            return int(stripped)
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(col.key, value)

    if isinstance(coltype, Numeric):
        return parse_decimal(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
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

    Keys in the allowlist that are not columns (e.g. "lines") pass through
    untouched for the caller to validate.
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


def _check_amount(key: str, value: Decimal, *, allow_zero: bool = True) -> None:
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'>= 0' if allow_zero else '> 0'}")
    if value > MAX_AMOUNT:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("cost_price", "sell_price", "sell_price_wholesale"):
        if patch.get(key) is not None:
            _check_amount(key, patch[key])


def enforce_rules_account(patch: dict) -> None:
    if "type" in patch and patch["type"] not in ACCOUNT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(sorted(ACCOUNT_TYPES))}")


def parse_document_kind(value: Any) -> DocumentKind:
    try:
        return DocumentKind(value)
    except ValueError:
        raise ValidationError("kind must be 'sale' or 'purchase'")


def validate_document_lines(lines: Any) -> list[dict]:
    """
    Normalize [{"product_id", "quantity", "unit_price"}, ...].

    Quantities are quantized to 0.001 before the > 0 check and prices must be
    >= 0; line_total is always computed server-side.
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("lines must be a non-empty list")

    cleaned = []
    for index, line in enumerate(lines, start=1):
        if not isinstance(line, dict):
            raise ValidationError(f"line {index} must be an object")
        missing = [k for k in ("product_id", "quantity", "unit_price") if line.get(k) is None]
        if missing:
            raise ValidationError(f"line {index} missing: {', '.join(missing)}")
        try:
            quantity = to_quantity(parse_decimal(f"line {index} quantity", line["quantity"]))
        except InvalidOperation:
            raise ValidationError(f"line {index} quantity is out of range")
        unit_price = parse_decimal(f"line {index} unit_price", line["unit_price"])
        if quantity <= 0:
            raise ValidationError(f"line {index} quantity must be > 0")
        _check_amount(f"line {index} unit_price", unit_price)
        cleaned.append({
            "product_id": parse_int(f"line {index} product_id", line["product_id"]),
            "quantity": quantity,
            "unit_price": unit_price,
        })
    return cleaned


def enforce_rules_transaction(patch: dict) -> None:
    if patch.get("type") not in TRANSACTION_TYPES:
        raise ValidationError("type must be 'credit', 'debit' or 'journal'")

    amount = patch.get("amount")
    if amount is None:
        raise ValidationError("amount is required")
    _check_amount("amount", amount, allow_zero=False)

    method = patch.get("payment_method")
    if method is not None and method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}")

    if patch["type"] == TX_JOURNAL:
        if patch.get("is_debit") is None:
            raise ValidationError("is_debit is required for journal entries")
    elif patch.get("is_debit") is not None:
        raise ValidationError("is_debit is only allowed for journal entries")
