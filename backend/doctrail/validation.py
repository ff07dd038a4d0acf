from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import Boolean, Integer, String, Text


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Basis points: 100% = 10000
MAX_RATE_BPS = 10_000


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


# Line items: stock/sold/returned flags are owned by the lifecycle, never the client
LINE_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "inventory_unit_id",
        "sku",
        "title",
        "description",
        "quantity",
        "unit_price_cents",
        "unit_cost_cents",
        "charge_taxes",
        "reason",
        "condition",
        "restock",
    },
    required_on_create={"quantity"},
)

ADJUSTMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "tax_rate_bps",
        "charge_taxes",
        "discount_value",
        "discount_unit",
        "discount_reason",
        "service_fee_value",
        "service_fee_unit",
        "service_fee_reason",
        "shipping_cents",
        "restocking_fee_cents",
    },
)

# Header fields the create wizard accepts directly onto Document
DOCUMENT_HEADER_POLICY = ModelValidationPolicy(
    writable_fields={
        "description",
        "reason",
        "tenure_days",
        "tax_rate_bps",
        "charge_taxes",
        "discount_value",
        "discount_unit",
        "discount_reason",
        "service_fee_value",
        "service_fee_unit",
        "service_fee_reason",
        "shipping_cents",
        "restocking_fee_cents",
    },
)


_PLAIN_INT = re.compile(r"^[+-]?\d+$")
_TRUE_WORDS = frozenset({"true", "1", "yes", "on"})
_FALSE_WORDS = frozenset({"false", "0", "no", "off", ""})


def _as_int(key: str, value: Any) -> int:
    # Money and counts are whole numbers: 12.5 or "1e3" are rejected, "42" is fine
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _PLAIN_INT.match(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{key} must be a whole number (cents, bps or a count)")


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValidationError(f"{key} must be true or false")


def _as_text(key: str, value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise ValidationError(f"{key} must be text")
    return str(value).strip()


_COERCERS: tuple[tuple[type, Callable[[str, Any], Any]], ...] = (
    (Boolean, _as_bool),
    (Integer, _as_int),
    ((String, Text), _as_text),
)


def _coerce_value(col, value: Any):
    for coltype, coerce in _COERCERS:
        if isinstance(col.type, coltype):
            return coerce(col.key, value)
    return value


def _check_length(col, value: Any) -> None:
    if not isinstance(value, str):
        return
    if value == "" and not col.nullable:
        raise ValidationError(f"{col.key} cannot be blank")
    limit = getattr(col.type, "length", None)
    if limit and len(value) > limit:
        raise ValidationError(f"{col.key} is limited to {limit} characters")


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Clean a client payload into a column patch for `model`.

    Only policy.writable_fields pass; anything else is rejected rather than
    ignored so typos surface. Values are coerced by column type and checked
    against nullability and String length. On create (partial=False) the
    policy's required fields must be present.
    """
    payload = {} if payload is None else payload
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    columns = {c.key: c for c in model.__mapper__.columns}

    rejected = sorted(k for k in payload if k not in policy.writable_fields or k not in columns)
    if rejected:
        raise ValidationError(f"Field not allowed: {', '.join(rejected)}")

    if not partial:
        missing = sorted((policy.required_on_create or set()) - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    patch: dict = {}
    for key, raw in payload.items():
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue
        value = _coerce_value(col, raw)
        _check_length(col, value)
        patch[key] = value
    return patch


def _check_cents(patch: dict, key: str) -> None:
    value = patch.get(key)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")


def enforce_rules_line(patch: dict) -> None:
    if "quantity" in patch:
        if patch["quantity"] is None or patch["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")
    _check_cents(patch, "unit_price_cents")
    _check_cents(patch, "unit_cost_cents")


def enforce_rules_adjustments(patch: dict) -> None:
    for unit_key in ("discount_unit", "service_fee_unit"):
        if unit_key in patch and patch[unit_key] not in ("fixed", "percent"):
            raise ValidationError(f"{unit_key} must be 'fixed' or 'percent'")

    tax = patch.get("tax_rate_bps")
    if tax is not None and not (0 <= tax <= MAX_RATE_BPS):
        raise ValidationError(f"tax_rate_bps must be between 0 and {MAX_RATE_BPS}")

    for value_key in ("discount_value", "service_fee_value"):
        value = patch.get(value_key)
        if value is not None and value < 0:
            raise ValidationError(f"{value_key} must be >= 0")

    if patch.get("discount_unit") == "percent" and (patch.get("discount_value") or 0) > MAX_RATE_BPS:
        raise ValidationError(f"discount_value cannot exceed {MAX_RATE_BPS} bps")

    _check_cents(patch, "shipping_cents")
    _check_cents(patch, "restocking_fee_cents")
