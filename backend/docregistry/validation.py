from __future__ import annotations
from datetime import date, datetime
from docregistry.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationFailed


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - immutable_fields: fields that exist on the model but may never be patched
    - choices: closed value sets for enumerated string columns
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    immutable_fields: set[str] = frozenset()  # type: ignore
    choices: dict[str, type[Enum]] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValueError("must be an integer")
            if 'e' in stripped.lower() or '.' in stripped:
                raise ValueError("must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValueError("must be an integer")
        raise ValueError("must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValueError("must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValueError("must be an ISO-8601 datetime")
            if dt is None:
                raise ValueError("must be an ISO-8601 datetime")
            return dt
        raise ValueError("must be a datetime")

    # Dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValueError("must be an ISO-8601 date")
            if d is None:
                raise ValueError("must be an ISO-8601 date")
            return d
        raise ValueError("must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValueError("must be a string")
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
    - a policy allowlist (writable_fields) and immutable fields
    - required_on_create (if partial=False)
    - enumerated choices
    Returns a cleaned patch dict with only writable fields.

    All problems are collected and raised together as one ValidationFailed
    whose field_errors name each offending field.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid JSON payload")

    errors: dict[str, str] = {}
    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if payload.get(f) in (None, ""):
                errors[f] = "is required"

    cols = _columns_by_key(model)
    choices = policy.choices or {}

    patch: dict = {}

    for k, raw in payload.items():
        if k in policy.immutable_fields:
            errors[k] = "cannot be changed"
            continue
        if k not in policy.writable_fields:
            errors[k] = "field not allowed"
            continue
        if k not in cols:
            errors[k] = "unknown field"
            continue
        if k in errors:
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                errors[k] = "cannot be null"
                continue
            patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValueError as exc:
            errors[k] = str(exc)
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                errors[k] = "cannot be blank"
                continue

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors[k] = f"exceeds max length {col.type.length}"
                continue

        if k in choices:
            allowed = [m.value for m in choices[k]]
            if val not in allowed:
                errors[k] = f"must be one of: {', '.join(allowed)}"
                continue

        patch[k] = val

    if errors:
        raise ValidationFailed.from_fields(errors)

    return patch


def require_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """Coerce a standalone integer argument (ids, years, page numbers)."""
    if isinstance(value, bool) or value is None:
        raise ValidationFailed.for_field(field, "must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationFailed.for_field(field, "must be an integer")
        value = int(stripped)
    if not isinstance(value, int):
        raise ValidationFailed.for_field(field, "must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationFailed.for_field(field, f"must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationFailed.for_field(field, f"must be <= {maximum}")
    return value
