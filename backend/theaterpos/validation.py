from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from theaterpos.time_utils import parse_iso_date, parse_iso_datetime


class ValidationError(ValueError):
    """400-level input problem. `fields` maps field name -> message where known."""

    def __init__(self, message: str, fields: dict[str, str] | None = None):
        super().__init__(message)
        self.fields = fields or {}


class ProtectedItemError(ValidationError):
    """400-level refusal to change an item flagged as protected (default roles)."""


class DuplicateKeyError(ValueError):
    """400-level uniqueness violation inside a theater (username, role name, ...)."""


class NotFoundError(LookupError):
    """404-level: theater, item, product or ledger does not exist."""


class PersistenceError(RuntimeError):
    """500-level: the database write failed (or kept conflicting) after retries."""


@dataclass(frozen=True)
class FieldSpec:
    """
    Shape of one field of an embedded item.

    kind is one of: "str", "int", "bool", "date", "datetime", "list".
    """
    kind: str
    nullable: bool = True
    max_length: int | None = None
    min_length: int | None = None
    min_value: int | None = None
    max_value: int | None = None
    choices: frozenset[str] | None = None
    lower: bool = False


@dataclass(frozen=True)
class ItemValidationPolicy:
    """
    Central policy layer for embedded array items:
    - fields: field name -> FieldSpec
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required when adding an item
    - defaults: values filled in on create when the client omits them
    """
    fields: dict[str, FieldSpec]
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    defaults: dict[str, Any] = field(default_factory=dict)


def _coerce_int(key: str, value: Any) -> int:
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer", {key: "must be an integer"})
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer", {key: "must be a plain integer"})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", {key: "must be an integer"})
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal", {key: "must be an integer"})
    raise ValidationError(f"{key} must be an integer", {key: "must be an integer"})


def _coerce_value(key: str, spec: FieldSpec, value: Any):
    if value is None:
        return None

    if spec.kind == "int":
        val = _coerce_int(key, value)
        if spec.min_value is not None and val < spec.min_value:
            raise ValidationError(f"{key} must be >= {spec.min_value}", {key: f"must be >= {spec.min_value}"})
        if spec.max_value is not None and val > spec.max_value:
            raise ValidationError(f"{key} must be <= {spec.max_value}", {key: f"must be <= {spec.max_value}"})
        return val

    if spec.kind == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"{key} must be a boolean", {key: "must be a boolean"})

    if spec.kind == "date":
        try:
            parsed = parse_iso_date(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{key} must be an ISO-8601 date", {key: "must be an ISO-8601 date"})
        return parsed.isoformat() if parsed else None

    if spec.kind == "datetime":
        if isinstance(value, datetime):
            return value.isoformat()
        try:
            parsed = parse_iso_datetime(str(value))
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime", {key: "must be an ISO-8601 datetime"})
        return parsed.isoformat() if parsed else None

    if spec.kind == "list":
        if not isinstance(value, list):
            raise ValidationError(f"{key} must be a list", {key: "must be a list"})
        return value

    if spec.kind == "str":
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{key} must be a string", {key: "must be a string"})
        val = str(value).strip()
        if spec.lower:
            val = val.lower()
        if spec.choices is not None and val not in spec.choices:
            allowed = ", ".join(sorted(spec.choices))
            raise ValidationError(f"{key} must be one of: {allowed}", {key: f"must be one of: {allowed}"})
        return val

    return value


def validate_item_payload(
    *,
    payload: dict,
    policy: ItemValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes an incoming item against the policy.
    Returns a cleaned dict with only writable fields.

    partial=False: create semantics (enforce required_on_create, fill defaults)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(
            f for f in policy.required_on_create
            if payload.get(f) is None or (isinstance(payload.get(f), str) and not payload[f].strip())
        )
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                {f: "is required" for f in missing},
            )

    for k in payload.keys():
        if k not in policy.writable_fields or k not in policy.fields:
            raise ValidationError(f"Field not allowed: {k}", {k: "not allowed"})

    cleaned: dict = {}
    for k, raw in payload.items():
        spec = policy.fields[k]

        if raw is None:
            if not spec.nullable:
                raise ValidationError(f"{k} cannot be null", {k: "cannot be null"})
            cleaned[k] = None
            continue

        val = _coerce_value(k, spec, raw)

        if spec.kind == "str" and isinstance(val, str):
            if not spec.nullable and val == "":
                raise ValidationError(f"{k} cannot be blank", {k: "cannot be blank"})
            if spec.max_length and len(val) > spec.max_length:
                raise ValidationError(f"{k} exceeds max length {spec.max_length}", {k: f"exceeds max length {spec.max_length}"})
            if spec.min_length and len(val) < spec.min_length:
                raise ValidationError(
                    f"{k} must be at least {spec.min_length} characters",
                    {k: f"must be at least {spec.min_length} characters"},
                )

        cleaned[k] = val

    if not partial:
        for k, default in policy.defaults.items():
            if k not in cleaned:
                cleaned[k] = list(default) if isinstance(default, list) else default

    return cleaned


def require_positive_quantity(quantity: Any, key: str = "quantity") -> int:
    """Stock movements are whole units and strictly positive."""
    val = _coerce_int(key, quantity)
    if val <= 0:
        raise ValidationError(f"{key} must be > 0", {key: "must be > 0"})
    return val


def require_date(value: Any, key: str) -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an ISO-8601 date", {key: "must be an ISO-8601 date"})
    if parsed is None:
        raise ValidationError(f"{key} is required", {key: "is required"})
    return parsed
