"""
Typed entity attributes.

WHY: Registers, sessions, shifts and transactions need a few extra fields
that vary by deployment (lane number, terminal serial, order channel...).
Instead of an opaque metadata blob, every key is declared here with a
value type and the entities it may be attached to. Unknown keys and values
of the wrong type are rejected before anything is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..extensions import db
from ..models import EntityAttribute
from ..context import OperationContext
from ..errors import ValidationError


ENTITY_TYPES = {"register", "session", "shift", "transaction"}
SCHEMA_VERSION = 1


@dataclass(frozen=True)
class AttributeSpec:
    key: str
    value_type: str  # string, int, bool, cents
    entity_types: frozenset
    max_length: int | None = None
    choices: tuple | None = None


ATTRIBUTE_REGISTRY: dict[str, AttributeSpec] = {
    spec.key: spec
    for spec in (
        AttributeSpec("lane_number", "int", frozenset({"register"})),
        AttributeSpec("terminal_serial", "string", frozenset({"register", "session"}), max_length=64),
        AttributeSpec("drawer_label", "string", frozenset({"session", "shift"}), max_length=32),
        AttributeSpec("training_mode", "bool", frozenset({"session", "transaction"})),
        AttributeSpec("float_target_cents", "cents", frozenset({"shift"})),
        AttributeSpec(
            "order_channel",
            "string",
            frozenset({"transaction"}),
            choices=("in_store", "phone", "curbside", "delivery"),
        ),
        AttributeSpec("external_reference", "string", frozenset({"transaction"}), max_length=128),
        AttributeSpec("receipt_email_requested", "bool", frozenset({"transaction"})),
    )
}


def _coerce_value(spec: AttributeSpec, raw_value: Any) -> Any:
    t = spec.value_type
    v = raw_value
    if t == "bool":
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            s = v.strip().lower()
            if s in {"true", "1", "yes", "on"}:
                return True
            if s in {"false", "0", "no", "off"}:
                return False
        raise ValidationError(f"{spec.key}: expected boolean", {"key": spec.key})
    if t in {"int", "cents"}:
        if isinstance(v, bool):
            raise ValidationError(f"{spec.key}: expected integer", {"key": spec.key})
        if isinstance(v, int):
            out = v
        elif isinstance(v, str) and v.strip().lstrip("-").isdigit():
            out = int(v.strip())
        else:
            raise ValidationError(f"{spec.key}: expected integer", {"key": spec.key})
        if t == "cents" and out < 0:
            raise ValidationError(f"{spec.key}: must be non-negative", {"key": spec.key})
        return out
    if t == "string":
        if not isinstance(v, str):
            raise ValidationError(f"{spec.key}: expected string", {"key": spec.key})
        if spec.max_length and len(v) > spec.max_length:
            raise ValidationError(f"{spec.key}: longer than {spec.max_length}", {"key": spec.key})
        if spec.choices and v not in spec.choices:
            raise ValidationError(f"{spec.key}: must be one of {list(spec.choices)}", {"key": spec.key})
        return v
    raise ValidationError(f"{spec.key}: unsupported type {t}", {"key": spec.key})


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _from_text(value_type: str, value_text: str | None) -> Any:
    if value_text is None:
        return None
    if value_type == "bool":
        return value_text == "true"
    if value_type in {"int", "cents"}:
        return int(value_text)
    return value_text


def validate_attributes(entity_type: str, attributes: dict | None) -> dict[str, Any]:
    """Validate and coerce a raw attribute dict without writing anything."""
    if not attributes:
        return {}
    if entity_type not in ENTITY_TYPES:
        raise ValidationError(f"Unknown entity type: {entity_type}")
    if not isinstance(attributes, dict):
        raise ValidationError("attributes must be an object")

    out = {}
    for key, raw in attributes.items():
        spec = ATTRIBUTE_REGISTRY.get(key)
        if not spec:
            raise ValidationError(f"Unknown attribute: {key}", {"key": key})
        if entity_type not in spec.entity_types:
            raise ValidationError(f"Attribute {key} is not allowed on {entity_type}", {"key": key})
        out[key] = _coerce_value(spec, raw)
    return out


def set_attributes(ctx: OperationContext, entity_type: str, entity_id: int, attributes: dict | None) -> list[EntityAttribute]:
    """
    Upsert typed attributes inside the caller's unit (no commit).
    """
    values = validate_attributes(entity_type, attributes)
    rows = []
    for key, value in values.items():
        row = db.session.query(EntityAttribute).filter_by(
            tenant_id=ctx.tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            key=key,
        ).first()
        if row is None:
            row = EntityAttribute(
                tenant_id=ctx.tenant_id,
                entity_type=entity_type,
                entity_id=entity_id,
                key=key,
                created_by=ctx.user_id,
            )
            db.session.add(row)
        row.value_type = ATTRIBUTE_REGISTRY[key].value_type
        row.value_text = _to_text(value)
        row.schema_version = SCHEMA_VERSION
        rows.append(row)
    if rows:
        db.session.flush()
    return rows


def get_attributes(ctx: OperationContext, entity_type: str, entity_id: int) -> dict[str, Any]:
    rows = db.session.query(EntityAttribute).filter_by(
        tenant_id=ctx.tenant_id,
        entity_type=entity_type,
        entity_id=entity_id,
    ).order_by(EntityAttribute.key.asc()).all()
    return {r.key: _from_text(r.value_type, r.value_text) for r in rows}
