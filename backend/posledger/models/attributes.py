from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


class EntityAttribute(db.Model):
    """
    Typed key/value attached to a register, session, shift or transaction.

    WHY: Replaces free-form metadata blobs. Every key must be declared in
    the attribute registry (services/attribute_service.py) with a value
    type; value_text holds the canonical string form of the coerced value.
    """
    __tablename__ = "entity_attributes"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "entity_type", "entity_id", "key", name="uq_entity_attributes_key"),
        db.Index("ix_entity_attributes_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(32), nullable=False)  # register, session, shift, transaction
    entity_id = db.Column(db.Integer, nullable=False)

    key = db.Column(db.String(128), nullable=False)
    value_type = db.Column(db.String(16), nullable=False)  # string, int, bool, cents
    value_text = db.Column(db.Text, nullable=True)
    schema_version = db.Column(db.Integer, nullable=False, default=1)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "key": self.key,
            "value_type": self.value_type,
            "value_text": self.value_text,
            "schema_version": self.schema_version,
            "created_at": to_utc_z(self.created_at),
        }
