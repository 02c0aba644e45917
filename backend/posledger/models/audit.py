from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit log for lifecycle and money events.

    Written inside the same DB transaction as the change it records.
    occurred_at is business time; created_at is system time (DB default).
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_tenant_occurred", "tenant_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., session.opened, transaction.committed

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    # Actor and cross-module references
    actor_user_id = db.Column(db.Integer, nullable=True)
    manager_id = db.Column(db.Integer, nullable=True)
    register_id = db.Column(db.Integer, nullable=True, index=True)
    session_id = db.Column(db.Integer, nullable=True, index=True)
    transaction_id = db.Column(db.Integer, nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    note = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "manager_id": self.manager_id,
            "register_id": self.register_id,
            "session_id": self.session_id,
            "transaction_id": self.transaction_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
        }
