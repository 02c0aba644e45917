# Overview: Append-only audit trail for lifecycle and money events.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from ..context import OperationContext
"""
Audit Log Invariants

- Append-only. No updates or deletes of existing events.
- No domain/business logic in the audit log itself.
- Events are written inside the same DB transaction as the change they record,
  so a rolled-back unit leaves no event behind.
"""


def append_event(
    ctx: OperationContext,
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    register_id: int | None = None,
    session_id: int | None = None,
    transaction_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
) -> AuditEvent:
    ev = AuditEvent(
        tenant_id=ctx.tenant_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=ctx.user_id,
        manager_id=ctx.manager_id,
        register_id=register_id,
        session_id=session_id,
        transaction_id=transaction_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note[:255] if note else None,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events(
    ctx: OperationContext,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    query = db.session.query(AuditEvent).filter_by(tenant_id=ctx.tenant_id)
    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEvent.entity_id == entity_id)
    return query.order_by(AuditEvent.id.asc()).limit(max(1, min(limit, 500))).all()
