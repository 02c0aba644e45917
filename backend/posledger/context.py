# Overview: Explicit caller context threaded through every core operation.

from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationError


@dataclass(frozen=True)
class OperationContext:
    """
    Pre-authenticated identity of the caller.

    MULTI-TENANT: tenant_id scopes every read and write. Services never
    look tenant or user identity up from request globals; the HTTP layer
    (or a CLI command, or a test) builds this value and passes it in.

    manager_id is set when a manager has approved the action (voids,
    shift reconciliation, discounts flagged requires_approval).
    """
    tenant_id: str
    user_id: int | None = None
    manager_id: int | None = None

    def __post_init__(self):
        if not self.tenant_id or not str(self.tenant_id).strip():
            raise ValidationError("tenant_id is required")

    @property
    def has_manager_approval(self) -> bool:
        return self.manager_id is not None

    def with_manager(self, manager_id: int) -> "OperationContext":
        return OperationContext(tenant_id=self.tenant_id, user_id=self.user_id, manager_id=manager_id)
