from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-tenant document sequences.

    WHY: Prevent race conditions when generating transaction, session
    and shift numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_doc_sequences_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
