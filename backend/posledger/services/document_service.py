# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..errors import ValidationError


DOC_TRANSACTION = "transaction"
DOC_SESSION = "session"
DOC_SHIFT = "shift"

PREFIXES = {
    DOC_TRANSACTION: "TXN",
    DOC_SESSION: "SES",
    DOC_SHIFT: "SHF",
}


def next_document_number(tenant_id: str, document_type: str, *, pad: int = 6) -> str:
    """
    Allocate the next document number for a tenant/type inside the caller's unit.

    The conditional UPDATE takes the row lock, so two units never read the
    same counter value. The first allocation for a tenant inserts the row;
    a concurrent insert surfaces as IntegrityError and fails the caller's
    unit (the SQLite write lock already held by the caller prevents this).
    """
    if not tenant_id:
        raise ValidationError("tenant_id is required")
    prefix = PREFIXES.get(document_type)
    if not prefix:
        raise ValidationError(f"Unknown document type: {document_type}")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(tenant_id=tenant_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        db.session.flush()
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"
