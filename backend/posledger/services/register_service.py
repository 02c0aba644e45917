"""
Register, Session and Shift Lifecycle Service

WHY: Track POS terminals, cashier sessions and shifts for cash
accountability. Essential for multi-register stores and audit trails.

DESIGN PRINCIPLES:
- At most one active session per register at a time
- At most one open shift per register at a time
- Sessions and shifts are immutable once closed (reconcile is the only
  later transition, and only for shifts)
- Register balances are written only by session open/close
- Variance (closing - expected) is informational and never blocks a close

CONCURRENCY:
The one-active-session rule is a check-then-act. The check runs inside a
serialized unit (BEGIN IMMEDIATE on SQLite, row lock on the register
elsewhere) and the partial unique index on pos_sessions is the backstop:
an IntegrityError there is reported as ConflictError.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Register, CashDrawer, PosSession, Shift
from ..models.registers import REGISTER_TYPES
from ..context import OperationContext
from ..errors import ValidationError, ConflictError, NotFoundError, RequiresApproval
from posledger.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry, begin_serialized
from .document_service import next_document_number, DOC_SESSION, DOC_SHIFT
from .audit_service import append_event
from . import attribute_service


# Statuses a register can be moved to directly; "open" only comes from open_session
SETTABLE_REGISTER_STATUSES = ("closed", "suspended", "maintenance")


def _require_non_negative(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer number of cents")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative", {name: value})


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

def create_register(
    ctx: OperationContext,
    code: str,
    name: str,
    register_type: str = "main",
    *,
    attributes: dict | None = None,
) -> Register:
    """
    Create a new POS register.

    WHY: Registers must exist before sessions or shifts can be opened.

    Raises:
        ValidationError: missing code/name or unknown register type
        ConflictError: code already used in this tenant
    """
    if not code or not str(code).strip():
        raise ValidationError("code is required")
    if not name or not str(name).strip():
        raise ValidationError("name is required")
    if register_type not in REGISTER_TYPES:
        raise ValidationError(f"Invalid register_type. Must be one of {list(REGISTER_TYPES)}")
    attribute_service.validate_attributes("register", attributes)

    def _op():
        existing = db.session.query(Register).filter_by(tenant_id=ctx.tenant_id, code=code).first()
        if existing:
            raise ConflictError(f"Register '{code}' already exists", {"code": code})

        register = Register(
            tenant_id=ctx.tenant_id,
            code=code,
            name=name,
            register_type=register_type,
            status="closed",
            is_active=True,
        )
        db.session.add(register)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Register '{code}' already exists", {"code": code}) from exc

        attribute_service.set_attributes(ctx, "register", register.id, attributes)
        append_event(ctx, event_type="register.created", entity_type="register", entity_id=register.id,
                     register_id=register.id)
        db.session.commit()
        return register

    return run_with_retry(_op)


def get_register(ctx: OperationContext, register_id: int) -> Register:
    register = db.session.query(Register).filter_by(id=register_id, tenant_id=ctx.tenant_id).first()
    if not register:
        raise NotFoundError(f"Register {register_id} not found", {"register_id": register_id})
    return register


def list_registers(ctx: OperationContext, *, active_only: bool = True) -> list[Register]:
    query = db.session.query(Register).filter_by(tenant_id=ctx.tenant_id)
    if active_only:
        query = query.filter(Register.is_active.is_(True))
    return query.order_by(Register.code).all()


def set_register_status(ctx: OperationContext, register_id: int, status: str) -> Register:
    """
    Move a register between closed, suspended and maintenance.

    Refused while a session is active on the register.
    """
    if status not in SETTABLE_REGISTER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of {list(SETTABLE_REGISTER_STATUSES)}")

    def _op():
        begin_serialized()
        register = lock_for_update(
            db.session.query(Register).filter_by(id=register_id, tenant_id=ctx.tenant_id)
        ).first()
        if not register:
            raise NotFoundError(f"Register {register_id} not found", {"register_id": register_id})

        active = _active_session_query(ctx, register_id).first()
        if active:
            raise ConflictError(
                "Register has an active session. Close it first.",
                {"register_id": register_id, "session_id": active.id},
            )

        previous = register.status
        register.status = status
        append_event(ctx, event_type="register.status_changed", entity_type="register", entity_id=register.id,
                     register_id=register.id, note=f"{previous} -> {status}")
        db.session.commit()
        return register

    return run_with_retry(_op)


# =============================================================================
# SESSION MANAGEMENT
# =============================================================================

def _active_session_query(ctx: OperationContext, register_id: int):
    return db.session.query(PosSession).filter_by(
        tenant_id=ctx.tenant_id,
        register_id=register_id,
        status="active",
    )


def open_session(
    ctx: OperationContext,
    register_id: int,
    opening_amount_cents: int,
    *,
    shift_id: int | None = None,
    notes: str | None = None,
    attributes: dict | None = None,
) -> PosSession:
    """
    Open a cashier session on a register.

    WHY: Every sale belongs to a session; the session carries running
    totals for the cashier's period on the register.

    Opens a companion cash drawer when opening_amount_cents > 0 and attaches
    the register's open shift when shift_id is not given.

    Raises:
        NotFoundError: register absent, inactive, suspended or under maintenance
        ConflictError: register already has an active session
    """
    _require_non_negative("opening_amount_cents", opening_amount_cents)
    attribute_service.validate_attributes("session", attributes)

    def _op():
        begin_serialized()
        register = lock_for_update(
            db.session.query(Register).filter_by(id=register_id, tenant_id=ctx.tenant_id)
        ).first()
        if not register or not register.is_active or register.status in ("suspended", "maintenance"):
            raise NotFoundError(
                "Register not found or not available",
                {"register_id": register_id, "status": register.status if register else None},
            )

        existing = _active_session_query(ctx, register_id).first()
        if existing:
            raise ConflictError(
                f"Register already has an active session ({existing.session_number})",
                {"register_id": register_id, "session_id": existing.id},
            )

        shift = None
        if shift_id is not None:
            shift = db.session.query(Shift).filter_by(
                id=shift_id, tenant_id=ctx.tenant_id, register_id=register_id, status="open"
            ).first()
            if not shift:
                raise NotFoundError("Open shift not found on this register", {"shift_id": shift_id})
        else:
            shift = db.session.query(Shift).filter_by(
                tenant_id=ctx.tenant_id, register_id=register_id, status="open"
            ).first()

        now = utcnow()
        drawer = None
        if opening_amount_cents > 0:
            drawer = CashDrawer(
                tenant_id=ctx.tenant_id,
                register_id=register_id,
                status="open",
                opening_amount_cents=opening_amount_cents,
                opened_by=ctx.user_id,
                opened_at=now,
            )
            db.session.add(drawer)
            db.session.flush()

        session = PosSession(
            tenant_id=ctx.tenant_id,
            register_id=register_id,
            cash_drawer_id=drawer.id if drawer else None,
            shift_id=shift.id if shift else None,
            user_id=ctx.user_id,
            session_number=next_document_number(ctx.tenant_id, DOC_SESSION),
            status="active",
            session_start=now,
            opening_amount_cents=opening_amount_cents,
            notes=notes,
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Register already has an active session", {"register_id": register_id}) from exc

        register.status = "open"
        register.opening_balance_cents = opening_amount_cents
        register.current_balance_cents = opening_amount_cents
        register.expected_balance_cents = opening_amount_cents
        register.opened_at = now
        register.opened_by = ctx.user_id

        attribute_service.set_attributes(ctx, "session", session.id, attributes)
        append_event(ctx, event_type="session.opened", entity_type="session", entity_id=session.id,
                     register_id=register_id, session_id=session.id, occurred_at=now, note=notes)
        db.session.commit()
        return session

    return run_with_retry(_op)


def close_session(
    ctx: OperationContext,
    session_id: int,
    closing_amount_cents: int,
    notes: str | None = None,
) -> PosSession:
    """
    Close an active session.

    Closes the linked drawer, stamps session_end, returns the register to
    "closed" with current balance = counted cash and
    expected = opening + session sales. No variance is computed here;
    variance belongs to the shift.

    Raises:
        NotFoundError: no active session with this id in the tenant
    """
    _require_non_negative("closing_amount_cents", closing_amount_cents)

    def _op():
        begin_serialized()
        session = lock_for_update(
            db.session.query(PosSession).filter_by(id=session_id, tenant_id=ctx.tenant_id, status="active")
        ).first()
        if not session:
            raise NotFoundError("Active session not found", {"session_id": session_id})

        now = utcnow()
        if session.cash_drawer_id:
            drawer = lock_for_update(db.session.query(CashDrawer).filter_by(id=session.cash_drawer_id)).first()
            if drawer and drawer.status == "open":
                drawer.status = "closed"
                drawer.closing_amount_cents = closing_amount_cents
                drawer.closed_by = ctx.user_id
                drawer.closed_at = now

        session.status = "closed"
        session.session_end = now
        session.closing_amount_cents = closing_amount_cents
        if notes:
            session.notes = notes

        register = lock_for_update(
            db.session.query(Register).filter_by(id=session.register_id, tenant_id=ctx.tenant_id)
        ).first()
        register.status = "closed"
        register.current_balance_cents = closing_amount_cents
        register.expected_balance_cents = session.opening_amount_cents + session.total_sales_cents
        register.closed_at = now
        register.closed_by = ctx.user_id

        append_event(ctx, event_type="session.closed", entity_type="session", entity_id=session.id,
                     register_id=session.register_id, session_id=session.id, occurred_at=now, note=notes)
        db.session.commit()
        return session

    return run_with_retry(_op)


def get_active_session(ctx: OperationContext, register_id: int) -> PosSession | None:
    """Get the currently active session for a register, if any."""
    return _active_session_query(ctx, register_id).first()


def get_session(ctx: OperationContext, session_id: int) -> PosSession:
    session = db.session.query(PosSession).filter_by(id=session_id, tenant_id=ctx.tenant_id).first()
    if not session:
        raise NotFoundError(f"Session {session_id} not found", {"session_id": session_id})
    return session


# =============================================================================
# SHIFT MANAGEMENT
# =============================================================================

def open_shift(
    ctx: OperationContext,
    register_id: int,
    opening_balance_cents: int,
    notes: str | None = None,
) -> Shift:
    """
    Open a shift on a register.

    WHY: A shift is the period of cash accountability for one cashier.
    Only one shift can be open per register at a time.

    Raises:
        NotFoundError: register absent or inactive
        ConflictError: register already has an open shift
    """
    _require_non_negative("opening_balance_cents", opening_balance_cents)

    def _op():
        begin_serialized()
        register = lock_for_update(
            db.session.query(Register).filter_by(id=register_id, tenant_id=ctx.tenant_id)
        ).first()
        if not register or not register.is_active:
            raise NotFoundError("Register not found", {"register_id": register_id})

        existing = db.session.query(Shift).filter_by(
            tenant_id=ctx.tenant_id, register_id=register_id, status="open"
        ).first()
        if existing:
            raise ConflictError(
                f"Register already has an open shift ({existing.shift_number})",
                {"register_id": register_id, "shift_id": existing.id},
            )

        now = utcnow()
        shift = Shift(
            tenant_id=ctx.tenant_id,
            register_id=register_id,
            shift_number=next_document_number(ctx.tenant_id, DOC_SHIFT),
            cashier_id=ctx.user_id,
            opening_balance_cents=opening_balance_cents,
            status="open",
            opened_at=now,
            notes=notes,
        )
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Register already has an open shift", {"register_id": register_id}) from exc

        append_event(ctx, event_type="shift.opened", entity_type="shift", entity_id=shift.id,
                     register_id=register_id, occurred_at=now, note=notes)
        db.session.commit()
        return shift

    return run_with_retry(_op)


def close_shift(
    ctx: OperationContext,
    shift_id: int,
    closing_balance_cents: int,
    notes: str | None = None,
) -> Shift:
    """
    Close a shift and calculate cash variance.

    expected = opening + total_sales, variance = closing - expected.
    A non-zero variance is logged for management review; it never blocks.

    Raises:
        NotFoundError: no open shift with this id in the tenant
    """
    _require_non_negative("closing_balance_cents", closing_balance_cents)

    def _op():
        begin_serialized()
        shift = lock_for_update(
            db.session.query(Shift).filter_by(id=shift_id, tenant_id=ctx.tenant_id, status="open")
        ).first()
        if not shift:
            raise NotFoundError("Open shift not found", {"shift_id": shift_id})

        expected = shift.opening_balance_cents + shift.total_sales_cents
        variance = closing_balance_cents - expected
        now = utcnow()

        shift.status = "closed"
        shift.closed_at = now
        shift.closing_balance_cents = closing_balance_cents
        shift.expected_balance_cents = expected
        shift.variance_cents = variance
        if notes:
            shift.notes = notes

        append_event(ctx, event_type="shift.closed", entity_type="shift", entity_id=shift.id,
                     register_id=shift.register_id, occurred_at=now,
                     note=f"Variance: {variance / 100:.2f}")
        db.session.commit()

        if variance != 0:
            current_app.logger.warning(
                "Shift %s closed with variance %d cents (expected %d, counted %d)",
                shift.shift_number, variance, expected, closing_balance_cents,
            )
        return shift

    return run_with_retry(_op)


def reconcile_shift(ctx: OperationContext, shift_id: int, notes: str | None = None) -> Shift:
    """
    Mark a closed shift as reviewed by a manager.

    Raises:
        RequiresApproval: no manager on the context
        NotFoundError: no closed shift with this id in the tenant
    """
    if not ctx.has_manager_approval:
        raise RequiresApproval("Shift reconciliation requires manager approval", {"shift_id": shift_id})

    def _op():
        begin_serialized()
        shift = lock_for_update(
            db.session.query(Shift).filter_by(id=shift_id, tenant_id=ctx.tenant_id, status="closed")
        ).first()
        if not shift:
            raise NotFoundError("Closed shift not found", {"shift_id": shift_id})

        now = utcnow()
        shift.status = "reconciled"
        shift.reconciled_at = now
        shift.reconciled_by = ctx.manager_id
        if notes:
            shift.notes = notes

        append_event(ctx, event_type="shift.reconciled", entity_type="shift", entity_id=shift.id,
                     register_id=shift.register_id, occurred_at=now, note=notes)
        db.session.commit()
        return shift

    return run_with_retry(_op)


def get_shift(ctx: OperationContext, shift_id: int) -> Shift:
    shift = db.session.query(Shift).filter_by(id=shift_id, tenant_id=ctx.tenant_id).first()
    if not shift:
        raise NotFoundError(f"Shift {shift_id} not found", {"shift_id": shift_id})
    return shift


def get_open_shift(ctx: OperationContext, register_id: int) -> Shift | None:
    return db.session.query(Shift).filter_by(
        tenant_id=ctx.tenant_id, register_id=register_id, status="open"
    ).first()


def get_shift_summary(ctx: OperationContext, shift_id: int) -> dict:
    """
    Shift totals plus its sessions.

    For an open shift, expected/variance are projected from current totals.
    """
    shift = get_shift(ctx, shift_id)
    expected = shift.expected_balance_cents
    if expected is None:
        expected = shift.opening_balance_cents + shift.total_sales_cents

    sessions = (
        db.session.query(PosSession)
        .filter_by(tenant_id=ctx.tenant_id, shift_id=shift.id)
        .order_by(PosSession.id.asc())
        .all()
    )

    return {
        "shift": shift.to_dict(),
        "expected_balance_cents": expected,
        "variance_cents": shift.variance_cents,
        "total_sales_cents": shift.total_sales_cents,
        "total_cash_sales_cents": shift.total_cash_sales_cents,
        "total_card_sales_cents": shift.total_card_sales_cents,
        "total_other_sales_cents": shift.total_sales_cents - shift.total_cash_sales_cents - shift.total_card_sales_cents,
        "total_returns_cents": shift.total_returns_cents,
        "transaction_count": shift.transaction_count,
        "sessions": [s.to_dict() for s in sessions],
    }
