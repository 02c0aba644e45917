# Overview: Pytest coverage for register, session and shift lifecycle behavior.

"""
Register / Session / Shift Lifecycle Tests

Covers:
- one active session per register, one open shift per register
- close is refused for sessions/shifts that are not open
- shift variance: expected = opening + total sales
- reconcile requires a manager
- audit events are written with each transition
"""

import logging

import pytest

from posledger.extensions import db
from posledger.errors import ValidationError, ConflictError, NotFoundError, RequiresApproval
from posledger.models import Shift, PosSession, CashDrawer
from posledger.services import register_service, audit_service, attribute_service


class TestRegisters:

    def test_create_register(self, ctx, register):
        assert register.status == "closed"
        assert register.is_active is True
        assert register.code == "REG-01"

    def test_duplicate_code_conflicts(self, ctx, register):
        with pytest.raises(ConflictError):
            register_service.create_register(ctx, "REG-01", "Another")

    def test_same_code_in_other_tenant_allowed(self, ctx, other_ctx, register):
        other = register_service.create_register(other_ctx, "REG-01", "Beta Counter")
        assert other.id != register.id

    def test_invalid_type_rejected(self, ctx, app):
        with pytest.raises(ValidationError):
            register_service.create_register(ctx, "REG-02", "Kiosk", "kiosk")

    def test_attributes_stored(self, ctx, app):
        reg = register_service.create_register(ctx, "REG-03", "Lane 3", attributes={"lane_number": "3"})
        assert attribute_service.get_attributes(ctx, "register", reg.id) == {"lane_number": 3}

    def test_status_change_blocked_by_active_session(self, ctx, register, pos_session):
        with pytest.raises(ConflictError):
            register_service.set_register_status(ctx, register.id, "maintenance")

    def test_maintenance_register_cannot_open_session(self, ctx, register):
        register_service.set_register_status(ctx, register.id, "maintenance")
        with pytest.raises(NotFoundError):
            register_service.open_session(ctx, register.id, 0)

    def test_list_registers_is_tenant_scoped(self, ctx, other_ctx, register):
        assert [r.id for r in register_service.list_registers(ctx)] == [register.id]
        assert register_service.list_registers(other_ctx) == []


class TestSessions:

    def test_open_session(self, ctx, register, shift, pos_session):
        assert pos_session.status == "active"
        assert pos_session.shift_id == shift.id
        assert pos_session.session_number == "SES-000001"
        assert pos_session.cash_drawer_id is not None

        reg = register_service.get_register(ctx, register.id)
        assert reg.status == "open"
        assert reg.current_balance_cents == 10000

    def test_second_active_session_conflicts(self, ctx, register, pos_session):
        with pytest.raises(ConflictError):
            register_service.open_session(ctx, register.id, 5000)

        active = db.session.query(PosSession).filter_by(register_id=register.id, status="active").count()
        assert active == 1

    def test_zero_float_opens_no_drawer(self, ctx, register):
        session = register_service.open_session(ctx, register.id, 0)
        assert session.cash_drawer_id is None
        assert db.session.query(CashDrawer).count() == 0

    def test_negative_float_rejected(self, ctx, register):
        with pytest.raises(ValidationError):
            register_service.open_session(ctx, register.id, -1)

    def test_unknown_register(self, ctx, app):
        with pytest.raises(NotFoundError):
            register_service.open_session(ctx, 999, 0)

    def test_other_tenant_cannot_open_session(self, other_ctx, register):
        with pytest.raises(NotFoundError):
            register_service.open_session(other_ctx, register.id, 0)

    def test_close_session(self, ctx, register, pos_session):
        closed = register_service.close_session(ctx, pos_session.id, 12000, "End of day")

        assert closed.status == "closed"
        assert closed.session_end is not None
        assert closed.closing_amount_cents == 12000

        reg = register_service.get_register(ctx, register.id)
        assert reg.status == "closed"
        assert reg.current_balance_cents == 12000

        drawer = db.session.get(CashDrawer, closed.cash_drawer_id)
        assert drawer.status == "closed"
        assert drawer.closing_amount_cents == 12000

    def test_close_twice_not_found(self, ctx, pos_session):
        register_service.close_session(ctx, pos_session.id, 10000)
        with pytest.raises(NotFoundError):
            register_service.close_session(ctx, pos_session.id, 10000)

    def test_reopen_after_close(self, ctx, register, pos_session):
        register_service.close_session(ctx, pos_session.id, 10000)
        second = register_service.open_session(ctx, register.id, 10000)
        assert second.session_number == "SES-000002"

    def test_session_events_written(self, ctx, pos_session):
        register_service.close_session(ctx, pos_session.id, 10000)
        events = audit_service.list_events(ctx, entity_type="session", entity_id=pos_session.id)
        assert [e.event_type for e in events] == ["session.opened", "session.closed"]


class TestShifts:

    def test_second_open_shift_conflicts(self, ctx, register, shift):
        with pytest.raises(ConflictError):
            register_service.open_shift(ctx, register.id, 5000)

    def test_close_shift_variance(self, ctx, shift):
        s = db.session.get(Shift, shift.id)
        s.total_sales_cents = 25000
        db.session.commit()

        closed = register_service.close_shift(ctx, shift.id, 34000)

        assert closed.status == "closed"
        assert closed.expected_balance_cents == 35000
        assert closed.variance_cents == -1000

    def test_variance_is_logged_not_blocking(self, ctx, shift, caplog):
        with caplog.at_level(logging.WARNING):
            closed = register_service.close_shift(ctx, shift.id, 9000)
        assert closed.variance_cents == -1000
        assert "variance" in caplog.text

    def test_close_shift_twice_not_found(self, ctx, shift):
        register_service.close_shift(ctx, shift.id, 10000)
        with pytest.raises(NotFoundError):
            register_service.close_shift(ctx, shift.id, 10000)

    def test_reopen_shift_after_close(self, ctx, register, shift):
        register_service.close_shift(ctx, shift.id, 10000)
        second = register_service.open_shift(ctx, register.id, 0)
        assert second.shift_number == "SHF-000002"

    def test_reconcile_requires_manager(self, ctx, manager_ctx, shift):
        register_service.close_shift(ctx, shift.id, 10000)

        with pytest.raises(RequiresApproval):
            register_service.reconcile_shift(ctx, shift.id)

        reconciled = register_service.reconcile_shift(manager_ctx, shift.id, "Counted twice")
        assert reconciled.status == "reconciled"
        assert reconciled.reconciled_by == 9

    def test_reconcile_open_shift_not_found(self, manager_ctx, shift):
        with pytest.raises(NotFoundError):
            register_service.reconcile_shift(manager_ctx, shift.id)

    def test_shift_summary(self, ctx, shift, pos_session):
        summary = register_service.get_shift_summary(ctx, shift.id)
        assert summary["expected_balance_cents"] == 10000
        assert summary["variance_cents"] is None
        assert [s["id"] for s in summary["sessions"]] == [pos_session.id]
