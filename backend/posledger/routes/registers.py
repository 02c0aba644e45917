# Overview: Flask API routes for registers, sessions and shifts; parses input and returns JSON responses.

"""
Register, Session and Shift API Routes

DESIGN:
- Register setup and status changes
- Session lifecycle: open -> close (immutable once closed)
- Shift lifecycle: open -> close -> reconcile (manager)
- Tenant and actor come from identity headers (see decorators.require_context)
"""

from flask import Blueprint, request, jsonify, g

from ..services import register_service, attribute_service
from ..decorators import require_context, handle_pos_errors, json_body, require_fields


registers_bp = Blueprint("registers", __name__, url_prefix="/api/pos")


# =============================================================================
# REGISTERS
# =============================================================================

@registers_bp.post("/registers")
@require_context
@handle_pos_errors("create register")
def create_register_route():
    """
    Create a new POS register.

    Request body:
    {
        "code": "REG-01",
        "name": "Front Counter",
        "register_type": "main",       (optional)
        "attributes": {"lane_number": 3}  (optional)
    }
    """
    data = json_body()
    require_fields(data, "code", "name")
    register = register_service.create_register(
        g.ctx,
        data["code"],
        data["name"],
        data.get("register_type") or "main",
        attributes=data.get("attributes"),
    )
    return jsonify({"register": register.to_dict()}), 201


@registers_bp.get("/registers")
@require_context
@handle_pos_errors("list registers")
def list_registers_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    registers = register_service.list_registers(g.ctx, active_only=not include_inactive)
    return jsonify({"registers": [r.to_dict() for r in registers]}), 200


@registers_bp.get("/registers/<int:register_id>")
@require_context
@handle_pos_errors("load register")
def get_register_route(register_id: int):
    register = register_service.get_register(g.ctx, register_id)
    active = register_service.get_active_session(g.ctx, register_id)
    open_shift = register_service.get_open_shift(g.ctx, register_id)
    return jsonify({
        "register": register.to_dict(),
        "attributes": attribute_service.get_attributes(g.ctx, "register", register_id),
        "active_session": active.to_dict() if active else None,
        "open_shift": open_shift.to_dict() if open_shift else None,
    }), 200


@registers_bp.post("/registers/<int:register_id>/status")
@require_context
@handle_pos_errors("change register status")
def set_register_status_route(register_id: int):
    """
    Request body: {"status": "closed" | "suspended" | "maintenance"}
    """
    data = json_body()
    require_fields(data, "status")
    register = register_service.set_register_status(g.ctx, register_id, data["status"])
    return jsonify({"register": register.to_dict()}), 200


# =============================================================================
# SESSIONS
# =============================================================================

@registers_bp.post("/registers/<int:register_id>/sessions")
@require_context
@handle_pos_errors("open session")
def open_session_route(register_id: int):
    """
    Open a cashier session on a register.

    Request body:
    {
        "opening_amount_cents": 10000,
        "shift_id": 3,     (optional; defaults to the register's open shift)
        "notes": "...",    (optional)
        "attributes": {}   (optional)
    }
    """
    data = json_body()
    session = register_service.open_session(
        g.ctx,
        register_id,
        data.get("opening_amount_cents", 0),
        shift_id=data.get("shift_id"),
        notes=data.get("notes"),
        attributes=data.get("attributes"),
    )
    return jsonify({"session": session.to_dict()}), 201


@registers_bp.get("/registers/<int:register_id>/sessions/active")
@require_context
@handle_pos_errors("load active session")
def get_active_session_route(register_id: int):
    register_service.get_register(g.ctx, register_id)
    session = register_service.get_active_session(g.ctx, register_id)
    return jsonify({"session": session.to_dict() if session else None}), 200


@registers_bp.get("/sessions/<int:session_id>")
@require_context
@handle_pos_errors("load session")
def get_session_route(session_id: int):
    session = register_service.get_session(g.ctx, session_id)
    return jsonify({
        "session": session.to_dict(),
        "attributes": attribute_service.get_attributes(g.ctx, "session", session_id),
    }), 200


@registers_bp.post("/sessions/<int:session_id>/close")
@require_context
@handle_pos_errors("close session")
def close_session_route(session_id: int):
    """
    Request body: {"closing_amount_cents": 35000, "notes": "..."}
    """
    data = json_body()
    require_fields(data, "closing_amount_cents")
    session = register_service.close_session(
        g.ctx,
        session_id,
        data["closing_amount_cents"],
        notes=data.get("notes"),
    )
    return jsonify({"session": session.to_dict()}), 200


# =============================================================================
# SHIFTS
# =============================================================================

@registers_bp.post("/registers/<int:register_id>/shifts")
@require_context
@handle_pos_errors("open shift")
def open_shift_route(register_id: int):
    """
    Request body: {"opening_balance_cents": 10000, "notes": "..."}
    """
    data = json_body()
    shift = register_service.open_shift(
        g.ctx,
        register_id,
        data.get("opening_balance_cents", 0),
        notes=data.get("notes"),
    )
    return jsonify({"shift": shift.to_dict()}), 201


@registers_bp.post("/shifts/<int:shift_id>/close")
@require_context
@handle_pos_errors("close shift")
def close_shift_route(shift_id: int):
    """
    Close shift with cash count.

    Request body: {"closing_balance_cents": 34000, "notes": "..."}

    Returns the shift with expected_balance_cents and variance_cents.
    """
    data = json_body()
    require_fields(data, "closing_balance_cents")
    shift = register_service.close_shift(
        g.ctx,
        shift_id,
        data["closing_balance_cents"],
        notes=data.get("notes"),
    )
    return jsonify({"shift": shift.to_dict()}), 200


@registers_bp.post("/shifts/<int:shift_id>/reconcile")
@require_context
@handle_pos_errors("reconcile shift")
def reconcile_shift_route(shift_id: int):
    """Requires the X-Manager-ID header."""
    data = json_body()
    shift = register_service.reconcile_shift(g.ctx, shift_id, notes=data.get("notes"))
    return jsonify({"shift": shift.to_dict()}), 200


@registers_bp.get("/shifts/<int:shift_id>")
@require_context
@handle_pos_errors("load shift summary")
def get_shift_summary_route(shift_id: int):
    return jsonify(register_service.get_shift_summary(g.ctx, shift_id)), 200
