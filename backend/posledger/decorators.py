# Overview: Request decorators for API routes; caller context and error mapping.

from functools import wraps
from flask import request, jsonify, g, current_app

from .context import OperationContext
from .errors import POSError, ValidationError


def _header_int(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def require_context(f):
    """
    Build the OperationContext from pre-authenticated identity headers.

    MULTI-TENANT: Sets g.ctx from
    - X-Tenant-ID: tenant scope (REQUIRED)
    - X-User-ID: acting user (optional)
    - X-Manager-ID: approving manager (optional; voids, reconciliation,
      approval-gated discounts)

    Identity is resolved upstream; this layer only decodes it.
    Returns 401 without a tenant, 400 on non-integer ids.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = (request.headers.get("X-Tenant-ID") or "").strip()
        if not tenant_id:
            return jsonify({"error": "Tenant context required", "code": "unauthorized", "details": {}}), 401

        try:
            user_id = _header_int("X-User-ID")
            manager_id = _header_int("X-Manager-ID")
        except ValidationError as e:
            return jsonify(e.to_dict()), e.http_status

        g.ctx = OperationContext(tenant_id=tenant_id, user_id=user_id, manager_id=manager_id)
        return f(*args, **kwargs)

    return decorated_function


def handle_pos_errors(action: str):
    """
    Map domain errors to their HTTP status; log anything else as a 500.

    Usage:
        @handle_pos_errors("open session")
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except POSError as e:
                return jsonify(e.to_dict()), e.http_status
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error", "code": "internal_error", "details": {}}), 500
        return decorated_function
    return decorator


def json_body() -> dict:
    """Decoded JSON object body; empty dict when absent."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data: dict, *names: str) -> None:
    missing = [n for n in names if data.get(n) is None]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required", {"missing": missing})
