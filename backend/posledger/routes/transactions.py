# Overview: Flask API routes for sale commit, returns and voids; parses input and returns JSON responses.

"""
Transaction API Routes

DESIGN:
- POST /transactions commits a whole sale (items, payments, discounts) at once
- Returns and voids create new transactions; originals only change status
- Voids require the X-Manager-ID header
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ValidationError
from ..services import transaction_service
from ..services.transaction_service import SaleItem, TenderedPayment, RequestedDiscount, int_field
from ..services.catalog import CatalogClient
from ..decorators import require_context, handle_pos_errors, json_body, require_fields


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/pos")


def _list_of(data: dict, key: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list")
    return value


@transactions_bp.post("/transactions")
@require_context
@handle_pos_errors("commit sale")
def commit_sale_route():
    """
    Commit a sale.

    Request body:
    {
        "session_id": 1,
        "customer_id": 42,                       (optional)
        "tip_cents": 0,                          (optional)
        "items": [{"product_id": 7, "quantity": 2, "unit_price_cents": 1500,
                   "category_id": 3, "discount_cents": 0, "tax_cents": 240}],
        "payments": [{"payment_method": "cash", "amount_cents": 5000},
                     {"payment_method": "gift_card", "amount_cents": 1000,
                      "card_number": "GC-0001", "pin": "1234"}],
        "discounts": [{"coupon_code": "SAVE10"}],  (optional)
        "notes": "...",                          (optional)
        "attributes": {"order_channel": "in_store"}  (optional)
    }
    """
    data = json_body()
    require_fields(data, "session_id")
    txn = transaction_service.commit_sale(
        g.ctx,
        data["session_id"],
        [SaleItem.from_dict(i) for i in _list_of(data, "items")],
        [TenderedPayment.from_dict(p) for p in _list_of(data, "payments")],
        [RequestedDiscount.from_dict(d) for d in _list_of(data, "discounts")],
        customer_id=int_field(data, "customer_id"),
        tip_cents=int_field(data, "tip_cents") or 0,
        notes=data.get("notes"),
        attributes=data.get("attributes"),
    )
    return jsonify({"transaction": txn.to_dict(include_lines=True)}), 201


@transactions_bp.get("/transactions/<int:transaction_id>")
@require_context
@handle_pos_errors("load transaction")
def get_transaction_route(transaction_id: int):
    """Transaction detail, enriched with catalog product data when available."""
    catalog = CatalogClient.from_config(current_app.config, logger=current_app.logger)
    return jsonify({"transaction": transaction_service.get_transaction_detail(g.ctx, transaction_id, catalog)}), 200


@transactions_bp.get("/sessions/<int:session_id>/transactions")
@require_context
@handle_pos_errors("list transactions")
def list_transactions_route(session_id: int):
    txns = transaction_service.list_transactions(g.ctx, session_id)
    return jsonify({"transactions": [t.to_dict() for t in txns]}), 200


@transactions_bp.post("/transactions/<int:transaction_id>/refund")
@require_context
@handle_pos_errors("refund transaction")
def refund_transaction_route(transaction_id: int):
    """
    Request body: {"session_id": 2, "reason": "Customer return"}
    """
    data = json_body()
    require_fields(data, "session_id")
    reversal = transaction_service.refund_transaction(
        g.ctx,
        transaction_id,
        data["session_id"],
        data.get("reason"),
    )
    return jsonify({"transaction": reversal.to_dict(include_lines=True)}), 201


@transactions_bp.post("/transactions/<int:transaction_id>/void")
@require_context
@handle_pos_errors("void transaction")
def void_transaction_route(transaction_id: int):
    """
    Request body: {"reason": "Rang wrong item"}

    Requires the X-Manager-ID header.
    """
    data = json_body()
    reason = data.get("reason") or request.args.get("reason")
    reversal = transaction_service.void_transaction(g.ctx, transaction_id, reason)
    return jsonify({"transaction": reversal.to_dict(include_lines=True)}), 201
