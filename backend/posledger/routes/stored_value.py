# Overview: Flask API routes for gift cards, store credit and loyalty; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g

from ..services import ledger_service
from ..services.ledger_service import AccountRef, KIND_GIFT_CARD, KIND_STORE_CREDIT, KIND_LOYALTY
from ..time_utils import parse_iso_datetime
from ..decorators import require_context, handle_pos_errors, json_body, require_fields


stored_value_bp = Blueprint("stored_value", __name__, url_prefix="/api/pos")


# =============================================================================
# GIFT CARDS
# =============================================================================

@stored_value_bp.post("/gift-cards")
@require_context
@handle_pos_errors("issue gift card")
def issue_gift_card_route():
    """
    Request body:
    {"card_number": "GC-0001", "initial_value_cents": 5000,
     "pin": "1234", "expiry_date": "2027-12-31T23:59:59Z", "customer_id": 42}
    """
    data = json_body()
    require_fields(data, "card_number", "initial_value_cents")
    card = ledger_service.issue_gift_card(
        g.ctx,
        data["card_number"],
        data["initial_value_cents"],
        pin=data.get("pin"),
        expiry_date=parse_iso_datetime(data.get("expiry_date")),
        customer_id=data.get("customer_id"),
        currency=data.get("currency") or "USD",
    )
    return jsonify({"gift_card": card.to_dict()}), 201


@stored_value_bp.get("/gift-cards/<card_number>")
@require_context
@handle_pos_errors("load gift card")
def get_gift_card_route(card_number: str):
    card = ledger_service.get_gift_card_by_number(g.ctx, card_number)
    entries = ledger_service.get_entries(g.ctx, AccountRef(KIND_GIFT_CARD, card.id))
    return jsonify({"gift_card": card.to_dict(), "entries": [e.to_dict() for e in entries]}), 200


@stored_value_bp.post("/gift-cards/<card_number>/redeem")
@require_context
@handle_pos_errors("redeem gift card")
def redeem_gift_card_route(card_number: str):
    """
    Standalone debit (outside a sale).

    Request body: {"amount_cents": 2000, "pin": "1234", "reason": "...", "idempotency_key": "..."}
    """
    data = json_body()
    require_fields(data, "amount_cents")
    card = ledger_service.get_gift_card_by_number(g.ctx, card_number)
    entry = ledger_service.debit(
        g.ctx,
        AccountRef(KIND_GIFT_CARD, card.id),
        data["amount_cents"],
        data.get("reason") or "Gift card redemption",
        idempotency_key=data.get("idempotency_key"),
        pin=data.get("pin"),
    )
    return jsonify({"entry": entry.to_dict()}), 201


@stored_value_bp.post("/gift-cards/<card_number>/reload")
@require_context
@handle_pos_errors("reload gift card")
def reload_gift_card_route(card_number: str):
    """Request body: {"amount_cents": 2000, "reason": "...", "idempotency_key": "..."}"""
    data = json_body()
    require_fields(data, "amount_cents")
    card = ledger_service.get_gift_card_by_number(g.ctx, card_number)
    entry = ledger_service.credit(
        g.ctx,
        AccountRef(KIND_GIFT_CARD, card.id),
        data["amount_cents"],
        data.get("reason") or "Gift card reload",
        idempotency_key=data.get("idempotency_key"),
    )
    return jsonify({"entry": entry.to_dict()}), 201


# =============================================================================
# STORE CREDIT
# =============================================================================

@stored_value_bp.post("/customers/<int:customer_id>/store-credit")
@require_context
@handle_pos_errors("issue store credit")
def issue_store_credit_route(customer_id: int):
    """Request body: {"amount_cents": 2500, "reason": "...", "idempotency_key": "..."}"""
    data = json_body()
    require_fields(data, "amount_cents")
    entry = ledger_service.issue_store_credit(
        g.ctx,
        customer_id,
        data["amount_cents"],
        data.get("reason"),
        idempotency_key=data.get("idempotency_key"),
    )
    return jsonify({"entry": entry.to_dict()}), 201


@stored_value_bp.get("/customers/<int:customer_id>/store-credit")
@require_context
@handle_pos_errors("load store credit")
def get_store_credit_route(customer_id: int):
    account = ledger_service.get_store_credit(g.ctx, customer_id)
    entries = ledger_service.get_entries(g.ctx, AccountRef(KIND_STORE_CREDIT, account.id))
    return jsonify({"store_credit": account.to_dict(), "entries": [e.to_dict() for e in entries]}), 200


# =============================================================================
# LOYALTY
# =============================================================================

@stored_value_bp.get("/customers/<int:customer_id>/loyalty")
@require_context
@handle_pos_errors("load loyalty account")
def get_loyalty_route(customer_id: int):
    account = ledger_service.get_loyalty_account(g.ctx, customer_id)
    entries = ledger_service.get_entries(g.ctx, AccountRef(KIND_LOYALTY, account.id))
    return jsonify({"loyalty_account": account.to_dict(), "entries": [e.to_dict() for e in entries]}), 200


@stored_value_bp.post("/customers/<int:customer_id>/loyalty/earn")
@require_context
@handle_pos_errors("earn loyalty points")
def earn_points_route(customer_id: int):
    """Manual adjustment. Request body: {"points": 100, "reason": "..."}"""
    data = json_body()
    require_fields(data, "points")
    entry = ledger_service.earn_points(g.ctx, customer_id, data["points"], data.get("reason"))
    return jsonify({"entry": entry.to_dict()}), 201


@stored_value_bp.post("/customers/<int:customer_id>/loyalty/redeem")
@require_context
@handle_pos_errors("redeem loyalty points")
def redeem_points_route(customer_id: int):
    """Request body: {"points": 100, "reason": "...", "idempotency_key": "..."}"""
    data = json_body()
    require_fields(data, "points")
    entry = ledger_service.redeem_points(
        g.ctx,
        customer_id,
        data["points"],
        data.get("reason"),
        idempotency_key=data.get("idempotency_key"),
    )
    return jsonify({"entry": entry.to_dict()}), 201
