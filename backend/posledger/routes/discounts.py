# Overview: Flask API routes for discount rules and coupons; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..errors import ValidationError
from ..services import coupon_service
from ..services.discount_engine import CartLine
from ..decorators import require_context, handle_pos_errors, json_body, require_fields


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/pos")


@discounts_bp.post("/discount-rules")
@require_context
@handle_pos_errors("create discount rule")
def create_discount_rule_route():
    """
    Request body:
    {
        "rule_code": "TEN-OFF",
        "name": "10% off over $50",
        "discount_type": "percentage",
        "applies_to": "all_products",
        "discount_value": 1000,
        "min_purchase_cents": 5000,
        "max_discount_cents": 500,     (optional)
        "days_of_week": [0, 6],        (optional, Sunday=0)
        "time_from": "09:00", "time_to": "17:00",  (optional)
        "priority": 10, "is_combinable": false
    }
    """
    rule = coupon_service.create_discount_rule(g.ctx, json_body())
    return jsonify({"discount_rule": rule.to_dict()}), 201


@discounts_bp.get("/discount-rules")
@require_context
@handle_pos_errors("list discount rules")
def list_discount_rules_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    rules = coupon_service.list_discount_rules(g.ctx, active_only)
    return jsonify({"discount_rules": [r.to_dict() for r in rules]}), 200


@discounts_bp.post("/discounts/evaluate")
@require_context
@handle_pos_errors("evaluate discounts")
def evaluate_discounts_route():
    """
    Quote automatic discounts for a cart. Read-only.

    Request body:
    {"lines": [{"line_number": 1, "product_id": 7, "quantity": 2,
                "unit_price_cents": 4000, "category_id": 3}]}
    """
    data = json_body()
    raw_lines = data.get("lines") or []
    if not isinstance(raw_lines, list):
        raise ValidationError("lines must be a list")
    try:
        lines = [
            CartLine(
                line_number=int(l.get("line_number", n)),
                product_id=int(l["product_id"]),
                quantity=int(l["quantity"]),
                unit_price_cents=int(l["unit_price_cents"]),
                category_id=int(l["category_id"]) if l.get("category_id") is not None else None,
            )
            for n, l in enumerate(raw_lines, start=1)
        ]
    except (KeyError, TypeError, ValueError, AttributeError):
        raise ValidationError("Each line needs integer product_id, quantity and unit_price_cents")

    applied = coupon_service.evaluate_cart(g.ctx, lines)
    return jsonify({
        "discounts": [a.to_dict() for a in applied],
        "total_discount_cents": sum(a.amount_cents for a in applied),
    }), 200


@discounts_bp.post("/coupons")
@require_context
@handle_pos_errors("create coupon")
def create_coupon_route():
    """
    Request body:
    {"coupon_code": "SAVE10", "discount_rule_id": 1, "max_uses": 100,
     "max_uses_per_customer": 1, "valid_from": "...", "valid_to": "..."}
    """
    coupon = coupon_service.create_coupon(g.ctx, json_body())
    return jsonify({"coupon": coupon.to_dict()}), 201


@discounts_bp.post("/coupons/validate")
@require_context
@handle_pos_errors("validate coupon")
def validate_coupon_route():
    """
    Request body: {"coupon_code": "SAVE10", "amount_cents": 8000, "customer_id": 42}

    Always 200; "valid" and "reason" carry the answer.
    """
    data = json_body()
    require_fields(data, "coupon_code", "amount_cents")
    result = coupon_service.validate_coupon(
        g.ctx,
        data["coupon_code"],
        data["amount_cents"],
        customer_id=data.get("customer_id"),
    )
    return jsonify(result.to_dict()), 200


@discounts_bp.post("/coupons/redeem")
@require_context
@handle_pos_errors("redeem coupon")
def redeem_coupon_route():
    """
    Request body: {"coupon_code": "SAVE10", "transaction_id": 5,
                   "customer_id": 42, "discount_cents": 800}
    """
    data = json_body()
    require_fields(data, "coupon_code")
    usage = coupon_service.redeem_coupon(
        g.ctx,
        data["coupon_code"],
        data.get("transaction_id"),
        customer_id=data.get("customer_id"),
        discount_cents=data.get("discount_cents") or 0,
    )
    return jsonify({"coupon_usage": usage.to_dict()}), 201


@discounts_bp.get("/coupons/<code>")
@require_context
@handle_pos_errors("load coupon")
def get_coupon_route(code: str):
    coupon = coupon_service.get_coupon(g.ctx, code)
    return jsonify({"coupon": coupon.to_dict()}), 200


@discounts_bp.post("/discount-rules/<int:rule_id>/consume")
@require_context
@handle_pos_errors("consume discount rule usage")
def consume_rule_usage_route(rule_id: int):
    """Count one use of a rule applied outside the commit pipeline."""
    rule = coupon_service.consume_rule_usage(g.ctx, rule_id)
    return jsonify({"discount_rule": rule.to_dict()}), 200
