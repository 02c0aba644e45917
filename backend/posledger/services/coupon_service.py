# Overview: Service-layer operations for discount rules and coupons.

"""
Coupon and Discount Rule Service

WHY: Discount rules are configured data; coupons are codes that unlock
(or carry) a rule with their own usage caps.

TWO-PHASE PROTOCOL:
- validate_coupon() is read-only. It answers "would this code work on this
  amount right now" and estimates the discount. The answer can go stale.
- redeem_coupon()/apply_redemption() re-check everything and move the
  counters with conditional UPDATEs (current_uses < max_uses), so two
  cashiers racing for the last use get exactly one success.

Usage is never given back: refunds and voids leave counters and
coupon_usage rows untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from flask import current_app, has_app_context
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DiscountRule, DiscountRuleTarget, CouponCode, CouponUsage
from ..models.discounts import DISCOUNT_TYPES, APPLIES_TO
from ..context import OperationContext
from ..errors import ValidationError, ConflictError, NotFoundError, UsageLimitExceeded
from posledger.time_utils import utcnow, parse_iso_datetime, parse_clock_time
from .concurrency import run_with_retry, begin_serialized, lock_for_update
from . import discount_engine
from .discount_engine import CartLine, DiscountRuleSpec


# =============================================================================
# ELIGIBILITY REASONS (CONSTANTS)
# =============================================================================

REASON_NOT_FOUND = "not_found"
REASON_NOT_YET_VALID = "not_yet_valid"
REASON_EXPIRED = "expired"
REASON_USAGE_LIMIT = "usage_limit_exceeded"
REASON_CUSTOMER_LIMIT = "customer_limit_exceeded"
REASON_RULE_NOT_APPLICABLE = "rule_not_applicable"


@dataclass(frozen=True)
class CouponEligibility:
    valid: bool
    reason: str | None = None
    coupon_id: int | None = None
    discount_rule_id: int | None = None
    estimated_discount_cents: int = 0

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "reason": self.reason,
            "coupon_id": self.coupon_id,
            "discount_rule_id": self.discount_rule_id,
            "estimated_discount_cents": self.estimated_discount_cents,
        }


# =============================================================================
# INPUT PARSING
# =============================================================================

def _opt_int(data: dict, key: str, *, minimum: int = 0) -> int | None:
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")
    if value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return value


def _opt_datetime(data: dict, key: str) -> datetime | None:
    raw = data.get(key)
    if raw is None or isinstance(raw, datetime):
        return raw
    try:
        return parse_iso_datetime(str(raw))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _opt_time(data: dict, key: str):
    raw = data.get(key)
    if raw is None or not isinstance(raw, str):
        return raw
    try:
        return parse_clock_time(raw)
    except ValueError:
        raise ValidationError(f"{key} must be HH:MM")


def _id_list(data: dict, key: str) -> list[int]:
    raw = data.get(key) or []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(f"{key} must be a list of ids")
    try:
        return sorted({int(v) for v in raw})
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a list of ids")


# =============================================================================
# DISCOUNT RULES
# =============================================================================

def create_discount_rule(ctx: OperationContext, data: dict) -> DiscountRule:
    """
    Create a discount rule from a decoded request body.

    Raises:
        ValidationError: malformed fields or inconsistent type/scope
        ConflictError: rule_code already used in this tenant
    """
    rule_code = (data.get("rule_code") or "").strip()
    name = (data.get("name") or "").strip()
    if not rule_code:
        raise ValidationError("rule_code is required")
    if not name:
        raise ValidationError("name is required")

    discount_type = data.get("discount_type")
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discount_type must be one of {list(DISCOUNT_TYPES)}")
    applies_to = data.get("applies_to") or "all_products"
    if applies_to not in APPLIES_TO:
        raise ValidationError(f"applies_to must be one of {list(APPLIES_TO)}")

    discount_value = _opt_int(data, "discount_value") or 0
    if discount_type in ("percentage", "buy_x_get_discount", "buy_x_get_y") and discount_value > 10000:
        raise ValidationError("discount_value is in basis points and cannot exceed 10000")

    product_ids = _id_list(data, "product_ids")
    category_ids = _id_list(data, "category_ids")
    if applies_to == "specific_products" and not product_ids:
        raise ValidationError("product_ids required when applies_to=specific_products")
    if applies_to == "category" and not category_ids:
        raise ValidationError("category_ids required when applies_to=category")
    if discount_type == "bundle" and not product_ids:
        raise ValidationError("bundle rules require product_ids")

    buy_quantity = _opt_int(data, "buy_quantity", minimum=1)
    get_quantity = _opt_int(data, "get_quantity", minimum=1)
    if discount_type == "buy_x_get_y" and (not buy_quantity or not get_quantity):
        raise ValidationError("buy_x_get_y rules require buy_quantity and get_quantity")

    days = data.get("days_of_week") or []
    if not isinstance(days, (list, tuple)) or any(
        isinstance(d, bool) or not isinstance(d, int) or d < 0 or d > 6 for d in days
    ):
        raise ValidationError("days_of_week must be a list of integers 0 (Sunday) to 6")

    valid_from = _opt_datetime(data, "valid_from") or utcnow()
    valid_to = _opt_datetime(data, "valid_to")
    if valid_to and valid_to < valid_from:
        raise ValidationError("valid_to must be after valid_from")

    def _op():
        existing = db.session.query(DiscountRule).filter_by(tenant_id=ctx.tenant_id, rule_code=rule_code).first()
        if existing:
            raise ConflictError(f"Discount rule '{rule_code}' already exists", {"rule_code": rule_code})

        rule = DiscountRule(
            tenant_id=ctx.tenant_id,
            rule_code=rule_code,
            name=name,
            description=data.get("description"),
            discount_type=discount_type,
            applies_to=applies_to,
            discount_value=discount_value,
            min_purchase_cents=_opt_int(data, "min_purchase_cents"),
            max_discount_cents=_opt_int(data, "max_discount_cents"),
            buy_quantity=buy_quantity,
            get_quantity=get_quantity,
            valid_from=valid_from,
            valid_to=valid_to,
            days_of_week=",".join(str(d) for d in sorted(set(days))) or None,
            time_from=_opt_time(data, "time_from"),
            time_to=_opt_time(data, "time_to"),
            usage_limit=_opt_int(data, "usage_limit", minimum=1),
            usage_count=0,
            requires_approval=bool(data.get("requires_approval", False)),
            is_combinable=bool(data.get("is_combinable", False)),
            is_active=bool(data.get("is_active", True)),
            priority=_opt_int(data, "priority", minimum=-1000000) or 0,
            created_by=ctx.user_id,
        )
        db.session.add(rule)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Discount rule '{rule_code}' already exists", {"rule_code": rule_code}) from exc

        for pid in product_ids:
            db.session.add(DiscountRuleTarget(rule_id=rule.id, target_type="product", target_id=pid))
        for cid in category_ids:
            db.session.add(DiscountRuleTarget(rule_id=rule.id, target_type="category", target_id=cid))
        db.session.commit()
        return rule

    return run_with_retry(_op)


def list_discount_rules(ctx: OperationContext, active_only: bool = False) -> list[DiscountRule]:
    q = db.session.query(DiscountRule).filter_by(tenant_id=ctx.tenant_id)
    if active_only:
        q = q.filter(DiscountRule.is_active.is_(True))
    return q.order_by(DiscountRule.priority.desc(), DiscountRule.id.asc()).all()


def get_discount_rule(ctx: OperationContext, rule_id: int) -> DiscountRule:
    rule = db.session.query(DiscountRule).filter_by(id=rule_id, tenant_id=ctx.tenant_id).first()
    if not rule:
        raise NotFoundError(f"Discount rule {rule_id} not found", {"discount_rule_id": rule_id})
    return rule


def _allow_stacking() -> bool:
    if has_app_context():
        return bool(current_app.config.get("DISCOUNT_ALLOW_STACKING", False))
    return False


def evaluate_cart(
    ctx: OperationContext,
    lines: list[CartLine],
    *,
    now: datetime | None = None,
) -> list[discount_engine.AppliedDiscount]:
    """Quote automatic discounts for a cart against the tenant's active rules."""
    rules = [DiscountRuleSpec.from_model(r) for r in list_discount_rules(ctx, active_only=True)]
    return discount_engine.evaluate(lines, rules, now or utcnow(), allow_stacking=_allow_stacking())


def apply_rule_usage(ctx: OperationContext, rule_id: int) -> None:
    """
    Consume one use of a rule inside the caller's unit.

    Raises:
        UsageLimitExceeded: usage_count already at usage_limit
    """
    stmt = (
        update(DiscountRule)
        .where(
            DiscountRule.id == rule_id,
            DiscountRule.tenant_id == ctx.tenant_id,
            or_(DiscountRule.usage_limit.is_(None), DiscountRule.usage_count < DiscountRule.usage_limit),
        )
        .values(usage_count=DiscountRule.usage_count + 1)
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        get_discount_rule(ctx, rule_id)
        raise UsageLimitExceeded("Discount rule usage limit reached", {"discount_rule_id": rule_id})


def consume_rule_usage(ctx: OperationContext, rule_id: int) -> DiscountRule:
    """Consume one use of an automatic (coupon-less) rule as one atomic unit."""
    def _op():
        begin_serialized()
        apply_rule_usage(ctx, rule_id)
        db.session.commit()
        return get_discount_rule(ctx, rule_id)

    return run_with_retry(_op)


# =============================================================================
# COUPONS
# =============================================================================

def create_coupon(ctx: OperationContext, data: dict) -> CouponCode:
    code = (data.get("coupon_code") or "").strip()
    if not code:
        raise ValidationError("coupon_code is required")
    rule_id = _opt_int(data, "discount_rule_id", minimum=1)
    valid_from = _opt_datetime(data, "valid_from") or utcnow()
    valid_to = _opt_datetime(data, "valid_to")
    if valid_to and valid_to < valid_from:
        raise ValidationError("valid_to must be after valid_from")

    def _op():
        if rule_id is not None:
            get_discount_rule(ctx, rule_id)
        existing = db.session.query(CouponCode).filter_by(tenant_id=ctx.tenant_id, coupon_code=code).first()
        if existing:
            raise ConflictError(f"Coupon '{code}' already exists", {"coupon_code": code})

        coupon = CouponCode(
            tenant_id=ctx.tenant_id,
            coupon_code=code,
            discount_rule_id=rule_id,
            max_uses=_opt_int(data, "max_uses", minimum=1),
            max_uses_per_customer=_opt_int(data, "max_uses_per_customer", minimum=1),
            current_uses=0,
            valid_from=valid_from,
            valid_to=valid_to,
            is_active=bool(data.get("is_active", True)),
            created_by=ctx.user_id,
        )
        db.session.add(coupon)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Coupon '{code}' already exists", {"coupon_code": code}) from exc
        db.session.commit()
        return coupon

    return run_with_retry(_op)


def get_coupon(ctx: OperationContext, code: str) -> CouponCode:
    coupon = db.session.query(CouponCode).filter_by(tenant_id=ctx.tenant_id, coupon_code=code).first()
    if not coupon:
        raise NotFoundError("Coupon not found", {"coupon_code": code})
    return coupon


def _customer_uses(coupon_id: int, customer_id: int) -> int:
    return (
        db.session.query(func.count(CouponUsage.id))
        .filter(CouponUsage.coupon_id == coupon_id, CouponUsage.customer_id == customer_id)
        .scalar()
    ) or 0


def _check_coupon(
    coupon: CouponCode | None,
    amount_cents: int | None,
    customer_id: int | None,
    now: datetime,
) -> tuple[str | None, Any]:
    """Returns (reason, rule); reason None means the coupon is usable."""
    if coupon is None or not coupon.is_active:
        return REASON_NOT_FOUND, None
    if coupon.valid_from and now < coupon.valid_from:
        return REASON_NOT_YET_VALID, None
    if coupon.valid_to and now > coupon.valid_to:
        return REASON_EXPIRED, None
    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        return REASON_USAGE_LIMIT, None
    if customer_id is not None and coupon.max_uses_per_customer is not None:
        if _customer_uses(coupon.id, customer_id) >= coupon.max_uses_per_customer:
            return REASON_CUSTOMER_LIMIT, None

    rule = coupon.discount_rule
    if rule is not None:
        if rule.usage_limit is not None and rule.usage_count >= rule.usage_limit:
            return REASON_USAGE_LIMIT, rule
        if not discount_engine.is_rule_active_at(rule, now):
            return REASON_RULE_NOT_APPLICABLE, rule
        if amount_cents is not None and rule.min_purchase_cents is not None and amount_cents < rule.min_purchase_cents:
            return REASON_RULE_NOT_APPLICABLE, rule
    return None, rule


def validate_coupon(
    ctx: OperationContext,
    code: str,
    amount_cents: int,
    *,
    customer_id: int | None = None,
    now: datetime | None = None,
) -> CouponEligibility:
    """
    Read-only eligibility check. Never changes counters.
    """
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents < 0:
        raise ValidationError("amount_cents must be a non-negative integer")
    now = now or utcnow()

    coupon = db.session.query(CouponCode).filter_by(tenant_id=ctx.tenant_id, coupon_code=code).first()
    reason, rule = _check_coupon(coupon, amount_cents, customer_id, now)
    if reason:
        return CouponEligibility(
            valid=False,
            reason=reason,
            coupon_id=coupon.id if coupon else None,
            discount_rule_id=rule.id if rule else None,
        )

    estimate = discount_engine.estimate_order_discount(rule, amount_cents) if rule else 0
    return CouponEligibility(
        valid=True,
        coupon_id=coupon.id,
        discount_rule_id=rule.id if rule else None,
        estimated_discount_cents=estimate,
    )


_REASON_MESSAGES = {
    REASON_NOT_FOUND: "Coupon not found",
    REASON_NOT_YET_VALID: "Coupon is not yet valid",
    REASON_EXPIRED: "Coupon has expired",
    REASON_USAGE_LIMIT: "Coupon usage limit reached",
    REASON_CUSTOMER_LIMIT: "Coupon usage limit reached for this customer",
    REASON_RULE_NOT_APPLICABLE: "Coupon discount rule does not apply",
}


def apply_redemption(
    ctx: OperationContext,
    code: str,
    transaction_id: int | None,
    *,
    customer_id: int | None = None,
    discount_cents: int = 0,
    amount_cents: int | None = None,
    now: datetime | None = None,
) -> CouponUsage:
    """
    Redeem a coupon inside the caller's unit (no commit).

    Raises:
        NotFoundError: unknown or inactive code
        ValidationError: outside validity window, or rule not applicable
        UsageLimitExceeded: coupon, per-customer or rule cap reached
    """
    if discount_cents < 0:
        raise ValidationError("discount_cents cannot be negative")
    now = now or utcnow()
    # Row lock holds concurrent redemptions of this code until commit, so the
    # per-customer count below cannot be read stale.
    coupon = lock_for_update(
        db.session.query(CouponCode).filter_by(tenant_id=ctx.tenant_id, coupon_code=code)
    ).first()
    reason, rule = _check_coupon(coupon, amount_cents, customer_id, now)
    details = {"coupon_code": code, "reason": reason}
    if reason == REASON_NOT_FOUND:
        raise NotFoundError(_REASON_MESSAGES[reason], details)
    if reason in (REASON_USAGE_LIMIT, REASON_CUSTOMER_LIMIT):
        raise UsageLimitExceeded(_REASON_MESSAGES[reason], details)
    if reason:
        raise ValidationError(_REASON_MESSAGES[reason], details)

    stmt = (
        update(CouponCode)
        .where(
            CouponCode.id == coupon.id,
            or_(CouponCode.max_uses.is_(None), CouponCode.current_uses < CouponCode.max_uses),
        )
        .values(current_uses=CouponCode.current_uses + 1)
        .execution_options(synchronize_session="fetch")
    )
    if not db.session.execute(stmt).rowcount:
        raise UsageLimitExceeded(_REASON_MESSAGES[REASON_USAGE_LIMIT], {"coupon_code": code, "reason": REASON_USAGE_LIMIT})

    if rule is not None:
        apply_rule_usage(ctx, rule.id)

    usage = CouponUsage(
        tenant_id=ctx.tenant_id,
        coupon_id=coupon.id,
        transaction_id=transaction_id,
        customer_id=customer_id,
        discount_amount_cents=discount_cents,
        used_by=ctx.user_id,
        used_at=now,
    )
    db.session.add(usage)
    db.session.flush()
    return usage


def redeem_coupon(
    ctx: OperationContext,
    code: str,
    transaction_id: int | None,
    *,
    customer_id: int | None = None,
    discount_cents: int = 0,
) -> CouponUsage:
    """Redeem a coupon as one atomic unit."""
    def _op():
        begin_serialized()
        usage = apply_redemption(
            ctx, code, transaction_id,
            customer_id=customer_id,
            discount_cents=discount_cents,
        )
        db.session.commit()
        return usage

    return run_with_retry(_op)
