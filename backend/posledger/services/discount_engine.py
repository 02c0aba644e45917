# Overview: Pure discount evaluation; no database access, no clock reads.

"""
Discount Rule Engine

WHY: Checkout, coupon validation and the commit pipeline all need the same
answer to "which rules apply to this cart, and for how much". Keeping the
evaluation pure (cart + rules + now in, applied discounts out) makes it
deterministic and testable without a database.

ORDERING: rules are applied by priority (highest first), then by id.

STACKING:
- A non-combinable rule skips lines any earlier rule touched, and claims
  the lines it touches so no later rule can touch them.
- Combinable rules stack on any line not claimed by a non-combinable rule.
- allow_stacking=True treats every rule as combinable.
- order_total rules discount what is left of the order; a non-combinable
  one applies only when nothing else has been applied.

AMOUNTS: integer cents, percentages in basis points (10000 = 100%).
Rounding is half-up. A rule never takes a line below zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Iterable

from posledger.time_utils import sunday_based_weekday


BPS_DENOMINATOR = 10000


@dataclass(frozen=True)
class CartLine:
    line_number: int
    product_id: int
    quantity: int
    unit_price_cents: int
    category_id: int | None = None

    @property
    def extended_cents(self) -> int:
        return self.quantity * self.unit_price_cents


@dataclass(frozen=True)
class DiscountRuleSpec:
    """
    Plain-value copy of a discount rule.

    The engine reads rules by attribute, so ORM DiscountRule rows work as
    well; this type exists for callers (and tests) without a database.
    """
    id: int
    discount_type: str
    discount_value: int
    applies_to: str = "all_products"
    rule_code: str | None = None
    product_ids: tuple = ()
    category_ids: tuple = ()
    min_purchase_cents: int | None = None
    max_discount_cents: int | None = None
    buy_quantity: int | None = None
    get_quantity: int | None = None
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    weekdays: tuple = ()
    time_from: time | None = None
    time_to: time | None = None
    usage_limit: int | None = None
    usage_count: int = 0
    requires_approval: bool = False
    is_combinable: bool = False
    is_active: bool = True
    priority: int = 0

    @classmethod
    def from_model(cls, rule) -> "DiscountRuleSpec":
        return cls(
            id=rule.id,
            discount_type=rule.discount_type,
            discount_value=rule.discount_value,
            applies_to=rule.applies_to,
            rule_code=rule.rule_code,
            product_ids=tuple(rule.product_ids),
            category_ids=tuple(rule.category_ids),
            min_purchase_cents=rule.min_purchase_cents,
            max_discount_cents=rule.max_discount_cents,
            buy_quantity=rule.buy_quantity,
            get_quantity=rule.get_quantity,
            valid_from=rule.valid_from,
            valid_to=rule.valid_to,
            weekdays=tuple(rule.weekdays),
            time_from=rule.time_from,
            time_to=rule.time_to,
            usage_limit=rule.usage_limit,
            usage_count=rule.usage_count or 0,
            requires_approval=bool(rule.requires_approval),
            is_combinable=bool(rule.is_combinable),
            is_active=bool(rule.is_active),
            priority=rule.priority or 0,
        )


@dataclass(frozen=True)
class AppliedDiscount:
    rule_id: int
    amount_cents: int
    allocations: tuple = field(default_factory=tuple)  # ((line_number, cents), ...)
    rule_code: str | None = None
    requires_approval: bool = False

    @property
    def line_numbers(self) -> list[int]:
        return [ln for ln, _ in self.allocations]

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "rule_code": self.rule_code,
            "amount_cents": self.amount_cents,
            "line_numbers": self.line_numbers,
            "allocations": [{"line_number": ln, "amount_cents": c} for ln, c in self.allocations],
            "requires_approval": self.requires_approval,
        }


# =============================================================================
# ARITHMETIC
# =============================================================================

def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounding .5 away from zero (inputs are non-negative)."""
    return (2 * numerator + denominator) // (2 * denominator)


def percent_of(amount_cents: int, bps: int) -> int:
    return round_half_up(amount_cents * bps, BPS_DENOMINATOR)


def _spread(amount: int, bases: dict[int, int]) -> dict[int, int]:
    """
    Split amount across lines proportionally to their bases.

    Largest-remainder method; a line never receives more than its base.
    """
    total_base = sum(bases.values())
    if amount <= 0 or total_base <= 0:
        return {}
    amount = min(amount, total_base)

    shares = {ln: amount * base // total_base for ln, base in bases.items()}
    leftover = amount - sum(shares.values())
    order = sorted(bases, key=lambda ln: (-(amount * bases[ln] % total_base), ln))
    while leftover > 0:
        for ln in order:
            if leftover == 0:
                break
            if shares[ln] < bases[ln]:
                shares[ln] += 1
                leftover -= 1
    return {ln: c for ln, c in shares.items() if c > 0}


def _cap(alloc: dict[int, int], cap: int | None) -> dict[int, int]:
    if cap is None:
        return alloc
    total = sum(alloc.values())
    if total <= cap:
        return alloc
    return _spread(max(0, cap), alloc)


# =============================================================================
# ELIGIBILITY
# =============================================================================

def _in_time_window(now_time: time, start: time | None, end: time | None) -> bool:
    if start is None and end is None:
        return True
    if start is None:
        return now_time <= end
    if end is None:
        return now_time >= start
    if start <= end:
        return start <= now_time <= end
    # Window crosses midnight (e.g. 22:00 -> 02:00)
    return now_time >= start or now_time <= end


def _scope_lines(rule, lines: list[CartLine]) -> list[CartLine]:
    if rule.applies_to in ("all_products", "order_total"):
        return list(lines)
    if rule.applies_to == "category":
        cats = set(rule.category_ids)
        return [l for l in lines if l.category_id is not None and l.category_id in cats]
    if rule.applies_to == "specific_products":
        prods = set(rule.product_ids)
        return [l for l in lines if l.product_id in prods]
    return []


def is_rule_active_at(rule, now: datetime) -> bool:
    """Active flag, validity window, weekday and time-of-day checks."""
    if not rule.is_active:
        return False
    if rule.valid_from is not None and now < rule.valid_from:
        return False
    if rule.valid_to is not None and now > rule.valid_to:
        return False
    weekdays = list(rule.weekdays or ())
    if weekdays and sunday_based_weekday(now) not in weekdays:
        return False
    if not _in_time_window(now.time(), rule.time_from, rule.time_to):
        return False
    return True


def is_rule_eligible(rule, lines: list[CartLine], now: datetime) -> bool:
    if not lines:
        return False
    if not is_rule_active_at(rule, now):
        return False
    if rule.usage_limit is not None and (rule.usage_count or 0) >= rule.usage_limit:
        return False
    cart_total = sum(l.extended_cents for l in lines)
    if rule.min_purchase_cents is not None and cart_total < rule.min_purchase_cents:
        return False
    return bool(_scope_lines(rule, lines))


# =============================================================================
# COMPUTATION
# =============================================================================

def _compute(rule, lines: list[CartLine], remaining: dict[int, int]) -> dict[int, int]:
    bases = {l.line_number: remaining[l.line_number] for l in lines if remaining[l.line_number] > 0}
    if not bases:
        return {}
    base_total = sum(bases.values())
    value = rule.discount_value or 0
    dtype = rule.discount_type

    if dtype == "percentage":
        return _spread(percent_of(base_total, value), bases)

    if dtype == "fixed_amount":
        return _spread(min(value, base_total), bases)

    if dtype == "buy_x_get_discount":
        buy = rule.buy_quantity or 1
        qty = sum(l.quantity for l in lines if l.line_number in bases)
        if qty < buy:
            return {}
        return _spread(percent_of(base_total, value), bases)

    if dtype == "buy_x_get_y":
        buy = rule.buy_quantity or 0
        get = rule.get_quantity or 0
        if buy < 1 or get < 1:
            return {}
        units = []
        for l in lines:
            if l.line_number in bases:
                units.extend([(l.unit_price_cents, l.line_number)] * l.quantity)
        groups = len(units) // (buy + get)
        free_units = groups * get
        if free_units == 0:
            return {}
        alloc: dict[int, int] = {}
        for price, ln in sorted(units)[:free_units]:
            off = price if value == 0 else percent_of(price, value)
            alloc[ln] = alloc.get(ln, 0) + off
        return {ln: min(c, bases[ln]) for ln, c in alloc.items() if c > 0}

    if dtype == "bundle":
        required = list(rule.product_ids)
        if not required:
            return {}
        qty_by_product: dict[int, int] = {}
        for l in lines:
            if l.line_number in bases:
                qty_by_product[l.product_id] = qty_by_product.get(l.product_id, 0) + l.quantity
        if any(p not in qty_by_product for p in required):
            return {}
        bundles = min(qty_by_product[p] for p in required)
        bundle_bases = {
            ln: base for ln, base in bases.items()
            if any(l.line_number == ln and l.product_id in required for l in lines)
        }
        return _spread(value * bundles, bundle_bases)

    return {}


def evaluate(
    cart_lines: Iterable[CartLine],
    candidate_rules: Iterable,
    now: datetime,
    *,
    allow_stacking: bool = False,
) -> list[AppliedDiscount]:
    """
    Apply candidate rules to a cart.

    Returns one AppliedDiscount per rule that produced a positive amount,
    in application order. Rules that are inactive, out of window, over
    their usage limit, below minimum purchase or out of scope are skipped.
    """
    lines = list(cart_lines)
    if not lines:
        return []

    remaining = {l.line_number: l.extended_cents for l in lines}
    claimed: set[int] = set()  # lines owned by a non-combinable rule
    touched: set[int] = set()
    applied: list[AppliedDiscount] = []

    eligible = [r for r in candidate_rules if is_rule_eligible(r, lines, now)]
    eligible.sort(key=lambda r: (-(r.priority or 0), r.id))

    for rule in eligible:
        combinable = allow_stacking or bool(rule.is_combinable)

        if rule.applies_to == "order_total":
            if not combinable and applied:
                continue
            if rule.discount_type not in ("percentage", "fixed_amount"):
                continue
            open_lines = [l for l in lines if l.line_number not in claimed]
        else:
            open_lines = [l for l in _scope_lines(rule, lines) if l.line_number not in claimed]
            if not combinable:
                open_lines = [l for l in open_lines if l.line_number not in touched]

        if not open_lines:
            continue

        alloc = _cap(_compute(rule, open_lines, remaining), rule.max_discount_cents)
        amount = sum(alloc.values())
        if amount <= 0:
            continue

        for ln, cents in alloc.items():
            remaining[ln] -= cents
        touched.update(alloc)
        if not combinable:
            claimed.update(alloc)

        applied.append(AppliedDiscount(
            rule_id=rule.id,
            amount_cents=amount,
            allocations=tuple(sorted(alloc.items())),
            rule_code=getattr(rule, "rule_code", None),
            requires_approval=bool(getattr(rule, "requires_approval", False)),
        ))

    return applied


def estimate_order_discount(rule, amount_cents: int) -> int:
    """
    Discount a rule would give on a bare order amount (no cart lines).

    Used for coupon validation before the cart is final. Quantity-based
    types need the cart and estimate to 0.
    """
    if amount_cents <= 0:
        return 0
    if rule.discount_type == "percentage":
        est = percent_of(amount_cents, rule.discount_value or 0)
    elif rule.discount_type == "fixed_amount":
        est = rule.discount_value or 0
    else:
        return 0
    if rule.max_discount_cents is not None:
        est = min(est, rule.max_discount_cents)
    return min(est, amount_cents)
