# Overview: Service-layer operations for sale, return and void transactions.

"""
Transaction Commit Pipeline

WHY: A sale touches many rows at once: the transaction header, its items,
payments, stored-value ledgers, coupon and rule counters, session and shift
totals, loyalty points and the audit log. Either all of it is written or
none of it is.

DESIGN PRINCIPLES:
- One atomic unit per sale. Any failure (bad tender, exhausted coupon,
  insufficient gift card balance, missing approval) rolls everything back.
- Items are stored verbatim: tax and line discounts arrive pre-computed.
- total = subtotal - discount + tax + tip
- Under-payment is refused; over-payment is returned as change (cash only).
- Transactions are immutable. A return or void is a new transaction that
  points at the original and moves every balance back; the original only
  changes status (completed -> refunded | void).
- Coupon and rule usage is not given back on return or void.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from flask import current_app, has_app_context

from ..extensions import db
from ..models import (
    Transaction,
    TransactionItem,
    Payment,
    TransactionDiscount,
    PosSession,
    Shift,
    LoyaltyAccount,
)
from ..context import OperationContext
from ..errors import (
    ValidationError,
    ConflictError,
    NotFoundError,
    PaymentMismatch,
    RequiresApproval,
)
from posledger.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry, begin_serialized
from .document_service import next_document_number, DOC_TRANSACTION
from .audit_service import append_event
from . import attribute_service, coupon_service, discount_engine, ledger_service
from .ledger_service import AccountRef, KIND_GIFT_CARD, KIND_STORE_CREDIT, KIND_LOYALTY


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_CHECK = "check"
METHOD_GIFT_CARD = "gift_card"
METHOD_STORE_CREDIT = "store_credit"
METHOD_LOYALTY_POINTS = "loyalty_points"

PAYMENT_METHODS = (
    METHOD_CASH,
    METHOD_CARD,
    METHOD_CHECK,
    METHOD_GIFT_CARD,
    METHOD_STORE_CREDIT,
    METHOD_LOYALTY_POINTS,
)

# Stored-value tenders and the ledger account kind they debit.
# Loyalty points are tendered at one point per cent.
STORED_VALUE_METHODS = {
    METHOD_GIFT_CARD: KIND_GIFT_CARD,
    METHOD_STORE_CREDIT: KIND_STORE_CREDIT,
    METHOD_LOYALTY_POINTS: KIND_LOYALTY,
}


# =============================================================================
# INPUT TYPES
# =============================================================================

def int_field(data: dict, key: str, *, default=None, required: bool = False):
    raw = data.get(key, default)
    if raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")


@dataclass(frozen=True)
class SaleItem:
    product_id: int
    quantity: int
    unit_price_cents: int
    category_id: int | None = None
    discount_cents: int = 0
    tax_cents: int = 0
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SaleItem":
        if not isinstance(data, dict):
            raise ValidationError("Each item must be an object")
        return cls(
            product_id=int_field(data, "product_id", required=True),
            quantity=int_field(data, "quantity", required=True),
            unit_price_cents=int_field(data, "unit_price_cents", required=True),
            category_id=int_field(data, "category_id"),
            discount_cents=int_field(data, "discount_cents", default=0),
            tax_cents=int_field(data, "tax_cents", default=0),
            notes=data.get("notes"),
        )

    @property
    def extended_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def line_total_cents(self) -> int:
        return self.extended_cents - self.discount_cents + self.tax_cents


@dataclass(frozen=True)
class TenderedPayment:
    payment_method: str
    amount_cents: int
    reference_number: str | None = None
    card_type: str | None = None
    account_id: int | None = None
    card_number: str | None = None
    pin: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "TenderedPayment":
        if not isinstance(data, dict):
            raise ValidationError("Each payment must be an object")
        return cls(
            payment_method=data.get("payment_method"),
            amount_cents=int_field(data, "amount_cents", required=True),
            reference_number=data.get("reference_number"),
            card_type=data.get("card_type"),
            account_id=int_field(data, "account_id"),
            card_number=data.get("card_number"),
            pin=data.get("pin"),
        )

    @property
    def is_stored_value(self) -> bool:
        return self.payment_method in STORED_VALUE_METHODS


@dataclass(frozen=True)
class RequestedDiscount:
    """
    Order-level discount requested at checkout.

    amount_cents None means "compute it": the referenced rule (or the
    coupon's rule) is evaluated against the cart.
    """
    discount_rule_id: int | None = None
    coupon_code: str | None = None
    amount_cents: int | None = None
    line_numbers: tuple = ()

    @classmethod
    def from_dict(cls, data: dict) -> "RequestedDiscount":
        if not isinstance(data, dict):
            raise ValidationError("Each discount must be an object")
        lines = data.get("line_numbers") or ()
        if not isinstance(lines, (list, tuple)):
            raise ValidationError("line_numbers must be a list")
        return cls(
            discount_rule_id=int_field(data, "discount_rule_id"),
            coupon_code=data.get("coupon_code") or None,
            amount_cents=int_field(data, "amount_cents"),
            line_numbers=tuple(int(n) for n in lines),
        )


def _validate_sale_input(items: list[SaleItem], payments: list[TenderedPayment], discounts, tip_cents: int) -> None:
    if not items:
        raise ValidationError("At least one item is required")
    if not payments:
        raise ValidationError("At least one payment is required")
    if not isinstance(tip_cents, int) or isinstance(tip_cents, bool):
        raise ValidationError("tip_cents must be an integer")
    if tip_cents < 0:
        raise ValidationError("tip_cents cannot be negative")

    for n, item in enumerate(items, start=1):
        details = {"line_number": n}
        if item.quantity <= 0:
            raise ValidationError("Item quantity must be positive", details)
        if item.unit_price_cents < 0:
            raise ValidationError("Item unit price cannot be negative", details)
        if item.discount_cents < 0 or item.tax_cents < 0:
            raise ValidationError("Item discount and tax cannot be negative", details)
        if item.discount_cents > item.extended_cents:
            raise ValidationError("Item discount exceeds line amount", details)

    for n, payment in enumerate(payments, start=1):
        details = {"payment_line": n}
        if payment.payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {payment.payment_method}. Must be one of {list(PAYMENT_METHODS)}",
                details,
            )
        if payment.amount_cents <= 0:
            raise ValidationError("Payment amount must be positive", details)
        if payment.payment_method == METHOD_GIFT_CARD and not (payment.account_id or payment.card_number):
            raise ValidationError("Gift card payments require account_id or card_number", details)

    for d in discounts:
        if d.discount_rule_id is None and not d.coupon_code and d.amount_cents is None:
            raise ValidationError("Discount must reference a rule, a coupon or an amount")
        if d.amount_cents is not None and d.amount_cents < 0:
            raise ValidationError("Discount amount cannot be negative")
        if d.line_numbers and any(n < 1 or n > len(items) for n in d.line_numbers):
            raise ValidationError("Discount references an unknown line", {"line_numbers": list(d.line_numbers)})


# =============================================================================
# INTERNALS
# =============================================================================

def _loyalty_rate() -> int:
    if has_app_context():
        return int(current_app.config.get("LOYALTY_POINTS_PER_UNIT", 1))
    return 1


def _resolve_account(ctx: OperationContext, payment: TenderedPayment, customer_id: int | None) -> AccountRef:
    kind = STORED_VALUE_METHODS[payment.payment_method]
    if payment.account_id is not None:
        return AccountRef(kind, payment.account_id)
    if kind == KIND_GIFT_CARD:
        card = ledger_service.get_gift_card_by_number(ctx, payment.card_number)
        return AccountRef(kind, card.id)
    if customer_id is None:
        raise ValidationError(f"{payment.payment_method} payments require account_id or a customer_id on the sale")
    if kind == KIND_STORE_CREDIT:
        return AccountRef(kind, ledger_service.get_store_credit(ctx, customer_id).id)
    return AccountRef(kind, ledger_service.get_loyalty_account(ctx, customer_id).id)


def _load_active_session(ctx: OperationContext, session_id: int) -> PosSession:
    session = lock_for_update(
        db.session.query(PosSession).filter_by(id=session_id, tenant_id=ctx.tenant_id, status="active")
    ).first()
    if not session:
        raise NotFoundError("Active session not found", {"session_id": session_id})
    return session


def _open_shift_for(ctx: OperationContext, session: PosSession) -> Shift | None:
    if not session.shift_id:
        return None
    return lock_for_update(
        db.session.query(Shift).filter_by(id=session.shift_id, tenant_id=ctx.tenant_id, status="open")
    ).first()


def _tender_split(payments, change_cents: int) -> tuple[int, int]:
    """(net cash, card) amounts; change comes out of cash."""
    cash = sum(p.amount_cents for p in payments if p.payment_method == METHOD_CASH) - change_cents
    card = sum(p.amount_cents for p in payments if p.payment_method == METHOD_CARD)
    return cash, card


def _resolve_discount(
    ctx: OperationContext,
    requested: RequestedDiscount,
    cart_lines: list[discount_engine.CartLine],
    now,
):
    """Returns (rule or None, amount_cents, line_numbers)."""
    rule = None
    if requested.coupon_code:
        coupon = coupon_service.get_coupon(ctx, requested.coupon_code)
        rule = coupon.discount_rule
        if requested.discount_rule_id is not None and (rule is None or rule.id != requested.discount_rule_id):
            raise ValidationError("Coupon is not linked to the requested discount rule")
    elif requested.discount_rule_id is not None:
        rule = coupon_service.get_discount_rule(ctx, requested.discount_rule_id)

    if rule is not None and rule.requires_approval and not ctx.has_manager_approval:
        raise RequiresApproval(
            "Discount requires manager approval",
            {"discount_rule_id": rule.id, "rule_code": rule.rule_code},
        )

    if requested.amount_cents is not None and rule is None:
        return rule, requested.amount_cents, list(requested.line_numbers)

    if rule is None:
        raise ValidationError("Coupon carries no discount rule; amount_cents is required",
                              {"coupon_code": requested.coupon_code})
    details = {"discount_rule_id": rule.id, "rule_code": rule.rule_code}
    spec = discount_engine.DiscountRuleSpec.from_model(rule)
    applied = []
    if discount_engine.is_rule_eligible(spec, cart_lines, now):
        applied = discount_engine.evaluate(cart_lines, [spec], now, allow_stacking=True)
    if not applied:
        raise ValidationError("Discount rule does not apply to this sale", details)

    computed = applied[0]
    if requested.amount_cents is None:
        return rule, computed.amount_cents, computed.line_numbers
    # An explicit amount may lower what the rule gives, never raise it.
    if requested.amount_cents > computed.amount_cents:
        raise ValidationError(
            "Discount amount exceeds what the rule allows",
            dict(details, amount_cents=requested.amount_cents, allowed_cents=computed.amount_cents),
        )
    return rule, requested.amount_cents, list(requested.line_numbers) or computed.line_numbers


# =============================================================================
# SALE COMMIT
# =============================================================================

def commit_sale(
    ctx: OperationContext,
    session_id: int,
    items: Iterable[SaleItem],
    payments: Iterable[TenderedPayment],
    discounts: Iterable[RequestedDiscount] = (),
    *,
    customer_id: int | None = None,
    tip_cents: int = 0,
    notes: str | None = None,
    attributes: dict | None = None,
) -> Transaction:
    """
    Commit a sale as one atomic unit.

    Raises:
        ValidationError: malformed items, payments or discounts
        NotFoundError: session not active, stored-value account or coupon unknown
        PaymentMismatch: payments do not cover the total, or non-cash over-tender
        InsufficientBalance: a stored-value tender exceeds its balance
        UsageLimitExceeded: coupon or rule cap reached
        RequiresApproval: a requires_approval rule without a manager
    """
    items = list(items)
    payments = list(payments)
    discounts = list(discounts)
    _validate_sale_input(items, payments, discounts, tip_cents)
    attribute_service.validate_attributes("transaction", attributes)

    def _op():
        begin_serialized()
        session = _load_active_session(ctx, session_id)
        now = utcnow()

        cart_lines = [
            discount_engine.CartLine(
                line_number=n,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                category_id=item.category_id,
            )
            for n, item in enumerate(items, start=1)
        ]

        resolved = [_resolve_discount(ctx, d, cart_lines, now) for d in discounts]

        subtotal = sum(i.extended_cents for i in items)
        line_discount = sum(i.discount_cents for i in items)
        order_discount = sum(amount for _, amount, _ in resolved)
        discount_total = line_discount + order_discount
        tax = sum(i.tax_cents for i in items)
        if discount_total > subtotal:
            raise ValidationError(
                "Discounts exceed the sale subtotal",
                {"subtotal_cents": subtotal, "discount_cents": discount_total},
            )
        total = subtotal - discount_total + tax + tip_cents

        tendered = sum(p.amount_cents for p in payments)
        if tendered < total:
            raise PaymentMismatch(
                "Payments do not cover the sale total",
                {"total_cents": total, "tendered_cents": tendered},
            )
        change = tendered - total
        cash_tendered = sum(p.amount_cents for p in payments if p.payment_method == METHOD_CASH)
        if change > cash_tendered:
            raise PaymentMismatch(
                "Non-cash tender cannot exceed the remaining balance",
                {"total_cents": total, "tendered_cents": tendered},
            )

        shift = _open_shift_for(ctx, session)

        txn = Transaction(
            tenant_id=ctx.tenant_id,
            transaction_number=next_document_number(ctx.tenant_id, DOC_TRANSACTION),
            session_id=session.id,
            register_id=session.register_id,
            shift_id=shift.id if shift else None,
            customer_id=customer_id,
            transaction_date=now,
            transaction_type="sale",
            status="completed",
            subtotal_cents=subtotal,
            tax_cents=tax,
            discount_cents=discount_total,
            tip_cents=tip_cents,
            total_cents=total,
            tendered_cents=tendered,
            change_cents=change,
            cashier_id=ctx.user_id,
            manager_id=ctx.manager_id,
            notes=notes,
        )
        db.session.add(txn)
        db.session.flush()

        for n, item in enumerate(items, start=1):
            db.session.add(TransactionItem(
                transaction_id=txn.id,
                line_number=n,
                product_id=item.product_id,
                category_id=item.category_id,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                discount_cents=item.discount_cents,
                tax_cents=item.tax_cents,
                line_total_cents=item.line_total_cents,
                notes=item.notes,
            ))

        for n, payment in enumerate(payments, start=1):
            row = Payment(
                transaction_id=txn.id,
                line_number=n,
                payment_method=payment.payment_method,
                amount_cents=payment.amount_cents,
                status="completed",
                reference_number=payment.reference_number,
                card_type=payment.card_type,
                processed_at=now,
            )
            if payment.is_stored_value:
                ref = _resolve_account(ctx, payment, customer_id)
                entry = ledger_service.apply_debit(
                    ctx, ref, payment.amount_cents, f"Sale {txn.transaction_number}",
                    transaction_id=txn.id,
                    pin=payment.pin,
                )
                row.account_kind = ref.kind
                row.account_id = ref.account_id
                row.ledger_entry_id = entry.entry_id
            db.session.add(row)

        for requested, (rule, amount, line_numbers) in zip(discounts, resolved):
            coupon_id = None
            if requested.coupon_code:
                usage = coupon_service.apply_redemption(
                    ctx, requested.coupon_code, txn.id,
                    customer_id=customer_id,
                    discount_cents=amount,
                    amount_cents=subtotal,
                    now=now,
                )
                coupon_id = usage.coupon_id
            elif rule is not None:
                coupon_service.apply_rule_usage(ctx, rule.id)
            db.session.add(TransactionDiscount(
                transaction_id=txn.id,
                discount_rule_id=rule.id if rule else None,
                coupon_id=coupon_id,
                amount_cents=amount,
                line_numbers=",".join(str(n) for n in line_numbers) or None,
            ))

        session.total_sales_cents += total
        session.total_transactions += 1

        if shift:
            cash, card = _tender_split(payments, change)
            shift.total_sales_cents += total
            shift.total_cash_sales_cents += cash
            shift.total_card_sales_cents += card
            shift.transaction_count += 1

        if customer_id is not None:
            points = (total // 100) * _loyalty_rate()
            ledger_service.apply_earn_points(
                ctx, customer_id, points, f"Sale {txn.transaction_number}",
                transaction_id=txn.id,
                spent_cents=total,
            )
            txn.loyalty_points_earned = max(0, points)

        attribute_service.set_attributes(ctx, "transaction", txn.id, attributes)
        append_event(ctx, event_type="transaction.committed", entity_type="transaction", entity_id=txn.id,
                     register_id=session.register_id, session_id=session.id, transaction_id=txn.id,
                     occurred_at=now, note=txn.transaction_number)
        db.session.commit()
        return txn

    return run_with_retry(_op)


# =============================================================================
# RETURNS AND VOIDS
# =============================================================================

def _reverse(
    ctx: OperationContext,
    original: Transaction,
    session: PosSession,
    *,
    transaction_type: str,
    reason: str | None,
) -> Transaction:
    """
    Write the mirror of `original` and move every balance back.

    Runs inside the caller's unit.
    """
    now = utcnow()
    shift = _open_shift_for(ctx, session)

    reversal = Transaction(
        tenant_id=ctx.tenant_id,
        transaction_number=next_document_number(ctx.tenant_id, DOC_TRANSACTION),
        session_id=session.id,
        register_id=session.register_id,
        shift_id=shift.id if shift else None,
        customer_id=original.customer_id,
        original_transaction_id=original.id,
        transaction_date=now,
        transaction_type=transaction_type,
        status="completed",
        subtotal_cents=original.subtotal_cents,
        tax_cents=original.tax_cents,
        discount_cents=original.discount_cents,
        tip_cents=original.tip_cents,
        total_cents=original.total_cents,
        tendered_cents=original.total_cents,
        change_cents=0,
        cashier_id=ctx.user_id,
        manager_id=ctx.manager_id,
        notes=reason,
    )
    db.session.add(reversal)
    db.session.flush()

    for item in original.items:
        db.session.add(TransactionItem(
            transaction_id=reversal.id,
            line_number=item.line_number,
            product_id=item.product_id,
            category_id=item.category_id,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            discount_cents=item.discount_cents,
            tax_cents=item.tax_cents,
            line_total_cents=item.line_total_cents,
        ))

    label = f"{transaction_type.capitalize()} of {original.transaction_number}"
    for payment in original.payments:
        row = Payment(
            transaction_id=reversal.id,
            line_number=payment.line_number,
            payment_method=payment.payment_method,
            amount_cents=payment.amount_cents,
            status="refunded",
            reference_number=payment.reference_number,
            card_type=payment.card_type,
            account_kind=payment.account_kind,
            account_id=payment.account_id,
            processed_at=now,
        )
        if payment.account_kind:
            entry = ledger_service.apply_credit(
                ctx, AccountRef(payment.account_kind, payment.account_id), payment.amount_cents, label,
                transaction_id=reversal.id,
                transaction_type="refund",
            )
            row.ledger_entry_id = entry.entry_id
        db.session.add(row)

    if original.customer_id is not None and original.loyalty_points_earned > 0:
        account = db.session.query(LoyaltyAccount).filter_by(
            tenant_id=ctx.tenant_id, customer_id=original.customer_id
        ).first()
        points = min(original.loyalty_points_earned, account.points_balance) if account else 0
        if points > 0:
            ledger_service.apply_debit(
                ctx, AccountRef(KIND_LOYALTY, account.id), points, label,
                transaction_id=reversal.id,
                transaction_type="reverse",
            )

    total = original.total_cents
    session.total_sales_cents -= total
    session.total_refunds_cents += total
    session.total_transactions += 1

    if shift:
        cash, card = _tender_split(original.payments, original.change_cents)
        shift.total_sales_cents -= total
        shift.total_cash_sales_cents -= cash
        shift.total_card_sales_cents -= card
        shift.total_returns_cents += total
        shift.transaction_count += 1

    return reversal


def _load_completed_sale(ctx: OperationContext, transaction_id: int) -> Transaction:
    original = lock_for_update(
        db.session.query(Transaction).filter_by(id=transaction_id, tenant_id=ctx.tenant_id)
    ).first()
    if not original:
        raise NotFoundError(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
    if original.transaction_type != "sale" or original.status != "completed":
        raise ConflictError(
            f"Transaction is {original.status}; only completed sales can be reversed",
            {"transaction_id": transaction_id, "status": original.status},
        )
    return original


def refund_transaction(
    ctx: OperationContext,
    transaction_id: int,
    session_id: int,
    reason: str | None = None,
) -> Transaction:
    """
    Fully return a completed sale on an active session.

    The return is recorded on `session_id` (the till that hands the money
    back), which need not be the session that rang the sale.
    """
    def _op():
        begin_serialized()
        original = _load_completed_sale(ctx, transaction_id)
        session = _load_active_session(ctx, session_id)

        reversal = _reverse(ctx, original, session, transaction_type="return", reason=reason)
        original.status = "refunded"

        append_event(ctx, event_type="transaction.refunded", entity_type="transaction", entity_id=original.id,
                     register_id=session.register_id, session_id=session.id, transaction_id=reversal.id,
                     note=reason)
        db.session.commit()
        return reversal

    return run_with_retry(_op)


def void_transaction(ctx: OperationContext, transaction_id: int, reason: str | None = None) -> Transaction:
    """
    Void a completed sale. Requires manager approval.

    The void is recorded on the sale's own session, which must still be
    active; sales from closed sessions are returned instead.
    """
    if not ctx.has_manager_approval:
        raise RequiresApproval("Voiding a transaction requires manager approval", {"transaction_id": transaction_id})

    def _op():
        begin_serialized()
        original = _load_completed_sale(ctx, transaction_id)
        session = lock_for_update(
            db.session.query(PosSession).filter_by(id=original.session_id, tenant_id=ctx.tenant_id)
        ).first()
        if session is None or session.status != "active":
            raise ConflictError(
                "The sale's session is closed; return the sale instead of voiding it",
                {"transaction_id": transaction_id, "session_id": original.session_id},
            )

        reversal = _reverse(ctx, original, session, transaction_type="void", reason=reason)
        original.status = "void"

        append_event(ctx, event_type="transaction.voided", entity_type="transaction", entity_id=original.id,
                     register_id=session.register_id, session_id=session.id, transaction_id=reversal.id,
                     note=reason)
        db.session.commit()
        return reversal

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(ctx: OperationContext, transaction_id: int) -> Transaction:
    txn = db.session.query(Transaction).filter_by(id=transaction_id, tenant_id=ctx.tenant_id).first()
    if not txn:
        raise NotFoundError(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
    return txn


def list_transactions(ctx: OperationContext, session_id: int) -> list[Transaction]:
    return (
        db.session.query(Transaction)
        .filter_by(tenant_id=ctx.tenant_id, session_id=session_id)
        .order_by(Transaction.id.asc())
        .all()
    )


def get_transaction_detail(ctx: OperationContext, transaction_id: int, catalog=None) -> dict:
    """
    Transaction with lines, attributes and (when the catalog answers)
    product details on each item. Catalog failures leave items bare.
    """
    txn = get_transaction(ctx, transaction_id)
    data = txn.to_dict(include_lines=True)
    data["attributes"] = attribute_service.get_attributes(ctx, "transaction", txn.id)

    products = {}
    if catalog is not None:
        products = catalog.get_products(i.product_id for i in txn.items)
    for item in data["items"]:
        item["product"] = products.get(item["product_id"])
    return data
