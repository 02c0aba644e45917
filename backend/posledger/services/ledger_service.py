# Overview: Service-layer operations for stored-value balances; gift cards, store credit, loyalty points.

"""
Balance Ledger Service

WHY: Gift cards, store credit and loyalty points are all "an account with a
balance that moves". One set of rules keeps all three consistent.

LEDGER INVARIANTS:
- Append-only. Ledger rows are never updated or deleted.
- Every balance change writes exactly one ledger row in the same unit.
- balance_after = balance_before - amount (debit) or + amount (credit).
- account balance == balance_after of its latest row after commit.
- Balances never go negative; a debit larger than the balance is refused.

COMPOSITION:
- debit()/credit() are complete atomic units (commit on success).
- apply_debit()/apply_credit() join the caller's unit and never commit;
  the commit pipeline uses them so a failed tender aborts the whole sale.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    GiftCard,
    GiftCardTransaction,
    StoreCredit,
    StoreCreditTransaction,
    LoyaltyAccount,
    LoyaltyTransaction,
)
from ..context import OperationContext
from ..errors import ValidationError, NotFoundError, ConflictError, InsufficientBalance
from posledger.time_utils import utcnow, to_utc_z
from .concurrency import lock_for_update, run_with_retry, begin_serialized


# =============================================================================
# ACCOUNT KINDS (CONSTANTS)
# =============================================================================

KIND_GIFT_CARD = "gift_card"
KIND_STORE_CREDIT = "store_credit"
KIND_LOYALTY = "loyalty"

ACCOUNT_KINDS = (KIND_GIFT_CARD, KIND_STORE_CREDIT, KIND_LOYALTY)


@dataclass(frozen=True)
class _KindSpec:
    account_model: type
    entry_model: type
    balance_attr: str
    account_fk: str
    amount_attr: str
    before_attr: str
    after_attr: str


_KINDS = {
    KIND_GIFT_CARD: _KindSpec(
        GiftCard, GiftCardTransaction, "current_balance_cents", "gift_card_id",
        "amount_cents", "balance_before_cents", "balance_after_cents",
    ),
    KIND_STORE_CREDIT: _KindSpec(
        StoreCredit, StoreCreditTransaction, "current_balance_cents", "store_credit_id",
        "amount_cents", "balance_before_cents", "balance_after_cents",
    ),
    KIND_LOYALTY: _KindSpec(
        LoyaltyAccount, LoyaltyTransaction, "points_balance", "loyalty_account_id",
        "points", "balance_before", "balance_after",
    ),
}


@dataclass(frozen=True)
class AccountRef:
    """Points at one stored-value account: kind plus its row id."""
    kind: str
    account_id: int

    def __post_init__(self):
        if self.kind not in ACCOUNT_KINDS:
            raise ValidationError(f"Unknown account kind: {self.kind}", {"kind": self.kind})
        if not isinstance(self.account_id, int) or isinstance(self.account_id, bool):
            raise ValidationError("account_id must be an integer", {"kind": self.kind})


@dataclass(frozen=True)
class LedgerEntry:
    """Read-only view of one ledger row, uniform across account kinds."""
    entry_id: int
    kind: str
    account_id: int
    transaction_type: str
    amount: int
    balance_before: int
    balance_after: int
    transaction_id: int | None
    idempotency_key: str | None
    reason: str | None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, kind: str, row) -> "LedgerEntry":
        spec = _KINDS[kind]
        return cls(
            entry_id=row.id,
            kind=kind,
            account_id=getattr(row, spec.account_fk),
            transaction_type=row.transaction_type,
            amount=getattr(row, spec.amount_attr),
            balance_before=getattr(row, spec.before_attr),
            balance_after=getattr(row, spec.after_attr),
            transaction_id=row.transaction_id,
            idempotency_key=row.idempotency_key,
            reason=row.reason,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.entry_id,
            "account_kind": self.kind,
            "account_id": self.account_id,
            "transaction_type": self.transaction_type,
            "amount": self.amount,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "transaction_id": self.transaction_id,
            "idempotency_key": self.idempotency_key,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# PIN HASHING
# =============================================================================

def hash_pin(pin: str) -> str:
    """Hash a gift card PIN with bcrypt."""
    if not pin or not str(pin).strip():
        raise ValidationError("PIN cannot be empty")
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(str(pin).encode("utf-8"), salt).decode("utf-8")


def verify_pin(pin: str | None, pin_hash: str) -> bool:
    if not pin:
        return False
    return bcrypt.checkpw(str(pin).encode("utf-8"), pin_hash.encode("utf-8"))


# =============================================================================
# INTERNALS
# =============================================================================

def _validate_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise ValidationError("amount must be an integer number of cents/points")
    if amount <= 0:
        raise ValidationError("amount must be positive", {"amount": amount})


def _load_account_locked(ctx: OperationContext, ref: AccountRef):
    spec = _KINDS[ref.kind]
    account = lock_for_update(
        db.session.query(spec.account_model).filter_by(id=ref.account_id, tenant_id=ctx.tenant_id)
    ).first()
    if not account:
        raise NotFoundError(
            f"{ref.kind} account {ref.account_id} not found",
            {"account_kind": ref.kind, "account_id": ref.account_id},
        )
    return account


def _check_gift_card_usable(card: GiftCard, *, for_debit: bool) -> None:
    details = {"account_kind": KIND_GIFT_CARD, "account_id": card.id, "status": card.status}
    if card.status in ("expired", "cancelled"):
        raise NotFoundError(f"Gift card is {card.status}", details)
    if card.expiry_date and card.expiry_date < utcnow():
        raise NotFoundError("Gift card has expired", details)
    if for_debit and card.status not in ("active", "used"):
        raise NotFoundError(f"Gift card is {card.status}", details)


def _find_entry_row(ref: AccountRef, idempotency_key: str):
    spec = _KINDS[ref.kind]
    return db.session.query(spec.entry_model).filter(
        getattr(spec.entry_model, spec.account_fk) == ref.account_id,
        spec.entry_model.idempotency_key == idempotency_key,
    ).first()


def _write_entry(
    ctx: OperationContext,
    ref: AccountRef,
    account,
    *,
    delta: int,
    amount: int,
    transaction_type: str,
    reason: str | None,
    transaction_id: int | None,
    idempotency_key: str | None,
) -> LedgerEntry:
    spec = _KINDS[ref.kind]

    if idempotency_key and _find_entry_row(ref, idempotency_key):
        raise ConflictError(
            "Duplicate idempotency key for account",
            {"account_kind": ref.kind, "account_id": ref.account_id, "idempotency_key": idempotency_key},
        )

    before = getattr(account, spec.balance_attr)
    after = before + delta
    if after < 0:
        raise InsufficientBalance(
            "Insufficient balance",
            {
                "account_kind": ref.kind,
                "account_id": ref.account_id,
                "balance": before,
                "requested": amount,
            },
        )

    setattr(account, spec.balance_attr, after)
    row = spec.entry_model(
        tenant_id=ctx.tenant_id,
        transaction_id=transaction_id,
        transaction_type=transaction_type,
        idempotency_key=idempotency_key,
        reason=reason[:255] if reason else None,
        created_by=ctx.user_id,
    )
    setattr(row, spec.account_fk, account.id)
    setattr(row, spec.amount_attr, amount)
    setattr(row, spec.before_attr, before)
    setattr(row, spec.after_attr, after)
    db.session.add(row)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictError(
            "Duplicate idempotency key for account",
            {"account_kind": ref.kind, "account_id": ref.account_id, "idempotency_key": idempotency_key},
        ) from exc
    return LedgerEntry.from_row(ref.kind, row)


# =============================================================================
# COMPOSABLE OPERATIONS (no commit)
# =============================================================================

def apply_debit(
    ctx: OperationContext,
    ref: AccountRef,
    amount: int,
    reason: str | None,
    *,
    transaction_id: int | None = None,
    idempotency_key: str | None = None,
    pin: str | None = None,
    transaction_type: str = "redeem",
) -> LedgerEntry:
    """
    Debit an account inside the caller's unit.

    Raises:
        ValidationError: non-positive amount, or wrong/missing gift card PIN
        NotFoundError: account absent in tenant, or gift card expired/cancelled
        InsufficientBalance: balance < amount
        ConflictError: idempotency key already used on this account
    """
    _validate_amount(amount)
    account = _load_account_locked(ctx, ref)

    if ref.kind == KIND_GIFT_CARD:
        _check_gift_card_usable(account, for_debit=True)
        if account.pin_hash and not verify_pin(pin, account.pin_hash):
            raise ValidationError("Invalid gift card PIN", {"account_kind": ref.kind, "account_id": ref.account_id})

    entry = _write_entry(
        ctx, ref, account,
        delta=-amount,
        amount=amount,
        transaction_type=transaction_type,
        reason=reason,
        transaction_id=transaction_id,
        idempotency_key=idempotency_key,
    )

    if ref.kind == KIND_GIFT_CARD:
        account.last_used_at = utcnow()
        if account.current_balance_cents == 0:
            account.status = "used"
    elif ref.kind == KIND_LOYALTY:
        if transaction_type == "reverse":
            account.lifetime_points_earned = max(0, account.lifetime_points_earned - amount)
        else:
            account.lifetime_points_redeemed += amount

    db.session.flush()
    return entry


def apply_credit(
    ctx: OperationContext,
    ref: AccountRef,
    amount: int,
    reason: str | None,
    *,
    transaction_id: int | None = None,
    idempotency_key: str | None = None,
    transaction_type: str = "refund",
) -> LedgerEntry:
    """
    Credit an account inside the caller's unit.

    A credit to a depleted ("used") gift card makes it active again. Refunds
    land on the card they were paid from even once it has expired or been
    cancelled; other credits need a usable card.
    """
    _validate_amount(amount)
    account = _load_account_locked(ctx, ref)

    if ref.kind == KIND_GIFT_CARD and transaction_type != "refund":
        _check_gift_card_usable(account, for_debit=False)

    entry = _write_entry(
        ctx, ref, account,
        delta=amount,
        amount=amount,
        transaction_type=transaction_type,
        reason=reason,
        transaction_id=transaction_id,
        idempotency_key=idempotency_key,
    )

    if ref.kind == KIND_GIFT_CARD and account.status == "used":
        account.status = "active"
    elif ref.kind == KIND_LOYALTY and transaction_type == "earn":
        account.lifetime_points_earned += amount

    db.session.flush()
    return entry


# =============================================================================
# ATOMIC OPERATIONS
# =============================================================================

def debit(
    ctx: OperationContext,
    ref: AccountRef,
    amount: int,
    reason: str | None,
    *,
    transaction_id: int | None = None,
    idempotency_key: str | None = None,
    pin: str | None = None,
) -> LedgerEntry:
    """
    Debit a stored-value account as one atomic unit.

    Not idempotent: two calls debit twice. Pass idempotency_key to have a
    repeated call rejected with ConflictError.
    """
    def _op():
        begin_serialized()
        entry = apply_debit(
            ctx, ref, amount, reason,
            transaction_id=transaction_id,
            idempotency_key=idempotency_key,
            pin=pin,
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def credit(
    ctx: OperationContext,
    ref: AccountRef,
    amount: int,
    reason: str | None,
    *,
    transaction_id: int | None = None,
    idempotency_key: str | None = None,
    transaction_type: str = "adjust",
) -> LedgerEntry:
    """Credit a stored-value account as one atomic unit."""
    def _op():
        begin_serialized()
        entry = apply_credit(
            ctx, ref, amount, reason,
            transaction_id=transaction_id,
            idempotency_key=idempotency_key,
            transaction_type=transaction_type,
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def find_entry(ctx: OperationContext, ref: AccountRef, idempotency_key: str) -> LedgerEntry | None:
    """Look up a prior ledger row by idempotency key (exactly-once callers check this first)."""
    if not idempotency_key:
        raise ValidationError("idempotency_key is required")
    spec = _KINDS[ref.kind]
    row = (
        db.session.query(spec.entry_model)
        .filter(
            spec.entry_model.tenant_id == ctx.tenant_id,
            getattr(spec.entry_model, spec.account_fk) == ref.account_id,
            spec.entry_model.idempotency_key == idempotency_key,
        )
        .first()
    )
    return LedgerEntry.from_row(ref.kind, row) if row else None


def get_entries(ctx: OperationContext, ref: AccountRef) -> list[LedgerEntry]:
    spec = _KINDS[ref.kind]
    rows = (
        db.session.query(spec.entry_model)
        .filter(
            spec.entry_model.tenant_id == ctx.tenant_id,
            getattr(spec.entry_model, spec.account_fk) == ref.account_id,
        )
        .order_by(spec.entry_model.id.asc())
        .all()
    )
    return [LedgerEntry.from_row(ref.kind, r) for r in rows]


def get_balance(ctx: OperationContext, ref: AccountRef) -> int:
    spec = _KINDS[ref.kind]
    account = db.session.query(spec.account_model).filter_by(id=ref.account_id, tenant_id=ctx.tenant_id).first()
    if not account:
        raise NotFoundError(f"{ref.kind} account {ref.account_id} not found")
    return getattr(account, spec.balance_attr)


# =============================================================================
# GIFT CARDS
# =============================================================================

def issue_gift_card(
    ctx: OperationContext,
    card_number: str,
    initial_value_cents: int,
    *,
    pin: str | None = None,
    expiry_date: datetime | None = None,
    customer_id: int | None = None,
    currency: str = "USD",
) -> GiftCard:
    """
    Issue a new gift card with its opening ledger row.

    Raises:
        ValidationError: missing card number or non-positive value
        ConflictError: card number already issued in this tenant
    """
    if not card_number or not str(card_number).strip():
        raise ValidationError("card_number is required")
    _validate_amount(initial_value_cents)
    pin_hash = hash_pin(pin) if pin else None

    def _op():
        begin_serialized()
        existing = db.session.query(GiftCard).filter_by(tenant_id=ctx.tenant_id, card_number=card_number).first()
        if existing:
            raise ConflictError(f"Gift card {card_number} already exists", {"card_number": card_number})

        card = GiftCard(
            tenant_id=ctx.tenant_id,
            card_number=card_number,
            pin_hash=pin_hash,
            initial_value_cents=initial_value_cents,
            current_balance_cents=initial_value_cents,
            currency=currency,
            status="active",
            issued_to_customer_id=customer_id,
            issued_by=ctx.user_id,
            expiry_date=expiry_date,
        )
        db.session.add(card)
        db.session.flush()

        db.session.add(GiftCardTransaction(
            tenant_id=ctx.tenant_id,
            gift_card_id=card.id,
            transaction_type="issue",
            amount_cents=initial_value_cents,
            balance_before_cents=0,
            balance_after_cents=initial_value_cents,
            reason="Gift card issued",
            created_by=ctx.user_id,
        ))
        db.session.commit()
        return card

    return run_with_retry(_op)


def get_gift_card(ctx: OperationContext, gift_card_id: int) -> GiftCard:
    card = db.session.query(GiftCard).filter_by(id=gift_card_id, tenant_id=ctx.tenant_id).first()
    if not card:
        raise NotFoundError(f"Gift card {gift_card_id} not found")
    return card


def get_gift_card_by_number(ctx: OperationContext, card_number: str) -> GiftCard:
    card = db.session.query(GiftCard).filter_by(tenant_id=ctx.tenant_id, card_number=card_number).first()
    if not card:
        raise NotFoundError("Gift card not found", {"card_number": card_number})
    return card


# =============================================================================
# STORE CREDIT
# =============================================================================

def _get_or_create_store_credit(ctx: OperationContext, customer_id: int) -> StoreCredit:
    account = lock_for_update(
        db.session.query(StoreCredit).filter_by(tenant_id=ctx.tenant_id, customer_id=customer_id)
    ).first()
    if account:
        return account
    account = StoreCredit(tenant_id=ctx.tenant_id, customer_id=customer_id, current_balance_cents=0)
    db.session.add(account)
    db.session.flush()
    return account


def apply_issue_store_credit(
    ctx: OperationContext,
    customer_id: int,
    amount_cents: int,
    reason: str | None,
    *,
    transaction_id: int | None = None,
    idempotency_key: str | None = None,
) -> LedgerEntry:
    if customer_id is None:
        raise ValidationError("customer_id is required for store credit")
    _validate_amount(amount_cents)
    account = _get_or_create_store_credit(ctx, customer_id)
    return apply_credit(
        ctx, AccountRef(KIND_STORE_CREDIT, account.id), amount_cents, reason,
        transaction_id=transaction_id,
        idempotency_key=idempotency_key,
        transaction_type="issue",
    )


def issue_store_credit(
    ctx: OperationContext,
    customer_id: int,
    amount_cents: int,
    reason: str | None = None,
    *,
    transaction_id: int | None = None,
    idempotency_key: str | None = None,
) -> LedgerEntry:
    """Credit a customer's store credit, opening the account on first use."""
    def _op():
        begin_serialized()
        entry = apply_issue_store_credit(
            ctx, customer_id, amount_cents, reason,
            transaction_id=transaction_id,
            idempotency_key=idempotency_key,
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def get_store_credit(ctx: OperationContext, customer_id: int) -> StoreCredit:
    account = db.session.query(StoreCredit).filter_by(tenant_id=ctx.tenant_id, customer_id=customer_id).first()
    if not account:
        raise NotFoundError("Store credit account not found", {"customer_id": customer_id})
    return account


# =============================================================================
# LOYALTY POINTS
# =============================================================================

def _get_or_create_loyalty(ctx: OperationContext, customer_id: int) -> LoyaltyAccount:
    account = lock_for_update(
        db.session.query(LoyaltyAccount).filter_by(tenant_id=ctx.tenant_id, customer_id=customer_id)
    ).first()
    if account:
        return account
    account = LoyaltyAccount(
        tenant_id=ctx.tenant_id,
        customer_id=customer_id,
        points_balance=0,
        lifetime_points_earned=0,
        lifetime_points_redeemed=0,
        total_spent_cents=0,
    )
    db.session.add(account)
    db.session.flush()
    return account


def apply_earn_points(
    ctx: OperationContext,
    customer_id: int,
    points: int,
    reason: str | None,
    *,
    transaction_id: int | None = None,
    spent_cents: int = 0,
) -> LedgerEntry | None:
    """
    Earn points inside the caller's unit. Records the visit even when zero
    points are earned (returns None in that case).
    """
    account = _get_or_create_loyalty(ctx, customer_id)
    account.total_spent_cents += max(0, spent_cents)
    account.last_visit_at = utcnow()
    if points <= 0:
        db.session.flush()
        return None
    return apply_credit(
        ctx, AccountRef(KIND_LOYALTY, account.id), points, reason,
        transaction_id=transaction_id,
        transaction_type="earn",
    )


def earn_points(
    ctx: OperationContext,
    customer_id: int,
    points: int,
    reason: str | None = None,
    *,
    transaction_id: int | None = None,
) -> LedgerEntry:
    _validate_amount(points)

    def _op():
        begin_serialized()
        entry = apply_earn_points(ctx, customer_id, points, reason, transaction_id=transaction_id)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def redeem_points(
    ctx: OperationContext,
    customer_id: int,
    points: int,
    reason: str | None = None,
    *,
    transaction_id: int | None = None,
    idempotency_key: str | None = None,
) -> LedgerEntry:
    account = get_loyalty_account(ctx, customer_id)
    return debit(
        ctx, AccountRef(KIND_LOYALTY, account.id), points, reason,
        transaction_id=transaction_id,
        idempotency_key=idempotency_key,
    )


def get_loyalty_account(ctx: OperationContext, customer_id: int) -> LoyaltyAccount:
    account = db.session.query(LoyaltyAccount).filter_by(tenant_id=ctx.tenant_id, customer_id=customer_id).first()
    if not account:
        raise NotFoundError("Loyalty account not found", {"customer_id": customer_id})
    return account
