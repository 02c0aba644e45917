from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


GIFT_CARD_STATUSES = ("active", "used", "expired", "cancelled")


class GiftCard(db.Model):
    """
    Prepaid stored-value card.

    LIFECYCLE:
    - active: usable for debits and credits
    - used: balance reached zero; a credit (refund) makes it active again
    - expired, cancelled: terminal, never debited

    current_balance_cents is only written by the balance ledger, together
    with one gift_card_transactions row.
    """
    __tablename__ = "gift_cards"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "card_number", name="uq_gift_cards_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    card_number = db.Column(db.String(64), nullable=False)
    pin_hash = db.Column(db.String(255), nullable=True)

    initial_value_cents = db.Column(db.Integer, nullable=False)
    current_balance_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    issued_to_customer_id = db.Column(db.Integer, nullable=True)
    issued_by = db.Column(db.Integer, nullable=True)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card_number": self.card_number,
            "has_pin": self.pin_hash is not None,
            "initial_value_cents": self.initial_value_cents,
            "current_balance_cents": self.current_balance_cents,
            "currency": self.currency,
            "status": self.status,
            "issued_to_customer_id": self.issued_to_customer_id,
            "issued_at": to_utc_z(self.issued_at),
            "expiry_date": to_utc_z(self.expiry_date),
            "last_used_at": to_utc_z(self.last_used_at),
            "version_id": self.version_id,
        }


class GiftCardTransaction(db.Model):
    """
    Append-only ledger of gift card movements.

    TRANSACTION TYPES:
    - issue: opening value
    - redeem: debit against a sale
    - refund: credit back from a return or void
    - adjust: manual credit

    IMMUTABLE: balance_after = balance_before -/+ amount_cents.
    """
    __tablename__ = "gift_card_transactions"
    __table_args__ = (
        db.UniqueConstraint("gift_card_id", "idempotency_key", name="uq_gift_card_txns_idempotency"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    gift_card_id = db.Column(db.Integer, db.ForeignKey("gift_cards.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    idempotency_key = db.Column(db.String(128), nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    gift_card = db.relationship("GiftCard", backref=db.backref("ledger", lazy=True, order_by="GiftCardTransaction.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_kind": "gift_card",
            "account_id": self.gift_card_id,
            "transaction_id": self.transaction_id,
            "transaction_type": self.transaction_type,
            "amount": self.amount_cents,
            "balance_before": self.balance_before_cents,
            "balance_after": self.balance_after_cents,
            "idempotency_key": self.idempotency_key,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class StoreCredit(db.Model):
    """Store credit balance, one per customer per tenant."""
    __tablename__ = "store_credits"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "customer_id", name="uq_store_credits_tenant_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=False, index=True)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "current_balance_cents": self.current_balance_cents,
            "currency": self.currency,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class StoreCreditTransaction(db.Model):
    """Append-only ledger of store credit movements."""
    __tablename__ = "store_credit_transactions"
    __table_args__ = (
        db.UniqueConstraint("store_credit_id", "idempotency_key", name="uq_store_credit_txns_idempotency"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    store_credit_id = db.Column(db.Integer, db.ForeignKey("store_credits.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False)  # issue, redeem, refund, adjust
    amount_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    idempotency_key = db.Column(db.String(128), nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store_credit = db.relationship("StoreCredit", backref=db.backref("ledger", lazy=True, order_by="StoreCreditTransaction.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_kind": "store_credit",
            "account_id": self.store_credit_id,
            "transaction_id": self.transaction_id,
            "transaction_type": self.transaction_type,
            "amount": self.amount_cents,
            "balance_before": self.balance_before_cents,
            "balance_after": self.balance_after_cents,
            "idempotency_key": self.idempotency_key,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyAccount(db.Model):
    """
    Loyalty points account.

    WHY: Tracks points balance and lifetime earning/redemption.
    One account per customer per tenant.
    """
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "customer_id", name="uq_loyalty_accounts_tenant_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=False, index=True)

    points_balance = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_earned = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "points_balance": self.points_balance,
            "lifetime_points_earned": self.lifetime_points_earned,
            "lifetime_points_redeemed": self.lifetime_points_redeemed,
            "total_spent_cents": self.total_spent_cents,
            "last_visit_at": to_utc_z(self.last_visit_at),
            "version_id": self.version_id,
        }


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - earn: points earned from a sale
    - redeem: points spent as a tender
    - reverse: earned points taken back on refund or void
    - adjust: manual adjustment
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.UniqueConstraint("loyalty_account_id", "idempotency_key", name="uq_loyalty_txns_idempotency"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    loyalty_account_id = db.Column(db.Integer, db.ForeignKey("loyalty_accounts.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False)
    points = db.Column(db.Integer, nullable=False)
    balance_before = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    idempotency_key = db.Column(db.String(128), nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    loyalty_account = db.relationship("LoyaltyAccount", backref=db.backref("ledger", lazy=True, order_by="LoyaltyTransaction.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_kind": "loyalty",
            "account_id": self.loyalty_account_id,
            "transaction_id": self.transaction_id,
            "transaction_type": self.transaction_type,
            "amount": self.points,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "idempotency_key": self.idempotency_key,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
