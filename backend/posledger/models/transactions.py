from __future__ import annotations

from ..extensions import db
from posledger.time_utils import to_utc_z


class Transaction(db.Model):
    """
    Sale, return or void record.

    WHY: The unit of money movement at the till. Items, payments and
    applied discounts are written once, atomically, with the header.

    IMMUTABLE: After commit only status changes (completed -> refunded | void).
    Returns and voids are new transactions pointing at the original.
    """
    __tablename__ = "pos_transactions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "transaction_number", name="uq_pos_transactions_tenant_number"),
        db.Index("ix_pos_transactions_session_date", "session_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False, index=True)
    transaction_number = db.Column(db.String(64), nullable=False)

    session_id = db.Column(db.Integer, db.ForeignKey("pos_sessions.id"), nullable=False, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("pos_registers.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("pos_shifts.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    original_transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    transaction_type = db.Column(db.String(16), nullable=False, default="sale", index=True)  # sale, return, void
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)  # completed, refunded, void

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tip_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    tendered_cents = db.Column(db.Integer, nullable=False, default=0)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    cashier_id = db.Column(db.Integer, nullable=True, index=True)
    manager_id = db.Column(db.Integer, nullable=True)
    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    session = db.relationship("PosSession", backref=db.backref("transactions", lazy=True))
    original_transaction = db.relationship("Transaction", remote_side=[id])
    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        order_by="TransactionItem.line_number",
        lazy=True,
    )
    payments = db.relationship(
        "Payment",
        back_populates="transaction",
        order_by="Payment.line_number",
        lazy=True,
    )
    discounts = db.relationship("TransactionDiscount", back_populates="transaction", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transaction_number": self.transaction_number,
            "session_id": self.session_id,
            "register_id": self.register_id,
            "shift_id": self.shift_id,
            "customer_id": self.customer_id,
            "original_transaction_id": self.original_transaction_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "transaction_type": self.transaction_type,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "tip_cents": self.tip_cents,
            "total_cents": self.total_cents,
            "tendered_cents": self.tendered_cents,
            "change_cents": self.change_cents,
            "cashier_id": self.cashier_id,
            "manager_id": self.manager_id,
            "loyalty_points_earned": self.loyalty_points_earned,
            "notes": self.notes,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [i.to_dict() for i in self.items]
            data["payments"] = [p.to_dict() for p in self.payments]
            data["discounts"] = [d.to_dict() for d in self.discounts]
        return data


class TransactionItem(db.Model):
    """Line item, stored exactly as priced by the caller (tax and discount pre-computed)."""
    __tablename__ = "pos_transaction_items"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "line_number", name="uq_pos_items_txn_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    category_id = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship("Transaction", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "category_id": self.category_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "line_total_cents": self.line_total_cents,
            "notes": self.notes,
        }


class Payment(db.Model):
    """
    Tender applied to a transaction.

    PAYMENT METHODS:
    - cash, card, check: external tenders (cards arrive pre-authorized)
    - gift_card, store_credit, loyalty_points: stored-value tenders; each
      one is paired with a ledger entry on the referenced account
    """
    __tablename__ = "pos_payments"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "line_number", name="uq_pos_payments_txn_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")

    reference_number = db.Column(db.String(128), nullable=True)
    card_type = db.Column(db.String(32), nullable=True)

    # Stored-value account charged by this payment, if any
    account_kind = db.Column(db.String(32), nullable=True)
    account_id = db.Column(db.Integer, nullable=True)
    ledger_entry_id = db.Column(db.Integer, nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    notes = db.Column(db.String(255), nullable=True)

    transaction = db.relationship("Transaction", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "line_number": self.line_number,
            "payment_method": self.payment_method,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "reference_number": self.reference_number,
            "card_type": self.card_type,
            "account_kind": self.account_kind,
            "account_id": self.account_id,
            "ledger_entry_id": self.ledger_entry_id,
            "processed_at": to_utc_z(self.processed_at),
            "notes": self.notes,
        }


class TransactionDiscount(db.Model):
    """Discount applied to a transaction, by rule and/or coupon."""
    __tablename__ = "pos_transaction_discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    discount_rule_id = db.Column(db.Integer, db.ForeignKey("discount_rules.id"), nullable=True, index=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupon_codes.id"), nullable=True, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    # Comma-separated line numbers the discount touched; empty for order-level
    line_numbers = db.Column(db.String(255), nullable=True)

    transaction = db.relationship("Transaction", back_populates="discounts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "discount_rule_id": self.discount_rule_id,
            "coupon_id": self.coupon_id,
            "amount_cents": self.amount_cents,
            "line_numbers": [int(n) for n in self.line_numbers.split(",")] if self.line_numbers else [],
        }
