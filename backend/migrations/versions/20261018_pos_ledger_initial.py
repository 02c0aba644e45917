"""POS ledger initial schema

Registers, sessions, shifts, transactions, discounts, coupons,
stored-value ledgers, entity attributes, audit events, document sequences.

Revision ID: 20261018_pos_ledger_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_pos_ledger_initial"
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at():
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _tenant():
    return sa.Column("tenant_id", sa.String(length=64), nullable=False)


def upgrade():
    # ------------------------------------------------------------------
    # Registers, drawers, shifts, sessions
    # ------------------------------------------------------------------
    op.create_table(
        "pos_registers",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("register_type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("opening_balance_cents", sa.Integer(), nullable=False),
        sa.Column("current_balance_cents", sa.Integer(), nullable=False),
        sa.Column("expected_balance_cents", sa.Integer(), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_by", sa.Integer(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_by", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_pos_registers_tenant_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_registers_tenant_id", "pos_registers", ["tenant_id"])
    op.create_index("ix_pos_registers_status", "pos_registers", ["status"])
    op.create_index("ix_pos_registers_is_active", "pos_registers", ["is_active"])

    op.create_table(
        "pos_cash_drawers",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("register_id", sa.Integer(), sa.ForeignKey("pos_registers.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("opening_amount_cents", sa.Integer(), nullable=False),
        sa.Column("closing_amount_cents", sa.Integer(), nullable=True),
        sa.Column("opened_by", sa.Integer(), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("closed_by", sa.Integer(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_cash_drawers_tenant_id", "pos_cash_drawers", ["tenant_id"])
    op.create_index("ix_pos_cash_drawers_register_id", "pos_cash_drawers", ["register_id"])
    op.create_index("ix_pos_cash_drawers_status", "pos_cash_drawers", ["status"])

    op.create_table(
        "pos_shifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("register_id", sa.Integer(), sa.ForeignKey("pos_registers.id"), nullable=False),
        sa.Column("shift_number", sa.String(length=64), nullable=False),
        sa.Column("cashier_id", sa.Integer(), nullable=True),
        sa.Column("opening_balance_cents", sa.Integer(), nullable=False),
        sa.Column("closing_balance_cents", sa.Integer(), nullable=True),
        sa.Column("expected_balance_cents", sa.Integer(), nullable=True),
        sa.Column("variance_cents", sa.Integer(), nullable=True),
        sa.Column("total_sales_cents", sa.Integer(), nullable=False),
        sa.Column("total_cash_sales_cents", sa.Integer(), nullable=False),
        sa.Column("total_card_sales_cents", sa.Integer(), nullable=False),
        sa.Column("total_returns_cents", sa.Integer(), nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciled_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "shift_number", name="uq_pos_shifts_tenant_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_shifts_tenant_id", "pos_shifts", ["tenant_id"])
    op.create_index("ix_pos_shifts_register_id", "pos_shifts", ["register_id"])
    op.create_index("ix_pos_shifts_cashier_id", "pos_shifts", ["cashier_id"])
    op.create_index("ix_pos_shifts_status", "pos_shifts", ["status"])
    # At most one open shift per register
    op.create_index(
        "uq_pos_shifts_register_open",
        "pos_shifts",
        ["register_id"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "pos_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("register_id", sa.Integer(), sa.ForeignKey("pos_registers.id"), nullable=False),
        sa.Column("cash_drawer_id", sa.Integer(), sa.ForeignKey("pos_cash_drawers.id"), nullable=True),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("pos_shifts.id"), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("session_number", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("session_start", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("session_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opening_amount_cents", sa.Integer(), nullable=False),
        sa.Column("closing_amount_cents", sa.Integer(), nullable=True),
        sa.Column("total_sales_cents", sa.Integer(), nullable=False),
        sa.Column("total_refunds_cents", sa.Integer(), nullable=False),
        sa.Column("total_transactions", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "session_number", name="uq_pos_sessions_tenant_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_sessions_tenant_id", "pos_sessions", ["tenant_id"])
    op.create_index("ix_pos_sessions_register_id", "pos_sessions", ["register_id"])
    op.create_index("ix_pos_sessions_shift_id", "pos_sessions", ["shift_id"])
    op.create_index("ix_pos_sessions_user_id", "pos_sessions", ["user_id"])
    op.create_index("ix_pos_sessions_status", "pos_sessions", ["status"])
    # At most one active session per register
    op.create_index(
        "uq_pos_sessions_register_active",
        "pos_sessions",
        ["register_id"],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    # ------------------------------------------------------------------
    # Discounts and coupons
    # ------------------------------------------------------------------
    op.create_table(
        "discount_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("rule_code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount_type", sa.String(length=32), nullable=False),
        sa.Column("applies_to", sa.String(length=32), nullable=False),
        sa.Column("discount_value", sa.Integer(), nullable=False),
        sa.Column("min_purchase_cents", sa.Integer(), nullable=True),
        sa.Column("max_discount_cents", sa.Integer(), nullable=True),
        sa.Column("buy_quantity", sa.Integer(), nullable=True),
        sa.Column("get_quantity", sa.Integer(), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("days_of_week", sa.String(length=32), nullable=True),
        sa.Column("time_from", sa.Time(), nullable=True),
        sa.Column("time_to", sa.Time(), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False),
        sa.Column("requires_approval", sa.Boolean(), nullable=False),
        sa.Column("is_combinable", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "rule_code", name="uq_discount_rules_tenant_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_discount_rules_tenant_id", "discount_rules", ["tenant_id"])
    op.create_index("ix_discount_rules_is_active", "discount_rules", ["is_active"])

    op.create_table(
        "discount_rule_targets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rule_id", sa.Integer(), sa.ForeignKey("discount_rules.id"), nullable=False),
        sa.Column("target_type", sa.String(length=16), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("rule_id", "target_type", "target_id", name="uq_discount_rule_targets"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_discount_rule_targets_rule_id", "discount_rule_targets", ["rule_id"])

    op.create_table(
        "coupon_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("coupon_code", sa.String(length=64), nullable=False),
        sa.Column("discount_rule_id", sa.Integer(), sa.ForeignKey("discount_rules.id"), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("max_uses_per_customer", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "coupon_code", name="uq_coupon_codes_tenant_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_coupon_codes_tenant_id", "coupon_codes", ["tenant_id"])
    op.create_index("ix_coupon_codes_discount_rule_id", "coupon_codes", ["discount_rule_id"])
    op.create_index("ix_coupon_codes_is_active", "coupon_codes", ["is_active"])

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    op.create_table(
        "pos_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("transaction_number", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("pos_sessions.id"), nullable=False),
        sa.Column("register_id", sa.Integer(), sa.ForeignKey("pos_registers.id"), nullable=False),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("pos_shifts.id"), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("original_transaction_id", sa.Integer(), sa.ForeignKey("pos_transactions.id"), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("transaction_type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("tax_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False),
        sa.Column("tip_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("tendered_cents", sa.Integer(), nullable=False),
        sa.Column("change_cents", sa.Integer(), nullable=False),
        sa.Column("cashier_id", sa.Integer(), nullable=True),
        sa.Column("manager_id", sa.Integer(), nullable=True),
        sa.Column("loyalty_points_earned", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "transaction_number", name="uq_pos_transactions_tenant_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_transactions_tenant_id", "pos_transactions", ["tenant_id"])
    op.create_index("ix_pos_transactions_session_id", "pos_transactions", ["session_id"])
    op.create_index("ix_pos_transactions_register_id", "pos_transactions", ["register_id"])
    op.create_index("ix_pos_transactions_shift_id", "pos_transactions", ["shift_id"])
    op.create_index("ix_pos_transactions_customer_id", "pos_transactions", ["customer_id"])
    op.create_index("ix_pos_transactions_original_transaction_id", "pos_transactions", ["original_transaction_id"])
    op.create_index("ix_pos_transactions_transaction_type", "pos_transactions", ["transaction_type"])
    op.create_index("ix_pos_transactions_status", "pos_transactions", ["status"])
    op.create_index("ix_pos_transactions_cashier_id", "pos_transactions", ["cashier_id"])
    op.create_index("ix_pos_transactions_session_date", "pos_transactions", ["session_id", "transaction_date"])

    op.create_table(
        "pos_transaction_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("pos_transactions.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False),
        sa.Column("tax_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
        _created_at(),
        sa.UniqueConstraint("transaction_id", "line_number", name="uq_pos_items_txn_line"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_transaction_items_transaction_id", "pos_transaction_items", ["transaction_id"])
    op.create_index("ix_pos_transaction_items_product_id", "pos_transaction_items", ["product_id"])

    op.create_table(
        "pos_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("pos_transactions.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("reference_number", sa.String(length=128), nullable=True),
        sa.Column("card_type", sa.String(length=32), nullable=True),
        sa.Column("account_kind", sa.String(length=32), nullable=True),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column("ledger_entry_id", sa.Integer(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("transaction_id", "line_number", name="uq_pos_payments_txn_line"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_payments_transaction_id", "pos_payments", ["transaction_id"])
    op.create_index("ix_pos_payments_payment_method", "pos_payments", ["payment_method"])

    op.create_table(
        "pos_transaction_discounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("pos_transactions.id"), nullable=False),
        sa.Column("discount_rule_id", sa.Integer(), sa.ForeignKey("discount_rules.id"), nullable=True),
        sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("coupon_codes.id"), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("line_numbers", sa.String(length=255), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pos_transaction_discounts_transaction_id", "pos_transaction_discounts", ["transaction_id"])
    op.create_index("ix_pos_transaction_discounts_discount_rule_id", "pos_transaction_discounts", ["discount_rule_id"])
    op.create_index("ix_pos_transaction_discounts_coupon_id", "pos_transaction_discounts", ["coupon_id"])

    op.create_table(
        "coupon_usage",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("coupon_codes.id"), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("pos_transactions.id"), nullable=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("discount_amount_cents", sa.Integer(), nullable=False),
        sa.Column("used_by", sa.Integer(), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_coupon_usage_tenant_id", "coupon_usage", ["tenant_id"])
    op.create_index("ix_coupon_usage_coupon_id", "coupon_usage", ["coupon_id"])
    op.create_index("ix_coupon_usage_transaction_id", "coupon_usage", ["transaction_id"])
    op.create_index("ix_coupon_usage_coupon_customer", "coupon_usage", ["coupon_id", "customer_id"])

    # ------------------------------------------------------------------
    # Stored value: gift cards, store credit, loyalty
    # ------------------------------------------------------------------
    op.create_table(
        "gift_cards",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("card_number", sa.String(length=64), nullable=False),
        sa.Column("pin_hash", sa.String(length=255), nullable=True),
        sa.Column("initial_value_cents", sa.Integer(), nullable=False),
        sa.Column("current_balance_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("issued_to_customer_id", sa.Integer(), nullable=True),
        sa.Column("issued_by", sa.Integer(), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("tenant_id", "card_number", name="uq_gift_cards_tenant_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_gift_cards_tenant_id", "gift_cards", ["tenant_id"])
    op.create_index("ix_gift_cards_status", "gift_cards", ["status"])

    op.create_table(
        "gift_card_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("gift_card_id", sa.Integer(), sa.ForeignKey("gift_cards.id"), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("pos_transactions.id"), nullable=True),
        sa.Column("transaction_type", sa.String(length=16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_before_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("gift_card_id", "idempotency_key", name="uq_gift_card_txns_idempotency"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_gift_card_transactions_tenant_id", "gift_card_transactions", ["tenant_id"])
    op.create_index("ix_gift_card_transactions_gift_card_id", "gift_card_transactions", ["gift_card_id"])
    op.create_index("ix_gift_card_transactions_transaction_id", "gift_card_transactions", ["transaction_id"])

    op.create_table(
        "store_credits",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("current_balance_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        _created_at(),
        _updated_at(),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("tenant_id", "customer_id", name="uq_store_credits_tenant_customer"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_store_credits_tenant_id", "store_credits", ["tenant_id"])
    op.create_index("ix_store_credits_customer_id", "store_credits", ["customer_id"])

    op.create_table(
        "store_credit_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("store_credit_id", sa.Integer(), sa.ForeignKey("store_credits.id"), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("pos_transactions.id"), nullable=True),
        sa.Column("transaction_type", sa.String(length=16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_before_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("store_credit_id", "idempotency_key", name="uq_store_credit_txns_idempotency"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_store_credit_transactions_tenant_id", "store_credit_transactions", ["tenant_id"])
    op.create_index("ix_store_credit_transactions_store_credit_id", "store_credit_transactions", ["store_credit_id"])
    op.create_index("ix_store_credit_transactions_transaction_id", "store_credit_transactions", ["transaction_id"])

    op.create_table(
        "loyalty_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("points_balance", sa.Integer(), nullable=False),
        sa.Column("lifetime_points_earned", sa.Integer(), nullable=False),
        sa.Column("lifetime_points_redeemed", sa.Integer(), nullable=False),
        sa.Column("total_spent_cents", sa.Integer(), nullable=False),
        sa.Column("last_visit_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("tenant_id", "customer_id", name="uq_loyalty_accounts_tenant_customer"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_loyalty_accounts_tenant_id", "loyalty_accounts", ["tenant_id"])
    op.create_index("ix_loyalty_accounts_customer_id", "loyalty_accounts", ["customer_id"])

    op.create_table(
        "loyalty_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("loyalty_account_id", sa.Integer(), sa.ForeignKey("loyalty_accounts.id"), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("pos_transactions.id"), nullable=True),
        sa.Column("transaction_type", sa.String(length=16), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("balance_before", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("loyalty_account_id", "idempotency_key", name="uq_loyalty_txns_idempotency"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_loyalty_transactions_tenant_id", "loyalty_transactions", ["tenant_id"])
    op.create_index("ix_loyalty_transactions_loyalty_account_id", "loyalty_transactions", ["loyalty_account_id"])
    op.create_index("ix_loyalty_transactions_transaction_id", "loyalty_transactions", ["transaction_id"])

    # ------------------------------------------------------------------
    # Attributes, audit, sequences
    # ------------------------------------------------------------------
    op.create_table(
        "entity_attributes",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value_type", sa.String(length=16), nullable=False),
        sa.Column("value_text", sa.Text(), nullable=True),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("tenant_id", "entity_type", "entity_id", "key", name="uq_entity_attributes_key"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_entity_attributes_tenant_id", "entity_attributes", ["tenant_id"])
    op.create_index("ix_entity_attributes_entity", "entity_attributes", ["entity_type", "entity_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("manager_id", sa.Integer(), nullable=True),
        sa.Column("register_id", sa.Integer(), nullable=True),
        sa.Column("session_id", sa.Integer(), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        _created_at(),
        sa.Column("note", sa.String(length=255), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_events_tenant_id", "audit_events", ["tenant_id"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_register_id", "audit_events", ["register_id"])
    op.create_index("ix_audit_events_session_id", "audit_events", ["session_id"])
    op.create_index("ix_audit_events_transaction_id", "audit_events", ["transaction_id"])
    op.create_index("ix_audit_events_tenant_occurred", "audit_events", ["tenant_id", "occurred_at"])

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True),
        _tenant(),
        sa.Column("document_type", sa.String(length=32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        _updated_at(),
        sa.UniqueConstraint("tenant_id", "document_type", name="uq_doc_sequences_tenant_type"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_sequences_tenant_id", "document_sequences", ["tenant_id"])


def downgrade():
    for table in (
        "document_sequences",
        "audit_events",
        "entity_attributes",
        "loyalty_transactions",
        "loyalty_accounts",
        "store_credit_transactions",
        "store_credits",
        "gift_card_transactions",
        "gift_cards",
        "coupon_usage",
        "pos_transaction_discounts",
        "pos_payments",
        "pos_transaction_items",
        "pos_transactions",
        "coupon_codes",
        "discount_rule_targets",
        "discount_rules",
        "pos_sessions",
        "pos_shifts",
        "pos_cash_drawers",
        "pos_registers",
    ):
        op.drop_table(table)
