# Overview: Pytest coverage for stored-value ledger behavior.

"""
Balance Ledger Tests

Covers gift cards, store credit and loyalty points:
- debit/credit arithmetic and append-only history
- insufficient balance leaves the balance and history untouched
- idempotency keys reject repeats
- gift card status transitions (active -> used -> active) and PIN checks
- tenant isolation of accounts
"""

from datetime import timedelta

import pytest

from posledger.extensions import db
from posledger.errors import ValidationError, NotFoundError, ConflictError, InsufficientBalance
from posledger.models import GiftCard, GiftCardTransaction
from posledger.services import ledger_service
from posledger.services.ledger_service import AccountRef, KIND_GIFT_CARD, KIND_STORE_CREDIT, KIND_LOYALTY
from posledger.time_utils import utcnow


class TestGiftCards:

    def test_issue_writes_opening_entry(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)
        entries = ledger_service.get_entries(ctx, ref)

        assert gift_card.status == "active"
        assert ledger_service.get_balance(ctx, ref) == 5000
        assert len(entries) == 1
        assert entries[0].transaction_type == "issue"
        assert entries[0].balance_before == 0
        assert entries[0].balance_after == 5000

    def test_duplicate_card_number_conflicts(self, ctx, gift_card):
        with pytest.raises(ConflictError):
            ledger_service.issue_gift_card(ctx, "GC-0001", 1000)

    def test_debit_then_credit(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)

        d = ledger_service.debit(ctx, ref, 2000, "Purchase")
        assert (d.balance_before, d.balance_after) == (5000, 3000)

        c = ledger_service.credit(ctx, ref, 500, "Goodwill")
        assert (c.balance_before, c.balance_after) == (3000, 3500)

        assert ledger_service.get_balance(ctx, ref) == 3500
        assert [e.transaction_type for e in ledger_service.get_entries(ctx, ref)] == ["issue", "redeem", "adjust"]

    def test_balance_matches_latest_entry(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)
        for amount in (700, 1300, 250):
            ledger_service.debit(ctx, ref, amount, "Purchase")

        entries = ledger_service.get_entries(ctx, ref)
        assert entries[-1].balance_after == ledger_service.get_balance(ctx, ref) == 2750
        for prev, cur in zip(entries, entries[1:]):
            assert cur.balance_before == prev.balance_after

    def test_insufficient_balance_leaves_account_untouched(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)

        with pytest.raises(InsufficientBalance) as exc_info:
            ledger_service.debit(ctx, ref, 5001, "Too much")

        assert exc_info.value.details["balance"] == 5000
        assert exc_info.value.details["requested"] == 5001
        assert ledger_service.get_balance(ctx, ref) == 5000
        assert len(ledger_service.get_entries(ctx, ref)) == 1

    def test_depleted_card_is_used_and_credit_reactivates(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)

        ledger_service.debit(ctx, ref, 5000, "Spend it all")
        assert ledger_service.get_gift_card(ctx, gift_card.id).status == "used"

        with pytest.raises(InsufficientBalance):
            ledger_service.debit(ctx, ref, 1, "Nothing left")

        ledger_service.credit(ctx, ref, 1000, "Refund", transaction_type="refund")
        card = ledger_service.get_gift_card(ctx, gift_card.id)
        assert card.status == "active"
        assert card.current_balance_cents == 1000

    def test_idempotency_key_rejects_repeat(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)
        ledger_service.debit(ctx, ref, 1000, "Purchase", idempotency_key="req-1")

        with pytest.raises(ConflictError):
            ledger_service.debit(ctx, ref, 1000, "Purchase", idempotency_key="req-1")

        assert ledger_service.get_balance(ctx, ref) == 4000
        assert ledger_service.find_entry(ctx, ref, "req-1").amount == 1000

    def test_pin_required_when_set(self, ctx, app):
        card = ledger_service.issue_gift_card(ctx, "GC-PIN", 3000, pin="4321")
        ref = AccountRef(KIND_GIFT_CARD, card.id)

        assert card.pin_hash and card.pin_hash != "4321"
        with pytest.raises(ValidationError):
            ledger_service.debit(ctx, ref, 100, "No pin")
        with pytest.raises(ValidationError):
            ledger_service.debit(ctx, ref, 100, "Wrong pin", pin="0000")

        entry = ledger_service.debit(ctx, ref, 100, "Right pin", pin="4321")
        assert entry.balance_after == 2900

    def test_expired_card_is_not_found(self, ctx, gift_card):
        card = db.session.get(GiftCard, gift_card.id)
        card.expiry_date = utcnow() - timedelta(days=1)
        db.session.commit()

        with pytest.raises(NotFoundError):
            ledger_service.debit(ctx, AccountRef(KIND_GIFT_CARD, gift_card.id), 100, "Late")

    def test_expired_card_takes_refunds_but_not_reloads(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)
        card = db.session.get(GiftCard, gift_card.id)
        card.expiry_date = utcnow() - timedelta(days=1)
        db.session.commit()

        with pytest.raises(NotFoundError):
            ledger_service.credit(ctx, ref, 500, "Reload")

        entry = ledger_service.credit(ctx, ref, 500, "Return of TXN-000001", transaction_type="refund")
        assert entry.balance_after == 5500
        assert ledger_service.get_balance(ctx, ref) == 5500

    def test_non_positive_amount_rejected(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)
        with pytest.raises(ValidationError):
            ledger_service.debit(ctx, ref, 0, "Zero")
        with pytest.raises(ValidationError):
            ledger_service.credit(ctx, ref, -5, "Negative")

    def test_other_tenant_cannot_see_card(self, ctx, other_ctx, gift_card):
        with pytest.raises(NotFoundError):
            ledger_service.debit(other_ctx, AccountRef(KIND_GIFT_CARD, gift_card.id), 100, "Cross tenant")
        with pytest.raises(NotFoundError):
            ledger_service.get_gift_card_by_number(other_ctx, "GC-0001")

    def test_history_is_append_only(self, ctx, gift_card):
        ref = AccountRef(KIND_GIFT_CARD, gift_card.id)
        ledger_service.debit(ctx, ref, 1000, "Purchase")
        first_rows = [
            (r.id, r.balance_before_cents, r.balance_after_cents)
            for r in db.session.query(GiftCardTransaction).order_by(GiftCardTransaction.id).all()
        ]

        ledger_service.credit(ctx, ref, 400, "Adjust")
        rows = db.session.query(GiftCardTransaction).order_by(GiftCardTransaction.id).all()
        assert [(r.id, r.balance_before_cents, r.balance_after_cents) for r in rows[:2]] == first_rows
        assert len(rows) == 3


class TestUnknownAccounts:

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            AccountRef("bitcoin", 1)

    def test_missing_account(self, ctx, app):
        with pytest.raises(NotFoundError):
            ledger_service.debit(ctx, AccountRef(KIND_STORE_CREDIT, 999), 100, "Nothing here")


class TestStoreCredit:

    def test_issue_opens_account_and_accumulates(self, ctx, app):
        first = ledger_service.issue_store_credit(ctx, 42, 2500, "Return without receipt")
        second = ledger_service.issue_store_credit(ctx, 42, 500, "Price adjustment")

        account = ledger_service.get_store_credit(ctx, 42)
        assert first.transaction_type == "issue"
        assert second.balance_before == 2500
        assert account.current_balance_cents == 3000

    def test_debit_store_credit(self, ctx, app):
        ledger_service.issue_store_credit(ctx, 42, 2500)
        account = ledger_service.get_store_credit(ctx, 42)

        entry = ledger_service.debit(ctx, AccountRef(KIND_STORE_CREDIT, account.id), 1000, "Purchase")
        assert entry.balance_after == 1500

        with pytest.raises(InsufficientBalance):
            ledger_service.debit(ctx, AccountRef(KIND_STORE_CREDIT, account.id), 1501, "Too much")

    def test_customer_required(self, ctx, app):
        with pytest.raises(ValidationError):
            ledger_service.issue_store_credit(ctx, None, 100)


class TestLoyalty:

    def test_earn_and_redeem(self, ctx, app):
        ledger_service.earn_points(ctx, 7, 300, "Promo")
        entry = ledger_service.redeem_points(ctx, 7, 120, "Reward")

        account = ledger_service.get_loyalty_account(ctx, 7)
        assert entry.transaction_type == "redeem"
        assert account.points_balance == 180
        assert account.lifetime_points_earned == 300
        assert account.lifetime_points_redeemed == 120

    def test_redeem_more_than_balance(self, ctx, app):
        ledger_service.earn_points(ctx, 7, 50)
        with pytest.raises(InsufficientBalance):
            ledger_service.redeem_points(ctx, 7, 51)
        assert ledger_service.get_loyalty_account(ctx, 7).points_balance == 50

    def test_ledger_entry_dict_is_uniform(self, ctx, app):
        entry = ledger_service.earn_points(ctx, 7, 10)
        data = entry.to_dict()
        assert data["account_kind"] == KIND_LOYALTY
        assert data["amount"] == 10
        assert data["balance_before"] == 0
        assert data["balance_after"] == 10
