# Overview: Threaded concurrency tests for the ledger safeguards, against a file-backed SQLite database.

"""
Concurrency tests.

Each test races worker threads (one app context and one DB session each)
against the same register, coupon or gift card and checks that exactly
the permitted number of operations win.
"""
import os
import tempfile
import threading
import unittest

from posledger import create_app
from posledger.context import OperationContext
from posledger.errors import ConflictError, UsageLimitExceeded, InsufficientBalance
from posledger.extensions import db
from posledger.models import CouponUsage
from posledger.services import register_service, coupon_service, ledger_service, transaction_service
from posledger.services.ledger_service import AccountRef, KIND_GIFT_CARD
from posledger.services.transaction_service import SaleItem, TenderedPayment


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "RETRY_ATTEMPTS": 5,
            "RETRY_BACKOFF_SECONDS": 0.01,
            "CATALOG_BASE_URL": None,
        })
        self.ctx = OperationContext(tenant_id="acme", user_id=1)

        with self.app.app_context():
            db.drop_all()
            db.create_all()
            register = register_service.create_register(self.ctx, "REG-01", "Front Counter")
            self.register_id = register.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _race(self, func, count):
        """Run func in `count` threads; return (results, errors)."""
        results = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    value = func()
                    with lock:
                        results.append(value)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_one_active_session_per_register(self):
        results, errors = self._race(
            lambda: register_service.open_session(self.ctx, self.register_id, 10000).id,
            8,
        )

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 7)
        self.assertTrue(all(isinstance(e, ConflictError) for e in errors), errors)

        with self.app.app_context():
            active = register_service.get_active_session(self.ctx, self.register_id)
            self.assertEqual(active.id, results[0])

    def test_last_coupon_use(self):
        with self.app.app_context():
            coupon_service.create_coupon(self.ctx, {"coupon_code": "LAST-ONE", "max_uses": 1})

        results, errors = self._race(
            lambda: coupon_service.redeem_coupon(self.ctx, "LAST-ONE", None).id,
            6,
        )

        self.assertEqual(len(results), 1)
        self.assertTrue(all(isinstance(e, UsageLimitExceeded) for e in errors), errors)

        with self.app.app_context():
            self.assertEqual(coupon_service.get_coupon(self.ctx, "LAST-ONE").current_uses, 1)

    def test_per_customer_cap_under_race(self):
        with self.app.app_context():
            coupon_service.create_coupon(self.ctx, {"coupon_code": "ONE-EACH", "max_uses_per_customer": 1})

        results, errors = self._race(
            lambda: coupon_service.redeem_coupon(self.ctx, "ONE-EACH", None, customer_id=42).id,
            6,
        )

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 5)
        self.assertTrue(all(isinstance(e, UsageLimitExceeded) for e in errors), errors)

        with self.app.app_context():
            self.assertEqual(
                db.session.query(CouponUsage).filter_by(customer_id=42).count(), 1
            )
            # other customers are unaffected
            coupon_service.redeem_coupon(self.ctx, "ONE-EACH", None, customer_id=43)
            self.assertEqual(coupon_service.get_coupon(self.ctx, "ONE-EACH").current_uses, 2)

    def test_gift_card_never_overdrawn(self):
        with self.app.app_context():
            card = ledger_service.issue_gift_card(self.ctx, "GC-RACE", 5000)
            ref = AccountRef(KIND_GIFT_CARD, card.id)

        results, errors = self._race(
            lambda: ledger_service.debit(self.ctx, ref, 1000, "Race").balance_after,
            8,
        )

        self.assertEqual(len(results), 5)
        self.assertTrue(all(isinstance(e, InsufficientBalance) for e in errors), errors)
        self.assertEqual(sorted(results), [0, 1000, 2000, 3000, 4000])

        with self.app.app_context():
            entries = ledger_service.get_entries(self.ctx, ref)
            self.assertEqual(ledger_service.get_balance(self.ctx, ref), 0)
            for prev, cur in zip(entries, entries[1:]):
                self.assertEqual(cur.balance_before, prev.balance_after)

    def test_transaction_numbers_unique(self):
        with self.app.app_context():
            session_id = register_service.open_session(self.ctx, self.register_id, 0).id

        def sale():
            txn = transaction_service.commit_sale(
                self.ctx, session_id,
                [SaleItem(product_id=1, quantity=1, unit_price_cents=500)],
                [TenderedPayment(payment_method="cash", amount_cents=500)],
            )
            return txn.transaction_number

        results, errors = self._race(sale, 6)

        self.assertFalse(errors)
        self.assertEqual(len(set(results)), 6)

        with self.app.app_context():
            session = register_service.get_session(self.ctx, session_id)
            self.assertEqual(session.total_sales_cents, 3000)
            self.assertEqual(session.total_transactions, 6)


if __name__ == "__main__":
    unittest.main()
