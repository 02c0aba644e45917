# Overview: Pytest coverage for the HTTP adapter; identity headers, JSON shapes and error mapping.

import pytest

from conftest import headers


class TestIdentityHeaders:

    def test_missing_tenant_is_401(self, client):
        """Requests without X-Tenant-ID are refused."""
        resp = client.get("/api/pos/registers")
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "unauthorized"

    def test_non_integer_user_is_400(self, client):
        resp = client.get("/api/pos/registers", headers={"X-Tenant-ID": "acme", "X-User-ID": "bob"})
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_health_needs_no_headers(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}


class TestRegisterRoutes:

    def test_register_session_shift_flow(self, client):
        """Create register, open shift and session, close both."""
        resp = client.post("/api/pos/registers", json={
            "code": "REG-01", "name": "Front", "attributes": {"lane_number": 2},
        }, headers=headers())
        assert resp.status_code == 201
        register_id = resp.get_json()["register"]["id"]

        resp = client.post(f"/api/pos/registers/{register_id}/shifts",
                           json={"opening_balance_cents": 10000}, headers=headers())
        assert resp.status_code == 201
        shift_id = resp.get_json()["shift"]["id"]

        resp = client.post(f"/api/pos/registers/{register_id}/sessions",
                           json={"opening_amount_cents": 10000}, headers=headers())
        assert resp.status_code == 201
        session = resp.get_json()["session"]
        assert session["shift_id"] == shift_id

        detail = client.get(f"/api/pos/registers/{register_id}", headers=headers()).get_json()
        assert detail["attributes"] == {"lane_number": 2}
        assert detail["active_session"]["id"] == session["id"]
        assert detail["open_shift"]["id"] == shift_id

        resp = client.post(f"/api/pos/sessions/{session['id']}/close",
                           json={"closing_amount_cents": 10000}, headers=headers())
        assert resp.status_code == 200
        assert resp.get_json()["session"]["status"] == "closed"

        resp = client.post(f"/api/pos/shifts/{shift_id}/close",
                           json={"closing_balance_cents": 9500}, headers=headers())
        assert resp.get_json()["shift"]["variance_cents"] == -500

        resp = client.post(f"/api/pos/shifts/{shift_id}/reconcile", json={}, headers=headers())
        assert resp.status_code == 403

        resp = client.post(f"/api/pos/shifts/{shift_id}/reconcile", json={}, headers=headers(manager_id=9))
        assert resp.get_json()["shift"]["status"] == "reconciled"

    def test_duplicate_session_is_409(self, client, register, pos_session):
        resp = client.post(f"/api/pos/registers/{register.id}/sessions",
                           json={"opening_amount_cents": 0}, headers=headers())
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "conflict"

    def test_other_tenant_register_is_404(self, client, register):
        resp = client.get(f"/api/pos/registers/{register.id}", headers=headers(tenant="beta"))
        assert resp.status_code == 404

    def test_missing_fields_is_400(self, client, pos_session):
        resp = client.post(f"/api/pos/sessions/{pos_session.id}/close", json={}, headers=headers())
        assert resp.status_code == 400
        assert resp.get_json()["details"]["missing"] == ["closing_amount_cents"]

    def test_shift_summary(self, client, shift, pos_session):
        data = client.get(f"/api/pos/shifts/{shift.id}", headers=headers()).get_json()
        assert data["expected_balance_cents"] == 10000
        assert len(data["sessions"]) == 1


class TestTransactionRoutes:

    def _sale(self, client, session_id, **extra):
        body = {
            "session_id": session_id,
            "items": [{"product_id": 7, "quantity": 2, "unit_price_cents": 1500, "tax_cents": 240}],
            "payments": [{"payment_method": "cash", "amount_cents": 4000}],
        }
        body.update(extra)
        return client.post("/api/pos/transactions", json=body, headers=headers())

    def test_commit_sale(self, client, pos_session):
        resp = self._sale(client, pos_session.id)
        assert resp.status_code == 201
        txn = resp.get_json()["transaction"]
        assert txn["total_cents"] == 3240
        assert txn["change_cents"] == 760
        assert len(txn["items"]) == 1
        assert txn["payments"][0]["payment_method"] == "cash"

        listed = client.get(f"/api/pos/sessions/{pos_session.id}/transactions", headers=headers()).get_json()
        assert [t["id"] for t in listed["transactions"]] == [txn["id"]]

    def test_detail_without_catalog(self, client, pos_session):
        txn_id = self._sale(client, pos_session.id).get_json()["transaction"]["id"]
        data = client.get(f"/api/pos/transactions/{txn_id}", headers=headers()).get_json()
        assert data["transaction"]["items"][0]["product"] is None

    def test_under_payment_is_422(self, client, pos_session):
        resp = self._sale(client, pos_session.id, payments=[{"payment_method": "cash", "amount_cents": 100}])
        assert resp.status_code == 422
        assert resp.get_json()["code"] == "payment_mismatch"

    def test_insufficient_gift_card_is_422(self, client, pos_session, gift_card):
        resp = self._sale(client, pos_session.id, items=[
            {"product_id": 7, "quantity": 1, "unit_price_cents": 9000},
        ], payments=[
            {"payment_method": "gift_card", "amount_cents": 9000, "card_number": "GC-0001"},
        ])
        assert resp.status_code == 422
        assert resp.get_json()["code"] == "insufficient_balance"

    def test_items_must_be_list(self, client, pos_session):
        resp = self._sale(client, pos_session.id, items={"product_id": 7})
        assert resp.status_code == 400

    @pytest.mark.parametrize("tip", ["lots", [5], -100])
    def test_bad_tip_is_400(self, client, pos_session, tip):
        resp = self._sale(client, pos_session.id, tip_cents=tip)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_numeric_string_tip_is_accepted(self, client, pos_session):
        resp = self._sale(client, pos_session.id, tip_cents="200")
        assert resp.status_code == 201
        assert resp.get_json()["transaction"]["total_cents"] == 3440

    def test_refund_and_void(self, client, pos_session):
        first = self._sale(client, pos_session.id).get_json()["transaction"]["id"]
        second = self._sale(client, pos_session.id).get_json()["transaction"]["id"]

        resp = client.post(f"/api/pos/transactions/{first}/refund",
                           json={"session_id": pos_session.id, "reason": "Wrong size"}, headers=headers())
        assert resp.status_code == 201
        assert resp.get_json()["transaction"]["transaction_type"] == "return"

        resp = client.post(f"/api/pos/transactions/{first}/refund",
                           json={"session_id": pos_session.id}, headers=headers())
        assert resp.status_code == 409

        resp = client.post(f"/api/pos/transactions/{second}/void", json={}, headers=headers())
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "requires_approval"

        resp = client.post(f"/api/pos/transactions/{second}/void", json={"reason": "Test"},
                           headers=headers(manager_id=9))
        assert resp.status_code == 201


class TestDiscountAndStoredValueRoutes:

    def test_coupon_validate_and_redeem(self, client):
        resp = client.post("/api/pos/discount-rules", json={
            "rule_code": "TEN", "name": "10%", "discount_type": "percentage", "discount_value": 1000,
        }, headers=headers())
        rule_id = resp.get_json()["discount_rule"]["id"]
        client.post("/api/pos/coupons", json={"coupon_code": "SAVE10", "discount_rule_id": rule_id, "max_uses": 1},
                    headers=headers())

        resp = client.post("/api/pos/coupons/validate", json={"coupon_code": "SAVE10", "amount_cents": 8000},
                           headers=headers())
        assert resp.status_code == 200
        assert resp.get_json()["estimated_discount_cents"] == 800

        resp = client.post("/api/pos/coupons/redeem", json={"coupon_code": "SAVE10"}, headers=headers())
        assert resp.status_code == 201

        resp = client.post("/api/pos/coupons/redeem", json={"coupon_code": "SAVE10"}, headers=headers())
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "usage_limit_exceeded"

        resp = client.post("/api/pos/coupons/validate", json={"coupon_code": "SAVE10", "amount_cents": 8000},
                           headers=headers())
        data = resp.get_json()
        assert resp.status_code == 200
        assert (data["valid"], data["reason"]) == (False, "usage_limit_exceeded")
        assert data["estimated_discount_cents"] == 0

    def test_evaluate_cart(self, client):
        client.post("/api/pos/discount-rules", json={
            "rule_code": "BOGO", "name": "Buy one get one", "discount_type": "buy_x_get_y",
            "buy_quantity": 1, "get_quantity": 1,
        }, headers=headers())

        resp = client.post("/api/pos/discounts/evaluate", json={"lines": [
            {"product_id": 1, "quantity": 2, "unit_price_cents": 800},
        ]}, headers=headers())
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["total_discount_cents"] == 800

    @pytest.mark.parametrize("path", ["/api/pos/gift-cards/NOPE", "/api/pos/customers/5/store-credit"])
    def test_unknown_accounts_are_404(self, client, path):
        assert client.get(path, headers=headers()).status_code == 404

    def test_gift_card_lifecycle(self, client):
        resp = client.post("/api/pos/gift-cards", json={"card_number": "GC-9", "initial_value_cents": 3000},
                           headers=headers())
        assert resp.status_code == 201

        resp = client.post("/api/pos/gift-cards/GC-9/redeem", json={"amount_cents": 1000}, headers=headers())
        assert resp.get_json()["entry"]["balance_after"] == 2000

        resp = client.post("/api/pos/gift-cards/GC-9/reload", json={"amount_cents": 500}, headers=headers())
        assert resp.get_json()["entry"]["balance_after"] == 2500

        data = client.get("/api/pos/gift-cards/GC-9", headers=headers()).get_json()
        assert data["gift_card"]["current_balance_cents"] == 2500
        assert [e["transaction_type"] for e in data["entries"]] == ["issue", "redeem", "adjust"]

    def test_loyalty_routes(self, client):
        resp = client.post("/api/pos/customers/7/loyalty/earn", json={"points": 100}, headers=headers())
        assert resp.status_code == 201
        resp = client.post("/api/pos/customers/7/loyalty/redeem", json={"points": 150}, headers=headers())
        assert resp.status_code == 422
        data = client.get("/api/pos/customers/7/loyalty", headers=headers()).get_json()
        assert data["loyalty_account"]["points_balance"] == 100
