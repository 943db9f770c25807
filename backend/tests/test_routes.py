# Overview: Pytest coverage for the HTTP API: identity headers, orders, shifts, promotions and reports.

import pytest

from komepos.models import Company, Location, Order, User
from komepos.models.auth import ROLE_MANAGER
from komepos.models.promotions import KIND_ITEM_FIXED
from komepos.services import reporting_service

from helpers import actor_headers, ramen_item


def discounted_cart(ramen, iced_tea):
    return {
        "order_type": "DINE_IN",
        "items": [ramen_item(ramen, quantity=2), {"product_id": iced_tea.id, "quantity": 1}],
        "discount": {"kind": "PERCENT", "value": "10"},
    }


class TestActorHeaders:
    """Every register endpoint needs to know who is acting and where."""

    def test_missing_user_header(self, client, db_session):
        response = client.get("/api/shifts/current")
        assert response.status_code == 401

    def test_non_integer_header(self, client, db_session):
        response = client.get("/api/shifts/current", headers={"X-User-Id": "abc"})
        assert response.status_code == 400

    def test_unknown_user(self, client, db_session):
        response = client.get("/api/shifts/current", headers={"X-User-Id": "99999"})
        assert response.status_code == 401

    def test_inactive_user(self, client, db_session, cashier):
        cashier.is_active = False
        db_session.commit()

        response = client.get("/api/shifts/current", headers=actor_headers(cashier))
        assert response.status_code == 401

    def test_location_from_other_company(self, client, db_session, cashier):
        other = Company(name="Rival Sushi", timezone="America/Panama")
        db_session.add(other)
        db_session.flush()
        foreign = Location(company_id=other.id, name="Rival HQ")
        db_session.add(foreign)
        db_session.commit()

        response = client.get("/api/shifts/current", headers=actor_headers(cashier, foreign))
        assert response.status_code == 403

    def test_location_falls_back_to_user_assignment(self, client, db_session, cashier, location):
        response = client.get("/api/shifts", headers=actor_headers(cashier))
        assert response.status_code == 200
        assert response.get_json()["shifts"] == []


class TestOrderRoutes:
    def test_quote(self, client, db_session, cashier, location, ramen, iced_tea):
        body = discounted_cart(ramen, iced_tea)
        body["amount_tendered"] = "20.00"

        response = client.post("/api/orders/quote", json=body, headers=actor_headers(cashier, location))

        assert response.status_code == 200
        quote = response.get_json()["quote"]
        assert quote["total"] == "19.91"
        assert quote["change_due"] == "0.09"

    def test_empty_cart_is_400(self, client, db_session, cashier, location):
        response = client.post(
            "/api/orders/quote", json={"order_type": "DINE_IN", "items": []},
            headers=actor_headers(cashier, location))

        assert response.status_code == 400
        assert response.get_json()["error"] == "Cart is empty"

    def test_commit_then_fetch(self, client, db_session, cashier, location, ramen, iced_tea):
        body = discounted_cart(ramen, iced_tea)
        body.update(payment_method="cash", amount_tendered="25.00", client_request_id="reg-1-0001")

        response = client.post("/api/orders", json=body, headers=actor_headers(cashier, location))

        assert response.status_code == 201
        order = response.get_json()["order"]
        assert order["total"] == "19.91"
        assert order["change_due"] == "5.09"
        assert len(order["items"]) == 2
        assert order["items"][0]["options"] == [{"group_name": "Broth", "option_name": "Light"}]

        replay = client.post("/api/orders", json=body, headers=actor_headers(cashier, location))
        assert replay.get_json()["order"]["id"] == order["id"]

        fetched = client.get(f"/api/orders/{order['id']}", headers=actor_headers(cashier))
        assert fetched.status_code == 200
        assert fetched.get_json()["order"]["order_number"] == order["order_number"]

    def test_unknown_order_is_404(self, client, db_session, cashier):
        response = client.get("/api/orders/424242", headers=actor_headers(cashier))
        assert response.status_code == 404

    def test_status_flow_and_conflict(self, client, db_session, cashier, location, gyoza, zone):
        created = client.post("/api/orders", json={
            "order_type": "DELIVERY",
            "items": [{"product_id": gyoza.id}],
            "payment_method": "card",
            "delivery_zone_id": zone.id,
        }, headers=actor_headers(cashier, location)).get_json()["order"]

        ok = client.post(f"/api/orders/{created['id']}/status", json={"status": "PREPARING"},
                         headers=actor_headers(cashier))
        assert ok.status_code == 200
        assert ok.get_json()["order"]["status"] == "PREPARING"

        skipped = client.post(f"/api/orders/{created['id']}/status", json={"status": "DELIVERED"},
                              headers=actor_headers(cashier))
        assert skipped.status_code == 409
        assert skipped.get_json()["details"]["allowed"] == ["READY"]

    def test_refund_twice_is_409(self, client, db_session, cashier, manager, location, gyoza):
        created = client.post("/api/orders", json={
            "order_type": "TAKEOUT",
            "items": [{"product_id": gyoza.id, "quantity": 2}],
            "payment_method": "card",
        }, headers=actor_headers(cashier, location)).get_json()["order"]

        first = client.post(f"/api/orders/{created['id']}/refund", json={"reason": "Wrong order"},
                            headers=actor_headers(manager))
        assert first.status_code == 201
        refund = first.get_json()["refund"]
        assert refund["total"] == "-12.84"
        assert refund["refund_of_order_id"] == created["id"]

        second = client.post(f"/api/orders/{created['id']}/refund", json={}, headers=actor_headers(manager))
        assert second.status_code == 409
        assert "already refunded" in second.get_json()["error"]

    def test_online_order_payment(self, client, db_session, cashier, location, gyoza):
        created = client.post("/api/orders", json={
            "order_type": "TAKEOUT",
            "channel": "ONLINE",
            "customer_id": 8,
            "items": [{"product_id": gyoza.id}],
            "payment_method": "card",
        }, headers=actor_headers(cashier, location)).get_json()["order"]
        assert created["payment_status"] == "PENDING"

        paid = client.post(f"/api/orders/{created['id']}/payment", headers=actor_headers(cashier))
        assert paid.status_code == 200
        assert paid.get_json()["order"]["payment_status"] == "PAID"


class TestOrderIsolation:
    """Orders of another company read as missing."""

    @pytest.fixture
    def outsider(self, db_session):
        other = Company(name="Rival Sushi", timezone="America/Panama")
        db_session.add(other)
        db_session.flush()
        branch = Location(company_id=other.id, name="Rival HQ")
        db_session.add(branch)
        db_session.flush()
        user = User(company_id=other.id, username="rival", full_name="Rita Rival",
                    role=ROLE_MANAGER, location_id=branch.id)
        db_session.add(user)
        db_session.commit()
        return user

    @pytest.fixture
    def card_sale(self, client, db_session, cashier, location, gyoza):
        return client.post("/api/orders", json={
            "order_type": "TAKEOUT", "items": [{"product_id": gyoza.id}], "payment_method": "card",
        }, headers=actor_headers(cashier, location)).get_json()["order"]

    def test_fetch_is_404(self, client, outsider, card_sale):
        response = client.get(f"/api/orders/{card_sale['id']}", headers=actor_headers(outsider))
        assert response.status_code == 404

    def test_refund_is_404(self, client, db_session, outsider, card_sale):
        response = client.post(f"/api/orders/{card_sale['id']}/refund", json={}, headers=actor_headers(outsider))

        assert response.status_code == 404
        assert db_session.query(Order).filter(Order.refund_of_order_id.isnot(None)).count() == 0

    def test_status_and_payment_are_404(self, client, outsider, card_sale):
        moved = client.post(f"/api/orders/{card_sale['id']}/status", json={"status": "PREPARING"},
                            headers=actor_headers(outsider))
        paid = client.post(f"/api/orders/{card_sale['id']}/payment", headers=actor_headers(outsider))

        assert moved.status_code == 404
        assert paid.status_code == 404

    def test_own_company_still_sees_order(self, client, manager, card_sale):
        response = client.get(f"/api/orders/{card_sale['id']}", headers=actor_headers(manager))
        assert response.status_code == 200


class TestShiftRoutes:
    def test_open_sell_close(self, client, db_session, cashier, location, ramen, iced_tea):
        headers = actor_headers(cashier, location)

        opened = client.post("/api/shifts", json={"starting_cash": "100.00"}, headers=headers)
        assert opened.status_code == 201
        shift_id = opened.get_json()["shift"]["id"]

        again = client.post("/api/shifts", json={"starting_cash": "100.00"}, headers=headers)
        assert again.status_code == 400

        body = discounted_cart(ramen, iced_tea)
        body["payment_method"] = "cash"
        assert client.post("/api/orders", json=body, headers=headers).status_code == 201

        moved = client.post(f"/api/shifts/{shift_id}/cash",
                            json={"kind": "CASH_IN", "amount": "10.00", "reason": "Coins"}, headers=headers)
        assert moved.status_code == 201

        current = client.get("/api/shifts/current", headers=headers).get_json()["shift"]
        assert current["id"] == shift_id

        summary = client.get(f"/api/shifts/{shift_id}/summary", headers=headers).get_json()
        assert summary["expected_cash"] == "119.91"
        assert summary["drawer_totals"]["CASH_IN"] == "110.00"

        closed = client.post(f"/api/shifts/{shift_id}/close", json={"ending_cash": "129.91"}, headers=headers)
        assert closed.status_code == 200
        assert closed.get_json()["shift"]["cash_variance"] == "10.00"

        twice = client.post(f"/api/shifts/{shift_id}/close", json={"ending_cash": "129.91"}, headers=headers)
        assert twice.status_code == 409

        ledger = client.get(f"/api/shifts/{shift_id}/transactions", headers=headers).get_json()
        assert [t["kind"] for t in ledger["transactions"]] == ["CASH_IN", "SALE", "CASH_IN"]

    def test_close_requires_ending_cash(self, client, db_session, cashier, location):
        headers = actor_headers(cashier, location)
        shift_id = client.post("/api/shifts", json={"starting_cash": "50"}, headers=headers).get_json()["shift"]["id"]

        response = client.post(f"/api/shifts/{shift_id}/close", json={}, headers=headers)
        assert response.status_code == 400

    def test_cashier_cannot_override(self, client, db_session, cashier, second_cashier, location):
        shift_id = client.post("/api/shifts", json={"starting_cash": "50"},
                               headers=actor_headers(cashier, location)).get_json()["shift"]["id"]

        response = client.post(f"/api/shifts/{shift_id}/close",
                               json={"ending_cash": "50", "manager_override": True},
                               headers=actor_headers(second_cashier, location))
        assert response.status_code == 409

    def test_unknown_shift_summary(self, client, db_session, cashier):
        response = client.get("/api/shifts/424242/summary", headers=actor_headers(cashier))
        assert response.status_code == 404


class TestPromotionAndReportRoutes:
    def test_active_promotions(self, client, db_session, cashier, location, gyoza, make_promotion):
        promo = make_promotion(KIND_ITEM_FIXED, "1.00", eligible_product_ids=[gyoza.id])

        response = client.get("/api/promotions/active?date=2026-05-01", headers=actor_headers(cashier, location))

        assert response.status_code == 200
        data = response.get_json()
        assert data["date"] == "2026-05-01"
        assert [p["id"] for p in data["promotions"]] == [promo.id]
        assert data["promotions"][0]["status"] == "ACTIVE"

    def test_bad_date(self, client, db_session, cashier, location):
        response = client.get("/api/promotions/active?date=May", headers=actor_headers(cashier, location))
        assert response.status_code == 400

    def test_sales_report(self, client, db_session, cashier, location, gyoza):
        client.post("/api/orders", json={
            "order_type": "TAKEOUT", "items": [{"product_id": gyoza.id}], "payment_method": "card",
        }, headers=actor_headers(cashier, location))

        response = client.get("/api/reports/sales?range=week", headers=actor_headers(cashier, location))

        assert response.status_code == 200
        assert response.get_json()["total_revenue"] == "6.42"

    def test_sales_report_bad_range(self, client, db_session, cashier, location):
        response = client.get("/api/reports/sales?range=decade", headers=actor_headers(cashier, location))
        assert response.status_code == 400

    def test_sales_report_failure_is_500(self, client, db_session, cashier, location, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(reporting_service, "sales_report", broken)

        response = client.get("/api/reports/sales", headers=actor_headers(cashier, location))

        assert response.status_code == 500
        assert response.get_json()["error"] == "Internal server error"


class TestSystemRoutes:
    def test_health(self, client, db_session, company):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["configuration"]["status"] == "healthy"

    def test_health_timestamp_is_utc_z(self, client, db_session, company):
        stamp = client.get("/api/health").get_json()["timestamp"]
        assert stamp.endswith("Z")
        assert "+00:00" not in stamp
        assert "." not in stamp

    def test_version(self, client):
        assert client.get("/api/version").get_json()["api_version"] == "1.0.0"
