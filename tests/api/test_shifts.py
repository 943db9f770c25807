# KomePOS API Tests - Shifts & Cash Reconciliation
#
# Tests for:
# - Opening a shift (one open shift per cashier)
# - Cash sales and manual movements in the drawer ledger
# - Closing with expected cash and variance
# - Sales report for the location

from typing import Dict

import pytest

from tests.conftest import APIClient, assert_field, assert_response


class TestShiftReconciliation:
    """Drawer counts in, sells, counts out."""

    @pytest.mark.smoke
    def test_second_open_rejected(self, cashier_client: APIClient, open_shift: Dict):
        """
        SCENARIO: Cashier with an open shift tries to open another
        EXPECTED: HTTP 400
        """
        response = cashier_client.post("/api/shifts", json={"starting_cash": "50.00"})

        assert_response(
            response, 400,
            scenario="Open a second shift",
            code_location="backend/komepos/services/shift_service.py:open_shift",
            expected_body_contains="already has an open shift"
        )

    def test_cash_sale_reconciles(self, cashier_client: APIClient, open_shift: Dict, seed):
        sale = cashier_client.post("/api/orders", json={
            "order_type": "TAKEOUT",
            "items": [{"product_id": seed.gyoza_id, "quantity": 2}],
            "payment_method": "cash",
            "amount_tendered": "20.00",
        })
        assert_response(sale, 201, scenario="Cash takeout sale",
                        code_location="backend/komepos/routes/orders.py:commit_order_route")
        assert_field(sale, sale.json()["order"]["shift_id"], open_shift["id"],
                     scenario="Register sale attaches to the open shift",
                     code_location="backend/komepos/services/order_service.py:commit_order")

        drop = cashier_client.post(f"/api/shifts/{open_shift['id']}/cash",
                                   json={"kind": "CASH_OUT", "amount": "50.00", "reason": "Bank drop"})
        assert_response(drop, 201, scenario="Bank drop",
                        code_location="backend/komepos/routes/shifts.py:cash_movement_route")

        summary = cashier_client.get(f"/api/shifts/{open_shift['id']}/summary")
        assert_response(summary, 200, scenario="Shift summary",
                        code_location="backend/komepos/routes/shifts.py:shift_summary_route")
        assert_field(summary, summary.json()["expected_cash"], "112.84",
                     scenario="Expected cash counts SALE entries only",
                     code_location="backend/komepos/services/shift_service.py:compute_expected_cash")

        closed = cashier_client.post(f"/api/shifts/{open_shift['id']}/close", json={"ending_cash": "62.84"})
        assert_response(closed, 200, scenario="Close shift",
                        code_location="backend/komepos/services/shift_service.py:close_shift")
        assert_field(closed, closed.json()["shift"]["cash_variance"], "-50.00",
                     scenario="Variance is counted minus expected",
                     code_location="backend/komepos/services/shift_service.py:close_shift")

    def test_sales_report(self, manager_client: APIClient):
        response = manager_client.get("/api/reports/sales", params={"range": "all"})

        assert_response(
            response, 200,
            scenario="All-time sales report",
            code_location="backend/komepos/routes/reports.py:sales_report",
            expected_body_contains="net_revenue"
        )
