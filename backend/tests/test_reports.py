"""
Report tests: inventory ledger reconciliation, sales and shift summaries,
stock valuation.
"""

from datetime import timedelta

from storeline.services.inventory_service import approve_correction, create_correction
from storeline.services.report_service import (
    inventory_ledger,
    sales_summary,
    shift_summary,
    stock_valuation,
)
from storeline.services.sales_service import create_sale, record_ar_payment, void_sale
from storeline.services.shift_service import record_cash_in_out
from storeline.services.stock_service import deduct_stock
from storeline.time_utils import utcnow
from conftest import PASSWORD


def _sell(user, location, variation, method="cash", **kwargs):
    return create_sale(
        user,
        location_id=location.id,
        items=[{"variation_id": variation.id, "quantity": 1}],
        payments=[{"method": method, "amount_cents": 11200}],
        **kwargs,
    )


class TestInventoryLedger:

    def test_no_correction_starts_from_zero(self, admin_a, stocked_a, location_a1):
        report = inventory_ledger(admin_a.business_id, stocked_a.id, location_a1.id)

        assert report["baseline"]["quantity"] == 0
        assert report["baseline"]["correction_id"] is None
        assert [r["type"] for r in report["rows"]] == ["opening_stock"]
        assert report["total_in"] == 100
        assert report["ending_balance"] == 100
        assert report["system_quantity"] == 100
        assert report["reconciled"] is True
        assert report["variance"] == 0

    def test_last_correction_is_baseline(self, db_session, admin_a, clerk_a, manager_a, stocked_a, location_a1):
        correction = create_correction(clerk_a, stocked_a.id, location_a1.id, 95, "Cycle count")
        approve_correction(manager_a, correction.id)
        deduct_stock(
            business_id=admin_a.business_id,
            variation_id=stocked_a.id,
            location_id=location_a1.id,
            quantity=10,
            transaction_type="adjustment",
            user_id=admin_a.id,
            reference_type="damage",
            reference_id=1,
        )
        db_session.commit()

        report = inventory_ledger(admin_a.business_id, stocked_a.id, location_a1.id)

        assert report["baseline"]["quantity"] == 95
        assert report["baseline"]["correction_id"] == correction.id
        assert len(report["rows"]) == 1
        assert report["rows"][0]["quantity_out"] == 10
        assert report["rows"][0]["running_balance"] == 85
        assert report["ending_balance"] == 85
        assert report["reconciled"] is True

    def test_start_date_uses_prior_balance(self, admin_a, stocked_a, location_a1):
        start = utcnow() + timedelta(minutes=5)

        report = inventory_ledger(admin_a.business_id, stocked_a.id, location_a1.id, start=start)

        assert report["baseline"]["quantity"] == 100
        assert report["rows"] == []
        assert report["reconciled"] is True

    def test_ledger_api(self, client, manager_headers, stocked_a, location_a1):
        resp = client.get(
            f"/api/reports/inventory-ledger?variation_id={stocked_a.id}&location_id={location_a1.id}",
            headers=manager_headers,
        )
        assert resp.status_code == 200
        assert resp.json["ending_balance"] == 100

        missing = client.get("/api/reports/inventory-ledger", headers=manager_headers)
        assert missing.status_code == 400

    def test_foreign_variation_is_404(self, client, admin_b_headers, stocked_a, location_a1):
        resp = client.get(
            f"/api/reports/inventory-ledger?variation_id={stocked_a.id}&location_id={location_a1.id}",
            headers=admin_b_headers,
        )
        assert resp.status_code == 404


class TestSalesReports:

    def test_sales_summary(self, cashier_a, manager_a, location_a1, stocked_a, cashier_shift):
        _sell(cashier_a, location_a1, stocked_a)
        _sell(cashier_a, location_a1, stocked_a, method="card")
        voided = _sell(cashier_a, location_a1, stocked_a)
        void_sale(manager_a, voided.id, "Rang twice", PASSWORD)

        summary = sales_summary(cashier_a.business_id, location_id=location_a1.id)

        assert summary["transaction_count"] == 2
        assert summary["net_sales_cents"] == 22400
        assert summary["vat_cents"] == 2400
        assert summary["by_payment_method"] == {"cash": 11200, "card": 11200}
        assert summary["void_count"] == 1
        assert summary["void_cents"] == 11200
        assert len(summary["by_day"]) == 1

    def test_ar_collections_follow_sale_location(self, cashier_a, location_a1, location_a2, stocked_a,
                                                 cashier_shift):
        sale = create_sale(
            cashier_a,
            location_id=location_a1.id,
            items=[{"variation_id": stocked_a.id, "quantity": 1}],
            payments=[],
            is_credit=True,
            customer_name="Reyes Bakery",
        )
        record_ar_payment(cashier_a, sale.id, 1000, "cash")

        assert sales_summary(cashier_a.business_id, location_id=location_a2.id)["ar_collected_cents"] == 0
        assert sales_summary(cashier_a.business_id, location_id=location_a1.id)["ar_collected_cents"] == 1000
        assert sales_summary(cashier_a.business_id)["ar_collected_cents"] == 1000

    def test_shift_summary(self, cashier_a, location_a1, stocked_a, cashier_shift):
        _sell(cashier_a, location_a1, stocked_a)
        record_cash_in_out(cashier_a, cashier_shift.id, "cash_out", 1000, "Ice delivery")

        summary = shift_summary(cashier_a, cashier_shift.id)

        assert summary["shift"]["id"] == cashier_shift.id
        assert summary["sales"]["net_sales_cents"] == 11200
        assert summary["system_cash_cents"] == 5000 + 11200 - 1000
        assert len(summary["cash_movements"]) == 1
        assert summary["z_reading"] is None

    def test_cashier_cannot_see_sales_summary(self, client, cashier_headers):
        assert client.get("/api/reports/sales-summary", headers=cashier_headers).status_code == 403


class TestStockValuation:

    def test_quantity_times_cost(self, admin_a, stocked_a, product_b, location_a1):
        valuation = stock_valuation(admin_a.business_id)

        assert valuation["total_quantity"] == 100
        assert valuation["total_value_cents"] == 100 * 6000
        assert [i["variation_id"] for i in valuation["items"]] == [stocked_a.id]

    def test_valuation_api_by_location(self, client, manager_headers, stocked_a, location_a2):
        resp = client.get(f"/api/reports/stock-valuation?location_id={location_a2.id}", headers=manager_headers)

        assert resp.status_code == 200
        assert resp.json["items"] == []
