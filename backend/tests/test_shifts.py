"""
Cashier shift tests: system cash, cash in/out, close with manager sign-off,
denomination counts and X/Z readings.
"""

import json

import pytest

from storeline.models import CashDenomination, ZReading
from storeline.permissions import CASHIER
from storeline.services.auth_service import ManagerApprovalError
from storeline.services.sales_service import create_sale, record_ar_payment, void_sale
from storeline.services.shift_service import (
    ShiftError,
    allocate_payments,
    close_shift,
    compute_system_cash,
    open_shift,
    record_cash_in_out,
    x_reading,
)
from conftest import PASSWORD, _make_user, auth_headers, get_auth_token


def _sell(user, location, variation, payments, quantity=1, **kwargs):
    return create_sale(
        user,
        location_id=location.id,
        items=[{"variation_id": variation.id, "quantity": quantity}],
        payments=payments,
        **kwargs,
    )


class _Tender:
    def __init__(self, method, amount_cents):
        self.method = method
        self.amount_cents = amount_cents


class TestPaymentAllocation:

    def test_exact_payment_unchanged(self):
        assert allocate_payments(11200, [_Tender("cash", 11200)]) == {"cash": 11200}

    def test_change_given_scales_tenders(self):
        allocated = allocate_payments(11200, [_Tender("cash", 10000), _Tender("card", 5000)])

        assert allocated == {"cash": 7466, "card": 3733}

    def test_credit_reported_as_is(self):
        allocated = allocate_payments(11200, [_Tender("cash", 2000), _Tender("credit", 9200)])

        assert allocated == {"cash": 2000, "credit": 9200}


class TestOpenShift:

    def test_open(self, cashier_a, location_a1, cashier_shift):
        assert cashier_shift.status == "open"
        assert cashier_shift.user_id == cashier_a.id
        assert cashier_shift.location_id == location_a1.id
        assert cashier_shift.beginning_cash_cents == 5000
        assert cashier_shift.shift_number.startswith("SHIFT-")

    def test_one_open_shift_per_user(self, cashier_a, location_a1, cashier_shift):
        with pytest.raises(ShiftError):
            open_shift(cashier_a, location_a1.id, 0)

    def test_negative_float_refused(self, cashier_a, location_a1):
        with pytest.raises(ShiftError):
            open_shift(cashier_a, location_a1.id, -1)


class TestSystemCash:

    def test_cash_sale_retains_total_only(self, cashier_a, location_a1, stocked_a, cashier_shift):
        _sell(cashier_a, location_a1, stocked_a, [{"method": "cash", "amount_cents": 20000}])

        assert compute_system_cash(cashier_shift) == 5000 + 11200

    def test_split_tender_with_change(self, cashier_a, location_a1, stocked_a, cashier_shift):
        _sell(cashier_a, location_a1, stocked_a, [
            {"method": "cash", "amount_cents": 10000},
            {"method": "card", "amount_cents": 5000},
        ])

        assert compute_system_cash(cashier_shift) == 5000 + 7466

    def test_cash_in_and_out(self, cashier_a, cashier_shift):
        record_cash_in_out(cashier_a, cashier_shift.id, "cash_in", 1000, "Change fund top-up")
        record_cash_in_out(cashier_a, cashier_shift.id, "cash_out", 500, "Delivery tip")

        assert compute_system_cash(cashier_shift) == 5500

    def test_cash_out_cannot_exceed_drawer(self, cashier_a, cashier_shift):
        with pytest.raises(ShiftError) as exc_info:
            record_cash_in_out(cashier_a, cashier_shift.id, "cash_out", 5001, "Too much")

        assert "Available: 5000" in str(exc_info.value)

    def test_cash_movement_needs_reason(self, cashier_a, cashier_shift):
        with pytest.raises(ShiftError):
            record_cash_in_out(cashier_a, cashier_shift.id, "cash_in", 100, " ")

    def test_ar_cash_collection_counts(self, cashier_a, location_a1, stocked_a, cashier_shift):
        sale = _sell(cashier_a, location_a1, stocked_a, [], is_credit=True, customer_name="Dela Cruz Store")
        record_ar_payment(cashier_a, sale.id, 3000, "cash")

        assert compute_system_cash(cashier_shift) == 5000 + 3000

    def test_voided_sale_drops_out(self, cashier_a, manager_a, location_a1, stocked_a, cashier_shift):
        sale = _sell(cashier_a, location_a1, stocked_a, [{"method": "cash", "amount_cents": 11200}])
        void_sale(manager_a, sale.id, "Customer changed mind", PASSWORD)

        assert compute_system_cash(cashier_shift) == 5000


class TestCloseShift:

    def test_close_records_variance(self, cashier_a, manager_a, location_a1, stocked_a, cashier_shift):
        _sell(cashier_a, location_a1, stocked_a, [{"method": "cash", "amount_cents": 11200}])

        result = close_shift(cashier_a, cashier_shift.id, 16000, PASSWORD)

        assert result["variance"] == -200
        assert result["shift"]["status"] == "closed"
        assert result["shift"]["system_cash_cents"] == 16200
        assert result["shift"]["cash_short_cents"] == 200
        assert result["shift"]["cash_over_cents"] == 0
        assert result["shift"]["approved_by"] is not None
        assert result["x_reading"]["net_sales_cents"] == 11200

    def test_manager_password_required(self, cashier_a, manager_a, cashier_shift):
        with pytest.raises(ManagerApprovalError):
            close_shift(cashier_a, cashier_shift.id, 5000, None)

    def test_cashier_password_is_not_manager_approval(self, db_session, cashier_a, cashier_shift):
        # Only manager/admin roles are checked, so the cashier's own password fails
        with pytest.raises(ManagerApprovalError):
            close_shift(cashier_a, cashier_shift.id, 5000, PASSWORD)

    def test_cannot_close_twice(self, cashier_a, manager_a, cashier_shift):
        close_shift(cashier_a, cashier_shift.id, 5000, PASSWORD)

        with pytest.raises(ShiftError):
            close_shift(cashier_a, cashier_shift.id, 5000, PASSWORD)

    def test_denominations_must_match(self, db_session, cashier_a, manager_a, cashier_shift):
        with pytest.raises(ShiftError) as exc_info:
            close_shift(cashier_a, cashier_shift.id, 5000, PASSWORD, denominations={"2000": 2})

        assert "does not match" in str(exc_info.value)
        db_session.rollback()
        assert cashier_shift.status == "open"
        assert db_session.query(CashDenomination).filter_by(shift_id=cashier_shift.id).count() == 0

    def test_denominations_stored(self, db_session, cashier_a, manager_a, cashier_shift):
        close_shift(cashier_a, cashier_shift.id, 5000, PASSWORD, denominations={"2000": 2, "500": 2, "100": 0})

        record = db_session.query(CashDenomination).filter_by(shift_id=cashier_shift.id).one()
        assert record.total_cents == 5000
        assert json.loads(record.counts_json) == {"2000": 2, "500": 2}

    def test_closed_shift_refuses_cash_movement(self, cashier_a, manager_a, cashier_shift):
        close_shift(cashier_a, cashier_shift.id, 5000, PASSWORD)

        with pytest.raises(ShiftError):
            record_cash_in_out(cashier_a, cashier_shift.id, "cash_in", 100, "Late float")


class TestReadings:

    def test_x_reading_counts_up(self, cashier_a, location_a1, stocked_a, cashier_shift):
        _sell(cashier_a, location_a1, stocked_a, [{"method": "card", "amount_cents": 11200}])

        first = x_reading(cashier_a, cashier_shift.id)
        second = x_reading(cashier_a, cashier_shift.id)

        assert first["reading_number"] == 1
        assert second["reading_number"] == 2
        assert second["payments_by_method"] == {"card": 11200}
        assert second["expected_cash_cents"] == 5000
        assert second["running_totals"]["transactions"] == 1

    def test_z_counter_and_accumulation_per_location(self, db_session, cashier_a, manager_a,
                                                     location_a1, stocked_a):
        for _ in range(2):
            shift = open_shift(cashier_a, location_a1.id, 0)
            _sell(cashier_a, location_a1, stocked_a, [{"method": "cash", "amount_cents": 11200}])
            close_shift(cashier_a, shift.id, 11200, PASSWORD)

        readings = db_session.query(ZReading).order_by(ZReading.z_counter).all()
        assert [r.z_counter for r in readings] == [1, 2]
        assert readings[1].previous_accumulated_sales_cents == 11200
        assert readings[1].sales_for_the_day_cents == 11200
        assert readings[1].accumulated_sales_cents == 22400


class TestShiftAPI:

    def test_open_current_close(self, client, cashier_a, manager_a, location_a1, stocked_a):
        headers = auth_headers(get_auth_token(client, cashier_a.username))

        resp = client.post("/api/shifts", json={"location_id": location_a1.id, "beginning_cash_cents": 5000},
                           headers=headers)
        assert resp.status_code == 201
        shift_id = resp.json["id"]

        current = client.get("/api/shifts/current", headers=headers)
        assert current.json["shift"]["id"] == shift_id
        assert current.json["shift"]["system_cash_cents"] == 5000

        movement = client.post(f"/api/shifts/{shift_id}/cash-in-out",
                               json={"type": "cash_out", "amount_cents": 9999, "reason": "Too much"},
                               headers=headers)
        assert movement.status_code == 400

        denied = client.post(f"/api/shifts/{shift_id}/close",
                             json={"ending_cash_cents": 5000, "manager_password": "Wrong123!"},
                             headers=headers)
        assert denied.status_code == 403

        closed = client.post(f"/api/shifts/{shift_id}/close",
                             json={"ending_cash_cents": 5000, "manager_password": PASSWORD},
                             headers=headers)
        assert closed.status_code == 200
        assert closed.json["variance"] == 0
        assert closed.json["z_reading"]["z_counter"] == 1

        assert client.get("/api/shifts/current", headers=headers).json["shift"] is None

    def test_other_cashier_cannot_read_shift(self, client, business_a, location_a1, cashier_shift):
        other = _make_user(business_a, location_a1, "cashier_two", CASHIER)
        headers = auth_headers(get_auth_token(client, other.username))

        resp = client.get(f"/api/shifts/{cashier_shift.id}", headers=headers)
        assert resp.status_code == 403
