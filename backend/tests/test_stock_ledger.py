"""
Stock ledger tests.

Every stock change writes one StockTransaction and one ProductHistory row
and moves the cached balance by the same amount. Opening stock is a
one-time, lockable entry; later differences go through corrections.
"""

import pytest

from storeline.extensions import db
from storeline.models import ProductHistory, StockTransaction, VariationLocationDetails
from storeline.services.inventory_service import CorrectionError, approve_correction, create_correction
from storeline.services.opening_stock_service import (
    OpeningStockError,
    OpeningStockLockedError,
    lock_opening_stock,
    set_opening_stock,
    unlock_opening_stock,
)
from storeline.services.sod_service import SODViolationError
from storeline.services.stock_service import (
    StockError,
    batch_check_stock_availability,
    deduct_stock,
    find_duplicate_history,
    get_current_stock,
    verify_ledger_consistency,
)


def _deduct(variation, location, quantity, user):
    return deduct_stock(
        business_id=variation.product.business_id,
        variation_id=variation.id,
        location_id=location.id,
        quantity=quantity,
        transaction_type="adjustment",
        user_id=user.id,
        reference_type="test",
        reference_id=1,
    )


class TestDualLedger:

    def test_opening_stock_writes_both_ledgers(self, db_session, stocked_a, location_a1):
        txn = db_session.query(StockTransaction).filter_by(variation_id=stocked_a.id).one()
        history = db_session.query(ProductHistory).filter_by(variation_id=stocked_a.id).one()

        assert txn.type == "opening_stock"
        assert txn.quantity == 100
        assert txn.balance_qty == 100
        assert history.stock_transaction_id == txn.id
        assert history.quantity_change == 100
        assert history.balance_quantity == 100
        assert get_current_stock(stocked_a.id, location_a1.id) == 100

    def test_deduction_keeps_ledgers_consistent(self, db_session, admin_a, stocked_a, location_a1):
        movement = _deduct(stocked_a, location_a1, 30, admin_a)
        db_session.commit()

        assert movement.previous_qty == 100
        assert movement.new_qty == 70
        assert movement.transaction.quantity == -30
        report = verify_ledger_consistency(admin_a.business_id)
        assert report["consistent"] is True
        assert report["checked"] == 1

    def test_insufficient_stock_message(self, db_session, admin_a, stocked_a, location_a1):
        with pytest.raises(StockError) as exc_info:
            _deduct(stocked_a, location_a1, 130, admin_a)

        assert str(exc_info.value) == "Insufficient stock. Current: 100, Requested: 130, Shortage: 30"
        db_session.rollback()
        assert get_current_stock(stocked_a.id, location_a1.id) == 100

    def test_batch_check_sums_repeated_lines(self, stocked_a, location_a1):
        results = batch_check_stock_availability(
            [{"variation_id": stocked_a.id, "quantity": 60}, {"variation_id": stocked_a.id, "quantity": 50}],
            location_a1.id,
        )

        assert len(results) == 1
        assert results[0]["available"] is False
        assert results[0]["requested"] == 110
        assert results[0]["shortage"] == 10

    def test_tampered_balance_is_reported(self, db_session, admin_a, stocked_a, location_a1):
        details = db_session.query(VariationLocationDetails).filter_by(
            variation_id=stocked_a.id, location_id=location_a1.id
        ).one()
        details.qty_available = 90
        db_session.commit()

        report = verify_ledger_consistency(admin_a.business_id)
        codes = {issue["code"] for issue in report["issues"]}
        assert report["consistent"] is False
        assert {"SUM_MISMATCH", "BALANCE_MISMATCH", "HISTORY_BALANCE_MISMATCH"} <= codes

    @pytest.mark.parametrize("shares_link", [False, True])
    def test_duplicate_history_detected(self, db_session, admin_a, stocked_a, location_a1, shares_link):
        original = db_session.query(ProductHistory).filter_by(variation_id=stocked_a.id).one()
        db_session.add(ProductHistory(
            business_id=original.business_id,
            location_id=original.location_id,
            product_id=original.product_id,
            variation_id=original.variation_id,
            transaction_type=original.transaction_type,
            transaction_date=original.transaction_date,
            reference_type=original.reference_type,
            reference_id=original.reference_id,
            quantity_change=original.quantity_change,
            balance_quantity=original.balance_quantity,
            created_by=original.created_by,
            stock_transaction_id=original.stock_transaction_id if shares_link else None,
        ))
        db_session.commit()

        duplicates = find_duplicate_history(admin_a.business_id)
        assert len(duplicates) == 1
        assert duplicates[0]["occurrences"] == 2
        assert duplicates[0]["ledger_transactions"] == 1

    def test_consistency_api(self, client, manager_headers, stocked_a):
        resp = client.get("/api/inventory/consistency", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["consistent"] is True
        assert resp.json["duplicate_history"] == []


class TestOpeningStock:

    def test_posting_locks(self, db_session, manager_a, product_a, variation_a, location_a1):
        set_opening_stock(manager_a, product_a.id, variation_a.id, location_a1.id, 40)

        details = db_session.query(VariationLocationDetails).filter_by(
            variation_id=variation_a.id, location_id=location_a1.id
        ).one()
        assert details.opening_stock_locked is True
        assert details.opening_stock_set_by == manager_a.id

    def test_locked_without_override_is_refused(self, db_session, manager_a, product_a, variation_a, location_a1):
        set_opening_stock(manager_a, product_a.id, variation_a.id, location_a1.id, 40)

        with pytest.raises(OpeningStockLockedError):
            set_opening_stock(manager_a, product_a.id, variation_a.id, location_a1.id, 50)

    def test_existing_movements_require_correction(self, db_session, admin_a, stocked_a, product_a, location_a1):
        # Super Admin may modify locked rows, but the ledger already has entries
        with pytest.raises(OpeningStockError) as exc_info:
            set_opening_stock(admin_a, product_a.id, stocked_a.id, location_a1.id, 50)

        assert "inventory correction" in str(exc_info.value)

    def test_quantity_must_be_positive(self, db_session, manager_a, product_a, variation_a, location_a1):
        with pytest.raises(OpeningStockError):
            set_opening_stock(manager_a, product_a.id, variation_a.id, location_a1.id, 0)

    def test_unlock_requires_reason(self, db_session, admin_a, stocked_a, location_a1):
        with pytest.raises(OpeningStockError):
            unlock_opening_stock(admin_a, stocked_a.id, location_a1.id, "  ")

    def test_unlock_and_relock(self, db_session, admin_a, stocked_a, location_a1):
        unlocked = unlock_opening_stock(admin_a, stocked_a.id, location_a1.id, "Recount after move")
        assert unlocked["opening_stock_locked"] is False

        locked = lock_opening_stock(admin_a, stocked_a.id, location_a1.id)
        assert locked["opening_stock_locked"] is True

    def test_locked_api_returns_403_with_flag(self, client, db_session, manager_a, manager_headers,
                                              product_a, variation_a, location_a1):
        body = {"variation_id": variation_a.id, "location_id": location_a1.id, "quantity": 10}

        first = client.post(f"/api/products/{product_a.id}/opening-stock", json=body, headers=manager_headers)
        assert first.status_code == 201
        assert first.json["new_quantity"] == 10

        second = client.post(f"/api/products/{product_a.id}/opening-stock", json=body, headers=manager_headers)
        assert second.status_code == 403
        assert second.json["locked"] is True

    def test_opening_stock_outside_own_location_is_403(self, client, manager_headers, product_a,
                                                       variation_a, location_a2):
        resp = client.post(
            f"/api/products/{product_a.id}/opening-stock",
            json={"variation_id": variation_a.id, "location_id": location_a2.id, "quantity": 10},
            headers=manager_headers,
        )
        assert resp.status_code == 403


class TestCorrections:

    def test_correction_posts_difference_on_approval(self, db_session, clerk_a, manager_a, stocked_a, location_a1):
        correction = create_correction(clerk_a, stocked_a.id, location_a1.id, 95, "Cycle count")
        assert correction.status == "pending"
        assert correction.difference == -5
        assert get_current_stock(stocked_a.id, location_a1.id) == 100

        approved = approve_correction(manager_a, correction.id)

        assert approved.status == "approved"
        assert approved.approved_by == manager_a.id
        assert get_current_stock(stocked_a.id, location_a1.id) == 95
        txn = db_session.query(StockTransaction).filter_by(id=approved.stock_transaction_id).one()
        assert txn.type == "correction"
        assert txn.quantity == -5

    def test_difference_taken_at_approval_time(self, db_session, clerk_a, manager_a, admin_a,
                                               stocked_a, location_a1):
        correction = create_correction(clerk_a, stocked_a.id, location_a1.id, 95, "Cycle count")
        _deduct(stocked_a, location_a1, 10, admin_a)
        db_session.commit()

        approved = approve_correction(manager_a, correction.id)

        assert approved.difference == 5
        assert get_current_stock(stocked_a.id, location_a1.id) == 95

    def test_creator_cannot_approve_own_correction(self, db_session, manager_a, stocked_a, location_a1):
        correction = create_correction(manager_a, stocked_a.id, location_a1.id, 99, "Broken bag")

        with pytest.raises(SODViolationError) as exc_info:
            approve_correction(manager_a, correction.id)

        assert exc_info.value.code == "SOD_CORRECTION_CREATOR_CANNOT_APPROVE"
        db_session.rollback()
        assert get_current_stock(stocked_a.id, location_a1.id) == 100

    def test_self_approval_over_http_is_403(self, client, manager_a, manager_headers, stocked_a, location_a1):
        correction = create_correction(manager_a, stocked_a.id, location_a1.id, 99, "Broken bag")

        resp = client.post(f"/api/inventory/corrections/{correction.id}/approve", headers=manager_headers)

        assert resp.status_code == 403
        assert resp.json["code"] == "SOD_CORRECTION_CREATOR_CANNOT_APPROVE"

    def test_count_to_zero_after_sales(self, db_session, clerk_a, manager_a, admin_a, stocked_a, location_a1):
        correction = create_correction(clerk_a, stocked_a.id, location_a1.id, 0, "Shelf empty")
        _deduct(stocked_a, location_a1, 60, admin_a)
        db_session.commit()

        approved = approve_correction(manager_a, correction.id)

        assert approved.difference == -40
        assert get_current_stock(stocked_a.id, location_a1.id) == 0
        assert verify_ledger_consistency(manager_a.business_id)["consistent"] is True

    def test_exempt_role_may_approve_own_correction(self, db_session, admin_a, stocked_a, location_a1):
        correction = create_correction(admin_a, stocked_a.id, location_a1.id, 99, "Broken bag")

        assert approve_correction(admin_a, correction.id).status == "approved"

    def test_correction_approved_twice_refused(self, db_session, clerk_a, manager_a, stocked_a, location_a1):
        correction = create_correction(clerk_a, stocked_a.id, location_a1.id, 99, "Broken bag")
        approve_correction(manager_a, correction.id)

        with pytest.raises(CorrectionError):
            approve_correction(manager_a, correction.id)

    def test_ledgers_consistent_after_correction(self, db_session, clerk_a, manager_a, stocked_a, location_a1):
        correction = create_correction(clerk_a, stocked_a.id, location_a1.id, 120, "Found stock")
        approve_correction(manager_a, correction.id)

        assert verify_ledger_consistency(manager_a.business_id)["consistent"] is True
        assert db.session.query(ProductHistory).count() == 2
