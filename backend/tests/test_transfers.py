"""
Stock transfer workflow tests.

Covers the state machine, stock movement at send/complete/cancel, item
verification and the separation-of-duties rules between creator, checker,
sender and receiver.
"""

import re

import pytest

from storeline.models import StockTransaction
from storeline.services.sod_service import SODViolationError, update_sod_settings, validate_transfer_sod
from storeline.services.stock_service import get_current_stock, verify_ledger_consistency
from storeline.services.transfer_service import (
    TransferError,
    cancel_transfer,
    check_approve,
    check_reject,
    complete_transfer,
    create_transfer,
    list_transfers,
    mark_arrived,
    send_transfer,
    start_verification,
    submit_for_check,
    verify_item,
)
from storeline.services.user_service import add_user_location
from conftest import auth_headers, get_auth_token


@pytest.fixture
def draft(clerk_a, location_a1, location_a2, stocked_a):
    """Draft transfer of 10 units A1 -> A2 created by clerk_a."""
    return create_transfer(
        clerk_a, location_a1.id, location_a2.id,
        [{"variation_id": stocked_a.id, "quantity": 10}],
        notes="Weekly replenishment",
    )


@pytest.fixture
def in_transit(draft, clerk_a, manager_a, manager_a2):
    submit_for_check(clerk_a, draft.id)
    check_approve(manager_a, draft.id)
    return send_transfer(manager_a2, draft.id)


@pytest.fixture
def verifying(in_transit, receiver_a):
    mark_arrived(receiver_a, in_transit.id)
    return start_verification(receiver_a, in_transit.id)


class TestTransferLifecycle:

    def test_create_draft(self, draft, clerk_a):
        assert draft.status == "draft"
        assert draft.created_by == clerk_a.id
        assert draft.stock_deducted is False
        assert re.fullmatch(r"TR-\d{6}-0001", draft.transfer_number)
        assert len(draft.items) == 1

    def test_repeated_lines_are_merged(self, clerk_a, location_a1, location_a2, stocked_a):
        transfer = create_transfer(
            clerk_a, location_a1.id, location_a2.id,
            [{"variation_id": stocked_a.id, "quantity": 4}, {"variation_id": stocked_a.id, "quantity": 6}],
        )
        assert [i.quantity for i in transfer.items] == [10]

    def test_full_workflow_moves_stock(self, verifying, receiver_a, location_a1, location_a2, stocked_a):
        item = verifying.items[0]
        verified = verify_item(receiver_a, verifying.id, item.id, 10)
        assert verified.status == "verified"

        completed = complete_transfer(receiver_a, verifying.id)

        assert completed.status == "completed"
        assert completed.completed_by == receiver_a.id
        assert get_current_stock(stocked_a.id, location_a1.id) == 90
        assert get_current_stock(stocked_a.id, location_a2.id) == 10
        assert verify_ledger_consistency(receiver_a.business_id)["consistent"] is True

    def test_send_deducts_source_once(self, db_session, in_transit, location_a1, stocked_a):
        assert in_transit.status == "in_transit"
        assert in_transit.stock_deducted is True
        assert get_current_stock(stocked_a.id, location_a1.id) == 90

        outs = db_session.query(StockTransaction).filter_by(
            type="transfer_out", reference_id=in_transit.id
        ).all()
        assert len(outs) == 1
        assert outs[0].quantity == -10

    def test_arrival_records_receiver(self, in_transit, receiver_a):
        arrived = mark_arrived(receiver_a, in_transit.id)

        assert arrived.status == "arrived"
        assert arrived.received_by == receiver_a.id
        assert arrived.arrived_by == receiver_a.id

    def test_short_receipt_flags_discrepancy(self, verifying, receiver_a, location_a1, location_a2, stocked_a):
        item = verifying.items[0]
        verify_item(receiver_a, verifying.id, item.id, 8, notes="Two bags torn")
        complete_transfer(receiver_a, verifying.id)

        assert item.has_discrepancy is True
        assert item.discrepancy_notes == "Two bags torn"
        assert get_current_stock(stocked_a.id, location_a1.id) == 90
        assert get_current_stock(stocked_a.id, location_a2.id) == 8

    def test_cannot_receive_more_than_sent(self, verifying, receiver_a):
        with pytest.raises(TransferError):
            verify_item(receiver_a, verifying.id, verifying.items[0].id, 11)

    def test_complete_requires_every_item_verified(self, verifying, receiver_a):
        with pytest.raises(TransferError) as exc_info:
            complete_transfer(receiver_a, verifying.id)

        assert "verified" in str(exc_info.value)

    def test_send_requires_checked_status(self, draft, manager_a2):
        with pytest.raises(TransferError):
            send_transfer(manager_a2, draft.id)

    def test_check_reject_returns_to_draft(self, draft, clerk_a, manager_a):
        submit_for_check(clerk_a, draft.id)
        rejected = check_reject(manager_a, draft.id, "Wrong quantity")

        assert rejected.status == "draft"
        assert rejected.check_notes == "Wrong quantity"
        assert rejected.checked_by is None

    def test_same_location_refused(self, clerk_a, location_a1, stocked_a):
        with pytest.raises(TransferError):
            create_transfer(clerk_a, location_a1.id, location_a1.id, [{"variation_id": stocked_a.id, "quantity": 1}])

    def test_insufficient_source_stock_refused(self, clerk_a, location_a1, location_a2, stocked_a):
        with pytest.raises(TransferError) as exc_info:
            create_transfer(clerk_a, location_a1.id, location_a2.id, [{"variation_id": stocked_a.id, "quantity": 101}])

        assert "Insufficient stock" in str(exc_info.value)

    def test_receiver_sees_incoming_transfer(self, draft, receiver_a):
        assert [t.id for t in list_transfers(receiver_a)] == [draft.id]


class TestTransferCancel:

    def test_cancel_in_transit_restores_source(self, db_session, in_transit, manager_a, location_a1, stocked_a):
        cancelled = cancel_transfer(manager_a, in_transit.id, "Truck unavailable")

        assert cancelled.status == "cancelled"
        assert cancelled.stock_deducted is False
        assert cancelled.cancel_reason == "Truck unavailable"
        assert get_current_stock(stocked_a.id, location_a1.id) == 100
        restore = db_session.query(StockTransaction).filter_by(reference_type="transfer_cancel").one()
        assert restore.type == "adjustment"
        assert restore.quantity == 10

    def test_cancel_draft_moves_nothing(self, db_session, draft, manager_a, location_a1, stocked_a):
        cancel_transfer(manager_a, draft.id, "Not needed")

        assert get_current_stock(stocked_a.id, location_a1.id) == 100
        assert db_session.query(StockTransaction).count() == 1

    def test_completed_transfer_cannot_be_cancelled(self, verifying, receiver_a, manager_a):
        verify_item(receiver_a, verifying.id, verifying.items[0].id, 10)
        complete_transfer(receiver_a, verifying.id)

        with pytest.raises(TransferError):
            cancel_transfer(manager_a, verifying.id, "Too late")


class TestTransferSeparationOfDuties:

    def test_creator_cannot_check(self, draft, clerk_a):
        submit_for_check(clerk_a, draft.id)

        with pytest.raises(SODViolationError) as exc_info:
            check_approve(clerk_a, draft.id)

        assert exc_info.value.code == "SOD_CREATOR_CANNOT_CHECK"
        assert exc_info.value.rule_field == "allow_creator_to_check"

    def test_checker_cannot_send(self, draft, clerk_a, manager_a):
        submit_for_check(clerk_a, draft.id)
        check_approve(manager_a, draft.id)

        with pytest.raises(SODViolationError) as exc_info:
            send_transfer(manager_a, draft.id)

        assert exc_info.value.code == "SOD_CHECKER_CANNOT_SEND"

    def test_creator_cannot_send(self, draft, clerk_a, manager_a):
        submit_for_check(clerk_a, draft.id)
        check_approve(manager_a, draft.id)

        with pytest.raises(SODViolationError) as exc_info:
            send_transfer(clerk_a, draft.id)

        assert exc_info.value.code == "SOD_CREATOR_CANNOT_SEND"

    def test_sender_cannot_check(self, in_transit, manager_a2):
        result = validate_transfer_sod(in_transit, manager_a2, "check")

        assert result.allowed is False
        assert result.code == "SOD_SENDER_CANNOT_CHECK"
        assert result.rule_field == "allow_sender_to_check"
        with pytest.raises(SODViolationError) as exc_info:
            result.raise_if_denied()
        assert exc_info.value.code == "SOD_SENDER_CANNOT_CHECK"

    def test_creator_cannot_receive(self, db_session, in_transit, clerk_a, admin_a, location_a2):
        add_user_location(admin_a, clerk_a.id, location_a2.id)

        with pytest.raises(SODViolationError) as exc_info:
            mark_arrived(clerk_a, in_transit.id)

        assert exc_info.value.code == "SOD_CREATOR_CANNOT_RECEIVE"
        assert exc_info.value.rule_field == "allow_creator_to_receive"
        db_session.rollback()
        assert in_transit.status == "in_transit"

    def test_creator_cannot_complete(self, verifying, clerk_a, receiver_a, admin_a, location_a2):
        verify_item(receiver_a, verifying.id, verifying.items[0].id, 10)
        add_user_location(admin_a, clerk_a.id, location_a2.id)

        with pytest.raises(SODViolationError) as exc_info:
            complete_transfer(clerk_a, verifying.id)

        assert exc_info.value.code == "SOD_CREATOR_CANNOT_COMPLETE"

    def test_sender_cannot_complete(self, verifying, manager_a2, receiver_a, admin_a, location_a2):
        verify_item(receiver_a, verifying.id, verifying.items[0].id, 10)
        add_user_location(admin_a, manager_a2.id, location_a2.id)

        with pytest.raises(SODViolationError) as exc_info:
            complete_transfer(manager_a2, verifying.id)

        assert exc_info.value.code == "SOD_SENDER_CANNOT_COMPLETE"
        assert exc_info.value.rule_field == "allow_sender_to_complete"

    def test_setting_allows_sender_to_complete(self, verifying, manager_a2, receiver_a, admin_a, business_a,
                                               location_a2):
        verify_item(receiver_a, verifying.id, verifying.items[0].id, 10)
        add_user_location(admin_a, manager_a2.id, location_a2.id)
        update_sod_settings(business_a.id, admin_a, {"allow_sender_to_complete": True})

        assert complete_transfer(manager_a2, verifying.id).status == "completed"

    def test_receiver_complete_when_disallowed(self, verifying, receiver_a, admin_a, business_a):
        verify_item(receiver_a, verifying.id, verifying.items[0].id, 10)
        update_sod_settings(business_a.id, admin_a, {"allow_receiver_to_complete": False})

        with pytest.raises(SODViolationError) as exc_info:
            complete_transfer(receiver_a, verifying.id)

        assert exc_info.value.code == "SOD_RECEIVER_CANNOT_COMPLETE"

    def test_setting_allows_creator_to_check(self, draft, clerk_a, admin_a, business_a):
        update_sod_settings(business_a.id, admin_a, {"allow_creator_to_check": True})
        submit_for_check(clerk_a, draft.id)

        assert check_approve(clerk_a, draft.id).status == "checked"

    def test_enforcement_can_be_switched_off(self, draft, clerk_a, admin_a, business_a):
        update_sod_settings(business_a.id, admin_a, {"enforce_transfer_sod": False})
        submit_for_check(clerk_a, draft.id)
        check_approve(clerk_a, draft.id)

        assert send_transfer(clerk_a, draft.id).status == "in_transit"

    def test_exempt_role_bypasses_rules(self, admin_a, location_a1, location_a2, stocked_a):
        transfer = create_transfer(
            admin_a, location_a1.id, location_a2.id, [{"variation_id": stocked_a.id, "quantity": 5}]
        )
        submit_for_check(admin_a, transfer.id)
        check_approve(admin_a, transfer.id)

        assert send_transfer(admin_a, transfer.id).status == "in_transit"


class TestTransferAPI:

    def test_workflow_over_http(self, client, clerk_a, manager_a, manager_a2, receiver_a,
                                location_a1, location_a2, stocked_a):
        clerk = auth_headers(get_auth_token(client, clerk_a.username))
        checker = auth_headers(get_auth_token(client, manager_a.username))
        sender = auth_headers(get_auth_token(client, manager_a2.username))
        receiver = auth_headers(get_auth_token(client, receiver_a.username))

        resp = client.post("/api/transfers", json={
            "from_location_id": location_a1.id,
            "to_location_id": location_a2.id,
            "items": [{"variation_id": stocked_a.id, "quantity": 3}],
        }, headers=clerk)
        assert resp.status_code == 201
        transfer_id = resp.json["id"]
        item_id = resp.json["items"][0]["id"]

        assert client.post(f"/api/transfers/{transfer_id}/submit-for-check", headers=clerk).status_code == 200

        denied = client.post(f"/api/transfers/{transfer_id}/check-approve", headers=clerk)
        assert denied.status_code == 403
        assert denied.json["code"] == "SOD_CREATOR_CANNOT_CHECK"

        assert client.post(f"/api/transfers/{transfer_id}/check-approve", headers=checker).status_code == 200
        assert client.post(f"/api/transfers/{transfer_id}/send", headers=sender).status_code == 200
        assert client.post(f"/api/transfers/{transfer_id}/mark-arrived", headers=receiver).status_code == 200
        assert client.post(f"/api/transfers/{transfer_id}/start-verification", headers=receiver).status_code == 200

        resp = client.post(
            f"/api/transfers/{transfer_id}/verify-item",
            json={"item_id": item_id, "received_quantity": 3},
            headers=receiver,
        )
        assert resp.json["status"] == "verified"

        resp = client.post(f"/api/transfers/{transfer_id}/complete", headers=receiver)
        assert resp.status_code == 200
        assert resp.json["status"] == "completed"
        assert get_current_stock(stocked_a.id, location_a2.id) == 3

    def test_wrong_status_is_400(self, client, draft, manager_a2):
        headers = auth_headers(get_auth_token(client, manager_a2.username))

        resp = client.post(f"/api/transfers/{draft.id}/send", headers=headers)
        assert resp.status_code == 400

    def test_foreign_transfer_is_404(self, client, draft, admin_b_headers):
        resp = client.get(f"/api/transfers/{draft.id}", headers=admin_b_headers)
        assert resp.status_code == 404

    def test_creator_receive_is_403_with_code(self, client, in_transit, clerk_a, admin_a, location_a2):
        add_user_location(admin_a, clerk_a.id, location_a2.id)
        headers = auth_headers(get_auth_token(client, clerk_a.username))

        resp = client.post(f"/api/transfers/{in_transit.id}/mark-arrived", headers=headers)

        assert resp.status_code == 403
        assert resp.json["code"] == "SOD_CREATOR_CANNOT_RECEIVE"
        assert "cannot receive" in resp.json["error"]
