"""
Return tests: customer returns against completed sales (restock, prorated
refund, shift cash) and supplier returns (pending, approval deducts stock,
separation of duties, purchase order limits).
"""

import pytest

from storeline.models import StockTransaction
from storeline.services.permission_service import PermissionDeniedError
from storeline.services.purchase_service import (
    approve_purchase,
    approve_receipt,
    create_purchase,
    create_receipt,
    create_supplier,
)
from storeline.services.report_service import sales_summary
from storeline.services.return_service import (
    ReturnError,
    approve_supplier_return,
    cancel_supplier_return,
    create_customer_return,
    create_supplier_return,
    list_customer_returns,
)
from storeline.services.sales_service import SaleError, create_sale, void_sale
from storeline.services.shift_service import compute_system_cash, sales_breakdown
from storeline.services.sod_service import SODViolationError
from storeline.services.stock_service import get_current_stock, verify_ledger_consistency
from conftest import PASSWORD


def _ring(user, location, variation, quantity=2, method="cash", **kwargs):
    return create_sale(
        user,
        location_id=location.id,
        items=[{"variation_id": variation.id, "quantity": quantity}],
        payments=[{"method": method, "amount_cents": 11200 * quantity}],
        **kwargs,
    )


def _return(user, sale, quantity=1, condition="resellable", **kwargs):
    return create_customer_return(
        user,
        sale.id,
        [{"sale_item_id": sale.items[0].id, "quantity": quantity, "condition": condition}],
        kwargs.pop("reason", "Wrong size"),
        kwargs.pop("manager_password", PASSWORD),
        **kwargs,
    )


@pytest.fixture
def supplier(manager_a):
    return create_supplier(manager_a, "Mekeni Wholesale")


@pytest.fixture
def received_po(manager_a, manager_a2, clerk_a, supplier, location_a1, variation_a):
    """PO for 20 units with 12 received at A1."""
    purchase = create_purchase(
        manager_a, supplier.id, location_a1.id,
        [{"variation_id": variation_a.id, "quantity": 20, "unit_cost_cents": 6000}],
    )
    approve_purchase(manager_a2, purchase.id)
    receipt = create_receipt(clerk_a, purchase.id, [{"purchase_item_id": purchase.items[0].id,
                                                     "quantity_received": 12}])
    approve_receipt(manager_a2, receipt.id)
    return purchase


class TestCustomerReturns:

    def test_return_restocks_and_refunds_from_shift(self, db_session, cashier_a, location_a1, stocked_a,
                                                    cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)
        assert get_current_stock(stocked_a.id, location_a1.id) == 98

        customer_return = _return(cashier_a, sale)

        assert customer_return.return_number.startswith("RET-")
        assert customer_return.refund_cents == 11200
        assert customer_return.shift_id == cashier_shift.id
        assert get_current_stock(stocked_a.id, location_a1.id) == 99
        assert cashier_shift.running_refund_cents == 11200
        assert cashier_shift.running_return_count == 1
        assert compute_system_cash(cashier_shift) == 5000 + 22400 - 11200

        breakdown = sales_breakdown(cashier_shift)
        assert breakdown["cash_refund_cents"] == 11200
        assert breakdown["return_count"] == 1

        txn = db_session.query(StockTransaction).filter_by(
            reference_type="customer_return", reference_id=customer_return.id
        ).one()
        assert txn.type == "customer_return"
        assert txn.quantity == 1
        assert verify_ledger_consistency(cashier_a.business_id)["consistent"] is True

    def test_damaged_units_are_not_restocked(self, db_session, cashier_a, location_a1, stocked_a,
                                            cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)

        customer_return = _return(cashier_a, sale, condition="damaged")

        assert customer_return.refund_cents == 11200
        assert get_current_stock(stocked_a.id, location_a1.id) == 98
        assert db_session.query(StockTransaction).filter_by(reference_type="customer_return").count() == 0

    def test_cannot_return_more_than_sold(self, db_session, cashier_a, location_a1, stocked_a, cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)
        _return(cashier_a, sale)

        with pytest.raises(ReturnError, match="available: 1"):
            _return(cashier_a, sale, quantity=2)
        db_session.rollback()

        assert get_current_stock(stocked_a.id, location_a1.id) == 99
        assert len(list_customer_returns(cashier_a, sale_id=sale.id)) == 1

    def test_discount_refunded_pro_rata(self, cashier_a, location_a1, stocked_a, cashier_shift):
        sale = create_sale(
            cashier_a,
            location_id=location_a1.id,
            items=[{"variation_id": stocked_a.id, "quantity": 2}],
            payments=[{"method": "cash", "amount_cents": 16000}],
            discount_type="senior",
        )
        assert sale.total_cents == 16000

        first = _return(cashier_a, sale)
        last = _return(cashier_a, sale)

        assert first.refund_cents == 8000
        assert first.refund_cents + last.refund_cents == sale.total_cents

    def test_voided_sale_cannot_be_returned(self, db_session, cashier_a, manager_a, location_a1, stocked_a,
                                            cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)
        void_sale(manager_a, sale.id, "Rang twice", PASSWORD)

        with pytest.raises(ReturnError, match="voided"):
            _return(cashier_a, sale)

    def test_sale_with_return_cannot_be_voided(self, db_session, cashier_a, manager_a, location_a1, stocked_a,
                                               cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)
        _return(cashier_a, sale)

        with pytest.raises(SaleError, match="returns"):
            void_sale(manager_a, sale.id, "Rang twice", PASSWORD)
        db_session.rollback()

        assert sale.status == "completed"

    def test_cash_refund_limited_to_drawer(self, db_session, cashier_a, location_a1, stocked_a, cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a, quantity=1, method="card")

        with pytest.raises(ReturnError, match="drawer"):
            _return(cashier_a, sale)
        db_session.rollback()

        card = _return(cashier_a, sale, refund_method="card")
        assert card.refund_method == "card"
        assert compute_system_cash(cashier_shift) == 5000

    def test_unpaid_credit_sale_refused(self, cashier_a, location_a1, stocked_a, cashier_shift):
        sale = create_sale(
            cashier_a,
            location_id=location_a1.id,
            items=[{"variation_id": stocked_a.id, "quantity": 1}],
            payments=[],
            is_credit=True,
            customer_name="Reyes Bakery",
        )

        with pytest.raises(ReturnError, match="credit balance"):
            _return(cashier_a, sale)

    def test_needs_open_shift_at_sale_location(self, cashier_a, manager_a, location_a1, stocked_a, cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)

        with pytest.raises(ReturnError, match="open shift"):
            _return(manager_a, sale)

    def test_refunds_in_sales_summary(self, cashier_a, location_a1, location_a2, stocked_a, cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)
        _return(cashier_a, sale)

        summary = sales_summary(cashier_a.business_id, location_id=location_a1.id)
        assert summary["return_count"] == 1
        assert summary["refund_cents"] == 11200
        assert sales_summary(cashier_a.business_id, location_id=location_a2.id)["refund_cents"] == 0

    def test_return_api(self, client, cashier_headers, cashier_a, location_a1, stocked_a, cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)

        resp = client.post("/api/returns/customer", headers=cashier_headers, json={
            "sale_id": sale.id,
            "items": [{"sale_item_id": sale.items[0].id, "quantity": 1}],
            "reason": "Torn packaging",
            "manager_password": PASSWORD,
        })
        assert resp.status_code == 201
        assert resp.json["refund_cents"] == 11200

        wrong = client.post("/api/returns/customer", headers=cashier_headers, json={
            "sale_id": sale.id,
            "items": [{"sale_item_id": sale.items[0].id, "quantity": 1}],
            "reason": "Torn packaging",
            "manager_password": "not-it",
        })
        assert wrong.status_code == 403

        listed = client.get(f"/api/returns/customer?sale_id={sale.id}", headers=cashier_headers)
        assert listed.json["count"] == 1

    def test_other_business_sale_is_404(self, client, admin_b_headers, cashier_a, location_a1, stocked_a,
                                        cashier_shift):
        sale = _ring(cashier_a, location_a1, stocked_a)

        resp = client.post("/api/returns/customer", headers=admin_b_headers, json={
            "sale_id": sale.id,
            "items": [{"sale_item_id": sale.items[0].id, "quantity": 1}],
            "reason": "Torn packaging",
            "manager_password": PASSWORD,
        })
        assert resp.status_code == 404


class TestSupplierReturns:

    def test_pending_then_approved_deducts_stock(self, db_session, manager_a, manager_a2, supplier, received_po,
                                                 location_a1, variation_a):
        assert get_current_stock(variation_a.id, location_a1.id) == 12

        supplier_return = create_supplier_return(
            manager_a, supplier.id, location_a1.id,
            [{"variation_id": variation_a.id, "quantity": 5, "condition": "damaged"}],
            "Crushed in transit",
            purchase_id=received_po.id,
        )
        assert supplier_return.status == "pending"
        assert supplier_return.return_number.startswith("SR-")
        assert supplier_return.total_cents == 5 * 6000
        assert get_current_stock(variation_a.id, location_a1.id) == 12

        approved = approve_supplier_return(manager_a2, supplier_return.id)

        assert approved.status == "approved"
        assert approved.approved_by == manager_a2.id
        assert get_current_stock(variation_a.id, location_a1.id) == 7
        txn = db_session.query(StockTransaction).filter_by(reference_type="supplier_return").one()
        assert txn.type == "supplier_return"
        assert txn.quantity == -5
        assert verify_ledger_consistency(manager_a.business_id)["consistent"] is True

    def test_creator_cannot_approve(self, db_session, manager_a, supplier, received_po, location_a1, variation_a):
        supplier_return = create_supplier_return(
            manager_a, supplier.id, location_a1.id,
            [{"variation_id": variation_a.id, "quantity": 2, "condition": "defective"}],
            "Seal broken",
            purchase_id=received_po.id,
        )

        with pytest.raises(SODViolationError) as exc_info:
            approve_supplier_return(manager_a, supplier_return.id)
        db_session.rollback()

        assert exc_info.value.code == "SOD_RETURN_CREATOR_CANNOT_APPROVE"
        assert supplier_return.status == "pending"
        assert get_current_stock(variation_a.id, location_a1.id) == 12

    def test_limited_to_received_quantity(self, db_session, manager_a, supplier, received_po,
                                          location_a1, variation_a):
        create_supplier_return(
            manager_a, supplier.id, location_a1.id,
            [{"variation_id": variation_a.id, "quantity": 10, "condition": "damaged"}],
            "Mould",
            purchase_id=received_po.id,
        )

        with pytest.raises(ReturnError, match="returnable: 2"):
            create_supplier_return(
                manager_a, supplier.id, location_a1.id,
                [{"variation_id": variation_a.id, "quantity": 3, "condition": "damaged"}],
                "Mould",
                purchase_id=received_po.id,
            )

    def test_cancelled_return_frees_quantity(self, manager_a, manager_a2, supplier, received_po,
                                             location_a1, variation_a):
        first = create_supplier_return(
            manager_a, supplier.id, location_a1.id,
            [{"variation_id": variation_a.id, "quantity": 12, "condition": "warranty_claim"}],
            "Recall",
            purchase_id=received_po.id,
        )
        cancelled = cancel_supplier_return(manager_a2, first.id, "Supplier refused the recall")
        assert cancelled.status == "cancelled"
        assert cancelled.cancel_reason == "Supplier refused the recall"

        again = create_supplier_return(
            manager_a, supplier.id, location_a1.id,
            [{"variation_id": variation_a.id, "quantity": 12, "condition": "warranty_claim"}],
            "Recall accepted",
            purchase_id=received_po.id,
        )
        assert again.status == "pending"

        with pytest.raises(ReturnError, match="already cancelled"):
            approve_supplier_return(manager_a2, first.id)

    def test_without_po_needs_stock_and_cost(self, db_session, manager_a, supplier, stocked_a, location_a1):
        with pytest.raises(ReturnError, match="unit_cost_cents"):
            create_supplier_return(
                manager_a, supplier.id, location_a1.id,
                [{"variation_id": stocked_a.id, "quantity": 1, "condition": "damaged"}],
                "Dented",
            )

        with pytest.raises(ReturnError, match="Insufficient stock"):
            create_supplier_return(
                manager_a, supplier.id, location_a1.id,
                [{"variation_id": stocked_a.id, "quantity": 101, "condition": "damaged",
                  "unit_cost_cents": 6000}],
                "Dented",
            )

    def test_clerk_cannot_approve(self, clerk_a, manager_a, supplier, received_po, location_a1, variation_a):
        supplier_return = create_supplier_return(
            clerk_a, supplier.id, location_a1.id,
            [{"variation_id": variation_a.id, "quantity": 1, "condition": "damaged"}],
            "Leaking",
            purchase_id=received_po.id,
        )

        with pytest.raises(PermissionDeniedError):
            approve_supplier_return(clerk_a, supplier_return.id)

    def test_self_approval_over_http_is_403(self, client, manager_headers, supplier, received_po,
                                            location_a1, variation_a):
        created = client.post("/api/returns/supplier", headers=manager_headers, json={
            "supplier_id": supplier.id,
            "location_id": location_a1.id,
            "purchase_id": received_po.id,
            "return_reason": "Crushed in transit",
            "items": [{"variation_id": variation_a.id, "quantity": 1, "condition": "damaged"}],
        })
        assert created.status_code == 201

        resp = client.post(f"/api/returns/supplier/{created.json['id']}/approve", headers=manager_headers)

        assert resp.status_code == 403
        assert resp.json["code"] == "SOD_RETURN_CREATOR_CANNOT_APPROVE"
