import pytest
from datetime import datetime

from storeline.services.expense_service import (
    ExpenseError,
    create_category,
    create_expense,
    expense_summary,
    list_expenses,
    update_expense,
    void_expense,
)
from storeline.services.permission_service import PermissionDeniedError
from storeline.services.tenant_service import LocationAccessError, TenantAccessError


@pytest.fixture
def utilities(manager_a):
    return create_category(manager_a, "Utilities", "Power and water")


@pytest.fixture
def supplies(manager_a):
    return create_category(manager_a, "Store Supplies")


class TestExpenseCategories:

    def test_duplicate_name_refused(self, manager_a, utilities):
        with pytest.raises(ExpenseError):
            create_category(manager_a, "Utilities")

    def test_same_name_in_other_business(self, admin_b, utilities):
        assert create_category(admin_b, "Utilities").business_id == admin_b.business_id


class TestExpenses:

    def test_create_and_summarise(self, manager_a, location_a1, utilities, supplies):
        create_expense(manager_a, location_a1.id, utilities.id, 250000, payee="Meralco")
        create_expense(manager_a, location_a1.id, utilities.id, 80000, payee="Maynilad")
        create_expense(manager_a, location_a1.id, supplies.id, 12000, description="Receipt paper")

        summary = expense_summary(manager_a.business_id, location_id=location_a1.id)

        assert summary["total_cents"] == 342000
        assert summary["count"] == 3
        assert summary["categories"] == [
            {"category_id": supplies.id, "category_name": "Store Supplies", "count": 1, "total_cents": 12000},
            {"category_id": utilities.id, "category_name": "Utilities", "count": 2, "total_cents": 330000},
        ]

    def test_amount_must_be_positive(self, manager_a, location_a1, utilities):
        with pytest.raises(ExpenseError):
            create_expense(manager_a, location_a1.id, utilities.id, 0)

    def test_location_must_be_accessible(self, manager_a, location_a2, utilities):
        with pytest.raises(LocationAccessError):
            create_expense(manager_a, location_a2.id, utilities.id, 1000)

    def test_summary_date_window(self, manager_a, location_a1, utilities):
        create_expense(manager_a, location_a1.id, utilities.id, 1000, expense_date=datetime(2026, 1, 15))
        create_expense(manager_a, location_a1.id, utilities.id, 2000, expense_date=datetime(2026, 2, 15))

        summary = expense_summary(manager_a.business_id, start=datetime(2026, 2, 1), end=datetime(2026, 2, 28))
        assert summary["total_cents"] == 2000

    def test_update_rejects_unknown_fields(self, manager_a, location_a1, utilities):
        expense = create_expense(manager_a, location_a1.id, utilities.id, 1000)

        updated = update_expense(manager_a, expense.id, {"amount_cents": 1500, "payee": "Meralco"})
        assert updated.amount_cents == 1500

        with pytest.raises(ExpenseError):
            update_expense(manager_a, expense.id, {"status": "void"})

    def test_void_drops_out_of_summary(self, admin_a, manager_a, location_a1, utilities):
        expense = create_expense(manager_a, location_a1.id, utilities.id, 1000)

        voided = void_expense(admin_a, expense.id, "Duplicate entry")

        assert voided.status == "void"
        assert expense_summary(manager_a.business_id)["total_cents"] == 0
        assert list_expenses(manager_a.business_id) == []
        assert [e.id for e in list_expenses(manager_a.business_id, include_void=True)] == [expense.id]
        with pytest.raises(ExpenseError):
            update_expense(manager_a, expense.id, {"amount_cents": 10})

    def test_manager_cannot_void(self, manager_a, location_a1, utilities):
        expense = create_expense(manager_a, location_a1.id, utilities.id, 1000)

        with pytest.raises(PermissionDeniedError):
            void_expense(manager_a, expense.id, "Mistake")

    def test_foreign_expense_not_found(self, admin_b, manager_a, location_a1, utilities):
        expense = create_expense(manager_a, location_a1.id, utilities.id, 1000)

        with pytest.raises(TenantAccessError):
            void_expense(admin_b, expense.id, "Not ours")


class TestExpenseAPI:

    def test_create_over_http(self, client, manager_headers, location_a1, utilities):
        resp = client.post("/api/expenses", json={
            "location_id": location_a1.id,
            "category_id": utilities.id,
            "amount_cents": 45000,
            "expense_date": "2026-03-01T08:00:00Z",
            "payee": "Meralco",
        }, headers=manager_headers)

        assert resp.status_code == 201
        assert resp.json["category_name"] == "Utilities"
        assert resp.json["status"] == "posted"

        summary = client.get("/api/expenses/summary", headers=manager_headers)
        assert summary.json["total_cents"] == 45000

    def test_cashier_has_no_expense_access(self, client, cashier_headers):
        assert client.get("/api/expenses", headers=cashier_headers).status_code == 403
        assert client.post("/api/expenses", json={}, headers=cashier_headers).status_code == 403
