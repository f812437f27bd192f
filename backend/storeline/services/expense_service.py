# Overview: Expense categories and expense entries (void, never delete).

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Expense, ExpenseCategory, User
from ..permissions import Perm
from ..time_utils import utcnow
from .audit_service import append_audit_log
from .permission_service import check_permission
from .tenant_service import TenantAccessError, require_in_business, require_location_access, require_location_in_business


class ExpenseError(Exception):
    """Raised when expense operations fail."""
    pass


UPDATABLE_FIELDS = ("amount_cents", "category_id", "expense_date", "payee", "description", "reference_number")


# =============================================================================
# Categories
# =============================================================================

def list_categories(business_id: int, include_inactive: bool = False) -> list[ExpenseCategory]:
    query = db.session.query(ExpenseCategory).filter_by(business_id=business_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(ExpenseCategory.name).all()


def create_category(user: User, name: str, description: str | None = None) -> ExpenseCategory:
    check_permission(user.id, Perm.EXPENSE_CREATE)
    if not name or not name.strip():
        raise ExpenseError("Category name is required")

    existing = db.session.query(ExpenseCategory).filter_by(business_id=user.business_id, name=name.strip()).first()
    if existing:
        raise ExpenseError(f"Category '{name.strip()}' already exists")

    category = ExpenseCategory(business_id=user.business_id, name=name.strip(), description=description)
    db.session.add(category)
    db.session.flush()
    append_audit_log(
        business_id=user.business_id,
        user_id=user.id,
        action="expense_category_create",
        entity_type="expense_category",
        entity_id=category.id,
        description=f"Expense category {category.name} created",
    )
    db.session.commit()
    return category


def update_category(user: User, category_id: int, name: str | None = None,
                    description: str | None = None, is_active: bool | None = None) -> ExpenseCategory:
    check_permission(user.id, Perm.EXPENSE_UPDATE)
    category = require_in_business(ExpenseCategory, category_id, user.business_id)
    if name is not None:
        if not name.strip():
            raise ExpenseError("Category name is required")
        category.name = name.strip()
    if description is not None:
        category.description = description
    if is_active is not None:
        category.is_active = bool(is_active)

    append_audit_log(
        business_id=user.business_id,
        user_id=user.id,
        action="expense_category_update",
        entity_type="expense_category",
        entity_id=category.id,
        description=f"Expense category {category.name} updated",
    )
    db.session.commit()
    return category


# =============================================================================
# Expenses
# =============================================================================

def _active_category(business_id: int, category_id: int) -> ExpenseCategory:
    category = db.session.query(ExpenseCategory).filter_by(id=category_id).first()
    if not category or category.business_id != business_id:
        raise ExpenseError("Expense category not found")
    if not category.is_active:
        raise ExpenseError("Expense category is inactive")
    return category


def create_expense(
    user: User,
    location_id: int,
    category_id: int,
    amount_cents: int,
    expense_date: datetime | None = None,
    payee: str | None = None,
    description: str | None = None,
    reference_number: str | None = None,
) -> Expense:
    check_permission(user.id, Perm.EXPENSE_CREATE)
    require_location_in_business(location_id, user.business_id)
    require_location_access(user, location_id)
    if amount_cents <= 0:
        raise ExpenseError("Amount must be positive")
    _active_category(user.business_id, category_id)

    expense = Expense(
        business_id=user.business_id,
        location_id=location_id,
        category_id=category_id,
        amount_cents=amount_cents,
        expense_date=expense_date or utcnow(),
        payee=payee,
        description=description,
        reference_number=reference_number,
        status="posted",
        created_by=user.id,
    )
    db.session.add(expense)
    db.session.flush()

    append_audit_log(
        business_id=user.business_id,
        location_id=location_id,
        user_id=user.id,
        action="expense_create",
        entity_type="expense",
        entity_id=expense.id,
        description=f"Expense {amount_cents} cents to {payee or 'n/a'}",
    )
    db.session.commit()
    return expense


def update_expense(user: User, expense_id: int, changes: dict) -> Expense:
    """Edit a posted expense; voided expenses are frozen."""
    check_permission(user.id, Perm.EXPENSE_UPDATE)
    expense = require_in_business(Expense, expense_id, user.business_id)
    if expense.status != "posted":
        raise ExpenseError("Only posted expenses can be edited")

    unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ExpenseError(f"Cannot update: {', '.join(unknown)}")

    if "amount_cents" in changes:
        amount = int(changes["amount_cents"])
        if amount <= 0:
            raise ExpenseError("Amount must be positive")
        expense.amount_cents = amount
    if "category_id" in changes:
        expense.category_id = _active_category(user.business_id, int(changes["category_id"])).id
    if "expense_date" in changes:
        if not isinstance(changes["expense_date"], datetime):
            raise ExpenseError("expense_date must be a datetime")
        expense.expense_date = changes["expense_date"]
    for field in ("payee", "description", "reference_number"):
        if field in changes:
            setattr(expense, field, changes[field])
    expense.updated_at = utcnow()

    append_audit_log(
        business_id=user.business_id,
        location_id=expense.location_id,
        user_id=user.id,
        action="expense_update",
        entity_type="expense",
        entity_id=expense.id,
        description="Expense updated",
        metadata={"fields": sorted(changes)},
    )
    db.session.commit()
    return expense


def void_expense(user: User, expense_id: int, reason: str) -> Expense:
    check_permission(user.id, Perm.EXPENSE_DELETE)
    expense = require_in_business(Expense, expense_id, user.business_id)
    if expense.status == "void":
        raise ExpenseError("Expense is already void")
    if not reason or not reason.strip():
        raise ExpenseError("Void reason is required")

    expense.status = "void"
    expense.void_reason = reason.strip()
    expense.updated_at = utcnow()

    append_audit_log(
        business_id=user.business_id,
        location_id=expense.location_id,
        user_id=user.id,
        action="expense_void",
        entity_type="expense",
        entity_id=expense.id,
        description=f"Expense voided: {reason.strip()}",
    )
    db.session.commit()
    return expense


def _filtered(query, business_id, location_id, category_id, start, end):
    query = query.filter(Expense.business_id == business_id)
    if location_id is not None:
        query = query.filter(Expense.location_id == location_id)
    if category_id is not None:
        query = query.filter(Expense.category_id == category_id)
    if start is not None:
        query = query.filter(Expense.expense_date >= start)
    if end is not None:
        query = query.filter(Expense.expense_date <= end)
    return query


def list_expenses(
    business_id: int,
    location_id: int | None = None,
    category_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    include_void: bool = False,
) -> list[Expense]:
    query = _filtered(db.session.query(Expense), business_id, location_id, category_id, start, end)
    if not include_void:
        query = query.filter(Expense.status == "posted")
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def expense_summary(
    business_id: int,
    location_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """Posted expenses grouped by category."""
    query = _filtered(
        db.session.query(
            ExpenseCategory.id,
            ExpenseCategory.name,
            func.count(Expense.id),
            func.coalesce(func.sum(Expense.amount_cents), 0),
        ).join(ExpenseCategory, ExpenseCategory.id == Expense.category_id),
        business_id, location_id, None, start, end,
    ).filter(Expense.status == "posted")

    rows = query.group_by(ExpenseCategory.id, ExpenseCategory.name).order_by(ExpenseCategory.name).all()
    categories = [
        {"category_id": cid, "category_name": name, "count": count, "total_cents": int(total)}
        for cid, name, count, total in rows
    ]
    return {
        "categories": categories,
        "total_cents": sum(c["total_cents"] for c in categories),
        "count": sum(c["count"] for c in categories),
    }


def get_expense(user: User, expense_id: int) -> Expense:
    expense = db.session.query(Expense).filter_by(id=expense_id).first()
    if not expense or expense.business_id != user.business_id:
        raise TenantAccessError("Expense not found")
    return expense
