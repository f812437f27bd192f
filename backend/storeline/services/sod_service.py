# Overview: Separation-of-duties rules for transfers, purchasing and inventory corrections.

"""
Separation of Duties (SOD)

WHY: One person must not be able to move stock end to end. Each workflow
step records its actor; before the next step, the acting user is compared
against earlier actors under the business's SODSettings.

RULES (action -> checks, in order):
- check:    creator, sender
- send:     creator, checker
- receive:  creator
- complete: creator, sender, receiver
- approve_po:  PO creator
- approve_grn: GRN creator
- approve_supplier_return: supplier return creator (enforce_purchase_sod)
- approve_correction: correction creator (no allow_* flag; only exempt
  roles bypass it)

A user holding any role named in exempt_roles bypasses every rule.
Disabling enforce_transfer_sod / enforce_purchase_sod allows everything
for that workflow.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import (
    InventoryCorrection,
    Purchase,
    PurchaseReceipt,
    SODSettings,
    StockTransfer,
    SupplierReturn,
    User,
)
from .audit_service import append_audit_log
from .auth_service import get_role_names


class SODViolationError(Exception):
    """Raised when a separation-of-duties rule forbids the action."""

    def __init__(self, message: str, code: str, rule_field: str | None = None):
        super().__init__(message)
        self.code = code
        self.rule_field = rule_field


@dataclass(frozen=True)
class SODResult:
    allowed: bool
    reason: str | None = None
    code: str | None = None
    rule_field: str | None = None

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise SODViolationError(self.reason or "Separation of duties violation", self.code, self.rule_field)


ALLOWED = SODResult(allowed=True)

# action -> [(actor attribute on the transfer, settings flag, code, message)]
TRANSFER_RULES = {
    "check": [
        ("created_by", "allow_creator_to_check", "SOD_CREATOR_CANNOT_CHECK",
         "You created this transfer and cannot check it"),
        ("sent_by", "allow_sender_to_check", "SOD_SENDER_CANNOT_CHECK",
         "You sent this transfer and cannot check it"),
    ],
    "send": [
        ("created_by", "allow_creator_to_send", "SOD_CREATOR_CANNOT_SEND",
         "You created this transfer and cannot send it"),
        ("checked_by", "allow_checker_to_send", "SOD_CHECKER_CANNOT_SEND",
         "You checked this transfer and cannot send it"),
    ],
    "receive": [
        ("created_by", "allow_creator_to_receive", "SOD_CREATOR_CANNOT_RECEIVE",
         "You created this transfer and cannot receive it"),
    ],
    "complete": [
        ("created_by", "allow_creator_to_complete", "SOD_CREATOR_CANNOT_COMPLETE",
         "You created this transfer and cannot complete it"),
        ("sent_by", "allow_sender_to_complete", "SOD_SENDER_CANNOT_COMPLETE",
         "You sent this transfer and cannot complete it"),
        ("received_by", "allow_receiver_to_complete", "SOD_RECEIVER_CANNOT_COMPLETE",
         "You received this transfer and cannot complete it"),
    ],
}


def get_sod_settings(business_id: int) -> SODSettings:
    """Return the business's settings, creating defaults on first use."""
    settings = db.session.query(SODSettings).filter_by(business_id=business_id).first()
    if settings:
        return settings

    settings = SODSettings(business_id=business_id)
    db.session.add(settings)
    db.session.flush()
    return settings


def update_sod_settings(business_id: int, user: User, changes: dict) -> SODSettings:
    """
    Apply allow_*/enforce_* flags and exempt_roles.

    Unknown keys raise ValueError.
    """
    settings = get_sod_settings(business_id)
    allowed_keys = set(SODSettings.BOOLEAN_FIELDS) | {"exempt_roles"}
    unknown = sorted(set(changes) - allowed_keys)
    if unknown:
        raise ValueError(f"Unknown SOD settings: {', '.join(unknown)}")

    before = settings.to_dict()
    for key, value in changes.items():
        if key == "exempt_roles":
            if isinstance(value, list):
                value = ",".join(str(v).strip() for v in value)
            settings.exempt_roles = value or None
        else:
            if not isinstance(value, bool):
                raise ValueError(f"{key} must be a boolean")
            setattr(settings, key, value)
    settings.updated_by = user.id

    append_audit_log(
        business_id=business_id,
        user_id=user.id,
        action="sod_settings_update",
        entity_type="sod_settings",
        entity_id=settings.id,
        description="Separation of duties settings updated",
        metadata={"before": before, "changes": changes},
    )
    db.session.commit()
    return settings


def is_exempt(user: User, settings: SODSettings) -> bool:
    exempt = set(settings.exempt_role_names)
    return bool(exempt) and any(name in exempt for name in get_role_names(user.id))


def validate_transfer_sod(transfer: StockTransfer, user: User, action: str) -> SODResult:
    """Check the transfer rules for action; returns the first violation found."""
    if action not in TRANSFER_RULES:
        raise ValueError(f"Unknown transfer SOD action: {action}")

    settings = get_sod_settings(transfer.business_id)
    if not settings.enforce_transfer_sod or is_exempt(user, settings):
        return ALLOWED

    for actor_attr, flag, code, message in TRANSFER_RULES[action]:
        if getattr(transfer, actor_attr) == user.id and not getattr(settings, flag):
            return SODResult(allowed=False, reason=message, code=code, rule_field=flag)

    return ALLOWED


def validate_purchase_approval(purchase: Purchase, user: User) -> SODResult:
    settings = get_sod_settings(purchase.business_id)
    if not settings.enforce_purchase_sod or is_exempt(user, settings):
        return ALLOWED
    if purchase.created_by == user.id and not settings.allow_po_creator_to_approve:
        return SODResult(
            allowed=False,
            reason="You created this purchase order and cannot approve it",
            code="SOD_PO_CREATOR_CANNOT_APPROVE",
            rule_field="allow_po_creator_to_approve",
        )
    return ALLOWED


def validate_grn_approval(receipt: PurchaseReceipt, user: User) -> SODResult:
    settings = get_sod_settings(receipt.business_id)
    if not settings.enforce_purchase_sod or is_exempt(user, settings):
        return ALLOWED
    if receipt.created_by == user.id and not settings.allow_grn_creator_to_approve:
        return SODResult(
            allowed=False,
            reason="You recorded this goods receipt and cannot approve it",
            code="SOD_GRN_CREATOR_CANNOT_APPROVE",
            rule_field="allow_grn_creator_to_approve",
        )
    return ALLOWED


def validate_supplier_return_approval(supplier_return: SupplierReturn, user: User) -> SODResult:
    settings = get_sod_settings(supplier_return.business_id)
    if not settings.enforce_purchase_sod or is_exempt(user, settings):
        return ALLOWED
    if supplier_return.created_by == user.id:
        return SODResult(
            allowed=False,
            reason="You recorded this supplier return and cannot approve it",
            code="SOD_RETURN_CREATOR_CANNOT_APPROVE",
        )
    return ALLOWED


def validate_purchase_sod(document, user: User, action: str) -> SODResult:
    """Purchase-side entry point: action is approve_po, approve_grn or
    approve_supplier_return."""
    if action == "approve_po":
        return validate_purchase_approval(document, user)
    if action == "approve_grn":
        return validate_grn_approval(document, user)
    if action == "approve_supplier_return":
        return validate_supplier_return_approval(document, user)
    raise ValueError(f"Unknown purchase SOD action: {action}")


def validate_correction_approval(correction: InventoryCorrection, user: User) -> SODResult:
    if correction.created_by != user.id or is_exempt(user, get_sod_settings(correction.business_id)):
        return ALLOWED
    return SODResult(
        allowed=False,
        reason="A correction must be approved by someone other than its creator",
        code="SOD_CORRECTION_CREATOR_CANNOT_APPROVE",
    )
