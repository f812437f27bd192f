from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SODSettings(db.Model):
    """
    Per-business separation-of-duties configuration.

    One row per business, created lazily with conservative defaults.
    Each allow_* flag relaxes exactly one rule; enforce_* flags switch a
    whole workflow's checks off. Users holding a role listed in
    exempt_roles (comma-separated role names) bypass every rule.
    """
    __tablename__ = "sod_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, unique=True)

    enforce_transfer_sod = db.Column(db.Boolean, nullable=False, default=True)
    allow_creator_to_check = db.Column(db.Boolean, nullable=False, default=False)
    allow_creator_to_send = db.Column(db.Boolean, nullable=False, default=False)
    allow_checker_to_send = db.Column(db.Boolean, nullable=False, default=False)
    allow_sender_to_check = db.Column(db.Boolean, nullable=False, default=False)
    allow_creator_to_receive = db.Column(db.Boolean, nullable=False, default=False)
    allow_sender_to_complete = db.Column(db.Boolean, nullable=False, default=False)
    allow_creator_to_complete = db.Column(db.Boolean, nullable=False, default=False)
    allow_receiver_to_complete = db.Column(db.Boolean, nullable=False, default=True)

    enforce_purchase_sod = db.Column(db.Boolean, nullable=False, default=True)
    allow_po_creator_to_approve = db.Column(db.Boolean, nullable=False, default=False)
    allow_grn_creator_to_approve = db.Column(db.Boolean, nullable=False, default=False)

    exempt_roles = db.Column(db.String(255), nullable=True, default="Super Admin,System Administrator")

    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    BOOLEAN_FIELDS = (
        "enforce_transfer_sod",
        "allow_creator_to_check",
        "allow_creator_to_send",
        "allow_checker_to_send",
        "allow_sender_to_check",
        "allow_creator_to_receive",
        "allow_sender_to_complete",
        "allow_creator_to_complete",
        "allow_receiver_to_complete",
        "enforce_purchase_sod",
        "allow_po_creator_to_approve",
        "allow_grn_creator_to_approve",
    )

    @property
    def exempt_role_names(self) -> list[str]:
        if not self.exempt_roles:
            return []
        return [r.strip() for r in self.exempt_roles.split(",") if r.strip()]

    def to_dict(self) -> dict:
        data = {field: getattr(self, field) for field in self.BOOLEAN_FIELDS}
        data.update({
            "id": self.id,
            "business_id": self.business_id,
            "exempt_roles": self.exempt_roles,
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        })
        return data
