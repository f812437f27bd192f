from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Business(db.Model):
    """
    Multi-tenant root: every tenant is a Business.

    WHY: Shared-database multi-tenancy with strict isolation.
    All locations, users, products, and documents belong to exactly one business.

    DESIGN:
    - Business is the tenant boundary
    - Locations belong to a business (business_id FK)
    - All queries must be scoped by business_id (directly or via location)
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class BusinessLocation(db.Model):
    """
    Branch or warehouse within a business.

    MULTI-TENANT: Location names and codes are unique within a business, not globally.
    Stock, shifts, sales and transfers are all location-scoped.
    """
    __tablename__ = "business_locations"
    __table_args__ = (
        db.UniqueConstraint("business_id", "name", name="uq_locations_business_name"),
        db.UniqueConstraint("business_id", "code", name="uq_locations_business_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", backref=db.backref("locations", lazy=True))

    def __repr__(self) -> str:
        return f"<BusinessLocation id={self.id} name={self.name!r} business_id={self.business_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
