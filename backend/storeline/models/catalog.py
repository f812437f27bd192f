from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to a business. SKUs are unique within
    a business. Sellable units are ProductVariation rows; a simple product
    has a single "Default" variation.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
        db.Index("ix_products_business_name", "business_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    variations = db.relationship("ProductVariation", backref="product", lazy=True, order_by="ProductVariation.id")

    def to_dict(self, include_variations: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
        if include_variations:
            data["variations"] = [v.to_dict() for v in self.variations]
        return data


class ProductVariation(db.Model):
    """Sellable unit of a product (size, colour, pack)."""
    __tablename__ = "product_variations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False, default="Default")
    sku = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
        }


class VariationLocationDetails(db.Model):
    """
    Stock-on-hand per variation per location.

    qty_available is a cached balance. The ledgers (StockTransaction and
    ProductHistory) are the record; stock_service keeps them in step and
    verify_ledger_consistency detects drift.

    OPENING STOCK LOCK:
    Opening stock may be posted once. After posting the row is locked and
    only users holding an unlock permission may touch it again.
    """
    __tablename__ = "variation_location_details"
    __table_args__ = (
        db.UniqueConstraint("variation_id", "location_id", name="uq_vld_variation_location"),
        db.CheckConstraint("qty_available >= 0", name="ck_vld_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False, index=True)

    qty_available = db.Column(db.Integer, nullable=False, default=0)
    opening_stock_locked = db.Column(db.Boolean, nullable=False, default=False)
    opening_stock_set_at = db.Column(db.DateTime(timezone=True), nullable=True)
    opening_stock_set_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    variation = db.relationship("ProductVariation")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "location_id": self.location_id,
            "qty_available": self.qty_available,
            "opening_stock_locked": self.opening_stock_locked,
            "opening_stock_set_at": to_utc_z(self.opening_stock_set_at) if self.opening_stock_set_at else None,
            "opening_stock_set_by": self.opening_stock_set_by,
        }
