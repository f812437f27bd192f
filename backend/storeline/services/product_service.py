# Overview: Product catalogue; products with their sellable variations.

from __future__ import annotations

from ..extensions import db
from ..models import Product, ProductVariation, User
from .audit_service import append_audit_log
from .tenant_service import TenantAccessError


class ProductError(Exception):
    """Raised when product operations fail."""
    pass


UPDATABLE_FIELDS = ("name", "description", "is_active")


def _variation_from(data: dict, product: Product) -> ProductVariation:
    price = int(data.get("price_cents", 0))
    cost = int(data.get("cost_cents", 0))
    if price < 0 or cost < 0:
        raise ProductError("Price and cost must not be negative")
    return ProductVariation(
        product_id=product.id,
        name=(data.get("name") or "Default").strip(),
        sku=data.get("sku"),
        price_cents=price,
        cost_cents=cost,
    )


def create_product(
    user: User,
    name: str,
    sku: str,
    description: str | None = None,
    variations: list[dict] | None = None,
    price_cents: int = 0,
    cost_cents: int = 0,
) -> Product:
    """
    Create a product. Without explicit variations a single "Default"
    variation carries price_cents / cost_cents.
    """
    if not name or not name.strip():
        raise ProductError("Product name is required")
    if not sku or not sku.strip():
        raise ProductError("SKU is required")

    existing = db.session.query(Product).filter_by(business_id=user.business_id, sku=sku.strip()).first()
    if existing:
        raise ProductError(f"SKU {sku.strip()} already exists")

    product = Product(
        business_id=user.business_id,
        sku=sku.strip(),
        name=name.strip(),
        description=description,
        created_by=user.id,
    )
    db.session.add(product)
    db.session.flush()

    for data in variations or [{"name": "Default", "sku": sku.strip(), "price_cents": price_cents, "cost_cents": cost_cents}]:
        db.session.add(_variation_from(data, product))
    db.session.flush()

    append_audit_log(
        business_id=user.business_id,
        user_id=user.id,
        action="product_create",
        entity_type="product",
        entity_id=product.id,
        description=f"Product {product.name} ({product.sku}) created",
    )
    db.session.commit()
    return product


def update_product(user: User, product_id: int, changes: dict) -> Product:
    product = get_product(user, product_id)
    unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ProductError(f"Cannot update: {', '.join(unknown)}")
    for field, value in changes.items():
        setattr(product, field, value)

    append_audit_log(
        business_id=user.business_id,
        user_id=user.id,
        action="product_update",
        entity_type="product",
        entity_id=product.id,
        description=f"Product {product.name} updated",
        metadata={"fields": sorted(changes)},
    )
    db.session.commit()
    return product


def get_product(user: User, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product or product.business_id != user.business_id:
        raise TenantAccessError("Product not found")
    return product


def list_products(business_id: int, search: str | None = None, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product).filter_by(business_id=business_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    if search:
        pattern = f"%{search}%"
        query = query.filter(db.or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    return query.order_by(Product.name).all()
