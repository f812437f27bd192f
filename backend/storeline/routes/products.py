# Overview: Flask API routes for products, variations and opening stock.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import opening_stock_service, product_service
from . import json_body, json_error


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission(Perm.PRODUCT_VIEW)
def list_products_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    products = product_service.list_products(
        g.business_id,
        search=request.args.get("search"),
        include_inactive=include_inactive,
    )
    return jsonify({"products": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.post("")
@require_auth
@require_permission(Perm.PRODUCT_CREATE)
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "name": str,
        "sku": str,
        "description": str (optional),
        "price_cents": int (optional, single-variation products),
        "cost_cents": int (optional),
        "variations": [{"name", "sku", "price_cents", "cost_cents"}] (optional)
    }
    """
    try:
        data = json_body()
        product = product_service.create_product(
            g.current_user,
            name=data["name"],
            sku=data["sku"],
            description=data.get("description"),
            variations=data.get("variations"),
            price_cents=int(data.get("price_cents", 0)),
            cost_cents=int(data.get("cost_cents", 0)),
        )
        return jsonify(product.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission(Perm.PRODUCT_VIEW)
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(g.current_user, product_id)
        return jsonify(product.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission(Perm.PRODUCT_UPDATE)
def update_product_route(product_id: int):
    try:
        product = product_service.update_product(g.current_user, product_id, json_body())
        return jsonify(product.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@products_bp.post("/<int:product_id>/opening-stock")
@require_auth
@require_permission(Perm.PRODUCT_OPENING_STOCK)
def set_opening_stock_route(product_id: int):
    """
    Post opening stock for a variation at a location.

    Request body:
    {
        "variation_id": int,
        "location_id": int,
        "quantity": int,
        "unit_cost_cents": int (optional)
    }

    Returns:
        201: Opening stock posted
        400: Invalid quantity or stock already moved
        403: Opening stock locked (locked: true)
    """
    try:
        data = json_body()
        unit_cost = data.get("unit_cost_cents")
        movement = opening_stock_service.set_opening_stock(
            g.current_user,
            product_id=product_id,
            variation_id=int(data["variation_id"]),
            location_id=int(data["location_id"]),
            quantity=int(data["quantity"]),
            unit_cost_cents=int(unit_cost) if unit_cost is not None else None,
        )
        return jsonify({
            "transaction": movement.transaction.to_dict(),
            "history": movement.history.to_dict(),
            "new_quantity": movement.new_qty,
        }), 201
    except Exception as exc:
        return json_error(exc)


@products_bp.post("/<int:product_id>/opening-stock/unlock")
@require_auth
@require_permission(Perm.PRODUCT_UNLOCK_OPENING_STOCK)
def unlock_opening_stock_route(product_id: int):
    """Body: {"variation_id": int, "location_id": int, "reason": str}"""
    try:
        data = json_body()
        details = opening_stock_service.unlock_opening_stock(
            g.current_user,
            variation_id=int(data["variation_id"]),
            location_id=int(data["location_id"]),
            reason=data.get("reason"),
        )
        return jsonify(details), 200
    except Exception as exc:
        return json_error(exc)


@products_bp.post("/<int:product_id>/opening-stock/lock")
@require_auth
@require_permission(Perm.PRODUCT_OPENING_STOCK)
def lock_opening_stock_route(product_id: int):
    try:
        data = json_body()
        details = opening_stock_service.lock_opening_stock(
            g.current_user,
            variation_id=int(data["variation_id"]),
            location_id=int(data["location_id"]),
        )
        return jsonify(details), 200
    except Exception as exc:
        return json_error(exc)
