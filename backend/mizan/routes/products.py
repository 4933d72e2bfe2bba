# Overview: Flask API routes for products; parses input and returns JSON responses.

# backend/mizan/routes/products.py
from flask import Blueprint, current_app, request

from ..ledger.errors import LedgerError
from ..models import Product
from ..services import catalog_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from .errors import ledger_error_response

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "unit", "category_id", "cost_price", "sell_price", "sell_price_wholesale", "is_active"},
    required_on_create={"code", "name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - q: search in name or code
    - active: "1" to hide deactivated products
    - category_id: restrict to one category
    """
    search = request.args.get("q")
    active_only = request.args.get("active") in {"1", "true"}
    products = catalog_service.list_products(
        search=search,
        active_only=active_only,
        category_id=request.args.get("category_id", type=int),
    )
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.post("")
def create_product():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    try:
        return catalog_service.get_product(product_id).to_dict()
    except LedgerError as e:
        return ledger_error_response(e)


@products_bp.patch("/<int:product_id>")
def update_product(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(product_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return ledger_error_response(e)
    return product.to_dict()


@products_bp.delete("/<int:product_id>")
def delete_product(product_id: int):
    try:
        catalog_service.delete_product(product_id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return ledger_error_response(e)
    current_app.logger.info("deleted product %s", product_id)
    return {"deleted": product_id}
