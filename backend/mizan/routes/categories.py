# Overview: Flask API routes for product categories.

# backend/mizan/routes/categories.py
from flask import Blueprint, current_app, request

from ..ledger.errors import LedgerError
from ..models import Category
from ..services import catalog_service
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, validate_payload
from .errors import ledger_error_response

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories():
    categories = catalog_service.list_categories()
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@categories_bp.post("")
def create_category():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return category.to_dict(), 201


@categories_bp.get("/<int:category_id>")
def get_category(category_id: int):
    try:
        return catalog_service.get_category(category_id).to_dict()
    except LedgerError as e:
        return ledger_error_response(e)


@categories_bp.patch("/<int:category_id>")
def update_category(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(category_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return ledger_error_response(e)
    return category.to_dict()


@categories_bp.delete("/<int:category_id>")
def delete_category(category_id: int):
    try:
        catalog_service.delete_category(category_id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return ledger_error_response(e)
    current_app.logger.info("deleted category %s", category_id)
    return {"deleted": category_id}
