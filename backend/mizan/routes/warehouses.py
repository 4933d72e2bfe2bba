# Overview: Flask API routes for warehouses.

# backend/mizan/routes/warehouses.py
from flask import Blueprint, request

from ..ledger.errors import LedgerError
from ..models import Warehouse
from ..services import catalog_service
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, validate_payload
from .errors import ledger_error_response

WAREHOUSE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "location", "is_default", "is_active"},
    required_on_create={"name"},
)

warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api/warehouses")


@warehouses_bp.get("")
def list_warehouses():
    active_only = request.args.get("active") in {"1", "true"}
    warehouses = catalog_service.list_warehouses(active_only=active_only)
    return {"items": [w.to_dict() for w in warehouses], "count": len(warehouses)}


@warehouses_bp.post("")
def create_warehouse():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=False)
        warehouse = catalog_service.create_warehouse(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return warehouse.to_dict(), 201


@warehouses_bp.get("/<int:warehouse_id>")
def get_warehouse(warehouse_id: int):
    try:
        return catalog_service.get_warehouse(warehouse_id).to_dict()
    except LedgerError as e:
        return ledger_error_response(e)


@warehouses_bp.patch("/<int:warehouse_id>")
def update_warehouse(warehouse_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Warehouse, payload=payload, policy=WAREHOUSE_POLICY, partial=True)
        warehouse = catalog_service.update_warehouse(warehouse_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return ledger_error_response(e)
    return warehouse.to_dict()
