# backend/mizan/routes/inventory.py
"""
Stock levels, movement history and stock-only operations.

- adjust: signed delta (damage, found stock, opening balance)
- count: stocktake; the counted quantity becomes the level
- transfer: paired transfer-out / transfer-in movements

Time semantics: movement timestamps are UTC and serialized with a trailing Z.
"""
from flask import Blueprint, current_app, request

from ..ledger import get_ledger_service
from ..ledger.errors import LedgerError
from ..models import StockLevel, StockMovement
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    parse_decimal,
    parse_int,
    validate_payload,
)
from .errors import ledger_error_response

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_ADJUST_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "warehouse_id", "quantity_delta", "note", "allow_negative_stock"},
    required_on_create={"product_id", "warehouse_id", "quantity_delta"},
)

INVENTORY_COUNT_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "warehouse_id", "quantity", "note"},
    required_on_create={"product_id", "warehouse_id", "quantity"},
)

TRANSFER_FIELDS = {"product_id", "from_warehouse_id", "to_warehouse_id", "quantity", "note", "allow_negative_stock"}


def _optional_flag(patch: dict, key: str = "allow_negative_stock"):
    value = patch.get(key)
    if value is not None and not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean")
    return value


def _optional_note(value):
    if value is None:
        return None
    note = str(value).strip()
    if len(note) > 255:
        raise ValidationError("note exceeds max length 255")
    return note or None


@inventory_bp.get("")
def list_stock_levels():
    """
    Query params:
    - warehouse_id: restrict to one warehouse (optional)
    Cells that never moved are omitted; their quantity is zero.
    """
    try:
        levels = get_ledger_service().list_stock_levels(warehouse_id=request.args.get("warehouse_id", type=int))
    except LedgerError as e:
        return ledger_error_response(e)
    return {"items": [level.to_dict() for level in levels], "count": len(levels)}


@inventory_bp.get("/<int:product_id>/<int:warehouse_id>")
def stock_level(product_id: int, warehouse_id: int):
    try:
        quantity = get_ledger_service().get_stock_level(product_id, warehouse_id)
    except LedgerError as e:
        return ledger_error_response(e)
    return {"product_id": product_id, "warehouse_id": warehouse_id, "quantity": str(quantity)}


@inventory_bp.get("/movements")
def list_movements():
    """
    Query params (all optional): product_id, warehouse_id, document_id.
    Newest first.
    """
    movements = get_ledger_service().list_stock_movements(
        product_id=request.args.get("product_id", type=int),
        warehouse_id=request.args.get("warehouse_id", type=int),
        document_id=request.args.get("document_id", type=int),
    )
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.post("/adjust")
def adjust_inventory():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=StockMovement,
            payload=payload,
            policy=INVENTORY_ADJUST_POLICY,
            partial=False,
        )
        allow_negative = _optional_flag(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        movement = get_ledger_service().adjust_stock(
            patch["product_id"],
            patch["warehouse_id"],
            patch["quantity_delta"],
            note=patch.get("note"),
            allow_negative_stock=allow_negative,
        )
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return {"error": "Internal server error"}, 500
    return {"movement": movement.to_dict()}, 201


@inventory_bp.post("/count")
def count_inventory():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=StockLevel,
            payload=payload,
            policy=INVENTORY_COUNT_POLICY,
            partial=False,
        )
        note = _optional_note(patch.get("note"))
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        movement = get_ledger_service().count_stock(
            patch["product_id"],
            patch["warehouse_id"],
            patch["quantity"],
            note=note,
        )
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock count")
        return {"error": "Internal server error"}, 500
    return {"movement": movement.to_dict()}, 201


@inventory_bp.post("/transfer")
def transfer_inventory():
    payload = request.get_json(silent=True) or {}
    try:
        unknown = sorted(set(payload) - TRANSFER_FIELDS)
        if unknown:
            raise ValidationError(f"Field not allowed: {unknown[0]}")
        missing = sorted(
            k for k in ("product_id", "from_warehouse_id", "to_warehouse_id", "quantity")
            if payload.get(k) is None
        )
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        product_id = parse_int("product_id", payload["product_id"])
        from_warehouse_id = parse_int("from_warehouse_id", payload["from_warehouse_id"])
        to_warehouse_id = parse_int("to_warehouse_id", payload["to_warehouse_id"])
        quantity = parse_decimal("quantity", payload["quantity"])
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError("from_warehouse_id and to_warehouse_id must differ")
        note = _optional_note(payload.get("note"))
        allow_negative = _optional_flag(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        outbound, inbound = get_ledger_service().transfer_stock(
            product_id,
            from_warehouse_id,
            to_warehouse_id,
            quantity,
            note=note,
            allow_negative_stock=allow_negative,
        )
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to transfer inventory")
        return {"error": "Internal server error"}, 500
    return {"movements": [outbound.to_dict(), inbound.to_dict()]}, 201
