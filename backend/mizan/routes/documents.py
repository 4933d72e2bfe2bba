# Overview: Flask API routes for sales invoices and purchase documents.

# backend/mizan/routes/documents.py
"""
Document routes.

Drafts are edited through the document service. Posting and cancelling go
through the ledger's ConsistencyService: one call, one transaction, and on
any error nothing about stock, balances or the document has changed.
"""
from flask import Blueprint, current_app, request

from ..ledger import get_ledger_service
from ..ledger.errors import LedgerError
from ..ledger.records import DOCUMENT_STATUSES
from ..models import Document
from ..services import catalog_service, document_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    parse_document_kind,
    validate_document_lines,
    validate_payload,
)
from .errors import ledger_error_response

DOCUMENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"kind", "account_id", "warehouse_id", "date", "due_date", "notes", "lines"},
    required_on_create={"kind", "lines"},
)

DOCUMENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"account_id", "warehouse_id", "date", "due_date", "notes", "lines"},
)

documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


def _posting_override(payload: dict):
    value = payload.get("allow_negative_stock")
    if value is not None and not isinstance(value, bool):
        raise ValidationError("allow_negative_stock must be a boolean")
    return value


@documents_bp.get("")
def list_documents():
    """
    Query params (all optional):
    - kind: sale | purchase
    - status: draft | posted | cancelled
    - account_id
    - page / per_page: paginate (per_page max 100)
    """
    kind = request.args.get("kind")
    status = request.args.get("status")
    try:
        if kind:
            kind = parse_document_kind(kind).value
        if status and status not in DOCUMENT_STATUSES:
            raise ValidationError("status must be draft, posted or cancelled")
    except ValidationError as e:
        return {"error": str(e)}, 400

    return document_service.list_documents(
        kind=kind,
        status=status,
        account_id=request.args.get("account_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )


@documents_bp.get("/next-number")
def next_number():
    """Preview the next number for ?kind=sale|purchase without consuming it."""
    try:
        kind = parse_document_kind(request.args.get("kind", "sale"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"kind": kind.value, "document_number": document_service.peek_next_document_number(kind)}


@documents_bp.post("")
def create_document():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Document, payload=payload, policy=DOCUMENT_CREATE_POLICY, partial=False)
        kind = parse_document_kind(patch.pop("kind"))
        lines = validate_document_lines(patch.pop("lines"))
        if patch.get("warehouse_id") is None:
            default = catalog_service.get_default_warehouse()
            if default is not None:
                patch["warehouse_id"] = default.id
        document = document_service.create_draft(kind=kind, patch=patch, lines=lines)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create document")
        return {"error": "Internal server error"}, 500
    return document.to_dict(), 201


@documents_bp.get("/<int:document_id>")
def get_document(document_id: int):
    try:
        return document_service.get_document(document_id).to_dict()
    except LedgerError as e:
        return ledger_error_response(e)


@documents_bp.patch("/<int:document_id>")
def update_document(document_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Document, payload=payload, policy=DOCUMENT_UPDATE_POLICY, partial=True)
        lines = patch.pop("lines", None)
        if lines is not None:
            lines = validate_document_lines(lines)
        document = document_service.update_draft(document_id, patch=patch, lines=lines)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except LedgerError as e:
        return ledger_error_response(e)
    return document.to_dict()


@documents_bp.delete("/<int:document_id>")
def delete_document(document_id: int):
    try:
        document_service.delete_draft(document_id)
    except LedgerError as e:
        return ledger_error_response(e)
    return {"deleted": document_id}


@documents_bp.post("/<int:document_id>/post")
def post_document(document_id: int):
    """
    Post a draft: stock movements plus balanced journal entries.

    Body (optional): {"allow_negative_stock": true} to sell below zero.
    """
    payload = request.get_json(silent=True) or {}
    try:
        allow_negative = _posting_override(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        posted = get_ledger_service().post_document(document_id, allow_negative_stock=allow_negative)
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to post document %s", document_id)
        return {"error": "Internal server error"}, 500

    current_app.logger.info("document %s posted", posted.document.document_number)
    return posted.to_dict()


@documents_bp.post("/<int:document_id>/cancel")
def cancel_document(document_id: int):
    """Cancel a draft, or reverse a posted document with compensating entries."""
    payload = request.get_json(silent=True) or {}
    try:
        allow_negative = _posting_override(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        cancelled = get_ledger_service().cancel_document(document_id, allow_negative_stock=allow_negative)
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel document %s", document_id)
        return {"error": "Internal server error"}, 500

    current_app.logger.info("document %s cancelled", cancelled.document.document_number)
    return cancelled.to_dict()
