# Overview: Flask API routes for cash and journal transactions.

# backend/mizan/routes/transactions.py
from flask import Blueprint, current_app, request

from ..ledger import get_ledger_service
from ..ledger.errors import LedgerError
from ..models import Transaction
from ..time_utils import parse_iso_datetime
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_transaction,
    validate_payload,
)
from .errors import ledger_error_response

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"account_id", "type", "amount", "date", "payment_method", "reference", "is_debit", "notes"},
    required_on_create={"account_id", "type", "amount"},
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
def list_transactions():
    """
    Query params (all optional):
    - account_id, document_id, reference
    - from / to: ISO-8601 date range, inclusive
    Newest first.
    """
    try:
        date_from = parse_iso_datetime(request.args.get("from"))
        date_to = parse_iso_datetime(request.args.get("to"))
    except ValueError:
        return {"error": "from/to must be ISO-8601 datetimes"}, 400

    try:
        transactions = get_ledger_service().list_transactions(
            account_id=request.args.get("account_id", type=int),
            document_id=request.args.get("document_id", type=int),
            reference=request.args.get("reference"),
            date_from=date_from,
            date_to=date_to,
        )
    except LedgerError as e:
        return ledger_error_response(e)
    return {"items": [t.to_dict() for t in transactions], "count": len(transactions)}


@transactions_bp.post("")
def create_transaction():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Transaction, payload=payload, policy=TRANSACTION_POLICY, partial=False)
        enforce_rules_transaction(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        transaction = get_ledger_service().record_transaction(
            patch["account_id"],
            patch["type"],
            patch["amount"],
            date=patch.get("date"),
            payment_method=patch.get("payment_method"),
            reference=patch.get("reference"),
            is_debit=patch.get("is_debit"),
            notes=patch.get("notes"),
        )
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return {"error": "Internal server error"}, 500
    return {"transaction": transaction.to_dict()}, 201
