# Overview: Flask API routes for accounts and their running balances.

# backend/mizan/routes/accounts.py
from flask import Blueprint, request

from ..ledger import get_ledger_service
from ..ledger.errors import LedgerError
from ..models import Account
from ..services import accounts_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_account,
    validate_payload,
)
from .errors import ledger_error_response

ACCOUNT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "type", "current_balance", "is_active"},
    required_on_create={"name", "type"},
)

ACCOUNT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "type", "is_active"},
)

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.get("")
def list_accounts():
    """
    Query params:
    - type: customer | supplier | ... (optional)
    - active: "1" to hide deactivated accounts
    """
    account_type = request.args.get("type")
    active_only = request.args.get("active") in {"1", "true"}
    accounts = accounts_service.list_accounts(account_type=account_type, active_only=active_only)
    return {"items": [a.to_dict() for a in accounts], "count": len(accounts)}


@accounts_bp.post("")
def create_account():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_CREATE_POLICY, partial=False)
        enforce_rules_account(patch)
        account = accounts_service.create_account(patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    return account.to_dict(), 201


@accounts_bp.get("/<int:account_id>")
def get_account(account_id: int):
    try:
        return accounts_service.get_account(account_id).to_dict()
    except LedgerError as e:
        return ledger_error_response(e)


@accounts_bp.patch("/<int:account_id>")
def update_account(account_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_UPDATE_POLICY, partial=True)
        enforce_rules_account(patch)
        account = accounts_service.update_account(account_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except LedgerError as e:
        return ledger_error_response(e)
    return account.to_dict()


@accounts_bp.get("/<int:account_id>/balance")
def account_balance(account_id: int):
    try:
        balance = get_ledger_service().get_account_balance(account_id)
    except LedgerError as e:
        return ledger_error_response(e)
    return {"account_id": account_id, "balance": str(balance)}
