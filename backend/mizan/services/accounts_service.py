# backend/mizan/services/accounts_service.py
"""
Account directory (customers, suppliers, system accounts).

current_balance is set once, as the opening balance on create. Afterwards
only the account ledger moves it, so PATCH never accepts a balance.
"""
from __future__ import annotations

from ..extensions import db
from ..ledger.errors import NotFoundError
from ..models import Account, Transaction
from ..validation import ConflictError, ValidationError

ACCOUNT_MUTABLE_FIELDS = {"code", "name", "type", "is_active"}


def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
    return account


def list_accounts(*, account_type: str | None = None, active_only: bool = False) -> list[Account]:
    query = db.session.query(Account)
    if account_type:
        query = query.filter(Account.type == account_type)
    if active_only:
        query = query.filter(Account.is_active.is_(True))
    return query.order_by(Account.name.asc(), Account.id.asc()).all()


def _check_code(code: str | None, *, exclude_id: int | None = None) -> None:
    if not code:
        return
    query = db.session.query(Account).filter(Account.code == code)
    if exclude_id is not None:
        query = query.filter(Account.id != exclude_id)
    if query.first():
        raise ConflictError(f"Account code {code} already exists")


def create_account(*, patch: dict) -> Account:
    _check_code(patch.get("code"))

    account = Account(current_balance=patch.get("current_balance") or 0)
    for k, v in patch.items():
        if k in ACCOUNT_MUTABLE_FIELDS:
            setattr(account, k, v)
    db.session.add(account)
    db.session.commit()
    return account


def update_account(account_id: int, *, patch: dict) -> Account:
    if "current_balance" in patch:
        raise ValidationError("current_balance changes only through transactions")

    account = get_account(account_id)
    if "type" in patch and patch["type"] != account.type:
        # Changing the type would reinterpret the sign of every posted entry
        if db.session.query(Transaction).filter_by(account_id=account_id).first():
            raise ConflictError("Account type cannot change once transactions exist")

    _check_code(patch.get("code"), exclude_id=account_id)
    for k, v in patch.items():
        if k in ACCOUNT_MUTABLE_FIELDS:
            setattr(account, k, v)
    db.session.commit()
    return account
