# Overview: Per-account running balances and the append-only transaction log.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from ..time_utils import coerce_datetime
from .errors import InvalidAmountError, NotFoundError
from .records import (
    PAYMENT_METHODS,
    TRANSACTION_TYPES,
    TX_CREDIT,
    TX_DEBIT,
    TX_JOURNAL,
    Transaction,
    to_amount,
)

if TYPE_CHECKING:
    from ..storage.base import LedgerStore


# Direction of a credit/debit on the balance, by account type.
# Debt runs opposite ways for the two counterparties: a customer credit
# (قبض, we collect) lowers what they owe us, a supplier credit raises what
# we owe them. Every other account type follows the customer column.
BALANCE_SIGN = {
    (TX_CREDIT, "customer"): -1,
    (TX_CREDIT, "supplier"): 1,
    (TX_DEBIT, "customer"): 1,
    (TX_DEBIT, "supplier"): -1,
}
DEFAULT_BALANCE_SIGN = {
    TX_CREDIT: -1,
    TX_DEBIT: 1,
}


def balance_delta(tx_type: str, account_type: str, amount: Decimal, is_debit: bool | None = None) -> Decimal:
    """Signed change a transaction makes to an account's current balance."""
    if tx_type == TX_JOURNAL:
        if is_debit is None:
            raise ValueError("journal entries require is_debit")
        return amount if is_debit else -amount
    sign = BALANCE_SIGN.get((tx_type, account_type), DEFAULT_BALANCE_SIGN[tx_type])
    return amount * sign


class AccountLedger:
    """Owns Account.current_balance and Transaction."""

    def __init__(self, store: "LedgerStore"):
        self._store = store

    def _require_account(self, account_id: int):
        account = self._store.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
        return account

    def get_balance(self, account_id: int) -> Decimal:
        return to_amount(self._require_account(account_id).current_balance)

    def apply_transaction(
        self,
        account_id: int,
        tx_type: str,
        amount,
        *,
        date: datetime | str | None = None,
        payment_method: str | None = None,
        reference: str | None = None,
        is_debit: bool | None = None,
        notes: str | None = None,
        document_id: int | None = None,
    ) -> Transaction:
        if tx_type not in TRANSACTION_TYPES:
            raise ValueError(f"unknown transaction type: {tx_type}")

        amount = to_amount(amount)
        if amount <= 0:
            raise InvalidAmountError(
                "Transaction amount must be greater than zero",
                details={"account_id": account_id, "amount": str(amount)},
            )

        if payment_method is None:
            payment_method = "journal" if tx_type == TX_JOURNAL else "cash"
        if payment_method not in PAYMENT_METHODS:
            raise ValueError(f"unknown payment method: {payment_method}")
        if tx_type != TX_JOURNAL:
            is_debit = None

        account = self._require_account(account_id)
        delta = balance_delta(tx_type, account.type, amount, is_debit)

        transaction = self._store.add_transaction(
            Transaction(
                id=None,
                account_id=account_id,
                type=tx_type,
                amount=amount,
                date=coerce_datetime(date),
                payment_method=payment_method,
                reference=reference,
                is_debit=is_debit,
                notes=notes,
                document_id=document_id,
            )
        )
        self._store.put_account_balance(account_id, to_amount(account.current_balance) + delta)
        return transaction

    def list_transactions(
        self,
        *,
        account_id: int | None = None,
        document_id: int | None = None,
        reference: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[Transaction]:
        if account_id is not None:
            self._require_account(account_id)
        return self._store.find_transactions(
            account_id=account_id,
            document_id=document_id,
            reference=reference,
            date_from=date_from,
            date_to=date_to,
        )
