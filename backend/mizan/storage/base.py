# Overview: Storage-provider interface the ledger core is written against.

from __future__ import annotations

import abc
from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal

from ..ledger.records import (
    Account,
    Document,
    Product,
    StockLevel,
    StockMovement,
    Transaction,
    Warehouse,
)


class LedgerStore(abc.ABC):
    """
    Transactional access to the rows the ledger core reads and mutates.

    Invariants every implementation honors:
    - transaction() is all-or-nothing; any exception escaping the block
      (including KeyboardInterrupt) discards every write made inside it.
    - Nested transaction() calls join the outermost one.
    - for_update=True serializes concurrent writers on that row until the
      outermost transaction ends.
    - Movements and transactions are append-only; add_* assigns the id.
    """

    @abc.abstractmethod
    def transaction(self) -> AbstractContextManager["LedgerStore"]:
        raise NotImplementedError

    # Reference data

    @abc.abstractmethod
    def get_product(self, product_id: int) -> Product | None:
        raise NotImplementedError

    @abc.abstractmethod
    def get_warehouse(self, warehouse_id: int) -> Warehouse | None:
        raise NotImplementedError

    # Stock

    @abc.abstractmethod
    def get_stock_quantity(
        self, product_id: int, warehouse_id: int, *, for_update: bool = False
    ) -> Decimal | None:
        """Current quantity, or None when the cell has never moved."""
        raise NotImplementedError

    @abc.abstractmethod
    def list_stock_levels(self, *, warehouse_id: int | None = None) -> list[StockLevel]:
        """Every cell that has moved, ordered by warehouse then product."""
        raise NotImplementedError

    @abc.abstractmethod
    def put_stock_quantity(self, product_id: int, warehouse_id: int, quantity: Decimal) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def add_stock_movement(self, movement: StockMovement) -> StockMovement:
        raise NotImplementedError

    @abc.abstractmethod
    def find_stock_movements(
        self,
        *,
        product_id: int | None = None,
        warehouse_id: int | None = None,
        document_id: int | None = None,
    ) -> list[StockMovement]:
        """Matching movements, newest first."""
        raise NotImplementedError

    # Accounts

    @abc.abstractmethod
    def get_account(self, account_id: int, *, for_update: bool = False) -> Account | None:
        raise NotImplementedError

    @abc.abstractmethod
    def put_account_balance(self, account_id: int, balance: Decimal) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def add_transaction(self, transaction: Transaction) -> Transaction:
        raise NotImplementedError

    @abc.abstractmethod
    def find_transactions(
        self,
        *,
        account_id: int | None = None,
        document_id: int | None = None,
        reference: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[Transaction]:
        """Matching transactions, newest first; date bounds are inclusive."""
        raise NotImplementedError

    # Documents

    @abc.abstractmethod
    def get_document(self, document_id: int, *, for_update: bool = False) -> Document | None:
        raise NotImplementedError

    @abc.abstractmethod
    def update_document_status(
        self,
        document_id: int,
        *,
        status: str,
        cost_of_goods_sold: Decimal | None = None,
        posted_at: datetime | None = None,
        cancelled_at: datetime | None = None,
    ) -> Document:
        raise NotImplementedError
