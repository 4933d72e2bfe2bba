# Overview: In-memory LedgerStore; one explicitly constructed instance per test or tool run.

from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from ..ledger.records import (
    Account,
    Document,
    DocumentKind,
    DocumentLine,
    Product,
    StockLevel,
    StockMovement,
    Transaction,
    Warehouse,
    STATUS_DRAFT,
    ZERO_AMOUNT,
    to_amount,
    to_quantity,
)
from ..time_utils import coerce_datetime
from .base import LedgerStore


class InMemoryLedgerStore(LedgerStore):
    """
    Dict-backed store.

    A single re-entrant lock serializes transactions, so for_update is
    implied. The outermost transaction snapshots every table and restores
    the snapshot if the block raises.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._ids = itertools.count(1)

        self.products: dict[int, Product] = {}
        self.warehouses: dict[int, Warehouse] = {}
        self.accounts: dict[int, Account] = {}
        self.documents: dict[int, Document] = {}
        self.stock: dict[tuple[int, int], Decimal] = {}
        self.movements: list[StockMovement] = []
        self.transactions: list[Transaction] = []

    # Seeding helpers (tests, CLI dry runs)

    @staticmethod
    def _allocate(table: dict, requested: int | None) -> int:
        if requested is not None:
            return requested
        return max(table, default=0) + 1

    def add_product(
        self,
        *,
        code: str,
        name: str,
        cost_price=0,
        sell_price=0,
        unit: str = "قطعة",
        product_id: int | None = None,
    ) -> Product:
        pid = self._allocate(self.products, product_id)
        product = Product(
            id=pid,
            code=code,
            name=name,
            unit=unit,
            cost_price=to_amount(cost_price),
            sell_price=to_amount(sell_price),
        )
        self.products[pid] = product
        return product

    def add_warehouse(self, *, name: str, is_default: bool = False, warehouse_id: int | None = None) -> Warehouse:
        wid = self._allocate(self.warehouses, warehouse_id)
        warehouse = Warehouse(id=wid, name=name, is_default=is_default)
        self.warehouses[wid] = warehouse
        return warehouse

    def add_account(
        self,
        *,
        name: str,
        type: str,
        current_balance=ZERO_AMOUNT,
        account_id: int | None = None,
    ) -> Account:
        aid = self._allocate(self.accounts, account_id)
        account = Account(id=aid, name=name, type=type, current_balance=to_amount(current_balance))
        self.accounts[aid] = account
        return account

    def add_document(
        self,
        *,
        kind: DocumentKind,
        document_number: str,
        account_id: int | None,
        warehouse_id: int | None,
        lines: list[tuple[int, object, object]],
        date: datetime | None = None,
        total=None,
        document_id: int | None = None,
    ) -> Document:
        """lines are (product_id, quantity, unit_price); total defaults to their sum."""
        did = self._allocate(self.documents, document_id)
        doc_lines = []
        for product_id, quantity, unit_price in lines:
            qty = to_quantity(quantity)
            price = to_amount(unit_price)
            doc_lines.append(
                DocumentLine(
                    id=next(self._ids),
                    product_id=product_id,
                    quantity=qty,
                    unit_price=price,
                    line_total=to_amount(qty * price),
                )
            )
        computed = sum((line.line_total for line in doc_lines), ZERO_AMOUNT)
        document = Document(
            id=did,
            document_number=document_number,
            kind=kind,
            account_id=account_id,
            warehouse_id=warehouse_id,
            date=coerce_datetime(date),
            status=STATUS_DRAFT,
            total=to_amount(total) if total is not None else computed,
            lines=tuple(doc_lines),
        )
        self.documents[did] = document
        return document

    # LedgerStore

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                self._depth = 0

    def _snapshot(self) -> dict:
        # Records are frozen, so shallow copies of the containers suffice.
        return {
            "products": dict(self.products),
            "warehouses": dict(self.warehouses),
            "accounts": dict(self.accounts),
            "documents": dict(self.documents),
            "stock": dict(self.stock),
            "movements": list(self.movements),
            "transactions": list(self.transactions),
        }

    def _restore(self, snapshot: dict) -> None:
        for name, value in snapshot.items():
            setattr(self, name, value)

    def get_product(self, product_id):
        return self.products.get(product_id)

    def get_warehouse(self, warehouse_id):
        return self.warehouses.get(warehouse_id)

    def get_stock_quantity(self, product_id, warehouse_id, *, for_update=False):
        return self.stock.get((product_id, warehouse_id))

    def list_stock_levels(self, *, warehouse_id=None):
        return [
            StockLevel(product_id=p, warehouse_id=w, quantity=q)
            for (p, w), q in sorted(self.stock.items(), key=lambda item: (item[0][1], item[0][0]))
            if warehouse_id is None or w == warehouse_id
        ]

    def put_stock_quantity(self, product_id, warehouse_id, quantity):
        self.stock[(product_id, warehouse_id)] = quantity

    def add_stock_movement(self, movement):
        stored = replace(movement, id=next(self._ids))
        self.movements.append(stored)
        return stored

    def find_stock_movements(self, *, product_id=None, warehouse_id=None, document_id=None):
        rows = [
            m for m in self.movements
            if (product_id is None or m.product_id == product_id)
            and (warehouse_id is None or m.warehouse_id == warehouse_id)
            and (document_id is None or m.document_id == document_id)
        ]
        return sorted(rows, key=lambda m: (m.occurred_at, m.id), reverse=True)

    def get_account(self, account_id, *, for_update=False):
        return self.accounts.get(account_id)

    def put_account_balance(self, account_id, balance):
        self.accounts[account_id] = replace(self.accounts[account_id], current_balance=balance)

    def add_transaction(self, transaction):
        stored = replace(transaction, id=next(self._ids))
        self.transactions.append(stored)
        return stored

    def find_transactions(
        self,
        *,
        account_id=None,
        document_id=None,
        reference=None,
        date_from=None,
        date_to=None,
    ):
        rows = [
            t for t in self.transactions
            if (account_id is None or t.account_id == account_id)
            and (document_id is None or t.document_id == document_id)
            and (reference is None or t.reference == reference)
            and (date_from is None or t.date >= date_from)
            and (date_to is None or t.date <= date_to)
        ]
        return sorted(rows, key=lambda t: (t.date, t.id), reverse=True)

    def get_document(self, document_id, *, for_update=False):
        return self.documents.get(document_id)

    def update_document_status(
        self,
        document_id,
        *,
        status,
        cost_of_goods_sold=None,
        posted_at=None,
        cancelled_at=None,
    ):
        current = self.documents[document_id]
        updated = replace(
            current,
            status=status,
            cost_of_goods_sold=cost_of_goods_sold if cost_of_goods_sold is not None else current.cost_of_goods_sold,
            posted_at=posted_at or current.posted_at,
            cancelled_at=cancelled_at or current.cancelled_at,
        )
        self.documents[document_id] = updated
        return updated
