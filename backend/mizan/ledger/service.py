# Overview: Single entry point for every ledger mutation; one store transaction per call.

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from ..time_utils import utcnow
from .account_ledger import AccountLedger
from .document_poster import DocumentPoster, PostingPolicy
from .errors import (
    AlreadyPostedError,
    InconsistentDocumentError,
    InvalidAmountError,
    LedgerError,
    NotFoundError,
)
from .records import (
    Document,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    PostedDocument,
    Product,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_POSTED,
    StockLevel,
    StockMovement,
    Transaction,
    TX_JOURNAL,
    ZERO_AMOUNT,
    to_amount,
    to_quantity,
)
from .stock_ledger import StockLedger

if TYPE_CHECKING:
    from ..storage.base import LedgerStore

logger = logging.getLogger(__name__)


class ConsistencyService:
    """
    Keeps stock, movements, balances and journal entries mutually consistent.

    Written against the LedgerStore interface only. Every mutating method
    runs inside one store transaction, so a failure anywhere leaves every
    level and balance exactly as it was. Rows are locked in a fixed order
    (document, stock cells by (product, warehouse), accounts by id) so two
    postings touching the same rows serialize instead of deadlocking.
    """

    def __init__(self, store: "LedgerStore", policy: PostingPolicy, *, allow_negative_stock: bool = False):
        self._store = store
        self._policy = policy
        self._allow_negative_stock = allow_negative_stock
        self.stock = StockLedger(store)
        self.accounts = AccountLedger(store)
        self.poster = DocumentPoster(self.stock, self.accounts, policy)

    @property
    def store(self) -> "LedgerStore":
        return self._store

    def _negative_allowed(self, override: bool | None) -> bool:
        return self._allow_negative_stock if override is None else override

    # Locking

    def _lock_cells(self, cells) -> None:
        for product_id, warehouse_id in sorted(set(cells)):
            self._store.get_stock_quantity(product_id, warehouse_id, for_update=True)

    def _lock_accounts(self, account_ids) -> None:
        for account_id in sorted(set(account_ids)):
            self._store.get_account(account_id, for_update=True)

    def _load_document(self, document_id: int) -> Document:
        document = self._store.get_document(document_id, for_update=True)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})
        return document

    # Documents

    def _validate_document(self, document: Document) -> dict[int, Product]:
        details = {"document_id": document.id, "document_number": document.document_number}

        if document.account_id is None or self._store.get_account(document.account_id) is None:
            raise InconsistentDocumentError(
                f"Document {document.document_number} has no valid account",
                details={**details, "account_id": document.account_id},
            )
        if document.warehouse_id is None or self._store.get_warehouse(document.warehouse_id) is None:
            raise InconsistentDocumentError(
                f"Document {document.document_number} has no valid warehouse",
                details={**details, "warehouse_id": document.warehouse_id},
            )
        if not document.lines:
            raise InconsistentDocumentError(f"Document {document.document_number} has no lines", details=details)

        products: dict[int, Product] = {}
        line_sum = ZERO_AMOUNT
        for line in document.lines:
            product = self._store.get_product(line.product_id)
            if product is None:
                raise InconsistentDocumentError(
                    f"Document {document.document_number} references unknown product {line.product_id}",
                    details={**details, "product_id": line.product_id},
                )
            if line.quantity <= 0:
                raise InvalidAmountError(
                    "Line quantity must be greater than zero",
                    details={**details, "product_id": line.product_id, "quantity": str(line.quantity)},
                )
            products[product.id] = product
            line_sum += to_amount(line.line_total)

        if to_amount(document.total) != line_sum:
            raise InconsistentDocumentError(
                f"Document {document.document_number} total does not match its lines",
                details={**details, "total": str(document.total), "lines_total": str(line_sum)},
            )
        if line_sum <= 0:
            raise InvalidAmountError("Document total must be greater than zero", details=details)
        return products

    def post_document(self, document_id: int, *, allow_negative_stock: bool | None = None) -> PostedDocument:
        """
        Apply a draft document's movements and journal entries, all or nothing.

        Raises NotFoundError, AlreadyPostedError, InconsistentDocumentError,
        InvalidAmountError, InsufficientStockError or StorageError; the
        store is unchanged whenever one is raised.
        """
        try:
            with self._store.transaction():
                document = self._load_document(document_id)
                if document.status != STATUS_DRAFT:
                    raise AlreadyPostedError(
                        f"Document {document.document_number} is {document.status}, not draft",
                        details={"document_id": document.id, "status": document.status},
                    )
                products = self._validate_document(document)

                self._lock_cells((line.product_id, document.warehouse_id) for line in document.lines)
                self._lock_accounts({document.account_id} | self._policy.account_ids_for(document.kind))

                result = self.poster.post(
                    document,
                    products,
                    allow_negative_stock=self._negative_allowed(allow_negative_stock),
                )
                posted = self._store.update_document_status(
                    document.id,
                    status=STATUS_POSTED,
                    cost_of_goods_sold=result.cost_of_goods_sold,
                    posted_at=utcnow(),
                )
        except LedgerError as exc:
            logger.warning("posting document %s rolled back: %s", document_id, exc)
            raise

        logger.info(
            "posted %s %s: %d movements, %d entries, cogs=%s",
            posted.kind.value,
            posted.document_number,
            len(result.movements),
            len(result.transactions),
            result.cost_of_goods_sold,
        )
        return PostedDocument(
            document=posted,
            movements=result.movements,
            transactions=result.transactions,
            cost_of_goods_sold=result.cost_of_goods_sold,
        )

    def cancel_document(self, document_id: int, *, allow_negative_stock: bool | None = None) -> PostedDocument:
        """
        Cancel a draft, or reverse a posted document with compensating records.
        """
        try:
            with self._store.transaction():
                document = self._load_document(document_id)
                if document.status == STATUS_CANCELLED:
                    raise AlreadyPostedError(
                        f"Document {document.document_number} is already cancelled",
                        details={"document_id": document.id, "status": document.status},
                    )

                if document.status == STATUS_DRAFT:
                    cancelled = self._store.update_document_status(
                        document.id, status=STATUS_CANCELLED, cancelled_at=utcnow()
                    )
                    return PostedDocument(document=cancelled)

                self._lock_cells((line.product_id, document.warehouse_id) for line in document.lines)
                self._lock_accounts({document.account_id} | self._policy.account_ids_for(document.kind))

                result = self.poster.reverse(
                    document,
                    allow_negative_stock=self._negative_allowed(allow_negative_stock),
                )
                cancelled = self._store.update_document_status(
                    document.id, status=STATUS_CANCELLED, cancelled_at=utcnow()
                )
        except LedgerError as exc:
            logger.warning("cancelling document %s rolled back: %s", document_id, exc)
            raise

        logger.info("reversed %s %s", cancelled.kind.value, cancelled.document_number)
        return PostedDocument(
            document=cancelled,
            movements=result.movements,
            transactions=result.transactions,
            cost_of_goods_sold=result.cost_of_goods_sold,
        )

    # Cash and journal entries

    def record_transaction(
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
    ) -> Transaction:
        with self._store.transaction():
            self._lock_accounts([account_id])
            return self.accounts.apply_transaction(
                account_id,
                tx_type,
                amount,
                date=date,
                payment_method=payment_method,
                reference=reference,
                is_debit=is_debit,
                notes=notes,
            )

    # Stock-only operations

    def adjust_stock(
        self,
        product_id: int,
        warehouse_id: int,
        delta,
        *,
        note: str | None = None,
        allow_negative_stock: bool | None = None,
    ) -> StockMovement:
        delta = to_quantity(delta)
        if delta == 0:
            raise InvalidAmountError("Adjustment quantity must be non-zero", details={"product_id": product_id})
        with self._store.transaction():
            self._lock_cells([(product_id, warehouse_id)])
            if delta < 0 and not self._negative_allowed(allow_negative_stock):
                self.poster.ensure_available(warehouse_id, {product_id: -delta})
            return self.stock.apply_movement(product_id, warehouse_id, delta, MOVEMENT_ADJUSTMENT, note=note)

    def count_stock(self, product_id: int, warehouse_id: int, quantity, *, note: str | None = None) -> StockMovement:
        """Record a stocktake result as the absolute quantity on hand."""
        quantity = to_quantity(quantity)
        if quantity < 0:
            raise InvalidAmountError("Counted quantity cannot be negative", details={"product_id": product_id})
        with self._store.transaction():
            self._lock_cells([(product_id, warehouse_id)])
            return self.stock.set_absolute(product_id, warehouse_id, quantity, MOVEMENT_ADJUSTMENT, note=note)

    def transfer_stock(
        self,
        product_id: int,
        from_warehouse_id: int,
        to_warehouse_id: int,
        quantity,
        *,
        note: str | None = None,
        allow_negative_stock: bool | None = None,
    ) -> tuple[StockMovement, StockMovement]:
        quantity = to_quantity(quantity)
        if quantity <= 0:
            raise InvalidAmountError("Transfer quantity must be greater than zero", details={"product_id": product_id})
        if from_warehouse_id == to_warehouse_id:
            raise ValueError("source and destination warehouses must differ")
        with self._store.transaction():
            self._lock_cells([(product_id, from_warehouse_id), (product_id, to_warehouse_id)])
            if not self._negative_allowed(allow_negative_stock):
                self.poster.ensure_available(from_warehouse_id, {product_id: quantity})
            outbound = self.stock.apply_movement(
                product_id, from_warehouse_id, -quantity, MOVEMENT_TRANSFER_OUT, note=note
            )
            inbound = self.stock.apply_movement(
                product_id, to_warehouse_id, quantity, MOVEMENT_TRANSFER_IN, note=note
            )
        return outbound, inbound

    # Read accessors (side-effect free)

    def get_stock_level(self, product_id: int, warehouse_id: int) -> Decimal:
        return self.stock.get_level(product_id, warehouse_id)

    def get_account_balance(self, account_id: int) -> Decimal:
        return self.accounts.get_balance(account_id)

    def list_stock_levels(self, *, warehouse_id: int | None = None) -> list[StockLevel]:
        return self.stock.list_levels(warehouse_id=warehouse_id)

    def list_stock_movements(
        self,
        *,
        product_id: int | None = None,
        warehouse_id: int | None = None,
        document_id: int | None = None,
    ) -> list[StockMovement]:
        return self.stock.list_movements(
            product_id=product_id,
            warehouse_id=warehouse_id,
            document_id=document_id,
        )

    def list_transactions(
        self,
        *,
        account_id: int | None = None,
        document_id: int | None = None,
        reference: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[Transaction]:
        return self.accounts.list_transactions(
            account_id=account_id,
            document_id=document_id,
            reference=reference,
            date_from=date_from,
            date_to=date_to,
        )


def journal_totals(transactions) -> tuple[Decimal, Decimal]:
    """(debits, credits) over the journal entries in transactions."""
    debits = sum((t.amount for t in transactions if t.type == TX_JOURNAL and t.is_debit), ZERO_AMOUNT)
    credits = sum((t.amount for t in transactions if t.type == TX_JOURNAL and not t.is_debit), ZERO_AMOUNT)
    return debits, credits

