# Overview: Translates one document into stock movements and balanced journal entries.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from .account_ledger import AccountLedger
from .errors import InsufficientStockError
from .records import (
    Document,
    DocumentKind,
    MOVEMENT_PURCHASE,
    MOVEMENT_SALE,
    PostingResult,
    Product,
    StockMovement,
    Transaction,
    TX_JOURNAL,
    ZERO_AMOUNT,
    ZERO_QUANTITY,
    to_amount,
)
from .stock_ledger import StockLedger


# Journal narrations, Arabic-first as printed on account statements.
NOTES = {
    "purchase_inventory": "زيادة المخزون - فاتورة مشتريات",
    "purchase_supplier": "فاتورة مشتريات",
    "sale_customer": "فاتورة مبيعات",
    "sale_revenue": "إيرادات مبيعات",
    "sale_cogs": "تكلفة البضاعة المباعة",
    "sale_inventory": "تخفيض المخزون - بيع بضاعة",
}
REVERSAL_PREFIX = "إلغاء"


@dataclass(frozen=True)
class PostingPolicy:
    """System accounts the fixed accounting policy posts against."""

    inventory_account_id: int
    sales_revenue_account_id: int
    cogs_account_id: int

    @classmethod
    def from_config(cls, config) -> "PostingPolicy":
        return cls(
            inventory_account_id=int(config["INVENTORY_ACCOUNT_ID"]),
            sales_revenue_account_id=int(config["SALES_REVENUE_ACCOUNT_ID"]),
            cogs_account_id=int(config["COGS_ACCOUNT_ID"]),
        )

    def account_ids_for(self, kind: DocumentKind) -> set[int]:
        if kind is DocumentKind.PURCHASE:
            return {self.inventory_account_id}
        return {self.inventory_account_id, self.sales_revenue_account_id, self.cogs_account_id}


class DocumentPoster:
    """
    The only writer that touches both ledgers for a given document.

    Purchase: +qty per line, then Dr Inventory / Cr supplier for the total.
    Sale: -qty per line, then Dr customer / Cr Sales Revenue for the total
    and Dr COGS / Cr Inventory for cost_price x qty at posting time.

    The counterparty's journal entry is its balance update; it is applied
    exactly once. Debits equal credits for every document.

    Callers own the transaction boundary; nothing here commits.
    """

    def __init__(self, stock: StockLedger, accounts: AccountLedger, policy: PostingPolicy):
        self._stock = stock
        self._accounts = accounts
        self._policy = policy

    def post(
        self,
        document: Document,
        products: dict[int, Product],
        *,
        allow_negative_stock: bool = False,
    ) -> PostingResult:
        if document.kind is DocumentKind.PURCHASE:
            return self._post_purchase(document)
        return self._post_sale(document, products, allow_negative_stock)

    def _journal(self, document: Document, account_id: int, amount: Decimal, is_debit: bool, note: str) -> Transaction:
        return self._accounts.apply_transaction(
            account_id,
            TX_JOURNAL,
            amount,
            date=document.date,
            payment_method="journal",
            reference=document.document_number,
            is_debit=is_debit,
            notes=note,
            document_id=document.id,
        )

    def _post_purchase(self, document: Document) -> PostingResult:
        movements = tuple(
            self._stock.apply_movement(
                line.product_id,
                document.warehouse_id,
                line.quantity,
                MOVEMENT_PURCHASE,
                document.ref,
                note=document.document_number,
            )
            for line in document.lines
        )

        total = to_amount(document.total)
        transactions = (
            self._journal(document, self._policy.inventory_account_id, total, True, NOTES["purchase_inventory"]),
            self._journal(document, document.account_id, total, False, NOTES["purchase_supplier"]),
        )
        return PostingResult(movements=movements, transactions=transactions, cost_of_goods_sold=ZERO_AMOUNT)

    def _post_sale(self, document: Document, products: dict[int, Product], allow_negative_stock: bool) -> PostingResult:
        if not allow_negative_stock:
            required: dict[int, Decimal] = defaultdict(lambda: ZERO_QUANTITY)
            for line in document.lines:
                required[line.product_id] += line.quantity
            self.ensure_available(document.warehouse_id, required)

        movements: list[StockMovement] = []
        cost = ZERO_AMOUNT
        for line in document.lines:
            movements.append(
                self._stock.apply_movement(
                    line.product_id,
                    document.warehouse_id,
                    -line.quantity,
                    MOVEMENT_SALE,
                    document.ref,
                    note=document.document_number,
                )
            )
            # Current cost price, not a moving average or cost layer.
            cost += products[line.product_id].cost_price * line.quantity
        cost_of_goods_sold = to_amount(cost)

        total = to_amount(document.total)
        transactions = [
            self._journal(document, document.account_id, total, True, NOTES["sale_customer"]),
            self._journal(document, self._policy.sales_revenue_account_id, total, False, NOTES["sale_revenue"]),
        ]
        # A zero-cost sale has no COGS pair; amounts must be positive.
        if cost_of_goods_sold > 0:
            transactions.append(
                self._journal(document, self._policy.cogs_account_id, cost_of_goods_sold, True, NOTES["sale_cogs"])
            )
            transactions.append(
                self._journal(document, self._policy.inventory_account_id, cost_of_goods_sold, False, NOTES["sale_inventory"])
            )

        return PostingResult(
            movements=tuple(movements),
            transactions=tuple(transactions),
            cost_of_goods_sold=cost_of_goods_sold,
        )

    def ensure_available(self, warehouse_id: int, required: dict[int, Decimal]) -> None:
        short = []
        for product_id, quantity in sorted(required.items()):
            on_hand = self._stock.get_level(product_id, warehouse_id)
            if on_hand - quantity < 0:
                short.append({
                    "product_id": product_id,
                    "warehouse_id": warehouse_id,
                    "requested_quantity": str(quantity),
                    "on_hand": str(on_hand),
                })
        if short:
            raise InsufficientStockError("Insufficient stock", details={"items": short})

    def reverse(self, document: Document, *, allow_negative_stock: bool = False) -> PostingResult:
        """
        Compensate every movement and entry recorded for a posted document.

        Each movement gets an opposite-delta movement of the same kind; each
        journal entry gets a mirror with the same amount on the other side.
        """
        originals = list(reversed(self._stock.list_movements(document_id=document.id)))
        entries = list(reversed(self._accounts.list_transactions(document_id=document.id)))

        if not allow_negative_stock:
            by_warehouse: dict[int, dict[int, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO_QUANTITY))
            for movement in originals:
                if movement.quantity_delta > 0:
                    by_warehouse[movement.warehouse_id][movement.product_id] += movement.quantity_delta
            for warehouse_id, required in sorted(by_warehouse.items()):
                self.ensure_available(warehouse_id, required)

        note = f"{REVERSAL_PREFIX} {document.document_number}"
        movements = tuple(
            self._stock.apply_movement(
                movement.product_id,
                movement.warehouse_id,
                -movement.quantity_delta,
                movement.kind,
                document.ref,
                note=note,
            )
            for movement in originals
        )
        transactions = tuple(
            self._journal(document, entry.account_id, entry.amount, not entry.is_debit, f"{REVERSAL_PREFIX} - {entry.notes or ''}".strip())
            for entry in entries
            if entry.type == TX_JOURNAL
        )
        return PostingResult(
            movements=movements,
            transactions=transactions,
            cost_of_goods_sold=document.cost_of_goods_sold or ZERO_AMOUNT,
        )
