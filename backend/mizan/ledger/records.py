# Overview: Immutable records exchanged between the ledger core and a LedgerStore.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from ..time_utils import to_utc_z


AMOUNT_QUANT = Decimal("0.01")
QUANTITY_QUANT = Decimal("0.001")

ZERO_AMOUNT = Decimal("0.00")
ZERO_QUANTITY = Decimal("0.000")

# Movement kinds
MOVEMENT_PURCHASE = "purchase"
MOVEMENT_SALE = "sale"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TRANSFER_IN = "transfer-in"
MOVEMENT_TRANSFER_OUT = "transfer-out"
MOVEMENT_KINDS = {
    MOVEMENT_PURCHASE,
    MOVEMENT_SALE,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
}

# Transaction types
TX_CREDIT = "credit"
TX_DEBIT = "debit"
TX_JOURNAL = "journal"
TRANSACTION_TYPES = {TX_CREDIT, TX_DEBIT, TX_JOURNAL}

PAYMENT_METHODS = {"cash", "bank", "check", "card", "journal"}

ACCOUNT_TYPES = {
    "customer",
    "supplier",
    "expense",
    "revenue",
    "asset",
    "liability",
    "equity",
    "cash",
    "bank",
}

# Document statuses
STATUS_DRAFT = "draft"
STATUS_POSTED = "posted"
STATUS_CANCELLED = "cancelled"
DOCUMENT_STATUSES = {STATUS_DRAFT, STATUS_POSTED, STATUS_CANCELLED}


class DocumentKind(str, Enum):
    """Explicit document discriminator; the number prefix is display only."""

    SALE = "sale"
    PURCHASE = "purchase"

    @property
    def number_prefix(self) -> str:
        return "INV" if self is DocumentKind.SALE else "PUR"


def to_amount(value) -> Decimal:
    """Money is quantized to 0.01, half-up."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(AMOUNT_QUANT, rounding=ROUND_HALF_UP)


def to_quantity(value) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(QUANTITY_QUANT, rounding=ROUND_HALF_UP)


def _fmt(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class Product:
    id: int
    code: str
    name: str
    unit: str
    cost_price: Decimal
    sell_price: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class Warehouse:
    id: int
    name: str
    is_default: bool = False
    is_active: bool = True


@dataclass(frozen=True)
class Account:
    id: int
    name: str
    type: str
    current_balance: Decimal = ZERO_AMOUNT
    is_active: bool = True


@dataclass(frozen=True)
class StockLevel:
    product_id: int
    warehouse_id: int
    quantity: Decimal

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": _fmt(self.quantity),
        }


@dataclass(frozen=True)
class DocumentRef:
    document_id: int
    document_type: str


@dataclass(frozen=True)
class StockMovement:
    id: int | None
    product_id: int
    warehouse_id: int
    quantity_delta: Decimal
    kind: str
    occurred_at: datetime
    document_id: int | None = None
    document_type: str | None = None
    note: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity_delta": _fmt(self.quantity_delta),
            "kind": self.kind,
            "document_id": self.document_id,
            "document_type": self.document_type,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
        }


@dataclass(frozen=True)
class Transaction:
    id: int | None
    account_id: int
    type: str
    amount: Decimal
    date: datetime
    payment_method: str
    reference: str | None = None
    is_debit: bool | None = None
    notes: str | None = None
    document_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "type": self.type,
            "amount": _fmt(self.amount),
            "date": to_utc_z(self.date),
            "payment_method": self.payment_method,
            "reference": self.reference,
            "is_debit": self.is_debit,
            "notes": self.notes,
            "document_id": self.document_id,
        }


@dataclass(frozen=True)
class DocumentLine:
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": _fmt(self.quantity),
            "unit_price": _fmt(self.unit_price),
            "line_total": _fmt(self.line_total),
        }


@dataclass(frozen=True)
class Document:
    id: int
    document_number: str
    kind: DocumentKind
    account_id: int | None
    warehouse_id: int | None
    date: datetime
    status: str
    total: Decimal
    lines: tuple[DocumentLine, ...] = ()
    cost_of_goods_sold: Decimal | None = None
    posted_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(document_id=self.id, document_type=self.kind.value)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "kind": self.kind.value,
            "account_id": self.account_id,
            "warehouse_id": self.warehouse_id,
            "date": to_utc_z(self.date),
            "status": self.status,
            "total": _fmt(self.total),
            "cost_of_goods_sold": _fmt(self.cost_of_goods_sold),
            "posted_at": to_utc_z(self.posted_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class PostingResult:
    movements: tuple[StockMovement, ...]
    transactions: tuple[Transaction, ...]
    cost_of_goods_sold: Decimal


@dataclass(frozen=True)
class PostedDocument:
    """Outcome of posting or cancelling a document."""

    document: Document
    movements: tuple[StockMovement, ...] = field(default_factory=tuple)
    transactions: tuple[Transaction, ...] = field(default_factory=tuple)
    cost_of_goods_sold: Decimal = ZERO_AMOUNT

    def to_dict(self) -> dict:
        return {
            "document": self.document.to_dict(),
            "cost_of_goods_sold": _fmt(self.cost_of_goods_sold),
            "movements": [m.to_dict() for m in self.movements],
            "transactions": [t.to_dict() for t in self.transactions],
        }
