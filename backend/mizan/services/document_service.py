# backend/mizan/services/document_service.py
"""
Draft document editing and number allocation.

Drafts are plain rows: create, edit and delete freely while status is draft.
Posting and cancelling never happen here; they go through the ledger's
ConsistencyService so stock and balances move in the same transaction.
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..ledger.errors import AlreadyPostedError, NotFoundError
from ..ledger.records import DocumentKind, STATUS_DRAFT, to_amount, to_quantity
from ..models import Account, Document, DocumentLine, DocumentSequence, Product, Warehouse
from ..time_utils import coerce_datetime
from ..validation import ValidationError
from .concurrency import run_with_retry

DOCUMENT_HEADER_FIELDS = {"account_id", "warehouse_id", "date", "due_date", "notes"}


def next_document_number(kind: DocumentKind) -> str:
    """
    Atomically allocate the next number for a document kind (INV-1, PUR-1, ...).

    The counter row is bumped with a single UPDATE; the first allocation
    inserts it, and a concurrent first insert falls back to the UPDATE.
    """
    kind = DocumentKind(kind)

    def _op() -> str:
        stmt = (
            update(DocumentSequence)
            .where(DocumentSequence.kind == kind.value)
            .values(next_number=DocumentSequence.next_number + 1)
        )

        result = db.session.execute(stmt)
        if result.rowcount:
            db.session.flush()
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(kind=kind.value)
                .scalar()
            )
            next_num = current - 1
        else:
            seq = DocumentSequence(kind=kind.value, next_number=2)
            db.session.add(seq)
            try:
                db.session.flush()
                next_num = 1
            except IntegrityError:
                db.session.rollback()
                result = db.session.execute(stmt)
                if not result.rowcount:
                    raise
                db.session.flush()
                current = (
                    db.session.query(DocumentSequence.next_number)
                    .filter_by(kind=kind.value)
                    .scalar()
                )
                next_num = current - 1

        return f"{kind.number_prefix}-{next_num}"

    return run_with_retry(_op)


def peek_next_document_number(kind: DocumentKind) -> str:
    """The number the next allocation would return, without consuming it."""
    kind = DocumentKind(kind)
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(kind=kind.value)
        .scalar()
    )
    return f"{kind.number_prefix}-{current or 1}"


def get_document(document_id: int) -> Document:
    document = db.session.get(Document, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})
    return document


def list_documents(
    *,
    kind: str | None = None,
    status: str | None = None,
    account_id: int | None = None,
    page: int | None = None,
    per_page: int = 20,
) -> dict:
    query = db.session.query(Document)
    if kind:
        query = query.filter(Document.kind == kind)
    if status:
        query = query.filter(Document.status == status)
    if account_id:
        query = query.filter(Document.account_id == account_id)
    query = query.order_by(Document.date.desc(), Document.id.desc())

    if page is None:
        items = query.all()
        return {"items": [d.to_dict() for d in items], "count": len(items)}

    page = max(page, 1)
    per_page = min(max(per_page, 1), 100)
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [d.to_dict() for d in items],
        "count": total,
        "page": page,
        "per_page": per_page,
    }


def _check_references(*, account_id: int | None, warehouse_id: int | None, lines: list[dict] | None) -> None:
    if account_id is not None and db.session.get(Account, account_id) is None:
        raise ValidationError(f"Account {account_id} not found")
    if warehouse_id is not None and db.session.get(Warehouse, warehouse_id) is None:
        raise ValidationError(f"Warehouse {warehouse_id} not found")
    for line in lines or []:
        if db.session.get(Product, line["product_id"]) is None:
            raise ValidationError(f"Product {line['product_id']} not found")


def _build_lines(lines: list[dict]) -> tuple[list[DocumentLine], Decimal]:
    rows = []
    total = Decimal("0.00")
    for line in lines:
        quantity = to_quantity(line["quantity"])
        unit_price = to_amount(line["unit_price"])
        line_total = to_amount(quantity * unit_price)
        rows.append(
            DocumentLine(
                product_id=line["product_id"],
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
            )
        )
        total += line_total
    return rows, total


def create_draft(*, kind: DocumentKind, patch: dict, lines: list[dict]) -> Document:
    """
    Create a draft with server-computed line totals and document total.

    patch holds validated header fields; lines are validated dicts of
    product_id / quantity / unit_price.
    """
    kind = DocumentKind(kind)
    _check_references(
        account_id=patch.get("account_id"),
        warehouse_id=patch.get("warehouse_id"),
        lines=lines,
    )

    rows, total = _build_lines(lines)
    document = Document(
        document_number=next_document_number(kind),
        kind=kind.value,
        status=STATUS_DRAFT,
        total=total,
        date=coerce_datetime(patch.get("date")),
    )
    for k, v in patch.items():
        if k in DOCUMENT_HEADER_FIELDS and k != "date":
            setattr(document, k, v)
    document.lines = rows

    db.session.add(document)
    db.session.commit()
    return document


def _require_draft(document: Document) -> None:
    if document.status != STATUS_DRAFT:
        raise AlreadyPostedError(
            f"Document {document.document_number} is {document.status}; only drafts can be edited",
            details={"document_id": document.id, "status": document.status},
        )


def update_draft(document_id: int, *, patch: dict, lines: list[dict] | None = None) -> Document:
    document = get_document(document_id)
    _require_draft(document)
    _check_references(
        account_id=patch.get("account_id"),
        warehouse_id=patch.get("warehouse_id"),
        lines=lines,
    )

    for k, v in patch.items():
        if k not in DOCUMENT_HEADER_FIELDS:
            continue
        if k == "date":
            v = coerce_datetime(v)
        setattr(document, k, v)

    if lines is not None:
        rows, total = _build_lines(lines)
        document.lines = rows
        document.total = total

    db.session.commit()
    return document


def delete_draft(document_id: int) -> None:
    document = get_document(document_id)
    _require_draft(document)
    db.session.delete(document)
    db.session.commit()
