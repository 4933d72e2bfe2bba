# Overview: LedgerStore over Flask-SQLAlchemy's scoped session.

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from .. import models
from ..extensions import db
from ..ledger.errors import LedgerError, NotFoundError, StorageError
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
    ZERO_QUANTITY,
)
from ..services.concurrency import lock_for_update
from ..time_utils import utcnow
from .base import LedgerStore

logger = logging.getLogger(__name__)

_DEPTH_KEY = "mizan.ledger_tx_depth"


def _product(row: models.Product) -> Product:
    return Product(
        id=row.id,
        code=row.code,
        name=row.name,
        unit=row.unit,
        cost_price=Decimal(row.cost_price),
        sell_price=Decimal(row.sell_price),
        is_active=row.is_active,
    )


def _warehouse(row: models.Warehouse) -> Warehouse:
    return Warehouse(id=row.id, name=row.name, is_default=row.is_default, is_active=row.is_active)


def _account(row: models.Account) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        type=row.type,
        current_balance=Decimal(row.current_balance),
        is_active=row.is_active,
    )


def _movement(row: models.StockMovement) -> StockMovement:
    return StockMovement(
        id=row.id,
        product_id=row.product_id,
        warehouse_id=row.warehouse_id,
        quantity_delta=Decimal(row.quantity_delta),
        kind=row.kind,
        occurred_at=row.occurred_at,
        document_id=row.document_id,
        document_type=row.document_type,
        note=row.note,
    )


def _transaction(row: models.Transaction) -> Transaction:
    return Transaction(
        id=row.id,
        account_id=row.account_id,
        type=row.type,
        amount=Decimal(row.amount),
        date=row.date,
        payment_method=row.payment_method,
        reference=row.reference,
        is_debit=row.is_debit,
        notes=row.notes,
        document_id=row.document_id,
    )


def _document(row: models.Document) -> Document:
    return Document(
        id=row.id,
        document_number=row.document_number,
        kind=DocumentKind(row.kind),
        account_id=row.account_id,
        warehouse_id=row.warehouse_id,
        date=row.date,
        status=row.status,
        total=Decimal(row.total),
        lines=tuple(
            DocumentLine(
                id=line.id,
                product_id=line.product_id,
                quantity=Decimal(line.quantity),
                unit_price=Decimal(line.unit_price),
                line_total=Decimal(line.line_total),
            )
            for line in row.lines
        ),
        cost_of_goods_sold=None if row.cost_of_goods_sold is None else Decimal(row.cost_of_goods_sold),
        posted_at=row.posted_at,
        cancelled_at=row.cancelled_at,
    )


class SqlLedgerStore(LedgerStore):
    """
    Store backed by the relational database.

    One instance per process; all state lives in db.session, which
    Flask-SQLAlchemy scopes to the current app context, so the nesting
    depth is tracked on the session rather than on this object.
    """

    def __init__(self, database=db):
        self._db = database

    @property
    def session(self):
        return self._db.session

    @contextmanager
    def transaction(self):
        session = self.session
        depth = session.info.get(_DEPTH_KEY, 0)
        session.info[_DEPTH_KEY] = depth + 1
        if depth:
            try:
                yield self
            finally:
                session.info[_DEPTH_KEY] = depth
            return

        try:
            yield self
            session.commit()
        except LedgerError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("ledger transaction rolled back: %s", exc)
            raise StorageError("storage commit failed", details={"cause": str(exc)}) from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.info[_DEPTH_KEY] = 0

    def get_product(self, product_id):
        row = self.session.get(models.Product, product_id)
        return _product(row) if row else None

    def get_warehouse(self, warehouse_id):
        row = self.session.get(models.Warehouse, warehouse_id)
        return _warehouse(row) if row else None

    def _stock_row(self, product_id, warehouse_id, *, for_update=False):
        query = self.session.query(models.StockLevel).filter_by(
            product_id=product_id,
            warehouse_id=warehouse_id,
        )
        if for_update:
            query = lock_for_update(query).populate_existing()
        return query.first()

    def get_stock_quantity(self, product_id, warehouse_id, *, for_update=False):
        row = self._stock_row(product_id, warehouse_id, for_update=for_update)
        return Decimal(row.quantity) if row else None

    def list_stock_levels(self, *, warehouse_id=None):
        query = self.session.query(models.StockLevel)
        if warehouse_id is not None:
            query = query.filter(models.StockLevel.warehouse_id == warehouse_id)
        query = query.order_by(models.StockLevel.warehouse_id.asc(), models.StockLevel.product_id.asc())
        return [
            StockLevel(product_id=row.product_id, warehouse_id=row.warehouse_id, quantity=Decimal(row.quantity))
            for row in query.all()
        ]

    def put_stock_quantity(self, product_id, warehouse_id, quantity):
        row = self._stock_row(product_id, warehouse_id)
        if row is None:
            row = models.StockLevel(
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=ZERO_QUANTITY,
            )
            self.session.add(row)
        row.quantity = quantity
        row.updated_at = utcnow()
        self.session.flush()

    def add_stock_movement(self, movement):
        row = models.StockMovement(
            product_id=movement.product_id,
            warehouse_id=movement.warehouse_id,
            quantity_delta=movement.quantity_delta,
            kind=movement.kind,
            document_id=movement.document_id,
            document_type=movement.document_type,
            note=movement.note,
            occurred_at=movement.occurred_at,
        )
        self.session.add(row)
        self.session.flush()
        return _movement(row)

    def find_stock_movements(self, *, product_id=None, warehouse_id=None, document_id=None):
        query = self.session.query(models.StockMovement)
        if product_id is not None:
            query = query.filter(models.StockMovement.product_id == product_id)
        if warehouse_id is not None:
            query = query.filter(models.StockMovement.warehouse_id == warehouse_id)
        if document_id is not None:
            query = query.filter(models.StockMovement.document_id == document_id)
        query = query.order_by(
            models.StockMovement.occurred_at.desc(),
            models.StockMovement.id.desc(),
        )
        return [_movement(row) for row in query.all()]

    def get_account(self, account_id, *, for_update=False):
        query = self.session.query(models.Account).filter_by(id=account_id)
        if for_update:
            query = lock_for_update(query).populate_existing()
        row = query.first()
        return _account(row) if row else None

    def put_account_balance(self, account_id, balance):
        row = self.session.get(models.Account, account_id)
        if row is None:
            raise NotFoundError(f"Account {account_id} not found", details={"account_id": account_id})
        row.current_balance = balance
        self.session.flush()

    def add_transaction(self, transaction):
        row = models.Transaction(
            account_id=transaction.account_id,
            type=transaction.type,
            amount=transaction.amount,
            date=transaction.date,
            payment_method=transaction.payment_method,
            reference=transaction.reference,
            is_debit=transaction.is_debit,
            notes=transaction.notes,
            document_id=transaction.document_id,
        )
        self.session.add(row)
        self.session.flush()
        return _transaction(row)

    def find_transactions(
        self,
        *,
        account_id=None,
        document_id=None,
        reference=None,
        date_from=None,
        date_to=None,
    ):
        query = self.session.query(models.Transaction)
        if account_id is not None:
            query = query.filter(models.Transaction.account_id == account_id)
        if document_id is not None:
            query = query.filter(models.Transaction.document_id == document_id)
        if reference is not None:
            query = query.filter(models.Transaction.reference == reference)
        if date_from is not None:
            query = query.filter(models.Transaction.date >= date_from)
        if date_to is not None:
            query = query.filter(models.Transaction.date <= date_to)
        query = query.order_by(models.Transaction.date.desc(), models.Transaction.id.desc())
        return [_transaction(row) for row in query.all()]

    def get_document(self, document_id, *, for_update=False):
        query = self.session.query(models.Document).filter_by(id=document_id)
        if for_update:
            query = lock_for_update(query).populate_existing()
        row = query.first()
        return _document(row) if row else None

    def update_document_status(
        self,
        document_id,
        *,
        status,
        cost_of_goods_sold=None,
        posted_at=None,
        cancelled_at=None,
    ):
        row = self.session.get(models.Document, document_id)
        if row is None:
            raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})
        row.status = status
        if cost_of_goods_sold is not None:
            row.cost_of_goods_sold = cost_of_goods_sold
        if posted_at is not None:
            row.posted_at = posted_at
        if cancelled_at is not None:
            row.cancelled_at = cancelled_at
        self.session.flush()
        return _document(row)
