"""
Ledger & stock consistency core.

HTTP layer -> ConsistencyService -> {DocumentPoster -> StockLedger, AccountLedger}
-> LedgerStore. The core modules never import Flask; init_ledger() and
get_ledger_service() bind one instance to the app and look it up.
"""
from flask import current_app

from .errors import (
    LedgerError,
    NotFoundError,
    InvalidAmountError,
    AlreadyPostedError,
    InconsistentDocumentError,
    InsufficientStockError,
    StorageError,
)
from .records import DocumentKind, PostedDocument
from .document_poster import PostingPolicy
from .service import ConsistencyService, journal_totals

EXTENSION_KEY = "mizan.ledger"


def init_ledger(app, store=None) -> ConsistencyService:
    """Bind one ConsistencyService (SQL store by default) to the app."""
    if store is None:
        from ..storage.sql import SqlLedgerStore
        store = SqlLedgerStore()
    service = ConsistencyService(
        store,
        PostingPolicy.from_config(app.config),
        allow_negative_stock=bool(app.config.get("ALLOW_NEGATIVE_STOCK", False)),
    )
    app.extensions[EXTENSION_KEY] = service
    return service


def get_ledger_service() -> ConsistencyService:
    return current_app.extensions[EXTENSION_KEY]


__all__ = [
    'LedgerError', 'NotFoundError', 'InvalidAmountError', 'AlreadyPostedError',
    'InconsistentDocumentError', 'InsufficientStockError', 'StorageError',
    'DocumentKind', 'PostedDocument', 'PostingPolicy',
    'ConsistencyService', 'journal_totals',
    'init_ledger', 'get_ledger_service',
]
