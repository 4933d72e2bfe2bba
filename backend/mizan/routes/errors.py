# backend/mizan/routes/errors.py
"""Ledger error -> HTTP status mapping shared by every blueprint."""

from ..ledger.errors import (
    AlreadyPostedError,
    InconsistentDocumentError,
    InsufficientStockError,
    InvalidAmountError,
    LedgerError,
    NotFoundError,
    StorageError,
)

LEDGER_ERROR_STATUS = (
    (NotFoundError, 404),
    (InvalidAmountError, 400),
    (AlreadyPostedError, 409),
    (InconsistentDocumentError, 422),
    (InsufficientStockError, 409),
    (StorageError, 503),
)


def ledger_error_response(exc: LedgerError):
    status = 500
    for error_cls, code in LEDGER_ERROR_STATUS:
        if isinstance(exc, error_cls):
            status = code
            break
    body = {"error": str(exc), "error_type": type(exc).__name__}
    if exc.details:
        body["details"] = exc.details
    return body, status
