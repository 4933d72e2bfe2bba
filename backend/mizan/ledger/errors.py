# Overview: Error kinds raised by the ledger core; the HTTP layer maps them to status codes.


class LedgerError(Exception):
    """Base class for ledger and stock consistency failures."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LedgerError):
    """Unknown product, warehouse, account or document id."""


class InvalidAmountError(LedgerError):
    """Non-positive transaction amount or non-positive line quantity."""


class AlreadyPostedError(LedgerError):
    """Posting, editing or deleting a document that is no longer a draft."""


class InconsistentDocumentError(LedgerError):
    """Document is missing its account/warehouse or references an unknown product."""


class InsufficientStockError(LedgerError):
    """Operation would drive a stock cell negative without an explicit override."""


class StorageError(LedgerError):
    """The transactional commit failed (lock contention, stale row version, I/O)."""
