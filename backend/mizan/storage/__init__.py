from .base import LedgerStore
from .memory import InMemoryLedgerStore
from .sql import SqlLedgerStore

__all__ = ['LedgerStore', 'InMemoryLedgerStore', 'SqlLedgerStore']
