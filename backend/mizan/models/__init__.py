from .catalog import Category, Product, Warehouse
from .inventory import StockLevel, StockMovement
from .accounts import Account, Transaction
from .documents import Document, DocumentLine, DocumentSequence

__all__ = [
    'Category', 'Product', 'Warehouse',
    'StockLevel', 'StockMovement',
    'Account', 'Transaction',
    'Document', 'DocumentLine', 'DocumentSequence',
]
