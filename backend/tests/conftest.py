"""
Pytest fixtures for the Mizan backend tests.

Provides the Flask app on in-memory SQLite, a per-test table wipe, and a
`ledger` fixture that runs the same ledger tests against both store
implementations.
"""

from decimal import Decimal

import pytest

from mizan import create_app
from mizan.extensions import db
from mizan.ledger import ConsistencyService, DocumentKind, PostingPolicy
from mizan.models import Account, Document, DocumentLine, Product, Warehouse
from mizan.storage import InMemoryLedgerStore, SqlLedgerStore
from mizan.time_utils import utcnow

INVENTORY_ACCOUNT = 3
SALES_REVENUE_ACCOUNT = 5
COGS_ACCOUNT = 6
SUPPLIER = 50
CUSTOMER = 60
PRODUCT = 7
WAREHOUSE = 1

POLICY = PostingPolicy(
    inventory_account_id=INVENTORY_ACCOUNT,
    sales_revenue_account_id=SALES_REVENUE_ACCOUNT,
    cogs_account_id=COGS_ACCOUNT,
)

WORLD_ACCOUNTS = (
    (INVENTORY_ACCOUNT, "المخزون", "asset"),
    (SALES_REVENUE_ACCOUNT, "المبيعات", "revenue"),
    (COGS_ACCOUNT, "تكلفة البضاعة المباعة", "expense"),
    (SUPPLIER, "مورد الأمل", "supplier"),
    (CUSTOMER, "محل النور", "customer"),
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'INVENTORY_ACCOUNT_ID': INVENTORY_ACCOUNT,
        'SALES_REVENUE_ACCOUNT_ID': SALES_REVENUE_ACCOUNT,
        'COGS_ACCOUNT_ID': COGS_ACCOUNT,
        'ALLOW_NEGATIVE_STOCK': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


class MemoryLedgerHarness:
    """Seeds an InMemoryLedgerStore and drives a ConsistencyService over it."""

    backend = "memory"

    def __init__(self):
        self.store = InMemoryLedgerStore()
        self.service = ConsistencyService(self.store, POLICY)

    def add_account(self, account_id, name, account_type, balance=0):
        self.store.add_account(name=name, type=account_type, current_balance=balance, account_id=account_id)

    def add_warehouse(self, warehouse_id, name):
        self.store.add_warehouse(name=name, warehouse_id=warehouse_id)

    def add_product(self, product_id, code, name, *, cost_price, sell_price=0):
        self.store.add_product(
            code=code, name=name, cost_price=cost_price, sell_price=sell_price, product_id=product_id
        )

    def add_document(self, kind, number, account_id, lines, *, warehouse_id=WAREHOUSE, total=None):
        return self.store.add_document(
            kind=kind,
            document_number=number,
            account_id=account_id,
            warehouse_id=warehouse_id,
            lines=lines,
            total=total,
        ).id

    def document_status(self, document_id):
        return self.store.documents[document_id].status


class SqlLedgerHarness:
    """Seeds ORM rows and drives a ConsistencyService over SqlLedgerStore."""

    backend = "sql"

    def __init__(self):
        self.store = SqlLedgerStore()
        self.service = ConsistencyService(self.store, POLICY)

    def add_account(self, account_id, name, account_type, balance=0):
        db.session.add(Account(id=account_id, name=name, type=account_type, current_balance=balance))
        db.session.commit()

    def add_warehouse(self, warehouse_id, name):
        db.session.add(Warehouse(id=warehouse_id, name=name, is_default=warehouse_id == WAREHOUSE))
        db.session.commit()

    def add_product(self, product_id, code, name, *, cost_price, sell_price=0):
        db.session.add(Product(id=product_id, code=code, name=name, cost_price=cost_price, sell_price=sell_price))
        db.session.commit()

    def add_document(self, kind, number, account_id, lines, *, warehouse_id=WAREHOUSE, total=None):
        rows = []
        computed = Decimal("0.00")
        for product_id, quantity, unit_price in lines:
            quantity = Decimal(str(quantity))
            unit_price = Decimal(str(unit_price))
            line_total = (quantity * unit_price).quantize(Decimal("0.01"))
            computed += line_total
            rows.append(DocumentLine(
                product_id=product_id,
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
            ))
        document = Document(
            document_number=number,
            kind=DocumentKind(kind).value,
            account_id=account_id,
            warehouse_id=warehouse_id,
            date=utcnow(),
            status="draft",
            total=computed if total is None else Decimal(str(total)),
        )
        document.lines = rows
        db.session.add(document)
        db.session.commit()
        return document.id

    def document_status(self, document_id):
        db.session.expire_all()
        return db.session.get(Document, document_id).status


def seed_world(harness):
    for account_id, name, account_type in WORLD_ACCOUNTS:
        harness.add_account(account_id, name, account_type)
    harness.add_warehouse(WAREHOUSE, "المستودع الرئيسي")
    harness.add_warehouse(2, "مستودع الفرع")
    harness.add_product(PRODUCT, "P-007", "زيت زيتون ١ لتر", cost_price=5, sell_price=20)
    harness.add_product(8, "P-008", "سكر ٥ كغ", cost_price=0, sell_price=12)
    return harness


@pytest.fixture(params=["memory", "sql"])
def ledger(request):
    """Seeded ledger world over each store implementation."""
    if request.param == "memory":
        return seed_world(MemoryLedgerHarness())
    request.getfixturevalue("db_session")
    return seed_world(SqlLedgerHarness())


@pytest.fixture
def memory_ledger():
    return seed_world(MemoryLedgerHarness())


@pytest.fixture
def seeded_db(db_session):
    """The same world as ORM rows, for route and service tests against the app's own ledger."""
    seed_world(SqlLedgerHarness())
    return db_session


@pytest.fixture
def sql_ledger(db_session):
    return seed_world(SqlLedgerHarness())
