"""
Posting, cancellation and stock operations through ConsistencyService.

Every test runs against both store implementations via the `ledger` fixture.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import update

from mizan.extensions import db
from mizan.ledger import (
    AlreadyPostedError,
    DocumentKind,
    InconsistentDocumentError,
    InsufficientStockError,
    InvalidAmountError,
    NotFoundError,
    StorageError,
    journal_totals,
)
from mizan.models import Account

from conftest import (
    COGS_ACCOUNT,
    CUSTOMER,
    INVENTORY_ACCOUNT,
    PRODUCT,
    SALES_REVENUE_ACCOUNT,
    SUPPLIER,
    WAREHOUSE,
)

ALL_ACCOUNTS = (INVENTORY_ACCOUNT, SALES_REVENUE_ACCOUNT, COGS_ACCOUNT, SUPPLIER, CUSTOMER)


def snapshot(ledger, products=(PRODUCT,)):
    return (
        {p: str(ledger.service.get_stock_level(p, WAREHOUSE)) for p in products},
        {a: str(ledger.service.get_account_balance(a)) for a in ALL_ACCOUNTS},
        len(ledger.service.list_stock_movements()),
        len(ledger.service.list_transactions()),
    )


def post_purchase(ledger, qty=10, cost=5, number="PUR-1"):
    doc_id = ledger.add_document(DocumentKind.PURCHASE, number, SUPPLIER, [(PRODUCT, qty, cost)])
    return ledger.service.post_document(doc_id)


def entry(posted, account_id):
    matches = [t for t in posted.transactions if t.account_id == account_id]
    assert len(matches) == 1
    return matches[0]


class TestScenarios:
    def test_purchase_pur_1(self, ledger):
        before_stock = ledger.service.get_stock_level(PRODUCT, WAREHOUSE)
        before_supplier = ledger.service.get_account_balance(SUPPLIER)

        posted = post_purchase(ledger)

        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == before_stock + 10
        assert ledger.service.get_account_balance(SUPPLIER) == before_supplier - 50
        assert len(posted.transactions) == 2
        inventory = entry(posted, INVENTORY_ACCOUNT)
        supplier = entry(posted, SUPPLIER)
        assert (inventory.amount, inventory.is_debit) == (Decimal("50.00"), True)
        assert (supplier.amount, supplier.is_debit) == (Decimal("50.00"), False)
        assert posted.document.status == "posted"
        assert posted.cost_of_goods_sold == Decimal("0")

    def test_sale_inv_1(self, ledger):
        post_purchase(ledger)
        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 4, 20)])

        posted = ledger.service.post_document(doc_id)

        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("6")
        assert ledger.service.get_account_balance(CUSTOMER) == Decimal("80.00")
        assert posted.cost_of_goods_sold == Decimal("20.00")
        assert len(posted.transactions) == 4
        assert (entry(posted, CUSTOMER).amount, entry(posted, CUSTOMER).is_debit) == (Decimal("80.00"), True)
        assert (entry(posted, SALES_REVENUE_ACCOUNT).amount, entry(posted, SALES_REVENUE_ACCOUNT).is_debit) == (
            Decimal("80.00"), False,
        )
        assert (entry(posted, COGS_ACCOUNT).amount, entry(posted, COGS_ACCOUNT).is_debit) == (Decimal("20.00"), True)
        inventory_entries = ledger.service.list_transactions(account_id=INVENTORY_ACCOUNT, document_id=doc_id)
        assert [(t.amount, t.is_debit) for t in inventory_entries] == [(Decimal("20.00"), False)]
        assert all(t.reference == "INV-1" for t in posted.transactions)


class TestProperties:
    def test_atomicity_on_storage_failure(self, ledger, monkeypatch):
        post_purchase(ledger)
        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 4, 20)])
        before = snapshot(ledger)

        calls = []
        original = ledger.store.add_transaction

        def flaky_add_transaction(transaction):
            calls.append(transaction)
            if len(calls) == 3:
                raise StorageError("disk full")
            return original(transaction)

        monkeypatch.setattr(ledger.store, "add_transaction", flaky_add_transaction)

        with pytest.raises(StorageError):
            ledger.service.post_document(doc_id)

        monkeypatch.undo()
        assert snapshot(ledger) == before
        assert ledger.document_status(doc_id) == "draft"

    def test_atomicity_on_caller_abort(self, ledger, monkeypatch):
        doc_id = ledger.add_document(DocumentKind.PURCHASE, "PUR-1", SUPPLIER, [(PRODUCT, 10, 5)])
        before = snapshot(ledger)

        def interrupted(*args, **kwargs):
            raise KeyboardInterrupt

        monkeypatch.setattr(ledger.store, "update_document_status", interrupted)
        with pytest.raises(KeyboardInterrupt):
            ledger.service.post_document(doc_id)

        monkeypatch.undo()
        assert snapshot(ledger) == before
        assert ledger.document_status(doc_id) == "draft"

    def test_posting_twice_is_rejected(self, ledger):
        doc_id = ledger.add_document(DocumentKind.PURCHASE, "PUR-1", SUPPLIER, [(PRODUCT, 10, 5)])
        ledger.service.post_document(doc_id)
        after_first = snapshot(ledger)

        with pytest.raises(AlreadyPostedError):
            ledger.service.post_document(doc_id)

        assert snapshot(ledger) == after_first

    @pytest.mark.parametrize("qty", ["1", "2.5", "12"])
    def test_stock_conservation(self, ledger, qty):
        before = ledger.service.get_stock_level(PRODUCT, WAREHOUSE)
        post_purchase(ledger, qty=qty)
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == before + Decimal(qty)

        sale = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, qty, 20)])
        ledger.service.post_document(sale)
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == before

    def test_sale_raises_customer_balance_by_total(self, ledger):
        post_purchase(ledger, qty=20)
        ledger.service.record_transaction(CUSTOMER, "debit", 15)
        before = ledger.service.get_account_balance(CUSTOMER)

        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 3, "33.35"), (PRODUCT, 1, "0.05")])
        posted = ledger.service.post_document(doc_id)

        assert ledger.service.get_account_balance(CUSTOMER) == before + posted.document.total
        assert posted.document.total == Decimal("100.10")

    def test_journal_balances(self, ledger):
        ledger.add_product(9, "P-009", "أرز ١ كغ", cost_price=6, sell_price=10)
        purchase_id = ledger.add_document(DocumentKind.PURCHASE, "PUR-1", SUPPLIER, [(9, 100, 6)])
        purchase = ledger.service.post_document(purchase_id)
        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(9, 100, 10)])
        sale = ledger.service.post_document(doc_id)

        for posted in (purchase, sale):
            debits, credits = journal_totals(posted.transactions)
            assert debits == credits
        # sale 1000 against revenue, COGS 600 against inventory
        assert sale.cost_of_goods_sold == Decimal("600.00")
        assert journal_totals(sale.transactions) == (Decimal("1600.00"), Decimal("1600.00"))

    def test_cogs_uses_current_cost_price(self, ledger):
        post_purchase(ledger, qty=10, cost=6)
        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 10, 10)])
        sale = ledger.service.post_document(doc_id)

        assert sale.cost_of_goods_sold == Decimal("50.00")

    def test_movement_audit_trail(self, ledger):
        before = ledger.service.get_stock_level(PRODUCT, WAREHOUSE)
        post_purchase(ledger, qty=10)
        sale = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 4, 20), (PRODUCT, 1, 20)])
        ledger.service.post_document(sale)
        ledger.service.adjust_stock(PRODUCT, WAREHOUSE, -1, note="تالف")

        movements = ledger.service.list_stock_movements(product_id=PRODUCT, warehouse_id=WAREHOUSE)
        assert len(movements) == 4
        assert sum(m.quantity_delta for m in movements) == ledger.service.get_stock_level(PRODUCT, WAREHOUSE) - before
        assert {m.document_id for m in movements if m.kind == "sale"} == {sale}


class TestPostingValidation:
    def test_unknown_document(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.service.post_document(404)

    def test_missing_account(self, ledger):
        doc_id = ledger.add_document(DocumentKind.PURCHASE, "PUR-1", None, [(PRODUCT, 1, 5)])
        with pytest.raises(InconsistentDocumentError):
            ledger.service.post_document(doc_id)
        assert ledger.document_status(doc_id) == "draft"

    def test_missing_warehouse(self, ledger):
        doc_id = ledger.add_document(DocumentKind.PURCHASE, "PUR-1", SUPPLIER, [(PRODUCT, 1, 5)], warehouse_id=None)
        with pytest.raises(InconsistentDocumentError):
            ledger.service.post_document(doc_id)

    def test_total_mismatch(self, ledger):
        doc_id = ledger.add_document(DocumentKind.PURCHASE, "PUR-1", SUPPLIER, [(PRODUCT, 2, 5)], total="11.00")
        with pytest.raises(InconsistentDocumentError) as excinfo:
            ledger.service.post_document(doc_id)
        assert excinfo.value.details["lines_total"] == "10.00"
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("0")

    def test_zero_quantity_line(self, ledger):
        doc_id = ledger.add_document(DocumentKind.PURCHASE, "PUR-1", SUPPLIER, [(PRODUCT, 0, 5)])
        with pytest.raises(InvalidAmountError):
            ledger.service.post_document(doc_id)

    def test_insufficient_stock(self, ledger):
        post_purchase(ledger, qty=2)
        before = snapshot(ledger)
        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 3, 20)])

        with pytest.raises(InsufficientStockError) as excinfo:
            ledger.service.post_document(doc_id)

        assert excinfo.value.details["items"][0]["on_hand"] == "2.000"
        assert snapshot(ledger) == before

    def test_negative_stock_override(self, ledger):
        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 3, 20)])
        ledger.service.post_document(doc_id, allow_negative_stock=True)
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("-3")

    def test_zero_cost_sale_skips_cogs_pair(self, ledger):
        ledger.service.adjust_stock(8, WAREHOUSE, 5)
        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(8, 2, 12)])

        posted = ledger.service.post_document(doc_id)

        assert posted.cost_of_goods_sold == Decimal("0")
        assert {t.account_id for t in posted.transactions} == {CUSTOMER, SALES_REVENUE_ACCOUNT}
        assert journal_totals(posted.transactions) == (Decimal("24.00"), Decimal("24.00"))


class TestCancellation:
    def test_cancel_draft_only_changes_status(self, ledger):
        doc_id = ledger.add_document(DocumentKind.PURCHASE, "PUR-1", SUPPLIER, [(PRODUCT, 1, 5)])
        before = snapshot(ledger)

        result = ledger.service.cancel_document(doc_id)

        assert result.document.status == "cancelled"
        assert result.movements == ()
        assert snapshot(ledger) == before
        with pytest.raises(AlreadyPostedError):
            ledger.service.post_document(doc_id)

    def test_reversing_a_sale_restores_every_row(self, ledger):
        post_purchase(ledger)
        before = snapshot(ledger)
        doc_id = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 4, 20)])
        posted = ledger.service.post_document(doc_id)

        reversed_ = ledger.service.cancel_document(doc_id)

        levels, balances, _, _ = snapshot(ledger)
        assert (levels, balances) == before[:2]
        assert reversed_.document.status == "cancelled"
        assert reversed_.cost_of_goods_sold == Decimal("20.00")
        assert len(reversed_.transactions) == len(posted.transactions)
        assert [m.quantity_delta for m in reversed_.movements] == [Decimal("4")]
        assert journal_totals(reversed_.transactions) == journal_totals(posted.transactions)
        # history is appended, never edited
        assert len(ledger.service.list_transactions(document_id=doc_id)) == 8

    def test_cancelling_twice_is_rejected(self, ledger):
        posted = post_purchase(ledger)
        ledger.service.cancel_document(posted.document.id)
        with pytest.raises(AlreadyPostedError):
            ledger.service.cancel_document(posted.document.id)

    def test_reversing_a_consumed_purchase_needs_stock(self, ledger):
        posted = post_purchase(ledger, qty=10)
        sale = ledger.add_document(DocumentKind.SALE, "INV-1", CUSTOMER, [(PRODUCT, 8, 20)])
        ledger.service.post_document(sale)

        with pytest.raises(InsufficientStockError):
            ledger.service.cancel_document(posted.document.id)
        assert ledger.document_status(posted.document.id) == "posted"


class TestStockOperations:
    def test_adjust(self, ledger):
        movement = ledger.service.adjust_stock(PRODUCT, WAREHOUSE, "4.5", note="جرد افتتاحي")
        assert movement.kind == "adjustment"
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("4.5")

        with pytest.raises(InvalidAmountError):
            ledger.service.adjust_stock(PRODUCT, WAREHOUSE, 0)
        with pytest.raises(InsufficientStockError):
            ledger.service.adjust_stock(PRODUCT, WAREHOUSE, -5)
        ledger.service.adjust_stock(PRODUCT, WAREHOUSE, -5, allow_negative_stock=True)
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("-0.5")

    def test_count(self, ledger):
        ledger.service.adjust_stock(PRODUCT, WAREHOUSE, 10)
        movement = ledger.service.count_stock(PRODUCT, WAREHOUSE, 7)

        assert movement.quantity_delta == Decimal("-3")
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("7")
        with pytest.raises(InvalidAmountError):
            ledger.service.count_stock(PRODUCT, WAREHOUSE, -1)

    def test_transfer(self, ledger):
        ledger.service.adjust_stock(PRODUCT, WAREHOUSE, 10)
        outbound, inbound = ledger.service.transfer_stock(PRODUCT, WAREHOUSE, 2, 4)

        assert (outbound.kind, outbound.quantity_delta) == ("transfer-out", Decimal("-4"))
        assert (inbound.kind, inbound.quantity_delta) == ("transfer-in", Decimal("4"))
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("6")
        assert ledger.service.get_stock_level(PRODUCT, 2) == Decimal("4")

    def test_transfer_rejections(self, ledger):
        ledger.service.adjust_stock(PRODUCT, WAREHOUSE, 1)
        with pytest.raises(InsufficientStockError):
            ledger.service.transfer_stock(PRODUCT, WAREHOUSE, 2, 4)
        with pytest.raises(ValueError):
            ledger.service.transfer_stock(PRODUCT, WAREHOUSE, WAREHOUSE, 1)
        with pytest.raises(NotFoundError):
            ledger.service.transfer_stock(PRODUCT, WAREHOUSE, 999, 1, allow_negative_stock=True)
        assert ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("1")


class TestConcurrency:
    def test_parallel_purchases_serialize(self, memory_ledger):
        doc_ids = [
            memory_ledger.add_document(DocumentKind.PURCHASE, f"PUR-{n}", SUPPLIER, [(PRODUCT, 1, 5)])
            for n in range(1, 51)
        ]

        with ThreadPoolExecutor(max_workers=50) as pool:
            results = list(pool.map(memory_ledger.service.post_document, doc_ids))

        assert all(r.document.status == "posted" for r in results)
        assert memory_ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("50.000")
        assert memory_ledger.service.get_account_balance(SUPPLIER) == Decimal("-250.00")
        assert len(memory_ledger.service.list_stock_movements(product_id=PRODUCT)) == 50

    def test_parallel_sales_never_oversell(self, memory_ledger):
        memory_ledger.service.adjust_stock(PRODUCT, WAREHOUSE, 10)
        doc_ids = [
            memory_ledger.add_document(DocumentKind.SALE, f"INV-{n}", CUSTOMER, [(PRODUCT, 1, 20)])
            for n in range(1, 21)
        ]

        def attempt(doc_id):
            try:
                memory_ledger.service.post_document(doc_id)
            except InsufficientStockError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=20) as pool:
            outcomes = list(pool.map(attempt, doc_ids))

        assert outcomes.count(True) == 10
        assert memory_ledger.service.get_stock_level(PRODUCT, WAREHOUSE) == Decimal("0")
        assert memory_ledger.service.get_account_balance(CUSTOMER) == Decimal("200.00")

    def test_stale_account_version_rolls_back(self, sql_ledger, monkeypatch):
        doc_id = sql_ledger.add_document(DocumentKind.PURCHASE, "PUR-1", SUPPLIER, [(PRODUCT, 10, 5)])
        before = snapshot(sql_ledger)
        versions_before = {a: db.session.get(Account, a).version_id for a in ALL_ACCOUNTS}
        original = sql_ledger.store.put_account_balance

        def concurrent_writer_first(account_id, balance):
            # another writer bumps the row version between our read and our write
            db.session.execute(
                update(Account.__table__)
                .where(Account.__table__.c.id == account_id)
                .values(version_id=Account.__table__.c.version_id + 1)
            )
            return original(account_id, balance)

        monkeypatch.setattr(sql_ledger.store, "put_account_balance", concurrent_writer_first)

        with pytest.raises(StorageError):
            sql_ledger.service.post_document(doc_id)

        monkeypatch.undo()
        db.session.expire_all()
        assert snapshot(sql_ledger) == before
        assert sql_ledger.document_status(doc_id) == "draft"
        assert {a: db.session.get(Account, a).version_id for a in ALL_ACCOUNTS} == versions_before
