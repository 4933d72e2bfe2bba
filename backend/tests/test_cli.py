from decimal import Decimal

from mizan.models import Account, Warehouse
from mizan.services import document_service
from mizan.ledger import DocumentKind

from conftest import PRODUCT, SUPPLIER, WAREHOUSE


class TestLedgerCommands:
    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "init"])
        assert result.exit_code == 0, result.output
        assert {a.id for a in db_session.query(Account).all()} == {3, 5, 6}
        assert db_session.query(Warehouse).filter_by(is_default=True).count() == 1

        result = runner.invoke(args=["ledger", "init"])
        assert result.exit_code == 0
        assert "Using existing account 3" in result.output
        assert db_session.query(Account).count() == 3

    def test_post_and_balance(self, app, seeded_db):
        document = document_service.create_draft(
            kind=DocumentKind.PURCHASE,
            patch={"account_id": SUPPLIER, "warehouse_id": WAREHOUSE},
            lines=[{"product_id": PRODUCT, "quantity": Decimal("10"), "unit_price": Decimal("5")}],
        )
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "post", str(document.id)])
        assert result.exit_code == 0, result.output
        assert "PUR-1" in result.output

        result = runner.invoke(args=["ledger", "post", str(document.id)])
        assert result.exit_code != 0
        assert "AlreadyPostedError" in result.output

        result = runner.invoke(args=["ledger", "balance", str(SUPPLIER)])
        assert "balance: -50.00" in result.output
        assert " Cr 50.00 PUR-1" in result.output
