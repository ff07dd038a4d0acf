"""
CLI command tests via Flask's test CLI runner.
"""

from datetime import timedelta

from doctrail.models import Document, Store
from doctrail.services import lifecycle_service
from doctrail.time_utils import utcnow


class TestStoreCommands:
    def test_list_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stores", "list"])
        assert result.exit_code == 0
        assert "No stores found." in result.output

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "stores", "create", "--name", "Main Store", "--code", "MAIN",
            "--tax-rate-bps", "800",
        ])
        assert result.exit_code == 0
        assert "PASS Created store: Main Store" in result.output

        store = db_session.query(Store).filter_by(code="MAIN").one()
        assert store.tax_rate_bps == 800

        listing = runner.invoke(args=["stores", "list"])
        assert "MAIN" in listing.output

    def test_duplicate_code_fails(self, app, db_session, store_a):
        result = app.test_cli_runner().invoke(args=[
            "stores", "create", "--name", "Copy", "--code", store_a.code,
        ])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_tax_rate_bounds(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "stores", "create", "--name", "Bad", "--tax-rate-bps", "20000",
        ])
        assert result.exit_code == 1
        assert db_session.query(Store).count() == 0


class TestSystemCommands:
    def test_reset_requires_confirmation(self, app, db_session, store_a):
        result = app.test_cli_runner().invoke(args=["system", "reset-db"])
        assert result.exit_code == 1
        assert "Refusing" in result.output
        assert db_session.query(Store).count() == 1


class TestMemoCommands:
    def test_no_overdue(self, app, db_session, store_a):
        result = app.test_cli_runner().invoke(
            args=["memos", "overdue", "--store-id", str(store_a.id)]
        )
        assert result.exit_code == 0
        assert "No overdue memos." in result.output

    def test_lists_overdue_memo(self, app, db_session, store_a, make_memo):
        memo = make_memo(tenure_days=7)
        lifecycle_service.send_to_counterparty(store_a.id, memo.id)
        lifecycle_service.mark_received(store_a.id, memo.id)

        memo = db_session.get(Document, memo.id)
        memo.created_at = utcnow() - timedelta(days=10)
        db_session.commit()

        result = app.test_cli_runner().invoke(
            args=["memos", "overdue", "--store-id", str(store_a.id)]
        )
        assert result.exit_code == 0
        assert memo.document_number in result.output
