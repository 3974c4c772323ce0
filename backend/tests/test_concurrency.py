"""
Unit-of-work and retry tests.

SQLite ignores FOR UPDATE, so lock contention itself is not exercised. The
race tests instead run against a file-backed database and let a second
connection commit a competing write just before the session's own write,
which is exactly the window a row lock would otherwise close.
"""

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from pointonsale import create_app
from pointonsale.errors import InsufficientBalanceError, TransientStoreFailure, ValidationError
from pointonsale.extensions import db
from pointonsale.models import Company, InventoryLedgerEntry, Product, StockBalance, WalletAccount, WalletLedgerEntry
from pointonsale.models.wallets import WALLET_TYPE_FUND, WALLET_TYPE_INCOME
from pointonsale.services import inventory_service, scope_service, wallet_service
from pointonsale.services.concurrency import run_with_configured_retry, run_with_retry, unit_of_work


class TestUnitOfWork:

    def test_commits_on_success(self, db_session):
        with unit_of_work():
            db.session.add(Company(name="Gamma", code="GAMMA"))
        db.session.rollback()

        assert db.session.query(Company).filter_by(code="GAMMA").count() == 1

    def test_rolls_back_on_error(self, db_session):
        with pytest.raises(ValueError):
            with unit_of_work():
                db.session.add(Company(name="Gamma", code="GAMMA"))
                db.session.flush()
                raise ValueError("boom")

        assert db.session.query(Company).filter_by(code="GAMMA").count() == 0

    def test_nested_unit_is_undone_by_owner(self, db_session):
        with pytest.raises(ValueError):
            with unit_of_work():
                with unit_of_work(commit=False):
                    db.session.add(Company(name="Gamma", code="GAMMA"))
                raise ValueError("owner fails after nested success")

        assert db.session.query(Company).filter_by(code="GAMMA").count() == 0

    @pytest.mark.parametrize(
        "error",
        [
            OperationalError("UPDATE wallet_accounts", {}, Exception("database is locked")),
            StaleDataError("row version changed"),
        ],
    )
    def test_store_failures_become_transient(self, db_session, error):
        with pytest.raises(TransientStoreFailure):
            with unit_of_work():
                raise error

    def test_business_errors_pass_through(self, db_session):
        with pytest.raises(ValidationError):
            with unit_of_work():
                raise ValidationError("bad input")


class TestRetry:

    def test_retries_transient_until_success(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientStoreFailure("deadlock")
            return "done"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, db_session):
        calls = []

        def always_locked():
            calls.append(1)
            raise TransientStoreFailure("lock timeout")

        with pytest.raises(TransientStoreFailure):
            run_with_retry(always_locked, attempts=2, backoff_base=0)
        assert len(calls) == 2

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def short():
            calls.append(1)
            raise InsufficientBalanceError("short", available_cents=1, requested_cents=2)

        with pytest.raises(InsufficientBalanceError):
            run_with_retry(short, attempts=5, backoff_base=0)
        assert len(calls) == 1

    def test_configured_attempts(self, app, db_session):
        calls = []

        def always_locked():
            calls.append(1)
            raise TransientStoreFailure("lock timeout")

        with pytest.raises(TransientStoreFailure):
            run_with_configured_retry(always_locked)
        assert len(calls) == app.config["TRANSIENT_RETRY_ATTEMPTS"]


# =============================================================================
# RACES AGAINST A SECOND CONNECTION
# =============================================================================


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """App bound to a file database so a second engine can see committed rows."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSIENT_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture(scope='function')
def race_company(file_app):
    return scope_service.create_company("Race Retail", "RACE")


@contextmanager
def competing_write(statement_prefix, sql, params):
    """
    Commit sql on a second connection right before the session's first
    statement starting with statement_prefix. Fires once.
    """
    other = create_engine(db.engine.url)
    fired = []

    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if not fired and statement.lstrip().upper().startswith(statement_prefix):
            fired.append(statement)
            with other.begin() as competitor:
                competitor.execute(text(sql), params)

    event.listen(db.engine, "before_cursor_execute", before_cursor_execute)
    try:
        yield fired
    finally:
        event.remove(db.engine, "before_cursor_execute", before_cursor_execute)
        other.dispose()


class TestStockRowRace:

    INSERT_BALANCE = (
        "INSERT INTO stock_balances (scope_id, product_id, qty_on_hand, version_id) "
        "VALUES (:scope_id, :product_id, 5, 1)"
    )

    @pytest.fixture
    def race_product(self, race_company):
        product = Product(
            company_id=race_company.company_id,
            sku="RACE-1",
            name="Flour 2kg",
            price_cents=400,
            gst_percent=0,
        )
        db.session.add(product)
        db.session.commit()
        return product

    def _params(self, scope_id, product_id):
        return {"scope_id": scope_id, "product_id": product_id}

    def test_lost_insert_is_transient(self, race_company, race_product):
        params = self._params(race_company.id, race_product.id)

        with competing_write("INSERT INTO STOCK_BALANCES", self.INSERT_BALANCE, params) as fired:
            with pytest.raises(TransientStoreFailure):
                inventory_service.move(race_company.id, race_product.id, 3, "ADJUSTMENT", "Count", "1")

        assert len(fired) == 1
        assert db.session.query(InventoryLedgerEntry).count() == 0
        assert inventory_service.get_quantity_on_hand(race_company.id, race_product.id) == 5

    def test_retry_applies_on_top_of_winner(self, race_company, race_product):
        params = self._params(race_company.id, race_product.id)

        with competing_write("INSERT INTO STOCK_BALANCES", self.INSERT_BALANCE, params) as fired:
            entry = run_with_retry(
                lambda: inventory_service.move(race_company.id, race_product.id, 3, "ADJUSTMENT", "Count", "1"),
                attempts=2,
                backoff_base=0,
            )

        assert len(fired) == 1
        assert entry.qty_change == 3
        rows = db.session.query(StockBalance).filter_by(scope_id=race_company.id, product_id=race_product.id).all()
        assert len(rows) == 1
        assert rows[0].qty_on_hand == 8
        assert db.session.query(InventoryLedgerEntry).count() == 1


class TestWalletAccountRace:

    INSERT_ACCOUNT = (
        "INSERT INTO wallet_accounts (scope_id, wallet_type, balance_cents, version_id) "
        "VALUES (:scope_id, :wallet_type, 0, 1)"
    )

    def _params(self, scope_id):
        return [
            {"scope_id": scope_id, "wallet_type": wallet_type}
            for wallet_type in ("FUND", "INCOME", "SALES_INCENTIVE")
        ]

    def test_lost_insert_is_transient(self, race_company):
        params = self._params(race_company.id)

        with competing_write("INSERT INTO WALLET_ACCOUNTS", self.INSERT_ACCOUNT, params) as fired:
            with pytest.raises(TransientStoreFailure):
                wallet_service.ensure_accounts(race_company.id)

        assert len(fired) == 1

    def test_retry_finds_winner_rows(self, race_company):
        params = self._params(race_company.id)

        with competing_write("INSERT INTO WALLET_ACCOUNTS", self.INSERT_ACCOUNT, params) as fired:
            accounts = run_with_retry(
                lambda: wallet_service.ensure_accounts(race_company.id),
                attempts=2,
                backoff_base=0,
            )

        assert len(fired) == 1
        assert len(accounts) == 3
        assert db.session.query(WalletAccount).filter_by(scope_id=race_company.id).count() == 3


class TestStaleDebit:

    DEBIT_BEHIND_OUR_BACK = (
        "UPDATE wallet_accounts SET balance_cents = balance_cents - 30, version_id = version_id + 1 "
        "WHERE id = :account_id"
    )

    @pytest.fixture
    def accounts(self, race_company):
        wallet_service.credit_account(race_company.id, WALLET_TYPE_FUND, 100, "Seed", "1")
        source = wallet_service.get_or_create_account(race_company.id, WALLET_TYPE_FUND)
        target = wallet_service.get_or_create_account(race_company.id, WALLET_TYPE_INCOME)
        return source.id, target.id

    def test_stale_balance_is_transient(self, accounts):
        source_id, target_id = accounts

        with competing_write(
            "INSERT INTO WALLET_LEDGER_ENTRIES", self.DEBIT_BEHIND_OUR_BACK, {"account_id": source_id}
        ) as fired:
            with pytest.raises(TransientStoreFailure):
                wallet_service.transfer(source_id, target_id, 80, "Payout", "1")

        assert len(fired) == 1
        assert db.session.get(WalletAccount, source_id).balance_cents == 70
        assert db.session.get(WalletAccount, target_id).balance_cents == 0
        assert db.session.query(WalletLedgerEntry).filter_by(ref_type="Payout").count() == 0

    def test_retry_sees_fresh_balance(self, accounts):
        source_id, target_id = accounts

        with competing_write(
            "INSERT INTO WALLET_LEDGER_ENTRIES", self.DEBIT_BEHIND_OUR_BACK, {"account_id": source_id}
        ) as fired:
            run_with_retry(
                lambda: wallet_service.transfer(source_id, target_id, 50, "Payout", "1"),
                attempts=2,
                backoff_base=0,
            )

        assert len(fired) == 1
        assert db.session.get(WalletAccount, source_id).balance_cents == 20
        assert db.session.get(WalletAccount, target_id).balance_cents == 50
        assert db.session.query(WalletLedgerEntry).filter_by(ref_type="Payout").count() == 1

    def test_retry_rechecks_balance(self, accounts):
        source_id, target_id = accounts

        with competing_write(
            "INSERT INTO WALLET_LEDGER_ENTRIES", self.DEBIT_BEHIND_OUR_BACK, {"account_id": source_id}
        ):
            with pytest.raises(InsufficientBalanceError):
                run_with_retry(
                    lambda: wallet_service.transfer(source_id, target_id, 80, "Payout", "1"),
                    attempts=2,
                    backoff_base=0,
                )

        assert db.session.get(WalletAccount, source_id).balance_cents == 70
