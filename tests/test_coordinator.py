"""Tests for the consistency coordinator's commit, rollback and retry rules."""

import time

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from library_circulation.config import ServerConfig
from library_circulation.database.coordinator import (
    ConsistencyCoordinator,
    is_retryable_error,
    is_unique_violation,
)
from library_circulation.database.repository import (
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    TransactionTimeoutError,
)
from library_circulation.database.schema import Book as BookDB
from library_circulation.database.schema import Library as LibraryDB
from library_circulation.database.schema import Loan as LoanDB
from library_circulation.database.session import DatabaseManager
from library_circulation.service import CirculationService


def locked_error() -> OperationalError:
    return OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))


def add_library(library_id: str):
    def work(session):
        session.add(LibraryDB(id=library_id, name=library_id.title()))
        return library_id

    return work


def library_exists(db_manager, library_id: str) -> bool:
    session = db_manager.create_session()
    try:
        return session.get(LibraryDB, library_id) is not None
    finally:
        session.close()


def test_commits_result(library, coordinator):
    assert coordinator.run("add_library", add_library("library_east")) == "library_east"
    assert library_exists(library, "library_east")


def test_typed_failure_rolls_back(library, coordinator):
    def work(session):
        add_library("library_east")(session)
        session.flush()
        raise NotFoundError("Policy for library library_east not found")

    with pytest.raises(NotFoundError):
        coordinator.run("add_library", work)
    assert not library_exists(library, "library_east")


def test_unique_violation_becomes_conflict(library, coordinator):
    with pytest.raises(ConflictError):
        coordinator.run("add_library", add_library("library_central"))


@pytest.mark.parametrize(
    "make_row",
    [
        lambda: LoanDB(id="loan_orphan000001", user_id="user_missing", book_id="book_main"),
        lambda: LibraryDB(id="library_east", name=None),
    ],
    ids=["foreign_key", "not_null"],
)
def test_other_integrity_errors_are_not_conflicts(library, coordinator, make_row):
    def work(session):
        session.add(make_row())

    with pytest.raises(InvariantViolationError) as exc_info:
        coordinator.run("insert_row", work)
    assert not isinstance(exc_info.value, ConflictError)
    assert not library_exists(library, "library_east")


def test_check_violation_becomes_invariant_violation(library, coordinator, book_counters):
    def work(session):
        session.execute(update(BookDB).where(BookDB.id == "book_main").values(available_copies=10))

    with pytest.raises(InvariantViolationError):
        coordinator.run("corrupt_counters", work)
    assert book_counters("book_main") == (3, 0, 3)


def test_retryable_failure_retried_until_attempts_exhausted(library, coordinator, test_config):
    calls = []

    def work(session):
        calls.append(1)
        raise locked_error()

    with pytest.raises(TransactionTimeoutError) as exc_info:
        coordinator.run("always_locked", work)

    assert len(calls) == test_config.transaction_max_attempts
    assert exc_info.value.retryable


def test_retryable_failure_then_success(library, coordinator):
    calls = []

    def work(session):
        calls.append(1)
        if len(calls) == 1:
            raise locked_error()
        return add_library("library_east")(session)

    assert coordinator.run("add_library", work) == "library_east"
    assert len(calls) == 2
    assert library_exists(library, "library_east")


def test_non_retryable_store_error_propagates(library, coordinator):
    calls = []

    def work(session):
        calls.append(1)
        raise OperationalError("SELECT", {}, Exception("no such table: shelves"))

    with pytest.raises(OperationalError):
        coordinator.run("broken_query", work)
    assert len(calls) == 1


def test_execution_budget_rolls_back(library, test_db_path):
    config = ServerConfig(
        database_path=test_db_path,
        transaction_max_wait_ms=1,
        transaction_timeout_ms=10,
    )
    coordinator = ConsistencyCoordinator(library, config)

    def slow_work(session):
        add_library("library_east")(session)
        time.sleep(0.05)

    with pytest.raises(TransactionTimeoutError):
        coordinator.run("slow_add", slow_work)
    assert not library_exists(library, "library_east")


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("database is locked", True),
        ("database table is locked", True),
        ("no such column: shelf", False),
    ],
)
def test_is_retryable_error_sqlite_messages(message, expected):
    error = OperationalError("SELECT 1", {}, Exception(message))
    assert is_retryable_error(error) is expected


def test_is_retryable_error_pg_codes():
    class SerializationFailure(Exception):
        pgcode = "40001"

    class UndefinedTable(Exception):
        pgcode = "42P01"

    assert is_retryable_error(OperationalError("SELECT 1", {}, SerializationFailure()))
    assert not is_retryable_error(OperationalError("SELECT 1", {}, UndefinedTable()))


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("UNIQUE constraint failed: libraries.id", True),
        ("FOREIGN KEY constraint failed", False),
        ("NOT NULL constraint failed: libraries.name", False),
        ("CHECK constraint failed: ck_books_available_nonnegative", False),
    ],
)
def test_is_unique_violation_sqlite_messages(message, expected):
    error = IntegrityError("INSERT", {}, Exception(message))
    assert is_unique_violation(error) is expected


def test_is_unique_violation_pg_codes():
    class UniqueViolation(Exception):
        pgcode = "23505"

    class ForeignKeyViolation(Exception):
        pgcode = "23503"

    assert is_unique_violation(IntegrityError("INSERT", {}, UniqueViolation()))
    assert not is_unique_violation(IntegrityError("INSERT", {}, ForeignKeyViolation()))


class TestReadPath:
    """Reads open a deferred transaction and never queue behind a writer."""

    @pytest.fixture
    def short_wait_service(self, library, test_db_path):
        config = ServerConfig(
            database_path=test_db_path,
            transaction_max_wait_ms=300,
            transaction_timeout_ms=5000,
        )
        manager = DatabaseManager(config=config)
        yield CirculationService(manager, ConsistencyCoordinator(manager, config), config)
        manager.close()

    @pytest.fixture
    def held_write_lock(self, library):
        """A second connection inside BEGIN IMMEDIATE with an uncommitted update."""
        conn = library.engine.connect()
        transaction = conn.begin()
        conn.execute(update(BookDB).where(BookDB.id == "book_main").values(title="Held"))
        yield conn
        transaction.rollback()
        conn.close()

    def test_read_does_not_wait_for_writer(self, service, short_wait_service, member_a, request):
        loan = service.borrow_book("user_a", "book_extra_1")
        request.getfixturevalue("held_write_lock")

        fetched = short_wait_service.get_loan(loan.id, member_a)

        assert fetched.id == loan.id
        assert short_wait_service.list_loans(member_a).total == 1
        assert short_wait_service.get_book("book_main").title == "Book Main"

    def test_write_still_waits_for_writer(self, short_wait_service, held_write_lock):
        with pytest.raises(TransactionTimeoutError):
            short_wait_service.borrow_book("user_b", "book_main")

    def test_read_transaction_is_rolled_back(self, library, coordinator):
        def work(session):
            session.add(LibraryDB(id="library_east", name="East"))
            return "read"

        assert coordinator.read("stray_write", work) == "read"
        assert not library_exists(library, "library_east")
