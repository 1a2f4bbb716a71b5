"""
Pytest configuration and shared fixtures for the circulation tests.

Every test gets its own SQLite file under ``tmp_path`` so that transactions,
locks and commits behave exactly as they do in production.
"""

from collections import Counter
from decimal import Decimal

import logfire
import pytest
from sqlalchemy import select

from library_circulation.config import ServerConfig, reset_config
from library_circulation.database.coordinator import ConsistencyCoordinator
from library_circulation.database.schema import Book as BookDB
from library_circulation.database.schema import Library as LibraryDB
from library_circulation.database.schema import Loan as LoanDB
from library_circulation.database.schema import LoanStatusEnum, RoleEnum
from library_circulation.database.schema import Policy as PolicyDB
from library_circulation.database.schema import Reservation as ReservationDB
from library_circulation.database.schema import User as UserDB
from library_circulation.database.session import DatabaseManager
from library_circulation.models import Requester, Role
from library_circulation.service import CirculationService

CONCURRENT_USERS = [f"user_c{i}" for i in range(8)]


@pytest.fixture(scope="session", autouse=True)
def quiet_logfire():
    """Keep spans local for the whole test session."""
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def test_db_path(tmp_path):
    """Create a temporary database path for testing."""
    return tmp_path / "test_library.db"


@pytest.fixture
def test_config(test_db_path):
    """Create test configuration."""
    reset_config()
    config = ServerConfig(
        server_name="test-library-circulation",
        database_path=test_db_path,
        transaction_max_wait_ms=5000,
        transaction_timeout_ms=20000,
    )
    yield config
    reset_config()


@pytest.fixture
def db_manager(test_config):
    manager = DatabaseManager(config=test_config)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def coordinator(db_manager, test_config):
    return ConsistencyCoordinator(db_manager, test_config)


@pytest.fixture
def service(db_manager, coordinator, test_config):
    return CirculationService(db_manager, coordinator, test_config)


def _user(user_id: str, library_id: str = "library_central", **overrides) -> UserDB:
    values = {
        "id": user_id,
        "library_id": library_id,
        "name": user_id.replace("_", " ").title(),
        "email": f"{user_id}@example.com",
        "role": RoleEnum.MEMBER,
        "is_active": True,
        "borrowed_book_ids": [],
        "reserved_book_ids": [],
        "wishlist_book_ids": [],
    }
    values.update(overrides)
    return UserDB(**values)


def _book(book_id: str, copies: int, library_id: str = "library_central") -> BookDB:
    return BookDB(
        id=book_id,
        library_id=library_id,
        title=book_id.replace("_", " ").title(),
        total_copies=copies,
        available_copies=copies,
        reserved_copies=0,
    )


@pytest.fixture
def library(db_manager):
    """
    Seed two libraries with policies, users and books.

    library_central: 14-day loans, 1.00 per day, 4 books per user, 3-day holds
    library_north: one user and one book, used for cross-library checks
    """
    session = db_manager.create_session()
    try:
        session.add_all(
            [
                LibraryDB(id="library_central", name="Central Library"),
                LibraryDB(id="library_north", name="North Branch"),
            ]
        )
        session.flush()
        session.add_all(
            [
                PolicyDB(
                    id="policy_central",
                    library_id="library_central",
                    max_borrow_days=14,
                    fine_per_day=Decimal("1.00"),
                    max_books_per_user=4,
                    reservation_expiry_days=3,
                ),
                PolicyDB(
                    id="policy_north",
                    library_id="library_north",
                    max_borrow_days=21,
                    fine_per_day=Decimal("0.50"),
                    max_books_per_user=2,
                    reservation_expiry_days=0,
                ),
            ]
        )
        session.add_all(
            [
                _user("user_a"),
                _user("user_b"),
                _user("user_librarian", role=RoleEnum.LIBRARIAN),
                _user("user_inactive", is_active=False),
                _user("user_north", library_id="library_north"),
                *[_user(user_id) for user_id in CONCURRENT_USERS],
            ]
        )
        session.add_all(
            [
                _book("book_main", 3),
                _book("book_single", 1),
                *[_book(f"book_extra_{i}", 2) for i in range(1, 6)],
                _book("book_north", 2, library_id="library_north"),
            ]
        )
        session.commit()
    finally:
        session.close()
    return db_manager


@pytest.fixture
def member_a():
    return Requester(user_id="user_a")


@pytest.fixture
def member_b():
    return Requester(user_id="user_b")


@pytest.fixture
def librarian():
    return Requester(user_id="user_librarian", role=Role.LIBRARIAN)


@pytest.fixture
def book_counters(db_manager):
    """Return ``(available, reserved, total)`` of a book as committed."""

    def read(book_id: str) -> tuple[int, int, int]:
        session = db_manager.create_session()
        try:
            book = session.get(BookDB, book_id)
            return book.available_copies, book.reserved_copies, book.total_copies
        finally:
            session.close()

    return read


@pytest.fixture
def user_lists(db_manager):
    """Return ``(borrowed, reserved, wishlist)`` book lists of a user as committed."""

    def read(user_id: str) -> tuple[list[str], list[str], list[str]]:
        session = db_manager.create_session()
        try:
            user = session.get(UserDB, user_id)
            return (
                list(user.borrowed_book_ids),
                list(user.reserved_book_ids),
                list(user.wishlist_book_ids),
            )
        finally:
            session.close()

    return read


@pytest.fixture
def check_invariants(db_manager):
    """
    Assert the committed store is consistent.

    For every book the counters stay within bounds, the reserved pool matches
    the reservation rows and the borrowed copies match the open loans. For
    every user the membership lists match the loan and reservation rows.
    """

    def check() -> None:
        session = db_manager.create_session()
        try:
            open_loans = session.execute(
                select(LoanDB).where(LoanDB.status != LoanStatusEnum.RETURNED)
            ).scalars().all()
            reservations = session.execute(select(ReservationDB)).scalars().all()

            loans_per_book = Counter(loan.book_id for loan in open_loans)
            holds_per_book = Counter(reservation.book_id for reservation in reservations)

            for book in session.execute(select(BookDB)).scalars():
                assert book.available_copies >= 0, book.id
                assert book.reserved_copies >= 0, book.id
                assert book.available_copies + book.reserved_copies <= book.total_copies, book.id
                assert book.reserved_copies == holds_per_book[book.id], book.id
                borrowed = book.total_copies - book.available_copies - book.reserved_copies
                assert borrowed == loans_per_book[book.id], book.id

            for user in session.execute(select(UserDB)).scalars():
                assert sorted(user.borrowed_book_ids) == sorted(
                    loan.book_id for loan in open_loans if loan.user_id == user.id
                ), user.id
                assert sorted(user.reserved_book_ids) == sorted(
                    r.book_id for r in reservations if r.user_id == user.id
                ), user.id
        finally:
            session.close()

    return check
