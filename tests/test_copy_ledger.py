"""Tests for the copy ledger, the only writer of book copy counters."""

import pytest

from library_circulation.database.copy_ledger import CopyLedger
from library_circulation.database.repository import InvariantViolationError, NotFoundError


@pytest.fixture
def session(library):
    session = library.create_session()
    yield session
    session.rollback()
    session.close()


def counters(book):
    return book.available_copies, book.reserved_copies, book.total_copies


def test_hold_moves_copy_to_reserved(session):
    book = CopyLedger(session).hold("book_main")
    assert counters(book) == (2, 1, 3)


def test_release_returns_held_copy(session):
    ledger = CopyLedger(session)
    ledger.hold("book_main")
    book = ledger.release("book_main")
    assert counters(book) == (3, 0, 3)


def test_take_available_and_give_back(session):
    ledger = CopyLedger(session)
    assert counters(ledger.take_available("book_main")) == (2, 0, 3)
    assert counters(ledger.give_back("book_main")) == (3, 0, 3)


def test_take_reserved_leaves_available_untouched(session):
    ledger = CopyLedger(session)
    ledger.hold("book_main")
    assert counters(ledger.take_reserved("book_main")) == (2, 0, 3)


def test_consecutive_steps_see_pending_writes(session):
    ledger = CopyLedger(session)
    ledger.take_available("book_main")
    ledger.take_available("book_main")
    assert counters(ledger.load("book_main")) == (1, 0, 3)


def test_available_never_negative(session):
    ledger = CopyLedger(session)
    ledger.take_available("book_single")

    with pytest.raises(InvariantViolationError):
        ledger.take_available("book_single")
    assert counters(ledger.load("book_single")) == (0, 0, 1)


def test_reserved_never_negative(session):
    with pytest.raises(InvariantViolationError):
        CopyLedger(session).release("book_main")


def test_sum_never_exceeds_total(session):
    with pytest.raises(InvariantViolationError):
        CopyLedger(session).give_back("book_main")


def test_hold_without_available_copy(session):
    ledger = CopyLedger(session)
    ledger.hold("book_single")
    with pytest.raises(InvariantViolationError):
        ledger.hold("book_single")


def test_unknown_book(session):
    with pytest.raises(NotFoundError):
        CopyLedger(session).load("book_missing")
