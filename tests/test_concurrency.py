"""
Concurrent circulation against one database file.

Each worker thread goes through the service exactly like a separate request
would: its own session, its own transaction, its own retries.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from library_circulation.database.repository import LimitExceededError
from library_circulation.models import Requester

CONCURRENT_USERS = [f"user_c{i}" for i in range(8)]

pytestmark = pytest.mark.concurrency


def run_concurrently(operation, user_ids):
    """Run ``operation(user_id)`` for every user at once; collect results or errors."""

    def attempt(user_id):
        try:
            return operation(user_id)
        except LimitExceededError as e:
            return e

    with ThreadPoolExecutor(max_workers=len(user_ids)) as pool:
        return list(pool.map(attempt, user_ids))


def test_borrow_race_never_oversubscribes(library, service, book_counters, check_invariants):
    outcomes = run_concurrently(
        lambda user_id: service.borrow_book(user_id, "book_main"), CONCURRENT_USERS
    )

    loans = [outcome for outcome in outcomes if not isinstance(outcome, Exception)]
    rejected = [outcome for outcome in outcomes if isinstance(outcome, LimitExceededError)]

    assert len(loans) == 3
    assert len(rejected) == 5
    assert len({loan.user_id for loan in loans}) == 3
    assert book_counters("book_main") == (0, 0, 3)
    check_invariants()


def test_reservation_race_holds_one_copy(library, service, book_counters, check_invariants):
    outcomes = run_concurrently(
        lambda user_id: service.reserve_book(user_id, "book_single"), CONCURRENT_USERS
    )

    held = [outcome for outcome in outcomes if not isinstance(outcome, Exception)]

    assert len(held) == 1
    assert book_counters("book_single") == (0, 1, 1)
    check_invariants()


def test_mixed_traffic_keeps_counters_consistent(library, service, book_counters, check_invariants):
    def borrow_and_return(user_id):
        loan = service.borrow_book(user_id, "book_main")
        return service.return_book(loan.id, Requester(user_id=user_id))

    def reserve_and_cancel(user_id):
        reservation = service.reserve_book(user_id, "book_main")
        return service.cancel_reservation(reservation.id, Requester(user_id=user_id))

    def work(user_id):
        index = CONCURRENT_USERS.index(user_id)
        return borrow_and_return(user_id) if index % 2 else reserve_and_cancel(user_id)

    outcomes = run_concurrently(work, CONCURRENT_USERS)

    assert all(
        not isinstance(outcome, Exception) or isinstance(outcome, LimitExceededError)
        for outcome in outcomes
    )
    assert book_counters("book_main") == (3, 0, 3)
    check_invariants()
