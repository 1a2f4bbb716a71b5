"""
Copy ledger: the only code that writes a book's copy counters.

Each step re-reads the book row inside the caller's transaction (locked
``FOR UPDATE`` where the store supports it) and refuses any write that would
leave ``available_copies`` or ``reserved_copies`` negative, or their sum above
``total_copies``. Callers use the paired moves (``hold``, ``release``,
``take_available``, ``take_reserved``, ``give_back``) so every taken copy has
exactly one matching return path.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from .repository import InvariantViolationError, NotFoundError
from .schema import Book as BookDB

logger = logging.getLogger(__name__)


class CopyLedger:
    """Incremental counter updates for one transaction."""

    def __init__(self, session: Session):
        self.session = session

    def load(self, book_id: str) -> BookDB:
        """Re-read and lock the book row.

        Raises:
            NotFoundError: If the book does not exist
        """
        # Pending counter writes must reach the store before the re-read replaces them
        self.session.flush()
        book = self.session.execute(
            select(BookDB)
            .where(BookDB.id == book_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    def _apply(self, book_id: str, available_delta: int, reserved_delta: int) -> BookDB:
        book = self.load(book_id)
        available = book.available_copies + available_delta
        reserved = book.reserved_copies + reserved_delta

        if available < 0 or reserved < 0 or available + reserved > book.total_copies:
            logger.error(
                "Refusing counter update on book %s: available %d->%d, reserved %d->%d, total %d",
                book_id,
                book.available_copies,
                available,
                book.reserved_copies,
                reserved,
                book.total_copies,
            )
            raise InvariantViolationError(
                f"Copy counters of book {book_id} would become "
                f"available={available}, reserved={reserved}, total={book.total_copies}"
            )

        book.available_copies = available
        book.reserved_copies = reserved
        return book

    # Single-counter steps

    def decrement_available(self, book_id: str) -> BookDB:
        return self._apply(book_id, -1, 0)

    def increment_available(self, book_id: str) -> BookDB:
        return self._apply(book_id, 1, 0)

    def decrement_reserved(self, book_id: str) -> BookDB:
        return self._apply(book_id, 0, -1)

    def increment_reserved(self, book_id: str) -> BookDB:
        return self._apply(book_id, 0, 1)

    # Paired moves used by the circulation paths

    def hold(self, book_id: str) -> BookDB:
        """Reservation created: one copy moves from available to reserved."""
        return self._apply(book_id, -1, 1)

    def release(self, book_id: str) -> BookDB:
        """Reservation cancelled or expired: the held copy goes back to available."""
        return self._apply(book_id, 1, -1)

    def take_available(self, book_id: str) -> BookDB:
        """Borrow without a reservation."""
        return self.decrement_available(book_id)

    def take_reserved(self, book_id: str) -> BookDB:
        """Borrow that consumes the borrower's own reservation."""
        return self.decrement_reserved(book_id)

    def give_back(self, book_id: str) -> BookDB:
        """Loan returned or cancelled: the copy always rejoins the available pool."""
        return self.increment_available(book_id)
