"""
Circulation repository implementation for the library circulation server.

This repository owns the loan lifecycle of one (user, book) pair:

1. **Borrow**: consumes the user's own reservation if there is one, otherwise
   an available copy, and opens a loan in ``requested``
2. **Hand-over**: staff move a loan from ``requested`` to ``borrowed``
3. **Return**: closes the loan, puts the copy back on the shelf and fines
   late returns
4. **Cancel**: retracts a loan that is still ``requested``

Every method runs inside the coordinator's transaction and validates before
it writes, so a rejected request leaves no trace.
"""

import logging
from datetime import datetime

from sqlalchemy import and_, false, not_, or_, select

from ..models.circulation import Loan as LoanModel
from ..models.circulation import (
    LoanStatus,
    ReturnResult,
    calculate_overdue_days,
    overdue_cutoff,
)
from ..models.user import Requester
from .copy_ledger import CopyLedger
from .fine_repository import FineRepository
from .policy_repository import PolicyRepository
from .repository import (
    BaseRepository,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    SortSpec,
)
from .reservation_repository import ReservationRepository
from .schema import Book as BookDB
from .schema import Loan as LoanDB
from .schema import LoanStatusEnum
from .schema import Policy as PolicyDB
from .user_repository import BORROWED, UserRepository

logger = logging.getLogger(__name__)

LOAN_SORT = SortSpec(
    columns={
        "borrow_date": LoanDB.borrow_date,
        "return_date": LoanDB.return_date,
        "status": LoanDB.status,
    },
    default_key="borrow_date",
    default_order="desc",
)


class CirculationRepository(BaseRepository):
    """
    Repository for loan operations.

    Coordinates the loan row, the book's copy counters (through the ledger),
    the user's ``borrowed_book_ids`` and, on return, the fine.
    """

    def __init__(self, session, default_reservation_expiry_days: int = 7):
        """Initialize with database session and sub-repositories."""
        super().__init__(session)
        self.users = UserRepository(session)
        self.policies = PolicyRepository(session, default_reservation_expiry_days)
        self.reservations = ReservationRepository(session, default_reservation_expiry_days)
        self.fines = FineRepository(session)
        self.ledger = CopyLedger(session)

    def borrow_book(self, user_id: str, book_id: str, now: datetime | None = None) -> LoanModel:
        """
        Open a loan for a user.

        Validation order:
        1. user and book exist and share a library, policy exists
        2. the user does not already hold the book
        3. the user is below the policy's ``max_books_per_user``
        4. the user's own reservation, if any, supplies the copy; otherwise
           a copy must be available

        Raises:
            NotFoundError: If user, book or policy is missing
            InvalidArgumentError: If user and book are in different libraries
            ConflictError: If the user already has the book on loan
            LimitExceededError: If the borrow limit is reached or no copy is free
        """
        user, book = self.users.get_user_and_book(user_id, book_id)
        policy = self.policies.get_policy(book.library_id)

        if self.users.has_book(user, BORROWED, book_id):
            raise ConflictError(f"User {user_id} already has book {book_id} on loan")

        open_loans = len(user.borrowed_book_ids or [])
        if open_loans >= policy.max_books_per_user:
            raise LimitExceededError(
                f"User {user_id} has reached the borrowing limit of {policy.max_books_per_user}"
            )

        reservation = self.reservations.find_for(user_id, book_id)
        if reservation is None and book.available_copies <= 0:
            raise LimitExceededError(f"No copies of book {book_id} are available")

        if reservation is not None:
            self.ledger.take_reserved(book_id)
            self.reservations.consume(reservation, user)
        else:
            self.ledger.take_available(book_id)

        loan = LoanDB(
            id=self._new_id("loan"),
            user_id=user_id,
            book_id=book_id,
            borrow_date=now or datetime.now(),
            status=LoanStatusEnum.REQUESTED,
        )
        self.session.add(loan)
        self.users.add_book(user, BORROWED, book_id)
        self.session.flush()

        logger.info(
            "Loan %s opened: user=%s book=%s via=%s",
            loan.id,
            user_id,
            book_id,
            "reservation" if reservation is not None else "shelf",
        )
        return self._to_model(loan)

    def mark_borrowed(self, loan_id: str, requester: Requester) -> LoanModel:
        """
        Record the physical hand-over of a requested loan.

        Raises:
            ForbiddenError: If the requester is not staff
            NotFoundError: If the loan does not exist
            InvalidStateError: If the loan is not ``requested``
        """
        if not requester.is_staff:
            raise ForbiddenError("Only staff can hand over a loan")

        loan = self._get_locked(loan_id)
        if loan.status != LoanStatusEnum.REQUESTED:
            raise InvalidStateError(
                f"Loan {loan_id} cannot be handed over from status '{loan.status.value}'"
            )

        loan.status = LoanStatusEnum.BORROWED
        self.session.flush()
        logger.info("Loan %s handed over by %s", loan_id, requester.user_id)
        return self._to_model(loan)

    def return_book(
        self, loan_id: str, requester: Requester, now: datetime | None = None
    ) -> ReturnResult:
        """
        Close a loan and fine it if it came back late.

        The returned copy always rejoins the available pool, even when the
        loan was opened from a reservation.

        Raises:
            NotFoundError: If the loan or the library policy is missing
            ForbiddenError: If a member returns someone else's loan
            InvalidStateError: If the loan is already returned
        """
        loan = self._get_locked(loan_id)
        self._require_access(requester, loan.user_id, f"loan {loan_id}")

        if loan.status == LoanStatusEnum.RETURNED:
            raise InvalidStateError(f"Loan {loan_id} is already returned")

        user = self.users.get_user(loan.user_id, lock=True)
        policy = self.policies.get_policy(user.library_id)

        returned_at = now or datetime.now()
        overdue_days = calculate_overdue_days(
            loan.borrow_date, returned_at, policy.max_borrow_days
        )

        fine = None
        if overdue_days > 0:
            fine = self.fines.create_for_return(
                loan,
                library_id=policy.library_id,
                overdue_days=overdue_days,
                fine_per_day=policy.fine_per_day,
                fined_at=returned_at,
            )

        loan.return_date = returned_at
        loan.status = LoanStatusEnum.RETURNED
        self.ledger.give_back(loan.book_id)
        self.users.remove_book(user, BORROWED, loan.book_id)
        self.session.flush()

        logger.info(
            "Loan %s returned by %s (%d day(s) overdue)", loan_id, requester.user_id, overdue_days
        )
        return ReturnResult(loan=self._to_model(loan), fine=fine, overdue_days=overdue_days)

    def cancel_loan(self, loan_id: str, requester: Requester) -> LoanModel:
        """
        Retract a loan that has not been handed over yet.

        The loan row is deleted and its copy goes back to the available pool.

        Raises:
            NotFoundError: If the loan does not exist
            ForbiddenError: If a member cancels someone else's loan
            InvalidStateError: If the loan is past ``requested``
        """
        loan = self._get_locked(loan_id)
        self._require_access(requester, loan.user_id, f"loan {loan_id}")

        if loan.status != LoanStatusEnum.REQUESTED:
            raise InvalidStateError(
                f"Loan {loan_id} cannot be cancelled from status '{loan.status.value}'"
            )

        cancelled = self._to_model(loan)
        user = self.users.get_user(loan.user_id, lock=True)
        self.ledger.give_back(loan.book_id)
        self.users.remove_book(user, BORROWED, loan.book_id)
        self.session.delete(loan)
        self.session.flush()

        logger.info("Loan %s cancelled by %s", loan_id, requester.user_id)
        return cancelled

    def get_loan(self, loan_id: str, requester: Requester) -> LoanModel:
        loan = self._get(loan_id)
        self._require_access(requester, loan.user_id, f"loan {loan_id}")
        return self._to_model(loan)

    def list_loans(
        self,
        requester: Requester,
        user_id: str | None = None,
        book_id: str | None = None,
        status: LoanStatus | None = None,
        overdue: bool | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        pagination: PaginationParams | None = None,
        max_page_size: int = 100,
        now: datetime | None = None,
    ) -> PaginatedResponse[LoanModel]:
        """
        List loans visible to the requester, newest first by default.

        Args:
            status: Stored lifecycle phase. ``overdue`` is never stored, so
                asking for it is rejected in favor of the ``overdue`` flag.
            overdue: True for open loans past their due date under their
                library's policy, False for open loans still within it
            now: Instant the due dates are compared against

        Raises:
            InvalidArgumentError: If ``status`` is ``overdue``
        """
        user_id = self._scope_to_requester(requester, user_id)
        query = select(LoanDB)

        if user_id is not None:
            query = query.where(LoanDB.user_id == user_id)
        if book_id is not None:
            query = query.where(LoanDB.book_id == book_id)
        if status is not None:
            status = LoanStatus(status)
            if status == LoanStatus.OVERDUE:
                raise InvalidArgumentError(
                    "Loans are never stored as overdue; filter with overdue=true instead"
                )
            query = query.where(LoanDB.status == LoanStatusEnum(status.value))
        if overdue is not None:
            past_due = self._past_due_clause(now or datetime.now())
            query = query.join(BookDB, BookDB.id == LoanDB.book_id).where(
                LoanDB.status != LoanStatusEnum.RETURNED,
                past_due if overdue else not_(past_due),
            )

        query = LOAN_SORT.apply(query, sort_by, sort_order)
        return self._paginate(query, pagination, self._to_model, max_page_size)

    def _past_due_clause(self, now: datetime):
        """Per-library ``borrow_date`` cutoffs; requires ``BookDB`` in the query."""
        policies = self.session.execute(select(PolicyDB.library_id, PolicyDB.max_borrow_days)).all()
        return or_(
            false(),
            *(
                and_(
                    BookDB.library_id == library_id,
                    LoanDB.borrow_date < overdue_cutoff(now, max_borrow_days),
                )
                for library_id, max_borrow_days in policies
            ),
        )

    def _get(self, loan_id: str) -> LoanDB:
        loan = self.session.execute(select(LoanDB).where(LoanDB.id == loan_id)).scalar_one_or_none()
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def _get_locked(self, loan_id: str) -> LoanDB:
        loan = self.session.execute(
            select(LoanDB)
            .where(LoanDB.id == loan_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    @staticmethod
    def _to_model(loan: LoanDB) -> LoanModel:
        """Convert loan DB object to Pydantic model."""
        return LoanModel(
            id=loan.id,
            user_id=loan.user_id,
            book_id=loan.book_id,
            borrow_date=loan.borrow_date,
            return_date=loan.return_date,
            status=LoanStatus(loan.status.value),
        )
