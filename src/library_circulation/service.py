"""
Circulation service: one method per operation the API layer exposes.

Each method runs exactly one unit of work through the consistency
coordinator and returns pydantic models, never storage rows. The service is
synchronous; async callers run it in a worker thread.

Usage:
    db_manager = DatabaseManager(config=config)
    service = CirculationService(db_manager, ConsistencyCoordinator(db_manager))
    loan = service.borrow_book("user_a", "book_1")
"""

from datetime import datetime

from .config import ServerConfig
from .database.circulation_repository import CirculationRepository
from .database.coordinator import ConsistencyCoordinator
from .database.fine_repository import FineRepository
from .database.policy_repository import PolicyRepository
from .database.report_repository import ReportRepository
from .database.repository import ForbiddenError, PaginatedResponse, PaginationParams
from .database.reservation_repository import ReservationRepository
from .database.review_repository import ReviewRepository
from .database.session import DatabaseManager
from .database.user_repository import UserRepository
from .database.wishlist_repository import WishlistRepository
from .models import (
    Book,
    CirculationReport,
    Fine,
    Loan,
    LoanStatus,
    Policy,
    Requester,
    Reservation,
    ReturnResult,
    Review,
    User,
    WishlistEntry,
)


class CirculationService:
    """Entry point of the circulation core."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        coordinator: ConsistencyCoordinator | None = None,
        config: ServerConfig | None = None,
    ):
        self.db_manager = db_manager
        self.config = config or db_manager.config
        self.coordinator = coordinator or ConsistencyCoordinator(db_manager, self.config)

    @property
    def _expiry_default(self) -> int:
        return self.config.default_reservation_expiry_days

    def _pagination(self, page: int | None, page_size: int | None) -> PaginationParams:
        return PaginationParams(
            page=page if page is not None else 1,
            page_size=page_size if page_size is not None else self.config.default_page_size,
        )

    # === Reservations ===

    def reserve_book(self, user_id: str, book_id: str, now: datetime | None = None) -> Reservation:
        return self.coordinator.run(
            "reserve_book",
            lambda session: ReservationRepository(session, self._expiry_default).create_reservation(
                user_id, book_id, now=now
            ),
        )

    def cancel_reservation(self, reservation_id: str, requester: Requester) -> Reservation:
        return self.coordinator.run(
            "cancel_reservation",
            lambda session: ReservationRepository(session, self._expiry_default).cancel_reservation(
                reservation_id, requester
            ),
        )

    def expire_reservations(
        self, requester: Requester, now: datetime | None = None
    ) -> list[Reservation]:
        """Sweep expired reservations back to the shelf. Staff only."""
        if not requester.is_staff:
            raise ForbiddenError("Only staff can expire reservations")
        return self.coordinator.run(
            "expire_reservations",
            lambda session: ReservationRepository(session, self._expiry_default).expire_reservations(
                now=now
            ),
        )

    def get_reservation(self, reservation_id: str, requester: Requester) -> Reservation:
        return self.coordinator.read(
            "get_reservation",
            lambda session: ReservationRepository(session).get_reservation(reservation_id, requester),
        )

    def list_reservations(
        self,
        requester: Requester,
        user_id: str | None = None,
        book_id: str | None = None,
        expired: bool | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        page: int | None = None,
        page_size: int | None = None,
        now: datetime | None = None,
    ) -> PaginatedResponse[Reservation]:
        pagination = self._pagination(page, page_size)
        return self.coordinator.read(
            "list_reservations",
            lambda session: ReservationRepository(session).list_reservations(
                requester,
                user_id=user_id,
                book_id=book_id,
                expired=expired,
                sort_by=sort_by,
                sort_order=sort_order,
                pagination=pagination,
                max_page_size=self.config.max_page_size,
                now=now,
            ),
        )

    # === Loans ===

    def borrow_book(self, user_id: str, book_id: str, now: datetime | None = None) -> Loan:
        return self.coordinator.run(
            "borrow_book",
            lambda session: CirculationRepository(session, self._expiry_default).borrow_book(
                user_id, book_id, now=now
            ),
        )

    def mark_borrowed(self, loan_id: str, requester: Requester) -> Loan:
        return self.coordinator.run(
            "mark_borrowed",
            lambda session: CirculationRepository(session).mark_borrowed(loan_id, requester),
        )

    def return_book(
        self, loan_id: str, requester: Requester, now: datetime | None = None
    ) -> ReturnResult:
        return self.coordinator.run(
            "return_book",
            lambda session: CirculationRepository(session, self._expiry_default).return_book(
                loan_id, requester, now=now
            ),
        )

    def cancel_loan(self, loan_id: str, requester: Requester) -> Loan:
        return self.coordinator.run(
            "cancel_loan",
            lambda session: CirculationRepository(session).cancel_loan(loan_id, requester),
        )

    def get_loan(self, loan_id: str, requester: Requester) -> Loan:
        return self.coordinator.read(
            "get_loan",
            lambda session: CirculationRepository(session).get_loan(loan_id, requester),
        )

    def list_loans(
        self,
        requester: Requester,
        user_id: str | None = None,
        book_id: str | None = None,
        status: LoanStatus | None = None,
        overdue: bool | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        page: int | None = None,
        page_size: int | None = None,
        now: datetime | None = None,
    ) -> PaginatedResponse[Loan]:
        pagination = self._pagination(page, page_size)
        return self.coordinator.read(
            "list_loans",
            lambda session: CirculationRepository(session).list_loans(
                requester,
                user_id=user_id,
                book_id=book_id,
                status=status,
                overdue=overdue,
                sort_by=sort_by,
                sort_order=sort_order,
                pagination=pagination,
                max_page_size=self.config.max_page_size,
                now=now,
            ),
        )

    # === Fines ===

    def pay_fine(self, fine_id: str, requester: Requester) -> Fine:
        """Record payment of a fine. Staff only."""
        if not requester.is_staff:
            raise ForbiddenError("Only staff can record fine payments")
        return self.coordinator.run(
            "pay_fine", lambda session: FineRepository(session).pay_fine(fine_id)
        )

    def get_fine(self, fine_id: str, requester: Requester) -> Fine:
        return self.coordinator.read(
            "get_fine", lambda session: FineRepository(session).get_fine(fine_id, requester)
        )

    def list_fines(
        self,
        requester: Requester,
        user_id: str | None = None,
        book_id: str | None = None,
        is_paid: bool | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> PaginatedResponse[Fine]:
        pagination = self._pagination(page, page_size)
        return self.coordinator.read(
            "list_fines",
            lambda session: FineRepository(session).list_fines(
                requester,
                user_id=user_id,
                book_id=book_id,
                is_paid=is_paid,
                sort_by=sort_by,
                sort_order=sort_order,
                pagination=pagination,
                max_page_size=self.config.max_page_size,
            ),
        )

    # === Wishlist & reviews ===

    def add_to_wishlist(self, user_id: str, book_id: str) -> WishlistEntry:
        return self.coordinator.run(
            "add_to_wishlist", lambda session: WishlistRepository(session).add(user_id, book_id)
        )

    def remove_from_wishlist(self, user_id: str, book_id: str) -> None:
        self.coordinator.run(
            "remove_from_wishlist",
            lambda session: WishlistRepository(session).remove(user_id, book_id),
        )

    def list_wishlist(self, user_id: str) -> list[WishlistEntry]:
        return self.coordinator.read(
            "list_wishlist", lambda session: WishlistRepository(session).list_for_user(user_id)
        )

    def create_review(
        self, user_id: str, book_id: str, rating: int, comment: str | None = None
    ) -> Review:
        return self.coordinator.run(
            "create_review",
            lambda session: ReviewRepository(session).create(user_id, book_id, rating, comment),
        )

    def update_review(
        self,
        review_id: str,
        requester: Requester,
        rating: int | None = None,
        comment: str | None = None,
    ) -> Review:
        return self.coordinator.run(
            "update_review",
            lambda session: ReviewRepository(session).update(review_id, requester, rating, comment),
        )

    def delete_review(self, review_id: str, requester: Requester) -> None:
        self.coordinator.run(
            "delete_review", lambda session: ReviewRepository(session).delete(review_id, requester)
        )

    def list_reviews_for_book(self, book_id: str) -> list[Review]:
        return self.coordinator.read(
            "list_reviews_for_book",
            lambda session: ReviewRepository(session).list_for_book(book_id),
        )

    # === Lookups ===

    def get_policy(self, library_id: str) -> Policy:
        return self.coordinator.read(
            "get_policy",
            lambda session: PolicyRepository(session, self._expiry_default).get_policy(library_id),
        )

    def get_book(self, book_id: str) -> Book:
        return self.coordinator.read(
            "get_book",
            lambda session: UserRepository.book_to_model(UserRepository(session).get_book(book_id)),
        )

    def get_user(self, user_id: str) -> User:
        return self.coordinator.read(
            "get_user",
            lambda session: UserRepository.user_to_model(UserRepository(session).get_user(user_id)),
        )

    # === Reports ===

    def circulation_report(
        self, requester: Requester, library_id: str, now: datetime | None = None
    ) -> CirculationReport:
        """Shelf, loan ageing and fine totals for one library. Staff only."""
        if not requester.is_staff:
            raise ForbiddenError("Only staff can view circulation reports")
        return self.coordinator.read(
            "circulation_report",
            lambda session: ReportRepository(session).circulation_report(library_id, now),
        )
