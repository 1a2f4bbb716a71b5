"""
Reservation manager.

A reservation moves one copy from the available pool to the reserved pool
and records the book in the user's ``reserved_book_ids``. Cancelling it,
sweeping it after expiry, or converting it into a loan are the only ways the
copy leaves the reserved pool again.

Expired reservations are not removed on their own: they keep their copy
until a user or staff member cancels them or staff run ``expire_reservations``.
"""

import logging
from datetime import datetime

from sqlalchemy import select

from ..models.circulation import Reservation as ReservationModel
from ..models.circulation import calculate_reservation_expiry
from ..models.user import Requester
from .copy_ledger import CopyLedger
from .policy_repository import PolicyRepository
from .repository import (
    BaseRepository,
    ConflictError,
    InvalidStateError,
    LimitExceededError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    SortSpec,
)
from .schema import Reservation as ReservationDB
from .user_repository import BORROWED, RESERVED, UserRepository

logger = logging.getLogger(__name__)

RESERVATION_SORT = SortSpec(
    columns={
        "reserved_at": ReservationDB.reserved_at,
        "expires_at": ReservationDB.expires_at,
    },
    default_key="reserved_at",
    default_order="asc",
)


class ReservationRepository(BaseRepository):
    """Creates, cancels, sweeps and lists reservations."""

    def __init__(self, session, default_reservation_expiry_days: int = 7):
        super().__init__(session)
        self.users = UserRepository(session)
        self.policies = PolicyRepository(session, default_reservation_expiry_days)
        self.ledger = CopyLedger(session)

    def create_reservation(
        self, user_id: str, book_id: str, now: datetime | None = None
    ) -> ReservationModel:
        """
        Place a hold on one copy of a book.

        Checks run before anything is written:
        1. user active, book present, both in the same library
        2. the library has a policy
        3. the user does not already have the book on loan
        4. the user has no reservation for the book yet
        5. a copy is on the shelf to hold

        Raises:
            NotFoundError: If user, book or policy is missing
            InvalidArgumentError: If user and book are in different libraries
            InvalidStateError: If the user already borrowed the book
            ConflictError: If the user already reserved the book
            LimitExceededError: If no copy is available to hold
        """
        user, book = self.users.get_user_and_book(user_id, book_id)
        policy = self.policies.get_policy(book.library_id)

        if self.users.has_book(user, BORROWED, book_id):
            raise InvalidStateError(f"User {user_id} already has book {book_id} on loan")

        if self.find_for(user_id, book_id) is not None:
            raise ConflictError(f"User {user_id} already has a reservation for book {book_id}")

        if book.available_copies <= 0:
            raise LimitExceededError(f"No copies of book {book_id} are available to reserve")

        reserved_at = now or datetime.now()
        reservation = ReservationDB(
            id=self._new_id("reservation"),
            user_id=user_id,
            book_id=book_id,
            library_id=book.library_id,
            reserved_at=reserved_at,
            expires_at=calculate_reservation_expiry(reserved_at, policy.reservation_expiry_days),
        )
        self.session.add(reservation)
        self.ledger.hold(book_id)
        self.users.add_book(user, RESERVED, book_id)
        self.session.flush()

        logger.info("Reservation %s created: user=%s book=%s", reservation.id, user_id, book_id)
        return self._to_model(reservation)

    def cancel_reservation(self, reservation_id: str, requester: Requester) -> ReservationModel:
        """
        Cancel a reservation and put its copy back on the shelf.

        Raises:
            NotFoundError: If the reservation does not exist
            ForbiddenError: If a member cancels someone else's reservation
        """
        reservation = self._get(reservation_id)
        self._require_access(requester, reservation.user_id, f"reservation {reservation_id}")

        cancelled = self._to_model(reservation)
        self._release(reservation)
        logger.info("Reservation %s cancelled by %s", reservation_id, requester.user_id)
        return cancelled

    def expire_reservations(self, now: datetime | None = None) -> list[ReservationModel]:
        """Cancel every reservation whose ``expires_at`` has passed."""
        now = now or datetime.now()
        expired = (
            self.session.execute(
                select(ReservationDB)
                .where(ReservationDB.expires_at < now)
                .order_by(ReservationDB.expires_at, ReservationDB.id)
                .with_for_update()
            )
            .scalars()
            .all()
        )

        swept = []
        for reservation in expired:
            swept.append(self._to_model(reservation))
            self._release(reservation)

        if swept:
            logger.info("Expired %d reservation(s)", len(swept))
        return swept

    def find_for(self, user_id: str, book_id: str) -> ReservationDB | None:
        return self.session.execute(
            select(ReservationDB).where(
                ReservationDB.user_id == user_id,
                ReservationDB.book_id == book_id,
            )
        ).scalar_one_or_none()

    def consume(self, reservation: ReservationDB, user) -> None:
        """
        Remove a reservation that a borrow is converting into a loan.

        The reserved copy itself is taken by the borrow through the ledger.
        """
        self.users.remove_book(user, RESERVED, reservation.book_id)
        self.session.delete(reservation)

    def get_reservation(self, reservation_id: str, requester: Requester) -> ReservationModel:
        reservation = self._get(reservation_id)
        self._require_access(requester, reservation.user_id, f"reservation {reservation_id}")
        return self._to_model(reservation)

    def list_reservations(
        self,
        requester: Requester,
        user_id: str | None = None,
        book_id: str | None = None,
        expired: bool | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        pagination: PaginationParams | None = None,
        max_page_size: int = 100,
        now: datetime | None = None,
    ) -> PaginatedResponse[ReservationModel]:
        """
        List reservations visible to the requester.

        Args:
            expired: True for holds past ``expires_at``, False for live ones,
                None for both
        """
        user_id = self._scope_to_requester(requester, user_id)
        query = select(ReservationDB)

        if user_id is not None:
            query = query.where(ReservationDB.user_id == user_id)
        if book_id is not None:
            query = query.where(ReservationDB.book_id == book_id)
        if expired is not None:
            now = now or datetime.now()
            if expired:
                query = query.where(ReservationDB.expires_at < now)
            else:
                query = query.where(ReservationDB.expires_at >= now)

        query = RESERVATION_SORT.apply(query, sort_by, sort_order)
        return self._paginate(query, pagination, self._to_model, max_page_size)

    def _get(self, reservation_id: str) -> ReservationDB:
        reservation = self.session.execute(
            select(ReservationDB).where(ReservationDB.id == reservation_id)
        ).scalar_one_or_none()
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    def _release(self, reservation: ReservationDB) -> None:
        user = self.users.get_user(reservation.user_id, lock=True)
        self.ledger.release(reservation.book_id)
        self.users.remove_book(user, RESERVED, reservation.book_id)
        self.session.delete(reservation)

    @staticmethod
    def _to_model(reservation: ReservationDB) -> ReservationModel:
        return ReservationModel(
            id=reservation.id,
            user_id=reservation.user_id,
            book_id=reservation.book_id,
            library_id=reservation.library_id,
            reserved_at=reservation.reserved_at,
            expires_at=reservation.expires_at,
        )
