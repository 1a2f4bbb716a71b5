"""
Fine repository.

Fines are written by exactly two paths: a late return creates one (the
unique ``loan_id`` column keeps it to one per loan) and a payment flips
``is_paid`` to True. Nothing ever flips it back.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select

from ..models.circulation import Fine as FineModel
from ..models.circulation import calculate_fine_amount
from ..models.user import Requester
from .repository import (
    BaseRepository,
    ConflictError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    SortSpec,
)
from .schema import Fine as FineDB
from .schema import Loan as LoanDB

logger = logging.getLogger(__name__)

FINE_SORT = SortSpec(
    columns={
        "fine_date": FineDB.fine_date,
        "amount": FineDB.amount,
        "is_paid": FineDB.is_paid,
        "updated_at": FineDB.updated_at,
    },
    default_key="fine_date",
    default_order="asc",
)


class FineRepository(BaseRepository):
    """Creates, pays and lists fines."""

    def create_for_return(
        self,
        loan: LoanDB,
        library_id: str,
        overdue_days: int,
        fine_per_day: Decimal,
        fined_at: datetime,
    ) -> FineModel:
        """Record the fine for a loan returned ``overdue_days`` late."""
        if self.find_for_loan(loan.id) is not None:
            raise ConflictError(f"Loan {loan.id} already has a fine")

        fine = FineDB(
            id=self._new_id("fine"),
            loan_id=loan.id,
            user_id=loan.user_id,
            book_id=loan.book_id,
            library_id=library_id,
            amount=calculate_fine_amount(overdue_days, fine_per_day),
            reason=f"Returned {overdue_days} day(s) late.",
            is_paid=False,
            fine_date=fined_at,
            updated_at=fined_at,
        )
        self.session.add(fine)
        self.session.flush()

        logger.info("Fine %s of %s created for loan %s", fine.id, fine.amount, loan.id)
        return self._to_model(fine)

    def pay_fine(self, fine_id: str, paid_at: datetime | None = None) -> FineModel:
        """
        Mark a fine as paid.

        Raises:
            NotFoundError: If the fine does not exist
            ConflictError: If it was already paid
        """
        fine = self.session.execute(
            select(FineDB).where(FineDB.id == fine_id).with_for_update()
        ).scalar_one_or_none()
        if fine is None:
            raise NotFoundError(f"Fine {fine_id} not found")
        if fine.is_paid:
            raise ConflictError(f"Fine {fine_id} is already paid")

        fine.is_paid = True
        fine.updated_at = paid_at or datetime.now()
        self.session.flush()

        logger.info("Fine %s paid", fine_id)
        return self._to_model(fine)

    def find_for_loan(self, loan_id: str) -> FineDB | None:
        return self.session.execute(
            select(FineDB).where(FineDB.loan_id == loan_id)
        ).scalar_one_or_none()

    def get_fine(self, fine_id: str, requester: Requester) -> FineModel:
        fine = self.session.execute(select(FineDB).where(FineDB.id == fine_id)).scalar_one_or_none()
        if fine is None:
            raise NotFoundError(f"Fine {fine_id} not found")
        self._require_access(requester, fine.user_id, f"fine {fine_id}")
        return self._to_model(fine)

    def list_fines(
        self,
        requester: Requester,
        user_id: str | None = None,
        book_id: str | None = None,
        is_paid: bool | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        pagination: PaginationParams | None = None,
        max_page_size: int = 100,
    ) -> PaginatedResponse[FineModel]:
        """
        List fines visible to the requester.

        Members see their unpaid fines unless they ask for ``is_paid`` explicitly.
        """
        user_id = self._scope_to_requester(requester, user_id)
        if is_paid is None and not requester.is_staff:
            is_paid = False

        query = select(FineDB)
        if user_id is not None:
            query = query.where(FineDB.user_id == user_id)
        if book_id is not None:
            query = query.where(FineDB.book_id == book_id)
        if is_paid is not None:
            query = query.where(FineDB.is_paid == is_paid)

        query = FINE_SORT.apply(query, sort_by, sort_order)
        return self._paginate(query, pagination, self._to_model, max_page_size)

    @staticmethod
    def _to_model(fine: FineDB) -> FineModel:
        return FineModel(
            id=fine.id,
            loan_id=fine.loan_id,
            user_id=fine.user_id,
            book_id=fine.book_id,
            library_id=fine.library_id,
            amount=fine.amount,
            reason=fine.reason,
            is_paid=fine.is_paid,
            fine_date=fine.fine_date,
            updated_at=fine.updated_at,
        )
