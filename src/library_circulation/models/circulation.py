"""
Circulation models for the library circulation server.

These models represent the records that move copies between the shelf,
holds and borrowers:
- Loan: one checkout of one book by one user
- Reservation: a time-bounded hold on a copy
- Fine: the penalty for an overdue return, at most one per loan
- ReturnResult: what a return hands back to the caller

Due dates use end-of-day semantics: a loan borrowed on day D with a 14-day
period is due at 23:59:59.999 on D+14, and returning any time before that
instant is never late.
"""

import math
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

ONE_DAY = timedelta(days=1)
CENT = Decimal("0.01")


class LoanStatus(str, Enum):
    """Lifecycle phase of a loan."""

    REQUESTED = "requested"
    BORROWED = "borrowed"
    RETURNED = "returned"
    OVERDUE = "overdue"


OPEN_LOAN_STATUSES = frozenset({LoanStatus.REQUESTED, LoanStatus.BORROWED, LoanStatus.OVERDUE})


def end_of_day(moment: datetime) -> datetime:
    """Last representable millisecond of ``moment``'s calendar day."""
    return moment.replace(hour=23, minute=59, second=59, microsecond=999000)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def calculate_due_date(borrow_date: datetime, max_borrow_days: int) -> datetime:
    return end_of_day(borrow_date + timedelta(days=max_borrow_days))


def calculate_overdue_days(
    borrow_date: datetime, return_date: datetime, max_borrow_days: int
) -> int:
    """
    Whole days, rounded up, between the due instant and ``return_date``.

    Args:
        borrow_date: When the loan was created
        return_date: When the book came back
        max_borrow_days: Loan period from the library policy

    Returns:
        0 when returned on or before the due instant, otherwise the number of
        started days past it
    """
    due = calculate_due_date(borrow_date, max_borrow_days)
    if return_date <= due:
        return 0
    return math.ceil((return_date - due) / ONE_DAY)


def overdue_cutoff(now: datetime, max_borrow_days: int) -> datetime:
    """
    Borrow instant before which an open loan is past due at ``now``.

    ``borrow_date < overdue_cutoff(now, days)`` holds exactly when
    ``calculate_overdue_days(borrow_date, now, days) > 0``, which lets the
    store filter overdue loans without computing due dates row by row.
    """
    cutoff = start_of_day(now) - timedelta(days=max_borrow_days)
    if now > end_of_day(now):
        cutoff += ONE_DAY
    return cutoff


def calculate_fine_amount(overdue_days: int, fine_per_day: Decimal) -> Decimal:
    """Fine for ``overdue_days`` at the policy rate, rounded to cents."""
    return (Decimal(overdue_days) * Decimal(fine_per_day)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_reservation_expiry(reserved_at: datetime, expiry_days: int) -> datetime:
    return end_of_day(reserved_at + timedelta(days=expiry_days))


class Loan(BaseModel):
    """
    Represents a borrow transaction.

    Created in ``requested`` by a borrow; a staff hand-over moves it to
    ``borrowed``; a return stamps ``return_date`` and sets ``returned``.
    """

    id: str = Field(
        ...,
        description="Unique identifier for the loan",
        pattern=r"^loan_[a-zA-Z0-9]{6,}$",
        examples=["loan_9f2c4e1a7b3d"],
    )

    user_id: str = Field(..., description="ID of the borrowing user")

    book_id: str = Field(..., description="ID of the borrowed book")

    borrow_date: datetime = Field(
        default_factory=datetime.now,
        description="Date and time when the loan was created",
    )

    return_date: datetime | None = Field(
        None,
        description="Date and time when the book was returned",
    )

    status: LoanStatus = Field(
        default=LoanStatus.REQUESTED,
        description="Current lifecycle phase of the loan",
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_LOAN_STATUSES

    def due_date(self, max_borrow_days: int) -> datetime:
        return calculate_due_date(self.borrow_date, max_borrow_days)

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "loan_9f2c4e1a7b3d",
                "user_id": "user_3f9a1c2b7d4e",
                "book_id": "book_8c1d2e3f4a5b",
                "borrow_date": "2024-03-01T10:30:00",
                "return_date": None,
                "status": "requested",
            }
        },
    )


class Reservation(BaseModel):
    """A hold on one copy of a book for one user."""

    id: str = Field(
        ...,
        description="Unique identifier for the reservation",
        pattern=r"^reservation_[a-zA-Z0-9]{6,}$",
    )

    user_id: str
    book_id: str
    library_id: str

    reserved_at: datetime = Field(default_factory=datetime.now)

    expires_at: datetime = Field(
        ...,
        description="End of the last day the hold is kept",
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at < (now or datetime.now())

    model_config = ConfigDict(from_attributes=True)


class Fine(BaseModel):
    """Penalty for an overdue return. ``is_paid`` only ever moves to True."""

    id: str = Field(..., pattern=r"^fine_[a-zA-Z0-9]{6,}$")
    loan_id: str
    user_id: str
    book_id: str
    library_id: str

    amount: Decimal = Field(..., ge=0, description="overdue days x fine per day")

    reason: str | None = Field(None, max_length=1000)

    is_paid: bool = False

    fine_date: datetime = Field(default_factory=datetime.now)
    updated_at: datetime | None = None

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "fine_1b2c3d4e5f6a",
                "loan_id": "loan_9f2c4e1a7b3d",
                "user_id": "user_3f9a1c2b7d4e",
                "book_id": "book_8c1d2e3f4a5b",
                "library_id": "library_central",
                "amount": "6.00",
                "reason": "Returned 6 day(s) late.",
                "is_paid": False,
            }
        },
    )


class ReturnResult(BaseModel):
    """The closed loan plus the fine the return produced, if any."""

    loan: Loan
    fine: Fine | None = None
    overdue_days: int = Field(default=0, ge=0)
