"""
Library circulation models.

Pydantic v2 models returned by every operation, so storage rows never leave
the coordinator's transaction:

- Book: catalog entry with its copy counters
- User, Requester, Role: membership and caller identity
- Policy: per-library limits
- Loan, Reservation, Fine, ReturnResult: circulation records
- WishlistEntry, Review: reader activity
- CirculationReport: staff snapshot of a library
"""

from .book import Book
from .circulation import (
    Fine,
    Loan,
    LoanStatus,
    Reservation,
    ReturnResult,
    calculate_due_date,
    calculate_fine_amount,
    calculate_overdue_days,
    calculate_reservation_expiry,
    end_of_day,
    overdue_cutoff,
    start_of_day,
)
from .policy import Policy
from .reader import Review, WishlistEntry
from .report import CirculationReport, DailyCirculation, MostBorrowedBook
from .user import Requester, Role, User

__all__ = [
    "Book",
    "CirculationReport",
    "DailyCirculation",
    "Fine",
    "Loan",
    "LoanStatus",
    "MostBorrowedBook",
    "Policy",
    "Requester",
    "Reservation",
    "ReturnResult",
    "Review",
    "Role",
    "User",
    "WishlistEntry",
    "calculate_due_date",
    "calculate_fine_amount",
    "calculate_overdue_days",
    "calculate_reservation_expiry",
    "end_of_day",
    "overdue_cutoff",
    "start_of_day",
]
