"""Staff-facing circulation report for one library."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class DailyCirculation(BaseModel):
    """Loans opened on one calendar day."""

    day: date
    count: int = Field(..., ge=0)


class MostBorrowedBook(BaseModel):
    book_id: str
    title: str
    borrow_count: int = Field(..., gt=0)


class CirculationReport(BaseModel):
    """
    Snapshot of a library's shelf, loans and fines at ``generated_at``.

    Loan figures count open loans (``requested`` or ``borrowed``). Overdue
    buckets use the same day count a return at ``generated_at`` would be
    fined for; the due-soon windows are calendar days relative to the
    report date.
    """

    library_id: str
    generated_at: datetime
    max_borrow_days: int

    # Shelf
    total_copies: int = 0
    available_copies: int = 0
    reserved_copies: int = 0

    # Open loans
    open_loans: int = 0
    overdue_loans: int = 0
    overdue_1_to_7_days: int = 0
    overdue_8_to_14_days: int = 0
    overdue_15_plus_days: int = 0
    due_today: int = Field(0, description="Not yet overdue, due on the report date")
    due_this_week: int = Field(0, description="Due 1 to 6 days after the report date")
    due_next_week: int = Field(0, description="Due 7 to 13 days after the report date")

    # Circulation
    daily_circulation: list[DailyCirculation] = Field(
        default_factory=list, description="Loans opened per day, oldest of the last 7 days first"
    )
    most_borrowed_book: MostBorrowedBook | None = None

    # Fines
    fines_total: Decimal = Decimal("0.00")
    fines_paid: Decimal = Decimal("0.00")
    fines_pending: Decimal = Decimal("0.00")

    @property
    def circulation_last_7_days(self) -> int:
        return sum(day.count for day in self.daily_circulation)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "library_id": "library_central",
                "generated_at": "2024-03-15T09:00:00",
                "max_borrow_days": 14,
                "total_copies": 120,
                "available_copies": 87,
                "reserved_copies": 5,
                "open_loans": 28,
                "overdue_loans": 4,
                "overdue_1_to_7_days": 3,
                "overdue_8_to_14_days": 1,
                "overdue_15_plus_days": 0,
                "due_today": 2,
                "due_this_week": 9,
                "due_next_week": 11,
                "fines_total": "42.50",
                "fines_paid": "30.00",
                "fines_pending": "12.50",
            }
        },
    )
