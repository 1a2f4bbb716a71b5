"""Per-library circulation policy."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class Policy(BaseModel):
    """
    Limits that govern borrowing in one library.

    ``reservation_expiry_days`` here is the effective value: the policy
    repository substitutes the configured default when the stored value is
    not positive, and records that it did so in ``expiry_fallback_applied``.
    """

    id: str
    library_id: str
    max_borrow_days: int = Field(..., gt=0, description="Loan period before fines accrue")
    fine_per_day: Decimal = Field(..., ge=0, description="Fine per overdue day")
    max_books_per_user: int = Field(..., gt=0, description="Open loans allowed per user")
    reservation_expiry_days: int = Field(..., gt=0, description="Days a reservation is held")
    expiry_fallback_applied: bool = False

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "policy_central",
                "library_id": "library_central",
                "max_borrow_days": 14,
                "fine_per_day": "1.00",
                "max_books_per_user": 4,
                "reservation_expiry_days": 3,
            }
        },
    )
