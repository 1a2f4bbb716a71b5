"""Book model with its copy counters."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Book(BaseModel):
    """
    A catalog entry as seen by circulation.

    The three counters satisfy ``available + reserved <= total`` at every
    committed state; the validator rejects any snapshot that does not.
    """

    id: str
    library_id: str
    title: str = Field(..., min_length=1, max_length=500)
    isbn: str | None = Field(None, pattern=r"^\d{13}$")
    description: str | None = None

    total_copies: int = Field(..., ge=0, description="Copies the library owns")
    available_copies: int = Field(..., ge=0, description="Copies on the shelf, free to borrow")
    reserved_copies: int = Field(..., ge=0, description="Copies held for reservations")

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def validate_copy_counts(self) -> "Book":
        if self.available_copies + self.reserved_copies > self.total_copies:
            raise ValueError("available_copies + reserved_copies cannot exceed total_copies")
        return self

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @property
    def borrowed_copies(self) -> int:
        """Copies currently out on loan."""
        return self.total_copies - self.available_copies - self.reserved_copies

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "book_8c1d2e3f4a5b",
                "library_id": "library_central",
                "title": "The Pragmatic Programmer",
                "isbn": "9780135957059",
                "total_copies": 3,
                "available_copies": 2,
                "reserved_copies": 1,
            }
        },
    )
