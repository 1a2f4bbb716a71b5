"""Reader activity models: wishlist entries and reviews."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class WishlistEntry(BaseModel):
    id: str
    user_id: str
    book_id: str
    added_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Review(BaseModel):
    """A user's rating of a book, one per (user, book)."""

    id: str
    user_id: str
    book_id: str
    rating: int = Field(..., ge=1, le=5, description="Star rating, 1 to 5")
    comment: str | None = Field(None, max_length=2000)
    reviewed_at: datetime

    model_config = ConfigDict(from_attributes=True)
