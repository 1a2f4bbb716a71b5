"""
User and requester models.

``User`` mirrors a membership row, including its denormalized book lists.
``Requester`` is the already-authenticated caller identity every operation
receives from the API layer: the core trusts it and verifies nothing.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Role claim of an authenticated caller."""

    ADMIN = "admin"
    LIBRARIAN = "librarian"
    MEMBER = "member"


STAFF_ROLES = frozenset({Role.ADMIN, Role.LIBRARIAN})


class Requester(BaseModel):
    """Identity and role of the caller of a circulation operation."""

    user_id: str = Field(..., description="ID of the calling user", min_length=1)
    role: Role = Field(default=Role.MEMBER, description="Verified role claim")

    model_config = ConfigDict(frozen=True)

    @property
    def is_staff(self) -> bool:
        """Librarians and admins may act on any member's records."""
        return self.role in STAFF_ROLES

    def can_access(self, owner_id: str) -> bool:
        return self.is_staff or self.user_id == owner_id


class User(BaseModel):
    """A library member or staff account."""

    id: str
    library_id: str
    name: str
    email: str
    role: Role = Role.MEMBER
    is_active: bool = True

    borrowed_book_ids: list[str] = Field(
        default_factory=list,
        description="Books with an open loan for this user",
    )
    reserved_book_ids: list[str] = Field(
        default_factory=list,
        description="Books with an active reservation for this user",
    )
    wishlist_book_ids: list[str] = Field(default_factory=list)

    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        json_schema_extra={
            "example": {
                "id": "user_3f9a1c2b7d4e",
                "library_id": "library_central",
                "name": "Jane Smith",
                "email": "jane.smith@example.com",
                "role": "member",
                "is_active": True,
                "borrowed_book_ids": ["book_8c1d2e3f4a5b"],
                "reserved_book_ids": [],
                "wishlist_book_ids": [],
            }
        },
    )
