"""
Repository base layer for the library circulation server.

Every repository works against a session handed to it by the consistency
coordinator; repositories never commit. This module holds what they share:

1. **Typed failures**: one exception per error kind, each with a stable
   category and status code for the API layer
2. **Pagination**: request parameters and the paginated response envelope
3. **Sorting**: an enumerated whitelist of sort keys per listing, so raw
   request strings never reach the store
"""

import math
import uuid
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import Select, asc, desc, func, select
from sqlalchemy.orm import Session

from ..models.user import Requester

ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)


class RepositoryException(Exception):
    """Base exception for circulation operations."""

    category: ClassVar[str] = "internal_error"
    status_code: ClassVar[int] = 500
    retryable: ClassVar[bool] = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "status_code": self.status_code,
            "retryable": self.retryable,
            "message": str(self),
        }


class NotFoundError(RepositoryException):
    """Raised when a referenced library, user, book, policy or record is absent."""

    category = "not_found"
    status_code = 404


class ConflictError(RepositoryException):
    """Raised on duplicates: reservation, review, wishlist entry, paid fine."""

    category = "conflict"
    status_code = 409


DuplicateError = ConflictError


class InvalidStateError(RepositoryException):
    """Raised when a record is in the wrong lifecycle phase for a transition."""

    category = "invalid_state"
    status_code = 400


class LimitExceededError(RepositoryException):
    """Raised when a borrow limit or copy availability is exhausted."""

    category = "limit_exceeded"
    status_code = 400


class ForbiddenError(RepositoryException):
    """Raised when ownership or role checks fail."""

    category = "forbidden"
    status_code = 403


class InvalidArgumentError(RepositoryException):
    """Raised for malformed requests: cross-library access, unknown sort keys."""

    category = "invalid_argument"
    status_code = 400


class InvariantViolationError(RepositoryException):
    """Raised when a copy-counter invariant would break. Indicates a defect."""

    category = "invariant_violation"
    status_code = 500


class TransactionTimeoutError(RepositoryException):
    """Raised when a transaction exhausts its wait or execution budget."""

    category = "timeout"
    status_code = 503
    retryable = True


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = 1
    page_size: int = 10

    @property
    def offset(self) -> int:
        """Calculate offset for SQL queries."""
        return (self.page - 1) * self.page_size

    def validate_params(self, max_page_size: int = 100) -> None:
        if self.page < 1:
            raise InvalidArgumentError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > max_page_size:
            raise InvalidArgumentError(f"Page size must be between 1 and {max_page_size}")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """Standard paginated response for list operations."""

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class SortSpec(BaseModel):
    """Recognized sort keys of one listing, with its default ordering."""

    columns: Mapping[str, Any]
    default_key: str
    default_order: str = "asc"

    def apply(self, query: Select, sort_by: str | None, sort_order: str | None) -> Select:
        """Order ``query`` by a whitelisted key.

        Raises:
            InvalidArgumentError: If the key or the order is not recognized
        """
        key = sort_by or self.default_key
        order = (sort_order or self.default_order).lower()
        if key not in self.columns:
            allowed = ", ".join(sorted(self.columns))
            raise InvalidArgumentError(f"Unsupported sort key '{key}' (allowed: {allowed})")
        if order not in ("asc", "desc"):
            raise InvalidArgumentError(f"Unsupported sort order '{order}' (use asc or desc)")
        column = self.columns[key]
        return query.order_by(desc(column) if order == "desc" else asc(column))


class BaseRepository:
    """Shared plumbing for repositories bound to a coordinator-owned session."""

    def __init__(self, session: Session):
        self.session = session

    def _paginate(
        self,
        query: Select,
        pagination: PaginationParams | None,
        convert: Callable[[Any], ResponseSchemaType],
        max_page_size: int = 100,
    ) -> PaginatedResponse[ResponseSchemaType]:
        """Run ``query`` as one page and wrap the converted rows."""
        pagination = pagination or PaginationParams()
        pagination.validate_params(max_page_size)

        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        total = self.session.execute(count_query).scalar() or 0

        rows = (
            self.session.execute(query.offset(pagination.offset).limit(pagination.page_size))
            .scalars()
            .all()
        )

        return PaginatedResponse(
            items=[convert(row) for row in rows],
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=math.ceil(total / pagination.page_size) if total else 0,
            has_next=pagination.page * pagination.page_size < total,
            has_previous=pagination.page > 1,
        )

    @staticmethod
    def _scope_to_requester(requester: Requester, user_id: str | None) -> str | None:
        """
        Resolve whose records a listing may show.

        Members only ever see their own records; staff see everyone's unless
        they narrow to one user.

        Raises:
            ForbiddenError: If a member asks for another user's records
        """
        if requester.is_staff:
            return user_id
        if user_id is not None and user_id != requester.user_id:
            raise ForbiddenError("Members may only list their own records")
        return requester.user_id

    @staticmethod
    def _require_access(requester: Requester, owner_id: str, what: str) -> None:
        if not requester.can_access(owner_id):
            raise ForbiddenError(f"Not allowed to access {what}")

    @staticmethod
    def _new_id(prefix: str) -> str:
        """Generate a prefixed record ID, e.g. ``loan_9f2c4e1a7b3d``."""
        return f"{prefix}_{uuid.uuid4().hex[:12]}"
