"""
Database package for the library circulation server.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Engine and session management (session.py)
- The consistency coordinator that runs every unit of work (coordinator.py)
- The copy ledger, the only writer of book copy counters (copy_ledger.py)
- Repositories for policies, reservations, loans, fines, wishlists and reviews
"""

from .circulation_repository import CirculationRepository
from .coordinator import ConsistencyCoordinator
from .copy_ledger import CopyLedger
from .fine_repository import FineRepository
from .policy_repository import PolicyRepository
from .repository import (
    BaseRepository,
    ConflictError,
    DuplicateError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    InvariantViolationError,
    LimitExceededError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    RepositoryException,
    SortSpec,
    TransactionTimeoutError,
)
from .reservation_repository import ReservationRepository
from .review_repository import ReviewRepository
from .schema import (
    Base,
    Book,
    Fine,
    Library,
    Loan,
    LoanStatusEnum,
    Policy,
    Reservation,
    Review,
    RoleEnum,
    User,
    WishlistEntry,
)
from .session import DatabaseManager
from .user_repository import UserRepository
from .wishlist_repository import WishlistRepository

__all__ = [
    "Base",
    "BaseRepository",
    "Book",
    "CirculationRepository",
    "ConflictError",
    "ConsistencyCoordinator",
    "CopyLedger",
    "DatabaseManager",
    "DuplicateError",
    "Fine",
    "FineRepository",
    "ForbiddenError",
    "InvalidArgumentError",
    "InvalidStateError",
    "InvariantViolationError",
    "Library",
    "LimitExceededError",
    "Loan",
    "LoanStatusEnum",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "Policy",
    "PolicyRepository",
    "RepositoryException",
    "Reservation",
    "ReservationRepository",
    "Review",
    "ReviewRepository",
    "RoleEnum",
    "SortSpec",
    "TransactionTimeoutError",
    "User",
    "UserRepository",
    "WishlistEntry",
    "WishlistRepository",
]
