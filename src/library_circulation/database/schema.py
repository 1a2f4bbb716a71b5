"""
SQLAlchemy database schema for the library circulation server.

Tables fall into three groups:

1. Catalog and membership (libraries, policies, users, books): created by
   catalog management, read by circulation. Books own the three copy counters
   and users own the denormalized borrowed/reserved/wishlist lists.
2. Circulation records (loans, reservations, fines): created and mutated only
   inside coordinator transactions.
3. Reader activity (wishlist entries, reviews).

Copy-counter invariants are enforced twice: by the copy ledger before every
write, and by CHECK constraints as the last line in the store.
"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

Base = declarative_base()


class RoleEnum(str, enum.Enum):
    """Database enum for user roles."""

    ADMIN = "admin"
    LIBRARIAN = "librarian"
    MEMBER = "member"


class LoanStatusEnum(str, enum.Enum):
    """Database enum for loan status."""

    REQUESTED = "requested"
    BORROWED = "borrowed"
    RETURNED = "returned"
    OVERDUE = "overdue"


class Library(Base):
    """Libraries table - the tenant boundary for users, books and policy."""

    __tablename__ = "libraries"

    id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=False)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    policy = relationship("Policy", back_populates="library", uselist=False)
    books = relationship("Book", back_populates="library")
    users = relationship("User", back_populates="library")


class Policy(Base):
    """
    Policies table - one row per library.

    Read-only from the circulation core's perspective. ``reservation_expiry_days``
    is allowed to be misconfigured (<= 0); the policy repository falls back to
    the configured default in that case.
    """

    __tablename__ = "policies"

    id = Column(String(50), primary_key=True)
    library_id = Column(String(50), ForeignKey("libraries.id"), nullable=False, unique=True)
    max_borrow_days = Column(Integer, nullable=False)
    fine_per_day = Column(Numeric(6, 2), nullable=False)
    max_books_per_user = Column(Integer, nullable=False)
    reservation_expiry_days = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    library = relationship("Library", back_populates="policy")

    __table_args__ = (
        CheckConstraint("max_borrow_days > 0", name="check_max_borrow_days_positive"),
        CheckConstraint("fine_per_day >= 0", name="check_fine_per_day_non_negative"),
        CheckConstraint("max_books_per_user > 0", name="check_max_books_positive"),
    )


class User(Base):
    """
    Users table - library members and staff.

    ``borrowed_book_ids``, ``reserved_book_ids`` and ``wishlist_book_ids`` are
    JSON arrays kept in step with the authoritative loan, reservation and
    wishlist rows inside the same transaction. Always assign a new list; JSON
    columns do not track in-place mutation.
    """

    __tablename__ = "users"

    id = Column(String(50), primary_key=True)
    library_id = Column(String(50), ForeignKey("libraries.id"), nullable=False)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(Enum(RoleEnum), nullable=False, default=RoleEnum.MEMBER)
    is_active = Column(Boolean, nullable=False, default=True)
    borrowed_book_ids = Column(JSON, nullable=False, default=list)
    reserved_book_ids = Column(JSON, nullable=False, default=list)
    wishlist_book_ids = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    library = relationship("Library", back_populates="users")
    loans = relationship("Loan", back_populates="user")
    reservations = relationship("Reservation", back_populates="user")

    __table_args__ = (
        Index("idx_user_library", "library_id"),
        Index("idx_user_email", "email"),
    )

    @validates("borrowed_book_ids", "reserved_book_ids", "wishlist_book_ids")
    def validate_book_id_list(self, key, value):
        """Membership lists are sets: duplicates are rejected."""
        if value is not None and len(set(value)) != len(value):
            raise ValueError(f"{key} must not contain duplicates")
        return value


class Book(Base):
    """
    Books table - catalog entries with their copy counters.

    Counters are authoritative fields updated incrementally by the copy ledger,
    never recomputed by scanning loans or reservations.
    """

    __tablename__ = "books"

    id = Column(String(50), primary_key=True)
    library_id = Column(String(50), ForeignKey("libraries.id"), nullable=False)
    title = Column(String(500), nullable=False, index=True)
    isbn = Column(String(13), nullable=True, unique=True)
    description = Column(Text, nullable=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    reserved_copies = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    library = relationship("Library", back_populates="books")
    loans = relationship("Loan", back_populates="book")
    reservations = relationship("Reservation", back_populates="book")

    __table_args__ = (
        Index("idx_book_library", "library_id"),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint("reserved_copies >= 0", name="check_reserved_copies_non_negative"),
        CheckConstraint(
            "available_copies + reserved_copies <= total_copies",
            name="check_copies_within_total",
        ),
    )


class Loan(Base):
    """
    Loans table (borrow transactions).

    Created in ``requested`` by borrow, closed with ``return_date`` and
    ``returned`` on return. Only a ``requested`` loan may be deleted (cancel);
    every other loan is kept as history.
    """

    __tablename__ = "loans"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id"), nullable=False)
    borrow_date = Column(DateTime, nullable=False, default=func.now())
    return_date = Column(DateTime, nullable=True)
    status = Column(Enum(LoanStatusEnum), nullable=False, default=LoanStatusEnum.REQUESTED)

    user = relationship("User", back_populates="loans")
    book = relationship("Book", back_populates="loans")
    fine = relationship("Fine", back_populates="loan", uselist=False)

    __table_args__ = (
        Index("idx_loan_user_status", "user_id", "status"),
        Index("idx_loan_book", "book_id"),
        Index("idx_loan_borrow_date", "borrow_date"),
    )


class Reservation(Base):
    """Reservations table - one active hold per (user, book)."""

    __tablename__ = "reservations"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id"), nullable=False)
    library_id = Column(String(50), ForeignKey("libraries.id"), nullable=False)
    reserved_at = Column(DateTime, nullable=False, default=func.now())
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="reservations")
    book = relationship("Book", back_populates="reservations")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="unique_reservation_user_book"),
        Index("idx_reservation_book", "book_id"),
        Index("idx_reservation_expires_at", "expires_at"),
    )


class Fine(Base):
    """Fines table - at most one fine per loan; ``is_paid`` only moves false -> true."""

    __tablename__ = "fines"

    id = Column(String(50), primary_key=True)
    loan_id = Column(String(50), ForeignKey("loans.id"), nullable=False, unique=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id"), nullable=False)
    library_id = Column(String(50), ForeignKey("libraries.id"), nullable=False)
    amount = Column(Numeric(8, 2), nullable=False)
    reason = Column(Text, nullable=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    fine_date = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loan = relationship("Loan", back_populates="fine")

    __table_args__ = (
        Index("idx_fine_user_paid", "user_id", "is_paid"),
        CheckConstraint("amount >= 0", name="check_fine_amount_non_negative"),
    )


class WishlistEntry(Base):
    """Wishlist entries table - one row per (user, book)."""

    __tablename__ = "wishlist_entries"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id"), nullable=False)
    added_at = Column(DateTime, nullable=False, default=func.now())

    book = relationship("Book")

    __table_args__ = (UniqueConstraint("user_id", "book_id", name="unique_wishlist_user_book"),)


class Review(Base):
    """Reviews table - one review per (user, book)."""

    __tablename__ = "reviews"

    id = Column(String(50), primary_key=True)
    user_id = Column(String(50), ForeignKey("users.id"), nullable=False)
    book_id = Column(String(50), ForeignKey("books.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="unique_review_user_book"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_rating_range"),
    )
