"""
Membership lookups and the user's denormalized book lists.

The lists on ``users`` duplicate what loans, reservations and wishlist rows
already say. They are only ever changed here, in the same transaction as the
row they mirror, and always by assigning a fresh list.
"""

from sqlalchemy import select

from ..models.book import Book as BookModel
from ..models.user import Role, User as UserModel
from .repository import BaseRepository, InvalidArgumentError, NotFoundError
from .schema import Book as BookDB
from .schema import User as UserDB

BORROWED = "borrowed_book_ids"
RESERVED = "reserved_book_ids"
WISHLIST = "wishlist_book_ids"


class UserRepository(BaseRepository):
    """User and book lookups shared by the circulation repositories."""

    def get_user(self, user_id: str, lock: bool = False) -> UserDB:
        query = select(UserDB).where(UserDB.id == user_id)
        if lock:
            self.session.flush()
            query = query.with_for_update().execution_options(populate_existing=True)
        user = self.session.execute(query).scalar_one_or_none()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_active_user(self, user_id: str, lock: bool = True) -> UserDB:
        """
        Load a user that may take part in circulation.

        Inactive accounts are reported as not found, the same as missing ones.
        """
        user = self.get_user(user_id, lock=lock)
        if not user.is_active:
            raise NotFoundError(f"User {user_id} not found or inactive")
        return user

    def get_book(self, book_id: str, lock: bool = False) -> BookDB:
        query = select(BookDB).where(BookDB.id == book_id)
        if lock:
            self.session.flush()
            query = query.with_for_update().execution_options(populate_existing=True)
        book = self.session.execute(query).scalar_one_or_none()
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    def get_user_and_book(
        self, user_id: str, book_id: str, lock_book: bool = True
    ) -> tuple[UserDB, BookDB]:
        """
        Load an active user and a book of the same library.

        Raises:
            NotFoundError: If either is missing or the user is inactive
            InvalidArgumentError: If they belong to different libraries
        """
        user = self.get_active_user(user_id)
        book = self.get_book(book_id, lock=lock_book)
        if user.library_id != book.library_id:
            raise InvalidArgumentError(
                f"User {user_id} and book {book_id} belong to different libraries"
            )
        return user, book

    # Membership lists

    @staticmethod
    def has_book(user: UserDB, list_name: str, book_id: str) -> bool:
        return book_id in (getattr(user, list_name) or [])

    @staticmethod
    def add_book(user: UserDB, list_name: str, book_id: str) -> None:
        current = list(getattr(user, list_name) or [])
        if book_id not in current:
            setattr(user, list_name, [*current, book_id])

    @staticmethod
    def remove_book(user: UserDB, list_name: str, book_id: str) -> None:
        current = list(getattr(user, list_name) or [])
        setattr(user, list_name, [existing for existing in current if existing != book_id])

    # Conversion

    @staticmethod
    def user_to_model(user: UserDB) -> UserModel:
        return UserModel(
            id=user.id,
            library_id=user.library_id,
            name=user.name,
            email=user.email,
            role=Role(user.role.value),
            is_active=user.is_active,
            borrowed_book_ids=list(user.borrowed_book_ids or []),
            reserved_book_ids=list(user.reserved_book_ids or []),
            wishlist_book_ids=list(user.wishlist_book_ids or []),
            created_at=user.created_at,
            updated_at=user.updated_at,
        )

    @staticmethod
    def book_to_model(book: BookDB) -> BookModel:
        return BookModel(
            id=book.id,
            library_id=book.library_id,
            title=book.title,
            isbn=book.isbn,
            description=book.description,
            total_copies=book.total_copies,
            available_copies=book.available_copies,
            reserved_copies=book.reserved_copies,
            created_at=book.created_at,
            updated_at=book.updated_at,
        )
