"""Wishlist repository: entries plus the user's ``wishlist_book_ids`` list."""

from datetime import datetime

from sqlalchemy import select

from ..models.reader import WishlistEntry as WishlistEntryModel
from .repository import BaseRepository, ConflictError, NotFoundError
from .schema import WishlistEntry as WishlistEntryDB
from .user_repository import WISHLIST, UserRepository


class WishlistRepository(BaseRepository):
    def __init__(self, session):
        super().__init__(session)
        self.users = UserRepository(session)

    def add(self, user_id: str, book_id: str, now: datetime | None = None) -> WishlistEntryModel:
        """
        Add a book to a user's wishlist.

        Raises:
            NotFoundError: If user or book is missing
            ConflictError: If the book is already on the wishlist
        """
        user = self.users.get_active_user(user_id)
        self.users.get_book(book_id)

        if self._find(user_id, book_id) is not None:
            raise ConflictError(f"Book {book_id} is already on the wishlist of {user_id}")

        entry = WishlistEntryDB(
            id=self._new_id("wishlist"),
            user_id=user_id,
            book_id=book_id,
            added_at=now or datetime.now(),
        )
        self.session.add(entry)
        self.users.add_book(user, WISHLIST, book_id)
        self.session.flush()
        return WishlistEntryModel.model_validate(entry, from_attributes=True)

    def remove(self, user_id: str, book_id: str) -> None:
        user = self.users.get_user(user_id, lock=True)
        entry = self._find(user_id, book_id)
        if entry is None:
            raise NotFoundError(f"Book {book_id} is not on the wishlist of {user_id}")
        self.session.delete(entry)
        self.users.remove_book(user, WISHLIST, book_id)
        self.session.flush()

    def list_for_user(self, user_id: str) -> list[WishlistEntryModel]:
        self.users.get_user(user_id)
        entries = (
            self.session.execute(
                select(WishlistEntryDB)
                .where(WishlistEntryDB.user_id == user_id)
                .order_by(WishlistEntryDB.added_at, WishlistEntryDB.id)
            )
            .scalars()
            .all()
        )
        return [WishlistEntryModel.model_validate(entry, from_attributes=True) for entry in entries]

    def _find(self, user_id: str, book_id: str) -> WishlistEntryDB | None:
        return self.session.execute(
            select(WishlistEntryDB).where(
                WishlistEntryDB.user_id == user_id,
                WishlistEntryDB.book_id == book_id,
            )
        ).scalar_one_or_none()
