"""
Review repository.

One review per (user, book). Members edit and delete only their own reviews;
staff may delete any review but never edit one.
"""

import logging
from datetime import datetime

from sqlalchemy import select

from ..models.reader import Review as ReviewModel
from ..models.user import Requester
from .repository import (
    BaseRepository,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from .schema import Review as ReviewDB
from .user_repository import UserRepository

logger = logging.getLogger(__name__)


def validate_rating(rating: int) -> int:
    if not 1 <= rating <= 5:
        raise InvalidArgumentError(f"Rating must be between 1 and 5, got {rating}")
    return rating


class ReviewRepository(BaseRepository):
    def __init__(self, session):
        super().__init__(session)
        self.users = UserRepository(session)

    def create(
        self, user_id: str, book_id: str, rating: int, comment: str | None = None
    ) -> ReviewModel:
        """
        Review a book.

        Raises:
            InvalidArgumentError: If the rating is outside 1-5
            NotFoundError: If user or book is missing
            ConflictError: If the user already reviewed the book
        """
        validate_rating(rating)
        self.users.get_active_user(user_id, lock=False)
        self.users.get_book(book_id)

        existing = self.session.execute(
            select(ReviewDB).where(ReviewDB.user_id == user_id, ReviewDB.book_id == book_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise ConflictError(f"User {user_id} already reviewed book {book_id}")

        review = ReviewDB(
            id=self._new_id("review"),
            user_id=user_id,
            book_id=book_id,
            rating=rating,
            comment=comment,
            reviewed_at=datetime.now(),
        )
        self.session.add(review)
        self.session.flush()
        logger.info("Review %s created: user=%s book=%s", review.id, user_id, book_id)
        return ReviewModel.model_validate(review, from_attributes=True)

    def update(
        self,
        review_id: str,
        requester: Requester,
        rating: int | None = None,
        comment: str | None = None,
    ) -> ReviewModel:
        review = self._get(review_id)
        if review.user_id != requester.user_id:
            raise ForbiddenError(f"Only the author can edit review {review_id}")

        if rating is not None:
            review.rating = validate_rating(rating)
        if comment is not None:
            review.comment = comment
        review.reviewed_at = datetime.now()
        self.session.flush()
        return ReviewModel.model_validate(review, from_attributes=True)

    def delete(self, review_id: str, requester: Requester) -> None:
        review = self._get(review_id)
        self._require_access(requester, review.user_id, f"review {review_id}")
        self.session.delete(review)
        self.session.flush()
        logger.info("Review %s deleted by %s", review_id, requester.user_id)

    def list_for_book(self, book_id: str) -> list[ReviewModel]:
        self.users.get_book(book_id)
        reviews = (
            self.session.execute(
                select(ReviewDB)
                .where(ReviewDB.book_id == book_id)
                .order_by(ReviewDB.reviewed_at.desc(), ReviewDB.id)
            )
            .scalars()
            .all()
        )
        return [ReviewModel.model_validate(review, from_attributes=True) for review in reviews]

    def _get(self, review_id: str) -> ReviewDB:
        review = self.session.execute(
            select(ReviewDB).where(ReviewDB.id == review_id)
        ).scalar_one_or_none()
        if review is None:
            raise NotFoundError(f"Review {review_id} not found")
        return review
