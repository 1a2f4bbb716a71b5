"""Tests for wishlists, reviews and the lookups the tools expose."""

import pytest

from library_circulation.database.repository import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from library_circulation.models import Role


class TestWishlist:
    def test_add_and_list(self, library, service, user_lists):
        entry = service.add_to_wishlist("user_a", "book_main")
        service.add_to_wishlist("user_a", "book_extra_1")

        assert entry.id.startswith("wishlist_")
        assert [e.book_id for e in service.list_wishlist("user_a")] == ["book_main", "book_extra_1"]
        assert user_lists("user_a")[2] == ["book_main", "book_extra_1"]

    def test_duplicate_conflicts(self, library, service):
        service.add_to_wishlist("user_a", "book_main")
        with pytest.raises(ConflictError):
            service.add_to_wishlist("user_a", "book_main")

    def test_remove(self, library, service, user_lists):
        service.add_to_wishlist("user_a", "book_main")
        service.remove_from_wishlist("user_a", "book_main")

        assert service.list_wishlist("user_a") == []
        assert user_lists("user_a")[2] == []

    def test_remove_missing_entry(self, library, service):
        with pytest.raises(NotFoundError):
            service.remove_from_wishlist("user_a", "book_main")

    def test_unknown_book(self, library, service):
        with pytest.raises(NotFoundError):
            service.add_to_wishlist("user_a", "book_missing")

    def test_wishlist_does_not_touch_counters(self, library, service, book_counters):
        service.add_to_wishlist("user_a", "book_single")
        assert book_counters("book_single") == (1, 0, 1)


class TestReviews:
    def test_create_and_list(self, library, service):
        review = service.create_review("user_a", "book_main", 5, "Loved it")
        service.create_review("user_b", "book_main", 3)

        reviews = service.list_reviews_for_book("book_main")

        assert review.id.startswith("review_")
        assert {r.user_id for r in reviews} == {"user_a", "user_b"}

    @pytest.mark.parametrize("rating", [0, 6, -1])
    def test_rating_out_of_range(self, library, service, rating):
        with pytest.raises(InvalidArgumentError):
            service.create_review("user_a", "book_main", rating)

    def test_one_review_per_book(self, library, service):
        service.create_review("user_a", "book_main", 4)
        with pytest.raises(ConflictError):
            service.create_review("user_a", "book_main", 2)

    def test_author_updates(self, library, service, member_a):
        review = service.create_review("user_a", "book_main", 2, "Slow start")

        updated = service.update_review(review.id, member_a, rating=4)

        assert updated.rating == 4
        assert updated.comment == "Slow start"

    def test_only_author_updates(self, library, service, member_b, librarian):
        review = service.create_review("user_a", "book_main", 2)

        with pytest.raises(ForbiddenError):
            service.update_review(review.id, member_b, rating=5)
        with pytest.raises(ForbiddenError):
            service.update_review(review.id, librarian, rating=5)

    def test_update_validates_rating(self, library, service, member_a):
        review = service.create_review("user_a", "book_main", 2)
        with pytest.raises(InvalidArgumentError):
            service.update_review(review.id, member_a, rating=9)

    def test_delete_by_author_or_staff(self, library, service, member_a, member_b, librarian):
        own = service.create_review("user_a", "book_main", 4)
        other = service.create_review("user_b", "book_main", 1)

        with pytest.raises(ForbiddenError):
            service.delete_review(other.id, member_a)

        service.delete_review(own.id, member_a)
        service.delete_review(other.id, librarian)
        assert service.list_reviews_for_book("book_main") == []

    def test_reviews_of_unknown_book(self, library, service):
        with pytest.raises(NotFoundError):
            service.list_reviews_for_book("book_missing")


class TestLookups:
    def test_policy(self, library, service):
        policy = service.get_policy("library_central")

        assert policy.max_borrow_days == 14
        assert policy.max_books_per_user == 4
        assert policy.reservation_expiry_days == 3
        assert not policy.expiry_fallback_applied

    def test_missing_policy(self, library, service):
        with pytest.raises(NotFoundError):
            service.get_policy("library_nowhere")

    def test_book_and_user(self, library, service):
        service.borrow_book("user_a", "book_main")

        book = service.get_book("book_main")
        user = service.get_user("user_librarian")

        assert book.borrowed_copies == 1
        assert user.role == Role.LIBRARIAN.value
