"""Reader activity tools: wishlist, reviews and the library policy lookup."""

from typing import Any

from pydantic import Field

from ..observability import trace_tool
from ..service import CirculationService
from .common import RequesterInput, run_tool, success_response, tool_definition


class WishlistBookInput(RequesterInput):
    book_id: str = Field(..., min_length=1)


class CreateReviewInput(RequesterInput):
    book_id: str = Field(..., min_length=1)
    # 1-5 is checked by the review repository
    rating: int = Field(..., description="Star rating, 1 to 5")
    comment: str | None = Field(default=None, max_length=2000)


class UpdateReviewInput(RequesterInput):
    review_id: str = Field(..., pattern=r"^review_[a-zA-Z0-9]{6,}$")
    rating: int | None = None
    comment: str | None = Field(default=None, max_length=2000)


class ReviewIdInput(RequesterInput):
    review_id: str = Field(..., pattern=r"^review_[a-zA-Z0-9]{6,}$")


class BookReviewsInput(RequesterInput):
    book_id: str = Field(..., min_length=1)


class PolicyInput(RequesterInput):
    library_id: str = Field(..., min_length=1)


def build_reader_tools(service: CirculationService) -> list[dict[str, Any]]:
    @trace_tool("add_to_wishlist")
    async def add_to_wishlist_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: WishlistBookInput) -> dict[str, Any]:
            entry = service.add_to_wishlist(params.requester_id, params.book_id)
            return success_response(
                f"Book '{entry.book_id}' added to wishlist",
                {"entry": entry.model_dump(mode="json")},
            )

        return await run_tool("add_to_wishlist", arguments, WishlistBookInput, execute)

    @trace_tool("remove_from_wishlist")
    async def remove_from_wishlist_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: WishlistBookInput) -> dict[str, Any]:
            service.remove_from_wishlist(params.requester_id, params.book_id)
            return success_response(
                f"Book '{params.book_id}' removed from wishlist", {"book_id": params.book_id}
            )

        return await run_tool("remove_from_wishlist", arguments, WishlistBookInput, execute)

    @trace_tool("list_wishlist")
    async def list_wishlist_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: RequesterInput) -> dict[str, Any]:
            entries = service.list_wishlist(params.requester_id)
            return success_response(
                f"{len(entries)} book(s) on wishlist",
                {"items": [entry.model_dump(mode="json") for entry in entries]},
            )

        return await run_tool("list_wishlist", arguments, RequesterInput, execute)

    @trace_tool("create_review")
    async def create_review_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: CreateReviewInput) -> dict[str, Any]:
            review = service.create_review(
                params.requester_id, params.book_id, params.rating, params.comment
            )
            return success_response(
                f"Review {review.id} created ({review.rating}/5)",
                {"review": review.model_dump(mode="json")},
            )

        return await run_tool("create_review", arguments, CreateReviewInput, execute)

    @trace_tool("update_review")
    async def update_review_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: UpdateReviewInput) -> dict[str, Any]:
            review = service.update_review(
                params.review_id, params.requester, params.rating, params.comment
            )
            return success_response(
                f"Review {review.id} updated", {"review": review.model_dump(mode="json")}
            )

        return await run_tool("update_review", arguments, UpdateReviewInput, execute)

    @trace_tool("delete_review")
    async def delete_review_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: ReviewIdInput) -> dict[str, Any]:
            service.delete_review(params.review_id, params.requester)
            return success_response(
                f"Review {params.review_id} deleted", {"review_id": params.review_id}
            )

        return await run_tool("delete_review", arguments, ReviewIdInput, execute)

    @trace_tool("list_reviews")
    async def list_reviews_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: BookReviewsInput) -> dict[str, Any]:
            reviews = service.list_reviews_for_book(params.book_id)
            return success_response(
                f"{len(reviews)} review(s) for book '{params.book_id}'",
                {"items": [review.model_dump(mode="json") for review in reviews]},
            )

        return await run_tool("list_reviews", arguments, BookReviewsInput, execute)

    @trace_tool("get_policy")
    async def get_policy_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: PolicyInput) -> dict[str, Any]:
            policy = service.get_policy(params.library_id)
            return success_response(
                f"Loans last {policy.max_borrow_days} day(s), "
                f"{policy.max_books_per_user} book(s) per user, "
                f"fine {policy.fine_per_day} per day",
                {"policy": policy.model_dump(mode="json")},
            )

        return await run_tool("get_policy", arguments, PolicyInput, execute)

    return [
        tool_definition(
            "add_to_wishlist",
            "Add a book to the requester's wishlist.",
            WishlistBookInput,
            add_to_wishlist_handler,
        ),
        tool_definition(
            "remove_from_wishlist",
            "Remove a book from the requester's wishlist.",
            WishlistBookInput,
            remove_from_wishlist_handler,
        ),
        tool_definition(
            "list_wishlist", "List the requester's wishlist.", RequesterInput, list_wishlist_handler
        ),
        tool_definition(
            "create_review",
            "Review a book with a 1-5 rating. One review per user and book.",
            CreateReviewInput,
            create_review_handler,
        ),
        tool_definition(
            "update_review",
            "Change the rating or comment of the requester's own review.",
            UpdateReviewInput,
            update_review_handler,
        ),
        tool_definition(
            "delete_review",
            "Delete a review. Authors may delete their own; staff may delete any.",
            ReviewIdInput,
            delete_review_handler,
        ),
        tool_definition(
            "list_reviews", "List the reviews of a book.", BookReviewsInput, list_reviews_handler
        ),
        tool_definition(
            "get_policy",
            "Show a library's loan period, borrowing limit, daily fine and reservation period.",
            PolicyInput,
            get_policy_handler,
        ),
    ]
