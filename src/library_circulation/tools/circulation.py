"""
Loan tools for the library circulation server.

1. borrow_book: open a loan, consuming the caller's reservation if present
2. mark_borrowed: staff hand-over, ``requested`` -> ``borrowed``
3. return_book: close a loan, fining late returns
4. cancel_loan: retract a loan still in ``requested``
5. get_loan / list_loans: read loans visible to the caller
"""

from typing import Any

from pydantic import Field

from ..models.circulation import LoanStatus
from ..observability import trace_tool
from ..service import CirculationService
from .common import (
    ListInput,
    RequesterInput,
    page_data,
    resolve_target_user,
    run_tool,
    success_response,
    tool_definition,
)


class BorrowBookInput(RequesterInput):
    """Input schema for the borrow_book tool."""

    book_id: str = Field(..., description="ID of the book to borrow", min_length=1)

    user_id: str | None = Field(
        default=None,
        description="Borrower; defaults to the requester. Only staff may borrow for others.",
    )


class LoanIdInput(RequesterInput):
    """Input schema for tools addressing one loan."""

    loan_id: str = Field(
        ...,
        description="ID of the loan",
        pattern=r"^loan_[a-zA-Z0-9]{6,}$",
        examples=["loan_9f2c4e1a7b3d"],
    )


class ListLoansInput(ListInput):
    """Input schema for the list_loans tool."""

    user_id: str | None = Field(default=None, description="Only loans of this user")
    book_id: str | None = Field(default=None, description="Only loans of this book")
    status: LoanStatus | None = Field(default=None, description="Only loans in this stored status")

    overdue: bool | None = Field(
        default=None,
        description="True for open loans past their due date, false for open loans within it",
    )


def build_circulation_tools(service: CirculationService) -> list[dict[str, Any]]:
    """Create the loan tools bound to ``service``."""

    @trace_tool("borrow_book")
    async def borrow_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: BorrowBookInput) -> dict[str, Any]:
            user_id = resolve_target_user(params.requester, params.user_id)
            loan = service.borrow_book(user_id, params.book_id)
            return success_response(
                f"Loan {loan.id} opened for book '{loan.book_id}' (status: {loan.status.value})",
                {"loan": loan.model_dump(mode="json")},
            )

        return await run_tool("borrow_book", arguments, BorrowBookInput, execute)

    @trace_tool("mark_borrowed")
    async def mark_borrowed_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: LoanIdInput) -> dict[str, Any]:
            loan = service.mark_borrowed(params.loan_id, params.requester)
            return success_response(
                f"Loan {loan.id} handed over", {"loan": loan.model_dump(mode="json")}
            )

        return await run_tool("mark_borrowed", arguments, LoanIdInput, execute)

    @trace_tool("return_book")
    async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: LoanIdInput) -> dict[str, Any]:
            result = service.return_book(params.loan_id, params.requester)
            message = f"Loan {result.loan.id} returned"
            if result.fine is not None:
                message += (
                    f" {result.overdue_days} day(s) late; fine {result.fine.id} "
                    f"of {result.fine.amount} issued"
                )
            else:
                message += " on time"
            return success_response(message, result.model_dump(mode="json"))

        return await run_tool("return_book", arguments, LoanIdInput, execute)

    @trace_tool("cancel_loan")
    async def cancel_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: LoanIdInput) -> dict[str, Any]:
            loan = service.cancel_loan(params.loan_id, params.requester)
            return success_response(
                f"Loan {loan.id} cancelled", {"loan": loan.model_dump(mode="json")}
            )

        return await run_tool("cancel_loan", arguments, LoanIdInput, execute)

    @trace_tool("get_loan")
    async def get_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: LoanIdInput) -> dict[str, Any]:
            loan = service.get_loan(params.loan_id, params.requester)
            return success_response(
                f"Loan {loan.id} is {loan.status.value}", {"loan": loan.model_dump(mode="json")}
            )

        return await run_tool("get_loan", arguments, LoanIdInput, execute)

    @trace_tool("list_loans")
    async def list_loans_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: ListLoansInput) -> dict[str, Any]:
            page = service.list_loans(
                params.requester,
                user_id=params.user_id,
                book_id=params.book_id,
                status=params.status,
                overdue=params.overdue,
                sort_by=params.sort_by,
                sort_order=params.sort_order,
                page=params.page,
                page_size=params.page_size,
            )
            return success_response(
                f"Found {page.total} loan(s), showing page {page.page}", page_data(page)
            )

        return await run_tool("list_loans", arguments, ListLoansInput, execute)

    return [
        tool_definition(
            "borrow_book",
            "Borrow a book. Uses the borrower's own reservation for the book when one "
            "exists, otherwise takes an available copy. Fails when the borrower already "
            "holds the book, is at the library's borrowing limit, or no copy is free.",
            BorrowBookInput,
            borrow_book_handler,
        ),
        tool_definition(
            "mark_borrowed",
            "Staff only. Record that a requested loan was handed over to the borrower.",
            LoanIdInput,
            mark_borrowed_handler,
        ),
        tool_definition(
            "return_book",
            "Return a borrowed book. The copy goes back on the shelf; a late return "
            "creates one fine of overdue days times the library's daily rate.",
            LoanIdInput,
            return_book_handler,
        ),
        tool_definition(
            "cancel_loan",
            "Cancel a loan that has not been handed over yet and release its copy.",
            LoanIdInput,
            cancel_loan_handler,
        ),
        tool_definition("get_loan", "Get one loan by ID.", LoanIdInput, get_loan_handler),
        tool_definition(
            "list_loans",
            "List loans. Filter open loans by due date with overdue=true or false; "
            "status only matches stored phases (requested, borrowed, returned). "
            "Sort by borrow_date, return_date or status (default borrow_date desc).",
            ListLoansInput,
            list_loans_handler,
        ),
    ]
