"""Fine tools: payment and lookups."""

from typing import Any

from pydantic import Field

from ..observability import trace_tool
from ..service import CirculationService
from .common import (
    ListInput,
    RequesterInput,
    page_data,
    run_tool,
    success_response,
    tool_definition,
)


class FineIdInput(RequesterInput):
    fine_id: str = Field(..., description="ID of the fine", pattern=r"^fine_[a-zA-Z0-9]{6,}$")


class ListFinesInput(ListInput):
    """Input schema for the list_fines tool. Members default to unpaid fines."""

    user_id: str | None = None
    book_id: str | None = None
    is_paid: bool | None = None


def build_fine_tools(service: CirculationService) -> list[dict[str, Any]]:
    @trace_tool("pay_fine")
    async def pay_fine_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: FineIdInput) -> dict[str, Any]:
            fine = service.pay_fine(params.fine_id, params.requester)
            return success_response(
                f"Fine {fine.id} of {fine.amount} marked as paid",
                {"fine": fine.model_dump(mode="json")},
            )

        return await run_tool("pay_fine", arguments, FineIdInput, execute)

    @trace_tool("get_fine")
    async def get_fine_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: FineIdInput) -> dict[str, Any]:
            fine = service.get_fine(params.fine_id, params.requester)
            state = "paid" if fine.is_paid else "unpaid"
            return success_response(
                f"Fine {fine.id}: {fine.amount} ({state})", {"fine": fine.model_dump(mode="json")}
            )

        return await run_tool("get_fine", arguments, FineIdInput, execute)

    @trace_tool("list_fines")
    async def list_fines_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: ListFinesInput) -> dict[str, Any]:
            page = service.list_fines(
                params.requester,
                user_id=params.user_id,
                book_id=params.book_id,
                is_paid=params.is_paid,
                sort_by=params.sort_by,
                sort_order=params.sort_order,
                page=params.page,
                page_size=params.page_size,
            )
            return success_response(f"Found {page.total} fine(s)", page_data(page))

        return await run_tool("list_fines", arguments, ListFinesInput, execute)

    return [
        tool_definition(
            "pay_fine",
            "Staff only. Mark a fine as paid. A paid fine cannot be paid again.",
            FineIdInput,
            pay_fine_handler,
        ),
        tool_definition("get_fine", "Get one fine by ID.", FineIdInput, get_fine_handler),
        tool_definition(
            "list_fines",
            "List fines. Sort by fine_date, amount, is_paid or updated_at (default fine_date asc).",
            ListFinesInput,
            list_fines_handler,
        ),
    ]
