"""Reservation tools: reserve, cancel, inspect, list and sweep holds."""

from typing import Any

from pydantic import Field

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


class ReserveBookInput(RequesterInput):
    """Input schema for the reserve_book tool."""

    book_id: str = Field(..., description="ID of the book to reserve", min_length=1)

    user_id: str | None = Field(
        default=None,
        description="Holder; defaults to the requester. Only staff may reserve for others.",
    )


class ReservationIdInput(RequesterInput):
    reservation_id: str = Field(
        ...,
        description="ID of the reservation",
        pattern=r"^reservation_[a-zA-Z0-9]{6,}$",
    )


class ListReservationsInput(ListInput):
    """Input schema for the list_reservations tool."""

    user_id: str | None = None
    book_id: str | None = None
    expired: bool | None = Field(
        default=None,
        description="True: only holds past expires_at. False: only live holds.",
    )


def build_reservation_tools(service: CirculationService) -> list[dict[str, Any]]:
    """Create the reservation tools bound to ``service``."""

    @trace_tool("reserve_book")
    async def reserve_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: ReserveBookInput) -> dict[str, Any]:
            user_id = resolve_target_user(params.requester, params.user_id)
            reservation = service.reserve_book(user_id, params.book_id)
            return success_response(
                f"Book '{reservation.book_id}' reserved until "
                f"{reservation.expires_at.strftime('%B %d, %Y')}",
                {"reservation": reservation.model_dump(mode="json")},
            )

        return await run_tool("reserve_book", arguments, ReserveBookInput, execute)

    @trace_tool("cancel_reservation")
    async def cancel_reservation_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: ReservationIdInput) -> dict[str, Any]:
            reservation = service.cancel_reservation(params.reservation_id, params.requester)
            return success_response(
                f"Reservation {reservation.id} cancelled",
                {"reservation": reservation.model_dump(mode="json")},
            )

        return await run_tool("cancel_reservation", arguments, ReservationIdInput, execute)

    @trace_tool("get_reservation")
    async def get_reservation_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: ReservationIdInput) -> dict[str, Any]:
            reservation = service.get_reservation(params.reservation_id, params.requester)
            return success_response(
                f"Reservation {reservation.id} expires {reservation.expires_at.isoformat()}",
                {"reservation": reservation.model_dump(mode="json")},
            )

        return await run_tool("get_reservation", arguments, ReservationIdInput, execute)

    @trace_tool("list_reservations")
    async def list_reservations_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: ListReservationsInput) -> dict[str, Any]:
            page = service.list_reservations(
                params.requester,
                user_id=params.user_id,
                book_id=params.book_id,
                expired=params.expired,
                sort_by=params.sort_by,
                sort_order=params.sort_order,
                page=params.page,
                page_size=params.page_size,
            )
            return success_response(f"Found {page.total} reservation(s)", page_data(page))

        return await run_tool("list_reservations", arguments, ListReservationsInput, execute)

    @trace_tool("expire_reservations")
    async def expire_reservations_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: RequesterInput) -> dict[str, Any]:
            swept = service.expire_reservations(params.requester)
            return success_response(
                f"Expired {len(swept)} reservation(s)",
                {"expired": [reservation.model_dump(mode="json") for reservation in swept]},
            )

        return await run_tool("expire_reservations", arguments, RequesterInput, execute)

    return [
        tool_definition(
            "reserve_book",
            "Reserve a book: one available copy is held for the user until the end of "
            "the library's reservation period. One reservation per user and book.",
            ReserveBookInput,
            reserve_book_handler,
        ),
        tool_definition(
            "cancel_reservation",
            "Cancel a reservation and return the held copy to the shelf.",
            ReservationIdInput,
            cancel_reservation_handler,
        ),
        tool_definition(
            "get_reservation",
            "Get one reservation by ID.",
            ReservationIdInput,
            get_reservation_handler,
        ),
        tool_definition(
            "list_reservations",
            "List reservations. Sort by reserved_at or expires_at (default reserved_at asc).",
            ListReservationsInput,
            list_reservations_handler,
        ),
        tool_definition(
            "expire_reservations",
            "Staff only. Cancel every reservation whose expiry has passed.",
            RequesterInput,
            expire_reservations_handler,
        ),
    ]
