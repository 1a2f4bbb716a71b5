"""
Shared plumbing for the circulation tools.

Every tool handler follows the same lifecycle:

1. INPUT: validate the raw ``arguments`` dict against a pydantic schema
2. IDENTITY: build the ``Requester`` from the already-verified caller claim
3. EXECUTION: run the blocking service call in a worker thread
4. RESPONSE: return text content plus structured ``data``, or an error
   payload carrying the failure's stable category and status code

Handlers never raise; every failure becomes an ``isError`` response.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..database.repository import ForbiddenError, InvalidArgumentError, RepositoryException
from ..models.user import Requester, Role

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

T = TypeVar("T", bound=BaseModel)


class RequesterInput(BaseModel):
    """Caller identity carried by every tool call."""

    requester_id: str = Field(
        ...,
        description="ID of the authenticated user making the request",
        min_length=1,
        examples=["user_3f9a1c2b7d4e"],
    )

    requester_role: Role = Field(
        default=Role.MEMBER,
        description="Verified role of the caller: member, librarian or admin",
    )

    model_config = ConfigDict(extra="forbid")

    @property
    def requester(self) -> Requester:
        return Requester(user_id=self.requester_id, role=self.requester_role)


class ListInput(RequesterInput):
    """Sorting and paging shared by the listing tools."""

    sort_by: str | None = Field(default=None, description="Whitelisted sort key")
    sort_order: str | None = Field(default=None, description="asc or desc")
    page: int | None = Field(default=None, description="1-based page number")
    page_size: int | None = Field(default=None, description="Items per page")


def success_response(message: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "content": [{"type": "text", "text": message}],
        "data": data,
    }


def error_response(error: RepositoryException) -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": str(error)}],
        "error": error.to_dict(),
    }


def internal_error_response(tool_name: str) -> dict[str, Any]:
    return {
        "isError": True,
        "content": [{"type": "text", "text": f"{tool_name} failed unexpectedly"}],
        "error": {
            "category": RepositoryException.category,
            "status_code": RepositoryException.status_code,
            "retryable": False,
            "message": f"{tool_name} failed unexpectedly",
        },
    }


async def run_tool(
    tool_name: str,
    arguments: dict[str, Any],
    input_schema: type[T],
    execute: Callable[[T], dict[str, Any]],
) -> dict[str, Any]:
    """
    Validate ``arguments`` and run ``execute`` off the event loop.

    Args:
        tool_name: Used in logs and error messages
        arguments: Raw arguments from the tools/call request
        input_schema: Pydantic schema for the arguments
        execute: Blocking function turning validated input into a response

    Returns:
        The response from ``execute`` or an error response
    """
    try:
        params = input_schema.model_validate(arguments or {})
    except ValidationError as e:
        logger.warning("Invalid %s parameters: %s", tool_name, e)
        return error_response(InvalidArgumentError(f"Invalid {tool_name} parameters: {e}"))

    try:
        return await asyncio.to_thread(execute, params)
    except RepositoryException as e:
        logger.info("%s rejected (%s): %s", tool_name, e.category, e)
        return error_response(e)
    except Exception:
        logger.exception("Unexpected error in %s tool", tool_name)
        return internal_error_response(tool_name)


def page_data(page) -> dict[str, Any]:
    """Serialize a ``PaginatedResponse`` for the ``data`` field."""
    return page.model_dump(mode="json")


def tool_definition(
    name: str, description: str, input_schema: type[BaseModel], handler: ToolHandler
) -> dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "inputSchema": input_schema.model_json_schema(),
        "handler": handler,
    }


def resolve_target_user(requester: Requester, user_id: str | None) -> str:
    """Members act for themselves; staff may act on behalf of any user."""
    target = user_id or requester.user_id
    if not requester.can_access(target):
        raise ForbiddenError("Members may only act on their own account")
    return target
