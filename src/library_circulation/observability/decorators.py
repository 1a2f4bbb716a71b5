"""Decorators for tracing tool calls."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire

MAX_ATTRIBUTE_LENGTH = 200


def trace_tool(tool_name: str):
    """
    Decorator to trace tool execution.

    The wrapped handler takes a single ``arguments`` dict and returns a tool
    response dict; error responses are recorded with their category.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(arguments: dict[str, Any], *args, **kwargs):
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize_tool(tool_name),
            ) as span:
                start_time = datetime.now()
                _add_attributes(span, "input", arguments or {})

                try:
                    result = await func(arguments, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("tool.success", False)
                    span.set_attribute("tool.error", str(e))
                    raise

                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                _add_tool_result_metrics(span, result)
                return result

        return wrapper

    return decorator


def _categorize_tool(tool_name: str) -> str:
    if "report" in tool_name:
        return "reports"
    if "reservation" in tool_name or "reserve" in tool_name:
        return "reservations"
    if "fine" in tool_name:
        return "fines"
    if "wishlist" in tool_name or "review" in tool_name:
        return "reader"
    if "loan" in tool_name or "borrow" in tool_name or "return" in tool_name:
        return "circulation"
    return "general"


def _add_attributes(span, prefix: str, data: dict):
    for key, value in data.items():
        if isinstance(value, str):
            span.set_attribute(f"{prefix}.{key}", value[:MAX_ATTRIBUTE_LENGTH])
        elif isinstance(value, int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)


def _add_tool_result_metrics(span, result: Any):
    if not isinstance(result, dict):
        return
    if result.get("isError"):
        span.set_attribute("tool.success", False)
        error = result.get("error") or {}
        span.set_attribute("tool.error_category", error.get("category", "unknown"))
        span.set_attribute("tool.retryable", bool(error.get("retryable", False)))
        return
    span.set_attribute("tool.success", True)
    data = result.get("data") or {}
    if isinstance(data.get("items"), list):
        span.set_attribute("result.item_count", len(data["items"]))
