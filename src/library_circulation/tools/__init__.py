"""
Tool definitions for the library circulation server.

Each builder binds its handlers to one ``CirculationService`` and returns
tool dicts (``name``, ``description``, ``inputSchema``, ``handler``) that the
server registers with FastMCP.
"""

from typing import Any

from ..service import CirculationService
from .circulation import build_circulation_tools
from .fines import build_fine_tools
from .reader import build_reader_tools
from .reports import build_report_tools
from .reservations import build_reservation_tools


def build_all_tools(service: CirculationService) -> list[dict[str, Any]]:
    return [
        *build_reservation_tools(service),
        *build_circulation_tools(service),
        *build_fine_tools(service),
        *build_reader_tools(service),
        *build_report_tools(service),
    ]


__all__ = [
    "build_all_tools",
    "build_circulation_tools",
    "build_fine_tools",
    "build_reader_tools",
    "build_report_tools",
    "build_reservation_tools",
]
