"""Report tools for library staff."""

from typing import Any

from pydantic import Field

from ..observability import trace_tool
from ..service import CirculationService
from .common import RequesterInput, run_tool, success_response, tool_definition


class CirculationReportInput(RequesterInput):
    library_id: str = Field(..., description="Library to report on", min_length=1)


def build_report_tools(service: CirculationService) -> list[dict[str, Any]]:
    @trace_tool("circulation_report")
    async def circulation_report_handler(arguments: dict[str, Any]) -> dict[str, Any]:
        def execute(params: CirculationReportInput) -> dict[str, Any]:
            report = service.circulation_report(params.requester, params.library_id)
            return success_response(
                f"Library {report.library_id}: {report.open_loans} open loan(s), "
                f"{report.overdue_loans} overdue, {report.fines_pending} in unpaid fines",
                {"report": report.model_dump(mode="json")},
            )

        return await run_tool(
            "circulation_report", arguments, CirculationReportInput, execute
        )

    return [
        tool_definition(
            "circulation_report",
            "Staff only. Copy totals, open loans bucketed by days overdue and by "
            "due date, loans opened per day over the last week, the most borrowed "
            "book, and paid and pending fine totals for one library.",
            CirculationReportInput,
            circulation_report_handler,
        ),
    ]
