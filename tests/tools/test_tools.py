"""
Tests for the MCP tool handlers.

These tests drive the handlers the way FastMCP does, with a raw arguments
dict, and check:
1. Input validation and the invalid_argument error payload
2. Success responses with text content plus structured data
3. Typed failures mapped to stable categories and status codes
"""

from datetime import datetime, timedelta

import pytest

from library_circulation.server import create_server
from library_circulation.tools import build_all_tools


@pytest.fixture
def tools(library, service):
    return {tool["name"]: tool for tool in build_all_tools(service)}


async def call(tools, name, **arguments):
    return await tools[name]["handler"](arguments)


def assert_error(result, category, status_code):
    assert result["isError"] is True
    assert result["error"]["category"] == category
    assert result["error"]["status_code"] == status_code
    assert result["content"][0]["type"] == "text"


class TestToolDefinitions:
    def test_every_tool_has_schema(self, tools):
        assert len(tools) == 23
        for name, tool in tools.items():
            assert tool["description"], name
            assert tool["inputSchema"]["type"] == "object", name
            assert "requester_id" in tool["inputSchema"]["properties"], name

    async def test_server_registers_all_tools(self, test_config, db_manager):
        mcp, manager = create_server(test_config, db_manager)

        registered = await mcp.get_tools()

        assert manager is db_manager
        assert len(registered) == 23
        assert {"borrow_book", "return_book", "reserve_book", "pay_fine"} <= set(registered)


class TestBorrowAndReturnTools:
    async def test_borrow_success(self, tools, book_counters):
        result = await call(tools, "borrow_book", requester_id="user_a", book_id="book_main")

        assert not result.get("isError")
        assert "opened" in result["content"][0]["text"]
        loan = result["data"]["loan"]
        assert loan["user_id"] == "user_a"
        assert loan["status"] == "requested"
        assert book_counters("book_main") == (2, 0, 3)

    async def test_member_cannot_borrow_for_someone_else(self, tools):
        result = await call(
            tools, "borrow_book", requester_id="user_a", book_id="book_main", user_id="user_b"
        )
        assert_error(result, "forbidden", 403)

    async def test_staff_borrows_for_member(self, tools):
        result = await call(
            tools,
            "borrow_book",
            requester_id="user_librarian",
            requester_role="librarian",
            book_id="book_main",
            user_id="user_b",
        )
        assert result["data"]["loan"]["user_id"] == "user_b"

    async def test_no_copy_left(self, tools):
        await call(tools, "borrow_book", requester_id="user_a", book_id="book_single")

        result = await call(tools, "borrow_book", requester_id="user_b", book_id="book_single")

        assert_error(result, "limit_exceeded", 400)

    async def test_missing_required_argument(self, tools):
        result = await call(tools, "borrow_book", requester_id="user_a")
        assert_error(result, "invalid_argument", 400)

    async def test_unknown_argument_rejected(self, tools):
        result = await call(
            tools, "borrow_book", requester_id="user_a", book_id="book_main", isbn="123"
        )
        assert_error(result, "invalid_argument", 400)

    async def test_unknown_book(self, tools):
        result = await call(tools, "borrow_book", requester_id="user_a", book_id="book_missing")
        assert_error(result, "not_found", 404)

    async def test_late_return_reports_fine(self, tools, service):
        loan = service.borrow_book("user_a", "book_main", now=datetime.now() - timedelta(days=20))

        result = await call(tools, "return_book", requester_id="user_a", loan_id=loan.id)

        assert not result.get("isError")
        assert "6 day(s) late" in result["content"][0]["text"]
        assert result["data"]["overdue_days"] == 6
        assert result["data"]["loan"]["status"] == "returned"
        assert result["data"]["fine"]["amount"] == "6.00"
        assert result["data"]["fine"]["is_paid"] is False

    async def test_double_return(self, tools):
        borrowed = await call(tools, "borrow_book", requester_id="user_a", book_id="book_main")
        loan_id = borrowed["data"]["loan"]["id"]

        await call(tools, "return_book", requester_id="user_a", loan_id=loan_id)
        result = await call(tools, "return_book", requester_id="user_a", loan_id=loan_id)

        assert_error(result, "invalid_state", 400)

    async def test_malformed_loan_id(self, tools):
        result = await call(tools, "get_loan", requester_id="user_a", loan_id="42")
        assert_error(result, "invalid_argument", 400)

    async def test_list_loans_bad_sort_key(self, tools):
        result = await call(tools, "list_loans", requester_id="user_a", sort_by="title")
        assert_error(result, "invalid_argument", 400)

    async def test_list_loans_page(self, tools):
        await call(tools, "borrow_book", requester_id="user_a", book_id="book_main")

        result = await call(tools, "list_loans", requester_id="user_a", page_size=5)

        assert result["data"]["total"] == 1
        assert result["data"]["page_size"] == 5
        assert result["data"]["items"][0]["book_id"] == "book_main"

    async def test_list_overdue_loans(self, tools, service):
        loan = service.borrow_book("user_a", "book_main", now=datetime.now() - timedelta(days=40))
        staff = {"requester_id": "user_librarian", "requester_role": "librarian"}

        overdue = await call(tools, "list_loans", overdue=True, **staff)
        by_status = await call(tools, "list_loans", status="overdue", **staff)

        assert [item["id"] for item in overdue["data"]["items"]] == [loan.id]
        assert_error(by_status, "invalid_argument", 400)


class TestReservationTools:
    async def test_reserve_then_duplicate(self, tools):
        first = await call(tools, "reserve_book", requester_id="user_a", book_id="book_main")
        second = await call(tools, "reserve_book", requester_id="user_a", book_id="book_main")

        assert first["data"]["reservation"]["book_id"] == "book_main"
        assert_error(second, "conflict", 409)

    async def test_cancel_someone_elses_reservation(self, tools):
        reserved = await call(tools, "reserve_book", requester_id="user_a", book_id="book_main")
        reservation_id = reserved["data"]["reservation"]["id"]

        result = await call(
            tools, "cancel_reservation", requester_id="user_b", reservation_id=reservation_id
        )

        assert_error(result, "forbidden", 403)

    async def test_expire_requires_staff(self, tools):
        member = await call(tools, "expire_reservations", requester_id="user_a")
        staff = await call(
            tools,
            "expire_reservations",
            requester_id="user_librarian",
            requester_role="librarian",
        )

        assert_error(member, "forbidden", 403)
        assert staff["data"]["expired"] == []


class TestFineTools:
    async def test_pay_twice(self, tools, service, member_a):
        loan = service.borrow_book("user_a", "book_main", now=datetime.now() - timedelta(days=20))
        fine = service.return_book(loan.id, member_a).fine

        staff = {"requester_id": "user_librarian", "requester_role": "admin"}
        paid = await call(tools, "pay_fine", fine_id=fine.id, **staff)
        again = await call(tools, "pay_fine", fine_id=fine.id, **staff)

        assert paid["data"]["fine"]["is_paid"] is True
        assert_error(again, "conflict", 409)

    async def test_member_listing(self, tools):
        result = await call(tools, "list_fines", requester_id="user_a")
        assert result["data"]["total"] == 0


class TestReaderTools:
    async def test_wishlist_round(self, tools):
        added = await call(tools, "add_to_wishlist", requester_id="user_a", book_id="book_main")
        listed = await call(tools, "list_wishlist", requester_id="user_a")

        assert added["data"]["entry"]["book_id"] == "book_main"
        assert [entry["book_id"] for entry in listed["data"]["items"]] == ["book_main"]

    async def test_review_rating_out_of_range(self, tools):
        result = await call(
            tools, "create_review", requester_id="user_a", book_id="book_main", rating=7
        )
        assert_error(result, "invalid_argument", 400)

    async def test_policy_lookup(self, tools):
        result = await call(tools, "get_policy", requester_id="user_a", library_id="library_central")

        assert result["data"]["policy"]["max_borrow_days"] == 14
        assert result["data"]["policy"]["fine_per_day"] == "1.00"


class TestReportTools:
    async def test_staff_report(self, tools, service):
        service.borrow_book("user_a", "book_main", now=datetime.now() - timedelta(days=20))

        result = await call(
            tools,
            "circulation_report",
            requester_id="user_librarian",
            requester_role="librarian",
            library_id="library_central",
        )

        assert not result.get("isError")
        report = result["data"]["report"]
        assert report["open_loans"] == 1
        assert report["overdue_loans"] == 1
        assert report["overdue_1_to_7_days"] == 1
        assert report["most_borrowed_book"]["book_id"] == "book_main"
        assert "1 overdue" in result["content"][0]["text"]

    async def test_member_forbidden(self, tools):
        result = await call(
            tools, "circulation_report", requester_id="user_a", library_id="library_central"
        )
        assert_error(result, "forbidden", 403)

    async def test_unknown_library(self, tools):
        result = await call(
            tools,
            "circulation_report",
            requester_id="user_librarian",
            requester_role="admin",
            library_id="library_missing",
        )
        assert_error(result, "not_found", 404)
