"""
Circulation report for library staff.

Everything is computed from stored rows at one instant: shelf totals from
the book counters, loan ageing from ``borrow_date`` under the library's
policy, and fine totals from the fine ledger. Overdue is never stored, so
the report derives it the same way a return would.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select

from ..models.circulation import CENT, calculate_due_date, calculate_overdue_days, start_of_day
from ..models.report import CirculationReport, DailyCirculation, MostBorrowedBook
from .policy_repository import PolicyRepository
from .repository import BaseRepository, NotFoundError
from .schema import Book as BookDB
from .schema import Fine as FineDB
from .schema import Library as LibraryDB
from .schema import Loan as LoanDB
from .schema import LoanStatusEnum

logger = logging.getLogger(__name__)

REPORT_DAYS = 7


class ReportRepository(BaseRepository):
    """Aggregates one library's circulation state. Never writes."""

    def circulation_report(self, library_id: str, now: datetime | None = None) -> CirculationReport:
        """
        Build the report for ``library_id`` as of ``now``.

        Raises:
            NotFoundError: If the library or its policy does not exist
        """
        now = now or datetime.now()
        if self.session.get(LibraryDB, library_id) is None:
            raise NotFoundError(f"Library {library_id} not found")
        policy = PolicyRepository(self.session).get_policy(library_id)

        report = CirculationReport(
            library_id=library_id, generated_at=now, max_borrow_days=policy.max_borrow_days
        )
        self._add_shelf_totals(report)
        self._add_open_loans(report, now)
        self._add_circulation(report, now)
        self._add_fine_totals(report)

        logger.debug(
            "Report for %s: %d open loan(s), %d overdue",
            library_id,
            report.open_loans,
            report.overdue_loans,
        )
        return report

    def _add_shelf_totals(self, report: CirculationReport) -> None:
        total, available, reserved = self.session.execute(
            select(
                func.coalesce(func.sum(BookDB.total_copies), 0),
                func.coalesce(func.sum(BookDB.available_copies), 0),
                func.coalesce(func.sum(BookDB.reserved_copies), 0),
            ).where(BookDB.library_id == report.library_id)
        ).one()
        report.total_copies = int(total)
        report.available_copies = int(available)
        report.reserved_copies = int(reserved)

    def _add_open_loans(self, report: CirculationReport, now: datetime) -> None:
        borrow_dates = self.session.execute(
            select(LoanDB.borrow_date)
            .join(BookDB, BookDB.id == LoanDB.book_id)
            .where(
                BookDB.library_id == report.library_id,
                LoanDB.status != LoanStatusEnum.RETURNED,
            )
        ).scalars()

        today = now.date()
        for borrow_date in borrow_dates:
            report.open_loans += 1
            overdue_days = calculate_overdue_days(borrow_date, now, report.max_borrow_days)
            if overdue_days > 0:
                report.overdue_loans += 1
                if overdue_days <= 7:
                    report.overdue_1_to_7_days += 1
                elif overdue_days <= 14:
                    report.overdue_8_to_14_days += 1
                else:
                    report.overdue_15_plus_days += 1
                continue

            days_left = (calculate_due_date(borrow_date, report.max_borrow_days).date() - today).days
            if days_left == 0:
                report.due_today += 1
            elif days_left < REPORT_DAYS:
                report.due_this_week += 1
            elif days_left < 2 * REPORT_DAYS:
                report.due_next_week += 1

    def _add_circulation(self, report: CirculationReport, now: datetime) -> None:
        first_day = start_of_day(now) - timedelta(days=REPORT_DAYS - 1)
        counts = {(first_day + timedelta(days=offset)).date(): 0 for offset in range(REPORT_DAYS)}
        recent = self.session.execute(
            select(LoanDB.borrow_date)
            .join(BookDB, BookDB.id == LoanDB.book_id)
            .where(
                BookDB.library_id == report.library_id,
                LoanDB.borrow_date >= first_day,
                LoanDB.borrow_date <= now,
            )
        ).scalars()
        for borrow_date in recent:
            counts[borrow_date.date()] += 1
        report.daily_circulation = [
            DailyCirculation(day=day, count=count) for day, count in counts.items()
        ]

        borrow_count = func.count(LoanDB.id).label("borrow_count")
        top = self.session.execute(
            select(BookDB.id, BookDB.title, borrow_count)
            .join(LoanDB, LoanDB.book_id == BookDB.id)
            .where(BookDB.library_id == report.library_id)
            .group_by(BookDB.id, BookDB.title)
            .order_by(borrow_count.desc(), BookDB.id)
            .limit(1)
        ).first()
        if top is not None:
            report.most_borrowed_book = MostBorrowedBook(
                book_id=top.id, title=top.title, borrow_count=top.borrow_count
            )

    def _add_fine_totals(self, report: CirculationReport) -> None:
        rows = self.session.execute(
            select(FineDB.is_paid, func.coalesce(func.sum(FineDB.amount), 0))
            .where(FineDB.library_id == report.library_id)
            .group_by(FineDB.is_paid)
        ).all()

        totals = {bool(is_paid): Decimal(str(amount)).quantize(CENT) for is_paid, amount in rows}
        report.fines_paid = totals.get(True, Decimal("0.00"))
        report.fines_pending = totals.get(False, Decimal("0.00"))
        report.fines_total = report.fines_paid + report.fines_pending
