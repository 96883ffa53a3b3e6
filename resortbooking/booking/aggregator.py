"""Derived financial summaries over a time window.

Every report buckets bookings by their start date.
"""

from __future__ import annotations

import datetime as dt
import logging

from .errors import ValidationError
from .ledger import remaining, total_paid
from .models import Booking, MonthlyRevenue, MonthlyStats, SalesRow
from .store import EntityStore, parse_date

logger = logging.getLogger(__name__)


def month_bounds(year: int, month: int) -> tuple[dt.date, dt.date]:
    """First and last calendar day of a month."""

    first = dt.date(year, month, 1)
    if month == 12:
        following = dt.date(year + 1, 1, 1)
    else:
        following = dt.date(year, month + 1, 1)
    return first, following - dt.timedelta(days=1)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


class Aggregator:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def _bookings_starting(
        self,
        range_start: dt.date | str | None,
        range_end: dt.date | str | None,
    ) -> list[Booking]:
        """Bookings whose start falls on a day within ``[range_start, range_end]``."""

        start_from = None
        start_before = None
        if range_start is not None:
            start_from = dt.datetime.combine(parse_date(range_start), dt.time.min)
        if range_end is not None:
            start_before = dt.datetime.combine(
                parse_date(range_end) + dt.timedelta(days=1), dt.time.min
            )
        return self.store.query_bookings(
            start_from=start_from,
            start_before=start_before,
            order_by="start_date, id",
        )

    def _revenue(self, bookings: list[Booking]) -> float:
        # Amenities are billed, not necessarily collected; they are added as-is.
        revenue = 0.0
        for booking in bookings:
            revenue += total_paid(self.store.query_payments(booking.id))
            revenue += booking.amenities_total
        return round(revenue, 2)

    def monthly_stats(
        self, month_start: dt.date | str, month_end: dt.date | str
    ) -> MonthlyStats:
        bookings = self._bookings_starting(month_start, month_end)
        active = [booking for booking in bookings if not booking.is_cancelled]

        pending = 0.0
        fully_paid = 0
        for booking in active:
            balance = remaining(booking.effective_total, self.store.query_payments(booking.id))
            pending += max(0.0, balance)
            if balance <= 0:
                fully_paid += 1

        return MonthlyStats(
            total_bookings=len(active),
            total_revenue=self._revenue(bookings),
            pending_payments=round(pending, 2),
            fully_paid=fully_paid,
        )

    def monthly_stats_for(self, year: int, month: int) -> MonthlyStats:
        return self.monthly_stats(*month_bounds(year, month))

    def revenue_forecast(
        self, months_back: int = 6, *, today: dt.date | None = None
    ) -> list[MonthlyRevenue]:
        """Historical revenue for the trailing ``months_back`` months, oldest first.

        The window ends with the month containing ``today``. Nothing is
        projected forward. A window below one month raises
        :class:`ValidationError`.
        """

        if months_back < 1:
            raise ValidationError("Number of months must be at least 1.")
        today = today or self.store.now().date()
        result: list[MonthlyRevenue] = []
        for offset in range(months_back - 1, -1, -1):
            year, month = shift_month(today.year, today.month, -offset)
            bookings = self._bookings_starting(*month_bounds(year, month))
            result.append(
                MonthlyRevenue(month=f"{year:04d}-{month:02d}", revenue=self._revenue(bookings))
            )
        return result

    def sales_report(
        self,
        range_start: dt.date | str | None = None,
        range_end: dt.date | str | None = None,
    ) -> list[SalesRow]:
        """One row per booking, cancelled included, in start-date order."""

        rows: list[SalesRow] = []
        for booking in self._bookings_starting(range_start, range_end):
            payments = self.store.query_payments(booking.id)
            client = self.store.get_client(booking.client_id)
            rows.append(
                SalesRow(
                    booking_id=booking.id,
                    client_name=client.name,
                    event_type=booking.event_type,
                    start_date=booking.start_date,
                    end_date=booking.end_date,
                    total_amount=round(booking.effective_total, 2),
                    total_paid=total_paid(payments),
                    amenities_total=round(booking.amenities_total, 2),
                    remaining_amount=remaining(booking.effective_total, payments),
                    status=booking.status,
                    created_at=booking.created_at,
                )
            )
        logger.debug("Sales report %s - %s: %d rows", range_start, range_end, len(rows))
        return rows

    def expenses_total(
        self,
        range_start: dt.date | str | None = None,
        range_end: dt.date | str | None = None,
    ) -> float:
        expenses = self.store.query_expenses(
            date_from=parse_date(range_start) if range_start is not None else None,
            date_to=parse_date(range_end) if range_end is not None else None,
        )
        return round(sum(expense.amount for expense in expenses), 2)

    def net_income(
        self,
        range_start: dt.date | str | None = None,
        range_end: dt.date | str | None = None,
    ) -> float:
        """Collected payments for bookings starting in range, minus expenses."""

        collected = sum(row.total_paid for row in self.sales_report(range_start, range_end))
        return round(collected - self.expenses_total(range_start, range_end), 2)
