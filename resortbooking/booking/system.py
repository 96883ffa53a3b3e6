"""Core orchestration logic for the resort booking ledger."""

from __future__ import annotations

import calendar
import datetime as dt
import logging
import math
import sqlite3
from typing import Any, Sequence
from zoneinfo import ZoneInfo

from . import amenities as amenity_calculator
from .aggregator import Aggregator, month_bounds
from .availability import AvailabilityChecker
from .database import get_connection, initialize_database
from .errors import StorageError, ValidationError
from .ledger import DEFAULT_REFUND_RATE, Ledger
from .models import (
    EXPENSE_CATEGORIES,
    AmenityLine,
    BookingDetails,
    BookingDraft,
    BookingStatus,
    CancellationResult,
    Client,
    ClientDraft,
    Expense,
    MonthlyRevenue,
    MonthlyStats,
    PaymentPlan,
    SalesRow,
    StatusLabel,
)
from .orchestrator import AmenityRows, BookingOrchestrator
from .store import EntityStore, parse_date, parse_timestamp

logger = logging.getLogger(__name__)


class ResortSystem:
    """High level façade that exposes application level behaviours.

    The store handle is created here and injected into every component; no
    component reaches for a shared global connection.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        *,
        timezone: str = "Asia/Manila",
        refund_rate: float = DEFAULT_REFUND_RATE,
    ) -> None:
        conn = None
        try:
            conn = get_connection(db_path)
            initialize_database(conn)
        except sqlite3.Error as exc:
            if conn is not None:
                conn.close()
            logger.exception("Could not open database %s", db_path)
            raise StorageError(f"Could not open database {db_path}: {exc}") from exc
        self.store = EntityStore(conn, tz=ZoneInfo(timezone))
        self.availability = AvailabilityChecker(self.store)
        self.ledger = Ledger(self.store, refund_rate=refund_rate)
        self.orchestrator = BookingOrchestrator(self.store, self.availability, self.ledger)
        self.aggregator = Aggregator(self.store)

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------
    def create_booking(
        self,
        *,
        client: ClientDraft,
        booking: BookingDraft,
        amenities: AmenityRows = None,
        payment_plan: PaymentPlan | None = None,
    ) -> int:
        return self.orchestrator.create(client, booking, amenities, payment_plan)

    def update_booking(
        self,
        booking_id: int,
        *,
        booking: BookingDraft,
        amenities: AmenityRows = None,
        client: ClientDraft | None = None,
    ) -> BookingDetails:
        return self.orchestrator.update(booking_id, booking, amenities, client)

    def add_payment(self, booking_id: int, amount: Any) -> BookingDetails:
        return self.orchestrator.add_payment(booking_id, amount)

    def pay_remaining(self, booking_id: int) -> BookingDetails:
        return self.orchestrator.pay_remaining(booking_id)

    def cancel_booking(self, booking_id: int) -> CancellationResult:
        return self.orchestrator.cancel(booking_id)

    def delete_booking(self, booking_id: int) -> None:
        self.store.delete_booking(booking_id)
        logger.info("Deleted booking %s and its payments", booking_id)

    def is_slot_available(
        self,
        start_date: str | dt.datetime,
        end_date: str | dt.datetime,
        exclude_booking_id: int | None = None,
    ) -> bool:
        return self.availability.is_slot_available(start_date, end_date, exclude_booking_id)

    def get_booking_details(self, booking_id: int) -> BookingDetails:
        return self.ledger.details(booking_id)

    def list_bookings(
        self,
        *,
        search: str | None = None,
        status_label: StatusLabel | str | None = None,
    ) -> list[BookingDetails]:
        """Return every booking newest first, optionally filtered."""

        try:
            label = StatusLabel(status_label) if status_label else None
        except ValueError as exc:
            raise ValidationError(
                "Status filter must be one of: pending, partial, paid."
            ) from exc
        needle = (search or "").strip().lower()
        results: list[BookingDetails] = []
        for booking in self.store.query_bookings():
            details = self.ledger.details_for(booking)
            if needle and needle not in details.client.name.lower():
                continue
            if label is not None and details.status_label is not label:
                continue
            results.append(details)
        return results

    def upcoming_bookings(
        self, *, limit: int = 4, now: str | dt.datetime | None = None
    ) -> list[BookingDetails]:
        if limit < 0:
            raise ValidationError("Limit must be 0 or greater.")
        reference = parse_timestamp(now, self.store.tz) if now else self.store.now()
        rows = self.store.query_bookings(
            status=BookingStatus.ACTIVE,
            start_from=reference,
            order_by="start_date, id",
        )
        return [self.ledger.details_for(booking) for booking in rows[:limit]]

    def calendar_month(self, year: int, month: int) -> dict[dt.date, list[BookingDetails]]:
        """Map each day of a month to the active bookings that cover it."""

        first, last = month_bounds(year, month)
        month_start = dt.datetime.combine(first, dt.time.min)
        month_end = dt.datetime.combine(last + dt.timedelta(days=1), dt.time.min)
        bookings = self.store.query_bookings(
            status=BookingStatus.ACTIVE,
            overlapping=(month_start, month_end),
            order_by="start_date, id",
        )
        details = [self.ledger.details_for(booking) for booking in bookings]
        schedule: dict[dt.date, list[BookingDetails]] = {}
        for day in range(1, calendar.monthrange(year, month)[1] + 1):
            date = dt.date(year, month, day)
            schedule[date] = [
                item
                for item in details
                if item.booking.start_date.date() <= date <= item.booking.end_date.date()
            ]
        return schedule

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------
    def get_client(self, client_id: int) -> Client:
        return self.store.get_client(client_id)

    def update_client(self, client_id: int, *, client: ClientDraft) -> Client:
        name = (client.name or "").strip()
        if not name:
            raise ValidationError("Client name is required.")
        self.store.update_client(
            client_id,
            {
                "name": name,
                "phone": (client.phone or "").strip() or None,
                "email": (client.email or "").strip() or None,
            },
        )
        return self.store.get_client(client_id)

    # ------------------------------------------------------------------
    # Amenities
    # ------------------------------------------------------------------
    def normalize_amenities(self, rows: AmenityRows) -> list[AmenityLine]:
        return amenity_calculator.normalize(rows)

    def amenities_subtotal(self, rows: Sequence[Any]) -> float:
        return amenity_calculator.subtotal(rows)

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------
    def _validate_expense(
        self, category: str, amount: Any, expense_date: str | dt.date
    ) -> tuple[str, float, dt.date]:
        if category not in EXPENSE_CATEGORIES:
            raise ValidationError(
                f"Expense category must be one of: {', '.join(EXPENSE_CATEGORIES)}."
            )
        try:
            value = float(amount)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Amount must be a number greater than 0.") from exc
        if not math.isfinite(value) or value <= 0:
            raise ValidationError("Amount must be a number greater than 0.")
        return category, round(value, 2), parse_date(expense_date)

    def add_expense(
        self,
        *,
        category: str,
        amount: Any,
        expense_date: str | dt.date,
        description: str | None = None,
    ) -> Expense:
        category, value, date = self._validate_expense(category, amount, expense_date)
        expense_id = self.store.insert_expense(
            Expense(
                id=None,
                category=category,
                amount=value,
                expense_date=date,
                description=(description or "").strip() or None,
            )
        )
        logger.info("Recorded %s expense %s of %.2f", category, expense_id, value)
        return self.store.get_expense(expense_id)

    def update_expense(
        self,
        expense_id: int,
        *,
        category: str,
        amount: Any,
        expense_date: str | dt.date,
        description: str | None = None,
    ) -> Expense:
        category, value, date = self._validate_expense(category, amount, expense_date)
        self.store.update_expense(
            expense_id,
            {
                "category": category,
                "amount": value,
                "expense_date": date,
                "description": (description or "").strip() or None,
            },
        )
        logger.info("Updated expense %s", expense_id)
        return self.store.get_expense(expense_id)

    def get_expense(self, expense_id: int) -> Expense:
        return self.store.get_expense(expense_id)

    def list_expenses(self, *, month: str | None = None) -> list[Expense]:
        """Return expenses newest first; ``month`` is a ``YYYY-MM`` filter."""

        if not month:
            return self.store.query_expenses()
        try:
            year, month_number = (int(part) for part in month.split("-"))
            first, last = month_bounds(year, month_number)
        except ValueError as exc:
            raise ValidationError(f"'{month}' is not a valid month (expected YYYY-MM)") from exc
        return self.store.query_expenses(date_from=first, date_to=last)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def monthly_stats(
        self, month_start: str | dt.date, month_end: str | dt.date
    ) -> MonthlyStats:
        return self.aggregator.monthly_stats(month_start, month_end)

    def revenue_forecast(
        self, months_back: int = 6, *, today: dt.date | None = None
    ) -> list[MonthlyRevenue]:
        return self.aggregator.revenue_forecast(months_back, today=today)

    def sales_report(
        self,
        range_start: str | dt.date | None = None,
        range_end: str | dt.date | None = None,
    ) -> list[SalesRow]:
        return self.aggregator.sales_report(range_start, range_end)

    def expenses_total(
        self,
        range_start: str | dt.date | None = None,
        range_end: str | dt.date | None = None,
    ) -> float:
        return self.aggregator.expenses_total(range_start, range_end)

    def net_income(
        self,
        range_start: str | dt.date | None = None,
        range_end: str | dt.date | None = None,
    ) -> float:
        return self.aggregator.net_income(range_start, range_end)

    def close(self) -> None:
        self.store.close()
