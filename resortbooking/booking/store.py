"""Entity store: typed CRUD over the SQLite schema.

Rows are decoded into the dataclasses from :mod:`.models` here and nowhere
else. Timestamps are stored as naive local time in the resort's timezone using
a fixed-width ISO-8601 layout, so textual comparison in SQL is chronological.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Sequence
from zoneinfo import ZoneInfo

from .errors import NotFoundError, StorageError, ValidationError
from .models import (
    AmenityLine,
    Booking,
    BookingStatus,
    Client,
    Expense,
    Payment,
    PaymentType,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

BOOKING_COLUMNS = {
    "client_id": "client_id",
    "event_type": "event_type",
    "number_of_person": "number_of_person",
    "start_date": "start_date",
    "end_date": "end_date",
    "base_total_amount": "total_amount",
    "extra_amenities": "extra_amenities",
    "status": "status",
}
CLIENT_COLUMNS = ("name", "phone", "email")
EXPENSE_COLUMNS = ("category", "description", "amount", "expense_date")


def parse_timestamp(value: str | dt.datetime, tz: ZoneInfo) -> dt.datetime:
    """Return ``value`` as a naive datetime in the resort's local time."""

    if isinstance(value, dt.datetime):
        parsed = value
    else:
        try:
            parsed = dt.datetime.fromisoformat(str(value).strip())
        except ValueError as exc:
            raise ValidationError(f"'{value}' is not a valid date and time") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz).replace(tzinfo=None)
    return parsed.replace(microsecond=0)


def parse_date(value: str | dt.date) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValidationError(f"'{value}' is not a valid date (expected YYYY-MM-DD)") from exc


def format_timestamp(value: dt.datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


class EntityStore:
    """Explicit handle over one SQLite connection.

    Every statement runs under a re-entrant lock. :meth:`transaction` holds that
    lock for the whole unit of work, which makes the store a single writer:
    two read-modify-write sequences against the same booking never interleave.
    """

    def __init__(self, conn: sqlite3.Connection, *, tz: ZoneInfo | None = None) -> None:
        self.conn = conn
        self.tz = tz or ZoneInfo("Asia/Manila")
        self._lock = threading.RLock()
        self._depth = 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def now(self) -> dt.datetime:
        return dt.datetime.now(self.tz).replace(tzinfo=None, microsecond=0)

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cur = self.conn.execute(sql, params)
                if self._depth == 0:
                    self.conn.commit()
                return cur
            except sqlite3.Error as exc:
                logger.exception("Statement failed: %s", " ".join(sql.split()))
                raise StorageError(f"Database operation failed: {exc}") from exc

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> dict | None:
        with self._lock:
            return self._execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[dict]:
        with self._lock:
            return self._execute(sql, params).fetchall()

    @contextmanager
    def transaction(self) -> Iterator["EntityStore"]:
        """Group statements into one atomic unit; nested calls join the outer one."""

        with self._lock:
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if self._depth == 0:
                    self.conn.rollback()
                raise
            else:
                self._depth -= 1
                if self._depth == 0:
                    try:
                        self.conn.commit()
                    except sqlite3.Error as exc:
                        self.conn.rollback()
                        raise StorageError(f"Could not commit changes: {exc}") from exc

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Row decoding
    # ------------------------------------------------------------------
    def _client_from_row(self, row: dict) -> Client:
        return Client(
            id=row["id"],
            name=row["name"],
            phone=row["phone"],
            email=row["email"],
            created_at=dt.datetime.fromisoformat(row["created_at"]),
        )

    def _booking_from_row(self, row: dict) -> Booking:
        amenities = [
            AmenityLine(item=line["item"], price=line["price"], quantity=line["quantity"])
            for line in json.loads(row["extra_amenities"] or "[]")
        ]
        return Booking(
            id=row["id"],
            client_id=row["client_id"],
            event_type=row["event_type"],
            number_of_person=row["number_of_person"],
            start_date=dt.datetime.fromisoformat(row["start_date"]),
            end_date=dt.datetime.fromisoformat(row["end_date"]),
            base_total_amount=row["total_amount"],
            extra_amenities=amenities,
            status=BookingStatus(row["status"]),
            created_at=dt.datetime.fromisoformat(row["created_at"]),
        )

    def _payment_from_row(self, row: dict) -> Payment:
        return Payment(
            id=row["id"],
            booking_id=row["booking_id"],
            amount=row["amount"],
            payment_type=PaymentType(row["payment_type"]),
            created_at=dt.datetime.fromisoformat(row["created_at"]),
        )

    def _expense_from_row(self, row: dict) -> Expense:
        return Expense(
            id=row["id"],
            category=row["category"],
            description=row["description"],
            amount=row["amount"],
            expense_date=dt.date.fromisoformat(row["expense_date"]),
            created_at=dt.datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _encode_amenities(lines: Sequence[AmenityLine]) -> str:
        return json.dumps([line.to_dict() for line in lines])

    def _encode_booking_value(self, key: str, value: Any) -> Any:
        if key in ("start_date", "end_date"):
            return format_timestamp(parse_timestamp(value, self.tz))
        if key == "extra_amenities":
            return self._encode_amenities(value)
        if key == "status":
            return BookingStatus(value).value
        return value

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------
    def insert_client(self, client: Client) -> int:
        cur = self._execute(
            "INSERT INTO clients(name, phone, email, created_at) VALUES (?, ?, ?, ?)",
            (client.name, client.phone, client.email, format_timestamp(self.now())),
        )
        return cur.lastrowid

    def get_client(self, client_id: int) -> Client:
        row = self._fetchone("SELECT * FROM clients WHERE id = ?", (client_id,))
        if not row:
            raise NotFoundError(f"Client {client_id} not found")
        return self._client_from_row(row)

    def update_client(self, client_id: int, patch: dict[str, Any]) -> None:
        unknown = set(patch) - set(CLIENT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown client fields: {sorted(unknown)}")
        if not patch:
            return
        assignments = ", ".join(f"{key} = ?" for key in patch)
        cur = self._execute(
            f"UPDATE clients SET {assignments} WHERE id = ?",
            (*patch.values(), client_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Client {client_id} not found")

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------
    def insert_booking(self, booking: Booking) -> int:
        cur = self._execute(
            """
            INSERT INTO bookings(
                client_id, event_type, number_of_person, start_date, end_date,
                total_amount, extra_amenities, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                booking.client_id,
                booking.event_type,
                booking.number_of_person,
                format_timestamp(parse_timestamp(booking.start_date, self.tz)),
                format_timestamp(parse_timestamp(booking.end_date, self.tz)),
                booking.base_total_amount,
                self._encode_amenities(booking.extra_amenities),
                BookingStatus(booking.status).value,
                format_timestamp(booking.created_at or self.now()),
            ),
        )
        return cur.lastrowid

    def get_booking(self, booking_id: int) -> Booking:
        row = self._fetchone("SELECT * FROM bookings WHERE id = ?", (booking_id,))
        if not row:
            raise NotFoundError(f"Booking {booking_id} not found")
        return self._booking_from_row(row)

    def update_booking(self, booking_id: int, patch: dict[str, Any]) -> None:
        unknown = set(patch) - set(BOOKING_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown booking fields: {sorted(unknown)}")
        if not patch:
            return
        assignments = ", ".join(f"{BOOKING_COLUMNS[key]} = ?" for key in patch)
        values = [self._encode_booking_value(key, value) for key, value in patch.items()]
        cur = self._execute(
            f"UPDATE bookings SET {assignments} WHERE id = ?",
            (*values, booking_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Booking {booking_id} not found")

    def delete_booking(self, booking_id: int) -> None:
        with self.transaction():
            self._execute("DELETE FROM payments WHERE booking_id = ?", (booking_id,))
            cur = self._execute("DELETE FROM bookings WHERE id = ?", (booking_id,))
            if cur.rowcount == 0:
                raise NotFoundError(f"Booking {booking_id} not found")

    def query_bookings(
        self,
        *,
        status: BookingStatus | str | None = None,
        start_from: dt.datetime | None = None,
        start_before: dt.datetime | None = None,
        overlapping: tuple[dt.datetime, dt.datetime] | None = None,
        exclude_id: int | None = None,
        client_id: int | None = None,
        order_by: str = "created_at DESC, id DESC",
    ) -> list[Booking]:
        """Return bookings matching every supplied filter.

        ``start_from``/``start_before`` bound the start date as a half-open
        range. ``overlapping`` selects bookings whose ``[start, end)`` range
        intersects the given one.
        """

        conditions: list[str] = []
        params: list[Any] = []
        if status is not None:
            conditions.append("status = ?")
            params.append(BookingStatus(status).value)
        if start_from is not None:
            conditions.append("start_date >= ?")
            params.append(format_timestamp(start_from))
        if start_before is not None:
            conditions.append("start_date < ?")
            params.append(format_timestamp(start_before))
        if overlapping is not None:
            start, end = overlapping
            conditions.append("start_date < ? AND end_date > ?")
            params.extend([format_timestamp(end), format_timestamp(start)])
        if exclude_id is not None:
            conditions.append("id != ?")
            params.append(exclude_id)
        if client_id is not None:
            conditions.append("client_id = ?")
            params.append(client_id)
        where = ""
        if conditions:
            where = " WHERE " + " AND ".join(conditions)
        rows = self._fetchall(f"SELECT * FROM bookings{where} ORDER BY {order_by}", params)
        return [self._booking_from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def insert_payment(self, payment: Payment) -> int:
        cur = self._execute(
            """
            INSERT INTO payments(booking_id, amount, payment_type, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                payment.booking_id,
                payment.amount,
                PaymentType(payment.payment_type).value,
                format_timestamp(payment.created_at or self.now()),
            ),
        )
        return cur.lastrowid

    def query_payments(self, booking_id: int) -> list[Payment]:
        rows = self._fetchall(
            "SELECT * FROM payments WHERE booking_id = ? ORDER BY created_at, id",
            (booking_id,),
        )
        return [self._payment_from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------
    def insert_expense(self, expense: Expense) -> int:
        cur = self._execute(
            """
            INSERT INTO expenses(category, description, amount, expense_date, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                expense.category,
                expense.description,
                expense.amount,
                parse_date(expense.expense_date).isoformat(),
                format_timestamp(self.now()),
            ),
        )
        return cur.lastrowid

    def get_expense(self, expense_id: int) -> Expense:
        row = self._fetchone("SELECT * FROM expenses WHERE id = ?", (expense_id,))
        if not row:
            raise NotFoundError(f"Expense {expense_id} not found")
        return self._expense_from_row(row)

    def update_expense(self, expense_id: int, patch: dict[str, Any]) -> None:
        unknown = set(patch) - set(EXPENSE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown expense fields: {sorted(unknown)}")
        if not patch:
            return
        if "expense_date" in patch:
            patch = {**patch, "expense_date": parse_date(patch["expense_date"]).isoformat()}
        assignments = ", ".join(f"{key} = ?" for key in patch)
        cur = self._execute(
            f"UPDATE expenses SET {assignments} WHERE id = ?",
            (*patch.values(), expense_id),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Expense {expense_id} not found")

    def query_expenses(
        self,
        *,
        date_from: dt.date | None = None,
        date_to: dt.date | None = None,
    ) -> list[Expense]:
        """Return expenses dated within ``[date_from, date_to]``, newest first."""

        conditions: list[str] = []
        params: list[Any] = []
        if date_from is not None:
            conditions.append("expense_date >= ?")
            params.append(date_from.isoformat())
        if date_to is not None:
            conditions.append("expense_date <= ?")
            params.append(date_to.isoformat())
        where = ""
        if conditions:
            where = " WHERE " + " AND ".join(conditions)
        rows = self._fetchall(
            f"SELECT * FROM expenses{where} ORDER BY expense_date DESC, id DESC", params
        )
        return [self._expense_from_row(row) for row in rows]
