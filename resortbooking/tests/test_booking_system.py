import datetime as dt
import os
import sqlite3
import tempfile
import threading
import unittest
from unittest import mock

from resortbooking.booking.availability import intervals_overlap
from resortbooking.booking.errors import (
    BelowPaidAmountError,
    InvalidPriceError,
    NotFoundError,
    SlotConflictError,
    StorageError,
    ValidationError,
)
from resortbooking.booking.models import (
    BookingDraft,
    BookingStatus,
    ClientDraft,
    PaymentPlan,
    PaymentType,
    StatusLabel,
)
from resortbooking.booking.system import ResortSystem
from resortbooking.tests.helpers import ResortTestCase


class CreateBookingTestCase(ResortTestCase):
    def test_partial_payment_leaves_balance(self) -> None:
        booking_id = self.book(
            "2026-03-01T10:00", "2026-03-01T18:00", total=3000, plan=PaymentPlan.partial(1000)
        )
        details = self.system.get_booking_details(booking_id)

        self.assertEqual(details.remaining_amount, 2000)
        self.assertIs(details.status_label, StatusLabel.PARTIAL)
        self.assertEqual(len(details.payments), 1)
        self.assertIs(details.payments[0].payment_type, PaymentType.PARTIAL)
        self.assertEqual(details.client.name, "Maria Santos")
        self.assertIs(details.booking.status, BookingStatus.ACTIVE)

    def test_full_payment_covers_amenities(self) -> None:
        booking_id = self.book(
            "2026-03-02T10:00",
            "2026-03-02T18:00",
            amenities=[
                {"item": "Chairs", "price": "50", "quantity": "10"},
                {"item": "", "price": "", "quantity": ""},
            ],
        )
        details = self.system.get_booking_details(booking_id)

        self.assertEqual(details.payments[0].amount, 5500)
        self.assertEqual(details.remaining_amount, 0)
        self.assertIs(details.status_label, StatusLabel.PAID)
        self.assertEqual(
            details.booking.extra_amenities,
            self.system.normalize_amenities([{"item": "Chairs", "price": 50, "quantity": 10}]),
        )
        self.assertEqual(details.effective_total, 5500)

    def test_rejects_invalid_input(self) -> None:
        cases = {
            "blank name": dict(name="   "),
            "end before start": dict(start="2026-03-03T18:00", end="2026-03-03T10:00"),
            "zero length": dict(start="2026-03-03T10:00", end="2026-03-03T10:00"),
            "bad timestamp": dict(start="not-a-date"),
            "zero total": dict(total=0),
            "partial above total": dict(plan=PaymentPlan.partial(6000)),
            "partial of zero": dict(plan=PaymentPlan.partial(0)),
        }
        for label, overrides in cases.items():
            kwargs = {"start": "2026-03-03T10:00", "end": "2026-03-03T18:00"}
            kwargs.update(overrides)
            start = kwargs.pop("start")
            end = kwargs.pop("end")
            with self.subTest(label), self.assertRaises(ValidationError):
                self.book(start, end, **kwargs)
        self.assertEqual(self.system.list_bookings(), [])

    def test_partial_may_equal_total(self) -> None:
        booking_id = self.book(
            "2026-03-04T10:00", "2026-03-04T18:00", total=3000, plan=PaymentPlan.partial(3000)
        )
        self.assertIs(self.system.get_booking_details(booking_id).status_label, StatusLabel.PAID)

    def test_bad_amenity_row_aborts_create(self) -> None:
        with self.assertRaises(InvalidPriceError):
            self.book(
                "2026-03-05T10:00",
                "2026-03-05T18:00",
                amenities=[{"item": "Tables", "price": "", "quantity": "2"}],
            )
        self.assertEqual(self.system.list_bookings(), [])

    def test_failed_payment_insert_rolls_back_client_and_booking(self) -> None:
        with mock.patch.object(
            self.system.store, "insert_payment", side_effect=StorageError("disk full")
        ):
            with self.assertRaises(StorageError):
                self.book("2026-03-06T10:00", "2026-03-06T18:00")

        row = self.system.store.conn.execute("SELECT COUNT(*) AS n FROM clients").fetchone()
        self.assertEqual(row["n"], 0)
        self.assertEqual(self.system.list_bookings(), [])
        self.assertTrue(self.system.is_slot_available("2026-03-06T10:00", "2026-03-06T18:00"))

    def test_closed_connection_surfaces_storage_error(self) -> None:
        self.system.store.conn.close()
        with self.assertRaises(StorageError):
            self.system.list_bookings()


class AvailabilityTestCase(ResortTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.existing = self.book("2026-01-10T10:00", "2026-01-10T18:00")

    def test_overlap_is_rejected(self) -> None:
        with self.assertLogs("resortbooking.booking.orchestrator", level="WARNING"):
            with self.assertRaises(SlotConflictError) as ctx:
                self.book("2026-01-10T17:00", "2026-01-10T20:00", name="Jose Cruz")
        self.assertIn("already booked", str(ctx.exception))
        self.assertEqual(len(self.system.list_bookings()), 1)

    def test_touching_ranges_do_not_conflict(self) -> None:
        self.assertTrue(self.system.is_slot_available("2026-01-10T18:00", "2026-01-10T22:00"))
        self.assertTrue(self.system.is_slot_available("2026-01-10T06:00", "2026-01-10T10:00"))
        self.assertFalse(self.system.is_slot_available("2026-01-10T09:00", "2026-01-10T10:01"))
        self.assertFalse(self.system.is_slot_available("2026-01-10T08:00", "2026-01-10T20:00"))

    def test_intervals_overlap_is_half_open(self) -> None:
        ten, noon, two = (dt.datetime(2026, 1, 10, hour) for hour in (10, 12, 14))
        self.assertTrue(intervals_overlap(ten, two, noon, two))
        self.assertFalse(intervals_overlap(ten, noon, noon, two))
        self.assertEqual(
            self.system.availability.conflicts("2026-01-10T12:00", "2026-01-10T13:00"),
            [self.existing],
        )

    def test_own_range_is_excluded(self) -> None:
        self.assertTrue(
            self.system.is_slot_available(
                "2026-01-10T10:00", "2026-01-10T18:00", exclude_booking_id=self.existing
            )
        )

    def test_aware_timestamps_are_converted_to_resort_time(self) -> None:
        # 02:00Z is 10:00 in Manila
        self.assertFalse(
            self.system.is_slot_available("2026-01-10T02:00:00+00:00", "2026-01-10T03:00:00+00:00")
        )
        self.assertTrue(
            self.system.is_slot_available("2026-01-10T10:00:00+00:00", "2026-01-10T11:00:00+00:00")
        )

    def test_aware_input_is_stored_as_local_time(self) -> None:
        booking_id = self.book("2026-01-01T05:00:00+00:00", "2026-01-01T07:00:00+00:00")
        booking = self.system.get_booking_details(booking_id).booking
        self.assertEqual(booking.start_date, dt.datetime(2026, 1, 1, 13, 0))
        self.assertEqual(booking.end_date, dt.datetime(2026, 1, 1, 15, 0))


class UpdateBookingTestCase(ResortTestCase):
    def draft(self, start: str, end: str, total: float = 5000) -> BookingDraft:
        return BookingDraft(
            start_date=start, end_date=end, base_total_amount=total, event_type="Wedding"
        )

    def test_can_keep_own_slot_and_recompute_amenities(self) -> None:
        booking_id = self.book(
            "2026-04-01T10:00", "2026-04-01T18:00", total=3000, plan=PaymentPlan.partial(1000)
        )
        details = self.system.update_booking(
            booking_id,
            booking=self.draft("2026-04-01T10:00", "2026-04-01T19:00", total=3000),
            amenities=[{"item": "Lights", "price": 250, "quantity": 2}],
        )

        self.assertEqual(details.effective_total, 3500)
        self.assertEqual(details.remaining_amount, 2500)
        self.assertEqual(details.booking.event_type, "Wedding")
        self.assertEqual(details.booking.end_date, dt.datetime(2026, 4, 1, 19, 0))

    def test_conflict_with_other_booking(self) -> None:
        self.book("2026-04-02T10:00", "2026-04-02T18:00")
        booking_id = self.book("2026-04-03T10:00", "2026-04-03T18:00", name="Jose Cruz")

        with self.assertRaises(SlotConflictError):
            self.system.update_booking(
                booking_id, booking=self.draft("2026-04-02T15:00", "2026-04-02T20:00")
            )
        booking = self.system.get_booking_details(booking_id).booking
        self.assertEqual(booking.start_date, dt.datetime(2026, 4, 3, 10, 0))

    def test_total_cannot_drop_below_paid(self) -> None:
        booking_id = self.book("2026-04-04T10:00", "2026-04-04T18:00", total=5000)
        with self.assertRaises(BelowPaidAmountError):
            self.system.update_booking(
                booking_id, booking=self.draft("2026-04-04T10:00", "2026-04-04T18:00", 4000)
            )

    def test_cancelled_booking_is_read_only(self) -> None:
        booking_id = self.book("2026-04-05T10:00", "2026-04-05T18:00")
        self.system.cancel_booking(booking_id)
        with self.assertRaises(ValidationError):
            self.system.update_booking(
                booking_id, booking=self.draft("2026-04-05T10:00", "2026-04-05T18:00", 6000)
            )

    def test_updates_client(self) -> None:
        booking_id = self.book("2026-04-06T10:00", "2026-04-06T18:00")
        details = self.system.update_booking(
            booking_id,
            booking=self.draft("2026-04-06T10:00", "2026-04-06T18:00"),
            client=ClientDraft(name="Maria S. Reyes", phone="+639123456789"),
        )
        self.assertEqual(details.client.name, "Maria S. Reyes")
        self.assertEqual(details.client.phone, "+639123456789")
        self.assertIsNone(details.client.email)

    def test_missing_booking(self) -> None:
        with self.assertRaises(NotFoundError):
            self.system.update_booking(
                404, booking=self.draft("2026-04-07T10:00", "2026-04-07T18:00")
            )


class PaymentTestCase(ResortTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.booking_id = self.book(
            "2026-05-01T10:00", "2026-05-01T18:00", total=3000, plan=PaymentPlan.partial(1000)
        )

    def test_overpayment_is_accepted(self) -> None:
        details = self.system.add_payment(self.booking_id, 2500)
        self.assertEqual(details.remaining_amount, -500)
        self.assertIs(details.status_label, StatusLabel.PAID)
        self.assertEqual(details.total_paid, 3500)

    def test_amount_must_be_positive(self) -> None:
        for amount in (0, -5, "abc", None, True):
            with self.subTest(amount=amount), self.assertRaises(ValidationError):
                self.system.add_payment(self.booking_id, amount)
        self.assertEqual(self.payment_count(self.booking_id), 1)

    def test_cancelled_booking_rejects_payments(self) -> None:
        self.system.cancel_booking(self.booking_id)
        with self.assertRaises(ValidationError):
            self.system.add_payment(self.booking_id, 100)

    def test_missing_booking(self) -> None:
        with self.assertRaises(NotFoundError):
            self.system.add_payment(999, 100)

    def test_pay_remaining_settles_balance(self) -> None:
        details = self.system.pay_remaining(self.booking_id)
        self.assertEqual(details.remaining_amount, 0)
        self.assertEqual(details.payments[-1].amount, 2000)

        with self.assertRaises(ValidationError):
            self.system.pay_remaining(self.booking_id)

    def test_concurrent_payments_are_all_recorded(self) -> None:
        threads = [
            threading.Thread(target=self.system.add_payment, args=(self.booking_id, 100))
            for _ in range(10)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        details = self.system.get_booking_details(self.booking_id)
        self.assertEqual(len(details.payments), 11)
        self.assertEqual(details.remaining_amount, 1000)


class QueryTestCase(ResortTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.paid = self.book("2026-06-01T10:00", "2026-06-01T18:00", name="Maria Santos")
        self.partial = self.book(
            "2026-06-03T10:00",
            "2026-06-04T12:00",
            total=3000,
            plan=PaymentPlan.partial(500),
            name="Jose Cruz",
        )
        self.cancelled = self.book("2026-06-05T10:00", "2026-06-05T18:00", name="Ana Reyes")
        self.system.cancel_booking(self.cancelled)

    def test_list_newest_first(self) -> None:
        ids = [item.booking.id for item in self.system.list_bookings()]
        self.assertEqual(ids, [self.cancelled, self.partial, self.paid])

    def test_search_by_client_name(self) -> None:
        results = self.system.list_bookings(search="  jose ")
        self.assertEqual([item.booking.id for item in results], [self.partial])

    def test_filter_by_status_label(self) -> None:
        results = self.system.list_bookings(status_label="paid")
        self.assertEqual([item.booking.id for item in results], [self.paid])
        # the label follows the balance, so a refunded cancellation reads as partial
        results = self.system.list_bookings(status_label=StatusLabel.PARTIAL)
        self.assertEqual([item.booking.id for item in results], [self.cancelled, self.partial])
        with self.assertRaises(ValidationError):
            self.system.list_bookings(status_label="overdue")

    def test_upcoming_skips_cancelled_and_past(self) -> None:
        upcoming = self.system.upcoming_bookings(now="2026-06-02T00:00")
        self.assertEqual([item.booking.id for item in upcoming], [self.partial])

        upcoming = self.system.upcoming_bookings(limit=1, now="2026-05-01T00:00")
        self.assertEqual([item.booking.id for item in upcoming], [self.paid])

        with self.assertRaises(ValidationError):
            self.system.upcoming_bookings(limit=-1)

    def test_calendar_spans_multi_day_bookings(self) -> None:
        schedule = self.system.calendar_month(2026, 6)
        self.assertEqual(len(schedule), 30)
        self.assertEqual([i.booking.id for i in schedule[dt.date(2026, 6, 1)]], [self.paid])
        self.assertEqual([i.booking.id for i in schedule[dt.date(2026, 6, 3)]], [self.partial])
        self.assertEqual([i.booking.id for i in schedule[dt.date(2026, 6, 4)]], [self.partial])
        self.assertEqual(schedule[dt.date(2026, 6, 5)], [])

    def test_delete_removes_payments(self) -> None:
        self.system.delete_booking(self.partial)
        self.assertEqual(self.payment_count(self.partial), 0)
        with self.assertRaises(NotFoundError):
            self.system.get_booking_details(self.partial)
        with self.assertRaises(NotFoundError):
            self.system.delete_booking(self.partial)

    def test_update_client(self) -> None:
        client_id = self.system.get_booking_details(self.paid).client.id
        client = self.system.update_client(
            client_id, client=ClientDraft(name="Maria Santos-Lim", email="m@example.com")
        )
        self.assertEqual(client.name, "Maria Santos-Lim")
        self.assertEqual(client.email, "m@example.com")
        with self.assertRaises(ValidationError):
            self.system.update_client(client_id, client=ClientDraft(name=""))


class ExpenseTestCase(ResortTestCase):
    def test_add_update_and_list_by_month(self) -> None:
        first = self.system.add_expense(
            category="Utilities", amount="1200", expense_date="2026-01-31", description=" Power "
        )
        self.system.add_expense(category="Supplies", amount=300, expense_date="2026-02-01")

        self.assertEqual(first.description, "Power")
        self.assertEqual(first.expense_date, dt.date(2026, 1, 31))
        self.assertEqual([e.id for e in self.system.list_expenses(month="2026-01")], [first.id])
        self.assertEqual(len(self.system.list_expenses()), 2)

        updated = self.system.update_expense(
            first.id, category="Maintenance", amount=900, expense_date="2026-01-15"
        )
        self.assertEqual(updated.category, "Maintenance")
        self.assertEqual(updated.amount, 900)
        self.assertIsNone(updated.description)

    def test_validation(self) -> None:
        with self.assertRaises(ValidationError):
            self.system.add_expense(category="Snacks", amount=10, expense_date="2026-01-01")
        with self.assertRaises(ValidationError):
            self.system.add_expense(category="Other", amount=0, expense_date="2026-01-01")
        with self.assertRaises(ValidationError):
            self.system.add_expense(category="Other", amount=10, expense_date="yesterday")
        with self.assertRaises(ValidationError):
            self.system.list_expenses(month="2026-13")
        with self.assertRaises(NotFoundError):
            self.system.get_expense(42)


class DatabaseOpenTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmpdir.name, "resort.db")

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_unopenable_path_raises_storage_error(self) -> None:
        missing = os.path.join(self.tmpdir.name, "no-such-dir", "resort.db")
        with self.assertRaises(StorageError):
            ResortSystem(missing)

    def test_data_survives_reopen(self) -> None:
        system = ResortSystem(self.db_path)
        system.add_expense(category="Staff", amount=500, expense_date="2026-01-01")
        system.close()

        system = ResortSystem(self.db_path)
        try:
            self.assertEqual(system.expenses_total(), 500)
        finally:
            system.close()

    def test_newer_schema_is_refused(self) -> None:
        ResortSystem(self.db_path).close()
        conn = sqlite3.connect(self.db_path)
        conn.execute("UPDATE metadata SET value = '99' WHERE key = 'schema_version'")
        conn.commit()
        conn.close()

        with self.assertRaises(StorageError) as ctx:
            ResortSystem(self.db_path)
        self.assertIn("schema version 99", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
