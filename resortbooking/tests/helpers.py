import unittest

from resortbooking.booking.models import BookingDraft, ClientDraft, PaymentPlan
from resortbooking.booking.system import ResortSystem


class ResortTestCase(unittest.TestCase):
    """Fresh in-memory system per test with a shorthand for booking."""

    def setUp(self) -> None:
        self.system = ResortSystem()

    def tearDown(self) -> None:
        self.system.close()

    def book(
        self,
        start: str,
        end: str,
        *,
        total: float = 5000,
        amenities=None,
        plan: PaymentPlan | None = None,
        name: str = "Maria Santos",
        event_type: str = "Birthday",
    ) -> int:
        return self.system.create_booking(
            client=ClientDraft(name=name, phone="09123456789", email="maria@example.com"),
            booking=BookingDraft(
                start_date=start,
                end_date=end,
                base_total_amount=total,
                event_type=event_type,
            ),
            amenities=amenities,
            payment_plan=plan,
        )

    def payment_count(self, booking_id: int) -> int:
        return len(self.system.store.query_payments(booking_id))
