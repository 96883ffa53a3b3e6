"""Balances, payment status labels and cancellation with conditional refund."""

from __future__ import annotations

import logging
from typing import Iterable

from .errors import ValidationError
from .models import (
    Booking,
    BookingDetails,
    CancellationResult,
    Payment,
    PaymentType,
    StatusLabel,
)
from .store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_REFUND_RATE = 0.5


def total_paid(payments: Iterable[Payment], *, include_refunds: bool = True) -> float:
    """Net sum of payment amounts; refunds are stored negative so they subtract."""

    return round(
        sum(
            payment.amount
            for payment in payments
            if include_refunds or payment.payment_type is not PaymentType.REFUND
        ),
        2,
    )


def remaining(effective_total: float, payments: Iterable[Payment]) -> float:
    return round(effective_total - total_paid(payments), 2)


def status(remaining_amount: float, payment_count: int) -> StatusLabel:
    """Presentation label, independent of the stored active/cancelled status."""

    if remaining_amount <= 0:
        return StatusLabel.PAID
    if payment_count > 0:
        return StatusLabel.PARTIAL
    return StatusLabel.PENDING


class Ledger:
    def __init__(self, store: EntityStore, *, refund_rate: float = DEFAULT_REFUND_RATE) -> None:
        self.store = store
        self.refund_rate = refund_rate

    def details_for(self, booking: Booking) -> BookingDetails:
        payments = self.store.query_payments(booking.id)
        balance = remaining(booking.effective_total, payments)
        return BookingDetails(
            booking=booking,
            client=self.store.get_client(booking.client_id),
            payments=payments,
            total_paid=total_paid(payments),
            remaining_amount=balance,
            status_label=status(balance, len(payments)),
        )

    def details(self, booking_id: int) -> BookingDetails:
        return self.details_for(self.store.get_booking(booking_id))

    def remaining_for(self, booking_id: int) -> float:
        booking = self.store.get_booking(booking_id)
        return remaining(booking.effective_total, self.store.query_payments(booking_id))

    def cancel(self, booking_id: int) -> CancellationResult:
        """Cancel an active booking, refunding part of a fully paid balance.

        A fully paid booking (nothing remaining and something collected) gets a
        refund payment of ``refund_rate`` times the collected amount. Partially
        paid or unpaid bookings get no refund. Cancelling twice is rejected.
        """

        with self.store.transaction():
            booking = self.store.get_booking(booking_id)
            if booking.is_cancelled:
                raise ValidationError("This booking is already cancelled.")

            payments = self.store.query_payments(booking_id)
            collected = total_paid(payments, include_refunds=False)
            balance = round(booking.effective_total - collected, 2)

            refund_amount = 0.0
            if balance <= 0 and collected > 0:
                refund_amount = round(collected * self.refund_rate, 2)
                self.store.insert_payment(
                    Payment(
                        id=None,
                        booking_id=booking_id,
                        amount=-refund_amount,
                        payment_type=PaymentType.REFUND,
                    )
                )

            self.store.update_booking(booking_id, {"status": "cancelled"})

        logger.info(
            "Cancelled booking %s (collected=%.2f, refund=%.2f)",
            booking_id,
            collected,
            refund_amount,
        )
        return CancellationResult(
            booking_id=booking_id,
            refunded=refund_amount > 0,
            refund_amount=refund_amount,
        )
