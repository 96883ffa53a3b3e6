"""Create, update, payment and cancellation workflows for bookings."""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Any, Iterable, Mapping

from . import amenities as amenity_calculator
from .availability import AvailabilityChecker
from .errors import BelowPaidAmountError, SlotConflictError, ValidationError
from .ledger import Ledger, total_paid
from .models import (
    AmenityLine,
    Booking,
    BookingDetails,
    BookingDraft,
    BookingStatus,
    CancellationResult,
    Client,
    ClientDraft,
    Payment,
    PaymentPlan,
    PaymentType,
)
from .store import EntityStore, parse_timestamp

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "This date and time range is already booked. Please choose another schedule."

AmenityRows = Iterable[Mapping[str, Any] | AmenityLine] | None


def _positive_amount(value: Any, message: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(message)
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(message) from exc
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError(message)
    return amount


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class BookingOrchestrator:
    """Sequences availability, amenities, storage and ledger as one unit."""

    def __init__(
        self,
        store: EntityStore,
        availability: AvailabilityChecker,
        ledger: Ledger,
    ) -> None:
        self.store = store
        self.availability = availability
        self.ledger = ledger

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------
    def _validate_client(self, draft: ClientDraft) -> Client:
        name = (draft.name or "").strip()
        if not name:
            raise ValidationError("Client name is required.")
        return Client(
            id=None,
            name=name,
            phone=_clean_optional(draft.phone),
            email=_clean_optional(draft.email),
        )

    def _validate_booking(self, draft: BookingDraft) -> tuple[dt.datetime, dt.datetime, float]:
        if not draft.start_date or not draft.end_date:
            raise ValidationError("Start and end date & time are required.")
        start = parse_timestamp(draft.start_date, self.store.tz)
        end = parse_timestamp(draft.end_date, self.store.tz)
        if end <= start:
            raise ValidationError("End date & time must be after the start date & time.")
        base_total = _positive_amount(
            draft.base_total_amount, "Total amount must be a number greater than 0."
        )
        if draft.number_of_person is not None:
            count = draft.number_of_person
            if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
                raise ValidationError("Number of persons must be a whole number greater than 0.")
        return start, end, base_total

    def _initial_payment(self, plan: PaymentPlan, effective_total: float) -> Payment:
        payment_type = PaymentType(plan.payment_type)
        if payment_type is PaymentType.FULL:
            amount = effective_total
        elif payment_type is PaymentType.PARTIAL:
            amount = _positive_amount(
                plan.amount, "Initial payment must be a number greater than 0."
            )
            if amount > effective_total:
                raise ValidationError("Initial payment cannot be greater than the total amount.")
        else:
            raise ValidationError("Refunds are only issued by cancelling a booking.")
        return Payment(id=None, booking_id=0, amount=round(amount, 2), payment_type=payment_type)

    def _ensure_available(
        self, start: dt.datetime, end: dt.datetime, exclude_booking_id: int | None = None
    ) -> None:
        if not self.availability.is_slot_available(start, end, exclude_booking_id):
            logger.warning("Rejected %s - %s: slot already booked", start, end)
            raise SlotConflictError(SLOT_TAKEN_MESSAGE)

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------
    def create(
        self,
        client: ClientDraft,
        booking: BookingDraft,
        amenity_rows: AmenityRows = None,
        payment_plan: PaymentPlan | None = None,
    ) -> int:
        """Persist a client, a booking and its initial payment atomically."""

        client_record = self._validate_client(client)
        start, end, base_total = self._validate_booking(booking)
        lines = amenity_calculator.normalize(amenity_rows)
        effective_total = base_total + amenity_calculator.amenities_total(lines)
        payment = self._initial_payment(payment_plan or PaymentPlan.full(), effective_total)

        with self.store.transaction():
            self._ensure_available(start, end)
            client_id = self.store.insert_client(client_record)
            booking_id = self.store.insert_booking(
                Booking(
                    id=None,
                    client_id=client_id,
                    event_type=(booking.event_type or "").strip(),
                    number_of_person=booking.number_of_person,
                    start_date=start,
                    end_date=end,
                    base_total_amount=base_total,
                    extra_amenities=lines,
                    status=BookingStatus.ACTIVE,
                )
            )
            payment.booking_id = booking_id
            self.store.insert_payment(payment)

        logger.info(
            "Created booking %s for client %s (total=%.2f, %s payment=%.2f)",
            booking_id,
            client_id,
            effective_total,
            payment.payment_type.value,
            payment.amount,
        )
        return booking_id

    def update(
        self,
        booking_id: int,
        booking: BookingDraft,
        amenity_rows: AmenityRows = None,
        client: ClientDraft | None = None,
    ) -> BookingDetails:
        """Edit an active booking and, optionally, its client's details."""

        start, end, base_total = self._validate_booking(booking)
        lines = amenity_calculator.normalize(amenity_rows)
        effective_total = base_total + amenity_calculator.amenities_total(lines)
        client_record = self._validate_client(client) if client is not None else None

        with self.store.transaction():
            existing = self.store.get_booking(booking_id)
            if existing.is_cancelled:
                raise ValidationError("A cancelled booking can no longer be edited.")
            self._ensure_available(start, end, exclude_booking_id=booking_id)

            collected = total_paid(
                self.store.query_payments(booking_id), include_refunds=False
            )
            if effective_total < collected:
                logger.warning(
                    "Rejected update of booking %s: total %.2f below paid %.2f",
                    booking_id,
                    effective_total,
                    collected,
                )
                raise BelowPaidAmountError(
                    "Total amount cannot be less than the amount already paid."
                )

            if client_record is not None:
                self.store.update_client(
                    existing.client_id,
                    {
                        "name": client_record.name,
                        "phone": client_record.phone,
                        "email": client_record.email,
                    },
                )
            self.store.update_booking(
                booking_id,
                {
                    "event_type": (booking.event_type or "").strip(),
                    "number_of_person": booking.number_of_person,
                    "start_date": start,
                    "end_date": end,
                    "base_total_amount": base_total,
                    "extra_amenities": lines,
                },
            )
            details = self.ledger.details(booking_id)

        logger.info(
            "Updated booking %s (total=%.2f, remaining=%.2f)",
            booking_id,
            effective_total,
            details.remaining_amount,
        )
        return details

    def add_payment(
        self,
        booking_id: int,
        amount: Any,
        payment_type: PaymentType | str = PaymentType.PARTIAL,
    ) -> BookingDetails:
        """Append a collection to an active booking; overpayment is allowed."""

        value = _positive_amount(amount, "Payment amount must be a number greater than 0.")
        payment_type = PaymentType(payment_type)
        if payment_type is PaymentType.REFUND:
            raise ValidationError("Refunds are only issued by cancelling a booking.")

        with self.store.transaction():
            booking = self.store.get_booking(booking_id)
            if booking.is_cancelled:
                raise ValidationError("Payments cannot be added to a cancelled booking.")
            self.store.insert_payment(
                Payment(
                    id=None,
                    booking_id=booking_id,
                    amount=round(value, 2),
                    payment_type=payment_type,
                )
            )
            details = self.ledger.details_for(booking)

        logger.info(
            "Recorded %.2f payment on booking %s (remaining=%.2f)",
            value,
            booking_id,
            details.remaining_amount,
        )
        return details

    def pay_remaining(self, booking_id: int) -> BookingDetails:
        """Settle exactly the outstanding balance."""

        with self.store.transaction():
            balance = self.ledger.remaining_for(booking_id)
            if balance <= 0:
                raise ValidationError("This booking has nothing left to pay.")
            return self.add_payment(booking_id, balance)

    def cancel(self, booking_id: int) -> CancellationResult:
        return self.ledger.cancel(booking_id)
