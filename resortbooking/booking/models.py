"""Typed records for the resort booking ledger."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class BookingStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    REFUND = "refund"


class StatusLabel(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


EXPENSE_CATEGORIES = (
    "Supplies",
    "Utilities",
    "Maintenance",
    "Staff",
    "Marketing",
    "Taxes",
    "Other",
)


@dataclass(slots=True)
class Client:
    id: Optional[int]
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[dt.datetime] = None


@dataclass(frozen=True, slots=True)
class AmenityLine:
    item: str
    price: float
    quantity: float

    @property
    def total(self) -> float:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "item": self.item,
            "price": self.price,
            "quantity": self.quantity,
            "total": self.total,
        }


@dataclass(slots=True)
class Booking:
    id: Optional[int]
    client_id: int
    event_type: str
    start_date: dt.datetime
    end_date: dt.datetime
    base_total_amount: float
    number_of_person: Optional[int] = None
    extra_amenities: list[AmenityLine] = field(default_factory=list)
    status: BookingStatus = BookingStatus.ACTIVE
    created_at: Optional[dt.datetime] = None

    @property
    def amenities_total(self) -> float:
        return sum(line.total for line in self.extra_amenities)

    @property
    def effective_total(self) -> float:
        return self.base_total_amount + self.amenities_total

    @property
    def is_cancelled(self) -> bool:
        return self.status is BookingStatus.CANCELLED


@dataclass(slots=True)
class Payment:
    id: Optional[int]
    booking_id: int
    amount: float
    payment_type: PaymentType
    created_at: Optional[dt.datetime] = None


@dataclass(slots=True)
class Expense:
    id: Optional[int]
    category: str
    amount: float
    expense_date: dt.date
    description: Optional[str] = None
    created_at: Optional[dt.datetime] = None


@dataclass(frozen=True, slots=True)
class PaymentPlan:
    """Initial payment taken when a booking is created."""

    payment_type: PaymentType
    amount: Optional[float] = None

    @classmethod
    def full(cls) -> "PaymentPlan":
        return cls(PaymentType.FULL)

    @classmethod
    def partial(cls, amount: float) -> "PaymentPlan":
        return cls(PaymentType.PARTIAL, amount)


@dataclass(frozen=True, slots=True)
class CancellationResult:
    booking_id: int
    refunded: bool
    refund_amount: float


@dataclass(slots=True)
class BookingDetails:
    booking: Booking
    client: Client
    payments: list[Payment]
    total_paid: float
    remaining_amount: float
    status_label: StatusLabel

    @property
    def amenities_total(self) -> float:
        return self.booking.amenities_total

    @property
    def effective_total(self) -> float:
        return self.booking.effective_total


@dataclass(frozen=True, slots=True)
class MonthlyStats:
    total_bookings: int
    total_revenue: float
    pending_payments: float
    fully_paid: int


@dataclass(frozen=True, slots=True)
class MonthlyRevenue:
    month: str
    revenue: float


@dataclass(frozen=True, slots=True)
class SalesRow:
    booking_id: int
    client_name: str
    event_type: str
    start_date: dt.datetime
    end_date: dt.datetime
    total_amount: float
    total_paid: float
    amenities_total: float
    remaining_amount: float
    status: BookingStatus
    created_at: dt.datetime


@dataclass(slots=True)
class ClientDraft:
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(slots=True)
class BookingDraft:
    start_date: str | dt.datetime
    end_date: str | dt.datetime
    base_total_amount: float
    event_type: str = ""
    number_of_person: Optional[int] = None
