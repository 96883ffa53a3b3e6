"""Slot conflict detection over active bookings."""

from __future__ import annotations

import datetime as dt
import logging

from .models import BookingStatus
from .store import EntityStore, parse_timestamp

logger = logging.getLogger(__name__)


def intervals_overlap(
    start_a: dt.datetime, end_a: dt.datetime, start_b: dt.datetime, end_b: dt.datetime
) -> bool:
    """Half-open ``[start, end)`` overlap; touching endpoints do not conflict."""

    return start_a < end_b and end_a > start_b


class AvailabilityChecker:
    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def conflicts(
        self,
        start_date: str | dt.datetime,
        end_date: str | dt.datetime,
        exclude_booking_id: int | None = None,
    ) -> list[int]:
        """Return ids of active bookings overlapping ``[start_date, end_date)``."""

        start = parse_timestamp(start_date, self.store.tz)
        end = parse_timestamp(end_date, self.store.tz)
        rows = self.store.query_bookings(
            status=BookingStatus.ACTIVE,
            overlapping=(start, end),
            exclude_id=exclude_booking_id,
            order_by="start_date, id",
        )
        return [booking.id for booking in rows]

    def is_slot_available(
        self,
        start_date: str | dt.datetime,
        end_date: str | dt.datetime,
        exclude_booking_id: int | None = None,
    ) -> bool:
        clashes = self.conflicts(start_date, end_date, exclude_booking_id)
        if clashes:
            logger.debug("Range %s - %s clashes with bookings %s", start_date, end_date, clashes)
        return not clashes
