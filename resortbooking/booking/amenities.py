"""Amenity line normalisation and subtotals."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Sequence

from .errors import EmptyItemError, InvalidPriceError, InvalidQuantityError
from .models import AmenityLine


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_number(value: Any) -> float | None:
    if _is_blank(value) or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _field(row: Mapping[str, Any] | AmenityLine, name: str) -> Any:
    if isinstance(row, AmenityLine):
        return getattr(row, name)
    return row.get(name)


def normalize(raw_lines: Iterable[Mapping[str, Any] | AmenityLine] | None) -> list[AmenityLine]:
    """Validate raw amenity rows and return them as :class:`AmenityLine` values.

    A row whose fields are all blank is dropped. Any other row must name an
    item, carry a price of 0 or more and a quantity greater than 0. The first
    failing row raises; nothing is partially applied.
    """

    lines: list[AmenityLine] = []
    for index, row in enumerate(raw_lines or ()):
        raw_item = _field(row, "item")
        raw_price = _field(row, "price")
        raw_quantity = _field(row, "quantity")
        if all(_is_blank(value) for value in (raw_item, raw_price, raw_quantity)):
            continue

        item = "" if raw_item is None else str(raw_item).strip()
        if not item:
            raise EmptyItemError("Please choose or enter an amenity item.", row=index)

        price = _to_number(raw_price)
        if price is None or price < 0:
            raise InvalidPriceError("Amenity price must be a number 0 or greater.", row=index)

        quantity = _to_number(raw_quantity)
        if quantity is None or quantity <= 0:
            raise InvalidQuantityError(
                "Amenity quantity must be a number greater than 0.", row=index
            )
        if quantity.is_integer():
            quantity = int(quantity)

        lines.append(AmenityLine(item=item, price=price, quantity=quantity))
    return lines


def subtotal(lines: Sequence[Mapping[str, Any] | AmenityLine]) -> float:
    """Sum line totals for live display; rows that do not compute count as 0."""

    total = 0.0
    for row in lines:
        price = _to_number(_field(row, "price"))
        quantity = _to_number(_field(row, "quantity"))
        if price is None or quantity is None:
            continue
        line_total = price * quantity
        if math.isfinite(line_total):
            total += line_total
    return total


def amenities_total(lines: Sequence[AmenityLine]) -> float:
    return sum(line.total for line in lines)
