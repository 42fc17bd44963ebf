"""Booking record to invoice line item."""

from __future__ import annotations

from datetime import timedelta, tzinfo
from typing import Optional

from .errors import InvalidInterval
from .formatting import fmt_date
from .models import AdditionalCharge, BookingRecord, LineItem

ONE_DAY = timedelta(days=1)


def rental_days(booking: BookingRecord) -> int:
    """Whole rental days, any started day counting as a full one."""
    interval = booking.to_date - booking.from_date
    if interval <= timedelta(0):
        raise InvalidInterval(booking.id, booking.from_date, booking.to_date)
    days, remainder = divmod(interval, ONE_DAY)
    return days + 1 if remainder else days


def build_designation(booking: BookingRecord, zone: Optional[tzinfo] = None) -> str:
    car = booking.car
    return (
        f"{car.brand} {car.model} Immatriculation {car.plate_number} "
        f"De {fmt_date(booking.from_date, zone)} au {fmt_date(booking.to_date, zone)}"
    )


def build_line_item(booking: BookingRecord, zone: Optional[tzinfo] = None) -> LineItem:
    days = rental_days(booking)
    charges = tuple(
        AdditionalCharge(name=label, amount=booking.car.surcharge(option))
        for option, label in booking.selected_options()
    )
    return LineItem(
        designation=build_designation(booking, zone),
        days=days,
        price_per_day=booking.price / days,
        total=booking.price,
        additional_charges=charges,
    )
