"""Combine bookings into one invoice."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from .errors import BookingNotFound, EmptyBookingSet
from .formatting import resolve_timezone, round2
from .line_items import build_line_item
from .models import BookingRecord, InvoiceData
from .storage import BookingStore

logger = logging.getLogger(__name__)

TVA_PERCENTAGE = 20


def collect_bookings(store: BookingStore, booking_ids: Sequence[str]) -> List[BookingRecord]:
    """Fetch bookings in requested order; every id must resolve."""
    requested = list(dict.fromkeys(str(booking_id) for booking_id in booking_ids))
    if not requested:
        raise EmptyBookingSet()

    found = {booking.id: booking for booking in store.find_bookings(requested)}
    missing = [booking_id for booking_id in requested if booking_id not in found]
    if missing:
        raise BookingNotFound(missing)
    return [found[booking_id] for booking_id in requested]


def compute_tva(total_ht: Decimal) -> Decimal:
    return round2(total_ht * TVA_PERCENTAGE / 100)


def aggregate_invoice(
    bookings: Sequence[BookingRecord],
    client_timezone: Optional[str] = None,
    issued_at: Optional[datetime] = None,
) -> InvoiceData:
    if not bookings:
        raise EmptyBookingSet()

    zone = resolve_timezone(client_timezone)
    items = tuple(build_line_item(booking, zone) for booking in bookings)
    total_ht = sum((booking.price for booking in bookings), Decimal("0"))
    tva_amount = compute_tva(total_ht)

    # Supplier and client come from the first booking.
    first = bookings[0]
    suppliers = {booking.supplier for booking in bookings}
    if len(suppliers) > 1:
        logger.warning(
            "Invoice %s mixes %d suppliers; using the first booking's supplier",
            first.id,
            len(suppliers),
        )

    return InvoiceData(
        invoice_number=first.id,
        date=issued_at or datetime.now(timezone.utc),
        supplier=first.supplier,
        client=first.driver,
        items=items,
        total_ht=total_ht,
        tva_percentage=TVA_PERCENTAGE,
        tva_amount=tva_amount,
        total_ttc=total_ht + tva_amount,
    )
