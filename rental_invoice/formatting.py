"""Formatting and coercion helpers shared by the invoice pipeline."""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from dateutil import parser as dateutil_parser
from dateutil import tz

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def round2(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def fmt_amount(amount: Decimal) -> str:
    return str(round2(amount))


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce a stored or client value to a finite Decimal, else ``default``."""
    if value is None or value == "":
        return default
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        result = None
    if result is None or not result.is_finite():
        logger.warning("Unreadable amount %r, using %s", value, default)
        return default
    return result


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Return the tzinfo for an IANA name, UTC when missing or unknown."""
    if not name:
        return timezone.utc
    zone = tz.gettz(name)
    if zone is None:
        logger.warning("Unknown timezone %r, falling back to UTC", name)
        return timezone.utc
    return zone


def parse_timestamp(raw: Any) -> datetime:
    """Parse an ISO timestamp or datetime; naive values are taken as UTC."""
    if isinstance(raw, datetime):
        value = raw
    else:
        value = dateutil_parser.isoparse(str(raw).strip())
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def fmt_date(value: datetime, zone: Optional[tzinfo] = None) -> str:
    """Format as 'dd/mm/YYYY' in the given zone (UTC by default)."""
    return value.astimezone(zone or timezone.utc).strftime("%d/%m/%Y")
