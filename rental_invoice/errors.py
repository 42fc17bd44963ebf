"""Error taxonomy for invoice preparation and rendering."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class InvoiceError(Exception):
    """Base error; ``status_code`` and ``code`` drive the HTTP response."""

    status_code = 500
    code = "invoice_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidInterval(InvoiceError):
    code = "invalid_interval"

    def __init__(self, booking_id: str, start: Any, end: Any) -> None:
        super().__init__(
            f"Booking {booking_id} has an invalid rental interval ({start} -> {end}).",
            details={"booking_id": booking_id},
        )
        self.booking_id = booking_id


class EmptyBookingSet(InvoiceError):
    status_code = 400
    code = "no_booking_ids"

    def __init__(self, message: str = "No booking IDs provided.") -> None:
        super().__init__(message)


class BookingNotFound(InvoiceError):
    status_code = 404
    code = "bookings_not_found"

    def __init__(self, missing_ids: Iterable[str]) -> None:
        self.missing_ids = list(missing_ids)
        super().__init__(
            f"Bookings not found: {', '.join(self.missing_ids)}",
            details={"missing_ids": self.missing_ids},
        )


class StorageUnavailable(InvoiceError):
    code = "storage_unavailable"


class AssetUnavailable(InvoiceError):
    """Raised by asset readers; callers degrade to an empty asset."""

    code = "asset_unavailable"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Asset {path!r} unavailable: {reason}", details={"path": path})
        self.path = path


class TemplateUnavailable(InvoiceError):
    code = "template_unavailable"


class EngineUnavailable(InvoiceError):
    code = "engine_unavailable"


class NavigationExhausted(InvoiceError):
    code = "navigation_exhausted"

    def __init__(self, target: str, attempts: int) -> None:
        super().__init__(
            f"Failed to navigate to {target} after {attempts} attempts",
            details={"target": target, "attempts": attempts},
        )
        self.target = target
        self.attempts = attempts


class RenderTimeout(InvoiceError):
    code = "render_timeout"
