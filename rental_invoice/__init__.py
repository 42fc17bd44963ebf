"""Public package API for rental invoice generation."""

from __future__ import annotations

from typing import Optional, Sequence

from .models import InvoiceData


def prepare_invoice_data(
    booking_ids: Sequence[str],
    client_timezone: Optional[str] = None,
) -> InvoiceData:
    from .service import InvoiceService, load_booking_store

    store = load_booking_store() if booking_ids else None
    return InvoiceService(store=store).prepare_invoice_data(booking_ids, client_timezone)


def render_invoice(
    invoice: InvoiceData,
    signed: bool = False,
    currency_symbol: Optional[str] = None,
) -> bytes:
    from .service import InvoiceService

    return InvoiceService().render_invoice(invoice, signed=signed, currency_symbol=currency_symbol)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = ["InvoiceData", "prepare_invoice_data", "render_invoice", "run"]
