"""Invoice orchestration: bookings -> invoice data -> HTML -> PDF."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence

from .aggregation import aggregate_invoice, collect_bookings
from .config import BOOKINGS_PATH, CDN_LICENSES, CDN_USERS, CURRENCY_SYMBOL, MAX_ASSET_BYTES, TEMPLATE_NAME
from .errors import AssetUnavailable, EmptyBookingSet, InvoiceError, StorageUnavailable
from .models import InvoiceData
from .session import RenderSession
from .storage import AssetReader, BookingStore, FileAssetReader, JsonBookingStore
from .templating import DocumentRenderer, EmbeddedAssets

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(
        self,
        store: Optional[BookingStore] = None,
        logos: Optional[AssetReader] = None,
        signatures: Optional[AssetReader] = None,
        renderer: Optional[DocumentRenderer] = None,
        session_factory: Callable[[], RenderSession] = RenderSession,
        template_name: str = TEMPLATE_NAME,
        clock: Optional[Callable[[], datetime]] = None,
        max_asset_bytes: int = MAX_ASSET_BYTES,
    ) -> None:
        self.store = store
        self.logos = logos or FileAssetReader(CDN_USERS)
        self.signatures = signatures or FileAssetReader(CDN_LICENSES)
        self.renderer = renderer or DocumentRenderer()
        self.session_factory = session_factory
        self.template_name = template_name
        self.clock = clock
        self.max_asset_bytes = max_asset_bytes

    def prepare_invoice_data(
        self,
        booking_ids: Sequence[str],
        client_timezone: Optional[str] = None,
    ) -> InvoiceData:
        if not booking_ids:
            raise EmptyBookingSet()
        if self.store is None:
            raise StorageUnavailable("No booking store configured.")
        bookings = collect_bookings(self.store, booking_ids)
        return aggregate_invoice(bookings, client_timezone, issued_at=self.clock() if self.clock else None)

    def _read_asset(self, reader: AssetReader, path: str, label: str) -> Optional[bytes]:
        try:
            content = reader.read_asset(path)
        except AssetUnavailable as exc:
            logger.error("[invoice.render] %s not found: %s", label, exc.message)
            return None
        if len(content) > self.max_asset_bytes:
            logger.error(
                "[invoice.render] %s %s skipped: %d bytes exceeds %d",
                label,
                path,
                len(content),
                self.max_asset_bytes,
            )
            return None
        return content

    def resolve_assets(self, invoice: InvoiceData, signed: bool) -> EmbeddedAssets:
        logo = None
        if invoice.supplier.avatar:
            logo = self._read_asset(self.logos, invoice.supplier.avatar, "Company logo")
        signature = None
        if signed:
            signature = self._read_asset(self.signatures, invoice.supplier.signature, "Signature")
        return EmbeddedAssets(logo=logo, signature=signature)

    def render_invoice(
        self,
        invoice: InvoiceData,
        signed: bool = False,
        currency_symbol: Optional[str] = None,
    ) -> bytes:
        assets = self.resolve_assets(invoice, signed)
        try:
            markup = self.renderer.render(
                invoice,
                self.template_name,
                assets,
                currency_symbol or CURRENCY_SYMBOL,
            )
            with self.session_factory() as session:
                pdf = session.render(markup)
        except InvoiceError as exc:
            logger.error("[invoice.render] Invoice %s failed: %s", invoice.invoice_number, exc.message)
            raise
        except Exception:
            logger.exception("[invoice.render] Invoice %s failed unexpectedly", invoice.invoice_number)
            raise
        logger.info("[invoice.render] Invoice %s rendered (%d bytes)", invoice.invoice_number, len(pdf))
        return pdf


def build_service(store: Optional[BookingStore] = None) -> InvoiceService:
    return InvoiceService(store=store)


def render_invoice_job(payload: Dict[str, Any]) -> bytes:
    """Process-pool entry point; ``payload`` must stay picklable."""
    invoice = InvoiceData.from_dict(payload["data"])
    return build_service().render_invoice(
        invoice,
        signed=bool(payload.get("signed")),
        currency_symbol=payload.get("currencySymbol"),
    )


def load_booking_store() -> BookingStore:
    return JsonBookingStore.from_file(BOOKINGS_PATH)
