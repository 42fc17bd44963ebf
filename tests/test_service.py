import pickle
import unittest
from typing import Dict, List, Optional, Sequence
from unittest.mock import patch

from rental_invoice.errors import AssetUnavailable, BookingNotFound, EmptyBookingSet, NavigationExhausted
from rental_invoice.models import BookingRecord
from rental_invoice.service import InvoiceService, render_invoice_job
from rental_invoice.session import RenderSession
from rental_invoice.templating import data_uri

from .factories import FakeEngine, make_booking, utc


class FakeStore:
    def __init__(self, bookings: Sequence[BookingRecord]) -> None:
        self.bookings = {b.id: b for b in bookings}
        self.calls = 0

    def find_bookings(self, ids: Sequence[str]) -> List[BookingRecord]:
        self.calls += 1
        return [self.bookings[i] for i in ids if i in self.bookings]


class FakeAssets:
    def __init__(self, files: Optional[Dict[str, bytes]] = None) -> None:
        self.files = files or {}
        self.requested: List[str] = []

    def read_asset(self, path: str) -> bytes:
        self.requested.append(path)
        if path not in self.files:
            raise AssetUnavailable(path, "not found")
        return self.files[path]


class CapturingSessionFactory:
    def __init__(self, engine: FakeEngine) -> None:
        self.engine = engine
        self.markup: List[str] = []

    def __call__(self) -> RenderSession:
        factory = self

        class Session(RenderSession):
            def render(self, markup: str) -> bytes:
                factory.markup.append(markup)
                return super().render(markup)

        return Session(launcher=self.engine.launcher)


def make_service(engine: Optional[FakeEngine] = None, store=None, logos=None, signatures=None):
    engine = engine or FakeEngine()
    sessions = CapturingSessionFactory(engine)
    service = InvoiceService(
        store=store,
        logos=logos or FakeAssets({"atlas.png": b"logo-bytes"}),
        signatures=signatures or FakeAssets({"atlas-sign.png": b"sign-bytes"}),
        session_factory=sessions,
        clock=lambda: utc(2024, 3, 1),
    )
    return service, sessions


class PrepareInvoiceDataTests(unittest.TestCase):
    def test_empty_ids_fail_without_storage_call(self) -> None:
        store = FakeStore([])
        service, _ = make_service(store=store)

        with self.assertRaises(EmptyBookingSet) as ctx:
            service.prepare_invoice_data([])

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(store.calls, 0)

    def test_unknown_booking_is_not_found(self) -> None:
        service, _ = make_service(store=FakeStore([make_booking("a")]))

        with self.assertRaises(BookingNotFound):
            service.prepare_invoice_data(["a", "b"])

    def test_prepares_invoice(self) -> None:
        store = FakeStore([make_booking("a", price="600.00"), make_booking("b", price="400.00")])
        service, _ = make_service(store=store)

        invoice = service.prepare_invoice_data(["a", "b"], "Europe/Paris")

        self.assertEqual(invoice.to_dict()["totalTTC"], "1200.00")
        self.assertEqual(invoice.date, utc(2024, 3, 1))
        self.assertEqual(store.calls, 1)


class RenderInvoiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.invoice = InvoiceService(store=FakeStore([make_booking()])).prepare_invoice_data(["b1"])

    def test_unsigned_invoice_never_embeds_signature(self) -> None:
        signatures = FakeAssets({"atlas-sign.png": b"sign-bytes"})
        service, sessions = make_service(signatures=signatures)

        pdf = service.render_invoice(self.invoice, signed=False, currency_symbol="DH")

        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertEqual(signatures.requested, [])
        self.assertIn(data_uri(b"logo-bytes"), sessions.markup[0])
        self.assertNotIn(data_uri(b"sign-bytes"), sessions.markup[0])
        self.assertEqual(sessions.engine.close_count, 1)

    def test_signed_invoice_embeds_signature(self) -> None:
        service, sessions = make_service()

        service.render_invoice(self.invoice, signed=True)

        self.assertIn(data_uri(b"sign-bytes"), sessions.markup[0])

    def test_missing_assets_degrade_to_empty(self) -> None:
        service, sessions = make_service(logos=FakeAssets(), signatures=FakeAssets())

        with self.assertLogs("rental_invoice.service", level="ERROR") as logs:
            pdf = service.render_invoice(self.invoice, signed=True)

        self.assertTrue(pdf)
        self.assertNotIn("<img", sessions.markup[0])
        self.assertEqual(len(logs.records), 2)

    def test_oversized_assets_are_left_out(self) -> None:
        service, sessions = make_service()
        service.max_asset_bytes = 4

        with self.assertLogs("rental_invoice.service", level="ERROR") as logs:
            pdf = service.render_invoice(self.invoice, signed=True)

        self.assertTrue(pdf)
        self.assertNotIn("<img", sessions.markup[0])
        self.assertIn("exceeds 4", logs.output[0])

    def test_navigation_failure_propagates_and_releases(self) -> None:
        engine = FakeEngine(goto_errors=[RuntimeError("Navigating frame was detached")] * 3)
        service, _ = make_service(engine=engine)

        with self.assertLogs("rental_invoice.service", level="ERROR"):
            with self.assertRaises(NavigationExhausted):
                service.render_invoice(self.invoice)

        self.assertEqual(engine.close_count, 1)

    def test_unexpected_failure_is_logged_and_releases(self) -> None:
        engine = FakeEngine(pdf_error=ValueError("boom"))
        service, _ = make_service(engine=engine)

        with self.assertLogs("rental_invoice.service", level="ERROR"):
            with self.assertRaises(ValueError):
                service.render_invoice(self.invoice)

        self.assertEqual(engine.close_count, 1)


class RenderInvoiceJobTests(unittest.TestCase):
    def test_job_payload_renders_through_worker_entry_point(self) -> None:
        invoice = InvoiceService(store=FakeStore([make_booking()])).prepare_invoice_data(["b1"])
        payload = pickle.loads(pickle.dumps({"data": invoice.to_dict(), "signed": True, "currencySymbol": "EUR"}))
        service, sessions = make_service()

        with patch("rental_invoice.service.build_service", return_value=service):
            pdf = render_invoice_job(payload)

        self.assertTrue(pdf.startswith(b"%PDF"))
        self.assertEqual(sessions.engine.close_count, 1)
        self.assertIn("Dacia Logan Immatriculation 12345-A-6", sessions.markup[0])
        self.assertIn("600.00 EUR", sessions.markup[0])
        self.assertIn(data_uri(b"sign-bytes"), sessions.markup[0])


if __name__ == "__main__":
    unittest.main()
