import tempfile
import unittest
from dataclasses import replace
from pathlib import Path

from rental_invoice.aggregation import aggregate_invoice
from rental_invoice.errors import TemplateUnavailable
from rental_invoice.templating import DocumentRenderer, EmbeddedAssets, TemplateData, data_uri

from .factories import make_booking, make_car, utc


def sample_invoice(**flags: bool):
    booking = make_booking(car=make_car(cancellation="50.00"), **flags)
    return aggregate_invoice([booking], issued_at=utc(2024, 2, 1, 9))


class TemplateDataTests(unittest.TestCase):
    def test_optional_fields_default_to_empty(self) -> None:
        data = TemplateData.from_invoice(sample_invoice(), currency_symbol="DH")

        self.assertEqual(data.company_logo, "")
        self.assertEqual(data.signature, "")
        self.assertEqual(data.place, "")
        self.assertEqual(data.deposit, "")
        self.assertEqual(data.date, "01/02/2024")
        self.assertEqual(data.total_ttc, "720.00")

    def test_assets_become_data_uris(self) -> None:
        data = TemplateData.from_invoice(sample_invoice(), EmbeddedAssets(logo=b"\x89PNG"))

        self.assertEqual(data.company_logo, "data:image/png;base64,iVBORw==")
        self.assertEqual(data_uri(None), "")


class DocumentRendererTests(unittest.TestCase):
    def test_renders_single_document_with_totals(self) -> None:
        html = DocumentRenderer().render(sample_invoice(), currency_symbol="DH")

        self.assertEqual(html.count("<html"), 1)
        self.assertIn("Dacia Logan Immatriculation 12345-A-6", html)
        self.assertIn("600.00 DH", html)
        self.assertIn("120.00 DH", html)
        self.assertIn("720.00 DH", html)
        self.assertNotIn("Cancellation Insurance", html)
        self.assertNotIn("<img", html)

    def test_additional_charges_are_listed_when_present(self) -> None:
        html = DocumentRenderer().render(sample_invoice(cancellation=True), currency_symbol="€")

        self.assertIn("Cancellation Insurance : 50.00 €", html)

    def test_signature_and_logo_embedded_when_supplied(self) -> None:
        assets = EmbeddedAssets(logo=b"logo", signature=b"sign")
        html = DocumentRenderer().render(sample_invoice(), assets=assets)

        self.assertIn(data_uri(b"logo"), html)
        self.assertIn(data_uri(b"sign"), html)

    def test_custom_template_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            Path(tmp, "mini.html").write_text(
                "<html>{{ data.invoice_number }}|{{ data.client.name }}|{{ data.total_ht }}</html>",
                encoding="utf-8",
            )
            html = DocumentRenderer(Path(tmp)).render(sample_invoice(), "mini.html")

        self.assertEqual(html, "<html>b1|Samir Alaoui|600.00</html>")

    def test_client_text_is_escaped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            Path(tmp, "mini.html").write_text("<html>{{ data.place }}</html>", encoding="utf-8")
            invoice = replace(sample_invoice(), place="<script>")
            html = DocumentRenderer(Path(tmp)).render(invoice, "mini.html")

        self.assertEqual(html, "<html>&lt;script&gt;</html>")

    def test_missing_template_is_fatal(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(TemplateUnavailable):
                DocumentRenderer(Path(tmp)).render(sample_invoice(), "absent.html")


if __name__ == "__main__":
    unittest.main()
