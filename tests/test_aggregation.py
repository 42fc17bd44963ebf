import unittest
from decimal import Decimal
from typing import List, Sequence

from rental_invoice.aggregation import aggregate_invoice, collect_bookings, compute_tva
from rental_invoice.errors import BookingNotFound, EmptyBookingSet
from rental_invoice.models import BookingRecord, Party

from .factories import DRIVER, SUPPLIER, make_booking, utc


class RecordingStore:
    def __init__(self, bookings: Sequence[BookingRecord]) -> None:
        self.bookings = {booking.id: booking for booking in bookings}
        self.calls: List[List[str]] = []

    def find_bookings(self, ids: Sequence[str]) -> List[BookingRecord]:
        self.calls.append(list(ids))
        # Store order deliberately differs from the request.
        return [self.bookings[i] for i in sorted(ids) if i in self.bookings]


class CollectBookingsTests(unittest.TestCase):
    def test_preserves_requested_order(self) -> None:
        store = RecordingStore([make_booking("a"), make_booking("b"), make_booking("c")])

        bookings = collect_bookings(store, ["c", "a", "b"])

        self.assertEqual([b.id for b in bookings], ["c", "a", "b"])
        self.assertEqual(len(store.calls), 1)

    def test_duplicate_ids_are_collapsed(self) -> None:
        store = RecordingStore([make_booking("a")])

        bookings = collect_bookings(store, ["a", "a"])

        self.assertEqual([b.id for b in bookings], ["a"])

    def test_missing_id_fails_whole_aggregation(self) -> None:
        store = RecordingStore([make_booking("a")])

        with self.assertRaises(BookingNotFound) as ctx:
            collect_bookings(store, ["a", "zz"])

        self.assertEqual(ctx.exception.missing_ids, ["zz"])
        self.assertEqual(ctx.exception.status_code, 404)

    def test_empty_ids_never_reach_store(self) -> None:
        store = RecordingStore([])

        with self.assertRaises(EmptyBookingSet):
            collect_bookings(store, [])

        self.assertEqual(store.calls, [])


class AggregateInvoiceTests(unittest.TestCase):
    def test_totals_for_two_bookings(self) -> None:
        invoice = aggregate_invoice(
            [make_booking("first", price="600.00"), make_booking("second", price="400.00")],
            issued_at=utc(2024, 2, 1),
        )
        data = invoice.to_dict()

        self.assertEqual(data["totalHT"], "1000.00")
        self.assertEqual(data["tvaPercentage"], 20)
        self.assertEqual(data["tvaAmount"], "200.00")
        self.assertEqual(data["totalTTC"], "1200.00")
        self.assertEqual(data["invoiceNumber"], "first")
        self.assertEqual(data["place"], "")
        self.assertEqual(len(data["items"]), 2)

    def test_subtotal_is_exact_sum_of_prices(self) -> None:
        prices = ["0.10", "0.20", "333.335", "199.999"]
        invoice = aggregate_invoice([make_booking(str(i), price=p) for i, p in enumerate(prices)])

        self.assertEqual(invoice.total_ht, sum(Decimal(p) for p in prices))
        self.assertEqual(invoice.tva_amount, compute_tva(invoice.total_ht))
        self.assertEqual(invoice.total_ttc, invoice.total_ht + invoice.tva_amount)

    def test_tva_rounds_to_cents(self) -> None:
        self.assertEqual(compute_tva(Decimal("0")), Decimal("0.00"))
        self.assertEqual(compute_tva(Decimal("10.03")), Decimal("2.01"))
        self.assertEqual(compute_tva(Decimal("10.025")), Decimal("2.01"))

    def test_identity_comes_from_first_booking(self) -> None:
        other = Party(name="Other Rentals")
        invoice = aggregate_invoice([make_booking("a"), make_booking("b", supplier=other)])

        self.assertEqual(invoice.supplier, SUPPLIER)
        self.assertEqual(invoice.client, DRIVER)
        self.assertEqual(invoice.to_dict()["supplier"]["companyLogo"], "atlas.png")
        self.assertEqual(invoice.to_dict()["client"], {"name": "Samir Alaoui", "ice": "ICE-42"})

    def test_empty_input_is_rejected(self) -> None:
        with self.assertRaises(EmptyBookingSet):
            aggregate_invoice([])

    def test_items_keep_input_order(self) -> None:
        invoice = aggregate_invoice([make_booking("x", price="100"), make_booking("y", price="200")])

        self.assertEqual([item.total for item in invoice.items], [Decimal("100"), Decimal("200")])


if __name__ == "__main__":
    unittest.main()
