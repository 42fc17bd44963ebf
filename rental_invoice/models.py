"""Invoice domain records and their JSON (camelCase) representation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .formatting import fmt_amount, parse_timestamp, to_decimal

# (attribute, document key, charge label) in canonical invoice order.
BOOKING_OPTIONS: Tuple[Tuple[str, str, str], ...] = (
    ("cancellation", "cancellation", "Cancellation Insurance"),
    ("amendments", "amendments", "Amendments Insurance"),
    ("collision_damage_waiver", "collisionDamageWaiver", "Collision Damage Waiver"),
    ("theft_protection", "theftProtection", "Theft Protection"),
    ("full_insurance", "fullInsurance", "Full Insurance"),
    ("additional_driver", "additionalDriver", "Additional Driver"),
)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _mapping(value: Any, what: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be an object.")
    return value


@dataclass(frozen=True)
class Party:
    name: str = ""
    ice: str = ""
    bio: str = ""
    avatar: str = ""
    signature: str = ""

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Party":
        doc = _mapping(doc, "party")
        return cls(
            name=_text(doc.get("fullName") or doc.get("name")),
            ice=_text(doc.get("ice")),
            bio=_text(doc.get("bio")),
            avatar=_text(doc.get("avatar") or doc.get("companyLogo")),
            signature=_text(doc.get("signature")),
        )


@dataclass(frozen=True)
class Car:
    brand: str
    model: str
    plate_number: str
    cancellation: Decimal = Decimal("0")
    amendments: Decimal = Decimal("0")
    collision_damage_waiver: Decimal = Decimal("0")
    theft_protection: Decimal = Decimal("0")
    full_insurance: Decimal = Decimal("0")
    additional_driver: Decimal = Decimal("0")

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> "Car":
        doc = doc or {}
        surcharges = {attr: to_decimal(doc.get(key)) for attr, key, _ in BOOKING_OPTIONS}
        return cls(
            brand=_text(doc.get("brand")),
            model=_text(doc.get("carModel") or doc.get("model")),
            plate_number=_text(doc.get("plateNumber")),
            **surcharges,
        )

    def surcharge(self, option: str) -> Decimal:
        return getattr(self, option)


@dataclass(frozen=True)
class BookingRecord:
    id: str
    from_date: datetime
    to_date: datetime
    price: Decimal
    car: Car
    driver: Party
    supplier: Party
    cancellation: bool = False
    amendments: bool = False
    collision_damage_waiver: bool = False
    theft_protection: bool = False
    full_insurance: bool = False
    additional_driver: bool = False

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "BookingRecord":
        """Build from a populated booking document (car, driver, supplier embedded)."""
        flags = {attr: bool(doc.get(key)) for attr, key, _ in BOOKING_OPTIONS}
        return cls(
            id=_text(doc.get("_id") or doc.get("id")),
            from_date=parse_timestamp(doc["from"]),
            to_date=parse_timestamp(doc["to"]),
            price=to_decimal(doc.get("price")),
            car=Car.from_document(doc.get("car")),
            driver=Party.from_document(doc.get("driver")),
            supplier=Party.from_document(doc.get("supplier")),
            **flags,
        )

    def selected_options(self) -> List[Tuple[str, str]]:
        return [(attr, label) for attr, _, label in BOOKING_OPTIONS if getattr(self, attr)]


@dataclass(frozen=True)
class AdditionalCharge:
    name: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "amount": fmt_amount(self.amount)}


@dataclass(frozen=True)
class LineItem:
    designation: str
    days: int
    price_per_day: Decimal
    total: Decimal
    additional_charges: Tuple[AdditionalCharge, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "designation": self.designation,
            "days": self.days,
            "pricePerDay": fmt_amount(self.price_per_day),
            "total": fmt_amount(self.total),
        }
        if self.additional_charges:
            item["additionalCharges"] = [charge.to_dict() for charge in self.additional_charges]
        return item

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        data = _mapping(data, "item")
        raw_charges = data.get("additionalCharges") or []
        if not isinstance(raw_charges, list):
            raise ValueError("'additionalCharges' must be an array.")
        charges = []
        for raw in raw_charges:
            charge = _mapping(raw, "additional charge")
            charges.append(AdditionalCharge(name=_text(charge.get("name")), amount=to_decimal(charge.get("amount"))))
        return cls(
            designation=_text(data.get("designation")),
            days=int(to_decimal(data.get("days"), Decimal("1"))),
            price_per_day=to_decimal(data.get("pricePerDay")),
            total=to_decimal(data.get("total")),
            additional_charges=tuple(charges),
        )

    @property
    def row_count(self) -> int:
        return 1 + len(self.additional_charges)


@dataclass(frozen=True)
class InvoiceData:
    invoice_number: str
    date: datetime
    supplier: Party
    client: Party
    items: Tuple[LineItem, ...]
    total_ht: Decimal
    tva_percentage: int
    tva_amount: Decimal
    total_ttc: Decimal
    place: str = ""
    deposit: Optional[Decimal] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "invoiceNumber": self.invoice_number,
            "date": self.date.isoformat(),
            "supplier": {
                "name": self.supplier.name,
                "bio": self.supplier.bio,
                "ice": self.supplier.ice,
                "companyLogo": self.supplier.avatar,
                "signature": self.supplier.signature,
            },
            "client": {"name": self.client.name, "ice": self.client.ice},
            "items": [item.to_dict() for item in self.items],
            "totalHT": fmt_amount(self.total_ht),
            "tvaPercentage": self.tva_percentage,
            "tvaAmount": fmt_amount(self.tva_amount),
            "totalTTC": fmt_amount(self.total_ttc),
            "place": self.place,
        }
        if self.deposit is not None:
            data["deposit"] = fmt_amount(self.deposit)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvoiceData":
        """Rebuild invoice data edited by a client; totals are taken as given."""
        items = data.get("items") or []
        if not isinstance(items, list):
            raise ValueError("'items' must be an array.")
        deposit = data.get("deposit")
        return cls(
            invoice_number=_text(data.get("invoiceNumber")),
            date=parse_timestamp(data["date"]) if data.get("date") else datetime.now().astimezone(),
            supplier=Party.from_document(_mapping(data.get("supplier"), "supplier")),
            client=Party.from_document(_mapping(data.get("client"), "client")),
            items=tuple(LineItem.from_dict(item) for item in items),
            total_ht=to_decimal(data.get("totalHT")),
            tva_percentage=int(to_decimal(data.get("tvaPercentage"), Decimal("20"))),
            tva_amount=to_decimal(data.get("tvaAmount")),
            total_ttc=to_decimal(data.get("totalTTC")),
            place=_text(data.get("place")),
            deposit=None if deposit in (None, "") else to_decimal(deposit),
        )

    @property
    def row_count(self) -> int:
        return sum(item.row_count for item in self.items)
