"""Merge invoice data into the HTML invoice template (Jinja2)."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from .config import CURRENCY_SYMBOL, TEMPLATE_DIR, TEMPLATE_NAME
from .errors import TemplateUnavailable
from .formatting import fmt_amount, fmt_date
from .models import InvoiceData


@dataclass(frozen=True)
class EmbeddedAssets:
    logo: Optional[bytes] = None
    signature: Optional[bytes] = None


def data_uri(content: Optional[bytes], mime: str = "image/png") -> str:
    if not content:
        return ""
    return f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"


@dataclass(frozen=True)
class TemplateData:
    """Everything the invoice template can reference.

    Optional fields default to empty strings so the template renders
    blank content instead of failing: ``company_logo`` and ``signature``
    are data URIs, ``place`` and ``deposit`` are free text.
    """

    invoice_number: str
    date: str
    supplier: Dict[str, str]
    client: Dict[str, str]
    items: List[Dict[str, Any]]
    currency_symbol: str
    total_ht: str
    tva_percentage: int
    tva_amount: str
    total_ttc: str
    company_logo: str = ""
    signature: str = ""
    place: str = ""
    deposit: str = ""

    @classmethod
    def from_invoice(
        cls,
        invoice: InvoiceData,
        assets: Optional[EmbeddedAssets] = None,
        currency_symbol: Optional[str] = None,
    ) -> "TemplateData":
        assets = assets or EmbeddedAssets()
        serialized = invoice.to_dict()
        return cls(
            invoice_number=invoice.invoice_number,
            date=fmt_date(invoice.date),
            supplier=serialized["supplier"],
            client=serialized["client"],
            items=serialized["items"],
            currency_symbol=currency_symbol or CURRENCY_SYMBOL,
            total_ht=serialized["totalHT"],
            tva_percentage=invoice.tva_percentage,
            tva_amount=serialized["tvaAmount"],
            total_ttc=serialized["totalTTC"],
            company_logo=data_uri(assets.logo),
            signature=data_uri(assets.signature),
            place=invoice.place,
            deposit=fmt_amount(invoice.deposit) if invoice.deposit is not None else "",
        )


def _build_env(template_dir: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(template_dir)),
        autoescape=select_autoescape(enabled_extensions=("html", "j2")),
        trim_blocks=True,
        lstrip_blocks=True,
        cache_size=0,
    )


class DocumentRenderer:
    def __init__(self, template_dir: Optional[Path] = None) -> None:
        self.template_dir = Path(template_dir or TEMPLATE_DIR)
        self.env = _build_env(self.template_dir)

    def render(
        self,
        invoice: InvoiceData,
        template_name: Optional[str] = None,
        assets: Optional[EmbeddedAssets] = None,
        currency_symbol: Optional[str] = None,
    ) -> str:
        name = template_name or TEMPLATE_NAME
        try:
            template = self.env.get_template(name)
        except TemplateNotFound as exc:
            raise TemplateUnavailable(f"Invoice template {name!r} not found in {self.template_dir}") from exc
        data = TemplateData.from_invoice(invoice, assets, currency_symbol)
        return template.render(data=data)
