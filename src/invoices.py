"""
Invoice building from service charges

Totals take the discount off the subtotal first and apply tax to the rest.
"""

import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from models import INVOICES, Invoice, InvoiceItem, ServiceCharge, parse_date


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: float
    discount: float
    tax: float
    total: float


def compute_totals(items: Sequence[InvoiceItem], discount_pct: float = 0.0, tax_rate: float = 18.0) -> InvoiceTotals:
    """Discount is taken off the subtotal; tax applies to what is left."""
    if discount_pct < 0 or discount_pct > 100:
        raise ValueError(f"discount must be between 0 and 100 percent, got {discount_pct}")
    if tax_rate < 0:
        raise ValueError(f"tax rate must not be negative, got {tax_rate}")
    subtotal = sum(i.total for i in items)
    discount = subtotal * (discount_pct / 100)
    after_discount = subtotal - discount
    tax = after_discount * (tax_rate / 100)
    return InvoiceTotals(subtotal=subtotal, discount=discount, tax=tax, total=after_discount + tax)


def new_invoice_number(now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"INV-{str(now_ms)[-6:]}"


def item_from_charge(charge: ServiceCharge, quantity: float = 1.0) -> InvoiceItem:
    return InvoiceItem(
        description=charge.name,
        amount=charge.amount,
        quantity=quantity,
        sector=charge.sector,
        id=charge.id,
    )


def build_invoice(
    company_name: str,
    items: Sequence[InvoiceItem],
    invoice_date=None,
    candidate_name: str = "",
    discount_pct: float = 0.0,
    tax_rate: float = 18.0,
    due_days: int = 30,
    due_date=None,
    invoice_number: Optional[str] = None,
) -> Invoice:
    if not company_name or not company_name.strip():
        raise ValueError("company name is required")
    if not items:
        raise ValueError("an invoice needs at least one item")
    issued: date = parse_date(invoice_date) or date.today()
    due: date = parse_date(due_date) or issued + timedelta(days=due_days)
    totals = compute_totals(items, discount_pct, tax_rate)
    return Invoice(
        id="",
        invoice_number=invoice_number or new_invoice_number(),
        date=issued.isoformat(),
        due_date=due.isoformat(),
        company_name=company_name.strip(),
        candidate_name=candidate_name.strip(),
        items=tuple(items),
        subtotal=totals.subtotal,
        discount=totals.discount,
        tax=totals.tax,
        total=totals.total,
        discount_percentage=discount_pct,
        tax_rate=tax_rate,
        created_at=datetime.now().isoformat(),
    )


def save_invoice(store, invoice: Invoice) -> Invoice:
    rec = invoice.to_record()
    rec.pop("id", None)
    saved = store.create(INVOICES, rec)
    print(f"✅ invoice {invoice.invoice_number} saved for {invoice.company_name} total={invoice.total:.2f}")
    return Invoice.from_record(saved)


def search_invoices(invoices: Iterable[Invoice], term: Optional[str]) -> List[Invoice]:
    invoices = list(invoices)
    if not term:
        return invoices
    term = term.lower()
    return [
        inv for inv in invoices
        if term in inv.invoice_number.lower()
        or term in inv.company_name.lower()
        or term in inv.candidate_name.lower()
    ]
