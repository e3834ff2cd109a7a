import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from invoices import build_invoice, compute_totals, item_from_charge, new_invoice_number, save_invoice, search_invoices
from models import INVOICES, Invoice, InvoiceItem, ServiceCharge
from store import SQLiteDocumentStore


ITEMS = (InvoiceItem("Visa", 1000, 2), InvoiceItem("Medical", 500))


def test_totals_discount_then_tax():
    t = compute_totals(ITEMS, discount_pct=10, tax_rate=18)
    assert t.subtotal == 2500
    assert t.discount == pytest.approx(250)
    assert t.tax == pytest.approx(405)
    assert t.total == pytest.approx(2655)


def test_totals_validate_inputs():
    with pytest.raises(ValueError):
        compute_totals(ITEMS, discount_pct=120)
    with pytest.raises(ValueError):
        compute_totals(ITEMS, tax_rate=-1)


def test_invoice_number_uses_last_six_digits():
    assert new_invoice_number(1712345678901) == "INV-678901"
    assert new_invoice_number().startswith("INV-")


def test_build_invoice_due_date_and_items():
    charge = ServiceCharge(id="s1", name="Visa", amount=1000, sector="Immigration")
    inv = build_invoice(" Acme ", [item_from_charge(charge, 2)], invoice_date="2025-03-01",
                        candidate_name="Priya", invoice_number="INV-000001")
    assert inv.company_name == "Acme"
    assert inv.due_date == "2025-03-31"
    assert inv.items[0].sector == "Immigration"
    assert inv.total == pytest.approx(2360)


def test_build_invoice_requires_company_and_items():
    with pytest.raises(ValueError):
        build_invoice("", ITEMS)
    with pytest.raises(ValueError):
        build_invoice("Acme", [])


def test_save_and_search(tmp_path):
    store = SQLiteDocumentStore(str(tmp_path / "inv.db"))
    saved = save_invoice(store, build_invoice("Acme", ITEMS, invoice_date=date(2025, 1, 1), invoice_number="INV-1"))
    assert saved.id
    stored = Invoice.from_record(store.list(INVOICES)[0])
    assert stored.invoice_number == "INV-1"
    assert stored.tax_rate == 18
    other = Invoice(id="x", invoice_number="INV-2", company_name="Globex", candidate_name="Priya")
    assert search_invoices([stored, other], "priya") == [other]
    assert search_invoices([stored, other], "") == [stored, other]
