import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from models import EXPENSES, REPORTS, Expense, Invoice, ProfitLossReport
from profit_loss import (
    available_periods,
    build_report,
    build_rows,
    compute_totals,
    filter_expenses,
    save_report,
    sort_rows,
    suggest_invoice_numbers,
)
from store import SQLiteDocumentStore


def _exp(exp_id, amount, ts, **kw):
    return Expense(id=exp_id, user_id="u@x.com", amount=amount, timestamp=ts, **kw)


@pytest.fixture
def expenses():
    return [
        _exp("e1", 1000, "2025-03-05T10:00:00Z", company="Acme", client_name="Acme Ltd", description="Visa fee"),
        _exp("e2", 300, "2025-03-20T10:00:00Z", company="Globex", description="Courier"),
        _exp("e3", 700, "2024-11-02T10:00:00Z", company="Initech", description="Medical test"),
    ]


@pytest.fixture
def invoices():
    return [
        Invoice(id="i1", invoice_number="INV-100", company_name="Acme", total=1500),
        Invoice(id="i2", invoice_number="INV-200", company_name="Initech", total=650),
    ]


def test_row_profit_from_typed_invoice(expenses, invoices):
    rows = build_rows(expenses[:1], invoices, {"e1": "inv-100"})
    assert rows[0].revenue == 1500
    assert rows[0].profit == 500
    assert rows[0].invoice_number == "INV-100"
    assert rows[0].client == "Acme Ltd"


def test_row_without_invoice_has_zero_revenue(expenses, invoices):
    rows = build_rows(expenses[1:2], invoices, {})
    assert rows[0].revenue == 0
    assert rows[0].profit == -300
    assert rows[0].client == "Globex"


def test_unknown_typed_number_is_kept_but_earns_nothing(expenses, invoices):
    rows = build_rows(expenses[1:2], invoices, {"e2": "INV-999"})
    assert rows[0].invoice_number == "INV-999"
    assert rows[0].revenue == 0


def test_totals_add_up(expenses, invoices):
    rows = build_rows(expenses, invoices, {"e1": "INV-100", "e3": "INV-200"})
    totals = compute_totals(rows)
    assert totals.revenue == 2150
    assert totals.expenses == 2000
    assert totals.profit == 150
    assert totals.profit == sum(r.profit for r in rows)


def test_suggest_keeps_typed_numbers(expenses, invoices):
    out = suggest_invoice_numbers(expenses, invoices, {"e3": "INV-100"})
    assert out == {"e1": "INV-100", "e3": "INV-100"}


def test_filter_by_month_year_and_search(expenses):
    assert [e.id for e in filter_expenses(expenses, month="March", year="2025")] == ["e1", "e2"]
    assert [e.id for e in filter_expenses(expenses, month="all", year="2024")] == ["e3"]
    assert [e.id for e in filter_expenses(expenses, search="COURIER")] == ["e2"]
    assert [e.id for e in filter_expenses(expenses, search="acme ltd")] == ["e1"]


def test_available_periods(expenses):
    periods = available_periods(expenses)
    assert periods["months"] == ["March", "November"]
    assert periods["years"] == ["2025", "2024"]


def test_sort_rows(expenses, invoices):
    rows = build_rows(expenses, invoices, {"e1": "INV-100", "e3": "INV-200"})
    assert [r.expense_id for r in sort_rows(rows, "profit", descending=True)] == ["e1", "e3", "e2"]
    assert [r.client for r in sort_rows(rows)] == ["Acme Ltd", "Globex", "Initech"]
    with pytest.raises(ValueError):
        sort_rows(rows, "date")


def test_build_report_periods(expenses, invoices):
    rows = build_rows(expenses, invoices, {})
    monthly = build_report(rows, month="March", year="2025")
    assert monthly.period == "monthly"
    assert monthly.month == "March"
    yearly = build_report(rows, month="all", today=date(2026, 1, 2))
    assert yearly.period == "yearly"
    assert yearly.month is None
    assert yearly.year == "2026"
    with pytest.raises(ValueError):
        build_report(rows, month="Marchember")


def test_saved_report_survives_source_deletion(tmp_path, invoices):
    store = SQLiteDocumentStore(str(tmp_path / "pl.db"))
    saved = store.create(EXPENSES, {"userId": "u@x.com", "amount": 1000, "company": "Acme",
                                    "timestamp": "2025-03-05T10:00:00Z"})
    expense = Expense.from_record(saved)
    rows = build_rows([expense], invoices, {expense.id: "INV-100"})
    report = save_report(store, build_report(rows, month="March", year="2025"))

    store.delete(EXPENSES, expense.id)

    stored = ProfitLossReport.from_record(store.get(REPORTS, report.id))
    assert stored.profit == 500
    assert stored.report_data[0].expense_id == expense.id
    assert stored.report_data[0].revenue == 1500


def test_suggest_only_for_invoiced_expenses(expenses, invoices):
    flagged = [
        _exp("e1", 1000, "2025-03-05T10:00:00Z", company="Acme", has_invoice=True),
        _exp("e3", 700, "2024-11-02T10:00:00Z", company="Initech"),
    ]
    assert suggest_invoice_numbers(flagged, invoices, invoiced_only=True) == {"e1": "INV-100"}
    assert suggest_invoice_numbers(flagged, invoices) == {"e1": "INV-100", "e3": "INV-200"}
