"""
Profit/Loss aggregation

Each expense row gets its revenue from the invoice number an admin typed for
it. Saved reports are snapshots: plain copies of the rows and totals at the
time of saving.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional

from matcher import find_invoice_by_number, match_invoice
from models import REPORTS, Expense, Invoice, ProfitLossReport, ProfitLossRow


MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
SORT_FIELDS = ("client", "revenue", "expenses", "profit")


@dataclass(frozen=True)
class Totals:
    revenue: float = 0.0
    expenses: float = 0.0
    profit: float = 0.0


def _month_year(expense: Expense):
    ts = expense.submitted_at
    if ts is None:
        return None, None
    return MONTH_NAMES[ts.month - 1], str(ts.year)


def available_periods(expenses: Iterable[Expense]) -> Dict[str, List[str]]:
    """Months (alphabetical) and years (newest first) present in the data."""
    months, years = set(), set()
    for e in expenses:
        m, y = _month_year(e)
        if m:
            months.add(m)
            years.add(y)
    return {"months": sorted(months), "years": sorted(years, key=int, reverse=True)}


def filter_expenses(
    expenses: Iterable[Expense],
    month: Optional[str] = None,
    year: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Expense]:
    out = []
    term = search.lower() if search else None
    for e in expenses:
        m, y = _month_year(e)
        if month and month != "all" and m != month:
            continue
        if year and year != "all" and y != str(year):
            continue
        if term and not (
            term in e.client_name.lower()
            or term in e.company.lower()
            or term in e.description.lower()
        ):
            continue
        out.append(e)
    return out


def suggest_invoice_numbers(
    expenses: Iterable[Expense],
    invoices: Iterable[Invoice],
    typed: Optional[Mapping[str, str]] = None,
    precedence=("company", "candidate"),
    mode: str = "first_match",
    invoiced_only: bool = False,
) -> Dict[str, str]:
    """Fill in invoice numbers from name matching where the admin typed none.

    With ``invoiced_only`` only expenses flagged ``hasInvoice`` get a
    suggestion.
    """
    invoices = list(invoices)
    out = dict(typed or {})
    for e in expenses:
        if out.get(e.id):
            continue
        if invoiced_only and not e.has_invoice:
            continue
        inv = match_invoice(e, invoices, precedence=precedence, mode=mode)
        if inv is not None:
            out[e.id] = inv.invoice_number
    return out


def build_rows(
    expenses: Iterable[Expense],
    invoices: Iterable[Invoice],
    invoice_numbers: Optional[Mapping[str, str]] = None,
) -> List[ProfitLossRow]:
    invoices = list(invoices)
    invoice_numbers = invoice_numbers or {}
    rows = []
    for e in expenses:
        typed = invoice_numbers.get(e.id, "")
        inv = find_invoice_by_number(typed, invoices)
        revenue = inv.total if inv is not None else 0.0
        rows.append(ProfitLossRow(
            expense_id=e.id,
            client=e.client_name or e.company,
            description=e.description,
            expenses=e.amount,
            invoice_number=inv.invoice_number if inv is not None else typed,
            revenue=revenue,
            profit=revenue - e.amount,
        ))
    return rows


def sort_rows(rows: Iterable[ProfitLossRow], field: str = "client", descending: bool = False) -> List[ProfitLossRow]:
    if field not in SORT_FIELDS:
        raise ValueError(f"sort field must be one of {SORT_FIELDS}, got {field!r}")
    if field == "client":
        key = lambda r: r.client.lower()
    else:
        key = lambda r: getattr(r, field)
    return sorted(rows, key=key, reverse=descending)


def compute_totals(rows: Iterable[ProfitLossRow]) -> Totals:
    revenue = expenses = profit = 0.0
    for r in rows:
        revenue += r.revenue
        expenses += r.expenses
        profit += r.profit
    return Totals(revenue=revenue, expenses=expenses, profit=profit)


def build_report(
    rows: Iterable[ProfitLossRow],
    month: Optional[str] = None,
    year: Optional[str] = None,
    today: Optional[date] = None,
) -> ProfitLossReport:
    rows = tuple(rows)
    totals = compute_totals(rows)
    today = today or date.today()
    monthly = bool(month) and month != "all"
    if monthly and month not in MONTH_NAMES:
        raise ValueError(f"unknown month {month!r}")
    return ProfitLossReport(
        period="monthly" if monthly else "yearly",
        month=month if monthly else None,
        year=str(year) if year and year != "all" else str(today.year),
        revenue=totals.revenue,
        expenses=totals.expenses,
        profit=totals.profit,
        report_data=rows,
        created_at=datetime.now().isoformat(),
    )


def save_report(store, report: ProfitLossReport) -> ProfitLossReport:
    """Persist a snapshot and return it with its assigned id."""
    saved = store.create(REPORTS, report.to_record())
    print(f"✅ P/L report saved: {report.period} {report.month or ''} {report.year} profit={report.profit:.2f}")
    return ProfitLossReport.from_record(saved)
