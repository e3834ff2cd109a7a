"""Typed records for expenses, invoices, service charges and P/L reports.

Documents arrive from the store as camelCase dicts. ``from_record`` validates
them at the boundary so the reconciliation code only ever sees typed values.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple


EXPENSE_STATUSES = ("pending", "received", "partial", "paid")
REPORT_PERIODS = ("monthly", "yearly")

EXPENSES = "expenses"
INVOICES = "invoiceHistory"
SERVICE_CHARGES = "serviceCharges"
REPORTS = "profitLossReports"


class RecordError(ValueError):
    """A stored document could not be turned into a typed record."""


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt in ("%Y-%m-%d", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise RecordError(f"unrecognised date: {value!r}")


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        d = parse_date(text)
        return datetime.combine(d, datetime.min.time())


def _number(rec: Dict, key: str, default: float = 0.0) -> float:
    value = rec.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise RecordError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise RecordError(f"{key} must be a number, got {value!r}")


def _text(rec: Dict, key: str) -> str:
    value = rec.get(key)
    return "" if value is None else str(value)


def _optional_text(rec: Dict, key: str) -> Optional[str]:
    value = rec.get(key)
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class Expense:
    id: str
    user_id: str
    amount: float
    description: str = ""
    date: Optional[date] = None
    company: str = ""
    client_name: str = ""
    candidate_name: str = ""
    sector: str = ""
    service_name: str = ""
    overdue: bool = False
    overdue_days: Optional[str] = None
    status: str = "pending"
    partial_payment: bool = False
    partial_amount: float = 0.0
    partial_received: bool = False
    has_invoice: bool = False
    file: Optional[str] = None
    file_name: Optional[str] = None
    timestamp: Optional[str] = None

    @classmethod
    def from_record(cls, rec: Dict) -> "Expense":
        if not rec.get("id"):
            raise RecordError("expense record has no id")
        status = rec.get("status") or "pending"
        if status not in EXPENSE_STATUSES:
            raise RecordError(f"expense {rec['id']}: unknown status {status!r}")
        return cls(
            id=str(rec["id"]),
            user_id=_text(rec, "userId"),
            amount=_number(rec, "amount"),
            description=_text(rec, "description"),
            date=parse_date(rec.get("date")),
            company=_text(rec, "company"),
            client_name=_text(rec, "clientName"),
            candidate_name=_text(rec, "candidateName"),
            sector=_text(rec, "sector"),
            service_name=_text(rec, "serviceName"),
            overdue=rec.get("overdue") is True,
            overdue_days=_optional_text(rec, "overdueDays"),
            status=status,
            partial_payment=bool(rec.get("partialPayment")),
            partial_amount=_number(rec, "partialAmount"),
            partial_received=bool(rec.get("partialReceived")),
            has_invoice=bool(rec.get("hasInvoice")),
            file=rec.get("file"),
            file_name=rec.get("fileName"),
            timestamp=_optional_text(rec, "timestamp"),
        )

    def to_record(self) -> Dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "amount": self.amount,
            "description": self.description,
            "date": self.date.isoformat() if self.date else None,
            "company": self.company,
            "clientName": self.client_name,
            "candidateName": self.candidate_name,
            "sector": self.sector,
            "serviceName": self.service_name,
            "overdue": self.overdue,
            "overdueDays": self.overdue_days,
            "status": self.status,
            "partialPayment": self.partial_payment,
            "partialAmount": self.partial_amount,
            "partialReceived": self.partial_received,
            "hasInvoice": self.has_invoice,
            "file": self.file,
            "fileName": self.file_name,
            "timestamp": self.timestamp,
        }

    @property
    def submitted_at(self) -> Optional[datetime]:
        """When the expense was submitted; falls back to its date."""
        return parse_timestamp(self.timestamp) or parse_timestamp(self.date)


@dataclass(frozen=True)
class InvoiceItem:
    description: str
    amount: float = 0.0
    quantity: float = 1.0
    sector: str = ""
    id: str = ""

    @classmethod
    def from_record(cls, rec: Dict) -> "InvoiceItem":
        if not isinstance(rec, dict):
            raise RecordError(f"invoice item must be a mapping, got {rec!r}")
        return cls(
            description=_text(rec, "description") or _text(rec, "service"),
            amount=_number(rec, "amount"),
            quantity=_number(rec, "quantity", 1.0),
            sector=_text(rec, "sector"),
            id=_text(rec, "id"),
        )

    @property
    def total(self) -> float:
        return self.amount * self.quantity

    def to_record(self) -> Dict:
        return {"id": self.id, "description": self.description, "amount": self.amount, "quantity": self.quantity, "sector": self.sector}


@dataclass(frozen=True)
class Invoice:
    id: str
    invoice_number: str
    date: str = ""
    due_date: str = ""
    company_name: str = ""
    candidate_name: str = ""
    items: Tuple[InvoiceItem, ...] = ()
    subtotal: float = 0.0
    discount: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    discount_percentage: float = 0.0
    tax_rate: float = 0.0
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, rec: Dict) -> "Invoice":
        if not rec.get("id"):
            raise RecordError("invoice record has no id")
        items = rec.get("items") or []
        if not isinstance(items, (list, tuple)):
            raise RecordError(f"invoice {rec['id']}: items must be a list")
        return cls(
            id=str(rec["id"]),
            invoice_number=_text(rec, "invoiceNumber"),
            date=_text(rec, "date"),
            due_date=_text(rec, "dueDate"),
            company_name=_text(rec, "companyName"),
            candidate_name=_text(rec, "candidateName"),
            items=tuple(InvoiceItem.from_record(i) for i in items),
            subtotal=_number(rec, "subtotal"),
            discount=_number(rec, "discount"),
            tax=_number(rec, "tax"),
            total=_number(rec, "total"),
            discount_percentage=_number(rec, "discountPercentage"),
            tax_rate=_number(rec, "taxRate"),
            created_at=_optional_text(rec, "createdAt"),
        )

    def to_record(self) -> Dict:
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "date": self.date,
            "dueDate": self.due_date,
            "companyName": self.company_name,
            "candidateName": self.candidate_name,
            "items": [i.to_record() for i in self.items],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "tax": self.tax,
            "total": self.total,
            "discountPercentage": self.discount_percentage,
            "taxRate": self.tax_rate,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class ServiceCharge:
    id: str
    name: str
    amount: float
    sector: str = ""

    @classmethod
    def from_record(cls, rec: Dict) -> "ServiceCharge":
        if not rec.get("id"):
            raise RecordError("service charge record has no id")
        return cls(id=str(rec["id"]), name=_text(rec, "name"), amount=_number(rec, "amount"), sector=_text(rec, "sector"))

    def to_record(self) -> Dict:
        return {"id": self.id, "name": self.name, "amount": self.amount, "sector": self.sector}


@dataclass(frozen=True)
class ProfitLossRow:
    expense_id: str
    client: str
    description: str
    expenses: float
    invoice_number: str
    revenue: float
    profit: float

    @classmethod
    def from_record(cls, rec: Dict) -> "ProfitLossRow":
        # rows saved by the web app carry clientName/company and expenseAmount
        if rec.get("expenses") is None:
            expenses = _number(rec, "expenseAmount")
        else:
            expenses = _number(rec, "expenses")
        return cls(
            expense_id=_text(rec, "expenseId") or _text(rec, "id"),
            client=_text(rec, "client") or _text(rec, "clientName") or _text(rec, "company"),
            description=_text(rec, "description"),
            expenses=expenses,
            invoice_number=_text(rec, "invoiceNumber"),
            revenue=_number(rec, "revenue"),
            profit=_number(rec, "profit"),
        )

    def to_record(self) -> Dict:
        return {
            "expenseId": self.expense_id,
            "client": self.client,
            "description": self.description,
            "expenses": self.expenses,
            "invoiceNumber": self.invoice_number,
            "revenue": self.revenue,
            "profit": self.profit,
        }


@dataclass(frozen=True)
class ProfitLossReport:
    period: str
    year: str
    revenue: float
    expenses: float
    profit: float
    report_data: Tuple[ProfitLossRow, ...] = ()
    month: Optional[str] = None
    created_at: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_record(cls, rec: Dict) -> "ProfitLossReport":
        period = rec.get("period")
        if period not in REPORT_PERIODS:
            raise RecordError(f"report period must be one of {REPORT_PERIODS}, got {period!r}")
        return cls(
            period=period,
            year=_text(rec, "year"),
            revenue=_number(rec, "revenue"),
            expenses=_number(rec, "expenses"),
            profit=_number(rec, "profit"),
            report_data=tuple(ProfitLossRow.from_record(r) for r in rec.get("reportData") or []),
            month=_optional_text(rec, "month"),
            created_at=_optional_text(rec, "createdAt"),
            id=_optional_text(rec, "id"),
        )

    def to_record(self) -> Dict:
        rec = {
            "period": self.period,
            "year": self.year,
            "revenue": self.revenue,
            "expenses": self.expenses,
            "profit": self.profit,
            "reportData": [r.to_record() for r in self.report_data],
            "createdAt": self.created_at,
        }
        # month is only written for monthly reports
        if self.month is not None:
            rec["month"] = self.month
        return rec


@dataclass(frozen=True)
class OverdueStatus:
    is_overdue: bool
    days_overdue: int
    due_date: Optional[datetime] = None


@dataclass(frozen=True)
class BatchItemResult:
    id: str
    ok: bool
    error: Optional[str] = None


def diff_record(before: Expense, after: Expense) -> Dict:
    """Fields of ``after`` that differ from ``before``, as a store patch."""
    old, new = before.to_record(), after.to_record()
    return {k: v for k, v in new.items() if k != "id" and old.get(k) != v}


RECORD_TYPES = {
    EXPENSES: Expense,
    INVOICES: Invoice,
    SERVICE_CHARGES: ServiceCharge,
    REPORTS: ProfitLossReport,
}
