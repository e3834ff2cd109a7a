"""
Expense to invoice linking by name.

Names are compared exactly after trimming and case folding. Similarity scores
are only used to report near misses, never to link.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from rapidfuzz.distance import JaroWinkler

from models import Expense, Invoice


MATCH_MODES = ("first_match", "by_field", "all_fields", "company_gate")

# field name -> (expense attribute, invoice attribute)
MATCH_FIELDS = {
    "company": ("company", "company_name"),
    "candidate": ("candidate_name", "candidate_name"),
}


def normalize_name(text: Optional[str]) -> str:
    if not text:
        return ""
    return text.strip().casefold()


def _similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return JaroWinkler.normalized_similarity(a, b)


def _field_matches(expense: Expense, invoice: Invoice, field: str) -> bool:
    exp_attr, inv_attr = MATCH_FIELDS[field]
    left = normalize_name(getattr(expense, exp_attr))
    right = normalize_name(getattr(invoice, inv_attr))
    # blank names never link
    return bool(left) and left == right


def _gated_match(expense: Expense, invoice: Invoice, precedence: Sequence[str]) -> bool:
    # the first field named on both sides decides; later fields are not consulted
    for field in precedence:
        exp_attr, inv_attr = MATCH_FIELDS[field]
        left = normalize_name(getattr(expense, exp_attr))
        right = normalize_name(getattr(invoice, inv_attr))
        if left and right:
            return left == right
    return False


def _check_precedence(precedence: Sequence[str], mode: str):
    if mode not in MATCH_MODES:
        raise ValueError(f"mode must be one of {MATCH_MODES}, got {mode!r}")
    unknown = [f for f in precedence if f not in MATCH_FIELDS]
    if unknown or not precedence:
        raise ValueError(f"precedence must list fields from {tuple(MATCH_FIELDS)}, got {list(precedence)!r}")


def match_invoice(
    expense: Expense,
    invoices: Iterable[Invoice],
    precedence: Sequence[str] = ("company", "candidate"),
    mode: str = "first_match",
) -> Optional[Invoice]:
    """Find the invoice an expense belongs to by name equality.

    first_match: first invoice (array order) on which any field in
        ``precedence`` matches, tried in that order per invoice.
    by_field: first invoice matching the first field anywhere in the list,
        then the next field.
    all_fields: first invoice on which every listed field matches.
    company_gate: per invoice, the first field present on both the expense
        and the invoice decides alone. With the default precedence a
        differing company is never rescued by an equal candidate name.

    Returns None when nothing matches; that means no revenue yet, not an error.
    """
    _check_precedence(precedence, mode)
    invoices = list(invoices)

    if mode == "company_gate":
        for inv in invoices:
            if _gated_match(expense, inv, precedence):
                return inv
        return None

    if mode == "first_match":
        for inv in invoices:
            if any(_field_matches(expense, inv, f) for f in precedence):
                return inv
        return None

    if mode == "by_field":
        for f in precedence:
            for inv in invoices:
                if _field_matches(expense, inv, f):
                    return inv
        return None

    for inv in invoices:
        if all(_field_matches(expense, inv, f) for f in precedence):
            return inv
    return None


def match_from_config(expense: Expense, invoices: Iterable[Invoice], cfg: Dict) -> Optional[Invoice]:
    m = cfg.get("matching", {})
    return match_invoice(
        expense,
        invoices,
        precedence=tuple(m.get("precedence", ("company", "candidate"))),
        mode=m.get("mode", "first_match"),
    )


def find_invoice_by_number(number: Optional[str], invoices: Iterable[Invoice]) -> Optional[Invoice]:
    """Look up an admin-typed invoice number: exact, then case-insensitive, then trimmed."""
    if not number:
        return None
    invoices = list(invoices)

    for inv in invoices:
        if inv.invoice_number == number:
            return inv

    lowered = number.lower()
    for inv in invoices:
        if inv.invoice_number.lower() == lowered:
            return inv

    trimmed = number.strip().lower()
    if not trimmed:
        return None
    for inv in invoices:
        if inv.invoice_number.strip().lower() == trimmed:
            return inv
    return None


def near_misses(expense: Expense, invoices: Iterable[Invoice], threshold: float = 0.85) -> List[Dict]:
    """Invoices whose names are close to, but not equal to, the expense's names.

    A company renamed after invoicing loses its link without any error; this
    surfaces those cases so they can be fixed by hand.
    """
    out: List[Dict] = []
    for inv in invoices:
        for field, (exp_attr, inv_attr) in MATCH_FIELDS.items():
            left = normalize_name(getattr(expense, exp_attr))
            right = normalize_name(getattr(inv, inv_attr))
            if not left or not right or left == right:
                continue
            sim = _similarity(left, right)
            if sim >= threshold:
                out.append({
                    "invoice_id": inv.id,
                    "invoice_number": inv.invoice_number,
                    "field": field,
                    "expense_name": getattr(expense, exp_attr),
                    "invoice_name": getattr(inv, inv_attr),
                    "similarity": round(sim, 3),
                })
    out.sort(key=lambda x: x["similarity"], reverse=True)
    return out
