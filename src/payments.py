"""
Expense payment status and balances.

Status changes go through ``transition`` so a settled expense can never be
reopened. Balances are measured against the matched invoice total, or the
expense amount when no invoice is linked.
"""

from dataclasses import replace
from typing import Dict, Optional

from models import Expense, Invoice


# pending -> received | partial | paid, partial -> received | paid; settled states are final
ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    "pending": frozenset({"received", "partial", "paid"}),
    "partial": frozenset({"received", "paid"}),
    "received": frozenset(),
    "paid": frozenset(),
}


class StatusTransitionError(ValueError):
    def __init__(self, expense_id: str, current: str, requested: str):
        super().__init__(f"expense {expense_id}: cannot move from {current!r} to {requested!r}")
        self.expense_id = expense_id
        self.current = current
        self.requested = requested


def can_transition(current: str, requested: str) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition(expense: Expense, new_status: str) -> Expense:
    if not can_transition(expense.status, new_status):
        raise StatusTransitionError(expense.id, expense.status, new_status)
    return replace(expense, status=new_status)


def total_owed(expense: Expense, invoice: Optional[Invoice] = None) -> float:
    """Invoice total when the expense is matched, otherwise its own amount."""
    if invoice is not None:
        return invoice.total
    return expense.amount


def balance(expense: Expense, invoice: Optional[Invoice] = None) -> float:
    return total_owed(expense, invoice) - (expense.partial_amount or 0)


def record_partial_payment(expense: Expense, amount: float) -> Expense:
    """Record an instalment; moves a pending expense to ``partial``."""
    if amount <= 0:
        raise ValueError(f"expense {expense.id}: partial amount must be positive, got {amount}")
    status = expense.status
    if status != "partial":
        status = transition(expense, "partial").status
    return replace(expense, status=status, partial_payment=True, partial_amount=amount, partial_received=False)


def mark_fully_received(expense: Expense, invoice: Optional[Invoice] = None) -> Expense:
    """Settle the remaining balance of a partially paid expense.

    ``partialAmount`` is raised to the resolved total so the balance is 0.
    """
    if not expense.partial_payment:
        raise ValueError(f"expense {expense.id} is not on partial payment")
    settled = transition(expense, "received")
    return replace(
        settled,
        partial_received=True,
        partial_amount=total_owed(expense, invoice),
    )
