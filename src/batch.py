"""
Bulk operations with per-item results.

Every item is attempted even when an earlier one fails, and each outcome is
returned (and written to the audit log when the store keeps one) so callers
can tell exactly which records changed.
"""

from typing import Callable, Dict, Iterable, List

from matcher import match_from_config
from models import EXPENSES, BatchItemResult, Expense, Invoice, diff_record
from payments import mark_fully_received, transition


SETTLED = ("received", "paid")


def _audit(store, action: str, result: BatchItemResult, actor: str):
    writer = getattr(store, "write_audit", None)
    if writer is None:
        return
    writer(
        "INFO" if result.ok else "ERROR",
        actor,
        action,
        [result.id],
        "ok" if result.ok else "failed",
        result.error,
    )


def run_batch(ids: Iterable[str], action: Callable[[str], object]) -> List[BatchItemResult]:
    results: List[BatchItemResult] = []
    for item_id in ids:
        try:
            action(item_id)
            results.append(BatchItemResult(id=item_id, ok=True))
        except Exception as e:
            print(f"❌ {item_id}: {e}")
            results.append(BatchItemResult(id=item_id, ok=False, error=str(e)))
    return results


def summarize(results: List[BatchItemResult]) -> Dict:
    failed = [r for r in results if not r.ok]
    return {
        "total": len(results),
        "succeeded": len(results) - len(failed),
        "failed": [r.id for r in failed],
    }


def bulk_delete_expenses(store, ids: Iterable[str], actor: str = "admin") -> List[BatchItemResult]:
    results = run_batch(ids, lambda expense_id: store.delete(EXPENSES, expense_id))
    for r in results:
        _audit(store, "delete_expense", r, actor)
    s = summarize(results)
    print(f"🗑️ deleted {s['succeeded']}/{s['total']} expenses" + (f", failed: {s['failed']}" if s["failed"] else ""))
    return results


def mark_invoice_received(
    store,
    invoice: Invoice,
    expenses: Iterable[Expense],
    cfg: Dict,
    actor: str = "admin",
) -> List[BatchItemResult]:
    """Move every unsettled expense linked to ``invoice`` to ``received``.

    Partially paid expenses are settled against the invoice total.
    """
    targets = {
        e.id: e for e in expenses
        if e.status not in SETTLED and match_from_config(e, [invoice], cfg) is not None
    }

    def settle(expense_id: str):
        expense = targets[expense_id]
        if expense.partial_payment:
            updated = mark_fully_received(expense, invoice)
        else:
            updated = transition(expense, "received")
        store.update(EXPENSES, expense_id, diff_record(expense, updated))

    results = run_batch(list(targets), settle)
    for r in results:
        _audit(store, f"invoice_received:{invoice.invoice_number}", r, actor)
    s = summarize(results)
    print(f"✅ invoice {invoice.invoice_number}: {s['succeeded']}/{s['total']} expenses marked received")
    return results
