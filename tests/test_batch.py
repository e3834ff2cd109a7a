import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from batch import bulk_delete_expenses, mark_invoice_received, run_batch, summarize
from config_loader import DEFAULTS
from models import EXPENSES, Expense, Invoice
from store import SQLiteDocumentStore


class FlakyStore(SQLiteDocumentStore):
    """Fails deletes for one id."""

    def __init__(self, path, fail_id):
        super().__init__(path)
        self.fail_id = fail_id

    def delete(self, collection, doc_id):
        if doc_id == self.fail_id:
            raise PermissionError("missing or insufficient permissions")
        return super().delete(collection, doc_id)


def test_run_batch_attempts_every_item():
    def action(item_id):
        if item_id == "b":
            raise ValueError("nope")

    results = run_batch(["a", "b", "c"], action)
    assert [(r.id, r.ok) for r in results] == [("a", True), ("b", False), ("c", True)]
    assert results[1].error == "nope"
    assert summarize(results) == {"total": 3, "succeeded": 2, "failed": ["b"]}


def test_bulk_delete_reports_per_item(tmp_path):
    store = FlakyStore(str(tmp_path / "batch.db"), fail_id=None)
    ids = [store.create(EXPENSES, {"amount": n})["id"] for n in (1, 2, 3)]
    store.fail_id = ids[1]

    results = bulk_delete_expenses(store, ids)

    assert [r.ok for r in results] == [True, False, True]
    assert "permissions" in results[1].error
    assert [r["id"] for r in store.list(EXPENSES)] == [ids[1]]
    audit = store.read_audit("delete_expense")
    assert [(a["target_ids"], a["result"]) for a in audit] == [
        ([ids[0]], "ok"), ([ids[1]], "failed"), ([ids[2]], "ok"),
    ]


def test_mark_invoice_received(tmp_path):
    store = SQLiteDocumentStore(str(tmp_path / "recv.db"))
    recs = [
        store.create(EXPENSES, {"amount": 1000, "company": "Acme"}),
        store.create(EXPENSES, {"amount": 500, "company": "ACME", "status": "partial",
                                "partialPayment": True, "partialAmount": 200}),
        store.create(EXPENSES, {"amount": 50, "company": "Acme", "status": "paid"}),
        store.create(EXPENSES, {"amount": 70, "company": "Globex"}),
    ]
    expenses = [Expense.from_record(r) for r in recs]
    invoice = Invoice(id="i1", invoice_number="INV-7", company_name="Acme", total=1500)

    results = mark_invoice_received(store, invoice, expenses, DEFAULTS)

    assert [r.id for r in results] == [recs[0]["id"], recs[1]["id"]]
    assert all(r.ok for r in results)
    first = store.get(EXPENSES, recs[0]["id"])
    second = store.get(EXPENSES, recs[1]["id"])
    assert first["status"] == "received"
    assert second["status"] == "received"
    assert second["partialReceived"] is True
    assert second["partialAmount"] == 1500
    assert store.get(EXPENSES, recs[3]["id"]).get("status") is None
    assert len(store.read_audit("invoice_received:INV-7")) == 2
