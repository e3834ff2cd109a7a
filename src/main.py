import argparse
import os
import sys
from typing import Dict, List, Optional

from dotenv import load_dotenv

from app_state import AppState, StateContainer, replace_collection
from batch import bulk_delete_expenses, mark_invoice_received, summarize
from config_loader import load_reconcile_config
from firestore_client import FirestoreClient
from formatting import format_amount
from invoices import build_invoice, item_from_charge, save_invoice
from matcher import find_invoice_by_number, match_from_config, near_misses
from models import EXPENSES, Expense, diff_record
from notifier import SlackNotifier
from overdue import overdue_expenses
from payments import balance, mark_fully_received, record_partial_payment
from profit_loss import build_report, build_rows, compute_totals, filter_expenses, save_report, sort_rows, suggest_invoice_numbers
from service_charges import ServiceChargeCatalog
from store import SQLiteDocumentStore


def build_store():
    project_id = os.getenv("FIRESTORE_PROJECT_ID")
    if project_id:
        print(f"☁️ Firestore project: {project_id}")
        return FirestoreClient(project_id, token=os.getenv("FIRESTORE_TOKEN"), api_key=os.getenv("FIRESTORE_API_KEY"))
    store = SQLiteDocumentStore()
    print(f"💾 local store: {store.path}")
    return store


def _find_expense(container: StateContainer, expense_id: str) -> Expense:
    for e in container.state.expenses:
        if e.id == expense_id:
            return e
    raise KeyError(f"expense {expense_id} not found")


def _parse_mapping(pairs: Optional[List[str]]) -> Dict[str, str]:
    mapping = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"--map expects EXPENSE_ID=INVOICE_NUMBER, got {pair!r}")
        expense_id, number = pair.split("=", 1)
        mapping[expense_id.strip()] = number
    return mapping


def cmd_overdue(args, container: StateContainer, cfg: Dict) -> int:
    locale = cfg["currency"]["locale"]
    if args.user:
        records = container.store.query(EXPENSES, "userId", args.user, order_by="timestamp")
        expenses = replace_collection(AppState(), EXPENSES, records).expenses
    else:
        expenses = container.state.expenses
    rows = overdue_expenses(expenses, grace_days=cfg["overdue"]["grace_days"])
    if not rows:
        print("✅ no overdue expenses")
        return 0
    print(f"⏰ {len(rows)} overdue expense(s)")
    for e, status in rows:
        due = status.due_date.date().isoformat() if status.due_date else "-"
        print(f"  {e.id}  {e.client_name or e.company or '-':<24} {format_amount(e.amount, locale):>16}  due {due}  {status.days_overdue} days")
    if args.notify:
        SlackNotifier(locale=locale).overdue_digest(rows)
    return 0


def cmd_profit_loss(args, container: StateContainer, cfg: Dict) -> int:
    locale = cfg["currency"]["locale"]
    state = container.state
    expenses = filter_expenses(state.expenses, month=args.month, year=args.year, search=args.search)
    mapping = _parse_mapping(args.map)
    if args.auto:
        m = cfg["matching"]
        mapping = suggest_invoice_numbers(expenses, state.invoices, mapping,
                                          precedence=tuple(m["precedence"]), mode=m["mode"],
                                          invoiced_only=args.invoiced_only)
    unsorted = build_rows(expenses, state.invoices, mapping)
    rows = sort_rows(unsorted, args.sort, args.desc)

    for r in rows:
        print(f"  {r.client or '-':<24} {r.invoice_number or 'No Invoice':<14} "
              f"{format_amount(r.expenses, locale):>16} {format_amount(r.revenue, locale):>16} {format_amount(r.profit, locale):>16}")
    totals = compute_totals(rows)
    print(f"  {'Total':<39} {format_amount(totals.expenses, locale):>16} "
          f"{format_amount(totals.revenue, locale):>16} {format_amount(totals.profit, locale):>16}")

    threshold = cfg["matching"]["near_miss_threshold"]
    for e, r in zip(expenses, unsorted):
        if r.revenue:
            continue
        for miss in near_misses(e, state.invoices, threshold)[:1]:
            print(f"  ⚠️ {e.id}: '{miss['expense_name']}' looks like '{miss['invoice_name']}' "
                  f"({miss['invoice_number']}, similarity {miss['similarity']})")

    if args.save:
        report = save_report(container.store, build_report(rows, args.month, args.year))
        if args.notify:
            SlackNotifier(locale=locale).report_saved(report)
    return 0


def cmd_partial(args, container: StateContainer, cfg: Dict) -> int:
    expense = _find_expense(container, args.expense_id)
    updated = record_partial_payment(expense, args.amount)
    container.store.update(EXPENSES, expense.id, diff_record(expense, updated))
    invoice = match_from_config(updated, container.state.invoices, cfg)
    print(f"✅ {expense.id}: partial payment {format_amount(args.amount, cfg['currency']['locale'])}, "
          f"balance {format_amount(balance(updated, invoice), cfg['currency']['locale'])}")
    return 0


def cmd_settle(args, container: StateContainer, cfg: Dict) -> int:
    expense = _find_expense(container, args.expense_id)
    if args.invoice:
        invoice = find_invoice_by_number(args.invoice, container.state.invoices)
        if invoice is None:
            raise KeyError(f"invoice {args.invoice} not found")
    else:
        invoice = match_from_config(expense, container.state.invoices, cfg)
    updated = mark_fully_received(expense, invoice)
    container.store.update(EXPENSES, expense.id, diff_record(expense, updated))
    print(f"✅ {expense.id} settled at {format_amount(updated.partial_amount, cfg['currency']['locale'])}")
    return 0


def cmd_mark_invoice_received(args, container: StateContainer, cfg: Dict) -> int:
    invoice = find_invoice_by_number(args.invoice, container.state.invoices)
    if invoice is None:
        raise KeyError(f"invoice {args.invoice} not found")
    results = mark_invoice_received(container.store, invoice, container.state.expenses, cfg)
    return 0 if not summarize(results)["failed"] else 1


def cmd_bulk_delete(args, container: StateContainer, cfg: Dict) -> int:
    results = bulk_delete_expenses(container.store, args.expense_ids)
    return 0 if not summarize(results)["failed"] else 1


def cmd_import_charges(args, container: StateContainer, cfg: Dict) -> int:
    with open(args.file, "r", encoding="utf-8") as f:
        ServiceChargeCatalog(container.store).bulk_import(f.read())
    return 0


def cmd_invoice(args, container: StateContainer, cfg: Dict) -> int:
    charges = {c.name.lower(): c for c in container.state.service_charges}
    items = []
    for entry in args.service:
        name, _, qty = entry.partition(":")
        charge = charges.get(name.strip().lower())
        if charge is None:
            raise KeyError(f"service charge {name!r} not found")
        items.append(item_from_charge(charge, float(qty) if qty else 1.0))
    invoice = build_invoice(
        args.company,
        items,
        invoice_date=args.date,
        candidate_name=args.candidate or "",
        discount_pct=args.discount,
        tax_rate=args.tax if args.tax is not None else cfg["invoice"]["tax_rate"],
        due_days=cfg["invoice"]["due_days"],
    )
    save_invoice(container.store, invoice)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Expense reconciliation tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("overdue", help="list overdue expenses")
    p.add_argument("--user", help="only this user's expenses (userId)")
    p.add_argument("--notify", action="store_true", help="post a digest to Slack")
    p.set_defaults(func=cmd_overdue)

    p = sub.add_parser("profit-loss", help="profit/loss per expense")
    p.add_argument("--month", help="English month name, e.g. March")
    p.add_argument("--year")
    p.add_argument("--search")
    p.add_argument("--map", action="append", metavar="EXPENSE_ID=INVOICE_NUMBER")
    p.add_argument("--auto", action="store_true", help="fill unmapped rows by name matching")
    p.add_argument("--invoiced-only", action="store_true", help="with --auto, only expenses flagged hasInvoice")
    p.add_argument("--sort", default="client", choices=["client", "revenue", "expenses", "profit"])
    p.add_argument("--desc", action="store_true")
    p.add_argument("--save", action="store_true", help="save a report snapshot")
    p.add_argument("--notify", action="store_true")
    p.set_defaults(func=cmd_profit_loss)

    p = sub.add_parser("partial", help="record a partial payment")
    p.add_argument("expense_id")
    p.add_argument("amount", type=float, help="total received so far")
    p.set_defaults(func=cmd_partial)

    p = sub.add_parser("settle", help="mark a partially paid expense fully received")
    p.add_argument("expense_id")
    p.add_argument("--invoice", help="invoice number to settle against")
    p.set_defaults(func=cmd_settle)

    p = sub.add_parser("mark-invoice-received", help="mark all expenses of an invoice received")
    p.add_argument("invoice")
    p.set_defaults(func=cmd_mark_invoice_received)

    p = sub.add_parser("bulk-delete", help="delete several expenses")
    p.add_argument("expense_ids", nargs="+")
    p.set_defaults(func=cmd_bulk_delete)

    p = sub.add_parser("invoice", help="create an invoice from service charges")
    p.add_argument("company")
    p.add_argument("--service", action="append", required=True, metavar="NAME[:QTY]")
    p.add_argument("--candidate")
    p.add_argument("--date", help="invoice date (YYYY-MM-DD), default today")
    p.add_argument("--discount", type=float, default=0.0, help="discount percent")
    p.add_argument("--tax", type=float, help="tax rate percent")
    p.set_defaults(func=cmd_invoice)

    p = sub.add_parser("import-charges", help="import service charges from a text file")
    p.add_argument("file")
    p.set_defaults(func=cmd_import_charges)
    return parser


def main(argv: Optional[List[str]] = None, store=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    cfg = load_reconcile_config()
    container = StateContainer(store or build_store())
    try:
        container.load()
        return args.func(args, container, cfg)
    except Exception as e:
        print(f"❌ {args.command} failed: {e}")
        return 1
    finally:
        container.close()


if __name__ == "__main__":
    sys.exit(main())
