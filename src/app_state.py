"""
Application state as one immutable tree.

Reducers take a state and return a new one; nothing is mutated in place. A
``StateContainer`` wires store subscriptions to the reducers and is passed to
whoever needs it instead of living in a module-level global.
"""

from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Tuple

from models import EXPENSES, INVOICES, RECORD_TYPES, REPORTS, SERVICE_CHARGES, RecordError


FIELD_BY_COLLECTION = {
    EXPENSES: "expenses",
    INVOICES: "invoices",
    SERVICE_CHARGES: "service_charges",
    REPORTS: "reports",
}


@dataclass(frozen=True)
class AppState:
    expenses: Tuple = ()
    invoices: Tuple = ()
    service_charges: Tuple = ()
    reports: Tuple = ()
    rejected: Tuple[str, ...] = ()


def _parse(collection: str, records: List[Dict]):
    cls = RECORD_TYPES[collection]
    parsed, rejected = [], []
    for rec in records:
        try:
            parsed.append(cls.from_record(rec))
        except RecordError as e:
            rejected.append(f"{collection}/{rec.get('id', '?')}: {e}")
    return tuple(parsed), tuple(rejected)


def replace_collection(state: AppState, collection: str, records: List[Dict]) -> AppState:
    """Swap in a full snapshot; records that fail validation are listed in ``rejected``."""
    field = FIELD_BY_COLLECTION[collection]
    parsed, rejected = _parse(collection, records)
    others = tuple(r for r in state.rejected if not r.startswith(f"{collection}/"))
    return replace(state, **{field: parsed, "rejected": others + rejected})


def upsert(state: AppState, collection: str, record: Dict) -> AppState:
    field = FIELD_BY_COLLECTION[collection]
    item = RECORD_TYPES[collection].from_record(record)
    current = getattr(state, field)
    if any(x.id == item.id for x in current):
        updated = tuple(item if x.id == item.id else x for x in current)
    else:
        updated = current + (item,)
    return replace(state, **{field: updated})


def remove(state: AppState, collection: str, doc_id: str) -> AppState:
    field = FIELD_BY_COLLECTION[collection]
    return replace(state, **{field: tuple(x for x in getattr(state, field) if x.id != doc_id)})


class StateContainer:
    """Holds the current ``AppState`` and keeps it in sync with a document store."""

    def __init__(self, store, state: AppState = None):
        self.store = store
        self.state = state or AppState()
        self._unsubscribers: List[Callable[[], None]] = []

    def dispatch(self, reducer, *args) -> AppState:
        self.state = reducer(self.state, *args)
        return self.state

    def load(self, collections=tuple(FIELD_BY_COLLECTION)) -> AppState:
        for c in collections:
            self.dispatch(replace_collection, c, self.store.list(c))
        self._report_rejected()
        return self.state

    def watch(self, collections=(EXPENSES,)):
        for c in collections:
            unsub = self.store.subscribe(c, lambda records, c=c: self.dispatch(replace_collection, c, records))
            self._unsubscribers.append(unsub)

    def close(self):
        while self._unsubscribers:
            self._unsubscribers.pop()()

    def _report_rejected(self):
        for msg in self.state.rejected:
            print(f"⚠️ skipped invalid record {msg}")
