import json
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, List, Optional


Listener = Callable[[List[Dict]], None]


def _get_db_path() -> str:
    """Resolved on every call so tests can point it elsewhere with monkeypatch."""
    return os.getenv("EXPENSE_STORE_DB", "expense_store.db")


class SQLiteDocumentStore:
    """Document collections kept in a local SQLite file.

    Same surface as the hosted store: list/get/create/update/delete per
    collection, equality ``query`` and ``subscribe`` for change callbacks.
    """

    def __init__(self, path: Optional[str] = None):
        self._path = path
        self._listeners: Dict[str, List[Listener]] = {}
        self.init_db()

    @property
    def path(self) -> str:
        return self._path or _get_db_path()

    @contextmanager
    def _conn(self):
        con = sqlite3.connect(self.path)
        con.execute("PRAGMA journal_mode=WAL;")
        try:
            yield con
            con.commit()
        finally:
            con.close()

    def init_db(self):
        with self._conn() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                  collection TEXT,
                  id TEXT,
                  data_json TEXT,
                  created_at TEXT,
                  PRIMARY KEY (collection, id)
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                  ts TEXT,
                  level TEXT,
                  actor TEXT,
                  action TEXT,
                  target_ids TEXT,
                  result TEXT,
                  error TEXT
                );
                """
            )

    def list(self, collection: str) -> List[Dict]:
        with self._conn() as con:
            cur = con.execute(
                "SELECT id, data_json FROM documents WHERE collection=? ORDER BY created_at, rowid",
                (collection,),
            )
            return [dict(json.loads(data), id=doc_id) for doc_id, data in cur.fetchall()]

    def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        with self._conn() as con:
            cur = con.execute("SELECT data_json FROM documents WHERE collection=? AND id=?", (collection, doc_id))
            row = cur.fetchone()
            if not row:
                return None
            return dict(json.loads(row[0]), id=doc_id)

    def create(self, collection: str, data: Dict) -> Dict:
        doc_id = uuid.uuid4().hex
        body = {k: v for k, v in data.items() if k != "id"}
        with self._conn() as con:
            con.execute(
                "INSERT INTO documents(collection, id, data_json, created_at) VALUES (?,?,?,?)",
                (collection, doc_id, json.dumps(body, ensure_ascii=False), datetime.utcnow().isoformat()),
            )
        self._notify(collection)
        return dict(body, id=doc_id)

    def update(self, collection: str, doc_id: str, patch: Dict) -> Dict:
        current = self.get(collection, doc_id)
        if current is None:
            raise KeyError(f"{collection}/{doc_id} not found")
        current.update({k: v for k, v in patch.items() if k != "id"})
        body = {k: v for k, v in current.items() if k != "id"}
        with self._conn() as con:
            con.execute(
                "UPDATE documents SET data_json=? WHERE collection=? AND id=?",
                (json.dumps(body, ensure_ascii=False), collection, doc_id),
            )
        self._notify(collection)
        return current

    def delete(self, collection: str, doc_id: str) -> str:
        with self._conn() as con:
            con.execute("DELETE FROM documents WHERE collection=? AND id=?", (collection, doc_id))
        self._notify(collection)
        return doc_id

    def query(self, collection: str, field: str, value, order_by: Optional[str] = None,
              descending: bool = True) -> List[Dict]:
        rows = [r for r in self.list(collection) if r.get(field) == value]
        if order_by:
            # Firestore leaves out documents that lack the order field
            rows = [r for r in rows if r.get(order_by) is not None]
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        return rows

    def subscribe(self, collection: str, on_change: Listener) -> Callable[[], None]:
        """Register ``on_change``; it gets the full collection now and after every write."""
        self._listeners.setdefault(collection, []).append(on_change)
        on_change(self.list(collection))

        def unsubscribe():
            listeners = self._listeners.get(collection, [])
            if on_change in listeners:
                listeners.remove(on_change)

        return unsubscribe

    def _notify(self, collection: str):
        listeners = list(self._listeners.get(collection, []))
        if not listeners:
            return
        records = self.list(collection)
        for listener in listeners:
            try:
                listener(records)
            except Exception as e:
                print(f"⚠️ listener error on {collection}: {e}")

    def write_audit(self, level: str, actor: str, action: str, target_ids: list, result: str, error: str | None = None):
        with self._conn() as con:
            con.execute(
                "INSERT INTO audit_log(ts, level, actor, action, target_ids, result, error) VALUES (?,?,?,?,?,?,?)",
                (datetime.utcnow().isoformat(), level, actor, action, json.dumps(target_ids), result, error),
            )

    def read_audit(self, action: Optional[str] = None) -> List[Dict]:
        with self._conn() as con:
            if action:
                cur = con.execute(
                    "SELECT ts, level, actor, action, target_ids, result, error FROM audit_log WHERE action=? ORDER BY rowid",
                    (action,),
                )
            else:
                cur = con.execute("SELECT ts, level, actor, action, target_ids, result, error FROM audit_log ORDER BY rowid")
            return [
                {
                    "ts": ts,
                    "level": level,
                    "actor": actor,
                    "action": act,
                    "target_ids": json.loads(target_ids or "[]"),
                    "result": result,
                    "error": error,
                }
                for ts, level, actor, act, target_ids, result, error in cur.fetchall()
            ]
