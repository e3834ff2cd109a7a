import json
import threading
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

import requests


RETRYABLE_STATUS = (429, 500, 502, 503, 504)
INDEX_RETRIES = 3
INDEX_RETRY_DELAY = 2.0


class FirestoreClient:
    """Firestore REST API client: document collections over HTTPS."""

    def __init__(self, project_id: str, token: Optional[str] = None, api_key: Optional[str] = None,
                 database: str = "(default)", poll_interval: float = 5.0):
        self.project_id = project_id
        self.token = token
        self.api_key = api_key
        self.base_url = f"https://firestore.googleapis.com/v1/projects/{project_id}/databases/{database}/documents"
        self.poll_interval = poll_interval
        self.headers = {"Content-Type": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    # ---------------- HTTP ----------------
    def _request(self, method: str, url: str, params=None, json_body=None, max_retries: int = 5) -> requests.Response:
        if self.api_key:
            if isinstance(params, list):
                params = params + [("key", self.api_key)]
            else:
                params = dict(params or {}, key=self.api_key)
        backoff = 1
        r = None
        for attempt in range(max_retries):
            r = requests.request(method, url, headers=self.headers, params=params, json=json_body)
            if r.status_code not in RETRYABLE_STATUS:
                r.raise_for_status()
                return r
            print(f"🔄 Firestore {r.status_code} on {method} {url} (attempt {attempt + 1}/{max_retries})")
            time.sleep(backoff)
            backoff = min(backoff * 2, 16)
        r.raise_for_status()
        return r

    # ---------------- collections ----------------
    def list(self, collection: str) -> List[Dict]:
        out: List[Dict] = []
        params = {"pageSize": 300}
        while True:
            data = self._request("GET", f"{self.base_url}/{collection}", params=params).json()
            out.extend(decode_document(d) for d in data.get("documents", []))
            token = data.get("nextPageToken")
            if not token:
                return out
            params = {"pageSize": 300, "pageToken": token}

    def get(self, collection: str, doc_id: str) -> Optional[Dict]:
        try:
            r = self._request("GET", f"{self.base_url}/{collection}/{doc_id}")
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                return None
            raise
        return decode_document(r.json())

    def create(self, collection: str, data: Dict) -> Dict:
        body = {"fields": encode_fields({k: v for k, v in data.items() if k != "id"})}
        r = self._request("POST", f"{self.base_url}/{collection}", json_body=body)
        return decode_document(r.json())

    def update(self, collection: str, doc_id: str, patch: Dict) -> Dict:
        fields = {k: v for k, v in patch.items() if k != "id"}
        if not fields:
            # a PATCH without updateMask overwrites the whole document
            current = self.get(collection, doc_id)
            if current is None:
                raise KeyError(f"{collection}/{doc_id} not found")
            return current
        params = [("updateMask.fieldPaths", k) for k in fields]
        params.append(("currentDocument.exists", "true"))
        r = self._request("PATCH", f"{self.base_url}/{collection}/{doc_id}", params=params,
                          json_body={"fields": encode_fields(fields)})
        return decode_document(r.json())

    def delete(self, collection: str, doc_id: str) -> str:
        self._request("DELETE", f"{self.base_url}/{collection}/{doc_id}")
        return doc_id

    def query(self, collection: str, field: str, value, order_by: Optional[str] = None,
              descending: bool = True) -> List[Dict]:
        """Equality query, optionally ordered.

        Ordered queries need a composite index. Until it has been built the
        backend answers FAILED_PRECONDITION; that is retried a few times with a
        fixed delay before giving up.
        """
        structured = {
            "from": [{"collectionId": collection}],
            "where": {"fieldFilter": {"field": {"fieldPath": field}, "op": "EQUAL", "value": encode_value(value)}},
        }
        if order_by:
            structured["orderBy"] = [{"field": {"fieldPath": order_by},
                                      "direction": "DESCENDING" if descending else "ASCENDING"}]
        url = f"{self.base_url}:runQuery"
        for attempt in range(1, INDEX_RETRIES + 1):
            try:
                r = self._request("POST", url, json_body={"structuredQuery": structured})
                return [decode_document(row["document"]) for row in r.json() if row.get("document")]
            except requests.HTTPError as e:
                if not _is_missing_index(e) or attempt == INDEX_RETRIES:
                    raise
                print(f"⚠️ index for {collection} is still being built, retry {attempt}/{INDEX_RETRIES - 1}")
                time.sleep(INDEX_RETRY_DELAY)
        return []

    def subscribe(self, collection: str, on_change: Callable[[List[Dict]], None]) -> Callable[[], None]:
        """Poll ``collection`` and call ``on_change`` whenever it differs from the last snapshot."""
        stop = threading.Event()
        last = self.list(collection)
        on_change(last)

        def poll():
            nonlocal last
            while not stop.wait(self.poll_interval):
                try:
                    current = self.list(collection)
                except requests.RequestException as e:
                    print(f"⚠️ poll failed for {collection}: {e}")
                    continue
                if _snapshot_key(current) != _snapshot_key(last):
                    last = current
                    on_change(current)

        threading.Thread(target=poll, name=f"poll-{collection}", daemon=True).start()
        return stop.set


def _snapshot_key(records: List[Dict]) -> str:
    return json.dumps(records, sort_keys=True, default=str)


def _is_missing_index(err: requests.HTTPError) -> bool:
    resp = err.response
    if resp is None or resp.status_code != 400:
        return False
    try:
        payload = resp.json()
    except ValueError:
        return False
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    error = payload.get("error", {})
    return error.get("status") == "FAILED_PRECONDITION" and "index" in error.get("message", "")


def encode_value(value) -> Dict:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": value.isoformat() + ("" if value.tzinfo else "Z")}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    return {"stringValue": str(value)}


def encode_fields(data: Dict) -> Dict:
    return {k: encode_value(v) for k, v in data.items()}


def decode_value(value: Dict):
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return value["booleanValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return value["timestampValue"]
    if "stringValue" in value:
        return value["stringValue"]
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return {k: decode_value(v) for k, v in value["mapValue"].get("fields", {}).items()}
    raise ValueError(f"unsupported Firestore value: {value}")


def decode_document(doc: Dict) -> Dict:
    out = {k: decode_value(v) for k, v in doc.get("fields", {}).items()}
    out["id"] = doc["name"].rsplit("/", 1)[-1]
    return out
