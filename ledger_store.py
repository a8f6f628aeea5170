#!/usr/bin/env python3
# Daybook ledger: in-memory record set + SQLite-backed durable namespaces + NDJSON backups
import copy
import datetime as dt
import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from ledger_errors import StorageFailure

logger = logging.getLogger(__name__)

SALES = "sales"
CASH = "cash"
EXPENSES = "expenses"
COLLECTIONS = (SALES, CASH, EXPENSES)
CASH_CURSOR_KEY = "cash-cursor"
ENDPOINT_KEY = "endpoint-config"

DEFAULT_CUSTOMER = "N/A"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS ledger_kv (
  key         TEXT PRIMARY KEY,
  value       TEXT NOT NULL,
  updated_utc TEXT NOT NULL
)
"""


def iso_now() -> str:
    now = dt.datetime.now(dt.timezone.utc)
    return now.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def today() -> str:
    return dt.date.today().isoformat()


def _as_float(value: Any) -> float:
    if value in (None, "", False):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass
class Ledger:
    """The three record collections plus the last-committed cash cursor."""
    sales: List[Dict[str, Any]] = field(default_factory=list)
    cash: List[Dict[str, Any]] = field(default_factory=list)
    expenses: List[Dict[str, Any]] = field(default_factory=list)
    current_cash_amount: Any = None
    last_cash_date: Optional[str] = None

    def copy(self) -> "Ledger":
        return copy.deepcopy(self)

    def collection(self, name: str) -> List[Dict[str, Any]]:
        if name == SALES:
            return self.sales
        if name == CASH:
            return self.cash
        if name == EXPENSES:
            return self.expenses
        raise ValueError(f"Unknown collection: {name}")


# ---------- ENCODING ----------
def encode_ledger(ledger: Ledger) -> Dict[str, str]:
    """Serialize each namespace to its own JSON document."""
    blobs = {name: json.dumps(ledger.collection(name), separators=(",", ":")) for name in COLLECTIONS}
    blobs[CASH_CURSOR_KEY] = json.dumps(
        {"amount": ledger.current_cash_amount, "date": ledger.last_cash_date},
        separators=(",", ":"),
    )
    return blobs


def decode_ledger(blobs: Dict[str, str]) -> Ledger:
    """Inverse of encode_ledger. Missing namespaces decode as empty."""
    ledger = Ledger()
    try:
        for name in COLLECTIONS:
            raw = blobs.get(name)
            if not raw:
                continue
            rows = json.loads(raw)
            if not isinstance(rows, list):
                raise ValueError(f"namespace {name!r} is not a list")
            if not all(isinstance(row, dict) for row in rows):
                raise ValueError(f"namespace {name!r} holds a non-object record")
            ledger.collection(name).extend(rows)
        raw_cursor = blobs.get(CASH_CURSOR_KEY)
        if raw_cursor:
            cursor = json.loads(raw_cursor) or {}
            if not isinstance(cursor, dict):
                raise ValueError("cash cursor is not an object")
            ledger.current_cash_amount = cursor.get("amount")
            ledger.last_cash_date = cursor.get("date")
    except ValueError as exc:
        raise StorageFailure(f"Stored ledger is unreadable: {exc}") from exc
    return ledger


class LedgerStore:
    """Owns the canonical ledger and the SQLite file it is flushed to.

    Every commit is written through before it returns; a failed write
    leaves both the in-memory ledger and the file untouched and raises
    StorageFailure.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ledger = Ledger()
        self._last_ids = {name: 0 for name in COLLECTIONS}

    # ---------- DURABLE HANDLE ----------
    @contextmanager
    def _handle(self) -> Iterator[sqlite3.Connection]:
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=FULL;")
            yield conn
        except (sqlite3.Error, OSError) as exc:
            logger.exception("Ledger storage failure on %s", self.db_path)
            raise StorageFailure(f"Ledger storage failed: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    def ensure_schema(self) -> None:
        with self._handle() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()

    def _write_keys(self, values: Dict[str, Optional[str]]) -> None:
        """Write several keys in one transaction; None deletes the key."""
        stamp = iso_now()
        with self._handle() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                for key, value in values.items():
                    if value is None:
                        conn.execute("DELETE FROM ledger_kv WHERE key=?", (key,))
                        continue
                    conn.execute("""
                        INSERT INTO ledger_kv (key, value, updated_utc) VALUES (?,?,?)
                        ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_utc=excluded.updated_utc
                    """, (key, value, stamp))
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    # ---------- LOAD / PERSIST ----------
    def load_all(self) -> Ledger:
        """Replace the in-memory ledger with what is on disk."""
        with self._handle() as conn:
            rows = conn.execute("SELECT key, value FROM ledger_kv").fetchall()
        blobs = {row["key"]: row["value"] for row in rows}
        self._ledger = decode_ledger(blobs)
        for name in COLLECTIONS:
            ids = [int(r["id"]) for r in self._ledger.collection(name) if isinstance(r.get("id"), int)]
            self._last_ids[name] = max(ids, default=0)
        logger.debug(
            "Loaded ledger: sales=%d cash=%d expenses=%d",
            len(self._ledger.sales), len(self._ledger.cash), len(self._ledger.expenses),
        )
        return self._ledger.copy()

    def persist_all(self, ledger: Optional[Ledger] = None) -> None:
        """Re-serialize every namespace atomically."""
        self._write_keys(encode_ledger(ledger if ledger is not None else self._ledger))

    # ---------- COMMITS ----------
    def _next_id(self, name: str) -> int:
        nid = self._last_ids[name] + 1
        self._last_ids[name] = nid
        return nid

    def _apply(self, mutate: Callable[[Ledger], Dict[str, Any]]) -> Dict[str, Any]:
        draft = self._ledger.copy()
        record = mutate(draft)
        self.persist_all(draft)
        self._ledger = draft
        return dict(record)

    def _append(self, name: str, record: Dict[str, Any]) -> Dict[str, Any]:
        def mutate(draft: Ledger) -> Dict[str, Any]:
            record["id"] = self._next_id(name)
            record["timestamp"] = iso_now()
            draft.collection(name).append(record)
            return record
        return self._apply(mutate)

    def commit_sale(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(payload)
        if not str(record.get("customerName") or "").strip():
            record["customerName"] = DEFAULT_CUSTOMER
        return self._append(SALES, record)

    def commit_expense(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._append(EXPENSES, dict(payload))

    def commit_cash(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Store the drawer balance for payload['date'], one record per date.

        An existing record for the date keeps its id and gets the new amount
        and timestamp. The cursors always follow the last commit, not the
        latest date.
        """
        def mutate(draft: Ledger) -> Dict[str, Any]:
            day = payload.get("date")
            existing = next((r for r in draft.cash if r.get("date") == day), None)
            if existing is not None:
                existing["amount"] = payload.get("amount")
                existing["timestamp"] = iso_now()
                record = existing
            else:
                record = dict(payload)
                record["id"] = self._next_id(CASH)
                record["timestamp"] = iso_now()
                draft.cash.append(record)
            draft.current_cash_amount = record.get("amount")
            draft.last_cash_date = record.get("date")
            return record
        return self._apply(mutate)

    # ---------- QUERIES ----------
    def sales(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._ledger.sales)

    def cash_entries(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._ledger.cash)

    def expenses(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._ledger.expenses)

    def snapshot(self) -> Ledger:
        return self._ledger.copy()

    @property
    def current_cash_amount(self) -> Any:
        return self._ledger.current_cash_amount

    @property
    def last_cash_date(self) -> Optional[str]:
        return self._ledger.last_cash_date

    def most_recent_cash(self) -> Optional[Dict[str, Any]]:
        """Cash record with the latest date (chronological, not last committed)."""
        ordered = sorted(self._ledger.cash, key=lambda r: str(r.get("date") or ""), reverse=True)
        return dict(ordered[0]) if ordered else None

    def summary(self, day: Optional[str] = None) -> Dict[str, Any]:
        day = day or today()
        sales = [r for r in self._ledger.sales if r.get("date") == day]
        expenses = [r for r in self._ledger.expenses if r.get("date") == day]
        cash = next((r for r in self._ledger.cash if r.get("date") == day), None)
        sales_total = round(sum(_as_float(r.get("amount")) for r in sales), 2)
        expenses_total = round(sum(_as_float(r.get("amount")) for r in expenses), 2)
        return {
            "date": day,
            "sales_count": len(sales),
            "sales_total": sales_total,
            "expenses_count": len(expenses),
            "expenses_total": expenses_total,
            "net": round(sales_total - expenses_total, 2),
            "cash": cash.get("amount") if cash else None,
        }

    # ---------- ENDPOINT CONFIG ----------
    def load_endpoint(self) -> Optional[str]:
        with self._handle() as conn:
            row = conn.execute("SELECT value FROM ledger_kv WHERE key=?", (ENDPOINT_KEY,)).fetchone()
        if not row:
            return None
        try:
            value = json.loads(row["value"])
        except ValueError as exc:
            raise StorageFailure(f"Stored endpoint is unreadable: {exc}") from exc
        return value if isinstance(value, str) and value else None

    def has_endpoint_config(self) -> bool:
        """True once an endpoint has been saved or explicitly cleared."""
        with self._handle() as conn:
            row = conn.execute("SELECT 1 FROM ledger_kv WHERE key=?", (ENDPOINT_KEY,)).fetchone()
        return row is not None

    def save_endpoint(self, url: Optional[str]) -> None:
        # None is stored as null; a missing key means never configured
        self._write_keys({ENDPOINT_KEY: json.dumps(url or None)})

    # ---------- BACKUPS ----------
    def backup_ndjson(self, backup_dir: str, day: Optional[str] = None) -> List[Path]:
        """
        day: 'YYYY-MM-DD' business date. Defaults to today.
        Produces one NDJSON file per collection with that day's records.
        """
        day = day or today()
        out_dir = Path(backup_dir)
        paths = []
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            for name in COLLECTIONS:
                path = out_dir / f"{name}_{day}.ndjson"
                with open(path, "w", encoding="utf-8") as f:
                    for record in self._ledger.collection(name):
                        if record.get("date") == day:
                            f.write(json.dumps(record, separators=(",", ":")) + "\n")
                paths.append(path)
        except OSError as exc:
            raise StorageFailure(f"Backup to {out_dir} failed: {exc}") from exc
        logger.info("Backed up %s to %s", day, ", ".join(str(p) for p in paths))
        return paths


def init(db_path: str) -> LedgerStore:
    """Open (creating if needed) the ledger at db_path and load it."""
    store = LedgerStore(db_path)
    store.ensure_schema()
    store.load_all()
    return store
