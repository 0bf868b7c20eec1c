# src/zeromoney/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

Json = Dict[str, Any]

# (root, key, value) where value None means "entry deleted"
Change = Tuple[str, str, Optional[Any]]

_SYNC_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    No default= hook: a non-JSON value in the ledger is a bug and must fail here,
    not be silently stringified.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    try:
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


@dataclass(frozen=True)
class SqliteSettings:
    """Connection and write-retry knobs, read from ZEROMONEY_SQLITE_* env."""

    synchronous: str
    require_wal: bool
    connect_timeout_ms: int
    busy_timeout_ms: int
    write_deadline_ms: int
    backoff_base_ms: int
    backoff_max_ms: int

    @classmethod
    def from_env(cls) -> "SqliteSettings":
        # Durable fsync in prod; NORMAL is safe under WAL for dev/testnet.
        mode = (os.environ.get("ZEROMONEY_MODE") or "prod").strip().lower()
        default_sync = "FULL" if mode == "prod" else "NORMAL"
        sync = (os.environ.get("ZEROMONEY_SQLITE_SYNCHRONOUS") or default_sync).strip().upper()

        connect_ms = max(0, _env_int("ZEROMONEY_SQLITE_CONNECT_TIMEOUT_MS", 30_000))
        base_ms = max(1, _env_int("ZEROMONEY_SQLITE_WRITE_BACKOFF_BASE_MS", 5))
        return cls(
            synchronous=sync if sync in _SYNC_LEVELS else default_sync,
            require_wal=(os.environ.get("ZEROMONEY_SQLITE_ALLOW_NON_WAL") or "").strip().lower() not in {"1", "true"},
            connect_timeout_ms=connect_ms,
            busy_timeout_ms=max(0, _env_int("ZEROMONEY_SQLITE_BUSY_TIMEOUT_MS", connect_ms)),
            write_deadline_ms=max(250, _env_int("ZEROMONEY_SQLITE_WRITE_DEADLINE_MS", 30_000)),
            backoff_base_ms=base_ms,
            backoff_max_ms=max(base_ms, _env_int("ZEROMONEY_SQLITE_WRITE_BACKOFF_MAX_MS", 250)),
        )

    def backoff_s(self, attempt: int) -> float:
        """Exponential backoff with +/-50% jitter, capped at backoff_max_ms."""
        ms = min(self.backoff_max_ms, self.backoff_base_ms * (2 ** min(attempt, 8)))
        return (ms / 1000.0) * (0.5 + random.random())


class SqliteDB:
    """SQLite manager for the token ledger.

    One durable DB file, one short-lived connection per operation. SQLite
    allows a single writer at a time, so write_tx() retries BEGIN IMMEDIATE
    with bounded backoff before failing closed.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str, settings: Optional[SqliteSettings] = None) -> None:
        self.path = str(path)
        self.settings = settings or SqliteSettings.from_env()

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        s = self.settings

        con = sqlite3.connect(
            self.path,
            timeout=s.connect_timeout_ms / 1000.0,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if s.require_wal and mode and mode != "wal":
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={s.synchronous};")
        con.execute("PRAGMA temp_store=MEMORY;")
        con.execute(f"PRAGMA busy_timeout={s.busy_timeout_ms};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute("CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_entries (
                  root TEXT NOT NULL,
                  key TEXT NOT NULL,
                  value_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL,
                  PRIMARY KEY (root, key)
                );
                """
            )

            have = self._meta_get(con, "schema_version")
            if have is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            elif have != str(self.SCHEMA_VERSION):
                raise RuntimeError(
                    f"sqlite schema_version mismatch: have={have} want={self.SCHEMA_VERSION}. "
                    "Refuse to start to avoid corrupting data."
                )

    @staticmethod
    def _meta_get(con: sqlite3.Connection, key: str) -> Optional[str]:
        row = con.execute("SELECT value FROM meta WHERE key=? LIMIT 1;", (key,)).fetchone()
        return None if row is None else str(row["value"])

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    def _execute_with_lock_retry(self, con: sqlite3.Connection, sql: str, deadline_ms: int) -> None:
        attempt = 0
        while True:
            try:
                con.execute(sql)
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                locked = "database is locked" in msg or "database is busy" in msg
                if not locked or _now_ms() >= deadline_ms:
                    raise
                time.sleep(self.settings.backoff_s(attempt))
                attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, retrying both on writer-lock contention
        until ZEROMONEY_SQLITE_WRITE_DEADLINE_MS; rolls back on any exception."""
        deadline = _now_ms() + self.settings.write_deadline_ms
        with self.connection() as con:
            self._execute_with_lock_retry(con, "BEGIN IMMEDIATE;", deadline)
            try:
                yield con
                self._execute_with_lock_retry(con, "COMMIT;", deadline)
            except Exception:
                if con.in_transaction:
                    con.execute("ROLLBACK;")
                raise


class SqliteLedgerStore:
    """Ledger persisted as one row per (root, key) entry.

      - exists(): has a genesis snapshot been written
      - read(): rebuild the full state dict (boot only)
      - write(st): replace everything with a full snapshot (genesis)
      - apply_changes(changes): upsert/delete the entries one operation touched

    apply_changes keeps per-operation persistence proportional to the entries
    touched rather than to the number of holders.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM meta WHERE key='genesis_ts_ms' LIMIT 1;").fetchone() is not None

    def read(self) -> Json:
        if not self.exists():
            raise FileNotFoundError("sqlite ledger has no genesis snapshot")

        st: Json = {}
        with self._db.connection() as con:
            for row in con.execute("SELECT root, key, value_json FROM ledger_entries;"):
                st.setdefault(str(row["root"]), {})[str(row["key"])] = json.loads(str(row["value_json"]))
        return st

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")

        now = _now_ms()
        rows = []
        for root, entries in st.items():
            if not isinstance(entries, dict):
                raise ValueError(f"ledger root {root!r} is not a JSON object")
            for key, value in entries.items():
                rows.append((str(root), str(key), _canon_json(value), now))

        with self._db.write_tx() as con:
            con.execute("DELETE FROM ledger_entries;")
            con.executemany(
                "INSERT INTO ledger_entries(root, key, value_json, updated_ts_ms) VALUES(?, ?, ?, ?);",
                rows,
            )
            con.execute(
                "INSERT INTO meta(key, value) VALUES('genesis_ts_ms', ?) ON CONFLICT(key) DO NOTHING;",
                (str(now),),
            )

    def apply_changes(self, changes: Iterable[Change]) -> int:
        """Persist one operation's touched entries in a single transaction. Returns rows written."""
        now = _now_ms()
        n = 0
        with self._db.write_tx() as con:
            for root, key, value in changes:
                if value is None:
                    con.execute("DELETE FROM ledger_entries WHERE root=? AND key=?;", (root, key))
                else:
                    con.execute(
                        """
                        INSERT INTO ledger_entries(root, key, value_json, updated_ts_ms)
                        VALUES(?, ?, ?, ?)
                        ON CONFLICT(root, key) DO UPDATE SET
                          value_json=excluded.value_json,
                          updated_ts_ms=excluded.updated_ts_ms;
                        """,
                        (root, key, _canon_json(value), now),
                    )
                n += 1
        return n
