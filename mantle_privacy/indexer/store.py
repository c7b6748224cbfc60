"""
SQLite persistence for the indexer.

Everything here is append-only and keyed by (transaction_hash, log_index), so
replaying a block range is a no-op. A scanned range is committed in one
transaction together with the cursor: either all of its events and the new
cursor land, or nothing does.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from ..chain.events import AnnouncementEvent, DepositEvent, WithdrawalEvent

logger = logging.getLogger(__name__)

DDL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS scanner_state(
  id INTEGER PRIMARY KEY CHECK (id = 1),
  last_block_scanned INTEGER NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS announcements(
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  scheme_id INTEGER NOT NULL,
  stealth_address TEXT NOT NULL,
  caller TEXT NOT NULL,
  ephemeral_pub_key TEXT NOT NULL,
  metadata TEXT NOT NULL,
  view_tag INTEGER,
  block_number INTEGER NOT NULL,
  transaction_hash TEXT NOT NULL,
  log_index INTEGER NOT NULL,
  UNIQUE(transaction_hash, log_index)
);
CREATE INDEX IF NOT EXISTS idx_announcements_stealth
  ON announcements(stealth_address);

CREATE TABLE IF NOT EXISTS deposits(
  leaf_index INTEGER PRIMARY KEY,
  commitment TEXT NOT NULL,
  amount TEXT NOT NULL,
  timestamp INTEGER NOT NULL,
  block_number INTEGER NOT NULL,
  transaction_hash TEXT NOT NULL,
  log_index INTEGER NOT NULL,
  UNIQUE(transaction_hash, log_index)
);

CREATE TABLE IF NOT EXISTS withdrawals(
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  recipient TEXT NOT NULL,
  nullifier_hash TEXT NOT NULL,
  amount TEXT NOT NULL,
  timestamp INTEGER NOT NULL,
  block_number INTEGER NOT NULL,
  transaction_hash TEXT NOT NULL,
  log_index INTEGER NOT NULL,
  UNIQUE(transaction_hash, log_index)
);
CREATE INDEX IF NOT EXISTS idx_withdrawals_nullifier
  ON withdrawals(nullifier_hash);
"""


def _now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _announcement_from_row(row: sqlite3.Row) -> AnnouncementEvent:
    return AnnouncementEvent(
        scheme_id=row["scheme_id"],
        stealth_address=row["stealth_address"],
        caller=row["caller"],
        ephemeral_public_key=bytes.fromhex(row["ephemeral_pub_key"]),
        metadata=bytes.fromhex(row["metadata"]),
        block_number=row["block_number"],
        transaction_hash=row["transaction_hash"],
        log_index=row["log_index"],
    )


def _deposit_from_row(row: sqlite3.Row) -> DepositEvent:
    return DepositEvent(
        commitment=int(row["commitment"]),
        leaf_index=row["leaf_index"],
        amount=int(row["amount"]),
        timestamp=row["timestamp"],
        block_number=row["block_number"],
        transaction_hash=row["transaction_hash"],
        log_index=row["log_index"],
    )


def _withdrawal_from_row(row: sqlite3.Row) -> WithdrawalEvent:
    return WithdrawalEvent(
        recipient=row["recipient"],
        nullifier_hash=int(row["nullifier_hash"]),
        amount=int(row["amount"]),
        timestamp=row["timestamp"],
        block_number=row["block_number"],
        transaction_hash=row["transaction_hash"],
        log_index=row["log_index"],
    )


class IndexerStore:
    """
    Thread-safe wrapper around one SQLite connection.

    The trio ingestor writes and the API thread reads, so the connection is
    shared across threads and serialized with a lock.
    """

    def __init__(self, path: str = ":memory:") -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        with self._lock:
            self._conn.executescript(DDL)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # cursor
    # ------------------------------------------------------------------

    def get_cursor(self) -> Optional[int]:
        with self._lock:
            row = self._conn.execute(
                "SELECT last_block_scanned FROM scanner_state WHERE id = 1"
            ).fetchone()
        return None if row is None else row["last_block_scanned"]

    def init_cursor(self, last_block_scanned: int) -> int:
        """Create the cursor if missing and return its current value."""
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR IGNORE INTO scanner_state(id, last_block_scanned, updated_at) "
                "VALUES (1, ?, ?)",
                (last_block_scanned, _now()),
            )
            row = self._conn.execute(
                "SELECT last_block_scanned FROM scanner_state WHERE id = 1"
            ).fetchone()
        return row["last_block_scanned"]

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def commit_range(
        self,
        to_block: int,
        announcements: Iterable[AnnouncementEvent] = (),
        deposits: Iterable[DepositEvent] = (),
        withdrawals: Iterable[WithdrawalEvent] = (),
    ) -> Dict[str, int]:
        """
        Store a scanned range and advance the cursor atomically.

        Returns:
            Number of newly inserted rows per table.
        """
        counts = {"announcements": 0, "deposits": 0, "withdrawals": 0}
        with self._lock, self._conn:
            for a in announcements:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO announcements(scheme_id, stealth_address, caller, "
                    "ephemeral_pub_key, metadata, view_tag, block_number, transaction_hash, "
                    "log_index) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        a.scheme_id,
                        a.stealth_address,
                        a.caller,
                        a.ephemeral_public_key.hex(),
                        a.metadata.hex(),
                        a.view_tag,
                        a.block_number,
                        a.transaction_hash,
                        a.log_index,
                    ),
                )
                counts["announcements"] += cur.rowcount
            for d in deposits:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO deposits(leaf_index, commitment, amount, timestamp, "
                    "block_number, transaction_hash, log_index) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        d.leaf_index,
                        str(d.commitment),
                        str(d.amount),
                        d.timestamp,
                        d.block_number,
                        d.transaction_hash,
                        d.log_index,
                    ),
                )
                counts["deposits"] += cur.rowcount
            for w in withdrawals:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO withdrawals(recipient, nullifier_hash, amount, "
                    "timestamp, block_number, transaction_hash, log_index) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        w.recipient,
                        str(w.nullifier_hash),
                        str(w.amount),
                        w.timestamp,
                        w.block_number,
                        w.transaction_hash,
                        w.log_index,
                    ),
                )
                counts["withdrawals"] += cur.rowcount
            self._conn.execute(
                "INSERT INTO scanner_state(id, last_block_scanned, updated_at) VALUES (1, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET last_block_scanned = excluded.last_block_scanned, "
                "updated_at = excluded.updated_at",
                (to_block, _now()),
            )
        return counts

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def load_deposits(self) -> List[DepositEvent]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM deposits ORDER BY leaf_index").fetchall()
        return [_deposit_from_row(r) for r in rows]

    def load_nullifiers(self) -> Set[int]:
        with self._lock:
            rows = self._conn.execute("SELECT DISTINCT nullifier_hash FROM withdrawals").fetchall()
        return {int(r["nullifier_hash"]) for r in rows}

    def list_announcements(
        self,
        stealth_address: Optional[str] = None,
        from_block: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AnnouncementEvent]:
        query = "SELECT * FROM announcements WHERE 1 = 1"
        params: list = []
        if stealth_address:
            query += " AND lower(stealth_address) = lower(?)"
            params.append(stealth_address)
        if from_block is not None:
            query += " AND block_number >= ?"
            params.append(from_block)
        query += " ORDER BY block_number, log_index LIMIT ? OFFSET ?"
        params += [limit, offset]
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [_announcement_from_row(r) for r in rows]

    def list_deposits(self, limit: int = 100, offset: int = 0) -> List[DepositEvent]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM deposits ORDER BY leaf_index LIMIT ? OFFSET ?", (limit, offset)
            ).fetchall()
        return [_deposit_from_row(r) for r in rows]

    def list_withdrawals(self, limit: int = 100, offset: int = 0) -> List[WithdrawalEvent]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM withdrawals ORDER BY block_number, log_index LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [_withdrawal_from_row(r) for r in rows]

    def find_withdrawal(self, nullifier_hash: int) -> Optional[WithdrawalEvent]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM withdrawals WHERE nullifier_hash = ? "
                "ORDER BY block_number, log_index LIMIT 1",
                (str(nullifier_hash),),
            ).fetchone()
        return None if row is None else _withdrawal_from_row(row)

    def counts(self) -> Dict[str, int]:
        with self._lock:
            return {
                table: self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in ("announcements", "deposits", "withdrawals")
            }
