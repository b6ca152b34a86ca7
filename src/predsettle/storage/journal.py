"""Resolution attempt journal - append and summarize."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass(frozen=True)
class AttemptRecord:
    market: str
    status: str
    asset_symbol: str | None = None
    feed_id: str | None = None
    final_price: int | None = None
    outcome: bool | None = None
    error_kind: str | None = None
    error: str | None = None
    signature: str | None = None
    attempted_at: int | None = None  # ms epoch


def append_attempt(conn: DuckDBPyConnection, record: AttemptRecord) -> None:
    conn.execute(
        """
        INSERT INTO resolution_attempts
            (market, asset_symbol, feed_id, status, final_price, outcome, error_kind, error, signature, attempted_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            record.market,
            record.asset_symbol,
            record.feed_id,
            record.status,
            record.final_price,
            record.outcome,
            record.error_kind,
            record.error,
            record.signature,
            record.attempted_at or int(time.time() * 1000),
        ],
    )


class Journal:
    """Owns a journal connection. Write failures are logged, never raised."""

    def __init__(self, conn: DuckDBPyConnection) -> None:
        self._conn = conn

    def record(self, record: AttemptRecord) -> None:
        try:
            append_attempt(self._conn, record)
        except Exception as e:
            log.error("journal_write_failed", market=record.market, error=str(e))

    def close(self) -> None:
        self._conn.close()


def journal_stats(conn: DuckDBPyConnection, recent: int = 10) -> dict[str, Any]:
    """Counts by status and the most recent attempts."""
    total = conn.execute("SELECT COUNT(*) FROM resolution_attempts").fetchone()[0]
    by_status = dict(
        conn.execute(
            "SELECT status, COUNT(*) FROM resolution_attempts GROUP BY status ORDER BY status"
        ).fetchall()
    )
    rows = conn.execute(
        """
        SELECT market, status, final_price, outcome, error_kind, signature, attempted_at
        FROM resolution_attempts ORDER BY id DESC LIMIT ?
        """,
        [recent],
    ).fetchall()
    columns = ["market", "status", "final_price", "outcome", "error_kind", "signature", "attempted_at"]
    return {
        "total_attempts": total,
        "by_status": by_status,
        "recent": [dict(zip(columns, r)) for r in rows],
    }
