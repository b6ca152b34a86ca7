"""DuckDB file (or in-memory) database holding the resolution journal."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

MEMORY = ":memory:"

SCHEMA_STATEMENTS = (
    "CREATE SEQUENCE IF NOT EXISTS attempt_seq START 1",
    # one row per finished resolution attempt; rows are never updated
    """
    CREATE TABLE IF NOT EXISTS resolution_attempts (
        id              BIGINT PRIMARY KEY DEFAULT nextval('attempt_seq'),
        market          VARCHAR NOT NULL,
        asset_symbol    VARCHAR,
        feed_id         VARCHAR,
        status          VARCHAR NOT NULL,
        final_price     BIGINT,
        outcome         BOOLEAN,
        error_kind      VARCHAR,
        error           VARCHAR,
        signature       VARCHAR,
        attempted_at    BIGINT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_attempts_market ON resolution_attempts (market)",
)


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Open the journal database; the caller closes it. Parent dirs are created for writers."""
    if str(db_path) == MEMORY:
        return duckdb.connect(MEMORY)
    path = Path(db_path).expanduser()
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create journal objects; safe to call on every start."""
    for statement in SCHEMA_STATEMENTS:
        conn.execute(statement)
