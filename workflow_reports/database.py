from typing import Any, Dict, List, Optional, Sequence

import duckdb
import pandas as pd

from .config import resolve_database_path

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        email VARCHAR,
        role VARCHAR
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS processes (
        id VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        description VARCHAR,
        status VARCHAR NOT NULL DEFAULT 'pending',
        assigned_reviewer VARCHAR,
        due_date DATE,
        created_by VARCHAR NOT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT current_timestamp,
        updated_at TIMESTAMP NOT NULL DEFAULT current_timestamp
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS incidents (
        id VARCHAR PRIMARY KEY,
        process_id VARCHAR NOT NULL,
        description VARCHAR NOT NULL,
        status VARCHAR NOT NULL DEFAULT 'pending',
        evidence VARCHAR[],
        assigned_to VARCHAR,
        created_by VARCHAR NOT NULL,
        resolved_at TIMESTAMP,
        approved_at TIMESTAMP,
        created_at TIMESTAMP NOT NULL DEFAULT current_timestamp,
        updated_at TIMESTAMP NOT NULL DEFAULT current_timestamp
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS reports (
        id VARCHAR PRIMARY KEY,
        title VARCHAR NOT NULL,
        filename VARCHAR NOT NULL,
        process_ids VARCHAR[] NOT NULL,
        created_by VARCHAR NOT NULL,
        created_at TIMESTAMP NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_incidents_process ON incidents (process_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_reports_created_by ON reports (created_by);",
)


def connect_duckdb(data_path: Optional[str] = None) -> duckdb.DuckDBPyConnection:
    """
    Open the DuckDB database and make sure the tables exist.
    Callers own the connection and close it on shutdown.
    """
    path = data_path or resolve_database_path()
    conn = duckdb.connect(database=path)
    ensure_schema(conn)
    return conn


def ensure_schema(conn: duckdb.DuckDBPyConnection) -> None:
    for statement in SCHEMA:
        conn.execute(statement)


def fetch_df(
    conn: duckdb.DuckDBPyConnection, sql: str, params: Optional[Sequence[Any]] = None
) -> pd.DataFrame:
    """
    Run a SELECT on a dedicated cursor and return a DataFrame.
    DuckDB connections are not safe to share across threads; cursors are.
    Results are never cached: reports must reflect current data.
    """
    cursor = conn.cursor()
    try:
        return cursor.execute(sql, list(params or [])).df()
    finally:
        cursor.close()


def execute(conn: duckdb.DuckDBPyConnection, sql: str, params: Optional[Sequence[Any]] = None) -> None:
    cursor = conn.cursor()
    try:
        cursor.execute(sql, list(params or []))
    finally:
        cursor.close()


def records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert a DataFrame to dicts with NaN/NaT normalised to None."""
    if df.empty:
        return []
    clean = df.astype(object).where(df.notna(), None)
    return clean.to_dict(orient="records")
