import asyncio
import logging
import re
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from .database import execute, fetch_df, records
from .errors import NotFoundError
from .models import ReportRecord

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9]")


def build_filename(title: str, on_date: Optional[date] = None) -> str:
    """reporte-<title with each non-alphanumeric character replaced>-<YYYY-MM-DD>.pdf"""
    stamp = (on_date or datetime.now(timezone.utc).date()).isoformat()
    return f"reporte-{_UNSAFE_FILENAME_CHARS.sub('-', title)}-{stamp}.pdf"


def _record(row: Dict[str, Any]) -> ReportRecord:
    created_at = row["created_at"]
    if hasattr(created_at, "to_pydatetime"):
        created_at = created_at.to_pydatetime()
    process_ids = row.get("process_ids")
    return ReportRecord(
        id=row["id"],
        title=row["title"],
        filename=row["filename"],
        process_ids=tuple(str(pid) for pid in process_ids) if process_ids is not None else (),
        created_by=row["created_by"],
        created_at=created_at,
    )


class ReportStore:
    """
    Persist report metadata in DuckDB. Only title, filename, process ids,
    creator and timestamp are stored; the PDF bytes never are.
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    async def save(
        self, title: str, filename: str, process_ids: Sequence[str], created_by: str
    ) -> ReportRecord:
        record = ReportRecord(
            id=uuid.uuid4().hex,
            title=title,
            filename=filename,
            process_ids=tuple(process_ids),
            created_by=str(created_by),
            created_at=datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0),
        )
        await asyncio.to_thread(
            execute,
            self.conn,
            "INSERT INTO reports (id, title, filename, process_ids, created_by, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            [record.id, record.title, record.filename, list(record.process_ids), record.created_by, record.created_at],
        )
        logger.info("Stored report %s (%s) for %d processes", record.id, record.filename, len(record.process_ids))
        return record

    async def get(self, report_id: str) -> ReportRecord:
        df = await asyncio.to_thread(fetch_df, self.conn, "SELECT * FROM reports WHERE id = ?", [report_id])
        rows = records(df)
        if not rows:
            raise NotFoundError(f"Report {report_id} not found.")
        return _record(rows[0])

    async def list(self, created_by: Optional[str] = None, limit: int = 50) -> List[ReportRecord]:
        sql = "SELECT * FROM reports"
        params: List[Any] = []
        if created_by:
            sql += " WHERE created_by = ?"
            params.append(created_by)
        sql += " ORDER BY created_at DESC, id LIMIT ?"
        params.append(max(1, int(limit)))
        df = await asyncio.to_thread(fetch_df, self.conn, sql, params)
        return [_record(row) for row in records(df)]

    async def count(self) -> int:
        df = await asyncio.to_thread(fetch_df, self.conn, "SELECT count(*) AS n FROM reports")
        return int(df["n"].iloc[0])
