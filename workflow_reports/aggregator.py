import asyncio
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import duckdb
import pandas as pd

from .database import fetch_df, records
from .errors import NotFoundError
from .models import AggregatedData, IncidentRecord, ProcessRecord, UserSummary

logger = logging.getLogger(__name__)

PROCESS_SQL = """
    SELECT
        p.id, p.name, p.description, p.status, p.due_date, p.created_at, p.updated_at,
        r.id AS reviewer_id, r.name AS reviewer_name, r.email AS reviewer_email,
        c.id AS creator_id, c.name AS creator_name, c.email AS creator_email
    FROM processes p
    LEFT JOIN users r ON r.id = p.assigned_reviewer
    LEFT JOIN users c ON c.id = p.created_by
    WHERE list_contains(?, p.id)
"""

INCIDENT_SQL = """
    SELECT
        i.id, i.process_id, p.name AS process_name, i.description, i.status,
        i.evidence, i.assigned_to, i.resolved_at, i.approved_at,
        i.created_at, i.updated_at,
        c.id AS creator_id, c.name AS creator_name, c.email AS creator_email
    FROM incidents i
    JOIN processes p ON p.id = i.process_id
    LEFT JOIN users c ON c.id = i.created_by
    WHERE list_contains(?, i.process_id)
    ORDER BY i.created_at DESC, i.id
"""


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def _as_date(value: Any) -> Optional[date]:
    value = _as_datetime(value)
    if isinstance(value, datetime):
        return value.date()
    return value


def _user(row: Dict[str, Any], prefix: str) -> Optional[UserSummary]:
    user_id = row.get(f"{prefix}_id")
    if user_id is None:
        return None
    return UserSummary(id=str(user_id), name=row.get(f"{prefix}_name") or "", email=row.get(f"{prefix}_email"))


def _process(row: Dict[str, Any]) -> ProcessRecord:
    return ProcessRecord(
        id=str(row["id"]),
        name=row["name"],
        status=row["status"],
        description=row.get("description"),
        assigned_reviewer=_user(row, "reviewer"),
        due_date=_as_date(row.get("due_date")),
        created_by=_user(row, "creator"),
        created_at=_as_datetime(row.get("created_at")),
        updated_at=_as_datetime(row.get("updated_at")),
    )


def _incident(row: Dict[str, Any]) -> IncidentRecord:
    evidence = row.get("evidence")
    return IncidentRecord(
        id=str(row["id"]),
        process_id=str(row["process_id"]),
        process_name=row["process_name"],
        description=row["description"],
        status=row["status"],
        evidence=tuple(str(uri) for uri in evidence) if evidence is not None else (),
        assigned_to=row.get("assigned_to"),
        resolved_at=_as_datetime(row.get("resolved_at")),
        approved_at=_as_datetime(row.get("approved_at")),
        created_by=_user(row, "creator"),
        created_at=_as_datetime(row.get("created_at")),
        updated_at=_as_datetime(row.get("updated_at")),
    )


def load_processes(conn: duckdb.DuckDBPyConnection, process_ids: Sequence[str]) -> List[ProcessRecord]:
    ids = list(process_ids)
    rows = records(fetch_df(conn, PROCESS_SQL, [ids]))
    # Keep the caller's ordering; duplicated ids collapse to their first position.
    position = {}
    for idx, pid in enumerate(ids):
        position.setdefault(pid, idx)
    processes = [_process(row) for row in rows]
    processes.sort(key=lambda p: position.get(p.id, len(position)))
    return processes


def load_incidents(conn: duckdb.DuckDBPyConnection, process_ids: Sequence[str]) -> List[IncidentRecord]:
    rows = records(fetch_df(conn, INCIDENT_SQL, [list(process_ids)]))
    return [_incident(row) for row in rows]


async def aggregate(conn: duckdb.DuckDBPyConnection, process_ids: Sequence[str]) -> AggregatedData:
    """
    Fetch the requested processes and every incident attached to them.
    Reviewer and creator references come back as UserSummary values.
    Raises NotFoundError when none of the identifiers match.
    """
    processes = await asyncio.to_thread(load_processes, conn, process_ids)
    if not processes:
        raise NotFoundError("No matching processes found for the provided identifiers.")
    incidents = await asyncio.to_thread(load_incidents, conn, [p.id for p in processes])
    logger.debug("Aggregated %d processes and %d incidents", len(processes), len(incidents))
    return AggregatedData(processes=tuple(processes), incidents=tuple(incidents))
