from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Tuple

PROCESS_STATUSES = ("pending", "in-review", "completed")
INCIDENT_STATUSES = ("pending", "approved", "resolved")


@dataclass(frozen=True)
class UserSummary:
    """Lightweight view of a user reference (reviewer, creator)."""

    id: str
    name: str
    email: Optional[str] = None


@dataclass(frozen=True)
class ProcessRecord:
    id: str
    name: str
    status: str
    created_by: Optional[UserSummary]
    description: Optional[str] = None
    assigned_reviewer: Optional[UserSummary] = None
    due_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class IncidentRecord:
    id: str
    process_id: str
    process_name: str
    description: str
    status: str
    created_by: Optional[UserSummary]
    evidence: Tuple[str, ...] = ()
    assigned_to: Optional[str] = None
    resolved_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class AggregatedData:
    """Processes in caller order and their incidents, newest first."""

    processes: Tuple[ProcessRecord, ...]
    incidents: Tuple[IncidentRecord, ...] = ()


@dataclass(frozen=True)
class ReportRecord:
    """
    Persisted report metadata. The PDF itself is never stored: title and
    process_ids are enough to regenerate an equivalent document.
    """

    id: str
    title: str
    filename: str
    process_ids: Tuple[str, ...]
    created_by: str
    created_at: datetime


@dataclass(frozen=True)
class ReportRequest:
    """Inbound request, already authenticated and authorized upstream."""

    title: str
    process_ids: Tuple[str, ...]
    requested_by: str

    @property
    def process_count(self) -> int:
        return len(self.process_ids)


@dataclass
class GeneratedReport:
    report_id: str
    filename: str
    pdf_bytes: bytes = field(repr=False)
    created_at: datetime
    renderer: str
