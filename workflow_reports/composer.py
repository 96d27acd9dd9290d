from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import (
    NO_DEADLINE,
    NO_DESCRIPTION,
    NO_EVIDENCE,
    NO_INCIDENTS,
    NOT_APPROVED,
    NOT_RESOLVED,
    STATUS_COLORS,
    STATUS_LABELS,
    UNASSIGNED,
    UNKNOWN_USER,
)
from .metrics import SummaryStats, summarize
from .models import AggregatedData, IncidentRecord, ProcessRecord, UserSummary

LONG_DATE_FORMAT = "%A, %d %B %Y"
SHORT_DATE_FORMAT = "%d %b %Y"
TIMESTAMP_FORMAT = "%d %b %Y %H:%M"


@dataclass(frozen=True)
class EvidenceLink:
    label: str
    url: str


@dataclass(frozen=True)
class IncidentEntry:
    ordinal: int
    description: str
    status: str
    status_label: str
    status_color: str
    created_by: str
    created_on: str
    resolved_on: str
    approved_on: str
    evidence: Tuple[EvidenceLink, ...]
    evidence_note: str


@dataclass(frozen=True)
class OverviewRow:
    name: str
    status: str
    status_label: str
    status_color: str
    reviewer: str
    due_date: str
    incident_count: int


@dataclass(frozen=True)
class ProcessSection:
    name: str
    description: str
    status: str
    status_label: str
    status_color: str
    incident_count: int
    incidents: Tuple[IncidentEntry, ...]
    empty_marker: Optional[str] = None


@dataclass(frozen=True)
class ComposedDocument:
    """
    Fully self-contained report ready for either renderer.
    Nothing downstream touches the database again.
    """

    title: str
    generated_at: datetime
    generated_label: str
    generated_timestamp: str
    summary: SummaryStats
    overview: Tuple[OverviewRow, ...]
    sections: Tuple[ProcessSection, ...]

    def content(self) -> Dict[str, Any]:
        """Informational content without timestamps, for comparing regenerations."""
        return {
            "title": self.title,
            "summary": self.summary.as_dict(),
            "overview": [
                (row.name, row.status, row.reviewer, row.due_date, row.incident_count)
                for row in self.overview
            ],
            "sections": [
                {
                    "name": section.name,
                    "description": section.description,
                    "incidents": [
                        (entry.ordinal, entry.description, entry.status, entry.created_by, len(entry.evidence))
                        for entry in section.incidents
                    ],
                }
                for section in self.sections
            ],
        }


def group_incidents(incidents: Iterable[IncidentRecord]) -> Dict[str, List[IncidentRecord]]:
    """Single pass grouping by parent process; per-process order is preserved."""
    grouped: Dict[str, List[IncidentRecord]] = defaultdict(list)
    for incident in incidents:
        grouped[incident.process_id].append(incident)
    return dict(grouped)


def _fmt_date(value: Optional[date], placeholder: str) -> str:
    if value is None:
        return placeholder
    return value.strftime(SHORT_DATE_FORMAT)


def _user_name(user: Optional[UserSummary], placeholder: str) -> str:
    if user is None or not user.name:
        return placeholder
    return user.name


def _status(value: str) -> Tuple[str, str]:
    return STATUS_LABELS.get(value, value), STATUS_COLORS.get(value, "#7f8c8d")


def _text(value: Optional[str], placeholder: str) -> str:
    if value is None or not str(value).strip():
        return placeholder
    return str(value).strip()


def _incident_entry(ordinal: int, incident: IncidentRecord) -> IncidentEntry:
    label, color = _status(incident.status)
    evidence = tuple(
        EvidenceLink(label=f"Evidence {idx}", url=url)
        for idx, url in enumerate(incident.evidence, start=1)
    )
    return IncidentEntry(
        ordinal=ordinal,
        description=_text(incident.description, NO_DESCRIPTION),
        status=incident.status,
        status_label=label,
        status_color=color,
        created_by=_user_name(incident.created_by, UNKNOWN_USER),
        created_on=_fmt_date(incident.created_at, "Unknown date"),
        resolved_on=_fmt_date(incident.resolved_at, NOT_RESOLVED),
        approved_on=_fmt_date(incident.approved_at, NOT_APPROVED),
        evidence=evidence,
        evidence_note=f"{len(evidence)} attached" if evidence else NO_EVIDENCE,
    )


def _overview_row(process: ProcessRecord, incident_count: int) -> OverviewRow:
    label, color = _status(process.status)
    return OverviewRow(
        name=process.name,
        status=process.status,
        status_label=label,
        status_color=color,
        reviewer=_user_name(process.assigned_reviewer, UNASSIGNED),
        due_date=_fmt_date(process.due_date, NO_DEADLINE),
        incident_count=incident_count,
    )


def _process_section(process: ProcessRecord, incidents: List[IncidentRecord]) -> ProcessSection:
    label, color = _status(process.status)
    entries = tuple(_incident_entry(idx, inc) for idx, inc in enumerate(incidents, start=1))
    return ProcessSection(
        name=process.name,
        description=_text(process.description, NO_DESCRIPTION),
        status=process.status,
        status_label=label,
        status_color=color,
        incident_count=len(entries),
        incidents=entries,
        empty_marker=None if entries else NO_INCIDENTS,
    )


def compose_document(
    title: str, data: AggregatedData, generated_at: Optional[datetime] = None
) -> ComposedDocument:
    """
    Arrange aggregated processes and incidents into the report structure:
    title block, summary counts, overview table and one section per process.
    Process order follows the aggregator's output.
    """
    generated_at = generated_at or datetime.now()
    by_process = group_incidents(data.incidents)
    overview = []
    sections = []
    for process in data.processes:
        incidents = by_process.get(process.id, [])
        overview.append(_overview_row(process, len(incidents)))
        sections.append(_process_section(process, incidents))
    return ComposedDocument(
        title=title,
        generated_at=generated_at,
        generated_label=generated_at.strftime(LONG_DATE_FORMAT),
        generated_timestamp=generated_at.strftime(TIMESTAMP_FORMAT),
        summary=summarize(data.processes, data.incidents),
        overview=tuple(overview),
        sections=tuple(sections),
    )
