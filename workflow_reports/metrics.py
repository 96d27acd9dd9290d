from collections import Counter
from dataclasses import asdict, dataclass
from typing import Dict, Sequence

from .models import IncidentRecord, ProcessRecord


@dataclass(frozen=True)
class SummaryStats:
    processes: int
    incidents: int
    pending: int
    approved: int
    resolved: int

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def summarize(processes: Sequence[ProcessRecord], incidents: Sequence[IncidentRecord]) -> SummaryStats:
    """
    Headline counts for the summary block.
    Incidents with an unrecognised status count towards the total only.
    """
    by_status = Counter(incident.status for incident in incidents)
    return SummaryStats(
        processes=len(processes),
        incidents=len(incidents),
        pending=by_status.get("pending", 0),
        approved=by_status.get("approved", 0),
        resolved=by_status.get("resolved", 0),
    )


def status_breakdown(stats: SummaryStats) -> Dict[str, int]:
    """Incident counts keyed by status, in workflow order."""
    return {"pending": stats.pending, "approved": stats.approved, "resolved": stats.resolved}
