from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field

from .models import ReportRecord


class ReportCreateRequest(BaseModel):
    """Body of POST /reports. Emptiness is checked by the service, not here."""

    model_config = ConfigDict(populate_by_name=True)

    title: Any = None
    process_ids: Any = Field(default=None, alias="processIds")


class ReportMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    filename: str
    process_ids: List[str] = Field(alias="processIds")
    created_by: str = Field(alias="createdBy")
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_record(cls, record: ReportRecord) -> "ReportMetadata":
        return cls(
            id=record.id,
            title=record.title,
            filename=record.filename,
            process_ids=list(record.process_ids),
            created_by=record.created_by,
            created_at=record.created_at,
        )


class ReportList(BaseModel):
    reports: List[ReportMetadata]
    count: int
