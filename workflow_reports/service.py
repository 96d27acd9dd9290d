import logging
from typing import Sequence, Tuple

import duckdb

from .aggregator import aggregate
from .composer import ComposedDocument, compose_document
from .errors import GenerationError, ValidationError
from .models import GeneratedReport, ReportRequest
from .pdf import RenderResult, RenderStrategy, count_pages, render_with_fallback
from .report_store import ReportStore, build_filename

logger = logging.getLogger(__name__)


def validate_request(request: ReportRequest) -> ReportRequest:
    """Reject empty titles and empty or malformed id lists before any data access."""
    title = request.title.strip() if isinstance(request.title, str) else ""
    if not title:
        raise ValidationError("Title is required.")
    ids = request.process_ids
    if isinstance(ids, (str, bytes)) or not isinstance(ids, (list, tuple)) or not ids:
        raise ValidationError("processIds must be a non-empty array.")
    if any(not isinstance(pid, str) or not pid.strip() for pid in ids):
        raise ValidationError("processIds must only contain non-empty identifiers.")
    if request.requested_by is None or not str(request.requested_by).strip():
        raise ValidationError("A requesting user is required.")
    return ReportRequest(
        title=title,
        process_ids=tuple(pid.strip() for pid in ids),
        requested_by=str(request.requested_by).strip(),
    )


class ReportService:
    """
    Aggregate, compose, render and record a report.
    Built once at startup and shared by reference; it holds no per-request state.
    """

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        store: ReportStore,
        renderers: Sequence[RenderStrategy],
    ):
        self.conn = conn
        self.store = store
        self.renderers = tuple(renderers)

    async def build(self, title: str, process_ids: Sequence[str]) -> Tuple[ComposedDocument, RenderResult]:
        data = await aggregate(self.conn, process_ids)
        document = compose_document(title, data)
        result = await render_with_fallback(document, self.renderers)
        return document, result

    async def generate(self, request: ReportRequest) -> GeneratedReport:
        request = validate_request(request)
        context = f"title={request.title!r} processes={request.process_count} requested_by={request.requested_by}"
        logger.info("Generating report: %s", context)
        try:
            _, result = await self.build(request.title, request.process_ids)
        except Exception as exc:
            logger.error("Report generation failed (%s): %s", getattr(exc, "category", type(exc).__name__), context)
            raise

        filename = build_filename(request.title)
        try:
            record = await self.store.save(request.title, filename, request.process_ids, request.requested_by)
        except duckdb.Error as exc:
            logger.error("Report rendered but metadata could not be stored: %s (%s)", context, exc)
            raise GenerationError(f"Report generation failed: could not store report metadata: {exc}") from exc

        logger.info(
            "Report %s generated with %s: %d bytes, %d page(s)",
            record.id,
            result.renderer,
            len(result.pdf_bytes),
            count_pages(result.pdf_bytes),
        )
        return GeneratedReport(
            report_id=record.id,
            filename=record.filename,
            pdf_bytes=result.pdf_bytes,
            created_at=record.created_at,
            renderer=result.renderer,
        )

    async def regenerate(self, report_id: str) -> GeneratedReport:
        """
        Rebuild a stored report from its title and process ids.
        Reflects current process and incident data; no new record is written.
        """
        record = await self.store.get(report_id)
        context = f"report={record.id} title={record.title!r} processes={len(record.process_ids)} requested_by={record.created_by}"
        try:
            _, result = await self.build(record.title, record.process_ids)
        except Exception as exc:
            logger.error("Report regeneration failed (%s): %s", getattr(exc, "category", type(exc).__name__), context)
            raise
        return GeneratedReport(
            report_id=record.id,
            filename=record.filename,
            pdf_bytes=result.pdf_bytes,
            created_at=record.created_at,
            renderer=result.renderer,
        )
