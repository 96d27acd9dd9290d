from datetime import date, datetime, timezone

import duckdb
import pytest

from conftest import BrokenRenderer, StubRenderer
from workflow_reports.errors import GenerationError, NotFoundError, ValidationError
from workflow_reports.models import ReportRequest
from workflow_reports.pdf import count_pages
from workflow_reports.service import ReportService, validate_request

TITLE = "Monthly Supervision Report"


def _request(title=TITLE, ids=("P1", "P2"), user="u-sup"):
    return ReportRequest(title=title, process_ids=list(ids), requested_by=user)


def test_generate_through_fallback(service, store, broken_primary, run):
    report = run(service.generate(_request()))

    assert report.pdf_bytes.startswith(b"%PDF")
    assert count_pages(report.pdf_bytes) >= 1
    assert report.renderer == "fpdf"
    assert report.filename.startswith("reporte-Monthly-Supervision-Report-")
    assert broken_primary.calls == 1

    record = run(store.get(report.report_id))
    assert record.title == TITLE
    assert record.process_ids == ("P1", "P2")
    assert record.created_by == "u-sup"


def test_empty_ids_rejected_before_any_query(service, store, run, monkeypatch):
    calls = []

    async def spy(conn, ids):
        calls.append(ids)

    monkeypatch.setattr("workflow_reports.service.aggregate", spy)
    with pytest.raises(ValidationError):
        run(service.generate(_request(ids=())))
    assert calls == []
    assert run(store.count()) == 0


@pytest.mark.parametrize(
    "request_",
    [
        ReportRequest(title="  ", process_ids=["P1"], requested_by="u-sup"),
        ReportRequest(title=TITLE, process_ids="P1", requested_by="u-sup"),
        ReportRequest(title=TITLE, process_ids=["P1", ""], requested_by="u-sup"),
        ReportRequest(title=TITLE, process_ids=["P1"], requested_by=None),
    ],
)
def test_malformed_requests(request_):
    with pytest.raises(ValidationError):
        validate_request(request_)


def test_unknown_process_is_not_found_and_not_recorded(service, store, run):
    with pytest.raises(NotFoundError):
        run(service.generate(_request(ids=["nonexistent-id"])))
    assert run(store.count()) == 0


def test_store_failure_is_a_generation_error(conn, store, run, monkeypatch):
    async def failing_save(*args, **kwargs):
        raise duckdb.IOException("disk full")

    monkeypatch.setattr(store, "save", failing_save)
    service = ReportService(conn, store, [StubRenderer()])
    with pytest.raises(GenerationError) as info:
        run(service.generate(_request()))
    assert isinstance(info.value.__cause__, duckdb.Error)


def test_all_renderers_failing(conn, store, run):
    service = ReportService(conn, store, [BrokenRenderer(), BrokenRenderer("out of memory")])
    with pytest.raises(GenerationError):
        run(service.generate(_request()))
    assert run(store.count()) == 0


def test_regenerate_is_stable_and_writes_nothing(conn, store, run):
    stub = StubRenderer()
    service = ReportService(conn, store, [stub])
    report = run(service.generate(_request()))

    first = run(service.regenerate(report.report_id))
    second = run(service.regenerate(report.report_id))

    assert first.report_id == second.report_id == report.report_id
    assert first.filename == report.filename
    assert stub.documents[1].content() == stub.documents[2].content()
    assert run(store.count()) == 1


def test_regenerate_unknown_report(service, run):
    with pytest.raises(NotFoundError):
        run(service.regenerate("missing"))


def test_filename_date_matches_stored_utc_date(conn, store, run, monkeypatch):
    class LateEvening(datetime):
        @classmethod
        def now(cls, tz=None):
            utc = datetime(2026, 10, 19, 23, 30, tzinfo=timezone.utc)
            return utc if tz else datetime(2026, 10, 20, 1, 30)

    monkeypatch.setattr("workflow_reports.report_store.datetime", LateEvening)
    monkeypatch.setattr("workflow_reports.composer.datetime", LateEvening)
    service = ReportService(conn, store, [StubRenderer()])

    report = run(service.generate(_request()))

    assert report.filename == "reporte-Monthly-Supervision-Report-2026-10-19.pdf"
    assert report.created_at.date() == date(2026, 10, 19)
