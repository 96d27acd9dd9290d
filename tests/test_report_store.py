from datetime import date

import pytest

from workflow_reports.errors import NotFoundError
from workflow_reports.report_store import build_filename


def test_filename_replaces_unsafe_characters():
    assert (
        build_filename("Monthly Supervision Report", date(2026, 10, 19))
        == "reporte-Monthly-Supervision-Report-2026-10-19.pdf"
    )
    assert build_filename("Q3/Q4: audit (final)", date(2026, 1, 2)) == "reporte-Q3-Q4--audit--final--2026-01-02.pdf"


def test_save_then_get(store, run):
    saved = run(store.save("Monthly Supervision Report", "reporte-x.pdf", ["P1", "P2"], "u-sup"))
    loaded = run(store.get(saved.id))

    assert loaded == saved
    assert loaded.process_ids == ("P1", "P2")
    assert loaded.created_at.microsecond == 0


def test_list_filters_by_creator(store, run):
    run(store.save("A", "a.pdf", ["P1"], "u-sup"))
    run(store.save("B", "b.pdf", ["P2"], "u-rev"))

    assert run(store.count()) == 2
    assert [r.title for r in run(store.list(created_by="u-rev"))] == ["B"]
    assert len(run(store.list(limit=1))) == 1


def test_missing_report_is_not_found(store, run):
    with pytest.raises(NotFoundError):
        run(store.get("no-such-report"))
