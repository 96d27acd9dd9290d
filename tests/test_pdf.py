import asyncio
from datetime import datetime

import pytest
from playwright.async_api import Error as PlaywrightError

from conftest import BrokenRenderer, StubRenderer
from workflow_reports.aggregator import aggregate
from workflow_reports.composer import compose_document
from workflow_reports.config import PAGE_FORMAT
from workflow_reports.errors import GenerationError, RendererError
from workflow_reports.pdf import BrowserRenderer, count_pages, render_with_fallback


class FakePage:
    def __init__(self, pdf_delay=0.0, content_error=None):
        self.pdf_delay = pdf_delay
        self.content_error = content_error
        self.html = None
        self.pdf_kwargs = None

    async def set_content(self, html, wait_until=None, timeout=None):
        if self.content_error:
            raise self.content_error
        self.html = html

    async def pdf(self, **kwargs):
        await asyncio.sleep(self.pdf_delay)
        self.pdf_kwargs = kwargs
        return b"%PDF-1.7 chromium"


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, browser=None, launch_error=None):
        self.browser = browser
        self.launch_error = launch_error
        self.launch_kwargs = None

    async def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        if self.launch_error:
            raise self.launch_error
        return self.browser


class FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.stopped = True
        return False


@pytest.fixture
def document(conn, run):
    data = run(aggregate(conn, ["P1", "P2"]))
    return compose_document("Monthly Supervision Report", data, generated_at=datetime(2026, 10, 19))


def _renderer(playwright, timeout_ms=2_000):
    return BrowserRenderer(
        render_timeout_ms=timeout_ms,
        include_chart=False,
        playwright_factory=lambda: playwright,
    )


def test_browser_renderer_prints_a4_with_backgrounds(document, run):
    page = FakePage()
    browser = FakeBrowser(page)
    chromium = FakeChromium(browser)
    playwright = FakePlaywright(chromium)

    pdf_bytes = run(_renderer(playwright).render(document))

    assert pdf_bytes.startswith(b"%PDF")
    assert chromium.launch_kwargs["headless"] is True
    assert "--no-sandbox" in chromium.launch_kwargs["args"]
    assert page.pdf_kwargs["format"] == PAGE_FORMAT
    assert page.pdf_kwargs["print_background"] is True
    assert page.pdf_kwargs["margin"]["top"] == "20mm"
    assert "Inventory Audit" in page.html
    assert browser.closed
    assert playwright.stopped


def test_browser_closed_when_emission_times_out(document, run):
    browser = FakeBrowser(FakePage(pdf_delay=1.0))
    playwright = FakePlaywright(FakeChromium(browser))

    with pytest.raises(RendererError, match="timed out"):
        run(_renderer(playwright, timeout_ms=20).render(document))
    assert browser.closed
    assert playwright.stopped


def test_browser_closed_when_content_load_fails(document, run):
    browser = FakeBrowser(FakePage(content_error=PlaywrightError("Timeout 30000ms exceeded")))
    playwright = FakePlaywright(FakeChromium(browser))

    with pytest.raises(RendererError):
        run(_renderer(playwright).render(document))
    assert browser.closed


def test_launch_failure_is_a_renderer_error(document, run):
    playwright = FakePlaywright(FakeChromium(launch_error=OSError("chromium executable not found")))

    with pytest.raises(RendererError, match="failed to start"):
        run(_renderer(playwright).render(document))
    assert playwright.stopped


def test_missing_template_is_a_renderer_error(document, run, tmp_path):
    renderer = BrowserRenderer(template_dir=tmp_path, include_chart=False)
    with pytest.raises(RendererError, match="template"):
        run(renderer.render(document))


def test_first_success_short_circuits(document, run):
    first, second = StubRenderer(b"%PDF-first"), StubRenderer(b"%PDF-second")
    result = run(render_with_fallback(document, [first, second]))
    assert result.pdf_bytes == b"%PDF-first"
    assert result.renderer == "stub"
    assert len(first.documents) == 1
    assert second.documents == []


def test_fallback_used_once_after_primary_failure(document, run):
    primary, fallback = BrokenRenderer(), StubRenderer()
    result = run(render_with_fallback(document, [primary, fallback]))
    assert primary.calls == 1
    assert len(fallback.documents) == 1
    assert result.pdf_bytes == fallback.payload


def test_empty_output_counts_as_failure(document, run):
    fallback = StubRenderer()
    result = run(render_with_fallback(document, [StubRenderer(b""), fallback]))
    assert result.pdf_bytes == fallback.payload


def test_all_renderers_failing_raises_generation_error(document, run):
    primary, fallback = BrokenRenderer(), BrokenRenderer("disk full")
    with pytest.raises(GenerationError) as info:
        run(render_with_fallback(document, [primary, fallback]))
    assert "disk full" in str(info.value)
    assert isinstance(info.value.__cause__, RendererError)
    assert primary.calls == 1 and fallback.calls == 1


def test_count_pages_ignores_pages_tree():
    sample = b"1 0 obj << /Type /Pages /Kids [2 0 R 3 0 R] >> 2 0 obj << /Type /Page >> 3 0 obj <</Type/Page>>"
    assert count_pages(sample) == 2


class CrashingPlaywright:
    async def __aenter__(self):
        raise RuntimeError("driver process exited unexpectedly")

    async def __aexit__(self, *exc):
        return False


def test_unexpected_browser_failure_falls_back(document, run):
    primary = BrowserRenderer(include_chart=False, playwright_factory=CrashingPlaywright)
    fallback = StubRenderer()

    result = run(render_with_fallback(document, [primary, fallback]))

    assert result.renderer == "stub"
    assert len(fallback.documents) == 1


def test_unexpected_browser_failure_is_a_renderer_error(document, run):
    primary = BrowserRenderer(include_chart=False, playwright_factory=CrashingPlaywright)
    with pytest.raises(RendererError) as info:
        run(primary.render(document))
    assert isinstance(info.value.__cause__, RuntimeError)
    assert info.value.renderer == "chromium"


def test_chart_failure_falls_back(document, run, monkeypatch):
    def broken_figure(breakdown):
        raise ValueError("invalid bar orientation")

    monkeypatch.setattr("workflow_reports.html_report.incident_status_figure", broken_figure)
    playwright = FakePlaywright(FakeChromium(FakeBrowser(FakePage())))
    primary = BrowserRenderer(playwright_factory=lambda: playwright)
    fallback = StubRenderer()

    result = run(render_with_fallback(document, [primary, fallback]))

    assert result.renderer == "stub"
    assert playwright.chromium.launch_kwargs is None
