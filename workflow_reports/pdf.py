import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .composer import ComposedDocument
from .config import (
    BROWSER_ARGS,
    DEFAULT_LAUNCH_TIMEOUT_MS,
    DEFAULT_RENDER_TIMEOUT_MS,
    PAGE_FORMAT,
    PAGE_MARGINS,
)
from .errors import GenerationError, RendererError
from .html_report import build_html_report

logger = logging.getLogger(__name__)

_PAGE_OBJECT = re.compile(rb"/Type\s*/Page(?![a-zA-Z])")


def count_pages(pdf_bytes: bytes) -> int:
    """Count page objects in an uncompressed PDF object table."""
    return len(_PAGE_OBJECT.findall(pdf_bytes))


@dataclass(frozen=True)
class RenderResult:
    pdf_bytes: bytes
    renderer: str


class RenderStrategy(ABC):
    """One way of turning a composed document into PDF bytes."""

    name: str = "strategy"

    @abstractmethod
    async def render(self, document: ComposedDocument) -> bytes:
        """Return PDF bytes or raise RendererError."""


async def render_with_fallback(
    document: ComposedDocument, strategies: Sequence[RenderStrategy]
) -> RenderResult:
    """
    Try each strategy once, in order. The first one that returns bytes wins.
    When all of them fail, raise GenerationError chained to the last cause.
    """
    failures: List[RendererError] = []
    for strategy in strategies:
        try:
            pdf_bytes = await strategy.render(document)
        except RendererError as exc:
            logger.warning("Renderer %s failed for %r: %s", strategy.name, document.title, exc)
            failures.append(exc)
            continue
        if not pdf_bytes:
            failures.append(RendererError(strategy.name, "produced an empty document"))
            logger.warning("Renderer %s produced no bytes for %r", strategy.name, document.title)
            continue
        if failures:
            logger.info("Renderer %s recovered %r after %d failure(s)", strategy.name, document.title, len(failures))
        return RenderResult(pdf_bytes=bytes(pdf_bytes), renderer=strategy.name)

    cause = failures[-1] if failures else None
    detail = str(cause) if cause else "no renderer configured"
    raise GenerationError(f"Report generation failed: {detail}") from cause


def _default_playwright_factory():
    from playwright.async_api import async_playwright

    return async_playwright()


class BrowserRenderer(RenderStrategy):
    """
    Lay out the HTML report in headless Chromium and print it to PDF.
    The browser is launched per call and always closed before returning.
    """

    name = "chromium"

    def __init__(
        self,
        template_dir: Optional[Path] = None,
        render_timeout_ms: int = DEFAULT_RENDER_TIMEOUT_MS,
        launch_timeout_ms: int = DEFAULT_LAUNCH_TIMEOUT_MS,
        include_chart: bool = True,
        playwright_factory: Optional[Callable] = None,
    ):
        self.template_dir = template_dir
        self.render_timeout_ms = render_timeout_ms
        self.launch_timeout_ms = launch_timeout_ms
        self.include_chart = include_chart
        self.playwright_factory = playwright_factory or _default_playwright_factory

    async def render(self, document: ComposedDocument) -> bytes:
        try:
            from playwright.async_api import Error as PlaywrightError
            from playwright.async_api import TimeoutError as PlaywrightTimeoutError
        except ImportError as exc:  # pragma: no cover - declared dependency
            raise RendererError(self.name, "playwright is not installed") from exc

        try:
            html = build_html_report(document, self.template_dir, include_chart=self.include_chart)
            return await self._print(html)
        except RendererError:
            raise
        except asyncio.TimeoutError as exc:
            raise RendererError(self.name, "PDF emission timed out") from exc
        except PlaywrightTimeoutError as exc:
            raise RendererError(self.name, f"browser timed out: {exc}") from exc
        except PlaywrightError as exc:
            raise RendererError(self.name, f"browser error: {exc}") from exc
        except OSError as exc:
            raise RendererError(self.name, f"browser failed to start: {exc}") from exc
        except Exception as exc:
            raise RendererError(self.name, f"unexpected failure: {exc!r}") from exc

    async def _print(self, html: str) -> bytes:
        async with self.playwright_factory() as playwright:
            browser = await playwright.chromium.launch(
                headless=True,
                args=list(BROWSER_ARGS),
                timeout=self.launch_timeout_ms,
            )
            try:
                page = await browser.new_page()
                await page.set_content(html, wait_until="networkidle", timeout=self.render_timeout_ms)
                # page.pdf() takes no timeout of its own.
                return await asyncio.wait_for(
                    page.pdf(format=PAGE_FORMAT, print_background=True, margin=dict(PAGE_MARGINS)),
                    timeout=self.render_timeout_ms / 1000,
                )
            finally:
                await self._close(browser)

    async def _close(self, browser) -> None:
        try:
            await browser.close()
        except Exception as exc:
            logger.error("Failed to close headless browser: %s", exc)
