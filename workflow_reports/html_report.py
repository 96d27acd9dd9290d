import logging
from pathlib import Path
from typing import Optional

from jinja2 import TemplateError

from .charts import figure_html, incident_status_figure
from .composer import ComposedDocument
from .config import DEFAULT_TEMPLATE_DIR, REPORT_TEMPLATE
from .errors import RendererError
from .metrics import status_breakdown
from .narrative import TemplateRenderer

logger = logging.getLogger(__name__)


def build_html_report(
    document: ComposedDocument,
    template_dir: Optional[Path] = None,
    include_chart: bool = True,
) -> str:
    """
    Render the composed document with templates/report.html.
    Template failures are renderer failures, so the PDF chain can fall back.
    """
    renderer = TemplateRenderer(template_dir or DEFAULT_TEMPLATE_DIR)
    chart = ""
    if include_chart and document.summary.incidents:
        chart = figure_html(incident_status_figure(status_breakdown(document.summary)))
    try:
        return renderer.render(REPORT_TEMPLATE, {"doc": document, "chart_html": chart})
    except TemplateError as exc:
        logger.warning("Report template failed to render: %s", exc)
        raise RendererError("html", f"template rendering failed: {exc}") from exc
