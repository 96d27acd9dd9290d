"""
Report generation for the process and incident workflow backend.

Processes and their incidents are aggregated from DuckDB, composed into a
report document, rendered to PDF by headless Chromium (FPDF as fallback)
and recorded as metadata so the report can be regenerated on demand.
"""

__version__ = "1.0.0"

from .composer import ComposedDocument, compose_document
from .errors import GenerationError, NotFoundError, ReportError, ValidationError
from .models import ReportRecord, ReportRequest

__all__ = [
    "ComposedDocument",
    "GenerationError",
    "NotFoundError",
    "ReportError",
    "ReportRecord",
    "ReportRequest",
    "ValidationError",
    "__version__",
    "compose_document",
]
