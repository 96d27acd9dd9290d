import os
from dataclasses import dataclass
from pathlib import Path

# Defaults for locating the DuckDB database that backs processes, incidents and reports.
DEFAULT_DATABASE_PATH = ":memory:"
ENV_DATABASE_PATH = "REPORTS_DB_PATH"

ENV_RENDER_TIMEOUT_MS = "RENDER_TIMEOUT_MS"
ENV_LAUNCH_TIMEOUT_MS = "BROWSER_LAUNCH_TIMEOUT_MS"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_HOST = "REPORTS_HOST"
ENV_PORT = "REPORTS_PORT"

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
REPORT_TEMPLATE = "report.html"

API_PREFIX = "/api/v1"

# Headless Chromium settings. Timeouts are milliseconds, like Playwright's.
DEFAULT_RENDER_TIMEOUT_MS = 30_000
DEFAULT_LAUNCH_TIMEOUT_MS = 30_000
PAGE_FORMAT = "A4"
PAGE_MARGINS = {"top": "20mm", "right": "15mm", "bottom": "20mm", "left": "15mm"}
BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
)

# Placeholders for optional fields. Composed documents never contain blanks.
UNASSIGNED = "Unassigned"
NO_DEADLINE = "No deadline"
NO_DESCRIPTION = "No description"
NO_INCIDENTS = "No incidents recorded for this process."
NO_EVIDENCE = "No evidence attached"
NOT_RESOLVED = "Not resolved"
NOT_APPROVED = "Not approved"
UNKNOWN_USER = "Unknown user"

STATUS_LABELS = {
    "pending": "Pending",
    "in-review": "In review",
    "completed": "Completed",
    "approved": "Approved",
    "resolved": "Resolved",
}

# Status colours are shared by the HTML template, the chart and the FPDF fallback.
STATUS_COLORS = {
    "pending": "#e74c3c",
    "in-review": "#f39c12",
    "completed": "#27ae60",
    "approved": "#2f80ed",
    "resolved": "#27ae60",
}

# Plotly defaults so the embedded chart prints as a static image.
PLOTLY_CONFIG = {
    "displaylogo": False,
    "staticPlot": True,
    "responsive": False,
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings collected once at process start and passed to the app factory."""

    database_path: str = DEFAULT_DATABASE_PATH
    render_timeout_ms: int = DEFAULT_RENDER_TIMEOUT_MS
    launch_timeout_ms: int = DEFAULT_LAUNCH_TIMEOUT_MS
    template_dir: Path = DEFAULT_TEMPLATE_DIR
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def resolve_database_path(default: str = DEFAULT_DATABASE_PATH) -> str:
    """
    Resolve the DuckDB path from the environment.
    Falls back to an in-memory database so the service can boot without a file.
    """
    env_path = os.getenv(ENV_DATABASE_PATH, "").strip()
    return env_path or default


def load_settings() -> Settings:
    return Settings(
        database_path=resolve_database_path(),
        render_timeout_ms=_env_int(ENV_RENDER_TIMEOUT_MS, DEFAULT_RENDER_TIMEOUT_MS),
        launch_timeout_ms=_env_int(ENV_LAUNCH_TIMEOUT_MS, DEFAULT_LAUNCH_TIMEOUT_MS),
        log_level=os.getenv(ENV_LOG_LEVEL, "INFO").strip().upper() or "INFO",
        host=os.getenv(ENV_HOST, "0.0.0.0").strip() or "0.0.0.0",
        port=_env_int(ENV_PORT, 3001),
    )
