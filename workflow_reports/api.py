import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Set

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from . import __version__
from .config import API_PREFIX, Settings, load_settings
from .database import connect_duckdb
from .errors import ReportError
from .logging_utils import configure_logging
from .models import GeneratedReport, ReportRequest
from .pdf import BrowserRenderer
from .pdf_legacy import FallbackRenderer
from .report_store import ReportStore
from .schemas import ReportCreateRequest, ReportList, ReportMetadata
from .service import ReportService

logger = logging.getLogger(__name__)

GENERIC_GENERATION_MESSAGE = "Report generation failed."

router = APIRouter(tags=["Reports"])
_detached_tasks: Set[asyncio.Task] = set()


def build_service(conn, settings: Settings) -> ReportService:
    """Wire the store and the renderer chain: headless Chromium first, FPDF second."""
    renderers = [
        BrowserRenderer(
            template_dir=settings.template_dir,
            render_timeout_ms=settings.render_timeout_ms,
            launch_timeout_ms=settings.launch_timeout_ms,
        ),
        FallbackRenderer(),
    ]
    return ReportService(conn, ReportStore(conn), renderers)


def get_service(request: Request) -> ReportService:
    return request.app.state.report_service


def _pdf_response(report: GeneratedReport, disposition: str, status_code: int = 200) -> Response:
    return Response(
        content=report.pdf_bytes,
        status_code=status_code,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'{disposition}; filename="{report.filename}"',
            "Content-Length": str(len(report.pdf_bytes)),
            "X-Report-Id": report.report_id,
            "X-Report-Created-At": report.created_at.isoformat(),
            "X-Report-Renderer": report.renderer,
        },
    )


def _log_orphaned_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Report task finished after the client disconnected: %s", exc)


async def _run_detached(coro):
    """
    Await a service call that keeps running when the request is cancelled.
    If the caller is gone by the time it fails, the error is logged instead of lost.
    """
    task = asyncio.ensure_future(coro)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        _detached_tasks.add(task)
        task.add_done_callback(_detached_tasks.discard)
        task.add_done_callback(_log_orphaned_failure)
        raise


def _error_body(request: Request, code: str, message: str) -> dict:
    return {
        "error": {"code": code, "message": message},
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
    }


async def _report_error_handler(request: Request, exc: ReportError) -> JSONResponse:
    # Generation causes stay in the logs; callers only see the category.
    message = GENERIC_GENERATION_MESSAGE if exc.category == "generation" else exc.message
    return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.code, message))


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content=_error_body(request, "VALIDATION_ERROR", "Validation Error"))


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content=_error_body(request, "INTERNAL_ERROR", "Internal Server Error"))


@router.post("/reports", status_code=201)
async def create_report(
    body: ReportCreateRequest,
    service: ReportService = Depends(get_service),
    user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
):
    request = ReportRequest(title=body.title, process_ids=body.process_ids, requested_by=user_id)
    # A dropped client connection does not abort the render.
    report = await _run_detached(service.generate(request))
    return _pdf_response(report, "attachment", status_code=201)


@router.get("/reports", response_model=ReportList)
async def list_reports(
    created_by: Optional[str] = Query(default=None, alias="createdBy"),
    limit: int = Query(default=50, ge=1, le=200),
    service: ReportService = Depends(get_service),
):
    records = await service.store.list(created_by=created_by, limit=limit)
    return ReportList(reports=[ReportMetadata.from_record(r) for r in records], count=len(records))


@router.get("/reports/{report_id}", response_model=ReportMetadata)
async def get_report(report_id: str, service: ReportService = Depends(get_service)):
    return ReportMetadata.from_record(await service.store.get(report_id))


@router.get("/reports/{report_id}/download")
async def download_report(report_id: str, service: ReportService = Depends(get_service)):
    report = await _run_detached(service.regenerate(report_id))
    return _pdf_response(report, "attachment")


@router.get("/reports/{report_id}/view")
async def view_report(report_id: str, service: ReportService = Depends(get_service)):
    report = await _run_detached(service.regenerate(report_id))
    return _pdf_response(report, "inline")


def create_app(settings: Optional[Settings] = None, service: Optional[ReportService] = None) -> FastAPI:
    """
    Application factory. The database connection and the report service are
    created once in the lifespan and handed to routes through app.state.
    Pass `service` to reuse an already wired instance (tests, embedding).
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        conn = None
        if service is None:
            conn = connect_duckdb(settings.database_path)
            app.state.report_service = build_service(conn, settings)
        else:
            app.state.report_service = service
        logger.info("Report service ready (database=%s)", settings.database_path)
        try:
            yield
        finally:
            if conn is not None:
                conn.close()

    app = FastAPI(title="Workflow Reports", version=__version__, lifespan=lifespan)
    app.add_exception_handler(ReportError, _report_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
    app.include_router(router, prefix=API_PREFIX)

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app
