class ReportError(Exception):
    """
    Base class for failures the HTTP boundary knows how to map.
    `category` is one of validation / not_found / generation.
    """

    category = "generation"
    status_code = 500
    code = "REPORT_GENERATION_FAILED"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReportError):
    category = "validation"
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ReportError):
    category = "not_found"
    status_code = 404
    code = "NOT_FOUND"


class GenerationError(ReportError):
    """Raised when no PDF could be produced or its metadata could not be stored."""

    category = "generation"
    status_code = 500
    code = "REPORT_GENERATION_FAILED"


class RendererError(RuntimeError):
    """A single render strategy failed; the caller should try the next one."""

    def __init__(self, renderer: str, message: str):
        super().__init__(f"{renderer}: {message}")
        self.renderer = renderer
