"""
Error handlers — map stepwise errors to RFC 7807 responses.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from stepwise.api.schemas.common import ErrorDetail, ProblemDetail
from stepwise.core.errors import ErrorCategory, InvalidInstructionError, StepwiseError
from stepwise.core.logging import get_logger

logger = get_logger(__name__)

# ── Error category → HTTP status mapping ─────────────────────────────────

CATEGORY_TO_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.STEP: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFIG: 409,
    ErrorCategory.STORAGE: 503,
    ErrorCategory.INTERNAL: 500,
}


def status_for_category(category: ErrorCategory) -> int:
    """Resolve an error category to HTTP status, defaulting to 500."""
    return CATEGORY_TO_STATUS.get(category, 500)


def problem_response(
    *,
    status: int,
    title: str,
    code: str = "INTERNAL",
    detail: str = "",
    instance: str = "",
    errors: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title,
        status=status,
        code=code,
        detail=detail,
        instance=instance,
        errors=[ErrorDetail(**e) for e in errors or []],
    )
    return JSONResponse(status_code=status, content=body.model_dump())


async def stepwise_exception_handler(request: Request, exc: StepwiseError) -> JSONResponse:
    """Render a :class:`StepwiseError` with the status its category maps to."""
    status = status_for_category(exc.category)
    log = logger.error if status >= 500 else logger.info
    log("api.error", path=request.url.path, status=status, **exc.to_dict())

    errors = exc.errors if isinstance(exc, InvalidInstructionError) else None
    detail = ""
    if exc.cause is not None and request.app.state.settings.debug:
        detail = str(exc.cause)
    return problem_response(
        status=status,
        title=exc.message,
        code=exc.category.value,
        detail=detail,
        instance=str(request.url),
        errors=errors,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — returns 500 with ProblemDetail."""
    logger.exception("api.unhandled_exception", path=request.url.path, error=str(exc))
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail=str(exc) if request.app.state.settings.debug else "An unexpected error occurred.",
        instance=str(request.url),
    )
