"""
Common API schemas — RFC 7807 error envelope.

Every non-2xx response other than a step failure uses :class:`ProblemDetail`.
Step failures use the wizard's own body (``step``, ``view``, ``model``,
``message``) so the client can render the step's error screen.

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Field-level error detail.

    UI Hints:
        Display field errors next to the corresponding form input.
    """

    code: str = Field(description="Machine-readable error code (e.g., 'missing', 'string_too_short')")
    message: str = Field(description="Human-readable error description")
    field: str | None = Field(default=None, description="Field path if error is field-specific")


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``VALIDATION`` (400): Missing or invalid step instruction
        - ``NOT_FOUND`` (404): Unknown install id
        - ``CONFIG`` (409): Nothing to install, or no steps apply
        - ``STORAGE`` (503): Status store unavailable, retry later
        - ``INTERNAL`` (500): Unexpected server error

    Example:
        {
            "type": "about:blank",
            "title": "No instruction defined for step: permissions",
            "status": 400,
            "code": "VALIDATION",
            "detail": "",
            "instance": "/api/v1/install/perform",
            "errors": []
        }
    """

    type: str = Field(default="about:blank", description="Error type URI (usually 'about:blank')")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    code: str = Field(default="INTERNAL", description="Error category")
    detail: str = Field(default="", description="Human-readable explanation of the error")
    instance: str = Field(default="", description="URI of the failing request")
    errors: list[ErrorDetail] = Field(
        default_factory=list,
        description="List of field-level error details",
    )
