"""
Structured error types for the stepwise installer.

Every failure the wizard can report carries a category, a structured context
and an optional chained cause, so the HTTP layer, the CLI and the logs can all
render the same error without string parsing.

Manifesto:
    - **Typed Error Hierarchy:** one class per failure the runner distinguishes
    - **Rich Context:** run_id / step travel with the error for logging
    - **Error Chaining:** the underlying exception is kept as ``cause``
    - **Outcome vs. Failure:** step-execution errors become outcomes at the
      runner boundary; only the errors below propagate as exceptions

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────────┐
        │                        StepwiseError                          │
        │            (category, context, cause, to_dict())              │
        ├───────────────────────────────────────────────────────────────┤
        │                                                               │
        │  ConfigurationError     MissingInstructionError               │
        │  (CONFIG)               (VALIDATION)                          │
        │                              │                                │
        │                         InvalidInstructionError               │
        │                                                               │
        │  PersistenceError       InvariantViolation                    │
        │  (STORAGE)              (INTERNAL)                            │
        │                                                               │
        │  RunNotFoundError       StepFailure  ── UnrecognizedStepError │
        │  (NOT_FOUND)            (STEP, view + model)                  │
        └───────────────────────────────────────────────────────────────┘

Examples:
    >>> error = MissingInstructionError("permissions")
    >>> error.category
    <ErrorCategory.VALIDATION: 'VALIDATION'>
    >>> error.to_dict()["step"]
    'permissions'

    >>> failure = StepFailure("Directory is read-only", view="permissions",
    ...                       model={"path": "/data"})
    >>> failure.view
    'permissions'

Guardrails:
    ❌ DON'T: Raise plain Exception from a step for an expected problem
    ✅ DO: Raise StepFailure (or return StepResult.fail) with a view to render

    ❌ DON'T: Swallow PersistenceError inside a step
    ✅ DO: Let it propagate; the run stays in its last persisted state

Tags:
    error-handling, exception-hierarchy, error-context, stepwise

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories used for routing and HTTP status mapping.

    Attributes:
        CONFIG: Registry or settings are unusable
        VALIDATION: Client supplied missing or malformed instructions
        NOT_FOUND: Unknown run id
        STORAGE: Durable status store unavailable
        STEP: A step reported a failure of its own
        INTERNAL: Programming error, invariant broken
    """

    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    STORAGE = "STORAGE"
    STEP = "STEP"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        run_id: Install run identifier
        step: Step name the error relates to
        run_mode: Install type of the run
        metadata: Additional key-value pairs
    """

    run_id: str | None = None
    step: str | None = None
    run_mode: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("run_id", "step", "run_mode"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StepwiseError(Exception):
    """
    Base exception for every error the installer raises on purpose.

    Subclasses set ``default_category``; instances carry an
    :class:`ErrorContext` and an optional chained ``cause``.

    Examples:
        >>> error = StepwiseError("boom").with_context(run_id="abc", attempt=2)
        >>> error.context.run_id
        'abc'
        >>> error.context.metadata
        {'attempt': 2}
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StepwiseError:
        """
        Add context to this error (fluent API).

        Usage:
            raise PersistenceError("write failed").with_context(run_id=run_id)
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigurationError(StepwiseError):
    """The step registry or settings cannot produce a usable run."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# CLIENT INPUT
# =============================================================================


class MissingInstructionError(StepwiseError):
    """
    A step needs an instruction payload and the client sent none for it.

    Recoverable: the client re-submits with the payload and the same step
    is attempted again.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(self, step: str, message: str | None = None, **kwargs: Any):
        self.step = step
        super().__init__(message or f"No instruction defined for step: {step}", **kwargs)
        self.context.step = step

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["step"] = self.step
        return result


class InvalidInstructionError(MissingInstructionError):
    """The instruction payload for a step failed validation."""

    def __init__(self, step: str, errors: list[dict[str, Any]] | None = None, **kwargs: Any):
        self.errors = errors or []
        super().__init__(step, f"Invalid instruction for step: {step}", **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.errors:
            result["errors"] = self.errors
        return result


class RunNotFoundError(StepwiseError):
    """No persisted status exists for the requested run id."""

    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Install run not found: {run_id}")
        self.context.run_id = run_id


# =============================================================================
# STORAGE / INTERNAL
# =============================================================================


class PersistenceError(StepwiseError):
    """The durable status store could not be read or written."""

    default_category = ErrorCategory.STORAGE


class InvariantViolation(StepwiseError):
    """Internal misuse of the tracker or runner. Indicates a bug."""

    default_category = ErrorCategory.INTERNAL


# =============================================================================
# STEP FAILURES
# =============================================================================


class StepFailure(StepwiseError):
    """
    A recognised failure raised by a step.

    Carries the client view to render and its view-model so the wizard can
    show a step-specific error screen instead of the generic one.
    """

    default_category = ErrorCategory.STEP

    def __init__(
        self,
        message: str,
        *,
        view: str = "error",
        model: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.view = view
        self.model = model

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["view"] = self.view
        if self.model is not None:
            result["model"] = self.model
        return result


class UnrecognizedStepError(StepFailure):
    """An unexpected exception escaped a step; rendered with the generic view."""

    def __init__(self, step: str, cause: Exception):
        self.step = step
        super().__init__(str(cause) or cause.__class__.__name__, view="error", cause=cause)
        self.context.step = step


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StepwiseError",
    "ConfigurationError",
    "MissingInstructionError",
    "InvalidInstructionError",
    "RunNotFoundError",
    "PersistenceError",
    "InvariantViolation",
    "StepFailure",
    "UnrecognizedStepError",
]
