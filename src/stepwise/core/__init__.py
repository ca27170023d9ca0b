"""Stepwise core -- errors, logging and settings shared by every layer.

Architecture::

    errors.py      Structured error hierarchy (StepwiseError and friends)
    logging.py     structlog configuration + get_logger / LogContext
    settings.py    pydantic-settings StepwiseSettings + get_settings()
"""

from stepwise.core.errors import (
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    InvalidInstructionError,
    InvariantViolation,
    MissingInstructionError,
    PersistenceError,
    RunNotFoundError,
    StepFailure,
    StepwiseError,
    UnrecognizedStepError,
)
from stepwise.core.logging import LogContext, configure_logging, get_logger
from stepwise.core.settings import StepwiseSettings, get_settings

__all__ = [
    "ConfigurationError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidInstructionError",
    "InvariantViolation",
    "MissingInstructionError",
    "PersistenceError",
    "RunNotFoundError",
    "StepFailure",
    "StepwiseError",
    "UnrecognizedStepError",
    "LogContext",
    "configure_logging",
    "get_logger",
    "StepwiseSettings",
    "get_settings",
]
