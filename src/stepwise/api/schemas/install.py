"""
Install wizard schemas.

The wizard client speaks camelCase JSON; every model here serialises by
alias (``installId``, ``stepCompleted``) and accepts either spelling.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SetupStepSchema(CamelModel):
    """One step of the wizard, in execution order."""

    name: str
    view: str | None = None
    description: str = ""
    requires_instruction: bool = False


class InstallSetupSchema(CamelModel):
    """Response of ``GET /install/setup``.

    Example:
        {
            "installId": "9f1c0d...",
            "installType": "new_install",
            "steps": [{"name": "permissions", "view": "permissions",
                       "description": "...", "requiresInstruction": true}]
        }
    """

    install_id: str
    install_type: str
    steps: list[SetupStepSchema]


class PerformInstallBody(CamelModel):
    """Request body of ``POST /install/perform``."""

    install_id: str = Field(min_length=1)
    instructions: dict[str, Any] = Field(default_factory=dict)


class StepStatusSchema(CamelModel):
    name: str
    is_complete: bool
    saved_data: Any = None


class InstallStatusSchema(CamelModel):
    install_id: str
    install_type: str | None = None
    steps: list[StepStatusSchema]


class DbConnectionBody(CamelModel):
    database_url: str = Field(min_length=1)


class DbConnectionResultSchema(CamelModel):
    ok: bool
    message: str
    dialect: str | None = None
