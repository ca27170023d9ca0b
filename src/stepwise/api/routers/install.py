"""
Install router — drives the installation wizard.

GET    /install/setup
POST   /install/perform
GET    /install/status/{install_id}
DELETE /install/{install_id}
POST   /install/check-db-connection

The client calls ``setup`` once, then ``perform`` repeatedly until the
response says ``complete: true``. Each ``perform`` executes at most one
step that does real work.
"""

from __future__ import annotations

from fastapi import APIRouter, Path, Response
from fastapi.responses import JSONResponse

from stepwise.api.deps import Wizard
from stepwise.api.schemas.install import (
    DbConnectionBody,
    DbConnectionResultSchema,
    InstallSetupSchema,
    InstallStatusSchema,
    PerformInstallBody,
    SetupStepSchema,
    StepStatusSchema,
)
from stepwise.orchestration.runner import StepFailed

router = APIRouter(prefix="/install")


@router.get("/setup", response_model=InstallSetupSchema)
def get_setup(wizard: Wizard):
    """Start an install run and list its steps.

    Returns:
        InstallSetupSchema with the new install id and the ordered steps.

    Raises:
        409 CONFIG: Already installed at the target version.
    """
    setup = wizard.setup()
    return InstallSetupSchema(
        install_id=setup.run_id,
        install_type=setup.install_type,
        steps=[
            SetupStepSchema(
                name=s.name,
                view=s.view,
                description=s.description,
                requires_instruction=s.requires_instruction,
            )
            for s in setup.steps
        ],
    )


@router.post("/perform")
def perform_install(body: PerformInstallBody, wizard: Wizard) -> JSONResponse:
    """Execute the next step of an install run.

    Example:
        POST /api/v1/install/perform
        {"installId": "9f1c...", "instructions": {"permissions": {"path": "/data"}}}

        Response (200):
        {"complete": false, "stepCompleted": "permissions"}

        Response (400, step failure):
        {"step": "database", "view": "database", "model": {...}, "message": "..."}

    Raises:
        400 VALIDATION: The next step needs an instruction that was not sent.
        404 NOT_FOUND: Unknown install id.
    """
    outcome = wizard.perform(body.install_id, body.instructions)
    status_code = 400 if isinstance(outcome, StepFailed) else 200
    return JSONResponse(status_code=status_code, content=outcome.to_dict())


@router.get("/status/{install_id}", response_model=InstallStatusSchema)
def get_status(wizard: Wizard, install_id: str = Path(..., description="Install run id")):
    """Step-by-step progress of an install run."""
    statuses = wizard.status(install_id)
    return InstallStatusSchema(
        install_id=install_id,
        install_type=wizard.tracker.run_mode(install_id),
        steps=[
            StepStatusSchema(name=s.name, is_complete=s.is_complete, saved_data=s.saved_data)
            for s in statuses
        ],
    )


@router.delete("/{install_id}", status_code=204)
def reset_install(wizard: Wizard, install_id: str = Path(..., description="Install run id")):
    """Discard an install run's progress."""
    wizard.reset(install_id)
    return Response(status_code=204)


@router.post("/check-db-connection", response_model=DbConnectionResultSchema)
def check_db_connection(body: DbConnectionBody, wizard: Wizard):
    """Check that a database URL is reachable before submitting it."""
    check = wizard.check_database_connection(body.database_url)
    return DbConnectionResultSchema(ok=check.ok, message=check.message, dialect=check.dialect)
