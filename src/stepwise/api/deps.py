"""
FastAPI dependency injection — the per-app install wizard.

Usage in routers::

    from stepwise.api.deps import Wizard

    @router.get("/install/setup")
    def setup(wizard: Wizard):
        ...

The wizard is created once per application in ``create_app`` and kept on
``app.state``: its tracker holds in-memory run state that must outlive a
single request.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from stepwise.install.wizard import InstallWizard


def get_wizard(request: Request) -> InstallWizard:
    """The application's :class:`InstallWizard`."""
    return request.app.state.wizard


# ── Convenience type aliases ─────────────────────────────────────────────

Wizard = Annotated[InstallWizard, Depends(get_wizard)]
