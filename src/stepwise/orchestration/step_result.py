"""Step Result — envelope for the outcome of one install step.

Manifesto:
    Every step returns a uniform result so the runner can decide success
    or failure, persist the step's saved data and hand an optional custom
    view back to the wizard client without knowing anything about the step.

ARCHITECTURE
────────────
::

    StepResult
      ├── .ok(saved_data, view, model)      → success
      ├── .fail(message, view, model)       → recognised failure (no raise)
      └── .from_value(any)                  → coerce plain returns

BEST PRACTICES
──────────────
- Prefer ``StepResult.ok()`` / ``StepResult.fail()`` over constructing directly.
- Keep ``saved_data`` JSON-serialisable; it is written to the status store.
- Return ``fail()`` for problems the user can fix, with the view that lets
  them fix it. Raise only for the unexpected.

Example::

    from stepwise.orchestration import StepResult

    def execute(self, payload, context):
        if not payload.path.exists():
            return StepResult.fail("Folder missing", view="permissions",
                                   model={"path": str(payload.path)})
        return StepResult.ok(saved_data={"path": str(payload.path)})

Tags:
    stepwise, orchestration, step-result, envelope, success-failure

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class StepResult:
    """
    Result from executing an install step.

    Attributes:
        success: Whether the step completed
        saved_data: Opaque blob stored with the step's completion status
        view: Client view to render next (success) or to show the error (failure)
        model: View-model for ``view``
        message: Failure message when ``success`` is False
    """

    success: bool
    saved_data: Any = None
    view: str | None = None
    model: Any = None
    message: str | None = None

    def __post_init__(self):
        if not self.success and not self.message:
            object.__setattr__(self, "message", "Step failed without error message")

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def ok(
        cls,
        saved_data: Any = None,
        view: str | None = None,
        model: Any = None,
    ) -> StepResult:
        """
        Create a successful result.

        Args:
            saved_data: Data to persist with the step's completion
            view: Optional custom view the client should show next
            model: View-model for ``view``
        """
        return cls(success=True, saved_data=saved_data, view=view, model=model)

    @classmethod
    def fail(
        cls,
        message: str,
        view: str = "error",
        model: Any = None,
    ) -> StepResult:
        """
        Create a failed result. The step stays incomplete.

        Args:
            message: Human-readable error message
            view: Client view that renders this failure
            model: View-model for ``view``
        """
        return cls(success=False, view=view, model=model, message=message)

    @classmethod
    def from_value(cls, value: Any) -> StepResult:
        """Coerce a step's return value into a StepResult.

        ========== ==============================================
        Type       Behaviour
        ========== ==============================================
        StepResult Returned as-is
        None       ``ok()`` with no saved data
        other      ``ok(saved_data=value)``
        ========== ==============================================
        """
        if isinstance(value, StepResult):
            return value
        if value is None:
            return cls.ok()
        return cls.ok(saved_data=value)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging."""
        result: dict[str, Any] = {"success": self.success}
        if self.saved_data is not None:
            result["saved_data"] = self.saved_data
        if self.view:
            result["view"] = self.view
        if self.model is not None:
            result["model"] = self.model
        if self.message:
            result["message"] = self.message
        return result

    def __repr__(self) -> str:
        status = "OK" if self.success else f"FAIL({self.message!r})"
        return f"StepResult({status}, view={self.view!r})"
