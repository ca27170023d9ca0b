"""Step types — descriptors, the execution contract and the run context.

WHY
───
The runner must be agnostic to what a step does. Every step therefore
implements one polymorphic contract, ``execute(payload, context)``, and
declares the facts the runner needs up front: its stable name, whether it
needs a user-supplied instruction, and which install types it applies to.
The run context is passed explicitly to each call instead of being spliced
into step constructors.

ARCHITECTURE
────────────
::

    StepDescriptor   (frozen)      name, requires_instruction, applies_to, view
    StepContext      (per call)    run_id, run_mode, saved_data, settings
    InstallStep      (base class)
      ├── payload_model            pydantic model for the instruction (optional)
      ├── parse_instruction(raw)   → validated payload
      ├── requires_execution(payload, context) → bool
      ├── execute(payload, context)            → StepResult | Any
      └── descriptor()             → StepDescriptor
    FunctionStep                   plain function → InstallStep adapter

Related modules:
    step_result.py  — the StepResult envelope returned by execute()
    registry.py     — ordered collection of InstallSteps
    runner.py       — drives InstallSteps one call at a time

Tags:
    stepwise, orchestration, step-types, execution-contract

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from stepwise.core.errors import InvalidInstructionError
from stepwise.orchestration.step_result import StepResult


@dataclass(frozen=True)
class StepDescriptor:
    """
    Immutable identity of a step within a run.

    Attributes:
        name: Unique, stable step identifier
        requires_instruction: Client must send a payload keyed by ``name``
        applies_to: Run modes this step is part of (empty = every mode)
        view: Client view that collects this step's instruction
        description: Human-readable summary shown by the wizard
    """

    name: str
    requires_instruction: bool = False
    applies_to: frozenset[str] = frozenset()
    view: str | None = None
    description: str = ""

    def applies(self, run_mode: str | None) -> bool:
        """Whether the step is part of a run in ``run_mode``."""
        return not self.applies_to or run_mode in self.applies_to


@dataclass(frozen=True)
class StepContext:
    """
    Ambient state handed to a step on every call.

    Attributes:
        run_id: Identifier of the current install run
        run_mode: Install type of the run
        saved_data: Saved data of already-completed steps, keyed by step name
        settings: Application settings, when the caller has them
    """

    run_id: str
    run_mode: str | None
    saved_data: dict[str, Any] = field(default_factory=dict)
    settings: Any = None

    def get_saved(self, step_name: str, key: str | None = None, default: Any = None) -> Any:
        """Saved data of a previous step, or one key of it."""
        data = self.saved_data.get(step_name)
        if data is None:
            return default
        if key is None:
            return data
        if isinstance(data, dict):
            return data.get(key, default)
        return default


class InstallStep:
    """
    Base class for every install step.

    Subclasses set the class attributes and override :meth:`execute`;
    :meth:`requires_execution` is overridden by steps that can detect the
    work is already done.
    """

    name: ClassVar[str] = ""
    view: ClassVar[str | None] = None
    description: ClassVar[str] = ""
    requires_instruction: ClassVar[bool] = False
    install_types: ClassVar[frozenset[str]] = frozenset()
    payload_model: ClassVar[type[BaseModel] | None] = None

    def descriptor(self) -> StepDescriptor:
        return StepDescriptor(
            name=self.name,
            requires_instruction=self.requires_instruction,
            applies_to=frozenset(self.install_types),
            view=self.view,
            description=self.description,
        )

    def parse_instruction(self, raw: Any) -> Any:
        """Validate the raw instruction against ``payload_model``.

        Raises:
            InvalidInstructionError: The payload does not match the model
        """
        if self.payload_model is None or raw is None:
            return raw
        try:
            return self.payload_model.model_validate(raw)
        except ValidationError as e:
            errors = [
                {
                    "code": err["type"],
                    "message": err["msg"],
                    "field": ".".join(str(p) for p in err["loc"]) or None,
                }
                for err in e.errors()
            ]
            raise InvalidInstructionError(self.name, errors=errors, cause=e) from e

    def requires_execution(self, payload: Any, context: StepContext) -> bool:
        return True

    def execute(self, payload: Any, context: StepContext) -> StepResult | Any:
        raise NotImplementedError(f"{type(self).__name__} must implement execute()")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class FunctionStep(InstallStep):
    """Adapter turning a plain ``fn(payload, context)`` into an InstallStep.

    Example::

        step = FunctionStep("welcome", lambda payload, ctx: {"shown": True})
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[Any, StepContext], Any],
        *,
        requires_instruction: bool = False,
        install_types: Iterable[str] = (),
        view: str | None = None,
        description: str = "",
        payload_model: type[BaseModel] | None = None,
        should_execute: Callable[[Any, StepContext], bool] | None = None,
    ) -> None:
        self.name = name  # type: ignore[misc]
        self.view = view  # type: ignore[misc]
        self.description = description or (fn.__doc__ or "").strip()  # type: ignore[misc]
        self.requires_instruction = requires_instruction  # type: ignore[misc]
        self.install_types = frozenset(install_types)  # type: ignore[misc]
        self.payload_model = payload_model  # type: ignore[misc]
        self._fn = fn
        self._should_execute = should_execute

    def requires_execution(self, payload: Any, context: StepContext) -> bool:
        if self._should_execute is None:
            return True
        return self._should_execute(payload, context)

    def execute(self, payload: Any, context: StepContext) -> Any:
        return self._fn(payload, context)
