"""Step Registry — ordered lookup of install steps.

Manifesto:
The runner, the API and the CLI all need the same answer to "which steps,
in which order, for this kind of install". The registry holds the steps in
registration order and filters them by run mode; the order it returns is
the execution order.

ARCHITECTURE
────────────
::

    StepRegistry(steps)
      ├── register(step)         → append; duplicate name raises
      ├── steps_for(run_mode)    → [StepDescriptor] in registration order
      ├── get(name)              → InstallStep or ConfigurationError
      ├── names()                → every registered name
      └── all_steps()            → every registered InstallStep

Example::

    registry = StepRegistry([PermissionsStep(), DatabaseStep()])
    for descriptor in registry.steps_for("new_install"):
        print(descriptor.name)

Tags:
    stepwise, orchestration, registry, lookup

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Iterable

from stepwise.core.errors import ConfigurationError
from stepwise.core.logging import get_logger
from stepwise.orchestration.step_types import InstallStep, StepDescriptor

logger = get_logger(__name__)


class StepRegistry:
    """Ordered collection of install steps."""

    def __init__(self, steps: Iterable[InstallStep] = ()) -> None:
        self._steps: dict[str, InstallStep] = {}
        for step in steps:
            self.register(step)

    def register(self, step: InstallStep) -> InstallStep:
        """
        Append a step to the execution order.

        Raises:
            ConfigurationError: The step has no name or the name is taken
        """
        if not step.name:
            raise ConfigurationError(f"Step {step!r} has no name")
        if step.name in self._steps:
            raise ConfigurationError(f"Step '{step.name}' is already registered")

        self._steps[step.name] = step
        logger.debug(
            "step_registered",
            name=step.name,
            requires_instruction=step.requires_instruction,
            install_types=sorted(step.install_types),
        )
        return step

    def steps_for(self, run_mode: str | None) -> list[StepDescriptor]:
        """
        Steps applicable to ``run_mode``, in execution order.

        Raises:
            ConfigurationError: No registered step applies to ``run_mode``
        """
        descriptors = [
            step.descriptor() for step in self._steps.values()
            if step.descriptor().applies(run_mode)
        ]
        if not descriptors:
            raise ConfigurationError(
                f"No install steps apply to run mode '{run_mode}'"
            ).with_context(run_mode=run_mode)
        return descriptors

    def get(self, name: str) -> InstallStep:
        """
        Look up a step by name.

        Raises:
            ConfigurationError: The name is not registered
        """
        try:
            return self._steps[name]
        except KeyError:
            available = ", ".join(self._steps) or "(none)"
            raise ConfigurationError(
                f"Step '{name}' not found. Available: {available}"
            ).with_context(step=name) from None

    def names(self) -> list[str]:
        return list(self._steps)

    def all_steps(self) -> list[InstallStep]:
        return list(self._steps.values())

    def __contains__(self, name: object) -> bool:
        return name in self._steps

    def __len__(self) -> int:
        return len(self._steps)
