"""Step registry for looking up fix steps by priority.

The registry is built once at startup from rule catalogs and then only read:
the orchestrator receives it by reference and never registers steps itself.
"""

from __future__ import annotations

from collections.abc import Iterable

from dxfix.fixers.base import FixStep


class UnknownStepError(KeyError):
    """Raised when a selected step priority is not registered."""

    def __init__(self, priorities: Iterable[int], available: Iterable[int]) -> None:
        self.priorities = sorted(priorities)
        self.available = sorted(available)
        super().__init__(
            f"Unknown step(s): {', '.join(map(str, self.priorities))}. "
            f"Available: {', '.join(map(str, self.available)) or 'none'}"
        )

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0])


class StepRegistry:
    """Registry that maps priorities to fix steps.

    Example:
        >>> registry = StepRegistry.from_steps(load_builtin_catalog())
        >>> for step in registry.steps_by_priority([1, 2]):
        ...     print(step.priority, step.name)
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._steps: dict[int, FixStep] = {}

    @classmethod
    def from_steps(cls, steps: Iterable[FixStep]) -> StepRegistry:
        """Create a registry populated with the given steps.

        Raises:
            ValueError: If two steps share a priority or a name.
        """
        registry = cls()
        for step in steps:
            registry.register(step)
        return registry

    def register(self, step: FixStep) -> None:
        """Register a step by its priority.

        Args:
            step: The step to register.

        Raises:
            ValueError: If a step with the same priority or name is already
                registered.
        """
        if step.priority in self._steps:
            raise ValueError(
                f"Step priority {step.priority} already registered: "
                f"'{self._steps[step.priority].name}' (while registering '{step.name}')"
            )
        for existing in self._steps.values():
            if existing.name == step.name:
                raise ValueError(
                    f"Step name '{step.name}' already registered at priority {existing.priority}"
                )
        self._steps[step.priority] = step

    def has_step(self, priority: int) -> bool:
        """Check if a step is registered for the given priority."""
        return priority in self._steps

    def get_step(self, priority: int) -> FixStep | None:
        """Get the step registered for a priority, or None."""
        return self._steps.get(priority)

    def list_priorities(self) -> list[int]:
        """List all registered priorities in ascending order."""
        return sorted(self._steps)

    def all_steps(self) -> list[FixStep]:
        """Return every step in ascending priority order."""
        return [self._steps[p] for p in self.list_priorities()]

    def steps_by_priority(self, subset: Iterable[int] | None = None) -> list[FixStep]:
        """Return the selected steps in ascending priority order.

        Args:
            subset: Priorities to select. None selects every step.

        Returns:
            The selected steps, sorted by priority.

        Raises:
            UnknownStepError: If any requested priority is not registered.
        """
        if subset is None:
            return self.all_steps()

        wanted = set(subset)
        unknown = wanted - self._steps.keys()
        if unknown:
            raise UnknownStepError(unknown, self._steps.keys())
        return [self._steps[p] for p in sorted(wanted)]

    def __len__(self) -> int:
        return len(self._steps)
