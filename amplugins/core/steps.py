"""
Core definitions for the Step registry.

A step is one unit of work the analysis manager asks a plugin to perform for a
job (e.g. score PSMs with MSGF, refine parent ion masses with DTA_Refinery).
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable


class StepStatus(str, Enum):
    """Lifecycle of a step run."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class StepDefinition:
    """
    Contract for a step: a key the manager refers to and a handler that does
    the work.

    Attributes:
        key: Unique identifier for the step (e.g. "msgf.score").
        handler: Python function implementing the step. (ctx) -> None.
        name: Human-readable name of the step.
        tool: Name of the external tool the step drives.
        description: Human-readable description of the step.
        category: Grouping for listings (e.g. "Scoring").
    """
    key: str
    handler: Callable
    name: str = ""
    tool: str = ""
    description: str = ""
    category: str = ""


class StepRegistry:
    """
    Registry for managing step definitions. Use the `register` method as a
    decorator to register step handler functions.
    """
    def __init__(self):
        self._steps: dict[str, StepDefinition] = {}

    def register(
        self,
        key: str,
        name: str | None = None,
        tool: str | None = None,
        category: str | None = None,
    ):
        """Decorator to register a StepDefinition with a unique key."""
        def wrapper(func):
            if key in self._steps:
                raise ValueError(f"Step with key '{key}' is already registered.")

            # Auto-generate metadata if not provided
            final_name = name or key.split(".")[-1].replace("_", " ").capitalize()
            final_category = category or (key.split(".")[0] if "." in key else "General")

            self._steps[key] = StepDefinition(
                key=key,
                handler=func,
                name=final_name,
                tool=tool or "",
                description=(func.__doc__ or "").strip(),
                category=final_category,
            )
            return func
        return wrapper

    def __getitem__(self, key: str) -> StepDefinition:
        """Allows dict-like access to step definitions"""
        if key not in self._steps:
            raise KeyError(f"Step with key '{key}' not found.")
        return self._steps[key]

    def get(self, key: str) -> StepDefinition | None:
        """Retrieve a step definition by its key."""
        return self._steps.get(key)

    @property
    def all(self) -> dict[str, StepDefinition]:
        """Get all registered step definitions."""
        return self._steps


# Global step registry instance
step_registry = StepRegistry()
