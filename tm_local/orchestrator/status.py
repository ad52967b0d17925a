"""Outcome of orchestrator operations for each component."""

from enum import StrEnum
from dataclasses import dataclass, field

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

from tm_local.runtime import RuntimeInstance
from tm_local.schema import Category


class Action(StrEnum):
    """What an operation did to a component."""

    CREATED = "created"
    RESTARTED = "restarted"
    UNCHANGED = "unchanged"
    STOPPED = "stopped"
    DELETED = "deleted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ComponentResult(DataClassDictMixin):
    """Action taken on a component along with any warnings."""

    name: str
    kind: str
    action: Action
    reason: str | None = None
    warnings: list[str] = field(default_factory=list)
    instance: RuntimeInstance | None = None
    triggers: list[str] = field(default_factory=list)
    """Names of the triggers routing events to the component."""

    class Config(BaseConfig):
        omit_none = True

    def __str__(self) -> str:
        """Return a string representation of the result."""
        if self.reason:
            return f"{self.kind}/{self.name} {self.action}: {self.reason}"
        return f"{self.kind}/{self.name} {self.action}"


@dataclass
class ComponentStatus(DataClassDictMixin):
    """A declared resource and the state of its container."""

    name: str
    kind: str
    category: Category | None = None
    """Unset when the kind is not known to the schema."""

    state: str | None = None
    """Container state, unset when it has no container."""

    host_port: int | None = None

    class Config(BaseConfig):
        omit_none = True
