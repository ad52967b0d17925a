"""Exceptions related to tm-local."""

__all__ = [
    "TmLocalException",
    "InputException",
    "StoreIOError",
    "UnknownKindError",
    "UnsupportedGroupError",
    "NoEventTypesError",
    "ObjectNotFoundError",
    "SecretNotFoundError",
    "TriggerNotFoundError",
    "CommandException",
    "RuntimeStartError",
    "RuntimeStopError",
    "PartialReconcileError",
    "AggregateTaskError",
    "FinalizeError",
    "AlreadyFinalizedError",
]


class TmLocalException(Exception):
    """Generic base exception used for this library."""


class InputException(TmLocalException):
    """Raised when the input resources or values are not formatted as expected."""


class StoreIOError(TmLocalException):
    """Raised when persisted state can't be read, written or parsed."""


class UnknownKindError(TmLocalException):
    """Raised when a resource kind has no schema entry."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown component kind {kind!r}")
        self.kind = kind


class UnsupportedGroupError(TmLocalException):
    """Raised when a resource API group does not map to any known category."""

    def __init__(self, api_version: str) -> None:
        super().__init__(f"Unsupported API group in {api_version!r}")
        self.api_version = api_version


class NoEventTypesError(TmLocalException):
    """Raised when a producer is required to declare event types but has none."""

    def __init__(self, name: str) -> None:
        super().__init__(f"{name!r} does not expose its event types")
        self.name = name


class ObjectNotFoundError(TmLocalException):
    """Raised when an object is not found in the store."""


class SecretNotFoundError(TmLocalException):
    """Raised when a referenced Secret resource or key does not exist."""

    def __init__(self, name: str, key: str | None = None) -> None:
        if key:
            super().__init__(f"Secret {name!r} has no key {key!r}")
        else:
            super().__init__(f"Secret {name!r} not found")
        self.name = name
        self.key = key


class TriggerNotFoundError(TmLocalException):
    """Raised when a trigger is not present in the routing table."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Trigger {name!r} not found")
        self.name = name


class CommandException(TmLocalException):
    """Raised when there is a failure running a subcommand."""


class RuntimeStartError(CommandException):
    """Raised when the container runtime fails to start a component."""


class RuntimeStopError(CommandException):
    """Raised when the container runtime fails to stop a component."""


class PartialReconcileError(TmLocalException):
    """Raised when runtime state and persisted state may have diverged.

    The reconciliation is idempotent, so the caller may re-run it in full.
    """

    def __init__(self, name: str, cause: Exception) -> None:
        super().__init__(
            f"Component {name!r} runtime and manifest may be out of sync: {cause}"
        )
        self.name = name
        self.cause = cause


class AggregateTaskError(TmLocalException):
    """Raised when one or more components of a batch operation failed."""

    def __init__(self, errors: dict[str, Exception], results: list | None = None):
        self.errors = errors
        self.results = results or []
        details = "; ".join(f"{name}: {err}" for name, err in errors.items())
        super().__init__(f"{len(errors)} component(s) failed: {details}")

    @property
    def failed(self) -> list[str]:
        """Names of the failed components."""
        return list(self.errors)


class FinalizeError(TmLocalException):
    """Raised when an external finalization hook fails."""


class AlreadyFinalizedError(FinalizeError):
    """Raised by finalizers when the external resource is already gone.

    The deletion cascade treats this as success.
    """
