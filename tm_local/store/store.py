"""Object store holding the ordered manifest of a context."""

from abc import ABC, abstractmethod
import logging

from tm_local.manifest import Resource

_LOGGER = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Ordered collection of resources identified by name.

    Mutations are made in memory and persisted with `write`. Insertion order
    is preserved so persisted manifests stay stable across updates.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._objects: list[Resource] = []

    @abstractmethod
    async def read(self) -> None:
        """Load the persisted sequence, replacing the in-memory contents.

        Raises:
            StoreIOError: If the backing storage can't be read or parsed.
        """

    @abstractmethod
    async def write(self) -> None:
        """Persist the full ordered sequence atomically.

        Raises:
            StoreIOError: If the backing storage can't be written.
        """

    def _load(self, resources: list[Resource]) -> None:
        """Replace the contents, collapsing any duplicate names."""
        self._objects = []
        for resource in resources:
            if resource.name in self:
                _LOGGER.warning(
                    "Duplicate resource name %s in manifest, keeping the last",
                    resource.name,
                )
            self.upsert(resource)

    def upsert(self, resource: Resource) -> bool:
        """Add or replace a resource by name, returning True if the content changed."""
        for index, existing in enumerate(self._objects):
            if existing.name != resource.name:
                continue
            if existing.to_dict() == resource.to_dict():
                _LOGGER.debug("%s is unchanged", resource)
                return False
            if existing.kind != resource.kind:
                _LOGGER.warning(
                    "Replacing %s with %s, names are unique across kinds",
                    existing,
                    resource,
                )
            _LOGGER.debug("Updating %s", resource)
            self._objects[index] = resource.copy()
            return True
        _LOGGER.debug("Adding %s", resource)
        self._objects.append(resource.copy())
        return True

    def remove(self, name: str, kind: str | None = None) -> None:
        """Remove every resource with the name, a missing name is a no-op."""
        remaining = [obj for obj in self._objects if obj.name != name]
        if len(remaining) != len(self._objects):
            _LOGGER.debug("Removing %s/%s", kind or "object", name)
        self._objects = remaining

    def get(self, name: str) -> Resource | None:
        """Return a copy of the resource with the name, if present."""
        for obj in self._objects:
            if obj.name == name:
                return obj.copy()
        return None

    def list_objects(self, kind: str | None = None) -> list[Resource]:
        """Return copies of the resources in order, optionally filtered by kind."""
        return [
            obj.copy() for obj in self._objects if kind is None or obj.kind == kind
        ]

    def __contains__(self, name: object) -> bool:
        return any(obj.name == name for obj in self._objects)

    def __len__(self) -> int:
        return len(self._objects)
