"""Module for in memory object store."""

from typing import Any

import logging

from tm_local.manifest import Resource

from .store import ObjectStore


_LOGGER = logging.getLogger(__name__)


class InMemoryStore(ObjectStore):
    """In-memory implementation of the ObjectStore interface.

    Written contents are kept as plain documents so that `read` behaves like
    reloading a file: unwritten changes are discarded.
    """

    def __init__(self, resources: list[Resource] | None = None) -> None:
        """Initialize the InMemoryStore with already persisted resources."""
        super().__init__()
        self._persisted: list[dict[str, Any]] = [
            resource.to_dict() for resource in resources or ()
        ]
        self._load([Resource.from_dict(doc) for doc in self._persisted])
        self.writes = 0

    async def read(self) -> None:
        """Reload the last written contents."""
        self._load([Resource.from_dict(doc) for doc in self._persisted])

    async def write(self) -> None:
        """Record the current contents as persisted."""
        self._persisted = [obj.to_dict() for obj in self._objects]
        self.writes += 1
        _LOGGER.debug("Persisted %d objects in memory", len(self._persisted))
