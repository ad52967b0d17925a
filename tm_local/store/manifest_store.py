"""Object store persisted as a multi-document YAML manifest file."""

import logging
from pathlib import Path

import yaml

from tm_local.exceptions import InputException, StoreIOError
from tm_local.manifest import Resource

from .files import atomic_write, read_file
from .store import ObjectStore

_LOGGER = logging.getLogger(__name__)


class ManifestStore(ObjectStore):
    """Object store backed by the manifest file of a context."""

    def __init__(self, path: Path) -> None:
        """Initialize the store for the manifest file path."""
        super().__init__()
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> None:
        """Load the manifest, an absent or empty file is an empty store."""
        content = await read_file(self._path)
        try:
            docs = list(yaml.safe_load_all(content))
        except yaml.YAMLError as err:
            raise StoreIOError(f"Manifest {self._path} is malformed: {err}") from err
        try:
            resources = [Resource.parse_doc(doc) for doc in docs if doc is not None]
        except InputException as err:
            raise StoreIOError(f"Manifest {self._path} is malformed: {err}") from err
        self._load(resources)
        _LOGGER.debug("Read %d objects from %s", len(self), self._path)

    async def write(self) -> None:
        """Write the manifest atomically."""
        content = yaml.dump_all(
            [obj.to_dict() for obj in self._objects],
            sort_keys=False,
            explicit_start=True,
        )
        await atomic_write(self._path, content)
