"""Capability resolution of components from their schema definitions.

Each component kind is described by a CustomResourceDefinition published with
every release. The definitions are fetched and cached per version by the caller,
this module only reads them. The API group of a definition determines the
category of a component and its annotations list the event types a producer
emits.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .exceptions import (
    InputException,
    NoEventTypesError,
    StoreIOError,
    UnknownKindError,
    UnsupportedGroupError,
)
from .manifest import (
    BROKER_KIND,
    EVENTING_GROUP,
    FLOW_GROUP,
    SOURCES_GROUP,
    TARGETS_GROUP,
    TRIGGER_KIND,
    Resource,
)

__all__ = [
    "Category",
    "Capability",
    "SchemaMetadata",
    "SchemaProvider",
    "StaticSchemaProvider",
    "FileSchemaProvider",
    "parse_schemas",
    "resolve_capability",
    "require_event_types",
    "list_kinds",
]

_LOGGER = logging.getLogger(__name__)

EVENT_TYPES_ANNOTATION = "registry.knative.dev/eventTypes"


class Category(StrEnum):
    """Structural category of a resource."""

    SOURCE = "source"
    TARGET = "target"
    TRANSFORMATION = "transformation"
    BROKER = "broker"
    TRIGGER = "trigger"


@dataclass(frozen=True)
class Capability:
    """The category of a resource and what it is able to do."""

    category: Category
    producer: bool = False
    """Emits events into the broker."""

    consumer: bool = False
    """Receives events from the broker through triggers."""

    runnable: bool = False
    """Runs as a container."""

    event_types: tuple[str, ...] = ()
    """Event types declared by a producer."""


_GROUP_CATEGORIES = {
    SOURCES_GROUP: Category.SOURCE,
    TARGETS_GROUP: Category.TARGET,
    FLOW_GROUP: Category.TRANSFORMATION,
}

_EVENTING_CATEGORIES = {
    BROKER_KIND: Category.BROKER,
    TRIGGER_KIND: Category.TRIGGER,
}


@dataclass(frozen=True)
class SchemaMetadata:
    """The parts of a definition needed to classify a kind."""

    kind: str
    group: str
    event_types: tuple[str, ...] = field(default=())

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "SchemaMetadata":
        """Parse the metadata of a CustomResourceDefinition document."""
        if not isinstance(spec := doc.get("spec"), dict):
            raise InputException(f"Invalid definition missing spec: {doc}")
        if not (kind := (spec.get("names") or {}).get("kind")):
            raise InputException(f"Invalid definition missing spec.names.kind: {doc}")
        if not (group := spec.get("group")):
            raise InputException(f"Invalid definition {kind} missing spec.group")
        annotations = (doc.get("metadata") or {}).get("annotations") or {}
        event_types: list[str] = []
        if raw := annotations.get(EVENT_TYPES_ANNOTATION):
            try:
                entries = json.loads(raw)
            except json.JSONDecodeError as err:
                raise InputException(
                    f"Definition {kind} contains invalid {EVENT_TYPES_ANNOTATION}: {raw}"
                ) from err
            event_types = [
                entry["type"]
                for entry in entries
                if isinstance(entry, dict) and entry.get("type")
            ]
        return cls(kind=kind, group=group, event_types=tuple(event_types))


def parse_schemas(content: str) -> dict[str, SchemaMetadata]:
    """Parse a multi-document definitions stream keyed by lower-cased kind."""
    try:
        docs = list(yaml.safe_load_all(content))
    except yaml.YAMLError as err:
        raise InputException(f"Schema definitions failed to parse: {err}") from err
    result: dict[str, SchemaMetadata] = {}
    for doc in docs:
        if not isinstance(doc, dict):
            continue
        schema = SchemaMetadata.parse_doc(doc)
        result[schema.kind.lower()] = schema
    return result


class SchemaProvider(ABC):
    """Read-only source of schema metadata."""

    @abstractmethod
    def schemas(self) -> dict[str, SchemaMetadata]:
        """Return every known schema keyed by lower-cased kind."""

    def resolve(self, kind: str) -> SchemaMetadata:
        """Return the schema of a kind, raising UnknownKindError if absent."""
        if (schema := self.schemas().get(kind.lower())) is None:
            raise UnknownKindError(kind)
        return schema


class StaticSchemaProvider(SchemaProvider):
    """Schema provider over an already parsed map."""

    def __init__(self, schemas: dict[str, SchemaMetadata]) -> None:
        self._schemas = {key.lower(): value for key, value in schemas.items()}

    def schemas(self) -> dict[str, SchemaMetadata]:
        return self._schemas


class FileSchemaProvider(SchemaProvider):
    """Schema provider reading a cached definitions file on first use."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._schemas: dict[str, SchemaMetadata] | None = None

    def schemas(self) -> dict[str, SchemaMetadata]:
        if self._schemas is None:
            _LOGGER.debug("Loading schema definitions from %s", self._path)
            try:
                content = self._path.read_text()
            except OSError as err:
                raise StoreIOError(
                    f"Schema definitions {self._path} can't be read: {err}"
                ) from err
            self._schemas = parse_schemas(content)
        return self._schemas


def resolve_capability(resource: Resource, provider: SchemaProvider) -> Capability:
    """Determine the category and capabilities of a resource."""
    if resource.group == EVENTING_GROUP:
        if (category := _EVENTING_CATEGORIES.get(resource.kind)) is None:
            raise UnsupportedGroupError(resource.api_version)
        return Capability(category=category, runnable=category == Category.BROKER)

    schema = provider.resolve(resource.kind)
    if (category := _GROUP_CATEGORIES.get(resource.group)) is None:
        raise UnsupportedGroupError(resource.api_version)
    producer = category in (Category.SOURCE, Category.TRANSFORMATION)
    return Capability(
        category=category,
        producer=producer,
        consumer=category in (Category.TARGET, Category.TRANSFORMATION),
        runnable=True,
        event_types=schema.event_types if producer else (),
    )


def require_event_types(capability: Capability, name: str) -> list[str]:
    """Return the declared event types of a producer that must have some."""
    if not capability.producer or not capability.event_types:
        raise NoEventTypesError(name)
    return list(capability.event_types)


def list_kinds(provider: SchemaProvider, category: Category) -> list[str]:
    """Return the sorted short names of the kinds in a category."""
    suffix = category.value
    result = []
    for key, schema in provider.schemas().items():
        if _GROUP_CATEGORIES.get(schema.group) != category:
            continue
        result.append(key.removesuffix(suffix) or key)
    return sorted(result)
