"""Representation of the objects declared in a broker context.

A context holds a manifest of resources (components, triggers, the broker
itself and the secrets they use) plus the broker configuration, which is the
routing table of triggers that the local broker container reads.
"""

import base64
import binascii
import copy
from dataclasses import dataclass, field
from enum import StrEnum
import logging
import re
from typing import Any

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
import yaml

from .exceptions import InputException

__all__ = [
    "Resource",
    "Metadata",
    "SecretKeyRef",
    "Trigger",
    "TriggerTarget",
    "EventFilter",
    "DeliveryOptions",
    "BackoffPolicy",
    "BrokerConfig",
    "broker_resource",
]

_LOGGER = logging.getLogger(__name__)


# Match the API group of apiVersion to determine the category of a component.
# Specific versions are not checked for forward compatibility on upgrade.
SOURCES_GROUP = "sources.triggermesh.io"
TARGETS_GROUP = "targets.triggermesh.io"
FLOW_GROUP = "flow.triggermesh.io"
EVENTING_GROUP = "eventing.triggermesh.io"
EVENTING_API_VERSION = f"{EVENTING_GROUP}/v1alpha1"
SECRET_API_VERSION = "v1"

BROKER_KIND = "Broker"
TRIGGER_KIND = "Trigger"
SECRET_KIND = "Secret"

CONTEXT_LABEL = "triggermesh.io/context"
SECRETS_HASH_ANNOTATION = "tm-local.io/secrets-hash"
SECRET_SUFFIX = "-secret"
BROKER_SUFFIX = "-broker"

# ISO-8601 durations as accepted by the broker, e.g. PT0.2S or PT1M
_DURATION_RE = re.compile(
    r"^P(?!$)(\d+Y)?(\d+M)?(\d+W)?(\d+D)?(T(?=\d)(\d+H)?(\d+M)?(\d+(\.\d+)?S)?)?$"
)


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class Metadata(BaseManifest):
    """Metadata of a resource."""

    name: str
    """The name of the object, unique within a context."""

    labels: dict[str, str] | None = None
    """Labels on the object."""

    annotations: dict[str, str] | None = None
    """Annotations on the object."""


@dataclass
class Resource(BaseManifest):
    """A typed, named record in the object store."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    """The apiVersion of the object."""

    kind: str
    """The kind of the object."""

    metadata: Metadata
    """The metadata of the object."""

    spec: dict[str, Any] | None = None
    """The opaque spec of the object."""

    data: dict[str, str] | None = None
    """Base64 encoded values, only used by Secret resources."""

    @classmethod
    def parse_doc(cls, doc: Any) -> "Resource":
        """Parse a Resource from a raw object."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object, expected a mapping: {doc}")
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not (kind := doc.get("kind")):
            raise InputException(f"Invalid object missing kind: {doc}")
        if not isinstance(metadata := doc.get("metadata"), dict):
            raise InputException(f"Invalid object missing metadata: {doc}")
        if not (name := metadata.get("name")) or not isinstance(name, str):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        spec = doc.get("spec")
        if spec is not None and not isinstance(spec, dict):
            raise InputException(f"Invalid object spec must be a mapping: {doc}")
        return cls(
            api_version=api_version,
            kind=kind,
            metadata=Metadata(
                name=name,
                labels=metadata.get("labels"),
                annotations=metadata.get("annotations"),
            ),
            spec=copy.deepcopy(spec),
            data=doc.get("data"),
        )

    @property
    def name(self) -> str:
        """Return the name of the object."""
        return self.metadata.name

    @property
    def group(self) -> str:
        """Return the API group, empty for core objects like Secrets."""
        if "/" not in self.api_version:
            return ""
        return self.api_version.split("/", 1)[0]

    def annotation(self, key: str) -> str | None:
        """Return the value of an annotation if present."""
        return (self.metadata.annotations or {}).get(key)

    def with_annotation(self, key: str, value: str | None) -> "Resource":
        """Return a copy of the resource with the annotation set or cleared."""
        result = self.copy()
        annotations = dict(result.metadata.annotations or {})
        if value is None:
            annotations.pop(key, None)
        else:
            annotations[key] = value
        result.metadata.annotations = annotations or None
        return result

    def secret_value(self, key: str) -> str | None:
        """Return the decoded value of a Secret key."""
        if not self.data or (encoded := self.data.get(key)) is None:
            return None
        try:
            return base64.b64decode(encoded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as err:
            raise InputException(
                f"Secret {self.name} key {key} is not valid base64: {err}"
            ) from err

    def copy(self) -> "Resource":
        """Return a deep copy of the resource."""
        return Resource.from_dict(self.to_dict())

    def __str__(self) -> str:
        """Return the kind and name concatenated as an id."""
        return f"{self.kind}/{self.name}"


@dataclass
class SecretKeyRef(BaseManifest):
    """A reference to a key within a Secret resource."""

    name: str
    """The name of the Secret resource."""

    key: str
    """The key within the Secret data."""

    @classmethod
    def parse_doc(cls, doc: Any) -> "SecretKeyRef":
        """Parse a secret reference of the form {name, key}."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid secret reference: {doc}")
        name, key = doc.get("name"), doc.get("key")
        if not name or not key:
            raise InputException(f"Invalid secret reference missing name or key: {doc}")
        return cls(name=name, key=key)


class BackoffPolicy(StrEnum):
    """Backoff policy used by the broker between delivery retries."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass
class DeliveryOptions(BaseManifest):
    """Delivery policy of a trigger target."""

    retries: int | None = None
    """Number of delivery retries."""

    backoff_delay: str | None = field(
        metadata=field_options(alias="backoffDelay"), default=None
    )
    """ISO-8601 duration between retries."""

    backoff_policy: BackoffPolicy | None = field(
        metadata=field_options(alias="backoffPolicy"), default=None
    )
    """Whether the delay grows linearly or exponentially."""

    @classmethod
    def parse_doc(cls, doc: Any) -> "DeliveryOptions":
        """Parse and validate delivery options."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid deliveryOptions: {doc}")
        retries = doc.get("retries")
        if retries is not None and (
            isinstance(retries, bool) or not isinstance(retries, int) or retries < 0
        ):
            raise InputException(f"Invalid deliveryOptions.retries: {retries}")
        backoff_delay = doc.get("backoffDelay")
        if backoff_delay is not None and not _DURATION_RE.match(str(backoff_delay)):
            raise InputException(
                f"Invalid deliveryOptions.backoffDelay, expected ISO-8601 duration: {backoff_delay}"
            )
        backoff_policy = None
        if (policy := doc.get("backoffPolicy")) is not None:
            try:
                backoff_policy = BackoffPolicy(policy)
            except ValueError as err:
                raise InputException(
                    f"Invalid deliveryOptions.backoffPolicy: {policy}"
                ) from err
        return cls(
            retries=retries,
            backoff_delay=backoff_delay,
            backoff_policy=backoff_policy,
        )


@dataclass
class ExactFilter(BaseManifest):
    """Exact match on the event type attribute."""

    type: str


@dataclass
class EventFilter(BaseManifest):
    """An event filter predicate of a trigger."""

    exact: ExactFilter


@dataclass
class TriggerTarget(BaseManifest):
    """A delivery target of a trigger."""

    url: str
    """The endpoint events are delivered to."""

    component: str | None = None
    """The name of the component serving the endpoint."""

    delivery_options: DeliveryOptions | None = field(
        metadata=field_options(alias="deliveryOptions"), default=None
    )
    """The retry policy for delivery to this target."""

    @classmethod
    def parse_doc(cls, doc: Any) -> "TriggerTarget":
        """Parse a trigger target."""
        if not isinstance(doc, dict) or not (url := doc.get("url")):
            raise InputException(f"Invalid trigger target missing url: {doc}")
        delivery_options = None
        if (options := doc.get("deliveryOptions")) is not None:
            delivery_options = DeliveryOptions.parse_doc(options)
        return cls(
            url=url,
            component=doc.get("component"),
            delivery_options=delivery_options,
        )


@dataclass
class Trigger(BaseManifest):
    """A routing rule binding an event type filter to delivery targets."""

    name: str
    """The name of the trigger, unique within the broker."""

    filters: list[EventFilter] = field(default_factory=list)
    """Filter predicates, empty to route every event."""

    targets: list[TriggerTarget] = field(default_factory=list)
    """Targets that receive the matching events."""

    @classmethod
    def parse_doc(cls, doc: Any) -> "Trigger":
        """Parse a trigger from the broker configuration."""
        if not isinstance(doc, dict) or not (name := doc.get("name")):
            raise InputException(f"Invalid trigger missing name: {doc}")
        filters = []
        for item in doc.get("filters") or ():
            if not isinstance(item, dict) or not isinstance(item.get("exact"), dict):
                raise InputException(f"Invalid trigger {name} filter: {item}")
            if not (event_type := item["exact"].get("type")):
                raise InputException(f"Invalid trigger {name} filter missing type")
            filters.append(EventFilter(exact=ExactFilter(type=event_type)))
        targets = [TriggerTarget.parse_doc(item) for item in doc.get("targets") or ()]
        return cls(name=name, filters=filters, targets=targets)

    @property
    def event_type(self) -> str | None:
        """Return the event type the trigger filters on, if any."""
        if not self.filters:
            return None
        return self.filters[-1].exact.type

    def set_filter(self, event_type: str | None) -> None:
        """Replace the filter, never accumulating previous predicates."""
        if event_type is None:
            self.filters = []
        else:
            self.filters = [EventFilter(exact=ExactFilter(type=event_type))]

    def add_target(self, target: TriggerTarget) -> bool:
        """Add a target unless one with the same URL exists, returns True if added."""
        if any(existing.url == target.url for existing in self.targets):
            return False
        self.targets.append(target)
        return True

    def remove_targets(self, component: str) -> bool:
        """Remove every target served by the component, returns True if any removed."""
        remaining = [t for t in self.targets if t.component != component]
        removed = len(remaining) != len(self.targets)
        self.targets = remaining
        return removed

    def matches(self, event_type: str) -> bool:
        """Return True if an event of this type is delivered to the targets."""
        if not self.filters:
            return True
        return any(f.exact.type == event_type for f in self.filters)

    def as_resource(self, broker: str) -> Resource:
        """Return the manifest record mirroring this trigger."""
        spec = self.to_dict()
        spec.pop("name")
        return Resource(
            api_version=EVENTING_API_VERSION,
            kind=TRIGGER_KIND,
            metadata=Metadata(name=self.name, labels={CONTEXT_LABEL: broker}),
            spec=spec,
        )


@dataclass
class BrokerConfig(BaseManifest):
    """The routing table read by the broker."""

    triggers: list[Trigger] = field(default_factory=list)

    @classmethod
    def parse_doc(cls, doc: Any) -> "BrokerConfig":
        """Parse the broker configuration document."""
        if doc is None:
            return cls()
        if not isinstance(doc, dict):
            raise InputException(f"Invalid broker configuration: {doc}")
        return cls(triggers=[Trigger.parse_doc(t) for t in doc.get("triggers") or ()])


def broker_resource(name: str, storage: str) -> Resource:
    """Return the Resource declaring the broker of a context."""
    return Resource(
        api_version=EVENTING_API_VERSION,
        kind=BROKER_KIND,
        metadata=Metadata(name=name, labels={CONTEXT_LABEL: name}),
        spec={"storage": storage},
    )


def container_name(resource: Resource) -> str:
    """Return the name of the container running the resource."""
    if resource.kind == BROKER_KIND:
        return f"{resource.name}{BROKER_SUFFIX}"
    return resource.name


def parse_resources(content: str) -> list[Resource]:
    """Parse a multi-document YAML stream into resources."""
    try:
        docs = list(yaml.safe_load_all(content))
    except yaml.YAMLError as err:
        raise InputException(f"Resources failed to parse as yaml: {err}") from err
    return [Resource.parse_doc(doc) for doc in docs if doc is not None]
