"""Tests for the schema library."""

import pathlib

import pytest

from tm_local.exceptions import (
    InputException,
    NoEventTypesError,
    StoreIOError,
    UnknownKindError,
    UnsupportedGroupError,
)
from tm_local.manifest import Metadata, Resource, broker_resource
from tm_local.schema import (
    Category,
    FileSchemaProvider,
    StaticSchemaProvider,
    SchemaMetadata,
    list_kinds,
    parse_schemas,
    require_event_types,
    resolve_capability,
)

DEFINITIONS = """\
---
apiVersion: apiextensions.k8s.io/v1
kind: CustomResourceDefinition
metadata:
  name: webhooksources.sources.triggermesh.io
  annotations:
    registry.knative.dev/eventTypes: |
      [
        { "type": "io.triggermesh.webhook.event" }
      ]
spec:
  group: sources.triggermesh.io
  names:
    kind: WebhookSource
---
apiVersion: apiextensions.k8s.io/v1
kind: CustomResourceDefinition
metadata:
  name: cloudeventstargets.targets.triggermesh.io
spec:
  group: targets.triggermesh.io
  names:
    kind: CloudEventsTarget
---
apiVersion: apiextensions.k8s.io/v1
kind: CustomResourceDefinition
metadata:
  name: transformations.flow.triggermesh.io
  annotations:
    registry.knative.dev/eventTypes: '[{"type": "io.triggermesh.transformed"}]'
spec:
  group: flow.triggermesh.io
  names:
    kind: Transformation
---
apiVersion: apiextensions.k8s.io/v1
kind: CustomResourceDefinition
metadata:
  name: kafkasources.sources.triggermesh.io
spec:
  group: sources.triggermesh.io
  names:
    kind: KafkaSource
"""


@pytest.fixture(name="provider")
def provider_fixture() -> StaticSchemaProvider:
    return StaticSchemaProvider(parse_schemas(DEFINITIONS))


def resource(api_version: str, kind: str) -> Resource:
    return Resource(api_version=api_version, kind=kind, metadata=Metadata(name="a"))


def test_parse_schemas() -> None:
    """Test parsing definitions keyed by lower-cased kind."""
    schemas = parse_schemas(DEFINITIONS)
    assert list(schemas) == [
        "webhooksource",
        "cloudeventstarget",
        "transformation",
        "kafkasource",
    ]
    assert schemas["webhooksource"] == SchemaMetadata(
        kind="WebhookSource",
        group="sources.triggermesh.io",
        event_types=("io.triggermesh.webhook.event",),
    )
    assert schemas["cloudeventstarget"].event_types == ()


def test_parse_invalid_event_types() -> None:
    """Test a definition with an annotation that is not json."""
    content = DEFINITIONS.replace(
        '[{"type": "io.triggermesh.transformed"}]', "not json"
    )
    with pytest.raises(InputException, match="eventTypes"):
        parse_schemas(content)


@pytest.mark.parametrize(
    ("api_version", "kind", "category", "producer", "consumer"),
    [
        (
            "sources.triggermesh.io/v1alpha1",
            "WebhookSource",
            Category.SOURCE,
            True,
            False,
        ),
        (
            "targets.triggermesh.io/v1alpha1",
            "CloudEventsTarget",
            Category.TARGET,
            False,
            True,
        ),
        (
            "flow.triggermesh.io/v1alpha1",
            "Transformation",
            Category.TRANSFORMATION,
            True,
            True,
        ),
    ],
)
def test_resolve_capability(
    provider: StaticSchemaProvider,
    api_version: str,
    kind: str,
    category: Category,
    producer: bool,
    consumer: bool,
) -> None:
    """Test the category and flags of component kinds."""
    capability = resolve_capability(resource(api_version, kind), provider)
    assert capability.category == category
    assert capability.producer == producer
    assert capability.consumer == consumer
    assert capability.runnable


def test_resolve_eventing_kinds(provider: StaticSchemaProvider) -> None:
    """Test that brokers and triggers need no definition."""
    broker = resolve_capability(broker_resource("local", "inmemory"), provider)
    assert broker.category == Category.BROKER
    assert broker.runnable
    assert not broker.producer

    trigger = resolve_capability(
        resource("eventing.triggermesh.io/v1alpha1", "Trigger"), provider
    )
    assert trigger.category == Category.TRIGGER
    assert not trigger.runnable

    with pytest.raises(UnsupportedGroupError):
        resolve_capability(
            resource("eventing.triggermesh.io/v1alpha1", "Channel"), provider
        )


def test_resolve_unknown_kind(provider: StaticSchemaProvider) -> None:
    """Test a kind without a definition."""
    with pytest.raises(UnknownKindError, match="MysterySource"):
        resolve_capability(
            resource("sources.triggermesh.io/v1alpha1", "MysterySource"), provider
        )


def test_resolve_unsupported_group(provider: StaticSchemaProvider) -> None:
    """Test a known kind declared with a group that maps to no category."""
    with pytest.raises(UnsupportedGroupError):
        resolve_capability(resource("example.com/v1", "WebhookSource"), provider)


def test_require_event_types(provider: StaticSchemaProvider) -> None:
    """Test producers must declare event types when wired."""
    webhook = resolve_capability(
        resource("sources.triggermesh.io/v1alpha1", "WebhookSource"), provider
    )
    assert require_event_types(webhook, "a") == ["io.triggermesh.webhook.event"]

    kafka = resolve_capability(
        resource("sources.triggermesh.io/v1alpha1", "KafkaSource"), provider
    )
    with pytest.raises(NoEventTypesError):
        require_event_types(kafka, "a")

    target = resolve_capability(
        resource("targets.triggermesh.io/v1alpha1", "CloudEventsTarget"), provider
    )
    with pytest.raises(NoEventTypesError):
        require_event_types(target, "a")


def test_list_kinds(provider: StaticSchemaProvider) -> None:
    """Test listing the short kind names of a category."""
    assert list_kinds(provider, Category.SOURCE) == ["kafka", "webhook"]
    assert list_kinds(provider, Category.TARGET) == ["cloudevents"]
    assert list_kinds(provider, Category.BROKER) == []


def test_file_schema_provider(tmp_path: pathlib.Path) -> None:
    """Test reading definitions from the cache file."""
    path = tmp_path / "crd.yaml"
    provider = FileSchemaProvider(path)
    with pytest.raises(StoreIOError):
        provider.resolve("WebhookSource")

    path.write_text(DEFINITIONS)
    assert provider.resolve("webhooksource").kind == "WebhookSource"
