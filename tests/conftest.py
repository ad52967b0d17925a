"""Shared fixtures for tm-local tests."""

from collections.abc import Callable
import pathlib
from typing import Any

import pytest

from tm_local.broker import BrokerConfigFile
from tm_local.config import Config
from tm_local.exceptions import RuntimeStartError, RuntimeStopError, StoreIOError
from tm_local.manifest import Metadata, Resource
from tm_local.orchestrator import ContextState, Orchestrator
from tm_local.runtime import ContainerRuntime, ContainerSpec, RuntimeInstance
from tm_local.schema import SchemaMetadata, StaticSchemaProvider
from tm_local.secret import secret_resource
from tm_local.store import InMemoryStore, StateLock
from tm_local.task import TaskServiceImpl

BROKER = "local"
WEBHOOK_EVENT = "io.triggermesh.webhook.event"
TRANSFORMED_EVENT = "io.triggermesh.transformed"

SCHEMAS = StaticSchemaProvider(
    {
        "webhooksource": SchemaMetadata(
            kind="WebhookSource",
            group="sources.triggermesh.io",
            event_types=(WEBHOOK_EVENT,),
        ),
        "kafkasource": SchemaMetadata(
            kind="KafkaSource", group="sources.triggermesh.io"
        ),
        "cloudeventstarget": SchemaMetadata(
            kind="CloudEventsTarget", group="targets.triggermesh.io"
        ),
        "transformation": SchemaMetadata(
            kind="Transformation",
            group="flow.triggermesh.io",
            event_types=(TRANSFORMED_EVENT,),
        ),
    }
)

API_VERSIONS = {
    "WebhookSource": "sources.triggermesh.io/v1alpha1",
    "KafkaSource": "sources.triggermesh.io/v1alpha1",
    "CloudEventsTarget": "targets.triggermesh.io/v1alpha1",
    "Transformation": "flow.triggermesh.io/v1alpha1",
    "Mystery": "sources.triggermesh.io/v1alpha1",
}


class FakeRuntime(ContainerRuntime):
    """Container runtime keeping containers in memory."""

    def __init__(self) -> None:
        self.instances: dict[str, RuntimeInstance] = {}
        self.specs: dict[str, ContainerSpec] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_start: set[str] = set()
        self.fail_stop: set[str] = set()
        self._next_port = 40000

    async def start(self, spec: ContainerSpec) -> int:
        self.calls.append(("start", spec.name))
        if spec.name in self.fail_start:
            raise RuntimeStartError(f"Failed to start {spec.name}")
        if spec.name in self.instances:
            raise RuntimeStartError(f"Container name {spec.name} is already in use")
        self._next_port += 1
        self.instances[spec.name] = RuntimeInstance(
            name=spec.name,
            host_port=self._next_port,
            state="running",
            labels=dict(spec.labels),
        )
        self.specs[spec.name] = spec
        return self._next_port

    async def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        if name in self.fail_stop:
            raise RuntimeStopError(f"Failed to stop {name}")
        self.instances.pop(name, None)

    async def status(self, name: str) -> RuntimeInstance | None:
        if (instance := self.instances.get(name)) is None:
            return None
        return RuntimeInstance(
            name=instance.name,
            host_port=instance.host_port,
            state=instance.state,
            labels=dict(instance.labels),
        )

    @property
    def starts(self) -> list[str]:
        return [name for call, name in self.calls if call == "start"]


class FailingStore(InMemoryStore):
    """In-memory store that fails writes on request."""

    fail_writes = False

    async def write(self) -> None:
        if self.fail_writes:
            raise StoreIOError("Disk full")
        await super().write()


def component(kind: str, name: str, spec: dict[str, Any] | None = None) -> Resource:
    """Return a component resource."""
    return Resource(
        api_version=API_VERSIONS[kind],
        kind=kind,
        metadata=Metadata(name=name),
        spec=spec if spec is not None else {},
    )


@pytest.fixture(name="make_component")
def make_component_fixture() -> Callable[..., Resource]:
    """Fixture returning a factory of component resources."""
    return component


@pytest.fixture(name="make_secret")
def make_secret_fixture() -> Callable[[str, dict[str, str]], Resource]:
    """Fixture returning a factory of the Secret resource of a component."""
    return secret_resource


@pytest.fixture(name="config")
def config_fixture(tmp_path: pathlib.Path) -> Config:
    """Configuration with a temporary config home."""
    return Config(config_home=tmp_path, context=BROKER)


@pytest.fixture(name="store")
def store_fixture() -> FailingStore:
    """The object store of the context."""
    return FailingStore()


@pytest.fixture(name="state")
def state_fixture(config: Config, store: FailingStore) -> ContextState:
    """Context state with an in-memory manifest and a file broker config."""
    paths = config.context_paths()
    return ContextState(
        name=BROKER,
        paths=paths,
        store=store,
        broker_config=BrokerConfigFile(paths.broker_config),
        lock=StateLock(paths.lock, poll_interval=0.01),
    )


@pytest.fixture(name="runtime")
def runtime_fixture() -> FakeRuntime:
    """Fake container runtime."""
    return FakeRuntime()


@pytest.fixture(name="schemas")
def schemas_fixture() -> StaticSchemaProvider:
    """Schemas of the component kinds used in tests."""
    return SCHEMAS


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(
    config: Config,
    runtime: FakeRuntime,
    schemas: StaticSchemaProvider,
    state: ContextState,
) -> Orchestrator:
    """Orchestrator over the test context."""
    return Orchestrator(
        config, runtime, schemas, state=state, task_service=TaskServiceImpl()
    )
