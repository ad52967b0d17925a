"""Orchestrator for tm-local.

This module provides the orchestrator that materializes declared components
as running containers and wires them into the broker routing table.

A reconciliation proceeds in three steps:
- The resource is classified, its wiring and secrets are resolved and it is
  written to the manifest. Any failure here happens before anything changed.
- The container is (re)started when it isn't running, its spec or secret
  values changed, or its config hash label differs from the declaration.
- Consumers are bound to the triggers of the event types they receive.
"""

from collections.abc import Iterable, Mapping
import hashlib
import json
import logging

from tm_local import secret
from tm_local.broker import trigger_name
from tm_local.config import Config
from tm_local.context import trace_context
from tm_local.exceptions import (
    AggregateTaskError,
    CommandException,
    InputException,
    ObjectNotFoundError,
    StoreIOError,
    PartialReconcileError,
    UnknownKindError,
    UnsupportedGroupError,
)
from tm_local.manifest import (
    BROKER_KIND,
    BROKER_SUFFIX,
    SECRET_KIND,
    SECRETS_HASH_ANNOTATION,
    TRIGGER_KIND,
    DeliveryOptions,
    Resource,
    broker_resource,
    container_name,
)
from tm_local.runtime import (
    CONFIG_HASH_LABEL,
    RUNNING,
    ContainerRuntime,
    ContainerSpec,
    RuntimeInstance,
    adapter_env,
    container_labels,
)
from tm_local.schema import (
    Capability,
    Category,
    SchemaProvider,
    require_event_types,
    resolve_capability,
)
from tm_local.task import TaskService, get_task_service

from .cascade import DeletionCascade, Finalizer
from .state import ContextState
from .status import Action, ComponentResult, ComponentStatus

_LOGGER = logging.getLogger(__name__)

BROKER_CONFIG_MOUNT = "/etc/triggermesh/broker.conf"

# Kinds that are declared in the manifest but never run as containers
PASSIVE_KINDS = (SECRET_KIND, TRIGGER_KIND)


def config_hash(resource: Resource) -> str:
    """Return a stable hash of the declared configuration of a component."""
    content = json.dumps(resource.to_dict(), sort_keys=True)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


class Orchestrator:
    """Orchestrator for the components of one broker context.

    The orchestrator is responsible for:
    - Keeping the manifest consistent with the declared resources
    - Starting and restarting component containers
    - Routing events to consumers through the broker triggers
    - Removing components along with their routing and secrets
    """

    def __init__(
        self,
        config: Config,
        runtime: ContainerRuntime,
        schemas: SchemaProvider,
        state: ContextState | None = None,
        task_service: TaskService | None = None,
        finalizers: Mapping[str, Finalizer] | None = None,
    ) -> None:
        """Initialize the orchestrator, by default over the active context."""
        self.config = config
        self.runtime = runtime
        self.schemas = schemas
        self.state = state or ContextState.open(config)
        self.triggers = self.state.trigger_engine()
        self.finalizers: dict[str, Finalizer] = dict(finalizers or {})
        self._task_service = task_service

    @property
    def broker(self) -> str:
        """Return the name of the broker of the context."""
        return self.state.name

    async def ensure_broker(self) -> Resource:
        """Declare the broker of the context if it is not declared yet."""
        async with self.state.lock.hold():
            await self.state.store.read()
            if (existing := self.state.store.get(self.broker)) is not None:
                if existing.kind == BROKER_KIND:
                    await self.state.broker_config.ensure()
                    return existing
            resource = broker_resource(self.broker, self.config.storage)
            self.state.store.upsert(resource)
            await self.state.broker_config.ensure()
            await self.state.store.write()
            _LOGGER.info("Created broker %s", self.broker)
            return resource

    async def declare_secret(self, resource: Resource) -> bool:
        """Store a Secret resource, returns True if its content changed.

        Components using the secret pick up the new values on their next
        reconciliation.
        """
        if resource.kind != SECRET_KIND:
            raise InputException(f"{resource} is not a Secret")
        async with self.state.lock.hold():
            await self.state.store.read()
            if (existing := self.state.store.get(resource.name)) is not None:
                if existing.kind != SECRET_KIND:
                    raise InputException(
                        f"Secret name {resource.name!r} is already used by {existing}"
                    )
            if changed := self.state.store.upsert(resource):
                await self.state.store.write()
            return changed

    async def target_url(self, name: str) -> str:
        """Return the address the broker delivers events for a component to."""
        async with self.state.lock.hold():
            await self.state.store.read()
            if (resource := self.state.store.get(name)) is None:
                raise ObjectNotFoundError(f"Component {name!r} not found")
        instance = await self.runtime.status(container_name(resource))
        if instance is None or not instance.running or instance.host_port is None:
            raise ObjectNotFoundError(f"Component {name!r} is not running")
        return self.config.host_url(instance.host_port)

    async def reconcile(
        self,
        resource: Resource,
        sources: Iterable[str] = (),
        event_types: Iterable[str] = (),
        delivery_options: DeliveryOptions | None = None,
        restart: bool = False,
    ) -> ComponentResult:
        """Bring a component to its declared state.

        Args:
            resource: The declared component.
            sources: Producers whose event types a consumer receives.
            event_types: Additional event types a consumer receives.
            delivery_options: Delivery policy of the consumer's trigger targets.
            restart: Restart the container even if nothing changed.
        """
        with trace_context("Reconcile", resource.name):
            return await self._reconcile(
                resource, list(sources), list(event_types), delivery_options, restart
            )

    async def _reconcile(
        self,
        resource: Resource,
        sources: list[str],
        event_types: list[str],
        delivery_options: DeliveryOptions | None,
        restart: bool,
    ) -> ComponentResult:
        store = self.state.store
        async with self.state.lock.hold():
            await store.read()
            capability = resolve_capability(resource, self.schemas)
            if not capability.runnable:
                raise InputException(f"{resource} does not run as a container")
            wiring: list[str] = []
            if capability.consumer:
                wiring = self._resolve_wiring(resource.name, sources, event_types)
            elif sources or event_types:
                raise InputException(f"{resource} does not consume events")
            binding = secret.process_secrets(resource, store)
            previous = store.get(resource.name)
            previous_hash = (
                previous.annotation(SECRETS_HASH_ANNOTATION) if previous else None
            )
            secrets_changed = secret.changed(previous_hash, binding.resolved_env)
            declared = resource.with_annotation(SECRETS_HASH_ANNOTATION, binding.hash)
            spec_changed = store.upsert(declared)
            if capability.category == Category.BROKER:
                await self.state.broker_config.ensure()
            if spec_changed:
                await store.write()

        result = ComponentResult(
            name=resource.name, kind=resource.kind, action=Action.UNCHANGED
        )
        name = container_name(resource)
        desired_hash = config_hash(declared)
        instance = await self.runtime.status(name)
        # The manifest may be ahead of a container that failed to restart
        outdated = (
            instance is not None
            and instance.labels.get(CONFIG_HASH_LABEL) != desired_hash
        )
        stale = spec_changed or secrets_changed or outdated or restart
        if instance is None or not instance.running or stale:
            _LOGGER.debug(
                "Starting %s (spec changed: %s, secrets changed: %s, outdated: %s)",
                name,
                spec_changed,
                secrets_changed,
                outdated,
            )
            result.action = Action.CREATED if instance is None else Action.RESTARTED
            if instance is not None:
                await self.runtime.stop(name)
            sink = None
            if capability.producer:
                if (sink := await self._broker_sink()) is None:
                    result.warnings.append(
                        f"Broker {self.broker} is not running, events are not delivered"
                    )
            spec = self._container_spec(
                resource, binding.resolved_env, sink, desired_hash
            )
            host_port = await self.runtime.start(spec)
            instance = RuntimeInstance(
                name=name, host_port=host_port, state=RUNNING, labels=spec.labels
            )
        result.instance = instance

        if capability.consumer:
            if instance.host_port is None:
                result.warnings.append(
                    f"{name} publishes no port, it can't be routed to"
                )
            else:
                url = self.config.host_url(instance.host_port)
                try:
                    triggers = await self.triggers.bind(
                        resource.name, url, wiring, delivery_options
                    )
                except StoreIOError as err:
                    raise PartialReconcileError(resource.name, err) from err
                result.triggers = [trigger.name for trigger in triggers]
        for warning in result.warnings:
            _LOGGER.warning("%s: %s", resource.name, warning)
        return result

    def _resolve_wiring(
        self, name: str, sources: list[str], event_types: list[str]
    ) -> list[str]:
        """Return the event types a consumer receives from its sources."""
        store = self.state.store
        result: list[str] = []
        for source in sources:
            if (producer := store.get(source)) is None:
                raise ObjectNotFoundError(f"Producer {source!r} not found")
            capability = resolve_capability(producer, self.schemas)
            result.extend(require_event_types(capability, source))
        result.extend(event_types)
        result = list(dict.fromkeys(result))
        for event_type in result:
            trigger = trigger_name(self.broker, event_type)
            if trigger == name or (
                (existing := store.get(trigger)) is not None
                and existing.kind != TRIGGER_KIND
            ):
                raise InputException(
                    f"Trigger name {trigger!r} for {event_type} is already in use"
                )
        return result

    def _container_spec(
        self,
        resource: Resource,
        secret_env: dict[str, str],
        sink: str | None,
        desired_hash: str,
    ) -> ContainerSpec:
        labels = container_labels(self.broker, desired_hash)
        if resource.kind == BROKER_KIND:
            return ContainerSpec(
                name=container_name(resource),
                image=self.config.broker_image,
                port=self.config.adapter_port,
                labels=labels,
                volumes={str(self.state.broker_config.path): BROKER_CONFIG_MOUNT},
                args=["start", "--broker-config-path", BROKER_CONFIG_MOUNT],
            )
        return ContainerSpec(
            name=container_name(resource),
            image=self.config.adapter_image(resource.kind),
            env=adapter_env(resource, self.broker, sink),
            secret_env=secret_env,
            port=self.config.adapter_port,
            labels=labels,
        )

    async def _broker_sink(self) -> str | None:
        """Return the address producers send events to."""
        instance = await self.runtime.status(f"{self.broker}{BROKER_SUFFIX}")
        if instance is None or not instance.running or instance.host_port is None:
            return None
        return self.config.host_url(instance.host_port)

    async def reconcile_all(self, restart: bool = False) -> list[ComponentResult]:
        """Reconcile every declared component.

        The broker is reconciled first so producers can be pointed at it, then
        the remaining components concurrently. All components are attempted
        even when some fail.

        Raises:
            AggregateTaskError: Naming each failed component, with all results.
        """
        async with self.state.lock.hold():
            await self.state.store.read()
            resources = self.state.store.list_objects()

        results: list[ComponentResult] = [
            ComponentResult(
                name=resource.name, kind=resource.kind, action=Action.SKIPPED
            )
            for resource in resources
        ]
        errors: dict[str, Exception] = {}
        service = self._task_service or get_task_service()

        async def run(index: int, resource: Resource) -> None:
            try:
                results[index] = await self.reconcile(resource, restart=restart)
            except Exception as err:
                errors[resource.name] = err
                results[index].action = Action.FAILED
                results[index].reason = str(err)

        waves: tuple[list[int], list[int]] = ([], [])
        for index, resource in enumerate(resources):
            if resource.kind in PASSIVE_KINDS:
                results[index].reason = "not runnable"
                continue
            waves[resource.kind != BROKER_KIND].append(index)
        for wave in waves:
            for index in wave:
                resource = resources[index]
                service.create_task(
                    run(index, resource), name=f"reconcile-{resource.name}"
                )
            await service.block_till_done()

        if errors:
            raise AggregateTaskError(errors, results)
        return results

    async def stop_all(self) -> list[ComponentResult]:
        """Stop the container of every declared component.

        Failures to stop a container are reported as warnings.
        """
        with trace_context("Stop all"):
            async with self.state.lock.hold():
                await self.state.store.read()
                resources = self.state.store.list_objects()
            results = []
            for resource in resources:
                result = ComponentResult(
                    name=resource.name, kind=resource.kind, action=Action.STOPPED
                )
                if resource.kind in PASSIVE_KINDS:
                    result.action = Action.SKIPPED
                    result.reason = "not runnable"
                else:
                    try:
                        await self.runtime.stop(container_name(resource))
                    except CommandException as err:
                        _LOGGER.warning("Failed to stop %s: %s", resource.name, err)
                        result.warnings.append(str(err))
                results.append(result)
            return results

    async def status(self) -> list[ComponentStatus]:
        """Return each declared resource with the state of its container."""
        async with self.state.lock.hold():
            await self.state.store.read()
            resources = self.state.store.list_objects()
        result = []
        for resource in resources:
            status = ComponentStatus(name=resource.name, kind=resource.kind)
            if resource.kind == SECRET_KIND:
                result.append(status)
                continue
            capability: Capability | None = None
            try:
                capability = resolve_capability(resource, self.schemas)
            except (UnknownKindError, UnsupportedGroupError) as err:
                _LOGGER.debug("Unable to classify %s: %s", resource, err)
            if capability is not None:
                status.category = capability.category
            if capability is None or capability.runnable:
                if instance := await self.runtime.status(container_name(resource)):
                    status.state = instance.state
                    status.host_port = instance.host_port
            result.append(status)
        return result

    async def delete(self, names: Iterable[str]) -> list[ComponentResult]:
        """Delete components, see `DeletionCascade.delete`."""
        cascade = DeletionCascade(self.runtime, self.state, self.finalizers)
        return await cascade.delete(list(names))

    async def delete_broker(self, name: str | None = None) -> list[ComponentResult]:
        """Delete a broker context, see `DeletionCascade.delete_broker`."""
        name = name or self.broker
        state = self.state
        if name != self.broker:
            state = ContextState.open(self.config, name)
        cascade = DeletionCascade(self.runtime, state, self.finalizers)
        return await cascade.delete_broker(self.config)
