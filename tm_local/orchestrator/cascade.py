"""Deletion of components along with everything derived from them.

Deleting a component removes, in order:
- external resources provisioned for it, through a registered `Finalizer`
- its container
- its manifest entry, and its routing table entry for triggers
- its targets from every trigger, empty triggers are kept
- its conventional `<name>-secret` Secret when nothing else refers to it

Failures to clean up external resources or containers are reported as
warnings and never block the removal from the manifest.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
import logging
import shutil

from tm_local.broker import RoutingTable, commit_state
from tm_local.config import Config, list_contexts
from tm_local.context import trace_context
from tm_local.exceptions import (
    AlreadyFinalizedError,
    CommandException,
    ObjectNotFoundError,
    StoreIOError,
)
from tm_local.manifest import (
    BROKER_KIND,
    SECRET_KIND,
    TRIGGER_KIND,
    Resource,
    container_name,
)
from tm_local.runtime import ContainerRuntime
from tm_local.secret import extract_refs, referenced_secrets, resolve, secret_name

from .state import ContextState
from .status import Action, ComponentResult

_LOGGER = logging.getLogger(__name__)


class Finalizer(ABC):
    """Cleans up resources provisioned outside the host for a component kind."""

    @abstractmethod
    async def finalize(self, resource: Resource, env: dict[str, str]) -> None:
        """Remove the external resources of a component.

        Args:
            resource: The component being deleted.
            env: The resolved secret values of the component.

        Raises:
            AlreadyFinalizedError: If there is nothing left to remove.
            FinalizeError: If the external resources can't be removed.
        """


class DeletionCascade:
    """Deletes components from one broker context."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        state: ContextState,
        finalizers: Mapping[str, Finalizer] | None = None,
    ) -> None:
        """Initialize the cascade over the state of a context."""
        self._runtime = runtime
        self._state = state
        self._finalizers = finalizers or {}

    async def delete(self, names: list[str]) -> list[ComponentResult]:
        """Delete the named components.

        Secrets are only removed along with their component and the broker
        only with `delete_broker`, naming either is reported as skipped.
        The manifest and routing table are written once at the end.
        """
        with trace_context("Delete"):
            async with self._state.lock.hold():
                store = self._state.store
                await store.read()
                previous = await self._state.broker_config.read()
                table = previous.copy()
                results = []
                deleted = []
                for name in names:
                    result = await self._delete(name, table)
                    if result.action == Action.DELETED:
                        deleted.append(name)
                    results.append(result)
                self._cleanup_secrets(deleted)
                await commit_state(store, self._state.broker_config, table, previous)
            return results

    async def _delete(self, name: str, table: RoutingTable) -> ComponentResult:
        store = self._state.store
        if (resource := store.get(name)) is None:
            return ComponentResult(
                name=name, kind="", action=Action.SKIPPED, reason="not found"
            )
        result = ComponentResult(name=name, kind=resource.kind, action=Action.DELETED)
        if resource.kind == SECRET_KIND:
            result.action = Action.SKIPPED
            result.reason = "secrets are deleted with their component"
            return result
        if resource.kind == BROKER_KIND:
            result.action = Action.SKIPPED
            result.reason = "use delete_broker"
            return result

        with trace_context("Delete", name):
            await self._finalize(resource, result)
            if resource.kind != TRIGGER_KIND:
                await self._stop(container_name(resource), result)
            store.remove(name, resource.kind)
            if resource.kind == TRIGGER_KIND:
                table.remove_trigger(name)
            for trigger in table.prune_target(name):
                store.upsert(trigger.as_resource(self._state.name))
                result.triggers.append(trigger.name)
        for warning in result.warnings:
            _LOGGER.warning("%s: %s", name, warning)
        return result

    async def _finalize(self, resource: Resource, result: ComponentResult) -> None:
        if (finalizer := self._finalizers.get(resource.kind)) is None:
            return
        try:
            env = resolve(extract_refs(resource.spec), self._state.store)
            await finalizer.finalize(resource, env)
        except AlreadyFinalizedError:
            _LOGGER.debug("%s was already finalized", resource)
        except Exception as err:
            result.warnings.append(f"Unable to clean up external resources: {err}")

    async def _stop(self, container: str, result: ComponentResult) -> None:
        try:
            await self._runtime.stop(container)
        except CommandException as err:
            result.warnings.append(f"Unable to stop container: {err}")

    def _cleanup_secrets(self, deleted: list[str]) -> None:
        """Remove the Secrets of deleted components that are no longer used."""
        store = self._state.store
        in_use: set[str] = set()
        for resource in store.list_objects():
            in_use |= referenced_secrets(resource)
        for name in deleted:
            secret = store.get(secret_name(name))
            if secret is None or secret.kind != SECRET_KIND:
                continue
            if secret.name in in_use:
                _LOGGER.info("Keeping %s, it is still referenced", secret.name)
                continue
            store.remove(secret.name, SECRET_KIND)

    async def delete_broker(self, config: Config) -> list[ComponentResult]:
        """Delete the broker, every component of its context and the context.

        When the deleted broker is the active context, the first remaining
        broker becomes active and the config is saved.
        """
        name = self._state.name
        root = self._state.paths.root
        with trace_context("Delete broker", name):
            async with self._state.lock.hold():
                await self._state.store.read()
                broker = self._state.store.get(name)
                if broker is None or broker.kind != BROKER_KIND:
                    raise ObjectNotFoundError(f"Broker {name!r} not found")
                names = [
                    resource.name
                    for resource in self._state.store.list_objects()
                    if resource.kind not in (SECRET_KIND, BROKER_KIND)
                ]
            results = await self.delete(names)

            result = ComponentResult(name=name, kind=BROKER_KIND, action=Action.DELETED)
            await self._stop(container_name(broker), result)
            results.append(result)

            if root.exists():
                try:
                    shutil.rmtree(root)
                except OSError as err:
                    raise StoreIOError(
                        f"Failed to remove context {root}: {err}"
                    ) from err

            if config.context == name:
                remaining = list_contexts(config.config_home, exclude=name)
                config.context = remaining[0] if remaining else None
                _LOGGER.info("Switched context to %s", config.context)
                config.save()
        return results
