"""Trigger engine keeping the routing table and the manifest in step.

Every trigger lives twice: in the broker configuration the broker routes
with, and as a Trigger resource in the manifest for listing and deletion.
A trigger mutation updates both or neither.
"""

import logging

from slugify import slugify

from tm_local.exceptions import InputException, ObjectNotFoundError, StoreIOError
from tm_local.manifest import TRIGGER_KIND, DeliveryOptions, Trigger, TriggerTarget
from tm_local.store import ObjectStore, StateLock

from .routing import BrokerConfigFile, RoutingTable

_LOGGER = logging.getLogger(__name__)

__all__ = ["TriggerEngine", "trigger_name", "commit_state"]


def trigger_name(broker: str, event_type: str) -> str:
    """Return the name of the trigger routing an event type within a broker."""
    return slugify(f"{broker}-{event_type}", max_length=63, separator="-")


async def commit_state(
    store: ObjectStore,
    broker_config: BrokerConfigFile,
    table: RoutingTable,
    previous: RoutingTable,
) -> None:
    """Write the routing table then the manifest.

    If the manifest can't be written the previous routing table is restored
    before the error is raised, so neither store is left half updated.
    """
    table_changed = table != previous
    if table_changed:
        await broker_config.write(table)
    try:
        await store.write()
    except StoreIOError:
        if table_changed:
            _LOGGER.warning(
                "Manifest write failed, restoring broker config %s", broker_config.path
            )
            await broker_config.write(previous)
        raise


def mirror_trigger(store: ObjectStore, broker: str, trigger: Trigger) -> None:
    """Update the manifest record of a trigger."""
    existing = store.get(trigger.name)
    if existing is not None and existing.kind != TRIGGER_KIND:
        raise InputException(
            f"Trigger name {trigger.name!r} is already used by {existing}"
        )
    store.upsert(trigger.as_resource(broker))


class TriggerEngine:
    """Routing table operations of one broker context."""

    def __init__(
        self,
        broker: str,
        store: ObjectStore,
        broker_config: BrokerConfigFile,
        lock: StateLock,
    ) -> None:
        """Initialize the engine over the state of a context."""
        self._broker = broker
        self._store = store
        self._broker_config = broker_config
        self._lock = lock

    async def upsert_trigger(
        self,
        name: str,
        event_type: str | None,
        target: TriggerTarget | None = None,
    ) -> Trigger:
        """Create or update a trigger, see `RoutingTable.upsert_trigger`.

        Raises:
            ObjectNotFoundError: If the target names a component not declared.
        """
        async with self._lock.hold():
            previous = await self._broker_config.read()
            await self._store.read()
            if target is not None and target.component:
                if target.component not in self._store:
                    raise ObjectNotFoundError(
                        f"Component {target.component!r} not found"
                    )
            table = previous.copy()
            trigger = table.upsert_trigger(name, event_type, target)
            mirror_trigger(self._store, self._broker, trigger)
            await commit_state(self._store, self._broker_config, table, previous)
            return trigger

    async def remove_trigger(self, name: str) -> None:
        """Remove a trigger, a missing trigger is a no-op."""
        async with self._lock.hold():
            previous = await self._broker_config.read()
            await self._store.read()
            table = previous.copy()
            if not table.remove_trigger(name):
                _LOGGER.debug("Trigger %s does not exist", name)
            if (existing := self._store.get(name)) is not None:
                if existing.kind == TRIGGER_KIND:
                    self._store.remove(name, TRIGGER_KIND)
            await commit_state(self._store, self._broker_config, table, previous)

    async def lookup_trigger(self, name: str) -> Trigger:
        """Return a trigger, raising TriggerNotFoundError if absent."""
        table = await self._broker_config.read()
        return table.lookup_trigger(name)

    async def list_triggers(self) -> list[Trigger]:
        """Return every trigger of the broker."""
        table = await self._broker_config.read()
        return table.triggers

    async def list_triggers_for_target(self, component: str) -> list[Trigger]:
        """Return the triggers delivering to a component."""
        table = await self._broker_config.read()
        return table.triggers_for_target(component)

    async def bind(
        self,
        component: str,
        url: str,
        event_types: list[str],
        delivery_options: DeliveryOptions | None = None,
    ) -> list[Trigger]:
        """Route the event types to a component served at the URL.

        Each event type gets its own trigger shared by every consumer of that
        type. Triggers already delivering to the component are moved to the
        URL in case its published port changed.
        """
        async with self._lock.hold():
            previous = await self._broker_config.read()
            await self._store.read()
            table = previous.copy()
            touched: dict[str, Trigger] = {
                trigger.name: trigger for trigger in table.retarget(component, url)
            }
            for event_type in event_types:
                trigger = table.upsert_trigger(
                    trigger_name(self._broker, event_type),
                    event_type,
                    TriggerTarget(
                        url=url,
                        component=component,
                        delivery_options=delivery_options,
                    ),
                )
                touched[trigger.name] = trigger
            if table == previous:
                return list(touched.values())
            for trigger in touched.values():
                mirror_trigger(self._store, self._broker, trigger)
            await commit_state(self._store, self._broker_config, table, previous)
            _LOGGER.info(
                "Routed %s to %s through %s", component, url, ", ".join(touched)
            )
            return list(touched.values())
