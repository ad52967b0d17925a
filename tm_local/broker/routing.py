"""Routing table of the local broker.

The broker reads its configuration file on change and delivers every event to
the targets of each trigger whose filter matches the event type. A trigger
without a filter matches every event.
"""

import copy
import logging
from pathlib import Path

import aiofiles.os
import yaml

from tm_local.exceptions import InputException, StoreIOError, TriggerNotFoundError
from tm_local.manifest import BrokerConfig, Trigger, TriggerTarget
from tm_local.store.files import atomic_write, read_file

_LOGGER = logging.getLogger(__name__)


class RoutingTable:
    """In-memory view of the triggers of a broker."""

    def __init__(self, config: BrokerConfig | None = None) -> None:
        """Initialize the table from a broker configuration."""
        self._config = config or BrokerConfig()

    @property
    def triggers(self) -> list[Trigger]:
        return self._config.triggers

    def copy(self) -> "RoutingTable":
        """Return an independent copy of the table."""
        return RoutingTable(copy.deepcopy(self._config))

    def to_config(self) -> BrokerConfig:
        return self._config

    def _find(self, name: str) -> Trigger | None:
        for trigger in self._config.triggers:
            if trigger.name == name:
                return trigger
        return None

    def upsert_trigger(
        self, name: str, event_type: str | None, target: TriggerTarget | None = None
    ) -> Trigger:
        """Create or update a trigger.

        The filter is replaced by `event_type`. The target is appended unless a
        target with the same URL is already present.
        """
        if (trigger := self._find(name)) is None:
            _LOGGER.debug("Adding trigger %s", name)
            trigger = Trigger(name=name)
            self._config.triggers.append(trigger)
        trigger.set_filter(event_type)
        if target is not None and not trigger.add_target(target):
            _LOGGER.debug("Trigger %s already targets %s", name, target.url)
        return trigger

    def remove_trigger(self, name: str) -> bool:
        """Remove a trigger by name, returns False if it did not exist."""
        remaining = [t for t in self._config.triggers if t.name != name]
        removed = len(remaining) != len(self._config.triggers)
        self._config.triggers = remaining
        return removed

    def lookup_trigger(self, name: str) -> Trigger:
        """Return the trigger with the name."""
        if (trigger := self._find(name)) is None:
            raise TriggerNotFoundError(name)
        return trigger

    def triggers_for_target(self, component: str) -> list[Trigger]:
        """Return every trigger with a target served by the component."""
        return [
            trigger
            for trigger in self._config.triggers
            if any(target.component == component for target in trigger.targets)
        ]

    def prune_target(self, component: str) -> list[Trigger]:
        """Remove the component's targets from every trigger.

        Triggers left without targets remain in the table.
        """
        pruned = [t for t in self._config.triggers if t.remove_targets(component)]
        for trigger in pruned:
            if not trigger.targets:
                _LOGGER.info("Trigger %s has no targets left", trigger.name)
        return pruned

    def retarget(self, component: str, url: str) -> list[Trigger]:
        """Point the component's targets at a new URL, returns changed triggers."""
        changed = []
        for trigger in self.triggers_for_target(component):
            before = [t.to_dict() for t in trigger.targets]
            targets: list[TriggerTarget] = []
            for target in trigger.targets:
                if target.component == component:
                    target.url = url
                if any(existing.url == target.url for existing in targets):
                    continue
                targets.append(target)
            trigger.targets = targets
            if [t.to_dict() for t in targets] != before:
                changed.append(trigger)
        return changed

    def route(self, event_type: str) -> list[TriggerTarget]:
        """Return the targets an event of the type is delivered to."""
        result: list[TriggerTarget] = []
        for trigger in self._config.triggers:
            if trigger.matches(event_type):
                result.extend(trigger.targets)
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RoutingTable):
            return NotImplemented
        return self._config.to_dict() == other._config.to_dict()


class BrokerConfigFile:
    """The broker configuration file of a context."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> RoutingTable:
        """Load the routing table, an absent or empty file is an empty table."""
        content = await read_file(self._path)
        try:
            doc = yaml.safe_load(content)
            return RoutingTable(BrokerConfig.parse_doc(doc))
        except (yaml.YAMLError, InputException) as err:
            raise StoreIOError(
                f"Broker config {self._path} is malformed: {err}"
            ) from err

    async def write(self, table: RoutingTable) -> None:
        """Write the routing table atomically."""
        content = yaml.dump(table.to_config().to_dict(), sort_keys=False)
        await atomic_write(self._path, content)

    async def ensure(self) -> None:
        """Create an empty configuration if the file does not exist."""
        if not await aiofiles.os.path.exists(self._path):
            _LOGGER.debug("Creating empty broker config %s", self._path)
            await self.write(RoutingTable())
