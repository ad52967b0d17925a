"""Persisted state of a broker context."""

from dataclasses import dataclass

from tm_local.broker import BrokerConfigFile, TriggerEngine
from tm_local.config import Config, ContextPaths
from tm_local.exceptions import InputException
from tm_local.store import ManifestStore, ObjectStore, StateLock


@dataclass
class ContextState:
    """The manifest, routing table and lock of one broker context.

    Every component operating on a context shares one instance so that all of
    them serialize on the same lock.
    """

    name: str
    paths: ContextPaths
    store: ObjectStore
    broker_config: BrokerConfigFile
    lock: StateLock

    @classmethod
    def open(cls, config: Config, context: str | None = None) -> "ContextState":
        """Return the file backed state of a context, the active one by default."""
        if not (name := context or config.context):
            raise InputException("No active broker context, create a broker first")
        paths = config.context_paths(name)
        return cls(
            name=name,
            paths=paths,
            store=ManifestStore(paths.manifest),
            broker_config=BrokerConfigFile(paths.broker_config),
            lock=StateLock(paths.lock),
        )

    def trigger_engine(self) -> TriggerEngine:
        """Return the trigger engine over this state."""
        return TriggerEngine(self.name, self.store, self.broker_config, self.lock)
