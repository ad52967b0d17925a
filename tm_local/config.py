"""Configuration objects for tm-local.

The configuration is read once by the caller and passed explicitly into every
component, nothing reads ambient process-wide settings.
"""

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
import yaml

from .exceptions import InputException

__all__ = [
    "Config",
    "ContextPaths",
    "load_config",
    "list_contexts",
]

_LOGGER = logging.getLogger(__name__)

CONFIG_FILE = "config.yaml"
MANIFEST_FILE = "manifest.yaml"
BROKER_CONFIG_FILE = "broker.conf"
LOCK_FILE = ".lock"
CRD_DIR = "crd"
CRD_FILE = "crd.yaml"

DEFAULT_CONFIG_HOME = Path("~/.triggermesh/cli")
DEFAULT_CONTEXT = "default"
DEFAULT_VERSION = "latest"
DEFAULT_REGISTRY = "gcr.io/triggermesh"
DEFAULT_BROKER_IMAGE = "tzununbekov/memory-broker"
DEFAULT_TARGET_HOST = "host.docker.internal"
DEFAULT_ADAPTER_PORT = "8080/tcp"
DEFAULT_STORAGE = "inmemory"


@dataclass(frozen=True)
class ContextPaths:
    """Files holding the persisted state of one broker context."""

    root: Path

    @property
    def manifest(self) -> Path:
        return self.root / MANIFEST_FILE

    @property
    def broker_config(self) -> Path:
        return self.root / BROKER_CONFIG_FILE

    @property
    def lock(self) -> Path:
        return self.root / LOCK_FILE


@dataclass
class Config(DataClassDictMixin):
    """Settings shared by the orchestrator components."""

    config_home: Path = field(
        metadata=field_options(serialize="omit"),
        default_factory=lambda: DEFAULT_CONFIG_HOME.expanduser(),
    )
    """Directory holding the config file and one directory per context."""

    context: str | None = DEFAULT_CONTEXT
    """The active broker context, unset when no broker exists."""

    version: str = DEFAULT_VERSION
    """Version of the component adapter images."""

    storage: str = DEFAULT_STORAGE
    """Storage backend of the broker."""

    registry: str = DEFAULT_REGISTRY
    """Container registry to pull adapter images from."""

    broker_image: str = field(
        metadata=field_options(alias="brokerImage"), default=DEFAULT_BROKER_IMAGE
    )
    """Image of the local broker."""

    target_host: str = field(
        metadata=field_options(alias="targetHost"), default=DEFAULT_TARGET_HOST
    )
    """Host name the broker uses to reach published component ports."""

    adapter_port: str = field(
        metadata=field_options(alias="adapterPort"), default=DEFAULT_ADAPTER_PORT
    )
    """Container port where adapters serve connections."""

    class Config(BaseConfig):
        serialize_by_alias = True

    @property
    def config_file(self) -> Path:
        """Return the path of the config file."""
        return self.config_home / CONFIG_FILE

    def context_paths(self, context: str | None = None) -> ContextPaths:
        """Return the state file paths of a context, the active one by default."""
        if not (name := context or self.context):
            raise InputException("No active broker context, create a broker first")
        return ContextPaths(root=self.config_home / name)

    def schema_cache(self) -> Path:
        """Return the path of the cached schema definitions for the version."""
        return self.config_home / CRD_DIR / self.version / CRD_FILE

    def adapter_image(self, kind: str) -> str:
        """Return the adapter image of a component kind."""
        return f"{self.registry}/{kind.lower()}-adapter:{self.version}"

    def host_url(self, port: int) -> str:
        """Return the address of a port published on the host."""
        return f"http://{self.target_host}:{port}"

    def save(self) -> None:
        """Write the config file."""
        self.config_home.mkdir(parents=True, exist_ok=True)
        content = yaml.dump(self.to_dict(), sort_keys=False)
        tmp_path = self.config_file.with_suffix(".tmp")
        tmp_path.write_text(content)
        os.replace(tmp_path, self.config_file)
        _LOGGER.debug("Saved config %s", self.config_file)


def load_config(config_home: Path | None = None, **overrides: Any) -> Config:
    """Load the config file, creating it with defaults when missing.

    Keyword overrides that are not None take precedence over the file.
    """
    home = (config_home or DEFAULT_CONFIG_HOME).expanduser()
    config_file = home / CONFIG_FILE
    values: dict[str, Any] = {}
    if config_file.exists():
        try:
            values = yaml.safe_load(config_file.read_text()) or {}
        except yaml.YAMLError as err:
            raise InputException(
                f"Config file {config_file} is not valid yaml: {err}"
            ) from err
        if not isinstance(values, dict):
            raise InputException(f"Config file {config_file} must be a mapping")
    config = Config.from_dict(values)
    config.config_home = home
    if not config_file.exists():
        _LOGGER.info("Creating default config %s", config_file)
        config.save()
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    return config


def list_contexts(config_home: Path, exclude: str | None = None) -> list[str]:
    """Return the sorted names of the broker contexts under the config home."""
    if not config_home.is_dir():
        return []
    return sorted(
        child.name
        for child in config_home.iterdir()
        if child.is_dir()
        and child.name != exclude
        and (child / MANIFEST_FILE).exists()
    )
