"""Library for running components as local containers.

A component runs as a single adapter container named after the component,
publishing the adapter port on a random host port. The broker reaches a
consumer through that host port.

This is an example of starting a target and querying it:
```python
from tm_local.runtime import ContainerSpec, DockerRuntime

runtime = DockerRuntime()
port = await runtime.start(
    ContainerSpec(
        name="my-target",
        image="gcr.io/triggermesh/cloudeventstarget-adapter:latest",
        env={"K_SINK": "http://host.docker.internal:49153"},
    )
)
instance = await runtime.status("my-target")
```
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import json
import logging
import re
from typing import Any

from . import command
from .exceptions import CommandException, RuntimeStartError, RuntimeStopError
from .manifest import CONTEXT_LABEL, Resource
from .secret import VALUE_FROM_SECRET

__all__ = [
    "ContainerSpec",
    "RuntimeInstance",
    "ContainerRuntime",
    "DockerRuntime",
    "adapter_env",
    "container_labels",
    "CONFIG_HASH_LABEL",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_PORT = "8080/tcp"
RUNNING = "running"
CONFIG_HASH_LABEL = "tm-local.io/config-hash"

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")


@dataclass
class ContainerSpec:
    """Everything needed to start the container of a component."""

    name: str
    """Name of the container."""

    image: str
    """Image to run."""

    env: dict[str, str] = field(default_factory=dict)
    """Plain environment variables."""

    secret_env: dict[str, str] = field(default_factory=dict)
    """Environment variables holding secret values, never logged."""

    port: str = DEFAULT_PORT
    """Container port published on a random host port."""

    labels: dict[str, str] = field(default_factory=dict)
    """Labels set on the container."""

    volumes: dict[str, str] = field(default_factory=dict)
    """Host paths mounted read-only into the container, keyed by host path."""

    args: list[str] = field(default_factory=list)
    """Arguments passed to the image entrypoint."""


@dataclass
class RuntimeInstance:
    """A container as reported by the runtime."""

    name: str
    host_port: int | None = None
    """Host port the adapter port is published on."""

    state: str = RUNNING

    labels: dict[str, str] = field(default_factory=dict)
    """Labels set on the container."""

    @property
    def running(self) -> bool:
        return self.state == RUNNING


class ContainerRuntime(ABC):
    """Interface of the container runtime used to run components."""

    @abstractmethod
    async def start(self, spec: ContainerSpec) -> int:
        """Start a container and return the published host port.

        Raises:
            RuntimeStartError: If the container can't be started.
        """

    @abstractmethod
    async def stop(self, name: str) -> None:
        """Stop and remove a container, a missing container is a no-op.

        Raises:
            RuntimeStopError: If the container can't be removed.
        """

    @abstractmethod
    async def status(self, name: str) -> RuntimeInstance | None:
        """Return the container with the name, None if there is none."""


def _parse_port(output: str) -> int:
    """Parse the host port of `docker port` output like `0.0.0.0:49153`."""
    for line in output.splitlines():
        _, sep, port = line.strip().rpartition(":")
        if sep and port.isdigit():
            return int(port)
    raise RuntimeStartError(f"Unable to determine published port from {output!r}")


class DockerRuntime(ContainerRuntime):
    """Container runtime using the docker command line."""

    def __init__(self, docker: str = "docker") -> None:
        """Initialize the runtime with the docker binary to run."""
        self._docker = docker

    async def start(self, spec: ContainerSpec) -> int:
        args = [self._docker, "run", "--detach", "--name", spec.name]
        for key, value in spec.labels.items():
            args.extend(["--label", f"{key}={value}"])
        for host_path, container_path in spec.volumes.items():
            args.extend(["--volume", f"{host_path}:{container_path}:ro"])
        for key, value in spec.env.items():
            args.extend(["--env", f"{key}={value}"])
        redact = []
        for key, value in spec.secret_env.items():
            args.extend(["--env", f"{key}={value}"])
            redact.append(f"{key}={value}")
        args.extend(["--publish", f"0:{spec.port}", spec.image, *spec.args])
        _LOGGER.info("Starting %s from %s", spec.name, spec.image)
        await command.run(
            command.Command(args, exc=RuntimeStartError, redact=frozenset(redact))
        )
        out = await command.run(
            command.Command(
                [self._docker, "port", spec.name, spec.port], exc=RuntimeStartError
            )
        )
        return _parse_port(out)

    async def stop(self, name: str) -> None:
        if await self.status(name) is None:
            _LOGGER.debug("Container %s does not exist", name)
            return
        _LOGGER.info("Stopping %s", name)
        await command.run(
            command.Command([self._docker, "rm", "--force", name], exc=RuntimeStopError)
        )

    async def status(self, name: str) -> RuntimeInstance | None:
        # Inspecting a missing container exits 1 and prints an empty list
        out = await command.run(
            command.Command(
                [self._docker, "inspect", "--type", "container", name],
                exc=CommandException,
                retcodes=[1],
            )
        )
        try:
            containers = json.loads(out or "[]")
        except json.JSONDecodeError as err:
            raise CommandException(f"Unexpected docker inspect output: {err}") from err
        if not containers:
            return None
        return _instance(name, containers[0])


def _instance(name: str, doc: dict[str, Any]) -> RuntimeInstance:
    """Build the instance from a `docker inspect` document."""
    state = (doc.get("State") or {}).get("Status", "unknown")
    host_port = None
    ports = (doc.get("NetworkSettings") or {}).get("Ports") or {}
    for bindings in ports.values():
        for binding in bindings or ():
            if (port := binding.get("HostPort")) and port.isdigit():
                host_port = int(port)
                break
        if host_port is not None:
            break
    labels = (doc.get("Config") or {}).get("Labels") or {}
    return RuntimeInstance(
        name=name, host_port=host_port, state=state, labels=dict(labels)
    )


def _env_name(path: list[str]) -> str:
    snake = _CAMEL_RE.sub(r"_\1", "_".join(path))
    return _NON_ALNUM_RE.sub("_", snake).strip("_").upper()


def _flatten(value: Any, path: list[str], env: dict[str, str]) -> None:
    if isinstance(value, dict):
        if VALUE_FROM_SECRET in value:
            return
        for key, item in value.items():
            _flatten(item, path + [str(key)], env)
    elif isinstance(value, list):
        # Lists are passed whole, adapters decode them as JSON
        env[_env_name(path)] = json.dumps(value)
    elif isinstance(value, bool):
        env[_env_name(path)] = str(value).lower()
    elif value is not None:
        env[_env_name(path)] = str(value)


def adapter_env(resource: Resource, context: str, sink: str | None) -> dict[str, str]:
    """Return the plain environment of a component adapter.

    Scalar spec fields become variables named after their path. Fields holding
    secret references are left out, they are resolved separately.
    """
    env: dict[str, str] = {}
    for key, value in (resource.spec or {}).items():
        _flatten(value, [key], env)
    env["NAME"] = resource.name
    env["NAMESPACE"] = context
    if sink:
        env["K_SINK"] = sink
    return env


def container_labels(context: str, config_hash: str | None = None) -> dict[str, str]:
    """Return the labels marking a container as part of a context.

    The config hash identifies the configuration the container was started
    with, a container with a different hash is restarted.
    """
    labels = {CONTEXT_LABEL: context}
    if config_hash:
        labels[CONFIG_HASH_LABEL] = config_hash
    return labels
