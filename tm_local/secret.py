"""Module for handling secrets referenced by component specs.

A spec field refers to a secret with a value object of the form:

    token:
      valueFromSecret:
        name: foo-secret
        key: token

Secrets are ordinary Secret resources in the object store. A resolved
reference becomes an environment variable of the adapter container, named
after the path of the field holding it (`auth.apiToken` is `AUTH_API_TOKEN`).
"""

import base64
from collections.abc import Iterator
from dataclasses import dataclass, field
import hashlib
import json
import logging
import re
from typing import Any

from .exceptions import SecretNotFoundError
from .manifest import (
    SECRET_API_VERSION,
    SECRET_KIND,
    SECRET_SUFFIX,
    Metadata,
    Resource,
    SecretKeyRef,
)
from .store import ObjectStore

__all__ = [
    "SecretRef",
    "SecretBinding",
    "extract_refs",
    "resolve",
    "env_hash",
    "changed",
    "process_secrets",
    "secret_resource",
    "secret_name",
    "referenced_secrets",
]

_LOGGER = logging.getLogger(__name__)

VALUE_FROM_SECRET = "valueFromSecret"

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")


@dataclass(frozen=True)
class SecretRef:
    """A secret reference found in a spec."""

    path: str
    """Dotted path of the spec field holding the reference."""

    ref: SecretKeyRef

    @property
    def env_name(self) -> str:
        """Return the environment variable name for the referenced value."""
        snake = _CAMEL_RE.sub(r"_\1", self.path)
        return _NON_ALNUM_RE.sub("_", snake).strip("_").upper()


@dataclass
class SecretBinding:
    """Secret values resolved for a component."""

    name: str
    resolved_env: dict[str, str] = field(default_factory=dict)

    @property
    def hash(self) -> str | None:
        """Return the content hash, None when the component uses no secrets."""
        if not self.resolved_env:
            return None
        return env_hash(self.resolved_env)


def _walk(value: Any, path: list[str]) -> Iterator[SecretRef]:
    if isinstance(value, dict):
        if VALUE_FROM_SECRET in value:
            yield SecretRef(
                path=".".join(path),
                ref=SecretKeyRef.parse_doc(value[VALUE_FROM_SECRET]),
            )
            return
        for key, item in value.items():
            yield from _walk(item, path + [str(key)])
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from _walk(item, path + [str(index)])


def extract_refs(spec: dict[str, Any] | None) -> list[SecretRef]:
    """Return the secret references of a spec in document order."""
    return list(_walk(spec or {}, []))


def resolve(refs: list[SecretRef], store: ObjectStore) -> dict[str, str]:
    """Resolve references against the Secret resources in the store."""
    env: dict[str, str] = {}
    for ref in refs:
        secret = store.get(ref.ref.name)
        if secret is None or secret.kind != SECRET_KIND:
            raise SecretNotFoundError(ref.ref.name)
        if (value := secret.secret_value(ref.ref.key)) is None:
            raise SecretNotFoundError(ref.ref.name, ref.ref.key)
        env[ref.env_name] = value
    return env


def env_hash(env: dict[str, str]) -> str:
    """Return a stable content hash of resolved secret values."""
    digest = hashlib.sha256(json.dumps(env, sort_keys=True).encode("utf-8"))
    return digest.hexdigest()


def changed(previous_hash: str | None, env: dict[str, str]) -> bool:
    """Return True if the resolved values differ from the previous ones."""
    if previous_hash is None:
        return bool(env)
    return previous_hash != env_hash(env)


def process_secrets(resource: Resource, store: ObjectStore) -> SecretBinding:
    """Extract and resolve the secrets of a resource."""
    refs = extract_refs(resource.spec)
    if refs:
        _LOGGER.debug(
            "%s references secrets %s", resource, sorted({r.ref.name for r in refs})
        )
    return SecretBinding(name=resource.name, resolved_env=resolve(refs, store))


def secret_name(component: str) -> str:
    """Return the conventional name of a component's Secret."""
    return f"{component}{SECRET_SUFFIX}"


def secret_resource(component: str, values: dict[str, str]) -> Resource:
    """Return the conventional Secret resource holding a component's values."""
    return Resource(
        api_version=SECRET_API_VERSION,
        kind=SECRET_KIND,
        metadata=Metadata(name=secret_name(component)),
        data={
            key: base64.b64encode(value.encode("utf-8")).decode("ascii")
            for key, value in values.items()
        },
    )


def referenced_secrets(resource: Resource) -> set[str]:
    """Return the names of the secrets a resource refers to."""
    return {ref.ref.name for ref in extract_refs(resource.spec)}
