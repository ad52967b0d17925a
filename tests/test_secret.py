"""Tests for the secret library."""

import pytest

from tm_local.exceptions import InputException, SecretNotFoundError
from tm_local.manifest import Metadata, Resource
from tm_local.secret import (
    SecretBinding,
    changed,
    env_hash,
    extract_refs,
    process_secrets,
    referenced_secrets,
    resolve,
    secret_name,
    secret_resource,
)
from tm_local.store import InMemoryStore

SPEC = {
    "url": "https://example.com",
    "auth": {
        "apiToken": {"valueFromSecret": {"name": "target-secret", "key": "token"}},
        "user": "admin",
    },
    "headers": [
        {"value": {"valueFromSecret": {"name": "shared-secret", "key": "header"}}},
    ],
}


def test_extract_refs() -> None:
    """Test finding secret references with the path of their field."""
    refs = extract_refs(SPEC)
    assert [(ref.path, ref.ref.name, ref.ref.key) for ref in refs] == [
        ("auth.apiToken", "target-secret", "token"),
        ("headers.0.value", "shared-secret", "header"),
    ]
    assert [ref.env_name for ref in refs] == ["AUTH_API_TOKEN", "HEADERS_0_VALUE"]
    assert extract_refs(None) == []
    assert extract_refs({"a": 1}) == []


def test_invalid_ref() -> None:
    """Test a reference missing its key."""
    with pytest.raises(InputException):
        extract_refs({"token": {"valueFromSecret": {"name": "a"}}})


def test_resolve() -> None:
    """Test resolving references to environment values."""
    store = InMemoryStore(
        [
            secret_resource("target", {"token": "t0k3n"}),
            Resource(
                api_version="v1",
                kind="Secret",
                metadata=Metadata(name="shared-secret"),
                data={"header": "aA=="},
            ),
        ]
    )
    assert resolve(extract_refs(SPEC), store) == {
        "AUTH_API_TOKEN": "t0k3n",
        "HEADERS_0_VALUE": "h",
    }


def test_resolve_missing_secret() -> None:
    """Test resolving a reference to a Secret that does not exist."""
    store = InMemoryStore([secret_resource("target", {"token": "t0k3n"})])
    with pytest.raises(SecretNotFoundError, match="'shared-secret' not found"):
        resolve(extract_refs(SPEC), store)


def test_resolve_missing_key() -> None:
    """Test resolving a reference to a key that does not exist."""
    store = InMemoryStore(
        [
            secret_resource("target", {"password": "p"}),
            secret_resource("shared", {"header": "h"}),
        ]
    )
    with pytest.raises(SecretNotFoundError, match="no key 'token'"):
        resolve(extract_refs(SPEC), store)


def test_resolve_wrong_kind() -> None:
    """Test a reference to a resource that is not a Secret."""
    store = InMemoryStore(
        [
            Resource(
                api_version="targets.triggermesh.io/v1alpha1",
                kind="CloudEventsTarget",
                metadata=Metadata(name="target-secret"),
            )
        ]
    )
    with pytest.raises(SecretNotFoundError):
        resolve(extract_refs(SPEC), store)


def test_changed() -> None:
    """Test detecting changes of the resolved values."""
    env = {"TOKEN": "a"}
    assert changed(None, env)
    assert not changed(None, {})
    assert not changed(env_hash(env), {"TOKEN": "a"})
    assert changed(env_hash(env), {"TOKEN": "b"})
    assert changed(env_hash(env), {})
    assert env_hash({"A": "1", "B": "2"}) == env_hash({"B": "2", "A": "1"})


def test_process_secrets() -> None:
    """Test resolving the secrets of a resource."""
    store = InMemoryStore(
        [
            secret_resource("target", {"token": "t0k3n"}),
            secret_resource("shared", {"header": "h"}),
        ]
    )
    resource = Resource(
        api_version="targets.triggermesh.io/v1alpha1",
        kind="CloudEventsTarget",
        metadata=Metadata(name="target"),
        spec=SPEC,
    )
    binding = process_secrets(resource, store)
    assert binding.name == "target"
    assert binding.resolved_env["AUTH_API_TOKEN"] == "t0k3n"
    assert binding.hash == env_hash(binding.resolved_env)
    assert SecretBinding(name="a").hash is None
    assert referenced_secrets(resource) == {"target-secret", "shared-secret"}


def test_secret_resource() -> None:
    """Test the conventional Secret of a component."""
    secret = secret_resource("target", {"token": "secret"})
    assert secret_name("target") == "target-secret"
    assert secret.to_dict() == {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": "target-secret"},
        "data": {"token": "c2VjcmV0"},
    }
