"""Tests for the manifest file object store."""

import pathlib

import pytest

from tm_local.exceptions import StoreIOError
from tm_local.manifest import Metadata, Resource
from tm_local.store import ManifestStore

MANIFEST = """\
---
apiVersion: sources.triggermesh.io/v1alpha1
kind: WebhookSource
metadata:
  name: webhook
spec:
  eventType: io.triggermesh.webhook.event
---
apiVersion: v1
kind: Secret
metadata:
  name: webhook-secret
data:
  token: c2VjcmV0
"""


@pytest.fixture(name="path")
def path_fixture(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "local" / "manifest.yaml"


async def test_absent_file_is_empty(path: pathlib.Path) -> None:
    """Test reading a manifest that was never written."""
    store = ManifestStore(path)
    await store.read()
    assert len(store) == 0


async def test_read(path: pathlib.Path) -> None:
    """Test reading a manifest in order."""
    path.parent.mkdir()
    path.write_text(MANIFEST)
    store = ManifestStore(path)
    await store.read()
    assert [str(obj) for obj in store.list_objects()] == [
        "WebhookSource/webhook",
        "Secret/webhook-secret",
    ]


async def test_write_round_trip(path: pathlib.Path) -> None:
    """Test that written manifests read back identically."""
    path.parent.mkdir()
    path.write_text(MANIFEST)
    store = ManifestStore(path)
    await store.read()
    await store.write()
    assert path.read_text() == MANIFEST
    assert [p.name for p in path.parent.iterdir()] == ["manifest.yaml"]


async def test_write_creates_directory(path: pathlib.Path) -> None:
    """Test writing the first resource of a new context."""
    store = ManifestStore(path)
    store.upsert(
        Resource(
            api_version="targets.triggermesh.io/v1alpha1",
            kind="CloudEventsTarget",
            metadata=Metadata(name="display"),
        )
    )
    await store.write()

    reloaded = ManifestStore(path)
    await reloaded.read()
    assert [str(obj) for obj in reloaded.list_objects()] == [
        "CloudEventsTarget/display"
    ]


@pytest.mark.parametrize(
    "content",
    [
        "kind: [unterminated",
        "---\nkind: WebhookSource\nmetadata:\n  name: a\n",
        "- not\n- a\n- resource\n",
    ],
)
async def test_malformed_manifest(path: pathlib.Path, content: str) -> None:
    """Test that a manifest that can't be parsed is reported."""
    path.parent.mkdir()
    path.write_text(content)
    store = ManifestStore(path)
    with pytest.raises(StoreIOError, match="is malformed"):
        await store.read()


async def test_write_failure(tmp_path: pathlib.Path) -> None:
    """Test writing into a path that is not a directory."""
    (tmp_path / "local").write_text("not a directory")
    store = ManifestStore(tmp_path / "local" / "manifest.yaml")
    with pytest.raises(StoreIOError, match="Failed to write"):
        await store.write()
