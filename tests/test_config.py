"""Tests for the config library."""

import pathlib

import pytest
import yaml

from tm_local.config import Config, list_contexts, load_config
from tm_local.exceptions import InputException


def test_load_creates_default(tmp_path: pathlib.Path) -> None:
    """Test that a missing config file is created with defaults."""
    config = load_config(tmp_path)
    assert config.config_home == tmp_path
    assert config.context == "default"
    assert config.version == "latest"
    assert (tmp_path / "config.yaml").exists()

    doc = yaml.safe_load((tmp_path / "config.yaml").read_text())
    assert doc["brokerImage"] == "tzununbekov/memory-broker"
    assert doc["targetHost"] == "host.docker.internal"
    assert "config_home" not in doc


def test_overrides(tmp_path: pathlib.Path) -> None:
    """Test keyword overrides take precedence over the file."""
    load_config(tmp_path)
    config = load_config(tmp_path, context="other", version=None)
    assert config.context == "other"
    assert config.version == "latest"
    assert load_config(tmp_path).context == "default"


def test_save_and_unset_context(tmp_path: pathlib.Path) -> None:
    """Test an unset context survives a reload."""
    config = load_config(tmp_path)
    config.context = None
    config.version = "v1.24.0"
    config.save()

    reloaded = load_config(tmp_path)
    assert reloaded.context is None
    assert reloaded.version == "v1.24.0"
    assert not list(tmp_path.glob("*.tmp"))
    with pytest.raises(InputException, match="No active broker context"):
        reloaded.context_paths()


def test_invalid_config_file(tmp_path: pathlib.Path) -> None:
    """Test a config file that is not a mapping."""
    (tmp_path / "config.yaml").write_text("- a\n- b\n")
    with pytest.raises(InputException, match="must be a mapping"):
        load_config(tmp_path)


def test_paths(tmp_path: pathlib.Path) -> None:
    """Test the location of the state files."""
    config = Config(config_home=tmp_path, context="local", version="v1")
    paths = config.context_paths()
    assert paths.manifest == tmp_path / "local" / "manifest.yaml"
    assert paths.broker_config == tmp_path / "local" / "broker.conf"
    assert paths.lock == tmp_path / "local" / ".lock"
    assert config.context_paths("other").root == tmp_path / "other"
    assert config.schema_cache() == tmp_path / "crd" / "v1" / "crd.yaml"
    assert config.adapter_image("WebhookSource") == (
        "gcr.io/triggermesh/webhooksource-adapter:v1"
    )
    assert config.host_url(8080) == "http://host.docker.internal:8080"


def test_list_contexts(tmp_path: pathlib.Path) -> None:
    """Test listing the broker contexts under the config home."""
    for name in ("b", "a", "c"):
        (tmp_path / name).mkdir()
        (tmp_path / name / "manifest.yaml").touch()
    (tmp_path / "crd").mkdir()
    assert list_contexts(tmp_path) == ["a", "b", "c"]
    assert list_contexts(tmp_path, exclude="a") == ["b", "c"]
    assert list_contexts(tmp_path / "missing") == []
