"""Tests for backend loading module."""

from unittest.mock import Mock, patch

import pytest
from pydantic import ValidationError

from suite_launcher.backends.loading import load_backend_manifest
from suite_launcher.backends.rest import RestBackendConfig, rest_manifest
from suite_launcher.errors import BackendNotFoundError


def test_load_backend_manifest_returns_manifest() -> None:
    """Loads backend manifest by key."""
    manifest = load_backend_manifest("rest")

    assert manifest is rest_manifest
    assert manifest.config_cls is RestBackendConfig


def test_load_backend_manifest_raises_for_unknown_backend() -> None:
    """Raises BackendNotFoundError naming the installed backends."""
    with pytest.raises(BackendNotFoundError) as exc_info:
        load_backend_manifest("unknown-backend")

    message = str(exc_info.value)
    assert "unknown-backend" in message
    assert "installed backends: rest" in message
    assert "--backend" in message


def test_load_backend_manifest_rejects_other_objects() -> None:
    """An entry point that does not provide a manifest is not a backend."""
    entry = Mock(value="somewhere:thing")
    entry.name = "broken"
    entry.load.return_value = object()

    with (
        patch("suite_launcher.backends.loading.entry_points", return_value=[entry]),
        pytest.raises(BackendNotFoundError, match="is not a backend manifest"),
    ):
        load_backend_manifest("broken")


def test_open_validates_settings() -> None:
    """Backend settings are validated before the backend is created."""
    with pytest.raises(ValidationError):
        rest_manifest.open({"server_url": "http://alm.test/api/"})
