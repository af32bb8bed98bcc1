"""Lookup of remote backends registered under the launcher's entry point group."""

import logging
from importlib.metadata import entry_points
from typing import Any

from suite_launcher.backends.manifest import BackendManifest
from suite_launcher.errors import BackendNotFoundError

log = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "suite_launcher.backends"


def load_backend_manifest(key: str) -> BackendManifest[Any]:
    """Load the manifest of the backend selected by ``backend.key``.

    Raises:
        BackendNotFoundError: If no installed backend is registered as ``key``
            or its entry point does not provide a manifest

    """
    entries = entry_points(group=ENTRY_POINT_GROUP)

    for entry in entries:
        if entry.name != key:
            continue
        manifest = entry.load()
        if not isinstance(manifest, BackendManifest):
            raise BackendNotFoundError(
                f"Entry point '{entry.value}' of backend '{key}' "
                "is not a backend manifest"
            )
        log.debug("Loaded backend %s from %s", key, entry.value)
        return manifest

    installed = ", ".join(sorted(e.name for e in entries)) or "none"
    raise BackendNotFoundError(
        f"Unknown backend '{key}' (installed backends: {installed}); "
        "select one with --backend or backend.key in the config file"
    )
