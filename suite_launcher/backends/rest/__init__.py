"""Built-in backend for test-management servers with a JSON REST API."""

from suite_launcher.backends.rest.backend import RestBackend, split_collection_path
from suite_launcher.backends.rest.config import RestBackendConfig
from suite_launcher.backends.rest.manifest import rest_manifest

__all__ = ["RestBackend", "RestBackendConfig", "rest_manifest", "split_collection_path"]
