"""Entry point object of the built-in ``rest`` backend."""

from suite_launcher.backends.manifest import BackendManifest
from suite_launcher.backends.rest.backend import RestBackend
from suite_launcher.backends.rest.config import RestBackendConfig

rest_manifest = BackendManifest(
    description="JSON test-management API (test sets, executions and runs)",
    config_cls=RestBackendConfig,
    backend_factory=RestBackend.from_config,
)
