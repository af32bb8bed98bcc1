"""Exceptions raised by the launcher."""


class LauncherError(Exception):
    """Base class for launcher errors."""


class ConfigError(LauncherError, ValueError):
    """Raised when a configuration or list file cannot be loaded."""


class EmptyCatalogError(LauncherError):
    """Raised when no valid tests were found in any source."""


class BackendConnectionError(LauncherError):
    """Raised when a remote backend cannot be reached or authenticated."""


class ResolutionError(LauncherError):
    """Raised when a named test or remote collection cannot be found."""


class NoTestsSelectedError(LauncherError):
    """Raised when filtering leaves no test of a remote collection to run."""


class BackendNotFoundError(LauncherError):
    """Raised when the configured backend key matches no installed plugin."""
