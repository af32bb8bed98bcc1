"""Registration record of a remote backend plugin."""

from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from suite_launcher.backends.base import RemoteBackend

ConfigT = TypeVar("ConfigT", bound=BaseModel)


@dataclass(frozen=True, kw_only=True)
class BackendManifest(Generic[ConfigT]):
    """Ties a backend key to its settings model and session factory.

    The factory returns a context manager owning the backend's connection for
    the remote part of a run.
    """

    description: str
    config_cls: type[ConfigT]
    backend_factory: Callable[[ConfigT], AbstractAsyncContextManager[RemoteBackend]]

    def open(
        self, settings: Mapping[str, Any]
    ) -> AbstractAsyncContextManager[RemoteBackend]:
        """Validate the ``backend.config`` settings and create the backend.

        Raises:
            ValidationError: If the settings do not match ``config_cls``

        """
        return self.backend_factory(self.config_cls.model_validate(settings))
