"""Configuration for the REST test-management backend."""

from typing import Literal

from pydantic import BaseModel, SecretStr


class RestBackendConfig(BaseModel):
    """Configuration for the REST backend.

    ``server_url`` is the API root and must end with a slash; ``web_url`` is
    used to build links to test runs and defaults to the API root.
    """

    server_url: str
    username: str
    password: SecretStr
    domain: str
    project: str
    run_mode: Literal["local", "remote", "planned"] = "planned"
    run_host: str | None = None
    web_url: str | None = None
