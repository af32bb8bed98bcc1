"""Launcher configuration loaded from YAML."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from suite_launcher.errors import ConfigError
from suite_launcher.test_types import TestType


def default_run_token() -> str:
    """Unique token for this run, used to name the stop file."""
    return datetime.now().strftime("%d%m%Y%H%M%S%f")


class ExecutorCommand(BaseModel):
    """External command used to run tests of one type.

    ``{path}``, ``{name}`` and ``{report}`` placeholders in the arguments are
    replaced for every test.
    """

    command: Sequence[str] = Field(..., min_length=1)
    poll_interval: float = Field(default=1.0, gt=0)
    env: Mapping[str, str] = Field(default_factory=dict)


class BackendSettings(BaseModel):
    """Remote backend selection and its plugin specific configuration."""

    key: str = "rest"
    config: Mapping[str, Any] = Field(default_factory=dict)


class LauncherConfig(BaseModel):
    """Configuration for a launcher run."""

    suite_name: str = "suite-launcher"
    sources: Sequence[str] = Field(default_factory=list)
    timeout: float | None = Field(default=None, gt=0)
    run_token: str = Field(default_factory=default_run_token)
    sentinel_dir: Path = Path(".")
    cancel_run_on_failure: bool = False
    report_path: Path = Path("suite_report.json")
    report_base_directory: str | None = None
    poll_interval: float = Field(default=0.2, ge=0)
    executors: Mapping[TestType, ExecutorCommand] = Field(default_factory=dict)
    parallel_environments: Sequence[str] = Field(default_factory=list)
    backend: BackendSettings | None = None
    filter_by_name: str | None = None
    filter_by_statuses: Sequence[str] = Field(default_factory=list)


def load_config(config_path: Path) -> LauncherConfig:
    """Load and validate a YAML configuration file.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file is empty, not YAML or fails validation

    """
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return LauncherConfig()

    try:
        return LauncherConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration schema: {e}") from e
