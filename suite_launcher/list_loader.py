"""Loaders for test list files."""

import configparser
import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path

import yaml
from pydantic import Field, ValidationError

from suite_launcher.errors import ConfigError
from suite_launcher.models.base import Model

log = logging.getLogger(__name__)

MTB_SECTION = "Files"


class ListedTest(Model):
    """Single entry of a YAML test list."""

    path: str = Field(..., description="Test path, environment variables expanded")
    name: str | None = Field(default=None, description="Display name")
    parameters: Mapping[str, str | int | float | bool] = Field(
        default_factory=dict, description="Parameters passed to the test"
    )
    report_path: str | None = Field(default=None, description="Report directory")


class TestList(Model):
    """YAML test list document."""

    __test__ = False

    version: str = Field(default="1.0", description="List schema version")
    tests: Sequence[ListedTest] = Field(default_factory=list)


def load_yaml_list(list_path: Path) -> Sequence[ListedTest]:
    """Load a YAML test list, keeping file order.

    Raises:
        FileNotFoundError: If the list file does not exist
        ConfigError: If the file is empty, not YAML or fails validation

    """
    if not list_path.is_file():
        raise FileNotFoundError(f"Test list not found: {list_path}")

    try:
        data = yaml.safe_load(list_path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {list_path}: {e}") from e

    if data is None:
        raise ConfigError(f"Empty test list: {list_path}")

    try:
        test_list = TestList.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid test list schema in {list_path}: {e}") from e

    return [
        entry.model_copy(update={"path": os.path.expandvars(entry.path)})
        for entry in test_list.tests
    ]


def load_mtb_list(list_path: Path) -> Sequence[str]:
    """Load test paths from an INI style ``.mtb`` list file.

    The ``[Files]`` section holds ``NumberOfFiles`` and ``File1..FileN``.
    """
    if not list_path.is_file():
        raise FileNotFoundError(f"Test list not found: {list_path}")

    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read_string(list_path.read_text())
    except configparser.Error as e:
        raise ConfigError(f"Invalid list file {list_path}: {e}") from e

    if not parser.has_section(MTB_SECTION):
        raise ConfigError(f"Missing [{MTB_SECTION}] section in {list_path}")

    section = parser[MTB_SECTION]
    try:
        count = section.getint("NumberOfFiles", fallback=0)
    except ValueError as e:
        raise ConfigError(f"Invalid NumberOfFiles in {list_path}") from e

    paths: list[str] = []
    for index in range(1, count + 1):
        value = section.get(f"File{index}", fallback="").strip()
        if value:
            paths.append(os.path.expandvars(value))
        else:
            log.warning("Entry File%d missing from %s", index, list_path)
    return paths
