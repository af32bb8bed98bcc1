"""Build the ordered list of test specs from heterogeneous sources."""

import logging
import re
from collections.abc import Mapping, Sequence
from pathlib import Path

from suite_launcher.errors import ConfigError, EmptyCatalogError
from suite_launcher.list_loader import load_mtb_list, load_yaml_list
from suite_launcher.models.spec import TestSpec
from suite_launcher.test_types import LOAD_SCENARIO_SUFFIX, directory_test_type

log = logging.getLogger(__name__)

REMOTE_PREFIX = "remote:"
SINGLE_TEST_GROUP = "Test group"
YAML_SUFFIXES = frozenset([".yaml", ".yml"])
MTB_SUFFIX = ".mtb"

PARAMETER_PATTERN = re.compile(r'"([^"]+)"\s*:\s*"([^"]*)"')


def build_catalog(
    sources: Sequence[str],
    *,
    report_base_directory: str | None = None,
) -> Sequence[TestSpec]:
    """Expand all sources into an ordered sequence of test specs.

    Args:
        sources: Directory paths, list files or ``remote:`` collection references
        report_base_directory: Report directory inherited by specs without one

    Returns:
        Specs in source order

    Raises:
        EmptyCatalogError: If no source produced any spec

    """
    specs: list[TestSpec] = []

    for index, source in enumerate(sources, start=1):
        try:
            group = expand_source(source, str(index))
        except (OSError, ConfigError) as e:
            log.warning("Skipping source %s: %s", source, e)
            continue

        if not group:
            log.warning("No valid tests found in %s", source)
            continue

        if len(group) == 1 and not group[0].remote:
            group = [group[0].model_copy(update={"group": SINGLE_TEST_GROUP})]
        specs.extend(group)

    if not specs:
        raise EmptyCatalogError("No valid tests found in any source")

    if report_base_directory is not None:
        specs = [
            spec
            if spec.report_base_directory
            else spec.model_copy(
                update={"report_base_directory": report_base_directory}
            )
            for spec in specs
        ]

    log.info("%d test(s) found:", len(specs))
    for spec in specs:
        log.info("  %s", spec.name)
    return specs


def expand_source(source: str, source_id: str) -> Sequence[TestSpec]:
    """Expand one source into its specs; empty when nothing is usable."""
    if source.startswith(REMOTE_PREFIX):
        return [parse_collection_reference(source[len(REMOTE_PREFIX) :], source_id)]

    path = Path(source)
    group = group_label(source)

    if path.is_dir():
        return [
            TestSpec(path=str(loc), name=str(loc), group=group, test_id=source_id)
            for loc in find_test_directories(path)
        ]

    if not path.is_file():
        log.warning("Test source %s does not exist", source)
        return []

    if path.suffix == LOAD_SCENARIO_SUFFIX:
        return [TestSpec(path=source, name=source, group=group, test_id=source_id)]

    if path.suffix == MTB_SUFFIX:
        return [
            TestSpec(path=p, name=p, group=group, test_id=source_id)
            for p in load_mtb_list(path)
        ]

    if path.suffix in YAML_SUFFIXES:
        return [
            TestSpec(
                path=entry.path,
                name=entry.name or entry.path,
                group=group,
                test_id=source_id,
                parameters={k: str(v) for k, v in entry.parameters.items()},
                report_path=entry.report_path,
            )
            for entry in load_yaml_list(path)
        ]

    log.warning("Unsupported test source type: %s", source)
    return []


def find_test_directories(root: Path) -> Sequence[Path]:
    """Return leaf test directories under ``root`` in sorted order.

    Discovery stops descending once a directory is identified as a test.
    """
    if directory_test_type(root) is not None:
        return [root]

    found: list[Path] = []
    for child in sorted(p for p in root.iterdir() if p.is_dir()):
        found.extend(find_test_directories(child))
    return found


def group_label(source: str) -> str:
    """Derive a group label; dots would be read as package separators."""
    return source.rstrip("\\/").replace(".", "_")


def parse_collection_reference(reference: str, source_id: str) -> TestSpec:
    """Parse ``Folder\\Set "name":"value", ...`` into a remote spec.

    A reference that is only a number names the collection by its id.
    """
    reference = reference.strip()
    path, _, tail = reference.partition('"')
    path = path.strip().rstrip("\\/")
    parameters = parse_parameters(f'"{tail}') if tail else {}

    normalized = path.replace("/", "\\")
    name = normalized.rsplit("\\", 1)[-1]

    return TestSpec(
        path=normalized,
        name=name,
        group=group_label(normalized),
        test_id=source_id,
        parameters=parameters,
        remote=True,
        collection_id=normalized if normalized.isdigit() else None,
    )


def parse_parameters(text: str) -> Mapping[str, str]:
    """Parse ``"name":"value"`` pairs, later names override earlier ones."""
    return dict(PARAMETER_PATTERN.findall(text))
