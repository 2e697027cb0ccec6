"""
Catalog file loading.

Catalog tables are YAML documents. Bundled tables live in the data folder
next to this module, an override may point anywhere on disk.
"""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from fabric_planner.core.errors import CatalogError

logger = logging.getLogger(__name__)


def bundled_path(name: str) -> Path:
    """Return the path of a bundled catalog file."""
    return Path(str(resources.files("fabric_planner.catalog").joinpath("data", name)))


def load_yaml_table(path: Path) -> dict[str, Any]:
    """
    Read one YAML catalog document.

    An empty document loads as an empty dict.
    A missing file, invalid YAML, or a top level that is not a mapping raises CatalogError.
    """
    if not path.exists():
        raise CatalogError(f"catalog file not found: {path}")

    try:
        with path.open(encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise CatalogError(f"invalid YAML in {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise CatalogError(f"catalog file {path} must contain a mapping at top level")

    logger.debug("loaded catalog table %s", path)
    return data


def section(data: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    """Return a named mapping section, empty when absent."""
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise CatalogError(f"section {name!r} in {path} must be a mapping")
    return value
