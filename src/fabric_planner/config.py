"""
Planner settings.

Purpose
Collect the few environment driven knobs in one frozen object.

Library code never reads the environment directly.
Applications call PlannerSettings.from_env once and pass the result down.

Environment variables
FABRIC_PLANNER_SKU_CATALOG
  Path to a YAML SKU catalog that replaces the bundled one.

FABRIC_PLANNER_VENDOR_CATALOG
  Path to a YAML vendor SKU catalog layered over the generic one.

FABRIC_PLANNER_SWITCH_CATALOG
  Path to a YAML switch model catalog that replaces the bundled one.

FABRIC_PLANNER_LOG_LEVEL
  Logging level name used by configure_logging. Defaults to WARNING.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

ENV_PREFIX = "FABRIC_PLANNER_"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _optional_path(value: Optional[str]) -> Optional[Path]:
    if value is None or not value.strip():
        return None
    return Path(value.strip())


@dataclass(frozen=True)
class PlannerSettings:
    """
    Planner settings.

    Paths left as None mean the bundled catalog data is used.
    """

    sku_catalog_path: Optional[Path] = None
    vendor_catalog_path: Optional[Path] = None
    switch_catalog_path: Optional[Path] = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PlannerSettings":
        env = os.environ if environ is None else environ
        return cls(
            sku_catalog_path=_optional_path(env.get(f"{ENV_PREFIX}SKU_CATALOG")),
            vendor_catalog_path=_optional_path(env.get(f"{ENV_PREFIX}VENDOR_CATALOG")),
            switch_catalog_path=_optional_path(env.get(f"{ENV_PREFIX}SWITCH_CATALOG")),
            log_level=str(env.get(f"{ENV_PREFIX}LOG_LEVEL", "WARNING")).upper(),
        )


def configure_logging(settings: PlannerSettings | None = None) -> None:
    """
    Configure root logging for an application that embeds the planner.

    Library modules only create loggers. Handlers belong to the application,
    so this is never called from inside the package.
    """
    cfg = settings or PlannerSettings.from_env()
    level = logging.getLevelName(cfg.log_level)
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {cfg.log_level}")
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    logging.getLogger("fabric_planner").setLevel(level)
