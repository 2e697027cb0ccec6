"""
Switch model catalog.

Reads switch reference data and hands out immutable SwitchModel values.

Schema example
switches:
  - model: DS3000
    ports: 32
    speeds: [100G]
    breakouts:
      100G: [4x25G, 2x50G]
    recommended: [uplink, interconnect]
default_border_model: DS3000-BORDER
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from fabric_planner.catalog.loader import bundled_path, load_yaml_table
from fabric_planner.config import PlannerSettings
from fabric_planner.core.errors import CatalogError
from fabric_planner.core.types import Speed, SwitchModel

logger = logging.getLogger(__name__)

BUNDLED_SWITCH_CATALOG = "switch_models.yaml"


def _switch_from_dict(obj: dict[str, Any]) -> SwitchModel:
    """Convert a switch dict into a SwitchModel."""
    breakouts_obj = obj.get("breakouts", {}) or {}
    return SwitchModel(
        model_id=str(obj["model"]),
        port_count=int(obj["ports"]),
        speeds=tuple(Speed.parse(s) for s in obj.get("speeds", []) or []),
        breakouts={Speed.parse(k): [str(p) for p in v] for k, v in breakouts_obj.items()},
        lag_support=bool(obj.get("lag_support", True)),
        max_ports_per_lag=int(obj.get("max_ports_per_lag", 8)),
        description=str(obj.get("description", "")),
        recommended=tuple(str(t).lower() for t in obj.get("recommended", []) or []),
    )


class SwitchCatalog:
    """
    Read only switch model lookup.

    Lookups are exact on model id.
    """

    def __init__(self, models: Iterable[SwitchModel], border_model_id: Optional[str] = None) -> None:
        self._models: Mapping[str, SwitchModel] = MappingProxyType({m.model_id: m for m in models})
        self._border_model_id = border_model_id

    @property
    def models(self) -> Mapping[str, SwitchModel]:
        return self._models

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    @classmethod
    def from_yaml(cls, path: Path) -> "SwitchCatalog":
        data = load_yaml_table(path)
        raw = data.get("switches") or []
        if not isinstance(raw, list):
            raise CatalogError(f"switches in {path} must be a list")

        try:
            models = [_switch_from_dict(obj) for obj in raw]
        except (KeyError, TypeError, ValueError) as exc:
            raise CatalogError(f"malformed switch entry in {path}: {exc}") from exc

        border = data.get("default_border_model")
        catalog = cls(models, border_model_id=str(border) if border else None)
        logger.debug("switch catalog loaded with %d models from %s", len(catalog), path)
        return catalog

    def get(self, model_id: str) -> Optional[SwitchModel]:
        return self._models.get(model_id)

    def suggest(self, tags: Iterable[str], exclude: Optional[str] = None) -> Optional[SwitchModel]:
        """
        Return the first model recommended for any of the tags.

        Used by the rules engine to propose an alternative model.
        """
        wanted = {t.lower() for t in tags}
        for model in self._models.values():
            if model.model_id == exclude:
                continue
            if wanted.intersection(model.recommended):
                return model
        return None

    def border_model(self) -> Optional[SwitchModel]:
        """Return the configured border model, else the first model tagged border."""
        if self._border_model_id and self._border_model_id in self._models:
            return self._models[self._border_model_id]
        return self.suggest(["border"])


@lru_cache(maxsize=8)
def default_switch_catalog(settings: PlannerSettings | None = None) -> SwitchCatalog:
    """Return the cached switch catalog, bundled unless settings override the path."""
    cfg = settings or PlannerSettings()
    return SwitchCatalog.from_yaml(cfg.switch_catalog_path or bundled_path(BUNDLED_SWITCH_CATALOG))


def default_border_model(settings: PlannerSettings | None = None) -> SwitchModel:
    """
    Return the documented default border leaf model.

    This is the model border validation uses when the caller does not pick one.
    It comes from the bundled catalog unless settings point at another switch catalog.
    """
    model = default_switch_catalog(settings).border_model()
    if model is None:
        raise CatalogError("switch catalog defines no border model")
    return model
