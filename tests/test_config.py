import logging
from pathlib import Path

import pytest

from fabric_planner.config import PlannerSettings, configure_logging
from fabric_planner.core.serialization import to_json_safe_dict
from fabric_planner.core.types import BorderCapabilities, PortSpec, Speed
from fabric_planner.fabric.allocator import allocate


def test_settings_from_env_reads_prefixed_values():
    settings = PlannerSettings.from_env(
        {
            "FABRIC_PLANNER_SKU_CATALOG": "/srv/catalog/skus.yaml",
            "FABRIC_PLANNER_VENDOR_CATALOG": "  ",
            "FABRIC_PLANNER_LOG_LEVEL": "debug",
        }
    )
    assert settings.sku_catalog_path == Path("/srv/catalog/skus.yaml")
    assert settings.vendor_catalog_path is None
    assert settings.switch_catalog_path is None
    assert settings.log_level == "DEBUG"


def test_settings_defaults_when_env_is_empty():
    settings = PlannerSettings.from_env({})
    assert settings == PlannerSettings()
    assert settings.log_level == "WARNING"


def test_configure_logging_sets_package_level():
    logger = logging.getLogger("fabric_planner")
    previous = logger.level
    try:
        configure_logging(PlannerSettings(log_level="DEBUG"))
        assert logger.level == logging.DEBUG
    finally:
        logger.setLevel(previous)


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        configure_logging(PlannerSettings(log_level="LOUD"))


def test_json_safe_dict_flattens_enums_and_tuples():
    out = to_json_safe_dict(allocate(400, BorderCapabilities.default()))
    assert out["ports"] == [{"speed": "100G", "count": 4}]
    assert out["strategy"] == "single-speed"
    assert out["warnings"] == []


def test_json_safe_dict_requires_a_dataclass_or_mapping():
    assert to_json_safe_dict(PortSpec(Speed.G25, 2)) == {"speed": "25G", "count": 2}
    with pytest.raises(TypeError):
        to_json_safe_dict(5)
