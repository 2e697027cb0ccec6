import pytest

from fabric_planner.config import PlannerSettings
from fabric_planner.core.errors import CatalogError, StructuralError
from fabric_planner.core.types import ExternalLink, LinkMode, PortSpec, Speed, SwitchModel
from fabric_planner.fabric.border import (
    BorderValidationOptions,
    CheckSeverity,
    ValidationLevel,
    classify_divisibility,
    reserved_uplinks,
    validate_border_configuration,
)


def make_link(count: int, speed: Speed = Speed.G100, name: str = "wan", enabled: bool = True) -> ExternalLink:
    return ExternalLink(
        link_id=f"ext-{name}",
        name=name,
        mode=LinkMode.explicit_ports,
        explicit_ports=(PortSpec(speed, count),),
        enabled=enabled,
    )


def validate(*links: ExternalLink, spine_count: int | None = None, strict: bool = False, model=None):
    if model is None:
        options = BorderValidationOptions(spine_count=spine_count, strict_mode=strict)
    else:
        options = BorderValidationOptions(border_model=model, spine_count=spine_count, strict_mode=strict)
    return validate_border_configuration(links, options)


def test_default_border_model_comes_from_catalog():
    assert BorderValidationOptions().border_model.model_id == "DS3000-BORDER"


def test_border_model_follows_switch_catalog_setting(tmp_path):
    path = tmp_path / "switches.yaml"
    path.write_text(
        "switches:\n"
        "  - model: TINY\n"
        "    ports: 8\n"
        "    speeds: [100G]\n"
        "    recommended: [border]\n",
        encoding="utf-8",
    )
    options = BorderValidationOptions.from_settings(PlannerSettings(switch_catalog_path=path), spine_count=2)
    assert options.border_model.model_id == "TINY"
    assert options.spine_count == 2

    result = validate_border_configuration([make_link(6)], options)
    assert result.capacity.errors == ("Insufficient ports: need 6, have 4 available",)

    no_border = tmp_path / "no_border.yaml"
    no_border.write_text("switches:\n  - model: LEAF\n    ports: 48\n    speeds: [25G]\n", encoding="utf-8")
    with pytest.raises(CatalogError):
        BorderValidationOptions.from_settings(PlannerSettings(switch_catalog_path=no_border))


def test_reserved_uplinks():
    assert reserved_uplinks(None) == 4
    assert reserved_uplinks(2) == 4
    assert reserved_uplinks(6) == 6


def test_divisibility_is_advisory_before_spine_selection():
    result = validate(make_link(7))
    assert result.divisibility.severity == CheckSeverity.ok
    assert "after spine selection" in result.divisibility.message
    assert result.overall.level == ValidationLevel.valid


def test_uneven_distribution_after_spine_selection():
    result = validate(make_link(7), spine_count=4)

    assert result.divisibility.severity == CheckSeverity.warning
    assert "Uneven distribution" in result.divisibility.message
    assert result.divisibility.links[0].remainder == 3
    assert result.overall.level == ValidationLevel.warning
    assert result.overall.can_save

    strict = validate(make_link(7), spine_count=4, strict=True)
    assert not strict.overall.can_save


def test_even_distribution():
    result = validate(make_link(8), spine_count=4)
    assert result.divisibility.severity == CheckSeverity.ok
    assert result.divisibility.links[0].ports_per_spine == 2
    assert result.overall.level == ValidationLevel.valid
    assert result.overall.summary == "External connectivity properly configured"


def test_minor_and_blocking_divisibility():
    minor = validate(make_link(21), spine_count=4)
    assert minor.divisibility.severity == CheckSeverity.warning
    assert "Minor inefficiency" in minor.divisibility.message

    blocked = validate(make_link(3), spine_count=4)
    assert blocked.divisibility.severity == CheckSeverity.error
    assert "cannot be evenly distributed" in blocked.divisibility.message
    assert blocked.overall.level == ValidationLevel.error
    assert not blocked.overall.can_save


def test_classify_divisibility_rejects_zero_spines():
    assert classify_divisibility(8, 4) == (CheckSeverity.ok, 0, 0.0)
    with pytest.raises(StructuralError):
        classify_divisibility(5, 0)
    with pytest.raises(StructuralError):
        validate(make_link(4), spine_count=0)


def test_capacity_exceeded():
    result = validate(make_link(46))
    assert not result.capacity.feasible
    assert result.capacity.errors == ("Insufficient ports: need 46, have 44 available",)
    assert not result.compatibility.compatible
    assert result.overall.level == ValidationLevel.error


def test_utilization_warnings():
    high = validate(make_link(40))
    assert high.compatibility.capacity_utilization == 92
    assert any("High port utilization" in w for w in high.compatibility.warnings)
    assert "Consider a higher capacity border leaf model" in high.compatibility.recommendations
    assert high.overall.level == ValidationLevel.warning

    moderate = validate(make_link(34))
    assert any("Moderate port utilization" in w for w in moderate.compatibility.warnings)


def test_unsupported_speed_without_breakout_is_an_error():
    result = validate(make_link(2, Speed.G400))
    assert not result.breakout.feasible
    assert "Speed 400G not supported by border model DS3000-BORDER" in result.compatibility.issues
    assert "Consider spine-class switch for 400G external connectivity" in result.compatibility.recommendations
    assert result.overall.level == ValidationLevel.error


def test_breakout_speed_is_a_warning():
    result = validate(make_link(2, Speed.G50))
    assert result.breakout.feasible
    assert result.breakout.parent_ports_required == 1
    assert result.breakout.efficiency == 100.0
    assert "Speed 50G requires breakout on border model DS3000-BORDER" in result.compatibility.warnings
    assert result.overall.level == ValidationLevel.warning


def test_high_breakout_waste_is_reported():
    model = SwitchModel(
        model_id="EDGE-16",
        port_count=16,
        speeds=(Speed.G100,),
        breakouts={"100G": ["4x25G"]},
        recommended=("border",),
    )
    result = validate(make_link(5, Speed.G25), model=model)
    assert result.breakout.feasible
    assert result.breakout.efficiency == pytest.approx(62.5)
    assert "High waste: 3 unused child ports (60% overhead)" in result.breakout.constraints
    assert result.overall.level == ValidationLevel.warning


def test_disabled_links_are_ignored():
    baseline = validate()
    result = validate(make_link(100, enabled=False))
    assert result.capacity.external_ports == 0
    assert result.overall == baseline.overall


def test_bandwidth_links_are_allocated():
    link = ExternalLink(link_id="ext-isp", name="isp", target_gbps=400)
    result = validate(link)
    assert len(result.allocations) == 1
    assert result.allocations[0].ports == (PortSpec(Speed.G100, 4),)
    assert result.overall.level == ValidationLevel.valid

    huge = ExternalLink(link_id="ext-huge", name="huge", target_gbps=100000)
    result = validate(huge)
    assert "huge: Cannot satisfy bandwidth requirements with available border capacity" in result.overall.warnings
    assert result.overall.level == ValidationLevel.error


def test_allocation_errors_surface_as_warnings():
    zero = ExternalLink(link_id="ext-zero", name="zero", target_gbps=0)
    result = validate(zero)
    assert result.overall.warnings == ("zero: Target bandwidth must be greater than 0",)
    assert result.overall.level == ValidationLevel.warning

    unnamed = ExternalLink(link_id="ext-anon", name=" ", target_gbps=400)
    result = validate(unnamed)
    assert "ext-anon: External link name is required" in result.overall.warnings
