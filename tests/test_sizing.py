import pytest

from fabric_planner.core.errors import StructuralError
from fabric_planner.core.types import EndpointProfile, FabricSpec, LeafClass
from fabric_planner.fabric.sizing import compute_topology, leaves_for_demand, spines_for_uplinks


def make_legacy_spec(endpoints: int, uplinks: int = 4, redundancy: bool = False, leaf: str = "DS2000") -> FabricSpec:
    return FabricSpec(
        name="lab",
        spine_model_id="DS3000",
        leaf_model_id=leaf,
        uplinks_per_leaf=uplinks,
        endpoint_profile=EndpointProfile(name="servers", count=endpoints, redundancy=redundancy),
    )


def test_leaf_and_spine_math():
    assert leaves_for_demand(96, 44) == 3
    assert leaves_for_demand(0, 44) == 0
    assert leaves_for_demand(10, 0) == 0
    assert spines_for_uplinks(12, 32) == 1
    assert spines_for_uplinks(33, 32) == 2
    assert spines_for_uplinks(0, 32) == 0


def test_legacy_spec_sizing():
    derived = compute_topology(make_legacy_spec(96))

    # 48 port leaves with 4 uplinks leave 44 endpoint ports each
    assert derived.leaves_needed == 3
    assert derived.uplink_ports == 12
    assert derived.spines_needed == 1
    assert derived.total_ports == 3 * 48 + 32
    assert derived.used_ports == 96 + 12 * 2
    assert derived.endpoint_ports_available == 3 * 44
    # 96 x 25G over 12 x 100G
    assert derived.oversubscription_ratio == pytest.approx(2.0)
    assert derived.is_valid
    assert derived.validation_errors == ()


def test_redundancy_doubles_endpoint_demand():
    single = compute_topology(make_legacy_spec(48))
    dual = compute_topology(make_legacy_spec(48, redundancy=True))
    assert single.leaves_needed == 2
    assert dual.leaves_needed == 3
    assert dual.endpoint_ports_needed == 96


def test_multi_class_sizing_uses_explicit_counts():
    spec = FabricSpec(
        name="mixed",
        spine_model_id="DS3000",
        leaf_model_id="DS2000",
        leaf_classes=(
            LeafClass(
                class_id="storage",
                uplinks_per_leaf=4,
                count=4,
                endpoint_profiles=(EndpointProfile(name="arrays", count=10),),
            ),
            LeafClass(
                class_id="compute",
                uplinks_per_leaf=4,
                endpoint_profiles=(EndpointProfile(name="servers", count=88),),
            ),
        ),
    )
    derived = compute_topology(spec)

    assert [s.class_id for s in derived.class_sizing] == ["compute", "storage"]
    assert derived.sizing_for("compute").leaves == 2
    assert derived.sizing_for("storage").leaves == 4
    assert derived.leaves_needed == 6
    assert derived.uplink_ports == 24
    assert derived.spines_needed == 1
    assert derived.is_valid


def test_too_many_uplinks_is_flagged():
    derived = compute_topology(make_legacy_spec(10, uplinks=30))
    assert not derived.is_valid
    assert any("Too many uplinks" in e for e in derived.validation_errors)


def test_unknown_leaf_model_is_recorded_not_raised():
    derived = compute_topology(make_legacy_spec(10, leaf="MYSTERY"))
    assert derived.unknown_models == ("MYSTERY",)
    assert derived.leaves_needed == 0
    assert not derived.is_valid
    assert "Unknown switch model: MYSTERY" in derived.validation_errors


def test_sizing_is_deterministic():
    spec = make_legacy_spec(200, uplinks=8)
    assert compute_topology(spec) == compute_topology(spec)


def test_invalid_specs_raise_structural_error():
    with pytest.raises(StructuralError):
        FabricSpec(name="x", spine_model_id="DS3000", leaf_model_id="DS2000", uplinks_per_leaf=4)
