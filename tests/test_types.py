import pytest

from fabric_planner.core.errors import StructuralError
from fabric_planner.core.types import (
    BorderCapabilities,
    BreakoutPattern,
    EndpointProfile,
    ExternalLink,
    FabricSpec,
    LeafClass,
    LinkMode,
    PortSpec,
    Speed,
    SwitchModel,
)


def test_speed_parse_accepts_labels_and_integers():
    assert Speed.parse("100G") is Speed.G100
    assert Speed.parse("25g") is Speed.G25
    assert Speed.parse(400) is Speed.G400
    assert Speed.G100.gbps == 100


def test_speed_parse_rejects_unknown_values():
    with pytest.raises(StructuralError):
        Speed.parse("7G")
    with pytest.raises(StructuralError):
        Speed.parse("fast")


def test_breakout_pattern_round_trips_label():
    pattern = BreakoutPattern.parse("4x25G")
    assert pattern.child_speed is Speed.G25
    assert pattern.fanout == 4
    assert pattern.label == "4x25G"


def test_switch_model_normalizes_breakout_labels():
    model = SwitchModel(
        model_id="X1",
        port_count=32,
        speeds=(Speed.G100,),
        breakouts={"100G": ["4x25G", "2x50G"]},
    )
    assert model.primary_speed is Speed.G100
    assert model.breakout_parents_for(Speed.G50) == [(Speed.G100, BreakoutPattern(Speed.G50, 2))]
    with pytest.raises(TypeError):
        model.breakouts[Speed.G400] = ()


def test_switch_model_requires_ports_and_speeds():
    with pytest.raises(StructuralError):
        SwitchModel(model_id="X", port_count=0, speeds=(Speed.G100,))
    with pytest.raises(StructuralError):
        SwitchModel(model_id="X", port_count=8, speeds=())


def test_legacy_spec_presents_one_default_class():
    spec = FabricSpec(
        name="f1",
        spine_model_id="DS3000",
        leaf_model_id="DS2000",
        uplinks_per_leaf=4,
        endpoint_profile=EndpointProfile(name="servers", count=10),
    )
    views = spec.leaf_class_views()
    assert len(views) == 1
    assert views[0].class_id == "default"
    assert views[0].count is None
    assert not spec.is_multi_class


def test_spec_rejects_mixed_modes():
    with pytest.raises(StructuralError):
        FabricSpec(
            name="f1",
            spine_model_id="DS3000",
            leaf_model_id="DS2000",
            uplinks_per_leaf=4,
            endpoint_profile=EndpointProfile(name="servers", count=10),
            leaf_classes=(LeafClass(class_id="a", uplinks_per_leaf=4),),
        )


def test_spec_rejects_empty_definition():
    with pytest.raises(StructuralError):
        FabricSpec(name="f1", spine_model_id="DS3000", leaf_model_id="DS2000")


def test_profile_redundancy_doubles_ports():
    assert EndpointProfile(name="a", ports_per_endpoint=2, count=10).ports_needed == 20
    assert EndpointProfile(name="a", ports_per_endpoint=2, count=10, redundancy=True).ports_needed == 40


def test_external_link_mode_fields_are_checked():
    with pytest.raises(StructuralError):
        ExternalLink(link_id="l1", name="wan", mode=LinkMode.target_bandwidth)
    with pytest.raises(StructuralError):
        ExternalLink(
            link_id="l1",
            name="wan",
            mode=LinkMode.explicit_ports,
            target_gbps=100,
            explicit_ports=(PortSpec(Speed.G100, 1),),
        )


def test_default_border_capabilities():
    caps = BorderCapabilities.default()
    assert caps.max_ports == 32
    assert caps.available_speeds == (Speed.G10, Speed.G25, Speed.G100, Speed.G400)
    assert [p.label for p in caps.breakout_capability[Speed.G400]] == ["4x100G", "16x25G"]
    assert caps.max_ports_per_lag == 8
