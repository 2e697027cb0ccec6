from fabric_planner.core.types import DerivedTopology, EndpointProfile, FabricSpec, LeafClass, Severity
from fabric_planner.fabric.rules import RuleCode, RulesConfig, evaluate
from fabric_planner.fabric.sizing import compute_topology


def make_spec(
    uplinks: int = 4,
    endpoints: int = 40,
    spine: str = "DS3000",
    leaf: str = "DS2000",
    es_lag: bool = False,
    nics: int = 1,
) -> FabricSpec:
    return FabricSpec(
        name="lab",
        spine_model_id=spine,
        leaf_model_id=leaf,
        uplinks_per_leaf=uplinks,
        endpoint_profile=EndpointProfile(name="servers", count=endpoints, es_lag=es_lag, nics=nics),
    )


def make_class_spec(*classes: LeafClass) -> FabricSpec:
    return FabricSpec(name="multi", spine_model_id="DS3000", leaf_model_id="DS2000", leaf_classes=classes)


def test_spine_capacity_gate_blocks_save():
    spec = make_spec(uplinks=8, endpoints=200)
    derived = DerivedTopology(leaves_needed=6, spines_needed=1)

    result = evaluate(spec, derived)

    assert not result.can_save
    assert not result.summary.can_save
    assert [i.code for i in result.errors] == ["SPINE_CAPACITY_EXCEEDED"]
    issue = result.errors[0]
    assert issue.severity == Severity.error
    assert not issue.overridable
    assert issue.context["actual"] == 48
    assert issue.context["expected"] == 32
    assert issue.context["shortfall"] == 16
    assert issue.context["additional_spines_needed"] == 1
    # one spine for six leaves is also worth a hint
    assert [i.code for i in result.info] == ["SINGLE_SPINE"]


def test_leaf_capacity_per_class():
    spec = make_class_spec(
        LeafClass(
            class_id="gpu",
            uplinks_per_leaf=8,
            count=1,
            endpoint_profiles=(EndpointProfile(name="gpu-nodes", count=100),),
        )
    )
    result = evaluate(spec, compute_topology(spec))

    assert [i.code for i in result.errors] == ["LEAF_CAPACITY_EXCEEDED"]
    issue = result.errors[0]
    assert issue.issue_id == "leaf_capacity_exceeded:gpu"
    assert issue.leaf_class_id == "gpu"
    assert issue.context["shortfall"] == 60
    assert issue.context["additional_leaves_needed"] == 2
    assert "leaf_classes[gpu].count" in issue.fields


def test_uplinks_not_divisible_by_spines():
    derived = DerivedTopology(leaves_needed=4, spines_needed=4)

    result = evaluate(make_spec(uplinks=6), derived)
    issues = [i for i in result.warnings if i.code == RuleCode.uplinks_not_divisible_by_spines]
    assert len(issues) == 1
    assert issues[0].context["remainder"] == 2
    assert issues[0].context["optimal_counts"] == [4, 8]
    assert result.can_save

    result = evaluate(make_spec(uplinks=3), derived)
    issues = [i for i in result.warnings if i.code == RuleCode.uplinks_not_divisible_by_spines]
    assert issues[0].context["optimal_counts"] == [4]

    result = evaluate(make_spec(uplinks=8), derived)
    assert RuleCode.uplinks_not_divisible_by_spines not in result.codes()


def test_mc_lag_requires_leaf_pairs():
    def mc_lag_class(count: int) -> LeafClass:
        return LeafClass(
            class_id="edge",
            uplinks_per_leaf=4,
            count=count,
            mc_lag=True,
            endpoint_profiles=(EndpointProfile(name="fw", count=10),),
        )

    spec = make_class_spec(mc_lag_class(3))
    issue = [i for i in evaluate(spec, compute_topology(spec)).warnings if i.code == RuleCode.mc_lag_odd_leafs][0]
    assert issue.context["suggested_count"] == 4
    assert issue.context["pairs_needed"] == 2

    spec = make_class_spec(mc_lag_class(1))
    issue = [i for i in evaluate(spec, compute_topology(spec)).warnings if i.code == RuleCode.mc_lag_odd_leafs][0]
    assert issue.context["suggested_count"] == 2

    spec = make_class_spec(mc_lag_class(2))
    assert RuleCode.mc_lag_odd_leafs not in evaluate(spec, compute_topology(spec)).codes()


def test_es_lag_single_nic_and_hint():
    spec = make_spec(es_lag=True, nics=1)
    result = evaluate(spec, compute_topology(spec))
    issue = [i for i in result.warnings if i.code == RuleCode.es_lag_single_nic][0]
    assert issue.issue_id == "es_lag_single_nic:servers"
    assert issue.context["suggested_nics"] == 2

    spec = make_spec(es_lag=True, nics=2)
    result = evaluate(spec, compute_topology(spec))
    assert RuleCode.es_lag_nic_optimization in result.codes()

    quiet = evaluate(spec, compute_topology(spec), config=RulesConfig(enable_optimization_hints=False))
    assert RuleCode.es_lag_nic_optimization not in quiet.codes()


def test_model_profile_mismatch_suggests_alternatives():
    spec = make_spec(spine="DS2000", leaf="DS3000")
    result = evaluate(spec, compute_topology(spec))

    mismatches = [i for i in result.warnings if i.code == RuleCode.model_profile_mismatch]
    assert [i.context["role"] for i in mismatches] == ["spine", "leaf"]
    assert mismatches[0].context["suggested_model"] == "DS3000"
    assert mismatches[1].context["suggested_model"] == "DS2000"
    assert all(i.overridable for i in mismatches)


def test_unknown_model_is_a_warning_not_an_exception():
    spec = make_spec(leaf="MYSTERY")
    result = evaluate(spec, compute_topology(spec))

    unknown = [i for i in result.warnings if i.code == RuleCode.unknown_switch_model]
    assert len(unknown) == 1
    assert unknown[0].context["model_id"] == "MYSTERY"
    assert result.can_save


def test_high_oversubscription_uses_configured_ratio():
    derived = DerivedTopology(leaves_needed=1, spines_needed=1, oversubscription_ratio=6.0)

    result = evaluate(make_spec(), derived)
    issue = [i for i in result.warnings if i.code == RuleCode.high_oversubscription][0]
    assert issue.context["actual"] == 6.0

    relaxed = evaluate(make_spec(), derived, config=RulesConfig(oversubscription_warning_ratio=8.0))
    assert RuleCode.high_oversubscription not in relaxed.codes()


def test_clean_fabric_has_no_findings():
    spec = make_spec(uplinks=4, endpoints=40)
    result = evaluate(spec, compute_topology(spec))
    assert result.all_issues() == ()
    assert result.summary.error_count == 0
    assert result.can_save


def test_evaluation_is_deterministic():
    spec = make_spec(uplinks=6, endpoints=500, es_lag=True)
    derived = compute_topology(spec)
    first = evaluate(spec, derived)
    second = evaluate(spec, derived)
    assert first.codes() == second.codes()
    assert [i.issue_id for i in first.all_issues()] == [i.issue_id for i in second.all_issues()]
