import pytest

from fabric_planner.core.types import BorderCapabilities, Speed
from fabric_planner.fabric.allocator import (
    NO_FEASIBLE_STRATEGY,
    AllocationOptions,
    OptimizeFor,
    PortAllocation,
    Strategy,
    allocate,
    generate_candidates,
    plan_breakout,
    score,
)


def make_caps(**overrides) -> BorderCapabilities:
    base = BorderCapabilities.default()
    values = {
        "max_ports": base.max_ports,
        "available_speeds": base.available_speeds,
        "breakout_capability": base.breakout_capability,
        "lag_support": base.lag_support,
        "max_ports_per_lag": base.max_ports_per_lag,
    }
    values.update(overrides)
    return BorderCapabilities(**values)


def speeds_and_counts(allocation: PortAllocation) -> list[tuple[str, int]]:
    return [(p.speed.value, p.count) for p in allocation.ports]


def test_exact_fit_prefers_single_speed():
    result = allocate(400, make_caps())
    assert result.strategy == Strategy.single_speed
    assert speeds_and_counts(result) == [("100G", 4)]
    assert result.efficiency == 100.0
    assert result.score == 100.0
    assert result.warnings == ()


def test_breakout_wins_when_it_avoids_overprovisioning():
    result = allocate(250, make_caps())
    assert result.strategy == Strategy.breakout
    assert speeds_and_counts(result) == [("25G", 10)]
    assert result.total_bandwidth_gbps == 250
    req = result.breakouts[0]
    assert req.parent_speed == Speed.G100
    assert req.parent_ports == 3
    assert req.child_ports_generated == 12
    assert result.port_waste == 2
    assert result.port_waste_pct == pytest.approx(16.7)


def test_simplicity_goal_prefers_one_speed():
    result = allocate(250, make_caps(), AllocationOptions(optimize_for=OptimizeFor.simplicity))
    assert result.strategy == Strategy.single_speed
    assert speeds_and_counts(result) == [("100G", 3)]
    assert "17% overprovisioned" in result.warnings


def test_breakouts_can_be_disabled():
    result = allocate(250, make_caps(), AllocationOptions(allow_breakout=False))
    assert result.strategy == Strategy.single_speed
    assert result.breakouts == ()


def test_preferred_speed_missing_from_border_is_skipped():
    caps = make_caps(max_ports=8, available_speeds=(Speed.G400,), breakout_capability={})
    result = allocate(800, caps)
    assert result.strategy == Strategy.greedy
    assert speeds_and_counts(result) == [("400G", 2)]


def test_lag_aligned_candidates_only_when_requested():
    caps = make_caps()
    plain = generate_candidates(800, caps, AllocationOptions())
    assert all(c.strategy != Strategy.lag_aligned for c in plain)

    aligned = generate_candidates(800, caps, AllocationOptions(lag_compatible=True))
    lag = [c for c in aligned if c.strategy == Strategy.lag_aligned]
    # 10G would need 80 ports, more than the border has
    assert [speeds_and_counts(c) for c in lag] == [[("25G", 32)], [("100G", 8)], [("400G", 8)]]
    assert [c.warnings[0] for c in lag] == [
        "Aligned for 4 LAG group(s) of 8 ports each",
        "Aligned for 1 LAG group(s) of 8 ports each",
        "Aligned for 1 LAG group(s) of 8 ports each",
    ]

    no_lag = generate_candidates(800, make_caps(lag_support=False), AllocationOptions(lag_compatible=True))
    assert all(c.strategy != Strategy.lag_aligned for c in no_lag)


def test_infeasible_target_returns_empty_allocation():
    result = allocate(100000, make_caps())
    assert not result.feasible
    assert result.ports == ()
    assert result.warnings == (NO_FEASIBLE_STRATEGY,)


def test_non_positive_target_returns_empty_allocation():
    result = allocate(0, make_caps())
    assert not result.feasible
    assert result.warnings == ("Target bandwidth must be positive",)


@pytest.mark.parametrize("target", [1, 10, 99, 100, 101, 250, 400, 1000, 3000])
def test_allocation_never_undershoots(target):
    result = allocate(target, make_caps())
    if result.feasible:
        assert result.total_bandwidth_gbps >= target
        assert result.efficiency >= 80.0


def test_score_penalizes_warnings_and_breakouts():
    candidate = PortAllocation(
        ports=(),
        total_bandwidth_gbps=100,
        efficiency=100.0,
        port_waste=0,
        port_waste_pct=0.0,
        breakouts=(),
        warnings=("a", "b"),
        simplicity=100.0,
        estimated_cost=500.0,
    )
    assert score(candidate, OptimizeFor.efficiency) == 90.0
    assert score(candidate, OptimizeFor.cost) == 65.0


def test_plan_breakout_picks_most_efficient_pattern():
    req = plan_breakout(Speed.G25, 10, make_caps())
    assert req is not None
    assert req.parent_speed == Speed.G100
    assert req.parent_ports == 3
    assert req.efficiency == pytest.approx(83.3)

    assert plan_breakout(Speed.G50, 2, make_caps()) is None
    assert plan_breakout(Speed.G25, 0, make_caps()) is None
