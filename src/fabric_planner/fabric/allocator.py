"""
Bandwidth to port allocator.

Purpose
Convert a target bandwidth into a concrete list of {speed, count} ports on a border leaf.

We generate candidate allocations with several strategies, drop the infeasible ones,
score the rest for the requested optimization goal, and return the best.

Strategies, in generation order
1) single speed at the preferred speed
2) greedy, fastest speed first within the port budget
3) breakout, one candidate per parent speed and pattern
4) LAG aligned, one candidate per speed, only when requested
5) cost optimized, cheapest cost per Gbps that fits

Ties keep generation order, so results are deterministic.
The allocator never raises for an infeasible target.
It returns an empty allocation that says why.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Optional

from fabric_planner.core.types import (
    BorderCapabilities,
    BreakoutPattern,
    PortSpec,
    Speed,
    ceil_div,
    total_bandwidth,
)

logger = logging.getLogger(__name__)

# Relative cost units per port.
SPEED_COST = {
    Speed.G10: 100,
    Speed.G25: 150,
    Speed.G100: 400,
    Speed.G400: 1200,
}
DEFAULT_SPEED_COST = 200
BREAKOUT_MODULE_COST = 50

MIN_EFFICIENCY = 80.0
OVERPROVISION_WARNING_EFFICIENCY = 90.0
BREAKOUT_REJECT_WASTE_PCT = 50.0
BREAKOUT_WARNING_WASTE_PCT = 20.0

NO_FEASIBLE_STRATEGY = "No feasible allocation strategy found"


class OptimizeFor(StrEnum):
    """Scoring goal used to rank candidate allocations."""

    efficiency = "efficiency"
    simplicity = "simplicity"
    cost = "cost"


class Strategy(StrEnum):
    """Which generator produced an allocation."""

    single_speed = "single-speed"
    greedy = "greedy"
    breakout = "breakout"
    lag_aligned = "lag-aligned"
    cost_optimized = "cost-optimized"


@dataclass(frozen=True)
class AllocationOptions:
    """
    Allocation options.

    preferred_speed
    Speed tried by the single speed strategy. Ignored when the border does not offer it.

    allow_breakout
    When False, breakout candidates are not generated.

    optimize_for
    Scoring goal.

    max_port_waste_pct
    Candidates wasting a larger share of breakout child ports are dropped.

    lag_compatible
    When True, LAG aligned candidates are generated.
    """

    preferred_speed: Optional[Speed] = Speed.G100
    allow_breakout: bool = True
    optimize_for: OptimizeFor = OptimizeFor.efficiency
    max_port_waste_pct: float = 20.0
    lag_compatible: bool = False


@dataclass(frozen=True)
class BreakoutRequirement:
    """
    Breakout needed to produce child ports.

    efficiency is the percentage of generated child ports that are used.
    """

    parent_speed: Speed
    child_speed: Speed
    fanout: int
    parent_ports: int
    child_ports_generated: int
    child_ports_used: int
    efficiency: float

    @property
    def pattern(self) -> BreakoutPattern:
        return BreakoutPattern(child_speed=self.child_speed, fanout=self.fanout)

    @property
    def wasted_ports(self) -> int:
        return self.child_ports_generated - self.child_ports_used


@dataclass(frozen=True)
class PortAllocation:
    """
    Allocation result. Never mutated after construction.

    efficiency
    Percentage of the provided bandwidth that the target uses, capped at 100.

    port_waste and port_waste_pct
    Breakout child ports generated but not used.

    strategy
    None for the empty allocation.
    """

    ports: tuple[PortSpec, ...]
    total_bandwidth_gbps: int
    efficiency: float
    port_waste: int
    port_waste_pct: float
    breakouts: tuple[BreakoutRequirement, ...]
    warnings: tuple[str, ...]
    strategy: Optional[Strategy] = None
    simplicity: float = 0.0
    estimated_cost: float = 0.0
    score: float = 0.0

    @property
    def feasible(self) -> bool:
        return bool(self.ports)

    @property
    def port_count(self) -> int:
        return sum(p.count for p in self.ports)

    @classmethod
    def empty(cls, warning: str = NO_FEASIBLE_STRATEGY) -> "PortAllocation":
        return cls(
            ports=(),
            total_bandwidth_gbps=0,
            efficiency=0.0,
            port_waste=0,
            port_waste_pct=0.0,
            breakouts=(),
            warnings=(warning,),
        )


def speed_cost(speed: Speed) -> int:
    return SPEED_COST.get(speed, DEFAULT_SPEED_COST)


def ports_cost(ports: "tuple[PortSpec, ...] | list[PortSpec]") -> float:
    return float(sum(speed_cost(p.speed) * p.count for p in ports))


def _efficiency(target_gbps: float, provided_gbps: float) -> float:
    if provided_gbps <= 0:
        return 0.0
    return round(min(100.0, target_gbps / provided_gbps * 100.0), 1)


def _simplicity(ports: "tuple[PortSpec, ...] | list[PortSpec]") -> float:
    distinct = len({p.speed for p in ports})
    return float(max(0, 100 - 20 * (distinct - 1)))


def _finalize(
    strategy: Strategy,
    target_gbps: float,
    ports: list[PortSpec],
    cost: float,
    breakouts: tuple[BreakoutRequirement, ...] = (),
    warnings: tuple[str, ...] = (),
) -> PortAllocation:
    """Build a candidate with the shared metrics every strategy reports."""
    provided = total_bandwidth(ports)
    efficiency = _efficiency(target_gbps, provided)

    waste = sum(b.wasted_ports for b in breakouts)
    generated = sum(b.child_ports_generated for b in breakouts)
    waste_pct = round(waste / generated * 100.0, 1) if generated else 0.0

    notes = list(warnings)
    if 0 < efficiency < OVERPROVISION_WARNING_EFFICIENCY:
        notes.append(f"{round(100 - efficiency)}% overprovisioned")

    return PortAllocation(
        ports=tuple(ports),
        total_bandwidth_gbps=provided,
        efficiency=efficiency,
        port_waste=waste,
        port_waste_pct=waste_pct,
        breakouts=breakouts,
        warnings=tuple(notes),
        strategy=strategy,
        simplicity=_simplicity(ports),
        estimated_cost=cost,
    )


# ---------------------------
# STRATEGIES
# ---------------------------

def _single_speed(target_gbps: float, speed: Speed, caps: BorderCapabilities) -> Optional[PortAllocation]:
    if speed not in caps.available_speeds:
        return None
    count = ceil_div(target_gbps, speed.gbps)
    if count > caps.max_ports:
        return None
    ports = [PortSpec(speed=speed, count=count)]
    return _finalize(Strategy.single_speed, target_gbps, ports, ports_cost(ports))


def _greedy(target_gbps: float, caps: BorderCapabilities) -> Optional[PortAllocation]:
    ports: list[PortSpec] = []
    remaining_bw = float(target_gbps)
    remaining_ports = caps.max_ports

    for speed in sorted(caps.available_speeds, key=lambda s: s.gbps, reverse=True):
        if remaining_bw <= 0 or remaining_ports <= 0:
            break
        count = min(ceil_div(remaining_bw, speed.gbps), remaining_ports)
        if count > 0:
            ports.append(PortSpec(speed=speed, count=count))
            remaining_bw -= count * speed.gbps
            remaining_ports -= count

    if not ports:
        return None
    return _finalize(Strategy.greedy, target_gbps, ports, ports_cost(ports))


def _breakout_requirement(
    parent: Speed, pattern: BreakoutPattern, child_ports: int
) -> BreakoutRequirement:
    parent_ports = ceil_div(child_ports, pattern.fanout)
    generated = parent_ports * pattern.fanout
    return BreakoutRequirement(
        parent_speed=parent,
        child_speed=pattern.child_speed,
        fanout=pattern.fanout,
        parent_ports=parent_ports,
        child_ports_generated=generated,
        child_ports_used=child_ports,
        efficiency=round(child_ports / generated * 100.0, 1) if generated else 0.0,
    )


def _breakouts(target_gbps: float, caps: BorderCapabilities) -> list[PortAllocation]:
    found: list[PortAllocation] = []
    for parent, patterns in caps.breakout_capability.items():
        for pattern in patterns:
            child_ports = ceil_div(target_gbps, pattern.child_speed.gbps)
            req = _breakout_requirement(parent, pattern, child_ports)
            if req.parent_ports > caps.max_ports or req.child_ports_generated == 0:
                continue

            waste_pct = req.wasted_ports / req.child_ports_generated * 100.0
            if waste_pct > BREAKOUT_REJECT_WASTE_PCT:
                continue

            warnings: tuple[str, ...] = ()
            if waste_pct > BREAKOUT_WARNING_WASTE_PCT:
                warnings = (f"{round(waste_pct)}% port waste from breakout",)

            cost = float(speed_cost(parent) * req.parent_ports + BREAKOUT_MODULE_COST * req.parent_ports)
            found.append(
                _finalize(
                    Strategy.breakout,
                    target_gbps,
                    [PortSpec(speed=pattern.child_speed, count=child_ports)],
                    cost,
                    breakouts=(req,),
                    warnings=warnings,
                )
            )
    return found


def _lag_aligned(target_gbps: float, caps: BorderCapabilities) -> list[PortAllocation]:
    if not caps.lag_support:
        return []
    group = caps.max_ports_per_lag or 8

    found: list[PortAllocation] = []
    for speed in caps.available_speeds:
        groups = ceil_div(ceil_div(target_gbps, speed.gbps), group)
        aligned = groups * group
        if aligned <= 0 or aligned > caps.max_ports:
            continue
        ports = [PortSpec(speed=speed, count=aligned)]
        found.append(
            _finalize(
                Strategy.lag_aligned,
                target_gbps,
                ports,
                ports_cost(ports),
                warnings=(f"Aligned for {groups} LAG group(s) of {group} ports each",),
            )
        )
    return found


def _cost_optimized(target_gbps: float, caps: BorderCapabilities) -> Optional[PortAllocation]:
    for speed in sorted(caps.available_speeds, key=lambda s: speed_cost(s) / s.gbps):
        count = ceil_div(target_gbps, speed.gbps)
        if count <= caps.max_ports:
            ports = [PortSpec(speed=speed, count=count)]
            return _finalize(Strategy.cost_optimized, target_gbps, ports, ports_cost(ports))
    return None


def generate_candidates(
    target_gbps: float, capabilities: BorderCapabilities, options: AllocationOptions
) -> list[PortAllocation]:
    """Return every candidate in generation order, before filtering."""
    found: list[PortAllocation] = []

    if options.preferred_speed is not None:
        single = _single_speed(target_gbps, options.preferred_speed, capabilities)
        if single is not None:
            found.append(single)

    greedy = _greedy(target_gbps, capabilities)
    if greedy is not None:
        found.append(greedy)

    if options.allow_breakout:
        found.extend(_breakouts(target_gbps, capabilities))

    if options.lag_compatible:
        found.extend(_lag_aligned(target_gbps, capabilities))

    cheapest = _cost_optimized(target_gbps, capabilities)
    if cheapest is not None:
        found.append(cheapest)

    return found


def is_acceptable(candidate: PortAllocation, target_gbps: float, options: AllocationOptions) -> bool:
    """A candidate must meet the target, stay efficient, and keep breakout waste in bounds."""
    return (
        candidate.total_bandwidth_gbps >= target_gbps
        and candidate.efficiency >= MIN_EFFICIENCY
        and candidate.port_waste_pct <= options.max_port_waste_pct
    )


def score(candidate: PortAllocation, optimize_for: OptimizeFor) -> float:
    """
    Score a candidate for a goal.

    efficiency  0.6 efficiency + 0.2 simplicity + 0.2 (100 - waste)
    simplicity  0.6 simplicity + 0.3 efficiency + 0.1 (100 - waste)
    cost        0.5 (100 - min(100, cost / 10)) + 0.3 efficiency + 0.2 simplicity

    Then minus 5 per warning and 10 per breakout, floored at 0.
    """
    eff = candidate.efficiency
    simp = candidate.simplicity
    waste = candidate.port_waste_pct

    if optimize_for == OptimizeFor.simplicity:
        value = simp * 0.6 + eff * 0.3 + (100 - waste) * 0.1
    elif optimize_for == OptimizeFor.cost:
        cost_score = 100 - min(100.0, candidate.estimated_cost / 10)
        value = cost_score * 0.5 + eff * 0.3 + simp * 0.2
    else:
        value = eff * 0.6 + simp * 0.2 + (100 - waste) * 0.2

    value -= 5 * len(candidate.warnings)
    value -= 10 * len(candidate.breakouts)
    return round(max(0.0, value), 2)


def allocate(
    target_gbps: float,
    capabilities: BorderCapabilities,
    options: AllocationOptions | None = None,
) -> PortAllocation:
    """
    Convert a bandwidth target into ports.

    The returned allocation always provides at least target_gbps,
    or it is empty and carries a warning.
    """
    opts = options or AllocationOptions()

    if target_gbps <= 0:
        return PortAllocation.empty("Target bandwidth must be positive")

    candidates = [
        c for c in generate_candidates(target_gbps, capabilities, opts) if is_acceptable(c, target_gbps, opts)
    ]
    if not candidates:
        logger.debug("no feasible allocation for %s Gbps", target_gbps)
        return PortAllocation.empty()

    scored = [replace(c, score=score(c, opts.optimize_for)) for c in candidates]
    best = max(scored, key=lambda c: c.score)
    logger.debug(
        "allocated %s Gbps with %s: ports=%s score=%.2f",
        target_gbps,
        best.strategy,
        [(p.speed.value, p.count) for p in best.ports],
        best.score,
    )
    return best


def plan_breakout(
    child_speed: Speed, child_ports: int, capabilities: BorderCapabilities
) -> Optional[BreakoutRequirement]:
    """
    Best breakout that produces child_ports ports of child_speed.

    The pattern with the highest child port efficiency wins, ties keep capability order.
    Returns None when no pattern produces the speed within the port budget.
    """
    best: Optional[BreakoutRequirement] = None
    if child_ports <= 0:
        return None
    for parent, patterns in capabilities.breakout_capability.items():
        for pattern in patterns:
            if pattern.child_speed != child_speed:
                continue
            req = _breakout_requirement(parent, pattern, child_ports)
            if req.parent_ports > capabilities.max_ports:
                continue
            if best is None or req.efficiency > best.efficiency:
                best = req
    return best
