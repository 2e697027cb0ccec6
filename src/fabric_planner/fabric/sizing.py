"""
Leaf spine sizing calculator.

This module turns a FabricSpec into a DerivedTopology.

It supports:
- Legacy single class specs
- Multi class specs with per class leaf models
- Explicit leaf counts per class

All math is documented for auditability.
Unknown switch models never raise. They are recorded and the topology is marked invalid,
so the rules engine can report them next to every other finding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fabric_planner.catalog.switches import SwitchCatalog, default_switch_catalog
from fabric_planner.core.types import (
    DerivedTopology,
    FabricSpec,
    LeafClass,
    LeafClassSizing,
    SwitchModel,
    ceil_div,
)

logger = logging.getLogger(__name__)

# Above this ratio the topology is reported as not viable at all.
MAX_OVERSUBSCRIPTION = 15.0


@dataclass(frozen=True)
class _ClassDemand:
    leaf_class: LeafClass
    model: Optional[SwitchModel]
    model_id: str


# ---------------------------
# LEAF MATH
# ---------------------------

def leaves_for_demand(ports_needed: int, downlink_ports: int) -> int:
    """
    Leaves required to land a number of endpoint ports.

        leaves = ceil(ports_needed / downlink_ports)

    where downlink_ports = leaf ports - uplinks per leaf.
    Zero when there is no demand or no downlink capacity.
    """
    if ports_needed <= 0 or downlink_ports <= 0:
        return 0
    return ceil_div(ports_needed, downlink_ports)


# ---------------------------
# SPINE MATH
# ---------------------------

def spines_for_uplinks(total_uplinks: int, spine_ports: int) -> int:
    """
    Spines required to terminate every leaf uplink.

        spines = max(1, ceil(total_uplinks / spine_ports))

    Zero when there are no uplinks.
    """
    if total_uplinks <= 0 or spine_ports <= 0:
        return 0
    return max(1, ceil_div(total_uplinks, spine_ports))


def oversubscription(endpoint_gbps: float, uplink_gbps: float) -> float:
    """
    Ratio of endpoint facing bandwidth to uplink bandwidth.

        endpoint_gbps = sum of endpoint ports * leaf primary speed
        uplink_gbps = uplinks * spine primary speed

    Zero when there is no uplink bandwidth.
    """
    if uplink_gbps <= 0:
        return 0.0
    return endpoint_gbps / uplink_gbps


def _size_class(demand: _ClassDemand) -> LeafClassSizing:
    lc = demand.leaf_class
    needed = lc.endpoint_ports_needed

    if demand.model is None:
        available = 0
        leaves = lc.count or 0
    else:
        available = demand.model.port_count - lc.uplinks_per_leaf
        leaves = lc.count if lc.count is not None else leaves_for_demand(needed, available)

    return LeafClassSizing(
        class_id=lc.class_id,
        leaf_model_id=demand.model_id,
        leaves=leaves,
        uplinks_per_leaf=lc.uplinks_per_leaf,
        endpoint_ports_needed=needed,
        ports_per_leaf_available=max(available, 0),
    )


def compute_topology(spec: FabricSpec, catalog: SwitchCatalog | None = None) -> DerivedTopology:
    """
    Compute the derived topology for a fabric spec.

    Steps
    1) size each leaf class from its demand or explicit count
    2) size spines from the total uplink count
    3) compute port totals and the oversubscription ratio
    4) collect validation messages

    Classes are processed sorted by class id so results are deterministic.
    """
    cat = catalog if catalog is not None else default_switch_catalog()
    unknown: list[str] = []

    spine = cat.get(spec.spine_model_id)
    if spine is None:
        unknown.append(spec.spine_model_id)

    demands: list[_ClassDemand] = []
    for lc in sorted(spec.leaf_class_views(), key=lambda c: c.class_id):
        model_id = spec.leaf_model_for(lc)
        model = cat.get(model_id)
        if model is None and model_id not in unknown:
            unknown.append(model_id)
        demands.append(_ClassDemand(leaf_class=lc, model=model, model_id=model_id))

    sizing = tuple(_size_class(d) for d in demands)

    leaves = sum(s.leaves for s in sizing)
    uplinks = sum(s.leaves * s.uplinks_per_leaf for s in sizing)
    endpoint_needed = sum(s.endpoint_ports_needed for s in sizing)
    endpoint_available = sum(s.leaves * s.ports_per_leaf_available for s in sizing)

    spines = spines_for_uplinks(uplinks, spine.port_count) if spine is not None else 0

    total_ports = spines * (spine.port_count if spine is not None else 0)
    endpoint_bw = 0
    for d, s in zip(demands, sizing):
        if d.model is not None:
            total_ports += s.leaves * d.model.port_count
            endpoint_bw += s.endpoint_ports_needed * d.model.primary_speed.gbps

    uplink_bw = uplinks * spine.primary_speed.gbps if spine is not None else 0
    ratio = oversubscription(endpoint_bw, uplink_bw)

    errors: list[str] = []
    for d, s in zip(demands, sizing):
        if d.model is not None and s.uplinks_per_leaf > d.model.port_count / 2:
            errors.append(f"Class {s.class_id}: Too many uplinks per leaf ({s.uplinks_per_leaf})")
        if s.leaves == 0 and s.endpoint_ports_needed > 0:
            errors.append(f"Class {s.class_id}: No leaves computed")
    if leaves == 0:
        errors.append("No leaves computed")
    if spines == 0:
        errors.append("No spines computed")
    if ratio > MAX_OVERSUBSCRIPTION:
        errors.append(f"Oversubscription too high: {ratio:.2f}:1")
    for model_id in unknown:
        errors.append(f"Unknown switch model: {model_id}")

    derived = DerivedTopology(
        leaves_needed=leaves,
        spines_needed=spines,
        total_ports=total_ports,
        used_ports=endpoint_needed + uplinks * 2,
        oversubscription_ratio=ratio,
        is_valid=not errors,
        endpoint_ports_needed=endpoint_needed,
        endpoint_ports_available=endpoint_available,
        uplink_ports=uplinks,
        class_sizing=sizing,
        unknown_models=tuple(unknown),
        validation_errors=tuple(errors),
    )
    logger.debug(
        "sized fabric %s: leaves=%d spines=%d ratio=%.2f valid=%s",
        spec.name,
        leaves,
        spines,
        ratio,
        derived.is_valid,
    )
    return derived
