"""
Topology rules engine.

Purpose
Evaluate a FabricSpec against its DerivedTopology and the switch catalog,
and return every finding at once as structured Issue values.

Important
This module must remain deterministic.
Each check is independent and appends to one result.
Issues are ordered by check, then by leaf class id.

Errors block save. Warnings and info never do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Optional

from fabric_planner.catalog.switches import SwitchCatalog, default_switch_catalog
from fabric_planner.core.types import (
    DerivedTopology,
    FabricSpec,
    Issue,
    LeafClass,
    Remediation,
    Severity,
    ceil_div,
)
from fabric_planner.fabric.sizing import leaves_for_demand

logger = logging.getLogger(__name__)

SPINE_TAGS = ("uplink", "interconnect")
LEAF_TAGS = ("server", "storage")


class RuleCode(StrEnum):
    """Stable rule codes. Callers and UIs key on these."""

    spine_capacity_exceeded = "SPINE_CAPACITY_EXCEEDED"
    leaf_capacity_exceeded = "LEAF_CAPACITY_EXCEEDED"
    uplinks_not_divisible_by_spines = "UPLINKS_NOT_DIVISIBLE_BY_SPINES"
    mc_lag_odd_leafs = "MC_LAG_ODD_LEAFS"
    es_lag_single_nic = "ES_LAG_SINGLE_NIC"
    model_profile_mismatch = "MODEL_PROFILE_MISMATCH"
    unknown_switch_model = "UNKNOWN_SWITCH_MODEL"
    high_oversubscription = "HIGH_OVERSUBSCRIPTION"
    single_spine = "SINGLE_SPINE"
    es_lag_nic_optimization = "ES_LAG_NIC_OPTIMIZATION"


@dataclass(frozen=True)
class RulesConfig:
    """
    Rules configuration.

    oversubscription_warning_ratio
    Ratios above this raise HIGH_OVERSUBSCRIPTION.

    single_spine_leaf_threshold
    One spine serving more leaves than this raises SINGLE_SPINE.

    enable_optimization_hints
    When False, info level hints are skipped.
    """

    oversubscription_warning_ratio: float = 4.0
    single_spine_leaf_threshold: int = 4
    enable_optimization_hints: bool = True


@dataclass(frozen=True)
class RuleSummary:
    error_count: int
    warning_count: int
    info_count: int
    can_save: bool


@dataclass(frozen=True)
class RuleEvaluationResult:
    """
    Rule evaluation result.

    errors
    Hard failures. Any error blocks save.

    warnings
    Advisory findings that deserve attention.

    info
    Optimization hints.
    """

    errors: tuple[Issue, ...]
    warnings: tuple[Issue, ...]
    info: tuple[Issue, ...]
    summary: RuleSummary

    @property
    def can_save(self) -> bool:
        return not self.errors

    def all_issues(self) -> tuple[Issue, ...]:
        return self.errors + self.warnings + self.info

    def codes(self) -> list[str]:
        return [i.code for i in self.all_issues()]


class _Collector:
    def __init__(self) -> None:
        self.errors: list[Issue] = []
        self.warnings: list[Issue] = []
        self.info: list[Issue] = []

    def add(
        self,
        code: RuleCode,
        severity: Severity,
        title: str,
        message: str,
        remediation: Remediation,
        fields: tuple[str, ...] = (),
        context: Optional[dict[str, Any]] = None,
        leaf_class_id: Optional[str] = None,
        suffix: str = "",
    ) -> None:
        parts = [code.value.lower()]
        if leaf_class_id:
            parts.append(leaf_class_id)
        if suffix:
            parts.append(suffix)
        issue = Issue(
            issue_id=":".join(parts),
            code=code.value,
            severity=severity,
            title=title,
            message=message,
            remediation=remediation,
            fields=fields,
            context=context or {},
            overridable=severity != Severity.error,
            leaf_class_id=leaf_class_id,
        )
        if severity == Severity.error:
            self.errors.append(issue)
        elif severity == Severity.warning:
            self.warnings.append(issue)
        else:
            self.info.append(issue)


def _class_field(spec: FabricSpec, leaf_class: LeafClass, name: str) -> str:
    if spec.is_multi_class:
        return f"leaf_classes[{leaf_class.class_id}].{name}"
    return name


def _class_id(spec: FabricSpec, leaf_class: LeafClass) -> Optional[str]:
    return leaf_class.class_id if spec.is_multi_class else None


def _sorted_classes(spec: FabricSpec) -> list[LeafClass]:
    return sorted(spec.leaf_class_views(), key=lambda c: c.class_id)


def _leaves_for_class(
    spec: FabricSpec, leaf_class: LeafClass, derived: DerivedTopology, catalog: SwitchCatalog
) -> int:
    """
    Leaves for one class.

    Legacy specs use derived.leaves_needed.
    Classes use their explicit count, then the derived sizing, then the sizing formula.
    """
    if not spec.is_multi_class:
        return derived.leaves_needed
    if leaf_class.count is not None:
        return leaf_class.count
    sizing = derived.sizing_for(leaf_class.class_id)
    if sizing is not None:
        return sizing.leaves
    model = catalog.get(spec.leaf_model_for(leaf_class))
    if model is None:
        return 0
    return leaves_for_demand(leaf_class.endpoint_ports_needed, model.port_count - leaf_class.uplinks_per_leaf)


def check_spine_capacity(
    spec: FabricSpec, derived: DerivedTopology, catalog: SwitchCatalog, out: _Collector
) -> None:
    spine = catalog.get(spec.spine_model_id)
    if spine is None:
        return

    total_uplinks = sum(
        _leaves_for_class(spec, lc, derived, catalog) * lc.uplinks_per_leaf for lc in _sorted_classes(spec)
    )
    capacity = derived.spines_needed * spine.port_count
    if total_uplinks <= capacity:
        return

    shortfall = total_uplinks - capacity
    additional = ceil_div(shortfall, spine.port_count)
    out.add(
        RuleCode.spine_capacity_exceeded,
        Severity.error,
        "Spine capacity exceeded",
        f"Spine capacity exceeded: need {total_uplinks} ports but only {capacity} available "
        f"across {derived.spines_needed} spines",
        Remediation(
            what=f"Add {additional} spine(s) or reduce uplinks per leaf",
            how=f"Increase spines to {derived.spines_needed + additional} or lower uplinks_per_leaf",
            why="Every leaf uplink must terminate on a spine port",
        ),
        fields=("spine_model_id", "uplinks_per_leaf"),
        context={
            "actual": total_uplinks,
            "expected": capacity,
            "shortfall": shortfall,
            "spine_count": derived.spines_needed,
            "ports_per_spine": spine.port_count,
            "additional_spines_needed": additional,
        },
    )


def check_leaf_capacity(
    spec: FabricSpec, derived: DerivedTopology, catalog: SwitchCatalog, out: _Collector
) -> None:
    for lc in _sorted_classes(spec):
        model = catalog.get(spec.leaf_model_for(lc))
        if model is None:
            continue

        demand = lc.endpoint_ports_needed
        available = model.port_count - lc.uplinks_per_leaf
        leaves = _leaves_for_class(spec, lc, derived, catalog)
        capacity = leaves * max(available, 0)
        if demand <= capacity:
            continue

        shortfall = demand - capacity
        additional = ceil_div(shortfall, available)
        label = f" for class '{lc.class_id}'" if spec.is_multi_class else ""
        if available > 0:
            remediation = Remediation(
                what=f"Add {additional} leaf switch(es){label}",
                how=f"Set leaf count to {leaves + additional} or move endpoints to another class",
                why="Every endpoint port needs a free leaf downlink port",
            )
        else:
            remediation = Remediation(
                what="Reduce uplinks per leaf",
                how=f"Uplinks per leaf must be below the {model.port_count} ports of {model.model_id}",
                why="A leaf with no downlink ports cannot host endpoints",
            )
        out.add(
            RuleCode.leaf_capacity_exceeded,
            Severity.error,
            "Leaf capacity exceeded",
            f"Leaf capacity exceeded{label}: need {demand} endpoint ports but only {capacity} available",
            remediation,
            fields=(_class_field(spec, lc, "count"), _class_field(spec, lc, "uplinks_per_leaf")),
            context={
                "actual": demand,
                "expected": capacity,
                "shortfall": shortfall,
                "leaf_count": leaves,
                "ports_per_leaf": available,
                "additional_leaves_needed": additional,
            },
            leaf_class_id=_class_id(spec, lc),
        )


def _optimal_counts(uplinks: int, spines: int) -> list[int]:
    below = (uplinks // spines) * spines
    above = below + spines
    return [below, above] if below > 0 else [above]


def check_uplink_divisibility(spec: FabricSpec, derived: DerivedTopology, out: _Collector) -> None:
    spines = derived.spines_needed
    if spines <= 1:
        return

    for lc in _sorted_classes(spec):
        remainder = lc.uplinks_per_leaf % spines
        if remainder == 0:
            continue

        optimal = _optimal_counts(lc.uplinks_per_leaf, spines)
        label = f"Leaf class '{lc.class_id}' uplinks" if spec.is_multi_class else "Uplinks per leaf"
        out.add(
            RuleCode.uplinks_not_divisible_by_spines,
            Severity.warning,
            "Uplinks not divisible by spines",
            f"{label} ({lc.uplinks_per_leaf}) not evenly divisible by spine count ({spines}), "
            "may cause uneven load distribution",
            Remediation(
                what="Use an uplink count divisible by the spine count",
                how=f"Set uplinks per leaf to one of {optimal}",
                why="Uneven uplinks leave some spines carrying more traffic than others",
            ),
            fields=(_class_field(spec, lc, "uplinks_per_leaf"),),
            context={
                "uplinks_per_leaf": lc.uplinks_per_leaf,
                "spine_count": spines,
                "remainder": remainder,
                "optimal_counts": optimal,
            },
            leaf_class_id=_class_id(spec, lc),
        )


def check_mc_lag_pairs(
    spec: FabricSpec, derived: DerivedTopology, catalog: SwitchCatalog, out: _Collector
) -> None:
    for lc in _sorted_classes(spec):
        if not lc.mc_lag:
            continue

        leaves = _leaves_for_class(spec, lc, derived, catalog)
        if leaves >= 2 and leaves % 2 == 0:
            continue

        suggested = max(2, leaves + (leaves % 2))
        out.add(
            RuleCode.mc_lag_odd_leafs,
            Severity.warning,
            "MC-LAG needs leaf pairs",
            f"MC-LAG enabled for class '{lc.class_id}' but leaf count ({leaves}) is not even "
            "or less than 2, MC-LAG requires pairs of leaves",
            Remediation(
                what=f"Use {suggested} leaves",
                how=f"Set count to {suggested} ({suggested // 2} pair(s)) or disable mc_lag",
                why="MC-LAG peers are formed from two leaves",
            ),
            fields=(_class_field(spec, lc, "count"), _class_field(spec, lc, "mc_lag")),
            context={
                "leaf_count": leaves,
                "suggested_count": suggested,
                "pairs_needed": suggested // 2,
            },
            leaf_class_id=_class_id(spec, lc),
        )


def check_es_lag_nics(spec: FabricSpec, out: _Collector, hints: bool) -> None:
    for lc in _sorted_classes(spec):
        for profile in lc.endpoint_profiles:
            if not profile.es_lag:
                continue

            if profile.nics <= 1:
                out.add(
                    RuleCode.es_lag_single_nic,
                    Severity.warning,
                    "ES-LAG with a single NIC",
                    f"ES-LAG enabled for endpoint profile '{profile.name}' but NIC count is "
                    f"{profile.nics}, ES-LAG requires multiple NICs for redundancy",
                    Remediation(
                        what="Give the profile at least two NICs",
                        how="Set nics: 2",
                        why="A single NIC cannot be split across leaves",
                    ),
                    fields=(_class_field(spec, lc, "endpoint_profiles"),),
                    context={"profile_name": profile.name, "nic_count": profile.nics, "suggested_nics": 2},
                    leaf_class_id=_class_id(spec, lc),
                    suffix=profile.name,
                )
            elif hints and profile.nics < 4:
                out.add(
                    RuleCode.es_lag_nic_optimization,
                    Severity.info,
                    "ES-LAG NIC count",
                    f"Endpoint profile '{profile.name}' uses ES-LAG with {profile.nics} NICs, "
                    "four NICs give more headroom",
                    Remediation(
                        what="Consider four NICs per endpoint",
                        how="Set nics: 4 where the hardware allows",
                        why="More members keep bandwidth up when one link fails",
                    ),
                    fields=(_class_field(spec, lc, "endpoint_profiles"),),
                    context={"profile_name": profile.name, "nic_count": profile.nics},
                    leaf_class_id=_class_id(spec, lc),
                    suffix=profile.name,
                )


def check_model_profiles(spec: FabricSpec, catalog: SwitchCatalog, out: _Collector) -> None:
    spine = catalog.get(spec.spine_model_id)
    if spine is not None and not set(SPINE_TAGS).intersection(spine.recommended):
        alt = catalog.suggest(SPINE_TAGS, exclude=spine.model_id)
        out.add(
            RuleCode.model_profile_mismatch,
            Severity.warning,
            "Spine model profile mismatch",
            f"Spine model '{spine.model_id}' may not be optimized for uplink usage",
            Remediation(
                what="Use a spine model recommended for uplinks",
                how=f"Set spine_model_id to {alt.model_id}" if alt else "Pick a model tagged uplink",
                why="Spine models are sized for dense uplink termination",
            ),
            fields=("spine_model_id",),
            context={
                "model_id": spine.model_id,
                "role": "spine",
                "recommended": list(spine.recommended),
                "suggested_model": alt.model_id if alt else None,
            },
        )

    for lc in _sorted_classes(spec):
        model = catalog.get(spec.leaf_model_for(lc))
        if model is None or set(LEAF_TAGS).intersection(model.recommended):
            continue
        alt = catalog.suggest(LEAF_TAGS, exclude=model.model_id)
        label = f" in class '{lc.class_id}'" if spec.is_multi_class else ""
        out.add(
            RuleCode.model_profile_mismatch,
            Severity.warning,
            "Leaf model profile mismatch",
            f"Leaf model '{model.model_id}'{label} may not be optimized for server connectivity",
            Remediation(
                what="Use a leaf model recommended for servers or storage",
                how=f"Set leaf_model_id to {alt.model_id}" if alt else "Pick a model tagged server",
                why="Leaf models are sized for endpoint density",
            ),
            fields=(_class_field(spec, lc, "leaf_model_id"),),
            context={
                "model_id": model.model_id,
                "role": "leaf",
                "recommended": list(model.recommended),
                "suggested_model": alt.model_id if alt else None,
            },
            leaf_class_id=_class_id(spec, lc),
        )


def check_unknown_models(spec: FabricSpec, catalog: SwitchCatalog, out: _Collector) -> None:
    referenced = [("spine_model_id", spec.spine_model_id)]
    for lc in _sorted_classes(spec):
        referenced.append((_class_field(spec, lc, "leaf_model_id"), spec.leaf_model_for(lc)))

    seen: set[str] = set()
    for field_name, model_id in referenced:
        if model_id in seen or model_id in catalog:
            continue
        seen.add(model_id)
        out.add(
            RuleCode.unknown_switch_model,
            Severity.warning,
            "Unknown switch model",
            f"Switch model '{model_id}' is not in the catalog, capacity checks for it were skipped",
            Remediation(
                what="Use a catalog switch model",
                how=f"Pick one of {sorted(catalog.models)}",
                why="Port counts and speeds come from the catalog",
            ),
            fields=(field_name,),
            context={"model_id": model_id},
            suffix=model_id,
        )


def check_oversubscription(derived: DerivedTopology, config: RulesConfig, out: _Collector) -> None:
    ratio = derived.oversubscription_ratio
    if ratio <= config.oversubscription_warning_ratio:
        return
    out.add(
        RuleCode.high_oversubscription,
        Severity.warning,
        "High oversubscription",
        f"Oversubscription ratio {ratio:.2f}:1 exceeds {config.oversubscription_warning_ratio:.1f}:1",
        Remediation(
            what="Add uplink bandwidth",
            how="Increase uplinks per leaf or use faster spine ports",
            why="High ratios cause congestion under load",
        ),
        fields=("uplinks_per_leaf",),
        context={"actual": round(ratio, 2), "expected": config.oversubscription_warning_ratio},
    )


def check_single_spine(derived: DerivedTopology, config: RulesConfig, out: _Collector) -> None:
    if derived.spines_needed != 1 or derived.leaves_needed <= config.single_spine_leaf_threshold:
        return
    out.add(
        RuleCode.single_spine,
        Severity.info,
        "Single spine",
        f"One spine serves {derived.leaves_needed} leaves and is a single point of failure",
        Remediation(
            what="Add a second spine",
            how="Raise uplinks per leaf so the fabric sizes two spines",
            why="A second spine keeps the fabric up during spine maintenance",
        ),
        fields=("uplinks_per_leaf",),
        context={"leaf_count": derived.leaves_needed, "spine_count": 1},
    )


def evaluate(
    spec: FabricSpec,
    derived: DerivedTopology,
    catalog: SwitchCatalog | None = None,
    config: RulesConfig | None = None,
) -> RuleEvaluationResult:
    """
    Run every rule and return the findings.

    Rules
    1) spine capacity
    2) leaf capacity per class
    3) uplink divisibility by spine count
    4) MC-LAG leaf pairs
    5) ES-LAG NIC count
    6) model to role fit
    7) unknown models
    8) oversubscription
    9) single spine
    """
    cat = catalog if catalog is not None else default_switch_catalog()
    cfg = config or RulesConfig()
    out = _Collector()

    check_spine_capacity(spec, derived, cat, out)
    check_leaf_capacity(spec, derived, cat, out)
    check_uplink_divisibility(spec, derived, out)
    check_mc_lag_pairs(spec, derived, cat, out)
    check_es_lag_nics(spec, out, cfg.enable_optimization_hints)
    check_model_profiles(spec, cat, out)
    check_unknown_models(spec, cat, out)
    check_oversubscription(derived, cfg, out)
    if cfg.enable_optimization_hints:
        check_single_spine(derived, cfg, out)

    summary = RuleSummary(
        error_count=len(out.errors),
        warning_count=len(out.warnings),
        info_count=len(out.info),
        can_save=not out.errors,
    )
    logger.debug(
        "rules for %s: errors=%d warnings=%d info=%d",
        spec.name,
        summary.error_count,
        summary.warning_count,
        summary.info_count,
    )
    return RuleEvaluationResult(
        errors=tuple(out.errors),
        warnings=tuple(out.warnings),
        info=tuple(out.info),
        summary=summary,
    )


