"""
Border leaf validation.

Purpose
Decide whether a set of external links can be built on a border leaf.

Four independent checks feed one verdict:
1) capacity, external ports plus reserved uplinks against the border port count
2) breakout feasibility for speeds the border only offers through breakout
3) divisibility of each link across the spines
4) border class compatibility, speed support and utilization

Before spines are chosen, divisibility is advisory only.
After spines are chosen, a badly uneven link is an error.

Disabled links are ignored everywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable, Optional

from fabric_planner.catalog.switches import default_border_model
from fabric_planner.config import PlannerSettings
from fabric_planner.core.errors import StructuralError
from fabric_planner.core.types import (
    BorderCapabilities,
    ExternalLink,
    LinkMode,
    PortSpec,
    Speed,
    SwitchModel,
    ceil_div,
)
from fabric_planner.fabric.allocator import BreakoutRequirement, plan_breakout
from fabric_planner.fabric.external_links import (
    ExternalLinkAllocation,
    allocate_external_link,
    link_port_demand,
)

logger = logging.getLogger(__name__)

PRE_SPINE_UPLINKS = 4
MIN_POST_SPINE_UPLINKS = 4
UPLINK_SHARE_WARNING = 0.3

DIVISIBILITY_ERROR_PCT = 50.0
DIVISIBILITY_WARNING_PCT = 10.0

HIGH_UTILIZATION_PCT = 90
MODERATE_UTILIZATION_PCT = 75
UPGRADE_RECOMMENDATION_PCT = 85


class CheckSeverity(StrEnum):
    ok = "ok"
    warning = "warning"
    error = "error"


class ValidationLevel(StrEnum):
    valid = "valid"
    warning = "warning"
    error = "error"


@dataclass(frozen=True)
class BorderValidationOptions:
    """
    Border validation options.

    border_model
    The border leaf model. Defaults to the border model of the bundled switch
    catalog. Use from_settings to take it from PlannerSettings.switch_catalog_path.

    spine_count
    None before spines are chosen. Divisibility is then advisory.

    strict_mode
    When True, warnings also block save.
    """

    border_model: SwitchModel = field(default_factory=default_border_model)
    spine_count: Optional[int] = None
    strict_mode: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: PlannerSettings,
        spine_count: Optional[int] = None,
        strict_mode: bool = False,
    ) -> "BorderValidationOptions":
        return cls(
            border_model=default_border_model(settings),
            spine_count=spine_count,
            strict_mode=strict_mode,
        )


@dataclass(frozen=True)
class CapacityCheck:
    feasible: bool
    external_ports: int
    uplink_ports: int
    ports_used: int
    utilization_pct: int
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class BreakoutFeasibility:
    """
    Breakout feasibility across all links.

    efficiency is the worst case child port efficiency, 100 when no breakout is needed.
    constraints lists every limitation found, including ones that do not block feasibility.
    """

    feasible: bool = True
    parent_ports_required: int = 0
    child_ports_generated: int = 0
    efficiency: float = 100.0
    constraints: tuple[str, ...] = ()
    requirements: tuple[BreakoutRequirement, ...] = ()


@dataclass(frozen=True)
class LinkDivisibility:
    link_id: str
    ports: int
    remainder: int
    waste_pct: float
    ports_per_spine: int
    severity: CheckSeverity


@dataclass(frozen=True)
class DivisibilityResult:
    valid: bool
    severity: CheckSeverity
    spine_count: Optional[int]
    message: str
    links: tuple[LinkDivisibility, ...] = ()
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class BorderCompatibility:
    compatible: bool
    capacity_utilization: int
    issues: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationStatus:
    level: ValidationLevel
    can_save: bool
    summary: str
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def details(self) -> tuple[str, ...]:
        return self.errors + self.warnings


@dataclass(frozen=True)
class BorderValidation:
    """Combined border verdict with every sub check kept for display."""

    capacity: CapacityCheck
    breakout: BreakoutFeasibility
    divisibility: DivisibilityResult
    compatibility: BorderCompatibility
    allocations: tuple[ExternalLinkAllocation, ...]
    overall: ValidationStatus


def _enabled(links: Iterable[ExternalLink]) -> list[ExternalLink]:
    return [link for link in links if link.enabled]


def _port_total(ports: tuple[PortSpec, ...]) -> int:
    return sum(p.count for p in ports)


def reserved_uplinks(spine_count: Optional[int]) -> int:
    """Uplinks the border leaf keeps for the fabric. One per spine, at least four."""
    if spine_count is None:
        return PRE_SPINE_UPLINKS
    return max(spine_count, MIN_POST_SPINE_UPLINKS)


def check_capacity(links: list[ExternalLink], model: SwitchModel, uplinks: int) -> CapacityCheck:
    external = sum(_port_total(link_port_demand(link)) for link in links)
    available = model.port_count - uplinks
    used = external + uplinks

    errors: list[str] = []
    warnings: list[str] = []
    if external > available:
        errors.append(f"Insufficient ports: need {external}, have {available} available")

    max_uplinks = int(model.port_count * UPLINK_SHARE_WARNING)
    if uplinks > max_uplinks:
        warnings.append(f"{uplinks} uplinks may exceed typical ratio for {model.model_id}")

    return CapacityCheck(
        feasible=not errors,
        external_ports=external,
        uplink_ports=uplinks,
        ports_used=used,
        utilization_pct=round(used / model.port_count * 100),
        errors=tuple(errors),
        warnings=tuple(warnings),
    )


def check_breakouts(links: list[ExternalLink], model: SwitchModel) -> BreakoutFeasibility:
    """
    Check every non native speed against the border breakout options.

    The pattern with the best child port efficiency is used per port group.
    The worst efficiency across groups is reported.
    """
    caps = BorderCapabilities.from_switch_model(model)
    feasible = True
    constraints: list[str] = []
    requirements: list[BreakoutRequirement] = []
    worst = 100.0

    for link in links:
        for port in link_port_demand(link):
            if port.count <= 0 or model.supports_speed(port.speed):
                continue

            if not model.breakout_parents_for(port.speed):
                feasible = False
                constraints.append(f"No breakout options available for {port.speed.value} on {model.model_id}")
                continue

            req = plan_breakout(port.speed, port.count, caps)
            if req is None:
                feasible = False
                constraints.append(
                    f"Insufficient parent ports on {model.model_id} for {port.count}x{port.speed.value}"
                )
                continue

            requirements.append(req)
            worst = min(worst, req.efficiency)
            if req.wasted_ports > 0 and req.wasted_ports >= port.count * 0.5:
                constraints.append(
                    f"High waste: {req.wasted_ports} unused child ports "
                    f"({round(req.wasted_ports / port.count * 100)}% overhead)"
                )

    return BreakoutFeasibility(
        feasible=feasible,
        parent_ports_required=sum(r.parent_ports for r in requirements),
        child_ports_generated=sum(r.child_ports_generated for r in requirements),
        efficiency=worst,
        constraints=tuple(constraints),
        requirements=tuple(requirements),
    )


def classify_divisibility(ports: int, spine_count: int) -> tuple[CheckSeverity, int, float]:
    """
    Classify how evenly ports spread across spines.

    Returns severity, remainder and waste percentage where waste = remainder / ports.
    Above 50 percent is an error, above 0 a warning, 0 is clean.
    """
    if spine_count <= 0:
        raise StructuralError(f"spine count must be positive, got {spine_count}")
    if ports <= 0:
        return CheckSeverity.ok, 0, 0.0

    remainder = ports % spine_count
    waste_pct = remainder / ports * 100
    if remainder == 0:
        return CheckSeverity.ok, 0, 0.0
    if waste_pct > DIVISIBILITY_ERROR_PCT:
        return CheckSeverity.error, remainder, waste_pct
    return CheckSeverity.warning, remainder, waste_pct


def check_divisibility(links: list[ExternalLink], spine_count: Optional[int]) -> DivisibilityResult:
    if spine_count is None:
        return DivisibilityResult(
            valid=True,
            severity=CheckSeverity.ok,
            spine_count=None,
            message="Divisibility will be validated after spine selection",
        )
    if spine_count <= 0:
        raise StructuralError(f"spine count must be positive, got {spine_count}")

    worst = CheckSeverity.ok
    messages: list[str] = []
    details: list[LinkDivisibility] = []
    recommendations: list[str] = []

    for link in links:
        ports = _port_total(link_port_demand(link))
        severity, remainder, waste_pct = classify_divisibility(ports, spine_count)
        details.append(
            LinkDivisibility(
                link_id=link.link_id,
                ports=ports,
                remainder=remainder,
                waste_pct=round(waste_pct, 1),
                ports_per_spine=ports // spine_count,
                severity=severity,
            )
        )
        if severity == CheckSeverity.ok:
            continue

        pct = round(waste_pct)
        if severity == CheckSeverity.error:
            worst = CheckSeverity.error
            messages.append(
                f"{link.name}: {remainder} ports cannot be evenly distributed across {spine_count} spines ({pct}% waste)"
            )
        elif waste_pct > DIVISIBILITY_WARNING_PCT:
            messages.append(
                f"{link.name}: Uneven distribution across spines, {remainder} unused connections ({pct}% waste)"
            )
        else:
            messages.append(f"{link.name}: Minor inefficiency, {remainder} unused connections ({pct}% waste)")

        if worst == CheckSeverity.ok:
            worst = CheckSeverity.warning
        recommendations.append(
            f"Consider adjusting {link.name} to {ceil_div(ports, spine_count) * spine_count} ports for even distribution"
        )

    return DivisibilityResult(
        valid=worst != CheckSeverity.error,
        severity=worst,
        spine_count=spine_count,
        message="; ".join(messages) if messages else "External links distribute evenly across spines",
        links=tuple(details),
        recommendations=tuple(recommendations),
    )


def check_compatibility(links: list[ExternalLink], model: SwitchModel, uplinks: int) -> BorderCompatibility:
    external = sum(_port_total(link_port_demand(link)) for link in links)
    used = external + uplinks
    utilization = round(used / model.port_count * 100)

    issues: list[str] = []
    warnings: list[str] = []
    recommendations: list[str] = []

    if used > model.port_count:
        issues.append(f"Total ports required ({used}) exceeds border leaf capacity ({model.port_count})")
    elif utilization > HIGH_UTILIZATION_PCT:
        warnings.append(f"High port utilization ({utilization}%), consider larger border leaf model")
    elif utilization > MODERATE_UTILIZATION_PCT:
        warnings.append(f"Moderate port utilization ({utilization}%), monitor for future growth")

    required: list[Speed] = []
    for link in links:
        for port in link_port_demand(link):
            if port.speed not in required:
                required.append(port.speed)

    for speed in required:
        if model.supports_speed(speed):
            continue
        if model.breakout_parents_for(speed):
            warnings.append(f"Speed {speed.value} requires breakout on border model {model.model_id}")
        else:
            issues.append(f"Speed {speed.value} not supported by border model {model.model_id}")

    if utilization > UPGRADE_RECOMMENDATION_PCT:
        recommendations.append("Consider a higher capacity border leaf model")
    if Speed.G400 in required and not model.supports_speed(Speed.G400):
        recommendations.append("Consider spine-class switch for 400G external connectivity")

    return BorderCompatibility(
        compatible=not issues,
        capacity_utilization=utilization,
        issues=tuple(issues),
        warnings=tuple(warnings),
        recommendations=tuple(recommendations),
    )


def overall_status(
    capacity: CapacityCheck,
    breakout: BreakoutFeasibility,
    divisibility: DivisibilityResult,
    compatibility: BorderCompatibility,
    allocation_warnings: list[str],
    strict_mode: bool,
) -> ValidationStatus:
    errors: list[str] = list(capacity.errors)
    if not breakout.feasible:
        errors.append("Breakout requirements cannot be satisfied")
    if divisibility.severity == CheckSeverity.error:
        errors.append(divisibility.message)
    errors.extend(compatibility.issues)

    warnings: list[str] = list(capacity.warnings)
    warnings.extend(breakout.constraints)
    if divisibility.severity == CheckSeverity.warning:
        warnings.append(divisibility.message)
    warnings.extend(compatibility.warnings)
    warnings.extend(allocation_warnings)

    if errors:
        level = ValidationLevel.error
        summary = f"External connectivity has {len(errors)} error(s) that must be resolved"
    elif warnings:
        level = ValidationLevel.warning
        summary = f"External connectivity configured with {len(warnings)} warning(s)"
    else:
        level = ValidationLevel.valid
        summary = "External connectivity properly configured"

    can_save = level != ValidationLevel.error and not (strict_mode and level == ValidationLevel.warning)
    return ValidationStatus(
        level=level,
        can_save=can_save,
        summary=summary,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )


def validate_border_configuration(
    external_links: Iterable[ExternalLink],
    options: BorderValidationOptions | None = None,
) -> BorderValidation:
    """
    Validate external links against a border leaf.

    Bandwidth links are also run through the allocator.
    Allocation errors become warnings prefixed with the link name, the other checks decide the level.
    """
    opts = options or BorderValidationOptions()
    model = opts.border_model
    if opts.spine_count is not None and opts.spine_count <= 0:
        raise StructuralError(f"spine count must be positive, got {opts.spine_count}")

    links = _enabled(external_links)
    uplinks = reserved_uplinks(opts.spine_count)
    caps = BorderCapabilities.from_switch_model(model)

    allocations: list[ExternalLinkAllocation] = []
    allocation_warnings: list[str] = []
    for link in links:
        if link.mode != LinkMode.target_bandwidth:
            continue
        planned = allocate_external_link(link, caps)
        allocations.append(planned)
        label = link.name.strip() or link.link_id
        allocation_warnings.extend(f"{label}: {error}" for error in planned.errors)

    capacity = check_capacity(links, model, uplinks)
    breakout = check_breakouts(links, model)
    divisibility = check_divisibility(links, opts.spine_count)
    compatibility = check_compatibility(links, model, uplinks)
    status = overall_status(capacity, breakout, divisibility, compatibility, allocation_warnings, opts.strict_mode)

    logger.debug(
        "border validation on %s: links=%d level=%s can_save=%s",
        model.model_id,
        len(links),
        status.level,
        status.can_save,
    )
    return BorderValidation(
        capacity=capacity,
        breakout=breakout,
        divisibility=divisibility,
        compatibility=compatibility,
        allocations=tuple(allocations),
        overall=status,
    )
