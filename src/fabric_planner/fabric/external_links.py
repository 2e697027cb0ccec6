"""
External link planning.

An external link asks for border leaf ports either by bandwidth or by an explicit port list.
This module turns either form into ports, validates them against the border
capabilities, and converts a link between the two forms.

Validation problems are returned as messages on the result, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from fabric_planner.core.types import (
    BorderCapabilities,
    ExternalLink,
    LinkMode,
    PortSpec,
    Speed,
    ceil_div,
    total_bandwidth,
)
from fabric_planner.fabric.allocator import AllocationOptions, PortAllocation, allocate

logger = logging.getLogger(__name__)

DEFAULT_LINK_SPEED = Speed.G100


@dataclass(frozen=True)
class ExternalLinkAllocation:
    """
    Result of planning one external link.

    allocation
    The chosen ports. For explicit links this wraps the declared ports.

    errors
    Problems that make the link unbuildable.

    warnings
    Advisory notes such as overprovisioning.
    """

    link: ExternalLink
    allocation: PortAllocation
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def ports(self) -> tuple[PortSpec, ...]:
        return self.allocation.ports

    @property
    def total_bandwidth_gbps(self) -> int:
        return self.allocation.total_bandwidth_gbps


def link_port_demand(link: ExternalLink) -> tuple[PortSpec, ...]:
    """
    Ports a link needs without running the allocator.

    Explicit links return their ports.
    Bandwidth links return ceil(target / speed) ports at the preferred speed, 100G when unset.
    """
    if link.mode == LinkMode.explicit_ports:
        return link.explicit_ports
    if not link.target_gbps or link.target_gbps <= 0:
        return ()
    speed = link.preferred_speed or DEFAULT_LINK_SPEED
    return (PortSpec(speed=speed, count=ceil_div(link.target_gbps, speed.gbps)),)


def physical_port_count(allocation: PortAllocation) -> int:
    """Border ports consumed, counting breakout parents instead of their children."""
    child_speeds = {b.child_speed for b in allocation.breakouts}
    direct = sum(p.count for p in allocation.ports if p.speed not in child_speeds)
    return direct + sum(b.parent_ports for b in allocation.breakouts)


def _explicit_allocation(ports: tuple[PortSpec, ...]) -> PortAllocation:
    return PortAllocation(
        ports=ports,
        total_bandwidth_gbps=total_bandwidth(ports),
        efficiency=100.0,
        port_waste=0,
        port_waste_pct=0.0,
        breakouts=(),
        warnings=(),
    )


def allocate_external_link(
    link: ExternalLink,
    capabilities: BorderCapabilities,
    options: AllocationOptions | None = None,
) -> ExternalLinkAllocation:
    """
    Plan and validate one external link.

    Checks
    1) the link has a name
    2) bandwidth links have a positive target that the border can satisfy
    3) explicit links list at least one port
    4) the ports fit the border port budget
    5) every speed is native, or produced by a breakout the allocator chose
    """
    opts = options or AllocationOptions()
    errors: list[str] = []
    warnings: list[str] = []

    if not link.name.strip():
        errors.append("External link name is required")

    allocation = PortAllocation.empty("No ports allocated")
    if link.mode == LinkMode.target_bandwidth:
        target = link.target_gbps or 0
        if target <= 0:
            errors.append("Target bandwidth must be greater than 0")
        else:
            if link.preferred_speed is not None:
                opts = replace(opts, preferred_speed=link.preferred_speed)
            allocation = allocate(target, capabilities, opts)
            if not allocation.feasible:
                errors.append("Cannot satisfy bandwidth requirements with available border capacity")
            elif allocation.total_bandwidth_gbps > target:
                excess = allocation.total_bandwidth_gbps - target
                warnings.append(f"Overprovisioned by {excess:g}Gbps ({round(excess / target * 100)}% excess)")
    else:
        if not link.explicit_ports:
            errors.append("At least one port specification is required in explicit mode")
        else:
            allocation = _explicit_allocation(link.explicit_ports)

    if allocation.feasible:
        used = physical_port_count(allocation)
        if used > capabilities.max_ports:
            errors.append(f"Requires {used} ports but border leaf only supports {capabilities.max_ports}")

        produced = {b.child_speed for b in allocation.breakouts}
        for port in allocation.ports:
            if port.speed not in capabilities.available_speeds and port.speed not in produced:
                errors.append(f"{port.speed.value} not supported by border leaf")

    result = ExternalLinkAllocation(
        link=link,
        allocation=allocation,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )
    logger.debug("external link %s: ok=%s ports=%d", link.link_id, result.ok, allocation.port_count)
    return result


def to_explicit_mode(
    link: ExternalLink,
    capabilities: BorderCapabilities,
    options: AllocationOptions | None = None,
) -> ExternalLink:
    """
    Convert a bandwidth link into an explicit port link.

    The ports come from the allocator. An infeasible target yields an empty port list.
    Explicit links are returned unchanged.
    """
    if link.mode == LinkMode.explicit_ports:
        return link

    ports: tuple[PortSpec, ...] = ()
    if link.target_gbps and link.target_gbps > 0:
        opts = options or AllocationOptions()
        if link.preferred_speed is not None:
            opts = replace(opts, preferred_speed=link.preferred_speed)
        ports = allocate(link.target_gbps, capabilities, opts).ports

    return replace(
        link,
        mode=LinkMode.explicit_ports,
        explicit_ports=ports,
        target_gbps=None,
        preferred_speed=None,
    )


def to_bandwidth_mode(link: ExternalLink, target_gbps: Optional[float] = None) -> ExternalLink:
    """
    Convert an explicit port link into a bandwidth link.

    The target is the summed port bandwidth, or target_gbps when the link has no ports.
    The preferred speed is the single speed the ports use, else 100G.
    For a bandwidth link, target_gbps replaces the current target when given.
    """
    if link.mode == LinkMode.target_bandwidth:
        if target_gbps is None:
            return link
        return replace(link, target_gbps=target_gbps)

    if link.explicit_ports:
        target = float(total_bandwidth(link.explicit_ports))
    else:
        target = float(target_gbps if target_gbps is not None else DEFAULT_LINK_SPEED.gbps)

    speeds = {p.speed for p in link.explicit_ports}
    preferred = next(iter(speeds)) if len(speeds) == 1 else DEFAULT_LINK_SPEED

    return replace(
        link,
        mode=LinkMode.target_bandwidth,
        target_gbps=target,
        preferred_speed=preferred,
        explicit_ports=(),
    )
