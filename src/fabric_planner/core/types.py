"""
Core types.

This file defines the shared data structures used across the planner.

Important design choice
Speeds, categories and connection kinds are closed enums.
A speed string such as "100G" is parsed exactly once, in Speed.parse,
and every other module compares Speed members, never raw strings.

Reference data and results are frozen dataclasses.
Collections on frozen types are tuples so a value can never change after construction.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from fabric_planner.core.errors import StructuralError

_SPEED_RE = re.compile(r"^\s*(\d+)\s*[gG](?:bps)?\s*$")
_PATTERN_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+\s*[gG])\s*$")


class Speed(StrEnum):
    """
    Port speed.

    The value is the canonical label used in catalogs and reports.
    gbps gives the numeric bandwidth of one port.
    """

    G10 = "10G"
    G25 = "25G"
    G40 = "40G"
    G50 = "50G"
    G100 = "100G"
    G200 = "200G"
    G400 = "400G"
    G800 = "800G"

    @property
    def gbps(self) -> int:
        """Return the bandwidth of one port in Gbps."""
        return int(self.value[:-1])

    @classmethod
    def parse(cls, value: "Speed | str | int") -> "Speed":
        """
        Convert a label such as "100G", "100g" or the integer 100 into a Speed.

        Raises StructuralError for anything that is not a known port speed.
        """
        if isinstance(value, Speed):
            return value
        if isinstance(value, int):
            text = f"{value}G"
        else:
            m = _SPEED_RE.match(str(value))
            if not m:
                raise StructuralError(f"unparseable port speed: {value!r}")
            text = f"{int(m.group(1))}G"
        try:
            return cls(text)
        except ValueError as exc:
            raise StructuralError(f"unsupported port speed: {value!r}") from exc


def fastest(speeds: "tuple[Speed, ...] | list[Speed]") -> Speed:
    """Return the fastest speed of a non empty collection."""
    return max(speeds, key=lambda s: s.gbps)


class Medium(StrEnum):
    """Physical medium of a transceiver or cable."""

    dac = "dac"
    aoc = "aoc"
    fiber = "fiber"
    copper = "copper"


class Severity(StrEnum):
    """Issue severity. Errors block save, warnings advise, info hints."""

    error = "error"
    warning = "warning"
    info = "info"


class ConnectionType(StrEnum):
    """
    Wiring connection classification.

    uplink
      Leaf to spine fabric link.

    downlink
      Spine side view of a fabric link. Not counted by the BOM to avoid double counting.

    endpoint
      Server or appliance attached to a leaf.
    """

    uplink = "uplink"
    downlink = "downlink"
    endpoint = "endpoint"


class BomCategory(StrEnum):
    """Bill of materials row category."""

    switch = "switch"
    transceiver = "transceiver"
    breakout = "breakout"
    cable = "cable"


class BomSource(StrEnum):
    """Which part of the fabric a bill of materials row comes from."""

    switch_hardware = "switch-hardware"
    leaf_uplink = "leaf-uplink"
    spine_downlink = "spine-downlink"
    external_link = "external-link"
    server_connection = "server-connection"
    breakout_cable = "breakout-cable"


class LinkMode(StrEnum):
    """How an external link states its requirement."""

    target_bandwidth = "target-bandwidth"
    explicit_ports = "explicit-ports"


class LinkCategory(StrEnum):
    """External link category as used by VPC external attachments."""

    external = "vpc.external"
    static_external = "vpc.staticExternal"


@dataclass(frozen=True)
class BreakoutPattern:
    """
    One breakout option for a parent port.

    Example:
        4x25G means one parent port becomes four 25G child ports.
    """

    child_speed: Speed
    fanout: int

    def __post_init__(self) -> None:
        if self.fanout < 1:
            raise StructuralError(f"breakout fanout must be positive, got {self.fanout}")

    @property
    def label(self) -> str:
        return f"{self.fanout}x{self.child_speed.value}"

    @classmethod
    def parse(cls, text: str) -> "BreakoutPattern":
        """Parse a label such as "4x25G"."""
        m = _PATTERN_RE.match(str(text))
        if not m:
            raise StructuralError(f"unparseable breakout pattern: {text!r}")
        return cls(child_speed=Speed.parse(m.group(2)), fanout=int(m.group(1)))


def freeze_breakouts(
    raw: Mapping[Any, Any] | None,
) -> Mapping[Speed, tuple[BreakoutPattern, ...]]:
    """
    Normalize a breakout map into a read only mapping.

    Keys may be Speed members or labels, values may be patterns or labels.
    """
    frozen: dict[Speed, tuple[BreakoutPattern, ...]] = {}
    for parent, patterns in (raw or {}).items():
        parsed = tuple(
            p if isinstance(p, BreakoutPattern) else BreakoutPattern.parse(str(p)) for p in patterns
        )
        frozen[Speed.parse(parent)] = parsed
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class SwitchModel:
    """
    Physical switch model. Immutable reference data.

    speeds
        Ordered native port speeds. The first entry is the primary speed,
        the speed used for bandwidth per port in sizing math.

    breakouts
        Parent speed to breakout patterns.
        Example:
            100G -> (4x25G, 2x50G)

    recommended
        Usage tags such as server, storage, uplink, interconnect, border.
        The rules engine uses them for model to role fit.
    """

    model_id: str
    port_count: int
    speeds: tuple[Speed, ...]
    breakouts: Mapping[Speed, tuple[BreakoutPattern, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    lag_support: bool = True
    max_ports_per_lag: int = 8
    description: str = ""
    recommended: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.port_count <= 0:
            raise StructuralError(f"switch model {self.model_id} must have ports")
        if not self.speeds:
            raise StructuralError(f"switch model {self.model_id} must declare at least one speed")
        if not isinstance(self.breakouts, MappingProxyType):
            object.__setattr__(self, "breakouts", freeze_breakouts(self.breakouts))

    @property
    def primary_speed(self) -> Speed:
        return self.speeds[0]

    @property
    def fastest_speed(self) -> Speed:
        return fastest(self.speeds)

    def supports_speed(self, speed: Speed) -> bool:
        """Return True if the speed is native on this model."""
        return speed in self.speeds

    def breakout_parents_for(self, child_speed: Speed) -> list[tuple[Speed, BreakoutPattern]]:
        """Return every (parent speed, pattern) that produces child_speed."""
        found: list[tuple[Speed, BreakoutPattern]] = []
        for parent, patterns in self.breakouts.items():
            for pattern in patterns:
                if pattern.child_speed == child_speed:
                    found.append((parent, pattern))
        return found


@dataclass(frozen=True)
class EndpointProfile:
    """
    A group of identical endpoints attached to leaves.

    redundancy
        Dual homed endpoints. Each one consumes its ports twice.

    es_lag and nics
        Endpoint side link aggregation needs at least two NICs.
    """

    name: str
    ports_per_endpoint: int = 1
    count: int = 0
    redundancy: bool = False
    es_lag: bool = False
    nics: int = 1

    @property
    def ports_needed(self) -> int:
        """Leaf ports consumed by this profile."""
        ports = self.count * self.ports_per_endpoint
        return ports * 2 if self.redundancy else ports


@dataclass(frozen=True)
class LeafClass:
    """
    A class of identical leaves in a multi class fabric.

    count is optional. When absent the sizing calculator derives it from demand.
    leaf_model_id is optional. When absent the fabric default leaf model is used.
    """

    class_id: str
    uplinks_per_leaf: int
    endpoint_profiles: tuple[EndpointProfile, ...] = ()
    count: Optional[int] = None
    leaf_model_id: Optional[str] = None
    mc_lag: bool = False

    @property
    def endpoint_ports_needed(self) -> int:
        return sum(p.ports_needed for p in self.endpoint_profiles)


LEGACY_CLASS_ID = "default"


@dataclass(frozen=True)
class FabricSpec:
    """
    Fabric specification.

    A spec is in exactly one of two modes.

    legacy
      uplinks_per_leaf and endpoint_profile describe one implicit leaf class.

    multi class
      leaf_classes lists each class with its own uplinks, model and profiles.

    Mixing the two, or providing neither, raises StructuralError at construction.
    """

    name: str
    spine_model_id: str
    leaf_model_id: str
    uplinks_per_leaf: Optional[int] = None
    endpoint_profile: Optional[EndpointProfile] = None
    leaf_classes: tuple[LeafClass, ...] = ()

    def __post_init__(self) -> None:
        legacy_fields = self.uplinks_per_leaf is not None or self.endpoint_profile is not None
        if self.leaf_classes and legacy_fields:
            raise StructuralError(
                "fabric spec mixes leaf_classes with legacy uplinks_per_leaf/endpoint_profile"
            )
        if not self.leaf_classes:
            if self.endpoint_profile is None or self.uplinks_per_leaf is None:
                raise StructuralError(
                    "fabric spec is empty: provide leaf_classes or uplinks_per_leaf and endpoint_profile"
                )
        if not self.spine_model_id or not self.leaf_model_id:
            raise StructuralError("fabric spec requires spine_model_id and leaf_model_id")

    @property
    def is_multi_class(self) -> bool:
        return bool(self.leaf_classes)

    def leaf_class_views(self) -> tuple[LeafClass, ...]:
        """
        Return leaf classes for either mode.

        A legacy spec is presented as one class with id "default" and no explicit count.
        """
        if self.leaf_classes:
            return self.leaf_classes
        assert self.endpoint_profile is not None and self.uplinks_per_leaf is not None
        return (
            LeafClass(
                class_id=LEGACY_CLASS_ID,
                uplinks_per_leaf=self.uplinks_per_leaf,
                endpoint_profiles=(self.endpoint_profile,),
                leaf_model_id=self.leaf_model_id,
            ),
        )

    def leaf_model_for(self, leaf_class: LeafClass) -> str:
        return leaf_class.leaf_model_id or self.leaf_model_id


@dataclass(frozen=True)
class LeafClassSizing:
    """Sizing result for one leaf class."""

    class_id: str
    leaf_model_id: str
    leaves: int
    uplinks_per_leaf: int
    endpoint_ports_needed: int
    ports_per_leaf_available: int


@dataclass(frozen=True)
class DerivedTopology:
    """
    Computed topology. Never hand edited, recomputed whenever the spec changes.

    class_sizing carries per class leaves so rules can reason per class.
    unknown_models lists model ids the catalog could not resolve.
    """

    leaves_needed: int
    spines_needed: int
    total_ports: int = 0
    used_ports: int = 0
    oversubscription_ratio: float = 0.0
    is_valid: bool = True
    endpoint_ports_needed: int = 0
    endpoint_ports_available: int = 0
    uplink_ports: int = 0
    class_sizing: tuple[LeafClassSizing, ...] = ()
    unknown_models: tuple[str, ...] = ()
    validation_errors: tuple[str, ...] = ()

    def sizing_for(self, class_id: str) -> Optional[LeafClassSizing]:
        for sizing in self.class_sizing:
            if sizing.class_id == class_id:
                return sizing
        return None


@dataclass(frozen=True)
class PortSpec:
    """A {speed, count} pair."""

    speed: Speed
    count: int

    @property
    def bandwidth_gbps(self) -> int:
        return self.speed.gbps * self.count


def total_bandwidth(ports: "tuple[PortSpec, ...] | list[PortSpec]") -> int:
    """Return the summed bandwidth of a port list in Gbps."""
    return sum(p.bandwidth_gbps for p in ports)


def total_port_count(ports: "tuple[PortSpec, ...] | list[PortSpec]") -> int:
    return sum(p.count for p in ports)


@dataclass(frozen=True)
class ExternalLink:
    """
    External connectivity requirement on the border leaves.

    Exactly one of target_gbps or explicit_ports is meaningful, selected by mode.
    """

    link_id: str
    name: str
    mode: LinkMode = LinkMode.target_bandwidth
    target_gbps: Optional[float] = None
    preferred_speed: Optional[Speed] = None
    explicit_ports: tuple[PortSpec, ...] = ()
    category: LinkCategory = LinkCategory.external
    enabled: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        if self.mode == LinkMode.target_bandwidth:
            if self.target_gbps is None:
                raise StructuralError(f"external link {self.link_id} in target-bandwidth mode needs target_gbps")
            if self.explicit_ports:
                raise StructuralError(f"external link {self.link_id} in target-bandwidth mode must not list ports")
        else:
            if self.target_gbps is not None:
                raise StructuralError(f"external link {self.link_id} in explicit-ports mode must not set target_gbps")


@dataclass(frozen=True)
class BorderCapabilities:
    """
    Port capabilities of the border leaf used for external links.

    Every function that needs capabilities takes them as a parameter.
    default() is the one documented default.
    """

    max_ports: int
    available_speeds: tuple[Speed, ...]
    breakout_capability: Mapping[Speed, tuple[BreakoutPattern, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    lag_support: bool = True
    max_ports_per_lag: int = 8

    def __post_init__(self) -> None:
        if not isinstance(self.breakout_capability, MappingProxyType):
            object.__setattr__(self, "breakout_capability", freeze_breakouts(self.breakout_capability))

    @classmethod
    def default(cls) -> "BorderCapabilities":
        """
        Generic border leaf capabilities.

        32 ports at 10G, 25G, 100G or 400G.
        100G breaks out to 4x25G, 400G to 4x100G or 16x25G.
        LAG supported with up to 8 members.
        """
        return cls(
            max_ports=32,
            available_speeds=(Speed.G10, Speed.G25, Speed.G100, Speed.G400),
            breakout_capability={
                Speed.G100: ("4x25G",),
                Speed.G400: ("4x100G", "16x25G"),
            },
            lag_support=True,
            max_ports_per_lag=8,
        )

    @classmethod
    def from_switch_model(cls, model: SwitchModel) -> "BorderCapabilities":
        return cls(
            max_ports=model.port_count,
            available_speeds=model.speeds,
            breakout_capability=model.breakouts,
            lag_support=model.lag_support,
            max_ports_per_lag=model.max_ports_per_lag,
        )


@dataclass(frozen=True)
class WiringDevice:
    """A switch or server in the wiring diagram."""

    device_id: str
    model: str
    port_count: int


@dataclass(frozen=True)
class PortRef:
    """One end of a connection."""

    device: str
    port: str


@dataclass(frozen=True)
class WiringConnection:
    """A physical connection between two device ports."""

    source: PortRef
    target: PortRef
    kind: ConnectionType


@dataclass(frozen=True)
class WiringDiagram:
    """
    Wiring diagram built upstream from the fabric spec and placement logic.

    The BOM compiler treats it as read only ground truth.
    """

    spines: tuple[WiringDevice, ...] = ()
    leaves: tuple[WiringDevice, ...] = ()
    servers: tuple[WiringDevice, ...] = ()
    connections: tuple[WiringConnection, ...] = ()
    fabric_name: str = "Unknown Fabric"

    def all_devices(self) -> tuple[WiringDevice, ...]:
        return self.spines + self.leaves + self.servers


@dataclass(frozen=True)
class Remediation:
    """What to change, how to change it, and why it matters."""

    what: str
    how: str
    why: str


@dataclass(frozen=True)
class Issue:
    """
    One validation finding.

    context holds the numbers behind the finding, such as actual, expected and shortfall.
    fields lists the spec field paths the finding refers to.
    """

    issue_id: str
    code: str
    severity: Severity
    title: str
    message: str
    remediation: Remediation
    fields: tuple[str, ...] = ()
    context: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    overridable: bool = False
    leaf_class_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.context, MappingProxyType):
            object.__setattr__(self, "context", MappingProxyType(dict(self.context)))


def ceil_div(numerator: int | float, denominator: int | float) -> int:
    """Ceiling division that returns 0 when the denominator is not positive."""
    if denominator <= 0:
        return 0
    return int(math.ceil(numerator / denominator))
