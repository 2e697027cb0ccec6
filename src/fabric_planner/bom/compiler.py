"""
Bill of materials compiler.

Purpose
Turn a wiring diagram and external links into a priced bill of materials.

Per link end methodology
Every physical connection needs optics at both ends unless the far end brings its own.
1) leaf to spine uplink, one leaf-uplink and one spine-downlink transceiver
2) endpoint connection, one server-connection transceiver at the leaf end
3) external link port, two transceivers, border leaf and external router
Downlink records mirror uplinks and are not counted again.

Breakout detection
Endpoint ports named <parent>/<N> on a leaf are grouped by parent port.
A group with at least the breakout fanout of children becomes one breakout cable.
This is an approximation driven by port naming.

Rows are aggregated by (source, sku key), never by formatted strings.
Any unexpected failure is raised as BomCompilationError with the cause chained.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from fabric_planner.catalog.skus import (
    BreakoutKey,
    CableKey,
    SkuCatalog,
    SkuEntry,
    SkuKey,
    SwitchKey,
    TransceiverKey,
    default_sku_catalog,
)
from fabric_planner.core.errors import BomCompilationError
from fabric_planner.core.types import (
    BomCategory,
    BomSource,
    ConnectionType,
    ExternalLink,
    Medium,
    PortRef,
    Speed,
    SwitchModel,
    WiringConnection,
    WiringDevice,
    WiringDiagram,
)
from fabric_planner.fabric.external_links import link_port_demand

logger = logging.getLogger(__name__)

DEFAULT_UPLINK_SPEED = Speed.G100
DEFAULT_ENDPOINT_SPEED = Speed.G25

UPLINK_REACH = "100m"
ENDPOINT_REACH = "3m"
EXTERNAL_REACH = "10km"

BREAKOUT_KEY = BreakoutKey(parent_speed=Speed.G100, child_speed=Speed.G25, fanout=4, medium=Medium.dac)
MANAGEMENT_CABLE = CableKey(kind="management", length="3m")

_SPEED_HINT_RE = re.compile(r"(\d+)[gG]")
_BREAKOUT_CHILD_RE = re.compile(r"^(.*/\d+)/\d+$")


@dataclass(frozen=True)
class BomItem:
    """One priced row of the bill of materials."""

    sku: str
    description: str
    quantity: int
    unit_price: float
    total_price: float
    category: BomCategory
    source: BomSource
    fallback: bool = False


@dataclass(frozen=True)
class UtilizationStats:
    average_port_utilization: float
    transceiver_efficiency: float


@dataclass(frozen=True)
class BomSummary:
    """
    Totals across all rows.

    cost_breakdown holds the cost per category and always sums to total_cost.
    """

    total_switches: int
    total_transceivers: int
    total_breakouts: int
    total_cables: int
    total_cost: float
    cost_breakdown: Mapping[BomCategory, float]
    utilization: UtilizationStats


@dataclass(frozen=True)
class BomMetadata:
    fabric_name: str
    device_count: int
    connection_count: int
    external_link_count: int


@dataclass(frozen=True)
class BomAnalysis:
    switches: tuple[BomItem, ...]
    transceivers: tuple[BomItem, ...]
    breakouts: tuple[BomItem, ...]
    cables: tuple[BomItem, ...]
    summary: BomSummary
    metadata: BomMetadata
    warnings: tuple[str, ...] = field(default=())

    def all_items(self) -> tuple[BomItem, ...]:
        return self.switches + self.transceivers + self.breakouts + self.cables


class _RowBuilder:
    """Accumulates quantities per (source, key) in first seen order."""

    def __init__(self, catalog: SkuCatalog) -> None:
        self._catalog = catalog
        self._counts: dict[tuple[BomSource, SkuKey], int] = {}
        self.warnings: list[str] = []
        self._warned: set[str] = set()

    def add(self, source: BomSource, key: SkuKey, quantity: int) -> None:
        if quantity <= 0:
            return
        slot = (source, key)
        self._counts[slot] = self._counts.get(slot, 0) + quantity

    def rows(self) -> list[BomItem]:
        items: list[BomItem] = []
        for (source, key), quantity in self._counts.items():
            entry = self._catalog.resolve(key)
            if entry.fallback and entry.sku not in self._warned:
                self._warned.add(entry.sku)
                self.warnings.append(f"No catalog SKU for {key.normalized()}, using placeholder {entry.sku}")
            items.append(_priced(entry, quantity, source))
        return items


def _priced(entry: SkuEntry, quantity: int, source: BomSource) -> BomItem:
    return BomItem(
        sku=entry.sku,
        description=entry.description,
        quantity=quantity,
        unit_price=entry.unit_price,
        total_price=entry.unit_price * quantity,
        category=entry.category,
        source=source,
        fallback=entry.fallback,
    )


def _speed_hint(port: str) -> Optional[Speed]:
    """Speed named in a port such as "100g-1" or "Ethernet1/1-25G"."""
    m = _SPEED_HINT_RE.search(port)
    if not m:
        return None
    try:
        return Speed.parse(int(m.group(1)))
    except ValueError:
        return None


def _connection_speed(
    conn: WiringConnection,
    devices: Mapping[str, WiringDevice],
    models: Mapping[str, SwitchModel],
) -> Speed:
    """
    Infer the speed of a connection.

    Order
    1) a speed named in either port name
    2) the leaf model, fastest speed for uplinks and primary speed for endpoints
    3) 100G for uplinks, 25G for endpoints
    """
    for ref in (conn.source, conn.target):
        hinted = _speed_hint(ref.port)
        if hinted is not None:
            return hinted

    for ref in (conn.source, conn.target):
        device = devices.get(ref.device)
        model = models.get(device.model) if device is not None else None
        if model is None:
            continue
        return model.fastest_speed if conn.kind == ConnectionType.uplink else model.primary_speed

    return DEFAULT_UPLINK_SPEED if conn.kind == ConnectionType.uplink else DEFAULT_ENDPOINT_SPEED


def _leaf_end(conn: WiringConnection, leaf_ids: set[str]) -> PortRef:
    if conn.source.device in leaf_ids:
        return conn.source
    return conn.target


def count_switches(wiring: WiringDiagram, rows: _RowBuilder) -> None:
    """One row per model, spines first, then leaves."""
    counts: Counter[str] = Counter()
    for device in wiring.spines + wiring.leaves:
        counts[device.model] += 1
    for model, quantity in counts.items():
        rows.add(BomSource.switch_hardware, SwitchKey(model), quantity)


def count_transceivers(
    wiring: WiringDiagram,
    external_links: Iterable[ExternalLink],
    models: Mapping[str, SwitchModel],
    rows: _RowBuilder,
) -> None:
    devices = {d.device_id: d for d in wiring.all_devices()}

    for conn in wiring.connections:
        if conn.kind == ConnectionType.uplink:
            speed = _connection_speed(conn, devices, models)
            key = TransceiverKey(speed=speed, medium=Medium.dac, reach=UPLINK_REACH)
            rows.add(BomSource.leaf_uplink, key, 1)
            rows.add(BomSource.spine_downlink, key, 1)
        elif conn.kind == ConnectionType.endpoint:
            speed = _connection_speed(conn, devices, models)
            rows.add(BomSource.server_connection, TransceiverKey(speed=speed, medium=Medium.dac, reach=ENDPOINT_REACH), 1)

    for link in external_links:
        if not link.enabled:
            continue
        for port in link_port_demand(link):
            key = TransceiverKey(speed=port.speed, medium=Medium.fiber, reach=EXTERNAL_REACH)
            rows.add(BomSource.external_link, key, port.count * 2)


def count_breakouts(wiring: WiringDiagram, rows: _RowBuilder) -> None:
    leaf_ids = {d.device_id for d in wiring.leaves}
    children: dict[tuple[str, str], set[str]] = {}

    for conn in wiring.connections:
        if conn.kind != ConnectionType.endpoint:
            continue
        end = _leaf_end(conn, leaf_ids)
        m = _BREAKOUT_CHILD_RE.match(end.port)
        if not m:
            continue
        children.setdefault((end.device, m.group(1)), set()).add(end.port)

    cables = sum(1 for ports in children.values() if len(ports) >= BREAKOUT_KEY.fanout)
    rows.add(BomSource.breakout_cable, BREAKOUT_KEY, cables)


def count_cables(wiring: WiringDiagram, rows: _RowBuilder) -> None:
    """One management cable per switch, booked with the switch hardware."""
    rows.add(BomSource.switch_hardware, MANAGEMENT_CABLE, len(wiring.spines) + len(wiring.leaves))


def summarize(items: list[BomItem], wiring: WiringDiagram) -> BomSummary:
    quantities: Counter[BomCategory] = Counter()
    breakdown: dict[BomCategory, float] = {c: 0.0 for c in BomCategory}
    for item in items:
        quantities[item.category] += item.quantity
        breakdown[item.category] += item.total_price

    total_ports = sum(d.port_count for d in wiring.all_devices())
    used_ports = len(wiring.connections) * 2
    utilization = used_ports / total_ports * 100 if total_ports > 0 else 0.0

    uplinks = sum(1 for c in wiring.connections if c.kind == ConnectionType.uplink)
    endpoints = sum(1 for c in wiring.connections if c.kind == ConnectionType.endpoint)
    expected = uplinks * 2 + endpoints
    # external link optics push this above 100
    efficiency = quantities[BomCategory.transceiver] / expected * 100 if expected > 0 else 0.0

    return BomSummary(
        total_switches=quantities[BomCategory.switch],
        total_transceivers=quantities[BomCategory.transceiver],
        total_breakouts=quantities[BomCategory.breakout],
        total_cables=quantities[BomCategory.cable],
        total_cost=sum(breakdown.values()),
        cost_breakdown=MappingProxyType(breakdown),
        utilization=UtilizationStats(
            average_port_utilization=round(utilization, 1),
            transceiver_efficiency=round(efficiency, 1),
        ),
    )


def compile_bom(
    wiring: WiringDiagram,
    external_links: Iterable[ExternalLink] = (),
    leaf_models: Iterable[SwitchModel] = (),
    spine_models: Iterable[SwitchModel] = (),
    catalog: SkuCatalog | None = None,
) -> BomAnalysis:
    """
    Compile a priced bill of materials.

    Inputs are never modified. Disabled external links are ignored.
    Unknown switch models and optics become placeholder rows priced at 0 with a warning.
    """
    try:
        cat = catalog if catalog is not None else default_sku_catalog()
        links = tuple(link for link in external_links if link.enabled)
        models = {m.model_id: m for m in tuple(spine_models) + tuple(leaf_models)}

        switch_rows = _RowBuilder(cat)
        count_switches(wiring, switch_rows)

        transceiver_rows = _RowBuilder(cat)
        count_transceivers(wiring, links, models, transceiver_rows)

        breakout_rows = _RowBuilder(cat)
        count_breakouts(wiring, breakout_rows)

        cable_rows = _RowBuilder(cat)
        count_cables(wiring, cable_rows)

        switches = switch_rows.rows()
        transceivers = transceiver_rows.rows()
        breakouts = breakout_rows.rows()
        cables = cable_rows.rows()

        warnings = (
            switch_rows.warnings + transceiver_rows.warnings + breakout_rows.warnings + cable_rows.warnings
        )
        summary = summarize(switches + transceivers + breakouts + cables, wiring)

        analysis = BomAnalysis(
            switches=tuple(switches),
            transceivers=tuple(transceivers),
            breakouts=tuple(breakouts),
            cables=tuple(cables),
            summary=summary,
            metadata=BomMetadata(
                fabric_name=wiring.fabric_name,
                device_count=len(wiring.all_devices()),
                connection_count=len(wiring.connections),
                external_link_count=len(links),
            ),
            warnings=tuple(warnings),
        )
    except Exception as exc:
        raise BomCompilationError(f"BOM compilation failed: {exc}") from exc

    logger.debug(
        "compiled bom for %s: switches=%d transceivers=%d total_cost=%.2f",
        wiring.fabric_name,
        summary.total_switches,
        summary.total_transceivers,
        summary.total_cost,
    )
    return analysis
