"""
SKU catalog.

Purpose
Map a typed hardware key to a SkuEntry with a part number, description and unit price.

Keys are small frozen dataclasses, one per category:
SwitchKey
TransceiverKey
BreakoutKey
CableKey

Lookup never raises for an unknown key.
It synthesizes a deterministic fallback entry named GEN-<normalized key>
with price 0, marks it as a fallback, and logs a warning.
Callers that care, such as the BOM compiler, surface the fallback as a warning.

Transceiver resolution order
1) exact speed, medium and reach
2) same speed and reach
3) same speed and medium
4) same speed as DAC
5) any entry of the same speed
6) fallback
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Union

from fabric_planner.catalog.loader import bundled_path, load_yaml_table, section
from fabric_planner.config import PlannerSettings
from fabric_planner.core.errors import CatalogError
from fabric_planner.core.types import BomCategory, BreakoutPattern, Medium, Speed

logger = logging.getLogger(__name__)

BUNDLED_SKU_CATALOG = "sku_catalog.yaml"

FALLBACK_PREFIX = "GEN-"

SHIPPING_RATE = 0.05
SHIPPING_MINIMUM = 50.0
TAX_RATE = 0.085

_DISTANCE_RE = re.compile(r"[^0-9.]")


@dataclass(frozen=True)
class SwitchKey:
    model: str

    def normalized(self) -> str:
        return f"{self.model.strip().upper()}-SWITCH"


@dataclass(frozen=True)
class TransceiverKey:
    speed: Speed
    medium: Medium = Medium.dac
    reach: Optional[str] = None

    def normalized(self) -> str:
        parts = [self.speed.value, self.medium.value.upper()]
        if self.reach:
            parts.append(self.reach.strip().upper())
        return "-".join(parts)


@dataclass(frozen=True)
class BreakoutKey:
    parent_speed: Speed
    child_speed: Speed
    fanout: int
    medium: Medium = Medium.dac

    @property
    def pattern(self) -> BreakoutPattern:
        return BreakoutPattern(child_speed=self.child_speed, fanout=self.fanout)

    def normalized(self) -> str:
        return f"{self.parent_speed.value}-{self.fanout}X{self.child_speed.value}-{self.medium.value.upper()}"


@dataclass(frozen=True)
class CableKey:
    kind: str
    length: str = "3m"

    def normalized(self) -> str:
        return f"{self.kind.strip().upper()}-{self.length.strip().upper()}"


SkuKey = Union[SwitchKey, TransceiverKey, BreakoutKey, CableKey]


@dataclass(frozen=True)
class SkuEntry:
    """
    One orderable part.

    fallback is True when the entry was synthesized for a key the catalog does not know.
    attributes holds the raw catalog fields such as form factor or reach.
    """

    sku: str
    description: str
    unit_price: float
    category: BomCategory
    fallback: bool = False
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class CategoryTotal:
    items: int
    cost: float


@dataclass(frozen=True)
class PricingSummary:
    """
    Price estimate for a list of (sku, quantity) pairs.

    Shipping is 5 percent of the subtotal with a minimum of 50.
    Tax is 8.5 percent of the subtotal.
    unknown_skus lists part numbers the catalog does not carry, priced at 0.
    """

    subtotal: float
    total_items: int
    categories: Mapping[BomCategory, CategoryTotal]
    estimated_shipping: float
    estimated_tax: float
    grand_total: float
    unknown_skus: tuple[str, ...] = ()


def _category_for(key: SkuKey) -> BomCategory:
    if isinstance(key, SwitchKey):
        return BomCategory.switch
    if isinstance(key, TransceiverKey):
        return BomCategory.transceiver
    if isinstance(key, BreakoutKey):
        return BomCategory.breakout
    return BomCategory.cable


def fallback_entry(key: SkuKey) -> SkuEntry:
    """Build the deterministic placeholder entry for a key the catalog cannot resolve."""
    normalized = key.normalized()
    category = _category_for(key)
    return SkuEntry(
        sku=f"{FALLBACK_PREFIX}{normalized}",
        description=f"Unresolved {category.value}: {normalized}",
        unit_price=0.0,
        category=category,
        fallback=True,
    )


class SkuCatalog:
    """
    Immutable SKU table.

    Tables are exposed through read only mappings.
    overlay returns a new catalog, the receiver is never changed.
    """

    def __init__(
        self,
        *,
        name: str = "",
        currency: str = "USD",
        switches: Iterable[tuple[SwitchKey, SkuEntry]] = (),
        transceivers: Iterable[tuple[TransceiverKey, SkuEntry]] = (),
        breakouts: Iterable[tuple[BreakoutKey, SkuEntry]] = (),
        cables: Iterable[tuple[CableKey, SkuEntry]] = (),
    ) -> None:
        self._name = name
        self._currency = currency
        self._switches = MappingProxyType({k.model.strip().upper(): e for k, e in switches})
        self._transceivers = tuple(transceivers)
        self._breakouts = tuple(breakouts)
        self._cables = MappingProxyType(dict(cables))

        by_sku: dict[str, SkuEntry] = {}
        for entry in self._switches.values():
            by_sku[entry.sku] = entry
        for _, entry in self._transceivers:
            by_sku[entry.sku] = entry
        for _, entry in self._breakouts:
            by_sku[entry.sku] = entry
        for entry in self._cables.values():
            by_sku[entry.sku] = entry
        self._by_sku = MappingProxyType(by_sku)

    @property
    def name(self) -> str:
        return self._name

    @property
    def currency(self) -> str:
        return self._currency

    @property
    def entries(self) -> Mapping[str, SkuEntry]:
        """Every entry keyed by part number."""
        return self._by_sku

    def __len__(self) -> int:
        return len(self._by_sku)

    @classmethod
    def from_yaml(cls, path: Path) -> "SkuCatalog":
        """Load a catalog from a YAML document with switches, transceivers, breakouts and cables sections."""
        data = load_yaml_table(path)
        meta = section(data, "metadata", path)

        try:
            switches = [
                (SwitchKey(str(obj["model"])), _entry_from_dict(sku, obj, BomCategory.switch))
                for sku, obj in section(data, "switches", path).items()
            ]
            transceivers = [
                (_transceiver_key_from_dict(obj), _entry_from_dict(sku, obj, BomCategory.transceiver))
                for sku, obj in section(data, "transceivers", path).items()
            ]
            breakouts = [
                (_breakout_key_from_dict(obj), _entry_from_dict(sku, obj, BomCategory.breakout))
                for sku, obj in section(data, "breakouts", path).items()
            ]
            cables = [
                (
                    CableKey(kind=str(obj["kind"]), length=str(obj.get("length", "3m"))),
                    _entry_from_dict(sku, obj, BomCategory.cable),
                )
                for sku, obj in section(data, "cables", path).items()
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise CatalogError(f"malformed SKU entry in {path}: {exc}") from exc

        catalog = cls(
            name=str(meta.get("name", path.stem)),
            currency=str(meta.get("currency", "USD")),
            switches=switches,
            transceivers=transceivers,
            breakouts=breakouts,
            cables=cables,
        )
        logger.debug("sku catalog %s loaded with %d entries", catalog.name, len(catalog))
        return catalog

    def overlay(self, vendor: "SkuCatalog") -> "SkuCatalog":
        """
        Layer a vendor catalog over this one.

        Vendor entries win for every key they define.
        Entries of this catalog fill the remaining keys.
        """
        vendor_transceivers = {k for k, _ in vendor._transceivers}
        vendor_breakouts = {k for k, _ in vendor._breakouts}

        switches = {**self._switches, **vendor._switches}
        cables = {**self._cables, **vendor._cables}

        return SkuCatalog(
            name=f"{vendor.name} over {self.name}",
            currency=vendor.currency or self.currency,
            switches=[(SwitchKey(model), entry) for model, entry in switches.items()],
            transceivers=list(vendor._transceivers)
            + [(k, e) for k, e in self._transceivers if k not in vendor_transceivers],
            breakouts=list(vendor._breakouts)
            + [(k, e) for k, e in self._breakouts if k not in vendor_breakouts],
            cables=list(cables.items()),
        )

    def resolve(self, key: SkuKey) -> SkuEntry:
        """Return the entry for a key, or a fallback entry when nothing matches."""
        entry: Optional[SkuEntry]
        if isinstance(key, SwitchKey):
            entry = self._switches.get(key.model.strip().upper())
        elif isinstance(key, TransceiverKey):
            entry = self._resolve_transceiver(key)
        elif isinstance(key, BreakoutKey):
            entry = self._resolve_breakout(key)
        elif isinstance(key, CableKey):
            entry = self._resolve_cable(key)
        else:
            raise TypeError(f"unsupported sku key type: {type(key).__name__}")

        if entry is not None:
            return entry

        fallback = fallback_entry(key)
        logger.warning("no catalog entry for %s, using fallback sku %s", key.normalized(), fallback.sku)
        return fallback

    def _resolve_transceiver(self, key: TransceiverKey) -> Optional[SkuEntry]:
        candidates = [(k, e) for k, e in self._transceivers if k.speed == key.speed]
        if not candidates:
            return None

        for k, e in candidates:
            if k.medium == key.medium and k.reach == key.reach:
                return e
        if key.reach:
            for k, e in candidates:
                if k.reach == key.reach:
                    return e
        for k, e in candidates:
            if k.medium == key.medium:
                return e
        for k, e in candidates:
            if k.medium == Medium.dac:
                return e
        return candidates[0][1]

    def _resolve_breakout(self, key: BreakoutKey) -> Optional[SkuEntry]:
        candidates = [
            (k, e)
            for k, e in self._breakouts
            if k.parent_speed == key.parent_speed
            and k.child_speed == key.child_speed
            and k.fanout == key.fanout
        ]
        if not candidates:
            return None

        for k, e in candidates:
            if k.medium == key.medium:
                return e
        for k, e in candidates:
            if k.medium == Medium.dac:
                return e
        return candidates[0][1]

    def _resolve_cable(self, key: CableKey) -> Optional[SkuEntry]:
        for k, e in self._cables.items():
            if k.normalized() == key.normalized():
                return e
        for k, e in self._cables.items():
            if k.kind.strip().lower() == key.kind.strip().lower():
                return e
        return None

    def get(self, sku: str) -> Optional[SkuEntry]:
        """Return the entry for a part number, or None."""
        return self._by_sku.get(sku)

    def contains(self, sku: str) -> bool:
        return bool(sku) and sku in self._by_sku

    def search(self, query: str, category: Optional[BomCategory] = None) -> list[SkuEntry]:
        """Case insensitive match on part number or description, sorted by part number."""
        needle = query.lower()
        found = [
            e
            for e in self._by_sku.values()
            if (needle in e.sku.lower() or needle in e.description.lower())
            and (category is None or e.category == category)
        ]
        return sorted(found, key=lambda e: e.sku)

    def entries_for_speed(self, speed: Speed) -> list[SkuEntry]:
        """All transceivers of one speed in catalog order."""
        return [e for k, e in self._transceivers if k.speed == speed]

    def breakouts_for_parent(self, parent_speed: Speed) -> list[tuple[BreakoutPattern, SkuEntry]]:
        """All breakout cables for a parent speed with their pattern."""
        return [(k.pattern, e) for k, e in self._breakouts if k.parent_speed == parent_speed]

    def price_summary(self, items: Iterable[tuple[str, int]]) -> PricingSummary:
        subtotal = 0.0
        total_items = 0
        per_category: dict[BomCategory, tuple[int, float]] = {}
        unknown: list[str] = []

        for sku, quantity in items:
            total_items += quantity
            entry = self._by_sku.get(sku)
            if entry is None:
                unknown.append(sku)
                continue
            cost = entry.unit_price * quantity
            subtotal += cost
            count, acc = per_category.get(entry.category, (0, 0.0))
            per_category[entry.category] = (count + quantity, acc + cost)

        shipping = max(subtotal * SHIPPING_RATE, SHIPPING_MINIMUM)
        tax = subtotal * TAX_RATE

        return PricingSummary(
            subtotal=subtotal,
            total_items=total_items,
            categories=MappingProxyType(
                {cat: CategoryTotal(items=n, cost=c) for cat, (n, c) in per_category.items()}
            ),
            estimated_shipping=shipping,
            estimated_tax=tax,
            grand_total=subtotal + shipping + tax,
            unknown_skus=tuple(unknown),
        )


def optimal_medium(distance: Optional[str] = None) -> Medium:
    """
    Pick a medium for a run length such as "3m" or "10km".

    Rules
    1) no distance means DAC
    2) kilometres always mean fiber
    3) up to 5 m DAC, up to 100 m AOC, anything longer fiber
    """
    if not distance:
        return Medium.dac

    unit = distance.lower()
    if "km" in unit:
        return Medium.fiber
    if "m" in unit:
        digits = _DISTANCE_RE.sub("", unit)
        if not digits:
            return Medium.dac
        value = float(digits)
        if value <= 5:
            return Medium.dac
        if value <= 100:
            return Medium.aoc
        return Medium.fiber
    return Medium.dac


def _entry_from_dict(sku: str, obj: dict[str, Any], category: BomCategory) -> SkuEntry:
    attributes = {k: v for k, v in obj.items() if k not in ("description", "price")}
    return SkuEntry(
        sku=str(sku),
        description=str(obj.get("description", sku)),
        unit_price=float(obj.get("price", 0)),
        category=category,
        attributes=MappingProxyType(attributes),
    )


def _transceiver_key_from_dict(obj: dict[str, Any]) -> TransceiverKey:
    reach = obj.get("reach")
    return TransceiverKey(
        speed=Speed.parse(obj["speed"]),
        medium=Medium(str(obj.get("medium", "dac"))),
        reach=str(reach) if reach is not None else None,
    )


def _breakout_key_from_dict(obj: dict[str, Any]) -> BreakoutKey:
    return BreakoutKey(
        parent_speed=Speed.parse(obj["parent_speed"]),
        child_speed=Speed.parse(obj["child_speed"]),
        fanout=int(obj["fanout"]),
        medium=Medium(str(obj.get("medium", "dac"))),
    )


@lru_cache(maxsize=8)
def default_sku_catalog(settings: PlannerSettings | None = None) -> SkuCatalog:
    """
    Return the cached catalog used when callers do not pass one.

    settings.sku_catalog_path replaces the bundled table.
    settings.vendor_catalog_path is layered on top when set.
    """
    cfg = settings or PlannerSettings()
    base = SkuCatalog.from_yaml(cfg.sku_catalog_path or bundled_path(BUNDLED_SKU_CATALOG))
    if cfg.vendor_catalog_path is None:
        return base
    return base.overlay(SkuCatalog.from_yaml(cfg.vendor_catalog_path))
