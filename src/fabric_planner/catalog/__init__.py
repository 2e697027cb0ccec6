"""
Catalog package.

This makes the catalog folder an explicit package so the bundled YAML data
resolves as package resources.
"""

from fabric_planner.catalog.skus import SkuCatalog, SkuEntry, default_sku_catalog
from fabric_planner.catalog.switches import SwitchCatalog, default_border_model, default_switch_catalog

__all__ = [
    "SkuCatalog",
    "SkuEntry",
    "SwitchCatalog",
    "default_border_model",
    "default_sku_catalog",
    "default_switch_catalog",
]
