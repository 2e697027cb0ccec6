from __future__ import annotations

from dataclasses import fields, is_dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any


def _normalize(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _normalize(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, (dict, MappingProxyType)):
        return {str(_normalize(k)): _normalize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_normalize(v) for v in obj]
    return obj


def to_json_safe_dict(obj: Any) -> dict[str, Any]:
    """
    Convert a result dataclass into a JSON safe dict.

    Enums become their values, tuples become lists and enum mapping keys become strings.
    We walk fields by hand because asdict deep copies values and
    MappingProxyType cannot be deep copied.

    This is intended for transport only.
    """
    normalized = _normalize(obj)
    if not isinstance(normalized, dict):
        raise TypeError("expected dict after normalization")
    return normalized
