"""
Error taxonomy.

We separate error types so callers can react correctly.
Example:
StructuralError means the input itself is malformed and nothing was processed.
CatalogError means a catalog data file could not be loaded.
BomCompilationError wraps any failure inside BOM compilation with its cause.

Capacity problems and feasibility concerns are never exceptions.
They are reported as Issue objects or result fields so the full picture is visible at once.
"""


class FabricPlannerError(Exception):
    """Base class for all fabric planner exceptions."""


class StructuralError(FabricPlannerError, ValueError):
    """Raised when required input is missing or malformed, such as an empty fabric spec."""


class CatalogError(FabricPlannerError):
    """Raised when a SKU or switch catalog file cannot be read or parsed."""


class BomCompilationError(FabricPlannerError):
    """Raised when BOM compilation fails. The original exception is chained as __cause__."""
