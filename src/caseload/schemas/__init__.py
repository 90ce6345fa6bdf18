"""
Canonical schema definitions.

The target table layout is configuration: an ordered column list with
a text/date kind per column.
"""

from caseload.schemas.canonical import (
    CanonicalSchema,
    ColumnKind,
    ColumnSpec,
    SchemaRegistry,
)

__all__ = [
    "CanonicalSchema",
    "ColumnKind",
    "ColumnSpec",
    "SchemaRegistry",
]
