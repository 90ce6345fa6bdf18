"""
Data normalization layer.

Handles header normalization, schema projection and per-cell coercion
so every loaded row matches the canonical schema.
"""

from caseload.normalization.columns import (
    HeaderProjection,
    build_projection,
    normalize_header,
    normalize_headers,
)
from caseload.normalization.rows import CanonicalRow, RowTransformer, stringify_cell
from caseload.normalization.temporal import (
    coerce_date,
    from_spreadsheet_serial,
    parse_date_string,
)

__all__ = [
    "CanonicalRow",
    "HeaderProjection",
    "RowTransformer",
    "build_projection",
    "coerce_date",
    "from_spreadsheet_serial",
    "normalize_header",
    "normalize_headers",
    "parse_date_string",
    "stringify_cell",
]
