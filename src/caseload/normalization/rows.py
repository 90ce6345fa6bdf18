"""
Row transformation from raw cells to canonical text values.

Date columns go through tolerant date coercion; every other column is
stringified as-is.
"""

import math
from collections.abc import Sequence
from datetime import date, datetime, time
from typing import Any

from caseload.normalization.columns import HeaderProjection
from caseload.normalization.temporal import coerce_date
from caseload.schemas.canonical import CanonicalSchema

CanonicalRow = tuple[str | None, ...]


def stringify_cell(value: Any) -> str | None:
    """
    Convert a raw cell to its text representation.

    Args:
        value: Raw cell value.

    Returns:
        Text value, or None for null cells.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


class RowTransformer:
    """
    Transforms raw rows into canonical rows for one file.

    The transformer is bound to a single header projection and is pure:
    the same raw row always yields the same canonical row.
    """

    def __init__(self, schema: CanonicalSchema, projection: HeaderProjection) -> None:
        """
        Initialize row transformer.

        Args:
            schema: Canonical schema of the target table.
            projection: Header projection built from the file's first row.
        """
        if projection.columns != schema.column_names:
            msg = f"Projection does not match schema of table {schema.table!r}"
            raise ValueError(msg)
        self.schema = schema
        self.projection = projection
        self._date_mask = tuple(col.is_date for col in schema.columns)

    def transform(self, row: Sequence[Any]) -> CanonicalRow:
        """
        Produce one text-or-null value per canonical column.

        Args:
            row: Raw row from a Row Source (may be ragged).

        Returns:
            Canonical row in canonical column order.
        """
        cells = self.projection.project(row)
        return tuple(
            coerce_date(cell) if is_date else stringify_cell(cell)
            for cell, is_date in zip(cells, self._date_mask)
        )
