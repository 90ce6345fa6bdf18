"""
Column name normalization and header projection.

Turns a file's raw header labels into canonical identifiers and maps
them onto the target table's canonical schema.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from caseload.errors import IncompatibleSchemaError
from caseload.schemas.canonical import CanonicalSchema
from caseload.utils.logging import get_logger

log = get_logger(__name__)

_WHITESPACE_RUN = re.compile(r"\s+")
_INVALID_CHARS = re.compile(r"[^a-z0-9_]")


def normalize_header(label: Any) -> str:
    """
    Normalize one raw header label to a canonical identifier.

    Trims, lowercases, collapses whitespace runs to a single underscore,
    turns hyphens into underscores and drops anything outside [a-z0-9_].

    Args:
        label: Raw header cell (usually a string, may be a typed cell).

    Returns:
        Normalized identifier; empty string means "no column name".
    """
    if label is None:
        return ""
    text = str(label).strip().lower()
    text = _WHITESPACE_RUN.sub("_", text)
    text = text.replace("-", "_")
    return _INVALID_CHARS.sub("", text)


def normalize_headers(labels: Sequence[Any]) -> list[str]:
    """Normalize every cell of a header row, preserving positions."""
    return [normalize_header(label) for label in labels]


@dataclass(frozen=True)
class HeaderProjection:
    """
    Mapping from canonical column to source-row index (or absent).

    Built once from a file's header row and reused for every data row
    of that file.

    Attributes:
        columns: Canonical column names, in canonical order.
        indices: Source index per canonical column; None when absent.
        ignored: Normalized source headers that matched nothing.
    """

    columns: tuple[str, ...]
    indices: tuple[int | None, ...]
    ignored: tuple[str, ...] = ()

    @property
    def present_columns(self) -> tuple[str, ...]:
        """Canonical columns found in the file."""
        return tuple(
            col for col, idx in zip(self.columns, self.indices) if idx is not None
        )

    @property
    def absent_columns(self) -> tuple[str, ...]:
        """Canonical columns missing from the file (loaded as NULL)."""
        return tuple(col for col, idx in zip(self.columns, self.indices) if idx is None)

    @property
    def source_width(self) -> int:
        """Number of source cells the projection reads from."""
        present = [idx for idx in self.indices if idx is not None]
        return max(present) + 1 if present else 0

    def project(self, row: Sequence[Any]) -> tuple[Any, ...]:
        """
        Pick one raw cell per canonical column.

        Short rows yield None for missing trailing cells; extra cells
        beyond the mapped columns are ignored.
        """
        width = len(row)
        return tuple(
            row[idx] if idx is not None and idx < width else None
            for idx in self.indices
        )


def build_projection(
    headers: Sequence[str],
    schema: CanonicalSchema,
) -> HeaderProjection:
    """
    Intersect normalized headers with a canonical schema.

    Matching is exact string equality after alias resolution. When a
    canonical column appears more than once, the first occurrence wins.

    Args:
        headers: Normalized header row.
        schema: Canonical schema of the target table.

    Returns:
        Header projection for the file.

    Raises:
        IncompatibleSchemaError: If no canonical column is present.
    """
    canonical = set(schema.column_names)
    positions: dict[str, int] = {}
    ignored: list[str] = []
    duplicates: list[str] = []

    for idx, header in enumerate(headers):
        if not header:
            continue
        name = schema.aliases.get(header, header)
        if name not in canonical:
            ignored.append(header)
        elif name in positions:
            duplicates.append(header)
        else:
            positions[name] = idx

    if not positions:
        msg = (
            f"Incompatible file format for table {schema.table!r}: "
            f"none of the {len(schema)} canonical columns found in header"
        )
        raise IncompatibleSchemaError(msg)

    if duplicates:
        log.warning("Duplicate headers ignored", table=schema.table, headers=duplicates)
    if ignored:
        log.debug("Non-canonical headers dropped", table=schema.table, headers=ignored)

    projection = HeaderProjection(
        columns=schema.column_names,
        indices=tuple(positions.get(col) for col in schema.column_names),
        ignored=tuple(ignored),
    )

    log.info(
        "Built header projection",
        table=schema.table,
        matched=len(positions),
        absent=len(projection.absent_columns),
        ignored=len(ignored),
    )

    return projection
