"""
Canonical schema model and registry.

A canonical schema is the fixed, ordered column set a target table must
end up with, regardless of what the source file contained.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

from caseload.errors import UnknownTableError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from caseload.config.settings import PipelineConfig, TableSchemaConfig


class ColumnKind(str, Enum):
    """Storage kind of a canonical column after the coercion pass."""

    TEXT = "text"
    DATE = "date"


@dataclass(frozen=True)
class ColumnSpec:
    """One canonical column."""

    name: str
    kind: ColumnKind = ColumnKind.TEXT

    @property
    def is_date(self) -> bool:
        """Whether the column is promoted to DATE after loading."""
        return self.kind is ColumnKind.DATE


@dataclass(frozen=True)
class CanonicalSchema:
    """
    Ordered canonical columns for one target table.

    Attributes:
        table: Target table name.
        columns: Canonical columns in persisted order.
        aliases: Normalized source header -> canonical column name.
    """

    table: str
    columns: tuple[ColumnSpec, ...]
    aliases: "Mapping[str, str]" = field(
        default_factory=lambda: MappingProxyType({}), hash=False
    )

    @classmethod
    def from_config(cls, table: str, config: "TableSchemaConfig") -> "CanonicalSchema":
        """Build a schema from its table configuration."""
        date_columns = set(config.date_columns)
        columns = tuple(
            ColumnSpec(
                name=name,
                kind=ColumnKind.DATE if name in date_columns else ColumnKind.TEXT,
            )
            for name in config.columns
        )
        return cls(
            table=table,
            columns=columns,
            aliases=MappingProxyType(dict(config.aliases)),
        )

    @property
    def column_names(self) -> tuple[str, ...]:
        """Canonical column names in order."""
        return tuple(col.name for col in self.columns)

    @property
    def date_columns(self) -> tuple[str, ...]:
        """Names of columns declared as dates."""
        return tuple(col.name for col in self.columns if col.is_date)

    def __len__(self) -> int:
        return len(self.columns)


class SchemaRegistry:
    """
    Centralized lookup of canonical schemas by target table.

    Built once from configuration; never discovered at runtime.
    """

    def __init__(self, schemas: "Mapping[str, CanonicalSchema]") -> None:
        self._schemas = dict(schemas)

    @classmethod
    def from_config(cls, config: "PipelineConfig") -> "SchemaRegistry":
        """Build the registry from pipeline configuration."""
        return cls(
            {
                name: CanonicalSchema.from_config(name, table_config)
                for name, table_config in config.tables.items()
            }
        )

    def get(self, table: str) -> CanonicalSchema:
        """
        Get the canonical schema for a table.

        Raises:
            UnknownTableError: If the table is not configured.
        """
        if table not in self._schemas:
            available = ", ".join(sorted(self._schemas))
            msg = f"Unknown target table {table!r}. Available: {available}"
            raise UnknownTableError(msg)
        return self._schemas[table]

    def tables(self) -> list[str]:
        """List configured tables."""
        return list(self._schemas)

    def __contains__(self, table: object) -> bool:
        return table in self._schemas

    def __iter__(self) -> Iterator[CanonicalSchema]:
        return iter(self._schemas.values())
