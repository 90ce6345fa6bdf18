"""
Typed configuration models using Pydantic.

All configuration is defined here with explicit typing and validation.
Pipeline code receives a PipelineConfig instance; nothing reads the
process environment directly.
"""

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Lowercase SQL identifier, 63 chars max (PostgreSQL NAMEDATALEN - 1)
IDENTIFIER_PATTERN = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")


def validate_identifier(value: str, kind: str = "identifier") -> str:
    """Ensure a configured table/column name is a safe SQL identifier."""
    if not IDENTIFIER_PATTERN.match(value):
        msg = (
            f"Invalid {kind} {value!r}: must match {IDENTIFIER_PATTERN.pattern} "
            "(lowercase letters, digits and underscores, max 63 chars)"
        )
        raise ValueError(msg)
    return value


class DatabaseConfig(BaseModel):
    """Target database connection configuration."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Echo emitted SQL")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Reject empty URLs (e.g. an unset environment variable)."""
        if not v.strip():
            msg = "database.url must not be empty"
            raise ValueError(msg)
        return v


class IngestionConfig(BaseModel):
    """File parsing and batching configuration."""

    model_config = ConfigDict(frozen=True)

    csv_delimiter: str = Field(default=";", description="Delimiter for CSV files")
    csv_encoding: str = Field(default="utf-8-sig", description="Text encoding for CSV files")
    batch_size: int = Field(
        default=500, ge=1, le=10_000, description="Rows per multi-row INSERT"
    )
    read_chunk_rows: int = Field(
        default=5_000, ge=1, description="Rows parsed per CSV read chunk"
    )
    data_root: Path = Field(
        default=Path("./data"), description="Root directory for local file locators"
    )

    @field_validator("csv_delimiter")
    @classmethod
    def validate_delimiter(cls, v: str) -> str:
        """Ensure the delimiter is a single character."""
        if len(v) != 1:
            msg = f"csv_delimiter must be a single character, got: {v!r}"
            raise ValueError(msg)
        return v


class TableSchemaConfig(BaseModel):
    """Canonical column list for one target table."""

    model_config = ConfigDict(frozen=True)

    columns: list[str] = Field(min_length=1, description="Ordered canonical columns")
    date_columns: list[str] = Field(
        default_factory=list, description="Columns promoted to DATE after loading"
    )
    aliases: dict[str, str] = Field(
        default_factory=dict,
        description="Normalized source header -> canonical column",
    )

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, v: list[str]) -> list[str]:
        """Ensure column names are valid and unique."""
        for name in v:
            validate_identifier(name, "column name")
        duplicates = sorted({name for name in v if v.count(name) > 1})
        if duplicates:
            msg = f"Duplicate columns: {duplicates}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_references(self) -> "TableSchemaConfig":
        """Ensure date columns and alias targets are canonical columns."""
        unknown_dates = [c for c in self.date_columns if c not in self.columns]
        if unknown_dates:
            msg = f"date_columns not in columns: {unknown_dates}"
            raise ValueError(msg)

        unknown_targets = sorted(
            {t for t in self.aliases.values() if t not in self.columns}
        )
        if unknown_targets:
            msg = f"Alias targets not in columns: {unknown_targets}"
            raise ValueError(msg)

        # Aliases are matched against normalized headers
        from caseload.normalization.columns import normalize_header

        unnormalized = [k for k in self.aliases if normalize_header(k) != k]
        if unnormalized:
            msg = f"Alias keys must be normalized header names: {unnormalized}"
            raise ValueError(msg)
        return self


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO", description="Log level name")
    json_output: bool = Field(default=False, description="Render logs as JSON")


class PipelineConfig(BaseModel):
    """Complete pipeline configuration.

    The tables mapping is the canonical schema: static configuration,
    never discovered from the files being loaded.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    tables: dict[str, TableSchemaConfig] = Field(min_length=1)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("tables")
    @classmethod
    def validate_table_names(
        cls, v: dict[str, TableSchemaConfig]
    ) -> dict[str, TableSchemaConfig]:
        """Ensure table names are valid identifiers."""
        for name in v:
            validate_identifier(name, "table name")
        return v

    @property
    def table_names(self) -> list[str]:
        """Configured target tables, in declaration order."""
        return list(self.tables)

    def summary(self) -> dict[str, Any]:
        """Loggable summary without credentials."""
        return {
            "dialect": self.database.url.split(":", 1)[0],
            "tables": self.table_names,
            "batch_size": self.ingestion.batch_size,
            "csv_delimiter": self.ingestion.csv_delimiter,
        }
