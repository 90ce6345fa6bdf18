"""
Configuration loading utilities.

Supports environment variable interpolation and config inheritance.
Minimal configs only need: database.url and at least one table.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml

from caseload.config.settings import (
    DatabaseConfig,
    IngestionConfig,
    LoggingConfig,
    PipelineConfig,
    TableSchemaConfig,
)


def _interpolate_env_vars(value: str) -> str:
    """
    Interpolate environment variables in string values.

    Supports ${VAR} and ${VAR:default} syntax.
    """
    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        return os.environ.get(var_name, default if default is not None else "")

    return re.sub(pattern, replacer, value)


def _process_config_values(obj: Any) -> Any:
    """Recursively process config values for env var interpolation."""
    if isinstance(obj, str):
        return _interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _process_config_values(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_process_config_values(item) for item in obj]
    return obj


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and process environment variables."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return _process_config_values(data) if data else {}


def build_config(data: dict[str, Any]) -> PipelineConfig:
    """
    Build a validated PipelineConfig from an already-merged mapping.

    Args:
        data: Raw configuration mapping.

    Returns:
        Fully validated PipelineConfig instance.

    Raises:
        ValueError: If required sections are missing or invalid.
    """
    database_data = data.get("database") or {}
    if not database_data.get("url"):
        msg = "Config must specify 'database.url'"
        raise ValueError(msg)

    tables_data = data.get("tables") or {}
    if not tables_data:
        msg = "Config must specify at least one table under 'tables'"
        raise ValueError(msg)

    database = DatabaseConfig(
        url=str(database_data["url"]),
        echo=bool(database_data.get("echo", False)),
    )

    ingestion_data = data.get("ingestion", {})
    ingestion = IngestionConfig(
        csv_delimiter=ingestion_data.get("csv_delimiter", ";"),
        csv_encoding=ingestion_data.get("csv_encoding", "utf-8-sig"),
        batch_size=ingestion_data.get("batch_size", 500),
        read_chunk_rows=ingestion_data.get("read_chunk_rows", 5_000),
        data_root=Path(ingestion_data.get("data_root", "./data")),
    )

    tables = {
        str(name): TableSchemaConfig(
            columns=list(table_data.get("columns", [])),
            date_columns=list(table_data.get("date_columns", [])),
            aliases=dict(table_data.get("aliases") or {}),
        )
        for name, table_data in tables_data.items()
    }

    logging_data = data.get("logging", {})
    logging = LoggingConfig(
        level=str(logging_data.get("level", "INFO")),
        json_output=bool(logging_data.get("json", False)),
    )

    return PipelineConfig(
        database=database,
        ingestion=ingestion,
        tables=tables,
        logging=logging,
    )


def load_config(
    config_path: Path,
    base_path: Path | None = None,
) -> PipelineConfig:
    """
    Load pipeline configuration from YAML file(s).

    Args:
        config_path: Path to the main configuration file.
        base_path: Optional path to base configuration for inheritance.
            Defaults to base.yaml next to config_path, if present.

    Returns:
        Fully validated PipelineConfig instance.
    """
    if base_path is not None:
        base_data = load_yaml(base_path)
    else:
        potential_base = config_path.parent / "base.yaml"
        if potential_base.exists() and potential_base.resolve() != config_path.resolve():
            base_data = load_yaml(potential_base)
        else:
            base_data = {}

    main_data = load_yaml(config_path)

    merged = _deep_merge(base_data, main_data)

    return build_config(merged)
