"""
Configuration management with typed Pydantic models.

Provides the canonical schema, database target and parsing options
as one explicit object passed into the pipeline.
"""

from caseload.config.loader import build_config, load_config
from caseload.config.settings import (
    DatabaseConfig,
    IngestionConfig,
    LoggingConfig,
    PipelineConfig,
    TableSchemaConfig,
)

__all__ = [
    "DatabaseConfig",
    "IngestionConfig",
    "LoggingConfig",
    "PipelineConfig",
    "TableSchemaConfig",
    "build_config",
    "load_config",
]
