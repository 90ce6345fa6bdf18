"""
Ingestion orchestration.

Runs (file, table) jobs through parsing, projection, loading and the
date coercion pass.
"""

from caseload.etl.pipeline import (
    FileOutcome,
    FileRequest,
    FileState,
    IngestionPipeline,
    RunResult,
    run_ingestion,
)
from caseload.etl.service import IngestionService, JobHandle
from caseload.etl.status import LogStatusReporter, MemoryStatusReporter, StatusReporter

__all__ = [
    "FileOutcome",
    "FileRequest",
    "FileState",
    "IngestionPipeline",
    "IngestionService",
    "JobHandle",
    "LogStatusReporter",
    "MemoryStatusReporter",
    "RunResult",
    "StatusReporter",
    "run_ingestion",
]
