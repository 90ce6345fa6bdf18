"""
Ingestion pipeline implementation.

Loads a run's (file, table) pairs one by one, each file in its own
transaction, then promotes date columns of every table the run touched.
"""

import threading
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

import sqlalchemy as sa

from caseload.config.settings import PipelineConfig
from caseload.errors import IncompatibleSchemaError
from caseload.etl.status import LogStatusReporter, StatusReporter
from caseload.ingestion.base import detect_format, open_row_source
from caseload.ingestion.opener import FileOpener, LocalFileOpener
from caseload.normalization.columns import build_projection, normalize_headers
from caseload.normalization.rows import RowTransformer
from caseload.schemas.canonical import SchemaRegistry
from caseload.utils.logging import get_logger, log_context
from caseload.warehouse.coercion import CoercionOutcome, TypeCoercionPass
from caseload.warehouse.engine import create_warehouse_engine
from caseload.warehouse.loader import BatchLoader
from caseload.warehouse.preparer import SchemaPreparer

log = get_logger(__name__)

CANCELLED = "cancelled"


class FileState(str, Enum):
    """Lifecycle of one file within a run."""

    PENDING = "pending"
    PREPARING = "preparing"
    LOADING = "loading"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass(frozen=True)
class FileRequest:
    """One (file locator, target table) pair of an ingestion job."""

    locator: str
    table: str

    @classmethod
    def parse(cls, value: str) -> "FileRequest":
        """
        Parse a ``LOCATOR:TABLE`` string.

        The last colon separates the table, so locators may contain colons.

        Raises:
            ValueError: If either part is missing.
        """
        locator, sep, table = value.rpartition(":")
        if not sep or not locator.strip() or not table.strip():
            msg = f"Expected LOCATOR:TABLE, got: {value!r}"
            raise ValueError(msg)
        return cls(locator=locator.strip(), table=table.strip())


@dataclass
class FileOutcome:
    """
    Result of processing one file.

    Attributes:
        locator: File locator as requested.
        table: Target table.
        state: Terminal state (committed or failed) once processed.
        rows_loaded: Rows inserted (0 unless committed).
        columns_loaded: Canonical columns matched in the header.
        error: Failure description for failed files.
        duration_seconds: Wall time spent on the file.
    """

    locator: str
    table: str
    state: FileState = FileState.PENDING
    rows_loaded: int = 0
    columns_loaded: tuple[str, ...] = ()
    error: str | None = None
    duration_seconds: float = 0.0

    @property
    def committed(self) -> bool:
        return self.state is FileState.COMMITTED


@dataclass
class RunResult:
    """
    Result of one ingestion run.

    Attributes:
        job_id: Identifier of the run.
        files: One outcome per requested file, in request order.
        coercions: One outcome per (table, date column) pair.
    """

    job_id: str
    files: list[FileOutcome] = field(default_factory=list)
    coercions: list[CoercionOutcome] = field(default_factory=list)

    @property
    def n_committed(self) -> int:
        return sum(1 for f in self.files if f.committed)

    @property
    def n_failed(self) -> int:
        return sum(1 for f in self.files if f.state is FileState.FAILED)

    @property
    def rows_loaded(self) -> int:
        return sum(f.rows_loaded for f in self.files)

    @property
    def ok(self) -> bool:
        """Whether every file committed and every date column converted."""
        return self.n_failed == 0 and all(c.ok for c in self.coercions)


class IngestionPipeline:
    """
    Run orchestrator for tabular ingestion.

    Each file goes pending -> preparing -> loading -> committed, or ends
    failed. A failed file rolls back its own transaction and never stops
    the remaining files. Once every file has been attempted, the date
    coercion pass runs over all configured tables the run referenced,
    even if every file failed.

    Each table is truncated at most once per run, by the first file for
    that table that commits. Later files append.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        engine: sa.Engine | None = None,
        opener: FileOpener | None = None,
        status: StatusReporter | None = None,
    ) -> None:
        """
        Initialize ingestion pipeline.

        Args:
            config: Pipeline configuration.
            engine: Database engine; created from config if omitted.
            opener: File opening strategy; defaults to local files under
                ``ingestion.data_root``.
            status: Job status reporter; defaults to logging.
        """
        self.config = config
        self.registry = SchemaRegistry.from_config(config)
        self.engine = engine if engine is not None else create_warehouse_engine(config.database)
        self.opener = opener if opener is not None else LocalFileOpener(config.ingestion.data_root)
        self.status = status if status is not None else LogStatusReporter()

    def run(
        self,
        requests: Iterable[FileRequest],
        *,
        job_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RunResult:
        """
        Run one ingestion job.

        Args:
            requests: Files to load, processed in order.
            job_id: Identifier for logs and status; generated if omitted.
            cancel_event: When set, the in-flight file fails at its next
                batch boundary and remaining files are skipped as failed.

        Returns:
            RunResult with per-file and per-column outcomes.
        """
        job_id = job_id or uuid.uuid4().hex
        requests = list(requests)
        result = RunResult(job_id=job_id)
        replaced: set[str] = set()
        n_files = len(requests)

        with log_context(job_id=job_id):
            log.info("Starting ingestion run", files=n_files, **self.config.summary())
            self.status.update(job_id, "in_progress", f"Processing {n_files} files", 0)

            for i, request in enumerate(requests, start=1):
                outcome = FileOutcome(locator=request.locator, table=request.table)
                result.files.append(outcome)

                if cancel_event is not None and cancel_event.is_set():
                    outcome.state = FileState.FAILED
                    outcome.error = CANCELLED
                    log.warning("Skipping file after cancellation", file=request.locator)
                    continue

                with log_context(table=request.table, file=request.locator):
                    self.process_file(
                        request,
                        outcome,
                        replaced=replaced,
                        cancel_event=cancel_event,
                    )

                self.status.update(
                    job_id,
                    "in_progress",
                    f"Processed {i}/{n_files} files",
                    int(90 * i / n_files),
                )

            tables = list(
                dict.fromkeys(r.table for r in requests if r.table in self.registry)
            )
            if tables:
                result.coercions = TypeCoercionPass(self.engine, self.registry).run(tables)

            log.info(
                "Ingestion run finished",
                committed=result.n_committed,
                failed=result.n_failed,
                rows=result.rows_loaded,
            )

        if result.n_failed:
            self.status.update(
                job_id,
                "error",
                f"{result.n_failed} of {n_files} files failed",
                100,
            )
        else:
            self.status.update(
                job_id,
                "completed",
                f"Loaded {result.rows_loaded} rows from {n_files} files",
                100,
            )
        return result

    def process_file(
        self,
        request: FileRequest,
        outcome: FileOutcome,
        *,
        replaced: set[str],
        cancel_event: threading.Event | None = None,
    ) -> FileOutcome:
        """
        Load one file into its table, containing any failure.

        The header is read and projected before the transaction opens,
        so unsupported or incompatible files never touch the database.

        Args:
            request: File to load.
            outcome: Outcome to update in place.
            replaced: Tables already truncated in this run; updated on commit.
            cancel_event: Checked at every batch flush.

        Returns:
            The updated outcome.
        """
        start = time.perf_counter()
        outcome.state = FileState.PREPARING

        try:
            rows_loaded = self._load(request, outcome, replaced, cancel_event)
        except Exception as e:  # noqa: BLE001
            outcome.state = FileState.FAILED
            outcome.error = str(e) or type(e).__name__
            log.error(
                "File failed, transaction rolled back",
                error=outcome.error,
                error_type=type(e).__name__,
            )
        else:
            outcome.state = FileState.COMMITTED
            outcome.rows_loaded = rows_loaded
            replaced.add(request.table)
            log.info("File committed", rows=rows_loaded)
        finally:
            outcome.duration_seconds = time.perf_counter() - start

        return outcome

    def _load(
        self,
        request: FileRequest,
        outcome: FileOutcome,
        replaced: set[str],
        cancel_event: threading.Event | None,
    ) -> int:
        schema = self.registry.get(request.table)
        opened = self.opener.open(request.locator)

        with opened.stream:
            file_format = detect_format(opened.filename)
            source = open_row_source(file_format, opened.stream, self.config.ingestion)
            rows = iter(source)

            header = next(rows, None)
            if header is None:
                msg = f"No header row in {opened.filename!r}"
                raise IncompatibleSchemaError(msg)

            projection = build_projection(normalize_headers(header), schema)
            transformer = RowTransformer(schema, projection)
            outcome.columns_loaded = projection.present_columns

            with self.engine.begin() as conn:
                SchemaPreparer(schema).prepare(conn, truncate=request.table not in replaced)

                outcome.state = FileState.LOADING
                loader = BatchLoader(
                    conn,
                    schema.table,
                    schema.column_names,
                    projection.present_columns,
                    batch_size=self.config.ingestion.batch_size,
                    cancel_event=cancel_event,
                )
                return loader.load(transformer.transform(row) for row in rows)


def run_ingestion(
    config: PipelineConfig,
    requests: Iterable[FileRequest],
    *,
    engine: sa.Engine | None = None,
    opener: FileOpener | None = None,
    status: StatusReporter | None = None,
    job_id: str | None = None,
) -> RunResult:
    """
    Convenience function to run one ingestion job.

    Args:
        config: Pipeline configuration.
        requests: Files to load.
        engine: Optional database engine.
        opener: Optional file opening strategy.
        status: Optional job status reporter.
        job_id: Optional job identifier.

    Returns:
        RunResult with per-file and per-column outcomes.
    """
    pipeline = IngestionPipeline(config, engine=engine, opener=opener, status=status)
    return pipeline.run(requests, job_id=job_id)
