"""
Asynchronous trigger interface.

Callers submit a job and get an acknowledgement back immediately; a
single background worker runs jobs one after another.
"""

import threading
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from caseload.etl.pipeline import FileRequest, IngestionPipeline, RunResult
from caseload.etl.status import MemoryStatusReporter, StatusReporter
from caseload.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class JobHandle:
    """
    Acknowledgement of a submitted job.

    Attributes:
        job_id: Identifier used in logs and status updates.
        future: Resolves to the RunResult when the job finishes.
        cancel_event: Set by cancel() to stop the job at its next batch.
    """

    job_id: str
    future: "Future[RunResult]"
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        """Request cancellation at the next batch boundary."""
        self.cancel_event.set()
        self.future.cancel()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: float | None = None) -> RunResult:
        """Block until the job finishes and return its result."""
        return self.future.result(timeout=timeout)


class IngestionService:
    """
    Fire-and-forget front end for the ingestion pipeline.

    The service owns the job status reporter: it records the "pending"
    acknowledgement and is handed to every pipeline it runs, so a poller
    reading ``service.status`` sees each job through to completion.

    Example:
        service = IngestionService(lambda: IngestionPipeline(config))
        handle = service.submit([FileRequest("export.csv", "table_ccm")])
        ...
        result = handle.result()
    """

    def __init__(
        self,
        pipeline_factory: Callable[[], IngestionPipeline],
        *,
        status: StatusReporter | None = None,
    ) -> None:
        """
        Initialize ingestion service.

        Args:
            pipeline_factory: Builds the pipeline used for each job.
            status: Reporter for every update of the jobs run here;
                replaces the reporter of each pipeline the factory builds.
                Defaults to an in-memory store.
        """
        self.pipeline_factory = pipeline_factory
        self.status: StatusReporter = status if status is not None else MemoryStatusReporter()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingestion")

    def submit(self, requests: Iterable[FileRequest]) -> JobHandle:
        """
        Queue a job and return without waiting for it.

        Args:
            requests: Files to load.

        Returns:
            Handle carrying the job id and a future for the result.
        """
        requests = list(requests)
        job_id = uuid.uuid4().hex
        cancel_event = threading.Event()

        self.status.update(job_id, "pending", f"Queued {len(requests)} files", 0)

        future = self._executor.submit(self._run, job_id, requests, cancel_event)
        log.info("Ingestion job submitted", job_id=job_id, files=len(requests))
        return JobHandle(job_id=job_id, future=future, cancel_event=cancel_event)

    def _run(
        self,
        job_id: str,
        requests: list[FileRequest],
        cancel_event: threading.Event,
    ) -> RunResult:
        try:
            pipeline = self.pipeline_factory()
            pipeline.status = self.status
            return pipeline.run(requests, job_id=job_id, cancel_event=cancel_event)
        except Exception as e:
            log.exception("Ingestion job could not start", job_id=job_id, error=str(e))
            self.status.update(job_id, "error", str(e), 100)
            raise

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting jobs; optionally wait for queued ones."""
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "IngestionService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
