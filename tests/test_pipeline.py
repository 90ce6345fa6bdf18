"""End-to-end tests for the ingestion pipeline on SQLite."""

import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import sqlalchemy as sa

from caseload.config import PipelineConfig
from caseload.etl import (
    FileRequest,
    FileState,
    IngestionPipeline,
    IngestionService,
    MemoryStatusReporter,
    run_ingestion,
)
from caseload.ingestion import LocalFileOpener, OpenedFile
from caseload.normalization.rows import RowTransformer

SCENARIO_CSV = "EXPEDIENTE;FECHA_INGRESO\nA1;15/03/2024\nA2;\n"


@pytest.fixture
def pipeline(pipeline_config: PipelineConfig, engine: sa.Engine) -> IngestionPipeline:
    return IngestionPipeline(pipeline_config, engine=engine)


class CancellingOpener(LocalFileOpener):
    """Requests cancellation as soon as a file is opened."""

    def __init__(self, root: Path, cancel_event: threading.Event) -> None:
        super().__init__(root)
        self.cancel_event = cancel_event

    def open(self, locator: str) -> OpenedFile:
        opened = super().open(locator)
        self.cancel_event.set()
        return opened


class TestFileRequest:
    """Tests for LOCATOR:TABLE parsing."""

    def test_parse(self) -> None:
        """Test splitting on the last colon."""
        assert FileRequest.parse("exports/ccm.csv:cases") == FileRequest("exports/ccm.csv", "cases")
        assert FileRequest.parse("s3://bucket/ccm.xlsx:cases") == FileRequest(
            "s3://bucket/ccm.xlsx", "cases"
        )

    @pytest.mark.parametrize("value", ["ccm.csv", "ccm.csv:", ":cases"])
    def test_parse_invalid(self, value: str) -> None:
        """Test that a locator and a table are both required."""
        with pytest.raises(ValueError, match="LOCATOR:TABLE"):
            FileRequest.parse(value)


class TestIngestionPipeline:
    """Tests for the run orchestrator."""

    def test_delimited_scenario(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test aliased headers, day-first dates and empty dates."""
        locator = write_csv("ccm.csv", SCENARIO_CSV)

        result = pipeline.run([FileRequest(locator, "cases")])

        assert result.ok
        assert result.files[0].state is FileState.COMMITTED
        assert result.files[0].rows_loaded == 2
        assert result.files[0].columns_loaded == ("numerotramite", "fechaexpendiente")
        assert fetch_rows("cases", "numerotramite", "fechaexpendiente", "dependencia") == [
            ("A1", "2024-03-15", None),
            ("A2", None, None),
        ]

    def test_date_columns_promoted(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        column_types: Callable[[str], dict[str, sa.types.TypeEngine]],
    ) -> None:
        """Test that the coercion pass runs after loading."""
        locator = write_csv("ccm.csv", SCENARIO_CSV)

        result = pipeline.run([FileRequest(locator, "cases")])

        assert [(c.column, c.status) for c in result.coercions] == [
            ("fechaexpendiente", "converted"),
            ("fechapre", "converted"),
        ]
        types = column_types("cases")
        assert isinstance(types["fechaexpendiente"], sa.Date)
        assert isinstance(types["numerotramite"], sa.Text)

    def test_spreadsheet_file(
        self,
        pipeline: IngestionPipeline,
        write_xlsx: Callable[[str, list[list[Any]]], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test serials, datetimes and typed text cells from a workbook."""
        locator = write_xlsx(
            "prr.xlsx",
            [
                ["NumeroTramite", "FechaExpendiente", "Dependencia", "FechaPre"],
                [1001, 45000, "Lima", datetime(2024, 3, 15, 9, 45)],
                ["A2", "9/08/2024 1:39:49", None, "not a date"],
                [None, None, None, None],
                ["A3"],
            ],
        )

        result = pipeline.run([FileRequest(locator, "cases")])

        assert result.files[0].committed
        assert result.files[0].rows_loaded == 3
        assert fetch_rows("cases", *pipeline.registry.get("cases").column_names) == [
            ("1001", "2023-03-15", "Lima", "2024-03-15"),
            ("A2", "2024-08-09", None, None),
            ("A3", None, None, None),
        ]

    def test_full_replace_is_idempotent(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test that loading the same file twice yields the same contents."""
        locator = write_csv("ccm.csv", SCENARIO_CSV)

        pipeline.run([FileRequest(locator, "cases")])
        first = fetch_rows("cases", "numerotramite", "fechaexpendiente")
        second_result = pipeline.run([FileRequest(locator, "cases")])
        second = fetch_rows("cases", "numerotramite", "fechaexpendiente")

        assert first == second
        assert len(second) == 2
        assert {c.status for c in second_result.coercions} == {"already_date"}

    def test_files_for_same_table_append(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test that a table is truncated once per run, not once per file."""
        first = write_csv("part1.csv", "numerotramite\nA1\nA2\nA3\n")
        second = write_csv("part2.csv", "numerotramite\nB1\n")

        pipeline.run([FileRequest(first, "cases")])
        result = pipeline.run([FileRequest(first, "cases"), FileRequest(second, "cases")])

        assert result.n_committed == 2
        assert fetch_rows("cases", "numerotramite") == [("A1",), ("A2",), ("A3",), ("B1",)]

    def test_per_file_isolation(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        data_dir: Path,
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test that a malformed second file leaves the first committed."""
        good = write_csv("good.csv", SCENARIO_CSV)
        (data_dir / "broken.xlsx").write_bytes(b"PK\x03\x04 truncated archive")

        result = pipeline.run([FileRequest(good, "cases"), FileRequest("broken.xlsx", "cases")])

        assert [f.state for f in result.files] == [FileState.COMMITTED, FileState.FAILED]
        assert result.files[1].error
        assert not result.ok
        assert fetch_rows("cases", "numerotramite") == [("A1",), ("A2",)]

    def test_unterminated_quote_fails_file(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test that a CSV cut off inside a quoted cell fails instead of loading nothing."""
        good = write_csv("good.csv", SCENARIO_CSV)
        bad = write_csv("bad.csv", 'numerotramite;dependencia\nB1;"Lima\nB2;Cusco\nB3;Piura\n')

        result = pipeline.run([FileRequest(good, "cases"), FileRequest(bad, "cases")])

        assert [f.state for f in result.files] == [FileState.COMMITTED, FileState.FAILED]
        assert result.files[1].error
        assert fetch_rows("cases", "numerotramite") == [("A1",), ("A2",)]

    def test_unterminated_quote_keeps_previous_contents(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test that a malformed first file does not leave its table truncated."""
        pipeline.run([FileRequest(write_csv("old.csv", "numerotramite\nOLD\n"), "cases")])
        bad = write_csv("bad.csv", 'numerotramite;dependencia\nB1;"Lima\nB2;Cusco\n')

        result = pipeline.run([FileRequest(bad, "cases")])

        assert result.files[0].state is FileState.FAILED
        assert fetch_rows("cases", "numerotramite") == [("OLD",)]

    def test_mid_file_failure_rolls_back(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that a failure after some batches restores the prior contents."""
        pipeline.run([FileRequest(write_csv("old.csv", "numerotramite\nOLD\n"), "cases")])

        class FailingTransformer(RowTransformer):
            def transform(self, row: Any) -> Any:
                if row[0] == "N4":
                    msg = "server closed the connection unexpectedly"
                    raise ConnectionError(msg)
                return super().transform(row)

        monkeypatch.setattr("caseload.etl.pipeline.RowTransformer", FailingTransformer)
        new = write_csv("new.csv", "numerotramite\nN1\nN2\nN3\nN4\n")

        result = pipeline.run([FileRequest(new, "cases")])

        assert result.files[0].state is FileState.FAILED
        assert "server closed" in (result.files[0].error or "")
        assert fetch_rows("cases", "numerotramite") == [("OLD",)]

    def test_failed_first_file_leaves_truncate_to_next(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test that stale rows do not survive when the first file fails."""
        pipeline.run([FileRequest(write_csv("old.csv", "numerotramite\nOLD\n"), "cases")])
        bad = write_csv("bad.csv", "foo;bar\n1;2\n")
        good = write_csv("good.csv", "numerotramite\nNEW\n")

        result = pipeline.run([FileRequest(bad, "cases"), FileRequest(good, "cases")])

        assert [f.state for f in result.files] == [FileState.FAILED, FileState.COMMITTED]
        assert fetch_rows("cases", "numerotramite") == [("NEW",)]

    def test_incompatible_file_never_touches_database(
        self,
        pipeline: IngestionPipeline,
        engine: sa.Engine,
        write_csv: Callable[[str, str], str],
    ) -> None:
        """Test that a header without canonical columns fails before loading."""
        locator = write_csv("other.csv", "foo;bar\n1;2\n")

        result = pipeline.run([FileRequest(locator, "cases")])

        assert "Incompatible file format" in (result.files[0].error or "")
        assert not sa.inspect(engine).has_table("cases")
        assert {c.status for c in result.coercions} == {"missing_table"}

    @pytest.mark.parametrize(
        ("request_", "message"),
        [
            (FileRequest("ccm.json", "cases"), "Unsupported file format"),
            (FileRequest("ccm.csv", "unknown_table"), "Unknown target table"),
            (FileRequest("missing.csv", "cases"), "not found"),
            (FileRequest("empty.csv", "cases"), "No header row"),
        ],
    )
    def test_file_level_errors(
        self,
        pipeline: IngestionPipeline,
        write_csv: Callable[[str, str], str],
        request_: FileRequest,
        message: str,
    ) -> None:
        """Test that each file-level error is contained and reported."""
        write_csv("ccm.json", "{}")
        write_csv("ccm.csv", SCENARIO_CSV)
        write_csv("empty.csv", "")

        result = pipeline.run([request_])

        assert result.n_failed == 1
        assert message in (result.files[0].error or "")

    def test_all_files_failed_still_coerces(
        self, pipeline: IngestionPipeline, write_csv: Callable[[str, str], str]
    ) -> None:
        """Test that the coercion pass runs even when nothing loaded."""
        write_csv("ccm.json", "{}")

        result = pipeline.run(
            [FileRequest("ccm.json", "cases"), FileRequest("ccm.json", "archive")]
        )

        assert result.n_failed == 2
        assert {c.table for c in result.coercions} == {"cases", "archive"}

    def test_cancellation(
        self,
        pipeline_config: PipelineConfig,
        engine: sa.Engine,
        data_dir: Path,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test that cancellation fails the in-flight and remaining files."""
        old = write_csv("old.csv", "numerotramite\nOLD\n")
        IngestionPipeline(pipeline_config, engine=engine).run([FileRequest(old, "cases")])

        cancel = threading.Event()
        pipeline = IngestionPipeline(
            pipeline_config,
            engine=engine,
            opener=CancellingOpener(data_dir, cancel),
        )
        first = write_csv("first.csv", "numerotramite\nA1\nA2\nA3\n")
        second = write_csv("second.csv", "numerotramite\nB1\n")

        result = pipeline.run(
            [FileRequest(first, "cases"), FileRequest(second, "archive")],
            cancel_event=cancel,
        )

        assert [f.state for f in result.files] == [FileState.FAILED, FileState.FAILED]
        assert "cancelled" in (result.files[0].error or "")
        assert result.files[1].error == "cancelled"
        assert fetch_rows("cases", "numerotramite") == [("OLD",)]
        assert {c.table for c in result.coercions} == {"cases", "archive"}

    def test_status_updates(
        self,
        pipeline_config: PipelineConfig,
        engine: sa.Engine,
        write_csv: Callable[[str, str], str],
    ) -> None:
        """Test job status published through the reporter."""
        status = MemoryStatusReporter()
        locator = write_csv("ccm.csv", SCENARIO_CSV)

        run_ingestion(
            pipeline_config,
            [FileRequest(locator, "cases")],
            engine=engine,
            status=status,
            job_id="job-1",
        )

        history = status.history("job-1")
        assert history[0].status == "in_progress"
        assert history[0].progress == 0
        latest = status.get("job-1")
        assert latest is not None
        assert latest.status == "completed"
        assert latest.progress == 100

    def test_status_reports_error(
        self,
        pipeline_config: PipelineConfig,
        engine: sa.Engine,
    ) -> None:
        """Test that a run with failed files ends in the error status."""
        status = MemoryStatusReporter()

        run_ingestion(
            pipeline_config,
            [FileRequest("missing.csv", "cases")],
            engine=engine,
            status=status,
            job_id="job-2",
        )

        latest = status.get("job-2")
        assert latest is not None
        assert latest.status == "error"
        assert "1 of 1 files failed" in latest.message


class TestIngestionService:
    """Tests for the asynchronous trigger interface."""

    def test_submit_returns_handle(
        self,
        pipeline_config: PipelineConfig,
        engine: sa.Engine,
        write_csv: Callable[[str, str], str],
        fetch_rows: Callable[..., list[tuple[Any, ...]]],
    ) -> None:
        """Test that a submitted job runs in the background."""
        status = MemoryStatusReporter()
        locator = write_csv("ccm.csv", SCENARIO_CSV)

        with IngestionService(
            lambda: IngestionPipeline(pipeline_config, engine=engine, status=status),
            status=status,
        ) as service:
            handle = service.submit([FileRequest(locator, "cases")])
            result = handle.result(timeout=60)

        assert handle.job_id
        assert result.job_id == handle.job_id
        assert result.ok
        assert status.history(handle.job_id)[0].status == "pending"
        assert fetch_rows("cases", "numerotramite") == [("A1",), ("A2",)]

    def test_jobs_run_sequentially(
        self,
        pipeline_config: PipelineConfig,
        engine: sa.Engine,
        write_csv: Callable[[str, str], str],
    ) -> None:
        """Test that queued jobs all complete, one after another."""
        locator = write_csv("ccm.csv", SCENARIO_CSV)

        with IngestionService(lambda: IngestionPipeline(pipeline_config, engine=engine)) as service:
            handles = [service.submit([FileRequest(locator, "cases")]) for _ in range(3)]
            results = [h.result(timeout=60) for h in handles]

        assert len({h.job_id for h in handles}) == 3
        assert all(r.ok for r in results)

    def test_progress_reaches_service_reporter(
        self,
        pipeline_config: PipelineConfig,
        engine: sa.Engine,
        write_csv: Callable[[str, str], str],
    ) -> None:
        """Test that a pipeline built without a reporter still reports to the service."""
        locator = write_csv("ccm.csv", SCENARIO_CSV)

        with IngestionService(lambda: IngestionPipeline(pipeline_config, engine=engine)) as service:
            handle = service.submit([FileRequest(locator, "cases")])
            handle.result(timeout=60)

        assert isinstance(service.status, MemoryStatusReporter)
        statuses = [u.status for u in service.status.history(handle.job_id)]
        assert statuses[0] == "pending"
        assert "in_progress" in statuses
        assert statuses[-1] == "completed"
