"""Pytest configuration and shared fixtures."""

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import sqlalchemy as sa
from openpyxl import Workbook

from caseload.config import PipelineConfig, build_config
from caseload.warehouse import create_warehouse_engine


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Directory that relative file locators resolve against."""
    path = tmp_path / "inbox"
    path.mkdir()
    return path


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """URL of a throwaway SQLite warehouse."""
    return f"sqlite:///{tmp_path / 'warehouse.db'}"


@pytest.fixture
def base_config(db_url: str, data_dir: Path) -> dict[str, Any]:
    """Create a minimal configuration dictionary for testing."""
    case_columns = {
        "columns": ["numerotramite", "fechaexpendiente", "dependencia", "fechapre"],
        "date_columns": ["fechaexpendiente", "fechapre"],
        "aliases": {
            "expediente": "numerotramite",
            "fecha_ingreso": "fechaexpendiente",
        },
    }
    return {
        "database": {"url": db_url},
        "ingestion": {
            "csv_delimiter": ";",
            "batch_size": 2,
            "read_chunk_rows": 2,
            "data_root": str(data_dir),
        },
        "tables": {
            "cases": case_columns,
            "archive": case_columns,
        },
        "logging": {"level": "DEBUG"},
    }


@pytest.fixture
def pipeline_config(base_config: dict[str, Any]) -> PipelineConfig:
    """Validated configuration backed by the temporary warehouse."""
    return build_config(base_config)


@pytest.fixture
def engine(pipeline_config: PipelineConfig) -> Iterator[sa.Engine]:
    """Engine for the temporary warehouse."""
    engine = create_warehouse_engine(pipeline_config.database)
    yield engine
    engine.dispose()


@pytest.fixture
def write_csv(data_dir: Path) -> Callable[[str, str], str]:
    """Write a delimited file into the inbox; returns its locator."""

    def _write(name: str, content: str) -> str:
        (data_dir / name).write_text(content, encoding="utf-8")
        return name

    return _write


@pytest.fixture
def write_xlsx(data_dir: Path) -> Callable[[str, list[list[Any]]], str]:
    """Write a single-sheet workbook into the inbox; returns its locator."""

    def _write(name: str, rows: list[list[Any]]) -> str:
        workbook = Workbook()
        sheet = workbook.active
        for row in rows:
            sheet.append(row)
        workbook.save(data_dir / name)
        return name

    return _write


@pytest.fixture
def fetch_rows(engine: sa.Engine) -> Callable[..., list[tuple[Any, ...]]]:
    """Read selected columns of a table in insertion order."""

    def _fetch(table: str, *columns: str) -> list[tuple[Any, ...]]:
        selected = ", ".join(columns) if columns else "*"
        with engine.connect() as conn:
            result = conn.execute(sa.text(f"SELECT {selected} FROM {table} ORDER BY rowid"))
            return [tuple(row) for row in result]

    return _fetch


@pytest.fixture
def column_types(engine: sa.Engine) -> Callable[[str], dict[str, sa.types.TypeEngine]]:
    """Reflect column types of a table."""

    def _types(table: str) -> dict[str, sa.types.TypeEngine]:
        return {col["name"]: col["type"] for col in sa.inspect(engine).get_columns(table)}

    return _types
