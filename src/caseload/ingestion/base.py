"""
Base classes and utilities for row sources.

A row source turns one file into a lazy, forward-only sequence of raw
rows. Each row is a list of untyped cells (str, number, date or None).
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from enum import Enum
from pathlib import PurePath
from typing import TYPE_CHECKING, Any, BinaryIO

from caseload.errors import UnsupportedFormatError
from caseload.utils.logging import get_logger

if TYPE_CHECKING:
    from caseload.config.settings import IngestionConfig

log = get_logger(__name__)

RawRow = list[Any]


class FileFormat(str, Enum):
    """Physical format of a source file."""

    DELIMITED = "delimited"  # .csv
    SPREADSHEET = "spreadsheet"  # .xlsx / .xls (zip archive)


EXTENSION_FORMATS: dict[str, FileFormat] = {
    ".csv": FileFormat.DELIMITED,
    ".xlsx": FileFormat.SPREADSHEET,
    ".xls": FileFormat.SPREADSHEET,
}


def detect_format(filename: str) -> FileFormat:
    """
    Infer the file format from its extension.

    Args:
        filename: File name or path; only the extension is used.

    Returns:
        Detected file format.

    Raises:
        UnsupportedFormatError: If the extension is not recognized.
    """
    suffix = PurePath(filename).suffix.lower()
    if suffix not in EXTENSION_FORMATS:
        supported = ", ".join(sorted(EXTENSION_FORMATS))
        msg = f"Unsupported file format {suffix or '(none)'!r} for {filename!r}. Supported: {supported}"
        raise UnsupportedFormatError(msg)
    return EXTENSION_FORMATS[suffix]


def is_blank_row(row: RawRow) -> bool:
    """Whether every cell of a row is empty."""
    return all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in row)


class RowSource(ABC):
    """
    Abstract base class for row sources.

    Iteration is single-pass: a second iteration raises RuntimeError.
    Create a new instance to re-read a file.
    """

    def __init__(self, stream: BinaryIO) -> None:
        """
        Initialize row source.

        Args:
            stream: Binary file object positioned at the start of the file.
        """
        self.stream = stream
        self._consumed = False
        self.rows_read = 0

    @abstractmethod
    def _iter_rows(self) -> Iterator[RawRow]:
        """Yield raw rows from the stream. Implemented by subclasses."""
        ...

    def __iter__(self) -> Iterator[RawRow]:
        if self._consumed:
            msg = f"{self.__class__.__name__} is not restartable; open the file again"
            raise RuntimeError(msg)
        self._consumed = True
        return self._counted(self._iter_rows())

    def _counted(self, rows: Iterator[RawRow]) -> Iterator[RawRow]:
        for row in rows:
            if is_blank_row(row):
                continue
            self.rows_read += 1
            yield row
        log.debug(
            "Row source exhausted",
            source=self.__class__.__name__,
            rows=self.rows_read,
        )

    def close(self) -> None:
        """Release the underlying stream."""
        self.stream.close()

    def __enter__(self) -> "RowSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_row_source(
    file_format: FileFormat,
    stream: BinaryIO,
    config: "IngestionConfig",
) -> RowSource:
    """
    Create the row source for a file format.

    Args:
        file_format: Detected file format.
        stream: Binary file object.
        config: Ingestion configuration (delimiter, encoding, chunking).

    Returns:
        Row source ready for iteration.
    """
    if file_format is FileFormat.DELIMITED:
        from caseload.ingestion.delimited import DelimitedRowSource

        return DelimitedRowSource(
            stream,
            delimiter=config.csv_delimiter,
            encoding=config.csv_encoding,
            chunk_rows=config.read_chunk_rows,
        )

    from caseload.ingestion.spreadsheet import SpreadsheetRowSource

    return SpreadsheetRowSource(stream)
