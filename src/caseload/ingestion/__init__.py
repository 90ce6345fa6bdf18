"""
Data ingestion layer for reading raw rows from source files.

All file parsing happens through this module so both formats share
one iteration contract.
"""

from caseload.ingestion.base import (
    FileFormat,
    RawRow,
    RowSource,
    detect_format,
    open_row_source,
)
from caseload.ingestion.delimited import DelimitedRowSource
from caseload.ingestion.opener import FileOpener, LocalFileOpener, OpenedFile
from caseload.ingestion.spreadsheet import SpreadsheetRowSource

__all__ = [
    "DelimitedRowSource",
    "FileFormat",
    "FileOpener",
    "LocalFileOpener",
    "OpenedFile",
    "RawRow",
    "RowSource",
    "SpreadsheetRowSource",
    "detect_format",
    "open_row_source",
]
