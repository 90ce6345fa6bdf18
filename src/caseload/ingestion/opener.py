"""
File opening strategies.

The pipeline does not know where files live. It receives an opener
that resolves an opaque locator into a filename and a byte stream.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

from caseload.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class OpenedFile:
    """
    A resolved file locator.

    Attributes:
        filename: Name used to infer the format (by extension).
        stream: Binary stream of the file contents.
        size_bytes: Size, if known.
    """

    filename: str
    stream: BinaryIO
    size_bytes: int | None = None


class FileOpener(Protocol):
    """Resolves a file locator into an opened file."""

    def open(self, locator: str) -> OpenedFile:
        """
        Open the file behind a locator.

        Raises:
            FileNotFoundError: If the locator cannot be resolved.
        """
        ...


class LocalFileOpener:
    """Opens locators as paths on the local filesystem."""

    def __init__(self, root: Path | None = None) -> None:
        """
        Initialize local file opener.

        Args:
            root: Directory that relative locators are resolved against.
        """
        self.root = root

    def resolve(self, locator: str) -> Path:
        """Resolve a locator against the root directory."""
        path = Path(locator).expanduser()
        if not path.is_absolute() and self.root is not None:
            path = self.root / path
        return path

    def open(self, locator: str) -> OpenedFile:
        """Open a local file for binary reading."""
        path = self.resolve(locator)
        if not path.is_file():
            msg = f"Source file not found: {path}"
            raise FileNotFoundError(msg)

        size = path.stat().st_size
        log.info("Opening local file", path=str(path), size_mb=round(size / 1024 / 1024, 2))
        return OpenedFile(filename=path.name, stream=path.open("rb"), size_bytes=size)
