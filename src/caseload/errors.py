"""
Error taxonomy for the ingestion pipeline.

Every error here is contained at the smallest scope that preserves
correctness: cell errors never surface, file errors fail one file,
coercion errors skip one (table, column) pair.
"""


class IngestionError(Exception):
    """Base class for all ingestion failures."""


class UnsupportedFormatError(IngestionError, ValueError):
    """File extension does not map to a known Row Source."""


class IncompatibleSchemaError(IngestionError, ValueError):
    """File header shares no column with the canonical schema."""


class UnknownTableError(IngestionError, LookupError):
    """Target table has no canonical schema configured."""


class IngestionCancelledError(IngestionError):
    """Cancellation was requested and observed at a batch boundary."""


class CoercionError(IngestionError):
    """A text column could not be converted to a date column."""
