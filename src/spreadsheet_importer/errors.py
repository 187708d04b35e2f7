"""
Exception taxonomy for the import pipeline.

Pre-flight errors (UnreadableFile, InvalidSheetIndex, MissingRequiredField,
UnknownField, CorruptRow on the header) propagate to the caller before any
row is processed. ValidationFailed is a per-row signal raised by record
callbacks. FatalProcessingError aborts a run that is already underway.
"""

from typing import Iterable, Optional


class SpreadsheetImportError(Exception):
    """Base class for all import pipeline errors."""
    pass


class UnreadableFile(SpreadsheetImportError):
    """Raised when a file cannot be opened, parsed, or read in time."""
    pass


class InvalidSheetIndex(SpreadsheetImportError):
    """Raised when the requested sheet does not exist in the file."""

    def __init__(self, index: int, available: int):
        self.index = index
        self.available = available
        super().__init__(
            f"Sheet index {index} is out of range (file has {available} sheet(s))"
        )


class MissingRequiredField(SpreadsheetImportError):
    """Raised before processing when required fields have no source column."""

    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(missing)
        super().__init__(f"Missing required field(s): {', '.join(self.missing)}")


class UnknownField(SpreadsheetImportError):
    """Raised when an explicit column mapping names fields the importer does not know."""

    def __init__(self, fields: Iterable[str]):
        self.fields = sorted(fields)
        super().__init__(f"Unknown field(s) in column mapping: {', '.join(self.fields)}")


class CorruptRow(SpreadsheetImportError):
    """Raised when a row cannot be decoded where that is fatal (the header row)."""

    def __init__(self, row_number: int, reason: str):
        self.row_number = row_number
        self.reason = reason
        super().__init__(f"Row {row_number} could not be decoded: {reason}")


class ValidationFailed(SpreadsheetImportError):
    """Raised by a record callback to reject a single row."""

    def __init__(self, field: Optional[str], message: str):
        self.field = field
        self.message = message
        super().__init__(message)


class FatalProcessingError(SpreadsheetImportError):
    """Raised by a record callback when the whole run must stop."""
    pass
