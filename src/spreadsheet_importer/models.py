"""
Data models and structures for the import pipeline.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO, Dict, Optional, Tuple, Union

MappedRecord = Dict[str, Any]


class FileFormat(str, Enum):
    """Supported on-disk formats."""
    CSV = "csv"
    TSV = "tsv"
    XLSX = "xlsx"

    @property
    def has_sheets(self) -> bool:
        return self is FileFormat.XLSX


class OutcomeKind(str, Enum):
    """Per-row result tag."""
    SUCCESS = "success"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """User-facing failure classification."""
    VALIDATION_FAILED = "validation_failed"
    CORRUPT_ROW = "corrupt_row"
    DUPLICATE_VALUE = "duplicate_value"
    REQUIRED_FIELD_MISSING = "required_field_missing"
    INVALID_REFERENCE = "invalid_reference"
    UNKNOWN = "unknown"


class RunStatus(str, Enum):
    """How a run ended."""
    COMPLETED = "completed"
    TRUNCATED = "truncated"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


@dataclass(frozen=True)
class SheetDescriptor:
    """A sheet inside a multi-sheet file."""
    name: str
    index: int
    row_count: Optional[int] = None  # only when the file records its dimensions


@dataclass(frozen=True)
class FileHandle:
    """An opened (but not yet read) source file."""
    source: Union[str, BinaryIO]
    name: str
    file_format: FileFormat
    size: Optional[int]
    sheets: Tuple[SheetDescriptor, ...] = ()


@dataclass(frozen=True)
class RawRow:
    """Cells of one source row and its position in the file.

    ``number`` is the zero-based physical row index, so a header on the first
    line is row 0 and the data row below it is row 1. ``error`` is set when
    the row could not be decoded.
    """
    number: int
    cells: Tuple[Any, ...]
    error: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        return self.error is None and all(c is None for c in self.cells)


@dataclass(frozen=True)
class ColumnBinding:
    """One source column bound to one importer field."""
    column_index: int
    field_name: str


@dataclass(frozen=True)
class HeaderMap:
    """Resolved correspondence between source columns and field names."""
    bindings: Tuple[ColumnBinding, ...]

    def __post_init__(self):
        columns = [b.column_index for b in self.bindings]
        names = [b.field_name for b in self.bindings]
        if len(set(columns)) != len(columns):
            raise ValueError(f"Duplicate source columns in header map: {columns}")
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate field names in header map: {names}")

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(b.field_name for b in self.bindings)

    def column_for(self, field_name: str) -> Optional[int]:
        for binding in self.bindings:
            if binding.field_name == field_name:
                return binding.column_index
        return None


@dataclass(frozen=True)
class RowOutcome:
    """Result of importing a single record."""
    kind: OutcomeKind
    field: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls) -> "RowOutcome":
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def skipped_duplicate(cls, message: Optional[str] = None) -> "RowOutcome":
        return cls(OutcomeKind.SKIPPED_DUPLICATE, message=message)

    @classmethod
    def failed(cls, error_kind: ErrorKind, message: str,
               field: Optional[str] = None) -> "RowOutcome":
        return cls(OutcomeKind.FAILED, field=field, error_kind=error_kind, message=message)


@dataclass(frozen=True)
class FailedRow:
    """A failed outcome kept for reporting."""
    row_number: int
    field: Optional[str]
    error_kind: ErrorKind
    message: str
    cells: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class ImportSummary:
    """Final aggregate of one import run."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    truncated: bool = False
    cancelled: bool = False
    aborted: bool = False
    fatal_error: Optional[str] = None
    failures: Tuple[FailedRow, ...] = ()
    header: Tuple[Any, ...] = ()
    sheet_name: Optional[str] = None
    streaming: Optional[bool] = None
    duration: float = 0.0

    @property
    def status(self) -> RunStatus:
        if self.aborted:
            return RunStatus.ABORTED
        if self.cancelled:
            return RunStatus.CANCELLED
        if self.truncated:
            return RunStatus.TRUNCATED
        return RunStatus.COMPLETED

    @property
    def rows_per_second(self) -> float:
        """Get processing throughput."""
        return self.processed / self.duration if self.duration > 0 else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "truncated": self.truncated,
            "cancelled": self.cancelled,
            "aborted": self.aborted,
            "fatal_error": self.fatal_error,
            "sheet_name": self.sheet_name,
            "streaming": self.streaming,
            "duration": self.duration,
            "failures": [
                {
                    "row": f.row_number,
                    "field": f.field,
                    "kind": f.error_kind.value,
                    "message": f.message,
                }
                for f in self.failures
            ],
        }
