"""
Spreadsheet Importer package.
"""

__version__ = "1.0.0"

from spreadsheet_importer.async_orchestrator import ImportJob, import_file_async, import_files_async
from spreadsheet_importer.config_models import ColumnConfig, ErrorSignatureTable, ImporterSchema, ImportOptions, StreamingMode
from spreadsheet_importer.csv_writer import FailedRowsWriter, write_failed_rows
from spreadsheet_importer.errors import (
    CorruptRow,
    FatalProcessingError,
    InvalidSheetIndex,
    MissingRequiredField,
    SpreadsheetImportError,
    UnknownField,
    UnreadableFile,
    ValidationFailed,
)
from spreadsheet_importer.failures import ErrorTranslator, FailureCollector
from spreadsheet_importer.models import ErrorKind, FileFormat, ImportSummary, OutcomeKind, RowOutcome, RunStatus
from spreadsheet_importer.orchestrator import import_file
from spreadsheet_importer.sources import list_sheets, open_file, read_rows
from spreadsheet_importer.streaming import select_streaming
from spreadsheet_importer.validators import validate_field_value, validating_callback

__all__ = [
    "ImportOptions",
    "ImporterSchema",
    "ColumnConfig",
    "ErrorSignatureTable",
    "StreamingMode",
    "import_file",
    "import_file_async",
    "import_files_async",
    "ImportJob",
    "open_file",
    "list_sheets",
    "read_rows",
    "select_streaming",
    "ImportSummary",
    "RowOutcome",
    "OutcomeKind",
    "ErrorKind",
    "RunStatus",
    "FileFormat",
    "ErrorTranslator",
    "FailureCollector",
    "FailedRowsWriter",
    "write_failed_rows",
    "validate_field_value",
    "validating_callback",
    "SpreadsheetImportError",
    "UnreadableFile",
    "InvalidSheetIndex",
    "MissingRequiredField",
    "UnknownField",
    "CorruptRow",
    "ValidationFailed",
    "FatalProcessingError",
]
