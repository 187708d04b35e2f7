"""
Per-row outcome collection and persistence error translation.
"""

import json
import logging
import re
import time
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from spreadsheet_importer.config_models import ErrorSignatureTable
from spreadsheet_importer.models import (
    ErrorKind,
    FailedRow,
    ImportSummary,
    OutcomeKind,
    RowOutcome,
)

logger = logging.getLogger(__name__)

_CODE_ATTRIBUTES = ("sqlstate", "pgcode", "errno", "code")


@lru_cache(maxsize=1)
def default_signature_table() -> ErrorSignatureTable:
    """The packaged signature table for PostgreSQL, MySQL and SQLite."""
    text = resources.files("spreadsheet_importer").joinpath("error_signatures.json").read_text(encoding="utf-8")
    return ErrorSignatureTable.from_dict(json.loads(text))


class ErrorTranslator:
    """Maps low-level persistence errors to user-facing error kinds.

    The lookup is total: anything unrecognised is ``ErrorKind.UNKNOWN`` with
    the original message. Instances hold no mutable state and may be shared
    between concurrent runs.
    """

    def __init__(self, table: Optional[ErrorSignatureTable] = None):
        self.table = table if table is not None else default_signature_table()
        self._patterns: Tuple[Tuple[Pattern, ErrorKind], ...] = tuple(
            (re.compile(p.pattern, re.IGNORECASE), p.kind) for p in self.table.patterns
        )

    @staticmethod
    def _error_codes(error: BaseException) -> List[str]:
        codes = []
        # SQLAlchemy wraps the DBAPI error in ``orig``
        for candidate in (error, getattr(error, "orig", None)):
            if candidate is None:
                continue
            for attr in _CODE_ATTRIBUTES:
                value = getattr(candidate, attr, None)
                if isinstance(value, (str, int)) and not isinstance(value, bool):
                    codes.append(str(value))
            args = getattr(candidate, "args", ())
            if args and isinstance(args[0], int) and not isinstance(args[0], bool):
                codes.append(str(args[0]))
        return codes

    def translate(self, error: BaseException) -> Tuple[ErrorKind, Optional[str], str]:
        """Classify an error.

        Returns:
            Tuple of (error_kind, field or None, message)
        """
        message = str(error) or type(error).__name__
        field = None
        kind = None

        for code in self._error_codes(error):
            if code in self.table.codes:
                kind = self.table.codes[code]
                break

        for pattern, pattern_kind in self._patterns:
            match = pattern.search(message)
            if match is None:
                continue
            if kind is None:
                kind = pattern_kind
            elif kind != pattern_kind:
                continue
            if "field" in pattern.groupindex:
                field = match.group("field")
            break

        return (kind or ErrorKind.UNKNOWN), field, message

    def outcome_for(self, error: BaseException) -> RowOutcome:
        kind, field, message = self.translate(error)
        return RowOutcome.failed(kind, message, field=field)


class FailureCollector:
    """Accumulates row outcomes for one run and builds the ImportSummary."""

    def __init__(self):
        self.counts: Dict[OutcomeKind, int] = {kind: 0 for kind in OutcomeKind}
        self._failures: List[FailedRow] = []
        self._last_row: Optional[int] = None
        self._finished = False
        self._summary: Optional[ImportSummary] = None
        self._truncated = False
        self._cancelled = False
        self._fatal_error: Optional[str] = None
        self._details: Dict[str, Any] = {}
        self.start_time = time.time()
        self.end_time: Optional[float] = None

    @property
    def processed(self) -> int:
        return sum(self.counts.values())

    def record(self, row_number: int, outcome: RowOutcome, cells: Sequence[Any] = ()) -> None:
        """Count an outcome; failures are kept for the report."""
        if self._finished:
            raise RuntimeError("FailureCollector is finished")
        self.counts[outcome.kind] += 1
        if outcome.kind is OutcomeKind.FAILED:
            entry = FailedRow(
                row_number=row_number,
                field=outcome.field,
                error_kind=outcome.error_kind or ErrorKind.UNKNOWN,
                message=outcome.message or "",
                cells=tuple(cells),
            )
            if self._last_row is not None and row_number < self._last_row:
                self._failures.append(entry)
                self._failures.sort(key=lambda f: f.row_number)
            else:
                self._failures.append(entry)
        self._last_row = row_number if self._last_row is None else max(self._last_row, row_number)

    def finish(self, truncated: bool = False, cancelled: bool = False,
               fatal_error: Optional[str] = None, **details: Any) -> None:
        """Mark the row stream as exhausted, stopped, or aborted."""
        if self._finished:
            return
        self._finished = True
        self._truncated = truncated
        self._cancelled = cancelled
        self._fatal_error = fatal_error
        self._details = details
        self.end_time = time.time()

    def summarize(self) -> ImportSummary:
        """Build the summary; repeated calls return the same object.

        Raises:
            RuntimeError: if the run has not been finished
        """
        if not self._finished:
            raise RuntimeError("summarize() called before the run finished")
        if self._summary is None:
            self._summary = ImportSummary(
                processed=self.processed,
                succeeded=self.counts[OutcomeKind.SUCCESS],
                failed=self.counts[OutcomeKind.FAILED],
                skipped=self.counts[OutcomeKind.SKIPPED_DUPLICATE],
                truncated=self._truncated,
                cancelled=self._cancelled,
                aborted=self._fatal_error is not None,
                fatal_error=self._fatal_error,
                failures=tuple(self._failures),
                duration=(self.end_time or time.time()) - self.start_time,
                **self._details,
            )
        return self._summary
