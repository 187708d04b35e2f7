"""
Cell normalization and type casting.

Cells arrive loosely typed: csv readers produce strings, workbooks produce
numbers, booleans, datetimes and strings. ``normalize_cell`` makes both look
the same before mapping; ``cast_value`` converts a cell to a field type.
"""

import logging
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_cell(value: Any) -> Any:
    """Strip strings and turn empty strings into None; leave other scalars alone."""
    if isinstance(value, str):
        stripped = value.strip()
        return stripped if stripped else None
    return value


def normalize_cells(values: Iterable[Any]) -> Tuple[Any, ...]:
    """Normalize every cell and drop trailing empty cells."""
    cells = [normalize_cell(v) for v in values]
    while cells and cells[-1] is None:
        cells.pop()
    return tuple(cells)


def normalize_header(value: Any) -> str:
    """Header text for matching: casefolded, whitespace collapsed."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip().casefold()


def safe_text(value: Any) -> Optional[str]:
    """Convert value to string safely.

    Returns:
        String value or None if value is None/empty
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    s = str(value).strip()
    return s if s else None


def cast_value(value: Any, typ: str, safe_mode: bool = False) -> Any:
    """Cast value to specified type.

    Supported types:
    - string: String value
    - int: Integer value
    - decimal: Decimal value
    - float: Python float
    - boolean: Boolean value (true/false, yes/no, 1/0)
    - date: ``datetime.date`` (ISO ``YYYY-MM-DD`` text or a workbook date)
    - datetime: ``datetime.datetime`` (ISO text or a workbook datetime)

    Args:
        value: Value to cast
        typ: Target type name
        safe_mode: If True, return None on error; if False, raise exception

    Returns:
        Casted value or None (in safe mode)

    Raises:
        ValueError: When casting fails and safe_mode is False
    """
    if value is None:
        return None

    t = (typ or "string").lower()

    try:
        if t == "boolean" and isinstance(value, bool):
            return value
        if t == "datetime" and isinstance(value, datetime):
            return value
        if t == "date" and isinstance(value, date):
            return value.date() if isinstance(value, datetime) else value

        s = safe_text(value)
        if s is None:
            return None

        if t == "string":
            return s
        if t == "int":
            d = Decimal(s)
            if d != d.to_integral_value():
                raise ValueError(f"'{s}' is not a whole number")
            return int(d)
        if t == "decimal":
            return Decimal(s)
        if t == "float":
            return float(s)
        if t == "boolean":
            lower_s = s.lower()
            if lower_s in ("true", "yes", "1", "t", "y"):
                return True
            elif lower_s in ("false", "no", "0", "f", "n"):
                return False
            else:
                raise ValueError(f"Cannot convert '{s}' to boolean")
        if t == "date":
            if not re.match(r'^\d{4}-\d{2}-\d{2}$', s):
                raise ValueError(f"Invalid date format '{s}', expected YYYY-MM-DD")
            return date.fromisoformat(s)
        if t == "datetime":
            if not re.match(r'^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2})?', s):
                raise ValueError(f"Invalid datetime format '{s}', expected ISO format")
            return datetime.fromisoformat(s)
        logger.warning(f"Unknown type '{typ}', treating as string")
        return s
    except (ValueError, InvalidOperation) as e:
        if safe_mode:
            return None
        raise ValueError(f"Failed to cast '{value}' to {typ}: {e}")  # noqa: B904
