"""
Header resolution: turns a header row or an explicit column mapping into a
HeaderMap, and applies that map to raw rows.
"""

import logging
from typing import AbstractSet, Dict, List, Mapping, Optional, Sequence, Union

from openpyxl.utils import column_index_from_string

from spreadsheet_importer.casting import normalize_header
from spreadsheet_importer.errors import MissingRequiredField, UnknownField
from spreadsheet_importer.models import ColumnBinding, HeaderMap, MappedRecord, RawRow

logger = logging.getLogger(__name__)


def _check_required(header_map: HeaderMap, required_fields: AbstractSet[str]) -> None:
    missing = set(required_fields) - set(header_map.field_names)
    if missing:
        raise MissingRequiredField(missing)


def build_header_map(
    header_row: Union[RawRow, Sequence[object]],
    known_fields: AbstractSet[str],
    required_fields: AbstractSet[str] = frozenset(),
    guesses: Optional[Mapping[str, Sequence[str]]] = None,
) -> HeaderMap:
    """Match header cells to known fields.

    Matching is case-insensitive with whitespace collapsed, against the field
    name and any alternative spellings in ``guesses``. Columns are scanned
    left to right and the first column matching a field wins; later
    duplicates are ignored.

    Raises:
        MissingRequiredField: listing every required field with no column
    """
    cells = header_row.cells if isinstance(header_row, RawRow) else tuple(header_row)

    lookup: Dict[str, str] = {}
    for name in sorted(known_fields):
        lookup.setdefault(normalize_header(name), name)
    for name, spellings in (guesses or {}).items():
        if name not in known_fields:
            continue
        for spelling in spellings:
            lookup.setdefault(normalize_header(spelling), name)

    bindings: List[ColumnBinding] = []
    bound = set()
    for index, cell in enumerate(cells):
        key = normalize_header(cell)
        if not key:
            continue
        field_name = lookup.get(key)
        if field_name is None:
            logger.debug(f"Header '{cell}' in column {index} matches no field, ignoring")
            continue
        if field_name in bound:
            logger.debug(f"Duplicate header '{cell}' in column {index} for field '{field_name}', ignoring")
            continue
        bindings.append(ColumnBinding(index, field_name))
        bound.add(field_name)

    header_map = HeaderMap(tuple(bindings))
    _check_required(header_map, required_fields)
    return header_map


def _column_index(column: Union[int, str]) -> int:
    if isinstance(column, bool):
        raise ValueError(f"Invalid column reference: {column!r}")
    if isinstance(column, int):
        index = column
    else:
        text = str(column).strip()
        if text.isdigit():
            index = int(text)
        else:
            try:
                index = column_index_from_string(text.upper()) - 1
            except ValueError:
                raise ValueError(f"Invalid column reference: {column!r}")  # noqa: B904
    if index < 0:
        raise ValueError(f"Column index must be non-negative, got {index}")
    return index


def build_explicit_map(
    mapping: Mapping[str, Union[int, str]],
    known_fields: AbstractSet[str],
    required_fields: AbstractSet[str] = frozenset(),
) -> HeaderMap:
    """Build a HeaderMap from a user-supplied field -> column mapping.

    Columns are zero-based indices or spreadsheet letters (``"A"``, ``"AB"``).
    The header row is not inspected.

    Raises:
        UnknownField: if the mapping names fields the importer does not know
        ValueError: for invalid or repeated column references
        MissingRequiredField: listing every required field left unmapped
    """
    unknown = set(mapping) - set(known_fields)
    if unknown:
        raise UnknownField(unknown)

    bindings = []
    used: Dict[int, str] = {}
    for field_name, column in mapping.items():
        index = _column_index(column)
        if index in used:
            raise ValueError(
                f"Column {index} is mapped to both '{used[index]}' and '{field_name}'"
            )
        used[index] = field_name
        bindings.append(ColumnBinding(index, field_name))

    bindings.sort(key=lambda b: b.column_index)
    header_map = HeaderMap(tuple(bindings))
    _check_required(header_map, required_fields)
    return header_map


def apply_map(row: RawRow, header_map: HeaderMap) -> MappedRecord:
    """Project a raw row onto field names.

    Unmapped columns are dropped; mapped columns past the end of the row
    yield None.
    """
    cells = row.cells
    width = len(cells)
    return {
        b.field_name: cells[b.column_index] if b.column_index < width else None
        for b in header_map.bindings
    }
