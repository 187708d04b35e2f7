"""
Validation of mapped records against an importer schema.
"""

import logging
import re
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from spreadsheet_importer.casting import cast_value
from spreadsheet_importer.config_models import ColumnConfig, ImporterSchema, ImportOptions
from spreadsheet_importer.driver import RecordCallback
from spreadsheet_importer.errors import ValidationFailed
from spreadsheet_importer.models import MappedRecord, RowOutcome

logger = logging.getLogger(__name__)

PersistCallback = Callable[[Dict[str, Any], int, ImportOptions], Optional[RowOutcome]]


def validate_field_value(value: Any, column: ColumnConfig) -> Tuple[bool, Optional[str]]:
    """Validate a cast value against its column definition.

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Handle None/null values
    if value is None or value == '':
        if not column.nullable:
            return False, f"Field '{column.name}' cannot be empty"
        return True, None

    # Regex validation (only for string values)
    if column.regex and isinstance(value, str):
        if not re.fullmatch(column.regex, value):
            return False, f"Field '{column.name}' failed regex validation: {column.regex}"

    # Numeric range validation
    if column.min_value is not None or column.max_value is not None:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            return False, f"Field '{column.name}' is not a number, cannot check its range"
        num_val = float(value)
        if column.min_value is not None and num_val < column.min_value:
            return False, f"Field '{column.name}' value {value} below minimum {column.min_value}"
        if column.max_value is not None and num_val > column.max_value:
            return False, f"Field '{column.name}' value {value} above maximum {column.max_value}"

    return True, None


def clean_record(record: MappedRecord, schema: ImporterSchema) -> Dict[str, Any]:
    """Cast and validate every mapped field of a record.

    Fields without a source column are not in the record and are not checked.

    Raises:
        ValidationFailed: on the first field that fails to cast or validate
    """
    cleaned: Dict[str, Any] = {}
    for name, raw in record.items():
        column = schema.column(name)
        if column is None:
            cleaned[name] = raw
            continue
        try:
            value = cast_value(raw, column.type.value)
        except ValueError as e:
            raise ValidationFailed(name, str(e)) from e
        ok, message = validate_field_value(value, column)
        if not ok:
            raise ValidationFailed(name, message)
        cleaned[name] = value
    return cleaned


def validating_callback(schema: ImporterSchema,
                        persist: Optional[PersistCallback] = None) -> RecordCallback:
    """Build a record callback that validates before persisting.

    Args:
        schema: Column rules to enforce
        persist: Called with the cleaned record; without it the callback only
            validates (a dry run)
    """
    def callback(record: MappedRecord, row_number: int, options: ImportOptions) -> Optional[RowOutcome]:
        cleaned = clean_record(record, schema)
        if persist is None:
            return RowOutcome.success()
        return persist(cleaned, row_number, options)

    return callback
