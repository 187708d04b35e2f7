"""
Pydantic models for strongly-typed configuration validation.

ImportOptions is built once per run and never mutated afterwards; every
component receives the same instance.
"""

import json
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from spreadsheet_importer.models import ErrorKind, FileFormat

DEFAULT_STREAMING_THRESHOLD = 10 * 1024 * 1024


class StreamingMode(str, Enum):
    """Whether rows are streamed or loaded fully."""
    ON = "on"
    OFF = "off"
    AUTO = "auto"


class FieldType(str, Enum):
    """Supported field data types."""
    STRING = "string"
    INT = "int"
    DECIMAL = "decimal"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"


def load_json(config_path: Union[str, Path]) -> dict:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with open(path, encoding='utf-8') as f:
        return json.load(f)


class ImportOptions(BaseModel):
    """Options for a single import run."""
    chunk_size: int = Field(1000, description="Rows per batch handed to the persistence boundary", gt=0)
    max_rows: Optional[int] = Field(None, description="Stop after this many rows (None = no limit)", gt=0)
    header_offset: int = Field(0, description="Rows to skip before the header row", ge=0)
    active_sheet: int = Field(0, description="Zero-based sheet index for workbooks", ge=0)
    use_streaming: StreamingMode = Field(StreamingMode.AUTO, description="Streaming on/off/auto")
    streaming_threshold: int = Field(
        DEFAULT_STREAMING_THRESHOLD,
        description="File size in bytes above which AUTO switches to streaming",
        gt=0
    )
    io_timeout: Optional[float] = Field(
        30.0,
        description="Seconds any single file read may block (None = unbounded)",
        gt=0
    )
    file_format: Optional[FileFormat] = Field(None, description="Override format detection")

    csv_delimiter: Optional[str] = Field(None, description="CSV delimiter (default: ',' for csv, tab for tsv)")
    csv_quotechar: str = Field('"', description="CSV quote character")
    csv_encoding: str = Field("utf-8-sig", description="Input CSV encoding")

    column_mapping: Optional[Dict[str, Union[int, str]]] = Field(
        None,
        description="Explicit field -> column (index or letter) mapping; bypasses the header row"
    )
    extra: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional caller options passed through to record callbacks"
    )

    model_config = {"frozen": True}

    @field_validator('use_streaming', mode='before')
    @classmethod
    def coerce_streaming_flag(cls, value):
        """Accept the legacy true/false/null form of the flag."""
        if value is None:
            return StreamingMode.AUTO
        if value is True:
            return StreamingMode.ON
        if value is False:
            return StreamingMode.OFF
        return value

    @field_validator('csv_delimiter', 'csv_quotechar')
    @classmethod
    def validate_single_char(cls, value):
        if value is not None and len(value) != 1:
            raise ValueError("must be a single character")
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Look up an additional caller option."""
        return self.extra.get(key, default)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "ImportOptions":
        return cls.model_validate(config_dict)

    @classmethod
    def from_json_file(cls, config_path: Union[str, Path]) -> "ImportOptions":
        """
        Load and validate options from a JSON file.

        Raises:
            ValidationError: If the options are invalid
            FileNotFoundError: If the file doesn't exist
        """
        return cls.from_dict(load_json(config_path))


class ColumnConfig(BaseModel):
    """One importer field."""
    name: str = Field(..., description="Field name", min_length=1)
    label: Optional[str] = Field(None, description="Human-readable header text")
    required: bool = Field(False, description="A source column must exist for this field")
    guesses: List[str] = Field(default_factory=list, description="Alternative header spellings")
    type: FieldType = Field(FieldType.STRING, description="Field data type")
    nullable: bool = Field(True, description="Whether the cell may be empty")

    regex: Optional[str] = Field(None, description="Regex pattern for validation")
    min_value: Optional[float] = Field(None, description="Minimum numeric value")
    max_value: Optional[float] = Field(None, description="Maximum numeric value")

    @field_validator('regex')
    @classmethod
    def validate_regex(cls, value):
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid regex pattern '{value}': {e}")
        return value

    @model_validator(mode='after')
    def validate_range(self):
        if self.min_value is not None and self.max_value is not None:
            if self.max_value < self.min_value:
                raise ValueError(f"Field '{self.name}': max_value must be >= min_value")
        return self


class ImporterSchema(BaseModel):
    """The set of fields an importer accepts."""
    columns: List[ColumnConfig] = Field(..., min_length=1, description="Field definitions")

    @field_validator('columns')
    @classmethod
    def validate_unique_names(cls, columns):
        """Ensure field names are unique."""
        names = [c.name for c in columns]
        duplicates = [name for name in set(names) if names.count(name) > 1]
        if duplicates:
            raise ValueError(f"Duplicate field names: {', '.join(sorted(duplicates))}")
        return columns

    @property
    def known_fields(self) -> Set[str]:
        return {c.name for c in self.columns}

    @property
    def required_fields(self) -> Set[str]:
        return {c.name for c in self.columns if c.required}

    @property
    def guesses(self) -> Dict[str, List[str]]:
        """Header spellings accepted for each field, label first."""
        result = {}
        for column in self.columns:
            spellings = [column.label] if column.label else []
            result[column.name] = spellings + list(column.guesses)
        return result

    def column(self, name: str) -> Optional[ColumnConfig]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @classmethod
    def from_dict(cls, config_dict: dict) -> "ImporterSchema":
        return cls.model_validate(config_dict)

    @classmethod
    def from_json_file(cls, config_path: Union[str, Path]) -> "ImporterSchema":
        return cls.from_dict(load_json(config_path))


class SignaturePattern(BaseModel):
    """Message pattern for a low-level persistence error.

    A named group ``field`` in the pattern, when it matches, names the
    offending field.
    """
    pattern: str = Field(..., description="Regular expression searched in the error message")
    kind: ErrorKind = Field(..., description="User-facing error kind")

    @field_validator('pattern')
    @classmethod
    def validate_pattern(cls, value):
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid signature pattern '{value}': {e}")
        return value


class ErrorSignatureTable(BaseModel):
    """Storage-backend specific error signatures."""
    codes: Dict[str, ErrorKind] = Field(
        default_factory=dict,
        description="Exact error codes (SQLSTATE, driver errno) -> kind"
    )
    patterns: List[SignaturePattern] = Field(
        default_factory=list,
        description="Ordered message patterns; first match wins"
    )

    model_config = {"frozen": True}

    @classmethod
    def from_dict(cls, config_dict: dict) -> "ErrorSignatureTable":
        return cls.model_validate(config_dict)

    @classmethod
    def from_json_file(cls, config_path: Union[str, Path]) -> "ErrorSignatureTable":
        return cls.from_dict(load_json(config_path))
