"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path

import openpyxl
import pytest

from spreadsheet_importer.config_models import ImporterSchema


def write_workbook(path: Path, sheets: dict) -> Path:
    """Write a workbook with one worksheet per ``{title: rows}`` entry."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(list(row))
    wb.save(path)
    return path


@pytest.fixture
def people_schema() -> ImporterSchema:
    """Importer schema with a required, regex-validated email."""
    return ImporterSchema.from_dict({
        "columns": [
            {"name": "name", "label": "Full Name", "guesses": ["person"]},
            {"name": "email", "required": True, "nullable": False,
             "regex": r"[^@\s]+@[^@\s]+\.\w+", "guesses": ["e-mail", "mail"]},
            {"name": "age", "type": "int", "min_value": 0, "max_value": 150},
        ]
    })


@pytest.fixture
def people_csv(tmp_path) -> Path:
    """Create a small CSV with one invalid email."""
    csv_file = tmp_path / "people.csv"
    csv_file.write_text("name,email\nAlice,a@x.com\nBob,bad-email\n")
    return csv_file


@pytest.fixture
def banner_csv(tmp_path) -> Path:
    """Create a CSV whose header sits below two banner rows."""
    csv_file = tmp_path / "banner.csv"
    csv_file.write_text(
        "Quarterly staff export\n"
        "Generated 2024-01-15\n"
        "name,email\n"
        "Alice,bad-email\n"
        "Bob,b@x.com\n"
    )
    return csv_file


@pytest.fixture
def people_xlsx(tmp_path) -> Path:
    """Create a two-sheet workbook; the second sheet has a banner row."""
    return write_workbook(tmp_path / "people.xlsx", {
        "Summary": [("total", 3)],
        "People": [
            ("Staff list", None),
            ("Name", "E-Mail", "Age"),
            ("Alice", "a@x.com", 34),
            (None, None, None),
            ("Bob", "b@x.com", 200),
            ("Carol", "c@x.com", 41),
        ],
    })


@pytest.fixture
def make_csv(tmp_path):
    """Factory writing CSV text to a file."""
    def _make(text: str, name: str = "data.csv") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _make


@pytest.fixture
def make_json(tmp_path):
    """Factory writing a JSON document to a file."""
    def _make(data: dict, name: str) -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data, indent=2))
        return path
    return _make
