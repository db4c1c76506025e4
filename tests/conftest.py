# Shared pytest fixtures
from __future__ import annotations
import io
import tempfile
from pathlib import Path

import pandas as pd
import pytest

from lead_import.config.loader import default_config
from lead_import.db.repository import InMemoryLeadRepository
from lead_import.logging.init import reset_logging
from lead_import.models import FieldCatalog, RawRow


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("LEAD_IMPORT_CONFIG", raising=False)
        yield p


@pytest.fixture()
def catalog() -> FieldCatalog:
    return default_config().catalog


@pytest.fixture()
def repository() -> InMemoryLeadRepository:
    return InMemoryLeadRepository()


def xlsx_bytes(headers: list[str], rows: list[list]) -> bytes:
    """Build a one-sheet workbook (header on line 1) with pandas + openpyxl."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(rows, columns=headers).to_excel(writer, sheet_name="Leads", index=False)
    return buf.getvalue()


def csv_bytes(text: str, encoding: str = "utf-8") -> bytes:
    return text.encode(encoding)


def make_rows(headers: list[str], data: list[list], first_line: int = 2) -> tuple[RawRow, ...]:
    """RawRows numbered like a file whose header sits on line first_line - 1."""
    return tuple(
        RawRow(row_number=first_line + i, values=dict(zip(headers, values)))
        for i, values in enumerate(data)
    )
