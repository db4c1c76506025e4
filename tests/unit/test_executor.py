from __future__ import annotations

from unittest.mock import Mock

import pytest

from conftest import make_rows
from lead_import.db.repository import DuplicateError, InMemoryLeadRepository, RepositoryError
from lead_import.logging.error_log import ErrorLogBuffer
from lead_import.models import (
    ColumnMapping,
    DuplicateFlag,
    MatchField,
    MatchSource,
    RowOutcome,
    ValidationError,
)
from lead_import.services.executor import CancelToken, ImportExecutor, parse_currency, project_row

HEADERS = ["Nome", "Email", "Valor"]
MAPPING = ColumnMapping({"Nome": "name", "Email": "email", "Valor": "estimated_value"})


@pytest.fixture()
def executor(catalog) -> ImportExecutor:
    return ImportExecutor(catalog)


def _rows(n: int):
    return make_rows(HEADERS, [[f"Lead {i}", f"lead{i}@x.com", None] for i in range(1, n + 1)])


@pytest.mark.parametrize(
    "value,expected",
    [
        ("R$ 1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("R$ 2.000", 2000.0),
        ("1.234.567", 1234567.0),
        ("1,5", 1.5),
        ("12.50", 12.5),
        ("-R$ 10,00", -10.0),
        ("(1.000,00)", -1000.0),
        ("R$ -1.500,00", -1500.0),
        ("-R$ 100", -100.0),
        ("US$ 1,200.00", 1200.0),
        ("1 500,00 €", 1500.0),
        ("1e5", None),
        ("100-200", None),
        ("R$ 1.000 a combinar", None),
        (1500, 1500.0),
        (12.5, 12.5),
        ("abc", None),
        ("", None),
        (None, None),
        (float("nan"), None),
    ],
)
def test_parse_currency(value, expected):
    assert parse_currency(value) == expected


def test_project_row_trims_coerces_and_drops_empty(catalog):
    rows = make_rows(
        ["Nome", "Email", "Valor", "Cidade", "Extra"],
        [["  Ana  ", "a@x.com", "R$ 1.500,00", "   ", "ignored"]],
    )
    mapping = ColumnMapping({"Nome": "name", "Email": "email", "Valor": "estimated_value", "Cidade": "city"})
    assert project_row(rows[0], mapping, catalog) == {
        "name": "Ana",
        "email": "a@x.com",
        "estimated_value": 1500.0,
    }


def test_project_row_omits_unparseable_currency(catalog):
    rows = make_rows(HEADERS, [["Ana", None, "a combinar"]])
    assert project_row(rows[0], MAPPING, catalog) == {"name": "Ana"}


def test_project_row_numeric_phone_keeps_digits(catalog):
    rows = make_rows(["Nome", "Telefone"], [["Ana", 11999990000.0]])
    record = project_row(rows[0], ColumnMapping({"Nome": "name", "Telefone": "phone"}), catalog)
    assert record["phone"] == "11999990000"


def test_all_rows_succeed(executor):
    repo = InMemoryLeadRepository()
    report = executor.execute(_rows(3), MAPPING, [], [], repo)
    assert report.total_rows == 3
    assert report.succeeded == 3
    assert [r.detail for r in report.per_row_outcome] == ["1", "2", "3"]
    assert repo.records[2]["name"] == "Lead 2"
    assert report.fully_imported


def test_skips_invalid_and_duplicate_rows(executor):
    repo = InMemoryLeadRepository()
    errors = [ValidationError(3, "name", "required field missing")]
    duplicates = [DuplicateFlag(4, MatchSource.WITHIN_FILE, MatchField.EMAIL)]
    report = executor.execute(_rows(3), MAPPING, errors, duplicates, repo)
    assert [r.outcome for r in report.per_row_outcome] == [
        RowOutcome.SUCCEEDED,
        RowOutcome.SKIPPED_INVALID,
        RowOutcome.SKIPPED_DUPLICATE,
    ]
    assert report.outcome_for(3).detail == "name: required field missing"
    assert report.outcome_for(4).detail == "duplicate lead"
    assert len(repo.records) == 1


def test_duplicate_takes_precedence_over_invalid(executor):
    repo = Mock()
    errors = [ValidationError(2, "email", "invalid format")]
    duplicates = [DuplicateFlag(2, MatchSource.EXISTING_REPOSITORY, MatchField.PHONE)]
    report = executor.execute(_rows(1), MAPPING, errors, duplicates, repo)
    assert report.skipped_duplicate == 1
    assert report.skipped_invalid == 0
    repo.create.assert_not_called()


def test_failure_does_not_stop_batch(executor, temp_workdir):
    repo = Mock()
    repo.create.side_effect = [101, 102, RepositoryError("connection reset"), 104, 105]
    error_log = ErrorLogBuffer()
    report = executor.execute(_rows(5), MAPPING, [], [], repo, error_log=error_log, file_name="leads.csv")
    assert repo.create.call_count == 5
    assert report.succeeded == 4
    assert report.failed == 1
    failed = report.outcome_for(4)
    assert failed.outcome is RowOutcome.FAILED
    assert failed.detail == "connection reset"
    assert len(error_log) == 1
    rec = error_log.records[0]
    assert (rec.file, rec.row, rec.error_type) == ("leads.csv", 4, "REPOSITORY_ERROR")


@pytest.mark.parametrize(
    "exc,error_type",
    [
        (DuplicateError("email", "lead1@x.com"), "REPOSITORY_DUPLICATE"),
        (RepositoryError("boom"), "REPOSITORY_ERROR"),
        (ValueError("bad value"), "UNEXPECTED_ERROR"),
    ],
)
def test_error_types_in_error_log(executor, temp_workdir, exc, error_type):
    repo = Mock()
    repo.create.side_effect = exc
    error_log = ErrorLogBuffer()
    report = executor.execute(_rows(1), MAPPING, [], [], repo, error_log=error_log)
    assert report.failed == 1
    assert error_log.records[0].error_type == error_type
    assert error_log.records[0].file == "<upload>"


def test_cancel_before_start(executor):
    token = CancelToken()
    token.cancel()
    repo = Mock()
    report = executor.execute(_rows(3), MAPPING, [], [], repo, cancel_token=token)
    assert report.cancelled is True
    assert report.total_rows == 0
    assert not report.fully_imported
    repo.create.assert_not_called()


def test_cancel_mid_batch_finishes_in_flight_row(executor):
    token = CancelToken()
    repo = Mock()

    def create(record):
        if repo.create.call_count == 2:
            token.cancel()
        return repo.create.call_count

    repo.create.side_effect = create
    report = executor.execute(_rows(5), MAPPING, [], [], repo, cancel_token=token)
    assert repo.create.call_count == 2
    assert report.cancelled is True
    assert [r.row_number for r in report.per_row_outcome] == [2, 3]
    assert report.succeeded == 2


def test_progress_advanced_per_row(executor):
    progress = Mock()
    duplicates = [DuplicateFlag(2, MatchSource.WITHIN_FILE, MatchField.EMAIL)]
    executor.execute(_rows(3), MAPPING, [], duplicates, InMemoryLeadRepository(), progress=progress)
    assert progress.advance.call_count == 3


def test_warnings_and_degraded_flow_into_report(executor):
    report = executor.execute(
        _rows(1), MAPPING, [], [], InMemoryLeadRepository(),
        warnings=["existing records unavailable"], degraded=True,
    )
    assert report.degraded_duplicate_check is True
    assert report.warnings == ("existing records unavailable",)


def test_cancel_token():
    token = CancelToken()
    assert not token.cancelled
    token.cancel()
    token.cancel()
    assert token.cancelled
