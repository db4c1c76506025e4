from __future__ import annotations

from pathlib import Path

import pytest

from conftest import csv_bytes, xlsx_bytes
from lead_import.tabular.reader import (
    ParseError,
    TabularFormat,
    format_from_filename,
    parse,
)


def test_parse_xlsx_header_and_rows():
    data = xlsx_bytes(["Nome", "Telefone"], [["Ana", "11 99999-0000"], ["Bia", "11 98888-0000"]])
    parsed = parse(data, TabularFormat.XLSX)
    assert parsed.format is TabularFormat.XLSX
    assert parsed.headers == ("Nome", "Telefone")
    assert parsed.row_count == 2
    assert [r.row_number for r in parsed.rows] == [2, 3]
    assert parsed.rows[0].get("Nome") == "Ana"
    assert parsed.rows[1].get("Telefone") == "11 98888-0000"


def test_parse_xlsx_drops_blank_lines_but_keeps_line_numbers():
    data = xlsx_bytes(["Nome", "Email"], [["Ana", "a@x.com"], [None, None], ["Bia", "b@x.com"]])
    parsed = parse(data, "xlsx")
    assert [r.row_number for r in parsed.rows] == [2, 4]
    assert parsed.rows[1].get("Nome") == "Bia"


def test_parse_xlsx_empty_cell_is_none():
    data = xlsx_bytes(["Nome", "Email"], [["Ana", None]])
    parsed = parse(data, "xlsx")
    assert parsed.rows[0].get("Email") is None


def test_parse_csv_semicolon_delimiter():
    text = "Nome;Email;Cidade\nAna;a@x.com;Recife\nBia;b@x.com;Natal\n"
    parsed = parse(csv_bytes(text), "csv")
    assert parsed.headers == ("Nome", "Email", "Cidade")
    assert parsed.rows[1].get("Cidade") == "Natal"


def test_parse_csv_semicolon_with_quoted_comma_in_header():
    parsed = parse(csv_bytes('"Nome, completo";Email\nAna;a@x.com\n'), "csv")
    assert parsed.headers == ("Nome, completo", "Email")
    assert parsed.rows[0].get("Email") == "a@x.com"


def test_parse_csv_comma_with_quoted_semicolon_value():
    parsed = parse(csv_bytes('Nome,Observações\nAna,"ligar; depois"\nBia,ok\n'), "csv")
    assert parsed.headers == ("Nome", "Observações")
    assert parsed.rows[0].get("Observações") == "ligar; depois"


def test_parse_csv_tab_delimiter():
    parsed = parse(csv_bytes("Nome\tEmail\nAna\ta@x.com\n"), "csv")
    assert parsed.headers == ("Nome", "Email")


def test_parse_csv_single_column():
    parsed = parse(csv_bytes("Nome\nAna\nBia\n"), "csv")
    assert parsed.headers == ("Nome",)
    assert parsed.row_count == 2


def test_parse_csv_keeps_leading_zeros_and_na_strings():
    text = "Nome,Telefone,Observações\nAna,0119999,NA\n"
    parsed = parse(csv_bytes(text), "csv")
    row = parsed.rows[0]
    assert row.get("Telefone") == "0119999"
    assert row.get("Observações") == "NA"


def test_parse_csv_blank_line_skipped():
    text = "Nome,Email\nAna,a@x.com\n\nBia,b@x.com\n"
    parsed = parse(csv_bytes(text), "csv")
    assert [r.row_number for r in parsed.rows] == [2, 4]


def test_parse_csv_utf8_bom_and_latin1():
    bom = parse(b"\xef\xbb\xbf" + csv_bytes("Nome,Cidade\nAna,Recife\n"), "csv")
    assert bom.headers == ("Nome", "Cidade")

    latin = parse(csv_bytes("Nome,Cidade\nJosé,São Paulo\n", encoding="latin-1"), "csv")
    assert latin.rows[0].get("Nome") == "José"
    assert latin.rows[0].get("Cidade") == "São Paulo"


def test_parse_csv_short_row_padded_with_none():
    parsed = parse(csv_bytes("Nome,Email\nAna\n"), "csv")
    assert parsed.rows[0].get("Nome") == "Ana"
    assert parsed.rows[0].get("Email") is None


def test_duplicate_headers_are_suffixed():
    parsed = parse(csv_bytes("Email,Email,Nome\na@x.com,b@x.com,Ana\n"), "csv")
    assert parsed.headers == ("Email", "Email (2)", "Nome")
    assert parsed.rows[0].get("Email (2)") == "b@x.com"


def test_blank_header_column_is_dropped():
    parsed = parse(csv_bytes("Nome,,Email\nAna,ignored,a@x.com\n"), "csv")
    assert parsed.headers == ("Nome", "Email")
    assert "ignored" not in parsed.rows[0].values.values()


def test_header_labels_are_trimmed_not_folded():
    parsed = parse(csv_bytes("  Nome * ,EMAIL\nAna,a@x.com\n"), "csv")
    assert parsed.headers == ("Nome *", "EMAIL")


@pytest.mark.parametrize(
    "data",
    [b"", csv_bytes("Nome,Email\n"), csv_bytes("Nome,Email\n,\n \n")],
)
def test_empty_file(data):
    with pytest.raises(ParseError) as exc:
        parse(data, "csv")
    assert exc.value.reason == "empty-file"


def test_header_only_xlsx_is_empty_file():
    with pytest.raises(ParseError) as exc:
        parse(xlsx_bytes(["Nome", "Email"], []), "xlsx")
    assert exc.value.reason == "empty-file"


def test_unsupported_format_hint():
    with pytest.raises(ParseError) as exc:
        parse(b"whatever", "pdf")
    assert exc.value.reason == "unsupported-format"


def test_corrupt_workbook_is_unreadable():
    with pytest.raises(ParseError) as exc:
        parse(b"this is not a zip archive", TabularFormat.XLSX)
    assert exc.value.reason == "unreadable-file"
    assert exc.value.detail


def test_format_from_filename():
    assert format_from_filename("leads.XLSX") is TabularFormat.XLSX
    assert format_from_filename(Path("old.xls")) is TabularFormat.XLS
    assert format_from_filename("export.csv") is TabularFormat.CSV
    with pytest.raises(ParseError) as exc:
        format_from_filename("leads")
    assert exc.value.reason == "unsupported-format"
    with pytest.raises(ParseError):
        format_from_filename("leads.txt")

