from __future__ import annotations

import re
import unicodedata

from ..models.row_data import Cell, is_empty_cell

"""Text normalization shared by column suggestion and duplicate detection.

Header/label matching and identity-key derivation (email, phone) both go through
this module so the two never diverge.
"""

__all__ = [
    "strip_diacritics",
    "normalize_label",
    "cell_text",
    "normalize_email",
    "normalize_phone",
]

_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")
REQUIRED_MARKER = "*"


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_label(text: str) -> str:
    """Lower-case, strip accents and the "*" marker, collapse whitespace.

    >>> normalize_label("  Serviço de Interesse * ")
    'servico de interesse'
    """
    folded = strip_diacritics(str(text)).lower().replace(REQUIRED_MARKER, "")
    return _WHITESPACE_RE.sub(" ", folded).strip()


def cell_text(value: Cell) -> str:
    """Render a cell as trimmed text; empty cells become "".

    Spreadsheet readers return whole numbers as floats (11999998888.0); those are
    rendered without the fractional part so phone numbers keep their digits.
    """
    if is_empty_cell(value):
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_email(value: Cell) -> str | None:
    """Case-folded email used as identity key, or None when empty."""
    text = cell_text(value)
    return text.casefold() if text else None


def normalize_phone(value: Cell) -> str | None:
    """Digits-only phone used as identity key, or None when no digit remains."""
    digits = _NON_DIGIT_RE.sub("", cell_text(value))
    return digits or None
