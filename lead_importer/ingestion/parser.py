"""Parse uploaded CSV and spreadsheet content into :class:`ParsedRow` objects."""
from __future__ import annotations

import csv
import io
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..models import FieldMapping, ParsedRow, Scalar, as_text
from .mapping import FieldPath, build_column_map

LOGGER = logging.getLogger(__name__)

CSV_EXTENSIONS = frozenset({"csv"})
SPREADSHEET_EXTENSIONS = frozenset({"xlsx", "xls"})
SUPPORTED_EXTENSIONS = CSV_EXTENSIONS | SPREADSHEET_EXTENSIONS

_CSV_ENCODINGS = ("utf-8-sig", "cp1252")
_EXCEL_ENGINES = {"xlsx": "openpyxl", "xls": "xlrd"}
_NUMBER_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

# Identity and postal fields keep leading zeros and a leading "+".
TEXT_FIELDS = frozenset({FieldPath.PHONE.value, FieldPath.EMAIL.value, FieldPath.ZIP_CODE.value})


class ParseError(ValueError):
    """Raised when file content cannot be read as a table of rows."""


class UnsupportedFileTypeError(ValueError):
    """Raised when an unsupported file format is passed to the parser."""


@dataclass(slots=True)
class ParseResult:
    rows: List[ParsedRow] = field(default_factory=list)
    headers: List[str] = field(default_factory=list)


def parse_file(
    content: bytes,
    extension: str,
    field_mapping: Optional[Sequence[FieldMapping]] = None,
) -> ParseResult:
    """Parse raw file bytes into rows keyed by target field path.

    Parameters
    ----------
    content:
        The uploaded bytes.
    extension:
        Declared file extension (``csv``, ``xlsx`` or ``xls``), with or without
        the leading dot.
    field_mapping:
        Optional explicit column mapping. When omitted the default heuristic
        table in :mod:`lead_importer.ingestion.mapping` is used.
    """

    suffix = extension.lower().lstrip(".")
    if suffix in CSV_EXTENSIONS:
        return _parse_csv(content, field_mapping)
    if suffix in SPREADSHEET_EXTENSIONS:
        return _parse_spreadsheet(content, suffix, field_mapping)
    raise UnsupportedFileTypeError(f"Unsupported file format: {suffix or '(none)'}")


def normalize_value(value: Any) -> Scalar:
    """Trim a raw cell, nullify blanks, and coerce numeric-looking text."""

    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if not isinstance(value, str) and pd.isna(value):
        return None

    text = str(value).strip()
    if not text:
        return None
    if _NUMBER_PATTERN.fullmatch(text):
        return _to_number(text)
    return text


def _to_number(text: str) -> Scalar:
    if not any(marker in text for marker in ".eE"):
        return int(text)
    number = float(text)
    if not math.isfinite(number):
        return text
    if number.is_integer():
        return int(number)
    return number


def _decode(content: bytes) -> str:
    for encoding in _CSV_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ParseError("Failed to parse CSV file: unable to decode content as UTF-8 or Windows-1252")


def _parse_csv(content: bytes, field_mapping: Optional[Sequence[FieldMapping]]) -> ParseResult:
    text = _decode(content)
    reader = csv.reader(io.StringIO(text, newline=""))
    result = ParseResult()

    try:
        header_row = next(reader, None)
        if header_row is None:
            return result
        headers = [cell.strip() for cell in header_row]
        column_map = build_column_map(headers, field_mapping)
        result.headers = [header for header in headers if header]
        LOGGER.debug("CSV columns resolved: %s", column_map)

        for position, cells in enumerate(reader, start=1):
            row = _build_row(cells, column_map, row_number=position + 1)
            if row is not None:
                result.rows.append(row)
    except csv.Error as exc:
        raise ParseError(f"Failed to parse CSV file: {exc}") from exc

    return result


def _parse_spreadsheet(
    content: bytes,
    suffix: str,
    field_mapping: Optional[Sequence[FieldMapping]],
) -> ParseResult:
    try:
        frame = pd.read_excel(
            io.BytesIO(content),
            sheet_name=0,
            header=None,
            dtype=object,
            engine=_EXCEL_ENGINES[suffix],
        )
    except Exception as exc:
        raise ParseError(f"Failed to parse Excel file: {exc}") from exc

    records = frame.values.tolist()
    if len(records) < 2:
        raise ParseError("Excel file must contain at least a header row and one data row")

    headers = [_header_text(cell) for cell in records[0]]
    column_map = build_column_map(headers, field_mapping)
    LOGGER.debug("Spreadsheet columns resolved: %s", column_map)

    result = ParseResult(headers=[header for header in headers if header])
    for index in range(1, len(records)):
        row = _build_row(records[index], column_map, row_number=index + 1)
        if row is not None:
            result.rows.append(row)
    return result


def _header_text(cell: Any) -> str:
    value = normalize_value(cell)
    return "" if value is None else str(value)


def _text_value(cell: Any) -> Optional[str]:
    if normalize_value(cell) is None:
        return None
    return as_text(cell).strip()


def _build_row(cells: Sequence[Any], column_map: Dict[int, str], *, row_number: int) -> Optional[ParsedRow]:
    if _row_is_empty(cells):
        return None

    values: Dict[str, Scalar] = {}
    for index, target in column_map.items():
        if index >= len(cells):
            continue
        value = _text_value(cells[index]) if target in TEXT_FIELDS else normalize_value(cells[index])
        if value is None:
            continue
        existing = values.get(target)
        if existing is None:
            values[target] = value
        elif target == FieldPath.NAME.value:
            # first_name/last_name style columns both land on name
            values[target] = f"{existing} {value}"
    return ParsedRow(row_number=row_number, values=values)


def _row_is_empty(cells: Iterable[Any]) -> bool:
    return all(normalize_value(cell) is None for cell in cells)


__all__ = [
    "ParseError",
    "ParseResult",
    "SUPPORTED_EXTENSIONS",
    "TEXT_FIELDS",
    "UnsupportedFileTypeError",
    "normalize_value",
    "parse_file",
]
