"""Export stored leads to CSV, Excel, or JSON."""
from __future__ import annotations

import io
import json
from typing import Any, Iterable, List, Mapping, MutableMapping, Optional, Sequence

import pandas as pd

EXPORT_FORMATS = {
    "csv": ("text/csv", "csv"),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
    "json": ("application/json", "json"),
}

# Column names chosen so an export re-imports through the default mapping.
EXPORT_COLUMNS: Sequence[str] = (
    "name",
    "phone",
    "email",
    "address",
    "street",
    "city",
    "state",
    "zip_code",
    "county",
    "property_type",
    "bedrooms",
    "bathrooms",
    "square_feet",
    "lot_size",
    "year_built",
    "estimated_value",
    "asking_price",
    "source",
    "status",
    "priority",
    "tags",
    "notes",
)

_NESTED_COLUMNS = {
    "address": ("address", "full_address"),
    "street": ("address", "street"),
    "city": ("address", "city"),
    "state": ("address", "state"),
    "zip_code": ("address", "zip_code"),
    "county": ("address", "county"),
    "property_type": ("property_details", "type"),
    "bedrooms": ("property_details", "bedrooms"),
    "bathrooms": ("property_details", "bathrooms"),
    "square_feet": ("property_details", "square_feet"),
    "lot_size": ("property_details", "lot_size"),
    "year_built": ("property_details", "year_built"),
}


class UnsupportedExportFormatError(ValueError):
    """Raised when an export is requested in an unknown format."""


def leads_to_dataframe(documents: Sequence[Mapping[str, Any]], fields: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Flatten lead documents into import-compatible columns."""

    columns = list(fields or EXPORT_COLUMNS)
    records = [_document_to_row(document, columns) for document in documents]
    return pd.DataFrame(records, columns=columns, dtype=object)


def export_leads(
    documents: Sequence[Mapping[str, Any]],
    export_format: str = "csv",
    *,
    fields: Optional[Sequence[str]] = None,
    sheet_name: str = "Leads",
) -> bytes:
    """Render lead documents as file content in ``export_format``."""

    export_format = export_format.lower()
    if export_format not in EXPORT_FORMATS:
        raise UnsupportedExportFormatError(f"Unsupported export format: {export_format}")

    if export_format == "json":
        records = [_json_ready(document, fields) for document in documents]
        return json.dumps(records, ensure_ascii=False, indent=2, default=str).encode("utf-8")

    dataframe = leads_to_dataframe(documents, fields)
    buffer = io.BytesIO()
    if export_format == "csv":
        dataframe.to_csv(buffer, index=False, encoding="utf-8")
    else:
        dataframe.to_excel(buffer, index=False, sheet_name=sheet_name, engine="openpyxl")
    return buffer.getvalue()


def media_type_for(export_format: str) -> str:
    return EXPORT_FORMATS[export_format.lower()][0]


def filename_for(export_id: str, export_format: str) -> str:
    return f"leads_export_{export_id}.{EXPORT_FORMATS[export_format.lower()][1]}"


def _document_to_row(document: Mapping[str, Any], columns: Iterable[str]) -> MutableMapping[str, object]:
    row: MutableMapping[str, object] = {}
    for column in columns:
        if column in _NESTED_COLUMNS:
            parent, child = _NESTED_COLUMNS[column]
            nested = document.get(parent) or {}
            value = nested.get(child) if isinstance(nested, Mapping) else None
        elif column == "tags":
            value = _join_list(document.get("tags") or [])
        else:
            value = document.get(column)
        row[column] = value
    return row


def _join_list(values: Iterable[Optional[str]]) -> str:
    cleaned: List[str] = []
    for value in values:
        if not value:
            continue
        text = str(value).strip()
        if text:
            cleaned.append(text)
    return ", ".join(cleaned)


def _json_ready(document: Mapping[str, Any], fields: Optional[Sequence[str]]) -> MutableMapping[str, Any]:
    if not fields:
        return {key: value for key, value in document.items()}
    return {key: document.get(key) for key in fields}


__all__ = [
    "EXPORT_COLUMNS",
    "EXPORT_FORMATS",
    "UnsupportedExportFormatError",
    "export_leads",
    "filename_for",
    "leads_to_dataframe",
    "media_type_for",
]
