"""Downloadable import templates with example rows."""
from __future__ import annotations

import csv
import io
from typing import Dict, List, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

TEMPLATE_SHEET_NAME = "Leads Template"

# (header, column width in characters)
TEMPLATE_COLUMNS: Sequence[Tuple[str, int]] = (
    ("name", 20),
    ("phone", 15),
    ("email", 25),
    ("address", 40),
    ("city", 15),
    ("state", 10),
    ("zip", 10),
    ("property_type", 15),
    ("bedrooms", 10),
    ("bathrooms", 10),
    ("square_feet", 15),
    ("estimated_value", 15),
    ("asking_price", 15),
    ("source", 15),
    ("status", 15),
    ("priority", 15),
    ("tags", 20),
    ("notes", 50),
)

TEMPLATE_ROWS: Sequence[Dict[str, str]] = (
    {
        "name": "John Smith",
        "phone": "555-123-4567",
        "email": "john.smith@example.com",
        "address": "123 Main St",
        "city": "Anytown",
        "state": "CA",
        "zip": "90210",
        "property_type": "single_family",
        "bedrooms": "3",
        "bathrooms": "2",
        "square_feet": "1500",
        "estimated_value": "350000",
        "asking_price": "375000",
        "source": "website",
        "status": "new",
        "priority": "medium",
        "tags": "motivated seller, quick close",
        "notes": "Owner is motivated to sell quickly due to job relocation.",
    },
    {
        "name": "Jane Doe",
        "phone": "555-987-6543",
        "email": "jane.doe@example.com",
        "address": "456 Oak Ave",
        "city": "Somewhere",
        "state": "TX",
        "zip": "75001",
        "property_type": "multi_family",
        "bedrooms": "4",
        "bathrooms": "3",
        "square_feet": "2200",
        "estimated_value": "450000",
        "asking_price": "475000",
        "source": "referral",
        "status": "contacted",
        "priority": "high",
        "tags": "investment property, good cash flow",
        "notes": "Great investment opportunity with existing tenants.",
    },
)

TEMPLATE_FORMATS = {
    "csv": ("text/csv", "leads_import_template.csv"),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "leads_import_template.xlsx"),
}


def template_headers() -> List[str]:
    return [header for header, _ in TEMPLATE_COLUMNS]


def build_template(template_format: str = "csv") -> bytes:
    """Return template file content in ``csv`` or ``xlsx`` format."""

    template_format = template_format.lower()
    if template_format == "csv":
        return _build_csv()
    if template_format == "xlsx":
        return _build_xlsx()
    raise ValueError(f"Unsupported template format: {template_format}")


def _build_csv() -> bytes:
    headers = template_headers()
    handle = io.StringIO(newline="")
    writer = csv.DictWriter(handle, fieldnames=headers, lineterminator="\n")
    writer.writeheader()
    for row in TEMPLATE_ROWS:
        writer.writerow(row)
    return handle.getvalue().encode("utf-8")


def _build_xlsx() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = TEMPLATE_SHEET_NAME
    headers = template_headers()
    sheet.append(headers)
    for row in TEMPLATE_ROWS:
        sheet.append([row[header] for header in headers])

    for index, (_, width) in enumerate(TEMPLATE_COLUMNS, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


__all__ = ["TEMPLATE_COLUMNS", "TEMPLATE_FORMATS", "TEMPLATE_ROWS", "build_template", "template_headers"]
