import io

import pytest
from openpyxl import load_workbook

from lead_importer.ingestion.mapping import build_column_map
from lead_importer.ingestion.parser import parse_file
from lead_importer.ingestion.templates import TEMPLATE_COLUMNS, build_template, template_headers
from lead_importer.validation import validate_rows

EXPECTED_HEADERS = [
    "name",
    "phone",
    "email",
    "address",
    "city",
    "state",
    "zip",
    "property_type",
    "bedrooms",
    "bathrooms",
    "square_feet",
    "estimated_value",
    "asking_price",
    "source",
    "status",
    "priority",
    "tags",
    "notes",
]


def test_template_headers_are_fixed() -> None:
    assert template_headers() == EXPECTED_HEADERS


def test_every_template_header_resolves_through_default_mapping() -> None:
    column_map = build_column_map(template_headers())

    assert len(column_map) == len(EXPECTED_HEADERS)
    assert len(set(column_map.values())) == len(EXPECTED_HEADERS)


@pytest.mark.parametrize("template_format", ["csv", "xlsx"])
def test_template_parses_and_validates_cleanly(template_format) -> None:
    result = parse_file(build_template(template_format), template_format)

    assert [row.get("name") for row in result.rows] == ["John Smith", "Jane Doe"]
    assert result.rows[0].get("address.zip_code") == "90210"
    assert result.rows[1].get("property_details.type") == "multi_family"
    assert validate_rows(result.rows).is_valid


def test_csv_template_starts_with_header_line() -> None:
    text = build_template("CSV").decode("utf-8")

    assert text.splitlines()[0] == ",".join(EXPECTED_HEADERS)
    assert "John Smith" in text


def test_xlsx_template_sheet_and_column_widths() -> None:
    workbook = load_workbook(io.BytesIO(build_template("xlsx")))
    sheet = workbook.active

    assert sheet.title == "Leads Template"
    assert [cell.value for cell in sheet[1]] == EXPECTED_HEADERS
    assert sheet.max_row == 3
    assert sheet.column_dimensions["A"].width == TEMPLATE_COLUMNS[0][1]
    assert sheet.column_dimensions["R"].width == 50


def test_unknown_template_format_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_template("pdf")
