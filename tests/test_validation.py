import pytest

from lead_importer.models import ParsedRow
from lead_importer.validation import is_numeric, is_valid_email, is_valid_phone, validate_rows


def _row(row_number: int = 2, **values) -> ParsedRow:
    return ParsedRow(row_number=row_number, values=values)


def test_valid_row_has_no_errors_or_warnings() -> None:
    result = validate_rows([_row(name="Ada", phone="(555) 111-2222", email="ada@example.com", status="NEW")])

    assert result.is_valid
    assert result.warnings == []


def test_missing_name_is_exactly_one_error() -> None:
    result = validate_rows([_row(row_number=7, phone=5551112222)])

    assert len(result.errors) == 1
    (issue,) = result.errors
    assert issue.row == 7
    assert issue.field == "name"
    assert "name" in issue.message


def test_missing_name_and_phone_reports_both() -> None:
    result = validate_rows([_row()])

    assert [issue.field for issue in result.errors] == ["name", "phone"]


def test_format_errors_carry_original_value() -> None:
    result = validate_rows(
        [_row(name="Ada", phone="call me", email="not-an-email", estimated_value="lots", asking_price="1e3")]
    )

    by_field = {issue.field: issue for issue in result.errors}
    assert set(by_field) == {"phone", "email", "estimated_value"}
    assert by_field["phone"].message == "Invalid phone number format"
    assert by_field["phone"].value == "call me"
    assert by_field["email"].message == "Invalid email format"


def test_non_standard_status_and_priority_are_warnings() -> None:
    result = validate_rows([_row(name="Ada", phone=5551112222, status="archived", priority="ASAP")])

    assert result.is_valid
    assert [(issue.field, issue.value) for issue in result.warnings] == [
        ("status", "archived"),
        ("priority", "ASAP"),
    ]
    assert "default status" in result.warnings[0].message


@pytest.mark.parametrize(
    ("phone", "expected"),
    [
        ("555-123-4567", True),
        ("+1 (555) 123.4567", True),
        (5551234567, True),
        ("0555123456", False),
        ("12345678901234567", False),
        ("555-CALL-NOW", False),
    ],
)
def test_is_valid_phone(phone, expected) -> None:
    assert is_valid_phone(phone) is expected


def test_is_valid_email() -> None:
    assert is_valid_email("jane.doe@example.co.uk")
    assert not is_valid_email("jane@localhost")
    assert not is_valid_email("jane doe@example.com")


def test_is_numeric() -> None:
    assert is_numeric(350000)
    assert is_numeric("12.5")
    assert not is_numeric("12,500")
    assert not is_numeric("nan")
    assert not is_numeric(True)
