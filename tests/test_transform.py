import pytest

from lead_importer.models import ImportOptions, ParsedRow
from lead_importer.transform import (
    chunked,
    identity_key,
    normalize_priority,
    normalize_status,
    process_tags,
    row_to_lead,
)


def _row(**values) -> ParsedRow:
    return ParsedRow(row_number=2, values=values)


def test_row_to_lead_applies_defaults() -> None:
    lead = row_to_lead(_row(name="Ada Lovelace", phone=5551112222), ImportOptions(), "tenant-1", "user-1")

    assert lead.status == "new"
    assert lead.priority == "medium"
    assert lead.source == "import"
    assert lead.phone == "5551112222"
    assert lead.created_by == "user-1"
    assert lead.address is None
    assert lead.property_details is None
    assert lead.lead_score == 0
    assert lead.communication_count == 0


def test_row_to_lead_uses_option_defaults() -> None:
    options = ImportOptions(default_source="mailer", default_status="contacted", default_priority="high")

    lead = row_to_lead(_row(name="Ada", phone="555", status="archived"), options, "tenant-1")

    assert lead.source == "mailer"
    assert lead.status == "contacted"
    assert lead.priority == "high"


def test_row_source_wins_over_default_source() -> None:
    options = ImportOptions(default_source="mailer")

    lead = row_to_lead(_row(name="Ada", phone="555", source="Zillow"), options, "tenant-1")

    assert lead.source == "Zillow"


def test_row_to_lead_builds_nested_objects_when_present() -> None:
    row = _row(
        name="Ada",
        phone="555",
        **{
            "address.city": "Austin",
            "address.zip_code": 78701,
            "property_details.bedrooms": 3,
            "property_details.year_built": 1999.0,
            "estimated_value": "250000.50",
        },
    )

    document = row_to_lead(row, ImportOptions(), "tenant-1").to_document()

    assert document["address"] == {"city": "Austin", "zip_code": "78701"}
    assert document["property_details"] == {"bedrooms": 3, "year_built": 1999}
    assert document["estimated_value"] == 250000.5
    assert "email" not in document
    assert "asking_price" not in document


def test_status_and_priority_are_lower_cased() -> None:
    assert normalize_status("Under_Contract") == "under_contract"
    assert normalize_status("archived") == "new"
    assert normalize_status(None, "lost") == "lost"
    assert normalize_priority("URGENT") == "urgent"
    assert normalize_priority("whenever", "low") == "low"


def test_process_tags_merges_defaults_first_without_duplicates() -> None:
    tags = process_tags(" motivated ; absentee| motivated,,vip ", ["campaign-7", "vip"])

    assert tags == ["campaign-7", "vip", "motivated", "absentee"]


def test_process_tags_handles_missing_and_numeric_values() -> None:
    assert process_tags(None) == []
    assert process_tags(2024) == ["2024"]


def test_identity_key_prefers_phone_then_email() -> None:
    options = ImportOptions()

    assert identity_key(row_to_lead(_row(name="A", phone="555", email="a@b.co"), options, "t")) == ("phone", "555")
    assert identity_key(row_to_lead(_row(name="A", email="a@b.co"), options, "t")) == ("email", "a@b.co")
    assert identity_key(row_to_lead(_row(name="A"), options, "t")) is None


def test_chunked_splits_in_order() -> None:
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []
    with pytest.raises(ValueError):
        chunked([1], 0)
