from lead_importer.ingestion.mapping import (
    DEFAULT_FIELD_MAPPING,
    FieldPath,
    build_column_map,
    resolve_field,
    unmapped_headers,
)
from lead_importer.models import FieldMapping


def test_default_mapping_is_case_insensitive() -> None:
    assert resolve_field("PHONE_NUMBER") == "phone"
    assert resolve_field(" Zip ") == "address.zip_code"
    assert resolve_field("Lead_Source") == "source"
    assert resolve_field("Price") == "asking_price"


def test_unknown_and_blank_headers_are_not_imported() -> None:
    assert resolve_field("Favourite Colour") is None
    assert resolve_field("   ") is None


def test_explicit_mapping_ignores_default_table() -> None:
    mapping = [FieldMapping("Cell", FieldPath.PHONE.value)]

    assert resolve_field("cell", mapping) == "phone"
    assert resolve_field("email", mapping) is None


def test_build_column_map_keeps_positions_of_mapped_columns() -> None:
    headers = ["Name", "Notes about the deal", "Phone", "", "County"]

    assert build_column_map(headers) == {0: "name", 2: "phone", 4: "address.county"}
    assert unmapped_headers(headers) == ["Notes about the deal"]


def test_every_default_target_is_a_known_field_path() -> None:
    known = {path.value for path in FieldPath}

    assert {path.value for path in DEFAULT_FIELD_MAPPING.values()} <= known
    assert all(key == key.lower() for key in DEFAULT_FIELD_MAPPING)
