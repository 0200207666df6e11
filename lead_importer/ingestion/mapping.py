"""Column name to lead field path resolution."""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

from ..models import FieldMapping


class FieldPath(str, Enum):
    """Every field path the transformer knows how to place on a lead."""

    NAME = "name"
    PHONE = "phone"
    EMAIL = "email"
    FULL_ADDRESS = "address.full_address"
    STREET = "address.street"
    CITY = "address.city"
    STATE = "address.state"
    ZIP_CODE = "address.zip_code"
    COUNTY = "address.county"
    PROPERTY_TYPE = "property_details.type"
    BEDROOMS = "property_details.bedrooms"
    BATHROOMS = "property_details.bathrooms"
    SQUARE_FEET = "property_details.square_feet"
    LOT_SIZE = "property_details.lot_size"
    YEAR_BUILT = "property_details.year_built"
    ESTIMATED_VALUE = "estimated_value"
    ASKING_PRICE = "asking_price"
    SOURCE = "source"
    STATUS = "status"
    PRIORITY = "priority"
    TAGS = "tags"
    NOTES = "notes"


ADDRESS_FIELDS = tuple(path for path in FieldPath if path.value.startswith("address."))
PROPERTY_FIELDS = tuple(path for path in FieldPath if path.value.startswith("property_details."))

# Lower-cased header spelling -> field path
DEFAULT_FIELD_MAPPING: Mapping[str, FieldPath] = {
    "name": FieldPath.NAME,
    "full_name": FieldPath.NAME,
    "first_name": FieldPath.NAME,
    "last_name": FieldPath.NAME,
    "phone": FieldPath.PHONE,
    "phone_number": FieldPath.PHONE,
    "mobile": FieldPath.PHONE,
    "email": FieldPath.EMAIL,
    "email_address": FieldPath.EMAIL,
    "address": FieldPath.FULL_ADDRESS,
    "street": FieldPath.STREET,
    "city": FieldPath.CITY,
    "state": FieldPath.STATE,
    "zip": FieldPath.ZIP_CODE,
    "zip_code": FieldPath.ZIP_CODE,
    "county": FieldPath.COUNTY,
    "property_type": FieldPath.PROPERTY_TYPE,
    "bedrooms": FieldPath.BEDROOMS,
    "bathrooms": FieldPath.BATHROOMS,
    "square_feet": FieldPath.SQUARE_FEET,
    "lot_size": FieldPath.LOT_SIZE,
    "year_built": FieldPath.YEAR_BUILT,
    "estimated_value": FieldPath.ESTIMATED_VALUE,
    "value": FieldPath.ESTIMATED_VALUE,
    "asking_price": FieldPath.ASKING_PRICE,
    "price": FieldPath.ASKING_PRICE,
    "source": FieldPath.SOURCE,
    "lead_source": FieldPath.SOURCE,
    "status": FieldPath.STATUS,
    "priority": FieldPath.PRIORITY,
    "tags": FieldPath.TAGS,
    "notes": FieldPath.NOTES,
    "description": FieldPath.NOTES,
}


def resolve_field(header: str, field_mapping: Optional[Sequence[FieldMapping]] = None) -> Optional[str]:
    """Return the target field path for ``header`` or ``None`` when it is not imported.

    An explicit ``field_mapping`` replaces the default table entirely; source
    columns are matched case-insensitively.
    """

    key = str(header).strip().lower()
    if not key:
        return None

    if field_mapping is not None:
        for entry in field_mapping:
            if entry.source_column.strip().lower() == key:
                return entry.target_field
        return None

    path = DEFAULT_FIELD_MAPPING.get(key)
    return path.value if path else None


def build_column_map(
    headers: Sequence[str],
    field_mapping: Optional[Sequence[FieldMapping]] = None,
) -> Dict[int, str]:
    """Map header positions to field paths, dropping unmapped columns."""

    resolved: Dict[int, str] = {}
    for index, header in enumerate(headers):
        if header is None:
            continue
        target = resolve_field(header, field_mapping)
        if target:
            resolved[index] = target
    return resolved


def unmapped_headers(
    headers: Sequence[str],
    field_mapping: Optional[Sequence[FieldMapping]] = None,
) -> List[str]:
    return [header for header in headers if header and resolve_field(header, field_mapping) is None]


__all__ = [
    "ADDRESS_FIELDS",
    "DEFAULT_FIELD_MAPPING",
    "FieldPath",
    "PROPERTY_FIELDS",
    "build_column_map",
    "resolve_field",
    "unmapped_headers",
]
