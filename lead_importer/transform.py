"""Turn validated rows into lead entities ready to be written."""
from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .ingestion.mapping import ADDRESS_FIELDS, PROPERTY_FIELDS, FieldPath
from .models import (
    LEAD_PRIORITIES,
    LEAD_STATUSES,
    Address,
    ImportOptions,
    LeadEntity,
    ParsedRow,
    PropertyDetails,
    Scalar,
    as_text,
)

T = TypeVar("T")

DEFAULT_SOURCE = "import"
DEFAULT_STATUS = "new"
DEFAULT_PRIORITY = "medium"

_TAG_SEPARATORS = re.compile(r"[,;|]")


def row_to_lead(
    row: ParsedRow,
    options: ImportOptions,
    tenant_id: str,
    user_id: Optional[str] = None,
) -> LeadEntity:
    """Build a :class:`LeadEntity` from a validated row, filling in defaults."""

    source = _text(row.get(FieldPath.SOURCE.value))
    return LeadEntity(
        tenant_id=tenant_id,
        name=_text(row.get(FieldPath.NAME.value)) or "",
        phone=_text(row.get(FieldPath.PHONE.value)),
        email=_text(row.get(FieldPath.EMAIL.value)),
        address=_build_address(row),
        property_details=_build_property_details(row),
        estimated_value=_number(row.get(FieldPath.ESTIMATED_VALUE.value)),
        asking_price=_number(row.get(FieldPath.ASKING_PRICE.value)),
        source=source or options.default_source or DEFAULT_SOURCE,
        status=normalize_status(row.get(FieldPath.STATUS.value), options.default_status),
        priority=normalize_priority(row.get(FieldPath.PRIORITY.value), options.default_priority),
        tags=process_tags(row.get(FieldPath.TAGS.value), options.default_tags),
        notes=_text(row.get(FieldPath.NOTES.value)),
        created_by=user_id,
    )


def normalize_status(value: Any, default_status: Optional[str] = None) -> str:
    return _normalize_choice(value, LEAD_STATUSES, (default_status or DEFAULT_STATUS).lower())


def normalize_priority(value: Any, default_priority: Optional[str] = None) -> str:
    return _normalize_choice(value, LEAD_PRIORITIES, (default_priority or DEFAULT_PRIORITY).lower())


def _normalize_choice(value: Any, choices: Sequence[str], fallback: str) -> str:
    text = _text(value)
    if text is None:
        return fallback
    lowered = text.lower()
    return lowered if lowered in choices else fallback


def process_tags(tags: Any, default_tags: Optional[Iterable[str]] = None) -> List[str]:
    """Merge default tags with row tags, preserving first-seen order."""

    candidates: List[str] = [str(tag) for tag in (default_tags or [])]
    if isinstance(tags, str):
        candidates.extend(_TAG_SEPARATORS.split(tags))
    elif isinstance(tags, (list, tuple, set)):
        candidates.extend(str(tag) for tag in tags)
    elif tags is not None:
        candidates.append(as_text(tags))

    merged: List[str] = []
    for tag in candidates:
        cleaned = tag.strip()
        if cleaned and cleaned not in merged:
            merged.append(cleaned)
    return merged


def identity_key(lead: LeadEntity) -> Optional[Tuple[str, str]]:
    """Best-effort dedup key: phone when present, otherwise email."""

    if lead.phone:
        return ("phone", lead.phone)
    if lead.email:
        return ("email", lead.email)
    return None


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    return [list(items[start:start + size]) for start in range(0, len(items), size)]


def _build_address(row: ParsedRow) -> Optional[Address]:
    if not any(path.value in row for path in ADDRESS_FIELDS):
        return None
    return Address(
        street=_text(row.get(FieldPath.STREET.value)),
        city=_text(row.get(FieldPath.CITY.value)),
        state=_text(row.get(FieldPath.STATE.value)),
        zip_code=_text(row.get(FieldPath.ZIP_CODE.value)),
        county=_text(row.get(FieldPath.COUNTY.value)),
        full_address=_text(row.get(FieldPath.FULL_ADDRESS.value)),
    )


def _build_property_details(row: ParsedRow) -> Optional[PropertyDetails]:
    if not any(path.value in row for path in PROPERTY_FIELDS):
        return None
    year_built = _number(row.get(FieldPath.YEAR_BUILT.value))
    return PropertyDetails(
        type=_text(row.get(FieldPath.PROPERTY_TYPE.value)),
        bedrooms=_number(row.get(FieldPath.BEDROOMS.value)),
        bathrooms=_number(row.get(FieldPath.BATHROOMS.value)),
        square_feet=_number(row.get(FieldPath.SQUARE_FEET.value)),
        lot_size=_number(row.get(FieldPath.LOT_SIZE.value)),
        year_built=int(year_built) if year_built is not None else None,
    )


def _text(value: Scalar) -> Optional[str]:
    if value is None:
        return None
    text = as_text(value).strip()
    return text or None


def _number(value: Scalar) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


__all__ = [
    "DEFAULT_PRIORITY",
    "DEFAULT_SOURCE",
    "DEFAULT_STATUS",
    "chunked",
    "identity_key",
    "normalize_priority",
    "normalize_status",
    "process_tags",
    "row_to_lead",
]
