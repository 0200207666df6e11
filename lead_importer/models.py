"""Data models shared by the parser, validator, transformer, and job orchestrator."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

Scalar = Union[str, int, float, None]

LEAD_STATUSES = ("new", "contacted", "under_contract", "closed", "lost")
LEAD_PRIORITIES = ("low", "medium", "high", "urgent")

JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
TERMINAL_STATUSES = frozenset({JOB_COMPLETED, JOB_FAILED})


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_choice(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip().lower()
    return text or None


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# --- Upload / Parsing Models ---

@dataclass(slots=True)
class UploadedFile:
    """Raw upload as received from the caller; consumed once by the parser."""

    content: bytes
    filename: str
    media_type: Optional[str] = None

    @property
    def extension(self) -> str:
        _, dot, suffix = self.filename.rpartition(".")
        return suffix.lower() if dot else ""

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(slots=True)
class ParsedRow:
    """A single data row keyed by target field path."""

    row_number: int
    values: Dict[str, Scalar] = field(default_factory=dict)

    def get(self, field_path: str, default: Scalar = None) -> Scalar:
        return self.values.get(field_path, default)

    def __contains__(self, field_path: object) -> bool:
        return self.values.get(field_path) is not None  # type: ignore[call-overload]

    def as_dict(self) -> Dict[str, Any]:
        return {"rowNumber": self.row_number, **self.values}


@dataclass(slots=True)
class FieldMapping:
    """Explicit source column to target field path rule."""

    source_column: str
    target_field: str

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FieldMapping":
        source = payload.get("sourceColumn", payload.get("source_column", payload.get("csvColumn")))
        target = payload.get("targetField", payload.get("target_field", payload.get("dbField")))
        if not source or not target:
            raise ValueError("Field mapping entries require 'sourceColumn' and 'targetField'")
        return cls(source_column=str(source), target_field=str(target))


@dataclass
class ImportOptions:
    """Caller supplied switches controlling how rows are committed."""

    update_existing: bool = False
    skip_duplicates: bool = True
    batch_size: int = 100
    default_source: Optional[str] = None
    default_status: Optional[str] = None
    default_priority: Optional[str] = None
    default_tags: List[str] = field(default_factory=list)
    field_mapping: Optional[List[FieldMapping]] = None

    @classmethod
    def from_form(
        cls,
        *,
        update_existing: Any = None,
        skip_duplicates: Any = None,
        batch_size: Any = None,
        default_source: Optional[str] = None,
        default_status: Optional[str] = None,
        default_priority: Optional[str] = None,
        default_tags: Union[str, Iterable[str], None] = None,
        field_mapping: Union[str, Iterable[Mapping[str, Any]], None] = None,
        default_batch_size: int = 100,
    ) -> "ImportOptions":
        """Build options from loosely typed form fields.

        Raises :class:`ValueError` for a malformed batch size or field mapping.
        """

        if batch_size in (None, ""):
            size = default_batch_size
        else:
            try:
                size = int(batch_size)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Invalid batch size: {batch_size!r}") from exc

        if isinstance(default_tags, str):
            tags = [tag.strip() for tag in default_tags.split(",") if tag.strip()]
        else:
            tags = [str(tag).strip() for tag in (default_tags or []) if str(tag).strip()]

        return cls(
            update_existing=_parse_bool(update_existing, False),
            skip_duplicates=_parse_bool(skip_duplicates, True),
            batch_size=size,
            default_source=default_source or None,
            default_status=_parse_choice(default_status),
            default_priority=_parse_choice(default_priority),
            default_tags=tags,
            field_mapping=parse_field_mapping(field_mapping),
        )


def parse_field_mapping(
    value: Union[str, Iterable[Mapping[str, Any]], None],
) -> Optional[List[FieldMapping]]:
    """Parse a JSON string or list of dicts into :class:`FieldMapping` entries."""

    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError("Invalid field mapping JSON") from exc
    if isinstance(value, Mapping):
        # {"Cell": "phone"} shorthand
        return [FieldMapping(source_column=str(k), target_field=str(v)) for k, v in value.items()]
    if not isinstance(value, list):
        raise ValueError("Field mapping must be a list of {sourceColumn, targetField} objects")
    return [item if isinstance(item, FieldMapping) else FieldMapping.from_dict(item) for item in value]


# --- Validation Models ---

@dataclass(slots=True)
class ValidationIssue:
    """A per-row validation error or warning."""

    row: int
    field: str
    value: str
    message: str

    def as_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "field": self.field, "value": self.value, "message": self.message}


@dataclass(slots=True)
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [issue.as_dict() for issue in self.errors],
            "warnings": [issue.as_dict() for issue in self.warnings],
        }


# --- Persisted Entity ---

@dataclass
class Address:
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    county: Optional[str] = None
    full_address: Optional[str] = None


@dataclass
class PropertyDetails:
    type: Optional[str] = None
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    square_feet: Optional[float] = None
    lot_size: Optional[float] = None
    year_built: Optional[int] = None


@dataclass
class LeadEntity:
    """Lead record in the shape it is written to the store."""

    tenant_id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[Address] = None
    property_details: Optional[PropertyDetails] = None
    estimated_value: Optional[float] = None
    asking_price: Optional[float] = None
    source: str = "import"
    status: str = "new"
    priority: str = "medium"
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    created_by: Optional[str] = None
    lead_score: float = 0
    qualification_probability: float = 0
    communication_count: int = 0

    def to_document(self) -> Dict[str, Any]:
        """Return a store document, omitting unset optional values."""

        document: Dict[str, Any] = {}
        for key in (
            "tenant_id",
            "name",
            "phone",
            "email",
            "estimated_value",
            "asking_price",
            "source",
            "status",
            "priority",
            "notes",
            "created_by",
            "lead_score",
            "qualification_probability",
            "communication_count",
        ):
            value = getattr(self, key)
            if value is not None:
                document[key] = value
        document["tags"] = list(self.tags)
        for key in ("address", "property_details"):
            nested = getattr(self, key)
            if nested is not None:
                document[key] = {k: v for k, v in vars(nested).items() if v is not None}
        return document


# --- Job Models ---

@dataclass
class ImportJob:
    """Progress record for one import, polled by callers."""

    import_id: str
    started_at: datetime
    total_records: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    skipped_rows: int = 0
    status: str = JOB_PROCESSING
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None

    @property
    def job_id(self) -> str:
        return self.import_id

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def add_error(self, row: int, field_name: str, value: Any, message: str) -> None:
        self.errors.append(ValidationIssue(row=row, field=field_name, value=as_text(value), message=message))

    def finish(self, status: str, now: datetime) -> None:
        self.status = status
        self.completed_at = now
        self.duration = int((now - self.started_at).total_seconds() * 1000)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "importId": self.import_id,
            "totalRecords": self.total_records,
            "successfulRows": self.successful_rows,
            "failedRows": self.failed_rows,
            "skippedRows": self.skipped_rows,
            "status": self.status,
            "errors": [issue.as_dict() for issue in self.errors],
            "warnings": [issue.as_dict() for issue in self.warnings],
            "startedAt": _isoformat(self.started_at),
        }
        if self.completed_at is not None:
            payload["completedAt"] = _isoformat(self.completed_at)
            payload["duration"] = self.duration
        return payload


@dataclass
class ExportJob:
    """Progress record for an export; the rendered file is kept alongside it."""

    export_id: str
    started_at: datetime
    format: str = "csv"
    status: str = JOB_PROCESSING
    record_count: int = 0
    filename: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None
    content: Optional[bytes] = field(default=None, repr=False)

    @property
    def job_id(self) -> str:
        return self.export_id

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def finish(self, status: str, now: datetime) -> None:
        self.status = status
        self.completed_at = now
        self.duration = int((now - self.started_at).total_seconds() * 1000)

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "exportId": self.export_id,
            "status": self.status,
            "format": self.format,
            "recordCount": self.record_count,
            "filename": self.filename,
            "errors": list(self.errors),
            "startedAt": _isoformat(self.started_at),
        }
        if self.completed_at is not None:
            payload["completedAt"] = _isoformat(self.completed_at)
            payload["duration"] = self.duration
        return payload


def as_text(value: Any) -> str:
    """Render a cell value the way it appeared in the file."""

    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


__all__ = [
    "Address",
    "ExportJob",
    "FieldMapping",
    "ImportJob",
    "ImportOptions",
    "JOB_COMPLETED",
    "JOB_FAILED",
    "JOB_PROCESSING",
    "LEAD_PRIORITIES",
    "LEAD_STATUSES",
    "LeadEntity",
    "ParsedRow",
    "PropertyDetails",
    "Scalar",
    "UploadedFile",
    "as_text",
    "ValidationIssue",
    "ValidationResult",
    "parse_field_mapping",
]
