"""Bulk import and export of real-estate leads from CSV and Excel files."""

from . import models  # noqa: F401
from .config import Settings, load_settings
from .models import (
    ExportJob,
    FieldMapping,
    ImportJob,
    ImportOptions,
    LeadEntity,
    ParsedRow,
    UploadedFile,
    ValidationIssue,
    ValidationResult,
)
from .orchestrator import ImportOrchestrator, ImportRequestError
from .registry import JobRegistry
from .store import InMemoryLeadStore, JsonFileLeadStore, LeadStore

__all__ = [
    "ExportJob",
    "FieldMapping",
    "ImportJob",
    "ImportOptions",
    "ImportOrchestrator",
    "ImportRequestError",
    "InMemoryLeadStore",
    "JobRegistry",
    "JsonFileLeadStore",
    "LeadEntity",
    "LeadStore",
    "ParsedRow",
    "Settings",
    "UploadedFile",
    "ValidationIssue",
    "ValidationResult",
    "load_settings",
    "ingestion",
    "orchestrator",
]
