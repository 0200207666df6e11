"""Document store abstraction for persisted leads."""
from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

LOGGER = logging.getLogger(__name__)

Document = Dict[str, Any]

# Never overwritten by an update coming from an import.
PROTECTED_FIELDS = frozenset(
    {"_id", "tenant_id", "created_at", "created_by", "lead_score", "qualification_probability", "communication_count"}
)


@dataclass(slots=True)
class InsertLead:
    document: Document


@dataclass(slots=True)
class UpdateLead:
    lead_id: str
    fields: Document


WriteOperation = Union[InsertLead, UpdateLead]


class LeadWriteError(RuntimeError):
    """Raised by a store when a single write operation cannot be applied."""


@dataclass(slots=True)
class BulkWriteOutcome:
    """Counts reported by an unordered bulk write."""

    inserted_count: int = 0
    matched_count: int = 0
    modified_count: int = 0
    write_errors: List[Tuple[int, str]] = field(default_factory=list)


class LeadStore(Protocol):
    """Interface the orchestrator needs from a lead store."""

    def find_existing(
        self, tenant_id: str, *, phone: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[Document]:  # pragma: no cover - runtime protocol
        """Return one lead of the tenant matching phone, or email when phone is absent."""

    def bulk_write(self, operations: Sequence[WriteOperation]) -> BulkWriteOutcome:  # pragma: no cover
        """Apply operations without stopping at the first failure."""

    def find(self, tenant_id: str, filters: Optional[Mapping[str, Any]] = None) -> List[Document]:  # pragma: no cover
        """Return the tenant's leads matching equality ``filters``."""

    def count(self, tenant_id: Optional[str] = None) -> int:  # pragma: no cover
        """Return how many leads are stored, optionally for one tenant."""


def new_lead_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _lookup(document: Mapping[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def matches_filters(document: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
    for path, expected in (filters or {}).items():
        actual = _lookup(document, path)
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryLeadStore:
    """Thread-safe in-process store keyed by lead id."""

    def __init__(self, documents: Optional[Sequence[Document]] = None) -> None:
        self._lock = threading.RLock()
        self._documents: Dict[str, Document] = {}
        for document in documents or []:
            stored = copy.deepcopy(dict(document))
            stored.setdefault("_id", new_lead_id())
            self._documents[stored["_id"]] = stored

    def find_existing(
        self, tenant_id: str, *, phone: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[Document]:
        if phone:
            query = {"tenant_id": tenant_id, "phone": phone}
        elif email:
            query = {"tenant_id": tenant_id, "email": email}
        else:
            return None
        with self._lock:
            for document in self._documents.values():
                if matches_filters(document, query):
                    return copy.deepcopy(document)
        return None

    def bulk_write(self, operations: Sequence[WriteOperation]) -> BulkWriteOutcome:
        outcome = BulkWriteOutcome()
        with self._lock:
            for index, operation in enumerate(operations):
                try:
                    self._apply(operation, outcome)
                except LeadWriteError as exc:
                    outcome.write_errors.append((index, str(exc)))
            self._after_write()
        return outcome

    def find(self, tenant_id: str, filters: Optional[Mapping[str, Any]] = None) -> List[Document]:
        with self._lock:
            return [
                copy.deepcopy(document)
                for document in self._documents.values()
                if document.get("tenant_id") == tenant_id and matches_filters(document, filters)
            ]

    def count(self, tenant_id: Optional[str] = None) -> int:
        with self._lock:
            if tenant_id is None:
                return len(self._documents)
            return sum(1 for document in self._documents.values() if document.get("tenant_id") == tenant_id)

    def all_documents(self) -> List[Document]:
        with self._lock:
            return [copy.deepcopy(document) for document in self._documents.values()]

    def _apply(self, operation: WriteOperation, outcome: BulkWriteOutcome) -> None:
        if isinstance(operation, InsertLead):
            document = copy.deepcopy(operation.document)
            lead_id = document.setdefault("_id", new_lead_id())
            if lead_id in self._documents:
                raise LeadWriteError(f"Duplicate key error: lead '{lead_id}' already exists")
            now = _utcnow()
            document.setdefault("created_at", now)
            document.setdefault("updated_at", now)
            self._documents[lead_id] = document
            outcome.inserted_count += 1
            return

        if isinstance(operation, UpdateLead):
            existing = self._documents.get(operation.lead_id)
            if existing is None:
                raise LeadWriteError(f"No lead matched id '{operation.lead_id}'")
            outcome.matched_count += 1
            changes = {
                key: copy.deepcopy(value)
                for key, value in operation.fields.items()
                if key not in PROTECTED_FIELDS and existing.get(key) != value
            }
            if changes:
                existing.update(changes)
                existing["updated_at"] = _utcnow()
                outcome.modified_count += 1
            return

        raise LeadWriteError(f"Unsupported write operation: {operation!r}")

    def _after_write(self) -> None:
        """Hook for subclasses that persist after every bulk write."""


class JsonFileLeadStore(InMemoryLeadStore):
    """In-memory store mirrored to a JSON file after every bulk write."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        documents: List[Document] = []
        if self._path.exists():
            text = self._path.read_text(encoding="utf-8")
            if text.strip():
                documents = json.loads(text)
            LOGGER.debug("Loaded %s leads from %s", len(documents), self._path)
        super().__init__(documents)

    @property
    def path(self) -> Path:
        return self._path

    def _after_write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(list(self._documents.values()), ensure_ascii=False, indent=2)
        self._path.write_text(payload, encoding="utf-8")


__all__ = [
    "BulkWriteOutcome",
    "Document",
    "InMemoryLeadStore",
    "InsertLead",
    "JsonFileLeadStore",
    "LeadStore",
    "LeadWriteError",
    "PROTECTED_FIELDS",
    "UpdateLead",
    "WriteOperation",
    "matches_filters",
    "new_lead_id",
]
