"""MongoDB backed lead store."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pymongo import InsertOne, UpdateOne
from pymongo.errors import BulkWriteError

from .store import PROTECTED_FIELDS, BulkWriteOutcome, Document, InsertLead, UpdateLead, WriteOperation

LOGGER = logging.getLogger(__name__)


class MongoLeadStore:
    """Store leads in a MongoDB collection using unordered bulk writes."""

    def __init__(self, collection: Any) -> None:
        self._collection = collection

    @classmethod
    def from_uri(cls, uri: str, database: str = "leads", collection: str = "leads") -> "MongoLeadStore":
        from pymongo import MongoClient

        client = MongoClient(uri)
        return cls(client[database][collection])

    def find_existing(
        self, tenant_id: str, *, phone: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[Document]:
        query: Dict[str, Any] = {"tenant_id": tenant_id}
        if phone:
            query["phone"] = phone
        elif email:
            query["email"] = email
        else:
            return None
        return self._collection.find_one(query)

    def bulk_write(self, operations: Sequence[WriteOperation]) -> BulkWriteOutcome:
        requests = [self._to_request(operation) for operation in operations]
        if not requests:
            return BulkWriteOutcome()

        try:
            result = self._collection.bulk_write(requests, ordered=False)
        except BulkWriteError as exc:
            details = exc.details or {}
            LOGGER.warning("Bulk write partial error: %s write errors", len(details.get("writeErrors", [])))
            outcome = BulkWriteOutcome(
                inserted_count=details.get("nInserted", 0),
                matched_count=details.get("nMatched", 0),
                modified_count=details.get("nModified", 0),
                write_errors=[
                    (error.get("index", 0), error.get("errmsg", "write error"))
                    for error in details.get("writeErrors", [])
                ],
            )
        else:
            outcome = BulkWriteOutcome(
                inserted_count=result.inserted_count,
                matched_count=result.matched_count,
                modified_count=result.modified_count,
            )

        self._report_unmatched_updates(operations, outcome)
        return outcome

    def find(self, tenant_id: str, filters: Optional[Mapping[str, Any]] = None) -> List[Document]:
        query: Dict[str, Any] = dict(filters or {})
        query["tenant_id"] = tenant_id
        return list(self._collection.find(query))

    def count(self, tenant_id: Optional[str] = None) -> int:
        query = {"tenant_id": tenant_id} if tenant_id is not None else {}
        return self._collection.count_documents(query)

    def _report_unmatched_updates(self, operations: Sequence[WriteOperation], outcome: BulkWriteOutcome) -> None:
        """Turn updates whose lead no longer exists into per-operation errors.

        MongoDB does not treat an ``UpdateOne`` that matches nothing as a write
        error, so the missing leads are looked up once the batch is done.
        """

        failed = {index for index, _ in outcome.write_errors}
        updates = {
            index: operation.lead_id
            for index, operation in enumerate(operations)
            if isinstance(operation, UpdateLead) and index not in failed
        }
        if outcome.matched_count >= len(updates):
            return

        present = {
            document["_id"]
            for document in self._collection.find({"_id": {"$in": list(updates.values())}}, {"_id": 1})
        }
        for index, lead_id in updates.items():
            if lead_id not in present:
                outcome.write_errors.append((index, f"No lead matched id '{lead_id}'"))
        outcome.write_errors.sort()
        LOGGER.warning("Bulk write matched %s of %s updates", outcome.matched_count, len(updates))

    @staticmethod
    def _to_request(operation: WriteOperation):
        now = datetime.now(timezone.utc).isoformat()
        if isinstance(operation, InsertLead):
            document = dict(operation.document)
            document.setdefault("created_at", now)
            document.setdefault("updated_at", now)
            return InsertOne(document)
        if isinstance(operation, UpdateLead):
            fields = {key: value for key, value in operation.fields.items() if key not in PROTECTED_FIELDS}
            return UpdateOne({"_id": operation.lead_id}, {"$set": fields})
        raise TypeError(f"Unsupported write operation: {operation!r}")


__all__ = ["MongoLeadStore"]
