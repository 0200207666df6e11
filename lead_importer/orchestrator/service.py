"""Import orchestrator that drives parsing, validation, and batched writes."""
from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..config import Settings
from ..ingestion.exporters import EXPORT_FORMATS, export_leads, filename_for
from ..ingestion.parser import ParseError, UnsupportedFileTypeError, parse_file
from ..models import (
    JOB_COMPLETED,
    JOB_FAILED,
    LEAD_PRIORITIES,
    LEAD_STATUSES,
    ExportJob,
    FieldMapping,
    ImportJob,
    ImportOptions,
    ParsedRow,
    UploadedFile,
    ValidationIssue,
)
from ..registry import JobRegistry, utcnow
from ..store import BulkWriteOutcome, InsertLead, LeadStore, UpdateLead, WriteOperation, new_lead_id
from ..transform import chunked, identity_key, row_to_lead
from ..validation import validate_rows

LOGGER = logging.getLogger(__name__)

IdentityKey = Tuple[str, str]


class ImportRequestError(ValueError):
    """Raised when a request is rejected before any job is created."""


class BatchWriteTimeoutError(RuntimeError):
    """Raised when the store does not finish a batch write in time."""


def generate_job_id(prefix: str = "import") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ImportOrchestrator:
    """Accepts uploads, runs the import pipeline in the background, and tracks progress.

    ``start_import`` returns as soon as the job is registered; callers poll
    :meth:`get_progress` until the job reaches ``completed`` or ``failed``.
    Each job runs on a worker thread and processes its batches strictly in
    order. Separate jobs may run concurrently against the same store.
    """

    def __init__(
        self,
        store: LeadStore,
        *,
        settings: Optional[Settings] = None,
        registry: Optional[JobRegistry[ImportJob]] = None,
        export_registry: Optional[JobRegistry[ExportJob]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = settings or Settings()
        retention = timedelta(hours=self._settings.job_retention_hours)
        self._imports: JobRegistry[ImportJob] = registry or JobRegistry(retention)
        self._exports: JobRegistry[ExportJob] = export_registry or JobRegistry(retention)
        self._clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self._settings.max_workers), thread_name_prefix="lead-import"
        )
        self._write_executor = ThreadPoolExecutor(
            max_workers=max(1, self._settings.max_workers), thread_name_prefix="lead-write"
        )
        self._tasks: Dict[str, Future[None]] = {}
        self._lock = threading.Lock()
        self._stopping = threading.Event()

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> LeadStore:
        return self._store

    @property
    def imports(self) -> JobRegistry[ImportJob]:
        return self._imports

    @property
    def exports(self) -> JobRegistry[ExportJob]:
        return self._exports

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------
    def start_import(
        self,
        upload: UploadedFile,
        options: ImportOptions,
        tenant_id: Optional[str],
        user_id: Optional[str],
    ) -> ImportJob:
        """Register a new import job and start processing it in the background."""

        if not tenant_id:
            raise ImportRequestError("tenantId is required")
        if not user_id:
            raise ImportRequestError("userId is required")
        self._check_upload(upload)
        self._check_options(options)

        job = ImportJob(import_id=generate_job_id("import"), started_at=self._clock())
        snapshot = self._imports.create(job)
        LOGGER.info(
            "Import %s accepted: file=%s size=%s tenant=%s user=%s",
            job.import_id,
            upload.filename,
            upload.size,
            tenant_id,
            user_id,
        )
        self._submit(job.import_id, self._run_import, job.import_id, upload, options, tenant_id, user_id)
        return snapshot

    def get_progress(self, import_id: str) -> Optional[ImportJob]:
        return self._imports.get(import_id)

    def validate_file(
        self,
        upload: UploadedFile,
        field_mapping: Optional[Sequence[FieldMapping]] = None,
        sample_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Parse and validate an upload without writing anything."""

        self._check_upload(upload)
        try:
            parsed = parse_file(upload.content, upload.extension, field_mapping)
        except (ParseError, UnsupportedFileTypeError) as exc:
            raise ImportRequestError(str(exc)) from exc

        validation = validate_rows(parsed.rows)
        limit = self._settings.sample_rows if sample_size is None else sample_size
        return {
            "totalRows": len(parsed.rows),
            "headers": parsed.headers,
            "validation": validation.as_dict(),
            "sampleData": [row.as_dict() for row in parsed.rows[:limit]],
        }

    def _run_import(
        self,
        import_id: str,
        upload: UploadedFile,
        options: ImportOptions,
        tenant_id: str,
        user_id: str,
    ) -> None:
        try:
            self._process_import(import_id, upload, options, tenant_id, user_id)
        except Exception as exc:
            LOGGER.exception("Import %s failed", import_id)
            self._fail_import(import_id, f"Import failed: {exc}")

    def _process_import(
        self,
        import_id: str,
        upload: UploadedFile,
        options: ImportOptions,
        tenant_id: str,
        user_id: str,
    ) -> None:
        try:
            parsed = parse_file(upload.content, upload.extension, options.field_mapping)
        except (ParseError, UnsupportedFileTypeError) as exc:
            LOGGER.warning("Import %s could not parse %s: %s", import_id, upload.filename, exc)
            self._fail_import(import_id, str(exc))
            return

        rows = parsed.rows
        validation = validate_rows(rows)

        def _record_totals(job: ImportJob) -> None:
            job.total_records = len(rows)
            job.warnings.extend(validation.warnings)

        self._imports.update(import_id, _record_totals)

        if not validation.is_valid:
            # All-or-nothing: one blocking error rejects every row in the file.
            def _reject(job: ImportJob) -> None:
                job.errors.extend(validation.errors)
                job.failed_rows = job.total_records
                job.finish(JOB_FAILED, self._clock())

            self._imports.update(import_id, _reject)
            LOGGER.warning(
                "Import %s failed validation with %s errors across %s rows",
                import_id,
                len(validation.errors),
                len(rows),
            )
            return

        known_ids: Dict[IdentityKey, Any] = {}
        batches = chunked(rows, options.batch_size)
        for number, batch in enumerate(batches, start=1):
            if self._stopping.is_set():
                LOGGER.warning("Import %s stopped before batch %s/%s", import_id, number, len(batches))
                self._fail_import(import_id, f"Import stopped before batch {number} of {len(batches)}")
                return
            LOGGER.debug("Import %s processing batch %s/%s (%s rows)", import_id, number, len(batches), len(batch))
            self._process_batch(import_id, batch, options, tenant_id, user_id, known_ids)

        final = self._imports.update(import_id, lambda job: job.finish(JOB_COMPLETED, self._clock()))
        if final is not None:
            LOGGER.info(
                "Import %s completed: %s imported, %s failed, %s skipped of %s rows",
                import_id,
                final.successful_rows,
                final.failed_rows,
                final.skipped_rows,
                final.total_records,
            )

    def _process_batch(
        self,
        import_id: str,
        batch: Sequence[ParsedRow],
        options: ImportOptions,
        tenant_id: str,
        user_id: str,
        known_ids: Dict[IdentityKey, Any],
    ) -> None:
        operations: List[WriteOperation] = []
        written_rows: List[Tuple[ParsedRow, Optional[IdentityKey]]] = []
        errors: List[ValidationIssue] = []
        skipped: List[ValidationIssue] = []

        for row in batch:
            try:
                lead = row_to_lead(row, options, tenant_id, user_id)
                key = identity_key(lead)
                operation = self._plan_write(lead.to_document(), key, options, tenant_id, known_ids)
            except Exception as exc:
                LOGGER.debug("Import %s could not process row %s", import_id, row.row_number, exc_info=True)
                errors.append(ValidationIssue(row.row_number, "system", "", f"Failed to process row: {exc}"))
                continue

            if operation is None:
                field_name, value = key  # type: ignore[misc]
                skipped.append(
                    ValidationIssue(
                        row.row_number,
                        field_name,
                        value,
                        f"Duplicate lead skipped: a lead with this {field_name} already exists",
                    )
                )
                continue
            operations.append(operation)
            written_rows.append((row, key if isinstance(operation, InsertLead) else None))

        successful = 0
        if operations:
            try:
                outcome = self._write_batch(operations)
            except Exception as exc:
                LOGGER.exception("Import %s batch write failed for %s rows", import_id, len(operations))
                message = f"Batch processing failed: {exc}"
                for row, inserted_key in written_rows:
                    errors.append(ValidationIssue(row.row_number, "system", "", message))
                    self._forget(known_ids, inserted_key)
            else:
                successful = outcome.inserted_count + outcome.matched_count
                write_errors = list(outcome.write_errors)
                for index in self._unconfirmed(operations, outcome):
                    write_errors.append((index, "the store did not confirm this write"))
                for index, message in write_errors:
                    row, inserted_key = written_rows[index]
                    errors.append(ValidationIssue(row.row_number, "system", "", f"Failed to write row: {message}"))
                    self._forget(known_ids, inserted_key)

        def _apply(job: ImportJob) -> None:
            job.errors.extend(errors)
            job.warnings.extend(skipped)
            job.failed_rows += len(errors)
            job.skipped_rows += len(skipped)
            remaining = job.total_records - job.failed_rows - job.skipped_rows
            job.successful_rows = max(0, min(job.successful_rows + successful, remaining))

        self._imports.update(import_id, _apply)

    def _plan_write(
        self,
        document: Dict[str, Any],
        key: Optional[IdentityKey],
        options: ImportOptions,
        tenant_id: str,
        known_ids: Dict[IdentityKey, Any],
    ) -> Optional[WriteOperation]:
        """Choose insert, update, or skip (``None``) for one lead document.

        Leads written earlier in the same job are found through ``known_ids``
        so that the outcome does not depend on how rows were batched.
        """

        if key is not None and (options.update_existing or options.skip_duplicates):
            existing_id = known_ids.get(key)
            if existing_id is None:
                field_name, value = key
                match = self._store.find_existing(tenant_id, **{field_name: value})
                if match is not None:
                    existing_id = match["_id"]
                    known_ids[key] = existing_id
            if existing_id is not None:
                if options.update_existing:
                    return UpdateLead(lead_id=existing_id, fields=document)
                return None

        document["_id"] = new_lead_id()
        if key is not None:
            known_ids[key] = document["_id"]
        return InsertLead(document=document)

    @staticmethod
    def _unconfirmed(operations: Sequence[WriteOperation], outcome: BulkWriteOutcome) -> List[int]:
        """Indexes of operations the store neither counted nor reported as failed.

        Updates are blamed before inserts, latest first.
        """

        shortfall = len(operations) - outcome.inserted_count - outcome.matched_count - len(outcome.write_errors)
        if shortfall <= 0:
            return []
        failed = {index for index, _ in outcome.write_errors}
        candidates = [index for index in range(len(operations)) if index not in failed]
        candidates.sort(key=lambda index: (isinstance(operations[index], UpdateLead), index), reverse=True)
        return sorted(candidates[:shortfall])

    @staticmethod
    def _forget(known_ids: Dict[IdentityKey, Any], key: Optional[IdentityKey]) -> None:
        if key is not None:
            known_ids.pop(key, None)

    def _write_batch(self, operations: Sequence[WriteOperation]) -> BulkWriteOutcome:
        timeout = self._settings.batch_write_timeout_seconds
        future = self._write_executor.submit(self._store.bulk_write, list(operations))
        try:
            return future.result(timeout=timeout if timeout > 0 else None)
        except FuturesTimeoutError as exc:
            future.cancel()
            raise BatchWriteTimeoutError(f"store did not respond within {timeout:g} seconds") from exc

    def _fail_import(self, import_id: str, message: str) -> None:
        def _fail(job: ImportJob) -> None:
            job.add_error(0, "system", "", message)
            job.finish(JOB_FAILED, self._clock())

        self._imports.update(import_id, _fail)

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------
    def start_export(
        self,
        tenant_id: Optional[str],
        export_format: str = "csv",
        *,
        filters: Optional[Mapping[str, Any]] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> ExportJob:
        """Register an export job that renders the tenant's matching leads to a file."""

        if not tenant_id:
            raise ImportRequestError("tenantId is required")
        export_format = (export_format or "csv").lower()
        if export_format not in EXPORT_FORMATS:
            raise ImportRequestError(
                f"Unsupported export format '{export_format}'. Allowed: {', '.join(sorted(EXPORT_FORMATS))}"
            )

        export_id = generate_job_id("export")
        job = ExportJob(
            export_id=export_id,
            started_at=self._clock(),
            format=export_format,
            filename=filename_for(export_id, export_format),
        )
        snapshot = self._exports.create(job)
        LOGGER.info("Export %s accepted: tenant=%s format=%s", export_id, tenant_id, export_format)
        self._submit(export_id, self._run_export, export_id, tenant_id, export_format, dict(filters or {}), fields)
        return snapshot

    def get_export(self, export_id: str) -> Optional[ExportJob]:
        return self._exports.get(export_id)

    def get_export_file(self, export_id: str) -> Optional[bytes]:
        """Return the rendered file once the export has completed."""

        job = self._exports.get(export_id)
        if job is None or job.status != JOB_COMPLETED:
            return None
        return job.content

    def _run_export(
        self,
        export_id: str,
        tenant_id: str,
        export_format: str,
        filters: Dict[str, Any],
        fields: Optional[Sequence[str]],
    ) -> None:
        try:
            documents = self._store.find(tenant_id, filters)
            content = export_leads(documents, export_format, fields=fields)
        except Exception as exc:
            LOGGER.exception("Export %s failed", export_id)
            message = f"Export failed: {exc}"

            def _fail(job: ExportJob) -> None:
                job.errors.append(message)
                job.finish(JOB_FAILED, self._clock())

            self._exports.update(export_id, _fail)
            return

        def _complete(job: ExportJob) -> None:
            job.record_count = len(documents)
            job.content = content
            job.finish(JOB_COMPLETED, self._clock())

        self._exports.update(export_id, _complete)
        LOGGER.info("Export %s completed with %s leads", export_id, len(documents))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[Union[ImportJob, ExportJob]]:
        """Block until the background task for ``job_id`` has finished."""

        with self._lock:
            future = self._tasks.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self._imports.get(job_id) or self._exports.get(job_id)

    def sweep(self) -> int:
        return self._imports.sweep() + self._exports.sweep()

    def start_sweeper(self) -> None:
        interval = self._settings.sweep_interval_seconds
        self._imports.start_sweeper(interval)
        self._exports.start_sweeper(interval)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the sweepers and worker pools.

        With ``wait=False`` running imports stop at their next batch boundary
        and queued jobs never start.
        """

        self._imports.stop_sweeper()
        self._exports.stop_sweeper()
        if not wait:
            self._stopping.set()
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        self._write_executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> "ImportOrchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def _submit(self, job_id: str, function: Callable[..., None], *args: Any) -> None:
        future = self._executor.submit(function, *args)
        with self._lock:
            self._tasks[job_id] = future
        future.add_done_callback(lambda _: self._discard_task(job_id))

    def _discard_task(self, job_id: str) -> None:
        with self._lock:
            self._tasks.pop(job_id, None)

    def _check_upload(self, upload: Optional[UploadedFile]) -> None:
        if upload is None or not upload.filename:
            raise ImportRequestError("A file is required")
        allowed = self._settings.allowed_extensions
        if upload.extension not in allowed:
            raise ImportRequestError(
                f"Unsupported file type '{upload.extension or upload.filename}'. Allowed: {', '.join(sorted(allowed))}"
            )
        if upload.size == 0:
            raise ImportRequestError("Uploaded file is empty")
        if upload.size > self._settings.max_upload_bytes:
            raise ImportRequestError(
                f"File exceeds the maximum upload size of {self._settings.max_upload_bytes} bytes"
            )

    @staticmethod
    def _check_options(options: ImportOptions) -> None:
        if options.batch_size < 1:
            raise ImportRequestError("batchSize must be at least 1")
        if options.default_status and options.default_status.lower() not in LEAD_STATUSES:
            raise ImportRequestError(f"defaultStatus must be one of: {', '.join(LEAD_STATUSES)}")
        if options.default_priority and options.default_priority.lower() not in LEAD_PRIORITIES:
            raise ImportRequestError(f"defaultPriority must be one of: {', '.join(LEAD_PRIORITIES)}")


__all__ = [
    "BatchWriteTimeoutError",
    "ImportOrchestrator",
    "ImportRequestError",
    "generate_job_id",
]
