from datetime import datetime, timedelta, timezone

import pytest

from lead_importer.models import JOB_COMPLETED, JOB_FAILED, ExportJob, ImportJob
from lead_importer.registry import JobRegistry

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_snapshots_are_isolated_from_registry_state() -> None:
    registry = JobRegistry()
    registry.create(ImportJob(import_id="import_1", started_at=START))

    snapshot = registry.get("import_1")
    snapshot.total_records = 99
    snapshot.errors.append("bogus")

    stored = registry.get("import_1")
    assert stored.total_records == 0
    assert stored.errors == []


def test_duplicate_ids_are_rejected() -> None:
    registry = JobRegistry()
    registry.create(ImportJob(import_id="import_1", started_at=START))

    with pytest.raises(KeyError):
        registry.create(ImportJob(import_id="import_1", started_at=START))


def test_terminal_jobs_ignore_further_updates() -> None:
    registry = JobRegistry()
    registry.create(ImportJob(import_id="import_1", started_at=START))
    registry.update("import_1", lambda job: job.finish(JOB_FAILED, START + timedelta(seconds=2)))

    snapshot = registry.update("import_1", lambda job: setattr(job, "status", JOB_COMPLETED))

    assert snapshot.status == JOB_FAILED
    assert snapshot.duration == 2000
    assert registry.update("unknown", lambda job: None) is None


def test_sweep_removes_only_jobs_completed_before_retention() -> None:
    registry = JobRegistry(retention=timedelta(hours=24))
    registry.create(ImportJob(import_id="old", started_at=START))
    registry.create(ImportJob(import_id="recent", started_at=START))
    registry.create(ExportJob(export_id="running", started_at=START))
    registry.update("old", lambda job: job.finish(JOB_COMPLETED, START))
    registry.update("recent", lambda job: job.finish(JOB_COMPLETED, START + timedelta(hours=20)))

    removed = registry.sweep(now=START + timedelta(hours=30))

    assert removed == 1
    assert "old" not in registry
    assert sorted(registry.job_ids()) == ["recent", "running"]
    assert len(registry) == 2


def test_sweeper_thread_starts_and_stops() -> None:
    registry = JobRegistry()

    registry.start_sweeper(0.01)
    registry.stop_sweeper()
    registry.start_sweeper(0)

    assert len(registry) == 0
