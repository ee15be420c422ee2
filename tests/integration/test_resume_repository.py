import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import psycopg
import pytest
from psycopg.types.json import Jsonb

from resume_publisher.database.models import ResumeRecord, ResumeStatus
from resume_publisher.database.repositories.resume_repository import ResumeRepository
from resume_publisher.exceptions import ConflictError

MakeJob = Callable[..., ResumeRecord]


def _status(db_conn: psycopg.Connection, job_id: str) -> str:
    with db_conn.cursor() as cur:
        cur.execute("SELECT status FROM resumes WHERE id = %s", (job_id,))
        row = cur.fetchone()
    assert row is not None
    return row[0]


@pytest.mark.integration
class TestClaimNextJob:
    def test_leases_due_queued_job(self, make_job: MakeJob, db_conn) -> None:
        seeded = make_job(status=ResumeStatus.QUEUED)
        repo = ResumeRepository()

        job = repo.claim_next_job(db_conn, lease_seconds=300)

        assert job is not None
        assert job.id == seeded.id
        with db_conn.cursor() as cur:
            cur.execute("SELECT locked_at FROM resumes WHERE id = %s", (job.id,))
            row = cur.fetchone()
        assert row is not None and row[0] is not None

    def test_leased_job_is_not_claimed_twice(self, make_job: MakeJob, db_conn) -> None:
        make_job(status=ResumeStatus.QUEUED)
        repo = ResumeRepository()

        first = repo.claim_next_job(db_conn, lease_seconds=300)
        second = repo.claim_next_job(db_conn, lease_seconds=300)

        assert first is not None
        assert second is None or second.id != first.id

    def test_backed_off_job_is_not_due(self, make_job: MakeJob, db_conn) -> None:
        job = make_job(status=ResumeStatus.QUEUED)
        repo = ResumeRepository()
        repo.release_for_retry(db_conn, job.id, backoff_seconds=3600)
        db_conn.commit()

        claimed = repo.claim_next_job(db_conn, lease_seconds=300)

        assert claimed is None or claimed.id != job.id
        refreshed = repo.find_by_id(db_conn, job.id)
        assert refreshed is not None
        assert refreshed.submit_failures == 1

    def test_skips_rows_locked_by_another_transaction(
        self, make_job: MakeJob, db_conn, integration_db
    ) -> None:
        job = make_job(status=ResumeStatus.QUEUED)
        repo = ResumeRepository()

        with integration_db.connection() as other:
            other.execute("SELECT id FROM resumes WHERE id = %s FOR UPDATE", (job.id,))
            claimed = repo.claim_next_job(db_conn, lease_seconds=300)
            other.rollback()

        assert claimed is None or claimed.id != job.id


@pytest.mark.integration
class TestCompareAndSwap:
    def test_complete_only_once(self, make_job: MakeJob, db_conn) -> None:
        job = make_job(status=ResumeStatus.PROCESSING, external_job_id=f"pred-{uuid.uuid4()}")
        repo = ResumeRepository()

        first = repo.complete(db_conn, job.id, {"full_name": "Jane"})
        second = repo.complete(db_conn, job.id, {"full_name": "Other"})
        db_conn.commit()

        assert first is True
        assert second is False
        stored = repo.find_by_id(db_conn, job.id)
        assert stored is not None
        assert stored.result_payload == {"full_name": "Jane"}

    def test_fail_after_complete_is_noop(self, make_job: MakeJob, db_conn) -> None:
        job = make_job(status=ResumeStatus.PROCESSING)
        repo = ResumeRepository()

        repo.complete(db_conn, job.id, {})
        failed = repo.fail(db_conn, job.id, "late failure")
        db_conn.commit()

        assert failed is False
        assert _status(db_conn, job.id) == ResumeStatus.COMPLETED

    def test_retry_counts_attempt(self, make_job: MakeJob, db_conn) -> None:
        job = make_job(status=ResumeStatus.FAILED, error_message="boom")
        repo = ResumeRepository()

        assert repo.retry(db_conn, job.id, expected_attempts=0)
        assert not repo.retry(db_conn, job.id, expected_attempts=0)
        db_conn.commit()

        stored = repo.find_by_id(db_conn, job.id)
        assert stored is not None
        assert stored.status == ResumeStatus.QUEUED
        assert stored.attempt_count == 1
        assert stored.error_message is None

    def test_mark_processing_requires_queued(self, make_job: MakeJob, db_conn) -> None:
        job = make_job(status=ResumeStatus.FAILED)
        repo = ResumeRepository()

        assert not repo.mark_processing(db_conn, job.id, "pred-x")
        db_conn.rollback()


@pytest.mark.integration
class TestClaimReservation:
    def test_second_insert_for_same_key_loses(self, seed_profile: str, db_conn) -> None:
        repo = ResumeRepository()
        key = f"temp/{uuid.uuid4()}/resume.pdf"

        first = repo.insert_pending(db_conn, str(uuid.uuid4()), seed_profile, key, "e" * 64)
        second = repo.insert_pending(db_conn, str(uuid.uuid4()), seed_profile, key, "e" * 64)
        db_conn.commit()

        assert first is True
        assert second is False

    def test_delete_pending_only_drops_reservations(self, make_job: MakeJob, db_conn) -> None:
        job = make_job(status=ResumeStatus.QUEUED)
        repo = ResumeRepository()

        repo.delete_pending(db_conn, job.id)
        db_conn.commit()

        assert repo.find_by_id(db_conn, job.id) is not None


@pytest.mark.integration
class TestActiveJobUniqueness:
    def test_second_active_job_for_same_file_conflicts(
        self, make_job: MakeJob, db_conn
    ) -> None:
        content_hash = "f" * 64
        make_job(status=ResumeStatus.PROCESSING, content_hash=content_hash)
        twin = make_job(status=ResumeStatus.PENDING_CLAIM, content_hash=content_hash)
        repo = ResumeRepository()

        with pytest.raises(ConflictError):
            repo.mark_queued(db_conn, twin.id, twin.storage_key)
        db_conn.rollback()

        assert repo.mark_waiting(db_conn, twin.id, twin.storage_key)
        db_conn.commit()
        assert _status(db_conn, twin.id) == ResumeStatus.WAITING_FOR_CACHE

    def test_waiting_twins_resolve_with_result(self, make_job: MakeJob, db_conn) -> None:
        content_hash = "1" * 64
        leader = make_job(status=ResumeStatus.PROCESSING, content_hash=content_hash)
        twin = make_job(status=ResumeStatus.WAITING_FOR_CACHE, content_hash=content_hash)
        repo = ResumeRepository()

        repo.complete(db_conn, leader.id, {"full_name": "Jane"})
        resolved = repo.complete_waiting(
            db_conn, leader.owner_id, content_hash, {"full_name": "Jane"}
        )
        db_conn.commit()

        assert resolved == [twin.id]
        assert _status(db_conn, twin.id) == ResumeStatus.COMPLETED

    def test_waiting_blocks_on_uncommitted_twin_completion(
        self, make_job: MakeJob, db_conn, integration_db
    ) -> None:
        content_hash = "5" * 64
        leader = make_job(status=ResumeStatus.PROCESSING, content_hash=content_hash)
        twin = make_job(status=ResumeStatus.PENDING_CLAIM, content_hash=content_hash)
        repo = ResumeRepository()
        result: dict[str, bool] = {}

        def _mark_waiting() -> None:
            result["waiting"] = repo.mark_waiting(db_conn, twin.id, twin.storage_key)
            db_conn.commit()

        db_conn.execute("SET lock_timeout = '5s'")
        db_conn.commit()
        with integration_db.connection() as other:
            repo.complete(other, leader.id, {"full_name": "Jane"})
            assert repo.complete_waiting(other, leader.owner_id, content_hash, {}) == []
            waiter = threading.Thread(target=_mark_waiting)
            waiter.start()
            waiter.join(timeout=0.5)
            assert waiter.is_alive()
            other.commit()
            waiter.join(timeout=5)

        assert result["waiting"] is False
        assert _status(db_conn, twin.id) == ResumeStatus.PENDING_CLAIM

    def test_completed_result_is_found_by_hash(self, make_job: MakeJob, db_conn) -> None:
        content_hash = "2" * 64
        done = make_job(
            status=ResumeStatus.COMPLETED,
            content_hash=content_hash,
            result_payload=Jsonb({"full_name": "Jane"}),
        )
        repo = ResumeRepository()

        found = repo.find_completed_by_hash(db_conn, done.owner_id, content_hash)

        assert found is not None
        assert found.id == done.id
        assert found.result_payload == {"full_name": "Jane"}


@pytest.mark.integration
class TestMaintenanceQueries:
    def test_stranded_waiting_takes_completed_twin_payload(
        self, make_job: MakeJob, db_conn
    ) -> None:
        content_hash = "6" * 64
        old = datetime.now(timezone.utc) - timedelta(minutes=10)
        make_job(
            status=ResumeStatus.COMPLETED,
            content_hash=content_hash,
            result_payload=Jsonb({"full_name": "Jane"}),
        )
        stranded = make_job(
            status=ResumeStatus.WAITING_FOR_CACHE, content_hash=content_hash, updated_at=old
        )
        repo = ResumeRepository()

        completed, failed = repo.settle_stranded_waiting(db_conn, 120, "failed")
        db_conn.commit()

        assert stranded.id in completed
        assert stranded.id not in failed
        refreshed = repo.find_by_id(db_conn, stranded.id)
        assert refreshed is not None
        assert refreshed.status == ResumeStatus.COMPLETED
        assert refreshed.result_payload == {"full_name": "Jane"}

    def test_stranded_waiting_fails_with_failed_twin(self, make_job: MakeJob, db_conn) -> None:
        content_hash = "7" * 64
        old = datetime.now(timezone.utc) - timedelta(minutes=10)
        make_job(status=ResumeStatus.FAILED, content_hash=content_hash)
        stranded = make_job(
            status=ResumeStatus.WAITING_FOR_CACHE, content_hash=content_hash, updated_at=old
        )
        repo = ResumeRepository()

        _completed, failed = repo.settle_stranded_waiting(db_conn, 120, "Parsing failed.")
        db_conn.commit()

        assert stranded.id in failed
        refreshed = repo.find_by_id(db_conn, stranded.id)
        assert refreshed is not None
        assert refreshed.error_message == "Parsing failed."

    def test_waiting_behind_active_twin_is_left_alone(
        self, make_job: MakeJob, db_conn
    ) -> None:
        content_hash = "8" * 64
        old = datetime.now(timezone.utc) - timedelta(minutes=10)
        make_job(status=ResumeStatus.PROCESSING, content_hash=content_hash)
        waiting = make_job(
            status=ResumeStatus.WAITING_FOR_CACHE, content_hash=content_hash, updated_at=old
        )
        repo = ResumeRepository()

        completed, failed = repo.settle_stranded_waiting(db_conn, 120, "failed")
        db_conn.commit()

        assert waiting.id not in completed + failed
        assert _status(db_conn, waiting.id) == ResumeStatus.WAITING_FOR_CACHE

    def test_find_stale_only_returns_old_rows(self, make_job: MakeJob, db_conn) -> None:
        old = datetime.now(timezone.utc) - timedelta(minutes=10)
        stale = make_job(status=ResumeStatus.PENDING_CLAIM, updated_at=old)
        fresh = make_job(status=ResumeStatus.PENDING_CLAIM)
        repo = ResumeRepository()

        found = [job.id for job in repo.find_stale(db_conn, ResumeStatus.PENDING_CLAIM, 300, 1000)]
        db_conn.rollback()

        assert stale.id in found
        assert fresh.id not in found
