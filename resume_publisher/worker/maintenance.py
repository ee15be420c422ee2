from datetime import datetime, timedelta, timezone

from resume_publisher.claims.coordinator import ClaimCoordinator
from resume_publisher.claims.token import TEMP_PREFIX
from resume_publisher.config.settings import Settings
from resume_publisher.database.connection import Database
from resume_publisher.database.models import ResumeRecord, ResumeStatus
from resume_publisher.database.repositories.rate_event_repository import RateEventRepository
from resume_publisher.database.repositories.resume_repository import ResumeRepository
from resume_publisher.exceptions import ObjectStoreError, ResumePublisherError
from resume_publisher.jobs.state_machine import EXTRACTION_FAILED_MESSAGE, ResumeStateMachine
from resume_publisher.logging.logger import Log
from resume_publisher.storage.base import BaseObjectStore


class MaintenanceSweep:
    """Periodic housekeeping run by the worker.

    In order: purge expired rate-limit events, finish claims whose client never
    came back, reconcile processing jobs whose completion was never delivered,
    settle waiting jobs left without an active twin, and delete abandoned
    temporary uploads. Orphaned claims go before the temp purge so their source
    file still exists.
    """

    def __init__(
        self,
        *,
        db: Database,
        resumes: ResumeRepository,
        events: RateEventRepository,
        claims: ClaimCoordinator,
        jobs: ResumeStateMachine,
        object_store: BaseObjectStore,
        settings: Settings,
    ) -> None:
        self._db = db
        self._resumes = resumes
        self._events = events
        self._claims = claims
        self._jobs = jobs
        self._object_store = object_store
        self._settings = settings

    def run(self, now: datetime | None = None) -> None:
        with self._db.connection() as conn:
            purged = self._events.purge_expired(conn)
            conn.commit()
        Log.info(f"Purged expired rate events: {purged}")
        self._recover_orphaned_claims()
        self._reconcile_stale_processing()
        self._settle_stranded_waiting()
        self._purge_temp_uploads(now or datetime.now(timezone.utc))

    def _recover_orphaned_claims(self) -> None:
        for job in self._stale(ResumeStatus.PENDING_CLAIM, self._settings.orphan_claim_age_seconds):
            try:
                status = self._claims.recover(job)
            except ResumePublisherError as exc:
                Log.warning(f"Could not recover orphaned claim {job.id}: {exc}")
                continue
            Log.info(f"Recovered orphaned claim {job.id} as {status}")

    def _reconcile_stale_processing(self) -> None:
        for job in self._stale(ResumeStatus.PROCESSING, self._settings.stale_processing_seconds):
            try:
                settled = self._jobs.reconcile(job)
            except ResumePublisherError as exc:
                Log.warning(f"Could not reconcile job {job.id}: {exc}")
                continue
            if settled:
                Log.info(f"Reconciled stale job {job.id}")

    def _settle_stranded_waiting(self) -> None:
        with self._db.connection() as conn:
            with conn.transaction():
                completed, failed = self._resumes.settle_stranded_waiting(
                    conn, self._settings.stranded_waiting_seconds, EXTRACTION_FAILED_MESSAGE
                )
        if completed or failed:
            Log.warning(
                f"Settled stranded waiting jobs: {len(completed)} completed, {len(failed)} failed"
            )

    def _stale(self, status: str, older_than_seconds: int) -> list[ResumeRecord]:
        with self._db.connection() as conn:
            return self._resumes.find_stale(
                conn, status, older_than_seconds, self._settings.sweep_batch_size
            )

    def _purge_temp_uploads(self, now: datetime) -> None:
        # Once every token for a temp file has expired, nobody can claim it.
        cutoff = now - timedelta(seconds=self._settings.upload_token_ttl_seconds)
        try:
            keys = self._object_store.list_older_than(TEMP_PREFIX, cutoff)
        except ObjectStoreError as exc:
            Log.warning(f"Temporary upload sweep skipped: {exc}")
            return
        deleted = 0
        for key in keys:
            try:
                self._object_store.delete(key)
                deleted += 1
            except ObjectStoreError as exc:
                Log.warning(f"Could not delete temporary upload {key}: {exc}")
        Log.info(f"Deleted {deleted} abandoned temporary uploads")
