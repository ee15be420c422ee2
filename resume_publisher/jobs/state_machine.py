"""Lifecycle of a resume parsing job.

``pending_claim -> queued -> processing -> completed | failed``, plus the retry
edge ``failed -> queued`` and ``waiting_for_cache`` for a duplicate upload whose
twin is still in flight. Every transition is a compare-and-swap on the current
status, so webhook deliveries, status polls and workers can race freely.
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from resume_publisher.config.settings import Settings
from resume_publisher.database.connection import Database
from resume_publisher.database.models import ResumeRecord, ResumeStatus
from resume_publisher.database.repositories.resume_repository import ResumeRepository
from resume_publisher.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RetryExhaustedError,
    RetryNotAllowedError,
    TerminalJobFailure,
    TransientServiceError,
)
from resume_publisher.extraction.client_base import BaseExtractionClient
from resume_publisher.extraction.events import (
    ExtractionFailed,
    ExtractionRunning,
    ExtractionSucceeded,
    JobCompletionEvent,
    event_from_poll,
    raw_resume_from_output,
)
from resume_publisher.extraction.models import ExtractionStatus
from resume_publisher.logging.logger import Log
from resume_publisher.normalization import validate_and_build
from resume_publisher.publishing.publisher import PublicationService
from resume_publisher.storage.base import BaseObjectStore

EXTRACTION_FAILED_MESSAGE = "Parsing failed. Please try again or upload a different file."
SUBMIT_FAILED_MESSAGE = "We couldn't start parsing your resume. Please try again."


@dataclass(frozen=True)
class StatusView:
    """What a polling client is shown."""

    status: str
    progress_pct: int
    error: str | None = None
    can_retry: bool = False
    redirect_to_waiting: bool = False


class ResumeStateMachine:
    PROGRESS: ClassVar[dict[str, int]] = {
        ResumeStatus.PENDING_CLAIM: 0,
        ResumeStatus.QUEUED: 5,
        ResumeStatus.WAITING_FOR_CACHE: 20,
        ResumeStatus.PROCESSING: 10,
        ResumeStatus.COMPLETED: 100,
        ResumeStatus.FAILED: 0,
    }
    EXTRACTION_PROGRESS: ClassVar[dict[str, int]] = {
        ExtractionStatus.STARTING: 20,
        ExtractionStatus.PROCESSING: 50,
    }

    def __init__(
        self,
        *,
        db: Database,
        resumes: ResumeRepository,
        object_store: BaseObjectStore,
        extraction_client: BaseExtractionClient,
        extraction_schema: dict[str, Any],
        publisher: PublicationService,
        settings: Settings,
    ) -> None:
        self._db = db
        self._resumes = resumes
        self._object_store = object_store
        self._client = extraction_client
        self._schema = extraction_schema
        self._publisher = publisher
        self._settings = settings

    def submit(self, job: ResumeRecord) -> bool:
        """Start extraction for a queued job and move it to ``processing``.

        Returns False if the job left ``queued`` while it was being submitted.

        Raises:
            TransientServiceError: if the object store or extraction service is unreachable.
            TerminalJobFailure: if the extraction service rejected the job.
        """
        file_url = self._object_store.sign_get(job.storage_key)
        submission = self._client.submit(
            file_url=file_url,
            schema=self._schema,
            callback_url=self._settings.extraction_webhook_url or None,
        )
        with self._db.connection() as conn:
            won = self._resumes.mark_processing(conn, job.id, submission.job_id)
            conn.commit()
        if won:
            Log.info(f"Job {job.id} submitted as {submission.job_id}")
        else:
            Log.warning(f"Job {job.id} left queued during submit, ignoring {submission.job_id}")
        return won

    def release(self, job: ResumeRecord) -> None:
        """Put a job back in the queue after a transient submit failure."""
        with self._db.connection() as conn:
            self._resumes.release_for_retry(conn, job.id, self._settings.submit_backoff_seconds)
            conn.commit()

    def fail_queued(self, job: ResumeRecord, message: str) -> None:
        """Fail a job that could not be submitted, together with its waiting twins."""
        self._fail(job, message, from_status=ResumeStatus.QUEUED)

    def apply(self, event: JobCompletionEvent) -> bool:
        """Apply a completion event from either the webhook or a status poll.

        Returns True only for the call that actually moved the job; repeats are no-ops.

        Raises:
            NotFoundError: if no job has this external id.
        """
        if isinstance(event, ExtractionRunning):
            return False

        with self._db.connection() as conn:
            job = self._resumes.find_by_external_id(conn, event.external_job_id)
        if job is None:
            raise NotFoundError(f"No job for external id {event.external_job_id}")

        if isinstance(event, ExtractionFailed):
            Log.error(f"Extraction failed for job {job.id}: {event.error}")
            return self._fail(job, EXTRACTION_FAILED_MESSAGE)
        return self._complete(job, event)

    def reconcile(self, job: ResumeRecord) -> bool:
        """Poll the extraction service for a processing job nobody is watching.

        Covers a lost webhook when the owner also stopped polling. Returns True
        if the job reached a terminal state.

        Raises:
            TransientServiceError: if the extraction service is unreachable.
            TerminalJobFailure: if the extraction service rejects the poll.
        """
        if job.status != ResumeStatus.PROCESSING or not job.external_job_id:
            return False
        result = self._client.poll(job.external_job_id)
        return self.apply(event_from_poll(job.external_job_id, result))

    def poll(self, job_id: str, identity: str, poll_number: int = 0) -> StatusView:
        """Report a job's status to its owner. Never submits anything.

        Raises:
            NotFoundError: if the job does not exist.
            ForbiddenError: if the job belongs to someone else.
        """
        job = self._load_owned(job_id, identity)
        redirect = poll_number >= self._settings.max_status_polls
        if job.status != ResumeStatus.PROCESSING:
            return self._view(job, redirect)
        if not job.external_job_id:
            return StatusView(status=job.status, progress_pct=10, redirect_to_waiting=redirect)

        try:
            result = self._client.poll(job.external_job_id)
        except (TransientServiceError, TerminalJobFailure) as exc:
            Log.warning(f"Status poll for job {job.id} failed, reporting processing: {exc}")
            return StatusView(status=job.status, progress_pct=30, redirect_to_waiting=redirect)

        event = event_from_poll(job.external_job_id, result)
        if isinstance(event, ExtractionRunning):
            return StatusView(
                status=ResumeStatus.PROCESSING,
                progress_pct=self.EXTRACTION_PROGRESS.get(event.status, 30),
                redirect_to_waiting=redirect,
            )

        self.apply(event)
        return self._view(self._load_owned(job_id, identity), redirect)

    def retry(self, job_id: str, identity: str) -> ResumeRecord:
        """Send a failed job back to the queue.

        Raises:
            RetryNotAllowedError: if the job is not failed.
            RetryExhaustedError: if the job already used every retry.
            ConflictError: if the same file is already being parsed for this user.
        """
        job = self._load_owned(job_id, identity)
        if job.status == ResumeStatus.QUEUED:
            return job
        if job.status != ResumeStatus.FAILED:
            raise RetryNotAllowedError(f"Job {job_id} is {job.status}, not failed")
        if job.attempt_count >= self._settings.max_retry_attempts:
            raise RetryExhaustedError(f"Job {job_id} exhausted {job.attempt_count} retries")

        with self._db.connection() as conn:
            with conn.transaction():
                won = self._resumes.retry(conn, job.id, job.attempt_count)
        current = self._load_owned(job_id, identity)
        if won:
            Log.info(f"Job {job_id} queued for retry {current.attempt_count}")
            return current
        if current.status == ResumeStatus.QUEUED:
            return current
        raise ConflictError(f"Job {job_id} changed during retry, now {current.status}")

    def _complete(self, job: ResumeRecord, event: ExtractionSucceeded) -> bool:
        try:
            content = validate_and_build(raw_resume_from_output(event.output)).to_dict()
        except TerminalJobFailure as exc:
            Log.error(f"Extraction output rejected for job {job.id}: {exc}")
            return self._fail(job, exc.public_message)

        with self._db.connection() as conn:
            with conn.transaction():
                if not self._resumes.complete(conn, job.id, content):
                    return False
                handle = self._publisher.publish(conn, job.owner_id, job.id, content)
                siblings = self._resumes.complete_waiting(
                    conn, job.owner_id, job.content_hash, content
                )

        Log.info(f"Job {job.id} completed, {len(siblings)} waiting jobs resolved")
        self._publisher.invalidate_handle(handle, required=False)
        return True

    def _fail(
        self,
        job: ResumeRecord,
        message: str,
        from_status: str = ResumeStatus.PROCESSING,
    ) -> bool:
        with self._db.connection() as conn:
            with conn.transaction():
                if not self._resumes.fail(conn, job.id, message, from_status):
                    return False
                siblings = self._resumes.fail_waiting(
                    conn, job.owner_id, job.content_hash, message
                )
        Log.warning(f"Job {job.id} failed, {len(siblings)} waiting jobs failed with it")
        return True

    def _load_owned(self, job_id: str, identity: str) -> ResumeRecord:
        with self._db.connection() as conn:
            job = self._resumes.find_by_id(conn, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        if job.owner_id != identity:
            raise ForbiddenError(f"Job {job_id} does not belong to {identity}")
        return job

    def _view(self, job: ResumeRecord, redirect: bool) -> StatusView:
        terminal = job.status in (ResumeStatus.COMPLETED, ResumeStatus.FAILED)
        return StatusView(
            status=job.status,
            progress_pct=self.PROGRESS.get(job.status, 0),
            error=job.error_message if job.status == ResumeStatus.FAILED else None,
            can_retry=(
                job.status == ResumeStatus.FAILED
                and job.attempt_count < self._settings.max_retry_attempts
            ),
            redirect_to_waiting=redirect and not terminal,
        )
