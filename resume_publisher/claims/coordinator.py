import re
import time
import uuid
from dataclasses import dataclass

from resume_publisher.claims.token import TEMP_PREFIX, UploadToken, UploadTokenSigner
from resume_publisher.database.connection import Database
from resume_publisher.database.models import ResumeRecord, ResumeStatus
from resume_publisher.database.repositories.rate_event_repository import RateEventRepository
from resume_publisher.database.repositories.resume_repository import ResumeRepository
from resume_publisher.exceptions import (
    ConflictError,
    InvalidTokenError,
    ObjectStoreError,
    RateLimitedError,
)
from resume_publisher.logging.logger import Log
from resume_publisher.publishing.publisher import PublicationService
from resume_publisher.rate_limit.guard import Denied, RateGuard, hash_ip
from resume_publisher.storage.base import BaseObjectStore

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass(frozen=True)
class UploadTicket:
    key: str
    put_url: str
    expires_in: int


@dataclass(frozen=True)
class ClaimResult:
    job_id: str
    status: str
    cached: bool = False
    already_claimed: bool = False


def sanitize_filename(filename: str) -> str:
    safe = filename.replace("..", "")
    safe = safe.replace("/", "").replace("\\", "")
    safe = _UNSAFE_FILENAME_CHARS.sub("_", safe)[:255]
    if not safe:
        safe = "resume.pdf"
    if not safe.endswith(".pdf"):
        safe = f"{safe}.pdf"
    return safe


class ClaimCoordinator:
    """Binds an anonymous upload to the account that signs in, exactly once.

    The job row's unique ``source_key`` makes a double-submitted claim return the
    first claim's job. A claim interrupted after reserving its row is resumed by
    the next attempt with the same token.
    """

    def __init__(
        self,
        *,
        db: Database,
        resumes: ResumeRepository,
        events: RateEventRepository,
        rate_guard: RateGuard,
        signer: UploadTokenSigner,
        object_store: BaseObjectStore,
        publisher: PublicationService,
        url_ttl_seconds: int = 900,
    ) -> None:
        self._db = db
        self._resumes = resumes
        self._events = events
        self._rate_guard = rate_guard
        self._signer = signer
        self._object_store = object_store
        self._publisher = publisher
        self._url_ttl_seconds = url_ttl_seconds

    def create_upload(self, client_ip: str, filename: str) -> UploadTicket:
        """Hand an anonymous visitor a presigned PUT URL for a temporary key.

        Raises:
            RateLimitedError: if this IP asked for too many uploads.
            ObjectStoreError: if the URL cannot be signed.
        """
        for action in ("upload_ip_hourly", "upload_ip_daily"):
            decision = self._rate_guard.check(client_ip, action)
            if isinstance(decision, Denied):
                raise RateLimitedError(
                    f"Upload rate limit exceeded ({action})",
                    retry_after=decision.retry_after,
                )

        key = f"{TEMP_PREFIX}{uuid.uuid4()}/{sanitize_filename(filename)}"
        put_url = self._object_store.sign_put(key)
        with self._db.connection() as conn:
            self._events.record_upload_ip(conn, hash_ip(client_ip))
            conn.commit()
        return UploadTicket(key=key, put_url=put_url, expires_in=self._url_ttl_seconds)

    def issue(self, storage_key: str, content_hash: str) -> str:
        """Sign the token the browser keeps until the user signs in."""
        return self._signer.issue(storage_key, content_hash)

    def claim(self, signed_token: str, identity: str) -> ClaimResult:
        """Bind the uploaded file to ``identity`` and queue it for parsing.

        Raises:
            InvalidTokenError: if the token is invalid, expired or claimed by someone else.
            RateLimitedError: if the user uploaded too many resumes today.
            TransientServiceError: if the file could not be moved; the token stays usable.
        """
        token = self._signer.verify(signed_token)

        with self._db.connection() as conn:
            existing = self._resumes.find_by_source_key(conn, token.storage_key)
        if existing is not None:
            return self._existing_claim(existing, token, identity)

        decision = self._rate_guard.check(identity, "resume_upload")
        if isinstance(decision, Denied):
            raise RateLimitedError("Resume upload limit reached", retry_after=decision.retry_after)

        cached = self._claim_from_cache(token, identity)
        if cached is not None:
            return cached

        job_id = str(uuid.uuid4())
        with self._db.connection() as conn:
            reserved = self._resumes.insert_pending(
                conn, job_id, identity, token.storage_key, token.content_hash
            )
            conn.commit()
        if not reserved:
            return self._lost_race(token, identity)
        return self._finish(job_id, token.storage_key, identity)

    def _existing_claim(
        self, job: ResumeRecord, token: UploadToken, identity: str
    ) -> ClaimResult:
        if job.owner_id != identity:
            raise InvalidTokenError(f"Upload {token.storage_key} was claimed by another user")
        if job.status == ResumeStatus.PENDING_CLAIM:
            Log.info(f"Resuming interrupted claim for job {job.id}")
            return self._finish(job.id, token.storage_key, identity)
        return ClaimResult(job_id=job.id, status=job.status, already_claimed=True)

    def _lost_race(self, token: UploadToken, identity: str) -> ClaimResult:
        with self._db.connection() as conn:
            winner = self._resumes.find_by_source_key(conn, token.storage_key)
        if winner is None:
            raise ConflictError(f"Claim for {token.storage_key} vanished")
        if winner.owner_id != identity:
            raise InvalidTokenError(f"Upload {token.storage_key} was claimed by another user")
        Log.info(f"Duplicate claim for {token.storage_key} resolved to job {winner.id}")
        return ClaimResult(job_id=winner.id, status=winner.status, already_claimed=True)

    def _claim_from_cache(self, token: UploadToken, identity: str) -> ClaimResult | None:
        """Reuse a finished extraction of the same file instead of parsing it again."""
        job_id = str(uuid.uuid4())
        with self._db.connection() as conn:
            with conn.transaction():
                previous = self._resumes.find_completed_by_hash(
                    conn, identity, token.content_hash
                )
                if previous is None or previous.result_payload is None:
                    return None
                inserted = self._resumes.insert_completed(
                    conn,
                    job_id,
                    identity,
                    token.storage_key,
                    previous.storage_key,
                    token.content_hash,
                    previous.result_payload,
                )
                if not inserted:
                    handle = None
                else:
                    handle = self._publisher.publish(
                        conn, identity, job_id, previous.result_payload
                    )

        if not inserted:
            return self._lost_race(token, identity)
        Log.info(f"Job {job_id} reused the extraction of job {previous.id}")
        self._publisher.invalidate_handle(handle, required=False)
        self._delete_object(token.storage_key)
        return ClaimResult(job_id=job_id, status=ResumeStatus.COMPLETED, cached=True)

    def recover(self, job: ResumeRecord) -> str:
        """Finish a claim whose client never came back with its token.

        Returns the job's new status.

        Raises:
            ObjectStoreError: if the temporary upload is gone; the reservation is dropped.
        """
        return self._finish(job.id, job.source_key, job.owner_id).status

    def _finish(self, job_id: str, source_key: str, identity: str) -> ClaimResult:
        filename = source_key.rsplit("/", 1)[-1]
        storage_key = f"users/{identity}/{int(time.time() * 1000)}/{filename}"
        try:
            self._object_store.copy(source_key, storage_key)
        except ObjectStoreError:
            with self._db.connection() as conn:
                self._resumes.delete_pending(conn, job_id)
                conn.commit()
            Log.warning(f"Claim of {source_key} rolled back, file copy failed")
            raise

        try:
            status, stored = self._enqueue(job_id, storage_key)
        except ConflictError:
            self._delete_object(storage_key)
            raise
        if not stored:
            # Another finisher queued the job with its own copy.
            self._delete_object(storage_key)
        self._delete_object(source_key)
        return ClaimResult(job_id=job_id, status=status)

    def _enqueue(self, job_id: str, storage_key: str) -> tuple[str, bool]:
        """Move the reserved row to ``queued``, or to ``waiting_for_cache`` behind its twin.

        Returns the job's status and whether ``storage_key`` was written to the row.
        """
        for attempt in range(2):
            try:
                with self._db.connection() as conn:
                    with conn.transaction():
                        queued = self._resumes.mark_queued(conn, job_id, storage_key)
            except ConflictError:
                with self._db.connection() as conn:
                    with conn.transaction():
                        waiting = self._resumes.mark_waiting(conn, job_id, storage_key)
                if waiting:
                    Log.info(f"Job {job_id} waits for an identical upload in flight")
                    return ResumeStatus.WAITING_FOR_CACHE, True
                if attempt:
                    raise
                Log.warning(f"Job {job_id} hit an enqueue conflict, retrying")
                continue

            if queued:
                return ResumeStatus.QUEUED, True
            with self._db.connection() as conn:
                job = self._resumes.find_by_id(conn, job_id)
            if job is None:
                raise ConflictError(f"Job {job_id} vanished while being queued")
            return job.status, False
        raise ConflictError(f"Could not queue job {job_id}")

    def _delete_object(self, key: str) -> None:
        try:
            self._object_store.delete(key)
        except ObjectStoreError as exc:
            Log.warning(f"Could not delete {key}: {exc}")
