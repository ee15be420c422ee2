from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from resume_publisher.database.models import ResumeRecord, ResumeStatus
from resume_publisher.exceptions import ConflictError

_COLUMNS = """
    id, owner_id, source_key, storage_key, status, content_hash,
    attempt_count, submit_failures, external_job_id, error_message,
    result_payload, locked_at, queued_at, created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> ResumeRecord:
    return ResumeRecord(**row)


class ResumeRepository:
    """Database operations for the resumes table.

    Every status transition is a single-row compare-and-swap on the current
    status and returns whether this caller won. Methods take the connection so
    callers can group them into one transaction; none of them commit except
    ``claim_next_job``.
    """

    def find_by_id(self, conn: psycopg.Connection[Any], job_id: str) -> ResumeRecord | None:
        return self._find_one(conn, "id = %s", (job_id,))

    def find_by_source_key(
        self, conn: psycopg.Connection[Any], source_key: str
    ) -> ResumeRecord | None:
        return self._find_one(conn, "source_key = %s", (source_key,))

    def find_by_external_id(
        self, conn: psycopg.Connection[Any], external_job_id: str
    ) -> ResumeRecord | None:
        return self._find_one(conn, "external_job_id = %s", (external_job_id,))

    def find_completed_by_hash(
        self, conn: psycopg.Connection[Any], owner_id: str, content_hash: str
    ) -> ResumeRecord | None:
        """Most recent completed job of this owner for the same file, if any."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM resumes
                WHERE owner_id = %s
                  AND content_hash = %s
                  AND status = 'completed'
                  AND result_payload IS NOT NULL
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                (owner_id, content_hash),
            )
            row = cur.fetchone()
        return _to_record(row) if row else None

    def insert_pending(
        self,
        conn: psycopg.Connection[Any],
        job_id: str,
        owner_id: str,
        source_key: str,
        content_hash: str,
    ) -> bool:
        """Reserve a job row for ``source_key``.

        Returns False when another claim already reserved the key.
        """
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO resumes (id, owner_id, source_key, storage_key, status, content_hash)
                VALUES (%s, %s, %s, %s, 'pending_claim', %s)
                ON CONFLICT (source_key) DO NOTHING
                RETURNING id
                """,
                (job_id, owner_id, source_key, source_key, content_hash),
            )
            return cur.fetchone() is not None

    def insert_completed(
        self,
        conn: psycopg.Connection[Any],
        job_id: str,
        owner_id: str,
        source_key: str,
        storage_key: str,
        content_hash: str,
        payload: dict[str, Any],
    ) -> bool:
        """Insert a job that reuses a cached extraction result."""
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO resumes
                    (id, owner_id, source_key, storage_key, status, content_hash, result_payload)
                VALUES (%s, %s, %s, %s, 'completed', %s, %s)
                ON CONFLICT (source_key) DO NOTHING
                RETURNING id
                """,
                (job_id, owner_id, source_key, storage_key, content_hash, Jsonb(payload)),
            )
            return cur.fetchone() is not None

    def delete_pending(self, conn: psycopg.Connection[Any], job_id: str) -> None:
        """Drop a reservation whose claim could not finish."""
        conn.execute(
            "DELETE FROM resumes WHERE id = %s AND status = 'pending_claim'",
            (job_id,),
        )

    def mark_queued(
        self, conn: psycopg.Connection[Any], job_id: str, storage_key: str
    ) -> bool:
        """CAS ``pending_claim -> queued``.

        Raises:
            ConflictError: if the owner already has an active job for this file.
        """
        return self._update(
            conn,
            """
            UPDATE resumes
            SET status = 'queued', storage_key = %s, queued_at = NOW(), updated_at = NOW()
            WHERE id = %s AND status = 'pending_claim'
            """,
            (storage_key, job_id),
        )

    def mark_waiting(
        self, conn: psycopg.Connection[Any], job_id: str, storage_key: str
    ) -> bool:
        """CAS ``pending_claim -> waiting_for_cache`` while an active sibling exists.

        Returns False when the sibling is no longer active. The sibling row is
        share-locked, so a sibling whose completion is still uncommitted is waited
        for and re-checked rather than read as active.
        """
        return self._update(
            conn,
            """
            UPDATE resumes AS r
            SET status = 'waiting_for_cache', storage_key = %s, updated_at = NOW()
            WHERE r.id = %s
              AND r.status = 'pending_claim'
              AND EXISTS (
                  SELECT 1 FROM resumes AS s
                  WHERE s.owner_id = r.owner_id
                    AND s.content_hash = r.content_hash
                    AND s.status IN ('queued', 'processing')
                  FOR SHARE
              )
            """,
            (storage_key, job_id),
        )

    def claim_next_job(
        self, conn: psycopg.Connection[Any], lease_seconds: int
    ) -> ResumeRecord | None:
        """Lease the next due queued job using SELECT FOR UPDATE SKIP LOCKED.

        A job whose lease expired (worker crashed mid-submit) is claimable again.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM resumes
                WHERE status = 'queued'
                  AND queued_at <= NOW()
                  AND (locked_at IS NULL OR locked_at < NOW() - make_interval(secs => %s))
                ORDER BY queued_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """,
                (lease_seconds,),
            )
            row = cur.fetchone()

        if row is None:
            conn.commit()
            return None

        conn.execute(
            "UPDATE resumes SET locked_at = NOW(), updated_at = NOW() WHERE id = %s",
            (row["id"],),
        )
        conn.commit()
        return _to_record(row)

    def mark_processing(
        self, conn: psycopg.Connection[Any], job_id: str, external_job_id: str
    ) -> bool:
        """CAS ``queued -> processing`` with the extraction service's job id."""
        return self._update(
            conn,
            """
            UPDATE resumes
            SET status = 'processing', external_job_id = %s,
                locked_at = NULL, updated_at = NOW()
            WHERE id = %s AND status = 'queued'
            """,
            (external_job_id, job_id),
        )

    def release_for_retry(
        self, conn: psycopg.Connection[Any], job_id: str, backoff_seconds: int
    ) -> bool:
        """Return a queued job to the queue after a transient submission failure."""
        return self._update(
            conn,
            """
            UPDATE resumes
            SET submit_failures = submit_failures + 1,
                locked_at = NULL,
                queued_at = NOW() + make_interval(secs => %s),
                updated_at = NOW()
            WHERE id = %s AND status = 'queued'
            """,
            (backoff_seconds, job_id),
        )

    def complete(
        self, conn: psycopg.Connection[Any], job_id: str, payload: dict[str, Any]
    ) -> bool:
        """CAS ``processing -> completed``. A repeated completion returns False."""
        return self._update(
            conn,
            """
            UPDATE resumes
            SET status = 'completed', result_payload = %s, error_message = NULL,
                locked_at = NULL, updated_at = NOW()
            WHERE id = %s AND status = 'processing'
            """,
            (Jsonb(payload), job_id),
        )

    def fail(
        self,
        conn: psycopg.Connection[Any],
        job_id: str,
        error_message: str,
        from_status: str = ResumeStatus.PROCESSING,
    ) -> bool:
        """CAS ``from_status -> failed``. ``attempt_count`` is left untouched."""
        return self._update(
            conn,
            """
            UPDATE resumes
            SET status = 'failed', error_message = %s, locked_at = NULL, updated_at = NOW()
            WHERE id = %s AND status = %s
            """,
            (error_message, job_id, from_status),
        )

    def retry(
        self, conn: psycopg.Connection[Any], job_id: str, expected_attempts: int
    ) -> bool:
        """CAS ``failed -> queued`` and count the attempt.

        Raises:
            ConflictError: if the owner already has an active job for this file.
        """
        return self._update(
            conn,
            """
            UPDATE resumes
            SET status = 'queued', attempt_count = attempt_count + 1,
                submit_failures = 0, external_job_id = NULL, error_message = NULL,
                locked_at = NULL, queued_at = NOW(), updated_at = NOW()
            WHERE id = %s AND status = 'failed' AND attempt_count = %s
            """,
            (job_id, expected_attempts),
        )

    def complete_waiting(
        self,
        conn: psycopg.Connection[Any],
        owner_id: str,
        content_hash: str,
        payload: dict[str, Any],
    ) -> list[str]:
        """Resolve every job waiting on the same owner and file with ``payload``."""
        return self._update_waiting(
            conn,
            """
            UPDATE resumes
            SET status = 'completed', result_payload = %s, updated_at = NOW()
            WHERE owner_id = %s AND content_hash = %s AND status = 'waiting_for_cache'
            RETURNING id
            """,
            (Jsonb(payload), owner_id, content_hash),
        )

    def fail_waiting(
        self,
        conn: psycopg.Connection[Any],
        owner_id: str,
        content_hash: str,
        error_message: str,
    ) -> list[str]:
        return self._update_waiting(
            conn,
            """
            UPDATE resumes
            SET status = 'failed', error_message = %s, updated_at = NOW()
            WHERE owner_id = %s AND content_hash = %s AND status = 'waiting_for_cache'
            RETURNING id
            """,
            (error_message, owner_id, content_hash),
        )

    def settle_stranded_waiting(
        self,
        conn: psycopg.Connection[Any],
        older_than_seconds: int,
        error_message: str,
    ) -> tuple[list[str], list[str]]:
        """Resolve ``waiting_for_cache`` jobs that no active sibling will fan out to.

        A stranded job takes the payload of its latest completed sibling, or fails
        with ``error_message`` when there is none. Returns (completed ids, failed ids).
        """
        no_active_sibling = """
            NOT EXISTS (
                SELECT 1 FROM resumes AS s
                WHERE s.owner_id = w.owner_id
                  AND s.content_hash = w.content_hash
                  AND s.status IN ('queued', 'processing')
            )
        """
        completed = self._update_waiting(
            conn,
            f"""
            UPDATE resumes AS w
            SET status = 'completed',
                result_payload = (
                    SELECT c.result_payload FROM resumes AS c
                    WHERE c.owner_id = w.owner_id
                      AND c.content_hash = w.content_hash
                      AND c.status = 'completed'
                      AND c.result_payload IS NOT NULL
                    ORDER BY c.updated_at DESC
                    LIMIT 1
                ),
                updated_at = NOW()
            WHERE w.status = 'waiting_for_cache'
              AND w.updated_at < NOW() - make_interval(secs => %s)
              AND {no_active_sibling}
              AND EXISTS (
                  SELECT 1 FROM resumes AS c
                  WHERE c.owner_id = w.owner_id
                    AND c.content_hash = w.content_hash
                    AND c.status = 'completed'
                    AND c.result_payload IS NOT NULL
              )
            RETURNING w.id
            """,
            (older_than_seconds,),
        )
        failed = self._update_waiting(
            conn,
            f"""
            UPDATE resumes AS w
            SET status = 'failed', error_message = %s, updated_at = NOW()
            WHERE w.status = 'waiting_for_cache'
              AND w.updated_at < NOW() - make_interval(secs => %s)
              AND {no_active_sibling}
            RETURNING w.id
            """,
            (error_message, older_than_seconds),
        )
        return completed, failed

    def find_stale(
        self,
        conn: psycopg.Connection[Any],
        status: str,
        older_than_seconds: int,
        limit: int = 10,
    ) -> list[ResumeRecord]:
        """Oldest jobs that have sat in ``status`` for longer than ``older_than_seconds``."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM resumes
                WHERE status = %s
                  AND updated_at < NOW() - make_interval(secs => %s)
                ORDER BY updated_at
                LIMIT %s
                """,
                (status, older_than_seconds, limit),
            )
            return [_to_record(row) for row in cur.fetchall()]

    def list_storage_keys(self, conn: psycopg.Connection[Any], owner_id: str) -> list[str]:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT DISTINCT storage_key FROM resumes WHERE owner_id = %s",
                (owner_id,),
            )
            return [row[0] for row in cur.fetchall()]

    def _find_one(
        self, conn: psycopg.Connection[Any], where: str, params: tuple[Any, ...]
    ) -> ResumeRecord | None:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM resumes WHERE {where}", params)
            row = cur.fetchone()
        return _to_record(row) if row else None

    def _update(
        self, conn: psycopg.Connection[Any], query: str, params: tuple[Any, ...]
    ) -> bool:
        try:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.rowcount == 1
        except psycopg.errors.UniqueViolation as exc:
            raise ConflictError(f"Active job already exists: {exc}") from exc

    def _update_waiting(
        self, conn: psycopg.Connection[Any], query: str, params: tuple[Any, ...]
    ) -> list[str]:
        with conn.cursor() as cur:
            cur.execute(query, params)
            return [row[0] for row in cur.fetchall()]
