from datetime import datetime
from typing import Any, ClassVar

import psycopg


class RateEventRepository:
    """Reads and writes the event rows that rate windows are counted from.

    There is no counter table: each action is counted from the table that
    records the action itself.
    """

    RECENT_EVENT_QUERIES: ClassVar[dict[str, str]] = {
        "resume_upload": """
            SELECT created_at FROM resumes
            WHERE owner_id = %(subject)s
              AND created_at > NOW() - make_interval(secs => %(window)s)
            ORDER BY created_at DESC
            LIMIT %(limit)s
        """,
        "handle_change": """
            SELECT created_at FROM handle_changes
            WHERE owner_id = %(subject)s
              AND created_at > NOW() - make_interval(secs => %(window)s)
            ORDER BY created_at DESC
            LIMIT %(limit)s
        """,
        "content_update": """
            SELECT created_at FROM audit_events
            WHERE subject = %(subject)s AND action = 'content_update'
              AND created_at > NOW() - make_interval(secs => %(window)s)
            ORDER BY created_at DESC
            LIMIT %(limit)s
        """,
        "privacy_update": """
            SELECT created_at FROM audit_events
            WHERE subject = %(subject)s AND action = 'privacy_update'
              AND created_at > NOW() - make_interval(secs => %(window)s)
            ORDER BY created_at DESC
            LIMIT %(limit)s
        """,
        "upload_ip_hourly": """
            SELECT created_at FROM upload_rate_limits
            WHERE ip_hash = %(subject)s
              AND created_at > NOW() - make_interval(secs => %(window)s)
            ORDER BY created_at DESC
            LIMIT %(limit)s
        """,
        "upload_ip_daily": """
            SELECT created_at FROM upload_rate_limits
            WHERE ip_hash = %(subject)s
              AND created_at > NOW() - make_interval(secs => %(window)s)
            ORDER BY created_at DESC
            LIMIT %(limit)s
        """,
    }

    def recent_event_times(
        self,
        conn: psycopg.Connection[Any],
        action: str,
        subject: str,
        window_seconds: int,
        limit: int,
    ) -> list[datetime]:
        """Timestamps of the ``limit`` most recent events inside the window, newest first."""
        query = self.RECENT_EVENT_QUERIES.get(action)
        if query is None:
            raise ValueError(f"Unknown rate-limited action: {action}")
        with conn.cursor() as cur:
            cur.execute(
                query,
                {"subject": subject, "window": window_seconds, "limit": limit},
            )
            return [row[0] for row in cur.fetchall()]

    def record_audit_event(
        self, conn: psycopg.Connection[Any], subject: str, action: str
    ) -> None:
        conn.execute(
            "INSERT INTO audit_events (subject, action) VALUES (%s, %s)",
            (subject, action),
        )

    def record_handle_change(
        self,
        conn: psycopg.Connection[Any],
        owner_id: str,
        old_handle: str | None,
        new_handle: str,
    ) -> None:
        conn.execute(
            """
            INSERT INTO handle_changes (owner_id, old_handle, new_handle)
            VALUES (%s, %s, %s)
            """,
            (owner_id, old_handle, new_handle),
        )

    def record_upload_ip(self, conn: psycopg.Connection[Any], ip_hash: str) -> None:
        conn.execute(
            "INSERT INTO upload_rate_limits (ip_hash) VALUES (%s)",
            (ip_hash,),
        )

    def purge_expired(self, conn: psycopg.Connection[Any]) -> dict[str, int]:
        """Delete event rows no window can reach anymore. Returns counts per table."""
        purged: dict[str, int] = {}
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM upload_rate_limits WHERE created_at < NOW() - INTERVAL '24 hours'"
            )
            purged["upload_rate_limits"] = cur.rowcount
            cur.execute(
                "DELETE FROM audit_events WHERE created_at < NOW() - INTERVAL '7 days'"
            )
            purged["audit_events"] = cur.rowcount
            cur.execute(
                "DELETE FROM handle_changes WHERE created_at < NOW() - INTERVAL '90 days'"
            )
            purged["handle_changes"] = cur.rowcount
        return purged
