from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from resume_publisher.database.models import SiteDataRecord
from resume_publisher.exceptions import ConflictError


class SiteDataRepository:
    """Database operations for the site_data table."""

    def upsert(
        self,
        conn: psycopg.Connection[Any],
        owner_id: str,
        resume_id: str,
        content: dict[str, Any],
    ) -> None:
        """Publish ``content`` as the owner's site, replacing any previous one."""
        conn.execute(
            """
            INSERT INTO site_data (owner_id, resume_id, content, last_published_at)
            VALUES (%s, %s, %s, NOW())
            ON CONFLICT (owner_id) DO UPDATE
            SET resume_id = EXCLUDED.resume_id,
                content = EXCLUDED.content,
                last_published_at = NOW(),
                updated_at = NOW()
            """,
            (owner_id, resume_id, Jsonb(content)),
        )

    def update_content(
        self, conn: psycopg.Connection[Any], owner_id: str, content: dict[str, Any]
    ) -> str | None:
        """Replace published content after a user edit. Returns the owner's handle.

        Raises:
            ConflictError: if the owner has nothing published yet.
        """
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE site_data AS s
                SET content = %s, updated_at = NOW()
                FROM profiles AS p
                WHERE s.owner_id = %s AND p.id = s.owner_id
                RETURNING p.handle
                """,
                (Jsonb(content), owner_id),
            )
            row = cur.fetchone()
        if row is None:
            raise ConflictError(f"No published site for owner {owner_id}")
        return row[0]

    def find_by_handle(
        self, conn: psycopg.Connection[Any], handle: str
    ) -> SiteDataRecord | None:
        """Load the published row and its owner's privacy flags by handle."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT s.owner_id, s.resume_id, s.content, p.handle,
                       p.privacy_settings, s.last_published_at, s.updated_at
                FROM profiles AS p
                JOIN site_data AS s ON s.owner_id = p.id
                WHERE p.handle = %s
                """,
                (handle,),
            )
            row = cur.fetchone()
        return SiteDataRecord(**row) if row else None

    def find_handle(self, conn: psycopg.Connection[Any], owner_id: str) -> str | None:
        with conn.cursor() as cur:
            cur.execute("SELECT handle FROM profiles WHERE id = %s", (owner_id,))
            row = cur.fetchone()
        return row[0] if row else None
