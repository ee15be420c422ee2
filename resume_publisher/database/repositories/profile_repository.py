from typing import Any

import psycopg
from psycopg.types.json import Jsonb

from resume_publisher.exceptions import ConflictError


class ProfileRepository:
    """Database operations for the profiles table and whole-account deletion."""

    def update_privacy(
        self,
        conn: psycopg.Connection[Any],
        owner_id: str,
        privacy_settings: dict[str, Any],
    ) -> str | None:
        """Replace the owner's privacy flags. Returns the current handle.

        Raises:
            ConflictError: if the profile does not exist.
        """
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE profiles
                SET privacy_settings = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING handle
                """,
                (Jsonb(privacy_settings), owner_id),
            )
            row = cur.fetchone()
        if row is None:
            raise ConflictError(f"Profile {owner_id} not found")
        return row[0]

    def update_handle(
        self, conn: psycopg.Connection[Any], owner_id: str, new_handle: str
    ) -> str | None:
        """Rename the owner's handle. Returns the previous handle.

        Raises:
            ConflictError: if the handle is taken or the profile does not exist.
        """
        with conn.cursor() as cur:
            cur.execute(
                "SELECT handle FROM profiles WHERE id = %s FOR UPDATE",
                (owner_id,),
            )
            row = cur.fetchone()
            if row is None:
                raise ConflictError(f"Profile {owner_id} not found")
            old_handle = row[0]
            try:
                cur.execute(
                    """
                    UPDATE profiles
                    SET handle = %s, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (new_handle, owner_id),
                )
            except psycopg.errors.UniqueViolation as exc:
                raise ConflictError(f"Handle {new_handle!r} is already taken") from exc
        return old_handle

    def delete_account(self, conn: psycopg.Connection[Any], owner_id: str) -> bool:
        """Delete every row the owner has. Caller wraps this in one transaction.

        Returns False when no profile existed.
        """
        with conn.cursor() as cur:
            cur.execute("DELETE FROM site_data WHERE owner_id = %s", (owner_id,))
            cur.execute("DELETE FROM resumes WHERE owner_id = %s", (owner_id,))
            cur.execute("DELETE FROM handle_changes WHERE owner_id = %s", (owner_id,))
            cur.execute("DELETE FROM audit_events WHERE subject = %s", (owner_id,))
            cur.execute("DELETE FROM profiles WHERE id = %s", (owner_id,))
            return cur.rowcount == 1
