from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import Any, TypeVar

import psycopg

from resume_publisher.consistency.bookmark import Bookmark, decode_bookmark, encode_bookmark
from resume_publisher.database.connection import Database
from resume_publisher.exceptions import ResumePublisherError
from resume_publisher.logging.logger import Log

T = TypeVar("T")


class ConsistentStore:
    """Routes writes to the primary and reads to wherever a bookmark allows."""

    def __init__(self, db: Database, bookmark_ttl_seconds: int = 30) -> None:
        self._db = db
        self._ttl_seconds = bookmark_ttl_seconds

    def with_consistency(
        self, fn: Callable[[psycopg.Connection[Any]], T]
    ) -> tuple[T, str]:
        """Run ``fn`` in one primary transaction and return its result with a bookmark.

        The bookmark is taken after commit so it covers the write.
        """
        with self._db.connection() as conn:
            with conn.transaction():
                result = fn(conn)
            row = conn.execute("SELECT pg_current_wal_lsn()::text").fetchone()
            conn.commit()
        if row is None or row[0] is None:
            raise ResumePublisherError("Primary did not report a WAL position")
        return result, encode_bookmark(row[0])

    def is_live(self, bookmark: str | None) -> bool:
        return decode_bookmark(bookmark, self._ttl_seconds) is not None

    @contextmanager
    def read_connection(
        self, bookmark: str | None = None
    ) -> Generator[psycopg.Connection[Any], None, None]:
        """Yield a connection that observes every write covered by ``bookmark``.

        Without a live bookmark the replica is used as is. With one, the replica
        is used only once it has replayed past the bookmark, else the primary.
        """
        mark = decode_bookmark(bookmark, self._ttl_seconds)
        if not self._db.has_replica:
            with self._db.connection() as conn:
                yield conn
            return
        if mark is None:
            with self._db.replica() as conn:
                yield conn
            return

        with self._db.replica() as replica:
            if self._replica_caught_up(replica, mark):
                yield replica
                return
        with self._db.connection() as conn:
            yield conn

    @staticmethod
    def _replica_caught_up(conn: psycopg.Connection[Any], mark: Bookmark) -> bool:
        try:
            row = conn.execute(
                "SELECT COALESCE(pg_last_wal_replay_lsn() >= %s::pg_lsn, false)",
                (mark.lsn,),
            ).fetchone()
        except psycopg.Error as exc:
            Log.warning(f"Replica lag check failed, reading from primary: {exc}")
            conn.rollback()
            return False
        return bool(row and row[0])
