import os
import uuid
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from resume_publisher.config.settings import Settings
from resume_publisher.database.connection import Database
from resume_publisher.database.models import ResumeRecord

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "resume_publisher" / "database" / "schema.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "resume_publisher_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_db(test_settings: Settings) -> Generator[Database, None, None]:
    try:
        db = Database.from_settings(test_settings.model_copy(update={"db_replica_host": ""}))
        with db.connection() as conn:
            conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
    except Exception as e:
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def db_conn(integration_db: Database) -> Generator[psycopg.Connection[Any], None, None]:
    with integration_db.connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(
    integration_db: Database,
) -> Generator[list[tuple[str, str]], None, None]:
    cleanup: list[tuple[str, str]] = []
    yield cleanup
    if not cleanup:
        return
    with integration_db.connection() as conn:
        with conn.cursor() as cur:
            for table, key in cleanup:
                if table == "upload_rate_limits":
                    cur.execute("DELETE FROM upload_rate_limits WHERE ip_hash = %s", (key,))
            for table, key in cleanup:
                if table == "profiles":
                    cur.execute("DELETE FROM audit_events WHERE subject = %s", (key,))
                    cur.execute("DELETE FROM profiles WHERE id = %s", (key,))
        conn.commit()


def _insert_profile(
    conn: psycopg.Connection[Any], cleanup: list[tuple[str, str]], handle: str | None
) -> str:
    owner_id = f"user-{uuid.uuid4().hex[:12]}"
    conn.execute("INSERT INTO profiles (id, handle) VALUES (%s, %s)", (owner_id, handle))
    conn.commit()
    cleanup.append(("profiles", owner_id))
    return owner_id


@pytest.fixture
def seed_profile(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, str]],
) -> str:
    return _insert_profile(db_conn, integration_cleanup, f"h{uuid.uuid4().hex[:10]}")


@pytest.fixture
def seed_other_profile(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, str]],
) -> str:
    return _insert_profile(db_conn, integration_cleanup, f"h{uuid.uuid4().hex[:10]}")


@pytest.fixture
def make_job(
    db_conn: psycopg.Connection[Any], seed_profile: str
) -> Callable[..., ResumeRecord]:
    """Insert a resumes row directly in the given status."""

    def _make(
        status: str = "queued",
        content_hash: str | None = None,
        owner_id: str | None = None,
        **columns: Any,
    ) -> ResumeRecord:
        job_id = str(uuid.uuid4())
        values = {
            "id": job_id,
            "owner_id": owner_id or seed_profile,
            "source_key": f"temp/{job_id}/resume.pdf",
            "storage_key": f"users/{owner_id or seed_profile}/1/{job_id}.pdf",
            "status": status,
            "content_hash": content_hash or uuid.uuid4().hex * 2,
            "queued_at": None,
        }
        values.update(columns)
        names = ", ".join(values)
        placeholders = ", ".join(["%s"] * len(values))
        with db_conn.cursor() as cur:
            cur.execute(
                f"INSERT INTO resumes ({names}) VALUES ({placeholders})",
                tuple(values.values()),
            )
            if status == "queued" and "queued_at" not in columns:
                cur.execute(
                    "UPDATE resumes SET queued_at = NOW() - INTERVAL '1 second' WHERE id = %s",
                    (job_id,),
                )
        db_conn.commit()
        return ResumeRecord(
            id=job_id,
            owner_id=str(values["owner_id"]),
            source_key=str(values["source_key"]),
            storage_key=str(values["storage_key"]),
            status=status,
            content_hash=str(values["content_hash"]),
        )

    return _make
