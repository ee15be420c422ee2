from dataclasses import dataclass
from datetime import datetime
from typing import Any


class ResumeStatus:
    """Values of resumes.status."""

    PENDING_CLAIM = "pending_claim"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    WAITING_FOR_CACHE = "waiting_for_cache"


@dataclass
class ResumeRecord:
    """Represents a row from the resumes table (one parsing job)."""

    id: str
    owner_id: str
    source_key: str
    storage_key: str
    status: str
    content_hash: str
    attempt_count: int = 0
    submit_failures: int = 0
    external_job_id: str | None = None
    error_message: str | None = None
    result_payload: dict[str, Any] | None = None
    locked_at: datetime | None = None
    queued_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class SiteDataRecord:
    """Represents a row from the site_data table joined with its owner's profile."""

    owner_id: str
    resume_id: str | None
    content: dict[str, Any]
    handle: str | None = None
    privacy_settings: dict[str, Any] | None = None
    last_published_at: datetime | None = None
    updated_at: datetime | None = None
