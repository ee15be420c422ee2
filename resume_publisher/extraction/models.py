from dataclasses import dataclass
from typing import Any


class ExtractionStatus:
    """Job statuses reported by the extraction service."""

    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    ABORTED = "aborted"

    TERMINAL = frozenset({SUCCEEDED, FAILED, CANCELED, ABORTED})


@dataclass(frozen=True)
class Submission:
    job_id: str
    status: str


@dataclass(frozen=True)
class PollResult:
    status: str
    output: Any = None
    error: str | None = None
