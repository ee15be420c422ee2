from abc import ABC, abstractmethod
from typing import Any

from resume_publisher.extraction.models import PollResult, Submission


class BaseExtractionClient(ABC):
    """Contract for provider-specific AI extraction clients."""

    @abstractmethod
    def submit(
        self,
        *,
        file_url: str,
        schema: dict[str, Any],
        callback_url: str | None = None,
    ) -> Submission:
        """Start an extraction job for the file at ``file_url``.

        Raises:
            ExtractionServiceUnavailableError: on network errors, timeouts, 429 or 5xx.
            TerminalJobFailure: if the service rejects the request outright.
        """

    @abstractmethod
    def poll(self, job_id: str) -> PollResult:
        """Return the job's current status, and its output once it succeeded."""

    def close(self) -> None:
        """Release network resources. Clients without any keep the default."""
