import json
from collections.abc import Mapping
from dataclasses import dataclass

from resume_publisher.exceptions import NotFoundError
from resume_publisher.extraction.events import ExtractionRunning, event_from_webhook
from resume_publisher.extraction.signature import verify_webhook
from resume_publisher.jobs.state_machine import ResumeStateMachine
from resume_publisher.logging.logger import Log


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    message: str


class WebhookReceiver:
    """Framework-agnostic handler for extraction completion webhooks.

    The signature is checked before the body is parsed. A verified delivery
    goes through the same reducer as a status poll, so a delivery racing a poll,
    or delivered twice, changes the job once.
    """

    def __init__(
        self,
        state_machine: ResumeStateMachine,
        secret: str,
        tolerance_seconds: int = 300,
    ) -> None:
        self._state_machine = state_machine
        self._secret = secret
        self._tolerance_seconds = tolerance_seconds

    def handle(self, headers: Mapping[str, str], body: bytes) -> WebhookResponse:
        if not verify_webhook(headers, body, self._secret, self._tolerance_seconds):
            return WebhookResponse(401, "Invalid signature")

        try:
            payload = json.loads(body)
            if not isinstance(payload, dict):
                raise ValueError("payload must be an object")
            event = event_from_webhook(payload)
        except ValueError as exc:
            Log.warning(f"Webhook rejected: malformed payload: {exc}")
            return WebhookResponse(400, "Malformed payload")

        if isinstance(event, ExtractionRunning):
            Log.debug(f"Webhook ignored for {event.external_job_id}: status {event.status}")
            return WebhookResponse(200, "Ignored")

        try:
            applied = self._state_machine.apply(event)
        except NotFoundError:
            Log.warning(f"Webhook for unknown job {event.external_job_id}")
            return WebhookResponse(404, "Job not found")

        Log.info(f"Webhook for {event.external_job_id} processed (applied={applied})")
        return WebhookResponse(200, "OK" if applied else "Already processed")
