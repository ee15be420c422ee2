"""Completion events produced by webhook deliveries and status polls.

Both sources are turned into the same ``JobCompletionEvent`` so the state
machine has exactly one code path that applies a completion.
"""

import json
from dataclasses import dataclass
from typing import Any, Union

from resume_publisher.exceptions import TerminalJobFailure
from resume_publisher.extraction.models import ExtractionStatus, PollResult


@dataclass(frozen=True)
class ExtractionSucceeded:
    external_job_id: str
    output: Any


@dataclass(frozen=True)
class ExtractionFailed:
    external_job_id: str
    error: str


@dataclass(frozen=True)
class ExtractionRunning:
    external_job_id: str
    status: str = ExtractionStatus.PROCESSING


JobCompletionEvent = Union[ExtractionSucceeded, ExtractionFailed, ExtractionRunning]


def event_from_poll(external_job_id: str, result: PollResult) -> JobCompletionEvent:
    return _build_event(external_job_id, result.status, result.output, result.error)


def event_from_webhook(payload: dict[str, Any]) -> JobCompletionEvent:
    """Build an event from a prediction delivered to the webhook.

    Raises:
        ValueError: if the payload carries no job id.
    """
    job_id = payload.get("id")
    if not isinstance(job_id, str) or not job_id:
        raise ValueError("Webhook payload has no job id")
    error = payload.get("error")
    return _build_event(
        job_id,
        str(payload.get("status", "")),
        payload.get("output"),
        str(error) if error else None,
    )


def raw_resume_from_output(output: Any) -> dict[str, Any]:
    """Pull the resume object out of an extraction service's output.

    The service returns the extracted document as a JSON string under
    ``extraction_schema_json``. An output that is already the resume object is
    accepted as is.

    Raises:
        TerminalJobFailure: if the output holds no parseable resume object.
    """
    if isinstance(output, dict) and "extraction_schema_json" in output:
        raw = output["extraction_schema_json"]
    else:
        raw = output
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TerminalJobFailure(f"Invalid JSON from extraction service: {exc}") from exc
    if not isinstance(raw, dict):
        raise TerminalJobFailure("Extraction output is not a resume object")
    return raw


def _build_event(
    external_job_id: str, status: str, output: Any, error: str | None
) -> JobCompletionEvent:
    if status == ExtractionStatus.SUCCEEDED:
        return ExtractionSucceeded(external_job_id=external_job_id, output=output)
    if status in ExtractionStatus.TERMINAL:
        return ExtractionFailed(
            external_job_id=external_job_id,
            error=error or f"Extraction {status}",
        )
    return ExtractionRunning(external_job_id=external_job_id, status=status)
