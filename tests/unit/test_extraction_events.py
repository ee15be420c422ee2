import json

import pytest

from resume_publisher.exceptions import TerminalJobFailure
from resume_publisher.extraction.events import (
    ExtractionFailed,
    ExtractionRunning,
    ExtractionSucceeded,
    event_from_poll,
    event_from_webhook,
    raw_resume_from_output,
)
from resume_publisher.extraction.models import PollResult


class TestEventFromPoll:
    def test_succeeded(self) -> None:
        event = event_from_poll("p1", PollResult(status="succeeded", output={"a": 1}))
        assert event == ExtractionSucceeded(external_job_id="p1", output={"a": 1})

    @pytest.mark.parametrize("status", ["failed", "canceled", "aborted"])
    def test_terminal_failures(self, status: str) -> None:
        event = event_from_poll("p1", PollResult(status=status))
        assert isinstance(event, ExtractionFailed)
        assert event.error == f"Extraction {status}"

    def test_failure_keeps_service_error(self) -> None:
        event = event_from_poll("p1", PollResult(status="failed", error="OOM"))
        assert isinstance(event, ExtractionFailed)
        assert event.error == "OOM"

    @pytest.mark.parametrize("status", ["starting", "processing"])
    def test_running(self, status: str) -> None:
        event = event_from_poll("p1", PollResult(status=status))
        assert event == ExtractionRunning(external_job_id="p1", status=status)


class TestEventFromWebhook:
    def test_builds_success(self) -> None:
        event = event_from_webhook({"id": "p9", "status": "succeeded", "output": "x"})
        assert event == ExtractionSucceeded(external_job_id="p9", output="x")

    def test_missing_id_raises(self) -> None:
        with pytest.raises(ValueError):
            event_from_webhook({"status": "succeeded"})

    def test_unknown_status_is_running(self) -> None:
        event = event_from_webhook({"id": "p9"})
        assert isinstance(event, ExtractionRunning)


class TestRawResumeFromOutput:
    def test_reads_schema_json_string(self) -> None:
        output = {"extraction_schema_json": json.dumps({"full_name": "Jane"})}
        assert raw_resume_from_output(output) == {"full_name": "Jane"}

    def test_accepts_plain_object(self) -> None:
        assert raw_resume_from_output({"full_name": "Jane"}) == {"full_name": "Jane"}

    def test_invalid_json_is_terminal(self) -> None:
        with pytest.raises(TerminalJobFailure, match="Invalid JSON"):
            raw_resume_from_output({"extraction_schema_json": "{not json"})

    def test_non_object_is_terminal(self) -> None:
        with pytest.raises(TerminalJobFailure):
            raw_resume_from_output(["a", "b"])
