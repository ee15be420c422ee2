import base64
import json
from unittest.mock import MagicMock

from resume_publisher.exceptions import NotFoundError
from resume_publisher.extraction.events import ExtractionFailed, ExtractionSucceeded
from resume_publisher.extraction.signature import sign_webhook
from resume_publisher.webhooks.receiver import WebhookReceiver

SECRET = "whsec_" + base64.b64encode(b"receiver-secret").decode()


def _make_receiver() -> tuple[WebhookReceiver, MagicMock]:
    mock_machine = MagicMock()
    mock_machine.apply.return_value = True
    return WebhookReceiver(mock_machine, SECRET, tolerance_seconds=10**10), mock_machine


def _signed(body: bytes) -> dict[str, str]:
    timestamp = "1700000000"
    return {
        "webhook-id": "msg_1",
        "webhook-timestamp": timestamp,
        "webhook-signature": "v1," + sign_webhook(SECRET, "msg_1", timestamp, body),
    }


class TestWebhookReceiver:
    def test_bad_signature_is_unauthorized(self) -> None:
        receiver, mock_machine = _make_receiver()
        body = b'{"id":"p1","status":"succeeded"}'
        headers = _signed(body)
        headers["webhook-signature"] = "v1,forged"

        response = receiver.handle(headers, body)

        assert response.status_code == 401
        mock_machine.apply.assert_not_called()

    def test_success_is_applied(self) -> None:
        receiver, mock_machine = _make_receiver()
        body = json.dumps({"id": "p1", "status": "succeeded", "output": {"a": 1}}).encode()

        response = receiver.handle(_signed(body), body)

        assert response.status_code == 200
        assert response.message == "OK"
        mock_machine.apply.assert_called_once_with(
            ExtractionSucceeded(external_job_id="p1", output={"a": 1})
        )

    def test_failure_is_applied(self) -> None:
        receiver, mock_machine = _make_receiver()
        body = json.dumps({"id": "p1", "status": "failed", "error": "bad pdf"}).encode()

        receiver.handle(_signed(body), body)

        mock_machine.apply.assert_called_once_with(
            ExtractionFailed(external_job_id="p1", error="bad pdf")
        )

    def test_duplicate_delivery_is_acknowledged(self) -> None:
        receiver, mock_machine = _make_receiver()
        mock_machine.apply.return_value = False
        body = json.dumps({"id": "p1", "status": "succeeded"}).encode()

        response = receiver.handle(_signed(body), body)

        assert response.status_code == 200
        assert response.message == "Already processed"

    def test_running_status_is_ignored(self) -> None:
        receiver, mock_machine = _make_receiver()
        body = json.dumps({"id": "p1", "status": "processing"}).encode()

        response = receiver.handle(_signed(body), body)

        assert response.message == "Ignored"
        mock_machine.apply.assert_not_called()

    def test_malformed_body_is_bad_request(self) -> None:
        receiver, _machine = _make_receiver()
        body = b"not json"

        assert receiver.handle(_signed(body), body).status_code == 400

    def test_payload_without_id_is_bad_request(self) -> None:
        receiver, _machine = _make_receiver()
        body = b'{"status":"succeeded"}'

        assert receiver.handle(_signed(body), body).status_code == 400

    def test_unknown_job_is_not_found(self) -> None:
        receiver, mock_machine = _make_receiver()
        mock_machine.apply.side_effect = NotFoundError("unknown")
        body = json.dumps({"id": "p404", "status": "succeeded"}).encode()

        assert receiver.handle(_signed(body), body).status_code == 404
