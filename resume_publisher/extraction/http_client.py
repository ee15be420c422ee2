import json
from typing import Any

import httpx

from resume_publisher.exceptions import ExtractionServiceUnavailableError, TerminalJobFailure
from resume_publisher.extraction.client_base import BaseExtractionClient
from resume_publisher.extraction.models import ExtractionStatus, PollResult, Submission


class HttpExtractionClient(BaseExtractionClient):
    """Extraction client for a prediction-style HTTP API (Replicate compatible).

    ``POST /predictions`` starts a job and ``GET /predictions/{id}`` reads it back.
    """

    def __init__(
        self,
        *,
        api_token: str,
        model_version: str,
        base_url: str,
        timeout_seconds: int,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._model_version = model_version
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout_seconds,
            transport=transport,
        )

    def submit(
        self,
        *,
        file_url: str,
        schema: dict[str, Any],
        callback_url: str | None = None,
    ) -> Submission:
        body: dict[str, Any] = {
            "version": self._model_version,
            "input": {
                "file": file_url,
                "use_llm": True,
                "page_schema": json.dumps(schema),
            },
        }
        if callback_url:
            body["webhook"] = callback_url
            body["webhook_events_filter"] = ["completed"]

        data = self._request("POST", "/predictions", json=body)
        job_id = data.get("id")
        if not isinstance(job_id, str) or not job_id:
            raise ExtractionServiceUnavailableError("Extraction service returned no job id")
        return Submission(job_id=job_id, status=str(data.get("status", ExtractionStatus.STARTING)))

    def poll(self, job_id: str) -> PollResult:
        data = self._request("GET", f"/predictions/{job_id}")
        status = str(data.get("status", ExtractionStatus.PROCESSING))
        error = data.get("error")
        return PollResult(
            status=status,
            output=data.get("output"),
            error=str(error) if error else None,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
        except (httpx.ConnectError, httpx.TimeoutException, httpx.TransportError) as exc:
            raise ExtractionServiceUnavailableError(
                f"Extraction service network error: {exc}"
            ) from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise ExtractionServiceUnavailableError(
                f"Extraction service returned {response.status_code}"
            )
        if response.status_code >= 400:
            raise TerminalJobFailure(
                f"Extraction service rejected request ({response.status_code}): "
                f"{response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ExtractionServiceUnavailableError(
                f"Extraction service returned invalid JSON: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ExtractionServiceUnavailableError("Extraction service response must be an object")
        return data
