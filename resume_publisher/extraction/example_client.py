"""Example extraction client.

Use this module as a reference when implementing new provider clients.
Implement BaseExtractionClient and register the provider in ExtractionClientFactory.
"""

import json
import uuid
from typing import Any, ClassVar

from resume_publisher.extraction.client_base import BaseExtractionClient
from resume_publisher.extraction.models import ExtractionStatus, PollResult, Submission


class ExampleExtractionClient(BaseExtractionClient):
    """Offline client that finishes every job immediately with a fixed resume.

    No network calls. Useful for local development and tests.
    """

    DEFAULT_OUTPUT: ClassVar[dict[str, object]] = {
        "full_name": "Jane Example",
        "headline": "Software Engineer",
        "summary": "Engineer building reliable backend systems.",
        "contact": {
            "email": "jane@example.com",
            "phone": "+1 555 0100",
            "location": "Portland, OR",
        },
        "experience": [
            {
                "title": "Software Engineer",
                "company": "Example Corp",
                "location": "Portland, OR",
                "start_date": "2021-03",
                "description": "Built the ingestion pipeline.",
                "highlights": ["Cut processing time in half"],
            }
        ],
        "education": [],
        "skills": [{"category": "Languages", "items": ["Python", "SQL"]}],
    }

    def __init__(self) -> None:
        self.submitted: list[str] = []

    def submit(
        self,
        *,
        file_url: str,
        schema: dict[str, Any],
        callback_url: str | None = None,
    ) -> Submission:
        _ = schema, callback_url
        job_id = f"example-{uuid.uuid4().hex}"
        self.submitted.append(file_url)
        return Submission(job_id=job_id, status=ExtractionStatus.STARTING)

    def poll(self, job_id: str) -> PollResult:
        _ = job_id
        return PollResult(
            status=ExtractionStatus.SUCCEEDED,
            output={"extraction_schema_json": json.dumps(self.DEFAULT_OUTPUT)},
        )
