from typing import ClassVar

from resume_publisher.config.settings import Settings
from resume_publisher.exceptions import ConfigurationError
from resume_publisher.extraction.client_base import BaseExtractionClient
from resume_publisher.extraction.example_client import ExampleExtractionClient
from resume_publisher.extraction.http_client import HttpExtractionClient


class ExtractionClientFactory:
    """Creates the configured extraction client."""

    SUPPORTED_PROVIDERS: ClassVar[tuple[str, ...]] = ("example", "http")

    @classmethod
    def create(cls, settings: Settings) -> BaseExtractionClient:
        """Create a configured extraction client from application settings.

        Raises:
            ConfigurationError: for an unknown provider or a missing credential.
        """
        provider = settings.extraction_provider.lower()
        if provider == "example":
            return ExampleExtractionClient()
        if provider == "http":
            token = settings.extraction_api_token.strip()
            version = settings.extraction_model_version.strip()
            if not token or not version:
                raise ConfigurationError(
                    "extraction_api_token and extraction_model_version are required "
                    "for extraction_provider=http"
                )
            return HttpExtractionClient(
                api_token=token,
                model_version=version,
                base_url=settings.extraction_base_url,
                timeout_seconds=settings.extraction_timeout_seconds,
            )
        raise ConfigurationError(
            f"Unknown extraction provider '{provider}'. "
            f"Choose from: {list(cls.SUPPORTED_PROVIDERS)}"
        )
