from pydantic_settings import BaseSettings, SettingsConfigDict

from resume_publisher.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"
    public_base_url: str = "http://localhost:3000"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "resume_publisher"
    db_username: str = "resume_publisher"
    db_password: str = "secret"
    db_replica_host: str = ""
    db_replica_port: int = 5432

    upload_token_secret: str = ""
    upload_token_ttl_seconds: int = 1800

    storage_bucket: str = "resumes"
    storage_endpoint_url: str = ""
    storage_region: str = "auto"
    storage_access_key_id: str = ""
    storage_secret_access_key: str = ""
    storage_url_ttl_seconds: int = 900

    extraction_provider: str = "http"
    extraction_base_url: str = "https://api.replicate.com/v1"
    extraction_api_token: str = ""
    extraction_model_version: str = ""
    extraction_timeout_seconds: int = 30
    extraction_webhook_url: str = ""
    extraction_webhook_secret: str = ""
    extraction_webhook_tolerance_seconds: int = 300

    max_retry_attempts: int = 2
    max_submit_failures: int = 3
    submit_backoff_seconds: int = 30
    job_lease_seconds: int = 300
    max_status_polls: int = 20
    job_poll_interval_seconds: int = 5
    sweep_every_loops: int = 120
    orphan_claim_age_seconds: int = 300
    stale_processing_seconds: int = 900
    stranded_waiting_seconds: int = 120
    sweep_batch_size: int = 10

    bookmark_ttl_seconds: int = 30
    snapshot_cache_ttl_seconds: int = 3600
    redis_url: str = "redis://localhost:6379/0"

    edge_purge_enabled: bool = False
    cf_zone_id: str = ""
    cf_cache_purge_api_token: str = ""
    edge_purge_timeout_seconds: int = 5

    rate_limit_fail_closed_retry_seconds: int = 60

    def require_secrets(self) -> None:
        """Fail closed when a secret the subsystem cannot run without is missing.

        Raises:
            ConfigurationError: listing every missing setting.
        """
        missing = [
            name
            for name in ("upload_token_secret", "extraction_webhook_secret")
            if not getattr(self, name).strip()
        ]
        if self.extraction_provider.lower() == "http":
            missing.extend(
                name
                for name in ("extraction_api_token", "extraction_model_version")
                if not getattr(self, name).strip()
            )
        if self.edge_purge_enabled:
            missing.extend(
                name
                for name in ("cf_zone_id", "cf_cache_purge_api_token")
                if not getattr(self, name).strip()
            )
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )
