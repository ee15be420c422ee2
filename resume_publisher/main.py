from dataclasses import dataclass

from resume_publisher.cache.edge_purge import EdgePurgeSink
from resume_publisher.cache.invalidator import Invalidator
from resume_publisher.cache.tag_cache import RedisTagCache
from resume_publisher.claims.coordinator import ClaimCoordinator
from resume_publisher.claims.token import UploadTokenSigner
from resume_publisher.config.settings import Settings
from resume_publisher.consistency.store import ConsistentStore
from resume_publisher.database.connection import Database
from resume_publisher.database.repositories.profile_repository import ProfileRepository
from resume_publisher.database.repositories.rate_event_repository import RateEventRepository
from resume_publisher.database.repositories.resume_repository import ResumeRepository
from resume_publisher.database.repositories.site_data_repository import SiteDataRepository
from resume_publisher.extraction.client_base import BaseExtractionClient
from resume_publisher.extraction.factory import ExtractionClientFactory
from resume_publisher.extraction.schema_loader import load_extraction_schema
from resume_publisher.jobs.state_machine import ResumeStateMachine
from resume_publisher.logging.logger import Log
from resume_publisher.publishing.publisher import PublicationService
from resume_publisher.rate_limit.guard import RateGuard
from resume_publisher.storage.s3_object_store import S3ObjectStore
from resume_publisher.webhooks.receiver import WebhookReceiver
from resume_publisher.worker.job_runner import JobRunner
from resume_publisher.worker.maintenance import MaintenanceSweep
from resume_publisher.worker.worker import Worker


@dataclass
class Application:
    """Every component, wired from one Settings. Web handlers call into these."""

    db: Database
    claims: ClaimCoordinator
    jobs: ResumeStateMachine
    publisher: PublicationService
    rate_guard: RateGuard
    webhooks: WebhookReceiver
    worker: Worker
    extraction_client: BaseExtractionClient
    invalidator: Invalidator

    def close(self) -> None:
        """Drain pending edge purges, then close HTTP clients, Redis and the pools."""
        try:
            self.invalidator.close()
            self.extraction_client.close()
        finally:
            self.db.close()


def build_application(settings: Settings) -> Application:
    """Build dependencies. Fails closed on missing secrets before opening any pool."""
    settings.require_secrets()
    db = Database.from_settings(settings)

    resumes = ResumeRepository()
    events = RateEventRepository()
    object_store = S3ObjectStore.from_settings(settings)
    store = ConsistentStore(db, settings.bookmark_ttl_seconds)
    rate_guard = RateGuard(db, events, settings.rate_limit_fail_closed_retry_seconds)

    tag_cache = RedisTagCache.from_settings(settings)
    invalidator = Invalidator()
    invalidator.register(tag_cache, required=True)
    if settings.edge_purge_enabled:
        invalidator.register(EdgePurgeSink.from_settings(settings), required=False)

    publisher = PublicationService(
        store=store,
        site_data=SiteDataRepository(),
        profiles=ProfileRepository(),
        resumes=resumes,
        events=events,
        rate_guard=rate_guard,
        invalidator=invalidator,
        tag_cache=tag_cache,
        object_store=object_store,
    )
    extraction_client = ExtractionClientFactory.create(settings)
    jobs = ResumeStateMachine(
        db=db,
        resumes=resumes,
        object_store=object_store,
        extraction_client=extraction_client,
        extraction_schema=load_extraction_schema(),
        publisher=publisher,
        settings=settings,
    )
    claims = ClaimCoordinator(
        db=db,
        resumes=resumes,
        events=events,
        rate_guard=rate_guard,
        signer=UploadTokenSigner(settings.upload_token_secret, settings.upload_token_ttl_seconds),
        object_store=object_store,
        publisher=publisher,
        url_ttl_seconds=settings.storage_url_ttl_seconds,
    )
    sweep = MaintenanceSweep(
        db=db,
        resumes=resumes,
        events=events,
        claims=claims,
        jobs=jobs,
        object_store=object_store,
        settings=settings,
    )
    worker = Worker(db, resumes, JobRunner(jobs, settings), sweep, settings)
    webhooks = WebhookReceiver(
        jobs,
        settings.extraction_webhook_secret,
        settings.extraction_webhook_tolerance_seconds,
    )
    return Application(
        db=db,
        claims=claims,
        jobs=jobs,
        publisher=publisher,
        rate_guard=rate_guard,
        webhooks=webhooks,
        worker=worker,
        extraction_client=extraction_client,
        invalidator=invalidator,
    )


def main() -> None:
    """Entry point: load settings -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level, settings.app_env)
    app = build_application(settings)

    try:
        app.worker.run()
    finally:
        app.close()


if __name__ == "__main__":
    main()
