import time

from resume_publisher.config.settings import Settings
from resume_publisher.database.connection import Database
from resume_publisher.database.models import ResumeRecord
from resume_publisher.database.repositories.resume_repository import ResumeRepository
from resume_publisher.logging.logger import Log
from resume_publisher.worker.job_runner import JobRunner
from resume_publisher.worker.maintenance import MaintenanceSweep


class Worker:
    """Poll loop: sleep -> claim -> submit, with a periodic maintenance sweep."""

    def __init__(
        self,
        db: Database,
        resumes: ResumeRepository,
        job_runner: JobRunner,
        sweep: MaintenanceSweep,
        settings: Settings,
    ) -> None:
        self._db = db
        self._resumes = resumes
        self._job_runner = job_runner
        self._sweep = sweep
        self._settings = settings

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_jobs is set, stop after processing that many jobs (for testing).
        """
        Log.info("Worker started, polling for jobs")
        jobs_done = 0
        loops = 0
        try:
            while True:
                if max_jobs is not None and jobs_done >= max_jobs:
                    break
                loops += 1
                if loops % self._settings.sweep_every_loops == 0:
                    self._run_sweep()
                job = self._try_claim_job()
                if job:
                    self._job_runner.run(job)
                    jobs_done += 1
                else:
                    Log.debug("No jobs available, sleeping")
                    time.sleep(self._settings.job_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _try_claim_job(self) -> ResumeRecord | None:
        """Attempt to lease the next queued job. Gracefully handle DB errors."""
        try:
            with self._db.connection() as conn:
                return self._resumes.claim_next_job(conn, self._settings.job_lease_seconds)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None

    def _run_sweep(self) -> None:
        try:
            self._sweep.run()
        except Exception as exc:
            Log.warning(f"Maintenance sweep failed, will retry: {exc}")
