from resume_publisher.config.settings import Settings
from resume_publisher.database.models import ResumeRecord
from resume_publisher.exceptions import TerminalJobFailure
from resume_publisher.jobs.state_machine import SUBMIT_FAILED_MESSAGE, ResumeStateMachine
from resume_publisher.logging.logger import Log


class JobRunner:
    """Submit one queued job, catch exceptions, and apply the backoff policy."""

    def __init__(self, state_machine: ResumeStateMachine, settings: Settings) -> None:
        self._state_machine = state_machine
        self._settings = settings

    def run(self, job: ResumeRecord) -> None:
        """Submit a single job with error handling."""
        Log.info(f"Submitting job {job.id} (attempt {job.submit_failures + 1})")
        try:
            self._state_machine.submit(job)
        except TerminalJobFailure as exc:
            Log.error(f"Job {job.id} rejected by extraction service: {exc}")
            self._state_machine.fail_queued(job, SUBMIT_FAILED_MESSAGE)
        except Exception as exc:
            self._handle_failure(job, exc)

    def _handle_failure(self, job: ResumeRecord, exc: Exception) -> None:
        """Back off and requeue; mark failed once the submit budget is spent."""
        Log.error(f"Job {job.id} submit failed: {exc}")
        if job.submit_failures + 1 >= self._settings.max_submit_failures:
            self._state_machine.fail_queued(job, SUBMIT_FAILED_MESSAGE)
            Log.error(f"Job {job.id} failed after {job.submit_failures + 1} submit attempts")
        else:
            self._state_machine.release(job)
            Log.warning(
                f"Job {job.id} requeued in {self._settings.submit_backoff_seconds}s "
                f"(attempt {job.submit_failures + 1})"
            )
