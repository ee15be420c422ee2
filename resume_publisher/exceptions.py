"""Error taxonomy shared by every component of the subsystem.

Vendor exceptions (botocore, httpx, psycopg) are mapped into these classes by the
adapters that catch them, so nothing above the adapter layer sees transport errors.
``public_message`` is the only text that may reach an end user.
"""


class ResumePublisherError(Exception):
    """Base exception for all subsystem errors."""

    code: str = "INTERNAL_ERROR"
    http_status: int = 500
    public_message: str = "An unexpected error occurred. Please try again."


class ValidationError(ResumePublisherError):
    """Malformed input. Not retried."""

    code = "VALIDATION_ERROR"
    http_status = 400
    public_message = "The request was invalid."


class InvalidTokenError(ValidationError):
    """Upload token is unsigned, tampered, expired, or already owned by someone else."""

    code = "INVALID_TOKEN"
    public_message = "Your upload has expired. Please upload your resume again."


class NotFoundError(ValidationError):
    code = "NOT_FOUND"
    http_status = 404
    public_message = "Resume not found."


class ForbiddenError(ValidationError):
    code = "FORBIDDEN"
    http_status = 403
    public_message = "You do not have permission to access this resume."


class RetryNotAllowedError(ValidationError):
    """Retry requested for a job that is not in ``failed``."""

    code = "RETRY_NOT_ALLOWED"
    public_message = "Only failed resumes can be retried."


class RetryExhaustedError(ValidationError):
    code = "RETRY_EXHAUSTED"
    http_status = 409
    public_message = "Maximum retry limit reached. Please upload a new resume."


class ConflictError(ResumePublisherError):
    """A concurrent writer won a unique-constraint or compare-and-swap race."""

    code = "CONFLICT"
    http_status = 409
    public_message = "This change conflicted with another one. Please try again."


class TransientServiceError(ResumePublisherError):
    """Extraction service or object store temporarily unreachable."""

    code = "SERVICE_UNAVAILABLE"
    http_status = 503
    public_message = "We're still working on it. Please check back in a moment."


class ObjectStoreError(TransientServiceError):
    pass


class ExtractionServiceUnavailableError(TransientServiceError):
    pass


class TerminalJobFailure(ResumePublisherError):
    """Extraction explicitly failed or its output was rejected."""

    code = "JOB_FAILED"
    http_status = 422
    public_message = "We couldn't read your resume."


class RateLimitedError(ResumePublisherError):
    code = "RATE_LIMIT_EXCEEDED"
    http_status = 429
    public_message = "Too many requests. Please try again later."

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ConfigurationError(ResumePublisherError):
    """A required secret or credential is missing. Raised at startup."""

    code = "CONFIGURATION_ERROR"


class CacheInvalidationError(ResumePublisherError):
    """A required cache sink failed after the database write committed."""

    code = "CACHE_INVALIDATION_FAILED"
    public_message = "Your change was saved but could not be published yet. Please try again."
