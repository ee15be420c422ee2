from resume_publisher.exceptions import TerminalJobFailure


class NormalizationError(TerminalJobFailure):
    """Raised when extraction output cannot be turned into resume content."""

    public_message = "We couldn't read your resume. Please check the file and try again."


class NormalizationValidationError(NormalizationError):
    """Raised when extraction output fails structural validation."""
