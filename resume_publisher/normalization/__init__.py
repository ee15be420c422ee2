from resume_publisher.normalization.exceptions import (
    NormalizationError,
    NormalizationValidationError,
)
from resume_publisher.normalization.models import ResumeContent, canonical_json
from resume_publisher.normalization.validator import validate_and_build

__all__ = [
    "NormalizationError",
    "NormalizationValidationError",
    "ResumeContent",
    "canonical_json",
    "validate_and_build",
]
