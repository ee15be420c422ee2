"""Validates raw extraction output and builds normalized ResumeContent.

Missing required fields get explicit sentinel values, long text is truncated
with ``...`` and collections are capped. The same input always produces the
same output.
"""

import re
from typing import Any
from urllib.parse import urlsplit

from resume_publisher.logging.logger import Log
from resume_publisher.normalization.exceptions import NormalizationValidationError
from resume_publisher.normalization.models import (
    Certification,
    Contact,
    EducationItem,
    ExperienceItem,
    Project,
    ResumeContent,
    SkillCategory,
)

UNKNOWN_NAME = "Unknown"
DEFAULT_HEADLINE = "Professional"
POSITION_NOT_SPECIFIED = "Position Not Specified"
COMPANY_NOT_SPECIFIED = "Company Not Specified"
DATE_NOT_SPECIFIED = "Date Not Specified"
DEGREE_NOT_SPECIFIED = "Degree Not Specified"
INSTITUTION_NOT_SPECIFIED = "Institution Not Specified"
UNCATEGORIZED = "Uncategorized"
ISSUER_NOT_SPECIFIED = "Issuer Not Specified"
PROJECT_TITLE_NOT_SPECIFIED = "Project Title Not Specified"

MAX_EXPERIENCE = 10
MAX_EDUCATION = 10
MAX_SKILL_CATEGORIES = 20
MAX_CERTIFICATIONS = 15
MAX_PROJECTS = 10
MAX_HIGHLIGHTS = 8

_MAX_URL_LENGTH = 500
_MAX_URL_SEGMENTS = 12
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_REPEATING_SEGMENT_RE = re.compile(r"/([^/]+)/\1(?:/|$)")
_YEAR_RE = re.compile(r"(\d{4})")
_DANGEROUS_SCHEMES = ("javascript:", "data:", "vbscript:")
_ALLOWED_SCHEMES = ("http://", "https://", "mailto:")


def validate_and_build(data: Any) -> ResumeContent:
    """Validate raw extraction output and build ResumeContent.

    Raises:
        NormalizationValidationError: if the output is not an object, the email is
            malformed, or a section that must be a list is something else.
    """
    if not isinstance(data, dict):
        raise NormalizationValidationError("Resume data must be an object")

    experience = _build_experience(_require_list(data, "experience"))
    headline = truncate(normalize_string(data.get("headline"), DEFAULT_HEADLINE), 150)
    content = ResumeContent(
        full_name=truncate(normalize_string(data.get("full_name"), UNKNOWN_NAME), 100),
        headline=headline,
        summary=_build_summary(data.get("summary"), data.get("experience"), headline),
        contact=_build_contact(data.get("contact")),
        experience=experience,
        education=_build_education(_require_list(data, "education")),
        skills=_build_skills(_require_list(data, "skills")),
        certifications=_build_certifications(_require_list(data, "certifications")),
        projects=_build_projects(_require_list(data, "projects")),
    )

    if any(
        item.title == POSITION_NOT_SPECIFIED
        or item.company == COMPANY_NOT_SPECIFIED
        or item.start_date == DATE_NOT_SPECIFIED
        for item in experience
    ):
        Log.warning("Extraction returned empty values, defaults applied to experience entries")
    return content


def normalize_string(value: Any, default: str = "") -> str:
    """Trimmed string; ``default`` for null, empty or whitespace-only values."""
    if value is None:
        return default
    if not isinstance(value, str):
        value = str(value)
    return value.strip() or default


def truncate(value: str, max_length: int) -> str:
    if len(value) <= max_length:
        return value
    return f"{value[: max_length - 3]}..."


def sanitize_url(value: Any) -> str | None:
    """Return a safe absolute URL, or None when the value cannot be one.

    Dangerous schemes are dropped and ``https://`` is added when no scheme is given.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed or len(trimmed) > _MAX_URL_LENGTH:
        return None
    if _REPEATING_SEGMENT_RE.search(trimmed):
        return None
    if len([segment for segment in trimmed.split("/") if segment]) > _MAX_URL_SEGMENTS:
        return None

    lower = trimmed.lower()
    if lower.startswith(_DANGEROUS_SCHEMES):
        return None
    url = trimmed if lower.startswith(_ALLOWED_SCHEMES) else f"https://{trimmed}"
    if url.lower().startswith("mailto:"):
        return url

    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    host = parts.hostname or ""
    if "." not in host or len(host) > 253:
        return None
    if _REPEATING_SEGMENT_RE.search(parts.path):
        return None
    return url


def _require_list(data: dict[str, Any], key: str) -> list[Any]:
    raw = data.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise NormalizationValidationError(f"'{key}' must be a list")
    return raw


def _optional(value: Any, max_length: int) -> str | None:
    text = normalize_string(value)
    return truncate(text, max_length) if text else None


def _string_list(raw: Any, max_length: int) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [
        truncate(item.strip(), max_length)
        for item in raw
        if isinstance(item, str) and item.strip()
    ]


def _build_summary(raw: Any, experience: Any, headline: str) -> str:
    summary = normalize_string(raw)
    if not summary and isinstance(experience, list) and experience:
        first = experience[0]
        if isinstance(first, dict):
            summary = normalize_string(first.get("description"))[:500]
    if not summary:
        summary = f"Experienced {headline.lower()} with a proven track record."
    return truncate(summary, 2000)


def _build_contact(raw: Any) -> Contact:
    if raw is None:
        return Contact()
    if not isinstance(raw, dict):
        raise NormalizationValidationError("'contact' must be an object")

    email = normalize_string(raw.get("email")).lower()
    if email and not _EMAIL_RE.match(email):
        raise NormalizationValidationError("'contact.email' is not a valid email address")

    linkedin = sanitize_url(raw.get("linkedin"))
    website = sanitize_url(raw.get("website"))
    if website and "linkedin.com" in website and not linkedin:
        linkedin, website = website, None

    return Contact(
        email=email,
        phone=_optional(raw.get("phone"), 30),
        location=_optional(raw.get("location"), 100),
        linkedin=linkedin,
        github=sanitize_url(raw.get("github")),
        website=website,
    )


def _build_experience(raw: list[Any]) -> list[ExperienceItem]:
    items: list[ExperienceItem] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        title = normalize_string(entry.get("title"))
        company = normalize_string(entry.get("company"))
        description = normalize_string(entry.get("description"))
        if not (title or company or description):
            continue
        items.append(
            ExperienceItem(
                title=truncate(title or POSITION_NOT_SPECIFIED, 150),
                company=truncate(company or COMPANY_NOT_SPECIFIED, 150),
                start_date=truncate(
                    normalize_string(entry.get("start_date"), DATE_NOT_SPECIFIED), 50
                ),
                description=truncate(description, 2000),
                location=_optional(entry.get("location"), 100),
                end_date=_optional(entry.get("end_date"), 50),
                highlights=_string_list(entry.get("highlights"), 500)[:MAX_HIGHLIGHTS],
            )
        )
    return items[:MAX_EXPERIENCE]


def _build_education(raw: list[Any]) -> list[EducationItem]:
    items: list[EducationItem] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        degree = normalize_string(entry.get("degree"))
        institution = normalize_string(entry.get("institution"))
        if not (degree or institution):
            continue
        items.append(
            EducationItem(
                degree=truncate(degree or DEGREE_NOT_SPECIFIED, 150),
                institution=truncate(institution or INSTITUTION_NOT_SPECIFIED, 150),
                location=_optional(entry.get("location"), 100),
                graduation_date=_optional(entry.get("graduation_date"), 50),
                gpa=_optional(entry.get("gpa"), 20),
            )
        )
    return items[:MAX_EDUCATION]


def _build_skills(raw: list[Any]) -> list[SkillCategory]:
    categories: list[SkillCategory] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        skill_items = _string_list(entry.get("items"), 100)
        if not skill_items:
            continue
        categories.append(
            SkillCategory(
                category=truncate(normalize_string(entry.get("category"), UNCATEGORIZED), 100),
                items=skill_items,
            )
        )
    return categories[:MAX_SKILL_CATEGORIES]


def _build_certifications(raw: list[Any]) -> list[Certification]:
    items: list[Certification] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        name = normalize_string(entry.get("name"))
        if not name:
            continue
        items.append(
            Certification(
                name=truncate(name, 150),
                issuer=truncate(normalize_string(entry.get("issuer"), ISSUER_NOT_SPECIFIED), 150),
                date=_optional(entry.get("date"), 50),
                url=sanitize_url(entry.get("url")),
            )
        )
    return items[:MAX_CERTIFICATIONS]


def _build_projects(raw: list[Any]) -> list[Project]:
    items: list[Project] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        title = normalize_string(entry.get("title"))
        description = normalize_string(entry.get("description"))
        if not (title or description):
            continue
        items.append(
            Project(
                title=truncate(title or PROJECT_TITLE_NOT_SPECIFIED, 150),
                description=truncate(description, 1000),
                year=_project_year(entry.get("year")),
                technologies=_string_list(entry.get("technologies"), 50),
                url=sanitize_url(entry.get("url")),
            )
        )
    return items[:MAX_PROJECTS]


def _project_year(raw: Any) -> str | None:
    year = _optional(raw, 50)
    if year is None:
        return None
    match = _YEAR_RE.search(year)
    return match.group(1) if match else year
