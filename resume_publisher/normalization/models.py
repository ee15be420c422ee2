import json
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class Contact:
    email: str = ""
    phone: str | None = None
    location: str | None = None
    linkedin: str | None = None
    github: str | None = None
    website: str | None = None


@dataclass(frozen=True)
class ExperienceItem:
    """A single role in the work history."""

    title: str
    company: str
    start_date: str
    description: str = ""
    location: str | None = None
    end_date: str | None = None
    highlights: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EducationItem:
    degree: str
    institution: str
    location: str | None = None
    graduation_date: str | None = None
    gpa: str | None = None


@dataclass(frozen=True)
class SkillCategory:
    category: str
    items: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Certification:
    name: str
    issuer: str
    date: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class Project:
    title: str
    description: str = ""
    year: str | None = None
    technologies: list[str] = field(default_factory=list)
    url: str | None = None


@dataclass(frozen=True)
class ResumeContent:
    """Normalized resume: every required field present, every collection capped."""

    full_name: str
    headline: str
    summary: str
    contact: Contact
    experience: list[ExperienceItem] = field(default_factory=list)
    education: list[EducationItem] = field(default_factory=list)
    skills: list[SkillCategory] = field(default_factory=list)
    certifications: list[Certification] = field(default_factory=list)
    projects: list[Project] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict. Optional fields that are unset are omitted."""
        return _drop_none(asdict(self))


def canonical_json(content: ResumeContent) -> str:
    """Serialize with sorted keys and no insignificant whitespace."""
    return json.dumps(
        content.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value]
    return value
