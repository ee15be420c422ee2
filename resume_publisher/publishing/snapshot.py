from dataclasses import dataclass
from datetime import datetime
from typing import Any

from resume_publisher.database.models import SiteDataRecord
from resume_publisher.publishing.privacy import PrivacySettings, apply_privacy


def cache_tag(handle: str) -> str:
    return f"resume:{handle.lower()}"


@dataclass(frozen=True)
class PublishedSnapshot:
    """Privacy-filtered public view of one resume. Rebuilt, never mutated."""

    handle: str
    owner_id: str
    content: dict[str, Any]
    privacy: PrivacySettings
    last_published_at: datetime | None = None

    @property
    def cache_tag(self) -> str:
        return cache_tag(self.handle)

    @classmethod
    def build(cls, record: SiteDataRecord) -> "PublishedSnapshot":
        """Build from a site_data row joined with its profile, filtering private fields."""
        if not record.handle:
            raise ValueError(f"Owner {record.owner_id} has no handle")
        privacy = PrivacySettings.from_dict(record.privacy_settings)
        return cls(
            handle=record.handle,
            owner_id=record.owner_id,
            content=apply_privacy(record.content, privacy),
            privacy=privacy,
            last_published_at=record.last_published_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle": self.handle,
            "owner_id": self.owner_id,
            "content": self.content,
            "privacy": self.privacy.to_dict(),
            "last_published_at": (
                self.last_published_at.isoformat() if self.last_published_at else None
            ),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PublishedSnapshot":
        published = raw.get("last_published_at")
        return cls(
            handle=raw["handle"],
            owner_id=raw["owner_id"],
            content=raw["content"],
            privacy=PrivacySettings.from_dict(raw.get("privacy")),
            last_published_at=datetime.fromisoformat(published) if published else None,
        )
