import pytest

from resume_publisher.database.models import SiteDataRecord
from resume_publisher.publishing.privacy import PrivacySettings, apply_privacy, extract_region
from resume_publisher.publishing.snapshot import PublishedSnapshot, cache_tag


def _content() -> dict:
    return {
        "full_name": "Jane Example",
        "contact": {
            "email": "jane@example.com",
            "phone": "+1 555 0100",
            "location": "123 Main St, San Francisco, CA 94102",
        },
        "experience": [{"title": "Engineer", "location": "1 Infinite Loop, Cupertino, CA"}],
        "education": [{"degree": "BSc", "location": "Austin, TX 78701"}],
    }


class TestExtractRegion:
    @pytest.mark.parametrize(
        ("location", "expected"),
        [
            ("123 Main St, San Francisco, CA 94102", "San Francisco, CA"),
            ("1 Infinite Loop, Cupertino, CA", "Cupertino, CA"),
            ("San Francisco, CA", "San Francisco, CA"),
            ("Austin, TX 78701", "Austin, TX"),
            ("Lisbon", "Lisbon"),
            ("Rua Augusta 10, Lisbon, Portugal", "Lisbon, Portugal"),
            ("  ", ""),
            (None, ""),
        ],
    )
    def test_region(self, location: str | None, expected: str) -> None:
        assert extract_region(location) == expected


class TestPrivacySettings:
    def test_defaults_are_private(self) -> None:
        settings = PrivacySettings()
        assert not settings.show_phone
        assert not settings.show_address

    def test_malformed_falls_back_to_defaults(self) -> None:
        assert PrivacySettings.from_dict({"show_phone": "yes"}) == PrivacySettings()
        assert PrivacySettings.from_dict(None) == PrivacySettings()

    def test_parses_flags(self) -> None:
        settings = PrivacySettings.from_dict({"show_phone": True, "show_address": False})
        assert settings.show_phone
        assert settings.to_dict()["show_phone"] is True


class TestApplyPrivacy:
    def test_defaults_hide_phone_and_reduce_locations(self) -> None:
        filtered = apply_privacy(_content(), PrivacySettings())
        assert "phone" not in filtered["contact"]
        assert filtered["contact"]["location"] == "San Francisco, CA"
        assert filtered["experience"][0]["location"] == "Cupertino, CA"
        assert filtered["education"][0]["location"] == "Austin, TX"

    def test_opt_in_keeps_everything(self) -> None:
        content = _content()
        filtered = apply_privacy(content, PrivacySettings(show_phone=True, show_address=True))
        assert filtered == content

    def test_does_not_mutate_input(self) -> None:
        content = _content()
        apply_privacy(content, PrivacySettings())
        assert content["contact"]["phone"] == "+1 555 0100"


class TestPublishedSnapshot:
    def test_build_filters_private_fields(self) -> None:
        record = SiteDataRecord(
            owner_id="user-1",
            resume_id="job-1",
            content=_content(),
            handle="Jane",
            privacy_settings={"show_phone": False, "show_address": False},
        )

        snapshot = PublishedSnapshot.build(record)

        assert "phone" not in snapshot.content["contact"]
        assert snapshot.cache_tag == "resume:jane"

    def test_build_without_handle_fails(self) -> None:
        record = SiteDataRecord(owner_id="user-1", resume_id=None, content={})
        with pytest.raises(ValueError):
            PublishedSnapshot.build(record)

    def test_dict_round_trip_for_cache(self) -> None:
        snapshot = PublishedSnapshot.build(
            SiteDataRecord(owner_id="u", resume_id=None, content=_content(), handle="jane")
        )
        assert PublishedSnapshot.from_dict(snapshot.to_dict()) == snapshot

    def test_cache_tag_is_lowercase(self) -> None:
        assert cache_tag("JaneDoe") == "resume:janedoe"
