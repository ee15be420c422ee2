import uuid

import pytest

from resume_publisher.database.repositories.rate_event_repository import RateEventRepository


@pytest.mark.integration
class TestRecentEventTimes:
    def test_counts_only_this_subject_and_action(self, seed_profile: str, db_conn) -> None:
        repo = RateEventRepository()
        for _ in range(3):
            repo.record_audit_event(db_conn, seed_profile, "content_update")
        repo.record_audit_event(db_conn, seed_profile, "privacy_update")
        db_conn.commit()

        times = repo.recent_event_times(db_conn, "content_update", seed_profile, 3600, 10)

        assert len(times) == 3

    def test_respects_limit(self, seed_profile: str, db_conn) -> None:
        repo = RateEventRepository()
        for _ in range(5):
            repo.record_audit_event(db_conn, seed_profile, "privacy_update")
        db_conn.commit()

        times = repo.recent_event_times(db_conn, "privacy_update", seed_profile, 3600, 2)

        assert len(times) == 2
        assert times[0] >= times[1]

    def test_handle_changes_are_counted(self, seed_profile: str, db_conn) -> None:
        repo = RateEventRepository()
        repo.record_handle_change(db_conn, seed_profile, None, f"h{uuid.uuid4().hex[:8]}")
        db_conn.commit()

        assert len(repo.recent_event_times(db_conn, "handle_change", seed_profile, 86400, 3)) == 1

    def test_upload_ips(self, db_conn, integration_cleanup) -> None:
        repo = RateEventRepository()
        ip_hash = uuid.uuid4().hex * 2
        integration_cleanup.append(("upload_rate_limits", ip_hash))
        repo.record_upload_ip(db_conn, ip_hash)
        db_conn.commit()

        assert len(repo.recent_event_times(db_conn, "upload_ip_hourly", ip_hash, 3600, 10)) == 1

    def test_unknown_action(self, db_conn) -> None:
        with pytest.raises(ValueError):
            RateEventRepository().recent_event_times(db_conn, "teleport", "x", 60, 1)


@pytest.mark.integration
class TestPurgeExpired:
    def test_drops_old_rows_only(self, seed_profile: str, db_conn) -> None:
        repo = RateEventRepository()
        repo.record_audit_event(db_conn, seed_profile, "content_update")
        db_conn.execute(
            """
            INSERT INTO audit_events (subject, action, created_at)
            VALUES (%s, 'content_update', NOW() - INTERVAL '8 days')
            """,
            (seed_profile,),
        )
        db_conn.commit()

        purged = repo.purge_expired(db_conn)
        db_conn.commit()

        assert purged["audit_events"] >= 1
        times = repo.recent_event_times(db_conn, "content_update", seed_profile, 30 * 86400, 10)
        assert len(times) == 1
