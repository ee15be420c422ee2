import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Union

import psycopg

from resume_publisher.cache.invalidator import CacheResource, Invalidator
from resume_publisher.cache.tag_cache import RedisTagCache
from resume_publisher.consistency.store import ConsistentStore
from resume_publisher.database.repositories.profile_repository import ProfileRepository
from resume_publisher.database.repositories.rate_event_repository import RateEventRepository
from resume_publisher.database.repositories.resume_repository import ResumeRepository
from resume_publisher.database.repositories.site_data_repository import SiteDataRepository
from resume_publisher.exceptions import NotFoundError, ObjectStoreError, ValidationError
from resume_publisher.logging.logger import Log
from resume_publisher.normalization import NormalizationError, validate_and_build
from resume_publisher.publishing.privacy import PrivacySettings
from resume_publisher.publishing.snapshot import PublishedSnapshot, cache_tag
from resume_publisher.rate_limit.guard import RateGuard
from resume_publisher.storage.base import BaseObjectStore

_HANDLE_RE = re.compile(r"^[a-z0-9](?!.*--)[a-z0-9-]{1,28}[a-z0-9]$")


@dataclass(frozen=True)
class ContentEdit:
    content: dict[str, Any]


@dataclass(frozen=True)
class PrivacyChange:
    settings: PrivacySettings


@dataclass(frozen=True)
class HandleRename:
    new_handle: str


Mutation = Union[ContentEdit, PrivacyChange, HandleRename]


def validate_handle(handle: str) -> str:
    """Lowercase and check a public handle.

    Raises:
        ValidationError: if the handle is not 3-30 chars of a-z, 0-9 and single hyphens.
    """
    normalized = handle.strip().lower()
    if not _HANDLE_RE.match(normalized):
        raise ValidationError(f"Invalid handle: {handle!r}")
    return normalized


class PublicationService:
    """Writes and reads of the public resume page.

    Every write runs in one primary transaction, returns a read-your-writes
    bookmark and invalidates the affected cache tags after commit. Privacy
    affecting writes treat a failed tag invalidation as an error; publishing a
    finished extraction job does not.
    """

    RATE_ACTIONS: ClassVar[dict[type, str]] = {
        ContentEdit: "content_update",
        PrivacyChange: "privacy_update",
        HandleRename: "handle_change",
    }

    def __init__(
        self,
        *,
        store: ConsistentStore,
        site_data: SiteDataRepository,
        profiles: ProfileRepository,
        resumes: ResumeRepository,
        events: RateEventRepository,
        rate_guard: RateGuard,
        invalidator: Invalidator,
        tag_cache: RedisTagCache,
        object_store: BaseObjectStore,
    ) -> None:
        self._store = store
        self._site_data = site_data
        self._profiles = profiles
        self._resumes = resumes
        self._events = events
        self._rate_guard = rate_guard
        self._invalidator = invalidator
        self._tag_cache = tag_cache
        self._object_store = object_store

    def write(self, identity: str, mutation: Mutation) -> str:
        """Apply a user edit and return a bookmark for the follow-up read.

        Raises:
            RateLimitedError: when the user exceeded the limit for this kind of edit.
            CacheInvalidationError: when the edit committed but the tag cache is unreachable.
        """
        action = self.RATE_ACTIONS[type(mutation)]
        return self._rate_guard.with_rate_limit(
            identity, action, lambda: self._apply(identity, mutation)
        )

    def read(self, handle: str, bookmark: str | None = None) -> PublishedSnapshot | None:
        """Load the public snapshot for ``handle``.

        A live bookmark bypasses the cache so the reader sees its own write.
        """
        handle = handle.strip().lower()
        if self._store.is_live(bookmark):
            return self._load(handle, bookmark)

        tag = cache_tag(handle)
        cached, version = self._tag_cache.get(tag)
        if cached is not None:
            return PublishedSnapshot.from_dict(cached)

        snapshot = self._load(handle, None)
        if snapshot is not None and version is not None:
            self._tag_cache.set(tag, version, snapshot.to_dict())
        return snapshot

    def publish(
        self,
        conn: psycopg.Connection[Any],
        owner_id: str,
        resume_id: str,
        content: dict[str, Any],
    ) -> str | None:
        """Make ``content`` the owner's public site inside the caller's transaction.

        Returns the owner's handle, to be invalidated once the caller commits.
        """
        self._site_data.upsert(conn, owner_id, resume_id, content)
        return self._site_data.find_handle(conn, owner_id)

    def invalidate_handle(self, handle: str | None, *, required: bool) -> None:
        """Invalidate a public page after the write that changed it committed."""
        if handle:
            self._invalidate([handle], required=required)

    def delete_account(self, identity: str) -> None:
        """Delete everything the user owns in one transaction, then clean up caches and files.

        Raises:
            NotFoundError: if the user has no profile.
            CacheInvalidationError: if the rows are gone but the tag cache is unreachable.
        """
        (handle, storage_keys), _bookmark = self._store.with_consistency(
            lambda conn: self._delete_rows(conn, identity)
        )
        Log.info(f"Deleted account {identity}")
        try:
            if handle:
                self._invalidate([handle], required=True)
        finally:
            self._delete_objects(identity, storage_keys)

    def _apply(self, identity: str, mutation: Mutation) -> str:
        handles, bookmark = self._store.with_consistency(
            lambda conn: self._apply_in_transaction(conn, identity, mutation)
        )
        if handles:
            self._invalidate(handles, required=True)
        return bookmark

    def _apply_in_transaction(
        self, conn: psycopg.Connection[Any], identity: str, mutation: Mutation
    ) -> list[str]:
        if isinstance(mutation, ContentEdit):
            try:
                content = validate_and_build(mutation.content).to_dict()
            except NormalizationError as exc:
                raise ValidationError(f"Invalid resume content: {exc}") from exc
            handle = self._site_data.update_content(conn, identity, content)
            self._events.record_audit_event(conn, identity, "content_update")
            return [handle] if handle else []

        if isinstance(mutation, PrivacyChange):
            handle = self._profiles.update_privacy(conn, identity, mutation.settings.to_dict())
            self._events.record_audit_event(conn, identity, "privacy_update")
            return [handle] if handle else []

        new_handle = validate_handle(mutation.new_handle)
        old_handle = self._profiles.update_handle(conn, identity, new_handle)
        if old_handle == new_handle:
            return []
        self._events.record_handle_change(conn, identity, old_handle, new_handle)
        return [h for h in (old_handle, new_handle) if h]

    def _load(self, handle: str, bookmark: str | None) -> PublishedSnapshot | None:
        with self._store.read_connection(bookmark) as conn:
            record = self._site_data.find_by_handle(conn, handle)
        if record is None:
            return None
        return PublishedSnapshot.build(record)

    def _delete_rows(
        self, conn: psycopg.Connection[Any], identity: str
    ) -> tuple[str | None, list[str]]:
        handle = self._site_data.find_handle(conn, identity)
        storage_keys = self._resumes.list_storage_keys(conn, identity)
        if not self._profiles.delete_account(conn, identity):
            raise NotFoundError(f"Profile {identity} not found")
        return handle, storage_keys

    def _delete_objects(self, identity: str, storage_keys: list[str]) -> None:
        keys = set(storage_keys)
        try:
            keys.update(
                self._object_store.list_older_than(
                    f"users/{identity}/", datetime.now(timezone.utc)
                )
            )
        except ObjectStoreError as exc:
            Log.warning(f"Could not list stored files of {identity}: {exc}")
        for key in sorted(keys):
            try:
                self._object_store.delete(key)
            except ObjectStoreError as exc:
                Log.warning(f"Could not delete stored file {key}: {exc}")

    def _invalidate(self, handles: list[str], *, required: bool) -> None:
        resource = CacheResource(
            tags=[cache_tag(handle) for handle in handles],
            paths=[f"/{handle}" for handle in handles],
        )
        self._invalidator.invalidate(resource, required=required)
