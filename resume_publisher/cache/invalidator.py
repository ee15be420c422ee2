from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from resume_publisher.exceptions import CacheInvalidationError
from resume_publisher.logging.logger import Log


@dataclass(frozen=True)
class CacheResource:
    """What to invalidate: application cache tags and public URL paths."""

    tags: list[str] = field(default_factory=list)
    paths: list[str] = field(default_factory=list)


class CacheSink(ABC):
    """One place cached public content lives."""

    name: str = "sink"

    @abstractmethod
    def invalidate(self, resource: CacheResource) -> None:
        """Drop cached copies of ``resource``. Raise on failure."""

    def close(self) -> None:
        """Release connections or threads held by the sink."""


class Invalidator:
    """Fans an invalidation out to every registered sink.

    Sinks are registered as required or best effort. A required sink that fails
    raises CacheInvalidationError once all sinks have run, unless the call
    itself is best effort. Best-effort failures are only logged.
    """

    def __init__(self) -> None:
        self._sinks: list[tuple[CacheSink, bool]] = []

    def register(self, sink: CacheSink, *, required: bool) -> None:
        self._sinks.append((sink, required))

    def invalidate(self, resource: CacheResource, *, required: bool = True) -> None:
        failures: list[str] = []
        for sink, sink_required in self._sinks:
            try:
                sink.invalidate(resource)
            except Exception as exc:
                if sink_required and required:
                    failures.append(f"{sink.name}: {exc}")
                else:
                    Log.warning(f"Cache sink {sink.name} failed for {resource.tags}: {exc}")

        if failures:
            Log.alert(
                f"Required cache invalidation failed for {resource.tags}: {'; '.join(failures)}"
            )
            raise CacheInvalidationError(
                f"Cache invalidation failed for {resource.tags}: {'; '.join(failures)}"
            )

    def close(self) -> None:
        for sink, _required in self._sinks:
            sink.close()
