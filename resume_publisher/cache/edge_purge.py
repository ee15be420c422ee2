from concurrent.futures import Executor, Future, ThreadPoolExecutor

import httpx

from resume_publisher.cache.invalidator import CacheResource, CacheSink
from resume_publisher.config.settings import Settings
from resume_publisher.logging.logger import Log

_CLOUDFLARE_API = "https://api.cloudflare.com/client/v4"


class EdgePurgeSink(CacheSink):
    """Purges public page URLs from the CDN edge (Cloudflare ``purge_cache``).

    Purges run on an executor so the caller never waits on the CDN. Failures
    are logged and never raised.
    """

    name = "edge"

    def __init__(
        self,
        *,
        zone_id: str,
        api_token: str,
        public_base_url: str,
        timeout_seconds: int = 5,
        executor: Executor | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = public_base_url.rstrip("/")
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="edge-purge"
        )
        self._client = httpx.Client(
            base_url=_CLOUDFLARE_API,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
            },
            timeout=timeout_seconds,
            transport=transport,
        )
        self._zone_id = zone_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "EdgePurgeSink":
        return cls(
            zone_id=settings.cf_zone_id,
            api_token=settings.cf_cache_purge_api_token,
            public_base_url=settings.public_base_url,
            timeout_seconds=settings.edge_purge_timeout_seconds,
        )

    def invalidate(self, resource: CacheResource) -> None:
        if not resource.paths:
            return
        urls = [f"{self._base_url}{path}" for path in resource.paths]
        future = self._executor.submit(self.purge, urls)
        future.add_done_callback(_log_failure)

    def purge(self, urls: list[str]) -> None:
        """Purge ``urls`` synchronously.

        Raises:
            httpx.HTTPError: on network errors or a non-2xx response.
        """
        response = self._client.post(
            f"/zones/{self._zone_id}/purge_cache",
            json={"files": urls},
        )
        response.raise_for_status()
        Log.debug(f"Purged edge cache for {urls}")

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self._client.close()


def _log_failure(future: Future[None]) -> None:
    exc = future.exception()
    if exc is not None:
        Log.warning(f"Edge cache purge failed: {exc}")
