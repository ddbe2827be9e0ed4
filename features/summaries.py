"""
AI email summaries.

Summaries are expensive to produce, so they are cached per email for an
hour and served from cache while offline.
"""

from typing import Any, Dict, List, Optional

from connectors.backend_client import BackendClient
from connectors.cached_reads import CachedRead, CachedReadMixin
from core.cache import Cache, CacheKeys, CacheTTL
from core.resilience import ActionExecutor
from core.types import ActionResult
from logger import get_logger

logger = get_logger(__name__)

GENERATE_SUMMARY = "generate_summary"


class SummaryService(CachedReadMixin):
    """
    Cached access to email summaries.

    Usage:
        summaries = SummaryService(backend, cache)
        read = await summaries.get_summary("msg-1")
        if read.is_stale:
            show_offline_badge(read.cached_at)
    """

    def __init__(
        self,
        backend: BackendClient,
        cache: Cache,
        executor: Optional[ActionExecutor] = None,
        ttl_ms: Optional[float] = None
    ):
        super().__init__(cache=cache)
        self.backend = backend
        self.executor = executor or ActionExecutor()
        self.ttl_ms = ttl_ms if ttl_ms is not None else CacheTTL.SUMMARY

    async def _fetch_summary(self, email_id: str) -> Optional[Dict[str, Any]]:
        response = await self.backend.get(f"/summary/email/{email_id}")
        response.raise_for_error("Failed to load summary")
        data = response.data or {}
        return data.get('summary')

    async def get_summary(self, email_id: str, force: bool = False) -> CachedRead:
        """
        Summary of an email, from cache when fresh.

        Raises:
            BackendError: the backend refused, or was unreachable with nothing cached
        """
        return await self.cached_read(
            CacheKeys.summary(email_id),
            lambda: self._fetch_summary(email_id),
            self.ttl_ms,
            force=force,
        )

    async def _generate(self, email_id: str, force_regenerate: bool) -> ActionResult:
        response = await self.backend.post(
            f"/summary/email/{email_id}",
            {'force_regenerate': force_regenerate},
        )
        if response.ok and isinstance(response.data, dict) and 'summary' in response.data:
            return ActionResult(success=True, message="Summary generated", data=response.data['summary'])
        return ActionResult.from_response(response, "Failed to generate summary")

    async def generate_summary(self, email_id: str, force_regenerate: bool = False) -> ActionResult:
        """Ask the backend to (re)generate a summary; caches it on success"""
        report = await self.executor.run(
            lambda: self._generate(email_id, force_regenerate),
            operation_kind=GENERATE_SUMMARY,
            resource_id=email_id,
            options={'force_regenerate': force_regenerate},
        )
        result = report.result
        if result.success and result.data is not None:
            self.cache.set(CacheKeys.summary(email_id), result.data, self.ttl_ms)
        return result

    async def delete_summary(self, email_id: str) -> bool:
        self.cache.remove(CacheKeys.summary(email_id))
        response = await self.backend.delete(f"/summary/email/{email_id}")
        if not response.ok:
            logger.warning(f"Deleting summary {email_id} failed: {response.error_message('delete failed')}")
        return response.ok

    async def get_limits(self) -> Optional[Dict[str, Any]]:
        """Summary usage for the current billing period, or None if unavailable"""
        response = await self.backend.get("/summary/limits")
        return response.data if response.ok and isinstance(response.data, dict) else None

    async def get_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        response = await self.backend.get(f"/summary/history?limit={limit}")
        if not response.ok:
            return []
        return (response.data or {}).get('summaries', [])

    def clear_cached_summaries(self) -> int:
        return self.invalidate(prefix=CacheKeys.SUMMARY_PREFIX)
