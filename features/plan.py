"""
Daily plan: today's plan, regeneration, feedback and day reset.
"""

from typing import Any, Dict, List, Optional

from connectors.backend_client import BackendClient
from connectors.cached_reads import CachedRead, CachedReadMixin
from core.cache import CACHE_PREFIX, Cache, CacheKeys, CacheTTL
from core.resilience import ActionExecutor
from core.types import ActionResult
from logger import get_logger

logger = get_logger(__name__)

REGENERATE_PLAN = "regenerate_plan"


class PlanService(CachedReadMixin):
    """Cached daily plan"""

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
        self.ttl_ms = ttl_ms if ttl_ms is not None else CacheTTL.PLAN

    async def _fetch_today(self) -> Optional[Dict[str, Any]]:
        response = await self.backend.get("/plan/today")
        response.raise_for_error("Failed to load your plan")
        return (response.data or {}).get('plan')

    async def get_today_plan(self, force: bool = False) -> CachedRead:
        """Today's plan; data is None when none was generated yet"""
        return await self.cached_read(CacheKeys.PLAN, self._fetch_today, self.ttl_ms, force=force)

    async def _generate(self, language: Optional[str]) -> ActionResult:
        body = {'language': language} if language else {}
        response = await self.backend.post("/plan/generate", body)
        if response.ok and isinstance(response.data, dict) and response.data.get('plan') is not None:
            return ActionResult(success=True, message="Plan generated", data=response.data['plan'])
        if response.ok:
            return ActionResult.failure("Plan generation returned no plan")
        return ActionResult.from_response(response, "Failed to regenerate plan")

    async def regenerate(self, language: Optional[str] = None) -> ActionResult:
        """Generate a fresh plan for today and cache it"""
        report = await self.executor.run(
            lambda: self._generate(language),
            operation_kind=REGENERATE_PLAN,
            resource_id="today",
            options={'language': language},
        )
        if report.result.success:
            self.cache.set(CacheKeys.PLAN, report.result.data, self.ttl_ms)
        return report.result

    async def submit_feedback(self, plan_id: str, rating: int, comment: Optional[str] = None) -> bool:
        body: Dict[str, Any] = {'rating': rating}
        if comment:
            body['comment'] = comment
        response = await self.backend.post(f"/plan/{plan_id}/feedback", body)
        if not response.ok:
            logger.warning(f"Plan feedback for {plan_id} failed: {response.error_message('feedback failed')}")
        return response.ok

    async def get_history(self, limit: int = 10) -> Optional[List[Dict[str, Any]]]:
        response = await self.backend.get(f"/plan/history?limit={limit}")
        if not response.ok:
            return None
        return (response.data or {}).get('plans', [])

    def reset_day(self) -> int:
        """
        Start the day over: drop every cached value of this client.

        Returns:
            Number of cache entries removed
        """
        removed = self.cache.clear_by_prefix(CACHE_PREFIX)
        logger.info(f"Day reset, cleared {removed} cached entries")
        return removed
