"""
Read-through caching for backend reads.

Fresh cache hits skip the network. On a miss the live fetch runs and its
result is cached. When the live fetch fails because the backend could not be
reached at all, the last cached value is served even if expired; when the
server answered with an error, the error is raised and nothing stale is shown.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.cache import Cache
from core.types import BackendError
from logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CachedRead:
    """Data plus where it came from, for "offline" badges in the UI"""
    data: Any
    from_cache: bool = False
    is_stale: bool = False
    cached_at: Optional[float] = None


def is_network_failure(error: BaseException) -> bool:
    """True when the request never got an answer from the server"""
    if isinstance(error, BackendError):
        return error.is_network
    return isinstance(error, (ConnectionError, TimeoutError))


async def read_through(
    cache: Cache,
    key: str,
    fetch: Callable[[], Awaitable[Any]],
    ttl_ms: float,
    force: bool = False
) -> CachedRead:
    """
    Get a value from cache or compute it with a live fetch.

    Args:
        cache: Cache to read from and write to
        key: Cache key
        fetch: Coroutine function doing the live read; raises BackendError on failure
        ttl_ms: Freshness window for the stored result
        force: Skip the fresh-cache check (e.g. user pressed refresh)

    Returns:
        CachedRead describing the data and its origin

    Raises:
        BackendError: the server rejected the request, or it was unreachable
                      and nothing was cached
    """
    if not force:
        cached = cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return CachedRead(data=cached, from_cache=True)

    try:
        data = await fetch()
    except (BackendError, ConnectionError, TimeoutError) as e:
        if not is_network_failure(e):
            raise

        stale = cache.get_stale(key)
        if stale is None:
            raise
        logger.info(f"Backend unreachable, serving cached {key} (stale={stale.is_stale})")
        return CachedRead(
            data=stale.data,
            from_cache=True,
            is_stale=stale.is_stale,
            cached_at=stale.stored_at,
        )

    if data is not None:
        cache.set(key, data, ttl_ms)
    return CachedRead(data=data)


class CachedReadMixin:
    """
    Mixin giving a service a cache and a cached_read() helper.

    Usage:
        class PlanService(CachedReadMixin):
            def __init__(self, backend, cache):
                super().__init__(cache=cache)
    """

    def __init__(self, *args, cache: Cache, **kwargs):
        super().__init__(*args, **kwargs)
        self.cache = cache

    async def cached_read(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        ttl_ms: float,
        force: bool = False
    ) -> CachedRead:
        return await read_through(self.cache, key, fetch, ttl_ms, force=force)

    def invalidate(self, key: Optional[str] = None, prefix: Optional[str] = None) -> int:
        """Remove one key or every key under a prefix"""
        if key is not None:
            self.cache.remove(key)
            return 1
        if prefix is not None:
            return self.cache.clear_by_prefix(prefix)
        return 0
