"""Core System - resilience primitives"""

# Value types
from .types import (
    ApiResponse,
    ActionResult,
    BackendError
)

# Storage and caching
from .kv_store import (
    KeyValueStore,
    MemoryKeyValueStore,
    JsonFileKeyValueStore
)
from .cache import (
    CACHE_PREFIX,
    Cache,
    CacheKeys,
    CacheTTL,
    StaleRead
)

# Retry and replay
from .resilience import (
    RetryPolicy,
    RetryContext,
    FailedAction,
    LastFailedActionSlot,
    ActionExecutor,
    execute_with_retry
)

# Optimistic state and reconciliation
from .optimistic import (
    OptimisticOverride,
    OptimisticStateManager
)
from .reconciler import (
    PollOptions,
    ReconcileOutcome,
    PollSession,
    PollReconciler,
    reconcile
)
from .locks import KeyedLocks

__all__ = [
    # Types
    'ApiResponse',
    'ActionResult',
    'BackendError',
    # Storage
    'KeyValueStore',
    'MemoryKeyValueStore',
    'JsonFileKeyValueStore',
    'CACHE_PREFIX',
    'Cache',
    'CacheKeys',
    'CacheTTL',
    'StaleRead',
    # Resilience
    'RetryPolicy',
    'RetryContext',
    'FailedAction',
    'LastFailedActionSlot',
    'ActionExecutor',
    'execute_with_retry',
    # Optimistic / reconcile
    'OptimisticOverride',
    'OptimisticStateManager',
    'PollOptions',
    'ReconcileOutcome',
    'PollSession',
    'PollReconciler',
    'reconcile',
    'KeyedLocks',
]
