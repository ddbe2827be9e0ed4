"""
Notification Watcher

Keeps the notification list and unread count fresh:
- Periodic refresh on a cancellable background task
- Cached reads, so the last known list is shown while offline
- New unread notifications are announced once each (native popups)
- Mark-as-read updates local state without waiting for a refresh
"""

import asyncio
import inspect
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from config import Config
from connectors.backend_client import BackendClient
from connectors.cached_reads import read_through
from core.cache import Cache, CacheKeys, CacheTTL, now_ms
from core.types import BackendError
from error_handler import ErrorClassifier, ErrorKind, friendly_message
from logger import get_logger

logger = get_logger(__name__)

LOAD_NOTIFICATIONS = "load_notifications"
MARK_NOTIFICATION_READ = "mark_notification_read"

# Types that always get a native popup, whatever their priority
NATIVE_TYPES = frozenset({'task_due', 'plan_ready', 'reminder'})


@dataclass(frozen=True)
class Notification:
    id: str
    type: str
    title: str
    body: Optional[str] = None
    data: Mapping[str, Any] = field(default_factory=dict)
    priority: str = "normal"
    created_at: float = 0
    read_at: Optional[float] = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> 'Notification':
        return cls(
            id=str(payload['id']),
            type=payload.get('type', 'system'),
            title=payload.get('title', ''),
            body=payload.get('body'),
            data=payload.get('data') or {},
            priority=payload.get('priority', 'normal'),
            created_at=payload.get('createdAt', 0),
            read_at=payload.get('readAt'),
        )


def should_send_native(notification: Notification) -> bool:
    """High priority notifications and a few types get a native popup"""
    return notification.priority == "high" or notification.type in NATIVE_TYPES


class NotificationDiff:
    """Remembers which notifications were already announced"""

    def __init__(self):
        self.seen: Set[str] = set()

    def new_unread(self, notifications: List[Notification]) -> List[Notification]:
        """Unread notifications not returned by an earlier call"""
        fresh = [n for n in notifications if not n.is_read and n.id not in self.seen]
        # Forget ids that left the list
        self.seen = {n.id for n in notifications if n.id in self.seen}
        self.seen.update(n.id for n in fresh)
        return fresh


NewNotificationFn = Callable[[Notification], Any]


class NotificationWatcher:
    """
    Notification list with periodic refresh.

    Usage:
        watcher = NotificationWatcher(backend, cache, on_new=show_popup)
        watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        backend: BackendClient,
        cache: Cache,
        refresh_ms: Optional[float] = None,
        on_new: Optional[NewNotificationFn] = None,
        limit: int = 50,
        include_read: bool = False,
        sleep: Optional[Callable[[float], Any]] = None
    ):
        self.backend = backend
        self.cache = cache
        self.refresh_ms = refresh_ms if refresh_ms is not None else Config.NOTIFICATION_REFRESH_MS
        self.on_new = on_new
        self.limit = limit
        self.include_read = include_read
        self._sleep = sleep or asyncio.sleep

        self.notifications: List[Notification] = []
        self.unread_count = 0
        self.error: Optional[str] = None
        self.is_stale = False
        self.last_refreshed: Optional[float] = None
        self.diff = NotificationDiff()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _fetch_list(self) -> List[Dict[str, Any]]:
        include = 'true' if self.include_read else 'false'
        response = await self.backend.get(f"/notifications?limit={self.limit}&include_read={include}")
        response.raise_for_error("Failed to load notifications")
        return (response.data or {}).get('notifications', [])

    async def _fetch_count(self) -> int:
        response = await self.backend.get("/notifications/count")
        response.raise_for_error("Failed to load notification count")
        return int((response.data or {}).get('unread_count', 0))

    async def refresh(self) -> List[Notification]:
        """
        Reload the list and count, then announce new unread notifications.

        Returns:
            The notifications announced by this refresh
        """
        try:
            listing = await read_through(
                self.cache, CacheKeys.NOTIFICATIONS, self._fetch_list,
                CacheTTL.NOTIFICATIONS, force=True,
            )
            count = await read_through(
                self.cache, CacheKeys.NOTIFICATION_COUNT, self._fetch_count,
                CacheTTL.NOTIFICATION_COUNT, force=True,
            )
            notifications = [Notification.from_dict(item) for item in listing.data or []]
        except BackendError as e:
            classification = ErrorClassifier.classify_status(e.status or 0, e.message)
            self.error = classification.friendly_message(LOAD_NOTIFICATIONS)
            logger.warning(f"Notification refresh failed: {e}")
            return []
        except Exception as e:
            # Malformed payloads keep the last good list
            logger.error(f"Notification refresh failed: {e}", exc_info=True)
            self.error = friendly_message(ErrorKind.UNKNOWN, LOAD_NOTIFICATIONS)
            return []

        self.notifications = notifications
        self.unread_count = count.data or 0
        self.is_stale = listing.from_cache
        self.error = None
        self.last_refreshed = now_ms()

        announced = self.diff.new_unread(self.notifications)
        for notification in announced:
            await self._announce(notification)
        return announced

    async def _announce(self, notification: Notification):
        if self.on_new is None or not should_send_native(notification):
            return
        try:
            outcome = self.on_new(notification)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Announcing notification {notification.id} failed: {e}", exc_info=True)

    async def _loop(self):
        while True:
            await self.refresh()
            await self._sleep(self.refresh_ms / 1000)

    def start(self) -> asyncio.Task:
        """Start periodic refresh (first refresh runs immediately)"""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._loop())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def mark_as_read(self, notification_id: str) -> bool:
        response = await self.backend.post(f"/notifications/{notification_id}/read")
        if not response.ok:
            classification = ErrorClassifier.classify_status(response.status, response.error)
            self.error = classification.friendly_message(MARK_NOTIFICATION_READ)
            return False

        read_at = now_ms()
        updated = []
        for notification in self.notifications:
            if notification.id == notification_id and not notification.is_read:
                notification = replace(notification, read_at=read_at)
                self.unread_count = max(0, self.unread_count - 1)
            updated.append(notification)
        self.notifications = updated if self.include_read else [n for n in updated if not n.is_read]
        return True

    async def mark_all_as_read(self) -> int:
        response = await self.backend.post("/notifications/read-all")
        if not response.ok:
            classification = ErrorClassifier.classify_status(response.status, response.error)
            self.error = classification.friendly_message(MARK_NOTIFICATION_READ)
            return 0

        read_at = now_ms()
        self.notifications = (
            [n if n.is_read else replace(n, read_at=read_at) for n in self.notifications]
            if self.include_read else []
        )
        self.unread_count = 0
        return int((response.data or {}).get('count', 0))
