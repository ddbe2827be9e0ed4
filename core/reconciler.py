"""
Poll Reconciliation

Some backend changes land asynchronously (a billing webhook upgrading the
plan, a sync job finishing). The client cannot be told when that happens, so
it polls until the value it depends on moves.

Session lifecycle:
- IDLE: created, waiting out the initial grace delay
- POLLING: fetching every interval_ms
- RESOLVED: value changed / expected value seen (True) or attempts exhausted (False)
- CANCELLED: stopped from outside between ticks

Every resolution triggers exactly one terminal refresh of the dependent
state, including a timeout, so the UI never keeps showing the pre-poll value.
A cancelled session never refreshes. Only one session runs per target:
starting a new one cancels the previous one.
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from config import Config
from logger import get_logger

logger = get_logger(__name__)

FetchFn = Callable[[], Awaitable[Any]]
RefreshFn = Callable[[], Any]
SleepFn = Callable[[float], Awaitable[Any]]


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class ReconcileOutcome(str, Enum):
    """Why a poll session ended"""
    CHANGED = "changed"        # value moved away from the baseline
    MATCHED = "matched"        # value equals the expected value
    TIMED_OUT = "timed_out"    # attempt budget exhausted
    CANCELLED = "cancelled"    # stopped from outside

    @property
    def converged(self) -> bool:
        return self in (ReconcileOutcome.CHANGED, ReconcileOutcome.MATCHED)


@dataclass(frozen=True)
class PollOptions:
    """Attempt budget and timing of a poll session"""
    max_attempts: int = 12
    interval_ms: float = 5000
    initial_delay_ms: float = 2000

    @classmethod
    def from_config(cls) -> 'PollOptions':
        return cls(
            max_attempts=Config.POLL_MAX_ATTEMPTS,
            interval_ms=Config.POLL_INTERVAL_MS,
            initial_delay_ms=Config.POLL_INITIAL_DELAY_MS,
        )

    @property
    def max_duration_ms(self) -> float:
        """Upper bound on time spent waiting before resolution"""
        return self.initial_delay_ms + self.max_attempts * self.interval_ms


@dataclass(frozen=True)
class PollResult:
    outcome: ReconcileOutcome
    attempts: int
    value: Any = None

    @property
    def converged(self) -> bool:
        return self.outcome.converged


class PollSession:
    """
    One bounded polling run against one target.

    The running asyncio task is the session's cancellable timer handle.
    Cancellation is honoured between ticks: a fetch already in flight runs
    to completion and its value is discarded.
    """

    def __init__(
        self,
        target: str,
        fetch_current: FetchFn,
        baseline: Any,
        expected: Any = None,
        options: Optional[PollOptions] = None,
        on_refresh: Optional[RefreshFn] = None,
        sleep: Optional[SleepFn] = None
    ):
        """
        Args:
            target: Logical thing being reconciled (e.g. "subscription")
            fetch_current: Coroutine function returning the current value
            baseline: Value before the asynchronous change started
            expected: Value that also counts as converged (None = not given)
            options: Attempt budget and timing
            on_refresh: Called exactly once when the session resolves
            sleep: Coroutine used to wait, in seconds (defaults to asyncio.sleep)
        """
        self.target = target
        self.fetch_current = fetch_current
        self.baseline = baseline
        self.expected = expected
        self.options = options or PollOptions.from_config()
        self.on_refresh = on_refresh
        self._sleep = sleep or asyncio.sleep

        self.attempt = 0
        self.state = PollState.IDLE
        self.refresh_count = 0
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False
        self._waiting = False

    @property
    def active(self) -> bool:
        return self.state in (PollState.IDLE, PollState.POLLING)

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self) -> 'PollSession':
        """Schedule the polling loop on the running event loop"""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    async def wait(self) -> PollResult:
        """Wait for the session to end"""
        self.start()
        return await self._task

    def cancel(self) -> bool:
        """
        Stop the session. No terminal refresh happens after this.

        Returns:
            False if the session had already ended
        """
        if not self.active:
            return False

        self._cancel_requested = True
        if self._task is None:
            self.state = PollState.CANCELLED
        elif self._waiting and not self._task.done():
            # Only interrupt timer waits, never a fetch in flight
            self._task.cancel()

        logger.debug(f"Cancelled poll session for {self.target} at attempt {self.attempt}")
        return True

    async def _wait_ms(self, delay_ms: float):
        if delay_ms <= 0 or self._cancel_requested:
            return
        self._waiting = True
        try:
            await self._sleep(delay_ms / 1000)
        finally:
            self._waiting = False

    def _cancelled(self) -> PollResult:
        self.state = PollState.CANCELLED
        return PollResult(outcome=ReconcileOutcome.CANCELLED, attempts=self.attempt)

    async def _refresh(self):
        if self.on_refresh is None:
            return
        self.refresh_count += 1
        try:
            outcome = self.on_refresh()
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Terminal refresh for {self.target} failed: {e}", exc_info=True)

    async def _resolve(self, outcome: ReconcileOutcome, value: Any) -> PollResult:
        self.state = PollState.RESOLVED
        logger.info(f"Poll session for {self.target} resolved: {outcome.value} after {self.attempt} attempt(s)")
        await self._refresh()
        return PollResult(outcome=outcome, attempts=self.attempt, value=value)

    async def _run(self) -> PollResult:
        try:
            await self._wait_ms(self.options.initial_delay_ms)
            self.state = PollState.POLLING

            while True:
                if self._cancel_requested:
                    return self._cancelled()

                self.attempt += 1
                try:
                    value = await self.fetch_current()
                except Exception as e:
                    # A failed tick counts as "no change yet"
                    logger.warning(f"Poll fetch for {self.target} failed on attempt {self.attempt}: {e}")
                    value = self.baseline

                if self._cancel_requested:
                    return self._cancelled()

                if value != self.baseline:
                    return await self._resolve(ReconcileOutcome.CHANGED, value)
                if self.expected is not None and value == self.expected:
                    return await self._resolve(ReconcileOutcome.MATCHED, value)
                if self.attempt >= self.options.max_attempts:
                    return await self._resolve(ReconcileOutcome.TIMED_OUT, value)

                await self._wait_ms(self.options.interval_ms)

        except asyncio.CancelledError:
            if self._cancel_requested:
                return self._cancelled()
            raise


class PollReconciler:
    """
    Owns the poll sessions of a feature, one per target.

    Starting a session for a target that already has one cancels the old
    one first, so two loops never apply state for the same target.
    """

    def __init__(self, options: Optional[PollOptions] = None, sleep: Optional[SleepFn] = None):
        self.options = options or PollOptions.from_config()
        self._sleep = sleep
        self._sessions: Dict[str, PollSession] = {}

    def start(
        self,
        target: str,
        fetch_current: FetchFn,
        baseline: Any,
        expected: Any = None,
        options: Optional[PollOptions] = None,
        on_refresh: Optional[RefreshFn] = None
    ) -> PollSession:
        prior = self._sessions.get(target)
        if prior is not None and prior.active:
            logger.info(f"Replacing running poll session for {target}")
            prior.cancel()

        session = PollSession(
            target=target,
            fetch_current=fetch_current,
            baseline=baseline,
            expected=expected,
            options=options or self.options,
            on_refresh=on_refresh,
            sleep=self._sleep,
        )
        self._sessions[target] = session
        session.start()
        session.task.add_done_callback(lambda _task: self._discard(target, session))
        return session

    def _discard(self, target: str, session: PollSession):
        if self._sessions.get(target) is session:
            del self._sessions[target]

    async def reconcile(
        self,
        target: str,
        fetch_current: FetchFn,
        baseline: Any,
        expected: Any = None,
        options: Optional[PollOptions] = None,
        on_refresh: Optional[RefreshFn] = None
    ) -> bool:
        """Run a session to completion. Cancelled sessions report False."""
        session = self.start(target, fetch_current, baseline, expected, options, on_refresh)
        result = await session.wait()
        return result.converged

    def active(self, target: str) -> Optional[PollSession]:
        session = self._sessions.get(target)
        return session if session is not None and session.active else None

    def cancel(self, target: str) -> bool:
        session = self._sessions.get(target)
        return session.cancel() if session is not None else False

    def cancel_all(self) -> int:
        """Cancel every running session (e.g. on teardown)"""
        return sum(1 for session in list(self._sessions.values()) if session.cancel())


async def reconcile(
    fetch_current: FetchFn,
    baseline: Any,
    expected: Any = None,
    opts: Optional[PollOptions] = None,
    on_refresh: Optional[RefreshFn] = None,
    sleep: Optional[SleepFn] = None
) -> bool:
    """Run one standalone poll session and report whether the value converged"""
    session = PollSession(
        target="standalone",
        fetch_current=fetch_current,
        baseline=baseline,
        expected=expected,
        options=opts,
        on_refresh=on_refresh,
        sleep=sleep,
    )
    result = await session.wait()
    return result.converged
