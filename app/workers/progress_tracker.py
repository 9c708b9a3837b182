# ---------------------------------
# app/workers/progress_tracker.py
# ---------------------------------
# Watches a dispatched batch by polling its per-item status rows.
#
#   running ──(success+failed >= expected)──▶ completed (all_success | all_failed | mixed)
#      │──(poll budget used up)─────────────▶ timed_out
#      └──(cancel())────────────────────────▶ cancelled
#
# The tracker only observes; cancelling it never stops the batch worker.
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from app.config import settings
from app.sync.components.util import maybe_await

logger = logging.getLogger("uvicorn.error")

StatusRows = List[Dict[str, Any]]
FetchStatuses = Callable[[str], Union[StatusRows, Awaitable[StatusRows]]]


class TrackerState(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class ProgressSnapshot:
    completed: int
    expected: int
    success: int
    failed: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrackerResult:
    batch_key: str
    state: TrackerState
    expected: int
    success: int = 0
    failed: int = 0
    polls: int = 0
    outcome: Optional[str] = None  # all_success | all_failed | mixed (completed only)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["state"] = self.state.value
        return d


def classify_outcome(success: int, failed: int) -> str:
    if failed == 0:
        return "all_success"
    if success == 0:
        return "all_failed"
    return "mixed"


class BatchProgressTracker:
    """
    Poll `fetch_statuses(batch_key)` until every expected item is success/failed.

    observer: any object with optional `on_progress(snapshot)` and
    `on_finished(result)` methods, plain or async. on_finished fires exactly once.
    """

    def __init__(
        self,
        batch_key: str,
        expected_count: int,
        fetch_statuses: FetchStatuses,
        observer: Any = None,
        *,
        initial_interval: float | None = None,
        backoff: float | None = None,
        max_interval: float | None = None,
        max_polls: int | None = None,
    ):
        self.batch_key = batch_key
        self.expected = int(expected_count)
        self._fetch = fetch_statuses
        self._observer = observer
        self.initial_interval = settings.POLL_INITIAL_INTERVAL if initial_interval is None else initial_interval
        self.backoff = settings.POLL_BACKOFF if backoff is None else backoff
        self.max_interval = settings.POLL_MAX_INTERVAL if max_interval is None else max_interval
        self.max_polls = settings.POLL_MAX_ATTEMPTS if max_polls is None else max_polls

        self.polls = 0
        self.latest: Optional[ProgressSnapshot] = None
        self._state = TrackerState.RUNNING
        self._result: Optional[TrackerResult] = None
        self._cancelled = False
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # ---- public ----

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def result(self) -> Optional[TrackerResult]:
        return self._result

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    def cancel(self) -> None:
        """Stop polling. Safe to call repeatedly and after the tracker finished."""
        if self._state is not TrackerState.RUNNING or self._cancelled:
            return
        self._cancelled = True
        self._wake.set()
        logger.info("[TRACKER] %s cancel requested", self.batch_key)

    async def run(self) -> TrackerResult:
        interval = self.initial_interval
        try:
            while True:
                if self._cancelled:
                    return await self._finish(TrackerState.CANCELLED)
                if self.polls >= self.max_polls:
                    logger.warning("[TRACKER] ⏱️ %s timed out after %d polls", self.batch_key, self.polls)
                    return await self._finish(TrackerState.TIMED_OUT)

                self.polls += 1
                try:
                    rows = await maybe_await(self._fetch(self.batch_key))
                except Exception as e:
                    logger.warning("[TRACKER] %s status query failed (poll %d): %s", self.batch_key, self.polls, e)
                    await self._sleep(interval)
                    continue

                if self._cancelled:
                    return await self._finish(TrackerState.CANCELLED)

                snap = self._count(rows or [])
                self.latest = snap
                await self._notify("on_progress", snap)

                if snap.completed >= self.expected:
                    return await self._finish(TrackerState.COMPLETED)

                interval = min(interval * self.backoff, self.max_interval)
                await self._sleep(interval)
        except asyncio.CancelledError:
            self._cancelled = True
            await self._finish(TrackerState.CANCELLED)
            raise

    # ---- internals ----

    def _count(self, rows: StatusRows) -> ProgressSnapshot:
        success = sum(1 for r in rows if r.get("status") == "success")
        failed = sum(1 for r in rows if r.get("status") == "failed")
        return ProgressSnapshot(completed=success + failed, expected=self.expected, success=success, failed=failed)

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _finish(self, state: TrackerState) -> TrackerResult:
        if self._result is not None:
            return self._result
        snap = self.latest
        self._state = state
        self._result = TrackerResult(
            batch_key=self.batch_key,
            state=state,
            expected=self.expected,
            success=snap.success if snap else 0,
            failed=snap.failed if snap else 0,
            polls=self.polls,
            outcome=classify_outcome(snap.success, snap.failed) if state is TrackerState.COMPLETED and snap else None,
        )
        self._wake.set()
        logger.info("[TRACKER] %s finished: %s", self.batch_key, self._result.to_dict())
        await self._notify("on_finished", self._result)
        return self._result

    async def _notify(self, hook: str, arg: Any) -> None:
        fn = getattr(self._observer, hook, None)
        if fn is None:
            return
        try:
            await maybe_await(fn(arg))
        except Exception:
            logger.exception("[TRACKER] observer %s failed for %s", hook, self.batch_key)
