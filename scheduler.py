"""
Task Scheduler - one-shot and cron execution with cancellation.

Three ways to schedule:
- "once": run an action at an absolute instant
- "every": run an action at a fixed interval from an anchor
- "cron": run an action on a cron recurrence (5 fields, or 6 with seconds first)

Design principles:
- One live registration per id; re-scheduling replaces the old one
- Each registration is a waiter task that sleeps until due
- Actions run off the caller: async actions as scheduler-owned tasks,
  sync actions on the scheduler's own thread pool
- Cancel stops the waiter; an action already running finishes
- No knowledge of what the actions do (reminders, heartbeats, ...)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal

from croniter import croniter

logger = logging.getLogger(__name__)

# Long sleeps are chunked so wall-clock changes are noticed
MAX_SLEEP_SECONDS = 3600


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class ScheduledTask:
    """A registration in the scheduler's table."""
    id: str
    trigger: datetime | timedelta | str  # instant, interval or normalized cron
    action: Callable
    kind: Literal["once", "every", "cron"]
    anchor: datetime | None = None
    next_run_at: datetime | None = None
    run_count: int = 0
    cancelled: bool = False
    waiter: asyncio.Future | None = field(default=None, repr=False)

    @property
    def live(self) -> bool:
        return not self.cancelled and self.waiter is not None and not self.waiter.done()


def normalize_cron(expression: str) -> str:
    """Return a croniter-compatible expression.

    Accepts standard 5-field cron and 6-field cron with a leading seconds
    field ("0 */5 * * * ?"), which croniter wants with seconds last. "?" is
    treated as "*".

    Raises:
        ValueError: if the expression is not valid cron.
    """
    if not expression or not expression.strip():
        raise ValueError("Cron expression must not be empty")

    fields = expression.replace("?", "*").split()
    if len(fields) == 6:
        fields = fields[1:] + fields[:1]
    elif len(fields) != 5:
        raise ValueError(f"Invalid cron expression '{expression}': expected 5 or 6 fields")

    normalized = " ".join(fields)
    if not croniter.is_valid(normalized):
        raise ValueError(f"Invalid cron expression '{expression}'")
    return normalized


def next_cron_time(expression: str, after: datetime = None) -> datetime:
    """Next fire time strictly after `after` (local time zone by default)."""
    after = after or datetime.now().astimezone()
    if after.tzinfo is None:
        after = after.astimezone()
    return croniter(expression, after).get_next(datetime)


def next_interval_time(anchor: datetime, every: timedelta, after: datetime = None) -> datetime:
    """First anchor + k * every strictly after `after` (k >= 1)."""
    after = after or datetime.now(timezone.utc)
    elapsed = (after - anchor).total_seconds()
    intervals_passed = max(int(elapsed // every.total_seconds()), 0)
    return anchor + every * (intervals_passed + 1)


# =============================================================================
# Scheduler Engine
# =============================================================================

class TaskScheduler:
    """
    Runs actions at their scheduled times.

    Usage:
        scheduler = TaskScheduler()
        scheduler.schedule_once("ping", send_ping, datetime.now(timezone.utc) + timedelta(minutes=5))
        scheduler.schedule_recurring("report", build_report, "0 9 * * 1-5")
        scheduler.cancel("ping")

    Scheduling calls may come from the event loop or from worker threads
    (sync tools); the waiter always lives on the scheduler's event loop.
    """

    def __init__(self, emitter=None, max_workers: int = 4, loop: asyncio.AbstractEventLoop = None):
        """
        Args:
            emitter: Optional EventEmitter that receives task_start/task_end
            max_workers: Size of the pool that runs sync actions
            loop: Event loop to run waiters on; defaults to the running loop
                  at the first scheduling call
        """
        self.emitter = emitter
        self._loop = loop
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pincer-scheduler")
        self._tasks: dict[str, ScheduledTask] = {}
        self._lock = threading.Lock()
        self._running: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Task Management API
    # -------------------------------------------------------------------------

    def schedule_once(self, task_id: str, action: Callable, when: datetime) -> ScheduledTask:
        """Run `action` once at `when` (naive datetimes are taken as local time)."""
        if when.tzinfo is None:
            when = when.astimezone()
        task = ScheduledTask(id=task_id, trigger=when, action=action, kind="once", next_run_at=when)
        self._register(task, self._wait_once(task))
        logger.info("Scheduled task %s once at %s", task_id, when.isoformat())
        return task

    def schedule_interval(
        self, task_id: str, action: Callable, every: timedelta, anchor: datetime = None
    ) -> ScheduledTask:
        """Run `action` every `every`, counted from `anchor` (default: now).

        Fire times stay on the anchor grid, so gaps are always `every` even
        when an action runs long. Grid points already in the past are skipped.

        Raises:
            ValueError: if the interval is not positive.
        """
        if every <= timedelta(0):
            raise ValueError("Interval must be positive")
        anchor = anchor or datetime.now(timezone.utc)
        if anchor.tzinfo is None:
            anchor = anchor.astimezone()
        task = ScheduledTask(
            id=task_id,
            trigger=every,
            action=action,
            kind="every",
            anchor=anchor,
            next_run_at=next_interval_time(anchor, every, max(anchor, datetime.now(timezone.utc))),
        )
        self._register(task, self._wait_recurring(task))
        logger.info("Scheduled task %s every %s", task_id, every)
        return task

    def schedule_recurring(self, task_id: str, action: Callable, cron: str) -> ScheduledTask:
        """Run `action` on every cron fire time until cancelled.

        Raises:
            ValueError: if the cron expression is invalid.
        """
        normalized = normalize_cron(cron)
        task = ScheduledTask(
            id=task_id,
            trigger=normalized,
            action=action,
            kind="cron",
            next_run_at=next_cron_time(normalized),
        )
        self._register(task, self._wait_recurring(task))
        logger.info("Scheduled task %s with cron '%s'", task_id, normalized)
        return task

    def cancel(self, task_id: str) -> bool:
        """Suppress future runs of a task. Returns False if nothing live was registered."""
        with self._lock:
            task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        was_live = task.live
        self._stop(task)
        logger.info("Cancelled task %s", task_id)
        return was_live

    def is_scheduled(self, task_id: str) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
        return task is not None and task.live

    def get(self, task_id: str) -> ScheduledTask | None:
        with self._lock:
            return self._tasks.get(task_id)

    def list_ids(self) -> list[str]:
        """Ids of live registrations."""
        with self._lock:
            tasks = list(self._tasks.values())
        return [t.id for t in tasks if t.live]

    def shutdown(self, wait: bool = False):
        """Cancel every registration and stop the worker pool."""
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            self._stop(task)
        self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Scheduler shut down (%d registrations cancelled)", len(tasks))

    # -------------------------------------------------------------------------
    # Waiters
    # -------------------------------------------------------------------------

    def _register(self, task: ScheduledTask, coro):
        with self._lock:
            previous = self._tasks.get(task.id)
            self._tasks[task.id] = task
        if previous is not None:
            self._stop(previous)
            logger.debug("Replaced previous registration for task %s", task.id)

        try:
            task.waiter = self._spawn(coro)
        except RuntimeError:
            coro.close()
            with self._lock:
                if self._tasks.get(task.id) is task:
                    del self._tasks[task.id]
            raise

    def _spawn(self, coro) -> asyncio.Future:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            if self._loop is None or self._loop.is_closed():
                self._loop = running
            if running is self._loop:
                return running.create_task(coro)

        if self._loop is None or self._loop.is_closed():
            raise RuntimeError("TaskScheduler has no event loop; schedule from async code first")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def _stop(self, task: ScheduledTask):
        task.cancelled = True
        waiter = task.waiter
        if waiter is None or waiter.done():
            return
        if self._loop is not None and not self._loop.is_closed() and _off_loop(self._loop):
            self._loop.call_soon_threadsafe(waiter.cancel)
        else:
            waiter.cancel()

    async def _wait_once(self, task: ScheduledTask):
        try:
            await _sleep_until(task.trigger)
            if task.cancelled:
                return
            self._fire(task)
        finally:
            with self._lock:
                if self._tasks.get(task.id) is task:
                    del self._tasks[task.id]

    async def _wait_recurring(self, task: ScheduledTask):
        while not task.cancelled:
            await _sleep_until(task.next_run_at)
            if task.cancelled:
                return
            self._fire(task)
            if task.kind == "every":
                after = max(task.next_run_at, datetime.now(timezone.utc))
                task.next_run_at = next_interval_time(task.anchor, task.trigger, after)
            else:
                task.next_run_at = next_cron_time(task.trigger, task.next_run_at)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _fire(self, task: ScheduledTask):
        """Start the action without waiting for it."""
        task.run_count += 1
        runner = asyncio.get_running_loop().create_task(self._run_action(task))
        self._running.add(runner)
        runner.add_done_callback(self._running.discard)

    async def _run_action(self, task: ScheduledTask):
        self._emit("task_start", {"task_id": task.id, "kind": task.kind})
        start = time.time()
        status = "ok"
        error = None
        try:
            if inspect.iscoroutinefunction(task.action):
                await task.action()
            else:
                result = await asyncio.get_running_loop().run_in_executor(self._executor, task.action)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            status = "error"
            error = str(e)
            logger.exception("Scheduled task %s failed", task.id)

        duration_ms = int((time.time() - start) * 1000)
        self._emit("task_end", {
            "task_id": task.id,
            "kind": task.kind,
            "status": status,
            "error": error,
            "duration_ms": duration_ms,
        })

    def _emit(self, event: str, data: dict):
        if self.emitter is not None:
            self.emitter.emit(event, data)


async def _sleep_until(when: datetime):
    while True:
        remaining = (when - datetime.now(timezone.utc)).total_seconds()
        if remaining <= 0:
            # Yield even when already due so other coroutines are not starved
            await asyncio.sleep(0)
            return
        await asyncio.sleep(min(remaining, MAX_SLEEP_SECONDS))


def _off_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is not loop
    except RuntimeError:
        return True
