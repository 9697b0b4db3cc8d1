"""
Heartbeat Monitor - periodic housekeeping with durable state.

Every tick loads the persisted state, stamps lastCheck, runs the registered
checks, writes the file back atomically and emits a "heartbeat" event. New
periodic work plugs in with register_check() instead of its own timer.

State file (<memory.path>/heartbeat-state.json):

    {
      "heartbeat": {
        "lastCheck": "2026-02-19T21:30:00+00:00",
        "intervalMinutes": 15,
        "checks": [{"name": "pending_reminders", "lastRun": "...", "status": "OK"}]
      }
    }

Check entries that a tick does not run are kept exactly as loaded. Other
top-level keys are preserved.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from scheduler import TaskScheduler

logger = logging.getLogger(__name__)

STATE_FILENAME = "heartbeat-state.json"
HEARTBEAT_TASK_ID = "heartbeat"


@dataclass(frozen=True)
class CheckResult:
    name: str
    last_run: str
    status: str

    def to_dict(self) -> dict:
        return {"name": self.name, "lastRun": self.last_run, "status": self.status}


@dataclass(frozen=True)
class HeartbeatState:
    last_check: str
    interval_minutes: int
    checks: tuple[CheckResult, ...] = ()

    def to_dict(self) -> dict:
        return {
            "lastCheck": self.last_check,
            "intervalMinutes": self.interval_minutes,
            "checks": [c.to_dict() for c in self.checks],
        }


class HeartbeatStore:
    """JSON persistence for the heartbeat state, with atomic writes."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> dict:
        """The stored document, or {} if the file is missing or corrupt."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read heartbeat state %s, starting fresh: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Heartbeat state %s is not a JSON object, starting fresh", self.path)
            return {}
        return data

    def save(self, state: dict):
        """Write to a temp file in the same directory, then rename over the old file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".heartbeat-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class HeartbeatMonitor:
    """
    Fixed-interval tick on top of the TaskScheduler.

    Usage:
        monitor = HeartbeatMonitor(store, scheduler, emitter=agent, interval_minutes=15)
        monitor.register_check("pending_reminders", lambda: f"OK ({n} pending)")
        await monitor.start()
    """

    def __init__(
        self,
        store: HeartbeatStore,
        scheduler: TaskScheduler,
        emitter=None,
        interval_minutes: int = 15,
    ):
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        self.store = store
        self.scheduler = scheduler
        self.emitter = emitter
        self.interval_minutes = interval_minutes
        self._checks: dict[str, Callable[[], str]] = {}

    def register_check(self, name: str, fn: Callable[[], str]):
        """Run `fn` on every tick; its return value is the check status."""
        self._checks[name] = fn

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)

    async def start(self):
        """Register the recurring tick and run one immediately."""
        self.scheduler.schedule_interval(HEARTBEAT_TASK_ID, self.tick, self.interval)
        logger.info("Heartbeat started (every %d minutes)", self.interval_minutes)
        await self.tick()

    def stop(self):
        self.scheduler.cancel(HEARTBEAT_TASK_ID)

    async def tick(self) -> dict | None:
        """One heartbeat. Returns the heartbeat section written, or None on failure."""
        try:
            return self._tick()
        except Exception:
            logger.exception("Failed to update heartbeat state")
            return None

    def _tick(self) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        state = self.store.load()
        heartbeat = state.get("heartbeat")
        if not isinstance(heartbeat, dict):
            heartbeat = {}

        results = [CheckResult(name, now, self._run_check(name, fn)) for name, fn in self._checks.items()]
        ran = {r.name for r in results}

        # Entries for checks not run this tick stay byte-for-byte as loaded
        previous = heartbeat.get("checks")
        kept = [
            entry for entry in (previous if isinstance(previous, list) else [])
            if not (isinstance(entry, dict) and entry.get("name") in ran)
        ]

        snapshot = HeartbeatState(last_check=now, interval_minutes=self.interval_minutes, checks=tuple(results))
        heartbeat.update(snapshot.to_dict())
        heartbeat["checks"] = kept + heartbeat["checks"]
        state["heartbeat"] = heartbeat

        self.store.save(state)
        if self.emitter is not None:
            self.emitter.emit("heartbeat", {"timestamp": now, "heartbeat": heartbeat})
        logger.info("Heartbeat updated at %s", now)
        return heartbeat

    def _run_check(self, name: str, fn: Callable[[], str]) -> str:
        try:
            return str(fn())
        except Exception as e:
            logger.warning("Heartbeat check %s failed: %s", name, e)
            return "ERROR"
