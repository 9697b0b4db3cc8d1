"""
Reminder Engine - notify a channel at a future time.

Built on the TaskScheduler: each reminder is a scheduler registration whose
action formats a notification and hands it to every adapter registered for
the reminder's channel kind, in the original channel and thread.

Reminders are best-effort notifications. A failed dispatch is logged and
never retried, and reminders do not survive a restart.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from channels import ChannelAdapter, ChannelType, OutboundMessage
from scheduler import TaskScheduler

logger = logging.getLogger(__name__)

REMINDER_PREFIX = "🔔 Reminder: "


@dataclass(frozen=True)
class Reminder:
    id: str
    user_id: str
    channel_id: str
    thread_id: str | None
    source: ChannelType
    content: str
    remind_at: datetime | None = None
    cron: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "channel_id": self.channel_id,
            "thread_id": self.thread_id,
            "channel": self.source.kind,
            "content": self.content,
            "remind_at": self.remind_at.isoformat() if self.remind_at else None,
            "cron": self.cron,
        }


class ReminderEngine:
    """
    Creates, fires and cancels reminders.

    Args:
        scheduler: The TaskScheduler that owns the timing
        adapter_lookup: Callable returning the adapters for a ChannelType
    """

    def __init__(self, scheduler: TaskScheduler, adapter_lookup: Callable[[ChannelType], list[ChannelAdapter]]):
        self.scheduler = scheduler
        self.adapter_lookup = adapter_lookup
        self._reminders: dict[str, Reminder] = {}

    def create_reminder(
        self,
        user_id: str,
        channel_id: str,
        thread_id: str | None,
        source: ChannelType,
        content: str,
        when: datetime,
    ) -> str:
        reminder_id = f"reminder-{uuid.uuid4().hex[:8]}"
        reminder = Reminder(reminder_id, user_id, channel_id, thread_id, source, content, remind_at=when)
        logger.info("Creating reminder %s for user %s at %s", reminder_id, user_id, when.isoformat())

        async def fire():
            logger.info("Firing reminder %s", reminder_id)
            self._reminders.pop(reminder_id, None)
            await self.dispatch(reminder)

        self._reminders[reminder_id] = reminder
        self.scheduler.schedule_once(reminder_id, fire, when)
        return reminder_id

    def create_cron_reminder(
        self,
        user_id: str,
        channel_id: str,
        thread_id: str | None,
        source: ChannelType,
        content: str,
        cron: str,
    ) -> str:
        """Recurring reminder.

        Raises:
            ValueError: if the cron expression is invalid.
        """
        reminder_id = f"reminder-cron-{uuid.uuid4().hex[:8]}"
        reminder = Reminder(reminder_id, user_id, channel_id, thread_id, source, content, cron=cron)
        logger.info("Creating cron reminder %s for user %s with pattern %s", reminder_id, user_id, cron)

        async def fire():
            logger.info("Firing recurring reminder %s", reminder_id)
            await self.dispatch(reminder)

        self.scheduler.schedule_recurring(reminder_id, fire, cron)
        self._reminders[reminder_id] = reminder
        return reminder_id

    def cancel_reminder(self, reminder_id: str) -> bool:
        self._reminders.pop(reminder_id, None)
        return self.scheduler.cancel(reminder_id)

    def list_reminders(self) -> list[Reminder]:
        """Reminders still waiting to fire (one-shot) or recurring."""
        live = set(self.scheduler.list_ids())
        return [r for r in self._reminders.values() if r.id in live]

    def pending_count(self) -> int:
        return len(self.list_reminders())

    async def dispatch(self, reminder: Reminder):
        """Send the notification to every adapter for the reminder's channel kind."""
        adapters = self.adapter_lookup(reminder.source)
        if not adapters:
            logger.error("No channel adapter found for source type: %s", reminder.source.kind)
            return

        outbound = OutboundMessage.text_reply(
            channel_id=reminder.channel_id,
            thread_id=reminder.thread_id,
            content=REMINDER_PREFIX + reminder.content,
            destination=reminder.source,
        )
        for adapter in adapters:
            try:
                result = await adapter.send_message(outbound)
            except Exception:
                logger.exception(
                    "Failed to send reminder %s via %s", reminder.id, type(adapter).__name__
                )
                continue
            if isinstance(result, dict) and result.get("error"):
                logger.error(
                    "Failed to send reminder %s via %s: %s",
                    reminder.id, type(adapter).__name__, result["error"],
                )
