"""
Reminder Tools

- set_reminder: one-time reminder at an ISO-8601 instant with offset
- set_cron_reminder: recurring reminder on a cron schedule
- cancel_reminder / list_reminders: manage what is pending

The channel, thread and user come from the request context of the running
cycle, never from model-supplied arguments. Bad input is returned as an
"Error: ..." observation so the model can correct itself or ask the user.
"""

import logging
from datetime import datetime

import request_context
from tools import tool

logger = logging.getLogger(__name__)

NO_CONTEXT_ERROR = "Error: Reminder context is not available. Please try again."


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 timestamp that carries an explicit UTC offset or a `Z` suffix.

    Raises:
        ValueError: if the text is not ISO-8601 or has no offset.
    """
    text = value.strip()
    # fromisoformat only accepts "Z" from Python 3.11
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        raise ValueError("timestamp has no UTC offset")
    return parsed


@tool
async def set_reminder(content: str, remind_at: str, agent=None) -> str:
    """Set a one-time reminder for the current user.

    remind_at MUST be a full ISO-8601 datetime WITH a timezone offset
    (e.g. 2026-02-20T22:00:00-06:00). Use the Current Time from the system
    context as the reference for relative times like "in 5 minutes". The
    channel, thread and user details are provided automatically.

    Args:
        content: What to remind the user about
        remind_at: When to send it, ISO-8601 with offset, e.g. 2026-02-20T22:00:00-06:00
    """
    ctx = request_context.get()
    if ctx is None:
        logger.error("Request context is not set, cannot create reminder")
        return NO_CONTEXT_ERROR

    try:
        when = parse_instant(remind_at)
    except (ValueError, AttributeError):
        logger.warning("Failed to parse reminder time: %r", remind_at)
        return (
            f"Error: Invalid date format '{remind_at}'. "
            "Please use ISO-8601 with timezone offset, e.g. 2026-02-20T22:00:00-06:00."
        )

    logger.info("Setting reminder for user=%s in channel=%s at %s", ctx.user_id, ctx.channel_id, remind_at)
    reminder_id = agent.reminders.create_reminder(
        ctx.user_id, ctx.channel_id, ctx.thread_id, ctx.source, content, when
    )
    return f"✅ Reminder set successfully! I'll notify you at {remind_at}. (ID: {reminder_id})"


@tool
async def set_cron_reminder(content: str, cron_expression: str, agent=None) -> str:
    """Set a recurring reminder using a cron schedule.

    Standard 5-field cron ("0 9 * * MON" = every Monday 9am) or 6-field cron
    with a leading seconds field ("0 0 9 * * MON"). The channel, thread and
    user details are provided automatically.

    Args:
        content: What to remind the user about
        cron_expression: Cron schedule for the reminder
    """
    ctx = request_context.get()
    if ctx is None:
        logger.error("Request context is not set, cannot create cron reminder")
        return NO_CONTEXT_ERROR

    logger.info(
        "Setting cron reminder for user=%s in channel=%s with pattern %s",
        ctx.user_id, ctx.channel_id, cron_expression,
    )
    try:
        reminder_id = agent.reminders.create_cron_reminder(
            ctx.user_id, ctx.channel_id, ctx.thread_id, ctx.source, content, cron_expression
        )
    except ValueError as e:
        return f"Error: {e}"
    return f"✅ Recurring reminder set! Pattern: {cron_expression}. (ID: {reminder_id})"


@tool
async def cancel_reminder(reminder_id: str, agent=None) -> str:
    """Cancel a pending reminder.

    Args:
        reminder_id: The ID returned when the reminder was set
    """
    if agent.reminders.cancel_reminder(reminder_id):
        return f"Reminder {reminder_id} cancelled."
    return f"Error: No pending reminder with ID {reminder_id}."


@tool
async def list_reminders(agent=None) -> dict:
    """List reminders that have not fired yet, and recurring reminders."""
    reminders = agent.reminders.list_reminders()
    return {"count": len(reminders), "reminders": [r.to_dict() for r in reminders]}
