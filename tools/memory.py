"""
Long-term memory tools.

Thin wrappers over the NoteStore so the model can curate its own memory:
facts, user preferences, its personality, environment notes and the daily
scratch log. Write failures come back as error payloads.
"""

import logging

from memory import NoteStoreError
from tools import tool, tool_error

logger = logging.getLogger(__name__)


@tool
def remember(fact: str, agent=None):
    """Save an important fact or user preference into long-term memory for future recall.

    Args:
        fact: The fact to remember, as one short sentence
    """
    logger.info("Agent requested to remember: %s", fact)
    try:
        agent.notes.remember(fact)
    except NoteStoreError as e:
        return tool_error(str(e))
    return "I have saved that to my long-term memory. I will recall it in future conversations."


@tool
def update_user_preference(key: str, value: str, agent=None):
    """Update a user preference in the profile (e.g. tone, notification settings).

    Args:
        key: Preference name, e.g. "tone"
        value: New value for the preference
    """
    try:
        agent.notes.update_preference(key, value)
    except NoteStoreError as e:
        return tool_error(str(e))
    return "I have updated your preferences in my profile."


@tool
def update_personality(content: str, agent=None):
    """Replace the agent's core personality definition. Changes how the agent behaves and responds.

    Args:
        content: The complete new personality text
    """
    try:
        agent.notes.update_personality(content)
    except NoteStoreError as e:
        return tool_error(str(e))
    return "My personality has been updated. You may notice a change in my behavior going forward."


@tool
def update_environment_fact(fact: str, agent=None):
    """Record a fact about the working environment (e.g. repository names, server URLs).

    Args:
        fact: The environment fact to record
    """
    try:
        agent.notes.update_environment_fact(fact)
    except NoteStoreError as e:
        return tool_error(str(e))
    return "I have recorded this environment fact."


@tool
def log_event(event: str, agent=None):
    """Log a raw event or scratch note to today's daily log.

    Args:
        event: Text to log
    """
    try:
        agent.notes.log_event(event)
    except NoteStoreError as e:
        return tool_error(str(e))
    return "Event has been logged to my daily scratchpad."
