"""
Note Store - human-editable long-term memory on disk.

Layout under the root directory (default `.memory/`):

    MEMORY.md               curated facts, one per line ("#" lines are headings)
    daily/YYYY-MM-DD.md     raw event log for the day
    profiles/USER.md        "User Name: <name>" plus "- key: value" preferences
    profiles/SOUL.md        personality, rewritten wholesale
    profiles/TOOLS.md       environment notes, appended to

Reads never create files; call ensure_defaults() once at startup to seed them.
Writes are serialized on a store-wide lock so concurrent workers never
interleave partial lines. Any filesystem failure surfaces as NoteStoreError.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path

from .models import AgentProfile

logger = logging.getLogger(__name__)

USER_NAME_PREFIX = "User Name:"

DEFAULT_MEMORY = "# Pincer Memory\n\n"
DEFAULT_USER = "User Name: User\n\nPreferences:\n- tone: Professional yet friendly\n"
DEFAULT_SOUL = "Agent Soul: You are Pincer, a helpful autonomous assistant.\n"
DEFAULT_TOOLS = "Environment: Development\n"


class NoteStoreError(Exception):
    """A note file could not be read or written."""


class NoteStore:

    def __init__(self, root: str | Path = ".memory"):
        self.root = Path(root)
        self.memory_file = self.root / "MEMORY.md"
        self.daily_dir = self.root / "daily"
        self.profile_dir = self.root / "profiles"
        self.user_file = self.profile_dir / "USER.md"
        self.soul_file = self.profile_dir / "SOUL.md"
        self.tools_file = self.profile_dir / "TOOLS.md"
        self._write_lock = threading.Lock()

    def ensure_defaults(self):
        """Create the directory layout and any missing starter files."""
        starters = {
            self.memory_file: DEFAULT_MEMORY,
            self.user_file: DEFAULT_USER,
            self.soul_file: DEFAULT_SOUL,
            self.tools_file: DEFAULT_TOOLS,
        }
        with self._write_lock:
            try:
                self.daily_dir.mkdir(parents=True, exist_ok=True)
                self.profile_dir.mkdir(parents=True, exist_ok=True)
                for path, content in starters.items():
                    if not path.exists():
                        path.write_text(content, encoding="utf-8")
            except OSError as e:
                raise NoteStoreError(f"Failed to initialize note store at {self.root}: {e}") from e

    # -------------------------------------------------------------------------
    # Curated memory
    # -------------------------------------------------------------------------

    def relevant_memories(self) -> list[str]:
        """Curated fact lines, headings and blanks skipped. No file means no facts."""
        if not self.memory_file.exists():
            return []
        lines = self._read(self.memory_file).splitlines()
        return [line for line in lines if line.strip() and not line.startswith("#")]

    def remember(self, fact: str):
        self._append(self.memory_file, f"- {fact}\n")
        logger.info("Remembered new fact: %s", fact)

    def log_event(self, event: str, now: datetime = None):
        """Append a timestamped line to today's daily log."""
        now = now or datetime.now()
        day_file = self.daily_dir / f"{now.date().isoformat()}.md"
        entry = f"[{now.strftime('%H:%M:%S')}] {event}\n"
        with self._write_lock:
            try:
                self.daily_dir.mkdir(parents=True, exist_ok=True)
                if not day_file.exists():
                    day_file.write_text(f"# Daily Log: {now.date().isoformat()}\n\n", encoding="utf-8")
                with open(day_file, "a", encoding="utf-8") as f:
                    f.write(entry)
            except OSError as e:
                raise NoteStoreError(f"Failed to write daily log {day_file}: {e}") from e

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    def get_profile(self) -> AgentProfile:
        """Build the profile from USER.md, SOUL.md and TOOLS.md.

        Raises:
            NoteStoreError: if any profile document is missing or unreadable.
        """
        user_text = self._read(self.user_file)
        soul = self._read(self.soul_file).strip()
        environment = self._read(self.tools_file).strip()

        user_name = "User"
        preferences = {}
        for line in user_text.splitlines():
            if line.startswith(USER_NAME_PREFIX):
                user_name = line[len(USER_NAME_PREFIX):].strip() or user_name
            elif line.startswith("-"):
                key, sep, value = line[1:].partition(":")
                if sep:
                    preferences[key.strip().lower()] = value.strip()

        personality = f"{soul}\n\nEnvironment Context:\n{environment}"
        system_prompt = (
            f"You are Pincer. You use your tools and memory to assist {user_name}.\n"
            f"{personality}"
        )
        return AgentProfile(
            user_name=user_name,
            personality=personality,
            system_prompt=system_prompt,
            preferences=preferences,
        )

    def environment_notes(self) -> str | None:
        if not self.tools_file.exists():
            return None
        return self._read(self.tools_file).strip() or None

    def update_preference(self, key: str, value: str):
        self._append(self.user_file, f"- {key}: {value}\n")
        logger.info("Updated user preference: %s = %s", key, value)

    def update_personality(self, content: str):
        with self._write_lock:
            try:
                self.profile_dir.mkdir(parents=True, exist_ok=True)
                self.soul_file.write_text(content, encoding="utf-8")
            except OSError as e:
                raise NoteStoreError(f"Failed to update {self.soul_file}: {e}") from e
        logger.info("Updated agent personality")

    def update_environment_fact(self, fact: str):
        self._append(self.tools_file, f"- {fact}\n")
        logger.info("Updated environment fact: %s", fact)

    # -------------------------------------------------------------------------
    # File helpers
    # -------------------------------------------------------------------------

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise NoteStoreError(f"Failed to read {path}: {e}") from e

    def _append(self, path: Path, text: str):
        with self._write_lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                with open(path, "a", encoding="utf-8") as f:
                    f.write(text)
            except OSError as e:
                raise NoteStoreError(f"Failed to write {path}: {e}") from e
