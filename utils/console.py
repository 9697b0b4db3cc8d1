"""
Console Output Styling for the Pincer CLI

Colored, user-facing terminal output. Diagnostics go through `logging`;
this module only renders what a person at the console should see.

Verbose Levels:
    - OFF (0): Only user/agent messages
    - LIGHT (1): Tool names, scheduler and heartbeat activity [default]
    - DEEP (2): Tool inputs and results as well

Configuration:
    - Environment: PINCER_VERBOSE=0|1|2 or off|light|deep
    - Config: top-level `verbose` key
"""

import os
import sys
from enum import IntEnum
from typing import Any


class VerboseLevel(IntEnum):
    """Verbose output levels."""
    OFF = 0
    LIGHT = 1
    DEEP = 2


_LEVEL_NAMES = {
    "0": VerboseLevel.OFF,
    "off": VerboseLevel.OFF,
    "false": VerboseLevel.OFF,
    "1": VerboseLevel.LIGHT,
    "light": VerboseLevel.LIGHT,
    "on": VerboseLevel.LIGHT,
    "true": VerboseLevel.LIGHT,
    "2": VerboseLevel.DEEP,
    "deep": VerboseLevel.DEEP,
    "all": VerboseLevel.DEEP,
}


def parse_verbose_level(value: str | int | VerboseLevel) -> VerboseLevel:
    """Parse a verbose level from a string, int or VerboseLevel.

    Unknown strings fall back to OFF; ints are clamped to 0-2.
    """
    if isinstance(value, VerboseLevel):
        return value
    if isinstance(value, bool):
        return VerboseLevel.LIGHT if value else VerboseLevel.OFF
    if isinstance(value, int):
        return VerboseLevel(min(max(value, 0), 2))
    return _LEVEL_NAMES.get(str(value).lower().strip(), VerboseLevel.OFF)


class Colors:
    """ANSI escape codes for terminal colors."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    BRIGHT_BLACK = "\033[90m"


def _supports_color() -> bool:
    """Check if the terminal supports color output."""
    if os.environ.get("NO_COLOR") or os.environ.get("PINCER_NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
        return False
    return os.environ.get("TERM") != "dumb"


class Console:
    """
    Styled console output for the CLI channel.

    Import and use the module-level `console` instance:

        from utils.console import console

        console.user("Hello!")
        console.agent("Hi there!")
    """

    def __init__(self):
        self._verbose_level = parse_verbose_level(os.environ.get("PINCER_VERBOSE", "1"))
        self._use_color = _supports_color()

    def set_verbose(self, level: VerboseLevel | int | str):
        self._verbose_level = parse_verbose_level(level)

    def get_verbose(self) -> VerboseLevel:
        return self._verbose_level

    def _colorize(self, text: str, *codes: str) -> str:
        if not self._use_color:
            return text
        return f"{''.join(codes)}{text}{Colors.RESET}"

    # -------------------------------------------------------------------------
    # Primary output
    # -------------------------------------------------------------------------

    def banner(self, text: str, width: int = 40):
        print(self._colorize(text, Colors.BOLD, Colors.BLUE), file=sys.stderr, flush=True)
        print(self._colorize("=" * width, Colors.DIM, Colors.BLUE), file=sys.stderr, flush=True)

    def user(self, text: str, prompt: str = "You"):
        prefix = self._colorize(f"{prompt}: ", Colors.BOLD, Colors.GREEN)
        print(f"{prefix}{text}", file=sys.stderr, flush=True)

    def user_prompt(self) -> str:
        return self._colorize("> ", Colors.BOLD, Colors.GREEN)

    def agent(self, text: str, prefix: str = "Pincer"):
        styled_prefix = self._colorize(f"{prefix}: ", Colors.BOLD, Colors.CYAN)
        print(f"{styled_prefix}{text}\n", file=sys.stderr, flush=True)

    def system(self, text: str):
        print(self._colorize(text, Colors.BLUE), file=sys.stderr, flush=True)

    def error(self, text: str):
        print(self._colorize(f"Error: {text}", Colors.BOLD, Colors.RED), file=sys.stderr, flush=True)

    # -------------------------------------------------------------------------
    # Verbose output
    # -------------------------------------------------------------------------

    def verbose(self, text: str, level: VerboseLevel = VerboseLevel.LIGHT):
        """Print activity output if the given level is enabled."""
        if self._verbose_level < level:
            return
        if level == VerboseLevel.LIGHT:
            styled = self._colorize(f"  {text}", Colors.YELLOW)
        else:
            styled = self._colorize(f"    {text}", Colors.DIM, Colors.BRIGHT_BLACK)
        print(styled, file=sys.stderr, flush=True)

    def tool_start(self, name: str, inputs: dict[str, Any] = None):
        self.verbose(f"[tool] {name}")
        if inputs:
            self.verbose(f"input: {_summarize(inputs)}", VerboseLevel.DEEP)

    def tool_end(self, name: str, result: Any = None, duration_ms: int = None):
        timing = f" ({duration_ms}ms)" if duration_ms else ""
        self.verbose(f"[tool] {name} done{timing}")
        if result is not None:
            self.verbose(f"result: {_summarize(result)}", VerboseLevel.DEEP)

    def task_start(self, task_id: str):
        self.verbose(f"[scheduler] firing {task_id}")

    def task_end(self, task_id: str, status: str, duration_ms: int = None):
        timing = f" ({duration_ms}ms)" if duration_ms else ""
        self.verbose(f"[scheduler] {task_id} {status}{timing}")

    def heartbeat(self, timestamp: str):
        self.verbose(f"[heartbeat] {timestamp}", VerboseLevel.DEEP)


def _summarize(value: Any, max_len: int = 80) -> str:
    """Single-line preview of a value for verbose output."""
    text = str(value).replace("\n", " ")
    if len(text) > max_len:
        return text[:max_len - 3] + "..."
    return text


console = Console()
