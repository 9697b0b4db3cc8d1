"""
Utility modules for Pincer.
"""

from .cache import DedupCache
from .console import console, VerboseLevel
from .events import EventEmitter

__all__ = ["DedupCache", "EventEmitter", "console", "VerboseLevel"]
