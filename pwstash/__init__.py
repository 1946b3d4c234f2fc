"""Stash and restore a single /etc/shadow line per user."""

from .config import StashConfig
from .errors import StashError
from .store import ShadowStash

__version__ = "1.0.0"

__all__ = ["ShadowStash", "StashConfig", "StashError", "__version__"]
