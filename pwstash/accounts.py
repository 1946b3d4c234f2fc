"""Account directory lookups and privilege checks."""

import logging
import os
import pwd
from typing import Optional

from .config import StashConfig
from .errors import NotRoot, UserNotFound

logger = logging.getLogger(__name__)


def valid_username(name):
    """Reject names that could escape the backup directory or break the key."""
    return bool(name) and not any(ch in name for ch in "/:\0\n") and name not in (".", "..")


def user_exists(name):
    """Return True if the system account directory knows ``name``."""
    if not valid_username(name):
        return False
    try:
        pwd.getpwnam(name)
    except KeyError:
        return False
    return True


def ensure_user(name):
    if not user_exists(name):
        raise UserNotFound(f"User '{name}' not found.")


def require_root(config: StashConfig):
    if config.require_root and os.geteuid() != 0:
        raise NotRoot("Run as root (use sudo).")


def current_user() -> str:
    """Name of the effective uid, falling back to the numeric id."""
    uid = os.geteuid()
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def default_target_user(sudo_user: Optional[str], current: Optional[str] = None) -> str:
    """Pick the user an action applies to when none was given.

    Prefers the identity that invoked sudo, unless that is root, then the
    current process identity.
    """
    if sudo_user and sudo_user != "root":
        logger.debug("Defaulting target user to sudo invoker %s", sudo_user)
        return sudo_user
    return current if current is not None else current_user()
