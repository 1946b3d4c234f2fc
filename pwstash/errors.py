"""Error kinds raised by pwstash.

Every error is terminal for the current invocation. The front ends turn
them into an exit code (CLI) or ``fail_json`` (Ansible module).
"""


class StashError(Exception):
    """Base class for all pwstash failures."""

    kind = "StashError"
    exit_code = 1


class UsageError(StashError):
    kind = "UsageError"
    exit_code = 2


class NotRoot(StashError):
    kind = "NotRoot"
    exit_code = 3


class UserNotFound(StashError):
    kind = "UserNotFound"
    exit_code = 4


class RecordNotFound(StashError):
    kind = "RecordNotFound"
    exit_code = 5


class NoBackup(StashError):
    kind = "NoBackup"
    exit_code = 6


class CorruptBackup(StashError):
    kind = "CorruptBackup"
    exit_code = 7


class UserNotInStore(StashError):
    kind = "UserNotInStore"
    exit_code = 8


class DependencyMissing(StashError):
    kind = "DependencyMissing"
    exit_code = 9


class StashIOError(StashError):
    """Filesystem failure while reading or writing stash data."""

    kind = "IOError"
    exit_code = 10


class RotationFailed(StashError):
    """The rotation command was launched but exited non-zero."""

    kind = "RotationFailed"
    exit_code = 11
