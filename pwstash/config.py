"""Paths and constants used by the stash accessor."""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_BASE_DIR = Path("/root/pwstash")
DEFAULT_SHADOW = Path("/etc/shadow")
DEFAULT_PASSWD = Path("/etc/passwd")
DEFAULT_ROTATE_COMMAND = "changeseedboxpass"

BACKUP_SUFFIX = ".shadowline"
SNAPSHOT_PREFIX = "shadow.before_restore."
STAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass(frozen=True)
class StashConfig:
    """Where backups live and what the live credential files look like.

    Args:
        base_dir: Root of the private backup store; snapshots land here.
        hash_dir: Per-user backup directory (default: base_dir/user_hashes).
        shadow_path: Live credential file.
        passwd_path: Companion identity file whose ownership is re-applied
            after a restore.
        rotate_command: External password-rotation command, run with no
            arguments.
        elevate_command: Prefix used to run rotate_command with privilege.
            None runs rotate_command directly.
        require_root: Refuse to run unless the effective uid is 0.
    """

    base_dir: Path = DEFAULT_BASE_DIR
    hash_dir: Optional[Path] = None
    shadow_path: Path = DEFAULT_SHADOW
    passwd_path: Path = DEFAULT_PASSWD
    shadow_owner: Optional[str] = "root"
    shadow_group: Optional[str] = "shadow"
    shadow_mode: int = 0o640
    passwd_owner: Optional[str] = "root"
    passwd_group: Optional[str] = "root"
    passwd_mode: int = 0o644
    rotate_command: str = DEFAULT_ROTATE_COMMAND
    elevate_command: Optional[str] = "sudo"
    require_root: bool = True
    dir_mode: int = field(default=0o700, repr=False)
    file_mode: int = field(default=0o600, repr=False)

    def __post_init__(self):
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "base_dir", Path(self.base_dir))
        object.__setattr__(self, "shadow_path", Path(self.shadow_path))
        object.__setattr__(self, "passwd_path", Path(self.passwd_path))
        if self.hash_dir is None:
            object.__setattr__(self, "hash_dir", self.base_dir / "user_hashes")
        else:
            object.__setattr__(self, "hash_dir", Path(self.hash_dir))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "StashConfig":
        """Build a config from ``PWSTASH_*`` variables, then ``overrides``.

        ``PWSTASH_ELEVATE_COMMAND`` set to an empty string disables
        elevation.
        """
        if environ is None:
            environ = os.environ
        values = {}
        if environ.get("PWSTASH_BASE_DIR"):
            values["base_dir"] = Path(environ["PWSTASH_BASE_DIR"])
        if environ.get("PWSTASH_SHADOW"):
            values["shadow_path"] = Path(environ["PWSTASH_SHADOW"])
        if environ.get("PWSTASH_PASSWD"):
            values["passwd_path"] = Path(environ["PWSTASH_PASSWD"])
        if environ.get("PWSTASH_ROTATE_COMMAND"):
            values["rotate_command"] = environ["PWSTASH_ROTATE_COMMAND"]
        if "PWSTASH_ELEVATE_COMMAND" in environ:
            values["elevate_command"] = environ["PWSTASH_ELEVATE_COMMAND"] or None
        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **changes) -> "StashConfig":
        if "base_dir" in changes and "hash_dir" not in changes:
            changes["hash_dir"] = None
        return replace(self, **changes)
