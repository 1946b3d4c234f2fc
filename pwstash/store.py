"""Credential store accessor: back up, restore and rotate one shadow line.

Records are handled as raw bytes so that every field after the username
key survives a round trip unchanged. Writes to the live credential file go
through a temp file in the same directory followed by ``os.replace``; a
crash before the rename leaves the previous file intact.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional

from .accounts import ensure_user, valid_username
from .config import BACKUP_SUFFIX, SNAPSHOT_PREFIX, STAMP_FORMAT, StashConfig
from .errors import (
    CorruptBackup,
    DependencyMissing,
    NoBackup,
    RecordNotFound,
    RotationFailed,
    StashIOError,
    UserNotFound,
    UserNotInStore,
)

logger = logging.getLogger(__name__)


def record_key(user: str) -> bytes:
    return os.fsencode(user) + b":"


def _strip_eol(line: bytes) -> bytes:
    return line[:-1] if line.endswith(b"\n") else line


def _snapshot_order(path):
    # "<stamp>" sorts before "<stamp>.1", "<stamp>.2", ..., "<stamp>.10"
    stamp, _, n = path.name[len(SNAPSHOT_PREFIX):].partition(".")
    return stamp, int(n) if n.isdigit() else 0


def _discard(path):
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


class RecordRewriter:
    """Streaming line transformer for the credential file.

    Lines whose key matches ``user`` are replaced with ``new_line`` (keeping
    the original line terminator); everything else passes through. After
    iteration ``replaced`` holds the number of substituted lines.
    """

    def __init__(self, user: str, new_line: bytes):
        self.key = record_key(user)
        self.new_line = new_line
        self.replaced = 0

    def __call__(self, lines: Iterable[bytes]) -> Iterator[bytes]:
        for line in lines:
            if line.startswith(self.key):
                self.replaced += 1
                yield self.new_line + (b"\n" if line.endswith(b"\n") else b"")
            else:
                yield line


def atomic_write(path: Path, data: bytes, mode: int):
    """Write ``data`` to ``path`` via a temp file and rename.

    Raises:
        StashIOError: If the temp file cannot be written or renamed. No
            partial file is left at ``path``.
    """
    tmp = None
    try:
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        with os.fdopen(fd, "wb") as fh:
            os.fchmod(fh.fileno(), mode)
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except OSError as e:
        if tmp is not None:
            _discard(tmp)
        raise StashIOError(f"Failed to write {path}: {e}") from e


class ShadowStash:
    """Per-user backups of credential records, plus restore and rotation.

    Args:
        config: Paths and constants. Defaults to the system locations.
    """

    def __init__(self, config: Optional[StashConfig] = None):
        self.config = config or StashConfig()

    # ── Paths ────────────────────────────────────────────────────────

    def backup_path(self, user: str) -> Path:
        if not valid_username(user):
            raise UserNotFound(f"Invalid username '{user}'.")
        return self.config.hash_dir / f"{user}{BACKUP_SUFFIX}"

    def snapshots(self) -> List[Path]:
        """Existing safety snapshots, oldest first."""
        base = self.config.base_dir
        if not base.is_dir():
            return []
        found = [p for p in base.iterdir() if p.name.startswith(SNAPSHOT_PREFIX)]
        return sorted(found, key=_snapshot_order)

    def ensure_dirs(self):
        """Create the backup store and restrict it to the owner."""
        c = self.config
        try:
            c.hash_dir.mkdir(mode=c.dir_mode, parents=True, exist_ok=True)
            os.chmod(c.base_dir, c.dir_mode)
            os.chmod(c.hash_dir, c.dir_mode)
        except OSError as e:
            raise StashIOError(f"Cannot prepare backup directory {c.hash_dir}: {e}") from e

    # ── Reading ──────────────────────────────────────────────────────

    def find_record(self, user: str) -> Optional[bytes]:
        """Return the live record for ``user`` without its newline, or None."""
        key = record_key(user)
        shadow = self.config.shadow_path
        try:
            with open(shadow, "rb") as fh:
                for line in fh:
                    if line.startswith(key):
                        return _strip_eol(line)
        except OSError as e:
            raise StashIOError(f"Cannot read {shadow}: {e}") from e
        return None

    def load_backup(self, user: str) -> bytes:
        """Return the stored record for ``user``.

        Raises:
            NoBackup: No backup file exists.
            CorruptBackup: The file holds more than one line or its key is
                not ``user``.
        """
        path = self.backup_path(user)
        if not path.is_file():
            raise NoBackup(f"No saved hash for '{user}' at: {path} (run backup first).")
        try:
            data = path.read_bytes()
        except OSError as e:
            raise StashIOError(f"Cannot read {path}: {e}") from e

        line = data.rstrip(b"\n")
        if b"\n" in line or not line.startswith(record_key(user)):
            raise CorruptBackup(
                f"Saved line in {path} doesn't look like a shadow line for '{user}'."
            )
        return line

    # ── Backup ───────────────────────────────────────────────────────

    def backup(self, user: str) -> Path:
        """Save the live record for ``user``; returns the backup file path."""
        ensure_user(user)
        line = self.find_record(user)
        if line is None:
            raise RecordNotFound(f"No {self.config.shadow_path} entry found for '{user}'.")

        self.ensure_dirs()
        path = self.backup_path(user)
        atomic_write(path, line + b"\n", self.config.file_mode)
        logger.info("Saved shadow line for %s to %s", user, path)
        return path

    # ── Restore ──────────────────────────────────────────────────────

    def snapshot(self, now: Optional[datetime] = None) -> Path:
        """Copy the whole credential file to a new timestamped snapshot.

        Snapshots are never overwritten: when the stamp is already taken a
        numeric suffix is appended.
        """
        c = self.config
        stamp = (now or datetime.now()).strftime(STAMP_FORMAT)
        base = c.base_dir / f"{SNAPSHOT_PREFIX}{stamp}"
        target = base
        n = 0
        while True:
            try:
                fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, c.file_mode)
                break
            except FileExistsError:
                n += 1
                target = base.with_name(f"{base.name}.{n}")
            except OSError as e:
                raise StashIOError(f"Failed to backup {c.shadow_path}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as dst, open(c.shadow_path, "rb") as src:
                shutil.copyfileobj(src, dst)
                dst.flush()
                os.fsync(dst.fileno())
        except OSError as e:
            _discard(target)
            raise StashIOError(f"Failed to backup {c.shadow_path}: {e}") from e
        logger.debug("Snapshot of %s written to %s", c.shadow_path, target)
        return target

    def restore(self, user: str) -> Path:
        """Write the stored record for ``user`` back into the live file.

        Returns the path of the safety snapshot taken beforehand. Never
        inserts a record: if ``user`` has no line in the live file the
        restore is aborted and the file is left untouched.
        """
        new_line = self.load_backup(user)
        self.ensure_dirs()
        snapshot = self.snapshot()

        shadow = self.config.shadow_path
        rewriter = RecordRewriter(user, new_line)
        tmp = None
        try:
            fd, tmp = tempfile.mkstemp(dir=shadow.parent, prefix=f"{shadow.name}.pwstash.")
            with os.fdopen(fd, "wb") as dst, open(shadow, "rb") as src:
                dst.writelines(rewriter(src))
                dst.flush()
                os.fsync(dst.fileno())
        except OSError as e:
            if tmp is not None:
                _discard(tmp)
            raise StashIOError(f"Failed to build new shadow file: {e}") from e

        if not rewriter.replaced:
            _discard(tmp)
            raise UserNotInStore(
                f"User '{user}' not found in current {shadow} (won't insert automatically)."
            )

        try:
            os.replace(tmp, shadow)
        except OSError as e:
            _discard(tmp)
            raise StashIOError(f"Failed to replace {shadow}: {e}") from e

        self.fix_permissions()
        logger.info("Restored shadow line for %s (snapshot %s)", user, snapshot)
        return snapshot

    def fix_permissions(self):
        """Re-apply canonical ownership and modes to the identity files."""
        c = self.config
        targets = (
            (c.passwd_path, c.passwd_owner, c.passwd_group, c.passwd_mode),
            (c.shadow_path, c.shadow_owner, c.shadow_group, c.shadow_mode),
        )
        for path, owner, group, mode in targets:
            try:
                if owner is not None or group is not None:
                    shutil.chown(path, owner, group)
                os.chmod(path, mode)
            except (OSError, LookupError) as e:
                raise StashIOError(f"Cannot fix ownership of {path}: {e}") from e

    # ── Rotate ───────────────────────────────────────────────────────

    def rotation_argv(self) -> List[str]:
        """Resolve the rotation command line.

        Raises:
            DependencyMissing: The rotation or elevation command is not on
                PATH.
        """
        c = self.config
        command = shutil.which(c.rotate_command)
        if command is None:
            raise DependencyMissing(f"{c.rotate_command} not found in PATH.")
        if not c.elevate_command:
            return [command]
        elevate = shutil.which(c.elevate_command)
        if elevate is None:
            raise DependencyMissing(f"{c.elevate_command} not found in PATH.")
        return [elevate, command]

    def rotate(
        self,
        user: str,
        before_run: Optional[Callable[[Path, List[str]], None]] = None,
        capture_output: bool = False,
    ) -> Path:
        """Back up ``user`` then run the external rotation command.

        ``before_run`` is called with the backup path and the resolved
        command line just before launch. The command's outcome is not
        inspected beyond its exit status, and nothing is restored
        automatically. With ``capture_output`` the command gets no stdin and
        its output is collected instead of inherited. Returns the backup path.
        """
        path = self.backup(user)
        argv = self.rotation_argv()
        if before_run is not None:
            before_run(path, argv)
        logger.info("Running: %s", " ".join(argv))
        try:
            if capture_output:
                proc = subprocess.run(
                    argv,
                    stdin=subprocess.DEVNULL,
                    capture_output=True,
                    text=True,
                    check=False
                )
            else:
                proc = subprocess.run(argv, check=False)
        except OSError as e:
            raise StashIOError(f"Failed to launch {argv[0]}: {e}") from e
        if proc.returncode != 0:
            detail = f": {proc.stderr.strip()}" if capture_output and proc.stderr else ""
            raise RotationFailed(
                f"{self.config.rotate_command} exited with status {proc.returncode}{detail}; "
                f"previous hash for '{user}' is saved at {path}."
            )
        return path
