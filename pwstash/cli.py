"""Command line front end for pwstash.

Legacy commands:
    sudo pwstash backup <user>
    sudo pwstash restore <user>

Switches:
    sudo pwstash --rotate [--user <user>]
    sudo pwstash --restore-after-rotate [--user <user>]
"""

import argparse
import logging
import os
import sys

from .accounts import default_target_user, ensure_user, require_root
from .config import StashConfig
from .errors import StashError, UsageError
from .store import ShadowStash

logger = logging.getLogger(__name__)

EPILOG = """\
Defaults:
  --user defaults to the sudo-invoking user (SUDO_USER) if present, else the
  current user.

No restore ever happens automatically: after --rotate, revert with
--restore-after-rotate.
"""


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message):
        raise UsageError(f"{message} (use --help)")


def build_parser(config: StashConfig) -> argparse.ArgumentParser:
    parser = _Parser(
        prog="pwstash",
        description="Stash/restore password hashes and wrap password rotation.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("-h", "--help", action="store_true", help="Show this help and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug detail to stderr")

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--rotate", "--seedbox-pass",
        dest="action", action="store_const", const="rotate",
        help=f"Back up the user's shadow line, then run: {config.rotate_command}",
    )
    actions.add_argument(
        "--restore-after-rotate", "--restore-seedbox-pass",
        dest="action", action="store_const", const="restore",
        help="Restore the user's old password hash from the saved backup",
    )
    parser.add_argument("--user", help="Target user (see defaults below)")

    commands = parser.add_subparsers(dest="command", metavar="{backup,restore}", parser_class=_Parser)
    backup = commands.add_parser("backup", help="Save <user>'s shadow line", add_help=False)
    backup.add_argument("target")
    restore = commands.add_parser("restore", help="Write <user>'s saved shadow line back", add_help=False)
    restore.add_argument("target")
    return parser


def _configure_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stderr,
    )


def _print_backup(user, path):
    print(f"Saved hash line for '{user}' to: {path}")


def _print_restore(stash, user, snapshot):
    print(f"Restored password hash for '{user}'.")
    print(f"Backup of prior {stash.config.shadow_path}: {snapshot}")


def run(argv, config: StashConfig, environ) -> int:
    parser = build_parser(config)
    args = parser.parse_args(argv)

    if args.help:
        parser.print_help()
        return 0

    _configure_logging(args.verbose)

    if args.command and (args.action or args.user):
        raise UsageError(f"'{args.command}' takes no switches: pwstash {args.command} <user>")
    if not args.command and not args.action:
        parser.print_usage(sys.stderr)
        raise UsageError("No action given (use --help).")

    require_root(config)
    stash = ShadowStash(config)

    if args.command == "backup":
        _print_backup(args.target, stash.backup(args.target))
        return 0
    if args.command == "restore":
        _print_restore(stash, args.target, stash.restore(args.target))
        return 0

    user = args.user or default_target_user(environ.get("SUDO_USER"))
    ensure_user(user)
    logger.debug("Action %s for user %s", args.action, user)

    if args.action == "restore":
        _print_restore(stash, user, stash.restore(user))
        return 0

    def announce(path, argv):
        _print_backup(user, path)
        print(f"Running: {' '.join(argv)}")
        sys.stdout.flush()

    stash.rotate(user, before_run=announce)
    print("Done.")
    print("If you need to revert later, run:")
    print(f"  sudo pwstash --restore-after-rotate --user {user}")
    return 0


def main(argv=None, config=None, environ=None) -> int:
    """Entry point; returns the process exit code."""
    if argv is None:
        argv = sys.argv[1:]
    if environ is None:
        environ = os.environ
    if config is None:
        config = StashConfig.from_env(environ)
    try:
        return run(argv, config, environ)
    except StashError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return e.exit_code
