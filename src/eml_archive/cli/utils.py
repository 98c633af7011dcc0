"""Shared CLI utilities and helpers."""

import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path

import click
from click import echo
from rich.console import Console
from rich.logging import RichHandler

from ..config import find_archive_root, get_lock_path


def err(*args, **kwargs):
    """Print to stderr."""
    print(*args, file=sys.stderr, **kwargs)


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through rich, on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def format_ts(ts: int | None) -> str:
    """Format epoch seconds as a UTC date/time."""
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def parse_watermark(value: str) -> int:
    """Parse epoch seconds or an ISO date/time (UTC if no offset)."""
    value = value.strip()
    try:
        return int(value)
    except ValueError:
        pass
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Expected epoch seconds or ISO date, got {value!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


# =============================================================================
# Run lock (one archive run at a time per archive root)
# =============================================================================


def read_lock(root: Path) -> int | None:
    """PID holding the run lock, or None if unlocked or stale."""
    path = get_lock_path(root)
    if not path.exists():
        return None
    try:
        pid = int(path.read_text().strip())
    except ValueError:
        return None
    try:
        os.kill(pid, 0)  # Signal 0 just checks if process exists
    except OSError:
        return None
    return pid


@contextmanager
def run_lock(root: Path):
    """Hold the run lock for the duration of the block."""
    pid = read_lock(root)
    if pid is not None and pid != os.getpid():
        raise click.ClickException(
            f"Another run is already in progress [PID {pid}]. "
            f"Wait for it to finish or kill it with: kill {pid}"
        )
    path = get_lock_path(root)
    path.write_text(f"{os.getpid()}\n")
    try:
        yield
    finally:
        path.unlink(missing_ok=True)


# =============================================================================
# Decorators and Click helpers
# =============================================================================


def require_init(f):
    """Decorator that requires an archive root to exist."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not find_archive_root():
            err("Not in an archive. Run 'eml-archive init' first.")
            sys.exit(1)
        return f(*args, **kwargs)
    return wrapper


class AliasGroup(click.Group):
    """Click Group that supports command aliases."""

    def __init__(self, *args, aliases: dict[str, str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = aliases or {}
        # Build reverse mapping: command -> list of aliases
        self._cmd_aliases: dict[str, list[str]] = {}
        for alias, cmd in self.aliases.items():
            self._cmd_aliases.setdefault(cmd, []).append(alias)

    def get_command(self, ctx, cmd_name):
        cmd_name = self.aliases.get(cmd_name, cmd_name)
        return super().get_command(ctx, cmd_name)

    def resolve_command(self, ctx, args):
        _, cmd_name, args = super().resolve_command(ctx, args)
        cmd_name = self.aliases.get(cmd_name, cmd_name)
        return _, cmd_name, args

    def format_commands(self, ctx, formatter):
        """Write all commands with their aliases to the formatter."""
        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            aliases = self._cmd_aliases.get(subcommand, [])
            if aliases:
                name = f"{subcommand} ({', '.join(sorted(aliases))})"
            else:
                name = subcommand
            help_text = cmd.get_short_help_str(limit=formatter.width)
            commands.append((name, help_text))

        if commands:
            with formatter.section("Commands"):
                formatter.write_dl(commands)


def echo_kv(key: str, value) -> None:
    echo(f"{key + ':':<12} {value}")
