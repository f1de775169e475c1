"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running shell commands
and git operations, plus the output helpers the workflows report progress
through.
"""

from __future__ import annotations

import subprocess

import click


def git(*args: str, check: bool = True) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--porcelain").
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., tag lookup).

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(["git", *args], capture_output=True, text=True, check=check)
    return result.stdout.strip()


def run(*args: str, check: bool = True) -> subprocess.CompletedProcess[bytes]:
    """Run an arbitrary command.

    Unlike git(), this doesn't capture output - it streams directly to
    the terminal so users can see publish progress, etc.
    """
    return subprocess.run(args, check=check)


def run_command(command: str, check: bool = True) -> subprocess.CompletedProcess[bytes]:
    """Run a user-configured command line through the shell.

    Used for the ``preVersion`` / ``postVersion`` config entries, which are
    written as shell strings such as ``"npm test && npm run build"``.
    """
    return subprocess.run(command, shell=True, check=check)


def step(msg: str) -> None:
    """Print a visually distinct step header."""
    click.echo(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def info(msg: str) -> None:
    click.echo(f"  {msg}")


def success(msg: str) -> None:
    click.secho(f"✓ {msg}", fg="green")


def warn(msg: str) -> None:
    click.secho(f"⚠ {msg}", fg="yellow", err=True)


def error(msg: str) -> None:
    click.secho(f"✗ {msg}", fg="red", err=True)
