"""Exception types raised by citrusver.

Library code raises these; only the CLI turns them into exit codes.
Everything except ``UserCancelled`` maps to a non-zero exit.
"""

from __future__ import annotations


class CitrusVerError(Exception):
    """Base class for every error citrusver reports to the user."""


class PreconditionError(CitrusVerError):
    """The project is not in a state the workflow can start from.

    Raised for a missing git repository, a missing or unreadable manifest,
    or a version that already exists on the registry. Nothing has been
    mutated when this is raised.
    """


class StrategyError(CitrusVerError):
    """A version strategy could not produce a usable version."""


class InvalidVersionFormat(StrategyError):
    """The current version cannot be parsed under the active strategy."""


class StrategyInvariantViolation(StrategyError):
    """A strategy produced a version that fails its own grammar."""


class PolicyError(CitrusVerError):
    """Branch policy blocks the release and nobody overrode it."""


class MutationError(CitrusVerError):
    """A mutating step (write, commit, tag, push) failed."""


class HookError(CitrusVerError):
    """A hook handler or configured hook command failed."""


class UnknownHookPoint(CitrusVerError, ValueError):
    """A handler was registered for a lifecycle point that does not exist."""


class UserCancelled(CitrusVerError):
    """The operator cancelled the release. Exits with status 0."""
