"""Branch protection checks.

The checker only reads repository state. It reports warnings and errors;
deciding what to do about them is the orchestrator's job.
"""

from __future__ import annotations

import subprocess
from datetime import date

import structlog

from .config import BranchConfig
from .gitops import SourceControl
from .models import BranchStatus, BumpKind, PolicyIssue, RepositoryState, UpToDate

logger = structlog.get_logger(__name__)


class BranchPolicy:
    """Evaluate the current branch against the configured protection rules."""

    def __init__(self, config: BranchConfig, gateway: SourceControl, remote: str = "origin") -> None:
        self.config = config
        self.gateway = gateway
        self.remote = remote

    def is_protected(self, branch: str | None) -> bool:
        return branch in self.config.protected

    def is_release_branch(self, branch: str | None) -> bool:
        return branch in self.config.release_branches

    def up_to_date(self) -> UpToDate:
        """Compare the local branch with its remote tracking branch.

        Only ``behind`` and ``diverged`` count as out of date. A branch that
        is ahead, or has no remote counterpart, is fine. When the remote
        cannot be reached the status is ``unknown`` and treated as up to
        date, so a flaky network never blocks a local release.
        """
        if not self.gateway.fetch(self.remote):
            logger.info("remote unreachable, skipping up-to-date check", remote=self.remote)
            return UpToDate(is_up_to_date=True, status="unknown")

        try:
            counts = self.gateway.ahead_behind(self.remote)
        except (subprocess.CalledProcessError, ValueError) as exc:
            logger.info("ahead/behind failed", error=str(exc))
            return UpToDate(is_up_to_date=True, status="unknown")

        if counts is None:
            return UpToDate(is_up_to_date=True, status="no-remote")

        ahead, behind = counts
        if ahead and behind:
            return UpToDate(is_up_to_date=False, status="diverged", ahead=ahead, behind=behind)
        if behind:
            return UpToDate(is_up_to_date=False, status="behind", behind=behind)
        if ahead:
            return UpToDate(is_up_to_date=True, status="ahead", ahead=ahead)
        return UpToDate(is_up_to_date=True, status="up-to-date")

    def repository_state(self) -> RepositoryState:
        uncommitted = self.gateway.uncommitted_files()
        remote = (
            self.up_to_date()
            if self.config.require_up_to_date
            else UpToDate(is_up_to_date=True, status="skipped")
        )
        return RepositoryState(
            branch=self.gateway.current_branch(),
            clean=not uncommitted,
            uncommitted=uncommitted,
            remote=remote,
            tags=self.gateway.recent_tags(),
        )

    def check_status(self, force: bool = False, kind: BumpKind | None = None) -> BranchStatus:
        """Check the repository against the protection rules.

        Warnings never block. The only error is a branch that is behind
        (or has diverged from) its remote, which sets ``valid`` to False.
        """
        state = self.repository_state()
        branch = state.branch
        status = BranchStatus(branch=branch, remote_status=state.remote.status)

        if self.is_protected(branch) and not force and not self.config.allow_force:
            status.warnings.append(
                PolicyIssue(
                    kind="protected-branch",
                    message=f"You're on protected branch '{branch}'. "
                    "Consider creating a release branch.",
                    suggestion=f"git checkout -b {suggest_branch_name(kind or BumpKind.PATCH)}",
                )
            )

        if not state.remote.is_up_to_date:
            status.valid = False
            status.errors.append(
                PolicyIssue(
                    kind="outdated-branch",
                    message=f"Branch '{branch}' is {state.remote.status} with remote.",
                    suggestion="Pull the latest changes (git pull) or use --force.",
                )
            )

        if not state.clean:
            status.warnings.append(
                PolicyIssue(
                    kind="uncommitted-changes",
                    message="You have uncommitted changes that will be included "
                    "in the version commit.",
                )
            )

        if not self.is_release_branch(branch):
            status.warnings.append(
                PolicyIssue(
                    kind="non-release-branch",
                    message=f"Branch '{branch}' is not configured as a release branch.",
                    suggestion="Switch to a release branch or update the configuration.",
                )
            )

        logger.debug(
            "branch status",
            branch=branch,
            valid=status.valid,
            warnings=len(status.warnings),
            errors=len(status.errors),
        )
        return status

    def create_release_branch(self, version: str) -> str | None:
        """Create and check out ``release/v<version>``.

        Returns:
            The branch name, or None if it already exists.
        """
        name = f"release/v{version}"
        if self.gateway.branch_exists(name):
            return None
        self.gateway.create_branch(name)
        return name


def suggest_branch_name(kind: BumpKind, today: date | None = None) -> str:
    """Suggest a branch name for a release of the given kind."""
    stamp = f"{today or date.today():%Y%m%d}"
    prefixes = {
        BumpKind.PATCH: "hotfix",
        BumpKind.MINOR: "feature",
        BumpKind.MAJOR: "release",
    }
    return f"{prefixes.get(kind, 'release')}/{stamp}"
