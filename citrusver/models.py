"""Data models for citrusver.

These Pydantic models represent the values passed between the version
strategies, the git gateway, the rollback manager and the orchestrator.
Models describing one invocation's intent are frozen; everything else is
plain transient state.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BumpKind(str, Enum):
    """Which version component to increment."""

    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"
    PRERELEASE = "prerelease"


class Workflow(str, Enum):
    """End-to-end workflow variants, each a superset of the previous one."""

    VERSION = "version"
    COMMIT = "commit"
    TAG = "tag"
    PUSH = "push"
    FULL = "full"

    @property
    def touches_git(self) -> bool:
        return self is not Workflow.VERSION


class StrategyName(str, Enum):
    SEMVER = "semver"
    DATE = "date"
    PRERELEASE = "prerelease"
    CUSTOM = "custom"


class VersionStrategyConfig(BaseModel):
    """Active strategy plus its parameters, fixed for one invocation."""

    model_config = ConfigDict(frozen=True)

    strategy: StrategyName = StrategyName.SEMVER
    prerelease_id: str = "alpha"
    pattern: str | None = None


class WorkflowOptions(BaseModel):
    """Parsed intent for one invocation, built once by the CLI.

    Attributes:
        workflow: Which workflow variant to run.
        dry_run: Compute and print the plan, mutate nothing.
        quiet: Only print warnings and errors.
        force: Override branch policy blocks.
        stash: Stash uncommitted changes for the duration of the release.
        select_files: Let the operator pick which changed files to stage.
        preid: Prerelease identifier, overriding the configured one.
        label: Prerelease label applied on top of the computed version.
        template: Name of a built-in commit message template.
        message: Pre-supplied commit message (skips the prompt).
        yes: Non-interactive; every prompt is answered from these options.
        no_confirm: Skip the final release confirmation.
    """

    model_config = ConfigDict(frozen=True)

    workflow: Workflow = Workflow.FULL
    dry_run: bool = False
    quiet: bool = False
    force: bool = False
    stash: bool = False
    select_files: bool = False
    preid: str | None = None
    label: str | None = None
    template: str | None = None
    message: str | None = None
    yes: bool = False
    no_confirm: bool = False


class UpToDate(BaseModel):
    """Result of comparing the local branch with its remote tracking branch."""

    is_up_to_date: bool
    status: str
    ahead: int = 0
    behind: int = 0


class RepositoryState(BaseModel):
    """Snapshot of the repository, recomputed on demand and never cached."""

    branch: str | None
    clean: bool
    uncommitted: list[str] = Field(default_factory=list)
    remote: UpToDate
    tags: list[str] = Field(default_factory=list)


class PolicyIssue(BaseModel):
    kind: str
    message: str
    suggestion: str | None = None


class BranchStatus(BaseModel):
    """Outcome of a branch policy check. Only ``errors`` make it invalid."""

    valid: bool = True
    branch: str | None = None
    remote_status: str = "unknown"
    warnings: list[PolicyIssue] = Field(default_factory=list)
    errors: list[PolicyIssue] = Field(default_factory=list)


class BackupRecord(BaseModel):
    original: str
    backup: str


class RollbackSnapshot(BaseModel):
    """Everything needed to put the project back the way it was found.

    Attributes:
        operation: Short label of the workflow that took the snapshot.
        timestamp: When the snapshot was taken.
        branch: Branch checked out at snapshot time.
        commit: HEAD at snapshot time, or None in an empty repository.
        tags: Most recent tags at snapshot time.
        backups: Copies of every file the run is about to modify.
        created_tag: Tag created by this run, if any.
        stashed: Whether this run stashed uncommitted changes.
    """

    operation: str
    timestamp: datetime = Field(default_factory=datetime.now)
    branch: str | None = None
    commit: str | None = None
    tags: list[str] = Field(default_factory=list)
    backups: list[BackupRecord] = Field(default_factory=list)
    created_tag: str | None = None
    stashed: bool = False


class CommitDetails(BaseModel):
    """What the operator told us about the commit."""

    message: str = ""
    type: str | None = None
    scope: str | None = None
    breaking: bool = False
    description: str | None = None


class CommitPlan(BaseModel):
    """Everything a run will do, decided before the first mutation."""

    model_config = ConfigDict(frozen=True)

    workflow: Workflow
    kind: BumpKind
    old_version: str
    new_version: str
    message: str | None = None
    files: list[str] = Field(default_factory=list)
    tag: str | None = None
    push: bool = False
    packages: list[str] = Field(default_factory=list)


class Commit(BaseModel):
    """A commit as read from ``git log``."""

    hash: str
    subject: str
    body: str = ""
    author: str = ""
    email: str = ""
    date: str = ""


class PackageInfo(BaseModel):
    """Metadata for a single package in a monorepo workspace.

    Attributes:
        name: Package name from its manifest.
        path: Relative path from workspace root to the package directory.
        manifest: Relative path to the package's manifest file.
        version: Current version string.
        private: Private packages are skipped unless explicitly included.
        deps: Internal (workspace) dependency names.
    """

    name: str
    path: str
    manifest: str
    version: str
    private: bool = False
    deps: list[str] = Field(default_factory=list)


class VersionBump(BaseModel):
    """Records a version change for a package.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: str
    new: str
