"""Shared test fixtures."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from citrusver.models import Commit, CommitDetails, WorkflowOptions


class FakeGit:
    """In-memory ``SourceControl`` that records every call.

    Commits are plain counters. Operations named in ``fail_on`` raise
    ``CalledProcessError`` the way the real gateway would.
    """

    def __init__(self, root: Path, branch: str = "feature/x") -> None:
        self.root = root
        self.repository = True
        self.branch = branch
        self.commits: list[str] = ["c0"]
        self.messages: list[str] = []
        self.tags: dict[str, str] = {}
        self.tag_messages: dict[str, str] = {}
        self.staged: list[str] = []
        self.uncommitted: list[str] = []
        self.pushed: list[bool] = []
        self.stashes = 0
        self.branches: set[str] = {branch}
        self.fetch_ok = True
        self.counts: tuple[int, int] | None = (0, 0)
        self.changed: list[str] = []
        self.log: list[Commit] = []
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    def _maybe_fail(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail_on:
            raise subprocess.CalledProcessError(1, ["git", op], stderr=f"{op} exploded")

    def is_repository(self) -> bool:
        return self.repository

    def current_branch(self) -> str | None:
        return self.branch

    def current_commit(self) -> str | None:
        return self.commits[-1] if self.commits else None

    def uncommitted_files(self) -> list[str]:
        return list(self.uncommitted)

    def is_clean(self) -> bool:
        return not self.uncommitted

    def fetch(self, remote: str = "origin") -> bool:
        return self.fetch_ok

    def ahead_behind(self, remote: str = "origin") -> tuple[int, int] | None:
        return self.counts

    def recent_tags(self, limit: int = 5) -> list[str]:
        return list(reversed(self.tags))[:limit]

    def tag_exists(self, name: str) -> bool:
        return name in self.tags

    def latest_tag(self) -> str | None:
        return next(reversed(self.tags), None)

    def stage_files(self, paths: list[str]) -> None:
        self._maybe_fail("add")
        self.staged.extend(paths)

    def stage_all(self) -> None:
        self._maybe_fail("add")
        self.staged.append("-A")

    def staged_files(self) -> list[str]:
        return list(self.staged)

    def commit(self, message: str) -> None:
        self._maybe_fail("commit")
        self.commits.append(f"c{len(self.commits)}")
        self.messages.append(message)
        self.staged = []

    def tag(self, name: str, message: str) -> None:
        self._maybe_fail("tag")
        self.tags[name] = self.commits[-1]
        self.tag_messages[name] = message

    def delete_tag(self, name: str) -> bool:
        self.calls.append("tag -d")
        return self.tags.pop(name, None) is not None

    def reset_mixed(self, commit: str) -> None:
        self.calls.append("reset")
        index = self.commits.index(commit)
        del self.commits[index + 1 :]
        del self.messages[index:]

    def push(self, with_tags: bool) -> None:
        self._maybe_fail("push")
        self.pushed.append(with_tags)

    def stash(self) -> bool:
        if not self.uncommitted:
            return False
        self._maybe_fail("stash")
        self.stashes += 1
        return True

    def stash_pop(self) -> bool:
        self.calls.append("stash pop")
        if not self.stashes:
            return False
        self.stashes -= 1
        return True

    def branch_exists(self, name: str) -> bool:
        return name in self.branches

    def create_branch(self, name: str) -> None:
        self.calls.append(f"checkout -b {name}")
        self.branches.add(name)
        self.branch = name

    def changed_files(self, since: str) -> list[str]:
        return list(self.changed)

    def log_since(self, ref: str | None) -> list[Commit]:
        return list(self.log)


class AnswerPrompter:
    """Prompter with canned answers that records what it was asked."""

    def __init__(
        self,
        message: str = "Ship it",
        confirm: bool = True,
        action: str = "continue",
        selection: list[str] | None = None,
    ) -> None:
        self.message = message
        self.confirm = confirm
        self.action = action
        self.selection = selection
        self.asked: list[str] = []
        self.plans: list = []

    def commit_message(self, version: str) -> str:
        self.asked.append("message")
        return self.message

    def commit_details(self, version: str, conventional: bool, detailed: bool) -> CommitDetails:
        self.asked.append("details")
        if conventional:
            return CommitDetails(message=self.message, type="feat", scope="api")
        return CommitDetails(message=self.message)

    def confirm_release(self, plan, details) -> bool:
        self.asked.append("confirm")
        self.plans.append(plan)
        return self.confirm

    def select_files(self, files: list[str]) -> list[str]:
        self.asked.append("select")
        return list(self.selection if self.selection is not None else files)

    def branch_action(self, status, can_create: bool) -> str:
        self.asked.append("branch")
        return self.action


def write_package_json(root: Path, version: str = "1.2.3", **extra: object) -> Path:
    data = {"name": "demo", "version": version, "scripts": {"test": "pytest"}, **extra}
    path = root / "package.json"
    path.write_text(json.dumps(data, indent=2) + "\n")
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project root with a package.json at 1.2.3 and a lock file."""
    write_package_json(tmp_path)
    lock = {
        "name": "demo",
        "version": "1.2.3",
        "lockfileVersion": 3,
        "packages": {"": {"name": "demo", "version": "1.2.3"}},
    }
    (tmp_path / "package-lock.json").write_text(json.dumps(lock, indent=2) + "\n")
    return tmp_path


@pytest.fixture
def fake_git(project: Path) -> FakeGit:
    return FakeGit(project)


@pytest.fixture
def prompter() -> AnswerPrompter:
    return AnswerPrompter()


@pytest.fixture
def options() -> WorkflowOptions:
    return WorkflowOptions()
