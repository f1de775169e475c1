"""Source-control gateway.

Every git interaction the workflows need goes through ``SourceControl``.
``GitGateway`` is the only concrete adapter and shells out via ``git()``;
tests substitute an in-memory fake.
"""

from __future__ import annotations

import subprocess
from typing import Protocol

import structlog

from .models import Commit
from .shell import git

logger = structlog.get_logger(__name__)

_FIELD = "\x1f"
_RECORD = "\x1e"


class SourceControl(Protocol):
    def is_repository(self) -> bool: ...

    def current_branch(self) -> str | None: ...

    def current_commit(self) -> str | None: ...

    def uncommitted_files(self) -> list[str]: ...

    def is_clean(self) -> bool: ...

    def fetch(self, remote: str = "origin") -> bool: ...

    def ahead_behind(self, remote: str = "origin") -> tuple[int, int] | None: ...

    def recent_tags(self, limit: int = 5) -> list[str]: ...

    def tag_exists(self, name: str) -> bool: ...

    def latest_tag(self) -> str | None: ...

    def stage_files(self, paths: list[str]) -> None: ...

    def stage_all(self) -> None: ...

    def staged_files(self) -> list[str]: ...

    def commit(self, message: str) -> None: ...

    def tag(self, name: str, message: str) -> None: ...

    def delete_tag(self, name: str) -> bool: ...

    def reset_mixed(self, commit: str) -> None: ...

    def push(self, with_tags: bool) -> None: ...

    def stash(self) -> bool: ...

    def stash_pop(self) -> bool: ...

    def branch_exists(self, name: str) -> bool: ...

    def create_branch(self, name: str) -> None: ...

    def changed_files(self, since: str) -> list[str]: ...

    def log_since(self, ref: str | None) -> list[Commit]: ...


class GitGateway:
    """``SourceControl`` backed by the git command line."""

    def is_repository(self) -> bool:
        return bool(git("rev-parse", "--git-dir", check=False))

    def current_branch(self) -> str | None:
        return git("branch", "--show-current", check=False) or None

    def current_commit(self) -> str | None:
        return git("rev-parse", "--verify", "--quiet", "HEAD", check=False) or None

    def uncommitted_files(self) -> list[str]:
        """Paths with staged, unstaged or untracked changes."""
        output = git("status", "--porcelain", check=False)
        files: list[str] = []
        for line in output.splitlines():
            # git() strips the output, which can eat the first line's leading space
            path = line[2:].strip()
            # Renames are reported as "old -> new"
            if " -> " in path:
                path = path.split(" -> ", 1)[1]
            files.append(path.strip('"'))
        return files

    def is_clean(self) -> bool:
        return not self.uncommitted_files()

    def fetch(self, remote: str = "origin") -> bool:
        try:
            git("fetch", "--quiet", remote)
        except subprocess.CalledProcessError as exc:
            logger.debug("fetch failed", remote=remote, stderr=exc.stderr)
            return False
        return True

    def ahead_behind(self, remote: str = "origin") -> tuple[int, int] | None:
        """Count commits ahead of and behind ``remote``'s copy of this branch.

        Returns:
            (ahead, behind), or None when the branch has no remote counterpart.
        """
        branch = self.current_branch()
        if not branch:
            return None
        remote_ref = f"{remote}/{branch}"
        if not git("rev-parse", "--verify", "--quiet", remote_ref, check=False):
            return None
        counts = git("rev-list", "--left-right", "--count", f"HEAD...{remote_ref}")
        ahead, behind = (int(n) for n in counts.split())
        return ahead, behind

    def recent_tags(self, limit: int = 5) -> list[str]:
        tags = git("tag", "--list", "--sort=-version:refname", check=False)
        return tags.splitlines()[:limit]

    def tag_exists(self, name: str) -> bool:
        return bool(git("tag", "--list", name, check=False))

    def latest_tag(self) -> str | None:
        return git("describe", "--tags", "--abbrev=0", check=False) or None

    def stage_files(self, paths: list[str]) -> None:
        if paths:
            git("add", "--", *paths)

    def stage_all(self) -> None:
        git("add", "-A")

    def staged_files(self) -> list[str]:
        return git("diff", "--cached", "--name-only", check=False).splitlines()

    def commit(self, message: str) -> None:
        git("commit", "-m", message)

    def tag(self, name: str, message: str) -> None:
        git("tag", "-a", name, "-m", message)

    def delete_tag(self, name: str) -> bool:
        try:
            git("tag", "-d", name)
        except subprocess.CalledProcessError:
            return False
        return True

    def reset_mixed(self, commit: str) -> None:
        git("reset", "--mixed", commit)

    def push(self, with_tags: bool) -> None:
        if with_tags:
            git("push", "--follow-tags", "origin", "HEAD")
        else:
            git("push", "origin", "HEAD")

    def stash(self) -> bool:
        """Stash uncommitted work. Returns True if anything was stashed."""
        if self.is_clean():
            return False
        git("stash", "push", "--include-untracked", "-m", "citrusver")
        return True

    def stash_pop(self) -> bool:
        try:
            git("stash", "pop")
        except subprocess.CalledProcessError as exc:
            logger.warning("stash pop failed", stderr=exc.stderr)
            return False
        return True

    def branch_exists(self, name: str) -> bool:
        return bool(git("branch", "--list", name, check=False))

    def create_branch(self, name: str) -> None:
        git("checkout", "-b", name)

    def changed_files(self, since: str) -> list[str]:
        return git("diff", "--name-only", since, "HEAD", check=False).splitlines()

    def log_since(self, ref: str | None) -> list[Commit]:
        """Commits reachable from HEAD but not from ``ref`` (all if None)."""
        fmt = _FIELD.join(["%H", "%s", "%b", "%an", "%ae", "%aI"]) + _RECORD
        args = ["log", f"--format={fmt}"]
        if ref:
            args.append(f"{ref}..HEAD")
        output = git(*args, check=False)
        commits: list[Commit] = []
        for record in output.split(_RECORD):
            record = record.strip("\n")
            if not record:
                continue
            fields = record.split(_FIELD)
            fields += [""] * (6 - len(fields))
            hash_, subject, body, author, email, date = fields[:6]
            commits.append(
                Commit(
                    hash=hash_,
                    subject=subject,
                    body=body.strip(),
                    author=author,
                    email=email,
                    date=date,
                )
            )
        return commits
