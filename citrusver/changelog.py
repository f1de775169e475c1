"""Changelog generation from conventional commits.

Commits between the previous release tag and HEAD are grouped by their
conventional-commit type and rendered as one Markdown section, which is
inserted below the title of CHANGELOG.md (newest release first).
"""

from __future__ import annotations

import re
from datetime import date
from pathlib import Path

from pydantic import BaseModel

from .models import Commit

CHANGELOG_FILE = "CHANGELOG.md"

DEFAULT_HEADER = (
    "# Changelog\n\nAll notable changes to this project will be documented in this file.\n\n"
)

# Rendering order; breaking changes always come first
SECTIONS: dict[str, str] = {
    "breaking": "⚠️ BREAKING CHANGES",
    "feat": "✨ Features",
    "fix": "🐛 Bug Fixes",
    "docs": "📚 Documentation",
    "style": "💅 Styling",
    "refactor": "♻️ Code Refactoring",
    "perf": "⚡ Performance",
    "test": "🧪 Tests",
    "build": "🔨 Build System",
    "ci": "👷 CI/CD",
    "chore": "🔧 Chores",
    "revert": "⏪ Reverts",
    "other": "Other Changes",
}

_CONVENTIONAL = re.compile(r"^(?P<type>\w+)(?:\((?P<scope>[^)]+)\))?(?P<bang>!)?:\s*(?P<message>.+)")


class ChangelogItem(BaseModel):
    """A commit with its conventional-commit fields pulled apart."""

    hash: str
    subject: str
    type: str | None = None
    scope: str | None = None
    message: str
    breaking: bool = False

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


def parse_commit(commit: Commit) -> ChangelogItem:
    match = _CONVENTIONAL.match(commit.subject)
    breaking = "BREAKING CHANGE" in commit.body
    if not match:
        return ChangelogItem(
            hash=commit.hash, subject=commit.subject, message=commit.subject, breaking=breaking
        )
    return ChangelogItem(
        hash=commit.hash,
        subject=commit.subject,
        type=match["type"],
        scope=match["scope"],
        message=match["message"],
        breaking=breaking or bool(match["bang"]),
    )


def group_commits(commits: list[Commit]) -> dict[str, list[ChangelogItem]]:
    """Group commits into ``SECTIONS``.

    A breaking change goes to ``breaking`` whatever its type; commits that
    are not conventional, or whose type is unknown, go to ``other``.
    """
    grouped: dict[str, list[ChangelogItem]] = {key: [] for key in SECTIONS}
    for commit in commits:
        item = parse_commit(commit)
        if item.breaking:
            grouped["breaking"].append(item)
        elif item.type in grouped and item.type not in ("breaking", "other"):
            grouped[item.type].append(item)
        else:
            grouped["other"].append(item)
    return grouped


def format_item(item: ChangelogItem) -> str:
    scope = f"**{item.scope}:** " if item.scope else ""
    return f"{scope}{item.message} ({item.short_hash})"


def format_entry(
    version: str,
    grouped: dict[str, list[ChangelogItem]],
    today: date | None = None,
    conventional_only: bool = False,
) -> str:
    """Render one release section of the changelog."""
    today = today or date.today()
    lines = [f"## [{version}] - {today.isoformat()}", ""]
    for key, title in SECTIONS.items():
        items = grouped.get(key, [])
        if not items or (key == "other" and conventional_only):
            continue
        lines.append(f"### {title}")
        lines.append("")
        for item in items:
            if key == "other":
                lines.append(f"- {item.subject} ({item.short_hash})")
            else:
                lines.append(f"- {format_item(item)}")
        lines.append("")
    return "\n".join(lines) + "\n"


def insert_entry(existing: str, entry: str) -> str:
    """Insert ``entry`` after the top-level title block of ``existing``.

    The title block is the first ``# `` heading plus the paragraph and
    blank lines that follow it, up to the first ``## `` heading.
    """
    if not existing.strip():
        existing = DEFAULT_HEADER

    lines = existing.splitlines(keepends=True)
    insert_at = len(lines)
    seen_title = False
    for i, line in enumerate(lines):
        if line.startswith("# "):
            seen_title = True
            continue
        if line.startswith("## "):
            insert_at = i
            break
        if not seen_title and line.strip():
            # No title: new entries go on top
            insert_at = i
            break

    head = "".join(lines[:insert_at])
    if head and not head.endswith("\n\n"):
        head = head.rstrip("\n") + "\n\n"
    return head + entry.rstrip("\n") + "\n\n" + "".join(lines[insert_at:])


def update_changelog(path: Path, entry: str) -> None:
    existing = path.read_text() if path.exists() else DEFAULT_HEADER
    path.write_text(insert_entry(existing, entry).rstrip("\n") + "\n")


def generate(
    version: str,
    commits: list[Commit],
    today: date | None = None,
    conventional_only: bool = False,
) -> str:
    """Build the changelog entry for ``version`` from ``commits``."""
    return format_entry(version, group_commits(commits), today, conventional_only)
