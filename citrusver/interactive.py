"""Operator prompts and commit message formatting.

The orchestrator talks to a ``Prompter``. ``ClickPrompter`` asks on the
terminal; ``ScriptedPrompter`` answers from the command-line options for
non-interactive runs and refuses anything that needs a human decision.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol

import click

from .errors import PolicyError, PreconditionError, UserCancelled
from .models import BranchStatus, CommitDetails, CommitPlan, WorkflowOptions

COMMIT_TYPES: dict[str, str] = {
    "feat": "A new feature",
    "fix": "A bug fix",
    "docs": "Documentation changes",
    "style": "Code style changes (formatting, etc)",
    "refactor": "Code refactoring",
    "perf": "Performance improvements",
    "test": "Adding or updating tests",
    "build": "Build system changes",
    "ci": "CI/CD changes",
    "chore": "Other changes",
    "revert": "Reverting changes",
}

DEFAULT_TEMPLATE = "{{message}}\n\nv{{version}}"

COMMIT_TEMPLATES: dict[str, str] = {
    "default": DEFAULT_TEMPLATE,
    "conventional": "{{type}}{{scope}}: {{message}}\n\nv{{version}}",
    "release": "chore(release): v{{version}}\n\n{{message}}",
    "version-only": "v{{version}}",
}


def resolve_template(name: str | None, configured: str | None) -> str | None:
    """Pick the commit template: a named built-in wins over the config."""
    if name is None:
        return configured
    try:
        return COMMIT_TEMPLATES[name]
    except KeyError:
        raise PreconditionError(
            f"Unknown commit template '{name}'. "
            f"Available: {', '.join(COMMIT_TEMPLATES)}"
        ) from None


def format_commit_message(details: CommitDetails, version: str, template: str | None = None) -> str:
    """Render the commit message.

    Placeholders ``{{message}}``, ``{{version}}``, ``{{type}}`` and
    ``{{scope}}`` are replaced; ``{{scope}}`` renders as ``(scope)``.
    Other placeholders are left as written. Without a template, a typed
    (conventional) commit becomes ``type(scope)!: message`` and a plain
    one ``message`` followed by ``v<version>``. An empty plain message
    yields just the version.
    """
    if template:
        message = template
    elif details.type:
        scope = f"({details.scope})" if details.scope else ""
        bang = "!" if details.breaking else ""
        message = f"{details.type}{scope}{bang}: {{{{message}}}}"
        if details.description:
            message += f"\n\n{details.description}"
        if details.breaking:
            message += "\n\nBREAKING CHANGE: {{message}}"
        message += "\n\nv{{version}}"
    elif not details.message:
        return version
    else:
        message = DEFAULT_TEMPLATE

    return (
        message.replace("{{message}}", details.message)
        .replace("{{version}}", version)
        .replace("{{type}}", details.type or "")
        .replace("{{scope}}", f"({details.scope})" if details.scope else "")
    )


class Prompter(Protocol):
    def commit_message(self, version: str) -> str: ...

    def commit_details(self, version: str, conventional: bool, detailed: bool) -> CommitDetails: ...

    def confirm_release(self, plan: CommitPlan, details: CommitDetails) -> bool: ...

    def select_files(self, files: list[str]) -> list[str]: ...

    def branch_action(self, status: BranchStatus, can_create: bool) -> str: ...


@contextmanager
def _cancellable() -> Iterator[None]:
    """Turn Ctrl-C / Esc / EOF at a prompt into a clean cancellation."""
    try:
        yield
    except (click.Abort, KeyboardInterrupt, EOFError):
        raise UserCancelled("Release cancelled.") from None


def render_summary(plan: CommitPlan, details: CommitDetails) -> list[str]:
    lines = [
        f"Version: {plan.old_version} → {plan.new_version}",
        f"Type: {plan.kind.value}",
    ]
    if details.type:
        lines.append(f"Commit Type: {details.type}")
    if details.breaking:
        lines.append("⚠️  BREAKING CHANGE")
    if plan.files:
        lines.append(f"Files to commit: {len(plan.files)} files")
        if len(plan.files) <= 10:
            lines.extend(f"  • {f}" for f in plan.files)
    if plan.tag:
        lines.append(f"Tag: {plan.tag}")
    if plan.push:
        lines.append("Push: yes")
    if plan.packages:
        lines.append(f"Packages: {', '.join(plan.packages)}")
    if plan.message:
        lines.append("Message:")
        lines.extend(f"  {line}" for line in plan.message.splitlines())
    return lines


class ClickPrompter:
    """Interactive prompts on the terminal."""

    def commit_message(self, version: str) -> str:
        with _cancellable():
            answer = click.prompt(
                f"\n› Commit message for v{version}  (Enter to skip · Ctrl-C cancels)",
                default="",
                show_default=False,
            )
        return answer.strip()

    def _commit_type(self) -> str:
        click.secho("\nSelect commit type:\n", fg="cyan")
        types = list(COMMIT_TYPES.items())
        for index, (name, description) in enumerate(types, start=1):
            click.echo(f"  {index:>2}. {name:<10} {description}")
        choice = click.prompt(
            f"\nChoose (1-{len(types)}, Enter for feat)",
            type=click.IntRange(1, len(types)),
            default=1,
            show_default=False,
        )
        return types[choice - 1][0]

    def _description(self) -> str:
        click.secho("\nAdditional description (optional, press Enter twice to finish):", fg="cyan")
        lines: list[str] = []
        blank = 0
        while blank < 2:
            line = click.prompt("", default="", show_default=False, prompt_suffix="")
            if line:
                blank = 0
            else:
                blank += 1
            lines.append(line)
        return "\n".join(lines).strip()

    def commit_details(self, version: str, conventional: bool, detailed: bool) -> CommitDetails:
        with _cancellable():
            details = CommitDetails()
            if conventional:
                details.type = self._commit_type()
                scope = click.prompt(
                    "\nScope (optional, e.g., api, ui, auth)", default="", show_default=False
                ).strip()
                details.scope = scope or None
                details.breaking = click.confirm("\nIs this a breaking change?", default=False)
            details.message = click.prompt(f"\nCommit message for v{version} (required)").strip()
            if details.breaking or detailed:
                details.description = self._description() or None
        return details

    def confirm_release(self, plan: CommitPlan, details: CommitDetails) -> bool:
        click.secho("\n📋 Release Summary:\n", fg="yellow", bold=True)
        for line in render_summary(plan, details):
            click.echo(f"  {line}")
        with _cancellable():
            return click.confirm("\nProceed with release?", default=True)

    def select_files(self, files: list[str]) -> list[str]:
        selected = set(range(len(files)))
        with _cancellable():
            while True:
                click.secho("\nSelect files to include in commit:\n", fg="cyan")
                for index, name in enumerate(files):
                    mark = "✓" if index in selected else " "
                    click.echo(f"  {mark} {index + 1}. {name}")
                answer = click.prompt(
                    "\nNumbers to toggle, 'a' for all, 'n' for none, Enter to confirm",
                    default="",
                    show_default=False,
                ).strip().lower()
                if not answer:
                    return [f for i, f in enumerate(files) if i in selected]
                if answer == "a":
                    selected = set(range(len(files)))
                elif answer == "n":
                    selected.clear()
                else:
                    for token in answer.replace(",", " ").split():
                        if token.isdigit() and 1 <= int(token) <= len(files):
                            selected ^= {int(token) - 1}

    def branch_action(self, status: BranchStatus, can_create: bool) -> str:
        click.secho("\n⚠️  Branch Protection Warning\n", fg="yellow")
        for issue in status.warnings:
            click.secho(f"  • {issue.message}", fg="yellow")
        for issue in status.errors:
            click.secho(f"  • {issue.message}", fg="red")
            if issue.suggestion:
                click.echo(f"    {issue.suggestion}")

        actions = ["continue"] + (["create-branch"] if can_create else []) + ["abort"]
        labels = {"continue": "Continue anyway", "create-branch": "Create release branch", "abort": "Abort"}
        for index, action in enumerate(actions, start=1):
            click.echo(f"  {index}. {labels[action]}")
        with _cancellable():
            choice = click.prompt(
                f"\nChoose option (1-{len(actions)})",
                type=click.IntRange(1, len(actions)),
                default=len(actions),
                show_default=False,
            )
        return actions[choice - 1]


class ScriptedPrompter:
    """Answers every prompt from ``WorkflowOptions``; never blocks on input."""

    def __init__(self, options: WorkflowOptions) -> None:
        self.options = options

    def commit_message(self, version: str) -> str:
        return (self.options.message or "").strip()

    def commit_details(self, version: str, conventional: bool, detailed: bool) -> CommitDetails:
        return CommitDetails(message=self.commit_message(version))

    def confirm_release(self, plan: CommitPlan, details: CommitDetails) -> bool:
        return True

    def select_files(self, files: list[str]) -> list[str]:
        return list(files)

    def branch_action(self, status: BranchStatus, can_create: bool) -> str:
        reasons = "; ".join(issue.message for issue in status.errors)
        raise PolicyError(
            f"Branch policy check failed: {reasons}\n"
            "Pull the latest changes (git pull) or re-run with --force."
        )
