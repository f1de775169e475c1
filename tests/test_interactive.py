"""Tests for citrusver.interactive."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import click
import pytest

from citrusver.errors import PolicyError, PreconditionError, UserCancelled
from citrusver.interactive import (
    COMMIT_TEMPLATES,
    ClickPrompter,
    ScriptedPrompter,
    format_commit_message,
    render_summary,
    resolve_template,
)
from citrusver.models import (
    BranchStatus,
    BumpKind,
    CommitDetails,
    CommitPlan,
    PolicyIssue,
    Workflow,
    WorkflowOptions,
)


class TestFormatCommitMessage:
    def test_plain_message(self) -> None:
        details = CommitDetails(message="Fix login")
        assert format_commit_message(details, "1.2.4") == "Fix login\n\nv1.2.4"

    def test_empty_message_is_version(self) -> None:
        assert format_commit_message(CommitDetails(), "1.2.4") == "1.2.4"

    def test_conventional(self) -> None:
        details = CommitDetails(message="add search", type="feat", scope="api")
        assert format_commit_message(details, "1.3.0") == "feat(api): add search\n\nv1.3.0"

    def test_breaking_with_description(self) -> None:
        details = CommitDetails(
            message="new auth", type="feat", breaking=True, description="Tokens are reissued."
        )

        message = format_commit_message(details, "2.0.0")

        assert message == (
            "feat!: new auth\n\nTokens are reissued.\n\nBREAKING CHANGE: new auth\n\nv2.0.0"
        )

    def test_template_placeholders(self) -> None:
        details = CommitDetails(message="tidy", type="chore", scope="deps")
        message = format_commit_message(details, "1.0.1", COMMIT_TEMPLATES["conventional"])
        assert message == "chore(deps): tidy\n\nv1.0.1"

    def test_scope_empty_without_value(self) -> None:
        details = CommitDetails(message="tidy", type="chore")
        message = format_commit_message(details, "1.0.1", "{{type}}{{scope}}: {{message}}")
        assert message == "chore: tidy"

    def test_unknown_placeholder_kept(self) -> None:
        message = format_commit_message(CommitDetails(message="x"), "1.0.0", "{{message}} {{ticket}}")
        assert message == "x {{ticket}}"


class TestResolveTemplate:
    def test_named_template_wins(self) -> None:
        assert resolve_template("release", "{{message}}") == COMMIT_TEMPLATES["release"]

    def test_falls_back_to_config(self) -> None:
        assert resolve_template(None, "{{message}}") == "{{message}}"

    def test_unknown_name(self) -> None:
        with pytest.raises(PreconditionError, match="Unknown commit template"):
            resolve_template("fancy", None)


def _plan(files: list[str]) -> CommitPlan:
    return CommitPlan(
        workflow=Workflow.FULL,
        kind=BumpKind.PATCH,
        old_version="1.0.0",
        new_version="1.0.1",
        message="Fix\n\nv1.0.1",
        files=files,
        tag="v1.0.1",
    )


class TestRenderSummary:
    def test_lists_small_file_sets(self) -> None:
        lines = render_summary(_plan(["package.json"]), CommitDetails())
        assert "Version: 1.0.0 → 1.0.1" in lines
        assert "  • package.json" in lines
        assert "  v1.0.1" in lines

    def test_only_counts_large_file_sets(self) -> None:
        lines = render_summary(_plan([f"f{i}" for i in range(12)]), CommitDetails(breaking=True))
        assert "Files to commit: 12 files" in lines
        assert not any(line.startswith("  • ") for line in lines)
        assert "⚠️  BREAKING CHANGE" in lines


class TestScriptedPrompter:
    def test_answers_from_options(self) -> None:
        prompter = ScriptedPrompter(WorkflowOptions(message=" Ship it "))
        assert prompter.commit_message("1.0.0") == "Ship it"
        assert prompter.commit_details("1.0.0", True, True).message == "Ship it"
        assert prompter.confirm_release(_plan([]), CommitDetails())
        assert prompter.select_files(["a", "b"]) == ["a", "b"]

    def test_branch_decision_fails_closed(self) -> None:
        status = BranchStatus(
            valid=False, errors=[PolicyIssue(kind="outdated-branch", message="behind")]
        )
        with pytest.raises(PolicyError, match="behind"):
            ScriptedPrompter(WorkflowOptions()).branch_action(status, can_create=True)


class TestClickPrompter:
    @patch("citrusver.interactive.click.prompt")
    def test_abort_is_cancellation(self, mock_prompt: MagicMock) -> None:
        mock_prompt.side_effect = click.Abort()
        with pytest.raises(UserCancelled):
            ClickPrompter().commit_message("1.0.0")

    @patch("citrusver.interactive.click.confirm")
    @patch("citrusver.interactive.click.prompt")
    def test_conventional_details(self, mock_prompt: MagicMock, mock_confirm: MagicMock) -> None:
        mock_prompt.side_effect = [2, "auth", "handle expired tokens"]
        mock_confirm.return_value = False

        details = ClickPrompter().commit_details("1.0.1", conventional=True, detailed=False)

        assert (details.type, details.scope, details.message) == ("fix", "auth", "handle expired tokens")
        assert not details.breaking

    @patch("citrusver.interactive.click.prompt")
    def test_select_files_toggle(self, mock_prompt: MagicMock) -> None:
        mock_prompt.side_effect = ["2", ""]
        assert ClickPrompter().select_files(["a.py", "b.py", "c.py"]) == ["a.py", "c.py"]

    @patch("citrusver.interactive.click.prompt")
    def test_branch_action_choices(self, mock_prompt: MagicMock) -> None:
        mock_prompt.return_value = 2
        status = BranchStatus(warnings=[PolicyIssue(kind="protected-branch", message="main")])

        assert ClickPrompter().branch_action(status, can_create=True) == "create-branch"
        assert ClickPrompter().branch_action(status, can_create=False) == "abort"
