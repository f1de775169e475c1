"""Release pipeline: compute → check → confirm → write → commit → tag → push.

``VersionBumper.bump`` runs one of five workflows:

1. version: rewrite the manifest(s) only
2. commit: version + commit the manifest(s)
3. tag: commit + annotated ``v<version>`` tag
4. push: tag + push with tags
5. full: branch policy, hooks, commit details, confirmation, monorepo
   fan-out, registry collision check, changelog and publish

Every mutating workflow takes a rollback snapshot before its first write.
Any failure after that point restores the snapshot and re-raises.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from . import changelog
from .branch import BranchPolicy
from .config import Config
from .errors import (
    HookError,
    MutationError,
    PolicyError,
    PreconditionError,
    UserCancelled,
)
from .gitops import SourceControl
from .hooks import HookContext, HookDispatcher, HookResult
from .interactive import Prompter, format_commit_message, render_summary, resolve_template
from .manifest import JsonManifest, Manifest, find_manifest
from .models import (
    BumpKind,
    CommitDetails,
    CommitPlan,
    PackageInfo,
    RollbackSnapshot,
    VersionBump,
    VersionStrategyConfig,
    Workflow,
    WorkflowOptions,
)
from .monorepo import (
    changed_packages,
    discover_packages,
    package_manifest_files,
    plan_package_versions,
    write_package_versions,
)
from .registry import NpmRegistry
from .rollback import RollbackManager
from .shell import error, info, run_command, step, success, warn
from .versions import apply_label, ensure_valid, next_version

logger = structlog.get_logger(__name__)


class VersionBumper:
    """Runs release workflows against one project directory."""

    def __init__(
        self,
        config: Config,
        root: Path,
        gateway: SourceControl,
        prompter: Prompter,
        dispatcher: HookDispatcher | None = None,
        rollback: RollbackManager | None = None,
        registry: NpmRegistry | None = None,
        now: datetime | None = None,
    ) -> None:
        self.config = config
        self.root = root
        self.gateway = gateway
        self.prompter = prompter
        self.dispatcher = dispatcher or HookDispatcher()
        self.rollback = rollback or RollbackManager(gateway, root)
        self.registry = registry or NpmRegistry()
        self.policy = BranchPolicy(config.branch, gateway)
        self.now = now
        self.quiet = False

    # Output

    def _step(self, msg: str) -> None:
        if not self.quiet:
            step(msg)

    def _info(self, msg: str) -> None:
        if not self.quiet:
            info(msg)

    def _success(self, msg: str) -> None:
        if not self.quiet:
            success(msg)

    # Entry point

    def bump(self, kind: BumpKind, options: WorkflowOptions) -> str:
        """Bump the project version and return the new version.

        Raises:
            PreconditionError: No manifest, or no repository for a git workflow.
            StrategyError: The next version cannot be computed.
            PolicyError: Branch policy blocks the release.
            MutationError: A write, commit, tag or push failed (after rollback).
            HookError: A failing hook or configured command aborted the run.
            UserCancelled: The operator said no.
        """
        self.quiet = options.quiet
        manifest = find_manifest(self.root)
        if options.workflow.touches_git and not self.gateway.is_repository():
            raise PreconditionError(
                "Not a git repository. Run `git init` first or use --workflow version."
            )

        strategy = self.config.strategy(options.preid)
        old = manifest.read_version()
        new = self._compute(old, kind, strategy, options.label)
        logger.debug("computed version", old=old, new=new, kind=kind.value, strategy=strategy.strategy.value)

        template = resolve_template(options.template, self.config.commit_template)
        if options.workflow is Workflow.FULL:
            return self._full(kind, options, manifest, old, new, strategy, template)
        return self._basic(kind, options, manifest, old, new, template)

    def _compute(
        self, old: str, kind: BumpKind, strategy: VersionStrategyConfig, label: str | None
    ) -> str:
        new = next_version(old, kind, strategy, self.now)
        if label:
            new = apply_label(new, label)
        return new

    # Version / commit / tag / push

    def _basic(
        self,
        kind: BumpKind,
        options: WorkflowOptions,
        manifest: Manifest,
        old: str,
        new: str,
        template: str | None,
    ) -> str:
        workflow = options.workflow
        tag = f"v{new}" if workflow in (Workflow.TAG, Workflow.PUSH) else None
        push = workflow is Workflow.PUSH

        message = None
        if workflow.touches_git:
            text = options.message
            if text is None and not options.dry_run:
                # Prompted before the first write
                text = self.prompter.commit_message(new)
            message = format_commit_message(CommitDetails(message=text or ""), new, template)

        files = manifest.files()
        plan = CommitPlan(
            workflow=workflow,
            kind=kind,
            old_version=old,
            new_version=new,
            message=message,
            files=[self._relative(p) for p in files],
            tag=tag,
            push=push,
        )
        if options.dry_run:
            self._report_dry_run(plan, CommitDetails(message=options.message or ""))
            return new

        snapshot = self.rollback.snapshot(workflow.value, files)
        self._guarded(snapshot, lambda: self._run_basic(plan, manifest, snapshot))
        self.rollback.discard(snapshot)
        return new

    def _run_basic(self, plan: CommitPlan, manifest: Manifest, snapshot: RollbackSnapshot) -> None:
        self._run_configured(self.config.pre_version, "preVersion", fatal=True)
        self._write_versions(manifest, plan.new_version, [], {})
        if plan.message is not None:
            self._git_step("stage version files", self.gateway.stage_files, plan.files)
            self._git_step("commit", self.gateway.commit, plan.message)
            self._success(f"Committed v{plan.new_version}")
        if plan.tag:
            self._create_tag(plan.tag, plan.new_version, snapshot)
        if plan.push:
            self._git_step("push", self.gateway.push, True)
            self._success("Pushed to remote")
        self._run_configured(self.config.post_version, "postVersion", fatal=False)
        self._success(f"Version bumped: {plan.old_version} → {plan.new_version}")

    # Full workflow

    def _full(
        self,
        kind: BumpKind,
        options: WorkflowOptions,
        manifest: Manifest,
        old: str,
        new: str,
        strategy: VersionStrategyConfig,
        template: str | None,
    ) -> str:
        context = HookContext(old_version=old, new_version=new, kind=kind.value)
        new = self._calculate_hook(context, strategy)
        context = context.model_copy(update={"new_version": new})

        packages, bumps = self._plan_packages(kind, strategy, new)
        tag = f"v{new}" if self.config.auto_tag else None
        push = self.config.auto_push

        if options.dry_run:
            details = CommitDetails(message=options.message or "")
            plan = CommitPlan(
                workflow=Workflow.FULL,
                kind=kind,
                old_version=old,
                new_version=new,
                message=format_commit_message(details, new, template),
                files=[self._relative(p) for p in self._version_files(manifest, packages)],
                tag=tag,
                push=push,
                packages=list(bumps),
            )
            self._report_dry_run(plan, details)
            return new

        self._check_branch(kind, options, new)
        self._check_registry(manifest, new)

        # Must be resolved before the new tag exists
        since = self._previous_release(old) if self.config.changelog else None
        files = self._version_files(manifest, packages)
        snapshot = self.rollback.snapshot(Workflow.FULL.value, files)

        def release() -> None:
            if options.stash and self._git_step("stash", self.gateway.stash):
                self.rollback.record_stash(snapshot)
                self._info("Stashed uncommitted changes")

            self._hook("pre-version", context)
            self._run_configured(self.config.pre_version, "preVersion", fatal=True)

            details = self._commit_details(new, options)
            message = format_commit_message(details, new, template)
            extra = self._selected_files(options)

            plan = CommitPlan(
                workflow=Workflow.FULL,
                kind=kind,
                old_version=old,
                new_version=new,
                message=message,
                files=[self._relative(p) for p in files] + extra,
                tag=tag,
                push=push,
                packages=list(bumps),
            )
            if self.config.confirm_release and not options.no_confirm:
                if not self.prompter.confirm_release(plan, details):
                    raise UserCancelled("Release cancelled.")

            self._write_versions(manifest, new, packages, bumps)

            self._hook("pre-commit", context, message=message)
            if options.select_files:
                self._git_step("stage files", self.gateway.stage_files, plan.files)
            else:
                self._git_step("stage files", self.gateway.stage_all)
            self._git_step("commit", self.gateway.commit, message)
            self._success(f"Committed v{new}")
            self._hook("post-commit", context, message=message)

            if tag:
                self._hook("pre-tag", context, tag=tag)
                self._create_tag(tag, new, snapshot)
                self._hook("post-tag", context, tag=tag)

            if push:
                self._hook("pre-push", context)
                self._git_step("push", self.gateway.push, True)
                self._success("Pushed to remote")
                self._hook("post-push", context)

            if snapshot.stashed:
                if self.gateway.stash_pop():
                    snapshot.stashed = False
                    self.rollback.save(snapshot)
                    self._info("Restored stashed changes")
                else:
                    warn("Could not restore stashed changes. Run `git stash pop` manually.")

            self._hook("post-version", context)
            self._run_configured(self.config.post_version, "postVersion", fatal=False)

            if self.config.changelog:
                self._write_changelog(since, new, context)
            if self.config.npm.publish:
                self._publish()

        self._guarded(snapshot, release)
        self.rollback.discard(snapshot)
        self._success(f"Released v{new}")
        return new

    def _calculate_hook(self, context: HookContext, strategy: VersionStrategyConfig) -> str:
        """Let version-calculate handlers override the candidate version."""
        version = context.new_version or ""
        for result in self._hook("version-calculate", context):
            if result.ok and isinstance(result.result, str) and result.result:
                ensure_valid(result.result, strategy.strategy)
                logger.debug("version overridden by hook", plugin=result.source, version=result.result)
                version = result.result
        return version

    def _plan_packages(
        self, kind: BumpKind, strategy: VersionStrategyConfig, new: str
    ) -> tuple[list[PackageInfo], dict[str, VersionBump]]:
        monorepo = self.config.monorepo
        if not monorepo.enabled:
            return [], {}
        packages = discover_packages(self.root, monorepo.packages)
        if not packages:
            warn(f"Monorepo enabled but no packages match {monorepo.packages}")
            return [], {}

        if monorepo.independent:
            targets = changed_packages(self.gateway, packages, self.gateway.latest_tag())
            synced = None
        else:
            targets = packages
            synced = new if monorepo.sync_versions else None
        bumps = plan_package_versions(targets, kind, strategy, synced, monorepo.include_private)
        logger.debug("planned package versions", packages=list(bumps))
        return packages, bumps

    def _version_files(self, manifest: Manifest, packages: list[PackageInfo]) -> list[Path]:
        files = list(manifest.files())
        for path in package_manifest_files(self.root, packages):
            if path not in files:
                files.append(path)
        return files

    def _check_branch(self, kind: BumpKind, options: WorkflowOptions, new: str) -> None:
        self._step("Checking branch")
        status = self.policy.check_status(force=options.force, kind=kind)
        for issue in status.warnings:
            warn(issue.message)

        protected = any(w.kind == "protected-branch" for w in status.warnings)
        if status.valid and not protected:
            return
        if status.valid and self.config.branch.auto_create_release_branch:
            self._switch_to_release_branch(new)
            return
        if status.valid and options.yes:
            return
        if not status.valid and options.force:
            warn("Branch policy overridden with --force")
            return

        action = self.prompter.branch_action(status, can_create=True)
        logger.debug("branch decision", action=action, branch=status.branch)
        if action == "abort":
            raise UserCancelled("Release cancelled.")
        if action == "create-branch":
            self._switch_to_release_branch(new)
        elif not status.valid:
            warn("Continuing on an outdated branch")

    def _switch_to_release_branch(self, new: str) -> None:
        name = self._git_step("create release branch", self.policy.create_release_branch, new)
        if name is None:
            raise PolicyError(f"Branch release/v{new} already exists")
        self._success(f"Created and switched to {name}")

    def _check_registry(self, manifest: Manifest, new: str) -> None:
        if not self.config.npm.check_registry or not isinstance(manifest, JsonManifest):
            return
        name = manifest.name()
        found = self.registry.check_version(name, new)
        if found.exists:
            raise PreconditionError(
                f"Version {new} of {name} is already published (latest: {found.latest})"
            )

    def _commit_details(self, new: str, options: WorkflowOptions) -> CommitDetails:
        if options.message is not None:
            return CommitDetails(message=options.message)
        if self.config.message_style == "simple":
            return CommitDetails(message=self.prompter.commit_message(new))
        return self.prompter.commit_details(
            new, self.config.conventional_commits, self.config.detailed_description
        )

    def _selected_files(self, options: WorkflowOptions) -> list[str]:
        if not options.select_files:
            return []
        candidates = self.gateway.uncommitted_files()
        if not candidates:
            return []
        return self.prompter.select_files(candidates)

    def _previous_release(self, old: str) -> str | None:
        previous = f"v{old}"
        return previous if self.gateway.tag_exists(previous) else self.gateway.latest_tag()

    def _write_changelog(self, since: str | None, new: str, context: HookContext) -> None:
        """Prepend the release entry to CHANGELOG.md. Failures only warn."""
        try:
            commits = self.gateway.log_since(since)
            today = (self.now or datetime.now()).date()
            entry = changelog.generate(new, commits, today, self.config.conventional_commits)
            for result in self._hook("changelog-generate", context, entry=entry, commits=len(commits)):
                if result.ok and isinstance(result.result, str):
                    entry = result.result
            changelog.update_changelog(self.root / changelog.CHANGELOG_FILE, entry)
        except (OSError, subprocess.CalledProcessError) as exc:
            logger.warning("changelog failed", error=str(exc))
            warn(f"Failed to update changelog: {exc}")
            return
        self._success(f"Updated {changelog.CHANGELOG_FILE}")

    def _publish(self) -> None:
        self._step("Publishing to npm")
        npm = self.config.npm
        if self.registry.publish(access=npm.access, tag=npm.tag):
            self._success("Published to npm")
        else:
            warn("npm publish failed; the release itself is complete")

    # Shared steps

    def _hook(self, point: str, context: HookContext, **data: Any) -> list[HookResult]:
        if data:
            context = context.model_copy(update={"data": {**context.data, **data}})
        return self.dispatcher.dispatch(point, context)

    def _run_configured(self, command: str | None, name: str, fatal: bool) -> None:
        """Run a ``preVersion`` / ``postVersion`` shell command."""
        if not command:
            return
        self._info(f"Running {name}: {command}")
        try:
            run_command(command)
        except (subprocess.CalledProcessError, OSError) as exc:
            if fatal:
                raise HookError(f"{name} command failed: {command}") from exc
            warn(f"{name} command failed: {exc}")

    def _write_versions(
        self,
        manifest: Manifest,
        new: str,
        packages: list[PackageInfo],
        bumps: dict[str, VersionBump],
    ) -> None:
        try:
            manifest.write_version(new)
            if bumps:
                write_package_versions(self.root, packages, bumps)
        except OSError as exc:
            raise MutationError(f"Could not write version files: {exc}") from exc
        self._info(f"Updated {self._relative(manifest.path)} to {new}")

    def _create_tag(self, tag: str, new: str, snapshot: RollbackSnapshot) -> None:
        if self.gateway.tag_exists(tag):
            raise MutationError(f"Tag {tag} already exists")
        self._git_step("tag", self.gateway.tag, tag, f"Version {new}")
        self.rollback.record_tag(snapshot, tag)
        self._success(f"Tagged {tag}")

    def _git_step(self, name: str, action: Callable[..., Any], *args: Any) -> Any:
        try:
            return action(*args)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or str(exc)
            raise MutationError(f"git {name} failed: {detail}") from exc

    def _guarded(self, snapshot: RollbackSnapshot, action: Callable[[], None]) -> None:
        """Run ``action``; on any failure restore ``snapshot`` and re-raise."""
        try:
            action()
        except UserCancelled:
            self._restore(snapshot)
            raise
        except Exception as exc:
            logger.error("release failed", operation=snapshot.operation, error=str(exc))
            error(f"Release failed: {exc}")
            self._restore(snapshot)
            raise

    def _restore(self, snapshot: RollbackSnapshot) -> None:
        try:
            self.rollback.restore(snapshot)
        except Exception as exc:
            logger.error("rollback failed", error=str(exc))
            error(f"Rollback failed: {exc}")

    def _report_dry_run(self, plan: CommitPlan, details: CommitDetails) -> None:
        self._step("Dry run")
        for line in render_summary(plan, details):
            self._info(line)
        self._info("No files or repository state were changed.")

    def _relative(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.root))
        except ValueError:
            return str(path)
