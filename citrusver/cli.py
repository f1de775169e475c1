"""CLI entry point for citrusver."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import Any

import click
import structlog

from .config import CONFIG_FILE, TEMPLATES, Config, load_config, write_config
from .errors import CitrusVerError, UserCancelled
from .gitops import GitGateway
from .hooks import HookDispatcher, load_plugins
from .interactive import ClickPrompter, Prompter, ScriptedPrompter
from .models import BumpKind, StrategyName, Workflow, WorkflowOptions
from .pipeline import VersionBumper
from .registry import UpdateChecker
from .rollback import RollbackManager
from .shell import info, success, warn

__version__ = pkg_version("citrusver")


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def default_workflow(config: Config) -> Workflow:
    """Workflow used when ``--workflow`` is not given."""
    if config.message_style == "interactive":
        return Workflow.FULL
    if config.auto_push:
        return Workflow.PUSH
    if config.auto_tag:
        return Workflow.TAG
    return Workflow.COMMIT


def build_bumper(config: Config, root: Path, options: WorkflowOptions) -> VersionBumper:
    """Wire the orchestrator with its real collaborators."""
    gateway = GitGateway()
    prompter: Prompter = ScriptedPrompter(options) if options.yes else ClickPrompter()
    dispatcher = HookDispatcher()
    if config.plugins:
        load_plugins(config.plugins, dispatcher, root)
    return VersionBumper(
        config=config,
        root=root,
        gateway=gateway,
        prompter=prompter,
        dispatcher=dispatcher,
        rollback=RollbackManager(gateway, root),
    )


def _bump_options(func: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option(
            "--workflow",
            type=click.Choice([w.value for w in Workflow]),
            help="Workflow to run. Defaults from .citrusver.json.",
        ),
        click.option("--dry-run", is_flag=True, help="Show what would happen, change nothing."),
        click.option("--quiet", "-q", is_flag=True, help="Only print warnings and errors."),
        click.option("--force", is_flag=True, help="Override branch protection."),
        click.option("--stash", is_flag=True, help="Stash uncommitted changes during the release."),
        click.option("--select-files", is_flag=True, help="Choose which changed files to commit."),
        click.option("--preid", help="Prerelease identifier (alpha, beta, rc, ...)."),
        click.option("--label", help="Prerelease label added to the new version."),
        click.option("--template", help="Built-in commit message template."),
        click.option("--message", "-m", help="Commit message; skips the prompt."),
        click.option("--yes", "-y", is_flag=True, help="Answer every prompt from the options."),
        click.option("--no-confirm", is_flag=True, help="Skip the release confirmation."),
        click.option(
            "--strategy",
            type=click.Choice([s.value for s in StrategyName]),
            help="Version strategy, overriding the config.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _run_bump(kind: BumpKind, workflow: str | None, strategy: str | None, **flags: Any) -> None:
    root = Path.cwd()
    config = load_config(root)
    if strategy:
        config = config.model_copy(update={"version_strategy": StrategyName(strategy)})

    options = WorkflowOptions(
        workflow=Workflow(workflow) if workflow else default_workflow(config),
        **flags,
    )
    try:
        new_version = build_bumper(config, root, options).bump(kind, options)
    except UserCancelled:
        click.secho("Release cancelled.", dim=True)
        return
    except CitrusVerError as exc:
        raise click.ClickException(str(exc)) from exc

    if options.quiet:
        click.echo(new_version)


@click.group()
@click.version_option(__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """Version bumping with git commits, tags and release checks."""
    configure_logging(verbose)


@cli.command()
@click.argument("kind", type=click.Choice([k.value for k in BumpKind]))
@_bump_options
def bump(kind: str, workflow: str | None, strategy: str | None, **flags: Any) -> None:
    """Bump the version by KIND."""
    _run_bump(BumpKind(kind), workflow, strategy, **flags)


def _shortcut(kind: BumpKind) -> click.Command:
    @_bump_options
    def command(workflow: str | None, strategy: str | None, **flags: Any) -> None:
        _run_bump(kind, workflow, strategy, **flags)

    command.__doc__ = f"Shortcut for `citrusver bump {kind.value}`."
    return click.command(kind.value)(command)


for _kind in BumpKind:
    cli.add_command(_shortcut(_kind))


@cli.command()
@click.option(
    "--template",
    type=click.Choice(list(TEMPLATES)),
    default="default",
    show_default=True,
    help="Configuration preset to write.",
)
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
def init(template: str, force: bool) -> None:
    """Write a .citrusver.json configuration file."""
    root = Path.cwd()
    if (root / CONFIG_FILE).exists() and not force:
        raise click.ClickException(f"{CONFIG_FILE} already exists. Use --force to overwrite.")

    path = write_config(root, template)
    success(f"Wrote {path.name} ({template} template)")
    click.echo()
    click.echo("Next steps:")
    click.echo("  1. Review the configuration")
    click.echo("  2. Run: citrusver patch --dry-run")


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def rollback(yes: bool) -> None:
    """Undo the last interrupted release."""
    root = Path.cwd()
    manager = RollbackManager(GitGateway(), root)
    snapshot = manager.load()
    if snapshot is None:
        raise click.ClickException("No rollback state found")

    info(f"Operation: {snapshot.operation} at {snapshot.timestamp:%Y-%m-%d %H:%M:%S}")
    if snapshot.commit:
        info(f"Commit: {snapshot.commit[:7]} on {snapshot.branch or '<detached>'}")
    if not yes and not click.confirm("Restore this state?", default=False):
        click.secho("Rollback cancelled.", dim=True)
        return
    try:
        manager.restore(snapshot)
    except CitrusVerError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
def update() -> None:
    """Check PyPI for a newer citrusver."""
    checker = UpdateChecker("citrusver", __version__)
    found = checker.check(force=True)
    if found is None:
        success(f"citrusver {__version__} is up to date")
        return
    warn(checker.message(found.latest_version))
