"""Snapshot and restore project state around a release.

Before the first mutating step, the manager copies every file the run is
about to modify into ``.citrusver/backups/`` and records HEAD, recent tags
and the branch in ``.citrusver/last-state.json``. On failure ``restore``
puts the files back, resets HEAD with ``--mixed`` (working tree edits
survive), deletes any tag the run created and pops a stash the run made.
"""

from __future__ import annotations

import shutil
import subprocess
from datetime import datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from .errors import MutationError, PreconditionError
from .gitops import SourceControl
from .models import BackupRecord, RollbackSnapshot
from .shell import info, success, warn

logger = structlog.get_logger(__name__)

STATE_DIR = ".citrusver"
STATE_FILE = "last-state.json"
BACKUP_DIR = "backups"
DEFAULT_RETENTION = 10


class RollbackManager:
    def __init__(self, gateway: SourceControl, root: Path, retention: int = DEFAULT_RETENTION) -> None:
        self.gateway = gateway
        self.root = root
        self.retention = retention
        self.state_dir = root / STATE_DIR
        self.state_file = self.state_dir / STATE_FILE
        self.backup_dir = self.state_dir / BACKUP_DIR

    def snapshot(self, operation: str, files: list[Path]) -> RollbackSnapshot:
        """Back up ``files`` and record the repository position.

        The snapshot is written to disk before returning so that
        ``citrusver rollback`` can still undo a run that crashed hard.
        """
        self._prepare_state_dir()
        self.backup_dir.mkdir(exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d%H%M%S%f")

        backups: list[BackupRecord] = []
        for index, path in enumerate(files):
            if not path.exists():
                continue
            backup = self.backup_dir / f"{path.name}-{stamp}-{index}.bak"
            shutil.copyfile(path, backup)
            backups.append(BackupRecord(original=str(path), backup=str(backup)))

        snapshot = RollbackSnapshot(
            operation=operation,
            branch=self.gateway.current_branch(),
            commit=self.gateway.current_commit(),
            tags=self.gateway.recent_tags(),
            backups=backups,
        )
        self.save(snapshot)
        logger.debug("snapshot saved", operation=operation, files=len(backups), commit=snapshot.commit)
        return snapshot

    def _prepare_state_dir(self) -> None:
        """Create the state directory with a ``.gitignore`` that ignores everything in it."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        ignore = self.state_dir / ".gitignore"
        if not ignore.exists():
            ignore.write_text("*\n")

    def save(self, snapshot: RollbackSnapshot) -> None:
        self._prepare_state_dir()
        self.state_file.write_text(snapshot.model_dump_json(indent=2))

    def load(self) -> RollbackSnapshot | None:
        if not self.state_file.exists():
            return None
        try:
            return RollbackSnapshot.model_validate_json(self.state_file.read_text())
        except ValidationError as exc:
            logger.warning("corrupt rollback state", path=str(self.state_file), error=str(exc))
            return None

    def record_tag(self, snapshot: RollbackSnapshot, tag: str) -> None:
        snapshot.created_tag = tag
        self.save(snapshot)

    def record_stash(self, snapshot: RollbackSnapshot) -> None:
        snapshot.stashed = True
        self.save(snapshot)

    def restore(self, snapshot: RollbackSnapshot | None = None) -> list[str]:
        """Undo everything the snapshot's run did.

        Safe to call more than once: artifacts that are already gone are
        skipped. Every step is attempted even if an earlier one fails.

        Returns:
            Human-readable descriptions of what was restored.

        Raises:
            PreconditionError: If no snapshot is given and none is saved.
            MutationError: If any step could not be undone.
        """
        if snapshot is None:
            snapshot = self.load()
            if snapshot is None:
                raise PreconditionError("No rollback state found")

        info("Rolling back to previous state...")
        restored: list[str] = []
        failures: list[str] = []

        for record in snapshot.backups:
            backup = Path(record.backup)
            if not backup.exists():
                continue
            try:
                shutil.copyfile(backup, record.original)
            except OSError as exc:
                failures.append(f"restore {record.original}: {exc}")
                continue
            restored.append(f"Restored {record.original}")

        if snapshot.commit:
            try:
                if self.gateway.current_commit() != snapshot.commit:
                    self.gateway.reset_mixed(snapshot.commit)
                    restored.append(f"Reset to {snapshot.commit[:7]}")
            except subprocess.CalledProcessError as exc:
                failures.append(f"reset to {snapshot.commit[:7]}: {exc.stderr or exc}")

        if snapshot.created_tag and self.gateway.tag_exists(snapshot.created_tag):
            if self.gateway.delete_tag(snapshot.created_tag):
                restored.append(f"Removed tag {snapshot.created_tag}")
            else:
                failures.append(f"delete tag {snapshot.created_tag}")

        if snapshot.stashed:
            if self.gateway.stash_pop():
                snapshot.stashed = False
                restored.append("Restored stashed changes")
            else:
                failures.append("pop stashed changes (run `git stash pop` manually)")

        for line in restored:
            info(f"✓ {line}")

        if failures:
            self.save(snapshot)
            raise MutationError("Rollback incomplete: " + "; ".join(failures))

        self.state_file.unlink(missing_ok=True)
        success("Rollback completed successfully")
        return restored

    def discard(self, snapshot: RollbackSnapshot) -> None:
        """Forget the snapshot after a successful run and prune old backups."""
        current = self.load()
        if current is not None and current.timestamp == snapshot.timestamp:
            self.state_file.unlink(missing_ok=True)
        self.prune()

    def prune(self) -> list[Path]:
        """Delete backups beyond the retention bound, oldest first."""
        if not self.backup_dir.exists():
            return []
        backups = sorted(
            (p for p in self.backup_dir.glob("*.bak") if p.is_file()),
            key=lambda p: (p.stat().st_mtime, p.name),
            reverse=True,
        )
        removed: list[Path] = []
        for path in backups[self.retention :]:
            try:
                path.unlink()
            except OSError as exc:
                warn(f"Could not remove old backup {path.name}: {exc}")
                continue
            removed.append(path)
        return removed
