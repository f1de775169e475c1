"""Registry lookups: npm version collisions and the self-update check.

Everything here is best-effort: network problems turn into "no
information", never into an exception that could stop a release.
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, Field

from .errors import InvalidVersionFormat
from .shell import run
from .versions import compare_versions

logger = structlog.get_logger(__name__)

REGISTRY_URL = "https://registry.npmjs.org"
PYPI_URL = "https://pypi.org/pypi"
TIMEOUT_SECONDS = 3.0
CHECK_INTERVAL_SECONDS = 24 * 60 * 60


class RegistryInfo(BaseModel):
    exists: bool = False
    latest: str | None = None
    versions: list[str] = Field(default_factory=list)


class NpmRegistry:
    def __init__(self, registry_url: str = REGISTRY_URL, timeout: float = TIMEOUT_SECONDS) -> None:
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout

    def _get(self, path: str) -> dict | None:
        url = f"{self.registry_url}/{path}"
        try:
            response = httpx.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("registry request failed", url=url, error=str(exc))
            return None
        return data if isinstance(data, dict) else None

    def check_version(self, package: str, version: str) -> RegistryInfo:
        """Report whether ``version`` of ``package`` is already published."""
        data = self._get(quote(package, safe="@"))
        if data is None:
            return RegistryInfo()
        versions = list((data.get("versions") or {}).keys())
        return RegistryInfo(
            exists=version in versions,
            latest=(data.get("dist-tags") or {}).get("latest"),
            versions=versions,
        )

    def publish(self, access: str = "public", tag: str = "latest", dry_run: bool = False) -> bool:
        """Run ``npm publish``. Returns False instead of raising on failure."""
        cmd = ["npm", "publish"]
        if dry_run:
            cmd.append("--dry-run")
        if tag and tag != "latest":
            cmd.extend(["--tag", tag])
        if access:
            cmd.extend(["--access", access])
        try:
            result = run(*cmd, check=False)
        except OSError as exc:
            logger.warning("npm publish failed", error=str(exc))
            return False
        return result.returncode == 0


class UpdateInfo(BaseModel):
    last_check: float
    latest_version: str
    update_available: bool


class UpdateChecker:
    """Check PyPI, at most once a day, for a newer citrusver release."""

    def __init__(
        self,
        package: str,
        current_version: str,
        cache_dir: Path | None = None,
        index_url: str = PYPI_URL,
        timeout: float = TIMEOUT_SECONDS,
    ) -> None:
        self.package = package
        self.current_version = current_version
        self.cache_dir = cache_dir or Path.home() / ".citrusver"
        self.cache_file = self.cache_dir / "update-check.json"
        self.index_url = index_url.rstrip("/")
        self.timeout = timeout

    def fetch_latest_version(self) -> str | None:
        url = f"{self.index_url}/{self.package}/json"
        try:
            response = httpx.get(url, timeout=self.timeout)
            response.raise_for_status()
            return str(response.json()["info"]["version"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.debug("update check failed", url=url, error=str(exc))
            return None

    def _cached(self) -> UpdateInfo | None:
        try:
            return UpdateInfo.model_validate_json(self.cache_file.read_text())
        except (OSError, ValueError):
            return None

    def _save(self, update: UpdateInfo) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(update.model_dump_json(indent=2))
        except OSError as exc:
            logger.debug("update cache not written", error=str(exc))

    def check(self, force: bool = False) -> UpdateInfo | None:
        """Return update info when a newer version exists, else None."""
        if not force and (os.environ.get("NO_UPDATE_CHECK") or os.environ.get("CI")):
            return None

        cached = self._cached()
        if not force and cached and time.time() - cached.last_check < CHECK_INTERVAL_SECONDS:
            return cached if cached.update_available else None

        latest = self.fetch_latest_version()
        if not latest:
            return None
        try:
            available = compare_versions(latest, self.current_version) > 0
        except (ValueError, InvalidVersionFormat):
            return None

        update = UpdateInfo(last_check=time.time(), latest_version=latest, update_available=available)
        self._save(update)
        return update if available else None

    def message(self, latest_version: str) -> str:
        return (
            f"Update available! {self.current_version} → {latest_version}\n"
            f"Run: pip install --upgrade {self.package}"
        )
