"""Version strategies: compute the next version from the current one.

Four strategies are supported:

- semver: increment major/minor/patch, zeroing lower components
- date: ``YYYY.MM.DD`` with a ``.N`` ordinal for same-day releases
- prerelease: ``X.Y.Z-<id>.N``, incrementing N while the id is unchanged
- custom: a user template with ``{{year}}``-style placeholders

Parsing is deliberately lenient (e.g., "1.0" → "1.0.0", "1.x.3" → "1.0.3"),
but every produced version is checked against its strategy's grammar
before anyone is allowed to write it.
"""

from __future__ import annotations

import re
from datetime import date, datetime

import semver
from packaging.version import InvalidVersion, Version

from .errors import InvalidVersionFormat, StrategyInvariantViolation
from .models import BumpKind, StrategyName, VersionStrategyConfig

SEMVER_PATTERN = re.compile(
    r"^\d+\.\d+\.\d+(-[0-9A-Za-z.-]+)?(\+[0-9A-Za-z.-]+)?$"
)
DATE_PATTERN = re.compile(r"^\d{4}\.\d{2}\.\d{2}(\.\d+)?$")
LABEL_PATTERN = re.compile(r"^[\w.-]+$")
_VERSION_ALPHABET = re.compile(r"^v?[0-9A-Za-z.+-]+$")

GRAMMARS: dict[StrategyName, tuple[re.Pattern[str], ...]] = {
    StrategyName.SEMVER: (SEMVER_PATTERN,),
    StrategyName.PRERELEASE: (SEMVER_PATTERN,),
    StrategyName.DATE: (DATE_PATTERN,),
    StrategyName.CUSTOM: (SEMVER_PATTERN, DATE_PATTERN),
}


def _component(part: str) -> int:
    return int(part) if part.isdigit() else 0


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete or sloppy versions by treating missing and
    non-numeric core components as zero:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.x.3" → "1.0.3"

    Only the first 3 core components are used. Prerelease and build
    metadata are kept.

    Raises:
        InvalidVersionFormat: If the string is empty or contains characters
            that can never appear in a version.
    """
    text = (version_str or "").strip()
    if not text or not _VERSION_ALPHABET.match(text):
        raise InvalidVersionFormat(f"Cannot parse version {version_str!r}")

    text = text.removeprefix("v")
    core, _, build = text.partition("+")
    core, _, prerelease = core.partition("-")
    parts = [_component(p) for p in core.split(".")[:3]]
    # Pad with zeros to ensure we have 3 parts
    while len(parts) < 3:
        parts.append(0)
    return semver.Version(*parts, prerelease=prerelease or None, build=build or None)


def _bump_core(v: semver.Version, kind: BumpKind) -> semver.Version:
    if kind is BumpKind.MAJOR:
        return v.bump_major()
    if kind is BumpKind.MINOR:
        return v.bump_minor()
    return semver.Version(v.major, v.minor, v.patch + 1)


def bump_semver(current: str, kind: BumpKind) -> str:
    """Increment one component and zero the lower ones.

    Examples:
        ("1.2.3", patch) → "1.2.4"
        ("1.2.3", minor) → "1.3.0"
        ("1.2.3", major) → "2.0.0"

    A ``prerelease`` kind behaves like ``patch`` under this strategy.
    """
    return str(_bump_core(parse_version(current), kind))


def bump_date(current: str | None, today: date | None = None) -> str:
    """Return today's ``YYYY.MM.DD``, adding ``.N`` for repeat releases.

    The bump kind is irrelevant here. If ``current`` already belongs to
    today, the trailing ordinal is incremented (or started at 1).
    """
    today = today or date.today()
    base = f"{today:%Y.%m.%d}"
    if current and (current == base or current.startswith(base + ".")):
        parts = current.split(".")
        if len(parts) == 4 and parts[3].isdigit():
            return f"{base}.{int(parts[3]) + 1}"
        return f"{base}.1"
    return base


def bump_prerelease(current: str, kind: BumpKind, preid: str = "alpha") -> str:
    """Compute the next ``X.Y.Z-<preid>.N`` version.

    Examples:
        ("1.0.0", prerelease, "alpha") → "1.0.1-alpha.0"
        ("1.0.1-alpha.0", prerelease, "alpha") → "1.0.1-alpha.1"
        ("1.0.1-alpha.1", prerelease, "beta") → "1.0.1-beta.0"
        ("1.0.0", minor, "rc") → "1.1.0-rc.0"
    """
    v = parse_version(current)
    if v.prerelease:
        identifier, _, ordinal = v.prerelease.rpartition(".")
        if not identifier:
            identifier, ordinal = ordinal, ""
        release = semver.Version(v.major, v.minor, v.patch)
        if identifier == preid:
            number = int(ordinal) + 1 if ordinal.isdigit() else 0
            return f"{release}-{preid}.{number}"
        if kind is BumpKind.PRERELEASE:
            # New identifier on the same release line starts a fresh ordinal
            return f"{release}-{preid}.0"
        return f"{_bump_core(release, kind)}-{preid}.0"
    return f"{_bump_core(v, kind)}-{preid}.0"


def expand_pattern(pattern: str, current: str, now: datetime | None = None) -> str:
    """Substitute the recognized placeholders in a custom version template.

    Recognized: ``{{year}}``, ``{{month}}``, ``{{day}}`` (zero padded),
    ``{{timestamp}}`` (milliseconds since the epoch) and ``{{current}}``.
    Anything else is left as written.
    """
    now = now or datetime.now()
    replacements = {
        "{{year}}": str(now.year),
        "{{month}}": f"{now.month:02d}",
        "{{day}}": f"{now.day:02d}",
        "{{timestamp}}": str(int(now.timestamp() * 1000)),
        "{{current}}": current,
    }
    result = pattern
    for placeholder, value in replacements.items():
        result = result.replace(placeholder, value)
    return result


def bump_custom(
    current: str, kind: BumpKind, pattern: str | None, now: datetime | None = None
) -> str:
    """Expand ``pattern``; without one, behave like the semver strategy."""
    if not pattern:
        return bump_semver(current, kind)
    return expand_pattern(pattern, current, now)


def validate_version(version: str, strategy: StrategyName = StrategyName.SEMVER) -> bool:
    """Check a version string against the grammar of ``strategy``."""
    if not version or not isinstance(version, str):
        return False
    return any(p.match(version) for p in GRAMMARS[strategy])


def apply_label(version: str, label: str | None) -> str:
    """Replace any prerelease part of ``version`` with ``label``.

    Examples:
        ("1.2.3", "rc1") → "1.2.3-rc1"
        ("1.2.3-alpha.0", "beta") → "1.2.3-beta"
    """
    if not label:
        return version
    if not LABEL_PATTERN.match(label):
        raise InvalidVersionFormat(
            f"Invalid label format: {label}. "
            "Use alphanumeric characters, hyphens, or dots."
        )
    return f"{version.split('-')[0]}-{label}"


def next_version(
    current: str,
    kind: BumpKind,
    strategy: VersionStrategyConfig,
    now: datetime | None = None,
) -> str:
    """Compute and validate the next version under the active strategy.

    Raises:
        InvalidVersionFormat: If ``current`` cannot be parsed.
        StrategyInvariantViolation: If the result fails the strategy grammar.
    """
    name = strategy.strategy
    if name is StrategyName.DATE:
        result = bump_date(current, (now or datetime.now()).date())
    elif name is StrategyName.PRERELEASE:
        result = bump_prerelease(current, kind, strategy.prerelease_id)
    elif name is StrategyName.CUSTOM:
        result = bump_custom(current, kind, strategy.pattern, now)
    elif kind is BumpKind.PRERELEASE:
        # An explicit prerelease bump under semver uses the prerelease rule
        result = bump_prerelease(current, kind, strategy.prerelease_id)
    else:
        result = bump_semver(current, kind)

    ensure_valid(result, name)
    return result


def ensure_valid(version: str, strategy: StrategyName) -> None:
    """Raise ``StrategyInvariantViolation`` unless ``version`` is valid."""
    if not validate_version(version, strategy):
        raise StrategyInvariantViolation(
            f"Strategy '{strategy.value}' produced an invalid version: {version!r}"
        )


def compare_versions(a: str, b: str) -> int:
    """Return 1, 0 or -1 as ``a`` is newer than, equal to, or older than ``b``."""
    try:
        left, right = Version(a), Version(b)
    except InvalidVersion:
        return parse_version(a).compare(parse_version(b))
    return (left > right) - (left < right)
