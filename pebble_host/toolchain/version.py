# pebble_host/toolchain/version.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?$")

# "Pebble Tool v5.0.6 (active SDK: v4.5)"
_BANNER_RE = re.compile(
    r"^\s*(?P<name>.*?)\s*v(?P<tool>\d+(?:\.\d+){0,2})\b"
    r"(?:\s*\(\s*active SDK:\s*v?(?P<sdk>\d+(?:\.\d+){0,2})\s*\))?"
)

# "4.5 (active)" / "4.3"
_SDK_LINE_RE = re.compile(r"^\s*v?(?P<ver>\d+(?:\.\d+){0,2})\b(?P<rest>.*)$")


@dataclass(frozen=True, order=True)
class Version:
    """
    (major, minor, patch) triple. Ordering is lexicographic on the triple.
    """
    major: int = 0
    minor: int = 0
    patch: int = 0

    def __post_init__(self) -> None:
        for part in (self.major, self.minor, self.patch):
            if not isinstance(part, int) or part < 0:
                raise ValueError(f"Invalid version component {part!r}")

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class ToolchainStatus:
    """
    Snapshot of the external toolchain. None means not installed or unparseable.
    """
    tool_version: Optional[Version] = None
    sdk_version: Optional[Version] = None

    @property
    def tool_installed(self) -> bool:
        return self.tool_version is not None


@dataclass(frozen=True)
class SdkListing:
    installed: List[Version] = field(default_factory=list)
    available: List[Version] = field(default_factory=list)
    active: Optional[Version] = None


def parse_version(text: Optional[str]) -> Optional[Version]:
    """
    Parse "5", "5.0", "5.0.6" or "v5.0.6". Missing components default to 0.
    Returns None for anything else.
    """
    if text is None:
        return None
    m = _VERSION_RE.match(str(text).strip())
    if not m:
        return None
    parts = [int(p) if p is not None else 0 for p in m.groups()]
    return Version(*parts)


def parse_banner(text: Optional[str]) -> ToolchainStatus:
    """
    Parse `<tool> --version` output into a ToolchainStatus.

    Tolerates a missing "(active SDK: ...)" clause; never raises.
    """
    if not text:
        return ToolchainStatus()

    for line in str(text).splitlines():
        m = _BANNER_RE.match(line)
        if not m:
            continue
        tool = parse_version(m.group("tool"))
        if tool is None:
            continue
        return ToolchainStatus(tool_version=tool, sdk_version=parse_version(m.group("sdk")))

    return ToolchainStatus()


def parse_sdk_list(text: Optional[str]) -> SdkListing:
    """
    Parse `<tool> sdk list` output.

    Versions before an "Available" heading are installed; an "(active)" marker
    on a line selects the active SDK.
    """
    installed: List[Version] = []
    available: List[Version] = []
    active: Optional[Version] = None
    bucket = installed

    for line in (text or "").splitlines():
        low = line.strip().lower()
        if not low:
            continue
        if low.startswith("installed"):
            bucket = installed
            continue
        if low.startswith("available"):
            bucket = available
            continue

        m = _SDK_LINE_RE.match(line)
        if not m:
            continue
        ver = parse_version(m.group("ver"))
        if ver is None:
            continue
        bucket.append(ver)
        if "active" in m.group("rest").lower():
            active = ver

    return SdkListing(installed=installed, available=available, active=active)
