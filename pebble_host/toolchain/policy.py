# pebble_host/toolchain/policy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .version import ToolchainStatus, Version

MIN_TOOL_VERSION = Version(5, 0, 6)
MIN_SDK_VERSION = Version(4, 5, 0)


def is_below(v: Optional[Version], target: Version) -> bool:
    """Absent versions count as older than anything."""
    if v is None:
        return True
    return v < target


@dataclass(frozen=True)
class VersionPolicy:
    """
    Pure upgrade gates. No I/O; evaluate on a freshly probed status.
    """
    min_tool_version: Version = MIN_TOOL_VERSION
    min_sdk_version: Version = MIN_SDK_VERSION

    def needs_tool_upgrade(self, status: ToolchainStatus) -> bool:
        return is_below(status.tool_version, self.min_tool_version)

    def needs_sdk_install(self, status: ToolchainStatus) -> bool:
        return status.sdk_version is None or is_below(status.sdk_version, self.min_sdk_version)

    def is_ready(self, status: ToolchainStatus) -> bool:
        return not self.needs_tool_upgrade(status) and not self.needs_sdk_install(status)


DEFAULT_POLICY = VersionPolicy()


def needs_tool_upgrade(status: ToolchainStatus) -> bool:
    return DEFAULT_POLICY.needs_tool_upgrade(status)


def needs_sdk_install(status: ToolchainStatus) -> bool:
    return DEFAULT_POLICY.needs_sdk_install(status)
