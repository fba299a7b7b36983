from __future__ import annotations

import pytest

from pebble_host.toolchain.policy import (
    MIN_SDK_VERSION,
    MIN_TOOL_VERSION,
    VersionPolicy,
    is_below,
    needs_sdk_install,
    needs_tool_upgrade,
)
from pebble_host.toolchain.version import ToolchainStatus, Version


def test_minimums():
    assert MIN_TOOL_VERSION == Version(5, 0, 6)
    assert MIN_SDK_VERSION == Version(4, 5, 0)


@pytest.mark.parametrize(
    "tool, expected",
    [
        (None, True),
        (Version(4, 9, 9), True),
        (Version(5, 0, 5), True),
        (Version(5, 0, 6), False),
        (Version(5, 0, 7), False),
        (Version(6, 0, 0), False),
    ],
)
def test_needs_tool_upgrade_boundaries(tool, expected):
    assert needs_tool_upgrade(ToolchainStatus(tool_version=tool, sdk_version=Version(4, 5))) is expected


@pytest.mark.parametrize(
    "sdk, expected",
    [
        (None, True),
        (Version(4, 3, 0), True),
        (Version(4, 4, 99), True),
        (Version(4, 5, 0), False),
        (Version(4, 6, 0), False),
    ],
)
def test_needs_sdk_install_boundaries(sdk, expected):
    assert needs_sdk_install(ToolchainStatus(tool_version=Version(5, 0, 6), sdk_version=sdk)) is expected


def test_is_below_treats_missing_as_older():
    assert is_below(None, Version(0, 0, 0))
    assert not is_below(Version(1, 0, 0), Version(1, 0, 0))


def test_custom_policy_and_is_ready():
    pol = VersionPolicy(min_tool_version=Version(6), min_sdk_version=Version(5))
    st = ToolchainStatus(tool_version=Version(5, 0, 6), sdk_version=Version(4, 5))
    assert pol.needs_tool_upgrade(st)
    assert pol.needs_sdk_install(st)
    assert not pol.is_ready(st)

    assert VersionPolicy().is_ready(st)
