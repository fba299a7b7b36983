from __future__ import annotations

import pytest

from pebble_host.toolchain.version import (
    ToolchainStatus,
    Version,
    parse_banner,
    parse_sdk_list,
    parse_version,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("5", Version(5, 0, 0)),
        ("5.0", Version(5, 0, 0)),
        ("5.0.6", Version(5, 0, 6)),
        ("v4.5", Version(4, 5, 0)),
        (" 10.2.3 ", Version(10, 2, 3)),
    ],
)
def test_parse_version_accepts_short_and_prefixed_forms(text, expected):
    assert parse_version(text) == expected


@pytest.mark.parametrize("text", [None, "", "abc", "5.x", "1.2.3.4", "-1.0", "5..0"])
def test_parse_version_malformed_returns_none(text):
    assert parse_version(text) is None


def test_version_str_parses_back():
    v = Version(5, 0, 6)
    assert parse_version(str(v)) == v


def test_version_ordering_is_lexicographic():
    assert Version(4, 9, 9) < Version(5, 0, 0)
    assert Version(5, 0, 5) < Version(5, 0, 6)
    assert Version(5, 1, 0) > Version(5, 0, 99)
    assert Version(4, 5, 0) == Version(4, 5)


def test_version_rejects_negative_component():
    with pytest.raises(ValueError):
        Version(1, -1, 0)


def test_parse_banner_tool_and_sdk():
    st = parse_banner("Pebble Tool v5.0.6 (active SDK: v4.5)\n")
    assert st.tool_version == Version(5, 0, 6)
    assert st.sdk_version == Version(4, 5, 0)
    assert st.tool_installed


def test_parse_banner_without_sdk_clause():
    st = parse_banner("Pebble Tool v5.0.6")
    assert st.tool_version == Version(5, 0, 6)
    assert st.sdk_version is None


def test_parse_banner_skips_noise_lines():
    text = "Checking for updates...\nPebble Tool v4.6.0 (active SDK: v4.3)\n"
    st = parse_banner(text)
    assert st.tool_version == Version(4, 6, 0)
    assert st.sdk_version == Version(4, 3, 0)


@pytest.mark.parametrize("text", [None, "", "command not found", "\n\n"])
def test_parse_banner_garbage_is_empty_status(text):
    assert parse_banner(text) == ToolchainStatus()


def test_parse_sdk_list_buckets_and_active():
    text = """Installed SDKs:
4.5 (active)
4.3

Available SDKs:
4.6
4.5
"""
    listing = parse_sdk_list(text)
    assert listing.installed == [Version(4, 5), Version(4, 3)]
    assert listing.available == [Version(4, 6), Version(4, 5)]
    assert listing.active == Version(4, 5)


def test_parse_sdk_list_empty():
    listing = parse_sdk_list("")
    assert listing.installed == []
    assert listing.available == []
    assert listing.active is None
