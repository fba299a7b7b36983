from __future__ import annotations

from pathlib import Path

import pytest

from pebble_host.app.config import Environment, PebbleHostConfig, load_config
from pebble_host.core.errors import ConfigError
from pebble_host.toolchain.version import Version


def _write(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "config.yml"
    p.write_text(text, encoding="utf-8")
    return p


def test_defaults_without_file():
    cfg = load_config()
    assert cfg.tool == "pebble"
    assert cfg.session_name == "Pebble Run"
    assert cfg.min_tool_version == Version(5, 0, 6)
    assert cfg.min_sdk_version == Version(4, 5, 0)
    assert cfg.upgrade_command == ("uv", "tool", "upgrade", "pebble-tool")
    assert cfg.reconnect_ceiling == 30
    assert cfg.debounce_ticks == 25


def test_yaml_values_are_parsed(tmp_path):
    p = _write(
        tmp_path,
        """
tool: /opt/pebble/bin/pebble
min_tool_version: "5.1"
min_sdk_version: v4.6.1
upgrade_command: pipx upgrade pebble-tool
display_port: "5902"
reconnect_ceiling: 5
settings_path: ~/pebble-settings.yml
""",
    )
    cfg = load_config(p)
    assert cfg.tool == "/opt/pebble/bin/pebble"
    assert cfg.min_tool_version == Version(5, 1, 0)
    assert cfg.min_sdk_version == Version(4, 6, 1)
    assert cfg.upgrade_command == ("pipx", "upgrade", "pebble-tool")
    assert cfg.display_port == 5902
    assert cfg.reconnect_ceiling == 5
    assert cfg.settings_path == Path("~/pebble-settings.yml").expanduser()


def test_upgrade_command_list(tmp_path):
    p = _write(tmp_path, "upgrade_command: [pip, install, -U, pebble-tool]\n")
    assert load_config(p).upgrade_command == ("pip", "install", "-U", "pebble-tool")


def test_overrides_win_and_none_is_ignored(tmp_path):
    p = _write(tmp_path, "tool: a\n")
    cfg = load_config(p, overrides={"tool": "b", "session_name": None})
    assert cfg.tool == "b"
    assert cfg.session_name == "Pebble Run"


def test_empty_file_gives_defaults(tmp_path):
    assert load_config(_write(tmp_path, "")) == PebbleHostConfig()


@pytest.mark.parametrize(
    "text, fragment",
    [
        ("nope: 1\n", "Unknown config keys"),
        ("- a\n- b\n", "mapping"),
        ("min_tool_version: five\n", "Invalid version"),
        ("upgrade_command: []\n", "must not be empty"),
        ("reconnect_ceiling: 0\n", "reconnect_ceiling"),
        ("debounce_ticks: 0\n", "debounce_ticks"),
        ("display_port: abc\n", "display_port"),
        ("display_carrier: udp\n", "display_carrier"),
        ("control_session_name: Pebble Run\n", "control_session_name"),
        ("tool: [unclosed\n", "Failed to parse"),
    ],
)
def test_invalid_config_raises(tmp_path, text, fragment):
    with pytest.raises(ConfigError) as ei:
        load_config(_write(tmp_path, text))
    assert fragment in ei.value.message
    assert ei.value.code == "config_error"


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yml")


def test_environment_defaults():
    env = Environment.from_environ({})
    assert not env.remote_container
    assert env.timeout_identifier is None
    assert not env.wants_install_timeout


@pytest.mark.parametrize(
    "environ, remote",
    [
        ({"REMOTE_CONTAINERS": "true"}, True),
        ({"CODESPACES": "true"}, True),
        ({"CODESPACES": "1"}, True),
        ({"REMOTE_CONTAINERS": "false"}, False),
        ({"REMOTE_CONTAINERS": ""}, False),
    ],
)
def test_environment_remote_container(environ, remote):
    assert Environment.from_environ(environ).remote_container is remote


def test_environment_timeout_identifier():
    env = Environment.from_environ({"CODESPACES": "true", "CODESPACE_NAME": "fluffy-space"})
    assert env.timeout_identifier == "fluffy-space"
    assert env.wants_install_timeout
