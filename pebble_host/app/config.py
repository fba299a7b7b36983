# pebble_host/app/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from pebble_host.core.errors import ConfigError
from pebble_host.toolchain.policy import MIN_SDK_VERSION, MIN_TOOL_VERSION
from pebble_host.toolchain.upgrader import DEFAULT_UPGRADE_COMMAND
from pebble_host.toolchain.version import Version, parse_version


def default_settings_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "pebble-host" / "settings.yml"


@dataclass(frozen=True)
class PebbleHostConfig:
    tool: str = "pebble"
    session_name: str = "Pebble Run"
    control_session_name: str = "Pebble Control"
    min_tool_version: Version = MIN_TOOL_VERSION
    min_sdk_version: Version = MIN_SDK_VERSION
    upgrade_command: Tuple[str, ...] = DEFAULT_UPGRADE_COMMAND
    probe_timeout_s: float = 30.0
    upgrade_timeout_s: float = 600.0
    interrupt_grace_s: float = 3.0
    install_timeout_s: int = 600
    display_host: str = "127.0.0.1"
    display_port: int = 5901
    display_carrier: str = "tcp"
    display_ws_path: str = "/"
    reconnect_ceiling: int = 30
    reconnect_interval_s: float = 1.5
    debounce_ticks: int = 25
    debounce_tick_s: float = 1.0
    settings_path: Path = field(default_factory=default_settings_path)


DISPLAY_CARRIERS = ("tcp", "websocket")

_VERSION_KEYS = ("min_tool_version", "min_sdk_version")


def load_config(path: Optional[str | Path] = None, *, overrides: Optional[Mapping[str, Any]] = None) -> PebbleHostConfig:
    """
    Build a config from defaults, an optional YAML file and explicit overrides.

    Unknown keys and unparseable values raise ConfigError.
    """
    data: Dict[str, Any] = {}

    if path is not None:
        p = Path(path)
        try:
            with open(p, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {p}") from None
        except yaml.YAMLError as e:
            raise ConfigError("Failed to parse config file.", hint=str(e), details={"path": str(p)}) from None
        if not isinstance(loaded, dict):
            raise ConfigError("Config root must be a mapping.", details={"path": str(p)})
        data.update(loaded)

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(PebbleHostConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}", details={"keys": unknown})

    for key in _VERSION_KEYS:
        if key in data and not isinstance(data[key], Version):
            ver = parse_version(str(data[key]))
            if ver is None:
                raise ConfigError(f"Invalid version for '{key}': {data[key]!r}")
            data[key] = ver

    if "upgrade_command" in data:
        cmd = data["upgrade_command"]
        if isinstance(cmd, str):
            cmd = cmd.split()
        if not cmd:
            raise ConfigError("'upgrade_command' must not be empty")
        data["upgrade_command"] = tuple(str(c) for c in cmd)

    if "settings_path" in data:
        data["settings_path"] = Path(data["settings_path"]).expanduser()

    for f in fields(PebbleHostConfig):
        if f.name not in data or not isinstance(f.default, (int, float, str)):
            continue
        kind = type(f.default)
        try:
            data[f.name] = kind(data[f.name])
        except (TypeError, ValueError):
            raise ConfigError(
                f"Invalid value for '{f.name}': {data[f.name]!r} (expected {kind.__name__})"
            ) from None

    try:
        cfg = PebbleHostConfig(**data)
    except (TypeError, ValueError) as e:
        raise ConfigError("Invalid config values.", hint=str(e)) from None

    if cfg.display_carrier not in DISPLAY_CARRIERS:
        raise ConfigError(
            f"Invalid display_carrier: {cfg.display_carrier!r}",
            hint=f"Use one of: {', '.join(DISPLAY_CARRIERS)}",
        )
    if cfg.control_session_name == cfg.session_name:
        raise ConfigError("'control_session_name' must differ from 'session_name'")
    if cfg.reconnect_ceiling < 1:
        raise ConfigError("'reconnect_ceiling' must be >= 1")
    if cfg.debounce_ticks < 1:
        raise ConfigError("'debounce_ticks' must be >= 1")
    return cfg


_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Environment:
    """
    Process environment signals consumed (not owned) by the orchestrator.
    """
    remote_container: bool = False
    timeout_identifier: Optional[str] = None

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "Environment":
        env = os.environ if environ is None else environ
        remote = any(
            str(env.get(k, "")).strip().lower() in _TRUTHY
            for k in ("REMOTE_CONTAINERS", "CODESPACES")
        )
        ident = env.get("CODESPACE_NAME") or None
        return cls(remote_container=remote, timeout_identifier=ident)

    @property
    def wants_install_timeout(self) -> bool:
        return self.timeout_identifier is not None
