# pebble_host/app/settings.py
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from pebble_host.core.errors import ConfigError

_log = logging.getLogger(__name__)

KEY_DEFAULT_PLATFORM = "defaultPlatform"
KEY_PHONE_IP = "phoneIp"
KEY_LAST_PATH = "lastPath"

KNOWN_KEYS = (KEY_DEFAULT_PLATFORM, KEY_PHONE_IP, KEY_LAST_PATH)


class SettingsStore:
    """
    Persisted user settings (YAML key/value file).

    Read lazily on first access; written only through set().
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except FileNotFoundError:
            loaded = {}
        except yaml.YAMLError as e:
            raise ConfigError(
                "Failed to parse settings file.",
                hint=str(e),
                details={"path": str(self.path)},
            ) from None

        if not isinstance(loaded, dict):
            _log.warning("SETTINGS_NOT_A_MAPPING path=%s", self.path)
            loaded = {}
        self._data = loaded
        return self._data

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._load().get(key)
        if value is None or value == "":
            return None
        return str(value)

    def set(self, key: str, value: Optional[str]) -> None:
        if key not in KNOWN_KEYS:
            raise ConfigError(f"Unknown setting '{key}'", details={"known": list(KNOWN_KEYS)})

        with self._lock:
            data = dict(self._load())
            if value is None:
                data.pop(key, None)
            else:
                data[key] = str(value)

            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=True)
            self._data = data
        _log.info("SETTING_STORED key=%s", key)

    def as_dict(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._load())

    # convenience accessors
    @property
    def default_platform(self) -> Optional[str]:
        return self.get(KEY_DEFAULT_PLATFORM)

    @property
    def phone_ip(self) -> Optional[str]:
        return self.get(KEY_PHONE_IP)

    @property
    def last_path(self) -> Optional[str]:
        return self.get(KEY_LAST_PATH)
