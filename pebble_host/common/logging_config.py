# pebble_host/common/logging_config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class LogDefaults:
    app_log_name: str = "pebble-host.log"
    commands_log_name: str = "commands.jsonl"
    file_level: int = logging.INFO
    fmt: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

DEFAULTS = LogDefaults()


def logs_root() -> Path:
    base = os.environ.get("XDG_STATE_HOME") or str(Path.home() / ".local" / "state")
    root = Path(base) / "pebble-host" / "logs"
    root.mkdir(parents=True, exist_ok=True)
    return root


def configure_console_logging(verbose: bool = False) -> None:
    root = logging.getLogger()
    if any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler) for h in root.handlers):
        return
    sh = logging.StreamHandler()
    sh.setLevel(logging.DEBUG if verbose else logging.WARNING)
    sh.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root.addHandler(sh)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


def configure_file_logging(app_log_path: Path) -> None:
    """
    Add a file handler to the root logger (idempotent).
    """
    root = logging.getLogger()
    app_log_path.parent.mkdir(parents=True, exist_ok=True)
    target = str(app_log_path.resolve())

    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target:
            return

    fh = logging.FileHandler(app_log_path, encoding="utf-8", delay=True)
    fh.setLevel(DEFAULTS.file_level)
    fh.setFormatter(logging.Formatter(DEFAULTS.fmt))
    root.addHandler(fh)

    if root.level > DEFAULTS.file_level:
        root.setLevel(DEFAULTS.file_level)
