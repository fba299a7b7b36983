# pebble_host/core/recording/command.py
from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pebble_host.interfaces.command_sink import CommandEvent, CommandSink


def event_record(event: CommandEvent) -> Dict[str, Any]:
    """Flatten an event into a JSON-ready dict, dropping unset fields."""
    out = {
        "ts_utc": event.ts_utc or datetime.now(timezone.utc).isoformat(),
        "session": event.session,
        "kind": event.kind,
        "token": event.token,
        "command_line": event.command_line,
        "exit_code": event.exit_code,
    }
    if event.extra:
        out.update(dict(event.extra))
    return {k: v for k, v in out.items() if v is not None}


@dataclass
class CommandTraceLogger(CommandSink):
    """
    Session command trace: every event goes to `logger` at DEBUG and, when
    `file_path` is set, is appended to it as one JSON line.
    """
    logger: logging.Logger
    file_path: Optional[Path] = None

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._fh = None
        if self.file_path is not None:
            self.file_path = Path(self.file_path)
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self.file_path, "a", encoding="utf-8")

    def close(self) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.close()
                self._fh = None

    def on_command(self, event: CommandEvent) -> None:
        rec = event_record(event)
        self.logger.debug(
            "CMD_%s session=%s token=%s exit_code=%s",
            event.kind.upper(),
            event.session,
            event.token,
            event.exit_code,
        )

        with self._lock:
            if self._fh is None:
                return
            self._fh.write(json.dumps(rec, ensure_ascii=False) + "\n")
            self._fh.flush()
