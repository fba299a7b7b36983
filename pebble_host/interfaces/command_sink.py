# pebble_host/interfaces/command_sink.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

KIND_SEND = "send"
KIND_INTERRUPT = "interrupt"
KIND_OK = "ok"
KIND_FAIL = "fail"
KIND_INTERRUPTED = "interrupted"


@dataclass(frozen=True, slots=True)
class CommandEvent:
    """
    One thing that happened to a session: a line was sent, the session was
    interrupted, or a line finished. `token` ties completions to their send.
    """
    session: str
    kind: str
    token: Optional[str] = None
    command_line: Optional[str] = None
    exit_code: Optional[int] = None
    extra: Optional[Mapping[str, Any]] = None
    ts_utc: Optional[str] = None


class CommandSink(Protocol):
    def on_command(self, event: CommandEvent) -> None: ...
    def close(self) -> None: ...
