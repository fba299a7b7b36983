# pebble_host/session/_internal/exec_worker.py
from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pebble_host.session.shell import ShellSession

_MAX_BACKOFF_S = 1.0


class ExecWorker(threading.Thread):
    """
    Per-session executor thread. Each _pump_exec() call runs at most one queued
    line to completion; the loop ends once the session asks it to stop.
    """

    def __init__(self, session: "ShellSession"):
        super().__init__(daemon=True, name=f"exec-{session.name}")
        self.session = session
        self._stop_event = threading.Event()
        self.failures = 0

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        backoff = 0.05
        while not self.stopping:
            try:
                self.session._pump_exec()
            except Exception:
                self.failures += 1
                self.session._log.exception(
                    "EXEC_WORKER_EXCEPTION session=%s failures=%d",
                    self.session.name,
                    self.failures,
                )
                self._stop_event.wait(backoff)
                backoff = min(backoff * 2, _MAX_BACKOFF_S)
            else:
                backoff = 0.05

    def stop(self) -> None:
        self._stop_event.set()
