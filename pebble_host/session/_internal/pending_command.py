# pebble_host/session/_internal/pending_command.py
from __future__ import annotations

import threading
import time
import uuid
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Optional

# Terminal statuses carried by CommandCompletion.status
STATUS_OK = "ok"
STATUS_FAIL = "fail"
STATUS_INTERRUPTED = "interrupted"
# Wait outcomes (the command itself may still be running)
STATUS_PENDING = "pending"
STATUS_TIMEOUT = "timeout"
STATUS_CANCELLED = "cancelled"


@dataclass(frozen=True)
class CommandCompletion:
    token: str
    command_line: str
    status: str
    exit_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class PendingCommand:
    """Holds a Future resolved when the session reports the command finished."""

    def __init__(self, command_line: str, token: Optional[str] = None):
        self.command_line = str(command_line)
        self.token = token or uuid.uuid4().hex
        self.created_at = time.perf_counter()
        self.future: Future = Future()

    def add_done_callback(self, cb: Callable[[Future], Any]) -> Any:
        """Forward callback registration to the underlying Future."""
        return self.future.add_done_callback(cb)

    def done(self) -> bool:
        return self.future.done()

    def set_exit(self, exit_code: int) -> None:
        """Resolve from a process exit code. Ignored once done."""
        status = STATUS_OK if int(exit_code) == 0 else STATUS_FAIL
        self._resolve(status, int(exit_code))

    def set_interrupted(self, exit_code: Optional[int] = None) -> None:
        self._resolve(STATUS_INTERRUPTED, exit_code)

    def _resolve(self, status: str, exit_code: Optional[int]) -> None:
        if self.future.done():
            return
        completion = CommandCompletion(
            token=self.token,
            command_line=self.command_line,
            status=status,
            exit_code=exit_code,
        )
        try:
            self.future.set_result(completion)
        except Exception:
            # Lost a race with another resolver; first result wins.
            pass

    def snapshot(self, status: str) -> CommandCompletion:
        return CommandCompletion(token=self.token, command_line=self.command_line, status=status)

    def wait(
        self,
        timeout: Optional[float] = None,
        *,
        cancel: Optional[threading.Event] = None,
        poll_s: float = 0.05,
    ) -> CommandCompletion:
        """
        Blocking wait for completion.

        Returns a "timeout" or "cancelled" snapshot instead of raising; the
        underlying command is not affected.
        """
        if cancel is None:
            try:
                return self.future.result(timeout=timeout)
            except FutureTimeout:
                return self.snapshot(STATUS_TIMEOUT if timeout else STATUS_PENDING)

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if cancel.is_set():
                return self.snapshot(STATUS_CANCELLED)

            slice_s = poll_s
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return self.snapshot(STATUS_TIMEOUT)
                slice_s = min(slice_s, remaining)

            try:
                return self.future.result(timeout=slice_s)
            except FutureTimeout:
                continue
