# pebble_host/session/shell.py
from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
import uuid
from collections import deque
from typing import Any, Callable, Deque, Mapping, Optional, Set, Tuple

from pebble_host.core.errors import SessionUnavailableError
from pebble_host.interfaces.command_sink import (
    KIND_FAIL,
    KIND_INTERRUPT,
    KIND_INTERRUPTED,
    KIND_OK,
    KIND_SEND,
    CommandEvent,
    CommandSink,
)

from ._internal.exec_worker import ExecWorker
from ._internal.pending_command import PendingCommand

PopenFactory = Callable[..., Any]


class ShellSession:
    """
    One named interactive execution context, the terminal equivalent.

    Command lines run one at a time through the system shell, strictly in
    submission order. Each line runs in its own process group so interrupt()
    reaches the whole pipeline (Ctrl-C semantics) without ending the session.
    """

    supports_completion = True

    def __init__(
        self,
        name: str,
        *,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        stdout: Any = None,
        stderr: Any = None,
        interrupt_grace_s: float = 3.0,
        cmd_sink: Optional[CommandSink] = None,
        logger: Optional[logging.Logger] = None,
        popen: PopenFactory = subprocess.Popen,
    ):
        self.name = str(name)
        self.session_id = uuid.uuid4().hex
        self.cwd = cwd
        self.env = dict(env) if env is not None else None
        self._stdout = stdout
        self._stderr = stderr
        self._interrupt_grace_s = float(interrupt_grace_s)
        self._cmd_sink = cmd_sink
        self._log = logger or logging.getLogger(__name__)
        self._popen = popen

        self._cond = threading.Condition()
        self._queue: Deque[PendingCommand] = deque()
        self._current: Optional[Tuple[PendingCommand, Any]] = None
        self._interrupted: Set[str] = set()
        self._closed = False

        self._worker = ExecWorker(self)
        self._worker.start()

    # ---------------- state ----------------
    @property
    def is_live(self) -> bool:
        with self._cond:
            return not self._closed

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._current is not None or bool(self._queue)

    # ---------------- command API ----------------
    def submit(self, command_line: str) -> PendingCommand:
        pending = PendingCommand(command_line)
        with self._cond:
            if self._closed:
                raise SessionUnavailableError(
                    f"Session '{self.name}' is closed.",
                    details={"session_id": self.session_id},
                )
            # "send" is recorded before the worker can report completion.
            self._emit(KIND_SEND, pending)
            self._queue.append(pending)
            self._cond.notify_all()

        self._log.info("SESSION_SEND name=%s token=%s cmd=%s", self.name, pending.token, command_line)
        return pending

    def interrupt(self) -> int:
        """
        Ctrl-C: drop queued lines, signal the foreground command and wait for it
        to exit. Returns the number of commands affected.
        """
        with self._cond:
            dropped = list(self._queue)
            self._queue.clear()
            current = self._current
            if current is not None:
                self._interrupted.add(current[0].token)

        for pending in dropped:
            pending.set_interrupted()
            self._emit(KIND_INTERRUPTED, pending)

        self._log.info(
            "SESSION_INTERRUPT name=%s running=%s dropped=%d",
            self.name,
            current is not None,
            len(dropped),
        )
        self._emit(KIND_INTERRUPT, None, extra={"dropped": len(dropped), "running": current is not None})

        if current is not None:
            self._stop_foreground(*current)

        return len(dropped) + (1 if current is not None else 0)

    def wait_idle(self, timeout: Optional[float] = None, *, cancel: Optional[threading.Event] = None) -> bool:
        """Block until nothing is queued or running. False on timeout or cancel."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._current is not None or self._queue:
                if cancel is not None and cancel.is_set():
                    return False
                wait_s = 0.1
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return False
                    wait_s = min(wait_s, remaining)
                self._cond.wait(wait_s)
        return True

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()

        self.interrupt()
        self._worker.stop()
        with self._cond:
            self._cond.notify_all()
        if threading.current_thread() is not self._worker:
            self._worker.join(timeout=1.0)
        self._log.info("SESSION_CLOSED name=%s", self.name)

    # ---------------- worker side ----------------
    def _pump_exec(self) -> None:
        with self._cond:
            while not self._queue and not self._closed:
                self._cond.wait(0.1)
                if not self._queue:
                    return
            if self._closed and not self._queue:
                self._worker.stop()
                return

            pending = self._queue.popleft()
            proc = self._spawn(pending)
            if proc is None:
                return
            self._current = (pending, proc)

        try:
            rc = proc.wait()
        finally:
            with self._cond:
                self._current = None
                was_interrupted = pending.token in self._interrupted
                self._interrupted.discard(pending.token)
                self._cond.notify_all()

        if was_interrupted:
            pending.set_interrupted(rc)
            self._emit(KIND_INTERRUPTED, pending, exit_code=rc)
        else:
            pending.set_exit(rc)
            self._emit(KIND_OK if rc == 0 else KIND_FAIL, pending, exit_code=rc)
        self._log.info("SESSION_CMD_DONE name=%s token=%s exit_code=%s", self.name, pending.token, rc)

    def _spawn(self, pending: PendingCommand) -> Any:
        kwargs = {
            "shell": True,
            "cwd": self.cwd,
            "env": self.env,
            "stdout": self._stdout,
            "stderr": self._stderr,
            "stdin": subprocess.DEVNULL,
        }
        if os.name == "posix":
            kwargs["start_new_session"] = True
        else:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        try:
            return self._popen(pending.command_line, **kwargs)
        except OSError as e:
            self._log.warning("SESSION_SPAWN_FAILED name=%s err=%s", self.name, e)
            pending.set_exit(127)
            self._emit(KIND_FAIL, pending, exit_code=127, extra={"error": str(e)})
            return None

    def _stop_foreground(self, pending: PendingCommand, proc: Any) -> None:
        _send_interrupt(proc)
        pending.wait(self._interrupt_grace_s)
        if pending.done():
            return

        self._log.warning("SESSION_INTERRUPT_ESCALATE name=%s token=%s", self.name, pending.token)
        try:
            proc.terminate()
        except OSError:
            pass
        pending.wait(self._interrupt_grace_s)
        if not pending.done():
            try:
                proc.kill()
            except OSError:
                pass
            pending.wait(self._interrupt_grace_s)

    def _emit(
        self,
        kind: str,
        pending: Optional[PendingCommand],
        *,
        exit_code: Optional[int] = None,
        extra: Optional[dict] = None,
    ) -> None:
        if self._cmd_sink is None:
            return
        try:
            self._cmd_sink.on_command(
                CommandEvent(
                    session=self.name,
                    kind=kind,
                    token=pending.token if pending is not None else None,
                    command_line=pending.command_line if pending is not None else None,
                    exit_code=exit_code,
                    extra=extra,
                )
            )
        except Exception:
            self._log.exception("COMMAND_SINK_ERROR name=%s kind=%s", self.name, kind)

    def __repr__(self) -> str:
        return f"ShellSession(name={self.name!r}, id={self.session_id[:8]}, live={self.is_live})"


def _send_interrupt(proc: Any) -> None:
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGINT)
        else:
            proc.send_signal(signal.CTRL_BREAK_EVENT)
    except (ProcessLookupError, PermissionError):
        pass
    except OSError:
        proc.terminate()
