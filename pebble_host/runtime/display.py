# pebble_host/runtime/display.py
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Optional

from pebble_host.core.errors import ConnectionExhaustedError
from pebble_host.transport.display import DisplayConnection
from pebble_host.transport.errors import DisplayConnectError, DisplayError

DEFAULT_CEILING = 30
DEFAULT_INTERVAL_S = 1.5


class ReconnectStatus(str, enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class ReconnectEvent(str, enum.Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RETRY_ELAPSED = "retry_elapsed"
    CANCEL = "cancel"


_TERMINAL = (ReconnectStatus.EXHAUSTED, ReconnectStatus.CANCELLED)


@dataclass(frozen=True)
class ReconnectState:
    attempt: int = 0
    ceiling: int = DEFAULT_CEILING
    status: ReconnectStatus = ReconnectStatus.CONNECTING
    last_reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL


def transition(state: ReconnectState, event: ReconnectEvent, reason: Optional[str] = None) -> ReconnectState:
    """
    Pure transition function. Terminal states absorb every event; events that
    do not apply to the current status leave it unchanged.
    """
    if state.is_terminal:
        return state

    if event is ReconnectEvent.CANCEL:
        return replace(state, status=ReconnectStatus.CANCELLED)

    if event is ReconnectEvent.CONNECTED:
        if state.status is ReconnectStatus.CONNECTING:
            return replace(state, status=ReconnectStatus.CONNECTED, attempt=0, last_reason=None)
        return state

    if event is ReconnectEvent.DISCONNECTED:
        if state.status not in (ReconnectStatus.CONNECTING, ReconnectStatus.CONNECTED):
            return state
        attempt = state.attempt + 1
        if attempt >= state.ceiling:
            return replace(state, status=ReconnectStatus.EXHAUSTED, attempt=attempt, last_reason=reason)
        return replace(state, status=ReconnectStatus.RETRYING, attempt=attempt, last_reason=reason)

    if event is ReconnectEvent.RETRY_ELAPSED:
        if state.status is ReconnectStatus.RETRYING:
            return replace(state, status=ReconnectStatus.CONNECTING)
        return state

    return state


StateCallback = Callable[[ReconnectState], None]
ExhaustedCallback = Callable[[ConnectionExhaustedError], None]


class DisplayReconnectLoop:
    """
    Keeps a remote display connection alive across emulator restarts.

    Connection refusals while the emulator boots are expected; only reaching
    the ceiling is reported (on_exhausted). cancel() stops the loop at the next
    suspension point and never leads to on_exhausted.
    """

    def __init__(
        self,
        connection: DisplayConnection,
        *,
        ceiling: int = DEFAULT_CEILING,
        interval_s: float = DEFAULT_INTERVAL_S,
        on_state: Optional[StateCallback] = None,
        on_exhausted: Optional[ExhaustedCallback] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if ceiling < 1:
            raise ValueError("ceiling must be >= 1")
        self._conn = connection
        self._interval_s = float(interval_s)
        self._on_state = on_state
        self._on_exhausted = on_exhausted
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.RLock()
        self._state = ReconnectState(ceiling=int(ceiling))
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---------------- state ----------------
    @property
    def state(self) -> ReconnectState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ---------------- control ----------------
    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self.run, name="display-reconnect", daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self._cancel.set()
        self._apply(ReconnectEvent.CANCEL)
        self._conn.close()

    def dispose(self, timeout: float = 2.0) -> None:
        self.cancel()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=timeout)

    def wait(self, timeout: Optional[float] = None) -> ReconnectState:
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)
        return self.state

    def send_key(self, key: str) -> bool:
        if self.state.status is not ReconnectStatus.CONNECTED:
            return False
        try:
            self._conn.send_key(key)
        except DisplayError as e:
            self._log.warning("DISPLAY_SEND_KEY_FAILED key=%s err=%s", key, e)
            return False
        return True

    # ---------------- loop ----------------
    def run(self) -> ReconnectState:
        self._log.info("RECONNECT_LOOP_START ceiling=%d interval_s=%.2f", self.state.ceiling, self._interval_s)
        while True:
            st = self.state
            if st.is_terminal:
                break
            if self._cancel.is_set():
                self._apply(ReconnectEvent.CANCEL)
                continue

            try:
                self._conn.connect()
            except DisplayConnectError as e:
                reason: Optional[str] = str(e)
            else:
                self._apply(ReconnectEvent.CONNECTED)
                reason = self._conn.wait_closed(self._cancel)

            if self._cancel.is_set():
                self._apply(ReconnectEvent.CANCEL)
                continue

            st = self._apply(ReconnectEvent.DISCONNECTED, reason)
            if st.status is ReconnectStatus.EXHAUSTED:
                self._notify_exhausted(st)
                break
            if st.is_terminal:
                continue

            self._log.info("RECONNECT_RETRY attempt=%d/%d reason=%s", st.attempt, st.ceiling, reason)
            if self._cancel.wait(self._interval_s):
                self._apply(ReconnectEvent.CANCEL)
                continue
            self._apply(ReconnectEvent.RETRY_ELAPSED)

        self._conn.close()
        final = self.state
        self._log.info("RECONNECT_LOOP_END status=%s attempt=%d", final.status.value, final.attempt)
        return final

    def _apply(self, event: ReconnectEvent, reason: Optional[str] = None) -> ReconnectState:
        with self._lock:
            old = self._state
            new = transition(old, event, reason)
            self._state = new

        if new != old and self._on_state is not None:
            try:
                self._on_state(new)
            except Exception:
                self._log.exception("RECONNECT_STATE_CALLBACK_ERROR")
        return new

    def _notify_exhausted(self, st: ReconnectState) -> None:
        self._log.warning("RECONNECT_EXHAUSTED attempts=%d reason=%s", st.attempt, st.last_reason)
        if self._on_exhausted is None:
            return
        err = ConnectionExhaustedError(
            f"Could not reach the emulator display after {st.attempt} attempts.",
            hint=st.last_reason,
            details={"attempts": st.attempt, "reason": st.last_reason},
        )
        try:
            self._on_exhausted(err)
        except Exception:
            self._log.exception("RECONNECT_EXHAUSTED_CALLBACK_ERROR")
