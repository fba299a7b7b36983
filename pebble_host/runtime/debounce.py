# pebble_host/runtime/debounce.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

TickCallback = Callable[[float], None]   # fraction complete, 0..1
DoneCallback = Callable[[], None]


class BatteryDebounceTimer:
    """
    Cancellable countdown emulating a hardware link-loss debounce.

    Exactly one of on_cancel / on_complete is delivered, at most once.
    """

    def __init__(self, *, tick_s: float = 1.0, logger: Optional[logging.Logger] = None):
        self.tick_s = float(tick_s)
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._finished = False
        self._outcome: Optional[str] = None

        self.total_ticks = 0
        self.remaining_ticks = 0

    # ---------------- state ----------------
    @property
    def cancelled(self) -> bool:
        return self._outcome == "cancelled"

    @property
    def completed(self) -> bool:
        return self._outcome == "completed"

    @property
    def active(self) -> bool:
        with self._lock:
            return self._thread is not None and not self._finished

    # ---------------- control ----------------
    def start(
        self,
        total_ticks: int,
        *,
        on_tick: Optional[TickCallback] = None,
        on_cancel: Optional[DoneCallback] = None,
        on_complete: Optional[DoneCallback] = None,
    ) -> "BatteryDebounceTimer":
        if total_ticks < 1:
            raise ValueError("total_ticks must be >= 1")
        with self._lock:
            if self._thread is not None:
                raise RuntimeError("BatteryDebounceTimer already started")
            self.total_ticks = int(total_ticks)
            self.remaining_ticks = int(total_ticks)
            self._thread = threading.Thread(
                target=self._run,
                args=(on_tick, on_cancel, on_complete),
                name="debounce",
                daemon=True,
            )
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[str]:
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=timeout)
        return self._outcome

    # ---------------- worker ----------------
    def _run(
        self,
        on_tick: Optional[TickCallback],
        on_cancel: Optional[DoneCallback],
        on_complete: Optional[DoneCallback],
    ) -> None:
        while self.remaining_ticks > 0:
            if self._cancel.wait(self.tick_s):
                break
            self.remaining_ticks -= 1
            fraction = (self.total_ticks - self.remaining_ticks) / self.total_ticks
            if on_tick is not None:
                try:
                    on_tick(fraction)
                except Exception:
                    self._log.exception("DEBOUNCE_TICK_CALLBACK_ERROR")

        # A cancel that lands after the last tick loses to completion.
        outcome = "completed" if self.remaining_ticks == 0 else "cancelled"
        self._deliver(outcome, on_complete if outcome == "completed" else on_cancel)

    def _deliver(self, outcome: str, cb: Optional[DoneCallback]) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
            self._outcome = outcome

        self._log.info(
            "DEBOUNCE_%s ticks=%d remaining=%d",
            outcome.upper(),
            self.total_ticks,
            self.remaining_ticks,
        )
        if cb is not None:
            try:
                cb()
            except Exception:
                self._log.exception("DEBOUNCE_DONE_CALLBACK_ERROR outcome=%s", outcome)


class DebounceGuard:
    """
    Single-flight guard: at most one active debounce timer per subject.
    Starting a subject that is already counting down returns the running timer.
    """

    def __init__(self, *, tick_s: float = 1.0, logger: Optional[logging.Logger] = None):
        self.tick_s = float(tick_s)
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._timers: Dict[str, BatteryDebounceTimer] = {}

    def start(
        self,
        subject: str,
        total_ticks: int,
        *,
        on_tick: Optional[TickCallback] = None,
        on_cancel: Optional[DoneCallback] = None,
        on_complete: Optional[DoneCallback] = None,
    ) -> tuple[BatteryDebounceTimer, bool]:
        """Returns (timer, started_new)."""
        with self._lock:
            running = self._timers.get(subject)
            if running is not None and running.active:
                self._log.info("DEBOUNCE_ALREADY_ACTIVE subject=%s", subject)
                return running, False

            timer = BatteryDebounceTimer(tick_s=self.tick_s, logger=self._log)
            self._timers[subject] = timer
            timer.start(total_ticks, on_tick=on_tick, on_cancel=on_cancel, on_complete=on_complete)
            return timer, True

    def get(self, subject: str) -> Optional[BatteryDebounceTimer]:
        with self._lock:
            timer = self._timers.get(subject)
        if timer is None or not timer.active:
            return None
        return timer

    def cancel(self, subject: str) -> bool:
        timer = self.get(subject)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self, *, wait_s: float = 1.0) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for t in timers:
            t.cancel()
        for t in timers:
            t.wait(wait_s)
