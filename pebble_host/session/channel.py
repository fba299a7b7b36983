# pebble_host/session/channel.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from pebble_host.core.errors import SessionUnavailableError

from ._internal.pending_command import STATUS_PENDING, CommandCompletion, PendingCommand
from .shell import ShellSession

DEFAULT_SESSION_NAME = "Pebble Run"

SessionFactory = Callable[[str], ShellSession]


class SessionChannel:
    """
    Registry of named sessions with acquire-or-create semantics.

    The registry is the only shared mutable state; acquire() is atomic
    (check-then-create under one lock), so concurrent callers for the same
    name always end up with the same session.
    """

    def __init__(
        self,
        factory: Optional[SessionFactory] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self._log = logger or logging.getLogger(__name__)
        self._factory: SessionFactory = factory or (lambda name: ShellSession(name, logger=self._log))
        self._lock = threading.Lock()
        self._sessions: Dict[str, ShellSession] = {}

    def acquire(self, name: str = DEFAULT_SESSION_NAME) -> ShellSession:
        with self._lock:
            session = self._sessions.get(name)
            if session is not None and session.is_live:
                return session

            if session is not None:
                self._log.info("SESSION_REPLACED name=%s old=%s", name, session.session_id)
            session = self._factory(name)
            self._sessions[name] = session
            self._log.info("SESSION_CREATED name=%s id=%s", name, session.session_id)
            return session

    def get(self, name: str = DEFAULT_SESSION_NAME) -> Optional[ShellSession]:
        """Lookup without creation; None if absent or closed."""
        with self._lock:
            session = self._sessions.get(name)
        if session is None or not session.is_live:
            return None
        return session

    def names(self) -> List[str]:
        with self._lock:
            return [n for n, s in self._sessions.items() if s.is_live]

    def interrupt(self, session: ShellSession) -> int:
        return session.interrupt()

    def submit(self, session: ShellSession, command_line: str) -> PendingCommand:
        try:
            return session.submit(command_line)
        except SessionUnavailableError:
            # Closed between acquire() and submit(): re-create and resubmit once.
            return self.acquire(session.name).submit(command_line)

    def send(
        self,
        session: ShellSession,
        command_line: str,
        *,
        wait_for_completion: bool = False,
        timeout_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandCompletion:
        """
        Submit a line. With wait_for_completion (and a session that reports
        completion) block until the matching completion, a timeout or `cancel`.
        """
        pending = self.submit(session, command_line)
        if not wait_for_completion:
            return pending.snapshot(STATUS_PENDING)
        return self.wait(session, pending, timeout_s=timeout_s, cancel=cancel)

    def wait(
        self,
        session: ShellSession,
        pending: PendingCommand,
        *,
        timeout_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandCompletion:
        """Block on a submitted line; sessions without completion report it still pending."""
        if not getattr(session, "supports_completion", False):
            return pending.snapshot(STATUS_PENDING)
        return pending.wait(timeout_s, cancel=cancel)

    def close(self, name: str = DEFAULT_SESSION_NAME) -> None:
        with self._lock:
            session = self._sessions.pop(name, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for s in sessions:
            try:
                s.close()
            except Exception:
                self._log.exception("SESSION_CLOSE_ERROR name=%s", s.name)
