# pebble_host/runtime/command_runner.py
from __future__ import annotations

import enum
import logging
import shlex
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

from pebble_host.app.config import Environment
from pebble_host.session import DEFAULT_SESSION_NAME, CommandCompletion, SessionChannel
from pebble_host.session._internal.pending_command import STATUS_PENDING

# Display name -> platform id accepted by `pebble install --emulator`
PLATFORMS: Dict[str, str] = {
    "Pebble Classic": "aplite",
    "Pebble Time": "basalt",
    "Pebble Time Round": "chalk",
    "Pebble 2": "diorite",
    "Pebble Time 2": "emery",
}

PROJECT_TYPES: Dict[str, tuple] = {
    "C": ("--c",),
    "C Simple": ("--c", "--simple"),
    "C and JS": ("--c", "--javascript"),
}


CONTROL_SESSION_NAME = "Pebble Control"


class RunFlag(str, enum.Enum):
    LOGS = "--logs"
    VNC = "--vnc"


@dataclass(frozen=True)
class EmulatorTarget:
    platform: str

    def install_args(self) -> tuple:
        return ("--emulator", self.platform)


@dataclass(frozen=True)
class PhoneTarget:
    address: str

    def install_args(self) -> tuple:
        return ("--phone", self.address)


Target = Union[EmulatorTarget, PhoneTarget]


def _join(args: Iterable[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in args)


class CommandRunner:
    """
    Composes toolchain command lines and dispatches them into the shared session.

    Every dispatch interrupts whatever is running in its session first, under a
    submit lock, so two commands are never in flight in the same session.
    Build/install, kill, wipe and new-project use the run session; `emu-*`
    control commands go to a separate control session so they do not stop a
    running `--logs` stream.
    """

    def __init__(
        self,
        channel: SessionChannel,
        *,
        tool: str = "pebble",
        session_name: str = DEFAULT_SESSION_NAME,
        control_session_name: str = CONTROL_SESSION_NAME,
        environment: Optional[Environment] = None,
        install_timeout_s: int = 600,
        logger: Optional[logging.Logger] = None,
    ):
        self._channel = channel
        self._tool = tool
        self._session_name = session_name
        self._control_session_name = control_session_name
        self._env = environment or Environment()
        self._install_timeout_s = int(install_timeout_s)
        self._log = logger or logging.getLogger(__name__)
        self._submit_lock = threading.Lock()

    @property
    def session_name(self) -> str:
        return self._session_name

    @property
    def control_session_name(self) -> str:
        return self._control_session_name

    # ---------------- composition ----------------
    def build_and_install_line(self, target: Target, flags: Iterable[RunFlag] = ()) -> str:
        wanted = {RunFlag(f) for f in flags}
        install = [self._tool, "install", *target.install_args()]
        # stable flag order regardless of the caller's iterable
        install += [f.value for f in RunFlag if f in wanted]

        install_line = _join(install)
        if RunFlag.LOGS in wanted and self._env.wants_install_timeout:
            install_line = f"timeout {self._install_timeout_s} {install_line}"

        return f"{_join([self._tool, 'build'])} && {install_line}"

    # ---------------- operations ----------------
    def run_build_and_install(self, target: Target, flags: Iterable[RunFlag] = ()) -> CommandCompletion:
        line = self.build_and_install_line(target, flags)
        return self.dispatch(line)

    def open_app_config(self, platform: str) -> CommandCompletion:
        return self._control(_join([self._tool, "emu-app-config", "--emulator", platform, "--vnc"]))

    def set_battery(self, platform: str, percent: int, charging: bool = False) -> CommandCompletion:
        pct = int(percent)
        if not 0 <= pct <= 100:
            raise ValueError(f"battery percent out of range: {pct}")
        args = [self._tool, "emu-battery", "--emulator", platform, "--vnc", "--percent", str(pct)]
        if charging:
            args.append("--charging")
        return self._control(_join(args))

    def set_bt_connection(self, platform: str, connected: bool) -> CommandCompletion:
        return self._control(
            _join([self._tool, "emu-bt-connection", "--emulator", platform,
                   "--connected", "yes" if connected else "no"])
        )

    def tap(self, platform: str, direction: str = "x+") -> CommandCompletion:
        return self._control(_join([self._tool, "emu-tap", "--emulator", platform, "--direction", direction]))

    def set_time_format(self, platform: str, fmt: str) -> CommandCompletion:
        if fmt not in ("12h", "24h"):
            raise ValueError(f"time format must be 12h or 24h, got {fmt!r}")
        return self._control(_join([self._tool, "emu-time-format", "--emulator", platform, "--format", fmt]))

    def set_timeline_quick_view(self, platform: str, enabled: bool) -> CommandCompletion:
        return self._control(
            _join([self._tool, "emu-set-timeline-quick-view", "--emulator", platform,
                   "on" if enabled else "off"])
        )

    def kill(self) -> CommandCompletion:
        return self.dispatch(_join([self._tool, "kill"]))

    def wipe(self) -> CommandCompletion:
        return self.dispatch(_join([self._tool, "wipe"]))

    def new_project(
        self,
        directory: str,
        name: str,
        project_type: str = "C",
        *,
        timeout_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandCompletion:
        """
        Scaffold a project in `directory` and wait for the tool to finish.
        """
        if project_type not in PROJECT_TYPES:
            raise ValueError(f"unknown project type {project_type!r}")
        line = (
            f"cd {shlex.quote(directory)} && "
            f"{_join([self._tool, 'new-project', *PROJECT_TYPES[project_type], name])}"
        )
        return self.dispatch(line, wait_for_completion=True, timeout_s=timeout_s, cancel=cancel)

    def interrupt(self, session_name: Optional[str] = None) -> int:
        with self._submit_lock:
            session = self._channel.acquire(session_name or self._session_name)
            return self._channel.interrupt(session)

    def _control(self, command_line: str) -> CommandCompletion:
        return self.dispatch(command_line, session_name=self._control_session_name)

    def dispatch(
        self,
        command_line: str,
        *,
        session_name: Optional[str] = None,
        wait_for_completion: bool = False,
        timeout_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandCompletion:
        name = session_name or self._session_name
        with self._submit_lock:
            session = self._channel.acquire(name)
            self._channel.interrupt(session)
            self._log.info("DISPATCH session=%s cmd=%s", name, command_line)
            pending = self._channel.submit(session, command_line)

        if not wait_for_completion:
            return pending.snapshot(STATUS_PENDING)

        # Wait outside the lock so a newer dispatch can interrupt this one.
        return self._channel.wait(session, pending, timeout_s=timeout_s, cancel=cancel)
