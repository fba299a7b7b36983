# pebble_host/app/controller.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from pebble_host.app.config import Environment, PebbleHostConfig
from pebble_host.app.settings import (
    KEY_DEFAULT_PLATFORM,
    KEY_LAST_PATH,
    KEY_PHONE_IP,
    SettingsStore,
)
from pebble_host.core.errors import PebbleHostError, UpgradeFailedError, UserCancelled
from pebble_host.interfaces import CommandSink, Prompter
from pebble_host.runtime.command_runner import (
    PLATFORMS,
    PROJECT_TYPES,
    CommandRunner,
    EmulatorTarget,
    PhoneTarget,
    RunFlag,
)
from pebble_host.runtime.debounce import BatteryDebounceTimer, DebounceGuard, TickCallback
from pebble_host.runtime.display import (
    DisplayReconnectLoop,
    ExhaustedCallback,
    StateCallback,
)
from pebble_host.session import CommandCompletion, SessionChannel, ShellSession
from pebble_host.toolchain import (
    ProcessRunner,
    ToolchainStatus,
    ToolchainUpgrader,
    ToolResult,
    VersionPolicy,
    VersionProbe,
)
from pebble_host.transport.display import (
    DisplayConnection,
    TcpDisplayConnection,
    WebSocketDisplayConnection,
)

DisplayFactory = Callable[[], DisplayConnection]


def make_display_connection(config: PebbleHostConfig) -> DisplayConnection:
    if config.display_carrier == "websocket":
        path = config.display_ws_path if config.display_ws_path.startswith("/") else "/" + config.display_ws_path
        return WebSocketDisplayConnection(f"ws://{config.display_host}:{config.display_port}{path}")
    return TcpDisplayConnection(config.display_host, config.display_port)

_YES_NO = ["No", "Yes"]


@dataclass(frozen=True)
class GateResult:
    """Outcome of the pre-action toolchain gate."""
    ok: bool
    status: ToolchainStatus
    steps: Tuple[ToolResult, ...] = ()
    error: Optional[PebbleHostError] = None

    @property
    def message(self) -> str:
        if self.ok:
            return "toolchain ready"
        return self.error.message if self.error is not None else "toolchain not ready"


@dataclass(frozen=True)
class ActionResult:
    """
    Outcome of a user-facing action. `cancelled` is a normal outcome and
    must not be presented as an error.
    """
    ok: bool
    message: str = ""
    cancelled: bool = False
    completion: Optional[CommandCompletion] = None
    error: Optional[PebbleHostError] = None
    display: Optional[DisplayReconnectLoop] = None
    gate: Optional[GateResult] = None

    @classmethod
    def user_cancelled(cls, what: str) -> "ActionResult":
        return cls(ok=False, cancelled=True, message=f"{what} cancelled", error=UserCancelled(f"{what} cancelled"))

    @classmethod
    def failed(cls, error: PebbleHostError, **kwargs) -> "ActionResult":
        return cls(ok=False, message=error.message, error=error, **kwargs)


class PebbleController:
    """
    App-level orchestrator: toolchain gate, target resolution, shared session
    commands, remote display and debounce flows.
    """

    def __init__(
        self,
        config: PebbleHostConfig,
        *,
        prompter: Prompter,
        settings: Optional[SettingsStore] = None,
        environment: Optional[Environment] = None,
        process_runner: Optional[ProcessRunner] = None,
        channel: Optional[SessionChannel] = None,
        display_factory: Optional[DisplayFactory] = None,
        cmd_sink: Optional[CommandSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config
        self._prompter = prompter
        self._log = logger or logging.getLogger(__name__)
        self._settings = settings or SettingsStore(config.settings_path)
        self._env = environment or Environment.from_environ()

        runner = process_runner or ProcessRunner(logger=self._log)
        self._policy = VersionPolicy(
            min_tool_version=config.min_tool_version,
            min_sdk_version=config.min_sdk_version,
        )
        self._probe = VersionProbe(runner, tool=config.tool, timeout_s=config.probe_timeout_s, logger=self._log)
        self._upgrader = ToolchainUpgrader(
            runner,
            tool=config.tool,
            upgrade_command=config.upgrade_command,
            timeout_s=config.upgrade_timeout_s,
            logger=self._log,
        )

        self._channel = channel or SessionChannel(
            lambda name: ShellSession(
                name,
                interrupt_grace_s=config.interrupt_grace_s,
                cmd_sink=cmd_sink,
                logger=self._log,
            ),
            logger=self._log,
        )
        self._commands = CommandRunner(
            self._channel,
            tool=config.tool,
            session_name=config.session_name,
            control_session_name=config.control_session_name,
            environment=self._env,
            install_timeout_s=config.install_timeout_s,
            logger=self._log,
        )

        self._display_factory: DisplayFactory = display_factory or (lambda: make_display_connection(config))
        self._display_lock = threading.Lock()
        self._display: Optional[DisplayReconnectLoop] = None

        self._debounce = DebounceGuard(tick_s=config.debounce_tick_s, logger=self._log)

    @property
    def config(self) -> PebbleHostConfig:
        return self._config

    @property
    def settings(self) -> SettingsStore:
        return self._settings

    @property
    def policy(self) -> VersionPolicy:
        return self._policy

    @property
    def commands(self) -> CommandRunner:
        return self._commands

    @property
    def channel(self) -> SessionChannel:
        return self._channel

    # ---------------- toolchain ----------------
    def check_toolchain(self) -> ToolchainStatus:
        return self._probe.probe()

    def list_sdks(self):
        return self._probe.list_sdks()

    def ensure_toolchain(self) -> GateResult:
        """
        Upgrade the tool, then install an SDK, re-probing after each step.
        The first failing step aborts the gate.
        """
        steps: List[ToolResult] = []
        status = self._probe.probe()

        if self._policy.needs_tool_upgrade(status):
            self._log.info("GATE_TOOL_UPGRADE_REQUIRED tool_version=%s", status.tool_version)
            res = self._upgrader.upgrade()
            steps.append(res)
            if not res.ok:
                return GateResult(ok=False, status=status, steps=tuple(steps), error=res.error)

            status = self._probe.probe()
            if self._policy.needs_tool_upgrade(status):
                return GateResult(
                    ok=False,
                    status=status,
                    steps=tuple(steps),
                    error=UpgradeFailedError(
                        f"Toolchain still below {self._policy.min_tool_version} after upgrade "
                        f"(found {status.tool_version or 'nothing'}).",
                        hint="Upgrade the toolchain manually and retry.",
                    ),
                )

        if self._policy.needs_sdk_install(status):
            self._log.info("GATE_SDK_INSTALL_REQUIRED sdk_version=%s", status.sdk_version)
            res = self._upgrader.install_sdk("latest")
            steps.append(res)
            if not res.ok:
                return GateResult(ok=False, status=status, steps=tuple(steps), error=res.error)

            status = self._probe.probe()
            if self._policy.needs_sdk_install(status):
                return GateResult(
                    ok=False,
                    status=status,
                    steps=tuple(steps),
                    error=UpgradeFailedError(
                        f"SDK still below {self._policy.min_sdk_version} after install "
                        f"(found {status.sdk_version or 'nothing'}).",
                        hint="Run `pebble sdk install latest` manually and retry.",
                    ),
                )

        self._log.info("GATE_OK tool_version=%s sdk_version=%s", status.tool_version, status.sdk_version)
        return GateResult(ok=True, status=status, steps=tuple(steps))

    def upgrade_toolchain(self) -> ToolResult:
        return self._upgrader.upgrade()

    def install_sdk(self, version: str = "latest") -> ToolResult:
        return self._upgrader.install_sdk(version)

    def activate_sdk(self, version: str) -> ToolResult:
        return self._upgrader.activate_sdk(version)

    # ---------------- target resolution ----------------
    def resolve_platform(self, platform: Optional[str] = None) -> Optional[str]:
        if platform:
            return PLATFORMS.get(platform, platform)

        stored = self._settings.default_platform
        if stored:
            return stored

        name = self._prompter.choose("Select a platform to emulate", list(PLATFORMS))
        if not name:
            return None
        chosen = PLATFORMS.get(name, name)

        self._offer_default(KEY_DEFAULT_PLATFORM, chosen, "Set this platform as the default for future runs?")
        return chosen

    def resolve_phone_ip(self, phone_ip: Optional[str] = None) -> Optional[str]:
        if phone_ip:
            return phone_ip

        stored = self._settings.phone_ip
        if stored:
            return stored

        entered = self._prompter.ask(
            "Enter the IP address of phone. Find it in developer settings on your Pebble app."
        )
        if not entered or not entered.strip():
            return None
        entered = entered.strip()

        self._offer_default(KEY_PHONE_IP, entered, "Set this IP as the default for future runs?")
        return entered

    def _offer_default(self, key: str, value: str, prompt: str) -> None:
        if self._prompter.choose(prompt, _YES_NO) == "Yes":
            self._settings.set(key, value)

    # ---------------- build / install ----------------
    def run_on_emulator(
        self,
        platform: Optional[str] = None,
        *,
        logs: bool = False,
        display: bool = False,
        on_display_state: Optional[StateCallback] = None,
        on_display_exhausted: Optional[ExhaustedCallback] = None,
    ) -> ActionResult:
        resolved = self.resolve_platform(platform)
        if not resolved:
            return ActionResult.user_cancelled("Platform selection")

        gate = self.ensure_toolchain()
        if not gate.ok:
            return ActionResult.failed(gate.error or UpgradeFailedError(gate.message), gate=gate)

        flags = {RunFlag.LOGS} if logs else set()
        if display:
            flags.add(RunFlag.VNC)
        completion = self._commands.run_build_and_install(EmulatorTarget(resolved), flags)

        loop = None
        if display:
            loop = self.open_display(on_state=on_display_state, on_exhausted=on_display_exhausted)

        return ActionResult(
            ok=True,
            message=f"build + install on emulator '{resolved}' sent",
            completion=completion,
            display=loop,
            gate=gate,
        )

    def run_on_phone(self, phone_ip: Optional[str] = None, *, logs: bool = False) -> ActionResult:
        resolved = self.resolve_phone_ip(phone_ip)
        if not resolved:
            return ActionResult.user_cancelled("Phone IP entry")

        gate = self.ensure_toolchain()
        if not gate.ok:
            return ActionResult.failed(gate.error or UpgradeFailedError(gate.message), gate=gate)

        flags = {RunFlag.LOGS} if logs else set()
        completion = self._commands.run_build_and_install(PhoneTarget(resolved), flags)
        return ActionResult(
            ok=True,
            message=f"build + install on phone {resolved} sent",
            completion=completion,
            gate=gate,
        )

    # ---------------- remote display ----------------
    def open_display(
        self,
        *,
        on_state: Optional[StateCallback] = None,
        on_exhausted: Optional[ExhaustedCallback] = None,
    ) -> DisplayReconnectLoop:
        """Replace any running display loop with a fresh one and start it."""
        with self._display_lock:
            old, self._display = self._display, None
        if old is not None:
            old.dispose()

        loop = DisplayReconnectLoop(
            self._display_factory(),
            ceiling=self._config.reconnect_ceiling,
            interval_s=self._config.reconnect_interval_s,
            on_state=on_state,
            on_exhausted=on_exhausted,
            logger=self._log,
        )
        with self._display_lock:
            self._display = loop
        loop.start()
        return loop

    def close_display(self) -> None:
        with self._display_lock:
            loop, self._display = self._display, None
        if loop is not None:
            loop.dispose()

    # ---------------- emulator control ----------------
    def open_app_config(self, platform: Optional[str] = None) -> ActionResult:
        resolved = self.resolve_platform(platform)
        if not resolved:
            return ActionResult.user_cancelled("Platform selection")
        if self._env.remote_container:
            return ActionResult(
                ok=False,
                message="Cannot display emulator app config inside a remote container.",
            )
        return ActionResult(ok=True, completion=self._commands.open_app_config(resolved))

    def set_battery(
        self,
        platform: Optional[str] = None,
        *,
        percent: Optional[int] = None,
        charging: Optional[bool] = None,
    ) -> ActionResult:
        resolved = self.resolve_platform(platform)
        if not resolved:
            return ActionResult.user_cancelled("Platform selection")

        if percent is None:
            raw = self._prompter.ask("Select a battery state (0-100)")
            if not raw:
                return ActionResult.user_cancelled("Battery state")
            try:
                percent = int(raw.strip())
            except ValueError:
                return ActionResult(ok=False, message=f"Invalid battery percent: {raw!r}")

        if charging is None:
            choice = self._prompter.choose("Is the battery charging?", ["Yes", "No"])
            if not choice:
                return ActionResult.user_cancelled("Charging state")
            charging = choice == "Yes"

        try:
            completion = self._commands.set_battery(resolved, percent, charging)
        except ValueError as e:
            return ActionResult(ok=False, message=str(e))
        return ActionResult(ok=True, completion=completion)

    def set_bluetooth(self, connected: bool, platform: Optional[str] = None) -> ActionResult:
        resolved = self.resolve_platform(platform)
        if not resolved:
            return ActionResult.user_cancelled("Platform selection")
        return ActionResult(ok=True, completion=self._commands.set_bt_connection(resolved, connected))

    def simulate_link_loss(
        self,
        platform: Optional[str] = None,
        *,
        ticks: Optional[int] = None,
        on_progress: Optional[TickCallback] = None,
        on_done: Optional[Callable[[str], None]] = None,
    ) -> Tuple[Optional[BatteryDebounceTimer], ActionResult]:
        """
        Drop the emulated Bluetooth link and start the debounce countdown.
        Cancelling the countdown reconnects the link.
        """
        resolved = self.resolve_platform(platform)
        if not resolved:
            return None, ActionResult.user_cancelled("Platform selection")

        subject = f"bt:{resolved}"
        running = self._debounce.get(subject)
        if running is not None:
            return running, ActionResult(ok=True, message="link-loss countdown already running")

        completion = self._commands.set_bt_connection(resolved, False)

        def _cancelled() -> None:
            self._log.info("LINK_LOSS_REVERTED platform=%s", resolved)
            self._commands.set_bt_connection(resolved, True)
            if on_done is not None:
                on_done("cancelled")

        def _completed() -> None:
            self._log.info("LINK_LOSS_COMPLETE platform=%s", resolved)
            if on_done is not None:
                on_done("completed")

        timer, _ = self._debounce.start(
            subject,
            ticks or self._config.debounce_ticks,
            on_tick=on_progress,
            on_cancel=_cancelled,
            on_complete=_completed,
        )
        return timer, ActionResult(ok=True, completion=completion, message="link-loss countdown started")

    def cancel_link_loss(self, platform: Optional[str] = None) -> bool:
        resolved = self.resolve_platform(platform)
        if not resolved:
            return False
        return self._debounce.cancel(f"bt:{resolved}")

    # ---------------- project ----------------
    def new_project(
        self,
        *,
        name: Optional[str] = None,
        directory: Optional[str] = None,
        project_type: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ActionResult:
        if project_type is None:
            project_type = self._prompter.choose("Choose a project type", list(PROJECT_TYPES))
            if not project_type:
                return ActionResult.user_cancelled("Project type selection")

        if name is None:
            name = self._prompter.ask("Enter the name of the new project")
            if not name:
                return ActionResult.user_cancelled("Project name entry")

        if directory is None:
            default_dir = self._settings.last_path or str(Path.home())
            entered = self._prompter.ask(f"Create the project in which folder? [{default_dir}]")
            if entered is None:
                return ActionResult.user_cancelled("Folder selection")
            directory = entered.strip() or default_dir

        self._settings.set(KEY_LAST_PATH, directory)

        try:
            completion = self._commands.new_project(directory, name, project_type, cancel=cancel)
        except ValueError as e:
            return ActionResult(ok=False, message=str(e))

        if completion.status == "cancelled":
            return ActionResult(ok=False, cancelled=True, message="Stopped waiting for project creation.",
                                completion=completion)
        if not completion.ok:
            return ActionResult(
                ok=False,
                message=f"Error creating project. Exit code: {completion.exit_code}",
                completion=completion,
            )
        return ActionResult(
            ok=True,
            message=f"Project created: {Path(directory) / name}",
            completion=completion,
        )

    # ---------------- lifecycle ----------------
    def shutdown(self) -> None:
        self._debounce.cancel_all()
        self.close_display()
        self._channel.close_all()

    def __enter__(self) -> "PebbleController":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
