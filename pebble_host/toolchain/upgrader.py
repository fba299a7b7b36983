# pebble_host/toolchain/upgrader.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from pebble_host.core.errors import PebbleHostError, ToolUnavailableError, UpgradeFailedError

from .process import ProcessRunner
from .version import Version

DEFAULT_UPGRADE_COMMAND = ("uv", "tool", "upgrade", "pebble-tool")


@dataclass(frozen=True)
class ToolResult:
    """
    Result value of a toolchain side effect. Failures carry an error instance
    for the caller to present; nothing is raised.
    """
    ok: bool
    step: str
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    error: Optional[PebbleHostError] = None

    @property
    def message(self) -> str:
        if self.ok:
            return f"{self.step} succeeded"
        return self.error.message if self.error is not None else f"{self.step} failed"


class ToolchainUpgrader:
    """
    Runs upgrade / SDK install commands synchronously.

    Success only means the command exited 0; callers re-probe to learn the
    resulting versions.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        *,
        tool: str = "pebble",
        upgrade_command: Sequence[str] = DEFAULT_UPGRADE_COMMAND,
        timeout_s: float = 600.0,
        logger: Optional[logging.Logger] = None,
    ):
        self._runner = runner
        self._tool = tool
        self._upgrade_command = tuple(upgrade_command)
        self._timeout_s = timeout_s
        self._log = logger or logging.getLogger(__name__)

    def upgrade(self) -> ToolResult:
        return self._run("upgrade", self._upgrade_command)

    def install_sdk(self, version: Union[str, Version] = "latest") -> ToolResult:
        return self._run("sdk_install", (self._tool, "sdk", "install", _version_arg(version)))

    def activate_sdk(self, version: Union[str, Version]) -> ToolResult:
        return self._run("sdk_activate", (self._tool, "sdk", "activate", _version_arg(version)))

    def _run(self, step: str, argv: Sequence[str]) -> ToolResult:
        self._log.info("TOOLCHAIN_STEP_START step=%s args=%s", step, list(argv))
        try:
            res = self._runner.run(argv, timeout_s=self._timeout_s)
        except ToolUnavailableError as e:
            self._log.warning("TOOLCHAIN_STEP_UNAVAILABLE step=%s msg=%s", step, e.message)
            return ToolResult(ok=False, step=step, error=e)

        if not res.ok:
            self._log.warning(
                "TOOLCHAIN_STEP_FAILED step=%s exit_code=%d stderr=%s",
                step,
                res.exit_code,
                res.stderr.strip(),
            )
            err = UpgradeFailedError(
                res.stderr.strip() or f"{' '.join(argv)} exited with code {res.exit_code}",
                hint=f"Command: {' '.join(argv)}",
                details={"exit_code": res.exit_code, "stdout": res.stdout, "stderr": res.stderr},
            )
            return ToolResult(
                ok=False,
                step=step,
                stdout=res.stdout,
                stderr=res.stderr,
                exit_code=res.exit_code,
                error=err,
            )

        self._log.info("TOOLCHAIN_STEP_OK step=%s", step)
        return ToolResult(ok=True, step=step, stdout=res.stdout, stderr=res.stderr, exit_code=0)


def _version_arg(version: Union[str, Version]) -> str:
    if isinstance(version, Version):
        # SDK releases are addressed as "major.minor" unless a patch is set.
        if version.patch == 0:
            return f"{version.major}.{version.minor}"
        return str(version)
    return str(version)
