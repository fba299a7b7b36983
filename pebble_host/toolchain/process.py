# pebble_host/toolchain/process.py
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from pebble_host.core.errors import ToolUnavailableError


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one external command: exit code plus captured output."""
    args: tuple
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ProcessRunner:
    """
    Blocking subprocess invocation with captured text output. Output is
    decoded as UTF-8; undecodable bytes become U+FFFD instead of failing.

    Raises ToolUnavailableError when the executable cannot be started or the
    call times out. A non-zero exit is NOT an error at this layer.
    """

    def __init__(
        self,
        *,
        timeout_s: Optional[float] = 120.0,
        env: Optional[Mapping[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.timeout_s = timeout_s
        self.env = dict(env) if env is not None else None
        self._log = logger or logging.getLogger(__name__)

    def run(self, args: Sequence[str], *, timeout_s: Optional[float] = None) -> ProcessResult:
        argv = tuple(str(a) for a in args)
        timeout = self.timeout_s if timeout_s is None else timeout_s

        self._log.debug("PROCESS_RUN args=%s timeout_s=%s", argv, timeout)
        try:
            cp = subprocess.run(
                argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                env=self.env,
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolUnavailableError(
                f"'{argv[0]}' was not found.",
                hint="Install it or make sure it is on PATH.",
                details={"args": list(argv), "error": str(e)},
            ) from None
        except subprocess.TimeoutExpired:
            raise ToolUnavailableError(
                f"'{argv[0]}' did not finish within {timeout}s.",
                details={"args": list(argv)},
            ) from None
        except OSError as e:
            raise ToolUnavailableError(
                f"'{argv[0]}' could not be started.",
                hint=str(e),
                details={"args": list(argv)},
            ) from None

        result = ProcessResult(
            args=argv,
            exit_code=int(cp.returncode),
            stdout=cp.stdout or "",
            stderr=cp.stderr or "",
        )
        self._log.debug("PROCESS_EXIT args=%s exit_code=%d", argv, result.exit_code)
        return result
