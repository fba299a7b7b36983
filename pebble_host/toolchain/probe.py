# pebble_host/toolchain/probe.py
from __future__ import annotations

import logging
from typing import Optional

from pebble_host.core.errors import ToolUnavailableError

from .process import ProcessRunner
from .version import SdkListing, ToolchainStatus, parse_banner, parse_sdk_list


class VersionProbe:
    """
    Queries the toolchain for its own version and the active SDK.

    Never raises; a tool that cannot run reports both versions as None. Results
    are not cached, every call re-runs the tool.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        *,
        tool: str = "pebble",
        timeout_s: float = 30.0,
        logger: Optional[logging.Logger] = None,
    ):
        self._runner = runner
        self._tool = tool
        self._timeout_s = timeout_s
        self._log = logger or logging.getLogger(__name__)

    def probe(self) -> ToolchainStatus:
        try:
            res = self._runner.run([self._tool, "--version"], timeout_s=self._timeout_s)
        except ToolUnavailableError as e:
            self._log.info("PROBE_TOOL_UNAVAILABLE tool=%s msg=%s", self._tool, e.message)
            return ToolchainStatus()
        except Exception:
            self._log.exception("PROBE_FAILED tool=%s", self._tool)
            return ToolchainStatus()

        if not res.ok:
            self._log.info("PROBE_NONZERO tool=%s exit_code=%d", self._tool, res.exit_code)
            return ToolchainStatus()

        # Some releases print the banner on stderr.
        status = parse_banner(res.stdout)
        if status.tool_version is None:
            status = parse_banner(res.stderr)

        self._log.info(
            "PROBE_OK tool=%s tool_version=%s sdk_version=%s",
            self._tool,
            status.tool_version,
            status.sdk_version,
        )
        return status

    def list_sdks(self) -> SdkListing:
        try:
            res = self._runner.run([self._tool, "sdk", "list"], timeout_s=self._timeout_s)
        except ToolUnavailableError as e:
            self._log.info("SDK_LIST_UNAVAILABLE tool=%s msg=%s", self._tool, e.message)
            return SdkListing()

        if not res.ok:
            self._log.info("SDK_LIST_NONZERO tool=%s exit_code=%d", self._tool, res.exit_code)
            return SdkListing()
        return parse_sdk_list(res.stdout)
