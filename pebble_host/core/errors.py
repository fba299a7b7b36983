# pebble_host/core/errors.py
from __future__ import annotations


class PebbleHostError(Exception):
    """
    Base class for all expected operational errors in pebble-host.

    Process-level failures are usually carried as values (see ToolResult,
    GateResult) rather than raised; the class still gives them one shape.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, result values, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration errors (nothing executed yet)
# ---------------------------------------------------------------------------

class ConfigError(PebbleHostError):
    """
    Configuration or settings file is invalid.

    Examples:
      - YAML syntax error
      - unknown keys / wrong value types
      - version strings that do not parse
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Toolchain errors
# ---------------------------------------------------------------------------

class ToolUnavailableError(PebbleHostError):
    """
    The external toolchain could not be executed at all.

    Examples:
      - executable not on PATH
      - permission denied
      - probe timed out
    """
    code = "tool_unavailable"


class UpgradeFailedError(PebbleHostError):
    """
    An upgrade / SDK install step exited non-zero.

    `details` carries exit_code and captured stderr for verbatim display.
    """
    code = "upgrade_failed"


# ---------------------------------------------------------------------------
# Session / display errors
# ---------------------------------------------------------------------------

class SessionUnavailableError(PebbleHostError):
    """
    A command was written to a session that is no longer live.

    SessionChannel.acquire() replaces closed sessions, so callers going through
    the channel never see this.
    """
    code = "session_unavailable"


class ConnectionExhaustedError(PebbleHostError):
    """
    Remote display reconnect ceiling reached. Not retried automatically.
    """
    code = "connection_exhausted"


class UserCancelled(PebbleHostError):
    """
    The user dismissed a prompt or cancelled a wait. A normal outcome, not a failure.
    """
    code = "user_cancelled"
