from .version import Version, ToolchainStatus, SdkListing, parse_version, parse_banner
from .policy import VersionPolicy, is_below, MIN_TOOL_VERSION, MIN_SDK_VERSION
from .process import ProcessRunner, ProcessResult
from .probe import VersionProbe
from .upgrader import ToolchainUpgrader, ToolResult

__all__ = ["Version",
           "ToolchainStatus",
           "SdkListing",
           "parse_version",
           "parse_banner",
           "VersionPolicy",
           "is_below",
           "MIN_TOOL_VERSION",
           "MIN_SDK_VERSION",
           "ProcessRunner",
           "ProcessResult",
           "VersionProbe",
           "ToolchainUpgrader",
           "ToolResult"]
