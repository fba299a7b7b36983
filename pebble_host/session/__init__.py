from ._internal.pending_command import CommandCompletion, PendingCommand
from .channel import DEFAULT_SESSION_NAME, SessionChannel
from .shell import ShellSession

__all__ = ["CommandCompletion",
           "PendingCommand",
           "SessionChannel",
           "ShellSession",
           "DEFAULT_SESSION_NAME"]
