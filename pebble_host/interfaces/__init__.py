from .command_sink import CommandEvent, CommandSink
from .prompter import Prompter

__all__ = ["CommandEvent", "CommandSink", "Prompter"]
