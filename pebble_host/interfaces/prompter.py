# pebble_host/interfaces/prompter.py
from __future__ import annotations

from typing import Optional, Protocol, Sequence


class Prompter(Protocol):
    """
    The only UI surface the orchestrator needs. None means the user cancelled.
    """
    def choose(self, prompt: str, options: Sequence[str]) -> Optional[str]: ...
    def ask(self, prompt: str) -> Optional[str]: ...
