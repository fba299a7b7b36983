# pebble_host/cli/prompt.py
from __future__ import annotations

from typing import Callable, Optional, Sequence, TextIO
import sys


class ConsolePrompter:
    """Prompter on stdin/stdout. Empty input or EOF counts as cancel."""

    def __init__(self, *, input_fn: Callable[[str], str] = input, out: Optional[TextIO] = None):
        self._input = input_fn
        self._out = out or sys.stdout

    def choose(self, prompt: str, options: Sequence[str]) -> Optional[str]:
        if not options:
            return None
        print(prompt, file=self._out)
        for i, opt in enumerate(options, start=1):
            print(f"  {i}) {opt}", file=self._out)

        raw = self._read("> ")
        if raw is None:
            return None
        if raw.isdigit():
            idx = int(raw) - 1
            return options[idx] if 0 <= idx < len(options) else None
        for opt in options:
            if opt.lower() == raw.lower():
                return opt
        return None

    def ask(self, prompt: str) -> Optional[str]:
        return self._read(f"{prompt} ")

    def _read(self, prompt: str) -> Optional[str]:
        try:
            raw = self._input(prompt)
        except EOFError:
            return None
        raw = raw.strip()
        return raw or None
