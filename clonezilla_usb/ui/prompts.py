"""Operator prompts on the terminal, plus the pure answer rules behind them."""

from __future__ import annotations

import sys
from typing import Callable, Optional, TextIO

from clonezilla_usb.storage.exceptions import OperationCancelled


YES_ANSWERS = {"y", "yes"}
NO_ANSWERS = {"n", "no"}
WIPE_CONFIRMATION = "YES"


def is_yes(answer: Optional[str], default: bool = False) -> bool:
    """Interpret a yes/no answer; blank or unrecognized input yields ``default``."""
    text = (answer or "").strip().lower()
    if text in YES_ANSWERS:
        return True
    if text in NO_ANSWERS:
        return False
    return default


def is_wipe_confirmed(answer: Optional[str]) -> bool:
    """Only the literal, upper-case ``YES`` authorizes wiping a device."""
    return (answer or "").strip() == WIPE_CONFIRMATION


class ConsolePrompter:
    """Reads operator answers from stdin and writes prompt text to stdout."""

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output: Optional[TextIO] = None,
    ):
        self._input = input_func
        self._output = output

    def show(self, line: str = "") -> None:
        stream = self._output or sys.stdout
        print(line, file=stream, flush=True)

    def ask(self, text: str) -> str:
        """Prompt for one line of input.

        Raises:
            OperationCancelled: If stdin is closed
        """
        try:
            return self._input(text)
        except EOFError as error:
            raise OperationCancelled("Input stream closed") from error

    def confirm(self, question: str, default: bool = False) -> bool:
        suffix = "[yes]" if default else "[no]"
        return is_yes(self.ask(f"{question} (yes/no) {suffix}: "), default)
