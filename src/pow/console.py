"""Terminal output and confirmation prompts.

All user-facing lines are ``<LEVEL> <message>``. Only the level label is
styled; messages are printed as plain text so branch names containing
brackets are never read as rich markup.
"""

from __future__ import annotations

from enum import Enum
from typing import IO, Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.text import Text


class Level(str, Enum):
    """Log levels for user-facing output."""

    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    ACTION = "ACTION"


class Answer(str, Enum):
    """Closed set of answers to a yes/no prompt."""

    YES = "y"
    NO = "n"


LEVEL_STYLES = {
    Level.INFO: "blue",
    Level.SUCCESS: "green",
    Level.WARNING: "yellow",
    Level.ERROR: "red",
    Level.ACTION: "cyan",
}


class Terminal:
    """The emit/echo/confirm capabilities used by the reconciliation engine."""

    def __init__(self, console: Optional[Console] = None, stream: Optional[IO[str]] = None):
        self.console = console or Console(highlight=False, soft_wrap=True)
        # Prompt input source; None reads from stdin
        self.stream = stream

    def emit(self, level: Level, message: str) -> None:
        self.console.print(Text.assemble((level.value, LEVEL_STYLES[level]), " ", message))

    def echo(self, text: str = "") -> None:
        """Print a raw line (file listings, blank separators)."""
        self.console.print(Text(text))

    def info(self, message: str) -> None:
        self.emit(Level.INFO, message)

    def success(self, message: str) -> None:
        self.emit(Level.SUCCESS, message)

    def warning(self, message: str) -> None:
        self.emit(Level.WARNING, message)

    def error(self, message: str) -> None:
        self.emit(Level.ERROR, message)

    def action(self, message: str) -> None:
        self.emit(Level.ACTION, message)

    def ask(self, message: str) -> Answer:
        """Block until the user answers y or n.

        Any other input re-prompts; there is no default answer.
        """
        accepted = Confirm.ask(
            f"[yellow]?[/yellow] {escape(message)}",
            console=self.console,
            stream=self.stream,
        )
        return Answer.YES if accepted else Answer.NO

    def confirm(self, message: str) -> bool:
        return self.ask(message) is Answer.YES
