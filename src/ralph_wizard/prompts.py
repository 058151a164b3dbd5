"""Interactive prompts for the init and schedule wizards.

Invalid answers are re-asked here and never reach the commands.
"""

import os
import re
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, TypeVar

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt, Prompt

from ralph_wizard.config import normalize_ticket_prefix
from ralph_wizard.errors import ConfigurationError

console = Console()

T = TypeVar("T")

TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")


def choose(message: str, choices: Sequence[Tuple[T, str]], default: int = 1) -> T:
    """Numbered menu; returns the value of the picked entry.

    Args:
        message: Question shown above the menu
        choices: (value, label) pairs
        default: 1-based default entry
    """
    console.print(f"\n[bold]{message}[/bold]")
    for i, (_, label) in enumerate(choices, 1):
        console.print(f"  [cyan]{i}[/cyan]) {label}")
    picked = IntPrompt.ask(
        "Choose",
        choices=[str(i) for i in range(1, len(choices) + 1)],
        default=default,
        show_choices=False,
    )
    return choices[picked - 1][0]


def confirm(message: str, default: bool = True) -> bool:
    return Confirm.ask(message, default=default)


def ask_text(message: str, default: str = "") -> str:
    return Prompt.ask(message, default=default).strip()


def ask_positive_int(message: str, default: int) -> int:
    """Ask for an integer >= 1, re-asking until one is given."""
    while True:
        value = IntPrompt.ask(message, default=default)
        if value >= 1:
            return value
        console.print("[red]Please enter a number of at least 1[/red]")


def ask_existing_file(message: str) -> Path:
    """Ask for a path until it names an existing file."""
    while True:
        path = Path(Prompt.ask(message).strip()).expanduser()
        if path.is_file():
            return path
        console.print(f"[red]File not found: {path}[/red]")


def ask_text_file(message: str) -> str:
    """Ask for a UTF-8 text file until one can be read; returns its content."""
    while True:
        path = ask_existing_file(message)
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            console.print(f"[red]Not a UTF-8 text file: {path}[/red]")
        except OSError as e:
            console.print(f"[red]Cannot read {path}: {e.strerror or e}[/red]")


def ask_ticket_prefix(default: str) -> str:
    """Ask for a 2-5 letter ticket prefix (returned upper-case)."""
    while True:
        answer = Prompt.ask("Ticket prefix for story ids (2-5 letters)", default=default)
        try:
            return normalize_ticket_prefix(answer)
        except ConfigurationError as e:
            console.print(f"[red]{e}[/red]")


def parse_time(value: str) -> Tuple[int, int]:
    """Parse HH:MM (24h).

    Raises:
        ValueError: If the value is not a valid 24h time
    """
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError("Use HH:MM format")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError("Use a 24h time between 00:00 and 23:59")
    return hour, minute


def ask_time(message: str, default: str = "23:00") -> Tuple[int, int]:
    """Ask for an HH:MM time until a valid one is given."""
    while True:
        try:
            return parse_time(Prompt.ask(message, default=default))
        except ValueError as e:
            console.print(f"[red]{e}[/red]")


def edit_text(initial: str = "") -> Optional[str]:
    """Open $VISUAL / $EDITOR on a temporary file and return what was saved.

    Returns None when the editor cannot be started.
    """
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"
    with tempfile.NamedTemporaryFile("w+", suffix=".md", delete=False, encoding="utf-8") as f:
        f.write(initial)
        path = Path(f.name)
    try:
        try:
            command: List[str] = shlex.split(editor) + [str(path)]
            subprocess.run(command, check=False)
        except (OSError, ValueError) as e:
            reason = e.strerror if isinstance(e, OSError) and e.strerror else str(e)
            console.print(f"[red]Could not start editor '{escape(editor)}': {escape(reason)}[/red]")
            console.print("[dim]Set $VISUAL or $EDITOR, or pick another option.[/dim]")
            return None
        return path.read_text(encoding="utf-8", errors="replace")
    finally:
        path.unlink(missing_ok=True)
