"""Ralph banner shown at the top of every command."""

from rich.console import Console
from rich.text import Text

from ralph_wizard.templates import BANNER_LINES

console = Console()

TAGLINE = "Autonomous AI Coding Agent Loop"


def banner_text() -> Text:
    """The banner as styled rich Text."""
    text = Text()
    for line in BANNER_LINES:
        text.append(f"  {line}\n", style="bold yellow")
    text.append(f"  {TAGLINE}\n", style="dim")
    return text


def display_ralph_banner() -> None:
    """Print the banner."""
    console.print()
    console.print(banner_text())
