"""Ralph - Autonomous AI coding agent loop driven by a story backlog."""

__version__ = "0.1.0"

from ralph_wizard.models import Backlog, Story
from ralph_wizard.prd import (
    ValidationIssue,
    ValidationResult,
    convert_markdown,
    validate_prd,
)
from ralph_wizard.selection import Selection, SelectionStatus, select_next_story

__all__ = [
    "Backlog",
    "Selection",
    "SelectionStatus",
    "Story",
    "ValidationIssue",
    "ValidationResult",
    "convert_markdown",
    "select_next_story",
    "validate_prd",
]
