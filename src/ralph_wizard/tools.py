"""PRD management tools for manipulating .ralph/prd.json."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from ralph_wizard.errors import InvalidBacklogError
from ralph_wizard.models import Backlog, Story
from ralph_wizard.prd import find_dependency_cycles


def resolve_prd_path(project_dir: Optional[Path] = None) -> Path:
    """Resolve PRD path from project directory.

    Args:
        project_dir: Project directory (defaults to current directory)

    Returns:
        Path to prd.json file

    Raises:
        FileNotFoundError: If prd.json not found
    """
    if project_dir is None:
        project_dir = Path.cwd()

    prd_path = project_dir / ".ralph" / "prd.json"
    if prd_path.exists():
        return prd_path

    raise FileNotFoundError(f"No prd.json found in {project_dir}/.ralph/")


def write_backlog(prd_path: Path, backlog: Backlog) -> None:
    """Write a backlog to disk in one go (2-space indent, trailing newline)."""
    prd_path.parent.mkdir(parents=True, exist_ok=True)
    with open(prd_path, "w") as f:
        json.dump(backlog.to_dict(), f, indent=2)
        f.write("\n")


class PRDManager:
    """Load, mutate and save the backlog.

    The whole file is read on construction and rewritten on save(); there is
    no locking, so a concurrent writer (the agent, a human) can lose updates.
    """

    def __init__(self, prd_path: Path):
        """Initialize PRD manager.

        Args:
            prd_path: Path to prd.json file

        Raises:
            FileNotFoundError: If the file does not exist
            InvalidBacklogError: If the file is not a valid backlog
        """
        self.prd_path = prd_path
        self.backlog = self._load()

    def _load(self) -> Backlog:
        """Load PRD JSON file."""
        with open(self.prd_path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise InvalidBacklogError(f"Invalid JSON in {self.prd_path}: {e}")
        return Backlog.from_dict(data)

    def save(self) -> None:
        """Save PRD JSON file."""
        write_backlog(self.prd_path, self.backlog)

    @property
    def stories(self) -> List[Story]:
        return self.backlog.user_stories

    def get_story(self, story_id: str) -> Optional[Story]:
        return self.backlog.get_story(story_id)

    def add_story(self, story: Story) -> None:
        """Append a story (never inserted by priority).

        Raises:
            InvalidBacklogError: If the id or ticketId is already taken
        """
        for existing in self.stories:
            if existing.id == story.id or existing.ticket_id == story.ticket_id:
                raise InvalidBacklogError(f"Story {story.id} (ticket {story.ticket_id}) already exists")
        self.stories.append(story)

    def set_passes(self, story_id: str, passes: bool = True) -> bool:
        """Mark a story as passing (or not).

        Returns:
            True if story was found and updated
        """
        story = self.get_story(story_id)
        if story is None:
            return False
        story.passes = passes
        return True

    def block_story(self, story_id: str, reason: str) -> bool:
        """Mark a story as blocked and record why in its notes.

        Returns:
            True if story was found and updated
        """
        story = self.get_story(story_id)
        if story is None:
            return False
        story.blocked = True
        story.notes = f"{story.notes}\n{reason}".strip() if story.notes else reason
        return True

    def unblock_story(self, story_id: str) -> bool:
        """Clear a story's blocked flag.

        Returns:
            True if story was found and updated
        """
        story = self.get_story(story_id)
        if story is None:
            return False
        story.blocked = False
        return True

    def block_cycles(self) -> List[str]:
        """Block every story that sits on a dependency cycle.

        Stories on a cycle can never become eligible, which would leave the
        loop waiting forever; blocking them lets the run finish or stall
        visibly instead.

        Returns:
            Ids of stories that were newly blocked
        """
        newly_blocked: List[str] = []
        for cycle in find_dependency_cycles(self.stories):
            description = " → ".join(cycle)
            for story_id in cycle[:-1]:
                story = self.get_story(story_id)
                if story is not None and not story.blocked and not story.passes:
                    self.block_story(story_id, f"Blocked: circular dependency {description}")
                    newly_blocked.append(story_id)
        return newly_blocked

    def get_summary(self) -> Dict[str, Any]:
        """Get summary statistics.

        Returns:
            Dict with summary statistics
        """
        total = len(self.stories)
        completed = sum(1 for s in self.stories if s.passes)
        blocked = sum(1 for s in self.stories if s.blocked and not s.passes)

        return {
            "total_stories": total,
            "completed_stories": completed,
            "blocked_stories": blocked,
            "remaining_stories": total - completed,
            "completion_percentage": round(completed / total * 100) if total > 0 else 0,
        }
