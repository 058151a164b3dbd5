"""Story selection policy.

Decides which story the agent should work on next, and whether the run is
finished (every unblocked story passes) or stalled (the remaining stories
wait on dependencies that will never pass on their own).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ralph_wizard.models import Backlog, Story


class SelectionStatus(Enum):
    """Outcome of selecting the next story."""

    READY = "ready"
    COMPLETE = "complete"
    STALLED = "stalled"


@dataclass
class Selection:
    """Result of select_next_story.

    Attributes:
        status: READY when `story` is set, otherwise a terminal condition
        story: The story to work on next
        blocked: Incomplete stories skipped because they are blocked
        waiting: Incomplete stories skipped because of unmet dependencies
    """

    status: SelectionStatus
    story: Optional[Story] = None
    blocked: List[Story] = field(default_factory=list)
    waiting: List[Story] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.status is SelectionStatus.COMPLETE

    @property
    def is_stalled(self) -> bool:
        return self.status is SelectionStatus.STALLED


def unmet_dependencies(story: Story, backlog: Backlog) -> List[str]:
    """Dependency ids that do not (yet) resolve to a passing story.

    Ids that match no story are unmet.
    """
    unmet = []
    for dep_id in story.depends_on:
        dep = backlog.get_story(dep_id)
        if dep is None or not dep.passes:
            unmet.append(dep_id)
    return unmet


def is_eligible(story: Story, backlog: Backlog) -> bool:
    """Whether a story can be picked right now."""
    if story.blocked or story.passes:
        return False
    return not unmet_dependencies(story, backlog)


def eligible_stories(backlog: Backlog) -> List[Story]:
    """All eligible stories, best first (priority, then backlog order)."""
    ranked = [
        (story.priority, index, story)
        for index, story in enumerate(backlog.user_stories)
        if is_eligible(story, backlog)
    ]
    ranked.sort(key=lambda t: (t[0], t[1]))
    return [story for _, _, story in ranked]


def select_next_story(backlog: Backlog) -> Selection:
    """Pick the next story to work on.

    Args:
        backlog: Current backlog

    Returns:
        Selection with status READY and the chosen story, or COMPLETE /
        STALLED when nothing is eligible
    """
    blocked = [s for s in backlog.user_stories if s.blocked and not s.passes]
    waiting = [
        s for s in backlog.user_stories
        if not s.blocked and not s.passes and unmet_dependencies(s, backlog)
    ]

    candidates = eligible_stories(backlog)
    if candidates:
        return Selection(SelectionStatus.READY, candidates[0], blocked, waiting)

    if waiting:
        return Selection(SelectionStatus.STALLED, None, blocked, waiting)

    return Selection(SelectionStatus.COMPLETE, None, blocked, waiting)
