"""Typed records for the backlog stored in .ralph/prd.json."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ralph_wizard.errors import InvalidBacklogError

DEFAULT_PROJECT = "MyProject"
DEFAULT_BRANCH_NAME = "ralph/feature"
DEFAULT_DESCRIPTION = "Feature implementation"

# Serialization order of story fields in prd.json
STORY_FIELDS = (
    "id",
    "ticketId",
    "title",
    "description",
    "acceptanceCriteria",
    "priority",
    "passes",
    "blocked",
    "notes",
    "githubIssue",
    "dependsOn",
    "branch",
    "pullRequest",
)

BACKLOG_FIELDS = ("project", "branchName", "description", "userStories")

_TRAILING_DIGITS = re.compile(r"(\d+)$")


def format_story_id(ticket_prefix: str, ticket_id: int) -> str:
    """Build a display id such as US-007."""
    return f"{ticket_prefix}-{ticket_id:03d}"


def _require_type(value: Any, expected: type, name: str, story_id: str) -> Any:
    # bool is a subclass of int; never accept it where a number is expected
    if expected is int and isinstance(value, bool):
        raise InvalidBacklogError(f"Story {story_id}: '{name}' must be an integer, got {value!r}")
    if not isinstance(value, expected):
        raise InvalidBacklogError(
            f"Story {story_id}: '{name}' must be {expected.__name__}, got {type(value).__name__}"
        )
    return value


def _optional_int(value: Any, name: str, story_id: str) -> Optional[int]:
    if value is None:
        return None
    return int(_require_type(value, int, name, story_id))


@dataclass
class Story:
    """A single unit of trackable work.

    Attributes:
        id: Display identifier, e.g. "US-001"
        ticket_id: Integer sequence number behind the id
        title: Short title
        description: Free text description
        acceptance_criteria: Ordered list of verifiable criteria
        priority: Lower value means higher priority
        passes: True once the work is verified complete
        blocked: True when work cannot proceed until manually unblocked
        notes: Scratch field for the agent
        github_issue: Linked GitHub issue number
        depends_on: Story ids that must pass before this one is eligible
        branch: Git branch once work has started
        pull_request: PR number once work has been submitted
        extra: Unknown keys found in prd.json, written back unchanged
    """

    id: str
    ticket_id: int
    title: str
    description: str = ""
    acceptance_criteria: List[str] = field(default_factory=list)
    priority: int = 1
    passes: bool = False
    blocked: bool = False
    notes: str = ""
    github_issue: Optional[int] = None
    depends_on: List[str] = field(default_factory=list)
    branch: Optional[str] = None
    pull_request: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], position: int = 1) -> "Story":
        """Build a story from its prd.json form, applying defaults.

        Args:
            data: Story object from prd.json
            position: 1-based position in the backlog (default priority/ticketId)

        Returns:
            Validated Story

        Raises:
            InvalidBacklogError: If a required field is missing or a field has the wrong type
        """
        if not isinstance(data, dict):
            raise InvalidBacklogError(f"Story at position {position} must be an object")

        story_id = data.get("id")
        if not story_id or not isinstance(story_id, str):
            raise InvalidBacklogError(f"Story at position {position} is missing 'id'")
        title = data.get("title")
        if not title or not isinstance(title, str):
            raise InvalidBacklogError(f"Story {story_id}: missing 'title'")

        if "ticketId" in data:
            ticket_id = int(_require_type(data["ticketId"], int, "ticketId", story_id))
        else:
            match = _TRAILING_DIGITS.search(story_id)
            ticket_id = int(match.group(1)) if match else position

        priority = int(_require_type(data.get("priority", position), int, "priority", story_id))
        if priority < 1:
            raise InvalidBacklogError(f"Story {story_id}: 'priority' must be positive, got {priority}")

        criteria = _require_type(data.get("acceptanceCriteria", []), list, "acceptanceCriteria", story_id)
        depends_on = _require_type(data.get("dependsOn") or [], list, "dependsOn", story_id)
        branch = data.get("branch")
        if branch is not None:
            _require_type(branch, str, "branch", story_id)

        return cls(
            id=story_id,
            ticket_id=ticket_id,
            title=title,
            description=_require_type(data.get("description") or title, str, "description", story_id),
            acceptance_criteria=[str(c) for c in criteria],
            priority=priority,
            passes=_require_type(data.get("passes", False), bool, "passes", story_id),
            blocked=_require_type(data.get("blocked", False), bool, "blocked", story_id),
            notes=_require_type(data.get("notes") or "", str, "notes", story_id),
            github_issue=_optional_int(data.get("githubIssue"), "githubIssue", story_id),
            depends_on=[str(d) for d in depends_on],
            branch=branch,
            pull_request=_optional_int(data.get("pullRequest"), "pullRequest", story_id),
            extra={k: v for k, v in data.items() if k not in STORY_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in prd.json field order, optional fields as null."""
        data: Dict[str, Any] = {
            "id": self.id,
            "ticketId": self.ticket_id,
            "title": self.title,
            "description": self.description,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "priority": self.priority,
            "passes": self.passes,
            "blocked": self.blocked,
            "notes": self.notes,
            "githubIssue": self.github_issue,
            "dependsOn": list(self.depends_on),
            "branch": self.branch,
            "pullRequest": self.pull_request,
        }
        data.update(self.extra)
        return data


@dataclass
class Backlog:
    """Project metadata plus the ordered list of stories (the PRD)."""

    project: str = DEFAULT_PROJECT
    branch_name: str = DEFAULT_BRANCH_NAME
    description: str = DEFAULT_DESCRIPTION
    user_stories: List[Story] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Backlog":
        """Build a backlog from prd.json content.

        Raises:
            InvalidBacklogError: If the document or any story is malformed,
                or if story ids / ticket ids are not unique
        """
        if not isinstance(data, dict):
            raise InvalidBacklogError("PRD root must be a JSON object")

        raw_stories = data.get("userStories", [])
        if not isinstance(raw_stories, list):
            raise InvalidBacklogError("'userStories' must be an array")

        stories = [Story.from_dict(s, position=i) for i, s in enumerate(raw_stories, 1)]

        seen_ids: Dict[str, int] = {}
        seen_tickets: Dict[int, str] = {}
        for story in stories:
            if story.id in seen_ids:
                raise InvalidBacklogError(f"Duplicate story id: '{story.id}'")
            if story.ticket_id in seen_tickets:
                raise InvalidBacklogError(
                    f"Duplicate ticketId {story.ticket_id} ({seen_tickets[story.ticket_id]} and {story.id})"
                )
            seen_ids[story.id] = story.ticket_id
            seen_tickets[story.ticket_id] = story.id

        return cls(
            project=str(data.get("project") or DEFAULT_PROJECT),
            branch_name=str(data.get("branchName") or DEFAULT_BRANCH_NAME),
            description=str(data.get("description") or ""),
            user_stories=stories,
            extra={k: v for k, v in data.items() if k not in BACKLOG_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the prd.json document."""
        data: Dict[str, Any] = {
            "project": self.project,
            "branchName": self.branch_name,
            "description": self.description,
            "userStories": [s.to_dict() for s in self.user_stories],
        }
        data.update(self.extra)
        return data

    def get_story(self, story_id: str) -> Optional[Story]:
        """Find a story by id."""
        for story in self.user_stories:
            if story.id == story_id:
                return story
        return None

    def next_ticket_id(self) -> int:
        """Return 1 + the highest ticketId in use, or 1 for an empty backlog."""
        if not self.user_stories:
            return 1
        return max(s.ticket_id for s in self.user_stories) + 1

    def find_by_issue(self, issue_number: int) -> Optional[Story]:
        """Find the story imported from a GitHub issue."""
        for story in self.user_stories:
            if story.github_issue == issue_number:
                return story
        return None
