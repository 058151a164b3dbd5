"""PRD import and validation.

Turns free-text PRDs and GitHub issues into backlog stories, and checks a
backlog for problems that would keep the loop from ever finishing.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ralph_wizard.errors import InvalidBacklogError
from ralph_wizard.models import (
    DEFAULT_BRANCH_NAME,
    DEFAULT_DESCRIPTION,
    DEFAULT_PROJECT,
    Backlog,
    Story,
    format_story_id,
)

DEFAULT_TICKET_PREFIX = "US"

STORY_LINE = re.compile(r"^(\d+)\.\s+(.+)")

PRIORITY_HIGH_LABEL = "priority:high"
PRIORITY_LOW_LABEL = "priority:low"


@dataclass
class Issue:
    """The fields of a GitHub issue Ralph cares about."""

    number: int
    title: str
    body: str = ""
    labels: tuple = ()


def convert_markdown(
    content: str,
    ticket_prefix: str = DEFAULT_TICKET_PREFIX,
    project: str = DEFAULT_PROJECT,
    branch_name: str = DEFAULT_BRANCH_NAME,
    description: str = DEFAULT_DESCRIPTION,
) -> Backlog:
    """Convert a semi-structured PRD into a backlog.

    Numbered lines ("1. Do the thing") start stories; "-" bullets under a
    story become its acceptance criteria. Everything else is ignored, so this
    never fails - it just finds fewer stories.

    Args:
        content: PRD text
        ticket_prefix: Prefix for story ids (e.g., "US" -> "US-001")
        project: Project name for the backlog
        branch_name: Default feature branch for the backlog
        description: Backlog description

    Returns:
        Backlog with one story per numbered line
    """
    stories: List[Story] = []
    current: Optional[Story] = None
    count = 0

    for line in content.split("\n"):
        trimmed = line.strip()

        match = STORY_LINE.match(trimmed)
        if match:
            if current:
                stories.append(current)
            count += 1
            text = match.group(2)
            current = Story(
                id=format_story_id(ticket_prefix, count),
                ticket_id=count,
                title=text,
                description=text,
                priority=count,
            )
        elif current and trimmed.startswith("-"):
            current.acceptance_criteria.append(trimmed[1:].strip())

    if current:
        stories.append(current)

    return Backlog(
        project=project,
        branch_name=branch_name,
        description=description,
        user_stories=stories,
    )


def empty_backlog(project: str = DEFAULT_PROJECT) -> Backlog:
    """Backlog written by init when no PRD is provided."""
    return Backlog(
        project=project,
        branch_name=DEFAULT_BRANCH_NAME,
        description="Add your feature description here",
    )


def example_prd() -> str:
    """Built-in example PRD offered during init."""
    return """# Example Feature: Task Priority System

Add priority levels (high/medium/low) to tasks.

## Stories

1. Add priority field to database
   - Add priority column to tasks table
   - Values: high, medium, low (default: medium)
   - Run migration

2. Display priority on task cards
   - Show colored badge (red=high, yellow=medium, gray=low)
   - Visible without hover

3. Add priority selector to task edit
   - Dropdown in edit modal
   - Save on selection change

4. Filter tasks by priority
   - Filter dropdown: All, High, Medium, Low
   - Persist filter in URL
"""


def priority_from_labels(labels: Any) -> int:
    """Map GitHub labels to a story priority (1 high, 2 normal, 3 low)."""
    names = set(labels or ())
    if PRIORITY_HIGH_LABEL in names:
        return 1
    if PRIORITY_LOW_LABEL in names:
        return 3
    return 2


def story_from_issue(issue: Issue, backlog: Backlog, ticket_prefix: str = DEFAULT_TICKET_PREFIX) -> Story:
    """Build the story for a GitHub issue, numbered after the backlog's last ticket.

    The story is not added to the backlog; callers append and persist it.
    """
    ticket_id = backlog.next_ticket_id()
    body = (issue.body or "").strip()
    return Story(
        id=format_story_id(ticket_prefix, ticket_id),
        ticket_id=ticket_id,
        title=issue.title,
        description=body or issue.title,
        priority=priority_from_labels(issue.labels),
        github_issue=issue.number,
    )


def find_dependency_cycles(stories: List[Story]) -> List[List[str]]:
    """Find dependency cycles with a three-color depth-first search.

    Unknown dependency ids are ignored here (see validate_prd).

    Returns:
        Each cycle as a list of story ids, first id repeated at the end
    """
    white, gray, black = 0, 1, 2
    by_id = {s.id: s for s in stories}
    color = {s.id: white for s in stories}
    cycles: List[List[str]] = []

    def visit(story_id: str, path: List[str]) -> None:
        color[story_id] = gray
        path.append(story_id)
        for dep in by_id[story_id].depends_on:
            if dep not in by_id:
                continue
            if color[dep] == gray:
                cycles.append(path[path.index(dep):] + [dep])
            elif color[dep] == white:
                visit(dep, path)
        path.pop()
        color[story_id] = black

    for story in stories:
        if color[story.id] == white:
            visit(story.id, [])

    return cycles


@dataclass
class ValidationIssue:
    """A validation issue (error or warning)."""
    severity: str  # 'error' or 'warning'
    code: str      # Short code like 'CIRCULAR_DEPENDENCY'
    message: str
    story_id: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of PRD validation."""
    valid: bool
    errors: List[ValidationIssue]
    warnings: List[ValidationIssue]

    def format(self) -> str:
        """Format validation results for display."""
        lines = []
        if self.errors:
            lines.append("❌ Errors:")
            for issue in self.errors:
                context = f" (story {issue.story_id})" if issue.story_id else ""
                lines.append(f"  - [{issue.code}]{context}: {issue.message}")
        if self.warnings:
            lines.append("⚠️  Warnings:")
            for issue in self.warnings:
                context = f" (story {issue.story_id})" if issue.story_id else ""
                lines.append(f"  - [{issue.code}]{context}: {issue.message}")
        if not self.errors and not self.warnings:
            lines.append("✅ PRD validation passed")
        return "\n".join(lines)


def validate_prd(prd: Dict[str, Any]) -> ValidationResult:
    """Validate a prd.json document.

    Checks for:
    - Structure and field types (anything Backlog.from_dict rejects)
    - Dependency references to unknown stories, and self-dependencies
    - Circular dependencies
    - Blocked stories and story sizing concerns

    Args:
        prd: The PRD dictionary to validate

    Returns:
        ValidationResult with errors and warnings
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    try:
        backlog = Backlog.from_dict(prd)
    except InvalidBacklogError as e:
        errors.append(ValidationIssue(severity="error", code="INVALID_STRUCTURE", message=str(e)))
        return ValidationResult(valid=False, errors=errors, warnings=warnings)

    if not prd.get("project"):
        warnings.append(ValidationIssue(
            severity="warning",
            code="MISSING_PROJECT",
            message="Missing 'project' field"
        ))

    if not backlog.user_stories:
        warnings.append(ValidationIssue(
            severity="warning",
            code="EMPTY_STORIES",
            message="'userStories' is empty - nothing for Ralph to do"
        ))

    known_ids = {s.id for s in backlog.user_stories}
    for story in backlog.user_stories:
        for dep in story.depends_on:
            if dep == story.id:
                errors.append(ValidationIssue(
                    severity="error",
                    code="SELF_DEPENDENCY",
                    message="Story depends on itself",
                    story_id=story.id
                ))
            elif dep not in known_ids:
                errors.append(ValidationIssue(
                    severity="error",
                    code="INVALID_DEPENDENCY",
                    message=f"Depends on unknown story '{dep}'",
                    story_id=story.id
                ))

        if story.blocked and not story.passes:
            warnings.append(ValidationIssue(
                severity="warning",
                code="BLOCKED",
                message="Story is blocked and will be skipped until unblocked",
                story_id=story.id
            ))

        if not story.acceptance_criteria:
            warnings.append(ValidationIssue(
                severity="warning",
                code="MISSING_CRITERIA",
                message="No acceptance criteria defined",
                story_id=story.id
            ))
        elif len(story.acceptance_criteria) > 8:
            warnings.append(ValidationIssue(
                severity="warning",
                code="MANY_CRITERIA",
                message=f"{len(story.acceptance_criteria)} acceptance criteria - story may be too large",
                story_id=story.id
            ))

        if len(story.description) > 500:
            warnings.append(ValidationIssue(
                severity="warning",
                code="LARGE_STORY",
                message="Description is very long - consider breaking into smaller stories",
                story_id=story.id
            ))

    for cycle in find_dependency_cycles(backlog.user_stories):
        # Self-dependencies are already reported above
        if len(cycle) == 2:
            continue
        errors.append(ValidationIssue(
            severity="error",
            code="CIRCULAR_DEPENDENCY",
            message=f"Circular dependency detected: {' → '.join(cycle)}"
        ))

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings
    )
