"""Tests for the next-story selection policy."""

import itertools
from typing import List, Tuple

import pytest

from ralph_wizard.models import Backlog, Story
from ralph_wizard.selection import (
    SelectionStatus,
    eligible_stories,
    select_next_story,
    unmet_dependencies,
)


def _story(story_id: str, ticket_id: int, priority: int = 1, **kwargs) -> Story:
    return Story(id=story_id, ticket_id=ticket_id, title=f"Story {story_id}", priority=priority, **kwargs)


def test_dependency_beats_priority() -> None:
    """B has the better priority but waits on A, so A goes first."""
    a = _story("A", 1, priority=2)
    b = _story("B", 2, priority=1, depends_on=["A"])
    backlog = Backlog(user_stories=[a, b])

    selection = select_next_story(backlog)
    assert selection.status is SelectionStatus.READY
    assert selection.story is a
    assert selection.waiting == [b]

    a.passes = True
    assert select_next_story(backlog).story is b


def test_lowest_priority_number_wins() -> None:
    backlog = Backlog(user_stories=[_story("A", 1, priority=3), _story("B", 2, priority=1)])
    assert select_next_story(backlog).story.id == "B"


def test_ties_broken_by_backlog_order() -> None:
    backlog = Backlog(user_stories=[_story("A", 1, priority=2), _story("B", 2, priority=2)])
    assert select_next_story(backlog).story.id == "A"
    assert [s.id for s in eligible_stories(backlog)] == ["A", "B"]


def test_passing_stories_never_selected() -> None:
    backlog = Backlog(user_stories=[_story("A", 1, passes=True), _story("B", 2, priority=5)])
    assert select_next_story(backlog).story.id == "B"


def test_blocked_only_remaining_is_complete() -> None:
    """A blocked story does not keep the run from completing."""
    blocked = _story("B", 2, blocked=True)
    backlog = Backlog(user_stories=[_story("A", 1, passes=True), blocked])

    selection = select_next_story(backlog)
    assert selection.is_complete
    assert selection.story is None
    assert selection.blocked == [blocked]


def test_empty_backlog_is_complete() -> None:
    assert select_next_story(Backlog()).status is SelectionStatus.COMPLETE


def test_unknown_dependency_stalls() -> None:
    waiting = _story("A", 1, depends_on=["GHOST"])
    selection = select_next_story(Backlog(user_stories=[waiting]))

    assert selection.is_stalled
    assert selection.waiting == [waiting]


def test_dependency_on_blocked_story_stalls() -> None:
    backlog = Backlog(user_stories=[
        _story("A", 1, blocked=True),
        _story("B", 2, depends_on=["A"]),
    ])
    selection = select_next_story(backlog)

    assert selection.is_stalled
    assert [s.id for s in selection.blocked] == ["A"]
    assert [s.id for s in selection.waiting] == ["B"]


def test_unmet_dependencies() -> None:
    done = _story("A", 1, passes=True)
    todo = _story("B", 2)
    story = _story("C", 3, depends_on=["A", "B", "Z"])
    backlog = Backlog(user_stories=[done, todo, story])

    assert unmet_dependencies(story, backlog) == ["B", "Z"]


STORY_IDS = ["US-001", "US-002", "US-003"]
PRIORITIES = [2, 1, 2]


def _dependency_choices(story_id: str) -> List[List[str]]:
    others = [s for s in STORY_IDS if s != story_id]
    return [list(combo) for n in range(len(others) + 1) for combo in itertools.combinations(others, n)]


@pytest.mark.parametrize("flags", list(itertools.product([False, True], repeat=6)))
def test_selection_never_picks_ineligible_story(flags: Tuple[bool, ...]) -> None:
    """Every blocked/passes/dependsOn combination of three stories."""
    dependency_sets = [_dependency_choices(story_id) for story_id in STORY_IDS]

    for depends_on in itertools.product(*dependency_sets):
        stories = [
            _story(
                story_id, index + 1, priority=PRIORITIES[index],
                blocked=flags[2 * index], passes=flags[2 * index + 1], depends_on=list(depends_on[index]),
            )
            for index, story_id in enumerate(STORY_IDS)
        ]
        backlog = Backlog(user_stories=stories)
        eligible = [
            s for s in stories
            if not s.blocked and not s.passes
            and all(backlog.get_story(dep).passes for dep in s.depends_on)
        ]

        selection = select_next_story(backlog)

        if eligible:
            assert selection.status is SelectionStatus.READY
            story = selection.story
            assert story is not None
            assert not story.blocked
            assert not story.passes
            assert unmet_dependencies(story, backlog) == []
            best = min(eligible, key=lambda s: (s.priority, stories.index(s)))
            assert story is best
        elif all(s.passes for s in stories if not s.blocked):
            assert selection.status is SelectionStatus.COMPLETE
        else:
            assert selection.status is SelectionStatus.STALLED
            assert selection.waiting
