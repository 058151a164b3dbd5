"""Tests for story branch naming, branch creation, rebase and PRs."""

import subprocess
from pathlib import Path
from typing import List
from unittest.mock import MagicMock, patch

import pytest

from ralph_wizard.config import GitSettings
from ralph_wizard.errors import BranchCreationError
from ralph_wizard.git import (
    GitResult,
    base_branch_for_story,
    branch_name_for_story,
    create_pull_request,
    create_story_branch,
    pr_body_for_story,
    pr_target_branch,
    rebase_onto,
    run_git,
    slugify,
)
from ralph_wizard.models import Backlog, Story

OK = GitResult(returncode=0, stdout="", stderr="")
FAIL = GitResult(returncode=1, stdout="", stderr="fatal: nope")


def _story(story_id: str, title: str = "Add login", **kwargs) -> Story:
    return Story(id=story_id, ticket_id=int(story_id.split("-")[1]), title=title, **kwargs)


def test_slugify() -> None:
    assert slugify("Add priority field to database!") == "add-priority-field-to-database"
    assert slugify("  --Hello,   World--  ") == "hello-world"
    assert slugify("A very long title that keeps going forever") == "a-very-long-title-that-keeps-g"
    assert slugify("Fix #12") == "fix-12"


def test_branch_name_for_story() -> None:
    story = _story("US-001", "Add Login Page")
    assert branch_name_for_story(story) == "US-001-add-login-page"
    assert branch_name_for_story(story, prefix="feature/") == "feature/US-001-add-login-page"


def test_branch_name_without_slug() -> None:
    story = _story("US-001", "!!! ???")
    assert branch_name_for_story(story) == "US-001"
    assert branch_name_for_story(story, prefix="feature/") == "feature/US-001"


def test_base_branch_without_dependencies() -> None:
    story = _story("US-001")
    backlog = Backlog(user_stories=[story])
    assert base_branch_for_story(story, backlog, GitSettings()) == "main"


def test_base_branch_uses_last_dependency() -> None:
    first = _story("US-001", "First", branch="custom-branch")
    second = _story("US-002", "Second")
    story = _story("US-003", "Third", depends_on=["US-001", "US-002"])
    backlog = Backlog(user_stories=[first, second, story])
    settings = GitSettings(provider="github", branch_prefix="rw/")

    assert base_branch_for_story(story, backlog, settings) == "rw/US-002-second"

    second.branch = "US-002-renamed"
    assert base_branch_for_story(story, backlog, settings) == "US-002-renamed"
    assert pr_target_branch(story, backlog, settings) == "US-002-renamed"

    story.depends_on = ["US-002", "US-001"]
    assert base_branch_for_story(story, backlog, settings) == "custom-branch"


def test_base_branch_wait_for_merge() -> None:
    dep = _story("US-001", branch="US-001-add-login")
    story = _story("US-002", depends_on=["US-001"])
    backlog = Backlog(user_stories=[dep, story])
    settings = GitSettings(provider="github", wait_for_merge=True)

    assert base_branch_for_story(story, backlog, settings) == "main"
    assert pr_target_branch(story, backlog, settings) == "main"


def test_base_branch_unknown_dependency() -> None:
    story = _story("US-002", depends_on=["US-404"])
    assert base_branch_for_story(story, Backlog(user_stories=[story]), GitSettings()) == "main"


@patch("ralph_wizard.git.subprocess.run")
def test_run_git(mock_run: MagicMock, tmp_path: Path) -> None:
    mock_run.return_value = MagicMock(returncode=0, stdout="ok\n", stderr="")
    result = run_git(["status"], tmp_path)

    assert result.success
    assert mock_run.call_args[0][0] == ["git", "-C", str(tmp_path), "status"]


@patch("ralph_wizard.git.subprocess.run")
def test_run_git_failures(mock_run: MagicMock, tmp_path: Path) -> None:
    mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=1)
    result = run_git(["fetch"], tmp_path, timeout=1)
    assert result.timed_out
    assert not result.success

    mock_run.side_effect = FileNotFoundError()
    assert run_git(["status"], tmp_path).returncode == 127


def _fake_git(existing: List[str], remote: bool = False, fail: tuple = ()):
    """run_git stand-in: knows which local branches exist, records calls."""
    calls: List[List[str]] = []

    def fake(args: List[str], cwd: Path, timeout: int = 60) -> GitResult:
        calls.append(args)
        if args[0] in fail:
            return FAIL
        if args[:3] == ["show-ref", "--verify", "--quiet"]:
            return OK if args[3].replace("refs/heads/", "") in existing else FAIL
        if args[:2] == ["remote", "get-url"]:
            return OK if remote else FAIL
        return OK

    fake.calls = calls  # type: ignore[attr-defined]
    return fake


def test_create_story_branch_from_base(tmp_path: Path) -> None:
    fake = _fake_git(existing=["main"])
    with patch("ralph_wizard.git.run_git", side_effect=fake):
        branch = create_story_branch(tmp_path, _story("US-001"), "main", prefix="rw/")

    assert branch == "rw/US-001-add-login"
    assert ["checkout", "-b", "rw/US-001-add-login", "main"] in fake.calls
    assert not any(c[0] == "fetch" for c in fake.calls)


def test_create_story_branch_uses_remote_base(tmp_path: Path) -> None:
    fake = _fake_git(existing=[], remote=True)
    with patch("ralph_wizard.git.run_git", side_effect=fake):
        create_story_branch(tmp_path, _story("US-002"), "US-001-add-login")

    assert ["fetch", "origin", "US-001-add-login"] in fake.calls
    assert ["checkout", "-b", "US-002-add-login", "origin/US-001-add-login"] in fake.calls


def test_create_story_branch_existing(tmp_path: Path) -> None:
    story = _story("US-001", branch="my-branch")
    fake = _fake_git(existing=["main", "my-branch"])
    with patch("ralph_wizard.git.run_git", side_effect=fake):
        assert create_story_branch(tmp_path, story, "main") == "my-branch"

    assert ["checkout", "my-branch"] in fake.calls


def test_create_story_branch_failure(tmp_path: Path) -> None:
    fake = _fake_git(existing=["main"], fail=("checkout",))
    with patch("ralph_wizard.git.run_git", side_effect=fake):
        with pytest.raises(BranchCreationError, match="US-001-add-login"):
            create_story_branch(tmp_path, _story("US-001"), "main")


def test_rebase_success(tmp_path: Path) -> None:
    with patch("ralph_wizard.git.run_git", return_value=OK) as mock_git:
        assert rebase_onto(tmp_path, "main")
    mock_git.assert_called_once_with(["rebase", "main"], tmp_path)


def test_rebase_named_branch(tmp_path: Path) -> None:
    with patch("ralph_wizard.git.run_git", return_value=OK) as mock_git:
        assert rebase_onto(tmp_path, "main", "US-002-add-logout-button")
    mock_git.assert_called_once_with(["rebase", "main", "US-002-add-logout-button"], tmp_path)


def test_rebase_conflict_aborts(tmp_path: Path) -> None:
    with patch("ralph_wizard.git.run_git", side_effect=[FAIL, OK]) as mock_git:
        assert not rebase_onto(tmp_path, "main")
    assert mock_git.call_args_list[1][0][0] == ["rebase", "--abort"]


def test_pr_body_for_story() -> None:
    story = _story("US-001", description="Login page", acceptance_criteria=["Form renders"], github_issue=7)
    body = pr_body_for_story(story)

    assert body.startswith("Login page")
    assert "- [x] Form renders" in body
    assert body.endswith("Closes #7")


@patch("ralph_wizard.git.subprocess.run")
@patch("ralph_wizard.git.run_git", return_value=OK)
def test_create_pull_request(mock_git: MagicMock, mock_run: MagicMock, tmp_path: Path) -> None:
    mock_run.return_value = MagicMock(returncode=0, stdout="https://github.com/acme/app/pull/42\n", stderr="")
    story = _story("US-002", description="Logout")

    assert create_pull_request(tmp_path, story, "US-002-add-login", "US-001-add-login") == 42

    mock_git.assert_called_once()
    assert mock_git.call_args[0][0] == ["push", "-u", "origin", "US-002-add-login"]
    cmd = mock_run.call_args[0][0]
    assert cmd[:3] == ["gh", "pr", "create"]
    assert cmd[cmd.index("--base") + 1] == "US-001-add-login"
    assert cmd[cmd.index("--title") + 1] == "feat: US-002 - Add login"
    assert "--body" in cmd


@patch("ralph_wizard.git.subprocess.run")
@patch("ralph_wizard.git.run_git", return_value=OK)
def test_create_pull_request_with_template(mock_git: MagicMock, mock_run: MagicMock, tmp_path: Path) -> None:
    template = tmp_path / ".github" / "pull_request_template.md"
    template.parent.mkdir()
    template.write_text("## Summary\n")
    mock_run.return_value = MagicMock(returncode=0, stdout="https://github.com/acme/app/pull/7", stderr="")

    create_pull_request(tmp_path, _story("US-001"), "US-001-add-login", "main", use_template=True)

    cmd = mock_run.call_args[0][0]
    assert cmd[cmd.index("--body-file") + 1] == str(template)


@patch("ralph_wizard.git.subprocess.run")
@patch("ralph_wizard.git.run_git", return_value=FAIL)
def test_create_pull_request_push_failure(mock_git: MagicMock, mock_run: MagicMock, tmp_path: Path) -> None:
    assert create_pull_request(tmp_path, _story("US-001"), "US-001-add-login", "main") is None
    mock_run.assert_not_called()


@patch("ralph_wizard.git.subprocess.run")
@patch("ralph_wizard.git.run_git", return_value=OK)
def test_create_pull_request_gh_failure(mock_git: MagicMock, mock_run: MagicMock, tmp_path: Path) -> None:
    mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="no permission")
    assert create_pull_request(tmp_path, _story("US-001"), "US-001-add-login", "main") is None

    mock_run.side_effect = FileNotFoundError("gh")
    assert create_pull_request(tmp_path, _story("US-001"), "US-001-add-login", "main") is None
