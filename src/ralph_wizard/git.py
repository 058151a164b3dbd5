"""Git workflow for stories: branch naming, branch creation, rebase and PRs."""

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from ralph_wizard.config import GitSettings
from ralph_wizard.errors import BranchCreationError
from ralph_wizard.models import Backlog, Story

console = Console()

DEFAULT_BASE_BRANCH = "main"
SLUG_MAX_LENGTH = 30

# Timeout for local git operations (seconds)
GIT_TIMEOUT_SECONDS = 60

# Timeout for GitHub CLI / network operations (seconds)
GH_TIMEOUT_SECONDS = 60

PR_TEMPLATE_PATHS = (
    Path(".github") / "pull_request_template.md",
    Path(".github") / "PULL_REQUEST_TEMPLATE.md",
    Path("PULL_REQUEST_TEMPLATE.md"),
    Path("docs") / "pull_request_template.md",
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass
class GitResult:
    """Result of a git command."""
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def run_git(args: List[str], cwd: Path, timeout: int = GIT_TIMEOUT_SECONDS) -> GitResult:
    """
    Run a git command with timeout handling.

    Args:
        args: Git command arguments (e.g., ["status", "--porcelain"])
        cwd: Working directory for the command
        timeout: Timeout in seconds

    Returns:
        GitResult with returncode, stdout, stderr, and timed_out flag
    """
    cmd = ["git", "-C", str(cwd)] + args
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        return GitResult(returncode=result.returncode, stdout=result.stdout, stderr=result.stderr)
    except subprocess.TimeoutExpired:
        return GitResult(returncode=-1, stdout="", stderr=f"Command timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        return GitResult(returncode=127, stdout="", stderr="git not found")


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Kebab-case slug: lowercase, non-alphanumeric runs become one hyphen.

    Truncation happens after stripping and may cut mid-word.
    """
    slug = _NON_ALNUM.sub("-", text.lower()).strip("-")
    return slug[:max_length]


def branch_name_for_story(story: Story, prefix: str = "") -> str:
    """Branch for a story, e.g. "US-001-add-priority-field".

    Titles without letters or digits give just the prefixed id.
    """
    slug = slugify(story.title)
    if not slug:
        return f"{prefix}{story.id}"
    return f"{prefix}{story.id}-{slug}"


def base_branch_for_story(story: Story, backlog: Backlog, settings: GitSettings) -> str:
    """Branch a story's work starts from.

    `main` when the story has no dependencies or when dependency PRs are
    merged before dependents start (waitForMerge). Otherwise the branch of
    the last listed dependency, so stacked work builds on the most recently
    added prerequisite.
    """
    if not story.depends_on or settings.wait_for_merge:
        return DEFAULT_BASE_BRANCH

    dep = backlog.get_story(story.depends_on[-1])
    if dep is None:
        return DEFAULT_BASE_BRANCH
    return dep.branch or branch_name_for_story(dep, settings.branch_prefix)


def pr_target_branch(story: Story, backlog: Backlog, settings: GitSettings) -> str:
    """A story's PR targets the branch it was cut from."""
    return base_branch_for_story(story, backlog, settings)


def branch_exists(repo: Path, branch: str) -> bool:
    """Check if a local branch exists."""
    return run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], repo).success


def has_remote(repo: Path, remote: str = "origin") -> bool:
    return run_git(["remote", "get-url", remote], repo).success


def create_story_branch(repo: Path, story: Story, base: str, prefix: str = "") -> str:
    """Create (or switch to) the story's branch.

    Args:
        repo: Repository path
        story: Story being started
        base: Branch to cut the story branch from
        prefix: Configured branch prefix

    Returns:
        The branch name

    Raises:
        BranchCreationError: If the branch cannot be created or checked out
    """
    branch = story.branch or branch_name_for_story(story, prefix)

    if branch_exists(repo, branch):
        result = run_git(["checkout", branch], repo)
        if not result.success:
            raise BranchCreationError(f"Could not check out existing branch {branch}: {result.stderr.strip()}")
        return branch

    if has_remote(repo):
        # Best effort: a base that only exists locally is fine
        run_git(["fetch", "origin", base], repo, timeout=GH_TIMEOUT_SECONDS)

    start_point = base if branch_exists(repo, base) else f"origin/{base}"
    result = run_git(["checkout", "-b", branch, start_point], repo)
    if not result.success:
        raise BranchCreationError(
            f"Could not create branch {branch} from {base}: {result.stderr.strip()}"
        )
    return branch


def rebase_onto(repo: Path, base: str, branch: Optional[str] = None) -> bool:
    """Rebase branch (default: the current branch) onto base.

    With a branch, git checks it out before rebasing.

    On conflict the rebase is aborted so the working tree is left clean.

    Returns:
        True if the rebase succeeded, False if it conflicted and was aborted
    """
    args = ["rebase", base] if branch is None else ["rebase", base, branch]
    result = run_git(args, repo)
    if result.success:
        return True
    console.print(f"[yellow]⚠️  Rebase onto {base} failed: {result.stderr.strip()}[/yellow]")
    abort = run_git(["rebase", "--abort"], repo)
    if not abort.success:
        console.print(f"[red]❌ git rebase --abort failed: {abort.stderr.strip()}[/red]")
    return False


def find_pr_template(repo: Path) -> Optional[Path]:
    """Locate the repository's pull request template, if any."""
    for relative in PR_TEMPLATE_PATHS:
        path = repo / relative
        if path.is_file():
            return path
    return None


def pr_body_for_story(story: Story) -> str:
    """Default PR description built from the story."""
    lines = [story.description, "", "## Acceptance Criteria"]
    lines.extend(f"- [x] {criterion}" for criterion in story.acceptance_criteria)
    if story.github_issue:
        lines.extend(["", f"Closes #{story.github_issue}"])
    return "\n".join(lines)


def create_pull_request(
    repo: Path,
    story: Story,
    branch: str,
    base: str,
    use_template: bool = False,
) -> Optional[int]:
    """Push the story branch and open a GitHub PR.

    Failures are reported but never raised: the story keeps its other
    updates and simply has no PR.

    Returns:
        PR number, or None if the PR could not be created
    """
    push = run_git(["push", "-u", "origin", branch], repo, timeout=GH_TIMEOUT_SECONDS)
    if not push.success:
        console.print(f"[yellow]⚠️  Failed to push {branch}: {push.stderr.strip()}[/yellow]")
        return None

    cmd = [
        "gh", "pr", "create",
        "--base", base,
        "--head", branch,
        "--title", f"feat: {story.id} - {story.title}",
    ]
    template = find_pr_template(repo) if use_template else None
    if template:
        cmd += ["--body-file", str(template)]
    else:
        cmd += ["--body", pr_body_for_story(story)]

    try:
        result = subprocess.run(
            cmd, capture_output=True, text=True, cwd=str(repo), timeout=GH_TIMEOUT_SECONDS
        )
    except (OSError, subprocess.SubprocessError) as e:
        console.print(f"[yellow]⚠️  Failed to create PR: {e}[/yellow]")
        return None

    if result.returncode != 0:
        console.print(f"[yellow]⚠️  Failed to create PR: {result.stderr.strip()}[/yellow]")
        return None

    pr_url = result.stdout.strip()
    try:
        return int(pr_url.rstrip("/").split("/")[-1])
    except (ValueError, IndexError):
        console.print(f"[yellow]⚠️  PR created but its number could not be read from: {pr_url}[/yellow]")
        return None
