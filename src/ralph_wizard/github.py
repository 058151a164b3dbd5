"""
GitHub issue integration via the gh CLI.

Provides the availability check behind `ralph gh check` and the issue
lookups behind `ralph gh import` / `ralph gh sync`.
"""

import json
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Tuple

from ralph_wizard.errors import GitHubError
from ralph_wizard.prd import Issue

# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

ISSUE_FIELDS = "number,title,body,labels"

GH_INSTALL_HINT = "Install: https://cli.github.com/"


def check_gh_available() -> Tuple[bool, str]:
    """Check gh CLI is installed and authenticated.

    Returns: (ok, error_message)
    """
    try:
        result = subprocess.run(
            ["gh", "--version"],
            capture_output=True,
            timeout=5,
        )
        if result.returncode != 0:
            return False, f"GitHub CLI (gh) not installed\n  {GH_INSTALL_HINT}"

        result = subprocess.run(
            ["gh", "auth", "status"],
            capture_output=True,
            text=True,
            timeout=10,
        )
        if result.returncode != 0:
            return False, "GitHub CLI not authenticated\n  Run: gh auth login"

        return True, ""

    except FileNotFoundError:
        return False, f"GitHub CLI (gh) not found\n  {GH_INSTALL_HINT}"
    except subprocess.TimeoutExpired:
        return False, "GitHub CLI timed out"


def _run_gh(args: List[str], repo: Path) -> Any:
    """Run a gh command that prints JSON and return the parsed result.

    Raises:
        GitHubError: If gh is missing, times out, fails, or prints invalid JSON
    """
    try:
        result = subprocess.run(
            ["gh"] + args,
            capture_output=True,
            text=True,
            cwd=str(repo),
            timeout=GH_TIMEOUT_SECONDS,
        )
    except FileNotFoundError:
        raise GitHubError(f"GitHub CLI (gh) not found\n  {GH_INSTALL_HINT}")
    except subprocess.TimeoutExpired:
        raise GitHubError("GitHub API timeout")

    if result.returncode != 0:
        raise GitHubError(result.stderr.strip() or f"gh {' '.join(args)} failed")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError:
        raise GitHubError("Invalid JSON from gh")


def _issue_from_json(data: Dict[str, Any]) -> Issue:
    labels = tuple(
        label.get("name", "") if isinstance(label, dict) else str(label)
        for label in data.get("labels") or []
    )
    return Issue(
        number=int(data["number"]),
        title=data.get("title", ""),
        body=data.get("body") or "",
        labels=labels,
    )


def fetch_issue(repo: Path, number: int) -> Issue:
    """Fetch a single issue.

    Raises:
        GitHubError: If the issue cannot be fetched
    """
    data = _run_gh(["issue", "view", str(number), "--json", ISSUE_FIELDS], repo)
    return _issue_from_json(data)


def list_open_issues(repo: Path, limit: int = 100) -> List[Issue]:
    """List open issues, lowest number first.

    Raises:
        GitHubError: If the issues cannot be listed
    """
    data = _run_gh(
        ["issue", "list", "--state", "open", "--limit", str(limit), "--json", ISSUE_FIELDS],
        repo,
    )
    issues = [_issue_from_json(item) for item in data]
    return sorted(issues, key=lambda issue: issue.number)
