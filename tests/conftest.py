"""Shared fixtures for Ralph tests."""

import json
from pathlib import Path
from typing import Any, Callable, Dict

import pytest


@pytest.fixture
def sample_prd_data() -> Dict[str, Any]:
    """Three stories: one done, one ready, one waiting on the ready one."""
    return {
        "project": "Test Project",
        "branchName": "ralph/test",
        "description": "Test description",
        "userStories": [
            {
                "id": "US-001",
                "ticketId": 1,
                "title": "Add login form",
                "description": "Login form with email and password",
                "acceptanceCriteria": ["Form renders", "Submits credentials"],
                "priority": 1,
                "passes": True,
                "blocked": False,
                "notes": "",
            },
            {
                "id": "US-002",
                "ticketId": 2,
                "title": "Add logout button",
                "description": "Logout button in the header",
                "acceptanceCriteria": ["Button visible when logged in"],
                "priority": 2,
                "passes": False,
                "blocked": False,
                "notes": "",
            },
            {
                "id": "US-003",
                "ticketId": 3,
                "title": "Remember me",
                "description": "Persist the session",
                "acceptanceCriteria": ["Session survives restart"],
                "priority": 1,
                "passes": False,
                "blocked": False,
                "notes": "",
                "dependsOn": ["US-002"],
            },
        ],
    }


@pytest.fixture
def prd_file(tmp_path: Path, sample_prd_data: Dict[str, Any]) -> Path:
    """Create a temporary .ralph/prd.json."""
    ralph_dir = tmp_path / ".ralph"
    ralph_dir.mkdir()
    prd_path = ralph_dir / "prd.json"
    with open(prd_path, "w") as f:
        json.dump(sample_prd_data, f, indent=2)
    return prd_path


@pytest.fixture
def project(prd_file: Path) -> Path:
    """An initialized project directory (config.json + prd.json)."""
    project_dir = prd_file.parent.parent
    config = {
        "agent": "claude",
        "maxIterations": 5,
        "ticketPrefix": "US",
        "git": {"provider": "none"},
    }
    (project_dir / ".ralph" / "config.json").write_text(json.dumps(config, indent=2))
    (project_dir / ".ralph" / "CLAUDE.md").write_text("Do the next story.\n")
    return project_dir


@pytest.fixture
def read_prd(project: Path) -> Callable[[], Dict[str, Any]]:
    """Read the project's prd.json back from disk."""
    def _read() -> Dict[str, Any]:
        with open(project / ".ralph" / "prd.json") as f:
            return json.load(f)
    return _read
