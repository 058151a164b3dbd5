"""Sandy sandbox integration (required for unattended runs)."""

import subprocess
from pathlib import Path

SANDY_INSTALL_HINT = "Install: https://github.com/anthropics/sandy"

# Timeout for sandy housekeeping commands (seconds)
SANDY_TIMEOUT_SECONDS = 120


def is_sandy_installed() -> bool:
    """Check whether `sandy --version` runs."""
    try:
        result = subprocess.run(
            ["sandy", "--version"],
            capture_output=True,
            timeout=SANDY_TIMEOUT_SECONDS,
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError):
        return False


def ensure_sandy_config(project_dir: Path) -> bool:
    """Run `sandy init` unless sandy.json already exists.

    Returns:
        True if sandy.json was created, False if it already existed or init failed
    """
    if (project_dir / "sandy.json").exists():
        return False
    try:
        result = subprocess.run(
            ["sandy", "init"],
            capture_output=True,
            cwd=project_dir,
            timeout=SANDY_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.SubprocessError):
        return False
    return result.returncode == 0


def run_in_sandbox(project_dir: Path, script: Path, iterations: int) -> int:
    """Run the loop script inside the sandbox with the terminal attached.

    Returns:
        The script's exit code (0 completed, 1 exhausted)
    """
    relative = script.relative_to(project_dir)
    result = subprocess.run(
        ["sandy", "run", f"./{relative} {iterations}"],
        cwd=project_dir,
    )
    return result.returncode
