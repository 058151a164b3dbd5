"""Supported AI coding agent CLIs and how to invoke them."""

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ralph_wizard.errors import WorkerError


@dataclass(frozen=True)
class AgentSpec:
    """How to run one agent CLI non-interactively."""

    id: str
    name: str
    command: str
    dangerous_flag: str
    prompt_flag: str  # empty when the prompt is piped on stdin
    install_hint: str
    description: str


AGENTS: Dict[str, AgentSpec] = {
    "claude": AgentSpec(
        id="claude",
        name="Claude Code",
        command="claude",
        dangerous_flag="--dangerously-skip-permissions",
        prompt_flag="",
        install_hint="npm install -g @anthropic-ai/claude-code",
        description="Anthropic's CLI (recommended)",
    ),
    "codex": AgentSpec(
        id="codex",
        name="OpenAI Codex CLI",
        command="codex",
        dangerous_flag="--full-auto",
        prompt_flag="-q",
        install_hint="npm install -g @openai/codex",
        description="OpenAI's CLI",
    ),
    "gemini": AgentSpec(
        id="gemini",
        name="Gemini CLI",
        command="gemini",
        dangerous_flag="-y",
        prompt_flag="-p",
        install_hint="npm install -g @google/gemini-cli",
        description="Google's CLI",
    ),
}

# Timeout for `<agent> --version` checks (seconds)
VERSION_CHECK_TIMEOUT = 30


def get_agent(agent_id: str) -> AgentSpec:
    """Look up an agent by id.

    Raises:
        WorkerError: If the agent is not supported
    """
    try:
        return AGENTS[agent_id]
    except KeyError:
        raise WorkerError(f"Unsupported agent '{agent_id}' - must be one of: {', '.join(AGENTS)}")


def is_installed(agent_id: str) -> bool:
    """Check whether the agent's binary is on PATH."""
    return shutil.which(get_agent(agent_id).command) is not None


def check_auth(agent_id: str) -> bool:
    """Basic authentication check.

    The agents prompt for login themselves when needed, so a working
    `--version` is treated as good enough.
    """
    try:
        result = subprocess.run(
            [get_agent(agent_id).command, "--version"],
            capture_output=True,
            text=True,
            timeout=VERSION_CHECK_TIMEOUT,
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError):
        return False


def build_command(agent_id: str, prompt: str) -> Tuple[List[str], Optional[str]]:
    """Build the argv for a non-interactive agent run.

    Args:
        agent_id: Agent id (claude, codex, gemini)
        prompt: Prompt text

    Returns:
        (argv, stdin_text) - stdin_text is None when the prompt is passed as an argument
    """
    spec = get_agent(agent_id)
    if spec.id == "claude":
        return [spec.command, spec.dangerous_flag, "--print"], prompt
    return [spec.command, spec.dangerous_flag, spec.prompt_flag, prompt], None


def run_agent(agent_id: str, prompt: str, cwd: Path) -> int:
    """Run the agent once with output going straight to the terminal.

    Returns:
        The agent's exit code

    Raises:
        WorkerError: If the agent binary cannot be executed
    """
    argv, stdin_text = build_command(agent_id, prompt)
    try:
        result = subprocess.run(argv, input=stdin_text, text=True, cwd=cwd)
    except OSError as e:
        spec = get_agent(agent_id)
        raise WorkerError(f"Could not run {spec.name}: {e}\n   Install: {spec.install_hint}")
    return result.returncode
