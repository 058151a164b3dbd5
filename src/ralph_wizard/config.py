"""Ralph configuration management."""

import json
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ralph_wizard.errors import ConfigurationError

AGENT_IDS = ("claude", "codex", "gemini")
GIT_PROVIDERS = ("github", "none")

DEFAULT_AGENT = "claude"
DEFAULT_MAX_ITERATIONS = 30
DEFAULT_TICKET_PREFIX = "US"

TICKET_PREFIX_PATTERN = re.compile(r"^[A-Za-z]{2,5}$")


def normalize_ticket_prefix(prefix: str) -> str:
    """Validate a ticket prefix (2-5 letters) and upper-case it.

    Raises:
        ConfigurationError: If the prefix is not 2-5 letters
    """
    prefix = (prefix or "").strip()
    if not TICKET_PREFIX_PATTERN.match(prefix):
        raise ConfigurationError(f"Ticket prefix must be 2-5 letters, got '{prefix}'")
    return prefix.upper()


@dataclass
class GitSettings:
    """The `git` section of config.json."""

    provider: str = "none"
    create_prs: bool = False
    use_pr_template: bool = False
    wait_for_merge: bool = False
    branch_prefix: str = ""
    use_xgit: bool = False

    @property
    def uses_github(self) -> bool:
        return self.provider == "github"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GitSettings":
        if not isinstance(data, dict):
            raise ConfigurationError("'git' must be an object")
        provider = data.get("provider", "none")
        if provider not in GIT_PROVIDERS:
            raise ConfigurationError(
                f"Unknown git provider '{provider}' - must be one of: {', '.join(GIT_PROVIDERS)}"
            )
        settings = cls(
            provider=provider,
            create_prs=data.get("createPRs", False),
            use_pr_template=data.get("usePRTemplate", False),
            wait_for_merge=data.get("waitForMerge", False),
            branch_prefix=data.get("branchPrefix") or "",
            use_xgit=data.get("useXgit", False),
        )
        for name in ("create_prs", "use_pr_template", "wait_for_merge", "use_xgit"):
            if not isinstance(getattr(settings, name), bool):
                raise ConfigurationError(f"git.{name} must be true or false")
        if not isinstance(settings.branch_prefix, str):
            raise ConfigurationError("git.branchPrefix must be a string")
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "createPRs": self.create_prs,
            "usePRTemplate": self.use_pr_template,
            "waitForMerge": self.wait_for_merge,
            "branchPrefix": self.branch_prefix,
            "useXgit": self.use_xgit,
        }


def default_config() -> Dict[str, Any]:
    """Configuration used when .ralph/config.json does not exist."""
    return {
        "agent": DEFAULT_AGENT,
        "maxIterations": DEFAULT_MAX_ITERATIONS,
        "createdAt": datetime.now().isoformat(),
        "ticketPrefix": DEFAULT_TICKET_PREFIX,
        "git": GitSettings().to_dict(),
    }


class RalphConfig:
    """Configuration and file layout for one project.

    This is the context every operation receives instead of looking at the
    current directory itself:
        project/
        ├── .ralph/
        │   ├── config.json      # Agent, iterations, ticket prefix, git workflow
        │   ├── prd.json         # Backlog of user stories
        │   ├── progress.txt     # Progress log the agent appends to
        │   ├── ralph.sh         # Loop script run inside the sandbox
        │   ├── CLAUDE.md        # Agent prompt (prompt.md for other agents)
        │   └── logs/            # Iteration logs
        └── sandy.json           # Sandbox configuration
    """

    def __init__(self, project_dir: Optional[Path] = None) -> None:
        """Initialize Ralph configuration.

        Args:
            project_dir: Project directory containing .ralph/ (default: cwd)

        Raises:
            ConfigurationError: If config.json exists but is invalid
        """
        self.project_dir = Path(project_dir or Path.cwd()).resolve()
        self.ralph_dir = self.project_dir / ".ralph"
        self.config_path = self.ralph_dir / "config.json"
        self._config = self._load_config()
        self._validate()

    @property
    def prd_path(self) -> Path:
        """Path to PRD file."""
        return self.ralph_dir / "prd.json"

    @property
    def progress_path(self) -> Path:
        """Path to progress file."""
        return self.ralph_dir / "progress.txt"

    @property
    def script_path(self) -> Path:
        """Path to the generated loop script."""
        return self.ralph_dir / "ralph.sh"

    @property
    def prompt_path(self) -> Path:
        """Path to the agent prompt (CLAUDE.md for Claude Code, prompt.md otherwise)."""
        return self.ralph_dir / prompt_filename(self.agent)

    @property
    def logs_dir(self) -> Path:
        """Path to logs directory."""
        return self.ralph_dir / "logs"

    @property
    def is_initialized(self) -> bool:
        return self.ralph_dir.exists()

    @property
    def agent(self) -> str:
        return str(self._config["agent"])

    @property
    def max_iterations(self) -> int:
        return int(self._config["maxIterations"])

    @property
    def ticket_prefix(self) -> str:
        return str(self._config["ticketPrefix"])

    @property
    def git(self) -> GitSettings:
        return GitSettings.from_dict(self._config.get("git", {}))

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file, filling in defaults for missing keys."""
        config = default_config()
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    loaded = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {self.config_path}: {e}")
            if not isinstance(loaded, dict):
                raise ConfigurationError(f"{self.config_path} must contain a JSON object")
            loaded_git = loaded.get("git", {})
            if not isinstance(loaded_git, dict):
                raise ConfigurationError("'git' must be an object")
            git = {**config["git"], **loaded_git}
            config.update(loaded)
            config["git"] = git
        return config

    def _validate(self) -> None:
        agent = self._config.get("agent")
        if agent not in AGENT_IDS:
            raise ConfigurationError(f"Unknown agent '{agent}' - must be one of: {', '.join(AGENT_IDS)}")

        max_iterations = self._config.get("maxIterations")
        if isinstance(max_iterations, bool) or not isinstance(max_iterations, int) or max_iterations < 1:
            raise ConfigurationError(f"maxIterations must be a positive integer, got {max_iterations!r}")

        self._config["ticketPrefix"] = normalize_ticket_prefix(self._config.get("ticketPrefix", ""))
        self._config["git"] = GitSettings.from_dict(self._config.get("git", {})).to_dict()

    def save(self) -> None:
        """Save configuration to file."""
        self._validate()
        self.ralph_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            json.dump(self._config, f, indent=2)
            f.write("\n")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "git.provider")
            default: Default value if key doesn't exist

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value: Any = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "maxIterations")
            value: Value to set
        """
        keys = key.split('.')
        config: Any = self._config

        # Navigate to the parent dict
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._config)


def prompt_filename(agent: str) -> str:
    """Claude Code reads CLAUDE.md; the other agents get prompt.md."""
    return "CLAUDE.md" if agent == "claude" else "prompt.md"
