"""Exceptions raised by Ralph."""


class RalphError(Exception):
    """Base class for errors reported to the user as a single message."""

    pass


class ConfigurationError(RalphError):
    """Raised when .ralph/config.json is missing required settings or invalid."""

    pass


class InvalidBacklogError(RalphError):
    """Raised when prd.json cannot be turned into a typed backlog."""

    pass


class BranchCreationError(RalphError):
    """Raised when a story branch cannot be created or checked out."""

    pass


class GitHubError(RalphError):
    """Raised when the gh CLI is missing, unauthenticated, or fails."""

    pass


class WorkerError(RalphError):
    """Raised when the external agent cannot be invoked at all."""

    pass
