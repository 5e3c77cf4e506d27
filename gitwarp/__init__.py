"""Git worktree helpers: agent session discovery, branch selection, switch reports, shell snippets and setup checks."""

__version__ = "0.2.0"

__all__ = ["agents", "selection", "report", "shellconfig", "environment"]