"""Choosing agent branches to switch to and labelling worktrees for listings."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from gitwarp.agents import AgentSessionState, AgentSessionSummary


class NoAgentBranchError(LookupError):
    """No agent session offers a branch matching the requested selector."""


def select_agent_branch(sessions: Iterable[AgentSessionSummary], waiting: bool) -> str:
    """Return the branch of the first session that matches the selector.

    With ``waiting`` the first waiting session wins; otherwise the first
    session that has not completed. Sessions without a branch are ignored.
    Raises NoAgentBranchError when nothing matches.
    """
    for session in sessions:
        if not session.branch:
            continue
        if waiting:
            if session.state is AgentSessionState.WAITING:
                return session.branch
        elif session.state is not AgentSessionState.COMPLETED:
            return session.branch

    if waiting:
        raise NoAgentBranchError("No waiting agent branches were found for this repository")
    raise NoAgentBranchError("No recent agent branches were found for this repository")


def agent_monitored_paths(root: Path | str, worktree_paths: Iterable[Path | str]) -> list[Path]:
    """The repository root plus every worktree path, sorted and without duplicates."""
    paths = sorted((Path(root), *map(Path, worktree_paths)), key=lambda path: path.parts)
    unique: list[Path] = []
    for path in paths:
        if not unique or unique[-1] != path:
            unique.append(path)
    return unique


def worktree_status_labels(
    is_primary: bool,
    is_current: bool,
    is_dirty: bool,
    is_detached: bool,
    is_busy: bool,
) -> list[str]:
    """Status words shown next to a worktree, in display order."""
    flags = (
        ("primary", is_primary),
        ("current", is_current),
        ("dirty", is_dirty),
        ("detached", is_detached),
        ("busy", is_busy),
    )
    return [label for label, enabled in flags if enabled]


def format_status_labels(labels: Iterable[str]) -> str:
    """Render labels as ``" [a b]"``, or an empty string when there are none."""
    labels = list(labels)
    if not labels:
        return ""
    return f" [{' '.join(labels)}]"