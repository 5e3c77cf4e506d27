"""Discovery and merging of agent sessions (live status files and session stores)."""

from __future__ import annotations

import enum
import json
import os
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Iterator

DEFAULT_HISTORY_LIMIT = 100
HISTORY_WINDOW = timedelta(days=7)

_CHUNK_SIZE = 8 * 1024
_MAX_TAIL_BYTES = 64 * 1024


class AgentRuntime(enum.Enum):
    """The agent program a session belongs to."""

    CLAUDE = "claude"
    CODEX = "codex"

    @property
    def default_label(self) -> str:
        return "Claude" if self is AgentRuntime.CLAUDE else "Codex"

    @property
    def config_dir_name(self) -> str:
        return ".claude" if self is AgentRuntime.CLAUDE else ".codex"


class AgentSessionState(enum.Enum):
    WORKING = "working"
    PROCESSING = "processing"
    WAITING = "waiting"
    COMPLETED = "completed"
    RECENT = "recent"
    UNKNOWN = "unknown"


class AgentSessionSource(enum.Enum):
    LIVE_STATUS = "live_status"
    SESSION_STORE = "session_store"
    MERGED = "merged"


@dataclass
class AgentSessionSummary:
    """One agent session as seen by the dashboard."""

    runtime: AgentRuntime
    session_id: str | None
    cwd: Path
    branch: str | None
    agent_label: str
    state: AgentSessionState
    last_activity: datetime
    is_live: bool
    source: AgentSessionSource


@dataclass(frozen=True)
class _SessionFileCandidate:
    runtime: AgentRuntime
    path: Path
    modified: datetime


_STATUS_MAP = {
    "working": AgentSessionState.WORKING,
    "processing": AgentSessionState.PROCESSING,
    "waiting": AgentSessionState.WAITING,
    "subagent_complete": AgentSessionState.COMPLETED,
}


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _from_mtime(mtime: float) -> datetime:
    return datetime.fromtimestamp(mtime).astimezone()


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone()


def _map_status(value: str) -> AgentSessionState:
    return _STATUS_MAP.get(value, AgentSessionState.UNKNOWN)


def _get(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return _INVALID


_INVALID = object()


def _status_file_path(root: Path, runtime: AgentRuntime) -> Path:
    return Path(root) / runtime.config_dir_name / "git-warp" / "status"


def _normalize_path(path: Path | str) -> Path:
    try:
        return Path(path).resolve(strict=True)
    except (OSError, RuntimeError):
        return Path(path)


def _is_path_within_root(path: Path, root: Path) -> bool:
    path = _normalize_path(path)
    root = _normalize_path(root)
    return path == root or path.is_relative_to(root)


def _is_fallback_label(runtime: AgentRuntime, label: str) -> bool:
    label = label.strip()
    return not label or label == runtime.default_label


def _optional_key(value: str | None) -> tuple[int, str]:
    return (0, "") if value is None else (1, value)


def _path_key(path: Path) -> tuple[str, ...]:
    return Path(path).parts


def _preferred_group(items: list[AgentSessionSummary]) -> list[AgentSessionSummary]:
    ordered = sorted(items, key=lambda item: _path_key(item.cwd))
    ordered.sort(key=lambda item: (item.is_live, item.last_activity), reverse=True)
    return ordered


def _session_key(session: AgentSessionSummary) -> tuple:
    if session.session_id is not None:
        return ("session_id", session.runtime, session.session_id)
    return ("cwd", session.runtime, session.cwd)


def _walk_jsonl_files(root: Path) -> Iterator[Path]:
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            path = Path(dirpath) / name
            if path.suffix != ".jsonl" or path.is_symlink() or not path.is_file():
                continue
            yield path


def _session_file_candidates_under(
    root: Path, runtime: AgentRuntime, cutoff: datetime
) -> list[_SessionFileCandidate]:
    candidates = []
    for path in _walk_jsonl_files(root):
        try:
            modified = _from_mtime(path.stat().st_mtime)
        except OSError:
            continue
        if modified < cutoff:
            continue
        candidates.append(_SessionFileCandidate(runtime, path, modified))
    return candidates


class AgentDiscovery:
    """Finds agent sessions that belong to a set of monitored directories."""

    def __init__(self, monitored_paths: Iterable[Path | str], max_history_sessions: int = DEFAULT_HISTORY_LIMIT):
        self.monitored_paths = [Path(p) for p in monitored_paths]
        self.max_history_sessions = max(max_history_sessions, 1)

    def keep_session(self, session: AgentSessionSummary, now: datetime) -> bool:
        """Whether a session is recent enough and lies inside a monitored path."""
        if now - session.last_activity > HISTORY_WINDOW:
            return False
        return any(_is_path_within_root(session.cwd, root) for root in self.monitored_paths)

    def discover(self, now: datetime | None = None) -> list[AgentSessionSummary]:
        """Return merged live and recent sessions, newest and live first."""
        if now is None:
            now = _local_now()
        live_sessions = merge_session_summaries(self.load_live_statuses())
        history = merge_session_summaries(self._load_recent_history_sessions(now))
        merged = _merge_live_sessions(live_sessions, history)
        sort_session_summaries(merged)
        return merged

    def load_live_statuses(self) -> list[AgentSessionSummary]:
        """Read the live status files of every monitored path."""
        sessions = []
        for root in self.monitored_paths:
            for runtime in (AgentRuntime.CLAUDE, AgentRuntime.CODEX):
                summary = parse_live_status_file(runtime, _status_file_path(root, runtime))
                if summary is not None:
                    sessions.append(summary)
        return sessions

    def _load_recent_history_sessions(self, now: datetime) -> list[AgentSessionSummary]:
        try:
            home = Path.home()
        except (RuntimeError, KeyError):
            return []

        cutoff = now - HISTORY_WINDOW
        candidates = [
            *_session_file_candidates_under(home / ".codex" / "sessions", AgentRuntime.CODEX, cutoff),
            *_session_file_candidates_under(home / ".claude" / "projects", AgentRuntime.CLAUDE, cutoff),
        ]
        candidates.sort(key=lambda c: (c.modified, _path_key(c.path)), reverse=True)

        sessions: list[AgentSessionSummary] = []
        for candidate in candidates:
            line_parser = (
                parse_codex_session_meta_line
                if candidate.runtime is AgentRuntime.CODEX
                else parse_claude_session_event_line
            )
            summary = _parse_session_file(candidate.path, candidate.modified, line_parser)
            if summary is not None and self.keep_session(summary, now):
                sessions.append(summary)
                if len(sessions) >= self.max_history_sessions:
                    break
        return sessions


def parse_live_status_file(runtime: AgentRuntime, status_path: Path | str) -> AgentSessionSummary | None:
    """Parse a live status file; None if it is missing or not JSON."""
    status_path = Path(status_path)
    try:
        content = status_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None

    value = _load_json(content)
    if value is _INVALID:
        return None

    timestamp = _as_str(_get(value, "last_activity"))
    last_activity = _parse_timestamp(timestamp) if timestamp is not None else None
    if last_activity is None:
        try:
            last_activity = _from_mtime(status_path.stat().st_mtime)
        except OSError:
            last_activity = _local_now()

    status = _as_str(_get(value, "status"))
    return AgentSessionSummary(
        runtime=runtime,
        session_id=None,
        cwd=_normalize_path(status_path.parent.parent.parent),
        branch=None,
        agent_label=runtime.default_label,
        state=_map_status(status) if status is not None else AgentSessionState.UNKNOWN,
        last_activity=last_activity,
        is_live=True,
        source=AgentSessionSource.LIVE_STATUS,
    )


def parse_codex_session_meta_line(line: str) -> AgentSessionSummary | None:
    """Parse a Codex `session_meta` record; None for any other line."""
    value = _load_json(line)
    if value is _INVALID or _as_str(_get(value, "type")) != "session_meta":
        return None
    payload = _get(value, "payload")
    if payload is None:
        return None
    cwd = _as_str(_get(payload, "cwd"))
    if cwd is None:
        return None

    nickname = _as_str(_get(payload, "agent_nickname"))
    role = _as_str(_get(payload, "agent_role"))
    if nickname is not None and role is not None:
        agent_label = f"{nickname} ({role})"
    elif nickname is not None:
        agent_label = nickname
    else:
        agent_label = "Codex"

    branch = _as_str(_get(_get(payload, "git"), "branch"))
    if branch is None:
        key = "gitBranch" if isinstance(payload, dict) and "gitBranch" in payload else "branch"
        branch = _as_str(_get(payload, key))

    timestamp = _as_str(_get(payload, "timestamp"))
    last_activity = _parse_timestamp(timestamp) if timestamp is not None else None
    if last_activity is None:
        return None

    return AgentSessionSummary(
        runtime=AgentRuntime.CODEX,
        session_id=_as_str(_get(payload, "id")),
        cwd=_normalize_path(cwd),
        branch=branch,
        agent_label=agent_label,
        state=AgentSessionState.RECENT,
        last_activity=last_activity,
        is_live=False,
        source=AgentSessionSource.SESSION_STORE,
    )


def parse_claude_session_event_line(line: str) -> AgentSessionSummary | None:
    """Parse a Claude session event that carries a working directory."""
    value = _load_json(line)
    if value is _INVALID:
        return None
    cwd = _as_str(_get(value, "cwd"))
    if cwd is None:
        return None
    timestamp = _as_str(_get(value, "timestamp"))
    last_activity = _parse_timestamp(timestamp) if timestamp is not None else None
    if last_activity is None:
        return None

    return AgentSessionSummary(
        runtime=AgentRuntime.CLAUDE,
        session_id=_as_str(_get(value, "sessionId")),
        cwd=_normalize_path(cwd),
        branch=_as_str(_get(value, "gitBranch")),
        agent_label="Claude",
        state=AgentSessionState.RECENT,
        last_activity=last_activity,
        is_live=False,
        source=AgentSessionSource.SESSION_STORE,
    )


def _iter_text_lines(path: Path) -> Iterator[str]:
    with path.open("rb") as handle:
        for raw in handle:
            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError:
                return
            if text.endswith("\n"):
                text = text[:-1]
                if text.endswith("\r"):
                    text = text[:-1]
            yield text


def _parse_session_file(path: Path, fallback_last_activity: datetime, line_parser) -> AgentSessionSummary | None:
    try:
        session = next(
            (s for s in map(line_parser, _iter_text_lines(path)) if s is not None),
            None,
        )
    except OSError:
        return None
    if session is None:
        return None
    session.last_activity = _last_jsonl_timestamp(path) or fallback_last_activity
    return session


def _last_jsonl_timestamp(path: Path) -> datetime | None:
    line = _last_non_empty_line(path)
    if line is None:
        return None
    value = _load_json(line)
    if value is _INVALID:
        return None
    timestamp = _as_str(_get(value, "timestamp"))
    return _parse_timestamp(timestamp) if timestamp is not None else None


def _last_non_empty_line(path: Path) -> str | None:
    try:
        with path.open("rb") as handle:
            cursor = handle.seek(0, os.SEEK_END)
            data = b""
            while cursor > 0 and len(data) < _MAX_TAIL_BYTES:
                read_size = min(_CHUNK_SIZE, cursor)
                cursor -= read_size
                handle.seek(cursor)
                chunk = handle.read(read_size)
                if len(chunk) != read_size:
                    return None
                data = chunk + data
                if data.count(b"\n") >= 2:
                    break
    except OSError:
        return None

    for line in reversed(data.decode("utf-8", errors="replace").split("\n")):
        line = line.removesuffix("\r")
        if line.strip():
            return line
    return None


def merge_session_summaries(items: Iterable[AgentSessionSummary]) -> list[AgentSessionSummary]:
    """Collapse sessions that share a session id (or, lacking one, a directory)."""
    grouped: dict[tuple, list[AgentSessionSummary]] = {}
    for item in items:
        grouped.setdefault(_session_key(item), []).append(item)

    return [
        group[0] if len(group) == 1 else _merge_session_group(_preferred_group(group))
        for group in grouped.values()
    ]


def _merge_session_group(items: list[AgentSessionSummary]) -> AgentSessionSummary:
    selected = replace(items[0])
    newest = max(item.last_activity for item in items)
    live_item = next((item for item in items if item.is_live), None)
    store_item = next(
        (item for item in items if item.source is AgentSessionSource.SESSION_STORE), None
    )

    if live_item is not None:
        selected.state = live_item.state
        selected.is_live = True

    if selected.branch is None or _is_fallback_label(selected.runtime, selected.agent_label):
        branch = next((item.branch for item in items if item.branch), None)
        if branch is not None:
            selected.branch = branch

    if (
        _is_fallback_label(selected.runtime, selected.agent_label)
        and store_item is not None
        and not _is_fallback_label(selected.runtime, store_item.agent_label)
    ):
        label = next(
            (item.agent_label for item in items if not _is_fallback_label(selected.runtime, item.agent_label)),
            None,
        )
        if label is not None:
            selected.agent_label = label

    if selected.session_id is None:
        selected.session_id = next(
            (item.session_id for item in items if item.session_id is not None), None
        )

    selected.last_activity = newest
    selected.source = AgentSessionSource.MERGED
    return selected


def _history_merge_key(item: AgentSessionSummary) -> tuple:
    return (
        item.last_activity,
        _optional_key(item.session_id),
        _optional_key(item.branch),
        item.agent_label,
        _path_key(item.cwd),
    )


def _merge_live_sessions(
    live_sessions: list[AgentSessionSummary],
    history_sessions: list[AgentSessionSummary],
) -> list[AgentSessionSummary]:
    history_by_cwd: dict[tuple, list[AgentSessionSummary]] = {}
    for session in history_sessions:
        history_by_cwd.setdefault((session.runtime, session.cwd), []).append(session)

    merged: list[AgentSessionSummary] = []
    for live in live_sessions:
        group = history_by_cwd.pop((live.runtime, live.cwd), None)
        if not group:
            merged.append(live)
            continue
        group = sorted(group, key=_history_merge_key, reverse=True)
        newest, *rest = group
        merged.append(_merge_session_group([live, newest]))
        merged.extend(rest)

    for group in history_by_cwd.values():
        merged.extend(group)
    return merged


def sort_session_summaries(items: list[AgentSessionSummary]) -> None:
    """Sort in place: live first, then newest, then by session id and directory."""
    items.sort(key=lambda item: (_optional_key(item.session_id), _path_key(item.cwd)))
    items.sort(key=lambda item: (item.is_live, item.last_activity), reverse=True)