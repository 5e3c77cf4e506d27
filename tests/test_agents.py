import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from gitwarp.agents import (
    AgentDiscovery,
    AgentRuntime,
    AgentSessionSource,
    AgentSessionState,
    AgentSessionSummary,
    merge_session_summaries,
    parse_claude_session_event_line,
    parse_codex_session_meta_line,
    parse_live_status_file,
    sort_session_summaries,
)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _codex_line(cwd, session_id, branch, timestamp, nickname="Parfit", role="worker"):
    payload = {
        "id": session_id,
        "timestamp": timestamp,
        "cwd": str(cwd),
        "originator": "codex-tui",
        "git": {"branch": branch},
    }
    if nickname is not None:
        payload["agent_nickname"] = nickname
    if role is not None:
        payload["agent_role"] = role
    return json.dumps({"timestamp": timestamp, "type": "session_meta", "payload": payload})


def _write_codex_session(home, cwd, session_id, branch, timestamp):
    sessions = home / ".codex" / "sessions"
    sessions.mkdir(parents=True, exist_ok=True)
    path = sessions / f"{session_id}.jsonl"
    path.write_text(_codex_line(cwd, session_id, branch, timestamp))
    return path


def _write_live_status(worktree, status, timestamp, runtime_dir=".codex"):
    path = worktree / runtime_dir / "git-warp" / "status"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"status": status, "last_activity": timestamp}))
    return path


def _summary(**overrides):
    base = dict(
        runtime=AgentRuntime.CODEX,
        session_id=None,
        cwd=Path("/work/a"),
        branch=None,
        agent_label="Codex",
        state=AgentSessionState.RECENT,
        last_activity=datetime(2026, 4, 24, 10, tzinfo=timezone.utc),
        is_live=False,
        source=AgentSessionSource.SESSION_STORE,
    )
    base.update(overrides)
    return AgentSessionSummary(**base)


def test_parse_codex_meta_line(tmp_path):
    line = _codex_line(tmp_path, "session-latest", "agent-latest", "2026-04-24T10:00:00.000Z")
    summary = parse_codex_session_meta_line(line)
    assert summary.runtime is AgentRuntime.CODEX
    assert summary.session_id == "session-latest"
    assert summary.branch == "agent-latest"
    assert summary.agent_label == "Parfit (worker)"
    assert summary.cwd == tmp_path.resolve()
    assert summary.state is AgentSessionState.RECENT
    assert summary.source is AgentSessionSource.SESSION_STORE
    assert summary.last_activity == datetime(2026, 4, 24, 10, tzinfo=timezone.utc)


def test_codex_labels_fall_back():
    only_nick = parse_codex_session_meta_line(_codex_line("/x", "s", "b", "2026-04-24T10:00:00Z", role=None))
    assert only_nick.agent_label == "Parfit"
    neither = parse_codex_session_meta_line(
        _codex_line("/x", "s", "b", "2026-04-24T10:00:00Z", nickname=None, role=None)
    )
    assert neither.agent_label == "Codex"


def test_codex_branch_from_git_branch_field():
    line = json.dumps({
        "type": "session_meta",
        "payload": {"cwd": "/x", "timestamp": "2026-04-24T10:00:00Z", "gitBranch": "alt"},
    })
    assert parse_codex_session_meta_line(line).branch == "alt"


@pytest.mark.parametrize(
    "line",
    [
        "not json",
        json.dumps({"type": "event", "payload": {"cwd": "/x", "timestamp": "2026-04-24T10:00:00Z"}}),
        json.dumps({"type": "session_meta", "payload": {"timestamp": "2026-04-24T10:00:00Z"}}),
        json.dumps({"type": "session_meta", "payload": {"cwd": "/x"}}),
        json.dumps({"type": "session_meta", "payload": {"cwd": "/x", "timestamp": "garbage"}}),
    ],
)
def test_codex_rejects_incomplete_lines(line):
    assert parse_codex_session_meta_line(line) is None


def test_parse_claude_event_line():
    line = json.dumps({
        "cwd": "/nonexistent/project",
        "sessionId": "abc",
        "gitBranch": "feature/x",
        "timestamp": "2026-04-24T10:00:00+02:00",
    })
    summary = parse_claude_session_event_line(line)
    assert summary.runtime is AgentRuntime.CLAUDE
    assert summary.session_id == "abc"
    assert summary.branch == "feature/x"
    assert summary.agent_label == "Claude"
    assert summary.cwd == Path("/nonexistent/project")
    assert summary.last_activity == datetime(2026, 4, 24, 8, tzinfo=timezone.utc)


def test_claude_requires_cwd_and_timestamp():
    assert parse_claude_session_event_line(json.dumps({"timestamp": "2026-04-24T10:00:00Z"})) is None
    assert parse_claude_session_event_line(json.dumps({"cwd": "/x"})) is None


def test_parse_live_status_file(tmp_path):
    path = _write_live_status(tmp_path, "waiting", "2026-04-24T10:30:00+00:00")
    summary = parse_live_status_file(AgentRuntime.CODEX, path)
    assert summary.cwd == tmp_path.resolve()
    assert summary.state is AgentSessionState.WAITING
    assert summary.is_live is True
    assert summary.agent_label == "Codex"
    assert summary.source is AgentSessionSource.LIVE_STATUS
    assert summary.last_activity == datetime(2026, 4, 24, 10, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "status, expected",
    [
        ("working", AgentSessionState.WORKING),
        ("processing", AgentSessionState.PROCESSING),
        ("subagent_complete", AgentSessionState.COMPLETED),
        ("other", AgentSessionState.UNKNOWN),
    ],
)
def test_live_status_mapping(tmp_path, status, expected):
    path = _write_live_status(tmp_path, status, "2026-04-24T10:30:00+00:00", ".claude")
    assert parse_live_status_file(AgentRuntime.CLAUDE, path).state is expected


def test_live_status_missing_or_invalid(tmp_path):
    assert parse_live_status_file(AgentRuntime.CODEX, tmp_path / "missing") is None
    bad = tmp_path / "bad"
    bad.write_text("{not json")
    assert parse_live_status_file(AgentRuntime.CODEX, bad) is None


def test_live_status_falls_back_to_mtime(tmp_path):
    path = tmp_path / ".codex" / "git-warp" / "status"
    path.parent.mkdir(parents=True)
    path.write_text("{}")
    os.utime(path, (1_700_000_000, 1_700_000_000))
    summary = parse_live_status_file(AgentRuntime.CODEX, path)
    assert summary.last_activity.timestamp() == 1_700_000_000
    assert summary.state is AgentSessionState.UNKNOWN


def test_merge_live_and_store_same_session_id():
    t1 = datetime(2026, 4, 24, 9, tzinfo=timezone.utc)
    t2 = datetime(2026, 4, 24, 11, tzinfo=timezone.utc)
    live = _summary(session_id="s1", is_live=True, state=AgentSessionState.WORKING,
                    source=AgentSessionSource.LIVE_STATUS, last_activity=t1)
    store = _summary(session_id="s1", branch="feat", agent_label="Parfit (worker)", last_activity=t2)
    merged = merge_session_summaries([live, store])
    assert len(merged) == 1
    result = merged[0]
    assert result.is_live is True
    assert result.state is AgentSessionState.WORKING
    assert result.branch == "feat"
    assert result.agent_label == "Parfit (worker)"
    assert result.last_activity == t2
    assert result.source is AgentSessionSource.MERGED


def test_merge_keeps_distinct_sessions():
    a = _summary(session_id="a")
    b = _summary(session_id="b")
    assert len(merge_session_summaries([a, b])) == 2


def test_sort_session_summaries():
    old = datetime(2026, 4, 20, tzinfo=timezone.utc)
    new = datetime(2026, 4, 24, tzinfo=timezone.utc)
    items = [
        _summary(session_id="b", last_activity=new),
        _summary(session_id="live", is_live=True, last_activity=old),
        _summary(session_id="a", last_activity=new),
        _summary(session_id=None, last_activity=new),
    ]
    sort_session_summaries(items)
    assert [i.session_id for i in items] == ["live", None, "a", "b"]


def test_keep_session(tmp_path):
    discovery = AgentDiscovery([tmp_path])
    now = datetime(2026, 4, 25, tzinfo=timezone.utc)
    inside = _summary(cwd=tmp_path / "sub", last_activity=now - timedelta(days=1))
    stale = _summary(cwd=tmp_path, last_activity=now - timedelta(days=8))
    outside = _summary(cwd=Path("/elsewhere/else"), last_activity=now)
    assert discovery.keep_session(inside, now) is True
    assert discovery.keep_session(stale, now) is False
    assert discovery.keep_session(outside, now) is False


def test_max_history_sessions_is_at_least_one():
    assert AgentDiscovery([], 0).max_history_sessions == 1
    assert AgentDiscovery([]).max_history_sessions == 100


def test_load_live_statuses(tmp_path):
    _write_live_status(tmp_path, "working", "2026-04-24T10:30:00+00:00", ".claude")
    _write_live_status(tmp_path, "waiting", "2026-04-24T10:30:00+00:00", ".codex")
    sessions = AgentDiscovery([tmp_path]).load_live_statuses()
    assert [(s.runtime, s.state) for s in sessions] == [
        (AgentRuntime.CLAUDE, AgentSessionState.WORKING),
        (AgentRuntime.CODEX, AgentSessionState.WAITING),
    ]


def test_discover_latest_session_branch(tmp_path, monkeypatch):
    home = tmp_path / "home"
    repo = tmp_path / "repo"
    worktree = repo / ".worktrees" / "agent-latest"
    worktree.mkdir(parents=True)
    monkeypatch.setenv("HOME", str(home))
    now = datetime.now(timezone.utc)
    _write_codex_session(home, worktree, "session-latest", "agent-latest", _iso(now - timedelta(hours=1)))

    sessions = AgentDiscovery([repo]).discover(now)
    assert len(sessions) == 1
    assert sessions[0].branch == "agent-latest"
    assert sessions[0].session_id == "session-latest"


def test_discover_uses_last_line_timestamp(tmp_path, monkeypatch):
    home = tmp_path / "home"
    repo = tmp_path / "repo"
    repo.mkdir()
    monkeypatch.setenv("HOME", str(home))
    now = datetime.now(timezone.utc)
    path = _write_codex_session(home, repo, "s", "b", _iso(now - timedelta(hours=5)))
    last = now - timedelta(minutes=5)
    with path.open("a") as handle:
        handle.write("\n" + json.dumps({"timestamp": _iso(last), "type": "event"}) + "\n\n")

    sessions = AgentDiscovery([repo]).discover(now)
    assert len(sessions) == 1
    assert abs((sessions[0].last_activity - last).total_seconds()) < 1e-3


def test_discover_respects_history_limit_and_root(tmp_path, monkeypatch):
    home = tmp_path / "home"
    repo = tmp_path / "repo"
    other = tmp_path / "other"
    repo.mkdir()
    other.mkdir()
    monkeypatch.setenv("HOME", str(home))
    now = datetime.now(timezone.utc)
    base = now.timestamp()
    for index in range(3):
        path = _write_codex_session(home, repo, f"s{index}", f"b{index}", _iso(now - timedelta(hours=index + 1)))
        os.utime(path, (base - 100 * (index + 1), base - 100 * (index + 1)))
    _write_codex_session(home, other, "outside", "x", _iso(now))

    sessions = AgentDiscovery([repo], 1).discover(now)
    assert [s.session_id for s in sessions] == ["s0"]