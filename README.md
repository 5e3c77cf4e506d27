# gitwarp

Building blocks for a Git worktree manager that works alongside coding
agents. The package finds the agent sessions that belong to a repository,
picks the branch to switch to, reports how a switch went, produces shell
integration snippets and checks parts of the local setup.

It has no dependencies beyond the standard library.

## Agent sessions

`gitwarp.agents` reads two kinds of records:

- live status files that agent hooks write under
  `<directory>/.claude/git-warp/status` and `<directory>/.codex/git-warp/status`
  for each monitored directory
- session histories under `~/.codex/sessions` and `~/.claude/projects`
  (`*.jsonl` files modified in the last seven days)

History sessions are kept only if their last activity is within seven days
and their working directory lies inside a monitored path; at most
`max_history_sessions` of them (default 100, never less than 1) are read,
newest files first. Records of the same session are merged into one
`AgentSessionSummary`, and the result is sorted with live sessions first,
then the most recent.

```python
from datetime import datetime
from pathlib import Path

from gitwarp.agents import AgentDiscovery

discovery = AgentDiscovery([Path("/work/project")], 100)
for session in discovery.discover(datetime.now().astimezone()):
    print(session.runtime.name, session.branch, session.state.name, session.cwd)
```

`discover()` without an argument uses the current local time.
`load_live_statuses()` returns only the live status records, and
`keep_session(session, now)` applies the seven-day and monitored-path test.

Single records can be parsed on their own:

- `parse_live_status_file(runtime, status_path)` returns `None` when the
  file is missing or is not JSON
- `parse_codex_session_meta_line(line)` accepts only `session_meta` records
- `parse_claude_session_event_line(line)` accepts events that carry a `cwd`
  and a timestamp

`merge_session_summaries(items)` collapses summaries that share a session id
(or, without one, the same runtime and directory), and
`sort_session_summaries(items)` sorts a list in place.

The enums `AgentRuntime`, `AgentSessionState` and `AgentSessionSource`
describe each summary.

## Choosing a branch

```python
from gitwarp.selection import NoAgentBranchError, select_agent_branch

try:
    branch = select_agent_branch(sessions, waiting=True)
except NoAgentBranchError as err:
    print(err)
```

With `waiting=True` the first waiting session that has a branch is chosen;
otherwise the first session with a branch that is not completed. When
nothing matches, `NoAgentBranchError` says that no waiting (or recent)
agent branches were found for this repository.

`agent_monitored_paths(root, worktree_paths)` gives the sorted,
de-duplicated list of directories to watch. `worktree_status_labels(...)`
and `format_status_labels(labels)` build tags such as ` [primary current dirty]`
for worktree listings.

## Switch reports

```python
from pathlib import Path

from gitwarp.report import SwitchOutcomeReport

report = SwitchOutcomeReport(Path("/work/project/.worktrees/feature"))
report.done("Worktree creation", "created")
report.warned("Terminal handoff", "failed: no terminal app")
report.finish()
```

Each step is printed as it is recorded and returned as a `SwitchStep`
(`render()` gives its line). `finish()` prints and returns the closing
lines: "Switch complete", or, when any step warned, "Switch incomplete"
followed by the `cd` command to run by hand.

## Shell integration

`shell_config(shell)` returns the snippet for `bash`, `zsh` or `fish`: a
`warp_cd` function and completion of subcommands and branches, which calls
`warp __complete branches <prefix>`. `detect_shell(shell)` falls back to
the last component of `$SHELL` and then to `bash`. Any other shell raises
`UnsupportedShellError`, which lists the supported ones.

## Environment checks

`gitwarp.environment` holds helpers for a setup check:

- `nearest_existing_parent(path)`: the path or its closest existing ancestor
- `hooks_installed(home, current_dir)`: whether `.claude/settings.json` or
  `.codex/hooks.json` in either directory contains a git-warp hook marker
- `resolve_editor(environ)` and `open_in_editor(path, environ)`: use
  `$VISUAL`, then `$EDITOR`; on macOS without either, `open -t`; otherwise
  `EditorError`
- `worktree_last_touched(path)`: the later of modification and creation time

## What this package does not do

There is no `warp` command and no command-line entry point. The package
does not create, list or remove Git worktrees, run `git` itself, manage
processes, read or write a configuration file, install agent hooks, or
open terminal tabs or an interactive dashboard. The `warp` commands named
in the shell snippets must be provided by another program.