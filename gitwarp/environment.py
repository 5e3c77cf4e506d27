"""Facts about the local environment: paths, installed hooks and the user's editor."""

from __future__ import annotations

import os
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Mapping

HOOK_MARKER = '"git_warp_hook_id"'


class EditorError(RuntimeError):
    """The configuration file could not be opened in an editor."""


def nearest_existing_parent(path: Path | str) -> Path:
    """The path itself if it exists, else its closest existing ancestor, else ``.``."""
    candidate = Path(path)
    while not candidate.exists():
        parent = candidate.parent
        if parent == candidate:
            return Path(".")
        candidate = parent
    return candidate


def _hook_files(base: Path) -> list[Path]:
    return [base / ".claude" / "settings.json", base / ".codex" / "hooks.json"]


def hooks_installed(home: Path | str | None = None, current_dir: Path | str | None = None) -> bool:
    """Whether any user or project hook file carries a git-warp hook.

    Both locations default to the user's home and the working directory.
    """
    if home is None:
        try:
            home = Path.home()
        except (RuntimeError, KeyError):
            home = None
    if current_dir is None:
        try:
            current_dir = Path.cwd()
        except OSError:
            current_dir = None

    paths: list[Path] = []
    for base in (home, current_dir):
        if base is not None:
            paths.extend(_hook_files(Path(base)))

    for path in paths:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        if HOOK_MARKER in content:
            return True
    return False


def resolve_editor(environ: Mapping[str, str] | None = None) -> str | None:
    """The editor command from $VISUAL, else $EDITOR; blank values are ignored."""
    if environ is None:
        environ = os.environ
    for name in ("VISUAL", "EDITOR"):
        value = environ.get(name)
        if value is not None and value.strip():
            return value
    return None


def open_in_editor(path: Path | str, environ: Mapping[str, str] | None = None) -> None:
    """Open ``path`` in the configured editor and wait for it to exit.

    Raises EditorError when the editor cannot be started, exits with a
    failure, or when no editor is configured.
    """
    editor = resolve_editor(environ)
    if editor is not None:
        parts = editor.split()
        if not parts:
            raise EditorError("Invalid editor command")
        try:
            completed = subprocess.run([*parts, str(path)])
        except OSError as err:
            raise EditorError(f"Failed to launch editor '{editor}': {err}") from err
        if completed.returncode == 0:
            return
        code = completed.returncode if completed.returncode >= 0 else None
        raise EditorError(f"Editor '{editor}' exited with status {code}")

    if sys.platform == "darwin":
        try:
            completed = subprocess.run(["open", "-t", str(path)])
        except OSError as err:
            raise EditorError(f"Failed to open config file: {err}") from err
        if completed.returncode == 0:
            return

    raise EditorError("No editor configured. Set $VISUAL or $EDITOR to use `warp config --edit`")


def worktree_last_touched(path: Path | str) -> datetime | None:
    """The later of a path's modification and creation times, or None if unreadable."""
    try:
        stat = os.stat(path)
    except OSError:
        return None
    times = [stat.st_mtime]
    birth = getattr(stat, "st_birthtime", None)
    if birth is not None:
        times.append(birth)
    return datetime.fromtimestamp(max(times)).astimezone()