"""Shell integration snippets: a `warp_cd` helper and branch completion."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable

SUPPORTED_SHELLS = ("bash", "zsh", "fish")

_SUBCOMMANDS = (
    "switch",
    "ls",
    "list",
    "cleanup",
    "config",
    "agents",
    "doctor",
    "hooks-install",
    "hooks-remove",
    "hooks-status",
    "shell-config",
)

_INDENT = "    "


class UnsupportedShellError(ValueError):
    """The requested shell has no configuration snippet."""


def _indented(lines: Iterable[str], depth: int = 1) -> list[str]:
    prefix = _INDENT * depth
    return [prefix + line if line else line for line in lines]


def _function(name: str, body: Iterable[str]) -> list[str]:
    return [name + "() {", *_indented(body), "}"]


def _posix_warp_cd() -> str:
    return 'warp_cd() { eval "$(warp --terminal echo "$@")"; }'


def _branch_query(token: str) -> str:
    return "warp __complete branches " + token + " 2>/dev/null"


def _bash_lines() -> list[str]:
    query = "$(" + _branch_query('"$cur"') + ")"
    words = " ".join(_SUBCOMMANDS)
    body = [
        "local cur prev commands branches",
        'cur="${COMP_WORDS[COMP_CWORD]}"',
        'prev="${COMP_WORDS[COMP_CWORD-1]}"',
        'commands="' + words + '"',
        "",
        'if [[ "$prev" == "switch" ]]; then',
        *_indented(
            [
                'branches="' + query + '"',
                'COMPREPLY=($(compgen -W "$branches" -- "$cur"))',
            ]
        ),
        "elif [[ $COMP_CWORD -eq 1 ]]; then",
        *_indented(
            [
                'branches="' + query + '"',
                'COMPREPLY=($(compgen -W "$commands $branches" -- "$cur"))',
            ]
        ),
        "fi",
    ]
    return [
        "# Add to ~/.bashrc",
        _posix_warp_cd(),
        *_function("_warp_completion", body),
        "complete -F _warp_completion warp",
    ]


def _zsh_lines() -> list[str]:
    helper = "_warp_branch_completions"
    helper_body = [
        "local -a branches",
        'branches=("${(@f)$(' + _branch_query('"$PREFIX"') + ')}")',
        'compadd -- "${branches[@]}"',
    ]
    main_body = [
        "local -a commands",
        "commands=(" + " ".join(_SUBCOMMANDS) + ")",
        "",
        "if (( CURRENT == 2 )); then",
        *_indented(['compadd -- "${commands[@]}"', helper]),
        "elif [[ ${words[2]} == switch && CURRENT == 3 ]]; then",
        *_indented([helper]),
        "fi",
    ]
    return [
        "# Add to ~/.zshrc",
        _posix_warp_cd(),
        *_function(helper, helper_body),
        "",
        *_function("_warp_completion", main_body),
        "compdef _warp_completion warp",
    ]


def _fish_complete(condition: str, args: str, *, files: bool) -> str:
    flag = " -f" if files else ""
    return f"complete -c warp -n '{condition}'{flag} -a '{args}'"


def _fish_lines() -> list[str]:
    branches = "(" + _branch_query("(commandline -ct)") + ")"
    return [
        "# Add to ~/.config/fish/config.fish",
        "function warp_cd",
        _INDENT + "eval (warp --terminal echo $argv)",
        "end",
        _fish_complete("__fish_use_subcommand", " ".join(_SUBCOMMANDS), files=False),
        _fish_complete("__fish_use_subcommand", branches, files=True),
        _fish_complete("__fish_seen_subcommand_from switch", branches, files=True),
    ]


_BUILDERS: dict[str, Callable[[], list[str]]] = {
    "bash": _bash_lines,
    "zsh": _zsh_lines,
    "fish": _fish_lines,
}


def detect_shell(shell: str | None = None) -> str:
    """The given shell, else the last component of $SHELL, else ``bash``."""
    if shell is not None:
        return shell
    value = os.environ.get("SHELL")
    if value is not None:
        name = value.rsplit("/", 1)[-1]
        if name:
            return name
    return "bash"


def shell_config(shell: str | None = None) -> str:
    """The configuration text for a shell, detected when not given."""
    name = detect_shell(shell)
    builder = _BUILDERS.get(name)
    if builder is None:
        raise UnsupportedShellError(
            f"Unsupported shell '{name}'. Supported shells: {', '.join(SUPPORTED_SHELLS)}"
        )
    return "\n".join(builder()) + "\n"