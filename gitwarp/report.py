"""Step-by-step report printed while switching to a worktree."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path


class SwitchStepStatus(enum.Enum):
    """Outcome of a single switch step."""

    DONE = "done"
    SKIPPED = "skipped"
    WARNING = "warning"

    @property
    def icon(self) -> str:
        return _ICONS[self]


_ICONS = {
    SwitchStepStatus.DONE: "✅",
    SwitchStepStatus.SKIPPED: "↪️ ",
    SwitchStepStatus.WARNING: "⚠️ ",
}


@dataclass(frozen=True)
class SwitchStep:
    """One recorded step of a switch, such as worktree creation or checkout."""

    label: str
    status: SwitchStepStatus
    detail: str

    def render(self) -> str:
        """The line shown for this step."""
        return f"{self.status.icon} {self.label}: {self.detail}"


class SwitchOutcomeReport:
    """Collects switch steps, printing each as it is recorded."""

    def __init__(self, worktree_path: Path | str):
        self.worktree_path = Path(worktree_path)
        self.steps: list[SwitchStep] = []

    def done(self, label: str, detail: str) -> SwitchStep:
        """Record a step that completed."""
        return self._push(label, SwitchStepStatus.DONE, detail)

    def skipped(self, label: str, detail: str) -> SwitchStep:
        """Record a step that was not needed."""
        return self._push(label, SwitchStepStatus.SKIPPED, detail)

    def warned(self, label: str, detail: str) -> SwitchStep:
        """Record a step that did not go as planned."""
        return self._push(label, SwitchStepStatus.WARNING, detail)

    def _push(self, label: str, status: SwitchStepStatus, detail: str) -> SwitchStep:
        step = SwitchStep(label, status, str(detail))
        print(step.render())
        self.steps.append(step)
        return step

    def has_warnings(self) -> bool:
        """Whether any recorded step ended in a warning."""
        return any(step.status is SwitchStepStatus.WARNING for step in self.steps)

    def finish(self) -> list[str]:
        """Print and return the closing summary lines."""
        path = self.worktree_path
        if self.has_warnings():
            lines = [
                f"⚠️  Switch incomplete: {path}",
                f"💡 Run: cd '{path}'",
            ]
        else:
            lines = [f"✅ Switch complete: {path}"]
        for line in lines:
            print(line)
        return lines