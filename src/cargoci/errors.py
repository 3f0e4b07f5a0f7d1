# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


class PatternError(ValueError):
    """A branch filter pattern that cannot be compiled."""


@dataclass
class WorkflowError(Exception):
    """
    A workflow definition that cannot be turned into a Pipeline.

    `path` points at the offending node, e.g. "jobs.test.steps[1]".
    """
    message: str
    path: str | None = None

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


@dataclass
class ValidationError(Exception):
    """Raised by validate.check() with every error-level issue found."""
    issues: List = field(default_factory=list)

    def __str__(self) -> str:
        lines = [f"workflow has {len(self.issues)} error(s)"]
        for issue in self.issues:
            lines.append(f"  {issue}")
        return "\n".join(lines)
