from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Set

# "1", "1.", "Step 1", "Step 1:" at the start of a line
STEP_MARKER = re.compile(r"^\s*(\d+\.?|Step\s+\d+:?)\s*", re.IGNORECASE)


def iter_steps(instructions: str) -> Iterator[str]:
    """Yield the display steps of a freeform instructions text.

    Blank lines are skipped and a leading step number is removed from each
    remaining line. Call again to iterate from the start.
    """

    for line in (instructions or "").split("\n"):
        if not line.strip():
            continue
        yield STEP_MARKER.sub("", line, count=1).strip()


def parse_steps(instructions: str) -> List[str]:
    return list(iter_steps(instructions))


@dataclass
class CookingProgress:
    """Position within a recipe's steps while cooking."""

    total: int
    current: int = 0
    completed: Set[int] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.current = self._clamp(self.current)
        self.completed = {index for index in self.completed if 0 <= index < self.total}

    def _clamp(self, index: int) -> int:
        if self.total <= 0:
            return 0
        return max(0, min(index, self.total - 1))

    @property
    def is_first(self) -> bool:
        return self.current == 0

    @property
    def is_last(self) -> bool:
        return self.total == 0 or self.current == self.total - 1

    @property
    def progress(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.current + 1) / self.total * 100

    @property
    def is_current_complete(self) -> bool:
        return self.current in self.completed

    def next(self) -> int:
        self.current = self._clamp(self.current + 1)
        return self.current

    def previous(self) -> int:
        self.current = self._clamp(self.current - 1)
        return self.current

    def toggle_complete(self, index: int | None = None) -> bool:
        """Flip the completion mark of ``index`` (default: current step)."""

        if self.total == 0:
            return False
        step = self.current if index is None else self._clamp(index)
        if step in self.completed:
            self.completed.discard(step)
            return False
        self.completed.add(step)
        return True


__all__ = ["CookingProgress", "STEP_MARKER", "iter_steps", "parse_steps"]
