"""Leftmost-match scanning of instruction sequences."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .instruction import Instruction
from .patterns import Pattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchWindow:
    """Contiguous span ``[start, start + length)`` satisfying a pattern."""

    start: int
    length: int

    @property
    def stop(self) -> int:
        return self.start + self.length

    def contains(self, index: int) -> bool:
        return self.start <= index < self.stop

    def describe(self) -> str:
        return f"[{self.start}:{self.stop}]"


def scan(
    instructions: Sequence[Instruction],
    pattern: Pattern,
    start_at: int = 0,
) -> Optional[MatchWindow]:
    """Return the lowest-offset window at or after ``start_at`` matching ``pattern``.

    ``None`` is the not-found result.  It is the expected outcome when the
    compiler produced a different instruction shape than the pattern author
    assumed, so it is reported by value rather than by raising.
    """

    if start_at < 0:
        raise ValueError("start_at must be non-negative")

    width = len(pattern)
    last = len(instructions) - width
    for offset in range(start_at, last + 1):
        if pattern.matches_at(instructions, offset):
            logger.debug("%s matched at %d", pattern.name, offset)
            return MatchWindow(offset, width)
    logger.debug("%s not found in %d instruction(s)", pattern.name, len(instructions))
    return None


def scan_all(instructions: Sequence[Instruction], pattern: Pattern) -> List[MatchWindow]:
    """Return every non-overlapping match from left to right."""

    windows: List[MatchWindow] = []
    position = 0
    while True:
        window = scan(instructions, pattern, position)
        if window is None:
            return windows
        windows.append(window)
        position = window.stop


__all__ = ["MatchWindow", "scan", "scan_all"]
