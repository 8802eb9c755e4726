"""Window-bounded rewriting of instruction sequences.

A :class:`RewriteCursor` walks through four stages over one match window::

    LOCATED -> PREFIX_ADVANCED -> REMOVED -> INSERTED

Each step returns a new cursor and a new :class:`InstructionSequence`; the
sequence handed to :meth:`RewriteCursor.locate` is never modified, so a step
that fails leaves the caller holding the untouched original.

Before a removal is committed the cursor checks that none of the doomed
instructions defines a label still targeted by a surviving branch and that
none carries an exception-region marker.  The check is structural only: the
engine does not attempt to prove that the inserted instructions leave the
evaluation stack in the same shape as the removed ones.  That remains a
contract on whoever authors the patch.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Iterable, Sequence

from .errors import RewriteError, UnsafeRemovalWindow
from .instruction import Instruction
from .scanner import MatchWindow
from .sequence import InstructionSequence, as_sequence


class RewriteStage(Enum):
    LOCATED = auto()
    PREFIX_ADVANCED = auto()
    REMOVED = auto()
    INSERTED = auto()


def check_removal(instructions: InstructionSequence, start: int, count: int) -> None:
    """Raise :class:`UnsafeRemovalWindow` if removing ``[start, start + count)`` is unsafe."""

    stop = start + count
    markers = instructions.exception_markers(start, stop)
    if markers:
        index = markers[0]
        blocks = ", ".join(block.describe() for block in instructions[index].blocks)
        raise UnsafeRemovalWindow(
            f"instruction {index} carries exception-region marker(s) {blocks}",
            index=index,
        )

    sources = instructions.branch_sources()
    for index in range(start, stop):
        for label in instructions[index].labels:
            outside = [src for src in sources.get(label, ()) if not (start <= src < stop)]
            if outside:
                raise UnsafeRemovalWindow(
                    f"instruction {index} is the target of {label.describe()}"
                    f" referenced from {outside[0]}",
                    index=index,
                )


@dataclass(frozen=True)
class RewriteCursor:
    """Immutable cursor over a working copy of a method body."""

    instructions: InstructionSequence
    window: MatchWindow
    position: int
    stage: RewriteStage = RewriteStage.LOCATED
    removed: int = 0
    inserted: int = 0

    @classmethod
    def locate(cls, instructions: Sequence[Instruction], window: MatchWindow) -> "RewriteCursor":
        body = as_sequence(instructions)
        if window.start < 0 or window.length <= 0 or window.stop > len(body):
            raise RewriteError(f"window {window.describe()} outside of {len(body)} instruction(s)")
        return cls(instructions=body, window=window, position=window.start)

    def _expect(self, stage: RewriteStage, action: str) -> None:
        if self.stage is not stage:
            raise RewriteError(f"cannot {action} in stage {self.stage.name}")

    def advance(self, count: int) -> "RewriteCursor":
        """Skip ``count`` instructions from the window start, leaving them untouched."""

        self._expect(RewriteStage.LOCATED, "advance")
        if count < 0 or count > self.window.length:
            raise RewriteError(f"cannot advance {count} within window {self.window.describe()}")
        return replace(self, position=self.window.start + count, stage=RewriteStage.PREFIX_ADVANCED)

    def remove(self, count: int) -> "RewriteCursor":
        """Delete ``count`` instructions at the cursor; the span must stay inside the window."""

        self._expect(RewriteStage.PREFIX_ADVANCED, "remove")
        if count < 0 or self.position + count > self.window.stop:
            raise RewriteError(
                f"removing {count} at {self.position} leaves window {self.window.describe()}"
            )
        check_removal(self.instructions, self.position, count)
        return replace(
            self,
            instructions=self.instructions.remove(self.position, count),
            stage=RewriteStage.REMOVED,
            removed=count,
        )

    def insert(self, items: Iterable[Instruction]) -> "RewriteCursor":
        """Splice ``items`` in at the cursor and move the cursor past them."""

        self._expect(RewriteStage.REMOVED, "insert")
        payload = as_sequence(tuple(items))
        return replace(
            self,
            instructions=self.instructions.insert(self.position, payload),
            position=self.position + len(payload),
            stage=RewriteStage.INSERTED,
            inserted=len(payload),
        )

    @property
    def done(self) -> bool:
        return self.stage is RewriteStage.INSERTED


def rewrite(
    instructions: Sequence[Instruction],
    window: MatchWindow,
    keep_prefix: int,
    remove_count: int,
    insert: Iterable[Instruction],
) -> InstructionSequence:
    """Run all rewrite stages over ``window`` and return the new sequence."""

    cursor = (
        RewriteCursor.locate(instructions, window)
        .advance(keep_prefix)
        .remove(remove_count)
        .insert(insert)
    )
    return cursor.instructions


__all__ = ["RewriteStage", "RewriteCursor", "check_removal", "rewrite"]
