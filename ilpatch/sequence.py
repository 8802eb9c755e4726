"""Immutable instruction sequences."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, overload

from .instruction import Instruction
from .operands import Label


class InstructionSequence(Sequence[Instruction]):
    """Ordered, immutable list of instructions making up one method body.

    Edits never touch the receiver: :meth:`remove`, :meth:`insert` and
    :meth:`replace` return a fresh sequence.  Indices taken from a sequence
    are therefore only meaningful for that sequence and must be recomputed
    after every edit.
    """

    def __init__(self, instructions: Iterable[Instruction] = ()) -> None:
        items = tuple(instructions)
        for item in items:
            if not isinstance(item, Instruction):
                raise TypeError(f"expected Instruction, got {type(item).__name__}")
        self._items: Tuple[Instruction, ...] = items

    @overload
    def __getitem__(self, index: int) -> Instruction: ...

    @overload
    def __getitem__(self, index: slice) -> "InstructionSequence": ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return InstructionSequence(self._items[index])
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, InstructionSequence):
            return self._items == other._items
        if isinstance(other, (list, tuple)):
            return self._items == tuple(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"InstructionSequence({list(self._items)!r})"

    # ------------------------------------------------------------------
    # edits
    # ------------------------------------------------------------------
    def replace(self, start: int, count: int, items: Iterable[Instruction] = ()) -> "InstructionSequence":
        """Return a copy with ``count`` instructions at ``start`` replaced by ``items``."""

        if start < 0 or start > len(self._items):
            raise IndexError(f"edit position {start} outside of sequence of length {len(self)}")
        if count < 0 or start + count > len(self._items):
            raise IndexError(f"cannot remove {count} instruction(s) at {start}")
        inserted = InstructionSequence(items)._items
        return InstructionSequence(self._items[:start] + inserted + self._items[start + count :])

    def remove(self, start: int, count: int) -> "InstructionSequence":
        return self.replace(start, count)

    def insert(self, index: int, items: Iterable[Instruction]) -> "InstructionSequence":
        return self.replace(index, 0, items)

    # ------------------------------------------------------------------
    # structural queries
    # ------------------------------------------------------------------
    def label_positions(self) -> Dict[Label, int]:
        """Map every label defined in the body to the index carrying it."""

        positions: Dict[Label, int] = {}
        for index, instruction in enumerate(self._items):
            for label in instruction.labels:
                positions[label] = index
        return positions

    def branch_sources(self) -> Dict[Label, List[int]]:
        """Map every branch-target label to the indices of the branches using it."""

        sources: Dict[Label, List[int]] = {}
        for index, instruction in enumerate(self._items):
            target = instruction.branch_target()
            if target is not None:
                sources.setdefault(target, []).append(index)
        return sources

    def exception_markers(self, start: int = 0, stop: Optional[int] = None) -> List[int]:
        """Return the indices in ``[start, stop)`` that carry exception-block markers."""

        end = len(self._items) if stop is None else stop
        return [
            index
            for index in range(max(0, start), min(end, len(self._items)))
            if self._items[index].blocks
        ]

    def net_stack_delta(self) -> Optional[int]:
        """Sum the stack effect of all instructions, ``None`` if any is unknown."""

        total = 0
        for instruction in self._items:
            delta = instruction.stack_delta()
            if delta is None:
                return None
            total += delta
        return total

    def describe(self) -> str:
        return "; ".join(instruction.describe() for instruction in self._items)


def as_sequence(instructions: Sequence[Instruction]) -> InstructionSequence:
    if isinstance(instructions, InstructionSequence):
        return instructions
    return InstructionSequence(instructions)


__all__ = ["InstructionSequence", "as_sequence"]
