"""Exception types raised by the rewrite engine."""

from __future__ import annotations


class PatchError(ValueError):
    """Base class for failures raised while building or editing method bodies."""


class InvalidOperand(PatchError):
    """An instruction was constructed with an operand its opcode cannot carry."""


class RewriteError(PatchError):
    """A rewrite step was issued out of order or outside the match window."""


class UnsafeRemovalWindow(PatchError):
    """The removal window contains a branch target or an exception-region marker."""

    def __init__(self, message: str, *, index: int) -> None:
        super().__init__(message)
        self.index = index


__all__ = ["PatchError", "InvalidOperand", "RewriteError", "UnsafeRemovalWindow"]
