"""Patch descriptions and their fail-soft application.

A :class:`PatchSpec` names a target method, the pattern to look for inside its
body and how to edit the matched window: keep the first ``keep_prefix_count``
instructions, drop the next ``remove_count`` and splice ``insert`` in their
place.  :func:`apply_patch` runs one spec against one body and reports the
outcome as a :class:`PatchResult`; it never raises for conditions that are
expected in practice (the pattern drifted after a host update, the removal
would orphan a branch).  :class:`Patcher` drives a list of specs against a
method-body provider, logging each failure and moving on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .errors import UnsafeRemovalWindow
from .instruction import Instruction
from .members import MethodSelector
from .patterns import Pattern
from .rewrite import rewrite
from .scanner import MatchWindow, scan
from .sequence import InstructionSequence, as_sequence

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from .provider import MethodBodyProvider


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatchSpec:
    """Declarative description of one edit inside one method body."""

    name: str
    target: MethodSelector
    pattern: Pattern
    keep_prefix_count: int
    remove_count: int
    insert: InstructionSequence = field(default_factory=InstructionSequence)

    def __post_init__(self) -> None:
        object.__setattr__(self, "insert", as_sequence(tuple(self.insert)))
        if not self.name:
            raise ValueError("patch name must not be empty")
        if self.keep_prefix_count < 0 or self.remove_count < 0:
            raise ValueError(f"patch {self.name!r}: counts must be non-negative")
        if self.keep_prefix_count + self.remove_count > len(self.pattern):
            raise ValueError(
                f"patch {self.name!r}: keep {self.keep_prefix_count} + remove {self.remove_count}"
                f" exceeds pattern length {len(self.pattern)}"
            )

    @property
    def length_change(self) -> int:
        return len(self.insert) - self.remove_count

    def describe(self) -> str:
        return (
            f"{self.name} -> {self.target.key()} keep={self.keep_prefix_count}"
            f" remove={self.remove_count} insert={len(self.insert)}"
        )


class PatchStatus(Enum):
    APPLIED = "applied"
    PATTERN_NOT_FOUND = "pattern-not-found"
    UNSAFE_REMOVAL = "unsafe-removal"
    METHOD_MISSING = "method-missing"
    ALREADY_APPLIED = "already-applied"


@dataclass(frozen=True)
class PatchResult:
    """Outcome of applying one :class:`PatchSpec`.

    ``patched`` is the body to install.  For every status other than
    :attr:`PatchStatus.APPLIED` it is the very object passed in as
    ``original``.
    """

    spec: PatchSpec
    status: PatchStatus
    original: InstructionSequence
    patched: InstructionSequence
    window: Optional[MatchWindow] = None
    message: str = ""
    warnings: Tuple[str, ...] = ()

    @property
    def applied(self) -> bool:
        return self.status is PatchStatus.APPLIED

    def describe(self) -> str:
        text = f"{self.spec.name}: {self.status.value}"
        if self.window is not None:
            text += f" at {self.window.describe()}"
        if self.applied:
            text += f" ({len(self.original)} -> {len(self.patched)} instructions)"
        if self.message:
            text += f" - {self.message}"
        return text


def _stack_warnings(spec: PatchSpec, removed: InstructionSequence) -> Tuple[str, ...]:
    before = removed.net_stack_delta()
    after = spec.insert.net_stack_delta()
    if before is None or after is None or before == after:
        return ()
    return (f"stack effect changes from {before:+d} to {after:+d}",)


def apply_patch(spec: PatchSpec, instructions: Sequence[Instruction]) -> PatchResult:
    """Apply ``spec`` to ``instructions`` and report the outcome."""

    original = as_sequence(instructions)
    window = scan(original, spec.pattern)
    if window is None:
        return PatchResult(
            spec,
            PatchStatus.PATTERN_NOT_FOUND,
            original,
            original,
            message=f"{spec.pattern.name} not found in {len(original)} instruction(s)",
        )

    start = window.start + spec.keep_prefix_count
    removed = original[start : start + spec.remove_count]
    try:
        patched = rewrite(original, window, spec.keep_prefix_count, spec.remove_count, spec.insert)
    except UnsafeRemovalWindow as exc:
        return PatchResult(spec, PatchStatus.UNSAFE_REMOVAL, original, original, window, str(exc))

    return PatchResult(
        spec,
        PatchStatus.APPLIED,
        original,
        patched,
        window,
        warnings=_stack_warnings(spec, removed),
    )


@dataclass
class PatchReport:
    """Collected results of one :meth:`Patcher.apply_all` run."""

    results: List[PatchResult] = field(default_factory=list)

    def add(self, result: PatchResult) -> None:
        self.results.append(result)

    @property
    def applied(self) -> List[PatchResult]:
        return [result for result in self.results if result.applied]

    @property
    def failed(self) -> List[PatchResult]:
        return [
            result
            for result in self.results
            if result.status is not PatchStatus.APPLIED
            and result.status is not PatchStatus.ALREADY_APPLIED
        ]

    @property
    def ok(self) -> bool:
        return not self.failed

    def by_name(self, name: str) -> Optional[PatchResult]:
        for result in self.results:
            if result.spec.name == name:
                return result
        return None

    def describe(self) -> str:
        return (
            f"{len(self.applied)} applied, {len(self.failed)} failed,"
            f" {len(self.results)} total"
        )


class Patcher:
    """Apply a fixed list of patch specs, one method body at a time."""

    def __init__(self, specs: Iterable[PatchSpec]) -> None:
        self.specs: Tuple[PatchSpec, ...] = tuple(specs)
        self._applied: Set[Tuple[str, MethodSelector]] = set()

    def specs_for(self, selector: MethodSelector) -> List[PatchSpec]:
        return [spec for spec in self.specs if spec.target == selector]

    def patch_body(
        self,
        selector: MethodSelector,
        instructions: Sequence[Instruction],
        report: Optional[PatchReport] = None,
    ) -> InstructionSequence:
        """Run every spec targeting ``selector`` over ``instructions``.

        This is the entry point for hosts that hand bodies over one by one
        while loading.  Specs apply in declaration order, each one seeing the
        output of the previous.
        """

        body = as_sequence(instructions)
        for spec in self.specs_for(selector):
            result = self._apply_one(spec, body)
            if report is not None:
                report.add(result)
            body = result.patched
        return body

    def apply_all(self, provider: "MethodBodyProvider") -> PatchReport:
        """Apply every spec against the bodies held by ``provider``."""

        report = PatchReport()
        for spec in self.specs:
            if spec.target not in provider:
                logger.warning(
                    "[%s] PATCH FAILED: target %s not available", spec.name, spec.target.key()
                )
                empty = InstructionSequence()
                report.add(
                    PatchResult(
                        spec,
                        PatchStatus.METHOD_MISSING,
                        empty,
                        empty,
                        message=f"{spec.target.key()} not provided",
                    )
                )
                continue

            body = provider.get_instructions(spec.target)
            result = self._apply_one(spec, body)
            report.add(result)
            if result.applied:
                provider.set_instructions(spec.target, result.patched)
        logger.info("patching finished: %s", report.describe())
        return report

    def _apply_one(self, spec: PatchSpec, body: InstructionSequence) -> PatchResult:
        key = (spec.name, spec.target)
        if key in self._applied:
            logger.debug("[%s] already applied to %s, skipping", spec.name, spec.target.key())
            return PatchResult(spec, PatchStatus.ALREADY_APPLIED, body, body)

        result = apply_patch(spec, body)
        if result.applied:
            self._applied.add(key)
            logger.info("[%s] patched %s %s", spec.name, spec.target.key(), result.window.describe())
            for warning in result.warnings:
                logger.warning("[%s] %s", spec.name, warning)
        elif result.status is PatchStatus.PATTERN_NOT_FOUND:
            logger.warning("[%s] PATCH FAILED: instruction mismatch (%s)", spec.name, result.message)
        else:
            logger.warning("[%s] PATCH FAILED: %s", spec.name, result.message)
        return result


__all__ = [
    "PatchSpec",
    "PatchStatus",
    "PatchResult",
    "PatchReport",
    "Patcher",
    "apply_patch",
]
