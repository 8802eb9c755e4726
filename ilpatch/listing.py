"""Text listings of method bodies and patch reports."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .instruction import Instruction
from .patching import PatchReport, PatchResult
from .scanner import MatchWindow


class SequenceRenderer:
    """Render an instruction sequence one instruction per line."""

    def render(
        self,
        instructions: Sequence[Instruction],
        *,
        highlight: Optional[MatchWindow] = None,
    ) -> str:
        return "\n".join(self.lines(instructions, highlight=highlight)) + "\n"

    def lines(
        self,
        instructions: Sequence[Instruction],
        *,
        highlight: Optional[MatchWindow] = None,
    ) -> List[str]:
        lines: List[str] = []
        for index, instruction in enumerate(instructions):
            for block in instruction.blocks:
                lines.append(f"        .{block.describe()}")
            for label in instruction.labels:
                lines.append(f"{label.describe()}:")
            marker = ">" if highlight is not None and highlight.contains(index) else " "
            lines.append(f"{marker} {index:04d}  {instruction.describe()}")
        if not lines:
            lines.append("  (empty)")
        return lines


class PatchReportRenderer:
    """Render a :class:`PatchReport` with before/after listings of applied patches."""

    def __init__(self, sequence_renderer: Optional[SequenceRenderer] = None) -> None:
        self.sequence_renderer = sequence_renderer or SequenceRenderer()

    def render(self, report: PatchReport) -> str:
        lines: List[str] = [f"; patch report: {report.describe()}"]
        for result in report.results:
            lines.extend(self._render_result(result))
        return "\n".join(lines) + "\n"

    def write(self, report: PatchReport, output_path: Path) -> None:
        output_path.write_text(self.render(report), "utf-8")

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _render_result(self, result: PatchResult) -> Iterable[str]:
        yield ""
        yield f"; {result.describe()}"
        yield f";   target: {result.spec.target.key()}"
        for warning in result.warnings:
            yield f";   warning: {warning}"
        if not result.applied:
            return
        yield ";   before:"
        yield from self.sequence_renderer.lines(result.original, highlight=result.window)
        yield ";   after:"
        yield from self.sequence_renderer.lines(result.patched)


__all__ = ["SequenceRenderer", "PatchReportRenderer"]
