from pathlib import Path

from ilpatch.catalog import blueprints_path_patch
from ilpatch.instruction import BlockKind, ExceptionBlock, Instruction
from ilpatch.listing import PatchReportRenderer, SequenceRenderer
from ilpatch.opcodes import OpCode
from ilpatch.operands import Label
from ilpatch.patching import PatchReport, Patcher
from ilpatch.scanner import MatchWindow

from bodies import TARGET, make_body


def test_sequence_listing_shows_labels_blocks_and_highlight() -> None:
    body = [
        Instruction(OpCode.NOP, blocks=(ExceptionBlock(BlockKind.BEGIN_TRY),)),
        Instruction(OpCode.LEAVE_S, Label(2)),
        Instruction(OpCode.RET, labels=(Label(2),)),
    ]
    rendered = SequenceRenderer().render(body, highlight=MatchWindow(1, 1))
    lines = rendered.splitlines()

    assert lines[0] == "        .try"
    assert lines[1] == "  0000  nop"
    assert lines[2] == "> 0001  leave.s L_0002"
    assert lines[3] == "L_0002:"
    assert lines[4] == "  0002  ret"


def test_empty_sequence_listing() -> None:
    assert SequenceRenderer().render([]) == "  (empty)\n"


def test_report_renderer_includes_before_and_after(tmp_path: Path) -> None:
    report = PatchReport()
    Patcher([blueprints_path_patch()]).patch_body(TARGET, make_body(), report)

    output = tmp_path / "report.txt"
    PatchReportRenderer().write(report, output)
    text = output.read_text("utf-8")

    assert text.startswith("; patch report: 1 applied, 0 failed, 1 total")
    assert "PreventBlueprintWipes.ChangeBlueprintsPath: applied at [2:12] (13 -> 9 instructions)" in text
    assert ";   before:" in text
    assert '  0004  ldstr "player.blueprints.db"' in text
    assert "> 0004  ldc.i4.2" in text
