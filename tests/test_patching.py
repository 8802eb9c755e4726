import logging

import pytest

from ilpatch.catalog import BLUEPRINTS_FILE, blueprints_path_patch
from ilpatch.instruction import Instruction, call, callvirt, load_int, load_static_field, load_string
from ilpatch.members import MethodSelector
from ilpatch.opcodes import OpCode
from ilpatch.operands import IntegerConstant, Label, LocalIndex
from ilpatch.patching import PatchReport, PatchSpec, PatchStatus, Patcher, apply_patch
from ilpatch.patterns import Exact, Pattern, any_int_constant
from ilpatch.provider import InMemoryMethodBodyProvider
from ilpatch.sequence import InstructionSequence

from bodies import MEMBERS, TARGET, make_body


def test_blueprints_patch_rewrites_filename_block() -> None:
    spec = blueprints_path_patch()
    body = make_body()
    result = apply_patch(spec, body)

    assert result.status is PatchStatus.APPLIED
    assert result.window is not None and result.window.start == 2
    assert list(result.patched) == [
        Instruction(OpCode.LDARG_1),
        Instruction(OpCode.STLOC_1),
        load_static_field(MEMBERS.field("UserPersistance.blueprints")),
        Instruction(OpCode.LDLOC_1),
        load_string(BLUEPRINTS_FILE),
        call(MEMBERS.method("String.Concat/2")),
        Instruction(OpCode.LDC_I4_1),
        callvirt(MEMBERS.method("Database.Open")),
        Instruction(OpCode.RET),
    ]
    assert len(result.patched) == len(body) - spec.remove_count + len(spec.insert)
    assert result.warnings == ()


@pytest.mark.parametrize(
    "version",
    [
        Instruction(OpCode.LDC_I4_7),
        Instruction(OpCode.LDC_I4_S, IntegerConstant(42)),
        Instruction(OpCode.LDC_I4, IntegerConstant(260)),
    ],
)
def test_blueprints_patch_matches_any_version_encoding(version) -> None:
    result = apply_patch(blueprints_path_patch(), make_body(version))
    assert result.applied


def test_unmodelled_version_load_leaves_body_untouched(caplog) -> None:
    body = make_body(Instruction(OpCode.LDC_I8, IntegerConstant(2)))
    patcher = Patcher([blueprints_path_patch()])
    report = PatchReport()

    with caplog.at_level(logging.WARNING, logger="ilpatch.patching"):
        patched = patcher.patch_body(TARGET, body, report)

    assert patched is body
    assert report.results[0].status is PatchStatus.PATTERN_NOT_FOUND
    assert "PreventBlueprintWipes.ChangeBlueprintsPath" in caplog.text
    assert "PATCH FAILED" in caplog.text


def test_patch_does_not_reapply_to_patched_body() -> None:
    spec = blueprints_path_patch()
    first = apply_patch(spec, make_body())
    second = apply_patch(spec, first.patched)

    assert first.applied
    assert second.status is PatchStatus.PATTERN_NOT_FOUND
    assert second.patched is first.patched


def test_unsafe_removal_is_reported_and_body_kept() -> None:
    body = InstructionSequence(
        [Instruction(OpCode.BR, Label(5))] + list(make_body(labels=(Label(5),)))
    )
    result = apply_patch(blueprints_path_patch(), body)

    assert result.status is PatchStatus.UNSAFE_REMOVAL
    assert result.patched is body
    assert "L_0005" in result.message


def test_stack_effect_mismatch_produces_warning() -> None:
    spec = PatchSpec(
        name="drop_push",
        target=TARGET,
        pattern=Pattern("pair", (any_int_constant(), Exact(OpCode.POP))),
        keep_prefix_count=0,
        remove_count=1,
        insert=[],
    )
    result = apply_patch(spec, [load_int(1), Instruction(OpCode.POP)])
    assert result.applied
    assert result.warnings == ("stack effect changes from +1 to +0",)


def test_patch_spec_validates_counts() -> None:
    pattern = Pattern("single", (Exact(OpCode.NOP),))
    with pytest.raises(ValueError, match="exceeds pattern length"):
        PatchSpec("too_wide", TARGET, pattern, keep_prefix_count=1, remove_count=1)
    with pytest.raises(ValueError):
        PatchSpec("negative", TARGET, pattern, keep_prefix_count=-1, remove_count=0)
    with pytest.raises(ValueError):
        PatchSpec("", TARGET, pattern, keep_prefix_count=0, remove_count=1)


def test_apply_all_installs_successful_patches_only() -> None:
    other = MethodSelector("Game", "Tick")
    other_body = InstructionSequence([Instruction(OpCode.NOP), Instruction(OpCode.RET)])
    provider = InMemoryMethodBodyProvider({TARGET: make_body(), other: other_body})
    drop_throw = PatchSpec(
        name="drop_throw",
        target=other,
        pattern=Pattern("throw", (Exact(OpCode.THROW),)),
        keep_prefix_count=0,
        remove_count=1,
    )
    missing = PatchSpec(
        name="missing_target",
        target=MethodSelector("Nowhere", "Run"),
        pattern=Pattern("nop", (Exact(OpCode.NOP),)),
        keep_prefix_count=0,
        remove_count=1,
    )

    report = Patcher([drop_throw, blueprints_path_patch(), missing]).apply_all(provider)

    assert [result.status for result in report.results] == [
        PatchStatus.PATTERN_NOT_FOUND,
        PatchStatus.APPLIED,
        PatchStatus.METHOD_MISSING,
    ]
    assert provider.get_instructions(other) is other_body
    assert len(provider.get_instructions(TARGET)) == 9
    assert not report.ok
    assert report.describe() == "1 applied, 2 failed, 3 total"
    assert report.by_name("drop_throw").status is PatchStatus.PATTERN_NOT_FOUND


def test_patcher_applies_each_spec_once_per_method() -> None:
    spec = PatchSpec(
        name="strip_nop",
        target=TARGET,
        pattern=Pattern("nop", (Exact(OpCode.NOP),)),
        keep_prefix_count=0,
        remove_count=1,
    )
    patcher = Patcher([spec])
    body = [Instruction(OpCode.NOP), Instruction(OpCode.NOP), Instruction(OpCode.RET)]

    once = patcher.patch_body(TARGET, body)
    report = PatchReport()
    twice = patcher.patch_body(TARGET, once, report)

    assert len(once) == 2
    assert twice is once
    assert report.results[0].status is PatchStatus.ALREADY_APPLIED
    assert report.ok


def test_patch_body_ignores_specs_for_other_methods() -> None:
    patcher = Patcher([blueprints_path_patch()])
    body = make_body()
    assert patcher.patch_body(MethodSelector("Other", "Run"), body) is body


def test_blueprints_patch_matches_bodies_with_explicit_short_form_operands() -> None:
    body = InstructionSequence(
        Instruction(instruction.opcode, instruction.logical_operand(), instruction.labels)
        for instruction in make_body()
    )
    assert body[3].operand == LocalIndex(1)

    result = apply_patch(blueprints_path_patch(), body)

    assert result.status is PatchStatus.APPLIED
    assert len(result.patched) == 9
