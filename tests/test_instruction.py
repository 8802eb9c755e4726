import pytest

from ilpatch.errors import InvalidOperand
from ilpatch.instruction import (
    BlockKind,
    ExceptionBlock,
    Instruction,
    load_int,
    load_local,
    load_string,
    store_local,
)
from ilpatch.opcodes import EncodingClass, OpCode
from ilpatch.operands import (
    FieldRef,
    IntegerConstant,
    Label,
    LocalIndex,
    MethodRef,
    StringLiteral,
)


CONCAT3 = MethodRef(
    "System.String",
    "Concat",
    ("System.String", "System.String", "System.String"),
    "System.String",
)


def test_operand_shape_is_checked_at_construction() -> None:
    with pytest.raises(InvalidOperand):
        Instruction(OpCode.LDSTR, IntegerConstant(1))
    with pytest.raises(InvalidOperand):
        Instruction(OpCode.CALL, StringLiteral("Concat"))
    with pytest.raises(InvalidOperand):
        Instruction(OpCode.RET, IntegerConstant(0))


def test_missing_operand_is_rejected() -> None:
    with pytest.raises(InvalidOperand, match="requires"):
        Instruction(OpCode.LDSTR)
    with pytest.raises(InvalidOperand):
        Instruction(OpCode.BR)


def test_integer_operand_range_follows_encoding() -> None:
    Instruction(OpCode.LDC_I4_S, IntegerConstant(-128))
    with pytest.raises(InvalidOperand, match="above"):
        Instruction(OpCode.LDC_I4_S, IntegerConstant(200))
    with pytest.raises(InvalidOperand):
        Instruction(OpCode.LDC_I4, IntegerConstant(1 << 33))
    Instruction(OpCode.LDC_I8, IntegerConstant(1 << 33))
    with pytest.raises(InvalidOperand):
        IntegerConstant(1 << 64)


def test_short_form_accepts_matching_explicit_operand_only() -> None:
    assert Instruction(OpCode.LDC_I4_3, IntegerConstant(3)).opcode is OpCode.LDC_I4_3
    with pytest.raises(InvalidOperand, match="implies"):
        Instruction(OpCode.LDC_I4_3, IntegerConstant(4))


def test_static_field_opcodes_require_static_fields() -> None:
    instance_field = FieldRef("Player", "name", "System.String", is_static=False)
    with pytest.raises(InvalidOperand):
        Instruction(OpCode.LDSFLD, instance_field)
    assert Instruction(OpCode.LDFLD, instance_field).encoding_class is EncodingClass.LOAD_FIELD


def test_logical_operand_expands_short_forms() -> None:
    assert Instruction(OpCode.LDC_I4_2).logical_operand() == IntegerConstant(2)
    assert Instruction(OpCode.LDLOC_1).logical_operand() == LocalIndex(1)
    assert Instruction(OpCode.LDC_I4_S, IntegerConstant(2)).logical_operand() == IntegerConstant(2)
    assert Instruction(OpCode.RET).logical_operand() is None


def test_builders_choose_compact_encodings() -> None:
    assert load_int(2) == Instruction(OpCode.LDC_I4_2)
    assert load_int(100) == Instruction(OpCode.LDC_I4_S, IntegerConstant(100))
    assert load_int(1000) == Instruction(OpCode.LDC_I4, IntegerConstant(1000))
    assert load_local(1) == Instruction(OpCode.LDLOC_1)
    assert store_local(7) == Instruction(OpCode.STLOC_S, LocalIndex(7))
    assert load_string(".db").operand == StringLiteral(".db")


def test_stack_delta_uses_method_signature() -> None:
    assert Instruction(OpCode.CALL, CONCAT3).stack_delta() == -2
    to_string = MethodRef("System.Int32", "ToString", (), "System.String", is_static=False)
    assert Instruction(OpCode.CALL, to_string).stack_delta() == 0
    ctor = MethodRef("Foo", ".ctor", ("System.Int32",), is_static=False)
    assert Instruction(OpCode.NEWOBJ, ctor).stack_delta() == 0
    assert Instruction(OpCode.DUP).stack_delta() == 1


def test_labels_and_blocks_travel_with_instruction() -> None:
    base = Instruction(OpCode.NOP)
    labelled = base.with_labels([Label(3)]).with_blocks([ExceptionBlock(BlockKind.BEGIN_TRY)])
    assert labelled.labels == (Label(3),)
    assert labelled.blocks[0].kind is BlockKind.BEGIN_TRY
    assert base.labels == ()
    assert labelled != base


def test_describe_renders_operand() -> None:
    assert Instruction(OpCode.LDSTR, StringLiteral('a"b')).describe() == 'ldstr "a\\"b"'
    assert Instruction(OpCode.BR, Label(7)).describe() == "br L_0007"
    assert "Concat(System.String" in Instruction(OpCode.CALL, CONCAT3).describe()


@pytest.mark.parametrize("label_id", ["x", -1, True, 1.5])
def test_label_id_must_be_non_negative_int(label_id) -> None:
    with pytest.raises(InvalidOperand):
        Label(label_id)


def test_is_branch_follows_flow_control() -> None:
    assert Instruction(OpCode.LEAVE_S, Label(1)).is_branch()
    assert Instruction(OpCode.BEQ, Label(1)).is_branch()
    assert not Instruction(OpCode.RET).is_branch()
