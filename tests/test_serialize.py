import pytest

from ilpatch.catalog import blueprints_path_patch, builtin_members
from ilpatch.errors import InvalidOperand
from ilpatch.instruction import BlockKind, ExceptionBlock, Instruction
from ilpatch.opcodes import EncodingClass, OpCode
from ilpatch.operands import IntegerConstant, Label, LocalIndex, StringLiteral
from ilpatch.patterns import AnyOf, IntegerEquals
from ilpatch.serialize import (
    deserialize_instruction,
    deserialize_patch,
    deserialize_rule,
    deserialize_sequence,
    serialize_instruction,
    serialize_patch,
    serialize_rule,
)


def test_instruction_payload_shape() -> None:
    instruction = Instruction(
        OpCode.BRTRUE_S,
        Label(3),
        labels=(Label(1),),
        blocks=(ExceptionBlock(BlockKind.BEGIN_CATCH, "System.Exception"),),
    )
    payload = serialize_instruction(instruction)
    assert payload == {
        "op": "brtrue.s",
        "operand": {"kind": "label", "id": 3},
        "labels": [1],
        "blocks": [{"kind": "catch", "catch_type": "System.Exception"}],
    }
    assert deserialize_instruction(payload) == instruction


def test_shorthand_operands_follow_opcode_shape() -> None:
    body = deserialize_sequence(
        [
            {"op": "ldc.i4.s", "operand": 12},
            {"op": "ldstr", "operand": ".db"},
            {"op": "stloc.s", "operand": 5},
            {"op": "br", "operand": 2},
            {"op": "ldloc.1"},
        ]
    )
    assert body[0].operand == IntegerConstant(12)
    assert body[1].operand == StringLiteral(".db")
    assert body[2].operand == LocalIndex(5)
    assert body[3].operand == Label(2)
    assert body[4].operand is None


def test_member_references_resolve_through_table() -> None:
    members = builtin_members()
    instruction = deserialize_instruction(
        {"op": "call", "operand": {"member": "String.Concat/2"}}, members
    )
    assert instruction.operand == members.method("String.Concat/2")

    with pytest.raises(ValueError, match="member table"):
        deserialize_instruction({"op": "call", "operand": {"member": "String.Concat/2"}})


def test_malformed_instruction_payloads() -> None:
    with pytest.raises(InvalidOperand):
        deserialize_instruction({"op": "ldstr", "operand": 5})
    with pytest.raises(InvalidOperand):
        deserialize_instruction({"op": "ldc.r4", "operand": 1})
    with pytest.raises(ValueError, match="unknown operand kind"):
        deserialize_instruction({"op": "ldstr", "operand": {"kind": "blob"}})


def test_rule_payloads() -> None:
    rule = deserialize_rule({"rule": "int_constant", "value": 4})
    assert rule == AnyOf(frozenset({EncodingClass.LOAD_INT_CONSTANT}), IntegerEquals(4))
    assert serialize_rule(rule) == {
        "rule": "any",
        "classes": ["LOAD_INT_CONSTANT"],
        "where": {"pred": "integer", "value": 4},
    }
    with pytest.raises(TypeError):
        serialize_rule(AnyOf(frozenset({EncodingClass.LOAD_STRING}), lambda operand: True))


def test_patch_spec_survives_json_encoding() -> None:
    spec = blueprints_path_patch()
    assert deserialize_patch(serialize_patch(spec)) == spec
