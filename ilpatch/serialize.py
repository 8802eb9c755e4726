"""JSON-compatible encoding of instructions, patterns and patch specs.

Decoders accept a couple of shorthands so hand-written catalogue files stay
readable: a bare number or string works as an operand wherever the opcode's
shape makes the meaning unambiguous, and ``{"member": "<key>"}`` refers to a
field or method declared in the :class:`~ilpatch.members.MemberTable`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import InvalidOperand
from .instruction import BlockKind, ExceptionBlock, Instruction
from .members import (
    MemberTable,
    MethodSelector,
    field_from_json,
    field_to_json,
    method_from_json,
    method_to_json,
)
from .opcodes import EncodingClass, OperandShape, lookup_mnemonic, operand_shape
from .operands import (
    FieldRef,
    IntegerConstant,
    Label,
    LocalIndex,
    MethodRef,
    Operand,
    StringLiteral,
)
from .patching import PatchSpec
from .patterns import (
    AllOf,
    AnyInteger,
    AnyOf,
    EitherOf,
    Exact,
    IntegerEquals,
    LocalEquals,
    MatchRule,
    OperandEquals,
    OperandPredicate,
    Pattern,
)
from .sequence import InstructionSequence


# ---------------------------------------------------------------------------
# operands
# ---------------------------------------------------------------------------


def serialize_operand(operand: Operand) -> Dict[str, Any]:
    if isinstance(operand, IntegerConstant):
        return {"kind": "int", "value": operand.value}
    if isinstance(operand, StringLiteral):
        return {"kind": "string", "value": operand.value}
    if isinstance(operand, FieldRef):
        return {"kind": "field", **field_to_json(operand)}
    if isinstance(operand, MethodRef):
        return {"kind": "method", **method_to_json(operand)}
    if isinstance(operand, LocalIndex):
        return {"kind": "local", "index": operand.index}
    if isinstance(operand, Label):
        return {"kind": "label", "id": operand.id}
    raise TypeError(f"unsupported operand type: {type(operand)!r}")


def deserialize_operand(
    payload: Any,
    shape: Optional[OperandShape] = None,
    members: Optional[MemberTable] = None,
) -> Operand:
    if isinstance(payload, Mapping):
        if "member" in payload:
            if members is None:
                raise ValueError(f"member reference {payload['member']!r} without a member table")
            return members.resolve(str(payload["member"]))
        kind = payload.get("kind")
        if kind == "int":
            return IntegerConstant(payload["value"])
        if kind == "string":
            return StringLiteral(payload["value"])
        if kind == "field":
            return field_from_json(payload)
        if kind == "method":
            return method_from_json(payload)
        if kind == "local":
            return LocalIndex(payload["index"])
        if kind == "label":
            return Label(int(payload["id"]))
        raise ValueError(f"unknown operand kind: {kind!r}")

    if shape is OperandShape.INTEGER and isinstance(payload, int):
        return IntegerConstant(payload)
    if shape is OperandShape.STRING and isinstance(payload, str):
        return StringLiteral(payload)
    if shape in (OperandShape.LOCAL, OperandShape.ARGUMENT) and isinstance(payload, int):
        return LocalIndex(payload)
    if shape is OperandShape.LABEL and isinstance(payload, int):
        return Label(payload)
    raise InvalidOperand(f"cannot interpret {payload!r} as a {shape.name.lower() if shape else 'typed'} operand")


# ---------------------------------------------------------------------------
# instructions
# ---------------------------------------------------------------------------


def serialize_instruction(instruction: Instruction) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"op": instruction.mnemonic}
    if instruction.operand is not None:
        payload["operand"] = serialize_operand(instruction.operand)
    if instruction.labels:
        payload["labels"] = [label.id for label in instruction.labels]
    if instruction.blocks:
        payload["blocks"] = [
            {"kind": block.kind.value, "catch_type": block.catch_type}
            for block in instruction.blocks
        ]
    return payload


def deserialize_instruction(payload: Mapping[str, Any], members: Optional[MemberTable] = None) -> Instruction:
    try:
        opcode = lookup_mnemonic(str(payload["op"]))
    except KeyError as exc:
        raise InvalidOperand(str(exc)) from None
    operand = None
    if payload.get("operand") is not None:
        operand = deserialize_operand(payload["operand"], operand_shape(opcode), members)
    labels = tuple(Label(int(label)) for label in payload.get("labels", ()))
    blocks = tuple(
        ExceptionBlock(BlockKind(block["kind"]), block.get("catch_type"))
        for block in payload.get("blocks", ())
    )
    return Instruction(opcode, operand, labels, blocks)


def serialize_sequence(instructions: Sequence[Instruction]) -> List[Dict[str, Any]]:
    return [serialize_instruction(instruction) for instruction in instructions]


def deserialize_sequence(payload: Sequence[Mapping[str, Any]], members: Optional[MemberTable] = None) -> InstructionSequence:
    return InstructionSequence(deserialize_instruction(item, members) for item in payload)


# ---------------------------------------------------------------------------
# selectors
# ---------------------------------------------------------------------------


def serialize_selector(selector: MethodSelector) -> str:
    return selector.key()


def deserialize_selector(payload: Any) -> MethodSelector:
    if isinstance(payload, str):
        return MethodSelector.parse(payload)
    if isinstance(payload, Mapping):
        return MethodSelector(
            str(payload["type"]),
            str(payload["name"]),
            tuple(str(param) for param in payload.get("params", ())),
        )
    raise ValueError(f"malformed method selector: {payload!r}")


# ---------------------------------------------------------------------------
# patterns
# ---------------------------------------------------------------------------


def serialize_predicate(predicate: OperandPredicate) -> Dict[str, Any]:
    if isinstance(predicate, AnyInteger):
        return {"pred": "any_integer"}
    if isinstance(predicate, IntegerEquals):
        return {"pred": "integer", "value": predicate.value}
    if isinstance(predicate, LocalEquals):
        return {"pred": "local", "index": predicate.index}
    if isinstance(predicate, OperandEquals):
        return {"pred": "equals", "operand": serialize_operand(predicate.operand)}
    if isinstance(predicate, AllOf):
        return {"pred": "all", "of": [serialize_predicate(item) for item in predicate.predicates]}
    if isinstance(predicate, EitherOf):
        return {"pred": "either", "of": [serialize_predicate(item) for item in predicate.predicates]}
    raise TypeError(f"predicate {predicate!r} cannot be serialised")


def deserialize_predicate(payload: Mapping[str, Any], members: Optional[MemberTable] = None) -> OperandPredicate:
    kind = payload.get("pred")
    if kind == "any_integer":
        return AnyInteger()
    if kind == "integer":
        return IntegerEquals(int(payload["value"]))
    if kind == "local":
        return LocalEquals(int(payload["index"]))
    if kind == "equals":
        return OperandEquals(deserialize_operand(payload["operand"], members=members))
    if kind == "all":
        return AllOf(tuple(deserialize_predicate(item, members) for item in payload["of"]))
    if kind == "either":
        return EitherOf(tuple(deserialize_predicate(item, members) for item in payload["of"]))
    raise ValueError(f"unknown predicate: {kind!r}")


def serialize_rule(rule: MatchRule) -> Dict[str, Any]:
    if isinstance(rule, Exact):
        payload: Dict[str, Any] = {"rule": "exact", "op": rule.opcode.value}
        if rule.operand is not None:
            payload["operand"] = serialize_operand(rule.operand)
        return payload
    if isinstance(rule, AnyOf):
        payload = {"rule": "any", "classes": sorted(cls.name for cls in rule.classes)}
        if rule.predicate is not None:
            if not isinstance(rule.predicate, OperandPredicate):
                raise TypeError("rules with plain callables cannot be serialised")
            payload["where"] = serialize_predicate(rule.predicate)
        return payload
    raise TypeError(f"unsupported rule type: {type(rule)!r}")


def deserialize_rule(payload: Mapping[str, Any], members: Optional[MemberTable] = None) -> MatchRule:
    kind = payload.get("rule", "exact")
    if kind == "exact":
        opcode = lookup_mnemonic(str(payload["op"]))
        operand = None
        if payload.get("operand") is not None:
            operand = deserialize_operand(payload["operand"], operand_shape(opcode), members)
        return Exact(opcode, operand)
    if kind == "any":
        classes = frozenset(EncodingClass[str(name).upper()] for name in payload["classes"])
        predicate = None
        if payload.get("where") is not None:
            predicate = deserialize_predicate(payload["where"], members)
        return AnyOf(classes, predicate)
    if kind == "int_constant":
        value = payload.get("value")
        predicate = AnyInteger() if value is None else IntegerEquals(int(value))
        return AnyOf(frozenset({EncodingClass.LOAD_INT_CONSTANT}), predicate)
    raise ValueError(f"unknown rule kind: {kind!r}")


def serialize_pattern(pattern: Pattern) -> Dict[str, Any]:
    return {"name": pattern.name, "rules": [serialize_rule(rule) for rule in pattern.rules]}


def deserialize_pattern(payload: Mapping[str, Any], members: Optional[MemberTable] = None) -> Pattern:
    rules = tuple(deserialize_rule(rule, members) for rule in payload["rules"])
    return Pattern(str(payload["name"]), rules)


# ---------------------------------------------------------------------------
# patch specs
# ---------------------------------------------------------------------------


def serialize_patch(spec: PatchSpec) -> Dict[str, Any]:
    return {
        "name": spec.name,
        "target": serialize_selector(spec.target),
        "pattern": serialize_pattern(spec.pattern),
        "keep_prefix": spec.keep_prefix_count,
        "remove": spec.remove_count,
        "insert": serialize_sequence(spec.insert),
    }


def deserialize_patch(payload: Mapping[str, Any], members: Optional[MemberTable] = None) -> PatchSpec:
    name = str(payload["name"])
    pattern_payload = payload["pattern"]
    if isinstance(pattern_payload, Sequence) and not isinstance(pattern_payload, str):
        pattern_payload = {"name": name, "rules": pattern_payload}
    return PatchSpec(
        name=name,
        target=deserialize_selector(payload["target"]),
        pattern=deserialize_pattern(pattern_payload, members),
        keep_prefix_count=int(payload.get("keep_prefix", 0)),
        remove_count=int(payload.get("remove", 0)),
        insert=deserialize_sequence(payload.get("insert", ()), members),
    )


__all__ = [
    "serialize_operand",
    "deserialize_operand",
    "serialize_instruction",
    "deserialize_instruction",
    "serialize_sequence",
    "deserialize_sequence",
    "serialize_selector",
    "deserialize_selector",
    "serialize_predicate",
    "deserialize_predicate",
    "serialize_rule",
    "deserialize_rule",
    "serialize_pattern",
    "deserialize_pattern",
    "serialize_patch",
    "deserialize_patch",
]
