"""Representation of a single instruction."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from .errors import InvalidOperand
from .opcodes import (
    EncodingClass,
    OpCode,
    OperandShape,
    compact_int_opcode,
    compact_local_opcode,
    is_branch,
    opcode_info,
)
from .operands import (
    OPERAND_TYPES,
    FieldRef,
    IntegerConstant,
    Label,
    LocalIndex,
    MethodRef,
    Operand,
    StringLiteral,
)


class BlockKind(Enum):
    BEGIN_TRY = "try"
    BEGIN_CATCH = "catch"
    BEGIN_FILTER = "filter"
    BEGIN_FINALLY = "finally"
    BEGIN_FAULT = "fault"
    END = "end"


@dataclass(frozen=True)
class ExceptionBlock:
    """Exception-region boundary marker attached to the instruction it precedes."""

    kind: BlockKind
    catch_type: Optional[str] = None

    def describe(self) -> str:
        if self.catch_type:
            return f"{self.kind.value}({self.catch_type})"
        return self.kind.value


def implicit_operand(opcode: OpCode) -> Optional[Operand]:
    """Return the operand a short-form opcode carries in its encoding, if any."""

    info = opcode_info(opcode)
    if info.implicit_operand is None:
        return None
    if info.shape is OperandShape.INTEGER:
        return IntegerConstant(info.implicit_operand)
    return LocalIndex(info.implicit_operand)


@dataclass(frozen=True)
class Instruction:
    """One opcode together with its (optional) operand.

    ``labels`` lists the branch targets that resolve to this instruction and
    ``blocks`` the exception-region boundaries that start or end here.  Both
    travel with the instruction so that the rewrite engine can tell whether a
    removal would orphan a branch or tear an exception region apart.
    """

    opcode: OpCode
    operand: Optional[Operand] = None
    labels: Tuple[Label, ...] = ()
    blocks: Tuple[ExceptionBlock, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.opcode, OpCode):
            raise InvalidOperand(f"unknown opcode {self.opcode!r}")
        object.__setattr__(self, "labels", tuple(self.labels))
        object.__setattr__(self, "blocks", tuple(self.blocks))
        _validate_operand(self.opcode, self.operand)

    # ------------------------------------------------------------------
    # classification
    # ------------------------------------------------------------------
    @property
    def mnemonic(self) -> str:
        return self.opcode.value

    @property
    def encoding_class(self) -> EncodingClass:
        return opcode_info(self.opcode).encoding

    @property
    def shape(self) -> OperandShape:
        return opcode_info(self.opcode).shape

    def is_branch(self) -> bool:
        return is_branch(self.opcode)

    def branch_target(self) -> Optional[Label]:
        if isinstance(self.operand, Label):
            return self.operand
        return None

    def logical_operand(self) -> Optional[Operand]:
        """Return the operand including values implied by short-form opcodes."""

        if self.operand is not None:
            return self.operand
        return implicit_operand(self.opcode)

    def stack_delta(self) -> Optional[int]:
        """Return the net stack effect or ``None`` when it cannot be derived."""

        info = opcode_info(self.opcode)
        delta = info.stack_delta()
        if delta is not None:
            return delta
        if not isinstance(self.operand, MethodRef):
            return None
        method = self.operand
        if self.opcode is OpCode.NEWOBJ:
            return 1 - len(method.parameter_types)
        return (1 if method.returns_value else 0) - method.argument_count

    # ------------------------------------------------------------------
    # derivation
    # ------------------------------------------------------------------
    def with_labels(self, labels: Iterable[Label]) -> "Instruction":
        return Instruction(self.opcode, self.operand, tuple(labels), self.blocks)

    def with_blocks(self, blocks: Iterable[ExceptionBlock]) -> "Instruction":
        return Instruction(self.opcode, self.operand, self.labels, tuple(blocks))

    def describe(self) -> str:
        if self.operand is None:
            return self.mnemonic
        return f"{self.mnemonic} {self.operand.describe()}"

    def __str__(self) -> str:  # pragma: no cover - delegated to describe
        return self.describe()


def _validate_operand(opcode: OpCode, operand: Optional[Operand]) -> None:
    info = opcode_info(opcode)
    shape = info.shape

    if operand is None:
        if shape is OperandShape.NONE or info.implicit_operand is not None:
            return
        raise InvalidOperand(f"{opcode.value} requires a {shape.name.lower()} operand")

    if shape is OperandShape.NONE:
        raise InvalidOperand(f"{opcode.value} takes no operand, got {operand!r}")

    expected = OPERAND_TYPES[shape]
    if not isinstance(operand, expected):
        raise InvalidOperand(
            f"{opcode.value} expects {expected.__name__}, got {type(operand).__name__}"
        )

    if info.implicit_operand is not None:
        implied = operand.value if isinstance(operand, IntegerConstant) else operand.index
        if implied != info.implicit_operand:
            raise InvalidOperand(
                f"{opcode.value} implies {info.implicit_operand}, got {implied}"
            )
        return

    if isinstance(operand, FieldRef):
        wants_static = info.encoding in (
            EncodingClass.LOAD_STATIC_FIELD,
            EncodingClass.STORE_STATIC_FIELD,
        )
        if operand.is_static != wants_static:
            kind = "instance" if wants_static else "static"
            raise InvalidOperand(f"{opcode.value} cannot reference {kind} field {operand.name}")
        return

    if isinstance(operand, IntegerConstant):
        value = operand.value
    elif isinstance(operand, LocalIndex):
        value = operand.index
    else:
        return
    if info.operand_min is not None and value < info.operand_min:
        raise InvalidOperand(f"{opcode.value} operand {value} below {info.operand_min}")
    if info.operand_max is not None and value > info.operand_max:
        raise InvalidOperand(f"{opcode.value} operand {value} above {info.operand_max}")


# ---------------------------------------------------------------------------
# builders
# ---------------------------------------------------------------------------


def load_int(value: int) -> Instruction:
    """Return the most compact integer-constant load for ``value``."""

    opcode = compact_int_opcode(value)
    if opcode_info(opcode).implicit_operand is not None:
        return Instruction(opcode)
    return Instruction(opcode, IntegerConstant(value))


def load_string(value: str) -> Instruction:
    return Instruction(OpCode.LDSTR, StringLiteral(value))


def _local(family: EncodingClass, index: int) -> Instruction:
    opcode = compact_local_opcode(family, index)
    if opcode_info(opcode).implicit_operand is not None:
        return Instruction(opcode)
    return Instruction(opcode, LocalIndex(index))


def load_local(index: int) -> Instruction:
    return _local(EncodingClass.LOAD_LOCAL, index)


def store_local(index: int) -> Instruction:
    return _local(EncodingClass.STORE_LOCAL, index)


def load_local_address(index: int) -> Instruction:
    return _local(EncodingClass.LOAD_LOCAL_ADDRESS, index)


def load_static_field(ref: FieldRef) -> Instruction:
    return Instruction(OpCode.LDSFLD, ref)


def call(method: MethodRef) -> Instruction:
    return Instruction(OpCode.CALL, method)


def callvirt(method: MethodRef) -> Instruction:
    return Instruction(OpCode.CALLVIRT, method)


__all__ = [
    "BlockKind",
    "ExceptionBlock",
    "Instruction",
    "implicit_operand",
    "load_int",
    "load_string",
    "load_local",
    "store_local",
    "load_local_address",
    "load_static_field",
    "call",
    "callvirt",
]
