"""Opcode table for the instruction model.

Every opcode carries a fixed operand shape and belongs to exactly one
:class:`EncodingClass`.  Compilers are free to pick between several equivalent
encodings for the same logical operation (``ldc.i4.2``, ``ldc.i4.s 2`` and
``ldc.i4 2`` all push the integer two) so pattern rules match against the
encoding class rather than against individual opcodes.  Short forms that embed
their operand in the opcode itself record it as ``implicit_operand``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Optional


class OpCode(Enum):
    """Closed enumeration of the opcodes understood by the engine."""

    NOP = "nop"
    LDARG_0 = "ldarg.0"
    LDARG_1 = "ldarg.1"
    LDARG_2 = "ldarg.2"
    LDARG_3 = "ldarg.3"
    LDARG_S = "ldarg.s"
    LDLOC_0 = "ldloc.0"
    LDLOC_1 = "ldloc.1"
    LDLOC_2 = "ldloc.2"
    LDLOC_3 = "ldloc.3"
    LDLOC_S = "ldloc.s"
    LDLOC = "ldloc"
    STLOC_0 = "stloc.0"
    STLOC_1 = "stloc.1"
    STLOC_2 = "stloc.2"
    STLOC_3 = "stloc.3"
    STLOC_S = "stloc.s"
    STLOC = "stloc"
    LDLOCA_S = "ldloca.s"
    LDLOCA = "ldloca"
    LDC_I4_M1 = "ldc.i4.m1"
    LDC_I4_0 = "ldc.i4.0"
    LDC_I4_1 = "ldc.i4.1"
    LDC_I4_2 = "ldc.i4.2"
    LDC_I4_3 = "ldc.i4.3"
    LDC_I4_4 = "ldc.i4.4"
    LDC_I4_5 = "ldc.i4.5"
    LDC_I4_6 = "ldc.i4.6"
    LDC_I4_7 = "ldc.i4.7"
    LDC_I4_8 = "ldc.i4.8"
    LDC_I4_S = "ldc.i4.s"
    LDC_I4 = "ldc.i4"
    LDC_I8 = "ldc.i8"
    LDSTR = "ldstr"
    LDNULL = "ldnull"
    LDFLD = "ldfld"
    LDSFLD = "ldsfld"
    STFLD = "stfld"
    STSFLD = "stsfld"
    CALL = "call"
    CALLVIRT = "callvirt"
    NEWOBJ = "newobj"
    DUP = "dup"
    POP = "pop"
    RET = "ret"
    BR = "br"
    BR_S = "br.s"
    BRTRUE = "brtrue"
    BRTRUE_S = "brtrue.s"
    BRFALSE = "brfalse"
    BRFALSE_S = "brfalse.s"
    BEQ = "beq"
    BNE_UN = "bne.un"
    LEAVE = "leave"
    LEAVE_S = "leave.s"
    THROW = "throw"
    ENDFINALLY = "endfinally"

    @property
    def mnemonic(self) -> str:
        return self.value


class OperandShape(Enum):
    """The kind of immediate data an opcode carries."""

    NONE = auto()
    INTEGER = auto()
    STRING = auto()
    FIELD = auto()
    METHOD = auto()
    LOCAL = auto()
    ARGUMENT = auto()
    LABEL = auto()


class EncodingClass(Enum):
    """Canonical category of an opcode regardless of its encoding width."""

    NOP = auto()
    LOAD_INT_CONSTANT = auto()
    LOAD_LONG_CONSTANT = auto()
    LOAD_STRING = auto()
    LOAD_NULL = auto()
    LOAD_ARGUMENT = auto()
    LOAD_LOCAL = auto()
    STORE_LOCAL = auto()
    LOAD_LOCAL_ADDRESS = auto()
    LOAD_FIELD = auto()
    LOAD_STATIC_FIELD = auto()
    STORE_FIELD = auto()
    STORE_STATIC_FIELD = auto()
    CALL = auto()
    CALL_VIRTUAL = auto()
    NEW_OBJECT = auto()
    STACK = auto()
    RETURN = auto()
    BRANCH = auto()
    CONDITIONAL_BRANCH = auto()
    LEAVE = auto()
    THROW = auto()
    END_FINALLY = auto()


class FlowControl(Enum):
    NEXT = auto()
    CALL = auto()
    BRANCH = auto()
    CONDITIONAL_BRANCH = auto()
    RETURN = auto()
    THROW = auto()


@dataclass(frozen=True)
class OpcodeInfo:
    """Static description of a single opcode.

    ``pops``/``pushes`` are ``None`` for opcodes whose stack effect depends on
    the operand (calls and object construction).
    """

    opcode: OpCode
    shape: OperandShape
    encoding: EncodingClass
    flow: FlowControl = FlowControl.NEXT
    implicit_operand: Optional[int] = None
    operand_min: Optional[int] = None
    operand_max: Optional[int] = None
    pops: Optional[int] = 0
    pushes: Optional[int] = 0

    @property
    def mnemonic(self) -> str:
        return self.opcode.value

    def stack_delta(self) -> Optional[int]:
        if self.pops is None or self.pushes is None:
            return None
        return self.pushes - self.pops


INT8_MIN, INT8_MAX = -(1 << 7), (1 << 7) - 1
INT32_MIN, INT32_MAX = -(1 << 31), (1 << 31) - 1
INT64_MIN, INT64_MAX = -(1 << 63), (1 << 63) - 1
UINT8_MAX = 0xFF
UINT16_MAX = 0xFFFF


def _info(
    opcode: OpCode,
    shape: OperandShape,
    encoding: EncodingClass,
    flow: FlowControl = FlowControl.NEXT,
    **kwargs,
) -> OpcodeInfo:
    return OpcodeInfo(opcode=opcode, shape=shape, encoding=encoding, flow=flow, **kwargs)


def _build_table() -> Dict[OpCode, OpcodeInfo]:
    S, E, F = OperandShape, EncodingClass, FlowControl
    entries = [
        _info(OpCode.NOP, S.NONE, E.NOP),
        _info(OpCode.LDARG_S, S.ARGUMENT, E.LOAD_ARGUMENT, operand_max=UINT8_MAX, pushes=1),
        _info(OpCode.LDLOC_S, S.LOCAL, E.LOAD_LOCAL, operand_max=UINT8_MAX, pushes=1),
        _info(OpCode.LDLOC, S.LOCAL, E.LOAD_LOCAL, operand_max=UINT16_MAX, pushes=1),
        _info(OpCode.STLOC_S, S.LOCAL, E.STORE_LOCAL, operand_max=UINT8_MAX, pops=1),
        _info(OpCode.STLOC, S.LOCAL, E.STORE_LOCAL, operand_max=UINT16_MAX, pops=1),
        _info(OpCode.LDLOCA_S, S.LOCAL, E.LOAD_LOCAL_ADDRESS, operand_max=UINT8_MAX, pushes=1),
        _info(OpCode.LDLOCA, S.LOCAL, E.LOAD_LOCAL_ADDRESS, operand_max=UINT16_MAX, pushes=1),
        _info(OpCode.LDC_I4_M1, S.INTEGER, E.LOAD_INT_CONSTANT, implicit_operand=-1, pushes=1),
        _info(
            OpCode.LDC_I4_S,
            S.INTEGER,
            E.LOAD_INT_CONSTANT,
            operand_min=INT8_MIN,
            operand_max=INT8_MAX,
            pushes=1,
        ),
        _info(
            OpCode.LDC_I4,
            S.INTEGER,
            E.LOAD_INT_CONSTANT,
            operand_min=INT32_MIN,
            operand_max=INT32_MAX,
            pushes=1,
        ),
        _info(
            OpCode.LDC_I8,
            S.INTEGER,
            E.LOAD_LONG_CONSTANT,
            operand_min=INT64_MIN,
            operand_max=INT64_MAX,
            pushes=1,
        ),
        _info(OpCode.LDSTR, S.STRING, E.LOAD_STRING, pushes=1),
        _info(OpCode.LDNULL, S.NONE, E.LOAD_NULL, pushes=1),
        _info(OpCode.LDFLD, S.FIELD, E.LOAD_FIELD, pops=1, pushes=1),
        _info(OpCode.LDSFLD, S.FIELD, E.LOAD_STATIC_FIELD, pushes=1),
        _info(OpCode.STFLD, S.FIELD, E.STORE_FIELD, pops=2),
        _info(OpCode.STSFLD, S.FIELD, E.STORE_STATIC_FIELD, pops=1),
        _info(OpCode.CALL, S.METHOD, E.CALL, F.CALL, pops=None, pushes=None),
        _info(OpCode.CALLVIRT, S.METHOD, E.CALL_VIRTUAL, F.CALL, pops=None, pushes=None),
        _info(OpCode.NEWOBJ, S.METHOD, E.NEW_OBJECT, F.CALL, pops=None, pushes=1),
        _info(OpCode.DUP, S.NONE, E.STACK, pops=1, pushes=2),
        _info(OpCode.POP, S.NONE, E.STACK, pops=1),
        # ``ret`` pops the return value when there is one; the engine never
        # patches across returns so it is modelled as stack neutral.
        _info(OpCode.RET, S.NONE, E.RETURN, F.RETURN),
        _info(OpCode.BR, S.LABEL, E.BRANCH, F.BRANCH),
        _info(OpCode.BR_S, S.LABEL, E.BRANCH, F.BRANCH),
        _info(OpCode.BRTRUE, S.LABEL, E.CONDITIONAL_BRANCH, F.CONDITIONAL_BRANCH, pops=1),
        _info(OpCode.BRTRUE_S, S.LABEL, E.CONDITIONAL_BRANCH, F.CONDITIONAL_BRANCH, pops=1),
        _info(OpCode.BRFALSE, S.LABEL, E.CONDITIONAL_BRANCH, F.CONDITIONAL_BRANCH, pops=1),
        _info(OpCode.BRFALSE_S, S.LABEL, E.CONDITIONAL_BRANCH, F.CONDITIONAL_BRANCH, pops=1),
        _info(OpCode.BEQ, S.LABEL, E.CONDITIONAL_BRANCH, F.CONDITIONAL_BRANCH, pops=2),
        _info(OpCode.BNE_UN, S.LABEL, E.CONDITIONAL_BRANCH, F.CONDITIONAL_BRANCH, pops=2),
        _info(OpCode.LEAVE, S.LABEL, E.LEAVE, F.BRANCH),
        _info(OpCode.LEAVE_S, S.LABEL, E.LEAVE, F.BRANCH),
        _info(OpCode.THROW, S.NONE, E.THROW, F.THROW, pops=1),
        _info(OpCode.ENDFINALLY, S.NONE, E.END_FINALLY, F.RETURN),
    ]

    for index in range(4):
        entries.append(
            _info(OpCode(f"ldarg.{index}"), S.ARGUMENT, E.LOAD_ARGUMENT, implicit_operand=index, pushes=1)
        )
        entries.append(
            _info(OpCode(f"ldloc.{index}"), S.LOCAL, E.LOAD_LOCAL, implicit_operand=index, pushes=1)
        )
        entries.append(
            _info(OpCode(f"stloc.{index}"), S.LOCAL, E.STORE_LOCAL, implicit_operand=index, pops=1)
        )
    for value in range(9):
        entries.append(
            _info(
                OpCode(f"ldc.i4.{value}"),
                S.INTEGER,
                E.LOAD_INT_CONSTANT,
                implicit_operand=value,
                pushes=1,
            )
        )

    return {entry.opcode: entry for entry in entries}


OPCODE_TABLE: Dict[OpCode, OpcodeInfo] = _build_table()

_BY_MNEMONIC: Dict[str, OpCode] = {opcode.value: opcode for opcode in OpCode}


def opcode_info(opcode: OpCode) -> OpcodeInfo:
    return OPCODE_TABLE[opcode]


def encoding_class(opcode: OpCode) -> EncodingClass:
    """Return the canonical class of ``opcode``.

    ``ldc.i4.0`` to ``ldc.i4.8``, ``ldc.i4.m1``, ``ldc.i4.s`` and ``ldc.i4``
    all map to :attr:`EncodingClass.LOAD_INT_CONSTANT`; the short and long
    local/argument forms collapse in the same way.
    """

    return OPCODE_TABLE[opcode].encoding


def operand_shape(opcode: OpCode) -> OperandShape:
    return OPCODE_TABLE[opcode].shape


_BRANCH_FLOWS = frozenset({FlowControl.BRANCH, FlowControl.CONDITIONAL_BRANCH})


def is_branch(opcode: OpCode) -> bool:
    return OPCODE_TABLE[opcode].flow in _BRANCH_FLOWS


def lookup_mnemonic(text: str) -> OpCode:
    """Resolve a textual mnemonic (``"ldc.i4.s"``, ``"LDC_I4_S"``) to an opcode."""

    token = text.strip().lower()
    opcode = _BY_MNEMONIC.get(token)
    if opcode is None:
        opcode = _BY_MNEMONIC.get(token.replace("_", "."))
    if opcode is None:
        raise KeyError(f"unknown opcode mnemonic: {text!r}")
    return opcode


def compact_int_opcode(value: int) -> OpCode:
    """Return the shortest ``ldc.i4`` family opcode able to push ``value``."""

    if value == -1:
        return OpCode.LDC_I4_M1
    if 0 <= value <= 8:
        return OpCode(f"ldc.i4.{value}")
    if INT8_MIN <= value <= INT8_MAX:
        return OpCode.LDC_I4_S
    if INT32_MIN <= value <= INT32_MAX:
        return OpCode.LDC_I4
    raise ValueError(f"integer constant {value} does not fit a 32-bit load")


def compact_local_opcode(family: EncodingClass, index: int) -> OpCode:
    """Return the shortest local-variable opcode of ``family`` for ``index``."""

    if index < 0 or index > UINT16_MAX:
        raise ValueError(f"local index {index} out of range")
    if family is EncodingClass.LOAD_LOCAL:
        names = ("ldloc.{}", "ldloc.s", "ldloc")
    elif family is EncodingClass.STORE_LOCAL:
        names = ("stloc.{}", "stloc.s", "stloc")
    elif family is EncodingClass.LOAD_LOCAL_ADDRESS:
        if index <= UINT8_MAX:
            return OpCode.LDLOCA_S
        return OpCode.LDLOCA
    else:
        raise ValueError(f"{family.name} is not a local-variable family")
    if index <= 3:
        return OpCode(names[0].format(index))
    if index <= UINT8_MAX:
        return OpCode(names[1])
    return OpCode(names[2])


__all__ = [
    "OpCode",
    "OperandShape",
    "EncodingClass",
    "FlowControl",
    "OpcodeInfo",
    "OPCODE_TABLE",
    "opcode_info",
    "encoding_class",
    "operand_shape",
    "is_branch",
    "lookup_mnemonic",
    "compact_int_opcode",
    "compact_local_opcode",
]
