"""Typed operand values.

Operands are small frozen value objects so equality is structural: two
``FieldRef`` instances naming the same member compare equal even when they
were created independently (one by the method-body provider, one by a patch
author).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from .errors import InvalidOperand
from .opcodes import INT64_MAX, INT64_MIN, UINT16_MAX, OperandShape


@dataclass(frozen=True)
class IntegerConstant:
    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise InvalidOperand(f"integer constant expected, got {self.value!r}")
        if not (INT64_MIN <= self.value <= INT64_MAX):
            raise InvalidOperand(f"integer constant {self.value} exceeds 64 bits")

    @property
    def shape(self) -> OperandShape:
        return OperandShape.INTEGER

    def describe(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class StringLiteral:
    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise InvalidOperand(f"string literal expected, got {self.value!r}")

    @property
    def shape(self) -> OperandShape:
        return OperandShape.STRING

    def describe(self) -> str:
        escaped = self.value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'


@dataclass(frozen=True)
class FieldRef:
    declaring_type: str
    name: str
    field_type: str = "object"
    is_static: bool = True

    @property
    def shape(self) -> OperandShape:
        return OperandShape.FIELD

    def describe(self) -> str:
        return f"{self.field_type} {self.declaring_type}::{self.name}"


@dataclass(frozen=True)
class MethodRef:
    """Reference to a method or constructor.

    ``is_static`` and ``return_type`` only feed the stack-effect estimate made
    when a patch is applied; they take no part in matching beyond equality.
    """

    declaring_type: str
    name: str
    parameter_types: Tuple[str, ...] = ()
    return_type: str = "void"
    is_static: bool = True

    def __post_init__(self) -> None:
        # Accept lists from JSON payloads while keeping the value hashable.
        object.__setattr__(self, "parameter_types", tuple(self.parameter_types))

    @property
    def shape(self) -> OperandShape:
        return OperandShape.METHOD

    @property
    def is_constructor(self) -> bool:
        return self.name == ".ctor"

    @property
    def argument_count(self) -> int:
        return len(self.parameter_types) + (0 if self.is_static else 1)

    @property
    def returns_value(self) -> bool:
        return self.return_type != "void"

    def describe(self) -> str:
        params = ", ".join(self.parameter_types)
        return f"{self.return_type} {self.declaring_type}::{self.name}({params})"


@dataclass(frozen=True)
class LocalIndex:
    """Index of a local variable or argument slot."""

    index: int

    def __post_init__(self) -> None:
        if isinstance(self.index, bool) or not isinstance(self.index, int):
            raise InvalidOperand(f"slot index expected, got {self.index!r}")
        if not (0 <= self.index <= UINT16_MAX):
            raise InvalidOperand(f"slot index {self.index} out of range")

    @property
    def shape(self) -> OperandShape:
        return OperandShape.LOCAL

    def describe(self) -> str:
        return f"V_{self.index}"


@dataclass(frozen=True)
class Label:
    """Symbolic branch target attached to an instruction."""

    id: int

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise InvalidOperand(f"label id expected, got {self.id!r}")
        if self.id < 0:
            raise InvalidOperand(f"label id {self.id} is negative")

    @property
    def shape(self) -> OperandShape:
        return OperandShape.LABEL

    def describe(self) -> str:
        return f"L_{self.id:04d}"


Operand = Union[IntegerConstant, StringLiteral, FieldRef, MethodRef, LocalIndex, Label]

OPERAND_TYPES = {
    OperandShape.INTEGER: IntegerConstant,
    OperandShape.STRING: StringLiteral,
    OperandShape.FIELD: FieldRef,
    OperandShape.METHOD: MethodRef,
    OperandShape.LOCAL: LocalIndex,
    OperandShape.ARGUMENT: LocalIndex,
    OperandShape.LABEL: Label,
}


__all__ = [
    "IntegerConstant",
    "StringLiteral",
    "FieldRef",
    "MethodRef",
    "LocalIndex",
    "Label",
    "Operand",
    "OPERAND_TYPES",
]
