"""Declarative instruction patterns.

A :class:`Pattern` is an ordered tuple of :class:`MatchRule` objects, each of
which tests exactly one instruction.  Two rule flavours exist:

``Exact``
    Opcode identity plus value equality of the operand.  Useful when the
    compiler has no freedom in how it encodes an instruction (``ldstr ".db"``,
    ``call string::Concat(string, string, string)``).

``AnyOf``
    Membership of the instruction's :class:`~ilpatch.opcodes.EncodingClass` in
    a set, optionally combined with a predicate over the *logical* operand.
    ``AnyOf({LOAD_INT_CONSTANT}, AnyInteger())`` therefore accepts
    ``ldc.i4.2``, ``ldc.i4.s 2`` and ``ldc.i4 2`` alike.

Rules never look beyond their own instruction; retrying at later offsets is the
scanner's job.  Predicates are small frozen objects rather than lambdas so that
patterns can be described in diagnostics and round-tripped through the JSON
patch catalogue.  Arbitrary callables are still accepted for ad-hoc rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional, Sequence, Tuple, Union

from .instruction import Instruction, implicit_operand
from .opcodes import EncodingClass, OpCode
from .operands import (
    FieldRef,
    IntegerConstant,
    LocalIndex,
    MethodRef,
    Operand,
    StringLiteral,
)


# ---------------------------------------------------------------------------
# operand predicates
# ---------------------------------------------------------------------------


class OperandPredicate:
    """Base class for describable operand predicates."""

    def __call__(self, operand: Optional[Operand]) -> bool:  # pragma: no cover - abstract
        raise NotImplementedError

    def describe(self) -> str:  # pragma: no cover - overridden
        return type(self).__name__


@dataclass(frozen=True)
class AnyInteger(OperandPredicate):
    def __call__(self, operand: Optional[Operand]) -> bool:
        return isinstance(operand, IntegerConstant)

    def describe(self) -> str:
        return "int(*)"


@dataclass(frozen=True)
class IntegerEquals(OperandPredicate):
    value: int

    def __call__(self, operand: Optional[Operand]) -> bool:
        return isinstance(operand, IntegerConstant) and operand.value == self.value

    def describe(self) -> str:
        return f"int({self.value})"


@dataclass(frozen=True)
class LocalEquals(OperandPredicate):
    index: int

    def __call__(self, operand: Optional[Operand]) -> bool:
        return isinstance(operand, LocalIndex) and operand.index == self.index

    def describe(self) -> str:
        return f"local({self.index})"


@dataclass(frozen=True)
class OperandEquals(OperandPredicate):
    operand: Operand

    def __call__(self, operand: Optional[Operand]) -> bool:
        return operand == self.operand

    def describe(self) -> str:
        return f"=={self.operand.describe()}"


@dataclass(frozen=True)
class AllOf(OperandPredicate):
    predicates: Tuple[OperandPredicate, ...]

    def __call__(self, operand: Optional[Operand]) -> bool:
        return all(predicate(operand) for predicate in self.predicates)

    def describe(self) -> str:
        return " and ".join(predicate.describe() for predicate in self.predicates)


@dataclass(frozen=True)
class EitherOf(OperandPredicate):
    predicates: Tuple[OperandPredicate, ...]

    def __call__(self, operand: Optional[Operand]) -> bool:
        return any(predicate(operand) for predicate in self.predicates)

    def describe(self) -> str:
        return " or ".join(predicate.describe() for predicate in self.predicates)


PredicateLike = Union[OperandPredicate, Callable[[Optional[Operand]], bool]]


def any_integer() -> AnyInteger:
    return AnyInteger()


def integer(value: int) -> IntegerEquals:
    return IntegerEquals(value)


def local(index: int) -> LocalEquals:
    return LocalEquals(index)


def string(value: str) -> OperandEquals:
    return OperandEquals(StringLiteral(value))


def field(ref: FieldRef) -> OperandEquals:
    return OperandEquals(ref)


def method(ref: MethodRef) -> OperandEquals:
    return OperandEquals(ref)


def all_of(*predicates: OperandPredicate) -> AllOf:
    return AllOf(tuple(predicates))


def either_of(*predicates: OperandPredicate) -> EitherOf:
    return EitherOf(tuple(predicates))


# ---------------------------------------------------------------------------
# rules
# ---------------------------------------------------------------------------


class MatchRule:
    """Single-instruction test used by :class:`Pattern`."""

    def matches(self, instruction: Instruction) -> bool:  # pragma: no cover - abstract
        raise NotImplementedError

    def describe(self) -> str:  # pragma: no cover - overridden
        return type(self).__name__


@dataclass(frozen=True)
class Exact(MatchRule):
    opcode: OpCode
    operand: Optional[Operand] = None

    def matches(self, instruction: Instruction) -> bool:
        if instruction.opcode is not self.opcode:
            return False
        expected = self.operand if self.operand is not None else implicit_operand(self.opcode)
        return instruction.logical_operand() == expected

    def describe(self) -> str:
        if self.operand is None:
            return self.opcode.value
        return f"{self.opcode.value} {self.operand.describe()}"


@dataclass(frozen=True)
class AnyOf(MatchRule):
    classes: FrozenSet[EncodingClass]
    predicate: Optional[PredicateLike] = None

    def __post_init__(self) -> None:
        classes = frozenset(self.classes)
        if not classes:
            raise ValueError("AnyOf rule requires at least one encoding class")
        object.__setattr__(self, "classes", classes)

    def matches(self, instruction: Instruction) -> bool:
        if instruction.encoding_class not in self.classes:
            return False
        if self.predicate is None:
            return True
        return bool(self.predicate(instruction.logical_operand()))

    def describe(self) -> str:
        names = "|".join(sorted(cls.name for cls in self.classes))
        if self.predicate is None:
            return f"any({names})"
        describe = getattr(self.predicate, "describe", None)
        detail = describe() if callable(describe) else "<predicate>"
        return f"any({names}) where {detail}"


def any_int_constant(value: Optional[int] = None) -> AnyOf:
    """Match an integer-constant load of any encoding, optionally of ``value``."""

    predicate = AnyInteger() if value is None else IntegerEquals(value)
    return AnyOf(frozenset({EncodingClass.LOAD_INT_CONSTANT}), predicate)


def load_local(index: int) -> AnyOf:
    return AnyOf(frozenset({EncodingClass.LOAD_LOCAL}), LocalEquals(index))


def store_local(index: int) -> AnyOf:
    return AnyOf(frozenset({EncodingClass.STORE_LOCAL}), LocalEquals(index))


def load_local_address(index: int) -> AnyOf:
    return AnyOf(frozenset({EncodingClass.LOAD_LOCAL_ADDRESS}), LocalEquals(index))


# ---------------------------------------------------------------------------
# patterns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Pattern:
    """Named, ordered list of rules describing a contiguous instruction window."""

    name: str
    rules: Tuple[MatchRule, ...]

    def __post_init__(self) -> None:
        rules = tuple(self.rules)
        if not rules:
            raise ValueError(f"pattern {self.name!r} has no rules")
        for rule in rules:
            if not isinstance(rule, MatchRule):
                raise TypeError(f"pattern {self.name!r} contains non-rule {rule!r}")
        object.__setattr__(self, "rules", rules)

    @classmethod
    def of(cls, name: str, rules: Iterable[MatchRule]) -> "Pattern":
        return cls(name, tuple(rules))

    def __len__(self) -> int:
        return len(self.rules)

    def matches_at(self, instructions: Sequence[Instruction], offset: int) -> bool:
        """Return ``True`` if every rule holds for the window starting at ``offset``."""

        if offset < 0 or offset + len(self.rules) > len(instructions):
            return False
        for position, rule in enumerate(self.rules):
            if not rule.matches(instructions[offset + position]):
                return False
        return True

    def describe(self) -> str:
        body = ", ".join(rule.describe() for rule in self.rules)
        return f"pattern {self.name} [{body}]"


__all__ = [
    "OperandPredicate",
    "AnyInteger",
    "IntegerEquals",
    "LocalEquals",
    "OperandEquals",
    "AllOf",
    "EitherOf",
    "any_integer",
    "integer",
    "local",
    "string",
    "field",
    "method",
    "all_of",
    "either_of",
    "MatchRule",
    "Exact",
    "AnyOf",
    "any_int_constant",
    "load_local",
    "store_local",
    "load_local_address",
    "Pattern",
]
