"""Shared method bodies used across the test-suite."""

from ilpatch.catalog import builtin_members
from ilpatch.instruction import Instruction, call, callvirt, load_int, load_static_field, load_string
from ilpatch.members import MethodSelector
from ilpatch.opcodes import OpCode
from ilpatch.operands import LocalIndex
from ilpatch.sequence import InstructionSequence


MEMBERS = builtin_members()
TARGET = MethodSelector.constructor("UserPersistance", "System.String")


def make_body(version=None, *, labels=()) -> InstructionSequence:
    """Return the ``UserPersistance(string)`` constructor body the built-in patch targets."""

    version = version if version is not None else load_int(2)
    return InstructionSequence(
        [
            Instruction(OpCode.LDARG_1),
            Instruction(OpCode.STLOC_1),
            load_static_field(MEMBERS.field("UserPersistance.blueprints")),
            Instruction(OpCode.LDLOC_1),
            version,
            Instruction(OpCode.STLOC_2, labels=labels),
            Instruction(OpCode.LDLOCA_S, LocalIndex(2)),
            call(MEMBERS.method("Int32.ToString")),
            load_string(".db"),
            call(MEMBERS.method("String.Concat/3")),
            Instruction(OpCode.LDC_I4_1),
            callvirt(MEMBERS.method("Database.Open")),
            Instruction(OpCode.RET),
        ]
    )
