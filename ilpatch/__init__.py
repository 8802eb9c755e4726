"""Public package exports for the instruction-stream patcher."""

from .catalog import PatchCatalog, builtin_members, builtin_patches
from .errors import InvalidOperand, PatchError, RewriteError, UnsafeRemovalWindow
from .instruction import BlockKind, ExceptionBlock, Instruction
from .listing import PatchReportRenderer, SequenceRenderer
from .members import MemberTable, MethodSelector
from .opcodes import EncodingClass, OpCode, encoding_class
from .operands import FieldRef, IntegerConstant, Label, LocalIndex, MethodRef, StringLiteral
from .patching import PatchReport, PatchResult, PatchSpec, PatchStatus, Patcher, apply_patch
from .patterns import AnyOf, Exact, Pattern
from .provider import InMemoryMethodBodyProvider, JsonMethodBodyProvider, MethodBodyProvider
from .rewrite import RewriteCursor, RewriteStage, rewrite
from .scanner import MatchWindow, scan, scan_all
from .sequence import InstructionSequence

__all__ = [
    "AnyOf",
    "BlockKind",
    "EncodingClass",
    "Exact",
    "ExceptionBlock",
    "FieldRef",
    "InMemoryMethodBodyProvider",
    "Instruction",
    "InstructionSequence",
    "IntegerConstant",
    "InvalidOperand",
    "JsonMethodBodyProvider",
    "Label",
    "LocalIndex",
    "MatchWindow",
    "MemberTable",
    "MethodBodyProvider",
    "MethodRef",
    "MethodSelector",
    "OpCode",
    "PatchCatalog",
    "PatchError",
    "PatchReport",
    "PatchReportRenderer",
    "PatchResult",
    "PatchSpec",
    "PatchStatus",
    "Patcher",
    "Pattern",
    "RewriteCursor",
    "RewriteError",
    "RewriteStage",
    "SequenceRenderer",
    "StringLiteral",
    "UnsafeRemovalWindow",
    "apply_patch",
    "builtin_members",
    "builtin_patches",
    "encoding_class",
    "rewrite",
    "scan",
    "scan_all",
]
