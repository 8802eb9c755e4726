"""Statically declared member identifiers.

Patches refer to fields and methods of the host program.  Rather than looking
members up by string at match time, every identifier a patch needs is declared
once in a :class:`MemberTable` (either in code or in ``members.json``) and
resolved when the catalogue is built.  Matching then compares plain value
objects.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

from .operands import FieldRef, MethodRef

logger = logging.getLogger(__name__)

Member = Union[FieldRef, MethodRef]

_SELECTOR_RE = re.compile(r"^\s*(?P<type>[^:\s]+)::(?P<name>[^(\s]+)\s*\((?P<params>[^)]*)\)\s*$")


@dataclass(frozen=True)
class MethodSelector:
    """Identify the method whose body a patch targets.

    Constructors use the name ``.ctor`` just like in the host metadata.
    """

    declaring_type: str
    name: str
    parameter_types: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameter_types", tuple(self.parameter_types))

    @classmethod
    def constructor(cls, declaring_type: str, *parameter_types: str) -> "MethodSelector":
        return cls(declaring_type, ".ctor", tuple(parameter_types))

    @classmethod
    def parse(cls, text: str) -> "MethodSelector":
        """Parse ``Type::Name(param, param)`` into a selector."""

        match = _SELECTOR_RE.match(text)
        if match is None:
            raise ValueError(f"malformed method selector: {text!r}")
        params = tuple(p.strip() for p in match.group("params").split(",") if p.strip())
        return cls(match.group("type"), match.group("name"), params)

    @property
    def is_constructor(self) -> bool:
        return self.name == ".ctor"

    def key(self) -> str:
        return f"{self.declaring_type}::{self.name}({', '.join(self.parameter_types)})"

    def __str__(self) -> str:
        return self.key()


class MemberTable:
    """Symbolic names for the host members patches refer to."""

    def __init__(self, members: Optional[Mapping[str, Member]] = None) -> None:
        self._members: Dict[str, Member] = dict(members or {})

    @classmethod
    def load(cls, path: Path) -> "MemberTable":
        """Load a table from ``path``; a missing file yields an empty table."""

        if not path.exists():
            logger.info("member table %s not found, starting empty", path)
            return cls()

        data = json.loads(path.read_text("utf-8"))
        if not isinstance(data, Mapping):
            raise ValueError(f"member table {path} must contain a JSON object")

        members: Dict[str, Member] = {}
        for key, entry in (data.get("fields") or {}).items():
            members[key] = field_from_json(entry)
        for key, entry in (data.get("methods") or {}).items():
            members[key] = method_from_json(entry)
        return cls(members)

    def copy(self) -> "MemberTable":
        return MemberTable(self._members)

    def add(self, key: str, member: Member) -> None:
        existing = self._members.get(key)
        if existing is not None and existing != member:
            raise ValueError(f"member {key!r} already declared as {existing.describe()}")
        self._members[key] = member

    def update(self, members: Mapping[str, Member]) -> None:
        for key, member in members.items():
            self.add(key, member)

    def resolve(self, key: str) -> Member:
        try:
            return self._members[key]
        except KeyError:
            raise KeyError(f"undeclared member {key!r}") from None

    def field(self, key: str) -> FieldRef:
        member = self.resolve(key)
        if not isinstance(member, FieldRef):
            raise KeyError(f"member {key!r} is not a field")
        return member

    def method(self, key: str) -> MethodRef:
        member = self.resolve(key)
        if not isinstance(member, MethodRef):
            raise KeyError(f"member {key!r} is not a method")
        return member

    def keys(self) -> Iterable[str]:
        return self._members.keys()

    def __contains__(self, key: object) -> bool:
        return key in self._members

    def __len__(self) -> int:
        return len(self._members)


def field_from_json(entry: Mapping[str, Any]) -> FieldRef:
    return FieldRef(
        declaring_type=str(entry["type"]),
        name=str(entry["name"]),
        field_type=str(entry.get("field_type", "object")),
        is_static=bool(entry.get("static", True)),
    )


def method_from_json(entry: Mapping[str, Any]) -> MethodRef:
    return MethodRef(
        declaring_type=str(entry["type"]),
        name=str(entry["name"]),
        parameter_types=tuple(str(param) for param in entry.get("params", ())),
        return_type=str(entry.get("returns", "void")),
        is_static=bool(entry.get("static", True)),
    )


def field_to_json(ref: FieldRef) -> Dict[str, Any]:
    return {
        "type": ref.declaring_type,
        "name": ref.name,
        "field_type": ref.field_type,
        "static": ref.is_static,
    }


def method_to_json(ref: MethodRef) -> Dict[str, Any]:
    return {
        "type": ref.declaring_type,
        "name": ref.name,
        "params": list(ref.parameter_types),
        "returns": ref.return_type,
        "static": ref.is_static,
    }


__all__ = [
    "Member",
    "MemberTable",
    "MethodSelector",
    "field_from_json",
    "field_to_json",
    "method_from_json",
    "method_to_json",
]
