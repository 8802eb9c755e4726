"""Method-body providers.

The engine never loads or installs method bodies itself.  A provider hands out
the current :class:`InstructionSequence` of a method and accepts the patched
replacement.  Two implementations ship with the package: a dictionary-backed
one for hosts that feed bodies programmatically and a JSON-backed one used by
the command-line tool to patch offline dumps.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence

from .instruction import Instruction
from .members import MemberTable, MethodSelector
from .sequence import InstructionSequence, as_sequence
from .serialize import deserialize_selector, deserialize_sequence, serialize_sequence

logger = logging.getLogger(__name__)


class MethodBodyProvider(ABC):
    """Source and sink of method bodies."""

    @abstractmethod
    def get_instructions(self, selector: MethodSelector) -> InstructionSequence:
        """Return the current body of ``selector``; raise ``KeyError`` if unknown."""

    @abstractmethod
    def set_instructions(self, selector: MethodSelector, instructions: Sequence[Instruction]) -> None:
        """Install ``instructions`` as the new body of ``selector``."""

    @abstractmethod
    def __contains__(self, selector: object) -> bool: ...


class InMemoryMethodBodyProvider(MethodBodyProvider):
    def __init__(self, bodies: Optional[Mapping[MethodSelector, Sequence[Instruction]]] = None) -> None:
        self._bodies: Dict[MethodSelector, InstructionSequence] = {
            selector: as_sequence(body) for selector, body in (bodies or {}).items()
        }

    def get_instructions(self, selector: MethodSelector) -> InstructionSequence:
        try:
            return self._bodies[selector]
        except KeyError:
            raise KeyError(f"no body for {selector.key()}") from None

    def set_instructions(self, selector: MethodSelector, instructions: Sequence[Instruction]) -> None:
        self._bodies[selector] = as_sequence(instructions)

    def __contains__(self, selector: object) -> bool:
        return selector in self._bodies

    def __iter__(self) -> Iterator[MethodSelector]:
        return iter(self._bodies)

    def __len__(self) -> int:
        return len(self._bodies)

    def items(self):
        return self._bodies.items()


class JsonMethodBodyProvider(InMemoryMethodBodyProvider):
    """Provider backed by a JSON dump of method bodies.

    The document is an object with a ``methods`` list, each entry holding a
    ``target`` selector (``"Type::Name(params)"``) and a ``body`` list of
    serialised instructions.
    """

    def __init__(
        self,
        bodies: Optional[Mapping[MethodSelector, Sequence[Instruction]]] = None,
        *,
        path: Optional[Path] = None,
    ) -> None:
        super().__init__(bodies)
        self.path = path

    @classmethod
    def load(cls, path: Path, members: Optional[MemberTable] = None) -> "JsonMethodBodyProvider":
        data = json.loads(path.read_text("utf-8"))
        entries = data.get("methods") if isinstance(data, Mapping) else None
        if not isinstance(entries, list):
            raise ValueError(f"{path} does not contain a 'methods' list")

        bodies: Dict[MethodSelector, InstructionSequence] = {}
        for entry in entries:
            selector = deserialize_selector(entry["target"])
            if selector in bodies:
                raise ValueError(f"{path}: duplicate body for {selector.key()}")
            bodies[selector] = deserialize_sequence(entry.get("body", ()), members)
        logger.debug("loaded %d method bodies from %s", len(bodies), path)
        return cls(bodies, path=path)

    def to_json(self) -> Dict[str, Any]:
        return {
            "methods": [
                {"target": selector.key(), "body": serialize_sequence(body)}
                for selector, body in self.items()
            ]
        }

    def write(self, output_path: Path) -> None:
        output_path.write_text(json.dumps(self.to_json(), indent=2) + "\n", "utf-8")


__all__ = ["MethodBodyProvider", "InMemoryMethodBodyProvider", "JsonMethodBodyProvider"]
