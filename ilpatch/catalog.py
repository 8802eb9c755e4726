"""Patch catalogues.

The catalogue is assembled once at start-up, either from the built-in patches
below or from a JSON document::

    {
      "members": {"fields": {...}, "methods": {...}},
      "patches": [
        {
          "name": "...",
          "target": "Type::Method(params)",
          "pattern": [{"rule": "exact", "op": "ldstr", "operand": ".db"}, ...],
          "keep_prefix": 2,
          "remove": 6,
          "insert": [{"op": "ldstr", "operand": "fixed.db"}, ...]
        }
      ]
    }

Members declared in the document are merged into a copy of the table passed
to :meth:`PatchCatalog.load` before any patch is decoded, so ``{"member": key}``
operands resolve against both while the caller's table stays unchanged.  An
entry that fails to decode is logged, recorded in ``rejected`` and skipped.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from .instruction import Instruction, call, load_string
from .members import MemberTable, MethodSelector, field_from_json, method_from_json
from .opcodes import OpCode
from .operands import FieldRef, MethodRef, StringLiteral
from .patching import PatchSpec
from .patterns import Exact, Pattern, any_int_constant, load_local_address
from .serialize import deserialize_patch, serialize_patch

logger = logging.getLogger(__name__)


class PatchCatalog:
    """Ordered, name-unique collection of :class:`PatchSpec` objects."""

    def __init__(self, specs: Optional[Iterable[PatchSpec]] = None) -> None:
        self._specs: List[PatchSpec] = []
        self._by_name: Dict[str, PatchSpec] = {}
        self.rejected: List[str] = []
        self.extend(specs or ())

    @classmethod
    def load(cls, path: Path, members: Optional[MemberTable] = None) -> "PatchCatalog":
        if not path.exists():
            logger.warning("patch catalogue %s not found, no patches loaded", path)
            return cls()

        data = json.loads(path.read_text("utf-8"))
        if isinstance(data, list):
            data = {"patches": data}
        if not isinstance(data, Mapping):
            raise ValueError(f"patch catalogue {path} must contain a JSON object or list")

        table = members.copy() if members is not None else MemberTable()
        declared = data.get("members") or {}
        for key, entry in (declared.get("fields") or {}).items():
            table.add(key, field_from_json(entry))
        for key, entry in (declared.get("methods") or {}).items():
            table.add(key, method_from_json(entry))

        catalog = cls()
        for entry in data.get("patches", ()):
            try:
                spec = deserialize_patch(entry, table)
            except (KeyError, ValueError) as exc:
                name = entry.get("name") if isinstance(entry, Mapping) else None
                name = name or "<unnamed>"
                logger.warning("[%s] PATCH FAILED: %s", name, exc)
                catalog.rejected.append(name)
                continue
            catalog.add(spec)
        logger.debug("loaded %d patch(es) from %s", len(catalog), path)
        return catalog

    def add(self, spec: PatchSpec) -> None:
        if spec.name in self._by_name:
            raise ValueError(f"duplicate patch name: {spec.name!r}")
        self._specs.append(spec)
        self._by_name[spec.name] = spec

    def extend(self, specs: Iterable[PatchSpec]) -> None:
        for spec in specs:
            self.add(spec)

    def by_name(self, name: str) -> Optional[PatchSpec]:
        return self._by_name.get(name)

    def __iter__(self) -> Iterator[PatchSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def to_json(self) -> Dict[str, object]:
        return {"patches": [serialize_patch(spec) for spec in self._specs]}

    def write(self, output_path: Path) -> None:
        output_path.write_text(json.dumps(self.to_json(), indent=2) + "\n", "utf-8")


# ---------------------------------------------------------------------------
# built-in patches
# ---------------------------------------------------------------------------

BLUEPRINTS_FILE = "player.blueprints.db"


def builtin_members() -> MemberTable:
    """Members referenced by :func:`builtin_patches`."""

    return MemberTable(
        {
            "UserPersistance.blueprints": FieldRef(
                "UserPersistance", "blueprints", "Facepunch.Sqlite.Database", is_static=True
            ),
            "Int32.ToString": MethodRef(
                "System.Int32", "ToString", (), "System.String", is_static=False
            ),
            "String.Concat/3": MethodRef(
                "System.String",
                "Concat",
                ("System.String", "System.String", "System.String"),
                "System.String",
            ),
            "String.Concat/2": MethodRef(
                "System.String",
                "Concat",
                ("System.String", "System.String"),
                "System.String",
            ),
            "Database.Open": MethodRef(
                "Facepunch.Sqlite.Database",
                "Open",
                ("System.String", "System.Boolean"),
                is_static=False,
            ),
        }
    )


def blueprints_path_patch(members: Optional[MemberTable] = None) -> PatchSpec:
    """Pin the blueprint database to a version-independent file name.

    The ``UserPersistance(string)`` constructor opens
    ``<dir> + "player.blueprints." + <version> + ".db"`` so every protocol
    bump starts players on an empty blueprint database.  The patch drops the
    version suffix: the version constant, its string conversion, the ``.db``
    literal and the three-way concat are replaced by a fixed file name joined
    with a two-way concat.  The version constant is matched in any encoding
    since the compiler picks ``ldc.i4.N``, ``ldc.i4.s`` or ``ldc.i4``
    depending on its value.
    """

    table = members or builtin_members()
    pattern = Pattern(
        "blueprints_filename",
        (
            Exact(OpCode.LDSFLD, table.field("UserPersistance.blueprints")),
            Exact(OpCode.LDLOC_1),
            any_int_constant(),
            Exact(OpCode.STLOC_2),
            load_local_address(2),
            Exact(OpCode.CALL, table.method("Int32.ToString")),
            Exact(OpCode.LDSTR, StringLiteral(".db")),
            Exact(OpCode.CALL, table.method("String.Concat/3")),
            Exact(OpCode.LDC_I4_1),
            Exact(OpCode.CALLVIRT, table.method("Database.Open")),
        ),
    )
    insert: List[Instruction] = [
        load_string(BLUEPRINTS_FILE),
        call(table.method("String.Concat/2")),
    ]
    return PatchSpec(
        name="PreventBlueprintWipes.ChangeBlueprintsPath",
        target=MethodSelector.constructor("UserPersistance", "System.String"),
        pattern=pattern,
        keep_prefix_count=2,
        remove_count=6,
        insert=insert,
    )


def builtin_patches(members: Optional[MemberTable] = None) -> PatchCatalog:
    return PatchCatalog([blueprints_path_patch(members)])


__all__ = [
    "PatchCatalog",
    "BLUEPRINTS_FILE",
    "builtin_members",
    "blueprints_path_patch",
    "builtin_patches",
]
