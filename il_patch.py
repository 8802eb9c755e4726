#!/usr/bin/env python3
"""Apply instruction-pattern patches to a JSON dump of method bodies."""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

from ilpatch import (
    JsonMethodBodyProvider,
    MemberTable,
    PatchCatalog,
    PatchReportRenderer,
    Patcher,
    builtin_members,
    builtin_patches,
)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("bodies", type=Path, help="JSON document holding the method bodies")
    parser.add_argument(
        "--patches",
        type=Path,
        action="append",
        default=[],
        help="Patch catalogue to apply (may be given several times)",
    )
    parser.add_argument(
        "--members",
        type=Path,
        default=Path("members.json"),
        help="Member table used to resolve symbolic operands",
    )
    parser.add_argument(
        "--builtin",
        action="store_true",
        help="Include the built-in patches",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Override the default <bodies>.patched.json output path",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write a before/after listing of every patch to this file",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when any patch fails to apply",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser.parse_args(argv)


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def validate_inputs(args: argparse.Namespace) -> None:
    for path in (args.bodies, *args.patches):
        if not path.exists():
            raise SystemExit(f"missing input file: {path}")
    if not args.patches and not args.builtin:
        raise SystemExit("no patches selected: pass --patches and/or --builtin")


def load_members(args: argparse.Namespace) -> MemberTable:
    members = MemberTable.load(args.members)
    if args.builtin:
        builtins = builtin_members()
        try:
            members.update({key: builtins.resolve(key) for key in builtins.keys()})
        except ValueError as exc:
            raise SystemExit(f"conflicting member declaration in {args.members}: {exc}") from None
    return members


def build_catalog(args: argparse.Namespace, members: MemberTable) -> PatchCatalog:
    catalog = PatchCatalog()
    if args.builtin:
        catalog.extend(builtin_patches())
    for path in args.patches:
        try:
            loaded = PatchCatalog.load(path, members)
            catalog.extend(loaded)
        except ValueError as exc:
            raise SystemExit(f"invalid patch catalogue {path}: {exc}") from None
        catalog.rejected.extend(loaded.rejected)
    return catalog


def main(argv: Optional[Sequence[str]] = None) -> int:
    start_time = time.perf_counter()
    args = parse_args(argv)
    configure_logging(args.verbose)
    validate_inputs(args)

    members = load_members(args)
    catalog = build_catalog(args, members)
    provider = JsonMethodBodyProvider.load(args.bodies, members)

    report = Patcher(catalog).apply_all(provider)

    output_path = args.out or args.bodies.with_suffix(".patched.json")
    provider.write(output_path)
    print(f"patched bodies written to {output_path}")

    if args.report is not None:
        PatchReportRenderer().write(report, args.report)
        print(f"report written to {args.report}")

    for result in report.results:
        print(result.describe())
    for name in catalog.rejected:
        print(f"{name}: rejected while loading")
    print(f"summary: {report.describe()}")

    total_time = time.perf_counter() - start_time
    print(f"total execution time: {total_time:.2f}s")

    if args.strict and (catalog.rejected or not report.ok):
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
