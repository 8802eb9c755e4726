import json
import subprocess
import sys
from pathlib import Path

from ilpatch.instruction import Instruction
from ilpatch.opcodes import OpCode
from ilpatch.operands import IntegerConstant
from ilpatch.serialize import serialize_sequence

from bodies import TARGET, make_body


ROOT = Path(__file__).resolve().parents[1]


def _write_bodies(base: Path, version=None) -> Path:
    payload = {"methods": [{"target": TARGET.key(), "body": serialize_sequence(make_body(version))}]}
    path = base / "bodies.json"
    path.write_text(json.dumps(payload, indent=2), "utf-8")
    return path


def _run(*args: str, check: bool = True) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, str(ROOT / "il_patch.py"), *args],
        check=check,
        capture_output=True,
        text=True,
        cwd=ROOT,
    )


def test_cli_applies_builtin_patch(tmp_path: Path) -> None:
    bodies = _write_bodies(tmp_path)
    report_path = tmp_path / "report.txt"

    result = _run(str(bodies), "--builtin", "--report", str(report_path))

    assert "summary: 1 applied, 0 failed, 1 total" in result.stdout
    output = bodies.with_suffix(".patched.json")
    assert output.exists()
    patched = json.loads(output.read_text("utf-8"))
    body = patched["methods"][0]["body"]
    assert len(body) == 9
    assert body[4] == {"op": "ldstr", "operand": {"kind": "string", "value": "player.blueprints.db"}}
    assert "before:" in report_path.read_text("utf-8")


def test_cli_uses_catalogue_file(tmp_path: Path) -> None:
    bodies = _write_bodies(tmp_path)
    out = tmp_path / "out.json"

    result = _run(
        str(bodies),
        "--patches",
        str(ROOT / "patches" / "blueprints.json"),
        "--members",
        str(ROOT / "patches" / "members.json"),
        "--out",
        str(out),
    )

    assert "blueprints.fixed_filename: applied" in result.stdout
    assert len(json.loads(out.read_text("utf-8"))["methods"][0]["body"]) == 9


def test_cli_strict_mode_reports_mismatch(tmp_path: Path) -> None:
    bodies = _write_bodies(tmp_path, Instruction(OpCode.LDC_I8, IntegerConstant(2)))

    result = _run(str(bodies), "--builtin", "--strict", check=False)

    assert result.returncode == 1
    assert "pattern-not-found" in result.stdout
    assert "PATCH FAILED" in result.stderr
    original = json.loads(bodies.read_text("utf-8"))
    patched = json.loads(bodies.with_suffix(".patched.json").read_text("utf-8"))
    assert patched == original


def test_cli_rejects_missing_inputs(tmp_path: Path) -> None:
    result = _run(str(tmp_path / "absent.json"), "--builtin", check=False)
    assert result.returncode != 0
    assert "missing input file" in result.stderr

    bodies = _write_bodies(tmp_path)
    result = _run(str(bodies), check=False)
    assert "no patches selected" in result.stderr


def test_cli_skips_undecodable_catalogue_entry(tmp_path: Path) -> None:
    bodies = _write_bodies(tmp_path)
    entries = json.loads((ROOT / "patches" / "blueprints.json").read_text("utf-8"))["patches"]
    broken = {
        "name": "oversized_short_constant",
        "target": "Game::Tick()",
        "pattern": [{"rule": "exact", "op": "nop"}],
        "keep_prefix": 0,
        "remove": 1,
        "insert": [{"op": "ldc.i4.s", "operand": 300}],
    }
    catalogue = tmp_path / "patches.json"
    catalogue.write_text(json.dumps({"patches": [*entries, broken]}), "utf-8")

    result = _run(
        str(bodies),
        "--patches",
        str(catalogue),
        "--members",
        str(ROOT / "patches" / "members.json"),
        "--strict",
        check=False,
    )

    assert result.returncode == 1
    assert "blueprints.fixed_filename: applied" in result.stdout
    assert "oversized_short_constant: rejected while loading" in result.stdout
    assert "[oversized_short_constant] PATCH FAILED" in result.stderr
    assert "Traceback" not in result.stderr


def test_cli_reports_conflicting_builtin_member(tmp_path: Path) -> None:
    bodies = _write_bodies(tmp_path)
    members = tmp_path / "members.json"
    members.write_text(
        json.dumps(
            {
                "fields": {
                    "UserPersistance.blueprints": {
                        "type": "UserPersistance",
                        "name": "blueprints",
                        "field_type": "System.Object",
                    }
                }
            }
        ),
        "utf-8",
    )

    result = _run(str(bodies), "--builtin", "--members", str(members), check=False)

    assert result.returncode != 0
    assert "conflicting member declaration" in result.stderr
    assert "Traceback" not in result.stderr
