"""
Command-line interface.

Run with: pytest tests/test_cli.py -v
"""

import json

import pytest
import yaml

from coursepass.cli import CoursePassCLI, OutputFormat, format_output, main

DNA_A = "00112233445566778899aabbccddeeff"
DNA_B = "ffeeddccbbaa99887766554433221100"


def _run(capsys, *argv):
    code = main(["--quiet", *argv])
    out = capsys.readouterr().out
    return code, out


@pytest.fixture
def genesis_file(tmp_path):
    path = tmp_path / "genesis.yaml"
    path.write_text(yaml.safe_dump({"courses": [
        {"account": "alice", "dna": DNA_A, "course_year": "Second"},
        {"account": "bob", "dna": DNA_B, "course_year": "First", "credits": 4},
    ]}), encoding="utf-8")
    return path


class TestDnaCommands:
    """Pure DNA tooling."""

    def test_breed(self, capsys):
        code, out = _run(capsys, "dna", "breed", DNA_A, DNA_B, "--mask", "ff" * 8 + "00" * 8)
        assert code == 0
        assert json.loads(out) == {"child": DNA_A[:16] + DNA_B[16:]}

    def test_breed_rejects_short_mask(self, capsys):
        code, _ = _run(capsys, "dna", "breed", DNA_A, DNA_B, "--mask", "ff")
        assert code == 1

    def test_id(self, capsys):
        from coursepass.identity import derive_course_id
        from coursepass.model import Course, CourseYear

        code, out = _run(capsys, "dna", "id", "--owner", "alice", "--dna", DNA_A, "--course-year", "Third")
        expected = derive_course_id(Course(bytes.fromhex(DNA_A), CourseYear.THIRD, 3, "alice"))
        assert code == 0
        assert json.loads(out)["course_id"] == expected


class TestGenesisCommands:
    """Genesis validation and loading."""

    def test_validate(self, capsys, genesis_file):
        code, out = _run(capsys, "genesis", "validate", str(genesis_file))
        assert code == 0
        assert json.loads(out) == {"file": str(genesis_file), "valid": True, "errors": [], "courses": 2}

    def test_validate_reports_errors(self, capsys, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"courses": [{"account": "alice"}]}), encoding="utf-8")
        code, out = _run(capsys, "genesis", "validate", str(path))
        assert code == 1
        assert json.loads(out)["valid"] is False

    def test_load(self, capsys, genesis_file):
        code, out = _run(capsys, "genesis", "load", str(genesis_file))
        result = json.loads(out)
        assert code == 0
        assert result["state"]["course_count"] == 2
        assert sorted(result["state"]["courses_owned"]) == ["alice", "bob"]

    def test_missing_file(self, capsys, tmp_path):
        code, _ = _run(capsys, "genesis", "load", str(tmp_path / "nope.yaml"))
        assert code == 1


class TestScenarioCommands:
    """Scenario replay from disk."""

    def test_run(self, capsys, tmp_path):
        path = tmp_path / "scenario.yaml"
        path.write_text(yaml.safe_dump({
            "seed": "00",
            "balances": {"bob": "10"},
            "calls": [
                {"caller": "alice", "call": "mint", "save_as": "x"},
                {"caller": "alice", "call": "set_price", "args": {"course_id": "$x", "new_price": "5"}},
                {"caller": "bob", "call": "buy_course", "args": {"course_id": "$x", "bid_price": "5"}},
            ],
        }), encoding="utf-8")
        code, out = _run(capsys, "scenario", "run", str(path))
        result = json.loads(out)
        assert code == 0
        assert result["summary"]["succeeded"] == 3
        assert result["balances"] == {"alice": "5", "bob": "5"}

    def test_unmet_expectation_exit_code(self, capsys, tmp_path):
        path = tmp_path / "scenario.json"
        path.write_text(json.dumps({"calls": [
            {"caller": "alice", "call": "transfer", "args": {"course_id": "ab" * 32, "to": "bob"},
             "expect": "ok"},
        ]}), encoding="utf-8")
        code, _ = _run(capsys, "scenario", "run", str(path))
        assert code == 2


class TestConfigCommands:
    """Configuration inspection."""

    def test_show_with_config_file(self, capsys, tmp_path):
        path = tmp_path / "coursepass.yaml"
        path.write_text("registry:\n  max_courses_owned: 9\n", encoding="utf-8")
        code, out = _run(capsys, "--config", str(path), "config", "show")
        assert code == 0
        assert json.loads(out)["registry"]["max_courses_owned"] == 9

    def test_get(self, capsys):
        code, out = _run(capsys, "config", "get", "dna.domain_tag")
        assert json.loads(out) == {"path": "dna.domain_tag", "value": "dna"}

    def test_validate(self, capsys):
        code, out = _run(capsys, "config", "validate")
        assert code == 0
        assert json.loads(out) == {"valid": True, "errors": []}

    def test_yaml_output(self, capsys):
        code, out = _run(capsys, "--format", "yaml", "config", "schema")
        assert code == 0
        assert "max_courses_owned" in yaml.safe_load(out)["properties"]["registry"]


class TestCLIBasics:
    """Parser and formatting."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_unknown_subcommand(self, capsys):
        assert CoursePassCLI().run(["--quiet", "genesis"]) == 2

    def test_table_format(self):
        rows = [{"course_id": "abc", "owner": "alice"}]
        text = format_output(rows, OutputFormat.TABLE)
        assert text.splitlines()[0].startswith("course_id")
        assert "alice" in text
