"""
Genesis documents and seeding.

Run with: pytest tests/test_genesis.py -v
"""

import json

import pytest
import yaml

from coursepass.genesis import GenesisConfig, GenesisEntry, seed
from coursepass.hardening import InvariantChecker
from coursepass.model import CourseYear
from coursepass.schema import SchemaError, schema_errors

DNA_A = "00112233445566778899aabbccddeeff"
DNA_B = "ffeeddccbbaa99887766554433221100"


def _doc(*entries):
    return {"courses": list(entries)}


class TestGenesisConfig:
    """Parsing and schema validation."""

    def test_from_dict(self):
        config = GenesisConfig.from_dict(_doc(
            {"account": "alice", "dna": DNA_A, "course_year": "Second"},
            {"account": "bob", "dna": DNA_B, "course_year": "FOURTH", "credits": 9, "name": "b"},
        ))
        assert config.entries[0] == GenesisEntry("alice", bytes.fromhex(DNA_A), CourseYear.SECOND)
        assert config.entries[1].credits == 9
        assert config.entries[1].name == "b"

    @pytest.mark.parametrize("entry", [
        {"account": "alice", "dna": DNA_A[:-2], "course_year": "First"},
        {"account": "alice", "dna": DNA_A, "course_year": "Fifth"},
        {"account": "alice", "dna": DNA_A, "course_year": "First", "credits": 300},
        {"account": "alice", "dna": DNA_A},
        {"account": "alice", "dna": DNA_A, "course_year": "First", "price": "1"},
    ])
    def test_schema_rejects(self, entry):
        with pytest.raises(SchemaError):
            GenesisConfig.from_dict(_doc(entry))

    def test_missing_courses_key(self):
        assert schema_errors({}, "genesis")

    def test_load_yaml_and_json(self, tmp_path):
        data = _doc({"account": "alice", "dna": DNA_A, "course_year": "Third"})
        yaml_path = tmp_path / "genesis.yaml"
        yaml_path.write_text(yaml.safe_dump(data), encoding="utf-8")
        json_path = tmp_path / "genesis.json"
        json_path.write_text(json.dumps(data), encoding="utf-8")

        assert GenesisConfig.load(yaml_path).entries == GenesisConfig.load(json_path).entries
        assert GenesisConfig.load(yaml_path).to_dict() == data


class TestSeed:
    """Minting genesis entries through the engine."""

    def test_seeds_in_order(self, engine):
        config = GenesisConfig.from_dict(_doc(
            {"account": "alice", "dna": DNA_A, "course_year": "Second", "name": "first"},
            {"account": "alice", "dna": DNA_B, "course_year": "First", "credits": 5},
        ))
        report = seed(engine, config.entries)

        assert report.ok
        assert sorted(report.created) == [0, 1]
        assert report.names == {"first": report.created[0]}
        first = engine.course(report.created[0])
        assert first.course_year is CourseYear.SECOND
        assert first.credits == 3
        assert engine.course(report.created[1]).credits == 5
        assert engine.course_count() == 2
        InvariantChecker.check_registry(engine.store)

    def test_failures_recorded_and_seeding_continues(self, engine):
        entries = [
            GenesisEntry("alice", bytes.fromhex(DNA_A), CourseYear.FIRST),
            GenesisEntry("alice", bytes.fromhex(DNA_A), CourseYear.FIRST),
            GenesisEntry("bob", bytes.fromhex(DNA_B), CourseYear.FIRST),
        ]
        report = seed(engine, entries)

        assert not report.ok
        assert [(f.index, f.kind) for f in report.failures] == [(1, "already_exists")]
        assert sorted(report.created) == [0, 2]
        assert engine.course_count() == 2

    def test_capacity_applies(self, engine):
        entries = [
            GenesisEntry("alice", bytes([n] * 16), CourseYear.FIRST) for n in range(4)
        ]
        report = seed(engine, entries)
        assert [(f.index, f.kind) for f in report.failures] == [(3, "capacity_exceeded")]
        assert len(engine.courses_owned("alice")) == 3
