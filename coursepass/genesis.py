"""
Genesis seeding.

A genesis document lists the courses that exist before the first call:

    courses:
      - account: alice
        dna: 00112233445566778899aabbccddeeff
        course_year: Second
        credits: 3          # optional, engine default otherwise
        name: alice-first   # optional label for scenarios

Entries are minted in order through the engine, so they obey the same
uniqueness and capacity rules as any other mint. A failing entry is
recorded in the report and seeding moves on to the next one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from coursepass.core import load_document
from coursepass.errors import RegistryError
from coursepass.hardening import ValidationError, Validators
from coursepass.model import CourseYear
from coursepass.observability import Layer, get_logger
from coursepass.schema import validate_with_schema

if TYPE_CHECKING:
    from coursepass.engine import CourseEngine

logger = get_logger("genesis", Layer.GENESIS)


@dataclass(frozen=True)
class GenesisEntry:
    """One course to create at initialization."""
    account: str
    dna: bytes
    course_year: CourseYear
    credits: Optional[int] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenesisEntry":
        credits = data.get("credits")
        return cls(
            account=Validators.validate_account(data["account"]).unwrap(),
            dna=Validators.validate_dna(data["dna"]).unwrap(),
            course_year=CourseYear.parse(data["course_year"]),
            credits=None if credits is None else Validators.validate_credits(credits).unwrap(),
            name=data.get("name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "account": self.account,
            "dna": self.dna.hex(),
            "course_year": self.course_year.value,
        }
        if self.credits is not None:
            d["credits"] = self.credits
        if self.name:
            d["name"] = self.name
        return d


@dataclass
class GenesisConfig:
    """A validated genesis document."""
    entries: List[GenesisEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenesisConfig":
        validate_with_schema(data, "genesis")
        return cls(entries=[GenesisEntry.from_dict(item) for item in data["courses"]])

    @classmethod
    def load(cls, path: Union[str, Path]) -> "GenesisConfig":
        """Load a YAML or JSON genesis file."""
        data = load_document(Path(path))
        if not isinstance(data, dict):
            raise ValidationError("genesis", "Document must be a mapping", str(path))
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {"courses": [entry.to_dict() for entry in self.entries]}


@dataclass
class GenesisFailure:
    index: int
    account: str
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "account": self.account,
            "kind": self.kind,
            "message": self.message,
        }


@dataclass
class GenesisReport:
    """Outcome of seeding: ids minted (by entry index) and failures."""
    created: Dict[int, str] = field(default_factory=dict)
    names: Dict[str, str] = field(default_factory=dict)
    failures: List[GenesisFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": [{"index": i, "course_id": cid} for i, cid in sorted(self.created.items())],
            "names": dict(self.names),
            "failures": [f.to_dict() for f in self.failures],
        }


def seed(engine: "CourseEngine", entries: List[GenesisEntry]) -> GenesisReport:
    """Mint every entry in order; failures are recorded, not raised."""
    report = GenesisReport()
    for index, entry in enumerate(entries):
        try:
            course_id = engine.mint(
                entry.account,
                dna=entry.dna,
                course_year=entry.course_year,
                credits=entry.credits,
            )
        except RegistryError as exc:
            report.failures.append(GenesisFailure(index, entry.account, exc.kind.value, str(exc)))
            continue
        except ValidationError as exc:
            report.failures.append(GenesisFailure(index, entry.account, "invalid_input", str(exc)))
            continue
        report.created[index] = course_id
        if entry.name:
            report.names[entry.name] = course_id

    logger.info(
        f"Genesis seeded {len(report.created)} of {len(entries)} courses",
        operation="seed",
        failures=len(report.failures),
    )
    return report
