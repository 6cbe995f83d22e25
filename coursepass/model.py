"""Course data model."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

DEFAULT_CREDITS = 3
DNA_LENGTH = 16


class CourseYear(Enum):
    """Ordinal tier of a course."""
    FIRST = "First"
    SECOND = "Second"
    THIRD = "Third"
    FOURTH = "Fourth"

    @classmethod
    def parse(cls, value: Any) -> "CourseYear":
        """Accept an enum member, its value ("Second") or its name ("SECOND")."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text == member.value or text.upper() == member.name:
                return member
        raise ValueError(f"unknown course year: {value!r}")


@dataclass(frozen=True)
class Course:
    """
    A registered course.

    ``dna``, ``course_year`` and ``credits`` never change after mint. ``owner``
    and ``price`` change only by replacing the whole record, which keeps staged
    and committed values from aliasing each other.
    """
    dna: bytes
    course_year: CourseYear
    credits: int
    owner: str
    price: Optional[Decimal] = None

    @property
    def for_sale(self) -> bool:
        return self.price is not None

    def identity_content(self) -> Dict[str, Any]:
        """Fields hashed into the course id."""
        return {
            "credits": self.credits,
            "dna": self.dna.hex(),
            "course_year": self.course_year.value,
            "owner": self.owner,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dna": self.dna.hex(),
            "course_year": self.course_year.value,
            "credits": self.credits,
            "owner": self.owner,
            "price": None if self.price is None else str(self.price),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Course":
        price = data.get("price")
        return cls(
            dna=bytes.fromhex(data["dna"]),
            course_year=CourseYear.parse(data["course_year"]),
            credits=int(data["credits"]),
            owner=str(data["owner"]),
            price=None if price is None else Decimal(str(price)),
        )
