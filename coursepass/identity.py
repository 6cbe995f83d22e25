"""Content-addressed course identifiers.

course_id = sha256(JCS({credits, dna, course_year, owner}))

The id covers the immutable fields plus the owner at mint time. It is
computed exactly once, when the course is minted; later owner or price
changes never touch it.
"""

from __future__ import annotations

from coursepass.core import canonical_json_bytes, sha256_bytes
from coursepass.model import Course


def derive_course_id(course: Course) -> str:
    """Derive the 64-hex-character id for a freshly built course."""
    return sha256_bytes(canonical_json_bytes(course.identity_content()))
