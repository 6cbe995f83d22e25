"""Core primitives for coursepass.

Foundational utilities used throughout the registry:
- Cryptographic hashing (SHA-256, BLAKE2b)
- Canonical JSON serialization (JCS/RFC8785 subset)
- YAML/JSON loading with consistent encoding

Design principles:
- Pure functions where possible
- No global mutable state
- Type annotations throughout
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import re
from decimal import Decimal
from enum import Enum
from typing import Any

import yaml

PACKAGE_ROOT = pathlib.Path(__file__).resolve().parent
SCHEMAS_DIR = PACKAGE_ROOT / "schemas"

HEX64_RE = re.compile(r"^[a-f0-9]{64}$")


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def blake2_128(data: bytes) -> bytes:
    """BLAKE2b with a 16-byte digest."""
    return hashlib.blake2b(data, digest_size=16).digest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def load_document(path: pathlib.Path) -> Any:
    """Load a YAML or JSON document based on its suffix."""
    p = pathlib.Path(path)
    if p.suffix.lower() == ".json":
        return load_json(p)
    return load_yaml(p)


def _coerce_json_types(obj: Any, path: str = "") -> Any:
    """Coerce Python objects into strict JSON types.

    - bytes become lowercase hex
    - Decimals and Enums become strings
    - Floats are rejected to avoid non-JCS number edge cases
    """
    if obj is None or isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, float):
        raise ValueError(f"Float not allowed in canonical JSON at {path or '$'}")
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).hex()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): _coerce_json_types(v, f"{path}.{k}") for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_coerce_json_types(v, f"{path}[{i}]") for i, v in enumerate(obj)]
    raise ValueError(f"Unsupported type {type(obj).__name__} in canonical JSON at {path or '$'}")


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes.

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Floats rejected (use strings/ints for amounts)

    This ensures byte-for-byte reproducibility for identifiers and signatures.
    """
    return json.dumps(
        _coerce_json_types(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def to_jsonable(obj: Any) -> Any:
    """Convert registry values into plain JSON/YAML-friendly structures."""
    return _coerce_json_types(obj)


def is_valid_sha256(digest: str) -> bool:
    """Check if string is a valid SHA-256 hex digest."""
    return bool(HEX64_RE.fullmatch(digest or ""))
