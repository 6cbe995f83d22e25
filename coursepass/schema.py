"""JSON Schema validation for genesis and scenario documents.

- Cross-reference registry over ``coursepass/schemas``
- Cached validators
- Error messages prefixed with their JSON path
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from coursepass.core import SCHEMAS_DIR, load_json

SCHEMA_BASE_URI = "https://schemas.coursepass.dev/"


class SchemaError(ValueError):
    """A document failed schema validation."""

    def __init__(self, schema_name: str, errors: List[str]):
        self.schema_name = schema_name
        self.errors = errors
        super().__init__(f"{schema_name}: " + "; ".join(errors))


@lru_cache(maxsize=1)
def _schema_registry(schemas_dir: Path = SCHEMAS_DIR) -> Registry:
    """Build a registry so ``$ref`` resolves across the bundled schemas."""
    resources = []
    for schema_path in sorted(schemas_dir.glob("*.schema.json")):
        schema = load_json(schema_path)
        schema_id = schema.get("$id") or f"{SCHEMA_BASE_URI}{schema_path.name}"
        resources.append((schema_id, Resource.from_contents(schema, default_specification=DRAFT202012)))
    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(schema_name: str) -> Draft202012Validator:
    """Validator for ``coursepass/schemas/<schema_name>.schema.json``."""
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise FileNotFoundError(f"Unknown schema: {schema_name}")
    return Draft202012Validator(load_json(schema_path), registry=_schema_registry())


def schema_errors(obj: Any, schema_name: str) -> List[str]:
    """Return every validation error message (empty if valid)."""
    validator = schema_validator(schema_name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]


def validate_with_schema(obj: Any, schema_name: str) -> None:
    """Raise ``SchemaError`` if ``obj`` does not match the named schema."""
    errors = schema_errors(obj, schema_name)
    if errors:
        raise SchemaError(schema_name, errors)
