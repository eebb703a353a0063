"""JSON Schema validation infrastructure.

Provides schema validation for configuration files, scenario files and
exported game-state snapshots with:
- Automatic schema resolution via $ref
- Cross-reference registry for all schemas under daovsdao/schemas/
- Cached validators
- Clear error reporting
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from daovsdao.core import SCHEMA_DIR, load_json

SCHEMA_BASE_URI = "https://schemas.daovsdao.dev/"


@lru_cache(maxsize=4)
def _schema_registry(schemas_dir: Path = SCHEMA_DIR) -> Registry:
    """Build a schema registry for all schemas.

    This enables $ref resolution across the schema corpus.
    """
    if not schemas_dir.is_dir():
        return Registry()

    resources = []
    for schema_path in sorted(schemas_dir.glob("*.schema.json")):
        schema = load_json(schema_path)
        if not isinstance(schema, dict):
            continue

        schema_id = schema.get("$id") or f"{SCHEMA_BASE_URI}{schema_path.name}"
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema_id, resource))

    return Registry().with_resources(resources)


@lru_cache(maxsize=16)
def schema_validator(
    schema_path: Path,
    schemas_dir: Path = SCHEMA_DIR,
) -> Draft202012Validator:
    """Create a validator for a schema file.

    Args:
        schema_path: Path to the JSON Schema file
        schemas_dir: Directory of schemas used to resolve references

    Returns:
        A configured Draft202012Validator
    """
    schema = load_json(schema_path)
    registry = _schema_registry(schemas_dir)
    return Draft202012Validator(schema, registry=registry)


def validate_against_schema(
    obj: Any,
    schema_path: Path,
    schemas_dir: Path = SCHEMA_DIR,
) -> List[str]:
    """Validate an object against a schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(Path(schema_path), schemas_dir)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]
