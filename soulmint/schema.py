"""JSON Schema validation for soulmint request documents.

Schemas live in ``soulmint/schemas`` and reference shared definitions in
``common.schema.json`` by relative ``$ref``; a ``referencing`` registry built
from every bundled schema resolves them.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"

MINT_REQUEST_SCHEMA = "mint_request.schema.json"
GROTH16_PROOF_SCHEMA = "groth16_proof.schema.json"


def _load(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def schema_registry() -> Registry:
    """Registry of every bundled schema, keyed by its ``$id``."""
    resources = []
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = _load(schema_path)
        schema_id = schema.get("$id") or schema_path.resolve().as_uri()
        resources.append(
            (schema_id, Resource.from_contents(schema, default_specification=DRAFT202012))
        )
    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(name: str) -> Draft202012Validator:
    """Validator for the bundled schema file ``name``."""
    schema = _load(SCHEMAS_DIR / name)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema, registry=schema_registry())


def validate_document(obj: Any, name: str) -> List[str]:
    """
    Validate ``obj`` against a bundled schema.

    Returns a list of ``"<json path>: <message>"`` strings, empty if valid.
    """
    validator = schema_validator(name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=str)
    ]
