"""Structural validation of OpenAPI 3.1 documents.

The embedded schema (``data/openapi-schema-3.1.json``) is derived from the
upstream OpenAPI 3.1 schema with a few changes:

- drop ``$schema``
- non-essential extension fields made invalid
- explicitly added the specific ``info`` x-* properties we use
- ``oneOf`` changed to ``anyOf`` in all cases (relaxing constraints)

This makes the schema stricter about x-* but more lax about everything else.
Updates to the upstream schema need the same treatment.
"""

import copy
import json
import logging
from functools import lru_cache
from importlib import resources
from typing import Any, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError, best_match

from .models import ValidationOutcome, Violation
from .parsers.documents import stringify_keys

logger = logging.getLogger(__name__)

SCHEMA_RESOURCE = "openapi-schema-3.1.json"

# The anchor that every schema position of an OpenAPI document refers to
SCHEMA_DEF = "schema"
SCHEMA_ANCHOR = "meta"

EXTRA_PROPERTY_KEYWORDS = ("unevaluatedProperties", "additionalProperties")


@lru_cache(maxsize=1)
def load_openapi_schema() -> dict[str, Any]:
    """Load the embedded OpenAPI 3.1 schema."""
    data_dir = resources.files(__package__).joinpath("data")
    return json.loads(data_dir.joinpath(SCHEMA_RESOURCE).read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def _default_validator() -> Draft202012Validator:
    return Draft202012Validator(load_openapi_schema())


def build_validator(schema_rules: Optional[dict[str, Any]] = None) -> Draft202012Validator:
    """Build a validator for OpenAPI documents.

    ``schema_rules`` replaces the rule-set applied wherever the document holds a
    JSON schema (parameter schemas, media type schemas, components.schemas).
    Nested schema positions inside a replacement that refer to ``#meta`` get
    the same replacement, so it applies recursively.
    """
    if schema_rules is None:
        return _default_validator()

    schema = copy.deepcopy(load_openapi_schema())
    schema["$defs"][SCHEMA_DEF] = {**schema_rules, "$dynamicAnchor": SCHEMA_ANCHOR}
    return Draft202012Validator(schema)


def json_pointer(path) -> str:
    """Format a path of keys/indexes as an RFC 6901 JSON Pointer."""
    return "".join(
        "/" + str(part).replace("~", "~0").replace("/", "~1") for part in path
    )


def _violations(error: ValidationError) -> list[Violation]:
    if error.context:
        error = best_match(error.context)

    pointer = json_pointer(error.absolute_path)

    if error.validator in EXTRA_PROPERTY_KEYWORDS and isinstance(error.instance, dict):
        # One violation per unexpected property, pointing at the property itself
        unexpected = [key for key in error.instance if repr(key) in error.message]
        if unexpected:
            return [
                Violation(
                    pointer=json_pointer([*error.absolute_path, key]),
                    keyword=error.validator,
                    message=f"Unexpected property {key!r}",
                )
                for key in unexpected
            ]

    return [Violation(pointer=pointer, keyword=str(error.validator), message=error.message)]


def validate(document: Any, schema_rules: Optional[dict[str, Any]] = None) -> ValidationOutcome:
    """Validate a parsed document against the OpenAPI 3.1 structural schema.

    Never raises for malformed input: anything that is not a valid document
    simply yields an invalid outcome listing its violations.
    """
    validator = build_validator(schema_rules)
    errors = validator.iter_errors(stringify_keys(document))

    violations: list[Violation] = []
    for error in sorted(errors, key=lambda e: [str(part) for part in e.absolute_path]):
        violations.extend(_violations(error))

    if violations:
        logger.debug("Document failed validation with %d violation(s)", len(violations))
    return ValidationOutcome(valid=not violations, violations=violations)
