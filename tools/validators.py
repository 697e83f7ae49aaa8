"""
Schema Validator
----------------
Structural validation of tool inputs and outputs against JSON-Schema-style
declarations.

Every violation is collected, not just the first, so one failed call
surfaces the complete defect list. Validation is pure.

Supported keywords:
    type, nullable, properties, required, additionalProperties, items,
    minItems, maxItems, minimum, maximum, minLength, pattern, enum, const,
    anyOf, oneOf (+ discriminator.propertyName for tagged unions)
"""

from dataclasses import dataclass
from typing import Any, Dict, List
import re

from core.errors import ValidationError


@dataclass(frozen=True)
class SchemaViolation:
    """One defect: where in the data, and what is wrong."""
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path} {self.message}"


_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    # bool is an int subclass; JSON does not treat it as a number
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
    "null": lambda v: v is None,
}


def validate(schema: Dict[str, Any], data: Any) -> None:
    """Raise ValidationError carrying every violation, or return None."""
    violations = collect_violations(schema, data)
    if violations:
        raise ValidationError(violations)


def is_valid(schema: Dict[str, Any], data: Any) -> bool:
    return not collect_violations(schema, data)


def collect_violations(schema: Dict[str, Any], data: Any) -> List[SchemaViolation]:
    """Return all violations of data against schema (empty if valid)."""
    out: List[SchemaViolation] = []
    _check(schema or {}, data, "", out)
    return out


def _child(path: str, key: Any) -> str:
    return f"{path}/{key}"


def _loc(path: str) -> str:
    return path or "/"


def _check(schema: Dict[str, Any], data: Any, path: str, out: List[SchemaViolation]) -> None:
    if data is None and schema.get("nullable"):
        return

    expected = schema.get("type")
    if expected is not None:
        types = expected if isinstance(expected, list) else [expected]
        if not any(_TYPE_CHECKS.get(t, lambda v: True)(data) for t in types):
            out.append(SchemaViolation(_loc(path), f"must be {' or '.join(types)}"))
            # Further keywords assume the declared type
            return

    if "const" in schema and data != schema["const"]:
        out.append(SchemaViolation(_loc(path), f"must be equal to constant {schema['const']!r}"))

    if "enum" in schema and data not in schema["enum"]:
        out.append(SchemaViolation(_loc(path), f"must be one of {schema['enum']}"))

    if _TYPE_CHECKS["number"](data):
        if "minimum" in schema and data < schema["minimum"]:
            out.append(SchemaViolation(_loc(path), f"must be >= {schema['minimum']}"))
        if "maximum" in schema and data > schema["maximum"]:
            out.append(SchemaViolation(_loc(path), f"must be <= {schema['maximum']}"))

    if isinstance(data, str):
        if "minLength" in schema and len(data) < schema["minLength"]:
            out.append(SchemaViolation(
                _loc(path), f"must NOT have fewer than {schema['minLength']} characters"
            ))
        if "pattern" in schema and re.search(schema["pattern"], data) is None:
            out.append(SchemaViolation(_loc(path), f"must match pattern {schema['pattern']!r}"))

    if isinstance(data, list):
        _check_array(schema, data, path, out)

    if isinstance(data, dict):
        _check_object(schema, data, path, out)

    if "oneOf" in schema or "anyOf" in schema:
        _check_union(schema, data, path, out)


def _check_array(schema: Dict[str, Any], data: list, path: str, out: List[SchemaViolation]) -> None:
    if "minItems" in schema and len(data) < schema["minItems"]:
        out.append(SchemaViolation(_loc(path), f"must NOT have fewer than {schema['minItems']} items"))
    if "maxItems" in schema and len(data) > schema["maxItems"]:
        out.append(SchemaViolation(_loc(path), f"must NOT have more than {schema['maxItems']} items"))

    items = schema.get("items")
    if isinstance(items, dict):
        for i, item in enumerate(data):
            _check(items, item, _child(path, i), out)


def _check_object(schema: Dict[str, Any], data: dict, path: str, out: List[SchemaViolation]) -> None:
    properties = schema.get("properties", {})

    for name in schema.get("required", []):
        if name not in data:
            out.append(SchemaViolation(_loc(path), f"must have required property '{name}'"))

    extra = schema.get("additionalProperties", True)
    for key, value in data.items():
        if key in properties:
            _check(properties[key], value, _child(path, key), out)
        elif extra is False:
            out.append(SchemaViolation(_loc(path), f"must NOT have additional property '{key}'"))
        elif isinstance(extra, dict):
            _check(extra, value, _child(path, key), out)


def _check_union(schema: Dict[str, Any], data: Any, path: str, out: List[SchemaViolation]) -> None:
    keyword = "oneOf" if "oneOf" in schema else "anyOf"
    branches = schema[keyword]

    discriminator = (schema.get("discriminator") or {}).get("propertyName")
    if discriminator and isinstance(data, dict):
        _check_tagged(branches, discriminator, data, path, out)
        return

    results = [_violations_at(b, data, path) for b in branches]
    passing = [r for r in results if not r]

    if keyword == "oneOf" and len(passing) > 1:
        out.append(SchemaViolation(_loc(path), "must match exactly one schema in oneOf"))
    elif not passing:
        out.append(SchemaViolation(_loc(path), f"must match a schema in {keyword}"))
        # Report the closest branch so the caller can see what to fix
        if results:
            out.extend(min(results, key=len))


def _check_tagged(
    branches: List[Dict[str, Any]],
    discriminator: str,
    data: dict,
    path: str,
    out: List[SchemaViolation],
) -> None:
    """Pick the branch whose discriminant matches, then validate against it."""
    if discriminator not in data:
        out.append(SchemaViolation(_loc(path), f"must have required property '{discriminator}'"))
        return

    tag = data[discriminator]
    tags = []
    for branch in branches:
        branch_tag = branch.get("properties", {}).get(discriminator, {})
        allowed = [branch_tag["const"]] if "const" in branch_tag else branch_tag.get("enum", [])
        tags.extend(allowed)
        if tag in allowed:
            _check(branch, data, path, out)
            return

    out.append(SchemaViolation(
        _child(path, discriminator), f"must be one of {tags}"
    ))


def _violations_at(schema: Dict[str, Any], data: Any, path: str) -> List[SchemaViolation]:
    out: List[SchemaViolation] = []
    _check(schema, data, path, out)
    return out
