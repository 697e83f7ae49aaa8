"""
Schema Validator Tests
----------------------
Tests cover:
- Type checks, bounds and required/additional properties
- Every violation is reported, with its location
- Tagged unions select a branch by discriminator
"""

import pytest

from core.errors import ValidationError
from tools.macros import MACRO_STEPS_SCHEMA
from tools.validators import collect_violations, is_valid, validate


SCHEMA = {
    "type": "object",
    "properties": {
        "root": {"type": "string"},
        "topN": {"type": "integer", "minimum": 1, "maximum": 100},
        "cwd": {"type": "string", "nullable": True},
    },
    "required": ["root"],
    "additionalProperties": False,
}


class TestBasicKeywords:

    def test_valid_input_passes(self):
        validate(SCHEMA, {"root": "/tmp", "topN": 5})

    def test_nullable_accepts_none(self):
        assert is_valid(SCHEMA, {"root": "/tmp", "cwd": None})

    def test_bool_is_not_integer(self):
        assert not is_valid(SCHEMA, {"root": "/tmp", "topN": True})

    def test_wrong_root_type(self):
        violations = collect_violations(SCHEMA, ["not", "an", "object"])
        assert len(violations) == 1
        assert violations[0].path == "/"
        assert violations[0].message == "must be object"

    def test_enum(self):
        schema = {"type": "string", "enum": ["first", "newest"]}
        assert is_valid(schema, "first")
        assert not is_valid(schema, "oldest")

    def test_pattern(self):
        schema = {"type": "string", "pattern": "^[ims]*$"}
        assert is_valid(schema, "im")
        assert not is_valid(schema, "x")


class TestAggregation:
    """All violations are collected, not just the first."""

    def test_reports_every_violation(self):
        violations = collect_violations(SCHEMA, {"topN": 0, "extra": 1})
        rendered = [str(v) for v in violations]

        assert "/ must have required property 'root'" in rendered
        assert "/topN must be >= 1" in rendered
        assert "/ must NOT have additional property 'extra'" in rendered
        assert len(violations) == 3

    def test_validate_raises_with_all_violations(self):
        with pytest.raises(ValidationError) as exc_info:
            validate(SCHEMA, {"topN": 500})

        assert len(exc_info.value.violations) == 2
        assert "/topN must be <= 100" in exc_info.value.message


class TestTaggedUnion:
    """Macro steps are a discriminated union on 'kind'."""

    def test_valid_steps(self):
        steps = [
            {"kind": "tool", "tool": "disk_report", "input": {}},
            {"kind": "shell", "command": "ls"},
        ]
        assert is_valid(MACRO_STEPS_SCHEMA, steps)

    def test_empty_steps_rejected(self):
        violations = collect_violations(MACRO_STEPS_SCHEMA, [])
        assert [str(v) for v in violations] == ["/ must NOT have fewer than 1 items"]

    def test_branch_errors_point_into_the_step(self):
        violations = collect_violations(MACRO_STEPS_SCHEMA, [{"kind": "shell", "cwd": "/tmp"}])
        assert [str(v) for v in violations] == ["/0 must have required property 'command'"]

    def test_unknown_kind(self):
        violations = collect_violations(MACRO_STEPS_SCHEMA, [{"kind": "http", "url": "x"}])
        assert len(violations) == 1
        assert violations[0].path == "/0/kind"

    def test_missing_discriminator(self):
        violations = collect_violations(MACRO_STEPS_SCHEMA, [{"tool": "x"}])
        assert [str(v) for v in violations] == ["/0 must have required property 'kind'"]
