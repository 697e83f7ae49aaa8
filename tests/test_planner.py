"""
Planner Tests
-------------
Tests cover:
- Prompt construction from the live tool catalogue
- JSON recovery from noisy model output
- Fail-closed parsing
"""

import json

import pytest

from core.errors import PlanParseError
from planner.llm_planner import (
    LLMPlanner, MockLLMClient, build_planner_prompt, parse_plan, plan_from_prompt, repair_json,
)
from tools.registry import ToolDescriptor


@pytest.fixture
def populated(registry):
    registry.register(ToolDescriptor(
        name="disk_report", description="Summarize disk usage.", handler=lambda i, c: {},
        capabilities=["files.read"],
    ))
    registry.register(ToolDescriptor(
        name="dedupe_files", description="Delete duplicates.", handler=lambda i, c: {},
        mutate=True, capabilities=["files.read", "files.delete"],
    ))
    return registry


class TestPrompt:

    def test_prompt_lists_every_tool(self, populated):
        prompt = build_planner_prompt("clean up", populated.list())

        assert "- disk_report: Summarize disk usage. (mutate=false, caps=[files.read])" in prompt
        assert "- dedupe_files: Delete duplicates. (mutate=true, caps=[files.delete,files.read])" in prompt
        assert prompt.endswith("\nUser: clean up\nPlan:")

    def test_one_completion_per_plan(self, populated):
        client = MockLLMClient()
        plan_from_prompt("how full is my disk", client, populated)

        assert len(client.prompts) == 1
        assert "how full is my disk" in client.prompts[0]


class TestRecovery:

    def test_fenced_json_recovered(self, registry):
        """Chatty, fenced output is reduced to the braced object."""
        raw = 'Sure! ```json\n{"summary":"x","steps":[]}\n```'

        plan = plan_from_prompt("p", MockLLMClient(raw), registry)

        assert plan.summary == "x"
        assert plan.steps == []

    def test_leading_prose(self):
        assert repair_json('Here you go: {"a": 1}') == '{"a": 1}'

    def test_clean_json_passes_through(self):
        text = json.dumps({"summary": "s", "steps": [{"tool": "t", "input": {"k": 1}}]})

        plan = parse_plan(text)

        assert plan.steps[0].tool == "t"
        assert plan.steps[0].input == {"k": 1}

    def test_no_object_fails_closed(self, registry):
        with pytest.raises(PlanParseError):
            plan_from_prompt("p", MockLLMClient("I can't help with that."), registry)

    def test_broken_object_fails_closed(self):
        with pytest.raises(PlanParseError) as exc_info:
            parse_plan('{"summary": "x", "steps": [}')
        assert exc_info.value.raw == '{"summary": "x", "steps": [}'

    def test_non_list_steps_rejected(self):
        with pytest.raises(PlanParseError):
            parse_plan('{"summary": "x", "steps": "disk_report"}')

    def test_unknown_tools_are_not_checked_at_planning(self, registry):
        """Planning is best-effort; tool existence is enforced at execution."""
        raw = json.dumps({"summary": "s", "steps": [{"tool": "nope", "input": {}}]})
        plan = LLMPlanner(registry, MockLLMClient(raw)).plan("p")
        assert plan.steps[0].tool == "nope"


class TestClientErrors:

    def test_client_error_propagates(self, registry):
        class Failing:
            def complete(self, prompt):
                raise ConnectionError("offline")

        with pytest.raises(ConnectionError):
            plan_from_prompt("p", Failing(), registry)
