"""
LLM Planner
-----------
Turns a user prompt plus the live tool catalogue into a structured Plan.

The LLM outputs plans, not actions. Nothing here checks whether a step's
tool exists or its input is well-formed: planning is best-effort parsing
of untrusted model output, enforcement happens per step at execution.

JSON recovery is heuristic and fails closed: output with no recoverable
object raises PlanParseError; there is never a partial plan.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol
import json
import logging
import re

from core.errors import PlanParseError
from core.types import Plan

PLANNER_INSTRUCTIONS = """
You are a planner. Given a user prompt and available tools, output JSON:
{{ "summary": "...", "steps": [ {{ "tool": "name", "input": {{ ... }} }} ] }}
Use only available tools. Minimal sufficient steps. No commentary.
Tools:
{tools}
"""

_BRACED_SPAN = re.compile(r"\{[\s\S]*\}")

_logger = logging.getLogger("followme.planner")


class LLMClient(Protocol):
    """Anything with a single blocking text-completion call."""

    def complete(self, prompt: str) -> str:
        ...


def describe_tool(tool) -> str:
    caps = ",".join(tool.capabilities)
    mutate = "true" if tool.mutate else "false"
    return f"- {tool.name}: {tool.description} (mutate={mutate}, caps=[{caps}])"


def build_planner_prompt(prompt: str, tools: Iterable) -> str:
    """Instruction block enumerating every tool, then the user prompt."""
    listing = "\n".join(describe_tool(t) for t in tools)
    system = PLANNER_INSTRUCTIONS.format(tools=listing)
    return f"{system}\nUser: {prompt}\nPlan:"


def repair_json(text: str) -> str:
    """
    Recover a JSON object from noisy model output.

    1. From the first '{' to the end of the string, if that parses
    2. Otherwise the span from the first '{' to the last '}'
    3. Otherwise PlanParseError
    """
    start = text.find("{")
    if start >= 0:
        candidate = text[start:]
        try:
            json.loads(candidate)
            return candidate
        except json.JSONDecodeError:
            pass

    match = _BRACED_SPAN.search(text)
    if match:
        return match.group(0)

    raise PlanParseError("Failed to parse plan JSON", raw=text)


def parse_plan(text: str) -> Plan:
    """Recover, decode and shape a plan from a raw completion."""
    candidate = repair_json(text)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise PlanParseError(f"Failed to parse plan JSON: {e.msg}", raw=text) from e
    return Plan.from_dict(data)


def plan_from_prompt(prompt: str, client: LLMClient, registry) -> Plan:
    """
    Ask the model for a plan. Exactly one completion request is made.

    Client failures and PlanParseError propagate to the caller.
    """
    full_prompt = build_planner_prompt(prompt, registry.list())
    raw = client.complete(full_prompt)
    _logger.debug(f"Raw planner output: {raw!r}")

    try:
        plan = parse_plan(raw)
    except PlanParseError:
        _logger.warning("Planner output could not be parsed")
        raise

    _logger.info(f"Plan created: {plan.summary!r} ({len(plan.steps)} steps)")
    return plan


class LLMPlanner:
    """Planner bound to a registry and a completion client."""

    def __init__(self, registry, client: LLMClient):
        self.registry = registry
        self.client = client

    def plan(self, prompt: str) -> Plan:
        return plan_from_prompt(prompt, self.client, self.registry)


class MockLLMClient:
    """
    Canned completion client for tests and offline runs.

    Returns the same response for every prompt and records each prompt it
    was given.
    """

    DEFAULT_PLAN: Dict[str, Any] = {
        "summary": "Disk report",
        "steps": [{"tool": "disk_report", "input": {}}],
    }

    def __init__(self, response: Optional[str] = None):
        self.response = response if response is not None else json.dumps(self.DEFAULT_PLAN)
        self.prompts: List[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response
