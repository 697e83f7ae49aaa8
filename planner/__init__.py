# Planner module - LLM-based task planning
# LLM outputs plans, not actions
# Unrecoverable JSON is rejected, never partially applied

from .llm_planner import (
    LLMPlanner, LLMClient, MockLLMClient,
    build_planner_prompt, parse_plan, plan_from_prompt, repair_json,
)

__all__ = [
    "LLMPlanner",
    "LLMClient",
    "MockLLMClient",
    "build_planner_prompt",
    "parse_plan",
    "plan_from_prompt",
    "repair_json",
]
