"""
Runtime
-------
Prompt -> plan -> execute -> log, for one top-level request.

Planning failures (unparseable output, client errors) propagate to the
caller: there is no plan to execute. Once a plan exists, execution is
best-effort and always produces a PlanResult.
"""

from typing import Any, Optional
import json
import logging
import os

from infra.logging import RunContext, generate_run_id, log_run_end
from planner.llm_planner import LLMClient, plan_from_prompt
from tools.executor import ToolExecutor
from tools.registry import ToolRegistry

from .types import ExecutionContext, Platform, PlanResult

_logger = logging.getLogger("followme.core.runtime")


def create_context(prompt: Optional[str] = None, **overrides: Any) -> ExecutionContext:
    """
    Build an ExecutionContext with sensible defaults.

    Any ExecutionContext field (cwd, logger, confirmer, policy, ...) can be
    passed as a keyword to replace its default.
    """
    values = {
        "cwd": os.getcwd(),
        "platform": Platform.current(),
        "user_prompt": prompt,
        "run_id": generate_run_id(),
    }
    values.update(overrides)
    return ExecutionContext(**values)


def handle_user_prompt(
    prompt: str,
    llm: LLMClient,
    registry: ToolRegistry,
    store=None,
    **overrides: Any,
) -> PlanResult:
    """
    Plan and execute a prompt, then record the run.

    Returns the PlanResult. Raises PlanParseError (or the client's own
    error) when no plan could be produced.
    """
    context = create_context(prompt, **overrides)

    with RunContext(context.run_id) as run_id:
        _logger.info(f"Run started: {prompt!r}")
        try:
            plan = plan_from_prompt(prompt, llm, registry)
        except Exception as e:
            log_run_end(run_id, success=False, error=str(e))
            raise

        context.log(f"PLAN: {json.dumps(plan.to_dict(), default=str)}")
        result = ToolExecutor(registry).execute_plan(plan, context)

        if store is not None:
            try:
                store.log_run(run_id, prompt, plan.to_dict(), result.to_dict())
            except Exception as e:
                _logger.error(f"Failed to record run {run_id}: {e}")

        failed = result.failed
        log_run_end(
            run_id,
            success=not failed,
            steps_executed=len(result.results),
            error="; ".join(r.error for r in failed) if failed else None,
        )
        return result
