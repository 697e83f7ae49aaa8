"""
Step Executor
-------------
Runs a plan's steps in order against the tool registry under the context
policy.

Per step: resolve tool -> validate input -> authorize -> invoke handler ->
validate output -> record.

Rules:
- Strictly sequential; no reordering, no parallel dispatch
- One failed step never aborts the plan; every failure becomes a
  per-step error string and execution moves on
- A mutating handler whose output fails validation has already run; the
  violation is reported, nothing is rolled back
"""

from datetime import datetime, timezone
from typing import Any
import logging

from core.errors import AgentError, HandlerError, UnknownTool, log_level_for
from core.policy import authorize_tool
from core.types import ExecutionContext, Plan, PlanResult, StepResult

from .registry import ToolRegistry
from .validators import validate


def _elapsed_ms(start: datetime) -> float:
    return (datetime.now(timezone.utc) - start).total_seconds() * 1000


class ToolExecutor:
    """
    Validating, policy-enforcing tool executor.

    execute_plan() is best-effort batch execution for model-generated
    plans. run_step() is the strict single-step pipeline it is built on,
    also used by the macro runner where failures must propagate.
    """

    def __init__(self, registry: ToolRegistry):
        self.registry = registry
        self._logger = logging.getLogger("followme.tools.executor")

    def execute_plan(self, plan: Plan, context: ExecutionContext) -> PlanResult:
        """
        Execute every step of a plan. Never raises.

        len(result.results) == len(plan.steps), in the same order.
        """
        results = []
        total = len(plan.steps)

        for index, step in enumerate(plan.steps, start=1):
            start = datetime.now(timezone.utc)
            context.log(f"[{index}/{total}] {step.tool}", tool=step.tool)

            try:
                output = self.run_step(step.tool, step.input, context)
            except Exception as e:
                error = e.message if isinstance(e, AgentError) else (str(e) or type(e).__name__)
                self._logger.log(
                    log_level_for(e),
                    f"Step {index}/{total} failed ({step.tool}): {error}",
                )
                context.log(f"[{index}/{total}] {step.tool} failed: {error}", tool=step.tool)
                results.append(StepResult(step=step, error=error, execution_time_ms=_elapsed_ms(start)))
                continue

            results.append(StepResult(step=step, output=output, execution_time_ms=_elapsed_ms(start)))

        failed = sum(1 for r in results if not r.success)
        self._logger.info(f"Plan finished: {total - failed}/{total} steps succeeded")
        return PlanResult(plan=plan, results=results)

    def run_step(self, tool_name: str, tool_input: Any, context: ExecutionContext) -> Any:
        """
        Run one tool invocation through the full pipeline.

        Raises UnknownTool, ValidationError, a policy error, or HandlerError.
        """
        tool = self.registry.get(tool_name)
        if tool is None:
            raise UnknownTool(tool_name)

        validate(tool.input_schema, tool_input)
        authorize_tool(tool, context)

        start = datetime.now(timezone.utc)
        try:
            output = tool.handler(tool_input, context)
        except AgentError:
            raise
        except Exception as e:
            self._logger.error(f"Execution error in {tool.name}: {e}")
            raise HandlerError(str(e) or type(e).__name__, tool_name=tool.name) from e

        self._logger.info(f"Executed {tool.name} in {_elapsed_ms(start):.1f}ms")

        validate(tool.output_schema, output)
        return output
