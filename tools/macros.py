"""
Macro Runner
------------
Replays stored macros: ordered tool invocations and raw shell commands.

Tool steps re-enter the executor's strict pipeline (lookup -> validate ->
authorize -> invoke -> validate output). Shell steps authorize their
working directory, then hand the raw command to the shell collaborator.

Unlike plan execution, a failing macro step is fatal: the error
propagates and the remaining steps never run. Macros are user-authored
automation and should fail loudly.
"""

from typing import Any, Callable, Dict, List
import logging
import subprocess

from core.errors import HandlerError, MacroNotFound, UnknownTool
from core.policy import authorize_paths, resolve_path
from core.types import ExecutionContext, Macro, MacroStep, StepResult

from .executor import ToolExecutor
from .registry import ToolDescriptor, ToolRegistry
from .validators import validate

ShellRunner = Callable[[str, str], Dict[str, str]]

MACRO_STEP_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "discriminator": {"propertyName": "kind"},
    "oneOf": [
        {
            "properties": {
                "kind": {"const": "tool"},
                "tool": {"type": "string", "minLength": 1},
                "input": {"type": "object"},
            },
            "required": ["kind", "tool", "input"],
            "additionalProperties": False,
        },
        {
            "properties": {
                "kind": {"const": "shell"},
                "command": {"type": "string", "minLength": 1},
                "cwd": {"type": "string", "nullable": True},
            },
            "required": ["kind", "command"],
            "additionalProperties": False,
        },
    ],
}

MACRO_STEPS_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": MACRO_STEP_SCHEMA,
    "minItems": 1,
}


def run_shell_command(command: str, cwd: str) -> Dict[str, str]:
    """
    Run a raw command string through the system shell.

    Returns captured stdout/stderr; a non-zero exit raises HandlerError.
    """
    completed = subprocess.run(
        command,
        shell=True,
        cwd=cwd,
        capture_output=True,
        text=True,
    )
    if completed.returncode != 0:
        detail = completed.stderr.strip() or completed.stdout.strip()
        raise HandlerError(
            f"Command failed with exit code {completed.returncode}: {command}"
            + (f" ({detail})" if detail else "")
        )
    return {"stdout": completed.stdout, "stderr": completed.stderr}


class MacroRunner:
    """Executes macros step by step, stopping at the first failure."""

    def __init__(self, executor: ToolExecutor, shell: ShellRunner = run_shell_command):
        self.executor = executor
        self.shell = shell
        self._logger = logging.getLogger("followme.tools.macros")

    def run(self, macro: Macro, context: ExecutionContext) -> List[StepResult]:
        """Run every step in order. Any step failure propagates immediately."""
        self._logger.info(f"Running macro '{macro.name}' ({len(macro.steps)} steps)")
        results = []

        for index, step in enumerate(macro.steps, start=1):
            try:
                output = self.run_step(step, context)
            except Exception as e:
                self._logger.error(f"Macro '{macro.name}' failed at step {index}: {e}")
                raise
            results.append(StepResult(step=step, output=output))

        self._logger.info(f"Macro '{macro.name}' completed")
        return results

    def run_step(self, step: MacroStep, context: ExecutionContext) -> Any:
        if step.kind == "tool":
            if self.executor.registry.get(step.tool) is None:
                raise UnknownTool(step.tool, where="in macro")
            return self.executor.run_step(step.tool, step.input, context)

        if step.kind == "shell":
            cwd = resolve_path(step.cwd or context.cwd, context.cwd)
            authorize_paths([cwd], context)
            context.log(f"$ {step.command}", cwd=cwd)
            try:
                return self.shell(step.command, cwd)
            except OSError as e:
                raise HandlerError(f"Could not run command: {e}") from e

        raise ValueError(f"Unknown macro step kind: {step.kind!r}")


def register_macro_tools(registry: ToolRegistry, store, runner: MacroRunner) -> None:
    """Register create_macro, list_macros and run_macro against a store."""

    def create_macro(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        steps = validate_macro_steps(tool_input["steps"])
        store.save_macro(tool_input["name"], [s.to_dict() for s in steps])
        context.log(f"Macro '{tool_input['name']}' saved ({len(steps)} steps).")
        return {"status": "ok"}

    def list_macros(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        return {"macros": [m.to_dict() for m in store.load_macros()]}

    def run_macro(tool_input: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        macro = store.get_macro(tool_input["name"])
        if macro is None:
            raise MacroNotFound(tool_input["name"])
        results = runner.run(macro, context)
        return {"results": [r.to_dict() for r in results]}

    registry.register(ToolDescriptor(
        name="create_macro",
        description="Create a named macro with ordered steps (tool or shell).",
        handler=create_macro,
        mutate=True,
        capabilities=["macros.manage"],
        input_schema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "steps": MACRO_STEPS_SCHEMA,
            },
            "required": ["name", "steps"],
            "additionalProperties": False,
        },
        output_schema={
            "type": "object",
            "properties": {"status": {"type": "string"}},
            "required": ["status"],
        },
    ))

    registry.register(ToolDescriptor(
        name="list_macros",
        description="List stored macros.",
        handler=list_macros,
        capabilities=["macros.manage"],
        input_schema={"type": "object", "additionalProperties": False},
        output_schema={
            "type": "object",
            "properties": {"macros": {"type": "array"}},
            "required": ["macros"],
        },
    ))

    registry.register(ToolDescriptor(
        name="run_macro",
        description="Run a stored macro (tool steps and shell commands).",
        handler=run_macro,
        mutate=True,
        capabilities=[
            "macros.manage",
            "process.exec",
            "files.read",
            "files.write",
            "files.delete",
        ],
        input_schema={
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
            "additionalProperties": False,
        },
        output_schema={
            "type": "object",
            "properties": {"results": {"type": "array"}},
            "required": ["results"],
        },
    ))


def validate_macro_steps(steps: Any) -> List[MacroStep]:
    """Validate raw step dicts and convert them to MacroStep objects."""
    validate(MACRO_STEPS_SCHEMA, steps)
    return [MacroStep.from_dict(s) for s in steps]
