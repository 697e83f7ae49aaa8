"""
Macro Runner Tests
------------------
Tests cover:
- Fatal failure: the first failing step stops the run
- Tool steps use the full executor pipeline
- Shell steps authorize their cwd and use the shell collaborator
- Macro tools backed by the store
"""

import pytest

from core.errors import HandlerError, MacroNotFound, PathDenied, PathNotAllowed, UnknownTool
from core.types import ExecutionContext, Macro, MacroStep, Plan, Policy
from tools.executor import ToolExecutor
from tools.macros import MacroRunner, register_macro_tools, run_shell_command, validate_macro_steps
from tools.registry import ToolDescriptor


class FakeShell:
    def __init__(self):
        self.commands = []

    def __call__(self, command, cwd):
        self.commands.append((command, cwd))
        return {"stdout": f"ran {command}", "stderr": ""}


@pytest.fixture
def calls():
    return []


@pytest.fixture
def shell():
    return FakeShell()


@pytest.fixture
def runner(registry, calls, shell):
    def fails(tool_input, context):
        calls.append("fails")
        raise RuntimeError("first step broke")

    def works(tool_input, context):
        calls.append("works")
        return {"ok": True}

    registry.register(ToolDescriptor(name="fails", description="", handler=fails))
    registry.register(ToolDescriptor(name="works", description="", handler=works))
    return MacroRunner(ToolExecutor(registry), shell=shell)


def _tool_step(name):
    return MacroStep(kind="tool", tool=name, input={})


class TestMacroRunner:

    def test_first_failure_is_fatal(self, runner, context, calls):
        """The second step's handler never runs."""
        macro = Macro(name="m", steps=[_tool_step("fails"), _tool_step("works")])

        with pytest.raises(HandlerError, match="first step broke"):
            runner.run(macro, context)

        assert calls == ["fails"]

    def test_all_steps_succeed(self, runner, context, shell, tmp_path):
        macro = Macro(name="m", steps=[
            _tool_step("works"),
            MacroStep(kind="shell", command="echo hi"),
        ])

        results = runner.run(macro, context)

        assert [r.output for r in results] == [{"ok": True}, {"stdout": "ran echo hi", "stderr": ""}]
        assert shell.commands == [("echo hi", str(tmp_path))]

    def test_unknown_tool_in_macro(self, runner, context):
        macro = Macro(name="m", steps=[_tool_step("ghost")])

        with pytest.raises(UnknownTool, match="Unknown tool in macro: ghost"):
            runner.run(macro, context)

    def test_shell_cwd_authorized(self, runner, make_context, shell, tmp_path):
        context = make_context(deny_paths=[str(tmp_path / "locked")])
        macro = Macro(name="m", steps=[MacroStep(kind="shell", command="ls", cwd=str(tmp_path / "locked"))])

        with pytest.raises(PathDenied):
            runner.run(macro, context)
        assert shell.commands == []

    def test_relative_shell_cwd_resolves_against_context(
        self, runner, shell, tmp_path, tmp_path_factory, monkeypatch, log_sink
    ):
        """A relative cwd is checked and run in the same place, whatever the process cwd."""
        allowed = tmp_path / "allowed"
        (allowed / "sub").mkdir(parents=True)
        outside = tmp_path_factory.mktemp("outside")
        (outside / "sub").mkdir()
        monkeypatch.chdir(outside)
        context = ExecutionContext(
            cwd=str(allowed),
            logger=log_sink,
            policy=Policy(allow_paths=[str(allowed)]),
            run_id="test-run",
        )

        runner.run(Macro(name="m", steps=[MacroStep(kind="shell", command="ls", cwd="sub")]), context)
        assert shell.commands == [("ls", str(allowed / "sub"))]

        escape = Macro(name="m", steps=[MacroStep(kind="shell", command="ls", cwd="../..")])
        with pytest.raises(PathNotAllowed):
            runner.run(escape, context)
        assert len(shell.commands) == 1


class TestShellCommand:

    def test_captures_output(self, tmp_path):
        result = run_shell_command("echo hello", str(tmp_path))
        assert result["stdout"].strip() == "hello"

    def test_nonzero_exit_raises(self, tmp_path):
        with pytest.raises(HandlerError, match="exit code 3"):
            run_shell_command("exit 3", str(tmp_path))


class TestMacroTools:

    @pytest.fixture
    def executor(self, registry, store, runner):
        register_macro_tools(registry, store, runner)
        return ToolExecutor(registry)

    def test_create_list_run(self, executor, context, calls):
        steps = [{"kind": "tool", "tool": "works", "input": {}}]

        assert executor.run_step("create_macro", {"name": "daily", "steps": steps}, context) == {"status": "ok"}

        listed = executor.run_step("list_macros", {}, context)
        assert [m["name"] for m in listed["macros"]] == ["daily"]
        assert listed["macros"][0]["steps"] == steps

        output = executor.run_step("run_macro", {"name": "daily"}, context)
        assert output["results"][0]["output"] == {"ok": True}
        assert calls == ["works"]

    def test_run_unknown_macro(self, executor, context):
        with pytest.raises(MacroNotFound):
            executor.run_step("run_macro", {"name": "nope"}, context)

    def test_create_rejects_bad_steps(self, executor, context, store):
        plan = Plan.from_dict({
            "steps": [{"tool": "create_macro", "input": {"name": "x", "steps": []}}],
        })

        result = executor.execute_plan(plan, context)

        assert "must NOT have fewer than 1 items" in result.results[0].error
        assert store.get_macro("x") is None

    def test_validate_macro_steps(self):
        steps = validate_macro_steps([{"kind": "shell", "command": "ls", "cwd": "/tmp"}])
        assert steps == [MacroStep(kind="shell", command="ls", cwd="/tmp")]

    def test_create_stores_normalized_steps(self, executor, context, store):
        steps = [{"kind": "shell", "command": "ls", "cwd": None}]

        executor.run_step("create_macro", {"name": "tidy", "steps": steps}, context)

        assert store.get_macro("tidy").steps == [MacroStep(kind="shell", command="ls")]
